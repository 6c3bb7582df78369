"""
tests/test_admin_setup_routes.py -- Integration tests for first-admin bootstrap over HTTP.

Runs in its own module so the api_client database starts with no admin.
Test order matters here: the status check runs before the first setup.
"""

from __future__ import annotations

from helpers import DEFAULT_PASSWORD, bearer, unique_email

AUTH = "/api/v1/auth"


def test_status_before_setup(api_client) -> None:
    client, _, _ = api_client
    resp = client.get(f"{AUTH}/admin-setup/status")
    assert resp.status_code == 200
    assert resp.json()["data"] == {"adminExists": False, "adminCount": 0, "setupRequired": True}


def test_setup_validates_before_creating(api_client) -> None:
    client, user_store, _ = api_client
    resp = client.post(f"{AUTH}/admin-setup", json={"name": "Root"})
    assert resp.status_code == 400
    assert resp.json()["code"] == "MISSING_FIELDS"
    assert user_store.has_admin() is False


def test_first_setup_creates_admin_and_logs_in(api_client) -> None:
    client, _, log_store = api_client
    resp = client.post(
        f"{AUTH}/admin-setup",
        json={"name": "Root", "email": unique_email("root"), "password": DEFAULT_PASSWORD},
    )
    assert resp.status_code == 201
    assert resp.headers["cache-control"] == "no-store"
    data = resp.json()["data"]
    assert data["user"]["role"] == "admin"

    me = client.get(f"{AUTH}/me", headers=bearer(data["accessToken"]))
    assert me.status_code == 200
    assert me.json()["data"]["user"]["role"] == "admin"
    assert log_store.count_logs() >= 1


def test_second_setup_is_refused(api_client) -> None:
    client, user_store, _ = api_client
    for body in (
        {"name": "Other", "email": unique_email("other"), "password": DEFAULT_PASSWORD},
        {},
    ):
        resp = client.post(f"{AUTH}/admin-setup", json=body)
        assert resp.status_code == 403
        assert resp.json()["code"] == "ADMIN_EXISTS"
    assert user_store.count_admins() == 1


def test_status_after_setup(api_client) -> None:
    client, _, _ = api_client
    data = client.get(f"{AUTH}/admin-setup/status").json()["data"]
    assert data == {"adminExists": True, "adminCount": 1, "setupRequired": False}


def test_setup_without_body_after_admin_exists(api_client) -> None:
    client, _, _ = api_client
    resp = client.post(f"{AUTH}/admin-setup")
    assert resp.status_code == 403
    assert resp.json()["code"] == "ADMIN_EXISTS"
