"""
tests/test_user_store.py -- Unit tests for UserStore (SQLAlchemy Core repository).

Covers:
  - create/get round trip, generated UUID ids, timestamps
  - case-insensitive email lookup and UNIQUE email constraint
  - update_user whitelist
  - refresh token set / lookup / unconditional and conditional clear
  - admin counts, listing with role/search filters, counts by role
"""

from __future__ import annotations

from dataclasses import fields

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import AuthenticatedUser, Role, User
from auth.store import UserStore


def _user(email: str = "ana@example.com", role: str = Role.user.value, name: str = "Ana") -> User:
    return User(name=name, email=email, password_hash="$2b$04$placeholder", role=role)


@pytest.fixture
def store(stores) -> UserStore:
    user_store, _log_store, _sessions = stores
    return user_store


class TestCreateAndLookup:
    def test_create_assigns_uuid_and_timestamps(self, store: UserStore) -> None:
        user_id = store.create_user(_user())
        loaded = store.get_by_id(user_id)
        assert loaded is not None
        assert len(user_id) == 36
        assert loaded.created_at and loaded.updated_at
        assert loaded.refresh_token is None

    def test_email_is_stored_lowercase(self, store: UserStore) -> None:
        user_id = store.create_user(_user(email="  Ana@Example.COM "))
        assert store.get_by_id(user_id).email == "ana@example.com"

    def test_email_lookup_is_case_insensitive(self, store: UserStore) -> None:
        store.create_user(_user())
        assert store.get_by_email("ANA@EXAMPLE.com") is not None

    def test_duplicate_email_raises_integrity_error(self, store: UserStore) -> None:
        store.create_user(_user())
        with pytest.raises(IntegrityError):
            store.create_user(_user(email="ANA@example.com"))

    def test_unknown_id_returns_none(self, store: UserStore) -> None:
        assert store.get_by_id("00000000-0000-0000-0000-000000000000") is None

    def test_get_by_ids_skips_unknown(self, store: UserStore) -> None:
        first = store.create_user(_user())
        second = store.create_user(_user(email="ben@example.com", name="Ben"))
        found = store.get_by_ids([first, second, "missing", None])
        assert set(found) == {first, second}
        assert found[second].name == "Ben"
        assert store.get_by_ids([]) == {}


class TestUpdate:
    def test_update_name_and_role(self, store: UserStore) -> None:
        user_id = store.create_user(_user())
        assert store.update_user(user_id, name="Ana Maria", role=Role.manager.value) is True
        loaded = store.get_by_id(user_id)
        assert loaded.name == "Ana Maria"
        assert loaded.role == Role.manager.value

    def test_update_rejects_unknown_fields(self, store: UserStore) -> None:
        user_id = store.create_user(_user())
        with pytest.raises(ValueError):
            store.update_user(user_id, password_hash="x")

    def test_update_missing_user_returns_false(self, store: UserStore) -> None:
        assert store.update_user("missing", name="Nobody") is False


class TestRefreshToken:
    def test_set_and_lookup(self, store: UserStore) -> None:
        user_id = store.create_user(_user())
        store.set_refresh_token(user_id, "token-1")
        assert store.get_by_refresh_token("token-1").id == user_id

    def test_set_overwrites_previous(self, store: UserStore) -> None:
        user_id = store.create_user(_user())
        store.set_refresh_token(user_id, "token-1")
        store.set_refresh_token(user_id, "token-2")
        assert store.get_by_refresh_token("token-1") is None
        assert store.get_by_refresh_token("token-2").id == user_id

    def test_empty_token_matches_nobody(self, store: UserStore) -> None:
        store.create_user(_user())
        assert store.get_by_refresh_token("") is None

    def test_unconditional_clear(self, store: UserStore) -> None:
        user_id = store.create_user(_user())
        store.set_refresh_token(user_id, "token-1")
        assert store.clear_refresh_token(user_id) is True
        assert store.get_by_id(user_id).refresh_token is None

    def test_conditional_clear_only_removes_expected_value(self, store: UserStore) -> None:
        """A stale clear must not wipe a session created after it was read."""
        user_id = store.create_user(_user())
        store.set_refresh_token(user_id, "token-2")
        assert store.clear_refresh_token(user_id, expected="token-1") is False
        assert store.get_by_id(user_id).refresh_token == "token-2"
        assert store.clear_refresh_token(user_id, expected="token-2") is True
        assert store.get_by_id(user_id).refresh_token is None


class TestCountsAndListing:
    def test_admin_counts(self, store: UserStore) -> None:
        assert store.has_admin() is False
        store.create_user(_user(email="a@example.com", role=Role.admin.value))
        store.create_user(_user(email="b@example.com"))
        assert store.count_admins() == 1
        assert store.has_admin() is True

    def test_count_by_role(self, store: UserStore) -> None:
        store.create_user(_user(email="a@example.com", role=Role.admin.value))
        store.create_user(_user(email="m@example.com", role=Role.manager.value))
        store.create_user(_user(email="u1@example.com"))
        store.create_user(_user(email="u2@example.com"))
        assert store.count_by_role() == {"admin": 1, "manager": 1, "user": 2}

    def test_list_filters_and_pagination(self, store: UserStore) -> None:
        for i in range(5):
            store.create_user(_user(email=f"user{i}@example.com", name=f"Person {i}"))
        store.create_user(_user(email="boss@example.com", name="Boss", role=Role.manager.value))

        assert store.count_users() == 6
        assert store.count_users(role=Role.manager.value) == 1
        assert len(store.list_users(page=1, limit=4)) == 4
        assert len(store.list_users(page=2, limit=4)) == 2
        assert [u.email for u in store.list_users(search="BOSS")] == ["boss@example.com"]
        assert store.count_users(search="person") == 5

    def test_recently_created_count(self, store: UserStore) -> None:
        store.create_user(_user())
        assert store.count_created_since(30) == 1

    def test_delete(self, store: UserStore) -> None:
        user_id = store.create_user(_user())
        assert store.delete_user(user_id) is True
        assert store.get_by_id(user_id) is None
        assert store.delete_user(user_id) is False


class TestAuthenticatedUser:
    def test_identity_carries_no_secrets(self) -> None:
        user = _user()
        user.id = "u-1"
        user.refresh_token = "stored-refresh-token"
        identity = AuthenticatedUser.from_user(user)
        assert {f.name for f in fields(identity)} == {"id", "name", "email", "role", "created_at"}
        assert identity.public_profile() == user.public_profile()
