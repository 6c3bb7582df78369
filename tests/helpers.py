"""
tests/helpers.py -- Plain helpers shared by test modules and conftest fixtures.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import create_access_token, create_refresh_token, hash_password

# Satisfies every password rule: length, lower, upper, digit.
DEFAULT_PASSWORD = "Passw0rd!"


def unique_email(prefix: str = "user") -> str:
    return f"{prefix}-{uuid.uuid4().hex[:10]}@example.com"


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@dataclass
class Account:
    """A stored user plus the tokens of its live session."""

    id: str
    name: str
    email: str
    password: str
    role: str
    access_token: str
    refresh_token: str

    @property
    def headers(self) -> dict[str, str]:
        return bearer(self.access_token)


def create_account(store: UserStore, role: Role | str, password: str, name: str) -> Account:
    """Insert a user directly and give it a live session, bypassing the HTTP layer."""
    role_value = Role(role).value
    email = unique_email(role_value)
    user_id = store.create_user(
        User(name=name, email=email, password_hash=hash_password(password), role=role_value)
    )
    refresh = create_refresh_token(user_id)
    store.set_refresh_token(user_id, refresh)
    return Account(
        id=user_id,
        name=name,
        email=email,
        password=password,
        role=role_value,
        access_token=create_access_token(user_id, role_value),
        refresh_token=refresh,
    )
