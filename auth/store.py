"""
auth/store.py -- SQLAlchemy Core persistence layer for user accounts.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. The session manager and route code never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Email uniqueness is a UNIQUE constraint, not a check-then-insert, so two
  concurrent signups for one address cannot both succeed. create_user() lets
  IntegrityError propagate; callers translate it to DUPLICATE_EMAIL.

Session state:
  users.refresh_token holds the single active refresh token (or NULL). Every
  write to it is one UPDATE against one row. set_refresh_token() is
  unconditional (last login wins); clear_refresh_token() can be made
  conditional on the value it expects to remove so a late logout or a late
  defensive revocation never wipes a session created after it was read.

DB path: adminpanel.db at the repository root unless DATABASE_URL is set.

Layer rule: no imports from api/ or audit/. Import from core/ is allowed.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import Column, MetaData, String, Table, Text, func, or_, select
from sqlalchemy.engine import Engine

from auth.models import Role, User
from core.database import make_engine

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("role", String(30), nullable=False, server_default=Role.user.value),
    Column("refresh_token", Text, index=True),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

# Columns callers may change through update_user(). id, created_at and
# password_hash are not in the list; refresh_token has its own methods.
_UPDATABLE = frozenset({"name", "email", "role"})


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore("sqlite:///adminpanel.db")
        user_id = store.create_user(User(name="Ana", email="ana@x.com", password_hash=hash_password("...")))
        user = store.get_by_email("ANA@x.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = make_engine(db_url)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_by_id(self, user_id: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == str(user_id))).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_ids(self, user_ids) -> dict[str, User]:
        """Return {id: User} for the ids that exist. Unknown ids are left out."""
        ids = {str(i) for i in user_ids if i}
        if not ids:
            return {}
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().where(_users.c.id.in_(ids))).fetchall()
        return {row.id: _row_to_user(row) for row in rows}

    def get_by_email(self, email: str) -> User | None:
        """Case-insensitive: the argument is normalized the same way stored emails are."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_refresh_token(self, token: str) -> User | None:
        """Return the user whose stored refresh token is exactly `token`.

        This is the store-membership half of refresh-token validation: a
        superseded or logged-out token matches nobody, however well signed.
        """
        if not token:
            return None
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.refresh_token == token)).fetchone()
        return _row_to_user(row) if row is not None else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> str:
        """Insert a new user and return its assigned id.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        user_id = str(uuid.uuid4())
        now = _now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                _users.insert().values(
                    id=user_id,
                    name=user.name.strip(),
                    email=normalize_email(user.email),
                    password_hash=user.password_hash,
                    role=user.role,
                    refresh_token=user.refresh_token,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        return user_id

    def update_user(self, user_id: str, **fields) -> bool:
        """Update mutable fields (name, email, role) on an existing user.

        Unknown field names raise ValueError rather than being ignored.
        Returns True if a row was updated, False if user_id was not found.
        May raise IntegrityError when email collides with another account.
        """
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)!r}")
        if "email" in fields:
            fields["email"] = normalize_email(fields["email"])
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update().where(_users.c.id == str(user_id)).values(**fields, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def set_refresh_token(self, user_id: str, token: str) -> bool:
        """Overwrite the stored refresh token. Any previous session is gone."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == str(user_id))
                .values(refresh_token=token, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def clear_refresh_token(self, user_id: str, expected: Optional[str] = None) -> bool:
        """Null the stored refresh token.

        With `expected`, the UPDATE only matches while the stored value is
        still that token; returns False if a newer login replaced it first.
        """
        clause = _users.c.id == str(user_id)
        if expected is not None:
            clause = clause & (_users.c.refresh_token == expected)
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(clause).values(refresh_token=None, updated_at=_now_iso()))
            conn.commit()
        return result.rowcount > 0

    def delete_user(self, user_id: str) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == str(user_id)))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Listing and counts
    # ------------------------------------------------------------------

    def count_admins(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_users).where(_users.c.role == Role.admin.value)
            ).scalar()
        return result or 0

    def has_admin(self) -> bool:
        return self.count_admins() > 0

    def _filters(self, role: Optional[str], search: Optional[str]) -> list:
        clauses = []
        if role:
            clauses.append(_users.c.role == role)
        if search:
            pattern = f"%{search.strip().lower()}%"
            clauses.append(or_(func.lower(_users.c.name).like(pattern), _users.c.email.like(pattern)))
        return clauses

    def list_users(
        self,
        page: int = 1,
        limit: int = 20,
        role: Optional[str] = None,
        search: Optional[str] = None,
    ) -> list[User]:
        """Return one page of users, newest first, optionally filtered by role or name/email substring."""
        query = _users.select().where(*self._filters(role, search)).order_by(_users.c.created_at.desc())
        query = query.offset((page - 1) * limit).limit(limit)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_user(r) for r in rows]

    def count_users(self, role: Optional[str] = None, search: Optional[str] = None) -> int:
        query = select(func.count()).select_from(_users).where(*self._filters(role, search))
        with self.engine.connect() as conn:
            return conn.execute(query).scalar() or 0

    def count_by_role(self) -> dict[str, int]:
        """Return {role: count} for every role that has at least one user."""
        with self.engine.connect() as conn:
            rows = conn.execute(select(_users.c.role, func.count()).group_by(_users.c.role)).fetchall()
        return {row[0]: row[1] for row in rows}

    def count_created_since(self, days: int) -> int:
        cutoff = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()
        with self.engine.connect() as conn:
            return (
                conn.execute(select(func.count()).select_from(_users).where(_users.c.created_at >= cutoff)).scalar()
                or 0
            )

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        password_hash=row.password_hash,
        role=row.role,
        refresh_token=row.refresh_token,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
