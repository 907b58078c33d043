from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Sequence

import psycopg
from psycopg import errors as pg_errors

from wetube.auth.errors import ConflictError
from wetube.auth.models import User
from wetube.store.base import DUPLICATE_MESSAGE, check_fields, check_required

logger = logging.getLogger(__name__)

_COLUMNS = "id, name, username, email, password_hash, social_only, avatar_url, location"

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS users (
  id text PRIMARY KEY,
  name text NOT NULL,
  username text NOT NULL UNIQUE,
  email text NOT NULL UNIQUE,
  password_hash text NOT NULL DEFAULT '',
  social_only boolean NOT NULL DEFAULT FALSE,
  avatar_url text,
  location text,
  created_at timestamptz NOT NULL DEFAULT now()
);
"""


def ensure_schema(conn: psycopg.Connection) -> None:
    """Create the users table (idempotent)."""
    with conn.cursor() as cur:
        cur.execute(SCHEMA_SQL)
    conn.commit()


def _row_to_user(row: Sequence[Any]) -> User:
    user_id, name, username, email, password_hash, social_only, avatar_url, location = row
    return User(
        id=str(user_id),
        name=name or "",
        username=username,
        email=email,
        password_hash=password_hash or "",
        social_only=bool(social_only),
        avatar_url=avatar_url,
        location=location,
    )


class PostgresUserStore:
    """
    User store backed by the `users` table.

    The UNIQUE constraints on `username` and `email` are the source of truth for
    uniqueness; a violation is reported as `ConflictError`.
    """

    def __init__(self, dsn: Optional[str] = None, *, connect: Optional[Callable[[], Any]] = None) -> None:
        if connect is None:
            if not dsn:
                raise ValueError("Postgres DSN is required")
            connect = lambda: psycopg.connect(dsn)  # noqa: E731
        self._connect = connect

    def _fetch_one(self, sql: str, params: Sequence[Any]) -> Optional[User]:
        conn = self._connect()
        try:
            with conn.cursor() as cur:
                cur.execute(sql, params)
                row = cur.fetchone()
            return _row_to_user(row) if row else None
        finally:
            conn.close()

    def get(self, user_id: str) -> Optional[User]:
        return self._fetch_one(f"SELECT {_COLUMNS} FROM users WHERE id = %s", (user_id,))

    def find_one(self, **criteria: Any) -> Optional[User]:
        check_fields(criteria)
        if not criteria:
            return None
        keys = sorted(criteria)
        where = " AND ".join(f"{k} = %s" for k in keys)
        return self._fetch_one(f"SELECT {_COLUMNS} FROM users WHERE {where} LIMIT 1", [criteria[k] for k in keys])

    def exists_any(self, **criteria: Any) -> bool:
        check_fields(criteria)
        if not criteria:
            return False
        keys = sorted(criteria)
        where = " OR ".join(f"{k} = %s" for k in keys)
        conn = self._connect()
        try:
            with conn.cursor() as cur:
                cur.execute(f"SELECT 1 FROM users WHERE {where} LIMIT 1", [criteria[k] for k in keys])
                return cur.fetchone() is not None
        finally:
            conn.close()

    def create(self, user: User) -> User:
        check_required(user)
        conn = self._connect()
        try:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    INSERT INTO users ({_COLUMNS})
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    RETURNING {_COLUMNS}
                    """,
                    (
                        user.id,
                        user.name,
                        user.username,
                        user.email,
                        user.password_hash,
                        user.social_only,
                        user.avatar_url,
                        user.location,
                    ),
                )
                row = cur.fetchone()
            conn.commit()
        except pg_errors.UniqueViolation as e:
            conn.rollback()
            logger.info("User insert rejected by unique constraint: %s", getattr(e.diag, "constraint_name", None))
            raise ConflictError(DUPLICATE_MESSAGE) from e
        finally:
            conn.close()

        if not row:
            raise ValueError("Failed to create user")
        return _row_to_user(row)

    def update(self, user_id: str, **fields: Any) -> Optional[User]:
        check_fields(fields)
        if "id" in fields:
            raise ValueError("User id is immutable")
        if not fields:
            return self.get(user_id)
        keys = sorted(fields)
        assignments = ", ".join(f"{k} = %s" for k in keys)
        conn = self._connect()
        try:
            with conn.cursor() as cur:
                cur.execute(
                    f"UPDATE users SET {assignments} WHERE id = %s RETURNING {_COLUMNS}",
                    [fields[k] for k in keys] + [user_id],
                )
                row = cur.fetchone()
            conn.commit()
        except pg_errors.UniqueViolation as e:
            conn.rollback()
            logger.info("User update rejected by unique constraint: %s", getattr(e.diag, "constraint_name", None))
            raise ConflictError(DUPLICATE_MESSAGE) from e
        finally:
            conn.close()
        return _row_to_user(row) if row else None
