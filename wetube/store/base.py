from __future__ import annotations

import threading
from dataclasses import replace
from typing import Any, Dict, List, Optional, Protocol

from wetube.auth.errors import ConflictError, ValidationError
from wetube.auth.models import User

# Fields a lookup or an update may name.
USER_FIELDS = ("id", "name", "username", "email", "password_hash", "social_only", "avatar_url", "location")
UNIQUE_FIELDS = ("username", "email")
DUPLICATE_MESSAGE = "This username/email is already taken."


class UserStore(Protocol):
    """
    Persistent user store.

    Lookups match every given field exactly. Writes enforce uniqueness of `username`
    and `email` themselves and raise `ConflictError` on violation, so a stale existence
    check can never produce a duplicate.
    """

    def get(self, user_id: str) -> Optional[User]:
        ...

    def find_one(self, **criteria: Any) -> Optional[User]:
        ...

    def exists_any(self, **criteria: Any) -> bool:
        """True if any user matches at least one of the given field values."""
        ...

    def create(self, user: User) -> User:
        ...

    def update(self, user_id: str, **fields: Any) -> Optional[User]:
        """Apply `fields` and return the updated record (None if the id is unknown)."""
        ...


def check_fields(names: Any) -> None:
    unknown = [n for n in names if n not in USER_FIELDS]
    if unknown:
        raise ValueError(f"Unknown user field(s): {', '.join(sorted(unknown))}")


def check_required(user: User) -> None:
    missing = [f for f in ("name", "username", "email") if not (getattr(user, f) or "").strip()]
    if missing:
        raise ValidationError(f"User validation failed: {', '.join(missing)} required")


class InMemoryUserStore:
    """Thread-safe in-process store, used for local development and tests."""

    def __init__(self) -> None:
        self._users: Dict[str, User] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._users)

    def all(self) -> List[User]:
        with self._lock:
            return [replace(u) for u in self._users.values()]

    def get(self, user_id: str) -> Optional[User]:
        with self._lock:
            u = self._users.get(user_id)
            return replace(u) if u is not None else None

    def find_one(self, **criteria: Any) -> Optional[User]:
        check_fields(criteria)
        with self._lock:
            for u in self._users.values():
                if all(getattr(u, k) == v for k, v in criteria.items()):
                    return replace(u)
        return None

    def exists_any(self, **criteria: Any) -> bool:
        check_fields(criteria)
        with self._lock:
            for u in self._users.values():
                if any(getattr(u, k) == v for k, v in criteria.items()):
                    return True
        return False

    def _conflicts(self, candidate: User, *, exclude_id: Optional[str]) -> bool:
        for u in self._users.values():
            if u.id == exclude_id:
                continue
            if any(getattr(u, f) == getattr(candidate, f) for f in UNIQUE_FIELDS):
                return True
        return False

    def create(self, user: User) -> User:
        check_required(user)
        with self._lock:
            if user.id in self._users:
                raise ConflictError(f"User id already exists: {user.id}")
            if self._conflicts(user, exclude_id=None):
                raise ConflictError(DUPLICATE_MESSAGE)
            self._users[user.id] = replace(user)
            return replace(user)

    def update(self, user_id: str, **fields: Any) -> Optional[User]:
        check_fields(fields)
        if "id" in fields:
            raise ValueError("User id is immutable")
        with self._lock:
            current = self._users.get(user_id)
            if current is None:
                return None
            updated = replace(current, **fields)
            check_required(updated)
            if self._conflicts(updated, exclude_id=user_id):
                raise ConflictError(DUPLICATE_MESSAGE)
            self._users[user_id] = updated
            return replace(updated)
