from __future__ import annotations

import os
import re

_USER_ID_RE = re.compile(r"[0-9a-f]{24}")


def new_user_id() -> str:
    """24 lowercase hex characters (12 random bytes)."""
    return os.urandom(12).hex()


def is_user_id(value: str | None) -> bool:
    return bool(value) and bool(_USER_ID_RE.fullmatch(value or ""))


def clean_text(value: object) -> str:
    """Strip form input; None becomes an empty string."""
    if value is None:
        return ""
    return str(value).strip()


def optional_text(value: object) -> str | None:
    v = clean_text(value)
    return v or None
