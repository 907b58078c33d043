from __future__ import annotations

import bcrypt

DEFAULT_ROUNDS = 12


def hash_password(password: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """
    Hash password with bcrypt.

    Args:
        password: Plain text password
        rounds: bcrypt cost factor (default 12)

    Returns:
        Bcrypt hash string
    """
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash with constant-time comparison.

    Social-only accounts carry an empty hash; those never verify, whatever the
    submitted password is.

    Args:
        password: Plain text password
        password_hash: Bcrypt hash (may be empty)

    Returns:
        True if password matches, False otherwise
    """
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw((password or "").encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Invalid hash format
        return False
