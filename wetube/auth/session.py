from __future__ import annotations

import hashlib
import hmac
import json
from typing import Any, Dict, MutableMapping, Optional

from itsdangerous import BadSignature, BadTimeSignature, URLSafeTimedSerializer

from wetube.auth.config import AuthConfig
from wetube.auth.models import User

SESSION_SALT = "wetube-session-v1"

Session = MutableMapping[str, Any]


def credential_fingerprint(user: User) -> str:
    """
    Short digest of the user's credential state.

    Changes whenever the password hash changes, so sessions issued before a password
    change stop matching the stored record.
    """
    raw = f"{user.id}:{user.password_hash}".encode("utf-8")
    return hashlib.sha256(raw).hexdigest()[:32]


def establish(session: Session, user: User) -> None:
    """Mark the session as logged in and store a copy of the user's public fields."""
    session["logged_in"] = True
    session["user"] = user.snapshot()
    session["credential"] = credential_fingerprint(user)


def refresh(session: Session, user: User) -> None:
    """Replace the stored user copy after the record changed (e.g. profile edit)."""
    session["user"] = user.snapshot()
    session["credential"] = credential_fingerprint(user)


def destroy(session: Session) -> None:
    session.clear()


def is_logged_in(session: Optional[Session]) -> bool:
    return bool(session) and session.get("logged_in") is True and isinstance(session.get("user"), dict)


def current_user_id(session: Optional[Session]) -> Optional[str]:
    if not is_logged_in(session):
        return None
    user_id = str(session["user"].get("id") or "").strip()  # type: ignore[index]
    return user_id or None


def matches_user(session: Optional[Session], user: Optional[User]) -> bool:
    """True if the session was issued for `user` in its current credential state."""
    if user is None or current_user_id(session) != user.id:
        return False
    stored = str(session.get("credential") or "")  # type: ignore[union-attr]
    return hmac.compare_digest(stored, credential_fingerprint(user))


def session_cookie_name(cfg: AuthConfig) -> str:
    # `__Host-` requires Secure + Path=/ + no Domain; browsers may reject it on HTTP.
    return "__Host-wetube_session" if cfg.cookie_secure else "wetube_session"


def _serializer(cfg: AuthConfig) -> Optional[URLSafeTimedSerializer]:
    if not cfg.session_secret:
        return None
    return URLSafeTimedSerializer(secret_key=cfg.session_secret, salt=SESSION_SALT)


def encode_session(cfg: AuthConfig, session: Session) -> Optional[str]:
    s = _serializer(cfg)
    if s is None:
        return None
    # Keep cookie small and non-sensitive (no password hash, no access tokens).
    raw = json.dumps(dict(session), separators=(",", ":"), sort_keys=True)
    return s.dumps(raw)


def decode_session(cfg: AuthConfig, value: str | None) -> Dict[str, Any]:
    """Return the session stored in a cookie value; invalid or expired cookies give an empty session."""
    if not value:
        return {}
    s = _serializer(cfg)
    if s is None:
        return {}
    try:
        raw = s.loads(value, max_age=cfg.session_ttl_seconds)
        data = json.loads(raw)
    except (BadSignature, BadTimeSignature, ValueError):
        return {}
    if not isinstance(data, dict):
        return {}
    return data


def session_cookie_kwargs(cfg: AuthConfig, value: str = "", *, max_age: Optional[int] = None) -> dict:
    return {
        "key": session_cookie_name(cfg),
        "value": value,
        "max_age": cfg.session_ttl_seconds if max_age is None else max_age,
        "httponly": True,
        "secure": cfg.cookie_secure,
        "samesite": "lax",
        "path": "/",
    }


def clear_session_cookie_kwargs(cfg: AuthConfig) -> dict:
    return session_cookie_kwargs(cfg, "", max_age=0)
