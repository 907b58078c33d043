from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import Request

from wetube.auth.config import load_auth_config
from wetube.auth.session import current_user_id, decode_session, is_logged_in, matches_user, session_cookie_name
from wetube.store import get_user_store

logger = logging.getLogger(__name__)


def load_request_session(request: Request) -> Dict[str, Any]:
    """
    Read the session carried by the request's cookie.

    Missing, tampered or expired cookies all yield an empty (anonymous) session. A
    logged-in session is also checked against the stored user: if the user is gone or
    the password changed since the session was issued, it is treated as anonymous.
    """
    cfg = load_auth_config()
    session = decode_session(cfg, request.cookies.get(session_cookie_name(cfg)))
    if not is_logged_in(session):
        return session
    user_id = current_user_id(session)
    user = get_user_store().get(user_id) if user_id else None
    if not matches_user(session, user):
        logger.info("Rejected stale session (user=%s)", user_id)
        return {}
    return session
