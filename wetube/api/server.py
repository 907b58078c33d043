"""
HTTP surface for account login, signup and profile management.

Local errors come back as 400/404 JSON bodies with an `errorMessage`; OAuth failures of
any kind redirect to /login without a message.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, ConfigDict, Field

from wetube.auth.config import AuthConfig, load_auth_config
from wetube.auth.deps import load_request_session
from wetube.auth.errors import AccountError, OAuthIdentityError
from wetube.auth.models import OAuthFailure
from wetube.auth.oauth import build_authorize_url, exchange_code_for_token, fetch_profile, get_provider
from wetube.auth.reconcile import (
    change_password,
    create_local_identity,
    get_profile,
    reconcile_local_identity,
    reconcile_oauth_identity,
    update_profile,
)
from wetube.auth.session import (
    clear_session_cookie_kwargs,
    current_user_id,
    destroy,
    encode_session,
    establish,
    is_logged_in,
    refresh,
    session_cookie_kwargs,
)
from wetube.store import get_user_store

logger = logging.getLogger(__name__)

app = FastAPI(title="wetube accounts")

_LOGGED_IN_ONLY = ("/users/logout", "/users/edit", "/users/change-password")
_PUBLIC_ONLY = (
    "/join",
    "/login",
    "/users/github/start",
    "/users/github/finish",
    "/users/kakao/start",
    "/users/kakao/finish",
)


class JoinForm(BaseModel):
    name: str = ""
    username: str = ""
    email: str = ""
    password: str = ""
    password2: str = ""
    location: Optional[str] = None


class LoginForm(BaseModel):
    username: str = ""
    password: str = ""


class EditForm(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    email: str = ""
    username: str = ""
    location: Optional[str] = None
    avatar_url: Optional[str] = Field(default=None, alias="avatarUrl")


class ChangePasswordForm(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    old: str = ""
    new_password: str = Field(default="", alias="newPassword")
    new_password_confirmation: str = Field(default="", alias="newPasswordConfirmation")


def _redirect(url: str) -> RedirectResponse:
    resp = RedirectResponse(url=url, status_code=302)
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _store_session(resp, cfg: AuthConfig, session: Dict[str, Any]):
    """Write the session cookie, or clear it when the session is empty."""
    if not session:
        resp.set_cookie(**clear_session_cookie_kwargs(cfg))
        return resp
    value = encode_session(cfg, session)
    if not value:
        raise HTTPException(status_code=500, detail="Session signing is not configured (AUTH_SESSION_SECRET)")
    resp.set_cookie(**session_cookie_kwargs(cfg, value))
    return resp


def _session(request: Request) -> Dict[str, Any]:
    return getattr(request.state, "session", None) or {}


@app.exception_handler(AccountError)
async def _account_error_handler(request: Request, exc: AccountError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"errorMessage": exc.message})


@app.middleware("http")
async def session_guard(request: Request, call_next):
    """Load the session and apply logged-in-only / public-only route guards."""
    start_time = time.time()
    path = request.url.path or ""
    try:
        session = load_request_session(request)
        request.state.session = session
        logged_in = is_logged_in(session)

        if path in _LOGGED_IN_ONLY and not logged_in:
            response = _redirect("/login")
        elif path in _PUBLIC_ONLY and logged_in:
            response = _redirect("/")
        else:
            response = await call_next(request)

        process_time = time.time() - start_time
        logger.debug("%s %s - %d (%.3fs)", request.method, path, response.status_code, process_time)
        return response
    except Exception as e:
        process_time = time.time() - start_time
        logger.exception("%s %s - ERROR after %.3fs: %s", request.method, path, process_time, str(e))
        raise


@app.get("/healthz")
def healthz() -> Dict[str, Any]:
    return {"ok": True}


@app.post("/join")
def post_join(form: JoinForm):
    cfg = load_auth_config()
    create_local_identity(
        get_user_store(),
        name=form.name,
        username=form.username,
        email=form.email,
        password=form.password,
        password2=form.password2,
        location=form.location,
        rounds=cfg.bcrypt_rounds,
    )
    return _redirect("/login")


@app.post("/login")
def post_login(request: Request, form: LoginForm):
    cfg = load_auth_config()
    user = reconcile_local_identity(get_user_store(), form.username, form.password)
    session = _session(request)
    establish(session, user)
    return _store_session(_redirect("/"), cfg, session)


def _start_oauth(name: str) -> RedirectResponse:
    cfg = load_auth_config()
    try:
        provider = get_provider(cfg, name)
    except ValueError:
        raise HTTPException(status_code=403, detail=f"{name} auth is not enabled")
    return _redirect(build_authorize_url(provider))


def _finish_oauth(request: Request, name: str, code: Optional[str]) -> RedirectResponse:
    cfg = load_auth_config()
    try:
        provider = get_provider(cfg, name)
    except ValueError:
        raise HTTPException(status_code=403, detail=f"{name} auth is not enabled")

    token = exchange_code_for_token(provider, code or "")
    if isinstance(token, OAuthFailure):
        logger.info("OAuth login failed (provider=%s): %s", name, token.reason)
        return _redirect("/login")

    profile = fetch_profile(provider, token)
    if isinstance(profile, OAuthFailure):
        logger.info("OAuth login failed (provider=%s): %s", name, profile.reason)
        return _redirect("/login")

    try:
        user = reconcile_oauth_identity(get_user_store(), profile)
    except OAuthIdentityError as e:
        logger.info("OAuth login failed (provider=%s): %s", name, e.message)
        return _redirect("/login")

    session = _session(request)
    establish(session, user)
    return _store_session(_redirect("/"), cfg, session)


@app.get("/users/github/start")
def start_github_login():
    return _start_oauth("github")


@app.get("/users/github/finish")
def finish_github_login(request: Request, code: Optional[str] = Query(None)):
    return _finish_oauth(request, "github", code)


@app.get("/users/kakao/start")
def start_kakao_login():
    return _start_oauth("kakao")


@app.get("/users/kakao/finish")
def finish_kakao_login(request: Request, code: Optional[str] = Query(None)):
    return _finish_oauth(request, "kakao", code)


@app.get("/users/logout")
def logout(request: Request):
    cfg = load_auth_config()
    session = _session(request)
    destroy(session)
    return _store_session(_redirect("/"), cfg, session)


@app.get("/users/edit")
def get_edit(request: Request) -> Dict[str, Any]:
    return {"pageTitle": "Edit Profile", "user": _session(request).get("user")}


@app.post("/users/edit")
def post_edit(request: Request, form: EditForm):
    cfg = load_auth_config()
    session = _session(request)
    updated = update_profile(
        get_user_store(),
        current_user_id(session) or "",
        name=form.name,
        email=form.email,
        username=form.username,
        location=form.location,
        avatar_url=form.avatar_url,
    )
    refresh(session, updated)
    return _store_session(_redirect("/users/edit"), cfg, session)


@app.get("/users/change-password")
def get_change_password(request: Request):
    user = _session(request).get("user") or {}
    if user.get("socialOnly") is True:
        return _redirect("/")
    return {"pageTitle": "Change Password"}


@app.post("/users/change-password")
def post_change_password(request: Request, form: ChangePasswordForm):
    cfg = load_auth_config()
    session = _session(request)
    change_password(
        get_user_store(),
        current_user_id(session) or "",
        old=form.old,
        new_password=form.new_password,
        new_password_confirmation=form.new_password_confirmation,
        rounds=cfg.bcrypt_rounds,
    )
    # Force a fresh login with the new password.
    destroy(session)
    return _store_session(_redirect("/login"), cfg, session)


@app.get("/users/{user_id}")
def see_profile(user_id: str) -> Dict[str, Any]:
    user = get_profile(get_user_store(), user_id)
    return {"pageTitle": f"{user.name}'s Profile", "user": user.snapshot()}


def run(host: str = "0.0.0.0", port: int = 4000) -> None:
    import uvicorn

    level_name = (os.getenv("LOG_LEVEL", "") or "info").strip().lower()
    if level_name not in ("critical", "error", "warning", "info", "debug"):
        level_name = "info"
    level = getattr(logging, level_name.upper())
    logging.basicConfig(level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    logger.setLevel(level)

    cfg = load_auth_config()
    logger.info(
        "Starting account server on %s:%d (env=%s github=%s kakao=%s)",
        host,
        port,
        cfg.app_env,
        cfg.github_enabled,
        cfg.kakao_enabled,
    )
    uvicorn.run(app, host=host, port=port, log_level=level_name)
