"""
OAuth 2.0 authorization-code client for the supported identity providers.

Each login attempt goes through three blocking steps:
- redirect the browser to the provider's authorize URL
- exchange the returned code for an access token
- fetch (and for GitHub, join) the provider's profile data

Provider-side problems are returned as `OAuthFailure` values instead of raised, because
providers report errors such as an expired code in the same response channel as success.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union
from urllib.parse import urlencode

import requests

from wetube.auth.config import AuthConfig
from wetube.auth.models import OAuthFailure, OAuthToken, ProviderProfile

logger = logging.getLogger(__name__)

GITHUB_AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
GITHUB_TOKEN_URL = "https://github.com/login/oauth/access_token"
GITHUB_API_URL = "https://api.github.com"

KAKAO_AUTHORIZE_URL = "https://kauth.kakao.com/oauth/authorize"
KAKAO_TOKEN_URL = "https://kauth.kakao.com/oauth/token"
KAKAO_PROFILE_URL = "https://kapi.kakao.com/v2/user/me"

PROVIDERS = ("github", "kakao")


@dataclass(frozen=True)
class ProviderConfig:
    name: str
    client_id: str
    client_secret: Optional[str]
    authorize_url: str
    token_url: str
    profile_url: str
    scope: str
    emails_url: Optional[str] = None
    redirect_uri: Optional[str] = None
    extra_authorize_params: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)
    extra_token_params: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)
    timeout_seconds: float = 10.0


def github_provider(cfg: AuthConfig) -> ProviderConfig:
    if not cfg.github_enabled:
        raise ValueError("GitHub OAuth not configured (GH_CLIENT/GH_SECRET)")
    return ProviderConfig(
        name="github",
        client_id=cfg.github_client_id or "",
        client_secret=cfg.github_client_secret,
        authorize_url=GITHUB_AUTHORIZE_URL,
        token_url=GITHUB_TOKEN_URL,
        profile_url=f"{GITHUB_API_URL}/user",
        emails_url=f"{GITHUB_API_URL}/user/emails",
        scope="read:user user:email",
        extra_authorize_params=(("allow_signup", "false"),),
        timeout_seconds=cfg.oauth_http_timeout_seconds,
    )


def kakao_provider(cfg: AuthConfig) -> ProviderConfig:
    if not cfg.kakao_enabled:
        raise ValueError("Kakao OAuth not configured (KAKAO_CLIENT and a redirect URI)")
    return ProviderConfig(
        name="kakao",
        client_id=cfg.kakao_client_id or "",
        client_secret=cfg.kakao_client_secret,
        authorize_url=KAKAO_AUTHORIZE_URL,
        token_url=KAKAO_TOKEN_URL,
        profile_url=KAKAO_PROFILE_URL,
        scope="profile_nickname,profile_image,account_email",
        redirect_uri=cfg.kakao_redirect_uri,
        extra_authorize_params=(("response_type", "code"),),
        extra_token_params=(("grant_type", "authorization_code"),),
        timeout_seconds=cfg.oauth_http_timeout_seconds,
    )


def get_provider(cfg: AuthConfig, name: str) -> ProviderConfig:
    key = (name or "").strip().lower()
    if key == "github":
        return github_provider(cfg)
    if key == "kakao":
        return kakao_provider(cfg)
    raise ValueError(f"Unsupported provider: {name}")


def build_authorize_url(provider: ProviderConfig) -> str:
    """
    Build the provider authorize URL.

    Parameter order is fixed (client_id, redirect_uri, provider extras, scope) so the
    same provider config always yields the same URL.
    """
    params: Dict[str, str] = {"client_id": provider.client_id}
    if provider.redirect_uri:
        params["redirect_uri"] = provider.redirect_uri
    for k, v in provider.extra_authorize_params:
        params[k] = v
    params["scope"] = provider.scope
    return f"{provider.authorize_url}?{urlencode(params)}"


def exchange_code_for_token(provider: ProviderConfig, code: str) -> Union[OAuthToken, OAuthFailure]:
    """
    Exchange an authorization code for an access token.

    A body without `access_token` is a failure, whatever the HTTP status.
    """
    if not (code or "").strip():
        return OAuthFailure(provider=provider.name, reason="missing authorization code")

    payload: Dict[str, str] = {}
    for k, v in provider.extra_token_params:
        payload[k] = v
    payload["client_id"] = provider.client_id
    if provider.client_secret:
        payload["client_secret"] = provider.client_secret
    if provider.redirect_uri:
        payload["redirect_uri"] = provider.redirect_uri
    payload["code"] = code.strip()

    try:
        r = requests.post(
            provider.token_url,
            data=payload,
            headers={"Accept": "application/json"},
            timeout=provider.timeout_seconds,
        )
    except requests.RequestException as e:
        logger.warning("OAuth token exchange failed (provider=%s): %s", provider.name, type(e).__name__)
        return OAuthFailure(provider=provider.name, reason="token endpoint unreachable")

    data = _json_body(r)
    if not isinstance(data, dict):
        return OAuthFailure(provider=provider.name, reason=f"invalid token response (status={r.status_code})")

    access_token = str(data.get("access_token") or "").strip()
    if not access_token:
        # e.g. GitHub `bad_verification_code`, Kakao `invalid_grant` for an expired code.
        err = str(data.get("error") or "").strip() or "no access_token"
        logger.info("OAuth token exchange rejected (provider=%s): %s", provider.name, err)
        return OAuthFailure(provider=provider.name, reason=f"token exchange rejected: {err}")

    return OAuthToken(
        access_token=access_token,
        token_type=str(data.get("token_type") or "") or None,
        scope=str(data.get("scope") or "") or None,
        raw=data,
    )


def fetch_profile(provider: ProviderConfig, token: OAuthToken) -> Union[ProviderProfile, OAuthFailure]:
    if provider.name == "github":
        return _fetch_github_profile(provider, token)
    if provider.name == "kakao":
        return _fetch_kakao_profile(provider, token)
    return OAuthFailure(provider=provider.name, reason="unsupported provider")


def _json_body(r: Any) -> Any:
    try:
        return r.json()
    except ValueError:
        return None


def _get_json(provider: ProviderConfig, url: str, headers: Dict[str, str]) -> Union[Any, OAuthFailure]:
    try:
        r = requests.get(url, headers=headers, timeout=provider.timeout_seconds)
    except requests.RequestException as e:
        logger.warning("OAuth profile request failed (provider=%s): %s", provider.name, type(e).__name__)
        return OAuthFailure(provider=provider.name, reason="profile endpoint unreachable")
    if r.status_code >= 400:
        return OAuthFailure(provider=provider.name, reason=f"profile request failed (status={r.status_code})")
    data = _json_body(r)
    if data is None:
        return OAuthFailure(provider=provider.name, reason="invalid profile response")
    return data


def select_github_email(emails: List[Dict[str, Any]]) -> Optional[str]:
    """Return the primary, verified address from GitHub's `/user/emails` list."""
    for entry in emails:
        if not isinstance(entry, dict):
            continue
        if entry.get("primary") is True and entry.get("verified") is True:
            email = str(entry.get("email") or "").strip()
            if email:
                return email
    return None


def _fetch_github_profile(provider: ProviderConfig, token: OAuthToken) -> Union[ProviderProfile, OAuthFailure]:
    # `/user` does not reliably expose a verified email, so `/user/emails` is joined in.
    headers = {"Authorization": f"token {token.access_token}", "Accept": "application/json"}

    user_data = _get_json(provider, provider.profile_url, headers)
    if isinstance(user_data, OAuthFailure):
        return user_data
    if not isinstance(user_data, dict):
        return OAuthFailure(provider=provider.name, reason="invalid profile response")

    email_data = _get_json(provider, provider.emails_url or f"{GITHUB_API_URL}/user/emails", headers)
    if isinstance(email_data, OAuthFailure):
        return email_data
    if not isinstance(email_data, list):
        return OAuthFailure(provider=provider.name, reason="invalid emails response")

    login = str(user_data.get("login") or "").strip() or None
    return ProviderProfile(
        provider=provider.name,
        name=str(user_data.get("name") or "").strip() or login,
        handle=login,
        avatar_url=str(user_data.get("avatar_url") or "").strip() or None,
        email=select_github_email(email_data),
        location=str(user_data.get("location") or "").strip() or None,
    )


def _fetch_kakao_profile(provider: ProviderConfig, token: OAuthToken) -> Union[ProviderProfile, OAuthFailure]:
    headers = {"Authorization": f"Bearer {token.access_token}", "Accept": "application/json"}

    payload = _get_json(provider, provider.profile_url, headers)
    if isinstance(payload, OAuthFailure):
        return payload
    if not isinstance(payload, dict):
        return OAuthFailure(provider=provider.name, reason="invalid profile response")

    account = payload.get("kakao_account") or {}
    if not isinstance(account, dict):
        account = {}
    profile = account.get("profile") or {}
    if not isinstance(profile, dict):
        profile = {}

    email: Optional[str] = None
    if account.get("is_email_valid") is True and account.get("is_email_verified") is True:
        email = str(account.get("email") or "").strip() or None

    nickname = str(profile.get("nickname") or "").strip() or None
    return ProviderProfile(
        provider=provider.name,
        name=nickname,
        handle=nickname,
        avatar_url=str(profile.get("profile_image_url") or "").strip() or None,
        email=email,
    )
