from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

DEFAULT_KAKAO_REDIRECT_URI_DEV = "http://localhost:4000/users/kakao/finish"


@dataclass(frozen=True)
class AuthConfig:
    # GitHub OAuth app
    github_client_id: Optional[str]
    github_client_secret: Optional[str]

    # Kakao OAuth app
    kakao_client_id: Optional[str]
    kakao_client_secret: Optional[str]
    kakao_redirect_uri: Optional[str]  # Already resolved for the current environment

    # Deployment environment (production|development)
    app_env: str

    # Session configuration
    public_base_url: Optional[str]
    session_secret: Optional[str]  # Required for session signing
    session_ttl_seconds: int
    cookie_secure: bool

    # Credential hashing / outbound calls
    bcrypt_rounds: int
    oauth_http_timeout_seconds: float

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def github_enabled(self) -> bool:
        return bool(self.github_client_id and self.github_client_secret)

    @property
    def kakao_enabled(self) -> bool:
        """Kakao needs a redirect URI in addition to the client id; the secret is optional."""
        return bool(self.kakao_client_id and self.kakao_redirect_uri)


def _env_str(name: str) -> Optional[str]:
    return (os.getenv(name, "") or "").strip() or None



def _env_flag(name: str) -> Optional[bool]:
    """True/False for recognised spellings, None when unset or unrecognised."""
    raw = (_env_str(name) or "").lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    return None


def _env_number(name: str, default: float) -> float:
    try:
        return float(_env_str(name) or default)
    except ValueError:
        return default

def _resolve_kakao_redirect_uri(app_env: str) -> Optional[str]:
    """
    Pick the Kakao redirect URI once, at config load time.

    An explicit KAKAO_REDIRECT_URI always wins; otherwise production uses
    KAKAO_REDIRECT_URI_PROD and everything else uses KAKAO_REDIRECT_URI_DEV.
    """
    explicit = _env_str("KAKAO_REDIRECT_URI")
    if explicit:
        return explicit
    if app_env == "production":
        return _env_str("KAKAO_REDIRECT_URI_PROD")
    return _env_str("KAKAO_REDIRECT_URI_DEV") or DEFAULT_KAKAO_REDIRECT_URI_DEV


@lru_cache(maxsize=1)
def load_auth_config() -> AuthConfig:
    """
    Load authentication configuration from environment variables.

    GitHub login is enabled when GH_CLIENT and GH_SECRET are set; Kakao login when
    KAKAO_CLIENT is set and a redirect URI resolves for the current APP_ENV.
    Local login is always available.
    """
    app_env = (os.getenv("APP_ENV", "") or "development").strip().lower() or "development"

    public_base_url = _env_str("AUTH_PUBLIC_BASE_URL")
    cookie_secure = _env_flag("AUTH_COOKIE_SECURE")
    if cookie_secure is None:
        # Secure cookies by default only when served over https.
        cookie_secure = (public_base_url or "").startswith("https://")

    # 12h default, never below a minute
    ttl = max(int(_env_number("AUTH_SESSION_TTL_SECONDS", 43200)), 60)

    # bcrypt rejects cost factors outside 4..31
    rounds = min(max(int(_env_number("AUTH_BCRYPT_ROUNDS", 12)), 4), 31)

    timeout = _env_number("OAUTH_HTTP_TIMEOUT_SECONDS", 10.0)
    if timeout <= 0:
        timeout = 10.0

    return AuthConfig(
        github_client_id=_env_str("GH_CLIENT"),
        github_client_secret=_env_str("GH_SECRET"),
        kakao_client_id=_env_str("KAKAO_CLIENT"),
        kakao_client_secret=_env_str("KAKAO_SECRET"),
        kakao_redirect_uri=_resolve_kakao_redirect_uri(app_env),
        app_env=app_env,
        public_base_url=public_base_url,
        session_secret=_env_str("AUTH_SESSION_SECRET"),
        session_ttl_seconds=ttl,
        cookie_secure=cookie_secure,
        bcrypt_rounds=rounds,
        oauth_http_timeout_seconds=timeout,
    )
