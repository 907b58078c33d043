from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class User:
    """Local account record, created by signup or by a first OAuth login."""

    id: str  # 24 lowercase hex chars
    name: str
    username: str
    email: str
    password_hash: str = ""  # Empty for social-only accounts
    social_only: bool = False
    avatar_url: Optional[str] = None
    location: Optional[str] = None

    def snapshot(self) -> Dict[str, Any]:
        """
        Copy of the public fields, suitable for a session or a JSON response.

        The password hash is never included.
        """
        return {
            "id": self.id,
            "name": self.name,
            "username": self.username,
            "email": self.email,
            "socialOnly": self.social_only,
            "avatarUrl": self.avatar_url,
            "location": self.location,
        }


@dataclass(frozen=True)
class ProviderProfile:
    """Merged profile returned by an OAuth provider."""

    provider: str  # github|kakao
    name: Optional[str]
    handle: Optional[str]
    avatar_url: Optional[str]
    email: Optional[str]  # Verified primary email, or None when the provider has none
    location: Optional[str] = None


@dataclass(frozen=True)
class OAuthToken:
    access_token: str
    token_type: Optional[str] = None
    scope: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class OAuthFailure:
    """Terminal failure of one OAuth login attempt (token exchange or profile fetch)."""

    provider: str
    reason: str
