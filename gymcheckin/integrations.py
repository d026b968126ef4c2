# gymcheckin/integrations.py
"""
Third-party integrations for the check-in service
- LINE Login profile API: resolves a bearer token to a user identity
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import requests

from gymcheckin.errors import IdentityProviderError, Unauthenticated

LINE_PROFILE_URL = "https://api.line.me/v2/profile"

DEVELOPMENT_TOKEN = "mock-access-token-for-development"
DEVELOPMENT_USER_ID = "U_dev_user_12345"
DEVELOPMENT_DISPLAY_NAME = "Development User"


@dataclass(frozen=True)
class Identity:
    user_id: str
    display_name: str
    picture_url: Optional[str] = None


class LineIdentityProvider:
    """
    Resolve LIFF access tokens through the LINE profile endpoint.

    With `allow_development_bypass` the fixed development token resolves to
    a fixed user without any network call; keep it off in production.
    """

    def __init__(
        self,
        allow_development_bypass: bool = False,
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
        profile_url: str = LINE_PROFILE_URL,
    ):
        self.allow_development_bypass = allow_development_bypass
        self.timeout = timeout
        self.session = session or requests.Session()
        self.profile_url = profile_url

    def resolve(self, token: Optional[str]) -> Identity:
        if not token:
            raise Unauthenticated()

        if self.allow_development_bypass and token == DEVELOPMENT_TOKEN:
            return Identity(user_id=DEVELOPMENT_USER_ID, display_name=DEVELOPMENT_DISPLAY_NAME)

        try:
            response = self.session.get(
                self.profile_url,
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            print(f"[AUTH] LINE profile lookup failed: {type(e).__name__}: {str(e)[:160]}")
            raise IdentityProviderError()

        if 400 <= response.status_code < 500:
            raise Unauthenticated()
        if not response.ok:
            print(f"[AUTH] LINE profile lookup returned HTTP {response.status_code}")
            raise IdentityProviderError()

        try:
            profile = response.json()
            return Identity(
                user_id=str(profile["userId"]),
                display_name=str(profile.get("displayName") or ""),
                picture_url=profile.get("pictureUrl"),
            )
        except (ValueError, KeyError, TypeError):
            print("[AUTH] LINE profile response missing userId")
            raise IdentityProviderError()
