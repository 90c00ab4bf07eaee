"""
Google OAuth 2.0 authorization-code flow.

The requested account role rides through Google's opaque state parameter
as "<role>:<nonce>" so the callback knows what kind of account to create.
"""
import logging
import uuid
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode

import requests

from app.core import config
from app.core.errors import NotConfigured, Unauthorized, UpstreamError

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"

USER_TYPES = ("candidate", "vendor")


@dataclass
class OAuthProfile:
    """Identity returned by the provider after a successful code exchange."""
    provider_id: str
    email: Optional[str]
    first_name: Optional[str] = None
    last_name: Optional[str] = None


def build_state(user_type: Optional[str]) -> str:
    role = "vendor" if user_type == "vendor" else "candidate"
    return f"{role}:{uuid.uuid4()}"


def role_from_state(state: Optional[str]) -> str:
    return "vendor" if (state or "").startswith("vendor") else "candidate"


class GoogleOAuthClient:
    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        timeout: int = 15,
    ):
        self.client_id = client_id if client_id is not None else config.GOOGLE_CLIENT_ID
        self.client_secret = client_secret if client_secret is not None else config.GOOGLE_CLIENT_SECRET
        self.redirect_uri = redirect_uri or config.GOOGLE_CALLBACK_URL
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def authorization_url(self, user_type: Optional[str]) -> str:
        if not self.enabled:
            raise NotConfigured("Google OAuth is not configured on this server.")
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": "openid email profile",
            "state": build_state(user_type),
            "prompt": "select_account",
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    def fetch_profile(self, code: str) -> OAuthProfile:
        """Exchange an authorization code and load the user's Google profile."""
        if not self.enabled:
            raise NotConfigured("Google OAuth is not configured on this server.")
        if not code:
            raise Unauthorized("Google authentication failed")

        try:
            token_resp = requests.post(
                GOOGLE_TOKEN_URL,
                data={
                    "code": code,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "redirect_uri": self.redirect_uri,
                    "grant_type": "authorization_code",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Google token exchange failed: {e}")
            raise UpstreamError("Google authentication unavailable")
        if token_resp.status_code != 200:
            logger.warning(f"Google token exchange rejected: status={token_resp.status_code}")
            raise Unauthorized("Google authentication failed")

        access_token = token_resp.json().get("access_token")
        if not access_token:
            raise Unauthorized("Google authentication failed")

        try:
            info_resp = requests.get(
                GOOGLE_USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Google userinfo request failed: {e}")
            raise UpstreamError("Google authentication unavailable")
        if info_resp.status_code != 200:
            raise Unauthorized("Google authentication failed")

        info = info_resp.json()
        if not info.get("sub"):
            raise Unauthorized("Google authentication failed")
        return OAuthProfile(
            provider_id=str(info["sub"]),
            email=info.get("email"),
            first_name=info.get("given_name"),
            last_name=info.get("family_name"),
        )
