"""Google OAuth management using Authlib.

This module provides the OAuth 2.0 web flow used to onboard users:
- Authorization URL creation with offline access (refresh tokens)
- Authorization-code exchange and OpenID Connect userinfo lookup
- Refresh-token exchange for a new access token

Tokens are not stored here. The callback persists them through the
credential store, and the TokenRefresher writes refreshed tokens back.
"""

import logging
import secrets
from typing import Any

import requests
from authlib.integrations.base_client import OAuthError
from authlib.integrations.requests_client import OAuth2Session
from authlib.oauth2 import OAuth2Error

from inbox_health.config import Settings, get_settings
from inbox_health.exceptions import CredentialsNotFoundError, TokenError

logger = logging.getLogger(__name__)


# Google OAuth scopes used by the dashboard
SCOPES = {
    "openid": "openid",
    "email": "https://www.googleapis.com/auth/userinfo.email",
    "profile": "https://www.googleapis.com/auth/userinfo.profile",
    "gmail_readonly": "https://www.googleapis.com/auth/gmail.readonly",
    "gmail_send": "https://www.googleapis.com/auth/gmail.send",
    "directory_readonly": "https://www.googleapis.com/auth/admin.directory.user.readonly",
}

# Mailbox owners grant read access so their spam folder can be inspected
ONBOARDING_SCOPES = ["openid", "email", "profile", "gmail_send", "gmail_readonly"]

# Administrators additionally read the Workspace user directory
ADMIN_SCOPES = ONBOARDING_SCOPES + ["directory_readonly"]


class GoogleOAuth:
    """Google OAuth web flow using Authlib.

    Example:
        >>> auth = GoogleOAuth()
        >>> url, state = auth.get_authorization_url()
        >>> # ... user consents, Google redirects back with ?code=...
        >>> token = auth.fetch_token(code)
        >>> userinfo = auth.fetch_userinfo(token)
    """

    AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

    def __init__(
        self,
        scopes: list[str] | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        redirect_uri: str | None = None,
        settings: Settings | None = None,
    ):
        """Initialize Google OAuth.

        Args:
            scopes: List of scope names (e.g., ["email", "gmail_readonly"]) or full URLs.
                   If None, defaults to ONBOARDING_SCOPES.
            client_id: OAuth client ID (read from GOOGLE_CLIENT_ID if not provided).
            client_secret: OAuth client secret (read from GOOGLE_CLIENT_SECRET if not provided).
            redirect_uri: Callback URL (read from GOOGLE_REDIRECT_URI if not provided).
            settings: Settings to read defaults from. Defaults to get_settings().

        Raises:
            CredentialsNotFoundError: If the client ID or secret is missing.
            ValueError: If a scope name is unknown.
        """
        self.required_scopes = self._resolve_scopes(scopes or ONBOARDING_SCOPES)

        if not client_id or not client_secret or not redirect_uri:
            settings = settings or get_settings()
            client_id = client_id or settings.google_client_id
            client_secret = client_secret or settings.google_client_secret
            redirect_uri = redirect_uri or settings.google_redirect_uri

        missing = [
            name
            for name, value in (
                ("GOOGLE_CLIENT_ID", client_id),
                ("GOOGLE_CLIENT_SECRET", client_secret),
            )
            if not value
        ]
        if missing:
            raise CredentialsNotFoundError(missing)

        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri

    def _resolve_scopes(self, scopes: list[str]) -> list[str]:
        """Resolve scope names to full URLs."""
        resolved = []
        for scope in scopes:
            if scope.startswith("https://"):
                resolved.append(scope)
            elif scope in SCOPES:
                resolved.append(SCOPES[scope])
            else:
                raise ValueError(
                    f"Unknown scope: {scope}. Use full URL or one of: {list(SCOPES.keys())}"
                )
        return resolved

    def _session(self, token: dict[str, Any] | None = None) -> OAuth2Session:
        """Create an OAuth2Session for a single exchange."""
        return OAuth2Session(
            client_id=self.client_id,
            client_secret=self.client_secret,
            scope=" ".join(self.required_scopes),
            redirect_uri=self.redirect_uri,
            token=token,
            token_endpoint=self.TOKEN_URL,
            token_endpoint_auth_method="client_secret_post",
        )

    def get_authorization_url(
        self,
        state: str | None = None,
        prompt_consent: bool = True,
    ) -> tuple[str, str]:
        """Start OAuth authorization flow.

        Args:
            state: Anti-forgery state. A random one is generated if None.
            prompt_consent: Force the consent screen so Google issues a refresh token.

        Returns:
            Tuple of (authorization URL, state).
        """
        state = state or secrets.token_hex(16)
        extra = {"prompt": "consent"} if prompt_consent else {}
        authorization_url, state = self._session().create_authorization_url(
            self.AUTHORIZE_URL,
            state=state,
            access_type="offline",
            include_granted_scopes="true",
            **extra,
        )
        return authorization_url, state

    def fetch_token(self, code: str) -> dict[str, Any]:
        """Exchange an authorization code for tokens.

        Args:
            code: The ``code`` query parameter from the OAuth callback.

        Returns:
            The token dict (access_token, refresh_token, expires_at, ...).

        Raises:
            TokenError: If the exchange fails.
        """
        try:
            token = self._session().fetch_token(self.TOKEN_URL, code=code)
        except (OAuth2Error, OAuthError, requests.RequestException) as e:
            raise TokenError(f"Failed to exchange authorization code: {e}") from e

        logger.info(f"Fetched token with scopes: {token.get('scope', '')}")
        return dict(token)

    def fetch_userinfo(self, token: dict[str, Any]) -> dict[str, Any]:
        """Get the OpenID Connect profile for a freshly issued token.

        Raises:
            TokenError: If the userinfo request fails.
        """
        try:
            response = self._session(token=token).get(self.USERINFO_URL, timeout=30)
            response.raise_for_status()
        except (OAuth2Error, OAuthError, requests.RequestException) as e:
            raise TokenError(f"Failed to fetch user info: {e}") from e
        return response.json()

    def refresh_access_token(self, refresh_token: str) -> dict[str, Any]:
        """Exchange a refresh token for a new access token.

        Returns:
            The token dict. ``refresh_token`` echoes the old one unless Google rotated it.

        Raises:
            TokenError: If Google rejects the grant or the request fails.
        """
        session = self._session(token={"refresh_token": refresh_token, "token_type": "Bearer"})
        try:
            token = session.refresh_token(self.TOKEN_URL, refresh_token=refresh_token)
        except (OAuth2Error, OAuthError, requests.RequestException) as e:
            raise TokenError(f"Failed to refresh token: {e}") from e

        if not token.get("access_token"):
            raise TokenError("Token response did not include an access token")
        return dict(token)
