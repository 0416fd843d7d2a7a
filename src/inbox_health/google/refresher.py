"""Refresh-token exchange with write-back to the credential store."""

import logging

from inbox_health.exceptions import RefreshFailed, TokenError, UserNotFound
from inbox_health.google.oauth import GoogleOAuth
from inbox_health.store import CredentialStore

logger = logging.getLogger(__name__)


class TokenRefresher:
    """Mints a new access token for a user and persists it.

    The new token is written to the store before it is returned, so the
    next request for the same user doesn't refresh again.
    """

    def __init__(self, oauth: GoogleOAuth, store: CredentialStore):
        self.oauth = oauth
        self.store = store
        self.refresh_count = 0

    def refresh(self, user_id: str, refresh_token: str) -> str:
        """Exchange ``refresh_token`` and store the result.

        Args:
            user_id: Owner of the refresh token.
            refresh_token: Long-lived credential to exchange.

        Returns:
            The new access token.

        Raises:
            RefreshFailed: If Google rejects the grant, the request fails, or
                the user no longer exists.
        """
        try:
            token = self.oauth.refresh_access_token(refresh_token)
        except TokenError as e:
            logger.error(f"Token refresh failed for user {user_id}: {e}")
            raise RefreshFailed(user_id, str(e)) from e

        access_token = token["access_token"]
        rotated = token.get("refresh_token")
        if rotated == refresh_token:
            rotated = None

        try:
            self.store.update_tokens(user_id, access_token, refresh_token=rotated)
        except UserNotFound as e:
            raise RefreshFailed(user_id, "user no longer exists") from e

        self.refresh_count += 1
        logger.info(f"Refreshed access token for user {user_id} (rotated={bool(rotated)})")
        return access_token
