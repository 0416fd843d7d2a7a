"""Google OAuth flow and token refresh."""

from inbox_health.google.oauth import ADMIN_SCOPES, ONBOARDING_SCOPES, SCOPES, GoogleOAuth
from inbox_health.google.refresher import TokenRefresher

__all__ = [
    "GoogleOAuth",
    "TokenRefresher",
    "SCOPES",
    "ONBOARDING_SCOPES",
    "ADMIN_SCOPES",
]
