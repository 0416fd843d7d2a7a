"""Inbox health exceptions."""


class InboxHealthError(Exception):
    """Base exception for inbox health errors."""

    pass


class CredentialsNotFoundError(InboxHealthError):
    """Raised when the OAuth client ID or secret is not configured."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(
            f"OAuth client credentials not configured: {', '.join(missing)}. "
            "Set them in the environment or the repo .env file."
        )


class TokenError(InboxHealthError):
    """Raised when there's an issue obtaining or using an OAuth token."""

    pass


class RefreshFailed(TokenError):
    """Raised when a refresh token cannot be exchanged for a new access token."""

    def __init__(self, user_id: str, reason: str):
        self.user_id = user_id
        self.reason = reason
        super().__init__(f"Failed to refresh access token for user {user_id}: {reason}")


class UserNotFound(InboxHealthError):
    """Raised when a user record does not exist."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


class TagNotFound(InboxHealthError):
    """Raised when a tag record does not exist."""

    def __init__(self, tag_id: str):
        self.tag_id = tag_id
        super().__init__(f"Tag not found: {tag_id}")
