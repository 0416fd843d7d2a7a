"""Mail query execution with one refresh-and-retry on an expired token.

Per user-query the flow is:

    FirstAttempt -> Success | Failure
    FirstAttempt -> (auth expired, has refresh token) -> Refreshing
                 -> RetryAttempt -> Success | Failure

There is never a second refresh or a third attempt, and no backoff.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from inbox_health.exceptions import RefreshFailed
from inbox_health.gmail import GmailClient
from inbox_health.google.refresher import TokenRefresher
from inbox_health.models import Credential, ErrorKind, MailResult

logger = logging.getLogger(__name__)

MailCall = Callable[[GmailClient], MailResult]


class MailQueryExecutor:
    """Runs Gmail calls for a user, refreshing the token once if it expired."""

    def __init__(
        self,
        refresher: TokenRefresher,
        client_factory: Callable[[str], GmailClient] = GmailClient,
    ):
        """
        Args:
            refresher: Used when the provider rejects the access token.
            client_factory: Builds a GmailClient from an access token.
        """
        self.refresher = refresher
        self.client_factory = client_factory

    def execute(self, credential: Credential, call: MailCall) -> MailResult:
        """Run ``call`` against the user's mailbox.

        On success after a refresh, ``credential.access_token`` holds the new
        token (already persisted by the refresher).

        Returns:
            The MailResult of the last attempt, or a NO_CREDENTIALS /
            REFRESH_FAILED failure.
        """
        if not credential.access_token:
            return MailResult.failure(ErrorKind.NO_CREDENTIALS, "user has no access token")

        result = call(self.client_factory(credential.access_token))
        if result.ok or result.error.kind is not ErrorKind.AUTH_EXPIRED:
            return result

        if not credential.refresh_token:
            logger.warning(f"Access token rejected for {credential.email} and no refresh token")
            return result

        logger.info(f"Access token rejected for {credential.email}, refreshing")
        try:
            new_token = self.refresher.refresh(credential.user_id, credential.refresh_token)
        except RefreshFailed as e:
            return MailResult.failure(ErrorKind.REFRESH_FAILED, e.reason)

        credential.access_token = new_token
        retried = call(self.client_factory(new_token))
        if not retried.ok:
            logger.warning(f"Retry after refresh failed for {credential.email}: {retried.error}")
        return retried

    def list_messages(self, credential: Credential, query: str, max_results: int) -> MailResult:
        """List messages matching ``query`` in the user's mailbox."""
        return self.execute(credential, lambda client: client.list_messages(query, max_results))

    def search(
        self,
        credential: Credential,
        query: str,
        max_results: int,
        include_body: bool = False,
    ) -> MailResult:
        """List and fetch messages matching ``query`` in the user's mailbox."""
        return self.execute(
            credential,
            lambda client: client.search(query, max_results, include_body=include_body),
        )
