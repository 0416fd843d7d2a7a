"""Sequential per-user aggregation over onboarded mailboxes."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from inbox_health.executor import MailQueryExecutor
from inbox_health.models import (
    Credential,
    HealthStatus,
    HealthSummary,
    QueryResult,
)

logger = logging.getLogger(__name__)


def spam_query(sender: str) -> str:
    return f"in:spam from:{sender}"


def inbox_query(sender: str) -> str:
    return f"-in:spam from:{sender}"


class Aggregator:
    """Spam-folder health for a sender across all users.

    Users are checked one after another. With ``stop_on_first_match`` the
    scan ends at the first user whose spam folder holds a match, and the
    remaining users are reported as unknown without being queried.

    Example:
        >>> aggregator = Aggregator(executor, stop_on_first_match=True)
        >>> summary = aggregator.check_health(credentials, "news@example.com")
        >>> summary.status
        <HealthStatus.GOOD: 'good'>
    """

    def __init__(
        self,
        executor: MailQueryExecutor,
        stop_on_first_match: bool = False,
        max_results: int = 100,
    ):
        self.executor = executor
        self.stop_on_first_match = stop_on_first_match
        self.max_results = max_results

    def check_user(self, credential: Credential, sender: str) -> QueryResult:
        """Check one mailbox. Failures become an unknown result."""
        result = self.executor.list_messages(credential, spam_query(sender), self.max_results)
        if not result.ok:
            logger.warning(f"Health check failed for {credential.email}: {result.error}")
            return QueryResult(
                user_email=credential.email,
                status=HealthStatus.UNKNOWN,
                error=str(result.error),
            )

        return QueryResult(
            user_email=credential.email,
            status=HealthStatus.BAD if result.count else HealthStatus.GOOD,
            match_count=result.count,
        )

    def check_health(self, credentials: Iterable[Credential], sender: str) -> HealthSummary:
        """Fold per-user results into a summary.

        Args:
            credentials: Users to check, in order.
            sender: Address whose delivery to spam is being checked.

        Returns:
            HealthSummary covering every user, queried or skipped.
        """
        credentials = list(credentials)
        results: list[QueryResult] = []
        total = 0

        for index, credential in enumerate(credentials):
            result = self.check_user(credential, sender)
            results.append(result)
            total += result.match_count

            if self.stop_on_first_match and result.has_spam:
                skipped = credentials[index + 1 :]
                results.extend(
                    QueryResult(user_email=c.email, status=HealthStatus.UNKNOWN) for c in skipped
                )
                logger.debug(f"Spam found for {sender}; skipped {len(skipped)} remaining users")
                break

        return HealthSummary(
            status=HealthStatus.BAD if total else HealthStatus.GOOD,
            total_users=len(credentials),
            total_spam_count=total,
            results=results,
        )


class MailboxSearch:
    """Sender search across every onboarded mailbox.

    Each user gets two queries, spam folder and everything else, and each
    returned message is tagged with its ``location`` and ``owner``.
    """

    def __init__(self, executor: MailQueryExecutor, max_results: int = 200):
        self.executor = executor
        self.max_results = max_results

    def search_user(self, credential: Credential, sender: str) -> list[dict[str, Any]]:
        """Search one mailbox. Failures are logged and yield no messages."""
        found: list[dict[str, Any]] = []
        for location, query in (("spam", spam_query(sender)), ("inbox", inbox_query(sender))):
            result = self.executor.search(credential, query, self.max_results)
            if not result.ok:
                logger.warning(f"Error searching emails for user {credential.email}: {result.error}")
                return []
            found.extend(
                {**message, "location": location, "owner": credential.email}
                for message in result.messages
            )
        return found

    def search(self, credentials: Iterable[Credential], sender: str) -> list[dict[str, Any]]:
        """Search all mailboxes in order and flatten the results."""
        messages: list[dict[str, Any]] = []
        for credential in credentials:
            messages.extend(self.search_user(credential, sender))
        return messages
