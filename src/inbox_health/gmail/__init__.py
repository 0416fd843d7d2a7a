"""Gmail API access for onboarded mailboxes.

Usage:
    from inbox_health.gmail import GmailClient

    client = GmailClient(access_token)
    result = client.list_messages("in:spam from:news@example.com", max_results=1)
    if result.ok and result.count:
        print("sender lands in spam")
"""

from __future__ import annotations

from inbox_health.gmail.client import GmailClient, GmailMessage, classify_error

__all__ = ["GmailClient", "GmailMessage", "classify_error"]
