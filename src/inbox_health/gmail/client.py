"""Gmail API client bound to one user's access token."""

from __future__ import annotations

import base64
import contextlib
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Any

from google.auth.exceptions import RefreshError
from google.oauth2.credentials import Credentials as GoogleCredentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from inbox_health.models import ErrorKind, MailError, MailResult

logger = logging.getLogger(__name__)


@dataclass
class GmailMessage:
    """Represents a Gmail message."""

    id: str
    thread_id: str
    subject: str
    sender: str
    to: str
    date: datetime | None
    snippet: str
    body: str = ""
    html: str | None = None
    labels: list[str] | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["date"] = self.date.isoformat() if self.date else None
        return data


def classify_error(error: Exception) -> MailError:
    """Map an exception raised by a Gmail call to a MailError.

    A bare access token has no refresh material, so google-auth raises
    RefreshError when the API answers 401. Both mean the token expired.
    """
    if isinstance(error, RefreshError):
        return MailError(ErrorKind.AUTH_EXPIRED, str(error))
    if isinstance(error, HttpError):
        status = getattr(error.resp, "status", None)
        detail = f"HTTP {status}: {error.reason}" if hasattr(error, "reason") else str(error)
        if status == 401:
            return MailError(ErrorKind.AUTH_EXPIRED, detail)
        if status == 404:
            return MailError(ErrorKind.NOT_FOUND, detail)
        return MailError(ErrorKind.PROVIDER_ERROR, detail)
    return MailError(ErrorKind.PROVIDER_ERROR, f"{type(error).__name__}: {error}")


class GmailClient:
    """Gmail API client authenticated by a bearer access token.

    Every public call returns a MailResult instead of raising, so callers
    branch on ``result.error.kind`` rather than inspecting exceptions.

    Usage:
        client = GmailClient(access_token)

        result = client.list_messages("in:spam from:news@example.com", max_results=10)
        if result.ok:
            print(result.count)

        result = client.search("-in:spam from:news@example.com")
        for msg in result.messages:
            print(msg["subject"], msg["sender"])
    """

    def __init__(self, access_token: str, user: str = "me", service: Any = None) -> None:
        """Initialize Gmail client.

        Args:
            access_token: OAuth access token for the mailbox owner.
            user: Gmail user ID or "me" for the token owner.
            service: Prebuilt Gmail service, mainly for tests.
        """
        self.access_token = access_token
        self._user = user
        self._service: Any = service

    def _get_service(self) -> Any:
        """Get or create Gmail API service."""
        if self._service is None:
            creds = GoogleCredentials(token=self.access_token)
            self._service = build("gmail", "v1", credentials=creds, cache_discovery=False)
        return self._service

    def list_messages(self, query: str = "", max_results: int = 50) -> MailResult:
        """List message references matching a Gmail query.

        Args:
            query: Gmail search query (e.g., "in:spam from:user@example.com").
                  See https://support.google.com/mail/answer/7190 for syntax.
            max_results: Maximum number of messages to return.

        Returns:
            MailResult whose messages are ``{"id", "threadId"}`` dicts.
        """
        try:
            results = (
                self._get_service()
                .users()
                .messages()
                .list(userId=self._user, q=query, maxResults=max_results)
                .execute()
            )
        except Exception as e:
            error = classify_error(e)
            logger.debug(f"messages.list failed for query {query!r}: {error}")
            return MailResult(error=error)

        return MailResult.success(results.get("messages", []))

    def get_message(self, message_id: str, include_body: bool = False) -> MailResult:
        """Get a single message by ID.

        Args:
            message_id: Gmail message ID.
            include_body: Whether to fetch and decode the full message body.

        Returns:
            MailResult holding one message dict, or the classified error.
        """
        try:
            format_type = "full" if include_body else "metadata"
            msg = (
                self._get_service()
                .users()
                .messages()
                .get(userId=self._user, id=message_id, format=format_type)
                .execute()
            )
        except Exception as e:
            error = classify_error(e)
            logger.debug(f"messages.get failed for {message_id}: {error}")
            return MailResult(error=error)

        return MailResult.success([self._parse_message(msg, include_body).to_dict()])

    def search(
        self,
        query: str = "",
        max_results: int = 50,
        include_body: bool = False,
    ) -> MailResult:
        """Search for emails and fetch each match.

        Messages deleted between the list and the get are skipped. Any
        other failure aborts the search with that error.

        Returns:
            MailResult holding message dicts in list order.
        """
        listed = self.list_messages(query, max_results)
        if not listed.ok:
            return listed

        messages = []
        for ref in listed.messages:
            fetched = self.get_message(ref["id"], include_body)
            if fetched.ok:
                messages.extend(fetched.messages)
            elif fetched.error.kind is ErrorKind.NOT_FOUND:
                continue
            else:
                return fetched

        return MailResult.success(messages)

    def _parse_message(self, msg: dict[str, Any], include_body: bool) -> GmailMessage:
        """Build a GmailMessage from an API response."""
        headers = {h["name"].lower(): h["value"] for h in msg.get("payload", {}).get("headers", [])}

        date_str = headers.get("date", "")
        msg_date = None
        if date_str:
            with contextlib.suppress(Exception):
                msg_date = parsedate_to_datetime(date_str)

        body = ""
        html = None
        if include_body:
            body, html = self._extract_body(msg.get("payload", {}))

        return GmailMessage(
            id=msg["id"],
            thread_id=msg.get("threadId", ""),
            subject=headers.get("subject", ""),
            sender=headers.get("from", ""),
            to=headers.get("to", ""),
            date=msg_date,
            snippet=msg.get("snippet", ""),
            body=body,
            html=html,
            labels=msg.get("labelIds", []),
        )

    def _extract_body(self, payload: dict) -> tuple[str, str | None]:
        """Extract plain text and HTML body from message payload.

        Returns:
            Tuple of (plain_text, html_or_none).
        """
        plain_body = ""
        html_body = None

        def decode_part(part: dict) -> str:
            data = part.get("body", {}).get("data", "")
            if data:
                return base64.urlsafe_b64decode(data).decode("utf-8", errors="replace")
            return ""

        def process_part(part: dict) -> None:
            nonlocal plain_body, html_body
            mime_type = part.get("mimeType", "")

            if mime_type == "text/plain" and not plain_body:
                plain_body = decode_part(part)
            elif mime_type == "text/html" and not html_body:
                html_body = decode_part(part)
            elif "parts" in part:
                for subpart in part["parts"]:
                    process_part(subpart)

        if payload.get("body", {}).get("data"):
            decoded = decode_part(payload)
            if payload.get("mimeType", "") == "text/html":
                html_body = decoded
            else:
                plain_body = decoded
        elif "parts" in payload:
            for part in payload["parts"]:
                process_part(part)

        return plain_body, html_body
