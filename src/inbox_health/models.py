"""Data models shared by the mail query executor and aggregator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Why a mail call did not succeed."""

    AUTH_EXPIRED = "auth_expired"
    PROVIDER_ERROR = "provider_error"
    NOT_FOUND = "not_found"
    NO_CREDENTIALS = "no_credentials"
    REFRESH_FAILED = "refresh_failed"


class HealthStatus(str, Enum):
    """Mailbox health classification."""

    GOOD = "good"
    BAD = "bad"
    UNKNOWN = "unknown"


@dataclass
class Credential:
    """OAuth tokens for one onboarded user.

    The executor updates ``access_token`` in place after a refresh so the
    rest of the request reuses the new token.
    """

    user_id: str
    email: str
    access_token: str | None = None
    refresh_token: str | None = None


@dataclass(frozen=True)
class MailError:
    """Failure half of a MailResult."""

    kind: ErrorKind
    detail: str = ""

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.detail}" if self.detail else self.kind.value


@dataclass(frozen=True)
class MailResult:
    """Outcome of a single Gmail call: messages, or a classified error."""

    messages: list[dict[str, Any]] = field(default_factory=list)
    error: MailError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def count(self) -> int:
        return len(self.messages)

    @classmethod
    def success(cls, messages: list[dict[str, Any]] | None = None) -> MailResult:
        return cls(messages=list(messages or []))

    @classmethod
    def failure(cls, kind: ErrorKind, detail: str = "") -> MailResult:
        return cls(error=MailError(kind, detail))


@dataclass
class QueryResult:
    """Per-user health outcome."""

    user_email: str
    status: HealthStatus
    match_count: int = 0
    error: str | None = None

    @property
    def has_spam(self) -> bool:
        return self.match_count > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "email": self.user_email,
            "healthStatus": self.status.value,
            "hasSpam": self.has_spam,
            "spamCount": self.match_count,
            "error": self.error,
        }


@dataclass
class HealthSummary:
    """Aggregate health across all queried users."""

    status: HealthStatus
    total_users: int
    total_spam_count: int
    results: list[QueryResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "totalUsers": self.total_users,
            "totalSpamCount": self.total_spam_count,
            "results": [r.to_dict() for r in self.results],
        }
