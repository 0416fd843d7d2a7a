"""Spam-folder health dashboard for Google-onboarded mailboxes.

Administrators onboard users through Google OAuth, then check whether a
sender's mail lands in those users' spam folders:

    from inbox_health import (
        Aggregator, CredentialStore, Database, GoogleOAuth, MailQueryExecutor, TokenRefresher,
    )

    db = Database("sqlite:///inbox_health.db")
    store = CredentialStore(db)
    executor = MailQueryExecutor(TokenRefresher(GoogleOAuth(), store))
    summary = Aggregator(executor).check_health(store.list_credentials(), "news@example.com")
    print(summary.status, summary.total_spam_count)
"""

from inbox_health.aggregator import Aggregator, MailboxSearch
from inbox_health.cache import Cache, MemoryCache, SqlCache
from inbox_health.executor import MailQueryExecutor
from inbox_health.google import GoogleOAuth, TokenRefresher
from inbox_health.models import (
    Credential,
    ErrorKind,
    HealthStatus,
    HealthSummary,
    MailError,
    MailResult,
    QueryResult,
)
from inbox_health.store import CredentialStore, Database, TagStore

__version__ = "0.1.0"

__all__ = [
    "Aggregator",
    "MailboxSearch",
    "MailQueryExecutor",
    "GoogleOAuth",
    "TokenRefresher",
    "Cache",
    "MemoryCache",
    "SqlCache",
    "Credential",
    "ErrorKind",
    "HealthStatus",
    "HealthSummary",
    "MailError",
    "MailResult",
    "QueryResult",
    "CredentialStore",
    "Database",
    "TagStore",
]
