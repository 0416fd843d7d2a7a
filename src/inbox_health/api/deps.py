"""Service wiring shared by the API routes."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from fastapi import Request

from inbox_health.cache import Cache
from inbox_health.config import Settings
from inbox_health.executor import MailQueryExecutor
from inbox_health.gmail import GmailClient
from inbox_health.google import GoogleOAuth, TokenRefresher
from inbox_health.store import CredentialStore, Database, TagStore


def _default_oauth_factory(settings: Settings) -> Callable[[list[str] | None], GoogleOAuth]:
    def factory(scopes: list[str] | None = None) -> GoogleOAuth:
        return GoogleOAuth(scopes=scopes, settings=settings)

    return factory


@dataclass
class Services:
    """Everything a request handler needs, built once per app."""

    settings: Settings
    db: Database
    cache: Cache
    oauth_factory: Callable[[list[str] | None], GoogleOAuth] | None = None
    client_factory: Callable[[str], GmailClient] = GmailClient
    credentials: CredentialStore = field(init=False)
    tags: TagStore = field(init=False)

    def __post_init__(self) -> None:
        self.credentials = CredentialStore(self.db)
        self.tags = TagStore(self.db)
        if self.oauth_factory is None:
            self.oauth_factory = _default_oauth_factory(self.settings)

    def oauth(self, scopes: list[str] | None = None) -> GoogleOAuth:
        """Build the OAuth client.

        Raises:
            CredentialsNotFoundError: If the client ID or secret is not configured.
        """
        return self.oauth_factory(scopes)

    def executor(self) -> MailQueryExecutor:
        refresher = TokenRefresher(self.oauth(), self.credentials)
        return MailQueryExecutor(refresher, client_factory=self.client_factory)


def get_services(request: Request) -> Services:
    return request.app.state.services
