"""Shared fixtures: in-memory database, scripted Gmail and OAuth fakes."""

from __future__ import annotations

import json
from types import SimpleNamespace

import pytest
import requests
from googleapiclient.errors import HttpError

from inbox_health.exceptions import TokenError
from inbox_health.models import ErrorKind, MailResult
from inbox_health.store import CredentialStore, Database, TagStore


def http_error(status: int, reason: str = "error") -> HttpError:
    """Build a googleapiclient HttpError with the given status."""
    return HttpError(SimpleNamespace(status=status, reason=reason), b"{}")


def token_endpoint_error(
    error: str = "invalid_grant",
    description: str = "Token has been expired or revoked.",
    status: int = 400,
) -> requests.Response:
    """Build the JSON error response Google's token endpoint sends."""
    response = requests.Response()
    response.status_code = status
    response.headers["Content-Type"] = "application/json"
    response._content = json.dumps({"error": error, "error_description": description}).encode()
    response.url = "https://oauth2.googleapis.com/token"
    return response


class FakeMailbox:
    """Scripted Gmail backend shared by every FakeGmailClient.

    ``valid_tokens`` maps an access token to the email of the mailbox it
    opens. Any other token gets AUTH_EXPIRED. ``spam`` and ``inbox`` map a
    mailbox email to message dicts. ``errors`` forces a failure kind for a
    mailbox.
    """

    def __init__(self):
        self.valid_tokens: dict[str, str] = {}
        self.spam: dict[str, list[dict]] = {}
        self.inbox: dict[str, list[dict]] = {}
        self.errors: dict[str, ErrorKind] = {}
        self.calls: list[tuple[str, str]] = []

    def run(self, token: str, query: str, max_results: int) -> MailResult:
        self.calls.append((token, query))
        owner = self.valid_tokens.get(token)
        if owner is None:
            return MailResult.failure(ErrorKind.AUTH_EXPIRED, "HTTP 401: Invalid Credentials")
        if owner in self.errors:
            return MailResult.failure(self.errors[owner], "scripted failure")
        folder = self.inbox if query.startswith("-in:spam") else self.spam
        return MailResult.success(folder.get(owner, [])[:max_results])


class FakeGmailClient:
    def __init__(self, access_token: str, mailbox: FakeMailbox):
        self.access_token = access_token
        self.mailbox = mailbox

    def list_messages(self, query: str = "", max_results: int = 50) -> MailResult:
        result = self.mailbox.run(self.access_token, query, max_results)
        if not result.ok:
            return result
        return MailResult.success([{"id": m["id"], "threadId": m["id"]} for m in result.messages])

    def search(self, query: str = "", max_results: int = 50, include_body: bool = False):
        return self.mailbox.run(self.access_token, query, max_results)


class FakeOAuth:
    """Stands in for GoogleOAuth; refresh hands out scripted tokens."""

    client_id = "test-client-id.apps.googleusercontent.com"

    def __init__(self):
        self.refresh_tokens: dict[str, dict] = {}
        self.refresh_calls: list[str] = []
        self.code_tokens: dict[str, dict] = {}
        self.userinfo: dict[str, dict] = {}
        self.states: list[str] = []

    def refresh_access_token(self, refresh_token: str) -> dict:
        self.refresh_calls.append(refresh_token)
        if refresh_token not in self.refresh_tokens:
            raise TokenError("invalid_grant: Token has been expired or revoked.")
        return dict(self.refresh_tokens[refresh_token])

    def get_authorization_url(self, state=None, prompt_consent=True):
        state = state or f"state-{len(self.states) + 1}"
        self.states.append(state)
        return f"https://accounts.google.com/o/oauth2/auth?state={state}", state

    def fetch_token(self, code: str) -> dict:
        if code not in self.code_tokens:
            raise TokenError("invalid_grant: Bad Request")
        return dict(self.code_tokens[code])

    def fetch_userinfo(self, token: dict) -> dict:
        return self.userinfo[token["access_token"]]


@pytest.fixture
def db():
    database = Database("sqlite://")
    database.create_all()
    yield database
    database.engine.dispose()


@pytest.fixture
def store(db):
    return CredentialStore(db)


@pytest.fixture
def tag_store(db):
    return TagStore(db)


@pytest.fixture
def mailbox():
    return FakeMailbox()


@pytest.fixture
def client_factory(mailbox):
    return lambda token: FakeGmailClient(token, mailbox)


@pytest.fixture
def fake_oauth():
    return FakeOAuth()


@pytest.fixture
def add_user(store):
    """Create a user and return its id."""

    def _add(email, access_token=None, refresh_token=None, name=None):
        user = store.upsert_from_userinfo(
            {"email": email, "name": name or email.split("@")[0], "id": f"g-{email}"},
            access_token=access_token,
            refresh_token=refresh_token,
        )
        return user["id"]

    return _add
