"""Tests for the HTTP API."""

from unittest.mock import patch
from urllib.parse import parse_qs, urlsplit

import pytest
from conftest import token_endpoint_error
from fastapi.testclient import TestClient

from inbox_health.api import create_app
from inbox_health.api.auth import decode_user_info, encode_user_info
from inbox_health.cache import MemoryCache
from inbox_health.config import Settings


@pytest.fixture
def settings():
    return Settings(
        google_client_id="test-client-id.apps.googleusercontent.com",
        google_client_secret="test-client-secret",
        google_redirect_uri="http://testserver/api/auth/callback",
        cookie_secure=False,
    )


@pytest.fixture
def cache():
    return MemoryCache()


@pytest.fixture
def client(settings, db, cache, fake_oauth, client_factory):
    app = create_app(
        settings=settings,
        db=db,
        cache=cache,
        oauth_factory=lambda scopes=None: fake_oauth,
        client_factory=client_factory,
    )
    return TestClient(app)


@pytest.fixture
def users(add_user, mailbox, tag_store):
    """Two mailbox owners and one admin, all with working tokens."""
    ids = {}
    for name in ("alice", "bob", "root"):
        email = f"{name}@example.com"
        ids[name] = add_user(email, f"T-{name}", f"R-{name}")
        mailbox.valid_tokens[f"T-{name}"] = email
    admin = tag_store.create("admin")
    tag_store.add_to_user(ids["root"], admin["id"])
    return ids


def _begin_login(client) -> str:
    response = client.get("/api/auth/google", follow_redirects=False)
    assert response.status_code == 307
    return response.headers["location"].split("state=")[1]


class TestAuthRoutes:
    """OAuth onboarding and session cookies."""

    def test_start_redirects_to_google(self, client, cache):
        """Should redirect to consent and remember the state."""
        response = client.get("/api/auth/google", follow_redirects=False)

        assert response.status_code == 307
        assert response.headers["location"].startswith("https://accounts.google.com/")
        state = response.headers["location"].split("state=")[1]
        assert cache.get(f"oauth_state:{state}") == "1"

    def test_admin_start_redirects_to_google(self, client):
        response = client.get("/api/auth", follow_redirects=False)
        assert response.status_code == 307
        assert "accounts.google.com" in response.headers["location"]

    def test_callback_without_code(self, client):
        response = client.get("/api/auth/callback", follow_redirects=False)

        assert response.status_code == 307
        assert response.headers["location"] == "http://testserver/auth?error=no_code"

    def test_callback_onboards_user(self, client, fake_oauth, store):
        """Should store the user and set session cookies."""
        state = _begin_login(client)
        fake_oauth.code_tokens["c1"] = {
            "access_token": "T1",
            "refresh_token": "R1",
            "expires_in": 3599,
        }
        fake_oauth.userinfo["T1"] = {"email": "alice@example.com", "name": "Alice", "id": "g1"}

        response = client.get(
            "/api/auth/callback", params={"code": "c1", "state": state}, follow_redirects=False
        )

        assert response.status_code == 307
        assert response.headers["location"] == "http://testserver/"
        cookies = " ".join(response.headers.get_list("set-cookie"))
        assert "access_token=T1" in cookies
        assert "refresh_token=R1" in cookies
        assert "HttpOnly" in cookies

        [credential] = store.list_credentials()
        assert credential.email == "alice@example.com"
        assert credential.access_token == "T1"
        assert credential.refresh_token == "R1"

        me = client.get("/api/auth/me")
        assert me.status_code == 200
        assert me.json()["userInfo"]["email"] == "alice@example.com"
        assert me.json()["access_token"] == "T1"

    def test_callback_rejects_unknown_state(self, client, fake_oauth):
        fake_oauth.code_tokens["c1"] = {"access_token": "T1"}

        response = client.get(
            "/api/auth/callback", params={"code": "c1", "state": "forged"}, follow_redirects=False
        )

        assert "error=callback_failed" in response.headers["location"]
        assert "state" in response.headers["location"]

    def test_callback_state_is_single_use(self, client, fake_oauth):
        state = _begin_login(client)
        fake_oauth.code_tokens["c1"] = {"access_token": "T1"}
        fake_oauth.userinfo["T1"] = {"email": "alice@example.com"}

        client.get("/api/auth/callback", params={"code": "c1", "state": state})
        response = client.get(
            "/api/auth/callback", params={"code": "c1", "state": state}, follow_redirects=False
        )

        assert "error=callback_failed" in response.headers["location"]

    def test_callback_token_error(self, client):
        """Should redirect with details when the code exchange fails."""
        state = _begin_login(client)

        response = client.get(
            "/api/auth/callback", params={"code": "bad", "state": state}, follow_redirects=False
        )

        assert "error=callback_failed" in response.headers["location"]
        assert "invalid_grant" in response.headers["location"]

    def test_me_requires_session(self, client):
        assert client.get("/api/auth/me").status_code == 401

    def test_me_rejects_malformed_cookie(self, client):
        client.cookies.set("user_info", "not-base64-json!")
        assert client.get("/api/auth/me").status_code == 401

    def test_details(self, client):
        assert client.get("/api/auth/details").status_code == 401

        client.cookies.set("access_token", "T1")
        data = client.get("/api/auth/details").json()

        assert data["accessToken"] == "T1"
        assert data["refreshToken"] == "Not available"
        assert data["clientId"] == "test-client-id.apps.googleusercontent.com"
        assert "clientSecret" not in data

    def test_logout_clears_cookies(self, client):
        response = client.get("/api/auth/logout")

        assert response.json() == {"success": True}
        cookies = response.headers.get_list("set-cookie")
        assert {c.split("=")[0] for c in cookies} == {"access_token", "refresh_token", "user_info"}

    def test_user_info_round_trip(self):
        info = {"email": "alice@example.com", "name": "Alice Ä"}
        assert decode_user_info(encode_user_info(info)) == info


class TestEmailRoutes:
    """Mailbox listing, health and search."""

    def test_list_excludes_admins(self, client, users):
        response = client.get("/api/emails/list")

        assert response.status_code == 200
        assert sorted(response.json()["emails"]) == ["alice@example.com", "bob@example.com"]

    def test_health_requires_email(self, client, users):
        response = client.get("/api/emails/health")

        assert response.status_code == 400
        assert response.json() == {"error": "Email parameter is required"}

    def test_health_without_users(self, client):
        response = client.get("/api/emails/health", params={"email": "news@example.com"})

        assert response.status_code == 404
        assert response.json() == {"error": "No users found"}

    def test_health_first_match_shape(self, client, users, mailbox):
        """Should return only the overall health by default."""
        mailbox.spam["alice@example.com"] = [{"id": "1"}]

        response = client.get("/api/emails/health", params={"email": "news@example.com"})

        assert response.status_code == 200
        assert response.json() == {"health": "bad"}
        assert [token for token, _ in mailbox.calls] == ["T-alice"]

    def test_health_full_shape(self, client, users, mailbox):
        """Should check every non-admin user and return the summary."""
        mailbox.spam["bob@example.com"] = [{"id": "1"}, {"id": "2"}]

        response = client.get(
            "/api/emails/health", params={"email": "news@example.com", "mode": "full"}
        )

        data = response.json()
        assert data["status"] == "bad"
        assert data["totalUsers"] == 2
        assert data["totalSpamCount"] == 2
        assert {r["email"]: r["healthStatus"] for r in data["results"]} == {
            "alice@example.com": "good",
            "bob@example.com": "bad",
        }

    def test_health_is_cached(self, client, users, mailbox):
        """Should answer a repeated check from the cache."""
        client.get("/api/emails/health", params={"email": "news@example.com"})
        calls = len(mailbox.calls)

        response = client.get("/api/emails/health", params={"email": "News@Example.com"})

        assert response.json() == {"health": "good"}
        assert len(mailbox.calls) == calls

    def test_health_refreshes_expired_token(self, client, users, mailbox, fake_oauth, store):
        """Should refresh an expired token and store the new one."""
        del mailbox.valid_tokens["T-alice"]
        mailbox.valid_tokens["T2-alice"] = "alice@example.com"
        fake_oauth.refresh_tokens["R-alice"] = {"access_token": "T2-alice"}

        response = client.get(
            "/api/emails/health", params={"email": "news@example.com", "mode": "full"}
        )

        assert response.json()["results"][0]["healthStatus"] == "good"
        assert store.get(users["alice"]).access_token == "T2-alice"

    def test_health_invalid_mode(self, client, users):
        response = client.get(
            "/api/emails/health", params={"email": "news@example.com", "mode": "bogus"}
        )
        assert response.status_code == 400

    def test_search(self, client, users, mailbox):
        """Should return messages from every mailbox with a location."""
        mailbox.spam["alice@example.com"] = [{"id": "s1"}]
        mailbox.inbox["bob@example.com"] = [{"id": "i1"}]

        response = client.get("/api/emails/search", params={"q": "news@example.com"})

        messages = response.json()["messages"]
        assert {(m["id"], m["location"]) for m in messages} == {("s1", "spam"), ("i1", "inbox")}

    def test_search_empty_query(self, client, users, mailbox):
        response = client.get("/api/emails/search")

        assert response.json() == {"messages": []}
        assert mailbox.calls == []


class TestTagRoutes:
    """Tag CRUD and user-tag associations."""

    def test_create_and_list(self, client):
        first = client.post("/api/tags", json={"name": "vip"}).json()
        second = client.post("/api/tags", json={"name": "vip"}).json()

        assert first["id"] == second["id"]
        assert [t["name"] for t in client.get("/api/tags").json()] == ["vip"]

    def test_create_requires_name(self, client):
        response = client.post("/api/tags", json={})

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid request body"}

    def test_create_rejects_blank_name(self, client):
        assert client.post("/api/tags", json={"name": "  "}).status_code == 400

    def test_user_tag_lifecycle(self, client, users):
        user_id = users["alice"]
        tag = client.post("/api/tags", json={"name": "vip"}).json()

        added = client.post(f"/api/users/{user_id}/tags", json={"tagId": tag["id"]})
        assert [t["name"] for t in added.json()] == ["vip"]

        listed = client.get(f"/api/users/{user_id}/tags")
        assert [t["name"] for t in listed.json()] == ["vip"]

        removed = client.request("DELETE", f"/api/users/{user_id}/tags", json={"tagId": tag["id"]})
        assert removed.json() == []

    def test_unknown_user(self, client):
        response = client.get("/api/users/missing/tags")

        assert response.status_code == 404
        assert "missing" in response.json()["error"]

    def test_unknown_tag(self, client, users):
        response = client.post(f"/api/users/{users['alice']}/tags", json={"tagId": "missing"})
        assert response.status_code == 404

    def test_bad_tag_body(self, client, users):
        response = client.post(f"/api/users/{users['alice']}/tags", json={"tag": "x"})
        assert response.status_code == 400

    def test_list_users(self, client, users):
        data = client.get("/api/users").json()

        by_email = {u["email"]: u for u in data}
        assert [t["name"] for t in by_email["root@example.com"]["tags"]] == ["admin"]
        assert all("access_token" not in u for u in data)


class TestGoogleTokenEndpointErrors:
    """Routes backed by the real GoogleOAuth with a failing token endpoint."""

    @pytest.fixture
    def google_client(self, settings, db, cache, client_factory):
        app = create_app(settings=settings, db=db, cache=cache, client_factory=client_factory)
        return TestClient(app)

    def test_revoked_refresh_token_is_unknown(self, google_client, users, mailbox):
        """Should report the revoked user as unknown and keep checking others."""
        del mailbox.valid_tokens["T-alice"]

        with patch("requests.Session.request", return_value=token_endpoint_error()):
            response = google_client.get(
                "/api/emails/health", params={"email": "news@example.com", "mode": "full"}
            )

        assert response.status_code == 200
        statuses = {r["email"]: r["healthStatus"] for r in response.json()["results"]}
        assert statuses == {"alice@example.com": "unknown", "bob@example.com": "good"}

    def test_rejected_code_redirects(self, google_client):
        """Should redirect to the error page when Google rejects the code."""
        start = google_client.get("/api/auth/google", follow_redirects=False)
        state = parse_qs(urlsplit(start.headers["location"]).query)["state"][0]

        with patch(
            "requests.Session.request",
            return_value=token_endpoint_error(description="Malformed auth code."),
        ):
            response = google_client.get(
                "/api/auth/callback",
                params={"code": "bad", "state": state},
                follow_redirects=False,
            )

        assert response.status_code == 307
        assert response.headers["location"].startswith(
            "http://testserver/auth?error=callback_failed"
        )


class TestUnexpectedErrors:
    """Errors the routes don't anticipate."""

    def test_returns_json_500_and_logs(self, settings, db, cache, fake_oauth, users, caplog):
        class BrokenClient:
            def __init__(self, access_token):
                pass

            def list_messages(self, query, max_results):
                raise RuntimeError("mailbox exploded")

        app = create_app(
            settings=settings,
            db=db,
            cache=cache,
            oauth_factory=lambda scopes=None: fake_oauth,
            client_factory=BrokenClient,
        )
        client = TestClient(app, raise_server_exceptions=False)

        response = client.get("/api/emails/health", params={"email": "news@example.com"})

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}
        assert "mailbox exploded" in caplog.text
