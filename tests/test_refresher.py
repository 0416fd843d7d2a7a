"""Tests for the token refresher."""

import pytest

from inbox_health.exceptions import RefreshFailed
from inbox_health.google import TokenRefresher


class TestTokenRefresher:
    """Refresh-token exchange and write-back."""

    def test_persists_new_access_token(self, fake_oauth, store, add_user):
        """Should return and store the new access token."""
        user_id = add_user("alice@example.com", "T1", "R1")
        fake_oauth.refresh_tokens["R1"] = {"access_token": "T2", "refresh_token": "R1"}
        refresher = TokenRefresher(fake_oauth, store)

        assert refresher.refresh(user_id, "R1") == "T2"

        credential = store.get(user_id)
        assert credential.access_token == "T2"
        assert credential.refresh_token == "R1"
        assert refresher.refresh_count == 1

    def test_persists_rotated_refresh_token(self, fake_oauth, store, add_user):
        """Should store a rotated refresh token."""
        user_id = add_user("alice@example.com", "T1", "R1")
        fake_oauth.refresh_tokens["R1"] = {"access_token": "T2", "refresh_token": "R2"}

        TokenRefresher(fake_oauth, store).refresh(user_id, "R1")

        assert store.get(user_id).refresh_token == "R2"

    def test_revoked_grant_raises(self, fake_oauth, store, add_user):
        """Should raise RefreshFailed and leave the store untouched."""
        user_id = add_user("alice@example.com", "T1", "R1")
        refresher = TokenRefresher(fake_oauth, store)

        with pytest.raises(RefreshFailed, match="invalid_grant") as excinfo:
            refresher.refresh(user_id, "R1")

        assert excinfo.value.user_id == user_id
        assert store.get(user_id).access_token == "T1"
        assert refresher.refresh_count == 0

    def test_deleted_user_raises(self, fake_oauth, store):
        """Should raise RefreshFailed when the user is gone."""
        fake_oauth.refresh_tokens["R1"] = {"access_token": "T2"}

        with pytest.raises(RefreshFailed, match="no longer exists"):
            TokenRefresher(fake_oauth, store).refresh("missing", "R1")
