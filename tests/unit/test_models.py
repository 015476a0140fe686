"""Unit tests for OAuth token and credential models."""

import pytest
from pydantic import ValidationError

from gworkspace_extension.auth.models import OAuthCredentials, OAuthToken, now_millis


@pytest.mark.unit
class TestOAuthToken:
    """Tests for OAuthToken validation and helpers."""

    def test_should_accept_access_token_only(self) -> None:
        """Verify an access token alone is a valid token."""
        token = OAuthToken(access_token="abc")
        assert token.token_type == "Bearer"
        assert token.refresh_token is None

    def test_should_accept_refresh_token_only(self) -> None:
        """Verify a refresh token alone is a valid token."""
        token = OAuthToken(refresh_token="r")
        assert token.access_token is None

    def test_should_reject_token_without_access_or_refresh(self) -> None:
        """Verify a token needs at least one of access or refresh token."""
        with pytest.raises(ValidationError, match="Access token or refresh token is required"):
            OAuthToken(scope="a")

    def test_should_reject_empty_token_type(self) -> None:
        """Verify token_type must be non-empty."""
        with pytest.raises(ValidationError, match="Token type is required"):
            OAuthToken(access_token="abc", token_type="")

    def test_should_split_scopes(self) -> None:
        """Verify scope string is exposed as a set."""
        token = OAuthToken(access_token="abc", scope="a b  c")
        assert token.scopes == {"a", "b", "c"}

    def test_should_report_missing_scopes_in_order(self) -> None:
        """Verify missing_scopes lists required scopes not granted."""
        token = OAuthToken(access_token="abc", scope="b")
        assert token.missing_scopes(["a", "b", "c"]) == ["a", "c"]

    def test_should_report_all_scopes_missing_without_scope(self) -> None:
        """Verify a token without scope is missing everything."""
        token = OAuthToken(access_token="abc")
        assert token.missing_scopes(["a"]) == ["a"]

    def test_should_not_be_expired_when_expiry_far_away(self) -> None:
        """Verify a token expiring in an hour is not expired."""
        token = OAuthToken(access_token="abc", expires_at=now_millis() + 3600 * 1000)
        assert token.is_expired() is False

    def test_should_be_expired_within_buffer(self) -> None:
        """Verify a token expiring inside the buffer counts as expired."""
        token = OAuthToken(access_token="abc", expires_at=now_millis() + 30 * 1000)
        assert token.is_expired(buffer_seconds=60) is True

    def test_should_be_expired_without_expiry(self) -> None:
        """Verify a token with no expiry counts as expired."""
        assert OAuthToken(access_token="abc").is_expired() is True

    def test_should_round_trip_through_json(self, valid_token: OAuthToken) -> None:
        """Verify serialization preserves every field."""
        restored = OAuthToken.model_validate_json(valid_token.model_dump_json())
        assert restored == valid_token


@pytest.mark.unit
class TestOAuthCredentials:
    """Tests for OAuthCredentials validation."""

    def test_should_default_updated_at_to_now(self, valid_token: OAuthToken) -> None:
        """Verify updated_at is filled in on construction."""
        before = now_millis()
        credentials = OAuthCredentials(server_name="srv", token=valid_token)
        assert before <= credentials.updated_at <= now_millis()

    def test_should_reject_empty_server_name(self, valid_token: OAuthToken) -> None:
        """Verify server_name must be non-empty."""
        with pytest.raises(ValidationError, match="Server name is required"):
            OAuthCredentials(server_name="", token=valid_token)

    def test_should_reject_invalid_nested_token(self) -> None:
        """Verify nested token invariants apply when loading from dicts."""
        with pytest.raises(ValidationError):
            OAuthCredentials.model_validate({"server_name": "srv", "token": {"scope": "a"}})
