"""Pydantic models for stored OAuth credentials.

Credentials are keyed by a logical server name and carry a single
OAuth token. Timestamps are epoch milliseconds so the stored format is
independent of the local timezone.
"""

import time
from enum import Enum

from pydantic import BaseModel, Field, model_validator


def now_millis() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


class TokenStatus(str, Enum):
    """Status of the stored token for the active account."""

    VALID = "valid"
    EXPIRED = "expired"
    MISSING = "missing"
    INVALID = "invalid"


class TokenStorageType(str, Enum):
    """Backend selected by the hybrid credential store."""

    KEYCHAIN = "keychain"
    ENCRYPTED_FILE = "encrypted_file"


class OAuthToken(BaseModel):
    """OAuth token as persisted by the credential stores.

    Attributes:
        access_token: Short-lived bearer token.
        refresh_token: Long-lived token used to obtain new access tokens.
        token_type: Token type, normally "Bearer".
        scope: Space-separated list of granted scopes.
        expires_at: Access token expiry as epoch milliseconds.
    """

    access_token: str | None = None
    refresh_token: str | None = None
    token_type: str = "Bearer"  # nosec B105 - OAuth token type, not a password
    scope: str | None = None
    expires_at: int | None = Field(default=None, description="Expiry in epoch milliseconds")

    @model_validator(mode="after")
    def check_token(self) -> "OAuthToken":
        if not self.access_token and not self.refresh_token:
            raise ValueError("Access token or refresh token is required")
        if not self.token_type:
            raise ValueError("Token type is required")
        return self

    @property
    def scopes(self) -> set[str]:
        """Granted scopes as a set."""
        return set(self.scope.split()) if self.scope else set()

    def missing_scopes(self, required: list[str]) -> list[str]:
        """Return the required scopes this token was not granted, in order."""
        granted = self.scopes
        return [scope for scope in required if scope not in granted]

    def is_expired(self, buffer_seconds: int = 60) -> bool:
        """Check if the access token is expired or expires within the buffer.

        Tokens without a recorded expiry are treated as expired so that
        callers refresh them before use.
        """
        if self.expires_at is None:
            return True
        return now_millis() + buffer_seconds * 1000 >= self.expires_at


class OAuthCredentials(BaseModel):
    """One authorization record per logical server or account.

    Attributes:
        server_name: Key the credentials are stored under.
        token: The OAuth token.
        updated_at: Epoch milliseconds of the last write.
    """

    server_name: str
    token: OAuthToken
    updated_at: int = Field(default_factory=now_millis)

    @model_validator(mode="after")
    def check_server_name(self) -> "OAuthCredentials":
        if not self.server_name:
            raise ValueError("Server name is required")
        return self
