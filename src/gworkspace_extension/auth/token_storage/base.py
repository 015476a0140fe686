"""Common contract for credential storage backends."""

import re
from abc import ABC, abstractmethod

from gworkspace_extension.auth.models import OAuthCredentials

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9\-_.]")


class CredentialsNotFoundError(LookupError):
    """Raised when deleting credentials that are not stored."""

    def __init__(self, server_name: str) -> None:
        self.server_name = server_name
        super().__init__(f"No credentials found for {server_name}")


class BaseTokenStorage(ABC):
    """Async CRUD over OAuth credentials keyed by server name.

    Lookups of absent entries return None or empty results; deleting an
    absent entry raises CredentialsNotFoundError.

    Attributes:
        service_name: Namespace for the stored entries.
    """

    def __init__(self, service_name: str) -> None:
        self.service_name = service_name

    @abstractmethod
    async def get_credentials(self, server_name: str) -> OAuthCredentials | None:
        """Get stored credentials, or None if absent."""

    @abstractmethod
    async def set_credentials(self, credentials: OAuthCredentials) -> None:
        """Store credentials, replacing any entry with the same server name."""

    @abstractmethod
    async def delete_credentials(self, server_name: str) -> None:
        """Delete stored credentials.

        Raises:
            CredentialsNotFoundError: If nothing is stored under server_name.
        """

    @abstractmethod
    async def list_servers(self) -> list[str]:
        """List server names with stored credentials."""

    @abstractmethod
    async def get_all_credentials(self) -> dict[str, OAuthCredentials]:
        """Get every stored credential keyed by server name."""

    @abstractmethod
    async def clear_all(self) -> None:
        """Delete all stored credentials."""

    def validate_credentials(self, credentials: OAuthCredentials) -> None:
        """Check credential invariants before anything is written.

        Models are validated on construction, but instances built with
        ``model_construct`` or mutated afterwards bypass that.

        Raises:
            ValueError: If a required field is missing.
        """
        if not credentials.server_name:
            raise ValueError("Server name is required")

        token = credentials.token
        if token is None:
            raise ValueError("Token is required")
        if not token.access_token and not token.refresh_token:
            raise ValueError("Access token or refresh token is required")
        if not token.token_type:
            raise ValueError("Token type is required")

    def sanitize_server_name(self, server_name: str) -> str:
        """Replace characters unsafe for storage keys with underscores."""
        return _UNSAFE_NAME_CHARS.sub("_", server_name)
