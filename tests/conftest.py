"""Shared pytest fixtures for gworkspace-extension tests.

This module provides reusable fixtures for tokens, credential stores,
and OAuth managers wired to in-memory storage.
"""

import os
from collections.abc import Generator
from pathlib import Path
from unittest.mock import patch

import pytest

from gworkspace_extension import config
from gworkspace_extension.auth.credential_storage import OAuthCredentialStorage
from gworkspace_extension.auth.models import OAuthCredentials, OAuthToken, now_millis
from gworkspace_extension.auth.oauth_manager import AuthSession, OAuthManager
from gworkspace_extension.auth.token_storage import (
    BaseTokenStorage,
    CredentialsNotFoundError,
    FileTokenStorage,
)

SCOPE_A = "https://www.googleapis.com/auth/scope.a"
SCOPE_B = "https://www.googleapis.com/auth/scope.b"


# =============================================================================
# Token Fixtures
# =============================================================================


@pytest.fixture
def valid_token() -> OAuthToken:
    """Create a valid, non-expired OAuth token."""
    return OAuthToken(
        access_token="test_access_token_abc123",
        refresh_token="test_refresh_token_xyz789",
        scope=f"{SCOPE_A} {SCOPE_B}",
        expires_at=now_millis() + 3600 * 1000,
    )


@pytest.fixture
def expired_token() -> OAuthToken:
    """Create an expired OAuth token."""
    return OAuthToken(
        access_token="expired_access_token",
        refresh_token="test_refresh_token",
        scope=SCOPE_A,
        expires_at=now_millis() - 3600 * 1000,
    )


@pytest.fixture
def credentials(valid_token: OAuthToken) -> OAuthCredentials:
    """Create credentials for a single test server."""
    return OAuthCredentials(server_name="test-server", token=valid_token)


# =============================================================================
# Storage Fixtures
# =============================================================================


class InMemoryTokenStorage(BaseTokenStorage):
    """Credential store keeping entries in a dict, for manager tests."""

    def __init__(self, service_name: str = "test-service") -> None:
        super().__init__(service_name)
        self.entries: dict[str, OAuthCredentials] = {}
        self.deleted: list[str] = []

    async def get_credentials(self, server_name: str) -> OAuthCredentials | None:
        return self.entries.get(server_name)

    async def set_credentials(self, credentials: OAuthCredentials) -> None:
        self.validate_credentials(credentials)
        self.entries[credentials.server_name] = credentials

    async def delete_credentials(self, server_name: str) -> None:
        if server_name not in self.entries:
            raise CredentialsNotFoundError(server_name)
        self.deleted.append(server_name)
        del self.entries[server_name]

    async def list_servers(self) -> list[str]:
        return list(self.entries)

    async def get_all_credentials(self) -> dict[str, OAuthCredentials]:
        return dict(self.entries)

    async def clear_all(self) -> None:
        self.entries.clear()


@pytest.fixture
def temp_token_dir(tmp_path: Path) -> Path:
    """Create a temporary directory for token storage tests."""
    token_dir = tmp_path / ".gworkspace-extension"
    token_dir.mkdir(mode=0o700)
    return token_dir


@pytest.fixture
def temp_token_path(temp_token_dir: Path) -> Path:
    """Path for the encrypted token file."""
    return temp_token_dir / config.TOKEN_FILE_NAME


@pytest.fixture
def temp_key_path(temp_token_dir: Path) -> Path:
    """Path for the master key file."""
    return temp_token_dir / config.MASTER_KEY_FILE_NAME


@pytest.fixture
def master_key() -> bytes:
    """Deterministic 32-byte key."""
    return bytes(range(32))


@pytest.fixture
def file_storage(master_key: bytes, temp_token_path: Path) -> FileTokenStorage:
    """File storage using a temporary token file."""
    return FileTokenStorage("test-service", master_key, token_path=temp_token_path)


@pytest.fixture
def memory_storage() -> InMemoryTokenStorage:
    """Credential store that never touches disk or the keychain."""
    return InMemoryTokenStorage()


@pytest.fixture
def credential_storage(memory_storage: InMemoryTokenStorage) -> OAuthCredentialStorage:
    """Main-account storage over the in-memory store."""
    return OAuthCredentialStorage(storage=memory_storage)


@pytest.fixture
def oauth_manager(credential_storage: OAuthCredentialStorage) -> OAuthManager:
    """OAuth manager requiring SCOPE_A, with in-memory storage and a fresh session."""
    return OAuthManager(
        scopes=[SCOPE_A],
        credential_storage=credential_storage,
        session=AuthSession(),
        auth_timeout=5,
    )


# =============================================================================
# Environment Fixtures
# =============================================================================


@pytest.fixture
def clean_env() -> Generator[None, None, None]:
    """Remove environment variables that change auth or storage behavior."""
    names = [
        config.CALLBACK_PORT_ENV,
        config.CALLBACK_HOST_ENV,
        config.FORCE_FILE_STORAGE_ENV,
        config.DATA_DIR_ENV,
        "BROWSER",
        "CI",
        "DEBIAN_FRONTEND",
        "DISPLAY",
        "WAYLAND_DISPLAY",
        "MIR_SOCKET",
        "SSH_CONNECTION",
    ]
    env = {key: value for key, value in os.environ.items() if key not in names}
    with patch.dict(os.environ, env, clear=True):
        yield
