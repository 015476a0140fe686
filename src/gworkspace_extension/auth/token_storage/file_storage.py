"""Encrypted file storage for OAuth credentials.

All credentials live in one JSON object keyed by server name, encrypted
as a single AES-256-GCM blob. Every mutation reads, decrypts, modifies,
re-encrypts and atomically rewrites the whole file.

Storage Location: ~/.gworkspace-extension/gworkspace-extension-token.json
(override with GWORKSPACE_EXTENSION_HOME).

Writes are last-writer-wins; concurrent writers from separate processes
are not coordinated.
"""

import json
import logging
import os
import tempfile
from pathlib import Path

from gworkspace_extension import config
from gworkspace_extension.auth.models import OAuthCredentials
from gworkspace_extension.auth.token_storage.base import (
    BaseTokenStorage,
    CredentialsNotFoundError,
)
from gworkspace_extension.auth.token_storage.encryption import (
    decrypt,
    encrypt,
    load_or_create_master_key,
)

logger = logging.getLogger(__name__)


class TokenFileCorruptedError(ValueError):
    """Raised internally when the token file cannot be decrypted or parsed."""


class FileTokenStorage(BaseTokenStorage):
    """Credential storage backed by an encrypted file.

    Use :meth:`create` to build an instance; it loads the master key,
    generating one on first use.

    Attributes:
        token_path: Path to the encrypted credential map.
        credentials_dir: Directory holding the token file.

    Example:
        ```python
        storage = await FileTokenStorage.create("gworkspace-extension-oauth")

        await storage.set_credentials(
            OAuthCredentials(
                server_name="main-account",
                token=OAuthToken(access_token="abc123", scope="scope.a"),
            )
        )
        stored = await storage.get_credentials("main-account")
        ```
    """

    def __init__(
        self,
        service_name: str,
        master_key: bytes,
        token_path: Path | None = None,
    ) -> None:
        """Initialize file storage.

        Args:
            service_name: Namespace for the stored entries.
            master_key: 32-byte encryption key.
            token_path: Custom path for the encrypted token file.
                Defaults to the configured data directory.
        """
        super().__init__(service_name)
        self._master_key = master_key
        self.token_path = token_path or config.get_token_path()
        self.credentials_dir = self.token_path.parent

    @classmethod
    async def create(
        cls,
        service_name: str,
        token_path: Path | None = None,
        key_path: Path | None = None,
    ) -> "FileTokenStorage":
        """Create file storage, loading or generating the master key.

        Args:
            service_name: Namespace for the stored entries.
            token_path: Custom path for the encrypted token file.
            key_path: Custom path for the master key file.

        Returns:
            A ready-to-use FileTokenStorage.
        """
        master_key = load_or_create_master_key(key_path or config.get_master_key_path())
        return cls(service_name, master_key, token_path=token_path)

    def _ensure_credentials_dir(self) -> None:
        """Create credentials directory with secure permissions if needed."""
        self.credentials_dir.mkdir(parents=True, exist_ok=True, mode=0o700)

    def _load_tokens(self) -> dict[str, OAuthCredentials] | None:
        """Load and decrypt the credential map.

        Returns:
            The stored map, or None if the token file does not exist.

        Raises:
            TokenFileCorruptedError: If the file cannot be decrypted or parsed.
        """
        try:
            data = self.token_path.read_bytes()
        except FileNotFoundError:
            return None

        try:
            raw = json.loads(decrypt(data.decode("utf-8"), self._master_key))
            if not isinstance(raw, dict):
                raise ValueError("credential map is not a JSON object")
            return {name: OAuthCredentials.model_validate(entry) for name, entry in raw.items()}
        except ValueError as e:
            raise TokenFileCorruptedError(f"Token file corrupted: {e}") from e

    def _load_tokens_or_empty(self) -> dict[str, OAuthCredentials]:
        """Load the credential map, treating absence and corruption as empty."""
        try:
            return self._load_tokens() or {}
        except TokenFileCorruptedError as e:
            logger.warning("Ignoring unreadable token file %s: %s", self.token_path, e)
            return {}

    def _save_tokens(self, tokens: dict[str, OAuthCredentials]) -> None:
        """Encrypt and atomically write the credential map.

        Args:
            tokens: Map of server name to credentials.
        """
        self._ensure_credentials_dir()

        payload = json.dumps({name: creds.model_dump() for name, creds in tokens.items()})
        blob = encrypt(payload, self._master_key)

        fd, tmp_name = tempfile.mkstemp(
            dir=self.credentials_dir, prefix=".tokens-", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(blob)
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.token_path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    async def get_credentials(self, server_name: str) -> OAuthCredentials | None:
        """Get stored credentials.

        A corrupted token file reads as "no credentials" instead of raising.

        Args:
            server_name: Key the credentials are stored under.

        Returns:
            OAuthCredentials if stored, None otherwise.
        """
        return self._load_tokens_or_empty().get(server_name)

    async def set_credentials(self, credentials: OAuthCredentials) -> None:
        """Store credentials, preserving entries for other servers.

        Args:
            credentials: Credentials to store.

        Raises:
            ValueError: If the credentials fail validation.
        """
        self.validate_credentials(credentials)

        tokens = self._load_tokens_or_empty()
        tokens[credentials.server_name] = credentials
        self._save_tokens(tokens)
        logger.debug("Stored credentials for %s in %s", credentials.server_name, self.token_path)

    async def delete_credentials(self, server_name: str) -> None:
        """Delete stored credentials.

        The token file is removed once its last entry is deleted.

        Args:
            server_name: Key the credentials are stored under.

        Raises:
            CredentialsNotFoundError: If nothing is stored under server_name.
        """
        try:
            tokens = self._load_tokens()
        except TokenFileCorruptedError as e:
            logger.warning("Ignoring unreadable token file %s: %s", self.token_path, e)
            tokens = None

        if not tokens or server_name not in tokens:
            raise CredentialsNotFoundError(server_name)

        del tokens[server_name]
        if tokens:
            self._save_tokens(tokens)
        else:
            self.token_path.unlink(missing_ok=True)
        logger.debug("Deleted credentials for %s", server_name)

    async def list_servers(self) -> list[str]:
        """List server names with stored credentials."""
        return list(self._load_tokens_or_empty())

    async def get_all_credentials(self) -> dict[str, OAuthCredentials]:
        """Get every stored credential keyed by server name."""
        return self._load_tokens_or_empty()

    async def clear_all(self) -> None:
        """Delete the token file. A missing file is not an error."""
        self.token_path.unlink(missing_ok=True)
