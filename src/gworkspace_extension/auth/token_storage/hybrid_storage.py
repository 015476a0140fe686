"""Hybrid credential storage: OS keychain with encrypted-file fallback.

The backend is chosen once, on first use, and reused for the lifetime of
the storage object:

1. GWORKSPACE_FORCE_FILE_STORAGE set: encrypted file.
2. Keychain available: keychain.
3. Otherwise, including a failing availability probe: encrypted file.
"""

import asyncio
import logging
from pathlib import Path

from gworkspace_extension import config
from gworkspace_extension.auth.models import OAuthCredentials, TokenStorageType
from gworkspace_extension.auth.token_storage.base import BaseTokenStorage
from gworkspace_extension.auth.token_storage.file_storage import FileTokenStorage
from gworkspace_extension.auth.token_storage.keychain_storage import KeychainTokenStorage

logger = logging.getLogger(__name__)


class HybridTokenStorage(BaseTokenStorage):
    """Credential storage that picks keychain or encrypted file storage.

    Attributes:
        token_path: Encrypted token file used when falling back to file storage.
        key_path: Master key file used when falling back to file storage.
    """

    def __init__(
        self,
        service_name: str,
        token_path: Path | None = None,
        key_path: Path | None = None,
    ) -> None:
        super().__init__(service_name)
        self.token_path = token_path
        self.key_path = key_path
        self._selected: tuple[BaseTokenStorage, TokenStorageType] | None = None
        self._lock = asyncio.Lock()

    async def _initialize_storage(self) -> tuple[BaseTokenStorage, TokenStorageType]:
        if config.force_file_storage():
            logger.info("File storage forced via %s", config.FORCE_FILE_STORAGE_ENV)
            return await self._use_file_storage()

        keychain = KeychainTokenStorage(self.service_name)
        try:
            available = await keychain.is_available()
        except Exception as e:
            logger.warning("Keychain probe failed, using encrypted file storage: %s", e)
            available = False

        if available:
            logger.info("Using OS keychain for credential storage")
            return keychain, TokenStorageType.KEYCHAIN

        logger.info("Keychain unavailable, using encrypted file storage")
        return await self._use_file_storage()

    async def _use_file_storage(self) -> tuple[BaseTokenStorage, TokenStorageType]:
        storage = await FileTokenStorage.create(
            self.service_name, token_path=self.token_path, key_path=self.key_path
        )
        return storage, TokenStorageType.ENCRYPTED_FILE

    async def _select(self) -> tuple[BaseTokenStorage, TokenStorageType]:
        if self._selected is None:
            async with self._lock:
                if self._selected is None:
                    self._selected = await self._initialize_storage()
        return self._selected

    async def _get_storage(self) -> BaseTokenStorage:
        storage, _ = await self._select()
        return storage

    async def get_storage_type(self) -> TokenStorageType:
        """Get the backend in use, selecting it if not yet chosen."""
        _, storage_type = await self._select()
        return storage_type

    async def get_credentials(self, server_name: str) -> OAuthCredentials | None:
        storage = await self._get_storage()
        return await storage.get_credentials(server_name)

    async def set_credentials(self, credentials: OAuthCredentials) -> None:
        storage = await self._get_storage()
        await storage.set_credentials(credentials)

    async def delete_credentials(self, server_name: str) -> None:
        storage = await self._get_storage()
        await storage.delete_credentials(server_name)

    async def list_servers(self) -> list[str]:
        storage = await self._get_storage()
        return await storage.list_servers()

    async def get_all_credentials(self) -> dict[str, OAuthCredentials]:
        storage = await self._get_storage()
        return await storage.get_all_credentials()

    async def clear_all(self) -> None:
        storage = await self._get_storage()
        await storage.clear_all()
