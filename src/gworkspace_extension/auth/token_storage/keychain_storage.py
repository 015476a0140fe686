"""OS keychain storage for OAuth credentials.

Uses the ``keyring`` library, which selects macOS Keychain, Windows
Credential Locker or a freedesktop Secret Service provider. Each entry is
stored under the service name with the sanitised server name as account
and the credential JSON as password.

``keyring`` has no enumeration API, so the store also keeps an index entry
listing the server names it has written.
"""

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any

import keyring
from keyring.backends import fail
from keyring.errors import KeyringError, PasswordDeleteError
from pydantic import ValidationError

from gworkspace_extension.auth.models import OAuthCredentials
from gworkspace_extension.auth.token_storage.base import (
    BaseTokenStorage,
    CredentialsNotFoundError,
)

logger = logging.getLogger(__name__)

INDEX_ACCOUNT = "__index__"
PROBE_ACCOUNT = "__keychain_test__"


class KeychainTokenStorage(BaseTokenStorage):
    """Credential storage backed by the operating system keychain.

    Call :meth:`is_available` before use; it never raises.
    """

    async def _run(self, func: Callable[..., Any], *args: Any) -> Any:
        """Run a blocking keyring call in the default executor."""
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, func, *args)

    async def is_available(self) -> bool:
        """Check whether a usable keychain backend is present.

        Performs a set/get/delete round trip on a throwaway entry.

        Returns:
            True if the keychain works, False on any failure.
        """
        try:
            return await self._run(self._probe)
        except Exception as e:
            logger.debug("Keychain unavailable: %s", e)
            return False

    def _probe(self) -> bool:
        if isinstance(keyring.get_keyring(), fail.Keyring):
            return False

        keyring.set_password(self.service_name, PROBE_ACCOUNT, "probe")
        ok = keyring.get_password(self.service_name, PROBE_ACCOUNT) == "probe"
        keyring.delete_password(self.service_name, PROBE_ACCOUNT)
        return ok

    def _read_index(self) -> list[str]:
        raw = keyring.get_password(self.service_name, INDEX_ACCOUNT)
        if not raw:
            return []
        try:
            names = json.loads(raw)
        except json.JSONDecodeError:
            names = None
        if not isinstance(names, list):
            logger.warning("Keychain index for %s is unreadable, resetting", self.service_name)
            return []
        return [name for name in names if isinstance(name, str)]

    def _write_index(self, names: list[str]) -> None:
        if names:
            keyring.set_password(self.service_name, INDEX_ACCOUNT, json.dumps(names))
        else:
            try:
                keyring.delete_password(self.service_name, INDEX_ACCOUNT)
            except PasswordDeleteError:
                pass

    def _get(self, server_name: str) -> OAuthCredentials | None:
        raw = keyring.get_password(self.service_name, self.sanitize_server_name(server_name))
        if raw is None:
            return None
        try:
            return OAuthCredentials.model_validate_json(raw)
        except ValidationError as e:
            logger.warning("Ignoring unreadable keychain entry for %s: %s", server_name, e)
            return None

    def _set(self, credentials: OAuthCredentials) -> None:
        keyring.set_password(
            self.service_name,
            self.sanitize_server_name(credentials.server_name),
            credentials.model_dump_json(),
        )
        names = self._read_index()
        if credentials.server_name not in names:
            names.append(credentials.server_name)
            self._write_index(names)

    def _delete(self, server_name: str) -> None:
        try:
            keyring.delete_password(self.service_name, self.sanitize_server_name(server_name))
        except PasswordDeleteError:
            raise CredentialsNotFoundError(server_name) from None

        names = self._read_index()
        if server_name in names:
            names.remove(server_name)
            self._write_index(names)

    def _get_all(self) -> dict[str, OAuthCredentials]:
        result: dict[str, OAuthCredentials] = {}
        for name in self._read_index():
            credentials = self._get(name)
            if credentials is not None:
                result[name] = credentials
        return result

    def _clear(self) -> None:
        for name in self._read_index():
            try:
                keyring.delete_password(self.service_name, self.sanitize_server_name(name))
            except PasswordDeleteError:
                logger.debug("Keychain entry for %s already removed", name)
        self._write_index([])

    async def get_credentials(self, server_name: str) -> OAuthCredentials | None:
        """Get stored credentials, or None if absent or unreadable."""
        return await self._run(self._get, server_name)

    async def set_credentials(self, credentials: OAuthCredentials) -> None:
        """Store credentials in the keychain.

        Raises:
            ValueError: If the credentials fail validation.
            KeyringError: If the keychain rejects the write.
        """
        self.validate_credentials(credentials)
        await self._run(self._set, credentials)

    async def delete_credentials(self, server_name: str) -> None:
        """Delete stored credentials.

        Raises:
            CredentialsNotFoundError: If nothing is stored under server_name.
        """
        await self._run(self._delete, server_name)

    async def list_servers(self) -> list[str]:
        """List server names with stored credentials."""
        return list(await self._run(self._get_all))

    async def get_all_credentials(self) -> dict[str, OAuthCredentials]:
        """Get every stored credential keyed by server name."""
        return await self._run(self._get_all)

    async def clear_all(self) -> None:
        """Delete every entry this store has written."""
        try:
            await self._run(self._clear)
        except KeyringError:
            logger.exception("Failed to clear keychain entries for %s", self.service_name)
            raise
