"""Unit tests for KeychainTokenStorage with the keyring module mocked."""

from collections.abc import Generator
from unittest.mock import MagicMock, patch

import pytest
from keyring.backends import fail
from keyring.errors import KeyringError, PasswordDeleteError

from gworkspace_extension.auth.models import OAuthCredentials, OAuthToken
from gworkspace_extension.auth.token_storage import CredentialsNotFoundError, KeychainTokenStorage
from gworkspace_extension.auth.token_storage.keychain_storage import INDEX_ACCOUNT


class FakeKeyring:
    """Dict-backed stand-in for the keyring module functions."""

    def __init__(self) -> None:
        self.passwords: dict[tuple[str, str], str] = {}
        self.backend: object = MagicMock()

    def get_keyring(self) -> object:
        return self.backend

    def get_password(self, service: str, account: str) -> str | None:
        return self.passwords.get((service, account))

    def set_password(self, service: str, account: str, password: str) -> None:
        self.passwords[(service, account)] = password

    def delete_password(self, service: str, account: str) -> None:
        if (service, account) not in self.passwords:
            raise PasswordDeleteError("Password not found")
        del self.passwords[(service, account)]


@pytest.fixture
def fake_keyring() -> Generator[FakeKeyring, None, None]:
    """Patch keyring in the keychain storage module."""
    fake = FakeKeyring()
    with patch("gworkspace_extension.auth.token_storage.keychain_storage.keyring", fake):
        yield fake


@pytest.fixture
def keychain_storage(fake_keyring: FakeKeyring) -> KeychainTokenStorage:
    """Keychain storage over the fake keyring."""
    return KeychainTokenStorage("test-service")


@pytest.mark.unit
class TestKeychainAvailability:
    """Tests for KeychainTokenStorage.is_available()."""

    @pytest.mark.asyncio
    async def test_should_be_available_with_working_backend(
        self, keychain_storage: KeychainTokenStorage, fake_keyring: FakeKeyring
    ) -> None:
        """Verify the probe round trip succeeds and leaves nothing behind."""
        assert await keychain_storage.is_available() is True
        assert fake_keyring.passwords == {}

    @pytest.mark.asyncio
    async def test_should_be_unavailable_with_fail_backend(
        self, keychain_storage: KeychainTokenStorage, fake_keyring: FakeKeyring
    ) -> None:
        """Verify keyring's fail backend means no keychain."""
        fake_keyring.backend = fail.Keyring()
        assert await keychain_storage.is_available() is False

    @pytest.mark.asyncio
    async def test_should_be_unavailable_when_probe_raises(
        self, keychain_storage: KeychainTokenStorage, fake_keyring: FakeKeyring
    ) -> None:
        """Verify errors from the backend are reported as unavailable."""
        with patch.object(fake_keyring, "set_password", side_effect=KeyringError("locked")):
            assert await keychain_storage.is_available() is False


@pytest.mark.unit
class TestKeychainCrud:
    """Tests for keychain reads, writes and deletes."""

    @pytest.mark.asyncio
    async def test_should_store_and_retrieve_credentials(
        self, keychain_storage: KeychainTokenStorage, credentials: OAuthCredentials
    ) -> None:
        """Verify credentials survive a round trip through the keychain."""
        await keychain_storage.set_credentials(credentials)
        assert await keychain_storage.get_credentials("test-server") == credentials

    @pytest.mark.asyncio
    async def test_should_sanitize_account_name(
        self,
        keychain_storage: KeychainTokenStorage,
        fake_keyring: FakeKeyring,
        valid_token: OAuthToken,
    ) -> None:
        """Verify unsafe characters are replaced in the account name."""
        await keychain_storage.set_credentials(
            OAuthCredentials(server_name="user@example.com/x", token=valid_token)
        )

        assert ("test-service", "user_example.com_x") in fake_keyring.passwords
        assert await keychain_storage.list_servers() == ["user@example.com/x"]

    @pytest.mark.asyncio
    async def test_should_return_none_for_absent_entry(
        self, keychain_storage: KeychainTokenStorage
    ) -> None:
        """Verify unknown servers read as None."""
        assert await keychain_storage.get_credentials("missing") is None

    @pytest.mark.asyncio
    async def test_should_return_none_for_unreadable_entry(
        self, keychain_storage: KeychainTokenStorage, fake_keyring: FakeKeyring
    ) -> None:
        """Verify malformed JSON in the keychain reads as None."""
        fake_keyring.passwords[("test-service", "bad")] = "{not json"
        assert await keychain_storage.get_credentials("bad") is None

    @pytest.mark.asyncio
    async def test_should_track_servers_in_index(
        self,
        keychain_storage: KeychainTokenStorage,
        fake_keyring: FakeKeyring,
        valid_token: OAuthToken,
    ) -> None:
        """Verify list_servers and get_all_credentials use the index."""
        for name in ("one", "two"):
            await keychain_storage.set_credentials(OAuthCredentials(server_name=name, token=valid_token))
        await keychain_storage.set_credentials(OAuthCredentials(server_name="one", token=valid_token))

        assert await keychain_storage.list_servers() == ["one", "two"]
        assert set(await keychain_storage.get_all_credentials()) == {"one", "two"}
        assert ("test-service", INDEX_ACCOUNT) in fake_keyring.passwords

    @pytest.mark.asyncio
    @pytest.mark.parametrize("index", ["5", '{"one": 1}', "null", "{broken"])
    async def test_should_reset_unreadable_index(
        self,
        keychain_storage: KeychainTokenStorage,
        fake_keyring: FakeKeyring,
        credentials: OAuthCredentials,
        index: str,
    ) -> None:
        """Verify an index that is not a JSON list is treated as empty."""
        fake_keyring.passwords[("test-service", INDEX_ACCOUNT)] = index

        assert await keychain_storage.list_servers() == []
        await keychain_storage.set_credentials(credentials)
        assert await keychain_storage.list_servers() == ["test-server"]

    @pytest.mark.asyncio
    async def test_should_delete_entry_and_index(
        self,
        keychain_storage: KeychainTokenStorage,
        fake_keyring: FakeKeyring,
        credentials: OAuthCredentials,
    ) -> None:
        """Verify delete removes the entry and the emptied index."""
        await keychain_storage.set_credentials(credentials)
        await keychain_storage.delete_credentials("test-server")

        assert fake_keyring.passwords == {}
        assert await keychain_storage.list_servers() == []

    @pytest.mark.asyncio
    async def test_should_raise_when_deleting_absent_entry(
        self, keychain_storage: KeychainTokenStorage
    ) -> None:
        """Verify deleting an unknown server raises CredentialsNotFoundError."""
        with pytest.raises(CredentialsNotFoundError):
            await keychain_storage.delete_credentials("missing")

    @pytest.mark.asyncio
    async def test_should_clear_all_entries(
        self,
        keychain_storage: KeychainTokenStorage,
        fake_keyring: FakeKeyring,
        valid_token: OAuthToken,
    ) -> None:
        """Verify clear_all removes every indexed entry."""
        for name in ("one", "two"):
            await keychain_storage.set_credentials(OAuthCredentials(server_name=name, token=valid_token))

        await keychain_storage.clear_all()

        assert fake_keyring.passwords == {}

    @pytest.mark.asyncio
    async def test_should_propagate_clear_failure(
        self,
        keychain_storage: KeychainTokenStorage,
        fake_keyring: FakeKeyring,
        credentials: OAuthCredentials,
    ) -> None:
        """Verify backend errors during clear_all are re-raised."""
        await keychain_storage.set_credentials(credentials)

        with patch.object(fake_keyring, "delete_password", side_effect=KeyringError("locked")):
            with pytest.raises(KeyringError):
                await keychain_storage.clear_all()
