"""Storage of the signed-in account's OAuth token.

Wraps a credential store and fixes the key the active account is stored
under, so callers deal in OAuthToken objects only.
"""

import logging

from gworkspace_extension.auth.models import (
    OAuthCredentials,
    OAuthToken,
    TokenStorageType,
    now_millis,
)
from gworkspace_extension.auth.token_storage import BaseTokenStorage, HybridTokenStorage

logger = logging.getLogger(__name__)

KEYCHAIN_SERVICE_NAME = "gworkspace-extension-oauth"
MAIN_ACCOUNT_KEY = "main-account"


class OAuthCredentialStorage:
    """Load, save and clear the main account's OAuth token.

    Attributes:
        storage: Underlying credential store.
    """

    def __init__(self, storage: BaseTokenStorage | None = None) -> None:
        """Initialize credential storage.

        Args:
            storage: Credential store to use. Defaults to a HybridTokenStorage.
        """
        self.storage = storage or HybridTokenStorage(KEYCHAIN_SERVICE_NAME)

    async def load_credentials(self) -> OAuthToken | None:
        """Load the stored token, or None if nothing is stored."""
        credentials = await self.storage.get_credentials(MAIN_ACCOUNT_KEY)
        if credentials is None:
            return None
        return credentials.token

    async def save_credentials(self, token: OAuthToken) -> None:
        """Persist a token for the main account."""
        await self.storage.set_credentials(
            OAuthCredentials(
                server_name=MAIN_ACCOUNT_KEY,
                token=token,
                updated_at=now_millis(),
            )
        )
        logger.info("Saved OAuth credentials for %s", MAIN_ACCOUNT_KEY)

    async def clear_credentials(self) -> None:
        """Delete the stored token.

        Raises:
            CredentialsNotFoundError: If no token is stored.
        """
        await self.storage.delete_credentials(MAIN_ACCOUNT_KEY)
        logger.info("Cleared OAuth credentials for %s", MAIN_ACCOUNT_KEY)

    async def get_storage_type(self) -> TokenStorageType | None:
        """Get the backend in use, or None for a store with a fixed backend."""
        if isinstance(self.storage, HybridTokenStorage):
            return await self.storage.get_storage_type()
        return None
