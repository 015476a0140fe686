"""Credential storage backends.

``HybridTokenStorage`` is the entry point: it prefers the OS keychain and
falls back to an AES-256-GCM encrypted file.
"""

from gworkspace_extension.auth.token_storage.base import (
    BaseTokenStorage,
    CredentialsNotFoundError,
)
from gworkspace_extension.auth.token_storage.file_storage import FileTokenStorage
from gworkspace_extension.auth.token_storage.hybrid_storage import HybridTokenStorage
from gworkspace_extension.auth.token_storage.keychain_storage import KeychainTokenStorage

__all__ = [
    "BaseTokenStorage",
    "CredentialsNotFoundError",
    "FileTokenStorage",
    "HybridTokenStorage",
    "KeychainTokenStorage",
]
