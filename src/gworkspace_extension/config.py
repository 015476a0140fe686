"""Environment-driven configuration for gworkspace-extension.

Environment Variables:
    OAUTH_CALLBACK_PORT: Fixed port for the OAuth loopback listener
        (integer 1-65535). An ephemeral port is used when unset.
    OAUTH_CALLBACK_HOST: Host the loopback listener binds to (default: localhost).
    GWORKSPACE_FORCE_FILE_STORAGE: When truthy, skip the OS keychain and
        always use the encrypted token file.
    GWORKSPACE_EXTENSION_HOME: Directory holding the encrypted token file
        and master key (default: ~/.gworkspace-extension).
"""

import os
import re
from pathlib import Path

CALLBACK_PORT_ENV = "OAUTH_CALLBACK_PORT"
CALLBACK_HOST_ENV = "OAUTH_CALLBACK_HOST"
FORCE_FILE_STORAGE_ENV = "GWORKSPACE_FORCE_FILE_STORAGE"
DATA_DIR_ENV = "GWORKSPACE_EXTENSION_HOME"

DEFAULT_CALLBACK_HOST = "localhost"
DEFAULT_DATA_DIR = Path.home() / ".gworkspace-extension"

TOKEN_FILE_NAME = "gworkspace-extension-token.json"
MASTER_KEY_FILE_NAME = ".gworkspace-extension-master-key"

_TRUTHY = {"1", "true", "yes", "on"}
_PORT_PATTERN = re.compile(r"[0-9]+")


class CallbackPortError(ValueError):
    """Raised when OAUTH_CALLBACK_PORT is not a valid TCP port."""


def get_callback_port() -> int | None:
    """Get the configured OAuth callback port.

    Returns:
        The port from OAUTH_CALLBACK_PORT, or None when unset.

    Raises:
        CallbackPortError: If the value is not a decimal integer in [1, 65535].
    """
    raw = os.environ.get(CALLBACK_PORT_ENV)
    if not raw:
        return None

    value = raw.strip()
    if not _PORT_PATTERN.fullmatch(value):
        raise CallbackPortError(f'Invalid value for {CALLBACK_PORT_ENV}: "{raw}"')

    port = int(value)
    if port <= 0 or port > 65535:
        raise CallbackPortError(f'Invalid value for {CALLBACK_PORT_ENV}: "{raw}"')
    return port


def get_callback_host() -> str:
    """Get the host the OAuth loopback listener binds to."""
    return os.environ.get(CALLBACK_HOST_ENV) or DEFAULT_CALLBACK_HOST


def force_file_storage() -> bool:
    """Check whether keychain storage has been disabled via the environment."""
    return os.environ.get(FORCE_FILE_STORAGE_ENV, "").strip().lower() in _TRUTHY


def get_data_dir() -> Path:
    """Get the directory holding the encrypted token file and master key."""
    override = os.environ.get(DATA_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return DEFAULT_DATA_DIR


def get_token_path() -> Path:
    """Get the path of the encrypted credential map."""
    return get_data_dir() / TOKEN_FILE_NAME


def get_master_key_path() -> Path:
    """Get the path of the encryption master key."""
    return get_data_dir() / MASTER_KEY_FILE_NAME
