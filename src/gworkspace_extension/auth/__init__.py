"""OAuth authentication for the Google Workspace extension.

Quick Start:
    ```python
    from gworkspace_extension.auth import OAuthManager

    manager = OAuthManager()

    # Cached client, stored credentials, or the browser flow
    credentials = await manager.get_authenticated_client()
    ```
"""

from gworkspace_extension.auth.callback_server import (
    AuthenticationError,
    CallbackServerError,
    MissingTokensError,
    OAuthProviderError,
    OAuthStateMismatchError,
    UnexpectedCallbackError,
)
from gworkspace_extension.auth.credential_storage import OAuthCredentialStorage
from gworkspace_extension.auth.models import (
    OAuthCredentials,
    OAuthToken,
    TokenStatus,
    TokenStorageType,
)
from gworkspace_extension.auth.oauth_manager import (
    GOOGLE_WORKSPACE_SCOPES,
    AuthSession,
    AuthState,
    AuthTimeoutError,
    OAuthManager,
)

__all__ = [
    "OAuthManager",
    "AuthSession",
    "AuthState",
    "OAuthCredentialStorage",
    "OAuthCredentials",
    "OAuthToken",
    "TokenStatus",
    "TokenStorageType",
    "GOOGLE_WORKSPACE_SCOPES",
    "AuthenticationError",
    "AuthTimeoutError",
    "CallbackServerError",
    "MissingTokensError",
    "OAuthProviderError",
    "OAuthStateMismatchError",
    "UnexpectedCallbackError",
]
