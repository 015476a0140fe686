"""OAuth manager for Google Workspace authentication.

Obtains an authorized ``google.oauth2.credentials.Credentials`` for the
requested scopes, in order of preference:

1. The client cached in the session, if it carries a refresh token.
2. Credentials persisted by the credential store, if they cover every
   required scope. Tokens missing a scope are deleted, never reused.
3. An interactive loopback flow in the user's browser.

This process holds only the public client ID. Google redirects to a
trusted intermediary that owns the client secret, exchanges the code, and
forwards the resulting tokens to the local ``/oauth2callback`` listener.

Environment Variables:
    OAUTH_CALLBACK_PORT: Fixed port for the loopback listener (default: ephemeral).
    OAUTH_CALLBACK_HOST: Host for the loopback listener (default: localhost).
"""

import asyncio
import base64
import json
import logging
import secrets
import sys
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow

from gworkspace_extension import config
from gworkspace_extension.auth.callback_server import (
    AuthenticationError,
    CallbackServer,
    find_available_port,
)
from gworkspace_extension.auth.credential_storage import OAuthCredentialStorage
from gworkspace_extension.auth.models import OAuthToken, TokenStatus
from gworkspace_extension.auth.token_storage import CredentialsNotFoundError
from gworkspace_extension.utils.browser import open_browser_securely, should_launch_browser

logger = logging.getLogger(__name__)

# Public client ID; the secret is held by the intermediary, never by this process
CLIENT_ID = "338689075775-o75k922vn5fdl18qergr96rp8g63e4d7.apps.googleusercontent.com"
AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
TOKEN_URI = "https://oauth2.googleapis.com/token"  # nosec B105 - public Google endpoint
INTERMEDIARY_REDIRECT_URI = "https://google-workspace-extension.geminicli.com"

AUTH_TIMEOUT_SECONDS = 5 * 60

# Google Workspace OAuth scopes
GOOGLE_WORKSPACE_SCOPES = [
    "https://www.googleapis.com/auth/documents",
    "https://www.googleapis.com/auth/drive",
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/chat.spaces",
    "https://www.googleapis.com/auth/chat.messages",
    "https://www.googleapis.com/auth/chat.memberships",
    "https://www.googleapis.com/auth/userinfo.profile",
    "https://www.googleapis.com/auth/gmail.modify",
    "https://www.googleapis.com/auth/directory.readonly",
    "https://www.googleapis.com/auth/presentations.readonly",
    "https://www.googleapis.com/auth/spreadsheets.readonly",
]


class AuthState(str, Enum):
    """Progress of OAuthManager.get_authenticated_client()."""

    NO_CLIENT = "no_client"
    CHECKING_CACHE = "checking_cache"
    CHECKING_PERSISTED = "checking_persisted"
    AWAITING_USER_AUTH = "awaiting_user_auth"
    PERSISTING = "persisting"
    READY = "ready"
    FAILED = "failed"


class AuthTimeoutError(AuthenticationError, TimeoutError):
    """Raised when the user does not complete authorization in time."""


@dataclass
class AuthSession:
    """Authenticated client shared by the components of one process.

    Attributes:
        client: Most recently obtained credentials, if any.
        lock: Serialises the check-then-set on ``client``.
    """

    client: Credentials | None = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


BrowserLauncher = Callable[[str], Awaitable[None]]


def _describe_timeout(seconds: float) -> str:
    if seconds >= 60 and seconds % 60 == 0:
        minutes = int(seconds // 60)
        return f"{minutes} minute{'s' if minutes != 1 else ''}"
    return f"{seconds:g} seconds"


class OAuthManager:
    """OAuth authentication manager for Google Workspace.

    Attributes:
        scopes: Scopes every returned client must carry.
        credential_storage: Persistence for the account's token.
        session: Holder of the cached authenticated client.
        auth_timeout: Seconds to wait for the browser flow to complete.
        state: Current step of the last get_authenticated_client() call.

    Example:
        ```python
        manager = OAuthManager(scopes=GOOGLE_WORKSPACE_SCOPES)

        credentials = await manager.get_authenticated_client()
        headers = {"Authorization": f"Bearer {credentials.token}"}
        ```
    """

    def __init__(
        self,
        scopes: list[str] | None = None,
        credential_storage: OAuthCredentialStorage | None = None,
        session: AuthSession | None = None,
        browser_launcher: BrowserLauncher | None = None,
        auth_timeout: float = AUTH_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize OAuth manager.

        Args:
            scopes: Required scopes. Uses GOOGLE_WORKSPACE_SCOPES if not specified.
            credential_storage: Token persistence. Creates default if not provided.
            session: Shared session. A private session is created if not provided.
            browser_launcher: Coroutine opening a URL. Defaults to open_browser_securely.
            auth_timeout: Seconds to wait for the interactive flow.
        """
        self.scopes = list(scopes) if scopes is not None else list(GOOGLE_WORKSPACE_SCOPES)
        self.credential_storage = credential_storage or OAuthCredentialStorage()
        self.session = session or AuthSession()
        self.auth_timeout = auth_timeout
        self.state = AuthState.NO_CLIENT
        self._open_browser = browser_launcher or open_browser_securely

    def _set_state(self, state: AuthState) -> None:
        logger.debug("Auth state: %s -> %s", self.state.value, state.value)
        self.state = state

    def _token_to_credentials(self, token: OAuthToken) -> Credentials:
        """Convert a stored OAuthToken to google-auth Credentials.

        Args:
            token: OAuth token to convert.

        Returns:
            Credentials carrying the public client ID and no secret.
        """
        expiry = None
        if token.expires_at is not None:
            # google-auth compares expiry against naive UTC datetimes
            expiry = datetime.fromtimestamp(token.expires_at / 1000, tz=timezone.utc).replace(
                tzinfo=None
            )

        return Credentials(
            token=token.access_token,
            refresh_token=token.refresh_token,
            token_uri=TOKEN_URI,
            client_id=CLIENT_ID,
            scopes=token.scope.split() if token.scope else None,
            expiry=expiry,
        )

    async def get_authenticated_client(self) -> Credentials:
        """Get credentials authorized for the required scopes.

        Returns:
            Authorized google-auth Credentials.

        Raises:
            CallbackPortError: If OAUTH_CALLBACK_PORT is invalid.
            OAuthStateMismatchError: If the callback state does not match.
            OAuthProviderError: If Google reported an authorization error.
            MissingTokensError: If the callback carried no tokens.
            AuthTimeoutError: If the browser flow did not complete in time.
        """
        async with self.session.lock:
            self._set_state(AuthState.CHECKING_CACHE)
            cached = self.session.client
            if cached is not None and cached.refresh_token:
                logger.debug("Returning cached client")
                self._set_state(AuthState.READY)
                return cached

            self._set_state(AuthState.CHECKING_PERSISTED)
            client = await self._load_persisted_client()
            if client is None:
                client = await self._authenticate_interactively()

            self.session.client = client
            self._set_state(AuthState.READY)
            return client

    async def _load_persisted_client(self) -> Credentials | None:
        """Load stored credentials if they cover every required scope.

        Stored tokens missing a required scope are deleted.
        """
        token = await self.credential_storage.load_credentials()
        if token is None:
            logger.info("No saved credentials found")
            return None

        missing = token.missing_scopes(self.scopes)
        if missing:
            logger.info(
                "Saved token is missing required scopes (%s); removing it to force re-authentication",
                ", ".join(missing),
            )
            await self.credential_storage.clear_credentials()
            return None

        logger.info("Loaded saved credentials")
        return self._token_to_credentials(token)

    async def _authenticate_interactively(self) -> Credentials:
        self._set_state(AuthState.AWAITING_USER_AUTH)
        try:
            token = await self._run_oauth_flow()
        except Exception:
            self._set_state(AuthState.FAILED)
            raise

        self._set_state(AuthState.PERSISTING)
        await self.credential_storage.save_credentials(token)
        return self._token_to_credentials(token)

    def _build_authorization_url(self, redirect_uri: str | None, csrf_token: str) -> str:
        """Build the Google authorization URL.

        Args:
            redirect_uri: Loopback URI to forward tokens to, or None for the
                manual flow.
            csrf_token: Token the forwarded state must equal.

        Returns:
            Authorization URL pointing Google at the intermediary.
        """
        payload: dict[str, object] = {"manual": redirect_uri is None, "csrf": csrf_token}
        if redirect_uri is not None:
            payload["uri"] = redirect_uri
        state = base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")

        client_config = {
            "installed": {
                "client_id": CLIENT_ID,
                "auth_uri": AUTH_URI,
                "token_uri": TOKEN_URI,
            }
        }
        # No PKCE: the intermediary performs the code exchange
        flow = Flow.from_client_config(
            client_config,
            scopes=self.scopes,
            redirect_uri=INTERMEDIARY_REDIRECT_URI,
            autogenerate_code_verifier=False,
        )
        auth_url, _ = flow.authorization_url(
            access_type="offline",
            prompt="consent",
            state=state,
        )
        return auth_url

    async def _run_oauth_flow(self) -> OAuthToken:
        """Run the loopback flow and return the delivered token."""
        logger.info("Requesting authentication with scopes: %s", ", ".join(self.scopes))

        host = config.get_callback_host()
        port = config.get_callback_port()
        if port is None:
            port = find_available_port(host)

        gui_available = should_launch_browser()
        csrf_token = secrets.token_hex(32)

        # Bind before the browser can navigate anywhere
        server = CallbackServer(host, port, expected_state=csrf_token)
        try:
            redirect_uri = server.redirect_uri if gui_available else None
            auth_url = self._build_authorization_url(redirect_uri, csrf_token)
            await self._launch_browser(auth_url, gui_available)

            print("Waiting for authentication...", file=sys.stderr)
            try:
                return await asyncio.wait_for(server.wait_for_token(), timeout=self.auth_timeout)
            except asyncio.TimeoutError:
                raise AuthTimeoutError(
                    f"Authentication timed out after {_describe_timeout(self.auth_timeout)}. "
                    "The browser tab may have gotten stuck in a loading state. "
                    "Please try again."
                ) from None
        finally:
            server.close()

    async def _launch_browser(self, auth_url: str, gui_available: bool) -> None:
        """Open the authorization URL, falling back to printing it."""
        if gui_available:
            try:
                await self._open_browser(auth_url)
                return
            except OSError as e:
                logger.warning("Failed to open browser: %s", e)

        print("Open this URL in your browser to authorize access:", file=sys.stderr)
        print(auth_url, file=sys.stderr)

    async def get_status(self) -> tuple[TokenStatus, OAuthToken | None]:
        """Get the status of the stored token.

        Returns:
            Tuple of (TokenStatus, OAuthToken or None). INVALID means the
            stored token lacks a required scope.
        """
        token = await self.credential_storage.load_credentials()
        if token is None:
            return (TokenStatus.MISSING, None)
        if token.missing_scopes(self.scopes):
            return (TokenStatus.INVALID, token)
        if token.is_expired():
            return (TokenStatus.EXPIRED, token)
        return (TokenStatus.VALID, token)

    async def has_valid_tokens(self) -> bool:
        """Check if a stored, unexpired token covers the required scopes."""
        status, _ = await self.get_status()
        return status == TokenStatus.VALID

    async def clear_credentials(self) -> bool:
        """Forget the cached client and delete stored credentials.

        Returns:
            True if stored credentials were deleted, False if none existed.
        """
        async with self.session.lock:
            self.session.client = None
            self._set_state(AuthState.NO_CLIENT)
            try:
                await self.credential_storage.clear_credentials()
            except CredentialsNotFoundError:
                return False
            return True
