"""One-shot loopback listener for the OAuth redirect.

The listener binds when constructed, so it is accepting connections before
the browser is pointed at the authorization URL. It then handles exactly
one request and always releases its port, whether that request succeeds,
fails validation, or the caller gives up waiting.
"""

import asyncio
import logging
import secrets
import socket
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any
from urllib.parse import parse_qs, urlparse

from gworkspace_extension.auth.models import OAuthToken

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/oauth2callback"
POLL_INTERVAL_SECONDS = 0.2
# Upper bound on a single connection that never sends a complete request
REQUEST_TIMEOUT_SECONDS = 5.0

SUCCESS_PAGE = (
    b"<html><body><h1>Authentication successful!</h1>"
    b"<p>Please return to the console.</p></body></html>"
)
FAILURE_PAGE = (
    b"<html><body><h1>Authentication failed</h1>"
    b"<p>Please close this window and try again.</p></body></html>"
)


class AuthenticationError(Exception):
    """Base class for interactive authorization failures."""


class UnexpectedCallbackError(AuthenticationError):
    """Raised when the listener receives a request for another path."""


class OAuthStateMismatchError(AuthenticationError):
    """Raised when the callback state does not match the CSRF token."""


class OAuthProviderError(AuthenticationError):
    """Raised when the authorization server reports an error.

    Attributes:
        error_code: OAuth error code (e.g., "access_denied").
        error_description: Human-readable description.
    """

    def __init__(self, error_code: str, error_description: str = "") -> None:
        self.error_code = error_code
        self.error_description = error_description or "No additional details provided"
        super().__init__(f"Google OAuth error: {error_code}. {self.error_description}")


class MissingTokensError(AuthenticationError):
    """Raised when the callback carries no usable tokens."""


class CallbackServerError(AuthenticationError):
    """Raised when the loopback listener cannot bind or serve."""


def find_available_port(host: str) -> int:
    """Ask the OS for a free port by binding a throwaway socket to port 0."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((host, 0))
        return sock.getsockname()[1]


def parse_callback(path: str, expected_state: str) -> OAuthToken:
    """Validate a callback request path and extract the token.

    Args:
        path: Request path including the query string.
        expected_state: CSRF token the state parameter must equal.

    Returns:
        The token delivered by the callback.

    Raises:
        UnexpectedCallbackError: If the path is not the callback path.
        OAuthStateMismatchError: If the state does not match exactly.
        OAuthProviderError: If the provider reported an error.
        MissingTokensError: If access_token or expiry_date is missing.
    """
    parsed = urlparse(path)
    if parsed.path != CALLBACK_PATH:
        raise UnexpectedCallbackError(f"OAuth callback not received. Unexpected request: {path}")

    params = {key: values[0] for key, values in parse_qs(parsed.query).items()}

    state = params.get("state")
    if state is None or not secrets.compare_digest(
        state.encode("utf-8"), expected_state.encode("utf-8")
    ):
        raise OAuthStateMismatchError("OAuth state mismatch. Possible CSRF attack.")

    if params.get("error"):
        raise OAuthProviderError(params["error"], params.get("error_description", ""))

    access_token = params.get("access_token")
    expiry_date = params.get("expiry_date")
    if not access_token or not expiry_date:
        raise MissingTokensError("Authentication failed: Did not receive tokens from callback.")

    try:
        expires_at = int(expiry_date)
    except ValueError:
        raise MissingTokensError(
            f"Authentication failed: invalid expiry_date in callback: {expiry_date!r}"
        ) from None

    return OAuthToken(
        access_token=access_token,
        refresh_token=params.get("refresh_token") or None,
        scope=params.get("scope") or None,
        token_type=params.get("token_type") or "Bearer",
        expires_at=expires_at,
    )


class CallbackServer:
    """Loopback HTTP listener that waits for a single OAuth redirect.

    Attributes:
        host: Interface the listener is bound to.
        port: Port the listener is bound to.

    Example:
        ```python
        server = CallbackServer("localhost", port, expected_state=csrf_token)
        await open_browser_securely(auth_url)
        token = await asyncio.wait_for(server.wait_for_token(), timeout=300)
        ```
    """

    def __init__(self, host: str, port: int, expected_state: str) -> None:
        """Bind the listener.

        Args:
            host: Interface to bind.
            port: Port to bind.
            expected_state: CSRF token the callback state must equal.

        Raises:
            CallbackServerError: If the port cannot be bound.
        """
        self.host = host
        self.port = port
        self._expected_state = expected_state
        self._result: OAuthToken | None = None
        self._error: BaseException | None = None
        self._handled = threading.Event()
        self._stop = threading.Event()
        self._connections: set[socket.socket] = set()
        self._connections_lock = threading.Lock()

        owner = self

        class OAuthCallbackHandler(BaseHTTPRequestHandler):
            """HTTP handler for the OAuth redirect."""

            timeout = REQUEST_TIMEOUT_SECONDS

            def setup(self) -> None:
                super().setup()
                owner._track(self.connection)

            def finish(self) -> None:
                try:
                    super().finish()
                finally:
                    owner._untrack(self.connection)

            def log_message(self, format: str, *args: Any) -> None:
                """Route access logs to the module logger."""
                logger.debug("Callback server: " + format, *args)

            def do_GET(self) -> None:
                """Handle the redirect carrying the tokens."""
                owner._handle(self)

        try:
            self._server = HTTPServer((host, port), OAuthCallbackHandler)
        except OSError as e:
            raise CallbackServerError(f"OAuth callback server error: {e}") from e
        self._server.timeout = POLL_INTERVAL_SECONDS
        self.port = self._server.server_address[1]

    @property
    def redirect_uri(self) -> str:
        """Loopback URI the authorization result is delivered to."""
        return f"http://{self.host}:{self.port}{CALLBACK_PATH}"

    def _handle(self, request: BaseHTTPRequestHandler) -> None:
        try:
            self._result = parse_callback(request.path, self._expected_state)
        except AuthenticationError as e:
            self._error = e
            self._respond(request, 400, FAILURE_PAGE)
        except Exception as e:
            self._error = e
            self._respond(request, 500, FAILURE_PAGE)
        else:
            self._respond(request, 200, SUCCESS_PAGE)
        finally:
            self._handled.set()

    @staticmethod
    def _respond(request: BaseHTTPRequestHandler, status: int, body: bytes) -> None:
        try:
            request.send_response(status)
            request.send_header("Content-Type", "text/html")
            request.send_header("Content-Length", str(len(body)))
            request.end_headers()
            request.wfile.write(body)
        except OSError as e:
            logger.debug("Failed to write callback response: %s", e)

    def _track(self, connection: socket.socket) -> None:
        with self._connections_lock:
            self._connections.add(connection)
        if self._stop.is_set():
            self._abort_requests()

    def _untrack(self, connection: socket.socket) -> None:
        with self._connections_lock:
            self._connections.discard(connection)

    def _abort_requests(self) -> None:
        """Shut down in-flight connections so a blocked read returns."""
        with self._connections_lock:
            connections = list(self._connections)
        for connection in connections:
            try:
                connection.shutdown(socket.SHUT_RDWR)
            except OSError as e:
                logger.debug("Callback connection already closed: %s", e)

    def _serve_one(self) -> None:
        """Accept requests until one has been handled or stop is requested."""
        while not self._handled.is_set() and not self._stop.is_set():
            self._server.handle_request()

    async def wait_for_token(self) -> OAuthToken:
        """Wait for the callback request and return its token.

        The listener is closed when this returns, raises, or is cancelled.

        Raises:
            AuthenticationError: If the callback fails validation.
        """
        loop = asyncio.get_event_loop()
        serving = loop.run_in_executor(None, self._serve_one)
        try:
            await asyncio.shield(serving)
        finally:
            self._stop.set()
            self._abort_requests()
            try:
                await serving
            finally:
                self.close()

        if self._error is not None:
            raise self._error
        if self._result is None:
            raise CallbackServerError("OAuth callback server stopped before a request arrived")
        return self._result

    def close(self) -> None:
        """Stop accepting requests and release the port."""
        self._stop.set()
        self._abort_requests()
        self._server.server_close()
        logger.debug("Callback server on %s:%s closed", self.host, self.port)
