"""Authenticated HTTP access to the Google Workspace REST APIs.

Request construction for individual tools lives with the tools; this
module only resolves API base URLs and attaches the bearer token.
"""

import logging
from typing import Any

import httpx

from gworkspace_extension.auth import OAuthManager

logger = logging.getLogger(__name__)

# Google API base URLs
API_BASE_URLS = {
    "gmail": "https://gmail.googleapis.com/gmail/v1",
    "drive": "https://www.googleapis.com/drive/v3",
    "docs": "https://docs.googleapis.com/v1",
    "sheets": "https://sheets.googleapis.com/v4",
    "slides": "https://slides.googleapis.com/v1",
    "calendar": "https://www.googleapis.com/calendar/v3",
    "chat": "https://chat.googleapis.com/v1",
    "people": "https://people.googleapis.com/v1",
}


class WorkspaceClient:
    """Authorized client for the Google Workspace REST APIs.

    Attributes:
        manager: OAuthManager supplying credentials.

    Example:
        ```python
        async with WorkspaceClient(OAuthManager()) as client:
            profile = await client.request("gmail", "GET", "/users/me/profile")
        ```
    """

    def __init__(self, manager: OAuthManager, http_client: httpx.AsyncClient | None = None) -> None:
        self.manager = manager
        self._http_client = http_client

    async def __aenter__(self) -> "WorkspaceClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create shared HTTP client with connection pooling."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=30.0)
        return self._http_client

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def request(
        self,
        api: str,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make an authenticated request to a Workspace API.

        Args:
            api: API key from API_BASE_URLS (e.g., "gmail").
            method: HTTP method (GET, POST, etc.).
            path: Path relative to the API base URL.
            params: Optional query parameters.
            json_data: Optional JSON body data.

        Returns:
            JSON response as a dictionary; empty for 204 responses.

        Raises:
            ValueError: If the API is unknown.
            httpx.HTTPStatusError: If the request fails.
        """
        if api not in API_BASE_URLS:
            raise ValueError(f"Unknown Workspace API: {api}")

        credentials = await self.manager.get_authenticated_client()
        client = await self._get_http_client()

        url = API_BASE_URLS[api] + "/" + path.lstrip("/")
        response = await client.request(
            method=method,
            url=url,
            params=params,
            json=json_data,
            headers={
                "Authorization": f"Bearer {credentials.token}",
                "Accept": "application/json",
            },
        )
        response.raise_for_status()

        if response.status_code == 204 or not response.content:
            return {}
        result: dict[str, Any] = response.json()
        return result
