"""HTTP implementation of DataGateway.

Talks JSON to the notes backend over httpx. Every call is normalized into a
GatewayResponse so callers never handle transport exceptions:
- 2xx: data is the parsed JSON body ({} when the body is empty or not JSON)
- 4xx/5xx: error is the body's "error" field or a generic message
- no response at all (connection refused, DNS, timeout): status 0
"""

import logging
import re
from typing import Any
from urllib.parse import unquote

import httpx

from offline_cache.config import settings
from offline_cache.entities import NETWORK_ERROR_STATUS, DownloadedFile, GatewayResponse

logger = logging.getLogger(__name__)

NETWORK_ERROR_MESSAGE = "Network error"
_FILENAME_PATTERN = re.compile(r'filename="(.+)"')


class HttpDataGateway:
    """httpx-based implementation of DataGateway protocol.

    This class satisfies the DataGateway protocol through structural
    typing - no explicit inheritance needed.

    Example:
        ```python
        gateway = HttpDataGateway.create(base_url="http://localhost:3000/api")

        response = await gateway.request("/entries", token=token)
        if response.ok:
            print(response.data)
        ```
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the HTTP gateway.

        Args:
            base_url: API base URL. Defaults to settings.api_base_url.
            timeout: Request timeout in seconds. Defaults to settings.request_timeout.
            transport: Optional httpx transport (e.g. httpx.MockTransport in tests).
        """
        self._base_url = (base_url or settings.api_base_url).rstrip("/")
        self._timeout = timeout or settings.request_timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def create(
        cls,
        base_url: str | None = None,
        timeout: float | None = None,
    ) -> "HttpDataGateway":
        """Factory method to create HttpDataGateway with defaults.

        Args:
            base_url: API base URL. If None, uses settings.
            timeout: Request timeout in seconds. If None, uses settings.

        Returns:
            Configured HttpDataGateway
        """
        return cls(base_url=base_url, timeout=timeout)

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy-load the async HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
                transport=self._transport,
            )
        return self._client

    @property
    def base_url(self) -> str:
        return self._base_url

    def _url(self, endpoint: str) -> str:
        return f"{self._base_url}{endpoint}"

    @staticmethod
    def _headers(token: str | None) -> dict[str, str]:
        if token:
            return {"Authorization": f"Bearer {token}"}
        return {}

    @staticmethod
    def _parse_json(response: httpx.Response) -> Any:
        # Some responses have no body (e.g. 204)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {}

    @classmethod
    def _error_response(cls, response: httpx.Response, default: str) -> GatewayResponse:
        body = cls._parse_json(response)
        message = body.get("error") if isinstance(body, dict) else None
        return GatewayResponse(error=message or default, status=response.status_code)

    async def request(
        self,
        endpoint: str,
        method: str = "GET",
        body: Any = None,
        token: str | None = None,
    ) -> GatewayResponse:
        """Send a JSON request to the API.

        Args:
            endpoint: Path relative to the base URL
            method: HTTP method
            body: JSON-serializable body (omitted when None)
            token: Bearer token

        Returns:
            GatewayResponse with data, error and status
        """
        try:
            response = await self.client.request(
                method,
                self._url(endpoint),
                json=body,
                headers=self._headers(token),
            )
        except httpx.HTTPError as e:
            logger.warning("API request error: %s %s: %s", method, endpoint, e)
            return GatewayResponse(error=NETWORK_ERROR_MESSAGE, status=NETWORK_ERROR_STATUS)

        if not response.is_success:
            return self._error_response(response, "Request failed")

        return GatewayResponse(data=self._parse_json(response), status=response.status_code)

    async def upload(
        self,
        endpoint: str,
        filename: str,
        content: bytes,
        mime_type: str,
        fields: dict[str, str] | None = None,
        token: str | None = None,
    ) -> GatewayResponse:
        """Upload a file as multipart/form-data.

        Args:
            endpoint: Path relative to the base URL
            filename: Original filename
            content: File bytes
            mime_type: MIME type of the file
            fields: Extra form fields (e.g. description)
            token: Bearer token

        Returns:
            GatewayResponse with the server's upload result
        """
        try:
            response = await self.client.post(
                self._url(endpoint),
                files={"file": (filename, content, mime_type)},
                data=fields or {},
                headers=self._headers(token),
            )
        except httpx.HTTPError as e:
            logger.warning("File upload error: %s: %s", endpoint, e)
            return GatewayResponse(error=NETWORK_ERROR_MESSAGE, status=NETWORK_ERROR_STATUS)

        if not response.is_success:
            return self._error_response(response, "Upload failed")

        return GatewayResponse(data=self._parse_json(response), status=response.status_code)

    async def download(self, endpoint: str, token: str | None = None) -> GatewayResponse:
        """Download binary content.

        The filename is taken from the Content-Disposition header when present.

        Returns:
            GatewayResponse whose data is a DownloadedFile on success
        """
        try:
            response = await self.client.get(self._url(endpoint), headers=self._headers(token))
        except httpx.HTTPError as e:
            logger.warning("File download error: %s: %s", endpoint, e)
            return GatewayResponse(error=NETWORK_ERROR_MESSAGE, status=NETWORK_ERROR_STATUS)

        if not response.is_success:
            return self._error_response(response, "Download failed")

        filename = "download"
        disposition = response.headers.get("Content-Disposition")
        if disposition:
            match = _FILENAME_PATTERN.search(disposition)
            if match:
                filename = unquote(match.group(1))

        return GatewayResponse(
            data=DownloadedFile(content=response.content, filename=filename),
            status=response.status_code,
        )

    async def health(self) -> bool:
        """Check if the API is reachable.

        Returns:
            True if GET /health answers with a 2xx status, False otherwise
        """
        response = await self.request("/health")
        return response.ok

    async def close(self) -> None:
        """Close the async HTTP client.

        Should be called when shutting down the application.
        """
        if self._client is not None:
            await self._client.aclose()
            self._client = None
