"""Remote data gateway protocol.

Defines the network boundary of the client. Every call resolves to a
GatewayResponse with exactly three fields (data, error, status); status 0 is
reserved for network-level failure and 401 for authentication failure.
"""

from typing import Any, Protocol, runtime_checkable

from offline_cache.entities import GatewayResponse


@runtime_checkable
class DataGateway(Protocol):
    """Protocol for the remote data gateway.

    Example:
        ```python
        from offline_cache.protocols import DataGateway

        gateway: DataGateway = HttpDataGateway.create()
        ```
    """

    async def request(
        self,
        endpoint: str,
        method: str = "GET",
        body: Any = None,
        token: str | None = None,
    ) -> GatewayResponse:
        """Send a JSON request.

        Args:
            endpoint: Path relative to the API base URL (e.g. "/entries")
            method: HTTP method
            body: JSON-serializable request body
            token: Bearer token for authenticated requests

        Returns:
            Normalized GatewayResponse, never raises for HTTP or network errors
        """
        ...

    async def upload(
        self,
        endpoint: str,
        filename: str,
        content: bytes,
        mime_type: str,
        fields: dict[str, str] | None = None,
        token: str | None = None,
    ) -> GatewayResponse:
        """Send a multipart file upload."""
        ...

    async def download(self, endpoint: str, token: str | None = None) -> GatewayResponse:
        """Fetch binary content; data is a DownloadedFile on success."""
        ...

    async def health(self) -> bool:
        """Check if the remote API is reachable."""
        ...
