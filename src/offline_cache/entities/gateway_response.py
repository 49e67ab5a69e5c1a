"""Remote gateway response entity."""

from dataclasses import dataclass
from typing import Any

NETWORK_ERROR_STATUS = 0


@dataclass(frozen=True)
class GatewayResponse:
    """Normalized result of every remote call.

    Attributes:
        data: Parsed response body on success
        error: Human-readable error message on failure
        status: HTTP status code, 0 when no response was received
    """

    data: Any = None
    error: str | None = None
    status: int = 200

    @property
    def ok(self) -> bool:
        return self.error is None and 200 <= self.status < 300

    @property
    def is_network_error(self) -> bool:
        return self.status == NETWORK_ERROR_STATUS

    @property
    def is_unauthorized(self) -> bool:
        return self.status == 401

    @property
    def is_server_error(self) -> bool:
        return self.status >= 500

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status < 500 and self.status != 401
