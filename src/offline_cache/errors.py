"""Error taxonomy for the offline cache client.

Remote failures are classified by status code:
- ConnectivityError: no response received (status 0); writes are paused, not failed
- UnauthorizedError: 401; triggers the unauthorized callback
- ServerError: 5xx; eligible for bounded retry
- ValidationError: any other 4xx; surfaced, never retried
"""

from enum import Enum

from offline_cache.entities import GatewayResponse


class ErrorCategory(str, Enum):
    CONNECTIVITY = "connectivity"
    UNAUTHORIZED = "unauthorized"
    SERVER = "server"
    VALIDATION = "validation"


class SyncError(Exception):
    """Base class for all client errors."""


class PersistenceError(SyncError):
    """A persistent key store operation failed."""


class GatewayError(SyncError):
    """A remote call returned an error response."""

    category: ErrorCategory = ErrorCategory.VALIDATION

    def __init__(self, message: str, status: int) -> None:
        super().__init__(message)
        self.message = message
        self.status = status

    @classmethod
    def from_response(cls, response: GatewayResponse) -> "GatewayError":
        """Build the exception subclass matching a failed response."""
        message = response.error or "Request failed"
        error_cls = _ERROR_CLASSES[classify(response)]
        return error_cls(message, response.status)


class ConnectivityError(GatewayError):
    category = ErrorCategory.CONNECTIVITY


class UnauthorizedError(GatewayError):
    category = ErrorCategory.UNAUTHORIZED


class ServerError(GatewayError):
    category = ErrorCategory.SERVER


class ValidationError(GatewayError):
    category = ErrorCategory.VALIDATION


_ERROR_CLASSES: dict[ErrorCategory, type[GatewayError]] = {
    ErrorCategory.CONNECTIVITY: ConnectivityError,
    ErrorCategory.UNAUTHORIZED: UnauthorizedError,
    ErrorCategory.SERVER: ServerError,
    ErrorCategory.VALIDATION: ValidationError,
}


def classify(response: GatewayResponse) -> ErrorCategory:
    """Classify a failed response into an error category.

    Args:
        response: A response that is not ``ok``

    Returns:
        The matching ErrorCategory
    """
    if response.is_network_error:
        return ErrorCategory.CONNECTIVITY
    if response.is_unauthorized:
        return ErrorCategory.UNAUTHORIZED
    if response.is_server_error:
        return ErrorCategory.SERVER
    return ErrorCategory.VALIDATION


def raise_for_response(response: GatewayResponse) -> GatewayResponse:
    """Raise the matching GatewayError if the response is not ok.

    Returns:
        The response unchanged when it is ok, for chaining
    """
    if not response.ok:
        raise GatewayError.from_response(response)
    return response
