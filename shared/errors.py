"""
Shared error handling for the pricing access layer.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel

from shared.logging import request_id_var


class ErrorResponse(BaseModel):
    """Standard error response format."""

    request_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = {}


class AccessLayerException(Exception):
    """Base exception for access layer services."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            request_id=request_id_var.get(),
            code=self.code,
            message=self.message,
            details=self.details
        )


class ConfigurationError(AccessLayerException):
    """Invalid pricing configuration. Raised at construction or reconfiguration time."""

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None,
                 code: str = "CONFIGURATION_ERROR"):
        super().__init__(code, message, details)


class UnparseablePriceError(ConfigurationError):
    """A monetary input that cannot be interpreted as an amount."""

    def __init__(self, price: Any, message: Optional[str] = None):
        self.price = price
        super().__init__(
            message or f"Cannot parse price: {price!r}",
            {"price": repr(price)},
            code="UNPARSEABLE_PRICE"
        )


class RouteNotFoundError(AccessLayerException):
    """No pricing registered for a route."""

    def __init__(self, route: str):
        self.route = route
        super().__init__("ROUTE_NOT_FOUND", f"No pricing registered for route '{route}'", {"route": route})


class DegenerateStateWarning(RuntimeWarning):
    """Non-fatal: the controller cannot compute utilization and keeps the default fee."""
