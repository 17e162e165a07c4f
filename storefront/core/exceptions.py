"""
Storefront Exception Hierarchy

All exceptions carry a machine-readable code, a human-readable message, and
details for audit/debugging. Each class also knows the HTTP status it maps
to, so route handlers can simply raise and let the registered exception
handler render the error envelope.

Exception Hierarchy:
    StorefrontError
    ├── InvalidRequestError
    ├── AuthenticationError
    ├── PermissionDeniedError
    ├── NotFoundError
    │   ├── ProductNotFoundError
    │   ├── CategoryNotFoundError
    │   ├── CartItemNotFoundError
    │   ├── OrderNotFoundError
    │   └── UserNotFoundError
    ├── ConflictError
    │   └── ReservationVoidedError
    ├── InventoryError
    │   └── InsufficientStockError
    ├── CollaboratorTimeoutError
    ├── ServiceUnavailableError
    └── InternalError
"""
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class StorefrontError(Exception):
    """
    Base exception for all Storefront errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context (offending product, quantities, ...)
        severity: P0-P3 severity level
    """

    default_code: str = "STOREFRONT_ERROR"
    default_severity: str = "P2"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[str] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        self.severity = severity or self.default_severity
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "severity": self.severity,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


class InvalidRequestError(StorefrontError):
    """Bad input. Raised before any side effect happens."""
    default_code = "INVALID_REQUEST"
    default_severity = "P3"
    status_code = 400


class AuthenticationError(StorefrontError):
    default_code = "NOT_AUTHENTICATED"
    default_severity = "P3"
    status_code = 401


class PermissionDeniedError(StorefrontError):
    default_code = "FORBIDDEN"
    default_severity = "P3"
    status_code = 403


class NotFoundError(StorefrontError):
    default_code = "NOT_FOUND"
    default_severity = "P3"
    status_code = 404


class ProductNotFoundError(NotFoundError):
    default_code = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: int, message: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        details["product_id"] = product_id
        self.product_id = product_id
        super().__init__(message or f"Product {product_id} not found", details=details, **kwargs)


class CategoryNotFoundError(NotFoundError):
    default_code = "CATEGORY_NOT_FOUND"


class CartItemNotFoundError(NotFoundError):
    default_code = "CART_ITEM_NOT_FOUND"


class OrderNotFoundError(NotFoundError):
    default_code = "ORDER_NOT_FOUND"


class UserNotFoundError(NotFoundError):
    default_code = "USER_NOT_FOUND"


class ConflictError(StorefrontError):
    default_code = "CONFLICT"
    default_severity = "P3"
    status_code = 409


class ReservationVoidedError(ConflictError):
    """A reserve arrived for an order whose stock was already released."""
    default_code = "RESERVATION_VOIDED"
    default_severity = "P2"

    def __init__(self, product_id: int, order_id: str, **kwargs):
        details = kwargs.pop("details", {})
        details.update({"product_id": product_id, "order_id": order_id})
        super().__init__(
            f"Order {order_id} was already released for product {product_id}",
            details=details,
            **kwargs,
        )


class InventoryError(StorefrontError):
    """Base exception for inventory-related errors."""
    default_code = "INVENTORY_ERROR"
    default_severity = "P1"
    status_code = 400


class InsufficientStockError(InventoryError):
    """Requested quantity exceeds available stock."""
    default_code = "INSUFFICIENT_STOCK"
    default_severity = "P2"

    def __init__(
        self,
        product_id: int,
        requested_qty: int,
        available_qty: int,
        product_name: Optional[str] = None,
        **kwargs
    ):
        self.product_id = product_id
        self.requested_qty = requested_qty
        self.available_qty = available_qty
        label = product_name or f"product {product_id}"
        details = kwargs.pop("details", {})
        details.update({
            "product_id": product_id,
            "product_name": product_name,
            "requested": requested_qty,
            "available": available_qty,
        })
        message = kwargs.pop(
            "message",
            f"Insufficient stock for {label} (requested: {requested_qty}, available: {available_qty})",
        )
        super().__init__(message, details=details, **kwargs)


class CollaboratorTimeoutError(StorefrontError):
    """A downstream service or store did not answer within the time budget."""
    default_code = "TIMEOUT"
    default_severity = "P1"
    status_code = 504

    def __init__(self, operation: str, timeout_seconds: Optional[float] = None, **kwargs):
        details = kwargs.pop("details", {})
        details.update({"operation": operation, "timeout_seconds": timeout_seconds})
        super().__init__(f"Timed out waiting for {operation}", details=details, **kwargs)


class ServiceUnavailableError(StorefrontError):
    """A downstream service could not be reached or answered unexpectedly."""
    default_code = "SERVICE_UNAVAILABLE"
    default_severity = "P1"
    status_code = 503


class InternalError(StorefrontError):
    """Unexpected failure. The message surfaced to clients is always generic."""
    default_code = "INTERNAL_ERROR"
    default_severity = "P0"
    status_code = 500
