"""
StockReserver over HTTP

The orders service reserves and releases stock through the products
service's internal endpoints. Error envelopes are mapped back onto the
same exceptions ReservationCoordinator raises in-process.
"""
import logging

import httpx

from storefront.core.exceptions import (
    InsufficientStockError,
    InvalidRequestError,
    ProductNotFoundError,
    ReservationVoidedError,
    ServiceUnavailableError,
    StorefrontError,
)
from storefront.core.http_client import ServiceClient, error_payload
from storefront.services.reservation_service import ReleaseResult, ReservationResult

logger = logging.getLogger(__name__)


def _error_from_response(response: httpx.Response, product_id: int, quantity: int) -> StorefrontError:
    payload = error_payload(response)
    code = payload.get("error")
    message = payload.get("message") or "Inventory request failed"
    details = payload.get("details") or {}

    if response.status_code == 404:
        return ProductNotFoundError(product_id)
    if code == "INSUFFICIENT_STOCK":
        return InsufficientStockError(
            product_id,
            int(details.get("requested", quantity)),
            int(details.get("available", 0)),
            details.get("product_name"),
        )
    if code == "RESERVATION_VOIDED":
        return ReservationVoidedError(product_id, str(details.get("order_id", "")))
    if response.status_code == 400:
        return InvalidRequestError(message, details=details)
    logger.error("Inventory call for product %s failed with %d: %s", product_id, response.status_code, message)
    return ServiceUnavailableError(
        "products service rejected the inventory request",
        details={"status": response.status_code, "product_id": product_id},
    )


class HttpInventoryClient:
    def __init__(self, client: ServiceClient):
        self.client = client

    async def reserve(self, product_id: int, quantity: int, order_id: str) -> ReservationResult:
        response = await self.client.post(
            f"/products/{product_id}/reserve",
            json={"quantity": quantity, "order_id": order_id},
        )
        if response.status_code != 200:
            raise _error_from_response(response, product_id, quantity)
        body = response.json()
        return ReservationResult(
            product_id=product_id,
            order_id=order_id,
            quantity=int(body["quantity"]),
            remaining_stock=int(body["remaining_stock"]),
            movement_id=int(body["movement_id"]),
        )

    async def release(self, product_id: int, quantity: int, order_id: str) -> ReleaseResult:
        response = await self.client.post(
            f"/products/{product_id}/release",
            json={"quantity": quantity, "order_id": order_id},
        )
        if response.status_code != 200:
            raise _error_from_response(response, product_id, quantity)
        body = response.json()
        return ReleaseResult(
            product_id=product_id,
            order_id=order_id,
            released_quantity=int(body["released_quantity"]),
            remaining_stock=int(body["remaining_stock"]),
        )

    async def close(self) -> None:
        await self.client.close()
