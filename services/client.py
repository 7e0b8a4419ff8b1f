"""
HTTP Order Service - talks to the dispatch API over httpx.

Network failures and unexpected responses become TransportError and are
never retried here; the caller decides when to retry. A 409 on accept is
a claim conflict, which the driver session handles by refreshing its feed.
"""
import logging
from typing import Any, Optional

import httpx
import pydantic

import config
from models import Actor, Driver, ItemStatus, Order, OrderItem, OrderStatus
from services.errors import (
    ClaimConflictError,
    DriverBusyError,
    DriverNotFoundError,
    DriverOfflineError,
    InvalidTransitionError,
    OrderItemNotFoundError,
    OrderNotFoundError,
    TransportError,
    ValidationError,
)
from services.favorites import FavoritesBackend
from services.order_service import OrderService
from services.upstream import parse_driver, parse_events, parse_item, parse_metrics, parse_order, parse_orders

logger = logging.getLogger(__name__)


class ApiClient:
    """Shared request plumbing and error mapping for the dispatch API."""

    def __init__(
        self,
        base_url: str = config.API_BASE_URL,
        timeout: float = config.API_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self.transport = transport

    async def _request(self, method: str, path: str, json: dict | None = None, params: dict | None = None) -> Any:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.request(method, path, json=json, params=params)
        except httpx.HTTPError as e:
            raise TransportError(f"Network error: {e}") from e

        if response.is_success:
            try:
                return response.json()
            except ValueError as e:
                raise TransportError(f"Invalid JSON from {path}") from e
        self._raise_for_error(response, path)

    def _raise_for_error(self, response: httpx.Response, path: str):
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        detail = body.get("detail") or response.reason_phrase
        code = body.get("code")
        resource_id = body.get("id") or path.rstrip("/").split("/")[-1]

        if code == "claim_conflict":
            raise ClaimConflictError(resource_id, detail)
        if code == "driver_busy":
            raise DriverBusyError(resource_id, body.get("driver_id", ""))
        if code == "driver_offline":
            raise DriverOfflineError(body.get("driver_id", ""))
        if code == "invalid_transition":
            raise InvalidTransitionError(detail)
        if code == "order_not_found":
            raise OrderNotFoundError(resource_id)
        if code == "order_item_not_found":
            raise OrderItemNotFoundError(resource_id)
        if code == "driver_not_found":
            raise DriverNotFoundError(resource_id)
        if code == "validation_error" or response.status_code == 422:
            raise ValidationError(str(detail))
        raise TransportError(f"HTTP {response.status_code} from {path}: {detail}")


class HttpOrderService(ApiClient, OrderService):
    def _parse_order(self, data: Any, path: str) -> Order:
        if not isinstance(data, dict):
            raise TransportError(f"Unexpected order payload from {path}")
        try:
            return parse_order(data)
        except (KeyError, ValueError, pydantic.ValidationError) as e:
            logger.warning(f"Malformed order from {path}: {e}")
            raise TransportError(f"Malformed order from {path}") from e

    async def list_available_orders(self, driver_id: str) -> list[Order]:
        data = await self._request("GET", "/orders/available", params={"driver_id": driver_id})
        if not isinstance(data, list):
            raise TransportError("Unexpected feed payload from /orders/available")
        return parse_orders(data)

    async def claim_order(self, order_id: str, driver_id: str) -> Order:
        path = f"/orders/{order_id}/accept"
        return self._parse_order(await self._request("PUT", path, json={"driver_id": driver_id}), path)

    async def get_active_order(self, driver_id: str) -> Optional[Order]:
        data = await self._request("GET", "/orders/active", params={"driver_id": driver_id})
        if not isinstance(data, dict) or not data.get("order"):
            return None
        return self._parse_order(data["order"], "/orders/active")

    async def get_order(self, order_id: str) -> Order:
        path = f"/orders/{order_id}"
        return self._parse_order(await self._request("GET", path), path)

    async def get_timeline(self, order_id: str) -> dict:
        data = await self._request("GET", f"/orders/{order_id}/timeline")
        return {
            "events": parse_events(data.get("events") or []),
            "metrics": parse_metrics(data.get("metrics")),
        }

    async def update_item_status(
        self,
        order_item_id: str,
        status: ItemStatus,
        driver_id: str,
        found_quantity: float | None = None,
    ) -> OrderItem:
        payload = {"status": ItemStatus(status).value, "driver_id": driver_id}
        if found_quantity is not None:
            payload["found_quantity"] = found_quantity
        data = await self._request("PUT", f"/order_items/{order_item_id}/status", json=payload)
        return parse_item(data)

    async def update_status(self, order_id: str, status: OrderStatus, actor: Actor) -> Order:
        path = f"/orders/{order_id}/status"
        data = await self._request(
            "PUT",
            path,
            json={"status": OrderStatus(status).value, "actor": actor.model_dump(mode="json")},
        )
        return self._parse_order(data, path)

    async def complete_shopping(self, order_id: str, driver_id: str) -> Order:
        path = f"/orders/{order_id}/complete_shopping"
        return self._parse_order(await self._request("POST", path, json={"driver_id": driver_id}), path)

    async def set_online(self, driver_id: str, online: bool) -> Driver:
        data = await self._request("PUT", f"/drivers/{driver_id}/online", json={"is_online": online})
        return parse_driver(data)

    async def get_driver(self, driver_id: str) -> Driver:
        return parse_driver(await self._request("GET", f"/drivers/{driver_id}"))


class HttpFavoritesBackend(ApiClient, FavoritesBackend):
    async def add_favorite(self, customer_id: str, product_id: str):
        await self._request("PUT", f"/customers/{customer_id}/favorites/{product_id}")

    async def remove_favorite(self, customer_id: str, product_id: str):
        await self._request("DELETE", f"/customers/{customer_id}/favorites/{product_id}")
