"""
Alpaca trader - REST order execution against the paper or live endpoint.

Orders are submitted with ``client_order_id`` set to the pending trade id.
If a submission is retried after the broker already accepted it, Alpaca
rejects the duplicate and the original order is looked up instead.
"""

import asyncio
import logging
from typing import Any, Optional

import aiohttp

from ..core.errors import ExecutionError
from ..services.market_data import is_crypto_symbol, to_alpaca_crypto_symbol
from .base import BaseTrader, OrderRequest, OrderResult, OrderStatus, OrderType

logger = logging.getLogger(__name__)

_REJECTED_STATUSES = {"canceled", "expired", "rejected", "suspended", "stopped"}


class AlpacaTrader(BaseTrader):
    """
    Alpaca brokerage adapter.

    After submission the order is polled briefly for its fill. The result
    carries the quantity the broker actually filled: an order still working
    with nothing filled when polling ends comes back ACCEPTED with
    ``filled_quantity == 0``, and a cancelled order that filled in part
    comes back PARTIALLY_FILLED.
    """

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        base_url: str,
        timeout: int = 15,
        fill_poll_attempts: int = 5,
        fill_poll_interval: float = 1.0,
    ):
        if not api_key or not api_secret:
            raise ExecutionError("Alpaca API key and secret are required")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.fill_poll_attempts = fill_poll_attempts
        self.fill_poll_interval = fill_poll_interval
        self._headers = {
            "APCA-API-KEY-ID": api_key,
            "APCA-API-SECRET-KEY": api_secret,
            "Content-Type": "application/json",
        }
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def broker_name(self) -> str:
        return "alpaca"

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers=self._headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, str]] = None,
    ) -> tuple[int, Any]:
        session = self._get_session()
        try:
            async with session.request(
                method, f"{self.base_url}{path}", json=json, params=params
            ) as response:
                try:
                    payload = await response.json(content_type=None)
                except ValueError:
                    payload = {"message": await response.text()}
                return response.status, payload
        except aiohttp.ClientError as e:
            raise ExecutionError(f"Alpaca request failed for {path}: {e}") from e
        except asyncio.TimeoutError as e:
            raise ExecutionError(f"Alpaca request timed out for {path}") from e

    def _build_body(self, request: OrderRequest) -> dict[str, Any]:
        crypto = is_crypto_symbol(request.symbol)
        body: dict[str, Any] = {
            "symbol": to_alpaca_crypto_symbol(request.symbol) if crypto else request.symbol,
            "qty": str(request.quantity),
            "side": request.side.value,
            "type": request.order_type.value,
            "time_in_force": "gtc" if crypto else "day",
            "client_order_id": request.client_order_id,
        }
        if request.order_type == OrderType.LIMIT:
            if request.limit_price is None:
                raise ExecutionError("Limit order requires limit_price")
            body["limit_price"] = str(request.limit_price)
        return body

    async def place_order(self, request: OrderRequest) -> OrderResult:
        status, payload = await self._request("POST", "/v2/orders", json=self._build_body(request))

        if status == 422 and "client_order_id" in str(payload.get("message", "")):
            logger.info(
                f"Order {request.client_order_id} already submitted, looking it up"
            )
            payload = await self._get_by_client_order_id(request.client_order_id)
        elif status >= 400:
            raise ExecutionError(
                f"Alpaca order rejected ({status}): {payload.get('message', payload)}",
                broker_code=str(payload.get("code", status)),
                details={"symbol": request.symbol, "side": request.side.value},
            )

        order = await self._await_fill(payload)
        return self._to_result(order, request)

    async def _get_by_client_order_id(self, client_order_id: str) -> dict[str, Any]:
        status, payload = await self._request(
            "GET",
            "/v2/orders:by_client_order_id",
            params={"client_order_id": client_order_id},
        )
        if status >= 400:
            raise ExecutionError(
                f"Could not look up order {client_order_id} ({status})",
                broker_code=str(status),
            )
        return payload

    async def _await_fill(self, order: dict[str, Any]) -> dict[str, Any]:
        for _ in range(self.fill_poll_attempts):
            state = str(order.get("status", ""))
            if state == "filled":
                return order
            if state in _REJECTED_STATUSES:
                return self._check_rejected(order)
            await asyncio.sleep(self.fill_poll_interval)
            status, refreshed = await self._request("GET", f"/v2/orders/{order.get('id')}")
            if status < 400:
                order = refreshed

        if str(order.get("status", "")) in _REJECTED_STATUSES:
            return self._check_rejected(order)
        return order

    def _check_rejected(self, order: dict[str, Any]) -> dict[str, Any]:
        """A terminal order that filled in part is kept; otherwise it is an error."""
        state = str(order.get("status", ""))
        if _to_float(order.get("filled_qty")):
            logger.warning(f"Alpaca order {order.get('id')} {state} after a partial fill")
            return order
        raise ExecutionError(f"Alpaca order {order.get('id')} {state}", broker_code=state)

    def _to_result(self, order: dict[str, Any], request: OrderRequest) -> OrderResult:
        state = str(order.get("status", ""))
        fill_price = _to_float(order.get("filled_avg_price"))
        filled_qty = _to_float(order.get("filled_qty"))

        if state == "filled":
            filled_qty = filled_qty or request.quantity

        if not filled_qty:
            return OrderResult(
                order_id=str(order.get("id", "")),
                status=OrderStatus.ACCEPTED,
                fill_price=fill_price or request.reference_price or 0.0,
                filled_quantity=0.0,
                raw=order,
            )

        if not fill_price:
            if not request.reference_price:
                raise ExecutionError(
                    f"Alpaca order {order.get('id')} has no fill price yet",
                    broker_code=state or "unknown",
                )
            fill_price = request.reference_price

        if filled_qty >= request.quantity:
            status = OrderStatus.FILLED
        else:
            status = OrderStatus.PARTIALLY_FILLED

        return OrderResult(
            order_id=str(order.get("id", "")),
            status=status,
            fill_price=fill_price,
            filled_quantity=filled_qty,
            raw=order,
        )


def _to_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
