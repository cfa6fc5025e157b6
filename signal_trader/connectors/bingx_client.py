"""Async BingX perpetual swap REST client."""

from __future__ import annotations

import hmac
import json
import time
from decimal import Decimal
from hashlib import sha256
from typing import Any, Mapping
from urllib.parse import urlencode
from uuid import uuid4

import httpx
import structlog

from signal_trader.config.settings import Settings
from signal_trader.models import (
    UNKNOWN_ORDER_ID,
    AccountBalance,
    Direction,
    HistoricalOrder,
    OrderResult,
    Position,
    to_decimal,
)

HISTORY_UNAVAILABLE_CODE = 100404
BALANCE_ASSETS = ("USDT", "VST")
QUOTE_ASSETS = ("USDT", "USDC")

# Response shapes seen for a created order, most specific first.
ORDER_ID_PATHS: tuple[tuple[str, ...], ...] = (
    ("data", "order", "orderId"),
    ("data", "order", "orderID"),
    ("data", "orderId"),
    ("data", "orderID"),
    ("data", "id"),
)


class ExchangeError(Exception):
    """Raised when an exchange call fails or is rejected."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


def to_exchange_symbol(symbol: str) -> str:
    """AERGOUSDT -> AERGO-USDT."""
    if "-" in symbol:
        return symbol
    for quote in QUOTE_ASSETS:
        if symbol.endswith(quote) and len(symbol) > len(quote):
            return f"{symbol[: -len(quote)]}-{quote}"
    return symbol


def from_exchange_symbol(symbol: str) -> str:
    """AERGO-USDT -> AERGOUSDT."""
    return symbol.replace("-", "")


def extract_order_id(payload: Mapping[str, Any]) -> str:
    """Return the first order id found along ORDER_ID_PATHS, else UNKNOWN."""
    for path in ORDER_ID_PATHS:
        node: Any = payload
        for key in path:
            if not isinstance(node, Mapping) or key not in node:
                node = None
                break
            node = node[key]
        if node not in (None, ""):
            return str(node)
    return UNKNOWN_ORDER_ID


def new_client_order_id(symbol: str, direction: Direction) -> str:
    timestamp = str(int(time.time() * 1000))[-10:]
    nonce = uuid4().hex[:4]
    return f"ST_{symbol}_{direction.value[0]}_{timestamp}_{nonce}"[:40]


def format_quantity(quantity: Decimal) -> str:
    """Plain decimal notation for the form body: `Decimal("8E+1")` -> `"80"`."""
    text = format(quantity, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


def _decimal_field(data: Mapping[str, Any], *keys: str) -> Decimal:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return to_decimal(value)
    return Decimal(0)


def _optional_str(value: Any) -> str | None:
    if value in (None, ""):
        return None
    return str(value)


class BingXRestClient:
    """BingX USDT-M perpetual swap REST client implementing ExchangeGateway."""

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.settings = settings
        self.base_url = settings.bingx.base_url
        self.api_key = settings.bingx_api_key
        self.api_secret = settings.bingx_secret_key
        self.recv_window = settings.bingx.recv_window
        self.demo_trade = settings.bingx.demo_trade
        self.http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=settings.bingx.request_timeout_sec,
            transport=transport,
        )
        self.log = structlog.get_logger(__name__)

    async def close(self) -> None:
        await self.http.aclose()

    # Market data

    async def get_current_price(self, symbol: str) -> Decimal:
        body = await self._request(
            "GET",
            "/openApi/swap/v1/ticker/price",
            params={"symbol": to_exchange_symbol(symbol)},
            signed=False,
        )
        data = body.get("data")
        if isinstance(data, list):
            data = data[0] if data else None
        price = data.get("price") if isinstance(data, Mapping) else body.get("price")
        if price in (None, ""):
            raise ExchangeError(f"Price missing for {symbol}")
        return to_decimal(price)

    # Account

    async def get_available_balance(self) -> AccountBalance:
        body = await self._request("GET", "/openApi/swap/v2/user/balance")
        data = body.get("data") or {}
        raw_balances = data.get("balance") if isinstance(data, Mapping) else None
        if isinstance(raw_balances, Mapping):
            balances = [raw_balances]
        elif isinstance(raw_balances, list):
            balances = [b for b in raw_balances if isinstance(b, Mapping)]
        else:
            balances = []
        for balance in balances:
            if balance.get("asset") in BALANCE_ASSETS:
                return AccountBalance(
                    asset=str(balance["asset"]),
                    available=_decimal_field(balance, "availableMargin", "balance"),
                    equity=_decimal_field(balance, "equity"),
                    unrealized_pnl=_decimal_field(balance, "unrealizedProfit"),
                )
        raise ExchangeError("No USDT/VST balance found in account response")

    async def set_leverage(self, symbol: str, leverage: int, direction: Direction) -> None:
        await self._request(
            "POST",
            "/openApi/swap/v2/trade/leverage",
            params={
                "symbol": to_exchange_symbol(symbol),
                "side": direction.position_side,
                "leverage": leverage,
            },
        )

    async def get_open_positions(self, symbol: str | None = None) -> list[Position]:
        params = {"symbol": to_exchange_symbol(symbol)} if symbol else None
        body = await self._request("GET", "/openApi/swap/v2/user/positions", params=params)
        data = body.get("data")
        if isinstance(data, Mapping):
            data = data.get("positions")
        if not isinstance(data, list):
            return []
        positions: list[Position] = []
        for raw in data:
            if not isinstance(raw, Mapping) or not raw.get("symbol"):
                continue
            quantity = _decimal_field(raw, "positionAmt", "availableAmt")
            if quantity == 0:
                continue
            positions.append(
                Position(
                    symbol=from_exchange_symbol(str(raw["symbol"])),
                    side=str(raw.get("positionSide", "")),
                    quantity=abs(quantity),
                    avg_price=_decimal_field(raw, "avgPrice"),
                    liquidation_price=_decimal_field(raw, "liquidationPrice"),
                    unrealized_pnl=_decimal_field(raw, "unrealizedProfit"),
                    margin=_decimal_field(raw, "isolatedMargin", "initialMargin"),
                )
            )
        return positions

    # Orders

    async def place_entry_order(
        self,
        symbol: str,
        direction: Direction,
        quantity: Decimal,
        stop_price: Decimal | None = None,
        take_profit_price: Decimal | None = None,
    ) -> OrderResult:
        client_order_id = new_client_order_id(symbol, direction)
        params: dict[str, Any] = {
            "symbol": to_exchange_symbol(symbol),
            "side": direction.value,
            "positionSide": direction.position_side,
            "type": "MARKET",
            "quantity": format_quantity(quantity),
            "clientOrderID": client_order_id,
        }
        if stop_price is not None:
            params["stopLoss"] = self._bracket_leg("STOP_MARKET", quantity, stop_price)
        if take_profit_price is not None:
            params["takeProfit"] = self._bracket_leg("TAKE_PROFIT_MARKET", quantity, take_profit_price)

        body = await self._request("POST", "/openApi/swap/v2/trade/order", params=params)
        order_id = extract_order_id(body)
        if order_id == UNKNOWN_ORDER_ID:
            self.log.warning("order_id_missing_in_response", symbol=symbol, client_order_id=client_order_id)
        return OrderResult(
            order_id=order_id,
            client_order_id=client_order_id,
            raw=dict(body.get("data") or {}),
            success=body.get("code", 0) == 0,
        )

    async def close_position(
        self,
        symbol: str,
        direction: Direction,
        quantity: Decimal,
    ) -> OrderResult:
        """Close (part of) a position with an opposite-side market order."""
        client_order_id = new_client_order_id(symbol, direction.opposite)
        params: dict[str, Any] = {
            "symbol": to_exchange_symbol(symbol),
            "side": direction.opposite.value,
            "positionSide": direction.position_side,
            "type": "MARKET",
            "quantity": format_quantity(quantity),
            "clientOrderID": client_order_id,
        }
        body = await self._request("POST", "/openApi/swap/v2/trade/order", params=params)
        return OrderResult(
            order_id=extract_order_id(body),
            client_order_id=client_order_id,
            raw=dict(body.get("data") or {}),
            success=body.get("code", 0) == 0,
        )

    async def get_open_orders(self, symbol: str | None = None) -> list[dict[str, Any]]:
        params = {"symbol": to_exchange_symbol(symbol)} if symbol else None
        body = await self._request("GET", "/openApi/swap/v2/trade/openOrders", params=params)
        data = body.get("data")
        if isinstance(data, Mapping) and isinstance(data.get("orders"), list):
            return list(data["orders"])
        return []

    async def get_order_history(self, symbol: str, limit: int = 50) -> list[HistoricalOrder]:
        """Return FILLED orders; an unavailable history endpoint yields an empty list."""
        body = await self._request(
            "GET",
            "/openApi/swap/v2/trade/historyOrders",
            params={"symbol": to_exchange_symbol(symbol), "limit": limit},
            tolerated_codes=frozenset({HISTORY_UNAVAILABLE_CODE}),
        )
        data = body.get("data")
        orders = data.get("orders") if isinstance(data, Mapping) else None
        if body.get("code") == HISTORY_UNAVAILABLE_CODE or not isinstance(orders, list):
            self.log.warning("order_history_unavailable", symbol=symbol, code=body.get("code"))
            return []
        history: list[HistoricalOrder] = []
        for raw in orders:
            if not isinstance(raw, Mapping) or raw.get("status") != "FILLED":
                continue
            history.append(
                HistoricalOrder(
                    order_id=_optional_str(raw.get("orderId")),
                    client_order_id=_optional_str(raw.get("clientOrderId", raw.get("clientOrderID"))),
                    type=str(raw.get("type", "")),
                    status=str(raw.get("status", "")),
                )
            )
        return history

    async def cancel_order(self, symbol: str, order_id: str) -> dict[str, Any]:
        body = await self._request(
            "POST",
            "/openApi/swap/v1/trade/cancelOrder",
            params={"symbol": to_exchange_symbol(symbol), "orderId": order_id},
        )
        return dict(body.get("data") or {})

    # Transport

    @staticmethod
    def _bracket_leg(order_type: str, quantity: Decimal, stop_price: Decimal) -> str:
        return json.dumps(
            {
                "type": order_type,
                "quantity": float(quantity),
                "stopPrice": float(stop_price),
                "workingType": "MARK_PRICE",
            },
            separators=(",", ":"),
        )

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        signed: bool = True,
        tolerated_codes: frozenset[int] = frozenset(),
    ) -> dict[str, Any]:
        params = params.copy() if params else {}
        headers: dict[str, str] = {}
        if signed:
            params["timestamp"] = int(time.time() * 1000)
            params["recvWindow"] = self.recv_window
            if self.demo_trade:
                params["demoTrade"] = "on"
            query = urlencode(params)
            query = f"{query}&signature={self._sign(query)}"
            headers["X-BX-APIKEY"] = self.api_key
        else:
            query = urlencode(params)

        log_http = self.settings.monitoring.log_http
        max_body_chars = self.settings.monitoring.log_http_max_body_chars
        if log_http:
            self.log.info(
                "rest_request",
                method=method,
                path=path,
                params=self._sanitize_params(params),
                signed=signed,
            )

        start = time.perf_counter()
        try:
            if method == "GET":
                url = f"{path}?{query}" if query else path
                response = await self.http.request(method, url, headers=headers)
            else:
                headers["Content-Type"] = "application/x-www-form-urlencoded"
                response = await self.http.request(method, path, content=query, headers=headers)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as exc:
            self.log.error(
                "rest_http_error",
                method=method,
                path=path,
                status_code=exc.response.status_code,
                error=self._truncate(exc.response.text, max_body_chars),
            )
            raise ExchangeError(
                f"{method} {path} failed with HTTP {exc.response.status_code}"
            ) from exc
        except httpx.RequestError as exc:
            self.log.warning("rest_request_error", method=method, path=path, error=str(exc))
            raise ExchangeError(f"{method} {path} request failed: {exc}") from exc
        except ValueError as exc:
            raise ExchangeError(f"{method} {path} returned invalid JSON") from exc

        latency_ms = (time.perf_counter() - start) * 1000
        if log_http:
            self.log.info(
                "rest_response",
                method=method,
                path=path,
                status_code=response.status_code,
                latency_ms=round(latency_ms, 2),
                response_preview=self._truncate(json.dumps(body, default=str), max_body_chars),
            )
        if not isinstance(body, dict):
            raise ExchangeError(f"{method} {path} returned unexpected payload type")

        code = body.get("code", 0)
        try:
            code = int(code)
        except (TypeError, ValueError):
            code = -1
        if code != 0 and code not in tolerated_codes:
            message = body.get("msg") or "unknown error"
            self.log.warning("exchange_rejected", method=method, path=path, code=code, msg=message)
            raise ExchangeError(f"{path}: {message} (code {code})", code=code)
        body["code"] = code
        return body

    @staticmethod
    def _sanitize_params(params: dict[str, Any]) -> dict[str, Any]:
        redacted: dict[str, Any] = {}
        for key, value in params.items():
            lowered = key.lower()
            if lowered in {"timestamp", "recvwindow"}:
                continue
            redacted[key] = value
        return redacted

    @staticmethod
    def _truncate(text: str, max_chars: int) -> str:
        if max_chars <= 0 or len(text) <= max_chars:
            return text
        return text[: max_chars - 3] + "..."

    def _sign(self, query: str) -> str:
        return hmac.new(self.api_secret.encode("utf-8"), query.encode("utf-8"), sha256).hexdigest()
