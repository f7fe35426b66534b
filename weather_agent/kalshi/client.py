"""
Kalshi exchange client.

Implements the Exchange port over the Kalshi trade API: market discovery
for one KXHIGH series, orderbooks, orders, positions, settlements and
balance. Prices are integer cents throughout.

httpx failures are translated into the agent's error types:
- timeouts, connection errors, 429 and 5xx -> NetworkError
- 401/403 -> AuthError
- 404 -> NotFoundError
- any other 4xx on order placement -> RejectedError
"""

from datetime import datetime, timezone
from typing import Any, Optional
from urllib.parse import urlparse

import httpx

from ..config import config
from ..errors import (
    AuthError,
    ExchangeError,
    InvalidInputError,
    NetworkError,
    NotFoundError,
    RejectedError,
)
from ..models import (
    Market,
    Orderbook,
    OrderRequest,
    OrderResult,
    Position,
    RestingOrder,
    Settlement,
    Side,
)
from ..monitoring.logger import get_logger
from .auth import KalshiAuth

logger = get_logger("kalshi")

SETTLED_STATUSES = ("settled", "finalized")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse Kalshi ISO timestamps ('2026-01-28T23:00:00Z')."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _cents(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _strike(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_market(data: dict) -> Market:
    """Build a Market from a /markets row.

    Raises:
        InvalidInputError: the row has no ticker or no usable close time.
    """
    ticker = data.get("ticker")
    if not ticker:
        raise InvalidInputError(f"Market row without ticker: {data!r}")
    close_time = parse_timestamp(data.get("close_time") or data.get("expiration_time"))
    if close_time is None:
        raise InvalidInputError(f"Market {ticker} has no close time")
    last_price = data.get("last_price")
    return Market(
        ticker=ticker,
        event_ticker=data.get("event_ticker", ""),
        title=data.get("title", "") or data.get("subtitle", ""),
        yes_bid=_cents(data.get("yes_bid")),
        yes_ask=_cents(data.get("yes_ask")),
        no_bid=_cents(data.get("no_bid")),
        no_ask=_cents(data.get("no_ask")),
        volume=_cents(data.get("volume")),
        volume_24h=_cents(data.get("volume_24h")),
        open_interest=_cents(data.get("open_interest")),
        last_price=int(last_price) if last_price is not None else None,
        expiration_time=close_time,
        strike_type=data.get("strike_type", "") or "",
        floor_strike=_strike(data.get("floor_strike")),
        cap_strike=_strike(data.get("cap_strike")),
    )


def normalize_levels(levels: Optional[list]) -> tuple[tuple[int, int], ...]:
    """Orderbook levels as (price, depth), best (highest) bid first."""
    normalized: list[tuple[int, int]] = []
    for level in levels or []:
        if isinstance(level, dict):
            raw_price, raw_qty = level.get("price"), level.get("quantity", level.get("qty"))
        elif isinstance(level, (list, tuple)) and len(level) >= 2:
            raw_price, raw_qty = level[0], level[1]
        else:
            continue
        try:
            price, qty = int(raw_price), int(raw_qty)
        except (TypeError, ValueError):
            continue
        if qty > 0:
            normalized.append((price, qty))
    return tuple(sorted(normalized, key=lambda lvl: lvl[0], reverse=True))


class KalshiExchange:
    """Authenticated client for one Kalshi temperature series."""

    def __init__(
        self,
        series_ticker: str,
        auth: Optional[KalshiAuth] = None,
        base_url: str = "",
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.series_ticker = series_ticker
        self._auth = auth or KalshiAuth()
        self._base_url = base_url or config.api.kalshi_api_base_url
        self._timeout = timeout or config.api.http_timeout
        self._client = http_client

    async def __aenter__(self):
        self._ensure_client()
        return self

    async def __aexit__(self, *exc):
        await self.close()

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self):
        """Ensure HTTP client is initialized (for use outside async context manager)."""
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout)

    def _full_path(self, path: str) -> str:
        base_path = urlparse(self._base_url).path.rstrip("/")
        return f"{base_path}/{path.lstrip('/')}"

    async def _request(
        self,
        method: str,
        path: str,
        signed: bool = True,
        order: bool = False,
        **kwargs,
    ) -> dict:
        """Make a request to the Kalshi API.

        Args:
            method: HTTP method (GET, POST, DELETE)
            path: API path relative to the base URL (e.g., /portfolio/balance)
            signed: Attach RSA-PSS auth headers (portfolio endpoints)
            order: The request places an order; other 4xx become RejectedError
            **kwargs: Additional arguments to httpx (json, params, etc.)

        Returns:
            JSON response as dict.
        """
        self._ensure_client()
        headers = self._auth.get_auth_headers(method, self._full_path(path)) if signed else {}

        try:
            resp = await self._client.request(method, path, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            raise NetworkError(f"{method} {path} timed out: {e}") from e
        except httpx.TransportError as e:
            raise NetworkError(f"{method} {path} failed: {e}") from e

        self._raise_for_status(resp, method, path, order)

        if resp.status_code == 204 or not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as e:
            raise ExchangeError(f"{method} {path} returned invalid JSON") from e

    @staticmethod
    def _error_message(resp: httpx.Response) -> str:
        try:
            body = resp.json()
        except ValueError:
            return resp.text[:200]
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict):
                return error.get("message") or error.get("code") or str(error)
            return body.get("message") or str(error or body)
        return str(body)

    def _raise_for_status(self, resp: httpx.Response, method: str, path: str, order: bool) -> None:
        status = resp.status_code
        if status < 400:
            return
        message = f"{method} {path} -> {status}: {self._error_message(resp)}"
        if status in (401, 403):
            raise AuthError(message)
        if status == 404:
            raise NotFoundError(message)
        if status == 429 or status >= 500:
            raise NetworkError(message)
        if order:
            raise RejectedError(message)
        raise ExchangeError(message)

    # ── Market data (public) ──

    async def active_market(self) -> Optional[Market]:
        """The most traded market of the soonest-closing open event in the series."""
        data = await self._request(
            "GET", "/markets", signed=False,
            params={"series_ticker": self.series_ticker, "status": "open", "limit": 200},
        )
        now = datetime.now(timezone.utc)
        markets: list[Market] = []
        for row in data.get("markets", []):
            try:
                market = parse_market(row)
            except InvalidInputError as e:
                logger.warning(f"Skipping market row: {e}")
                continue
            if market.expiration_time > now:
                markets.append(market)

        if not markets:
            logger.info(f"No open markets for {self.series_ticker}")
            return None

        events: dict[str, list[Market]] = {}
        for market in markets:
            events.setdefault(market.event_ticker, []).append(market)
        event_ticker = min(events, key=lambda e: min(m.expiration_time for m in events[e]))
        chosen = max(events[event_ticker], key=lambda m: (m.volume, m.open_interest))
        logger.info(
            f"Active market {chosen.ticker} ({len(events[event_ticker])} brackets in {event_ticker}, "
            f"volume {chosen.volume})"
        )
        return chosen

    async def orderbook(self, ticker: str) -> Orderbook:
        data = await self._request("GET", f"/markets/{ticker}/orderbook", signed=False)
        book = data.get("orderbook") or {}
        return Orderbook(
            ticker=ticker,
            yes=normalize_levels(book.get("yes")),
            no=normalize_levels(book.get("no")),
        )

    async def market(self, ticker: str) -> dict:
        data = await self._request("GET", f"/markets/{ticker}", signed=False)
        return data.get("market", data)

    # ── Orders ──

    async def resting_orders(self) -> list[RestingOrder]:
        """Resting orders in this agent's series."""
        data = await self._request("GET", "/portfolio/orders", params={"status": "resting"})
        orders = []
        for row in data.get("orders", []):
            ticker = row.get("ticker", "")
            if not ticker.startswith(self.series_ticker):
                continue
            side = row.get("side")
            orders.append(RestingOrder(
                order_id=row.get("order_id", ""),
                ticker=ticker,
                side=Side(side) if side in ("yes", "no") else None,
                remaining_count=_cents(row.get("remaining_count")),
                filled_count=_cents(row.get("fill_count", row.get("filled_count"))),
            ))
        return orders

    async def cancel_order(self, order_id: str) -> None:
        await self._request("DELETE", f"/portfolio/orders/{order_id}")

    async def place_order(self, request: OrderRequest) -> OrderResult:
        """Place a resting limit buy.

        Raises:
            RejectedError: the exchange refused the order.
        """
        if request.shares < 1 or not 1 <= request.price_cents <= 99:
            raise InvalidInputError(
                f"Invalid order: {request.shares}x @ {request.price_cents}¢ (price must be 1-99)"
            )
        body = {
            "ticker": request.ticker,
            "action": "buy",
            "side": request.side.value,
            "count": request.shares,
            "type": "limit",
            f"{request.side.value}_price": request.price_cents,
            "client_order_id": request.client_order_id,
        }
        data = await self._request("POST", "/portfolio/orders", order=True, json=body)
        order = data.get("order", data)
        order_id = order.get("order_id")
        if not order_id:
            raise RejectedError(f"Order response without order_id: {data!r}")
        return OrderResult(
            order_id=order_id,
            status=order.get("status", "unknown"),
            filled_count=_cents(order.get("fill_count", order.get("filled_count"))),
            client_order_id=order.get("client_order_id") or request.client_order_id,
        )

    # ── Portfolio ──

    async def positions(self) -> list[Position]:
        """Open positions (Kalshi reports NO holdings as negative counts)."""
        data = await self._request("GET", "/portfolio/positions")
        positions = []
        for row in data.get("market_positions", []):
            count = _cents(row.get("position"))
            if count == 0:
                continue
            positions.append(Position(
                ticker=row.get("ticker", ""),
                side=Side.YES if count > 0 else Side.NO,
                count=abs(count),
            ))
        return positions

    async def settlements(self, ticker: str) -> list[Settlement]:
        """Settlements for a ticker.

        Falls back to the market's own result when the portfolio has no
        settlement for it (e.g. a paper trade).
        """
        data = await self._request("GET", "/portfolio/settlements", params={"ticker": ticker})
        found = [
            Settlement(
                ticker=row.get("ticker", ""),
                market_result=row.get("market_result", "") or "",
                settled_time=row.get("settled_time", "") or "",
                revenue_cents=_cents(row.get("revenue")),
            )
            for row in data.get("settlements", [])
            if row.get("ticker") == ticker
        ]
        if found:
            return found

        market = await self.market(ticker)
        if market.get("status") not in SETTLED_STATUSES:
            return []
        return [Settlement(
            ticker=ticker,
            market_result=market.get("result", "") or "",
            settled_time=market.get("settlement_ts") or market.get("close_time") or "",
        )]

    async def balance(self) -> int:
        """Available balance in cents."""
        data = await self._request("GET", "/portfolio/balance")
        return _cents(data.get("balance"))
