"""
Capability interfaces the trading cycle depends on.

The orchestrator only sees these protocols; the Kalshi client, the weather
client and the rules engine are one implementation each and tests swap in
in-memory stand-ins.
"""

from typing import Optional, Protocol

from .models import (
    DecisionContext,
    LedgerEntry,
    Market,
    Orderbook,
    OrderRequest,
    OrderResult,
    Position,
    RestingOrder,
    Settlement,
    Stats,
    TradeDecision,
    WeatherSnapshot,
)


class Exchange(Protocol):
    """Market data, orders and portfolio. Failures raise ExchangeError subclasses."""

    async def active_market(self) -> Optional[Market]: ...

    async def orderbook(self, ticker: str) -> Orderbook: ...

    async def resting_orders(self) -> list[RestingOrder]: ...

    async def cancel_order(self, order_id: str) -> None: ...

    async def place_order(self, request: OrderRequest) -> OrderResult: ...

    async def positions(self) -> list[Position]: ...

    async def settlements(self, ticker: str) -> list[Settlement]: ...

    async def balance(self) -> int: ...


class WeatherFeed(Protocol):
    """None means the required deterministic forecast is unavailable."""

    async def forecast(self) -> Optional[WeatherSnapshot]: ...


class Brain(Protocol):
    async def decide(self, context: DecisionContext) -> TradeDecision: ...


class LedgerStore(Protocol):
    """Durable trade history. A save that returns has survived a crash."""

    def read(self) -> list[LedgerEntry]: ...

    def save(self, entries: list[LedgerEntry]) -> None: ...

    def append(self, entry: LedgerEntry) -> list[LedgerEntry]: ...

    def write_stats(self, stats: Stats) -> None: ...
