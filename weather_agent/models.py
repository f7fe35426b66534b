"""
Domain types shared across the trading cycle.

Snapshots taken during a cycle (Market, Orderbook, WeatherSnapshot,
DecisionContext, TradeDecision) are frozen: they are replaced by the next
fetch, never patched. LedgerEntry is frozen as well; an outcome transition
produces a new entry.
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from .errors import InvalidInputError, LedgerError


class Side(Enum):
    """Contract side."""
    YES = "yes"
    NO = "no"

    @property
    def opposite(self) -> "Side":
        return Side.NO if self is Side.YES else Side.YES


class Outcome(Enum):
    """Ledger entry outcome."""
    PENDING = "pending"
    WON = "won"
    LOST = "lost"
    VOID = "void"

    @property
    def is_terminal(self) -> bool:
        return self is not Outcome.PENDING


class ConfidenceTier(Enum):
    """Forecast confidence from ensemble spread, with its edge weight."""
    HIGH = "high"      # std dev < 2°F
    MEDIUM = "medium"  # 2-4°F
    LOW = "low"        # > 4°F, or no ensemble at all

    @property
    def weight(self) -> float:
        return {
            ConfidenceTier.HIGH: 1.0,
            ConfidenceTier.MEDIUM: 0.8,
            ConfidenceTier.LOW: 0.5,
        }[self]

    @classmethod
    def from_std_dev(cls, std_dev: Optional[float]) -> "ConfidenceTier":
        if std_dev is None:
            return cls.LOW
        if std_dev < 2.0:
            return cls.HIGH
        if std_dev <= 4.0:
            return cls.MEDIUM
        return cls.LOW


# ── Market data ──

class Direction(Enum):
    """Which side of the cutoff settles YES."""
    ABOVE = "above"
    BELOW = "below"
    BETWEEN = "between"


@dataclass(frozen=True)
class Threshold:
    """Parsed contract condition on the day's high temperature.

    ABOVE uses `lower` as the cutoff, BELOW uses `upper`, BETWEEN uses both.
    """
    direction: Direction
    lower: Optional[float] = None
    upper: Optional[float] = None

    @classmethod
    def above(cls, cutoff: float) -> "Threshold":
        return cls(Direction.ABOVE, lower=float(cutoff))

    @classmethod
    def below(cls, cutoff: float) -> "Threshold":
        return cls(Direction.BELOW, upper=float(cutoff))

    @classmethod
    def between(cls, lower: float, upper: float) -> "Threshold":
        if lower >= upper:
            raise InvalidInputError(f"Empty range {lower}-{upper}")
        return cls(Direction.BETWEEN, lower=float(lower), upper=float(upper))

    def __str__(self) -> str:
        if self.direction is Direction.ABOVE:
            return f"high > {self.lower:.1f}°F"
        if self.direction is Direction.BELOW:
            return f"high < {self.upper:.1f}°F"
        return f"{self.lower:.1f}°F <= high < {self.upper:.1f}°F"


def _check_cents(name: str, value: int) -> None:
    if not 0 <= value <= 100:
        raise InvalidInputError(f"{name}={value} outside 0-100 cents")


@dataclass(frozen=True)
class Market:
    """One active binary contract, as quoted when fetched.

    Quotes are integer cents. yes/no quotes are independent: a market may
    carry a spread on both sides, so yes_ask + no_bid == 100 is not assumed.
    A zero ask means nobody is offering that side.
    """
    ticker: str
    event_ticker: str
    yes_bid: int
    yes_ask: int
    no_bid: int
    no_ask: int
    expiration_time: datetime
    title: str = ""
    volume: int = 0
    volume_24h: int = 0
    open_interest: int = 0
    last_price: Optional[int] = None

    # Exchange strike fields, preferred over ticker parsing when present
    strike_type: str = ""
    floor_strike: Optional[float] = None
    cap_strike: Optional[float] = None

    def __post_init__(self):
        for name in ("yes_bid", "yes_ask", "no_bid", "no_ask"):
            _check_cents(name, getattr(self, name))
        if self.expiration_time.tzinfo is None:
            raise InvalidInputError(f"{self.ticker}: expiration_time must be timezone-aware")

    def bid(self, side: Side) -> int:
        return self.yes_bid if side is Side.YES else self.no_bid

    def ask(self, side: Side) -> int:
        return self.yes_ask if side is Side.YES else self.no_ask

    def minutes_to_expiry(self, now: Optional[datetime] = None) -> float:
        now = now or datetime.now(timezone.utc)
        return (self.expiration_time - now).total_seconds() / 60.0


@dataclass(frozen=True)
class Orderbook:
    """Resting bids per side as (price_cents, depth) levels, best first."""
    ticker: str
    yes: tuple[tuple[int, int], ...] = ()
    no: tuple[tuple[int, int], ...] = ()

    def levels(self, side: Side) -> tuple[tuple[int, int], ...]:
        return self.yes if side is Side.YES else self.no

    def best_bid(self, side: Side) -> Optional[int]:
        levels = [price for price, depth in self.levels(side) if depth > 0]
        return max(levels) if levels else None

    def implied_ask(self, side: Side) -> Optional[int]:
        """Buying one side crosses the best bid on the other."""
        best = self.best_bid(side.opposite)
        return 100 - best if best is not None else None


# ── Weather data ──

@dataclass(frozen=True)
class HourlyTemp:
    time: str  # local ISO time from the forecast provider
    temperature_f: float


@dataclass(frozen=True)
class BucketProbability:
    """Share of ensemble members whose high falls in [lower, upper)."""
    lower: float
    upper: float
    probability: float

    @property
    def label(self) -> str:
        return f"{self.lower:.0f}-{self.upper:.0f}°F"


@dataclass(frozen=True)
class EnsembleSummary:
    """Ensemble daily-high distribution.

    Bucket probabilities should sum to about 1.0 but are not assumed to.
    """
    buckets: tuple[BucketProbability, ...]
    std_dev: float
    member_count: int = 0
    mean_high: Optional[float] = None
    min_high: Optional[float] = None
    max_high: Optional[float] = None
    p10: Optional[float] = None
    p25: Optional[float] = None
    p75: Optional[float] = None
    p90: Optional[float] = None

    @property
    def total_probability(self) -> float:
        return sum(b.probability for b in self.buckets)


@dataclass(frozen=True)
class WeatherSnapshot:
    """Forecast inputs for one cycle.

    Only the current temperature and deterministic high are guaranteed.
    """
    current_temp_f: float
    deterministic_high_f: float
    hourly: tuple[HourlyTemp, ...] = ()
    official_high_f: Optional[float] = None
    official_low_f: Optional[float] = None
    official_summary: Optional[str] = None
    ensemble: Optional[EnsembleSummary] = None
    city: str = ""

    @property
    def confidence(self) -> ConfidenceTier:
        if self.ensemble is None:
            return ConfidenceTier.LOW
        return ConfidenceTier.from_std_dev(self.ensemble.std_dev)


# ── Ledger and stats ──

@dataclass(frozen=True)
class LedgerEntry:
    """One order the exchange accepted (or a paper order)."""
    timestamp: str  # ISO 8601, UTC
    ticker: str
    side: Side
    shares: int
    price_cents: int
    outcome: Outcome = Outcome.PENDING
    order_id: str = ""
    settled_at: Optional[str] = None
    paper: bool = False

    @property
    def realized_pnl_cents(self) -> int:
        if self.outcome is Outcome.WON:
            return (100 - self.price_cents) * self.shares
        if self.outcome is Outcome.LOST:
            return -self.price_cents * self.shares
        return 0

    def settle(self, outcome: Outcome, settled_at: Optional[str] = None) -> "LedgerEntry":
        """Return this entry moved from Pending to a terminal outcome."""
        if self.outcome is not Outcome.PENDING:
            raise LedgerError(f"{self.ticker} entry already {self.outcome.value}")
        if not outcome.is_terminal:
            raise LedgerError("settle() needs a terminal outcome")
        return replace(
            self,
            outcome=outcome,
            settled_at=settled_at or datetime.now(timezone.utc).isoformat(),
        )

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "ticker": self.ticker,
            "side": self.side.value,
            "shares": self.shares,
            "price_cents": self.price_cents,
            "outcome": self.outcome.value,
            "order_id": self.order_id,
            "settled_at": self.settled_at,
            "paper": self.paper,
            # informational; stats always re-derive it from outcome and price
            "pnl_cents": self.realized_pnl_cents,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "LedgerEntry":
        return cls(
            timestamp=d["timestamp"],
            ticker=d["ticker"],
            side=Side(d["side"]),
            shares=int(d["shares"]),
            price_cents=int(d["price_cents"]),
            outcome=Outcome(d.get("outcome", "pending")),
            order_id=d.get("order_id", ""),
            settled_at=d.get("settled_at"),
            paper=bool(d.get("paper", False)),
        )


@dataclass(frozen=True)
class Stats:
    """Summary derived from the full ledger. Never edited directly."""
    total_trades: int = 0
    wins: int = 0
    losses: int = 0
    voids: int = 0
    pending: int = 0
    win_rate: float = 0.0
    total_pnl_cents: int = 0
    today_pnl_cents: int = 0
    current_streak: int = 0  # +N wins in a row, -N losses in a row
    max_drawdown_cents: int = 0
    avg_win_cents: float = 0.0
    avg_loss_cents: float = 0.0

    @property
    def losing_streak(self) -> int:
        return -self.current_streak if self.current_streak < 0 else 0

    @property
    def realized_loss_today_cents(self) -> int:
        return max(0, -self.today_pnl_cents)


# ── Decision ──

@dataclass(frozen=True)
class DecisionContext:
    """Everything a Brain may look at. Built once per cycle."""
    market: Market
    orderbook: Orderbook
    weather: WeatherSnapshot
    stats: Stats
    recent_trades: tuple[LedgerEntry, ...] = ()


@dataclass(frozen=True)
class Pass:
    """Do nothing this cycle."""
    reason: str
    edge_pp: float = 0.0

    is_buy = False


@dataclass(frozen=True)
class Buy:
    """Buy `shares` contracts of `side` paying at most `max_price_cents`."""
    side: Side
    shares: int
    max_price_cents: int
    edge_pp: float = 0.0
    probability: Optional[float] = None
    reasoning: str = ""

    is_buy = True

    def __post_init__(self):
        if self.shares < 1:
            raise InvalidInputError(f"shares={self.shares} must be positive")
        if not 0 < self.max_price_cents <= 100:
            raise InvalidInputError(f"max_price_cents={self.max_price_cents} outside (0, 100]")


TradeDecision = Union[Pass, Buy]


# ── Exchange records ──

@dataclass(frozen=True)
class RestingOrder:
    order_id: str
    ticker: str
    side: Optional[Side] = None
    remaining_count: int = 0
    filled_count: int = 0


@dataclass(frozen=True)
class OrderRequest:
    ticker: str
    side: Side
    shares: int
    price_cents: int
    # Sent with the order so it can be found again if the response is lost
    client_order_id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass(frozen=True)
class OrderResult:
    """An order the exchange accepted."""
    order_id: str
    status: str
    filled_count: int = 0
    client_order_id: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class Position:
    ticker: str
    side: Side
    count: int


@dataclass(frozen=True)
class Settlement:
    ticker: str
    market_result: str  # "yes", "no", or anything else for a voided market
    settled_time: str = ""
    revenue_cents: int = 0

    def outcome_for(self, side: Side) -> Outcome:
        result = (self.market_result or "").lower()
        if result not in ("yes", "no"):
            return Outcome.VOID
        return Outcome.WON if result == side.value else Outcome.LOST
