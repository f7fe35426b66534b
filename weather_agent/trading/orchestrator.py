"""
Trading Cycle

Runs one decision cycle against the injected Exchange, WeatherFeed and Brain:

1. Cancel resting orders (best effort)
2. Settle the latest pending ledger entry (best effort), persist stats
3. Risk gate on balance and stats, before any market or weather call
4. Fetch the active market, re-check risk with its expiry, take the
   position baseline
5. Fetch the orderbook
6. Fetch weather (deterministic required, ensemble/NWS best effort)
7. Ask the Brain
8. Validate the decision against configured bounds
9. Re-check positions right before placing
10. Place the order, then record it in the ledger

A cycle ends TRADED only through step 10. Every other exit is a no-trade:
a risk/data gate (NO_TRADE), a Pass decision (PASSED), or a failed required
step (ABORTED, carrying the error). Nothing is retried within a cycle.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from ..config import TradingConfig, config
from ..errors import (
    DataUnavailableError,
    ExchangeError,
    InvalidInputError,
    LedgerError,
    NetworkError,
    TraderError,
    UnrecordedOrderError,
)
from ..models import (
    Buy,
    DecisionContext,
    LedgerEntry,
    Market,
    OrderRequest,
    Outcome,
    Pass,
    Settlement,
    Stats,
    TradeDecision,
)
from ..monitoring.logger import get_logger, trade_logger
from ..ports import Brain, Exchange, LedgerStore, WeatherFeed
from .ledger import EST, latest_pending, recompute_stats, replace_entry
from .risk import RiskLimits, RiskViolation, evaluate_risk

logger = get_logger("orchestrator")

# Ledger entries handed to the Brain as recent history
RECENT_TRADES = 20


class Stage(Enum):
    CANCEL = "cancel"
    SETTLE = "settle"
    RISK = "risk"
    MARKET = "market"
    ORDERBOOK = "orderbook"
    WEATHER = "weather"
    DECIDE = "decide"
    VALIDATE = "validate"
    POSITION_CHECK = "position_check"
    EXECUTE = "execute"


class CycleStatus(Enum):
    TRADED = "TRADED"
    PASSED = "PASSED"      # the Brain chose not to trade
    NO_TRADE = "NO_TRADE"  # a gate stopped the cycle
    ABORTED = "ABORTED"    # a required step failed


@dataclass(frozen=True)
class CycleResult:
    """How a cycle ended."""
    status: CycleStatus
    stage: Stage
    reason: str
    ticker: Optional[str] = None
    decision: Optional[TradeDecision] = None
    entry: Optional[LedgerEntry] = None
    error: Optional[TraderError] = None
    violations: tuple[RiskViolation, ...] = ()

    @property
    def traded(self) -> bool:
        return self.status is CycleStatus.TRADED

    @property
    def summary(self) -> str:
        ticker = f" {self.ticker}" if self.ticker else ""
        return f"{self.status.value}{ticker} at {self.stage.value}: {self.reason}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TradingCycle:
    """
    One trading cycle.

    Depends only on the ports; `live_trading` is resolved by the caller
    (paper trading records orders without sending them).
    """

    def __init__(
        self,
        exchange: Exchange,
        weather: WeatherFeed,
        brain: Brain,
        store: LedgerStore,
        trading: Optional[TradingConfig] = None,
        live_trading: bool = False,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.exchange = exchange
        self.weather = weather
        self.brain = brain
        self.store = store
        self.trading = trading or config.trading
        self.limits = RiskLimits.from_config(self.trading)
        self.live_trading = live_trading
        self.clock = clock

        self._stage = Stage.CANCEL
        self._ticker: Optional[str] = None
        self._decision: Optional[TradeDecision] = None

    def _today(self):
        return self.clock().astimezone(EST).date()

    def _enter(self, stage: Stage) -> None:
        self._stage = stage
        logger.debug(f"-> {stage.value}")

    def _result(self, status: CycleStatus, reason: str, **kwargs) -> CycleResult:
        kwargs.setdefault("ticker", self._ticker)
        kwargs.setdefault("decision", self._decision)
        return CycleResult(status=status, stage=self._stage, reason=reason, **kwargs)

    async def run(self) -> CycleResult:
        """Run the cycle to a terminal result.

        Raises:
            UnrecordedOrderError: an order was accepted but could not be
                written to the ledger. The only state the next cycle cannot
                repair on its own.
        """
        mode = "LIVE" if self.live_trading else "PAPER"
        logger.info("=" * 50)
        logger.info(f"Starting trading cycle ({mode})")
        logger.info("=" * 50)

        try:
            result = await self._run()
        except UnrecordedOrderError:
            raise
        except TraderError as e:
            logger.error(f"[{self._stage.value}] {type(e).__name__}: {e}")
            result = self._result(CycleStatus.ABORTED, str(e), error=e)

        logger.info(f"Cycle {result.summary}")
        trade_logger.log_cycle(
            status=result.status.value,
            stage=result.stage.value,
            reason=result.reason,
            ticker=result.ticker,
        )
        return result

    async def _run(self) -> CycleResult:
        # 1. Cancel
        self._enter(Stage.CANCEL)
        unfilled = await self._cancel_resting_orders()

        # 2. Settle
        self._enter(Stage.SETTLE)
        entries, stats = await self._settle(unfilled)

        # 3. Risk gate, before any market or weather call
        self._enter(Stage.RISK)
        balance = await self.exchange.balance()
        logger.info(
            f"Balance {balance}¢ | record {stats.wins}W-{stats.losses}L | "
            f"streak {stats.current_streak:+d} | today {stats.today_pnl_cents:+d}¢"
        )
        verdict = evaluate_risk(balance, stats, self.limits)
        if not verdict.allowed:
            logger.warning(f"Risk veto: {verdict.reason}")
            return self._result(CycleStatus.NO_TRADE, verdict.reason, violations=verdict.violations)

        # 4. Market
        self._enter(Stage.MARKET)
        market = await self.exchange.active_market()
        if market is None:
            return self._result(CycleStatus.NO_TRADE, "No active market")
        self._ticker = market.ticker
        minutes = market.minutes_to_expiry(self.clock())
        logger.info(f"Market {market.ticker} closes in {minutes:.0f} min")

        verdict = evaluate_risk(balance, stats, self.limits, minutes_to_expiry=minutes)
        if not verdict.allowed:
            logger.warning(f"Risk veto: {verdict.reason}")
            return self._result(CycleStatus.NO_TRADE, verdict.reason, violations=verdict.violations)

        baseline = await self._held_tickers()
        if market.ticker in baseline:
            return self._result(CycleStatus.NO_TRADE, f"Already holding a position on {market.ticker}")

        # 5. Orderbook
        self._enter(Stage.ORDERBOOK)
        orderbook = await self.exchange.orderbook(market.ticker)

        # 6. Weather
        self._enter(Stage.WEATHER)
        weather = await self.weather.forecast()
        if weather is None:
            raise DataUnavailableError("Deterministic forecast unavailable")
        logger.info(
            f"Weather: now {weather.current_temp_f:.1f}°F, model high {weather.deterministic_high_f:.1f}°F, "
            f"NWS high {weather.official_high_f if weather.official_high_f is not None else 'n/a'}, "
            f"ensemble {'yes' if weather.ensemble else 'no'}"
        )

        # 7. Brain
        self._enter(Stage.DECIDE)
        context = DecisionContext(
            market=market,
            orderbook=orderbook,
            weather=weather,
            stats=stats,
            recent_trades=tuple(entries[-RECENT_TRADES:]),
        )
        decision = await self.brain.decide(context)
        self._decision = decision

        # 8. Validate
        self._enter(Stage.VALIDATE)
        if isinstance(decision, Pass):
            return self._result(CycleStatus.PASSED, decision.reason)
        request = self._validate(market, decision)

        # 9. Final position check
        self._enter(Stage.POSITION_CHECK)
        if market.ticker in await self._held_tickers():
            logger.warning(f"Position on {market.ticker} appeared during evaluation, not placing")
            return self._result(CycleStatus.NO_TRADE, f"Position appeared on {market.ticker} during evaluation")

        # 10. Execute
        self._enter(Stage.EXECUTE)
        entry = await self._execute(request)
        return self._result(
            CycleStatus.TRADED,
            f"{'LIVE' if not entry.paper else 'PAPER'} {entry.side.value.upper()} "
            f"{entry.shares}x @ {entry.price_cents}¢ (order {entry.order_id})",
            entry=entry,
        )

    # ── Steps ──

    async def _cancel_resting_orders(self) -> set[str]:
        """Cancel every resting order. Returns ids of orders cancelled with no fills."""
        try:
            resting = await self.exchange.resting_orders()
        except ExchangeError as e:
            logger.warning(f"Could not list resting orders: {e}")
            return set()

        unfilled: set[str] = set()
        for order in resting:
            try:
                await self.exchange.cancel_order(order.order_id)
            except ExchangeError as e:
                logger.warning(f"Could not cancel order {order.order_id}: {e}")
                continue
            logger.info(f"Canceled stale order {order.order_id} ({order.ticker})")
            if order.filled_count == 0:
                unfilled.add(order.order_id)
            elif order.remaining_count > 0:
                # Ledger entries only change outcome, so the entry keeps the requested count
                logger.warning(
                    f"Order {order.order_id} cancelled after a partial fill: "
                    f"{order.filled_count} of {order.filled_count + order.remaining_count} shares filled, "
                    f"ledger entry for {order.ticker} still counts {order.remaining_count} unfilled"
                )
        return unfilled

    async def _settle(self, unfilled: set[str]) -> tuple[list[LedgerEntry], Stats]:
        entries = self.store.read()
        changed = False
        now = self.clock()

        # Orders we cancelled before any fill never happened
        for i, entry in enumerate(entries):
            if entry.outcome is Outcome.PENDING and entry.order_id in unfilled:
                entries = replace_entry(entries, i, entry.settle(Outcome.VOID, now.isoformat()))
                logger.info(f"Voided {entry.ticker} entry: order {entry.order_id} cancelled unfilled")
                trade_logger.log_settlement(ticker=entry.ticker, outcome="void", pnl_cents=0)
                changed = True

        index = latest_pending(entries)
        if index is not None:
            updated = await self._settle_entry(entries[index], now)
            if updated is not None:
                entries = replace_entry(entries, index, updated)
                trade_logger.log_settlement(
                    ticker=updated.ticker,
                    outcome=updated.outcome.value,
                    pnl_cents=updated.realized_pnl_cents,
                )
                changed = True

        if changed:
            self.store.save(entries)
        stats = recompute_stats(entries, today=self._today())
        self.store.write_stats(stats)
        return entries, stats

    async def _settle_entry(self, entry: LedgerEntry, now: datetime) -> Optional[LedgerEntry]:
        """The entry's terminal version, or None while it stays Pending."""
        try:
            settlements = await self.exchange.settlements(entry.ticker)
        except ExchangeError as e:
            logger.warning(f"Settlement check for {entry.ticker} failed, keeping it pending: {e}")
            return None

        settlement = self._pick_settlement(entry, settlements)
        if settlement is not None:
            outcome = settlement.outcome_for(entry.side)
            settled = entry.settle(outcome, settlement.settled_time or now.isoformat())
            logger.info(
                f"Settled {entry.ticker}: market {settlement.market_result or 'void'} -> "
                f"{outcome.value.upper()} {settled.realized_pnl_cents:+d}¢"
            )
            return settled

        try:
            placed = datetime.fromisoformat(entry.timestamp)
        except ValueError:
            logger.warning(f"Pending entry {entry.ticker} has unparsable timestamp {entry.timestamp!r}")
            return None
        if placed.tzinfo is None:
            placed = placed.replace(tzinfo=timezone.utc)
        age_hours = (now - placed).total_seconds() / 3600.0
        if age_hours > self.trading.pending_timeout_hours:
            logger.warning(
                f"Pending entry {entry.ticker} is {age_hours:.0f}h old with no settlement, voiding"
            )
            return entry.settle(Outcome.VOID, now.isoformat())
        logger.info(f"{entry.ticker} not settled yet ({age_hours:.1f}h old)")
        return None

    @staticmethod
    def _pick_settlement(entry: LedgerEntry, settlements: list[Settlement]) -> Optional[Settlement]:
        for settlement in settlements:
            if settlement.ticker == entry.ticker:
                return settlement
        return None

    async def _held_tickers(self) -> set[str]:
        positions = await self.exchange.positions()
        return {p.ticker for p in positions if p.count != 0}

    def _validate(self, market: Market, decision: Buy) -> OrderRequest:
        """Check a Buy against configured bounds.

        Oversized share counts are clamped down; an out-of-range price is
        rejected.
        """
        shares = decision.shares
        if shares < 1:
            raise InvalidInputError(f"Decision shares={shares} must be at least 1")
        if shares > self.trading.max_shares:
            logger.warning(f"Clamping {shares} shares to max {self.trading.max_shares}")
            shares = self.trading.max_shares
            self._decision = replace(decision, shares=shares)

        price = decision.max_price_cents
        if not 0 < price <= self.trading.max_price_cents:
            raise InvalidInputError(
                f"Decision price {price}¢ outside (0, {self.trading.max_price_cents}]¢"
            )

        return OrderRequest(ticker=market.ticker, side=decision.side, shares=shares, price_cents=price)

    async def _execute(self, request: OrderRequest) -> LedgerEntry:
        """Place (or paper-place) the order, then append it to the ledger."""
        if not self.live_trading:
            order_id = f"paper-{int(self.clock().timestamp() * 1000)}"
            logger.info(
                f"PAPER: {request.side.value.upper()} {request.shares}x @ {request.price_cents}¢ "
                f"{request.ticker} ({order_id})"
            )
            entry = self._entry(request, order_id, paper=True)
            self.store.append(entry)
            self._log_execution(request, order_id, paper=True)
            self._refresh_stats()
            return entry

        try:
            result = await self.exchange.place_order(request)
        except ExchangeError as e:
            if isinstance(e, NetworkError):
                # The exchange may still have accepted it
                logger.warning(
                    f"Order outcome unknown for {request.ticker}, "
                    f"look it up by client_order_id {request.client_order_id}: {e}"
                )
            trade_logger.log_execution(
                ticker=request.ticker,
                side=request.side.value,
                shares=request.shares,
                price_cents=request.price_cents,
                order_id="",
                success=False,
                error=str(e),
                client_order_id=request.client_order_id,
            )
            raise

        logger.info(
            f"LIVE: {request.side.value.upper()} {request.shares}x @ {request.price_cents}¢ "
            f"{request.ticker} (order {result.order_id}, status {result.status})"
        )
        entry = self._entry(request, result.order_id, paper=False)
        try:
            self.store.append(entry)
        except LedgerError as e:
            logger.critical(
                f"Order {result.order_id} (client_order_id {request.client_order_id}) "
                f"placed but ledger write failed: {e}"
            )
            raise UnrecordedOrderError(
                f"Order {result.order_id} placed but not recorded: {e}",
                order_id=result.order_id,
            ) from e
        self._log_execution(request, result.order_id, paper=False)
        self._refresh_stats()
        return entry

    def _entry(self, request: OrderRequest, order_id: str, paper: bool) -> LedgerEntry:
        return LedgerEntry(
            timestamp=self.clock().isoformat(),
            ticker=request.ticker,
            side=request.side,
            shares=request.shares,
            price_cents=request.price_cents,
            outcome=Outcome.PENDING,
            order_id=order_id,
            paper=paper,
        )

    def _log_execution(self, request: OrderRequest, order_id: str, paper: bool) -> None:
        trade_logger.log_execution(
            ticker=request.ticker,
            side=request.side.value,
            shares=request.shares,
            price_cents=request.price_cents,
            order_id=order_id,
            success=True,
            paper=paper,
            client_order_id=None if paper else request.client_order_id,
        )

    def _refresh_stats(self) -> None:
        # The entry is durable at this point; a stale stats file is rebuilt next cycle
        try:
            self.store.write_stats(recompute_stats(self.store.read(), today=self._today()))
        except LedgerError as e:
            logger.warning(f"Stats refresh failed after recording trade: {e}")
