"""
Rules-based decision engine.

Turns a DecisionContext into Pass or Buy:

    edge(side) = (P_model(side) - ask(side) / 100) x confidence weight

P_model(YES) comes from ensemble bucket probabilities on the qualifying side
of the contract's threshold. Without an ensemble it falls back to a logistic
curve around the deterministic forecast high, at Low confidence.

`decide` is pure: same context and params, same decision. `RulesBrain` wraps
it behind the Brain interface and does the logging.
"""

import re
from dataclasses import dataclass
from typing import Optional

from scipy.special import expit

from ..config import TradingConfig, config
from ..errors import InvalidInputError
from ..models import (
    Buy,
    ConfidenceTier,
    DecisionContext,
    Direction,
    EnsembleSummary,
    Market,
    Orderbook,
    Pass,
    Side,
    Threshold,
    TradeDecision,
    WeatherSnapshot,
)
from ..monitoring.logger import get_logger, trade_logger
from .indicators import ensemble_summary, forecast_agreement, top_buckets

logger = get_logger("decision_engine")

# Degrees F over which the fallback curve goes from 50% to ~73%
FALLBACK_SCALE_F = 2.0

# Edge (percentage points) at which a second share is added
SECOND_SHARE_EDGE_PP = 10.0

_TICKER_STRIKE = re.compile(r"-([TB])(\d+(?:\.\d+)?)$")


@dataclass(frozen=True)
class DecisionParams:
    """Decision thresholds. Defaults match TradingConfig."""
    min_edge_pp: float = 5.0
    max_price_cents: int = 50
    max_shares: int = 2
    tight_spread_cents: int = 4

    @classmethod
    def from_config(cls, trading: TradingConfig) -> "DecisionParams":
        return cls(
            min_edge_pp=trading.min_edge_pp,
            max_price_cents=trading.max_price_cents,
            max_shares=trading.max_shares,
            tight_spread_cents=trading.tight_spread_cents,
        )


# ── Threshold parsing ──

def parse_threshold(market: Market) -> Threshold:
    """
    Read the contract condition from strike fields, else the ticker suffix.

    "-T39" is "high > 39", "-B40.5" is the 2°F bucket centered on 40.5.

    Raises:
        InvalidInputError: neither source describes a threshold.
    """
    floor, cap = market.floor_strike, market.cap_strike
    strike_type = (market.strike_type or "").lower()

    if strike_type in ("greater", ">") and floor is not None:
        return Threshold.above(floor)
    if strike_type in ("less", "<") and cap is not None:
        return Threshold.below(cap)
    if strike_type in ("between", "between_inclusive") and floor is not None and cap is not None:
        return Threshold.between(floor, cap)

    # Strike type missing or unknown: infer from which strikes are present
    if floor is not None and cap is not None:
        return Threshold.between(floor, cap)
    if floor is not None:
        return Threshold.above(floor)
    if cap is not None:
        return Threshold.below(cap)

    match = _TICKER_STRIKE.search(market.ticker)
    if match:
        kind, value = match.group(1), float(match.group(2))
        if kind == "T":
            return Threshold.above(value)
        return Threshold.between(value - 1.0, value + 1.0)

    raise InvalidInputError(f"Cannot parse threshold from market {market.ticker!r}")


# ── Probability ──

def bucket_probability(ensemble: EnsembleSummary, threshold: Threshold) -> float:
    """Sum bucket probabilities satisfying the threshold.

    A bucket straddling a cutoff contributes in proportion to its overlap.
    """
    if threshold.direction is Direction.ABOVE:
        lo, hi = threshold.lower, float("inf")
    elif threshold.direction is Direction.BELOW:
        lo, hi = float("-inf"), threshold.upper
    else:
        lo, hi = threshold.lower, threshold.upper

    total = 0.0
    for bucket in ensemble.buckets:
        width = bucket.upper - bucket.lower
        if width <= 0:
            continue
        overlap = min(bucket.upper, hi) - max(bucket.lower, lo)
        if overlap <= 0:
            continue
        total += bucket.probability * min(1.0, overlap / width)
    return total


def _below_cdf(high_f: float, cutoff: float) -> float:
    """P(day's high < cutoff) on the logistic fallback curve."""
    return float(expit((cutoff - high_f) / FALLBACK_SCALE_F))


def fallback_probability(high_f: float, threshold: Threshold) -> float:
    """Logistic estimate centered on the deterministic high (0.5 at the cutoff)."""
    if threshold.direction is Direction.ABOVE:
        return 1.0 - _below_cdf(high_f, threshold.lower)
    if threshold.direction is Direction.BELOW:
        return _below_cdf(high_f, threshold.upper)
    return _below_cdf(high_f, threshold.upper) - _below_cdf(high_f, threshold.lower)


def yes_probability(weather: WeatherSnapshot, threshold: Threshold) -> tuple[float, ConfidenceTier, str]:
    """Model probability of YES, the confidence tier to weight it by, and its source."""
    ensemble = weather.ensemble
    if ensemble is not None and ensemble.buckets:
        prob = bucket_probability(ensemble, threshold)
        source = "ensemble"
        tier = weather.confidence
    else:
        prob = fallback_probability(weather.deterministic_high_f, threshold)
        source = "fallback"
        tier = ConfidenceTier.LOW
    # Bucket sums may drift slightly past 1.0
    return min(1.0, max(0.0, prob)), tier, source


# ── Sizing and pricing ──

def size_for_edge(edge_pp: float, params: DecisionParams) -> int:
    """1 share below 10pp of edge, 2 from there up, never above max_shares."""
    shares = 2 if edge_pp >= SECOND_SHARE_EDGE_PP else 1
    return min(shares, params.max_shares)


def quote(market: Market, orderbook: Orderbook, side: Side) -> tuple[Optional[int], Optional[int]]:
    """(bid, ask) for a side, filling a missing quote from the orderbook."""
    bid = market.bid(side) or orderbook.best_bid(side)
    ask = market.ask(side) or orderbook.implied_ask(side)
    return bid or None, ask or None


def limit_price(bid: Optional[int], ask: int, params: DecisionParams) -> int:
    """Pay the ask on a tight spread, otherwise bid the midpoint."""
    bid = bid or 0
    if ask - bid <= params.tight_spread_cents:
        return ask
    return max(1, (bid + ask) // 2)


# ── Decision ──

def _points(value: float) -> float:
    # Round away float noise so 0.55 - 0.50 counts as exactly 5.0 points
    return round(value * 100.0, 9)


def decide(context: DecisionContext, params: DecisionParams = DecisionParams()) -> TradeDecision:
    """
    Decide whether to buy a side of the market.

    Raises:
        InvalidInputError: the market's threshold cannot be parsed.
    """
    market = context.market
    threshold = parse_threshold(market)
    p_yes, tier, source = yes_probability(context.weather, threshold)
    weight = tier.weight

    quotes = {side: quote(market, context.orderbook, side) for side in Side}
    model = {Side.YES: p_yes, Side.NO: 1.0 - p_yes}

    edges: dict[Side, float] = {}
    for side in Side:
        ask = quotes[side][1]
        if ask is not None:
            edges[side] = _points((model[side] - ask / 100.0) * weight)

    if not edges:
        return Pass(reason=f"No ask on either side of {market.ticker}")

    # YES wins ties
    side = max(edges, key=lambda s: (edges[s], s is Side.YES))
    edge = edges[side]
    bid, ask = quotes[side]
    summary = (
        f"{threshold}: model {side.value.upper()}={model[side]:.0%} ({source}, {tier.value}) "
        f"vs ask {ask}¢ -> {edge:+.1f}pp"
    )

    if edge < params.min_edge_pp:
        return Pass(reason=f"Edge too small. {summary}", edge_pp=edge)
    if ask > params.max_price_cents:
        return Pass(
            reason=f"Ask {ask}¢ above {params.max_price_cents}¢ cap. {summary}",
            edge_pp=edge,
        )

    shares = size_for_edge(edge, params)
    price = limit_price(bid, ask, params)
    return Buy(
        side=side,
        shares=shares,
        max_price_cents=price,
        edge_pp=edge,
        probability=round(model[side], 6),
        reasoning=f"{summary}. {shares}x @ {price}¢",
    )


class RulesBrain:
    """Brain backed by the deterministic rules above."""

    def __init__(self, params: Optional[DecisionParams] = None):
        self.params = params or DecisionParams.from_config(config.trading)

    async def decide(self, context: DecisionContext) -> TradeDecision:
        weather = context.weather
        logger.info(
            f"{context.market.ticker} | yes {context.market.yes_bid}/{context.market.yes_ask}¢ "
            f"no {context.market.no_bid}/{context.market.no_ask}¢ | confidence {weather.confidence.value}"
        )
        logger.info(forecast_agreement(weather))
        logger.info(f"Ensemble: {ensemble_summary(weather.ensemble)} | top: {top_buckets(weather.ensemble)}")

        decision = decide(context, self.params)

        if isinstance(decision, Buy):
            logger.info(f"BUY {decision.side.value.upper()}: {decision.reasoning}")
            trade_logger.log_decision(
                ticker=context.market.ticker,
                action="buy",
                edge_pp=decision.edge_pp,
                confidence=weather.confidence.value,
                side=decision.side.value,
                shares=decision.shares,
                price_cents=decision.max_price_cents,
                probability=decision.probability,
                reasoning=decision.reasoning,
            )
        else:
            logger.info(f"PASS: {decision.reason}")
            trade_logger.log_decision(
                ticker=context.market.ticker,
                action="pass",
                edge_pp=decision.edge_pp,
                confidence=weather.confidence.value,
                reasoning=decision.reason,
            )
        return decision
