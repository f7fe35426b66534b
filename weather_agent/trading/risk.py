"""
Risk Evaluator

Hard limits checked before any forecast is fetched and again once the
market (and its expiry) is known. Every check runs, so one log line can
report all failing conditions.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..config import TradingConfig
from ..models import Stats


class RiskCheck(Enum):
    """Types of risk checks."""
    MIN_BALANCE = "min_balance"
    DAILY_LOSS_LIMIT = "daily_loss_limit"
    LOSING_STREAK = "losing_streak"
    TIME_TO_EXPIRY = "time_to_expiry"


@dataclass(frozen=True)
class RiskViolation:
    """Details of a risk limit violation."""
    check: RiskCheck
    message: str
    current_value: float
    limit_value: float


@dataclass(frozen=True)
class RiskLimits:
    min_balance_cents: int = 500
    max_daily_loss_cents: int = 1000
    max_consecutive_losses: int = 7
    min_minutes_to_expiry: float = 30.0

    @classmethod
    def from_config(cls, trading: TradingConfig) -> "RiskLimits":
        return cls(
            min_balance_cents=trading.min_balance_cents,
            max_daily_loss_cents=trading.max_daily_loss_cents,
            max_consecutive_losses=trading.max_consecutive_losses,
            min_minutes_to_expiry=trading.min_minutes_to_expiry,
        )


@dataclass(frozen=True)
class RiskVerdict:
    violations: tuple[RiskViolation, ...] = field(default_factory=tuple)

    @property
    def allowed(self) -> bool:
        return not self.violations

    @property
    def reason(self) -> str:
        if self.allowed:
            return "all risk checks passed"
        return "; ".join(v.message for v in self.violations)


def evaluate_risk(
    balance_cents: int,
    stats: Stats,
    limits: RiskLimits,
    minutes_to_expiry: Optional[float] = None,
) -> RiskVerdict:
    """
    Run every hard limit against the current account state.

    Args:
        balance_cents: Available balance
        stats: Stats recomputed from the ledger
        limits: Configured ceilings and floors
        minutes_to_expiry: Minutes until the market closes. None skips the
            check (the market is not known yet).
    """
    violations: list[RiskViolation] = []

    if balance_cents < limits.min_balance_cents:
        violations.append(RiskViolation(
            check=RiskCheck.MIN_BALANCE,
            message=f"Balance {balance_cents}¢ below floor {limits.min_balance_cents}¢",
            current_value=balance_cents,
            limit_value=limits.min_balance_cents,
        ))

    loss_today = stats.realized_loss_today_cents
    if loss_today >= limits.max_daily_loss_cents:
        violations.append(RiskViolation(
            check=RiskCheck.DAILY_LOSS_LIMIT,
            message=f"Realized loss today {loss_today}¢ reached limit {limits.max_daily_loss_cents}¢",
            current_value=loss_today,
            limit_value=limits.max_daily_loss_cents,
        ))

    streak = stats.losing_streak
    if streak >= limits.max_consecutive_losses:
        violations.append(RiskViolation(
            check=RiskCheck.LOSING_STREAK,
            message=f"{streak} consecutive losses (limit {limits.max_consecutive_losses})",
            current_value=streak,
            limit_value=limits.max_consecutive_losses,
        ))

    if minutes_to_expiry is not None and minutes_to_expiry < limits.min_minutes_to_expiry:
        violations.append(RiskViolation(
            check=RiskCheck.TIME_TO_EXPIRY,
            message=(
                f"{minutes_to_expiry:.0f} min to expiry, need "
                f"{limits.min_minutes_to_expiry:.0f}"
            ),
            current_value=minutes_to_expiry,
            limit_value=limits.min_minutes_to_expiry,
        ))

    return RiskVerdict(violations=tuple(violations))
