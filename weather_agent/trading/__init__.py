"""
Trading Engine Module

One-shot trading cycle, hard risk limits, and the durable trade ledger.
"""

from .risk import (
    RiskCheck,
    RiskLimits,
    RiskVerdict,
    RiskViolation,
    evaluate_risk,
)
from .ledger import (
    JsonLedgerStore,
    latest_pending,
    recompute_stats,
    replace_entry,
)
from .orchestrator import (
    CycleResult,
    CycleStatus,
    Stage,
    TradingCycle,
)

__all__ = [
    # Risk
    "RiskCheck",
    "RiskLimits",
    "RiskVerdict",
    "RiskViolation",
    "evaluate_risk",
    # Ledger
    "JsonLedgerStore",
    "latest_pending",
    "recompute_stats",
    "replace_entry",
    # Cycle
    "CycleResult",
    "CycleStatus",
    "Stage",
    "TradingCycle",
]
