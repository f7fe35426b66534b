"""
Trading strategy components.

Includes:
- Rules-based decision engine (edge, sizing, spread-aware pricing)
- Forecast summaries for decision logs
"""

from .decision_engine import (
    DecisionParams,
    RulesBrain,
    decide,
    parse_threshold,
    yes_probability,
)
from .indicators import ensemble_summary, forecast_agreement

__all__ = [
    "DecisionParams",
    "RulesBrain",
    "decide",
    "parse_threshold",
    "yes_probability",
    "ensemble_summary",
    "forecast_agreement",
]
