"""
Kalshi integration module.

Provides RSA-PSS authentication and the exchange client for Kalshi weather
temperature markets (KXHIGH series).
"""

from .auth import KalshiAuth
from .client import KalshiExchange, normalize_levels, parse_market

__all__ = [
    "KalshiAuth",
    "KalshiExchange",
    "normalize_levels",
    "parse_market",
]
