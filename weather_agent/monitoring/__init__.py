"""
Monitoring module for logging and alerts.

Provides:
- Structured logging with loguru
- JSON trade journal
- Discord/Telegram alert notifications
"""

from .logger import setup_logging, get_logger, TradeLogger, trade_logger
from .alerts import AlertManager, Alert, AlertLevel

__all__ = [
    "setup_logging",
    "get_logger",
    "TradeLogger",
    "trade_logger",
    "AlertManager",
    "Alert",
    "AlertLevel",
]
