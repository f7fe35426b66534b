"""
Logging Configuration

Uses loguru for structured, colorful logging with:
- Console output with colors
- File rotation
- JSON trade journal for decisions, executions and settlements
"""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from ..config import config


def setup_logging(
    log_dir: Optional[str] = None,
    log_level: Optional[str] = None,
    rotation: str = "10 MB",
    retention: str = "30 days",
) -> None:
    """
    Configure logging for the application.

    Args:
        log_dir: Directory for log files
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        rotation: Log file rotation size
        retention: How long to keep old logs
    """
    log_level = log_level or config.log_level
    log_path = Path(log_dir or config.log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    # Remove default handler
    logger.remove()

    logger.add(
        sys.stderr,
        level=log_level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        colorize=True,
    )

    logger.add(
        log_path / "agent.log",
        level=log_level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        rotation=rotation,
        retention=retention,
        compression="gz",
    )

    # Trade journal (JSON lines for analysis)
    logger.add(
        log_path / "trades.json",
        level="INFO",
        format="{message}",
        filter=lambda record: record["extra"].get("trade_log", False),
        rotation="1 day",
        retention="90 days",
        serialize=True,
    )

    logger.add(
        log_path / "errors.log",
        level="ERROR",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}\n{exception}",
        rotation=rotation,
        retention=retention,
        compression="gz",
    )

    logger.info(f"Logging initialized at level {log_level}")


def get_logger(name: str = "weather_agent"):
    """Get a logger bound to a component name."""
    return logger.bind(name=name)


class TradeLogger:
    """
    Specialized logger for trade events.

    One structured record per decision, execution, settlement and cycle.
    """

    def __init__(self):
        self.logger = logger.bind(trade_log=True)

    def log_decision(
        self,
        ticker: str,
        action: str,
        edge_pp: float,
        confidence: str,
        side: Optional[str] = None,
        shares: Optional[int] = None,
        price_cents: Optional[int] = None,
        probability: Optional[float] = None,
        reasoning: str = "",
    ):
        """Log a Brain decision."""
        self.logger.info({
            "event": "decision",
            "ticker": ticker,
            "action": action,
            "side": side,
            "shares": shares,
            "price_cents": price_cents,
            "edge_pp": round(edge_pp, 2),
            "probability": probability,
            "confidence": confidence,
            "reasoning": reasoning,
        })

    def log_execution(
        self,
        ticker: str,
        side: str,
        shares: int,
        price_cents: int,
        order_id: str,
        success: bool,
        paper: bool = False,
        error: Optional[str] = None,
        client_order_id: Optional[str] = None,
    ):
        """Log an order placement attempt."""
        self.logger.info({
            "event": "execution",
            "ticker": ticker,
            "side": side,
            "shares": shares,
            "price_cents": price_cents,
            "order_id": order_id,
            "client_order_id": client_order_id,
            "success": success,
            "paper": paper,
            "error": error,
        })

    def log_settlement(
        self,
        ticker: str,
        outcome: str,
        pnl_cents: int,
    ):
        """Log a ledger outcome transition."""
        self.logger.info({
            "event": "settlement",
            "ticker": ticker,
            "outcome": outcome,
            "pnl_cents": pnl_cents,
        })

    def log_cycle(
        self,
        status: str,
        stage: str,
        reason: str,
        ticker: Optional[str] = None,
    ):
        """Log the one-line outcome of a cycle."""
        self.logger.info({
            "event": "cycle",
            "status": status,
            "stage": stage,
            "reason": reason,
            "ticker": ticker,
        })


# Global trade logger instance
trade_logger = TradeLogger()
