"""
Main entry point.

Runs exactly one trading cycle for the configured city and exits:
1. Validate startup (credentials, ledger, live confirmation)
2. Take the single-instance lock
3. Wire the Kalshi exchange, weather feed and rules brain into a cycle
4. Run it, alert on trades and operator-level errors

Exit status: 0 for a completed cycle (traded, passed or gated), 1 when
the cycle aborted on an error, 2 when startup checks failed.

Schedule it externally (cron, systemd timer).
"""

import argparse
import asyncio
import sys
from dataclasses import replace
from typing import Optional

from .config import Config, config, get_all_cities, get_city_config
from .errors import (
    AuthError,
    InvalidInputError,
    LedgerError,
    StartupError,
    UnrecordedOrderError,
)
from .apis import WeatherClient
from .kalshi import KalshiAuth, KalshiExchange
from .monitoring import AlertManager, get_logger, setup_logging
from .safety import Lockfile, validate_startup
from .strategy import DecisionParams, RulesBrain
from .trading.ledger import JsonLedgerStore
from .trading.orchestrator import CycleResult, TradingCycle

logger = get_logger("main")

# Errors that need a human, not just the next cycle
ALERTABLE_ERRORS = (AuthError, InvalidInputError, LedgerError)

EXIT_OK = 0
EXIT_CYCLE_ERROR = 1
EXIT_STARTUP_ERROR = 2


class WeatherAgent:
    """
    Wires the concrete adapters together for one city.
    """

    def __init__(self, cfg: Config, live_trading: bool):
        self.cfg = cfg
        self.live_trading = live_trading
        self.city = get_city_config(cfg.city)

        self._auth = KalshiAuth()
        self._exchange = KalshiExchange(self.city.series_ticker, auth=self._auth)
        self._weather = WeatherClient(self.city)
        self._brain = RulesBrain(DecisionParams.from_config(cfg.trading))
        self._store = JsonLedgerStore(cfg.data_dir)
        self._alerts = AlertManager()

    async def close(self):
        """Clean up resources."""
        await self._exchange.close()
        await self._weather.close()
        await self._alerts.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def run_cycle(self) -> CycleResult:
        """Run one cycle and send any alerts it calls for."""
        logger.info(
            f"City {self.city.name} ({self.city.series_ticker}) | "
            f"{'LIVE' if self.live_trading else 'PAPER'} | data {self.cfg.data_dir}"
        )
        cycle = TradingCycle(
            exchange=self._exchange,
            weather=self._weather,
            brain=self._brain,
            store=self._store,
            trading=self.cfg.trading,
            live_trading=self.live_trading,
        )
        try:
            result = await cycle.run()
        except UnrecordedOrderError as e:
            await self._alerts.unrecorded_order(e.order_id, str(e))
            raise

        if result.traded and result.entry is not None:
            entry = result.entry
            await self._alerts.trade_executed(
                ticker=entry.ticker,
                side=entry.side.value,
                shares=entry.shares,
                price_cents=entry.price_cents,
                order_id=entry.order_id,
                paper=entry.paper,
            )
        elif isinstance(result.error, ALERTABLE_ERRORS):
            await self._alerts.cycle_error(
                kind=result.error.kind,
                stage=result.stage.value,
                message=str(result.error),
            )
        return result


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Weather Agent for Kalshi temperature markets")
    parser.add_argument("--city", choices=get_all_cities(), default=None,
                        help="City to trade (default: CITY env var)")
    parser.add_argument("--paper", action="store_true",
                        help="Force paper trading regardless of PAPER_TRADE")
    parser.add_argument("--data-dir", default=None,
                        help="Ledger directory (default: DATA_DIR env var)")
    parser.add_argument("--log-level", default=None,
                        help="DEBUG, INFO, WARNING or ERROR (default: LOG_LEVEL env var)")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace, base: Config = config) -> Config:
    cfg = base
    if args.city:
        cfg = replace(cfg, city=args.city)
    if args.paper:
        cfg = replace(cfg, paper_trade=True)
    if args.data_dir:
        cfg = replace(cfg, data_dir=args.data_dir)
    return cfg


async def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point. Returns the process exit status."""
    args = parse_args(argv)
    setup_logging(log_level=args.log_level)
    cfg = build_config(args)

    try:
        live_trading = validate_startup(cfg)
        lock = Lockfile(cfg.lockfile_path).acquire()
    except StartupError as e:
        logger.error(f"Startup failed: {e}")
        async with AlertManager() as alerts:
            await alerts.startup_failed(str(e))
        return EXIT_STARTUP_ERROR

    try:
        async with WeatherAgent(cfg, live_trading) as agent:
            result = await agent.run_cycle()
    except UnrecordedOrderError as e:
        logger.critical(f"Cycle left an unrecorded order: {e}")
        return EXIT_CYCLE_ERROR
    finally:
        lock.release()

    print(result.summary)
    return EXIT_CYCLE_ERROR if result.error is not None else EXIT_OK


def run():
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
