"""
Process-level safety gates, checked once before a cycle runs.

- Single-instance PID lockfile with stale-lock takeover
- Startup validation: city, credentials, ledger, live-trading confirmation
"""

import os
from pathlib import Path
from typing import Optional

from .config import Config, get_city_config
from .errors import LedgerError, StartupError
from .kalshi.auth import KalshiAuth
from .monitoring.logger import get_logger
from .trading.ledger import JsonLedgerStore

logger = get_logger("safety")


def _pid_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True  # exists, owned by another user
    return True


class Lockfile:
    """
    PID lockfile. Usable as a context manager.

    A lockfile whose PID is no longer running is treated as stale and taken
    over.
    """

    def __init__(self, path: str):
        self.path = Path(path)
        self._held = False

    def _read_pid(self) -> Optional[int]:
        try:
            return int(self.path.read_text().strip() or 0)
        except FileNotFoundError:
            return None
        except ValueError:
            return 0

    def acquire(self) -> "Lockfile":
        """
        Raises:
            StartupError: another live process holds the lock.
        """
        pid = self._read_pid()
        if pid is not None:
            if _pid_alive(pid) and pid != os.getpid():
                raise StartupError(f"Another instance is running (PID {pid}, lock {self.path})")
            logger.warning(f"Removing stale lockfile {self.path} (PID {pid} not running)")
            self.path.unlink(missing_ok=True)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError as e:
            raise StartupError(f"Lockfile {self.path} was taken by another process") from e
        with os.fdopen(fd, "w") as f:
            f.write(str(os.getpid()))
        self._held = True
        return self

    def release(self) -> None:
        if self._held:
            self.path.unlink(missing_ok=True)
            self._held = False

    def __enter__(self):
        return self.acquire()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()


def validate_startup(cfg: Config, auth: Optional[KalshiAuth] = None) -> bool:
    """
    Check everything a cycle needs before it starts.

    Returns:
        Whether live trading is enabled.

    Raises:
        StartupError: with the first problem found.
    """
    if not cfg.paper_trade and not cfg.confirm_live:
        raise StartupError(
            "PAPER_TRADE=false but CONFIRM_LIVE is not true. "
            "Set CONFIRM_LIVE=true to acknowledge real money trading."
        )

    try:
        get_city_config(cfg.city)
    except ValueError as e:
        raise StartupError(str(e)) from e

    auth = auth or KalshiAuth()
    ok, message = auth.validate_for_trading()
    if not ok:
        raise StartupError(message)

    try:
        JsonLedgerStore(cfg.data_dir).read()
    except LedgerError as e:
        raise StartupError(f"Ledger unusable: {e}") from e

    if cfg.live_trading:
        logger.warning("LIVE TRADING ENABLED - real money at risk")
    else:
        logger.info("Paper trading: orders are recorded, not sent")
    return cfg.live_trading
