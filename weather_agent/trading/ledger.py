"""
Trade Ledger

Append-only record of every order the exchange accepted (plus paper orders),
and the stats derived from it.

Data stored in: <DATA_DIR>/ledger.json (entries), <DATA_DIR>/stats.json
(derived summary, rewritten every cycle, never read back as a source).
"""

import json
import os
import shutil
import tempfile
from dataclasses import asdict
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Iterable, Optional
from zoneinfo import ZoneInfo

from ..errors import LedgerError
from ..models import LedgerEntry, Outcome, Stats
from ..monitoring.logger import get_logger

logger = get_logger("ledger")

EST = ZoneInfo("America/New_York")


def today_est() -> date:
    return datetime.now(EST).date()


def _est_date(iso_ts: str) -> Optional[date]:
    try:
        ts = datetime.fromisoformat(iso_ts)
    except (TypeError, ValueError):
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(EST).date()


def recompute_stats(entries: Iterable[LedgerEntry], today: Optional[date] = None) -> Stats:
    """
    Fold the full ledger into Stats.

    Pure: the same entries (and day) always give the same Stats. The streak
    follows ledger order and counts only Won/Lost entries. Today's P&L is
    bucketed by the settlement day in US Eastern time.
    """
    today = today or today_est()

    wins = losses = voids = pending = total = 0
    total_pnl = today_pnl = 0
    streak = 0
    cumulative = peak = max_drawdown = 0
    win_pnls: list[int] = []
    loss_pnls: list[int] = []

    for entry in entries:
        total += 1
        outcome = entry.outcome
        if outcome is Outcome.PENDING:
            pending += 1
            continue
        if outcome is Outcome.VOID:
            voids += 1
            continue

        pnl = entry.realized_pnl_cents
        total_pnl += pnl
        if _est_date(entry.settled_at or entry.timestamp) == today:
            today_pnl += pnl

        if outcome is Outcome.WON:
            wins += 1
            win_pnls.append(pnl)
            streak = streak + 1 if streak > 0 else 1
        else:
            losses += 1
            loss_pnls.append(pnl)
            streak = streak - 1 if streak < 0 else -1

        cumulative += pnl
        peak = max(peak, cumulative)
        max_drawdown = max(max_drawdown, peak - cumulative)

    decided = wins + losses
    return Stats(
        total_trades=total,
        wins=wins,
        losses=losses,
        voids=voids,
        pending=pending,
        win_rate=wins / decided if decided else 0.0,
        total_pnl_cents=total_pnl,
        today_pnl_cents=today_pnl,
        current_streak=streak,
        max_drawdown_cents=max_drawdown,
        avg_win_cents=sum(win_pnls) / len(win_pnls) if win_pnls else 0.0,
        avg_loss_cents=sum(loss_pnls) / len(loss_pnls) if loss_pnls else 0.0,
    )


def latest_pending(entries: list[LedgerEntry]) -> Optional[int]:
    """Index of the most recent Pending entry, if any."""
    for i in range(len(entries) - 1, -1, -1):
        if entries[i].outcome is Outcome.PENDING:
            return i
    return None


def replace_entry(entries: list[LedgerEntry], index: int, entry: LedgerEntry) -> list[LedgerEntry]:
    """Copy of the ledger with one entry swapped (outcome transitions only)."""
    old = entries[index]
    if (old.ticker, old.timestamp, old.order_id) != (entry.ticker, entry.timestamp, entry.order_id):
        raise LedgerError(f"Refusing to rewrite ledger entry {index}: identity changed")
    updated = list(entries)
    updated[index] = entry
    return updated


def _fsync_dir(directory: Path) -> None:
    try:
        fd = os.open(directory, os.O_RDONLY)
    except OSError:
        return  # not supported on this platform
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def _atomic_write_json(path: Path, data) -> None:
    """Write to a temp file in the same directory, fsync, then rename over."""
    fd, tmp_path = tempfile.mkstemp(suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(data, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)  # Atomic on POSIX
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
    _fsync_dir(path.parent)


class JsonLedgerStore:
    """
    Ledger persisted as a JSON array.

    Every save first copies the current file to ledger.json.bak, then
    atomically replaces ledger.json. A crash mid-write leaves either the old
    or the new file; a corrupt main file falls back to the backup on read.
    """

    def __init__(self, data_dir: str):
        self.data_dir = Path(data_dir)
        self.ledger_path = self.data_dir / "ledger.json"
        self.backup_path = self.data_dir / "ledger.json.bak"
        self.stats_path = self.data_dir / "stats.json"

    @staticmethod
    def _parse(path: Path) -> list[LedgerEntry]:
        with open(path, "r") as f:
            raw = json.load(f)
        if not isinstance(raw, list):
            raise ValueError(f"{path} does not hold a JSON array")
        return [LedgerEntry.from_dict(item) for item in raw]

    def read(self) -> list[LedgerEntry]:
        if not self.ledger_path.exists():
            if self.backup_path.exists():
                logger.warning(f"{self.ledger_path} missing, reading backup")
                return self._read_backup()
            return []
        try:
            return self._parse(self.ledger_path)
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"Ledger {self.ledger_path} unreadable ({e}), falling back to backup")
            return self._read_backup()
        except OSError as e:
            raise LedgerError(f"Cannot read ledger {self.ledger_path}: {e}") from e

    def _read_backup(self) -> list[LedgerEntry]:
        if not self.backup_path.exists():
            raise LedgerError(f"Ledger {self.ledger_path} is corrupt and no backup exists")
        try:
            return self._parse(self.backup_path)
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise LedgerError(f"Ledger and backup both unreadable: {e}") from e

    def save(self, entries: list[LedgerEntry]) -> None:
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            if self.ledger_path.exists():
                shutil.copy2(self.ledger_path, self.backup_path)
            _atomic_write_json(self.ledger_path, [e.to_dict() for e in entries])
        except OSError as e:
            raise LedgerError(f"Cannot write ledger {self.ledger_path}: {e}") from e
        logger.debug(f"Ledger saved ({len(entries)} entries)")

    def append(self, entry: LedgerEntry) -> list[LedgerEntry]:
        entries = self.read()
        entries.append(entry)
        self.save(entries)
        return entries

    def write_stats(self, stats: Stats) -> None:
        data = asdict(stats)
        data["updated_at"] = datetime.now(timezone.utc).isoformat()
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            _atomic_write_json(self.stats_path, data)
        except OSError as e:
            raise LedgerError(f"Cannot write stats {self.stats_path}: {e}") from e
