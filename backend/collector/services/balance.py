"""
Balance history tracking and spend-rate analytics.

Each fresh balance reading is appended to a capped sequence that lives in a
JSON side file, separate from the relational store. Spend figures are
derived on every query from the nearest preceding sample, so their accuracy
is bounded by the sampling interval.
"""

import asyncio
import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from collector.core.config import settings
from collector.core.errors import PersistenceError, UpstreamError
from collector.models.base import isoformat_utc, utcnow
from collector.services.moonshot import MoonshotClient

logger = logging.getLogger(__name__)

SPEND_WINDOWS = (
    ("last_hour", timedelta(hours=1)),
    ("last_24h", timedelta(hours=24)),
)


def _parse_timestamp(value: str) -> datetime:
    # Files written by JavaScript clients end in "Z"
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class BalanceSample:
    timestamp: datetime
    balance: float

    def to_dict(self) -> Dict[str, Any]:
        return {"timestamp": isoformat_utc(self.timestamp), "balance": self.balance}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BalanceSample":
        return cls(timestamp=_parse_timestamp(data["timestamp"]), balance=float(data["balance"]))


class BalanceHistory:
    """Append-only, capacity-bounded balance samples persisted as JSON."""

    def __init__(self, path: str, max_entries: int = 1000):
        self.path = Path(path).expanduser()
        self.max_entries = max_entries
        self._lock = threading.Lock()
        self._samples: List[BalanceSample] = self._load()

    def _load(self) -> List[BalanceSample]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            samples = [BalanceSample.from_dict(item) for item in raw]
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Ignoring unreadable balance history %s: %s", self.path, e)
            return []
        return samples[-self.max_entries:]

    @property
    def samples(self) -> List[BalanceSample]:
        with self._lock:
            return list(self._samples)

    def __len__(self) -> int:
        with self._lock:
            return len(self._samples)

    def record(self, balance: float, now: Optional[datetime] = None) -> List[BalanceSample]:
        """Append a reading, evict the oldest past capacity, persist the whole sequence."""
        sample = BalanceSample(timestamp=now or utcnow(), balance=float(balance))
        with self._lock:
            samples = (self._samples + [sample])[-self.max_entries:]
            # Memory only changes once the file holds the new sequence
            self._save(samples)
            self._samples = samples
            return list(samples)

    def _save(self, samples: List[BalanceSample]):
        """Replace the file contents atomically (temp file + rename)."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps([s.to_dict() for s in samples], indent=2)
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), prefix=".balance-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise


def _latest_at_or_before(history: List[BalanceSample], cutoff: datetime) -> Optional[BalanceSample]:
    found = None
    for sample in history:
        if sample.timestamp <= cutoff:
            found = sample
    return found


def analyze_spend(
    history: List[BalanceSample],
    current_balance: float,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Derive total and windowed spend from the balance history.

    Windowed periods use the most recent sample at or before ``now - window``
    and are omitted entirely when no such sample exists.
    """
    now = now or utcnow()
    analysis: Dict[str, Any] = {
        "current_balance": current_balance,
        "history_count": len(history),
        "periods": {},
    }

    if len(history) > 1:
        first = history[0]
        spent = first.balance - current_balance
        hours = (now - first.timestamp).total_seconds() / 3600
        analysis["total_tracked"] = {
            "spent": spent,
            "since": isoformat_utc(first.timestamp),
            "hours": round(hours, 1),
            "hourly_rate": round(spent / hours, 2) if hours > 0 else 0,
        }

    for name, window in SPEND_WINDOWS:
        reading = _latest_at_or_before(history, now - window)
        if reading is None:
            continue
        analysis["periods"][name] = {
            "spent": reading.balance - current_balance,
            "start_balance": reading.balance,
            "reading_time": isoformat_utc(reading.timestamp),
        }

    return analysis


class BalanceService:
    """Serializes balance fetches so only one history append is in flight."""

    def __init__(self, client: MoonshotClient, history: BalanceHistory):
        self.client = client
        self.history = history
        self._refresh_lock = asyncio.Lock()
        self._fetch_ok = 0
        self._fetch_failed = 0
        self.last_balance: Optional[Dict[str, Any]] = None

    async def fetch_balance(self) -> Dict[str, Any]:
        """Current balance without touching the history."""
        try:
            balance = await self.client.fetch_balance()
        except UpstreamError:
            self._fetch_failed += 1
            raise
        self._fetch_ok += 1
        balance["last_updated"] = isoformat_utc(utcnow())
        return balance

    async def refresh(self) -> Dict[str, Any]:
        """Fetch a reading, record it, and return the spend analysis."""
        async with self._refresh_lock:
            balance = await self.fetch_balance()
            current = balance["available_balance"]
            now = utcnow()
            try:
                samples = self.history.record(current, now=now)
            except OSError as e:
                logger.error("Could not persist balance history: %s", e)
                raise PersistenceError(f"Could not persist balance history: {e}") from e
            self.last_balance = balance
            return analyze_spend(samples, current, now=now)

    async def run_poller(self, interval_seconds: float):
        """Record a reading every ``interval_seconds`` until cancelled."""
        logger.info("Balance poller started (every %ss)", interval_seconds)
        while True:
            try:
                analysis = await self.refresh()
                logger.info(
                    "Recorded balance %.2f (%d samples)",
                    analysis["current_balance"], analysis["history_count"],
                )
            except UpstreamError as e:
                logger.warning("Balance poll failed: %s", e.message)
            except PersistenceError as e:
                logger.warning("Balance poll not recorded: %s", e.message)
            await asyncio.sleep(interval_seconds)

    def get_stats(self) -> Dict[str, int]:
        return {
            "fetch_ok": self._fetch_ok,
            "fetch_failed": self._fetch_failed,
            "history_count": len(self.history),
        }


# Global balance service instance
balance_service = BalanceService(
    client=MoonshotClient(),
    history=BalanceHistory(settings.balance_history_path, settings.balance_history_max_entries),
)


def get_balance_service() -> BalanceService:
    return balance_service
