# vox_smoke/caps.py
"""
Daily Cap Store

Per-destination call counters for the current calendar day (UTC), kept in a
single JSON file that is overwritten whole on every save.

There is no locking: one scheduling process is assumed to own the file.
Two processes running batches against the same file can overshoot the cap.
"""

import json
import os
import tempfile
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path

from loguru import logger


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


@dataclass
class DailyCaps:
    date: str
    counts: dict[str, int] = field(default_factory=dict)

    def count(self, number: str) -> int:
        return self.counts.get(number, 0)


class DailyCapStore:
    """Loads and saves the daily counters snapshot."""

    def __init__(self, path: str | Path, today: Callable[[], date] = _utc_today):
        self.path = Path(path)
        self._today = today

    def _today_str(self) -> str:
        return self._today().isoformat()

    def load(self) -> DailyCaps:
        """
        Read the persisted counters.

        A missing, unreadable or stale (not today) snapshot yields an empty
        counter set for today; the reset is lazy and happens here.
        """
        today = self._today_str()
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return DailyCaps(date=today)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read daily caps from {self.path}: {e}")
            return DailyCaps(date=today)

        if not isinstance(raw, dict) or raw.get("date") != today:
            return DailyCaps(date=today)

        counts = raw.get("counts") or {}
        if not isinstance(counts, dict):
            logger.warning(f"Ignoring malformed counts in {self.path}")
            return DailyCaps(date=today)
        return DailyCaps(
            date=today,
            counts={str(k): int(v) for k, v in counts.items() if isinstance(v, int)},
        )

    def save(self, caps: DailyCaps) -> None:
        """Atomically replace the snapshot on disk."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps({"date": caps.date, "counts": caps.counts}, indent=2)
        fd, tmp_path = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
