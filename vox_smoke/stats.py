# vox_smoke/stats.py
"""
Call Statistics

Summarises finalized call records: how many calls reached an answered
state, how statuses are distributed, and the average post-dial and answer
delays.
"""

import json
from collections.abc import Iterable
from dataclasses import asdict, dataclass, field
from pathlib import Path

from loguru import logger

from .protocol import CallMetrics


@dataclass
class StatsSummary:
    total: int = 0
    delivered_count: int = 0
    delivered_rate: float = 0.0
    status_distribution: dict[str, int] = field(default_factory=dict)
    avg_post_dial_delay_ms: float | None = None
    avg_answer_delay_ms: float | None = None

    def to_dict(self) -> dict:
        return asdict(self)


def _mean(values: list[int]) -> float | None:
    return sum(values) / len(values) if values else None


def compute_stats(records: Iterable[CallMetrics]) -> StatsSummary:
    """
    Aggregate finalized records.

    A call counts as delivered when it has a ``connected_at`` timestamp,
    whatever its final status. Averages only include records where the
    metric is present and are None when no record has it.
    """
    records = list(records)
    if not records:
        return StatsSummary()

    distribution: dict[str, int] = {}
    delivered = 0
    pdd: list[int] = []
    answer: list[int] = []

    for r in records:
        distribution[r.final_status] = distribution.get(r.final_status, 0) + 1
        if r.connected_at:
            delivered += 1
        if r.post_dial_delay_ms is not None:
            pdd.append(r.post_dial_delay_ms)
        if r.answer_delay_ms is not None:
            answer.append(r.answer_delay_ms)

    return StatsSummary(
        total=len(records),
        delivered_count=delivered,
        delivered_rate=delivered / len(records),
        status_distribution=distribution,
        avg_post_dial_delay_ms=_mean(pdd),
        avg_answer_delay_ms=_mean(answer),
    )


def load_summaries(path: str | Path) -> list[CallMetrics]:
    """Read finalized records from a JSONL file; a missing file means no records."""
    path = Path(path)
    if not path.exists():
        return []

    records = []
    with open(path, encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                records.append(CallMetrics.from_dict(json.loads(line)))
            except (ValueError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping malformed summary at {path}:{lineno}: {e}")
    return records


def format_stats(stats: StatsSummary) -> str:
    """Render a summary as a plain-text report."""
    if stats.total == 0:
        return "No call summaries found."

    def ms(value: float | None) -> str:
        return f"{value:.0f} ms" if value is not None else "N/A"

    lines = [
        "=== Voximplant Call Statistics ===",
        "",
        f"Total calls: {stats.total}",
        f"Delivered rate: {stats.delivered_rate * 100:.1f}% "
        f"({stats.delivered_count}/{stats.total})",
        f"Avg PDD: {ms(stats.avg_post_dial_delay_ms)}",
        f"Avg Answer Delay: {ms(stats.avg_answer_delay_ms)}",
        "",
        "Status distribution:",
    ]
    ordered = sorted(stats.status_distribution.items(), key=lambda kv: kv[1], reverse=True)
    for status, count in ordered:
        lines.append(f"  {status}: {count} ({count / stats.total * 100:.1f}%)")
    return "\n".join(lines)
