"""Outbound call smoke testing against Voximplant: tracking, paced batches and stats."""

from .batch import BatchRunner, run_batch
from .caps import DailyCapStore
from .stats import compute_stats
from .tracker import CallTracker

__all__ = ["BatchRunner", "CallTracker", "DailyCapStore", "compute_stats", "run_batch"]
