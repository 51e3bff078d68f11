# vox_smoke/batch.py
"""
Batch Scheduler

Runs a list of destinations through the provider ``repeat`` times with a
random pause before each call, skipping numbers that already hit today's
cap.

The whole schedule is built, and the daily counters saved, before the first
call goes out. A crash mid-batch therefore cannot let a retry exceed the
cap, at the cost of a failed or never-reached entry still spending its slot.

Entries run strictly one after another. Batches cannot be cancelled once
submitted; they run to completion or die with the process.
"""

import asyncio
import random
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal

from loguru import logger

from .caps import DailyCaps, DailyCapStore

PlaceCall = Callable[[str], Awaitable[Any]]
Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class ScheduleEntry:
    destination: str
    round: int
    delay_ms: int


@dataclass
class BatchResult:
    scheduled: int = 0
    skipped: int = 0
    attempted: int = 0
    failed: int = 0


def load_numbers_from_file(path: str | Path) -> list[str]:
    """Read one number per line, ignoring blank lines and ``#`` comments."""
    with open(path, encoding="utf-8") as f:
        lines = [line.strip() for line in f]
    return [line for line in lines if line and not line.startswith("#")]


def _check_bounds(repeat: int, min_delay_sec: float, max_delay_sec: float, daily_cap: int) -> None:
    if repeat < 0:
        raise ValueError(f"repeat must be >= 0, got {repeat}")
    if daily_cap < 0:
        raise ValueError(f"daily_cap must be >= 0, got {daily_cap}")
    if min_delay_sec < 0 or max_delay_sec < min_delay_sec:
        raise ValueError(
            f"delay bounds must satisfy 0 <= min <= max, got [{min_delay_sec}, {max_delay_sec}]"
        )


def build_schedule(
    destinations: list[str],
    repeat: int,
    min_delay_sec: float,
    max_delay_sec: float,
    daily_cap: int,
    caps: DailyCaps,
    rng: random.Random | Any = random,
) -> tuple[list[ScheduleEntry], int]:
    """
    Build the ordered schedule, reserving a cap slot for every entry.

    ``caps`` is updated in place. Delays are drawn uniformly over whole
    milliseconds in ``[min_delay_sec, max_delay_sec]``.

    Returns:
        tuple[list[ScheduleEntry], int]: The schedule and the number of
        (destination, round) pairs skipped because of the cap.
    """
    _check_bounds(repeat, min_delay_sec, max_delay_sec, daily_cap)
    low, high = round(min_delay_sec * 1000), round(max_delay_sec * 1000)

    schedule: list[ScheduleEntry] = []
    skipped = 0
    for round_no in range(1, repeat + 1):
        for number in destinations:
            current = caps.count(number)
            if current >= daily_cap:
                logger.info(
                    f"[batch] Skipping {number} round {round_no}: daily cap ({daily_cap}) reached"
                )
                skipped += 1
                continue
            schedule.append(ScheduleEntry(number, round_no, rng.randint(low, high)))
            caps.counts[number] = current + 1
    return schedule, skipped


async def run_batch(
    destinations: list[str],
    repeat: int,
    min_delay_sec: float,
    max_delay_sec: float,
    dry_run: bool,
    daily_cap: int,
    place_call: PlaceCall,
    cap_store: DailyCapStore,
    sleep: Sleep = asyncio.sleep,
    rng: random.Random | Any = random,
) -> BatchResult:
    """
    Build the schedule, persist the reserved quota, then dial entry by entry.

    A failure placing one entry is logged and counted; the remaining
    entries still run. In dry-run mode entries are only logged: no delay
    is awaited and nothing is dialed.
    """
    caps = cap_store.load()
    schedule, skipped = build_schedule(
        destinations, repeat, min_delay_sec, max_delay_sec, daily_cap, caps, rng
    )
    cap_store.save(caps)

    result = BatchResult(scheduled=len(schedule), skipped=skipped)
    logger.info(f"[batch] Scheduled {len(schedule)} calls. dry_run={dry_run}")

    for i, entry in enumerate(schedule, start=1):
        logger.info(
            f"[batch] [{i}/{len(schedule)}] Round {entry.round}: {entry.destination} "
            f"(delay: {entry.delay_ms / 1000:.0f}s)"
        )
        if dry_run:
            continue

        await sleep(entry.delay_ms / 1000)
        result.attempted += 1
        try:
            await place_call(entry.destination)
        except Exception as e:
            result.failed += 1
            logger.error(f"[batch] Failed to call {entry.destination}: {e}")

    logger.info(
        f"[batch] Batch complete: {result.attempted} attempted, {result.failed} failed, "
        f"{result.skipped} skipped"
    )
    return result


BatchStatus = Literal["pending", "running", "completed", "failed"]


@dataclass
class BatchJob:
    """A submitted batch and its outcome."""

    id: str
    destinations: list[str]
    created_at: str
    status: BatchStatus = "pending"
    finished_at: str | None = None
    result: BatchResult | None = None
    error: str | None = None
    task: asyncio.Task | None = field(default=None, repr=False)

    def to_dict(self) -> dict:
        return {
            "job_id": self.id,
            "status": self.status,
            "count": len(self.destinations),
            "created_at": self.created_at,
            "finished_at": self.finished_at,
            "result": self.result.__dict__ if self.result else None,
            "error": self.error,
        }


class BatchRunner:
    """
    Runs batches as background tasks and keeps their handles.

    The HTTP layer answers as soon as a batch is submitted; callers poll
    the job to see whether it finished or failed.
    """

    def __init__(self, cap_store: DailyCapStore, sleep: Sleep = asyncio.sleep):
        self.cap_store = cap_store
        self._sleep = sleep
        self._jobs: dict[str, BatchJob] = {}

    def submit(
        self,
        destinations: list[str],
        place_call: PlaceCall,
        repeat: int,
        min_delay_sec: float,
        max_delay_sec: float,
        dry_run: bool,
        daily_cap: int,
    ) -> BatchJob:
        """Start a batch on the running event loop and return its handle."""
        _check_bounds(repeat, min_delay_sec, max_delay_sec, daily_cap)
        job = BatchJob(
            id=str(uuid.uuid4()),
            destinations=list(destinations),
            created_at=datetime.now(timezone.utc).isoformat(),
        )

        async def _run() -> BatchResult:
            job.status = "running"
            return await run_batch(
                job.destinations,
                repeat,
                min_delay_sec,
                max_delay_sec,
                dry_run,
                daily_cap,
                place_call,
                self.cap_store,
                sleep=self._sleep,
            )

        job.task = asyncio.create_task(_run())
        job.task.add_done_callback(lambda t: self._on_done(job, t))
        self._jobs[job.id] = job
        logger.info(f"[batch] Submitted job {job.id} with {len(job.destinations)} numbers")
        return job

    def _on_done(self, job: BatchJob, task: asyncio.Task) -> None:
        job.finished_at = datetime.now(timezone.utc).isoformat()
        if task.cancelled():
            job.status = "failed"
            job.error = "cancelled"
            return
        if exc := task.exception():
            job.status = "failed"
            job.error = f"{type(exc).__name__}: {exc}"
            logger.opt(exception=exc).error(f"[batch] Job {job.id} failed")
            return
        job.status = "completed"
        job.result = task.result()

    def get(self, job_id: str) -> BatchJob | None:
        return self._jobs.get(job_id)

    def jobs(self) -> list[BatchJob]:
        return list(self._jobs.values())
