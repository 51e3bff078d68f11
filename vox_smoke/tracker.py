# vox_smoke/tracker.py
"""
Call Tracker

In-memory registry of per-call metrics. Provider callbacks arrive out of
order and may be retried, so every operation tolerates any sequence of
events and simply records whichever timestamps it receives.

Every method is synchronous: a read-modify-write on a record never spans an
``await``, so webhook handlers and batch iterations interleaving on the
event loop cannot lose updates.

Terminal events are not deduplicated. The provider retries webhooks and
does not guarantee an idempotency key, so two terminal callbacks for the
same call produce two lines in the summaries log; consumers that need one
line per call must dedupe on ``call_id`` downstream.
"""

from dataclasses import replace
from datetime import datetime, timezone

from loguru import logger

from .events import (
    CallEvent,
    ConnectedEvent,
    EndedEvent,
    ProgressEvent,
    UnrecognizedEvent,
    parse_timestamp,
)
from .protocol import UNKNOWN_DESTINATION, CallMetrics, TerminalStatus
from .sink import SUMMARIES_FILE, JsonlSink


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _elapsed_ms(start: str, end: str) -> int:
    """Milliseconds between two ISO timestamps; naive values are taken as UTC."""
    a, b = parse_timestamp(start), parse_timestamp(end)
    if a.tzinfo is None:
        a = a.replace(tzinfo=timezone.utc)
    if b.tzinfo is None:
        b = b.replace(tzinfo=timezone.utc)
    return round((b - a).total_seconds() * 1000)


class CallTracker:
    """
    Tracks outbound calls from registration to their terminal event.

    One instance is owned by the service and handed to everything that
    needs it. The finalized record is written to the sink from
    ``on_ended`` only.
    """

    def __init__(self, sink: JsonlSink):
        self._sink = sink
        self._calls: dict[str, CallMetrics] = {}

    def register(
        self, call_id: str, destination: str, timestamp: str | None = None
    ) -> CallMetrics:
        """
        Create a record in ``initiated`` state if none exists.

        Registration is idempotent: an existing record is returned untouched,
        even if ``destination`` differs.
        """
        if existing := self._calls.get(call_id):
            return existing
        metrics = CallMetrics(
            call_id=call_id,
            destination=destination,
            created_at=timestamp or _utcnow_iso(),
        )
        self._calls[call_id] = metrics
        logger.debug(f"Registered call {call_id} -> {destination}")
        return metrics

    def attach_provider_id(
        self, call_id: str, provider_call_id: str | None = None
    ) -> CallMetrics | None:
        """Set the provider's call id once; later values never overwrite it."""
        metrics = self._calls.get(call_id)
        if metrics is None:
            return None
        if provider_call_id and not metrics.provider_call_id:
            metrics.provider_call_id = provider_call_id
        return metrics

    def on_progress(
        self, call_id: str, provider_call_id: str | None, timestamp: str
    ) -> CallMetrics:
        metrics = self.register(call_id, UNKNOWN_DESTINATION, timestamp)
        self.attach_provider_id(call_id, provider_call_id)

        if not metrics.first_progress_at:
            metrics.first_progress_at = timestamp
            metrics.post_dial_delay_ms = _elapsed_ms(metrics.created_at, timestamp)
        metrics.final_status = "progress"
        return metrics

    def on_connected(
        self, call_id: str, provider_call_id: str | None, timestamp: str
    ) -> CallMetrics:
        # A call may reconnect, so the latest answer wins.
        metrics = self.register(call_id, UNKNOWN_DESTINATION, timestamp)
        self.attach_provider_id(call_id, provider_call_id)

        metrics.connected_at = timestamp
        metrics.answer_delay_ms = _elapsed_ms(metrics.created_at, timestamp)
        metrics.final_status = "connected"
        return metrics

    def on_ended(
        self,
        call_id: str,
        provider_call_id: str | None,
        timestamp: str,
        terminal_status: TerminalStatus,
    ) -> CallMetrics:
        """Finalize the call and append it to the summaries log."""
        metrics = self.register(call_id, UNKNOWN_DESTINATION, timestamp)
        self.attach_provider_id(call_id, provider_call_id)

        metrics.ended_at = timestamp
        metrics.total_duration_ms = _elapsed_ms(metrics.created_at, timestamp)
        metrics.final_status = terminal_status

        self._sink.append(SUMMARIES_FILE, metrics.to_dict())
        logger.info(
            f"Call {call_id} ended: {terminal_status} "
            f"(pdd={metrics.post_dial_delay_ms}ms, answer={metrics.answer_delay_ms}ms, "
            f"total={metrics.total_duration_ms}ms)"
        )
        return metrics

    def apply(self, event: CallEvent) -> CallMetrics | None:
        """
        Route a parsed webhook event to the matching transition.

        Unseen call ids are registered with the destination the event
        carries, or the "unknown" placeholder. Unrecognized events leave
        tracker state alone and return None.
        """
        if isinstance(event, UnrecognizedEvent):
            logger.warning(f"Ignoring unrecognized event '{event.event}' for call {event.call_id}")
            return None

        self.register(event.call_id, event.to or UNKNOWN_DESTINATION, event.ts)

        if isinstance(event, ProgressEvent):
            return self.on_progress(event.call_id, event.provider_call_id, event.ts)
        if isinstance(event, ConnectedEvent):
            return self.on_connected(event.call_id, event.provider_call_id, event.ts)
        if isinstance(event, EndedEvent):
            return self.on_ended(event.call_id, event.provider_call_id, event.ts, event.status)
        raise TypeError(f"Unsupported event type: {type(event).__name__}")

    def get(self, call_id: str) -> CallMetrics | None:
        metrics = self._calls.get(call_id)
        return replace(metrics) if metrics else None

    def get_all(self) -> list[CallMetrics]:
        return [replace(m) for m in self._calls.values()]
