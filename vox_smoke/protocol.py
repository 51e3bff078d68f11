# vox_smoke/protocol.py
"""
Outbound Protocol Definitions

This module defines the dataclasses and interfaces shared by the call
tracker, the batch scheduler and the provider implementations. It
establishes the contract between the caller logic and the telephony
provider that actually dials the number.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, fields
from typing import Literal

FinalStatus = Literal[
    "initiated",
    "progress",
    "connected",
    "disconnected",
    "failed",
    "busy",
    "no_answer",
]

TerminalStatus = Literal["disconnected", "failed", "busy", "no_answer"]

UNKNOWN_DESTINATION = "unknown"


class OutboundCallError(Exception):
    """Raised when the provider refuses or fails to start an outbound call."""
    pass


@dataclass
class CallRequest:
    """
    Encapsulates the parameters for placing an outbound call.

    Attributes:
        call_id: Locally generated identifier, echoed back in every webhook.
        destination: The E.164 number to dial.
        event_url: Where the provider should POST lifecycle events.
        caller_id: Optional caller ID override.
        tag: Optional free-form label carried through to the scenario.
    """

    call_id: str
    destination: str
    event_url: str
    caller_id: str | None = None
    tag: str | None = None


@dataclass
class CallMetrics:
    """
    Lifecycle and latency metrics for one outbound call attempt.

    Timestamps are ISO-8601 strings as received from the provider. The
    ``*_ms`` fields are derived from ``created_at`` when the matching
    timestamp is first recorded.
    """

    call_id: str
    destination: str
    created_at: str
    final_status: FinalStatus = "initiated"
    provider_call_id: str | None = None
    first_progress_at: str | None = None
    connected_at: str | None = None
    ended_at: str | None = None
    post_dial_delay_ms: int | None = None
    answer_delay_ms: int | None = None
    total_duration_ms: int | None = None

    def to_dict(self) -> dict:
        """Serialize to a JSON-ready dict, leaving out fields that were never set."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict) -> "CallMetrics":
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        values.setdefault("destination", UNKNOWN_DESTINATION)
        values.setdefault("created_at", "")
        values.setdefault("final_status", "initiated")
        return cls(**values)


class OutboundProvider(ABC):
    """
    Abstract Base Class for outbound telephony providers.

    A provider only has to start the call; everything after that arrives
    asynchronously through the webhook endpoint.
    """

    @abstractmethod
    async def start_call(self, request: CallRequest) -> None:
        """
        Ask the provider to dial ``request.destination``.

        Args:
            request: The CallRequest describing the call.

        Raises:
            OutboundCallError: If the provider rejects the request.
        """
        ...
