# vox_smoke/caller.py
"""
Outbound Caller Module

This module provides the single entry point for placing an outbound call:
it registers the call with the tracker, hands it to the configured
telephony provider and records the request in the events log. Both the
single-call endpoint and the batch scheduler go through it.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from loguru import logger

from .config import AppConfig, normalize_e164
from .protocol import CallRequest, OutboundProvider
from .providers.voximplant import VoximplantProvider
from .sink import EVENTS_FILE, JsonlSink
from .tracker import CallTracker


@dataclass
class PlacedCall:
    call_id: str
    destination: str
    started_at: str


class OutboundCaller:
    """
    Places outbound calls through the configured provider.

    Exactly one provider is active; its type comes from the ``provider``
    section of the configuration.
    """

    def __init__(
        self,
        config: AppConfig,
        tracker: CallTracker,
        sink: JsonlSink,
        provider: OutboundProvider | None = None,
    ):
        """
        Initialize the OutboundCaller.

        Args:
            config: Validated application configuration.
            tracker: Registry that receives every placed call.
            sink: Log sink for request records.
            provider: Optional provider override; built from config when omitted.
        """
        self.config = config
        self.tracker = tracker
        self.sink = sink
        self.provider = provider or self._init_provider()

    def _init_provider(self) -> OutboundProvider:
        """
        Instantiate the provider named by ``config.provider.type``.

        Returns:
            OutboundProvider: The initialized provider.
        """
        factory = {
            "voximplant": VoximplantProvider,
        }
        provider_type = self.config.provider.type
        if provider_type not in factory:
            raise ValueError(f"Unsupported provider type: {provider_type}")
        return factory[provider_type](self.config.provider)

    @property
    def event_url(self) -> str:
        return self.config.event_url

    async def place_call(self, destination: str, tag: str | None = None) -> PlacedCall:
        """
        Place one outbound call.

        The call is registered before the provider is contacted, so webhook
        events that race the API response still find their record.

        Args:
            destination: Number to dial; normalized to E.164.
            tag: Optional label passed through to the scenario.

        Returns:
            PlacedCall: The generated call id and registration time.

        Raises:
            OutboundCallError: If the provider rejects the call.
        """
        to = normalize_e164(destination)
        caller_id = self.config.provider.caller_id
        caller_id = normalize_e164(caller_id) if caller_id else None

        call_id = str(uuid.uuid4())
        created_at = datetime.now(timezone.utc).isoformat()
        self.tracker.register(call_id, to, created_at)

        logger.info(f"Starting call {call_id} -> {to} (from: {caller_id or 'default'})")
        await self.provider.start_call(
            CallRequest(
                call_id=call_id,
                destination=to,
                event_url=self.event_url,
                caller_id=caller_id,
                tag=tag,
            )
        )
        logger.info(f"Provider accepted call {call_id}")

        record = {"kind": "request", "call_id": call_id, "to": to, "ts": created_at}
        if tag:
            record["tag"] = tag
        self.sink.append(EVENTS_FILE, record)
        return PlacedCall(call_id=call_id, destination=to, started_at=created_at)
