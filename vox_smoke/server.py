"""
Vox Smoke Service - FastAPI HTTP server for outbound call smoke tests.

Places single calls and paced batches through Voximplant, receives the
scenario's lifecycle webhooks, and serves aggregate call statistics.
Batches return immediately with a job id that can be polled.
"""

import time
from dataclasses import dataclass

from fastapi import Depends, FastAPI, HTTPException, Request
from loguru import logger
from pydantic import BaseModel, Field

from .batch import BatchRunner, load_numbers_from_file
from .caller import OutboundCaller
from .caps import DailyCapStore
from .config import AppConfig, normalize_e164
from .events import EventValidationError, parse_event
from .sink import EVENTS_FILE, SUMMARIES_FILE, JsonlSink
from .stats import compute_stats, load_summaries
from .tracker import CallTracker


class CallBody(BaseModel):
    to: str | None = None
    tag: str | None = None


class BatchBody(BaseModel):
    numbers: list[str] | None = None
    file: str | None = None
    use_test_numbers: bool = False
    repeat: int | None = Field(default=None, ge=0)
    min_delay_sec: float | None = Field(default=None, ge=0)
    max_delay_sec: float | None = Field(default=None, ge=0)
    dry_run: bool = False
    daily_cap: int | None = Field(default=None, ge=0)
    tag: str | None = None


@dataclass
class Services:
    """Everything a request handler needs, owned by one app instance."""

    config: AppConfig
    sink: JsonlSink
    tracker: CallTracker
    caller: OutboundCaller
    batches: BatchRunner
    started: float


def get_services(request: Request) -> Services:
    return request.app.state.services


async def verify_api_key(request: Request, services: Services = Depends(get_services)):
    """Verify Bearer token matches the configured api_key. Skipped if unset."""
    api_key = services.config.api_key
    if not api_key:
        return
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer ") or auth[7:] != api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


def create_app(
    config: AppConfig,
    *,
    sink: JsonlSink | None = None,
    tracker: CallTracker | None = None,
    caller: OutboundCaller | None = None,
    batches: BatchRunner | None = None,
) -> FastAPI:
    """
    Build the service around one set of collaborators.

    Anything not passed in is constructed from ``config``.
    """
    sink = sink or JsonlSink(config.out_dir)
    tracker = tracker or CallTracker(sink)
    caller = caller or OutboundCaller(config, tracker, sink)
    batches = batches or BatchRunner(DailyCapStore(config.caps_path))

    app = FastAPI(title="Vox Smoke Service")
    app.state.services = Services(
        config=config,
        sink=sink,
        tracker=tracker,
        caller=caller,
        batches=batches,
        started=time.monotonic(),
    )

    @app.get("/health")
    async def health(services: Services = Depends(get_services)):
        return {"status": "ok", "uptime": time.monotonic() - services.started}

    @app.get("/config")
    async def show_config(services: Services = Depends(get_services)):
        """Non-secret view of the active provider settings."""
        cfg = services.config
        return {
            "provider": cfg.provider.type,
            "scenario_name": cfg.provider.scenario_name,
            "rule": cfg.provider.rule_name or cfg.provider.rule_id or "(default)",
            "public_base_url": cfg.public_base_url,
            "event_url": cfg.event_url,
            "test_to": cfg.default_to,
        }

    @app.get("/test-numbers")
    async def test_numbers(services: Services = Depends(get_services)):
        return {
            "test_numbers": services.config.test_numbers,
            "default_to": services.config.default_to,
        }

    @app.post("/call", dependencies=[Depends(verify_api_key)])
    async def call(body: CallBody, services: Services = Depends(get_services)):
        """Place one call. Falls back to the configured test number."""
        to = body.to or services.config.default_to
        if not to:
            raise HTTPException(
                status_code=400,
                detail="Missing 'to' field and no test_to / test_numbers configured",
            )
        try:
            placed = await services.caller.place_call(to, tag=body.tag)
        except Exception as e:
            logger.exception(f"/call failed for {to}")
            raise HTTPException(status_code=502, detail=str(e)) from e
        return {"call_id": placed.call_id, "started_at": placed.started_at}

    @app.post("/batch", dependencies=[Depends(verify_api_key)])
    async def batch(body: BatchBody, services: Services = Depends(get_services)):
        """Schedule a batch in the background and return its job id."""
        targets = [normalize_e164(n) for n in body.numbers or []]
        if body.file:
            try:
                targets = [normalize_e164(n) for n in load_numbers_from_file(body.file)]
            except OSError as e:
                raise HTTPException(status_code=400, detail=f"Cannot read numbers file: {e}") from e
        if not targets and body.use_test_numbers:
            targets = list(services.config.test_numbers)
        if not targets:
            raise HTTPException(
                status_code=400,
                detail="No numbers provided. Send numbers[], file, or use_test_numbers: true",
            )

        defaults = services.config.batch
        repeat = body.repeat if body.repeat is not None else defaults.repeat

        async def place(number: str) -> None:
            await services.caller.place_call(number, tag=body.tag)

        try:
            job = services.batches.submit(
                targets,
                place,
                repeat=repeat,
                min_delay_sec=body.min_delay_sec if body.min_delay_sec is not None else defaults.min_delay_sec,
                max_delay_sec=body.max_delay_sec if body.max_delay_sec is not None else defaults.max_delay_sec,
                dry_run=body.dry_run,
                daily_cap=body.daily_cap if body.daily_cap is not None else defaults.daily_cap,
            )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e

        return {
            "status": "scheduled",
            "job_id": job.id,
            "count": len(targets),
            "repeat": repeat,
            "dry_run": body.dry_run,
        }

    @app.get("/batches/{job_id}")
    async def batch_status(job_id: str, services: Services = Depends(get_services)):
        job = services.batches.get(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail=f"No batch job '{job_id}'")
        return job.to_dict()

    @app.post("/webhooks/vox")
    async def vox_webhook(request: Request, services: Services = Depends(get_services)):
        """Lifecycle callback from the Voximplant scenario."""
        try:
            data = await request.json()
        except ValueError as e:
            raise HTTPException(status_code=400, detail="Invalid JSON body") from e
        try:
            event = parse_event(data)
        except EventValidationError as e:
            logger.warning(f"Rejected webhook: {e}")
            raise HTTPException(status_code=400, detail=str(e)) from e

        logger.debug(f"Vox event: {data}")
        services.sink.append(EVENTS_FILE, data)
        services.tracker.apply(event)
        return {"ok": True}

    @app.get("/calls/{call_id}")
    async def get_call(call_id: str, services: Services = Depends(get_services)):
        metrics = services.tracker.get(call_id)
        if metrics is None:
            raise HTTPException(status_code=404, detail=f"No call '{call_id}'")
        return metrics.to_dict()

    @app.get("/stats")
    async def stats(services: Services = Depends(get_services)):
        summaries = load_summaries(services.sink.path(SUMMARIES_FILE))
        return compute_stats(summaries).to_dict()

    return app
