from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Sequence

from dotenv import find_dotenv, load_dotenv

from bibflow_connectors import SourcePlugin
from bibflow_core import SERVICE_WORKER, Settings, get_settings
from bibflow_enrichment import EnrichmentCoordinator, build_runtime
from bibflow_observability import setup_logging
from db.init_db import init_db
from db.services.records import RecordStore
from db.session import create_db_engine, create_sessionmaker

logger = logging.getLogger(__name__)


async def run_once(coordinator: EnrichmentCoordinator, *, limit: int) -> int:
    """Queue one sweep of stale records. Returns the number queued."""
    return await coordinator.trigger_immediate_check(limit)


async def run_forever(
    *,
    settings: Settings | None = None,
    stop_event: asyncio.Event | None = None,
    sources: Sequence[SourcePlugin] | None = None,
) -> None:
    """
    Drain the enrichment queue in the background and sweep for stale records.

    Runs until ``stop_event`` is set; the in-flight request is allowed to finish.
    """
    settings = settings or get_settings()
    stop_event = stop_event or asyncio.Event()

    engine = create_db_engine(settings)
    init_db(engine)
    store = RecordStore(create_sessionmaker(engine))
    runtime = build_runtime(settings, sources)
    coordinator = EnrichmentCoordinator.from_settings(runtime.enrichment, store, settings)

    await coordinator.start()
    logger.info(
        "worker_started",
        extra={
            "sweep_interval_seconds": settings.enrichment_sweep_interval_seconds,
            "sweep_limit": settings.enrichment_sweep_limit,
        },
    )
    try:
        while not stop_event.is_set():
            try:
                await run_once(coordinator, limit=settings.enrichment_sweep_limit)
            except Exception:
                # A failed sweep must not take the queue consumer down with it
                logger.exception("stale_sweep_failed")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=settings.enrichment_sweep_interval_seconds)
            except asyncio.TimeoutError:
                pass
    finally:
        await coordinator.stop()
        await runtime.aclose()
        engine.dispose()
        logger.info("worker_stopped")


async def _serve() -> None:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers; Ctrl+C still raises KeyboardInterrupt
            pass
    await run_forever(stop_event=stop_event)


def main() -> None:
    load_dotenv(find_dotenv(usecwd=True))
    setup_logging(SERVICE_WORKER)
    asyncio.run(_serve())


if __name__ == "__main__":
    main()
