"""
Integration Sync Worker - pulls and pushes tenant integration data

Runs two independent loops: the sync loop processes pending jobs and due
retries, the scheduler loop creates recurring pull and push jobs.
"""
from __future__ import annotations

import argparse
import asyncio
import logging

from app.core.config import settings
from app.services.container import SyncServices, build_sync_services
from app.services.sync_job_store import list_pending_job_ids

logger = logging.getLogger(__name__)


async def process_pending_sync_jobs(services: SyncServices, *, limit: int | None = None) -> int:
    """Process one batch of pending jobs serially. Returns jobs that finished."""
    with services.session_factory() as session:
        job_ids = list_pending_job_ids(
            session, limit=limit or settings.integration_sync_batch_size
        )

    processed = 0
    for job_id in job_ids:
        try:
            if await services.processor.process_sync_job(job_id) is not None:
                processed += 1
        except Exception as e:
            logger.error(f"Sync job {job_id} failed: {e}")
    return processed


async def run_sync_tick(services: SyncServices) -> int:
    processed = await process_pending_sync_jobs(services)
    processed += await services.processor.process_retry_jobs()
    if processed:
        logger.info(f"Sync tick processed {processed} job(s)")
    return processed


def run_scheduler_tick(services: SyncServices) -> tuple[int, int]:
    pulls = services.scheduler.schedule_recurring_syncs()
    pushes = services.scheduler.schedule_push_syncs()
    if pulls or pushes:
        logger.info(f"Scheduled {pulls} pull job(s) and {pushes} push job(s)")
    return pulls, pushes


async def _sync_loop(services: SyncServices, interval: float) -> None:
    while True:
        try:
            await run_sync_tick(services)
        except Exception:
            logger.exception("Integration sync tick failed")
        await asyncio.sleep(interval)


async def _scheduler_loop(services: SyncServices, interval: float) -> None:
    while True:
        try:
            run_scheduler_tick(services)
        except Exception:
            logger.exception("Integration scheduler tick failed")
        await asyncio.sleep(interval)


async def run_worker(
    *,
    services: SyncServices | None = None,
    poll_interval: float | None = None,
    scheduler_interval: float | None = None,
    once: bool = False,
) -> int:
    """
    Run the integration sync worker.

    Args:
        services: Service graph; built from settings when omitted
        poll_interval: Seconds between sync ticks
        scheduler_interval: Seconds between scheduler ticks
        once: Run one scheduler tick and one sync tick, then exit

    Returns:
        Number of jobs processed (only meaningful with ``once``)
    """
    services = services or build_sync_services()

    if once:
        run_scheduler_tick(services)
        return await run_sync_tick(services)

    logger.info("Integration sync worker started")
    await asyncio.gather(
        _sync_loop(services, poll_interval or settings.integration_sync_poll_seconds),
        _scheduler_loop(
            services, scheduler_interval or settings.integration_scheduler_interval_seconds
        ),
    )
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Ledger Sync integration worker")
    parser.add_argument("--once", action="store_true", help="Run every tick once and exit")
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=None,
        help="Seconds between sync ticks",
    )
    parser.add_argument(
        "--scheduler-interval",
        type=float,
        default=None,
        help="Seconds between scheduler ticks",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(
        run_worker(
            poll_interval=args.poll_interval,
            scheduler_interval=args.scheduler_interval,
            once=args.once,
        )
    )


if __name__ == "__main__":
    main()
