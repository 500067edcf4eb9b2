"""
Periodic job scheduler.

Enqueues the expiry sweep and the stale transaction monitor on the dramatiq
broker at fixed intervals, and serves a small health endpoint for the
process supervisor.

Run with: python -m jobs.scheduler
"""

import asyncio

from aiohttp import web
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from jobs.broker import settings
from jobs.tasks.escrow_expiry import sweep_expired_escrows
from jobs.tasks.stale_transaction_monitor import monitor_stale_transactions
from paylink.config.settings import Settings
from paylink.logging_setup import setup_logging


def create_scheduler(settings: Settings) -> AsyncIOScheduler:
    """
    Build the scheduler with every periodic job registered.

    Jobs only enqueue messages; the work runs in dramatiq workers.
    """
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        sweep_expired_escrows.send,
        "interval",
        minutes=settings.sweep_interval_minutes,
        id="sweep_expired_escrows",
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        monitor_stale_transactions.send,
        "interval",
        minutes=settings.stale_check_interval_minutes,
        id="monitor_stale_transactions",
        max_instances=1,
        coalesce=True,
    )
    return scheduler


def _next_run(job) -> str | None:
    # Pending jobs have no next_run_time until the scheduler starts
    next_run = getattr(job, "next_run_time", None)
    return next_run.isoformat() if next_run else None


def create_health_app(scheduler: AsyncIOScheduler) -> web.Application:
    """Health endpoint reporting scheduler state and next run times."""

    async def health(request: web.Request) -> web.Response:
        jobs = {
            job.id: _next_run(job) for job in scheduler.get_jobs()
        }
        status = 200 if scheduler.running else 503
        return web.json_response(
            {"running": scheduler.running, "jobs": jobs}, status=status
        )

    app = web.Application()
    app.router.add_get("/health", health)
    return app


async def run(settings: Settings) -> None:
    scheduler = create_scheduler(settings)
    scheduler.start()
    logger.info(
        f"Scheduler started: sweep every {settings.sweep_interval_minutes} min, "
        f"stale check every {settings.stale_check_interval_minutes} min"
    )

    runner = web.AppRunner(create_health_app(scheduler))
    await runner.setup()
    site = web.TCPSite(runner, "0.0.0.0", settings.health_port)
    await site.start()
    logger.info(f"Health check server started on port {settings.health_port}")

    try:
        await asyncio.Event().wait()
    finally:
        logger.info("Graceful shutdown initiated...")
        scheduler.shutdown(wait=False)
        await runner.cleanup()
        logger.info("Scheduler stopped")


if __name__ == "__main__":
    setup_logging(settings)
    try:
        asyncio.run(run(settings))
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler interrupted")
