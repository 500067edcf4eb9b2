"""
Stale transaction monitor.

Reconciles direct transfers that have sat in PENDING / PROCESSING for a
while: each submitted operation is checked against its relay receipt and
its transaction completed or failed. Without a configured relay the stale
rows are only reported.
"""

import dramatiq
from loguru import logger

from jobs.async_runner import run_async, task_sessions
from jobs.broker import settings
from paylink.bootstrap import close_payment_context, create_payment_context
from paylink.config.settings import Settings
from paylink.services.direct_transfer_service import ReconcileResult
from paylink.services.payment_service import PaymentService

MONITOR_TIME_LIMIT = 120_000  # 2 min


@dramatiq.actor(max_retries=3, time_limit=MONITOR_TIME_LIMIT)
def monitor_stale_transactions() -> dict:
    """
    Reconcile unresolved transactions older than settings.stale_after_minutes.

    Returns:
        Dict with examined, confirmed, failed, pending and error counts
    """
    logger.info("Starting stale transaction reconciliation...")

    result = run_async(_reconcile_stale_async(settings))

    logger.info(
        f"Stale transaction reconciliation complete: "
        f"{result.examined} examined, "
        f"{result.confirmed} confirmed, "
        f"{result.failed} failed, "
        f"{result.pending} still pending"
    )
    if result.errors:
        logger.warning(f"{result.errors} transactions could not be reconciled")

    return {
        "examined": result.examined,
        "confirmed": result.confirmed,
        "failed": result.failed,
        "pending": result.pending,
        "errors": result.errors,
    }


async def _reconcile_stale_async(
    settings: Settings, limit: int = 100
) -> ReconcileResult:
    """Async implementation of the monitor."""
    async with task_sessions(settings) as session_maker:
        context = create_payment_context(settings, session_maker)
        try:
            service = PaymentService(context)
            if context.relay is None:
                stale = await service.find_stale_transactions(
                    older_than_minutes=settings.stale_after_minutes, limit=limit
                )
                return ReconcileResult(
                    examined=len(stale), confirmed=0, failed=0,
                    pending=len(stale), errors=0,
                )
            return await service.reconcile_stale(
                older_than_minutes=settings.stale_after_minutes, limit=limit
            )
        finally:
            await close_payment_context(context)
