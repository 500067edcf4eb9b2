"""
Escrow expiry sweep.

Expires every escrow past its validity window and refunds the sender.
Safe to run concurrently with itself, claims and cancels.
"""

import dramatiq
from loguru import logger

from jobs.async_runner import run_async, task_sessions
from jobs.broker import settings
from paylink.config.settings import Settings
from paylink.services.escrow.ledger import EscrowPaymentLedger
from paylink.services.escrow.views import SweepResult

SWEEP_TIME_LIMIT = 300_000  # 5 min


@dramatiq.actor(max_retries=3, time_limit=SWEEP_TIME_LIMIT)
def sweep_expired_escrows() -> dict:
    """
    Expire overdue escrows.

    Returns:
        Dict with examined, expired and skipped counts
    """
    logger.info("Starting escrow expiry sweep...")

    result = run_async(_sweep_expired_escrows_async(settings))

    logger.info(
        f"Escrow expiry sweep complete: "
        f"{result.examined} examined, "
        f"{result.expired} expired, "
        f"{result.skipped} skipped"
    )
    return {
        "examined": result.examined,
        "expired": result.expired,
        "skipped": result.skipped,
    }


async def _sweep_expired_escrows_async(settings: Settings) -> SweepResult:
    """Async implementation of the sweep."""
    async with task_sessions(settings) as session_maker:
        async with session_maker() as session:
            ledger = EscrowPaymentLedger(session, settings)
            return await ledger.sweep_expired(batch_size=settings.sweep_batch_size)
