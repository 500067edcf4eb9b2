"""
Dramatiq broker configuration.

Redis-based message broker for the PayLink background jobs. Payment errors
that describe a settled outcome (bad input, lost race, unknown row) are not
retried; transport and store failures are, with exponential backoff.
"""

import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.middleware import CurrentMessage, Retries, ShutdownNotifications
from loguru import logger

from paylink.config import load_settings
from paylink.config.settings import Settings
from paylink.utils.exceptions import ConflictError, NotFoundError, ValidationError

# Outcomes a retry cannot change
FINAL_ERRORS = (ValidationError, ConflictError, NotFoundError)


def should_retry(max_retries: int, retries_so_far: int, exception: Exception) -> bool:
    """Retry transient failures up to max_retries times."""
    if isinstance(exception, FINAL_ERRORS):
        return False
    return retries_so_far < max_retries


def create_broker(settings: Settings) -> RedisBroker:
    """Redis broker with shutdown, current message and retry middleware."""
    redis_broker = RedisBroker(
        host=settings.redis_host,
        port=settings.redis_port,
        password=settings.redis_password or None,
        db=settings.redis_db,
    )
    redis_broker.add_middleware(ShutdownNotifications())
    redis_broker.add_middleware(CurrentMessage())
    redis_broker.add_middleware(
        Retries(
            min_backoff=1000,  # 1 second
            max_backoff=60000,  # 1 minute
            retry_when=lambda retries, exc: should_retry(
                settings.job_max_retries, retries, exc
            ),
        )
    )
    return redis_broker


settings = load_settings()
broker = create_broker(settings)
dramatiq.set_broker(broker)

logger.info(
    f"Dramatiq broker initialized: "
    f"redis://{settings.redis_host}:{settings.redis_port}/{settings.redis_db}"
)
