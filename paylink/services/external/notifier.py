"""
Logging notifier.

Notifier that records claim links in the log instead of delivering them.
Used when no email or SMS provider is wired in.
"""

from datetime import datetime
from decimal import Decimal

from loguru import logger

from paylink.config.settings import Settings
from paylink.utils.security import mask_identifier


class LoggingNotifier:
    """Notifier writing claim links to the log."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def claim_url(self, tracking_id: str) -> str:
        return f"{self.settings.claim_base_url.rstrip('/')}/{tracking_id}"

    async def send_claim_link(
        self,
        channel: str,
        identifier: str,
        tracking_id: str,
        amount: Decimal,
        message: str | None,
        expires_at: datetime,
    ) -> None:
        logger.info(
            f"Claim link for {mask_identifier(identifier)} via {channel}: "
            f"{amount} {self.settings.token_symbol}, expires {expires_at.isoformat()}",
            extra={"channel": channel, "has_message": bool(message)},
        )
        logger.debug(f"Claim URL: {self.claim_url(tracking_id)}")
