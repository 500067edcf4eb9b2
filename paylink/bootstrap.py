"""
Service wiring.

Builds a PaymentContext with the production adapters selected by settings:
the chain client serves fees, balances and deployment state; the sponsor
and bundler clients are only wired when their URLs are configured.
"""

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paylink.config.settings import Settings
from paylink.services.blockchain.chain_client import ChainClient
from paylink.services.external.bundler_client import BundlerClient
from paylink.services.external.notifier import LoggingNotifier
from paylink.services.external.sponsor_client import SponsorClient
from paylink.services.interfaces import AuthContext, LimitsChecker, Notifier, Signer
from paylink.services.payment_service import PaymentContext


def create_payment_context(
    settings: Settings,
    session_maker: async_sessionmaker[AsyncSession],
    signer: Signer | None = None,
    notifier: Notifier | None = None,
    limits_checker: LimitsChecker | None = None,
    auth: AuthContext | None = None,
) -> PaymentContext:
    """
    Wire the payment services for a process.

    Args:
        settings: Application settings
        session_maker: Session maker from config.database
        signer: Signs UserOperation hashes; without one, operations are
            returned unsigned for the caller to submit
        notifier: Claim link delivery (logs the link when None)
        limits_checker: Custom limits (per-account stored limits when None)
        auth: Resolves callers for claim_as

    Returns:
        PaymentContext ready for PaymentService
    """
    chain = ChainClient(settings)

    sponsor = None
    if settings.paymaster_enabled and settings.sponsor_api_url:
        sponsor = SponsorClient(settings)

    relay = BundlerClient(settings) if settings.bundler_url else None
    if relay is None:
        logger.warning("BUNDLER_URL is not configured, operations will not be submitted")

    return PaymentContext(
        settings=settings,
        session_maker=session_maker,
        fee_oracle=chain,
        balance_provider=chain,
        deployment_checker=chain,
        sponsor_service=sponsor,
        relay=relay,
        signer=signer,
        notifier=notifier or LoggingNotifier(settings),
        limits_checker=limits_checker,
        auth=auth,
    )


async def close_payment_context(context: PaymentContext) -> None:
    """Close HTTP sessions held by the adapters."""
    for client in (context.sponsor_service, context.relay):
        close = getattr(client, "close", None)
        if close is not None:
            await close()
    logger.info("Payment adapters closed")
