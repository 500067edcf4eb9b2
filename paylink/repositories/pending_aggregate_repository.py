"""
Pending aggregate repository.

Data access layer for PendingAggregate model.
"""

from decimal import Decimal

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from paylink.models.pending_aggregate import PendingAggregate
from paylink.repositories.base import BaseRepository
from paylink.utils.datetime_utils import utc_now


class PendingAggregateRepository(BaseRepository[PendingAggregate]):
    """Pending aggregate repository with atomic upsert."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize pending aggregate repository."""
        super().__init__(PendingAggregate, session)

    async def get_by_identifier(self, identifier: str) -> PendingAggregate | None:
        """Get aggregate row for a recipient identifier."""
        return await self.get_by(recipient_identifier=identifier)

    async def add(self, identifier: str, channel: str, amount: Decimal) -> None:
        """
        Add one escrow to the identifier's running total.

        Uses INSERT ... ON CONFLICT DO UPDATE so two first-time escrows to
        the same identifier never race on the unique key.
        """
        dialect = self.session.get_bind().dialect.name
        insert = pg_insert if dialect == "postgresql" else sqlite_insert

        now = utc_now()
        stmt = insert(PendingAggregate).values(
            recipient_identifier=identifier,
            channel=channel,
            total_amount=amount,
            payment_count=1,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[PendingAggregate.recipient_identifier],
            set_={
                "total_amount": PendingAggregate.total_amount + amount,
                "payment_count": PendingAggregate.payment_count + 1,
                "updated_at": now,
            },
        )
        await self.session.execute(stmt)

    async def subtract(self, identifier: str, amount: Decimal) -> None:
        """Remove one resolved escrow from the identifier's running total."""
        await self.conditional_update(
            PendingAggregate.recipient_identifier == identifier,
            total_amount=PendingAggregate.total_amount - amount,
            payment_count=PendingAggregate.payment_count - 1,
            updated_at=utc_now(),
        )
