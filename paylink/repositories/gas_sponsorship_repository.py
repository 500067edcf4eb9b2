"""
Gas sponsorship repository.

Data access layer for GasSponsorshipRecord model. Append-only: no update
or delete operations are exposed.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from paylink.models.gas_sponsorship import GasSponsorshipRecord
from paylink.repositories.base import BaseRepository


class GasSponsorshipRepository(BaseRepository[GasSponsorshipRecord]):
    """Gas sponsorship repository."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize gas sponsorship repository."""
        super().__init__(GasSponsorshipRecord, session)

    async def count_for_account(self, account_id: int) -> int:
        """Lifetime sponsored operations of an account."""
        return await self.count(account_id=account_id)
