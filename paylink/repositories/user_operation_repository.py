"""
UserOperation repository.

Data access layer for UserOperation model.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from paylink.models.enums import UserOperationStatus
from paylink.models.user_operation import UserOperation
from paylink.repositories.base import BaseRepository
from paylink.utils.datetime_utils import utc_now


class UserOperationRepository(BaseRepository[UserOperation]):
    """UserOperation repository keyed by operation hash."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize UserOperation repository."""
        super().__init__(UserOperation, session)

    async def mark_submitted(self, user_op_hash: str, signature: str) -> bool:
        """
        Attach the signature and move PENDING -> SUBMITTED.

        Returns:
            True if the operation was still PENDING
        """
        rows = await self.conditional_update(
            UserOperation.user_op_hash == user_op_hash,
            UserOperation.status == UserOperationStatus.PENDING,
            status=UserOperationStatus.SUBMITTED,
            signature=signature,
            submitted_at=utc_now(),
        )
        return rows == 1

    async def mark_failed(
        self, user_op_hash: str, transaction_hash: str | None = None
    ) -> bool:
        """Move a not yet confirmed operation to FAILED."""
        rows = await self.conditional_update(
            UserOperation.user_op_hash == user_op_hash,
            UserOperation.status.in_(
                (UserOperationStatus.PENDING, UserOperationStatus.SUBMITTED)
            ),
            status=UserOperationStatus.FAILED,
            transaction_hash=transaction_hash,
        )
        return rows == 1

    async def mark_confirmed(self, user_op_hash: str, transaction_hash: str) -> bool:
        """
        Move SUBMITTED -> CONFIRMED once the operation is included.

        Returns:
            True if the operation was still SUBMITTED
        """
        rows = await self.conditional_update(
            UserOperation.user_op_hash == user_op_hash,
            UserOperation.status == UserOperationStatus.SUBMITTED,
            status=UserOperationStatus.CONFIRMED,
            transaction_hash=transaction_hash,
            confirmed_at=utc_now(),
        )
        return rows == 1
