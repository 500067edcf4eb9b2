"""
Base repository.

Generic CRUD operations for all repositories.
"""

from typing import Any, Generic, TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from paylink.models.base import Base

# Generic type for model
ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Base repository with generic CRUD operations.

    Provides async database operations for any SQLAlchemy model.

    Type Parameters:
        ModelType: SQLAlchemy model class

    Example:
        class AccountRepository(BaseRepository[Account]):
            def __init__(self, session: AsyncSession):
                super().__init__(Account, session)
    """

    def __init__(
        self, model: type[ModelType], session: AsyncSession
    ) -> None:
        """
        Initialize repository.

        Args:
            model: SQLAlchemy model class
            session: Async database session
        """
        self.model = model
        self.session = session

    async def get_by_id(self, id: Any) -> ModelType | None:
        """
        Get entity by primary key.

        Args:
            id: Entity primary key

        Returns:
            Entity or None if not found
        """
        return await self.session.get(self.model, id)

    async def get_fresh(self, id: Any) -> ModelType | None:
        """
        Get entity by primary key, overwriting any stale identity-map state.

        Needed after conditional UPDATE statements that bypass the ORM.
        """
        return await self.session.get(self.model, id, populate_existing=True)

    async def get_by(
        self, **filters: Any
    ) -> ModelType | None:
        """
        Get single entity by filters.

        Args:
            **filters: Column filters

        Returns:
            First matching entity or None
        """
        stmt = (
            select(self.model)
            .filter_by(**filters)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, **data: Any) -> ModelType:
        """
        Create new entity.

        Args:
            **data: Entity data

        Returns:
            Created entity
        """
        entity = self.model(**data)
        self.session.add(entity)
        await self.session.flush()
        await self.session.refresh(entity)
        return entity

    async def count(self, **filters: Any) -> int:
        """
        Count entities matching filters.

        Args:
            **filters: Column filters

        Returns:
            Count of matching entities
        """
        stmt = select(func.count()).select_from(self.model)

        if filters:
            stmt = stmt.filter_by(**filters)

        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def conditional_update(
        self,
        *criteria: Any,
        **values: Any,
    ) -> int:
        """
        Issue a single UPDATE guarded by criteria.

        The guard and the write happen in one statement, so of several
        concurrent callers with the same guard exactly one sees a row count
        of 1.

        Args:
            *criteria: WHERE clauses
            **values: Column values

        Returns:
            Number of rows updated
        """
        stmt = (
            update(self.model)
            .where(*criteria)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def paginate(
        self,
        stmt: Any,
        page: int = 1,
        per_page: int = 50,
    ) -> tuple[list[ModelType], int]:
        """
        Paginate a select statement to avoid OOM.

        Args:
            stmt: Select statement over the model (ordering applied by caller)
            page: Page number (1-indexed)
            per_page: Items per page

        Returns:
            Tuple of (items, total_count)
        """
        page = max(page, 1)
        per_page = max(min(per_page, 500), 1)

        count_stmt = select(func.count()).select_from(
            stmt.order_by(None).subquery()
        )
        count_result = await self.session.execute(count_stmt)
        total = count_result.scalar() or 0

        offset = (page - 1) * per_page
        result = await self.session.execute(stmt.offset(offset).limit(per_page))
        items = list(result.scalars().all())

        return items, total
