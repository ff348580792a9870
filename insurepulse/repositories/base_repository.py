from typing import Generic, TypeVar, Type, Optional, Any, Dict

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError

from insurepulse.utils.logging import get_logger

# Define a generic type for SQLAlchemy models
ModelType = TypeVar("ModelType")

LOGGER = get_logger(__name__)


class BaseRepository(Generic[ModelType]):
    """Base repository implementing common create and count operations.

    Repositories never open their own transactions for reads; callers that
    need atomicity wrap calls in ``session.begin()``.
    """

    def __init__(self, session: AsyncSession, model: Type[ModelType]):
        """Initialize the repository.

        Args:
            session: SQLAlchemy async session
            model: The SQLAlchemy model class this repository manages
        """
        self.session = session
        self.model = model
        self.logger = LOGGER

    async def create(self, **kwargs) -> ModelType:
        """Create and commit a new record.

        Args:
            **kwargs: Fields and values for the new record

        Returns:
            The created record
        """
        try:
            instance = self.model(**kwargs)
            self.session.add(instance)
            await self.session.flush()
            await self.session.commit()
            return instance
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error creating {self.model.__name__}: {str(e)}",
                exc_info=True
            )
            raise

    async def count(self, filters: Optional[Dict[str, Any]] = None) -> int:
        """Count records matching filters.

        Args:
            filters: Dictionary of field_name: value to filter by

        Returns:
            Count of matching records
        """
        try:
            query = self._apply_filters(select(func.count()).select_from(self.model), filters)
            result = await self.session.execute(query)
            return result.scalar_one()
        except SQLAlchemyError as e:
            self.logger.error(
                f"Error counting {self.model.__name__}: {str(e)}",
                exc_info=True
            )
            raise

    def _apply_filters(self, query, filters: Optional[Dict[str, Any]]):
        if filters:
            for field, value in filters.items():
                if hasattr(self.model, field):
                    query = query.where(getattr(self.model, field) == value)
        return query
