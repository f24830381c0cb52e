"""Base repository with common CRUD operations."""
import logging
from typing import Any, Generic, Optional, Type, TypeVar

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from image_catalog.core.database import Base
from image_catalog.core.exceptions import (
    DatabaseException,
    DuplicateException,
)

logger = logging.getLogger(__name__)

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Base repository providing common database operations."""

    def __init__(self, model: Type[ModelType], db: AsyncSession):
        """
        Initialize repository.

        Args:
            model: SQLAlchemy model class
            db: Database session
        """
        self.model = model
        self.db = db

    async def _execute(self, statement, params: Any = None):
        """Execute ``statement``, reporting driver failures as DatabaseException."""
        try:
            if params is None:
                return await self.db.execute(statement)
            return await self.db.execute(statement, params)
        except SQLAlchemyError as e:
            logger.error(f"{self.model.__tablename__} query failed: {e}")
            raise DatabaseException(str(e)) from e

    def _identity(self, entity: ModelType) -> str:
        """Human readable identifier used in duplicate errors."""
        return str(getattr(entity, "id", None))

    async def get_by_id(self, id: int) -> Optional[ModelType]:
        """
        Get entity by ID.

        Args:
            id: Entity ID

        Returns:
            Entity instance or None if not found
        """
        result = await self._execute(
            select(self.model).where(self.model.id == id)
        )
        return result.scalar_one_or_none()

    async def count(self) -> int:
        """
        Count total number of entities.

        Returns:
            Total count
        """
        result = await self._execute(
            select(func.count()).select_from(self.model)
        )
        return result.scalar_one()

    async def create(self, entity: ModelType) -> ModelType:
        """
        Create new entity.

        The insert runs inside a SAVEPOINT, so a unique constraint violation
        leaves the surrounding transaction usable.

        Args:
            entity: Entity instance to create

        Returns:
            Created entity with generated ID

        Raises:
            DuplicateException: A unique constraint rejected the row
        """
        try:
            async with self.db.begin_nested():
                self.db.add(entity)
                await self.db.flush()
        except IntegrityError as e:
            logger.info(f"Duplicate {self.model.__name__} {self._identity(entity)}")
            raise DuplicateException(self.model.__name__, self._identity(entity)) from e
        except SQLAlchemyError as e:
            raise DatabaseException(str(e)) from e

        await self.db.refresh(entity)
        return entity

    async def update(self, entity: ModelType) -> ModelType:
        """
        Flush changes made to a loaded entity.

        Returns:
            The refreshed entity
        """
        try:
            await self.db.flush()
            await self.db.refresh(entity)
        except SQLAlchemyError as e:
            raise DatabaseException(str(e)) from e
        return entity

    async def delete(self, id: int) -> bool:
        """
        Delete entity by ID.

        Returns:
            True if deleted, False if not found
        """
        result = await self._execute(
            delete(self.model).where(self.model.id == id)
        )
        return result.rowcount > 0

    async def commit(self) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseException(str(e)) from e

    async def rollback(self) -> None:
        await self.db.rollback()
