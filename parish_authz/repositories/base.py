"""
Base repository.

Storage exceptions never leave this layer: a unique-constraint violation on
flush is rolled back and re-raised as ``Conflict``. After such a rollback the
session's objects are expired, so callers must not reuse loaded rows.
"""

from typing import Any, Generic, Type, TypeVar
from uuid import UUID

from sqlalchemy import Select, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from parish_authz.core.errors import Conflict
from parish_authz.models.base import Base

ModelT = TypeVar("ModelT", bound=Base)


class BaseRepository(Generic[ModelT]):
    """
    Usage:
        class RoleRepository(BaseRepository[Role]):
            model = Role

        role = await RoleRepository(db).get_by_id(role_id)
    """

    model: Type[ModelT]

    def __init__(self, db: AsyncSession):
        self.db = db

    def _base_query(self) -> Select:
        return select(self.model)

    async def get_by_id(self, id: UUID | str) -> ModelT | None:
        if isinstance(id, str):
            id = UUID(id)
        result = await self.db.execute(self._base_query().where(self.model.id == id))
        return result.unique().scalar_one_or_none()

    async def get_one(self, **filters: Any) -> ModelT | None:
        """Single row matching every ``field=value`` filter."""
        stmt = self._base_query()
        for field, value in filters.items():
            stmt = stmt.where(getattr(self.model, field) == value)
        result = await self.db.execute(stmt)
        return result.unique().scalar_one_or_none()

    async def create(self, **data: Any) -> ModelT:
        """
        Insert a row.

        Raises:
            Conflict: the row violates a unique constraint, including the
                partial "one active edge" indexes.
        """
        entity = self.model(**data)
        self.db.add(entity)
        await self._flush_or_conflict()
        await self.db.refresh(entity)
        return entity

    async def update(self, entity: ModelT, **data: Any) -> ModelT:
        for field, value in data.items():
            if hasattr(entity, field):
                setattr(entity, field, value)
        await self._flush_or_conflict()
        return entity

    async def delete(self, entity: ModelT) -> None:
        """Hard delete. Only role -> permission links are removed this way."""
        await self.db.delete(entity)
        await self.db.flush()

    async def _flush_or_conflict(self) -> None:
        try:
            await self.db.flush()
        except IntegrityError as exc:
            await self.db.rollback()
            raise Conflict(
                f"{self.model.__name__} conflicts with an existing record",
                constraint=str(exc.orig),
            ) from exc
