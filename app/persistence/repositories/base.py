"""Base repository with organization-scoped queries."""

from typing import Generic, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.persistence.database import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Base repository with organization-scoped query methods."""

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        """Initialize repository with model and session."""
        self.model = model
        self.session = session

    async def get_by_id(self, organization_id: int | None, id: int) -> ModelType | None:
        """Get entity by ID, scoped to organization."""
        if organization_id is None:
            # For global lookups (e.g. resolving the authenticated user)
            stmt = select(self.model).where(self.model.id == id)
        else:
            stmt = select(self.model).where(
                self.model.id == id,
                self.model.organization_id == organization_id
            )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()
