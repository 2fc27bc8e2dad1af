"""Client repository."""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.persistence.models.client import Client, ClientStatus
from app.persistence.repositories.base import BaseRepository


class ClientRepository(BaseRepository[Client]):
    """Repository for Client entities."""

    def __init__(self, session: AsyncSession):
        """Initialize client repository."""
        super().__init__(Client, session)

    async def lock_many(self, organization_id: int, ids: list[int]) -> list[Client]:
        """Load clients by ID with row locks, in ascending ID order.

        Locks are taken in a stable order so concurrent merges touching
        overlapping clients queue behind each other instead of deadlocking.
        Clients in other organizations are never returned.

        Args:
            organization_id: Organization ID
            ids: Client IDs to lock

        Returns:
            Locked clients found, sorted by ID
        """
        if not ids:
            return []

        stmt = (
            select(Client)
            .where(
                Client.organization_id == organization_id,
                Client.id.in_(sorted(set(ids))),
            )
            .order_by(Client.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_merged_into(
        self, organization_id: int, target_ids: list[int]
    ) -> list[Client]:
        """Get merged shells that currently point at any of ``target_ids``."""
        if not target_ids:
            return []

        stmt = (
            select(Client)
            .where(
                Client.organization_id == organization_id,
                Client.merged_into_client_id.in_(target_ids),
            )
            .order_by(Client.id)
            .with_for_update()
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_external_ids(
        self, organization_id: int, ids: list[int]
    ) -> dict[int, str | None]:
        """Map client IDs to their upstream booking-system IDs."""
        if not ids:
            return {}

        stmt = select(Client.id, Client.external_client_id).where(
            Client.organization_id == organization_id,
            Client.id.in_(ids),
        )
        result = await self.session.execute(stmt)
        return {client_id: external_id for client_id, external_id in result.all()}

    async def update_if_active(
        self, organization_id: int, ids: list[int], **values
    ) -> int:
        """Update clients that are still active; return how many matched.

        The status condition is checked by the database at write time, so a
        client merged by a transaction that committed after our reads is
        not counted. In-session objects are not refreshed.

        Args:
            organization_id: Organization ID
            ids: Client IDs to update
            **values: Column values to write

        Returns:
            Number of rows updated
        """
        if not ids:
            return 0

        stmt = (
            update(Client)
            .where(
                Client.organization_id == organization_id,
                Client.id.in_(ids),
                Client.status == ClientStatus.ACTIVE.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0
