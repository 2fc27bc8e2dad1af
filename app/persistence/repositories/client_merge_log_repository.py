"""Client merge log repository."""

from datetime import datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.persistence.models.client_merge_log import ClientMergeLog, ClientMergeLogMember
from app.persistence.repositories.base import BaseRepository


class ClientMergeLogRepository(BaseRepository[ClientMergeLog]):
    """Repository for ClientMergeLog entities.

    Entries are only ever inserted or flipped to undone. Nothing in this
    repository commits; callers own the transaction.
    """

    def __init__(self, session: AsyncSession):
        """Initialize client merge log repository."""
        super().__init__(ClientMergeLog, session)

    async def add_entry(
        self,
        organization_id: int,
        primary_client_id: int,
        secondary_client_ids: list[int],
        before_snapshots: dict[str, dict[str, Any]],
        performed_by: int,
        performed_at: datetime,
        undo_expires_at: datetime,
        primary_before_snapshot: dict[str, Any] | None = None,
        field_resolutions: dict[str, Any] | None = None,
        reparented_counts: dict[str, int] | None = None,
        flattened_clients: int = 0,
    ) -> ClientMergeLog:
        """Insert a merge log entry, plus one member row per client, and flush.

        Args:
            organization_id: Organization ID
            primary_client_id: ID of the surviving client
            secondary_client_ids: IDs of the merged clients, in request order
            before_snapshots: Serialized snapshots keyed by str(client_id)
            performed_by: User ID of the operator
            performed_at: Merge timestamp (naive UTC)
            undo_expires_at: End of the undo window (naive UTC)
            primary_before_snapshot: Serialized snapshot of the primary
            field_resolutions: Operator field choices
            reparented_counts: Rows moved per dependent table
            flattened_clients: Older merged shells re-pointed onto the primary

        Returns:
            The pending entry, with ``id`` populated
        """
        entry = ClientMergeLog(
            organization_id=organization_id,
            primary_client_id=primary_client_id,
            secondary_client_ids=list(secondary_client_ids),
            before_snapshots=before_snapshots,
            primary_before_snapshot=primary_before_snapshot,
            field_resolutions=field_resolutions,
            reparented_counts=reparented_counts,
            flattened_clients=flattened_clients,
            performed_by=performed_by,
            performed_at=performed_at,
            undo_expires_at=undo_expires_at,
            is_undone=False,
        )
        self.session.add(entry)
        await self.session.flush()

        self.session.add(ClientMergeLogMember(merge_log_id=entry.id, client_id=primary_client_id, role="primary"))
        self.session.add_all(
            ClientMergeLogMember(merge_log_id=entry.id, client_id=client_id, role="secondary")
            for client_id in secondary_client_ids
        )
        await self.session.flush()
        return entry

    async def get_for_update(
        self, organization_id: int, merge_log_id: int
    ) -> ClientMergeLog | None:
        """Get a merge log entry with a row lock, scoped to organization."""
        stmt = (
            select(ClientMergeLog)
            .where(
                ClientMergeLog.id == merge_log_id,
                ClientMergeLog.organization_id == organization_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_organization(
        self, organization_id: int, skip: int = 0, limit: int = 100
    ) -> list[ClientMergeLog]:
        """Get merge log entries for an organization, newest first.

        Args:
            organization_id: Organization ID
            skip: Number of records to skip
            limit: Maximum records to return

        Returns:
            List of merge log entries
        """
        stmt = (
            select(ClientMergeLog)
            .where(ClientMergeLog.organization_id == organization_id)
            .order_by(ClientMergeLog.performed_at.desc(), ClientMergeLog.id.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_for_organization(self, organization_id: int) -> int:
        """Count all merge log entries for an organization."""
        stmt = (
            select(func.count())
            .select_from(ClientMergeLog)
            .where(ClientMergeLog.organization_id == organization_id)
        )
        return await self.session.scalar(stmt) or 0

    def _client_entries(self, organization_id: int, client_id: int):
        return (
            select(ClientMergeLog)
            .join(ClientMergeLogMember, ClientMergeLogMember.merge_log_id == ClientMergeLog.id)
            .where(
                ClientMergeLog.organization_id == organization_id,
                ClientMergeLogMember.client_id == client_id,
            )
        )

    async def list_for_client(
        self, organization_id: int, client_id: int, skip: int = 0, limit: int = 100
    ) -> list[ClientMergeLog]:
        """Get entries where the client was the primary or one of the secondaries, newest first."""
        stmt = (
            self._client_entries(organization_id, client_id)
            .order_by(ClientMergeLog.performed_at.desc(), ClientMergeLog.id.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_for_client(self, organization_id: int, client_id: int) -> int:
        """Count entries the client took part in."""
        stmt = select(func.count()).select_from(
            self._client_entries(organization_id, client_id).subquery()
        )
        return await self.session.scalar(stmt) or 0

    async def mark_undone(
        self,
        organization_id: int,
        merge_log_id: int,
        undone_at: datetime,
        undone_by: int,
    ) -> bool:
        """Flip an entry to undone if no one else has.

        The ``is_undone`` condition is evaluated at write time, so of two
        concurrent undos only one can succeed.

        Returns:
            True if this call flipped the entry
        """
        stmt = (
            update(ClientMergeLog)
            .where(
                ClientMergeLog.id == merge_log_id,
                ClientMergeLog.organization_id == organization_id,
                ClientMergeLog.is_undone.is_(False),
            )
            .values(is_undone=True, undone_at=undone_at, undone_by=undone_by)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return (result.rowcount or 0) == 1
