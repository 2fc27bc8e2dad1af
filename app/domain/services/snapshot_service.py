"""Snapshot store: locks the clients in a merge and captures their before-state."""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.errors import AlreadyMergedError, NotFoundError
from app.domain.models.client_snapshot import ClientSnapshot
from app.persistence.models.client import Client
from app.persistence.repositories.client_repository import ClientRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MergeSnapshot:
    """Locked clients of one merge plus their captured identity fields."""

    primary: Client
    secondaries: list[Client]
    primary_snapshot: ClientSnapshot
    secondary_snapshots: dict[int, ClientSnapshot]

    def serialized_secondaries(self) -> dict[str, dict]:
        """Snapshots keyed by str(client_id), ready for the JSON log column."""
        return {str(client_id): snap.to_dict() for client_id, snap in self.secondary_snapshots.items()}


class SnapshotStore:
    """Reads and locks clients inside the merge transaction."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize snapshot store."""
        self.client_repo = ClientRepository(session)

    async def capture(
        self,
        organization_id: int,
        primary_client_id: int,
        secondary_client_ids: list[int],
    ) -> MergeSnapshot:
        """Lock every client in the merge and snapshot the secondaries.

        Must run inside the merge transaction so nothing can change between
        the snapshot and the mutation that follows it.

        Args:
            organization_id: Organization ID
            primary_client_id: ID of the surviving client
            secondary_client_ids: IDs of clients to merge, in request order

        Returns:
            MergeSnapshot with the locked clients and snapshots

        Raises:
            NotFoundError: If any ID does not resolve in the organization
            AlreadyMergedError: If the primary or any secondary is merged
        """
        all_ids = [primary_client_id] + list(secondary_client_ids)
        locked = await self.client_repo.lock_many(organization_id, all_ids)
        by_id = {client.id: client for client in locked}

        missing = [client_id for client_id in all_ids if client_id not in by_id]
        if missing:
            raise NotFoundError(f"Clients not found: {missing}")

        primary = by_id[primary_client_id]
        if primary.is_merged:
            raise AlreadyMergedError(
                f"Primary client {primary.id} was already merged into client {primary.merged_into_client_id}"
            )

        secondaries = [by_id[client_id] for client_id in secondary_client_ids]
        already_merged = [client.id for client in secondaries if client.is_merged]
        if already_merged:
            raise AlreadyMergedError(f"Clients already merged: {already_merged}")

        snapshots = {client.id: ClientSnapshot.capture(client) for client in secondaries}
        logger.debug(
            "Captured client snapshots",
            extra={"primary_client_id": primary.id, "secondary_client_ids": list(snapshots)},
        )
        return MergeSnapshot(
            primary=primary,
            secondaries=secondaries,
            primary_snapshot=ClientSnapshot.capture(primary),
            secondary_snapshots=snapshots,
        )
