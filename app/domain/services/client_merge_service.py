"""Client merge service: executes merges and undoes them within the undo window."""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, AsyncIterator, Callable

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from app.core.clock import utcnow
from app.domain.errors import (
    AlreadyUndoneError,
    ClientMergeError,
    ConflictError,
    InvalidMergeRequestError,
    NotFoundError,
    StorageFailureError,
    UndoWindowExpiredError,
)
from app.domain.models.client_snapshot import ClientSnapshot
from app.domain.services.field_resolver import resolve_fields
from app.domain.services.reparenting import DEFAULT_REGISTRY, DependentRecordRegistry, ReparentingEngine
from app.domain.services.snapshot_service import SnapshotStore
from app.persistence.models.client import ClientStatus
from app.persistence.models.client_merge_log import ClientMergeLog
from app.persistence.repositories.client_merge_log_repository import ClientMergeLogRepository
from app.persistence.repositories.client_repository import ClientRepository
from app.settings import settings

logger = logging.getLogger(__name__)

UNDO_SUCCESS_MESSAGE = "secondary profiles restored; historical records remain with primary"

# SQLSTATEs that mean "someone else holds the rows": lock_not_available,
# serialization_failure, deadlock_detected
_CONTENTION_SQLSTATES = frozenset({"55P03", "40001", "40P01"})


@dataclass(frozen=True)
class MergeResult:
    """Outcome of a successful merge."""

    merge_log_id: int
    primary_client_id: int
    secondary_client_ids: list[int]
    reparented_counts: dict[str, int]
    undo_expires_at: datetime
    flattened_clients: int = 0


@dataclass(frozen=True)
class UndoResult:
    """Outcome of a successful undo.

    Only the secondaries' identity fields come back. Records re-parented
    during the merge and the primary's resolved fields stay as they are.
    """

    merge_log_id: int
    restored_client_ids: list[int]
    message: str = field(default=UNDO_SUCCESS_MESSAGE)


def _translate_db_error(exc: SQLAlchemyError) -> ClientMergeError:
    """Map a database failure to a retryable merge error."""
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in _CONTENTION_SQLSTATES:
        return ConflictError("Another merge or undo is touching these clients; refresh and retry")
    if isinstance(exc, DBAPIError) and "database is locked" in str(exc).lower():
        return ConflictError("Another merge or undo is touching these clients; refresh and retry")
    return StorageFailureError("The change could not be saved; nothing was modified")


class ClientMergeService:
    """Service for merging duplicate clients and undoing those merges.

    Each public mutation runs as one transaction on ``session``: either every
    change (field updates, re-parented records, merged flags, log entry)
    commits together or none of it does.
    """

    def __init__(
        self,
        session: AsyncSession,
        registry: DependentRecordRegistry = DEFAULT_REGISTRY,
        clock: Callable[[], datetime] = utcnow,
        undo_window: timedelta | None = None,
    ) -> None:
        """Initialize merge service."""
        self.session = session
        self.registry = registry
        self.clock = clock
        self.undo_window = undo_window or timedelta(days=settings.merge_undo_window_days)
        self.client_repo = ClientRepository(session)
        self.merge_log_repo = ClientMergeLogRepository(session)

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[None]:
        """Run the block as a single transaction and commit once at the end.

        A transaction the session auto-began for earlier reads (e.g. loading
        the current user) is adopted rather than nested, so there is still
        exactly one commit. Any exception, including cancellation, rolls
        everything back. Database errors surface as ConflictError or
        StorageFailureError.
        """
        try:
            if self.session.in_transaction():
                try:
                    await self._apply_lock_timeout()
                    yield
                    await self.session.commit()
                except BaseException:
                    await self.session.rollback()
                    raise
            else:
                async with self.session.begin():
                    await self._apply_lock_timeout()
                    yield
        except SQLAlchemyError as e:
            logger.error("Client merge transaction failed", exc_info=True)
            raise _translate_db_error(e) from e

    async def _apply_lock_timeout(self) -> None:
        """Bound how long row locks may be waited on (Postgres only)."""
        if self.session.get_bind().dialect.name != "postgresql":
            return
        timeout_ms = int(settings.merge_lock_timeout_ms)
        await self.session.execute(text(f"SET LOCAL lock_timeout = '{timeout_ms}ms'"))

    def _validate_request(
        self, primary_client_id: int, secondary_client_ids: list[int]
    ) -> list[int]:
        """Check the request shape before touching the database."""
        if not secondary_client_ids:
            raise InvalidMergeRequestError("At least one secondary client is required")
        if primary_client_id in secondary_client_ids:
            raise InvalidMergeRequestError("Primary client cannot be in the secondary list")
        if len(set(secondary_client_ids)) != len(secondary_client_ids):
            raise InvalidMergeRequestError("Secondary client IDs must be unique")
        if len(secondary_client_ids) > settings.merge_max_secondaries:
            raise InvalidMergeRequestError(
                f"Cannot merge more than {settings.merge_max_secondaries} clients at once"
            )
        return list(secondary_client_ids)

    async def execute_merge(
        self,
        organization_id: int,
        primary_client_id: int,
        secondary_client_ids: list[int],
        field_resolutions: dict[str, Any] | None,
        performed_by: int,
    ) -> MergeResult:
        """Merge secondary clients into a primary client.

        Args:
            organization_id: Organization ID
            primary_client_id: ID of the client that will survive
            secondary_client_ids: IDs of clients to merge into the primary
            field_resolutions: Field name -> value chosen by the operator; the
                value must already be held by one of the clients
            performed_by: ID of the user performing the merge

        Returns:
            MergeResult with the merge log ID and per-table re-parent counts

        Raises:
            InvalidMergeRequestError: Malformed request
            NotFoundError: A client does not exist in the organization
            AlreadyMergedError: The primary or a secondary is already merged
            InvalidFieldResolutionError: A resolved value is not from the merge
            ConflictError: Lock contention; safe to retry
            StorageFailureError: Database failure; safe to retry
        """
        resolutions = dict(field_resolutions or {})

        try:
            secondary_ids = self._validate_request(primary_client_id, secondary_client_ids)
            async with self._transaction():
                snapshot = await SnapshotStore(self.session).capture(
                    organization_id, primary_client_id, secondary_ids
                )
                primary = snapshot.primary

                updates = resolve_fields(primary, snapshot.secondaries, resolutions)
                for key, value in updates.items():
                    setattr(primary, key, value)

                performed_at = self.clock()
                outcome = await ReparentingEngine(self.session, self.registry).run(
                    organization_id,
                    primary,
                    snapshot.secondaries,
                    performed_by,
                    performed_at,
                )

                entry = await self.merge_log_repo.add_entry(
                    organization_id=organization_id,
                    primary_client_id=primary.id,
                    secondary_client_ids=secondary_ids,
                    before_snapshots=snapshot.serialized_secondaries(),
                    primary_before_snapshot=snapshot.primary_snapshot.to_dict(),
                    field_resolutions=resolutions,
                    reparented_counts=outcome.reparented_counts,
                    flattened_clients=outcome.flattened_clients,
                    performed_by=performed_by,
                    performed_at=performed_at,
                    undo_expires_at=performed_at + self.undo_window,
                )
                for client in snapshot.secondaries:
                    client.merge_log_id = entry.id
                await self.session.flush()
                merge_log_id = entry.id
                undo_expires_at = entry.undo_expires_at
        except ClientMergeError as e:
            logger.warning(
                f"Client merge rejected: {e.message}",
                extra={
                    "organization_id": organization_id,
                    "primary_client_id": primary_client_id,
                    "error_kind": e.error_kind,
                },
            )
            raise

        logger.info(
            f"Merged clients {secondary_ids} into {primary_client_id}",
            extra={
                "organization_id": organization_id,
                "merge_log_id": merge_log_id,
                "reparented_counts": outcome.reparented_counts,
                "flattened_clients": outcome.flattened_clients,
                "user_id": performed_by,
            },
        )
        return MergeResult(
            merge_log_id=merge_log_id,
            primary_client_id=primary_client_id,
            secondary_client_ids=secondary_ids,
            reparented_counts=outcome.reparented_counts,
            undo_expires_at=undo_expires_at,
            flattened_clients=outcome.flattened_clients,
        )

    async def undo_merge(
        self,
        organization_id: int,
        merge_log_id: int,
        requested_by: int,
    ) -> UndoResult:
        """Restore the secondary clients of a merge.

        Dependent records are not moved back and the primary keeps its
        resolved fields; the returned message says so.

        Args:
            organization_id: Organization ID
            merge_log_id: ID of the merge to undo
            requested_by: ID of the user requesting the undo

        Returns:
            UndoResult with the restored client IDs

        Raises:
            NotFoundError: No such merge in the organization
            AlreadyUndoneError: The merge was already undone
            UndoWindowExpiredError: The undo window has closed
            ConflictError: A secondary no longer reflects this merge, or lock contention
            StorageFailureError: Database failure; safe to retry
        """
        try:
            async with self._transaction():
                entry = await self.merge_log_repo.get_for_update(organization_id, merge_log_id)
                if entry is None:
                    raise NotFoundError(f"Merge {merge_log_id} not found")
                if entry.is_undone:
                    raise AlreadyUndoneError(f"Merge {merge_log_id} was already undone")

                now = self.clock()
                if not now < entry.undo_expires_at:
                    raise UndoWindowExpiredError(
                        f"Merge {merge_log_id} could only be undone until {entry.undo_expires_at.isoformat()}"
                    )

                if not await self.merge_log_repo.mark_undone(
                    organization_id, merge_log_id, now, requested_by
                ):
                    raise AlreadyUndoneError(f"Merge {merge_log_id} was already undone")
                set_committed_value(entry, "is_undone", True)
                set_committed_value(entry, "undone_at", now)
                set_committed_value(entry, "undone_by", requested_by)

                restored = await self._restore_secondaries(organization_id, entry)
                await self.session.flush()
        except ClientMergeError as e:
            logger.warning(
                f"Client merge undo rejected: {e.message}",
                extra={
                    "organization_id": organization_id,
                    "merge_log_id": merge_log_id,
                    "error_kind": e.error_kind,
                },
            )
            raise

        logger.info(
            f"Undid merge {merge_log_id}; restored clients {restored}",
            extra={"organization_id": organization_id, "merge_log_id": merge_log_id, "user_id": requested_by},
        )
        return UndoResult(merge_log_id=merge_log_id, restored_client_ids=restored)

    async def _restore_secondaries(
        self, organization_id: int, entry: ClientMergeLog
    ) -> list[int]:
        """Lock, re-validate and restore every secondary of ``entry``."""
        secondary_ids = [int(client_id) for client_id in entry.secondary_client_ids]
        locked = await self.client_repo.lock_many(organization_id, secondary_ids)
        by_id = {client.id: client for client in locked}

        for client_id in secondary_ids:
            client = by_id.get(client_id)
            if client is None or not client.is_merged or client.merge_log_id != entry.id:
                raise ConflictError(
                    f"Client {client_id} no longer reflects merge {entry.id}; refresh and retry"
                )

        for client_id in secondary_ids:
            client = by_id[client_id]
            ClientSnapshot.from_dict(entry.before_snapshots[str(client_id)]).apply_to(client)
            client.status = ClientStatus.ACTIVE.value
            client.merged_into_client_id = None
            client.merged_at = None
            client.merged_by = None
            client.merge_log_id = None
            client.is_active = True

        return secondary_ids

    async def get_merge_log(self, organization_id: int, merge_log_id: int) -> ClientMergeLog:
        """Get one merge log entry.

        Raises:
            NotFoundError: No such merge in the organization
        """
        entry = await self.merge_log_repo.get_by_id(organization_id, merge_log_id)
        if entry is None:
            raise NotFoundError(f"Merge {merge_log_id} not found")
        return entry

    async def list_merge_logs(
        self, organization_id: int, skip: int = 0, limit: int = 100
    ) -> list[ClientMergeLog]:
        """List an organization's merges, newest first."""
        return await self.merge_log_repo.list_for_organization(organization_id, skip=skip, limit=limit)

    async def count_merge_logs(self, organization_id: int) -> int:
        """Count all of an organization's merges."""
        return await self.merge_log_repo.count_for_organization(organization_id)

    async def get_client_merge_history(
        self, organization_id: int, client_id: int, skip: int = 0, limit: int = 100
    ) -> list[ClientMergeLog]:
        """List merges a client took part in, as primary or secondary."""
        return await self.merge_log_repo.list_for_client(
            organization_id, client_id, skip=skip, limit=limit
        )

    async def count_client_merge_history(self, organization_id: int, client_id: int) -> int:
        """Count merges a client took part in."""
        return await self.merge_log_repo.count_for_client(organization_id, client_id)
