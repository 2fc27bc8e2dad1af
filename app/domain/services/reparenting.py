"""Re-parenting engine: moves client-owned records from secondaries to the primary.

Every table that owns rows by client ID is listed in ``DEFAULT_REGISTRY``.
A new client-owned table takes part in merges only once a handler for it is
registered there; nothing is discovered at runtime.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from app.domain.errors import ConflictError
from app.persistence.database import Base
from app.persistence.models.appointment import Appointment, ArchivedAppointment, ExternalAppointment
from app.persistence.models.balance import BalanceTransaction, ClientBalance
from app.persistence.models.client import Client, ClientStatus
from app.persistence.models.client_note import ClientNote
from app.persistence.models.loyalty import ClientLoyaltyPoints, PointsTransaction
from app.persistence.models.promotion_redemption import PromotionRedemption
from app.persistence.models.refund_record import RefundRecord
from app.persistence.models.voucher import Voucher
from app.persistence.repositories.client_repository import ClientRepository

logger = logging.getLogger(__name__)

# Bump when handlers are added, removed or reordered
REGISTRY_VERSION = 2


@dataclass(frozen=True)
class ReparentingOutcome:
    """What one re-parenting pass changed."""

    reparented_counts: dict[str, int]
    flattened_clients: int = 0


class DependentRecordHandler(Protocol):
    """Moves one kind of client-owned record to a new client."""

    table_name: str

    async def reparent(
        self,
        session: AsyncSession,
        organization_id: int,
        from_ids: list[int],
        to_id: int,
    ) -> int:
        """Re-point rows owned by ``from_ids`` at ``to_id``; return rows affected."""
        ...


class ClientForeignKeyHandler:
    """Rewrites a plain client foreign key column with one bulk UPDATE."""

    def __init__(
        self,
        model: type[Base],
        column_name: str = "client_id",
        table_name: str | None = None,
    ) -> None:
        self.model = model
        self.column_name = column_name
        self.table_name = table_name or model.__tablename__

    async def reparent(
        self,
        session: AsyncSession,
        organization_id: int,
        from_ids: list[int],
        to_id: int,
    ) -> int:
        column = getattr(self.model, self.column_name)
        stmt = (
            update(self.model)
            .where(
                self.model.organization_id == organization_id,
                column.in_(from_ids),
            )
            .values({self.column_name: to_id})
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount or 0


class ExternalClientIdHandler:
    """Re-points rows keyed by the upstream booking system's client ID.

    Secondaries' external IDs are rewritten to the primary's. Nothing moves
    when the primary has no external ID of its own.
    """

    def __init__(
        self,
        model: type[Base],
        column_name: str = "external_client_id",
        table_name: str | None = None,
    ) -> None:
        self.model = model
        self.column_name = column_name
        self.table_name = table_name or model.__tablename__

    async def reparent(
        self,
        session: AsyncSession,
        organization_id: int,
        from_ids: list[int],
        to_id: int,
    ) -> int:
        external_ids = await ClientRepository(session).get_external_ids(
            organization_id, [to_id] + list(from_ids)
        )
        target = external_ids.get(to_id)
        sources = sorted({
            external_ids[client_id]
            for client_id in from_ids
            if external_ids.get(client_id) and external_ids[client_id] != target
        })
        if not target or not sources:
            return 0

        column = getattr(self.model, self.column_name)
        stmt = (
            update(self.model)
            .where(
                self.model.organization_id == organization_id,
                column.in_(sources),
            )
            .values({self.column_name: target})
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount or 0


class RollupBalanceHandler:
    """Folds per-client running totals into the primary's row.

    Roll-up tables keep one row per client, so secondary rows cannot simply
    be re-pointed. Their amounts are added onto the primary's row and the
    emptied rows are removed. If the primary has no row yet, the first
    secondary row is re-pointed and becomes it. Totals are conserved.
    """

    def __init__(self, model: type[Base], amount_columns: Sequence[str]) -> None:
        self.model = model
        self.amount_columns = tuple(amount_columns)
        self.table_name = model.__tablename__

    async def reparent(
        self,
        session: AsyncSession,
        organization_id: int,
        from_ids: list[int],
        to_id: int,
    ) -> int:
        stmt = (
            select(self.model)
            .where(
                self.model.organization_id == organization_id,
                self.model.client_id.in_([to_id] + list(from_ids)),
            )
            .order_by(self.model.id)
            .with_for_update()
        )
        result = await session.execute(stmt)
        rows = list(result.scalars().all())

        secondary_rows = [row for row in rows if row.client_id in from_ids]
        if not secondary_rows:
            return 0

        target = next((row for row in rows if row.client_id == to_id), None)
        to_fold = secondary_rows
        if target is None:
            target, to_fold = secondary_rows[0], secondary_rows[1:]
            target.client_id = to_id

        for row in to_fold:
            for column in self.amount_columns:
                total = (getattr(target, column) or 0) + (getattr(row, column) or 0)
                setattr(target, column, total)
            await session.delete(row)

        await session.flush()
        return len(secondary_rows)


class DependentRecordRegistry:
    """Ordered, fixed set of handlers that take part in every merge."""

    def __init__(self, handlers: Sequence[DependentRecordHandler] = ()) -> None:
        self._handlers: list[DependentRecordHandler] = []
        for handler in handlers:
            self.register(handler)

    def register(self, handler: DependentRecordHandler) -> None:
        """Add a handler.

        Raises:
            ValueError: If a handler with the same table name is already registered
        """
        if handler.table_name in self.table_names():
            raise ValueError(f"Handler for '{handler.table_name}' is already registered")
        self._handlers.append(handler)

    @property
    def handlers(self) -> tuple[DependentRecordHandler, ...]:
        return tuple(self._handlers)

    def table_names(self) -> list[str]:
        return [handler.table_name for handler in self._handlers]


DEFAULT_REGISTRY = DependentRecordRegistry([
    ClientForeignKeyHandler(Appointment),
    ClientForeignKeyHandler(ArchivedAppointment),
    ExternalClientIdHandler(ExternalAppointment),
    ClientForeignKeyHandler(ClientNote),
    ClientForeignKeyHandler(PointsTransaction),
    ClientForeignKeyHandler(BalanceTransaction),
    ClientForeignKeyHandler(PromotionRedemption),
    ClientForeignKeyHandler(RefundRecord),
    ClientForeignKeyHandler(Voucher, "issued_to_client_id", table_name="vouchers_issued"),
    ClientForeignKeyHandler(Voucher, "redeemed_by_client_id", table_name="vouchers_redeemed"),
    RollupBalanceHandler(ClientBalance, ("salon_credit_balance", "gift_card_balance")),
    RollupBalanceHandler(ClientLoyaltyPoints, ("points_balance",)),
])


class ReparentingEngine:
    """Moves dependent records to the primary and retires the secondaries.

    Runs inside the caller's transaction and never commits.
    """

    def __init__(
        self,
        session: AsyncSession,
        registry: DependentRecordRegistry = DEFAULT_REGISTRY,
    ) -> None:
        """Initialize re-parenting engine."""
        self.session = session
        self.registry = registry
        self.client_repo = ClientRepository(session)

    async def reparent_dependents(
        self, organization_id: int, from_ids: list[int], to_id: int
    ) -> dict[str, int]:
        """Run every registered handler and collect per-table row counts."""
        counts: dict[str, int] = {}
        for handler in self.registry.handlers:
            counts[handler.table_name] = await handler.reparent(
                self.session, organization_id, from_ids, to_id
            )
        return counts

    async def flatten_merge_chains(
        self, organization_id: int, from_ids: list[int], to_id: int
    ) -> int:
        """Re-point shells previously merged into a secondary onto the primary.

        Keeps every merged client one hop away from an active client.
        """
        shells = await self.client_repo.get_merged_into(organization_id, from_ids)
        for shell in shells:
            shell.merged_into_client_id = to_id
        return len(shells)

    async def mark_merged(
        self,
        organization_id: int,
        primary: Client,
        secondaries: list[Client],
        performed_by: int,
        merged_at: datetime,
    ) -> None:
        """Flip secondaries to merged. They stay in the table as shells.

        Each write is conditional on the client still being active, checked
        by the database rather than by our earlier reads.

        Raises:
            ConflictError: A concurrent merge already retired the primary or a secondary
        """
        values = {
            "status": ClientStatus.MERGED.value,
            "merged_into_client_id": primary.id,
            "merged_at": merged_at,
            "merged_by": performed_by,
            "is_active": False,
        }
        retired = await self.client_repo.update_if_active(
            organization_id, [client.id for client in secondaries], **values
        )
        primary_active = await self.client_repo.update_if_active(
            organization_id, [primary.id], updated_at=merged_at
        )
        if retired != len(secondaries) or primary_active != 1:
            raise ConflictError(
                "A client in this merge was merged by someone else; refresh and retry"
            )

        for client in secondaries:
            for key, value in values.items():
                set_committed_value(client, key, value)
        set_committed_value(primary, "updated_at", merged_at)

    async def run(
        self,
        organization_id: int,
        primary: Client,
        secondaries: list[Client],
        performed_by: int,
        merged_at: datetime,
    ) -> ReparentingOutcome:
        """Re-parent dependents, then retire the secondaries.

        Dependents move first so that a failure part-way never leaves a
        merged shell with records still attached to it.

        Returns:
            Rows re-parented per table, and how many older shells were flattened
        """
        from_ids = [client.id for client in secondaries]

        counts = await self.reparent_dependents(organization_id, from_ids, primary.id)
        await self.session.flush()

        flattened = await self.flatten_merge_chains(organization_id, from_ids, primary.id)
        await self.session.flush()
        await self.mark_merged(organization_id, primary, secondaries, performed_by, merged_at)

        logger.debug(
            "Re-parented dependent records",
            extra={
                "primary_client_id": primary.id,
                "reparented_counts": counts,
                "flattened_clients": flattened,
            },
        )
        return ReparentingOutcome(reparented_counts=counts, flattened_clients=flattened)
