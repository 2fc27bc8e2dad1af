"""Tests for executing client merges."""

import asyncio
from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from app.domain.errors import (
    AlreadyMergedError,
    ConflictError,
    InvalidFieldResolutionError,
    InvalidMergeRequestError,
    NotFoundError,
    StorageFailureError,
)
from app.domain.services.client_merge_service import ClientMergeService, _translate_db_error
from app.domain.services.reparenting import DEFAULT_REGISTRY, DependentRecordRegistry
from app.persistence.models import Appointment, Client, ClientMergeLog, ClientNote

NOW = datetime(2026, 5, 1, 9, 30)


@pytest.fixture
def run_merge(session_factory, organization, user):
    """Execute a merge on its own session, as a request would."""

    async def _merge(primary_id, secondary_ids, field_resolutions=None, registry=DEFAULT_REGISTRY,
                     organization_id=None):
        async with session_factory() as session:
            service = ClientMergeService(session, registry=registry, clock=lambda: NOW)
            return await service.execute_merge(
                organization_id=organization_id or organization.id,
                primary_client_id=primary_id,
                secondary_client_ids=secondary_ids,
                field_resolutions=field_resolutions,
                performed_by=user.id,
            )

    return _merge


async def _load_client(session_factory, client_id) -> Client:
    async with session_factory() as session:
        return await session.get(Client, client_id)


async def _count(session_factory, model, **filters) -> int:
    async with session_factory() as session:
        stmt = select(func.count()).select_from(model)
        for key, value in filters.items():
            stmt = stmt.where(getattr(model, key) == value)
        return await session.scalar(stmt)


class ExplodingHandler:
    """Handler that fails the way a dropped connection would."""

    table_name = "refund_records"

    async def reparent(self, session, organization_id, from_ids, to_id):
        raise OperationalError("UPDATE refund_records SET client_id=?", {}, Exception("disk I/O error"))


class StallingHandler:
    """Handler that never finishes until its task is cancelled."""

    table_name = "stalled_records"

    def __init__(self):
        self.started = asyncio.Event()

    async def reparent(self, session, organization_id, from_ids, to_id):
        self.started.set()
        await asyncio.sleep(3600)
        return 0


class TestExecuteMerge:
    """Tests for a successful merge."""

    async def test_resolved_email_and_appointments_move_to_primary(
        self, session_factory, make_client, add_appointments, run_merge
    ):
        a = await make_client(first_name="Ana", email="a@x.com")
        b = await make_client(first_name="Ana", email="b@x.com")
        await add_appointments(a, 5)
        await add_appointments(b, 3)

        result = await run_merge(a.id, [b.id], {"email": "b@x.com"})

        primary = await _load_client(session_factory, a.id)
        secondary = await _load_client(session_factory, b.id)
        assert primary.email == "b@x.com"
        assert await _count(session_factory, Appointment, client_id=a.id) == 8
        assert await _count(session_factory, Appointment, client_id=b.id) == 0
        assert secondary.status == "merged"
        assert secondary.merged_into_client_id == a.id
        assert secondary.is_active is False
        assert result.reparented_counts["appointments"] == 3

    async def test_dependent_records_are_conserved(
        self, session_factory, make_client, add_appointments, add_rows, run_merge
    ):
        a = await make_client(first_name="A")
        b = await make_client(first_name="B")
        c = await make_client(first_name="C")
        await add_appointments(a, 2)
        await add_appointments(b, 4)
        await add_appointments(c, 1)
        await add_rows(
            ClientNote(organization_id=b.organization_id, client_id=b.id, body="Prefers mornings"),
            ClientNote(organization_id=c.organization_id, client_id=c.id, body="Balayage every 8 weeks"),
        )
        appointments_before = await _count(session_factory, Appointment)
        notes_before = await _count(session_factory, ClientNote)

        await run_merge(a.id, [b.id, c.id])

        assert await _count(session_factory, Appointment) == appointments_before
        assert await _count(session_factory, Appointment, client_id=a.id) == appointments_before
        assert await _count(session_factory, ClientNote) == notes_before
        assert await _count(session_factory, ClientNote, client_id=a.id) == notes_before

    async def test_writes_merge_log_entry(self, session_factory, make_client, add_appointments, run_merge, user):
        a = await make_client(first_name="A", email="a@x.com")
        b = await make_client(first_name="B", email="b@x.com", mobile="+15125550100", is_vip=True)
        await add_appointments(b, 2)

        result = await run_merge(a.id, [b.id], {"email": "b@x.com"})

        async with session_factory() as session:
            entry = await session.get(ClientMergeLog, result.merge_log_id)
        assert entry.primary_client_id == a.id
        assert entry.secondary_client_ids == [b.id]
        assert entry.before_snapshots[str(b.id)]["mobile"] == "+15125550100"
        assert entry.before_snapshots[str(b.id)]["is_vip"] is True
        assert entry.primary_before_snapshot["email"] == "a@x.com"
        assert entry.field_resolutions == {"email": "b@x.com"}
        assert entry.reparented_counts == result.reparented_counts
        assert entry.flattened_clients == 0
        assert entry.performed_by == user.id
        assert entry.performed_at == NOW
        assert entry.undo_expires_at == NOW + timedelta(days=7)
        assert result.undo_expires_at == entry.undo_expires_at
        assert entry.is_undone is False

    async def test_secondaries_remember_the_merge_that_retired_them(
        self, session_factory, make_client, run_merge
    ):
        a = await make_client()
        b = await make_client()

        result = await run_merge(a.id, [b.id])

        assert (await _load_client(session_factory, b.id)).merge_log_id == result.merge_log_id

    async def test_merging_a_former_primary_flattens_its_shells(
        self, session_factory, make_client, run_merge
    ):
        a = await make_client(first_name="A")
        b = await make_client(first_name="B")
        c = await make_client(first_name="C")
        await run_merge(a.id, [b.id])

        result = await run_merge(c.id, [a.id])

        assert result.flattened_clients == 1
        assert "merged_clients" not in result.reparented_counts
        assert (await _load_client(session_factory, b.id)).merged_into_client_id == c.id
        assert (await _load_client(session_factory, a.id)).merged_into_client_id == c.id


class TestMergeRejections:
    """Tests for merges that must be refused without changing anything."""

    async def test_secondary_already_merged(self, make_client, run_merge):
        a = await make_client()
        b = await make_client()
        c = await make_client()
        await run_merge(a.id, [b.id])

        with pytest.raises(AlreadyMergedError, match=str(b.id)):
            await run_merge(c.id, [b.id])

    async def test_primary_already_merged(self, make_client, run_merge):
        a = await make_client()
        b = await make_client()
        c = await make_client()
        await run_merge(a.id, [b.id])

        with pytest.raises(AlreadyMergedError):
            await run_merge(b.id, [c.id])

    async def test_unknown_client(self, session_factory, make_client, run_merge):
        a = await make_client()

        with pytest.raises(NotFoundError, match="999"):
            await run_merge(a.id, [999])
        assert await _count(session_factory, ClientMergeLog) == 0

    async def test_client_in_another_organization_is_not_found(
        self, make_client, other_organization, run_merge
    ):
        a = await make_client()
        outsider = await make_client(organization_id=other_organization.id)

        with pytest.raises(NotFoundError):
            await run_merge(a.id, [outsider.id])

    @pytest.mark.parametrize("secondaries", ["none", "self", "dupes"])
    async def test_malformed_request(self, make_client, run_merge, secondaries):
        a = await make_client()
        b = await make_client()
        ids = {"none": [], "self": [a.id], "dupes": [b.id, b.id]}[secondaries]

        with pytest.raises(InvalidMergeRequestError):
            await run_merge(a.id, ids)

    async def test_resolution_value_not_from_any_client(self, session_factory, make_client, run_merge):
        a = await make_client(email="a@x.com")
        b = await make_client(email="b@x.com")

        with pytest.raises(InvalidFieldResolutionError):
            await run_merge(a.id, [b.id], {"email": "someone@else.com"})

        assert (await _load_client(session_factory, a.id)).email == "a@x.com"
        assert (await _load_client(session_factory, b.id)).status == "active"
        assert await _count(session_factory, ClientMergeLog) == 0


class TestMergeAtomicity:
    """A failure part-way through leaves no trace."""

    async def test_failure_while_reparenting_rolls_everything_back(
        self, session_factory, make_client, add_appointments, run_merge
    ):
        a = await make_client(email="a@x.com")
        b = await make_client(email="b@x.com")
        await add_appointments(b, 3)
        registry = DependentRecordRegistry([*DEFAULT_REGISTRY.handlers[:5], ExplodingHandler()])

        with pytest.raises(StorageFailureError) as exc_info:
            await run_merge(a.id, [b.id], {"email": "b@x.com"}, registry=registry)

        assert exc_info.value.retryable is True
        assert (await _load_client(session_factory, a.id)).email == "a@x.com"
        secondary = await _load_client(session_factory, b.id)
        assert secondary.status == "active"
        assert secondary.merged_into_client_id is None
        assert await _count(session_factory, Appointment, client_id=b.id) == 3
        assert await _count(session_factory, ClientMergeLog) == 0


class TestConcurrentMerges:
    """Overlapping merges of the same secondary."""

    async def test_only_one_of_two_overlapping_merges_succeeds(
        self, session_factory, make_client, add_appointments, run_merge
    ):
        a = await make_client(first_name="A")
        b = await make_client(first_name="B")
        c = await make_client(first_name="C")
        await add_appointments(b, 3)

        results = await asyncio.gather(
            run_merge(a.id, [b.id]),
            run_merge(c.id, [b.id]),
            return_exceptions=True,
        )

        succeeded = [r for r in results if not isinstance(r, BaseException)]
        failed = [r for r in results if isinstance(r, BaseException)]
        assert len(succeeded) == 1
        assert len(failed) == 1
        # Which one loses depends on whether it read B before or after the winner committed
        assert isinstance(failed[0], (ConflictError, AlreadyMergedError))

        winner = succeeded[0].primary_client_id
        assert (await _load_client(session_factory, b.id)).merged_into_client_id == winner
        assert await _count(session_factory, Appointment, client_id=winner) == 3
        assert await _count(session_factory, ClientMergeLog) == 1

    async def test_clients_read_earlier_in_the_request_are_reloaded(
        self, session_factory, make_client, add_appointments, organization, user
    ):
        a = await make_client(first_name="A")
        b = await make_client(first_name="B")
        c = await make_client(first_name="C")
        await add_appointments(b, 2)

        async with session_factory() as session:
            # Auto-begun by this read; the merge adopts it
            await session.get(Client, b.id)
            async with session_factory() as rival:
                await ClientMergeService(rival, clock=lambda: NOW).execute_merge(
                    organization.id, c.id, [b.id], None, user.id
                )

            with pytest.raises(AlreadyMergedError):
                await ClientMergeService(session, clock=lambda: NOW).execute_merge(
                    organization.id, a.id, [b.id], None, user.id
                )

        assert (await _load_client(session_factory, b.id)).merged_into_client_id == c.id
        assert await _count(session_factory, Appointment, client_id=c.id) == 2
        assert await _count(session_factory, ClientMergeLog) == 1


class TestMergeCancellation:
    """A merge cancelled mid-flight leaves no trace."""

    async def test_cancel_while_reparenting_rolls_everything_back(
        self, session_factory, make_client, add_appointments, run_merge
    ):
        a = await make_client(email="a@x.com")
        b = await make_client(email="b@x.com")
        await add_appointments(b, 3)
        stalling = StallingHandler()
        # Appointments move first, then the merge stalls
        registry = DependentRecordRegistry([DEFAULT_REGISTRY.handlers[0], stalling])

        task = asyncio.create_task(run_merge(a.id, [b.id], {"email": "b@x.com"}, registry=registry))
        await stalling.started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert (await _load_client(session_factory, a.id)).email == "a@x.com"
        secondary = await _load_client(session_factory, b.id)
        assert secondary.status == "active"
        assert secondary.merged_into_client_id is None
        assert await _count(session_factory, Appointment, client_id=b.id) == 3
        assert await _count(session_factory, ClientMergeLog) == 0


class TestTranslateDbError:
    """Tests for mapping database failures to merge errors."""

    @pytest.mark.parametrize("sqlstate", ["55P03", "40001", "40P01"])
    def test_lock_contention_is_a_conflict(self, sqlstate):
        orig = Exception("could not obtain lock")
        orig.sqlstate = sqlstate

        error = _translate_db_error(OperationalError("SELECT ... FOR UPDATE", {}, orig))

        assert isinstance(error, ConflictError)

    def test_sqlite_busy_is_a_conflict(self):
        error = _translate_db_error(OperationalError("UPDATE clients", {}, Exception("database is locked")))

        assert isinstance(error, ConflictError)

    def test_anything_else_is_a_storage_failure(self):
        error = _translate_db_error(OperationalError("UPDATE clients", {}, Exception("disk I/O error")))

        assert isinstance(error, StorageFailureError)
