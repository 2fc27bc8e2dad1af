"""Tests for the client merge API."""

import pytest
from httpx import ASGITransport, AsyncClient

from app.api.deps import get_audit_service
from app.core.auth import create_access_token
from app.domain.services.audit_service import AuditService
from app.main import app
from app.persistence.database import get_db
from app.persistence.models import User
from app.persistence.models.audit_log import AuditAction
from app.persistence.repositories.audit_log_repository import AuditLogRepository

BASE_URL = "/api/v1/client-merges"


@pytest.fixture
async def api_client(session_factory):
    """HTTP client against the app, wired to the test database."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_audit_service] = lambda: AuditService(session_factory)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(user):
    token = create_access_token({"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


async def _audit_actions(session_factory, organization_id) -> list[str]:
    async with session_factory() as session:
        entries = await AuditLogRepository(session).list_by_organization(organization_id)
    return [entry.action for entry in entries]


class TestMergeEndpoint:
    """Tests for POST /client-merges."""

    async def test_merge_succeeds_and_is_audited(
        self, api_client, auth_headers, make_client, add_appointments, session_factory, organization
    ):
        a = await make_client(email="a@x.com")
        b = await make_client(email="b@x.com")
        await add_appointments(b, 3)

        response = await api_client.post(
            BASE_URL,
            json={"primary_client_id": a.id, "secondary_client_ids": [b.id], "field_resolutions": {"email": "b@x.com"}},
            headers=auth_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["reparented_counts"]["appointments"] == 3
        assert body["merge_log_id"] > 0
        assert "undo_expires_at" in body
        assert response.headers["X-Request-Id"]
        assert await _audit_actions(session_factory, organization.id) == [AuditAction.CLIENT_MERGED.value]

    async def test_already_merged_is_409(self, api_client, auth_headers, make_client):
        a = await make_client()
        b = await make_client()
        c = await make_client()
        payload = {"primary_client_id": a.id, "secondary_client_ids": [b.id]}
        assert (await api_client.post(BASE_URL, json=payload, headers=auth_headers)).status_code == 200

        response = await api_client.post(
            BASE_URL, json={"primary_client_id": c.id, "secondary_client_ids": [b.id]}, headers=auth_headers
        )

        assert response.status_code == 409
        assert response.json()["detail"]["error_kind"] == "already_merged"

    async def test_invalid_field_resolution_is_422(self, api_client, auth_headers, make_client):
        a = await make_client(email="a@x.com")
        b = await make_client(email="b@x.com")

        response = await api_client.post(
            BASE_URL,
            json={"primary_client_id": a.id, "secondary_client_ids": [b.id], "field_resolutions": {"email": "c@x.com"}},
            headers=auth_headers,
        )

        assert response.status_code == 422
        assert response.json()["detail"]["error_kind"] == "invalid_field_resolution"

    async def test_unknown_client_is_404_and_rejection_is_audited(
        self, api_client, auth_headers, make_client, session_factory, organization
    ):
        a = await make_client()

        response = await api_client.post(
            BASE_URL, json={"primary_client_id": a.id, "secondary_client_ids": [9999]}, headers=auth_headers
        )

        assert response.status_code == 404
        assert response.json()["detail"]["error_kind"] == "not_found"
        assert await _audit_actions(session_factory, organization.id) == [AuditAction.CLIENT_MERGE_REJECTED.value]

    async def test_empty_secondaries_is_400(self, api_client, auth_headers, make_client):
        a = await make_client()

        response = await api_client.post(
            BASE_URL, json={"primary_client_id": a.id, "secondary_client_ids": []}, headers=auth_headers
        )

        assert response.status_code == 400
        assert response.json()["detail"]["error_kind"] == "invalid_request"

    async def test_invalid_token_is_401(self, api_client):
        response = await api_client.post(
            BASE_URL,
            json={"primary_client_id": 1, "secondary_client_ids": [2]},
            headers={"Authorization": "Bearer not-a-jwt"},
        )

        assert response.status_code == 401

    async def test_user_without_organization_is_403(self, api_client, add_rows):
        loner = await add_rows(User(organization_id=None, email="loner@x.com"))
        token = create_access_token({"sub": str(loner.id)})

        response = await api_client.get(BASE_URL, headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 403


class TestUndoEndpoint:
    """Tests for POST /client-merges/{id}/undo."""

    async def test_undo_then_repeat(self, api_client, auth_headers, make_client, session_factory, organization):
        a = await make_client()
        b = await make_client()
        merged = await api_client.post(
            BASE_URL, json={"primary_client_id": a.id, "secondary_client_ids": [b.id]}, headers=auth_headers
        )
        merge_log_id = merged.json()["merge_log_id"]

        first = await api_client.post(f"{BASE_URL}/{merge_log_id}/undo", headers=auth_headers)
        second = await api_client.post(f"{BASE_URL}/{merge_log_id}/undo", headers=auth_headers)

        assert first.status_code == 200
        assert first.json()["restored_client_ids"] == [b.id]
        assert "historical records remain with primary" in first.json()["message"]
        assert second.status_code == 409
        assert second.json()["detail"]["error_kind"] == "already_undone"
        assert set(await _audit_actions(session_factory, organization.id)) == {
            AuditAction.CLIENT_MERGED.value,
            AuditAction.CLIENT_MERGE_UNDONE.value,
            AuditAction.CLIENT_MERGE_REJECTED.value,
        }

    async def test_rejected_undo_is_audited_with_its_merge(
        self, api_client, auth_headers, session_factory, organization
    ):
        response = await api_client.post(f"{BASE_URL}/555/undo", headers=auth_headers)

        assert response.status_code == 404
        async with session_factory() as session:
            entries = await AuditLogRepository(session).list_by_organization(organization.id)
        assert len(entries) == 1
        assert entries[0].action == AuditAction.CLIENT_MERGE_REJECTED.value
        assert entries[0].resource_id == 555
        assert entries[0].details == {
            "operation": "undo",
            "error_kind": "not_found",
            "message": "Merge 555 not found",
        }

    async def test_unknown_merge_is_404(self, api_client, auth_headers):
        response = await api_client.post(f"{BASE_URL}/777/undo", headers=auth_headers)

        assert response.status_code == 404


class TestMergeLogEndpoints:
    """Tests for reading the merge log."""

    async def test_list_get_and_history(self, api_client, auth_headers, make_client):
        a = await make_client()
        b = await make_client()
        merged = await api_client.post(
            BASE_URL, json={"primary_client_id": a.id, "secondary_client_ids": [b.id]}, headers=auth_headers
        )
        merge_log_id = merged.json()["merge_log_id"]

        listing = await api_client.get(BASE_URL, headers=auth_headers)
        single = await api_client.get(f"{BASE_URL}/{merge_log_id}", headers=auth_headers)
        history = await api_client.get(f"{BASE_URL}/clients/{b.id}/history", headers=auth_headers)

        assert listing.status_code == 200
        assert listing.json()["total"] == 1
        assert single.json()["secondary_client_ids"] == [b.id]
        assert single.json()["before_snapshots"][str(b.id)]["is_vip"] is False
        assert [entry["id"] for entry in history.json()["entries"]] == [merge_log_id]

    async def test_missing_entry_is_404(self, api_client, auth_headers):
        response = await api_client.get(f"{BASE_URL}/4242", headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["detail"]["error_kind"] == "not_found"

    async def test_totals_count_every_entry_not_just_the_page(self, api_client, auth_headers, make_client):
        a, b, c = [await make_client() for _ in range(3)]
        for secondary in (b, c):
            merged = await api_client.post(
                BASE_URL, json={"primary_client_id": a.id, "secondary_client_ids": [secondary.id]},
                headers=auth_headers,
            )
            assert merged.status_code == 200

        listing = await api_client.get(BASE_URL, params={"limit": 1}, headers=auth_headers)
        history = await api_client.get(
            f"{BASE_URL}/clients/{a.id}/history", params={"limit": 1, "skip": 1}, headers=auth_headers
        )

        assert len(listing.json()["entries"]) == 1
        assert listing.json()["total"] == 2
        assert len(history.json()["entries"]) == 1
        assert history.json()["total"] == 2

    async def test_flattened_clients_reported_apart_from_table_counts(
        self, api_client, auth_headers, make_client
    ):
        a, b, c = [await make_client() for _ in range(3)]
        await api_client.post(
            BASE_URL, json={"primary_client_id": a.id, "secondary_client_ids": [b.id]}, headers=auth_headers
        )

        merged = await api_client.post(
            BASE_URL, json={"primary_client_id": c.id, "secondary_client_ids": [a.id]}, headers=auth_headers
        )
        single = await api_client.get(f"{BASE_URL}/{merged.json()['merge_log_id']}", headers=auth_headers)

        assert merged.json()["flattened_clients"] == 1
        assert "merged_clients" not in merged.json()["reparented_counts"]
        assert single.json()["flattened_clients"] == 1
