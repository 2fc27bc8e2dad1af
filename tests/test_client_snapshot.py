"""Tests for client snapshots."""

import pytest

from app.domain.models.client_snapshot import SNAPSHOT_FIELDS, ClientSnapshot
from app.persistence.models.client import Client


def _client(**overrides) -> Client:
    fields = {
        "first_name": "Maya",
        "last_name": "Lopez",
        "email": "maya@example.com",
        "mobile": "+15125550100",
        "phone": None,
        "notes": "Allergic to ammonia dyes",
        "is_vip": True,
        "preferred_stylist_id": 7,
        "location_id": 2,
    }
    fields.update(overrides)
    return Client(organization_id=1, **fields)


class TestCapture:
    """Tests for capturing a snapshot from a client."""

    def test_copies_every_identity_field(self):
        snapshot = ClientSnapshot.capture(_client())

        assert snapshot.email == "maya@example.com"
        assert snapshot.is_vip is True
        assert snapshot.preferred_stylist_id == 7
        assert set(snapshot.to_dict()) == set(SNAPSHOT_FIELDS)

    def test_merge_state_is_not_part_of_the_snapshot(self):
        """Status and merge pointers are reset on undo, never restored from a snapshot."""
        assert "status" not in SNAPSHOT_FIELDS
        assert "merged_into_client_id" not in SNAPSHOT_FIELDS
        assert "organization_id" not in SNAPSHOT_FIELDS

    def test_snapshot_is_immutable(self):
        snapshot = ClientSnapshot.capture(_client())

        with pytest.raises(AttributeError):
            snapshot.email = "other@example.com"


class TestFromDict:
    """Tests for rebuilding snapshots from the merge log."""

    def test_rejects_missing_fields(self):
        data = ClientSnapshot.capture(_client()).to_dict()
        del data["email"]

        with pytest.raises(ValueError, match="missing"):
            ClientSnapshot.from_dict(data)

    def test_rejects_unknown_fields(self):
        data = ClientSnapshot.capture(_client()).to_dict()
        data["loyalty_tier"] = "gold"

        with pytest.raises(ValueError, match="unknown"):
            ClientSnapshot.from_dict(data)


class TestApplyTo:
    """Tests for writing a snapshot back onto a client."""

    def test_overwrites_changed_fields_including_nulls(self):
        snapshot = ClientSnapshot.capture(_client(phone=None))
        client = _client(email="changed@example.com", phone="+15125550199", is_vip=False)

        snapshot.apply_to(client)

        assert client.email == "maya@example.com"
        assert client.phone is None
        assert client.is_vip is True
