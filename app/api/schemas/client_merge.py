"""Client merge API schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel


class ClientMergeRequest(BaseModel):
    """Merge request. The organization is taken from the caller."""

    primary_client_id: int
    secondary_client_ids: list[int]
    field_resolutions: dict[str, str | int | bool | None] = {}


class ClientMergeResponse(BaseModel):
    """Successful merge."""

    merge_log_id: int
    reparented_counts: dict[str, int]
    flattened_clients: int = 0
    undo_expires_at: datetime


class UndoMergeResponse(BaseModel):
    """Successful undo."""

    merge_log_id: int
    restored_client_ids: list[int]
    message: str


class MergeErrorResponse(BaseModel):
    """Structured failure body, returned under ``detail``."""

    error_kind: str
    message: str


class MergeLogEntryResponse(BaseModel):
    """One merge log entry for the audit view."""

    id: int
    organization_id: int
    primary_client_id: int
    secondary_client_ids: list[int]
    before_snapshots: dict[str, dict[str, Any]]
    field_resolutions: dict[str, Any] | None
    reparented_counts: dict[str, int] | None
    flattened_clients: int = 0
    performed_by: int
    performed_at: datetime
    undo_expires_at: datetime
    is_undone: bool
    undone_at: datetime | None
    undone_by: int | None

    class Config:
        from_attributes = True


class MergeLogListResponse(BaseModel):
    """A page of merge log entries, newest first, and the total across all pages."""

    entries: list[MergeLogEntryResponse]
    total: int
