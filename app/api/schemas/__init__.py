"""API schemas package."""

from app.api.schemas.client_merge import (
    ClientMergeRequest,
    ClientMergeResponse,
    MergeErrorResponse,
    MergeLogEntryResponse,
    MergeLogListResponse,
    UndoMergeResponse,
)

__all__ = [
    "ClientMergeRequest",
    "ClientMergeResponse",
    "MergeErrorResponse",
    "MergeLogEntryResponse",
    "MergeLogListResponse",
    "UndoMergeResponse",
]
