"""Client merge API endpoints."""

from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_audit_service, get_current_user, require_organization_context
from app.api.schemas.client_merge import (
    ClientMergeRequest,
    ClientMergeResponse,
    MergeErrorResponse,
    MergeLogEntryResponse,
    MergeLogListResponse,
    UndoMergeResponse,
)
from app.domain.errors import ClientMergeError
from app.domain.services.audit_service import AuditService
from app.domain.services.client_merge_service import ClientMergeService
from app.persistence.database import get_db
from app.persistence.models.organization import User

router = APIRouter()

ERROR_STATUS_CODES: dict[str, int] = {
    "invalid_request": status.HTTP_400_BAD_REQUEST,
    "not_found": status.HTTP_404_NOT_FOUND,
    "already_merged": status.HTTP_409_CONFLICT,
    "invalid_field_resolution": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "conflict": status.HTTP_409_CONFLICT,
    "already_undone": status.HTTP_409_CONFLICT,
    "undo_window_expired": status.HTTP_410_GONE,
    "storage_failure": status.HTTP_503_SERVICE_UNAVAILABLE,
}

_ERROR_RESPONSES = {
    code: {"model": MergeErrorResponse}
    for code in set(ERROR_STATUS_CODES.values())
}


def _to_http_error(error: ClientMergeError) -> HTTPException:
    """Convert a merge error into an HTTP error with a structured detail."""
    return HTTPException(
        status_code=ERROR_STATUS_CODES.get(error.error_kind, status.HTTP_400_BAD_REQUEST),
        detail=error.to_dict(),
    )


@router.post("", response_model=ClientMergeResponse, responses=_ERROR_RESPONSES)
async def execute_merge(
    request: ClientMergeRequest,
    background_tasks: BackgroundTasks,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    organization_id: Annotated[int, Depends(require_organization_context)],
    audit: Annotated[AuditService, Depends(get_audit_service)],
) -> ClientMergeResponse:
    """Merge secondary clients into a primary client."""
    user_id, user_email = current_user.id, current_user.email
    merge_service = ClientMergeService(db)

    try:
        result = await merge_service.execute_merge(
            organization_id=organization_id,
            primary_client_id=request.primary_client_id,
            secondary_client_ids=request.secondary_client_ids,
            field_resolutions=request.field_resolutions,
            performed_by=user_id,
        )
    except ClientMergeError as e:
        # Background tasks never run for error responses
        await audit.log_rejected(
            organization_id, user_id, user_email, "merge", e.error_kind, e.message,
        )
        raise _to_http_error(e)

    background_tasks.add_task(
        audit.log_client_merged,
        organization_id,
        user_id,
        user_email,
        result.merge_log_id,
        result.primary_client_id,
        result.secondary_client_ids,
        result.reparented_counts,
        result.flattened_clients,
    )
    return ClientMergeResponse(
        merge_log_id=result.merge_log_id,
        reparented_counts=result.reparented_counts,
        flattened_clients=result.flattened_clients,
        undo_expires_at=result.undo_expires_at,
    )


@router.post("/{merge_log_id}/undo", response_model=UndoMergeResponse, responses=_ERROR_RESPONSES)
async def undo_merge(
    merge_log_id: int,
    background_tasks: BackgroundTasks,
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_user)],
    organization_id: Annotated[int, Depends(require_organization_context)],
    audit: Annotated[AuditService, Depends(get_audit_service)],
) -> UndoMergeResponse:
    """Undo a merge: restore the secondary profiles.

    Appointments and other records moved during the merge stay with the
    primary, as do the primary's resolved fields.
    """
    user_id, user_email = current_user.id, current_user.email
    merge_service = ClientMergeService(db)

    try:
        result = await merge_service.undo_merge(
            organization_id=organization_id,
            merge_log_id=merge_log_id,
            requested_by=user_id,
        )
    except ClientMergeError as e:
        await audit.log_rejected(
            organization_id, user_id, user_email, "undo", e.error_kind, e.message, merge_log_id,
        )
        raise _to_http_error(e)

    background_tasks.add_task(
        audit.log_client_merge_undone,
        organization_id,
        user_id,
        user_email,
        result.merge_log_id,
        result.restored_client_ids,
    )
    return UndoMergeResponse(
        merge_log_id=result.merge_log_id,
        restored_client_ids=result.restored_client_ids,
        message=result.message,
    )


@router.get("", response_model=MergeLogListResponse)
async def list_merge_logs(
    db: Annotated[AsyncSession, Depends(get_db)],
    organization_id: Annotated[int, Depends(require_organization_context)],
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
) -> MergeLogListResponse:
    """List the organization's merges, newest first."""
    merge_service = ClientMergeService(db)
    entries = await merge_service.list_merge_logs(organization_id, skip=skip, limit=limit)
    return MergeLogListResponse(
        entries=[MergeLogEntryResponse.model_validate(entry) for entry in entries],
        total=await merge_service.count_merge_logs(organization_id),
    )


@router.get("/clients/{client_id}/history", response_model=MergeLogListResponse)
async def get_client_merge_history(
    client_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    organization_id: Annotated[int, Depends(require_organization_context)],
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
) -> MergeLogListResponse:
    """List merges a client took part in, newest first."""
    merge_service = ClientMergeService(db)
    entries = await merge_service.get_client_merge_history(
        organization_id, client_id, skip=skip, limit=limit
    )
    return MergeLogListResponse(
        entries=[MergeLogEntryResponse.model_validate(entry) for entry in entries],
        total=await merge_service.count_client_merge_history(organization_id, client_id),
    )


@router.get("/{merge_log_id}", response_model=MergeLogEntryResponse, responses=_ERROR_RESPONSES)
async def get_merge_log(
    merge_log_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    organization_id: Annotated[int, Depends(require_organization_context)],
) -> MergeLogEntryResponse:
    """Get one merge log entry."""
    try:
        entry = await ClientMergeService(db).get_merge_log(organization_id, merge_log_id)
    except ClientMergeError as e:
        raise _to_http_error(e)
    return MergeLogEntryResponse.model_validate(entry)
