"""Timesheet entry endpoints for the entry owner."""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Path, Query, Response, status

from timesheet_tracker.api.dependencies import CurrentActor, DbSession
from timesheet_tracker.api.schemas import (
    AssignedProjectResponse,
    EntryCreate,
    EntryListResponse,
    EntryResponse,
    EntryStatusName,
    EntryUpdate,
    ErrorResponse,
)
from timesheet_tracker.services.entry_service import EntryLifecycleService

router = APIRouter(prefix="/timesheets", tags=["timesheets"])

ENTRY_ERRORS = {
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


# ============================================================================
# Queries
# ============================================================================


@router.get("/entries", response_model=EntryListResponse)
async def list_entries(
    db: DbSession,
    actor: CurrentActor,
    status_filter: Annotated[EntryStatusName | None, Query(alias="status")] = None,
    from_date: date | None = None,
    to_date: date | None = None,
) -> EntryListResponse:
    """List the caller's own entries, newest date first."""
    rows = await EntryLifecycleService(db).list_entries(
        actor, status=status_filter, from_date=from_date, to_date=to_date
    )

    items = []
    for entry, code, name in rows:
        resp = EntryResponse.model_validate(entry)
        resp.project_code = code
        resp.project_name = name
        items.append(resp)

    return EntryListResponse(items=items, total=len(items))


@router.get(
    "/entries/{entry_id}",
    response_model=EntryResponse,
    responses=ENTRY_ERRORS,
)
async def get_entry(
    db: DbSession,
    actor: CurrentActor,
    entry_id: Annotated[int, Path(gt=0)],
) -> EntryResponse:
    entry = await EntryLifecycleService(db).get_entry(actor, entry_id)
    return EntryResponse.model_validate(entry)


@router.get("/projects", response_model=list[AssignedProjectResponse])
async def list_assigned_projects(
    db: DbSession,
    actor: CurrentActor,
) -> list[AssignedProjectResponse]:
    """Active projects the caller may log time against."""
    projects = await EntryLifecycleService(db).list_assigned_projects(actor)
    return [AssignedProjectResponse.model_validate(p) for p in projects]


# ============================================================================
# Lifecycle
# ============================================================================


@router.post(
    "/entries",
    response_model=EntryResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ENTRY_ERRORS,
)
async def create_entry(
    db: DbSession,
    actor: CurrentActor,
    payload: EntryCreate,
) -> EntryResponse:
    """Create a new entry in draft status."""
    entry = await EntryLifecycleService(db).create_entry(
        actor,
        project_id=payload.project_id,
        entry_date=payload.entry_date,
        hours=payload.hours,
        description=payload.description,
    )
    return EntryResponse.model_validate(entry)


@router.put(
    "/entries/{entry_id}",
    response_model=EntryResponse,
    responses=ENTRY_ERRORS,
)
async def update_entry(
    db: DbSession,
    actor: CurrentActor,
    entry_id: Annotated[int, Path(gt=0)],
    payload: EntryUpdate,
) -> EntryResponse:
    """Edit a draft or rejected entry."""
    entry = await EntryLifecycleService(db).update_entry(
        actor,
        entry_id,
        project_id=payload.project_id,
        hours=payload.hours,
        description=payload.description,
    )
    return EntryResponse.model_validate(entry)


@router.post(
    "/entries/{entry_id}/submit",
    response_model=EntryResponse,
    responses=ENTRY_ERRORS,
)
async def submit_entry(
    db: DbSession,
    actor: CurrentActor,
    entry_id: Annotated[int, Path(gt=0)],
) -> EntryResponse:
    """Submit a draft or rejected entry for approval."""
    entry = await EntryLifecycleService(db).submit_entry(actor, entry_id)
    return EntryResponse.model_validate(entry)


@router.delete(
    "/entries/{entry_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=ENTRY_ERRORS,
)
async def delete_entry(
    db: DbSession,
    actor: CurrentActor,
    entry_id: Annotated[int, Path(gt=0)],
) -> Response:
    """Delete a draft entry."""
    await EntryLifecycleService(db).delete_entry(actor, entry_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
