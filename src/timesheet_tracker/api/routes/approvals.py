"""Review endpoints for managers and admins."""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Body, Path, Query

from timesheet_tracker.api.dependencies import CurrentActor, DbSession
from timesheet_tracker.api.schemas import (
    ApprovalLogResponse,
    ApproveRequest,
    EntryListResponse,
    EntryResponse,
    EntryStatusName,
    ErrorResponse,
    RejectRequest,
    TeamMemberResponse,
)
from timesheet_tracker.models import TimesheetEntry
from timesheet_tracker.services.entry_service import EntryLifecycleService
from timesheet_tracker.services.review_service import ReviewService

router = APIRouter(prefix="/approvals", tags=["approvals"])

REVIEW_ERRORS = {
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


def _entry_list(rows: list[tuple[TimesheetEntry, str, str, str]]) -> EntryListResponse:
    items = []
    for entry, code, project_name, employee_name in rows:
        resp = EntryResponse.model_validate(entry)
        resp.project_code = code
        resp.project_name = project_name
        resp.employee_name = employee_name
        items.append(resp)
    return EntryListResponse(items=items, total=len(items))


@router.get("/pending", response_model=EntryListResponse, responses={403: {"model": ErrorResponse}})
async def pending_entries(db: DbSession, actor: CurrentActor) -> EntryListResponse:
    """Submitted entries awaiting the caller's decision."""
    rows = await ReviewService(db).pending_entries(actor)
    return _entry_list(rows)


@router.get(
    "/team-entries",
    response_model=EntryListResponse,
    responses={403: {"model": ErrorResponse}},
)
async def team_entries(
    db: DbSession,
    actor: CurrentActor,
    status_filter: Annotated[EntryStatusName | None, Query(alias="status")] = None,
    from_date: date | None = None,
    to_date: date | None = None,
    employee_id: Annotated[int | None, Query(gt=0)] = None,
) -> EntryListResponse:
    rows = await ReviewService(db).team_entries(
        actor,
        status=status_filter,
        from_date=from_date,
        to_date=to_date,
        employee_id=employee_id,
    )
    return _entry_list(rows)


@router.get(
    "/team",
    response_model=list[TeamMemberResponse],
    responses={403: {"model": ErrorResponse}},
)
async def team_members(db: DbSession, actor: CurrentActor) -> list[TeamMemberResponse]:
    members = await ReviewService(db).team_members(actor)
    return [TeamMemberResponse.model_validate(m) for m in members]


@router.post(
    "/entries/{entry_id}/approve",
    response_model=EntryResponse,
    responses=REVIEW_ERRORS,
)
async def approve_entry(
    db: DbSession,
    actor: CurrentActor,
    entry_id: Annotated[int, Path(gt=0)],
    payload: Annotated[ApproveRequest | None, Body()] = None,
) -> EntryResponse:
    """Approve a submitted entry."""
    comments = payload.comments if payload else None
    entry = await EntryLifecycleService(db).approve_entry(actor, entry_id, comments)
    return EntryResponse.model_validate(entry)


@router.post(
    "/entries/{entry_id}/reject",
    response_model=EntryResponse,
    responses=REVIEW_ERRORS,
)
async def reject_entry(
    db: DbSession,
    actor: CurrentActor,
    entry_id: Annotated[int, Path(gt=0)],
    payload: RejectRequest,
) -> EntryResponse:
    """Reject a submitted entry. Comments are required."""
    entry = await EntryLifecycleService(db).reject_entry(actor, entry_id, payload.comments)
    return EntryResponse.model_validate(entry)


@router.get(
    "/entries/{entry_id}/history",
    response_model=list[ApprovalLogResponse],
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def approval_history(
    db: DbSession,
    actor: CurrentActor,
    entry_id: Annotated[int, Path(gt=0)],
) -> list[ApprovalLogResponse]:
    logs = await ReviewService(db).approval_history(actor, entry_id)
    return [ApprovalLogResponse.model_validate(log) for log in logs]
