"""Admin endpoints: users, projects, settings and the audit log."""

from typing import Annotated

from fastapi import APIRouter, Path, Query, Response, status

from timesheet_tracker.api.dependencies import CurrentActor, DbSession
from timesheet_tracker.api.schemas import (
    ActiveStatus,
    AuditLogResponse,
    ErrorResponse,
    ProjectCreate,
    ProjectResponse,
    ProjectUpdate,
    RoleName,
    SettingsResponse,
    SettingsUpdate,
    UserCreate,
    UserResponse,
    UserUpdate,
)
from timesheet_tracker.models import Project
from timesheet_tracker.services.admin_service import ProjectAdminService, UserAdminService
from timesheet_tracker.services.audit_service import AuditRecorder
from timesheet_tracker.services.settings_service import SettingsProvider

router = APIRouter(prefix="/admin", tags=["admin"])

ADMIN_ERRORS = {
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


def _project_response(project: Project, assigned_to: list[int]) -> ProjectResponse:
    resp = ProjectResponse.model_validate(project)
    resp.assigned_to = assigned_to
    return resp


# ============================================================================
# Users
# ============================================================================


@router.get("/users", response_model=list[UserResponse], responses=ADMIN_ERRORS)
async def list_users(
    db: DbSession,
    actor: CurrentActor,
    role: RoleName | None = None,
    status_filter: Annotated[ActiveStatus | None, Query(alias="status")] = None,
) -> list[UserResponse]:
    users = await UserAdminService(db).list_users(actor, role=role, status=status_filter)
    return [UserResponse.model_validate(u) for u in users]


@router.post(
    "/users",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ADMIN_ERRORS,
)
async def create_user(db: DbSession, actor: CurrentActor, payload: UserCreate) -> UserResponse:
    user = await UserAdminService(db).create_user(
        actor,
        name=payload.name,
        email=payload.email,
        password=payload.password,
        role=payload.role,
        department=payload.department,
        manager_id=payload.manager_id,
    )
    return UserResponse.model_validate(user)


@router.get("/users/{user_id}", response_model=UserResponse, responses=ADMIN_ERRORS)
async def get_user(
    db: DbSession,
    actor: CurrentActor,
    user_id: Annotated[int, Path(gt=0)],
) -> UserResponse:
    user = await UserAdminService(db).get_user(actor, user_id)
    return UserResponse.model_validate(user)


@router.put("/users/{user_id}", response_model=UserResponse, responses=ADMIN_ERRORS)
async def update_user(
    db: DbSession,
    actor: CurrentActor,
    user_id: Annotated[int, Path(gt=0)],
    payload: UserUpdate,
) -> UserResponse:
    """Partial update; only supplied fields change."""
    user = await UserAdminService(db).update_user(
        actor, user_id, payload.model_dump(exclude_unset=True)
    )
    return UserResponse.model_validate(user)


@router.delete("/users/{user_id}", response_model=UserResponse, responses=ADMIN_ERRORS)
async def deactivate_user(
    db: DbSession,
    actor: CurrentActor,
    user_id: Annotated[int, Path(gt=0)],
) -> UserResponse:
    """Deactivate a user. Accounts are never hard-deleted."""
    user = await UserAdminService(db).deactivate_user(actor, user_id)
    return UserResponse.model_validate(user)


# ============================================================================
# Projects
# ============================================================================


@router.get("/projects", response_model=list[ProjectResponse], responses=ADMIN_ERRORS)
async def list_projects(
    db: DbSession,
    actor: CurrentActor,
    status_filter: Annotated[ActiveStatus | None, Query(alias="status")] = None,
) -> list[ProjectResponse]:
    rows = await ProjectAdminService(db).list_projects(actor, status=status_filter)
    return [_project_response(project, assigned) for project, assigned in rows]


@router.post(
    "/projects",
    response_model=ProjectResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ADMIN_ERRORS,
)
async def create_project(
    db: DbSession,
    actor: CurrentActor,
    payload: ProjectCreate,
) -> ProjectResponse:
    project, assigned = await ProjectAdminService(db).create_project(
        actor,
        code=payload.code,
        name=payload.name,
        billing_rate=payload.billing_rate,
        description=payload.description,
        status=payload.status,
        assigned_to=payload.assigned_to,
    )
    return _project_response(project, assigned)


@router.get("/projects/{project_id}", response_model=ProjectResponse, responses=ADMIN_ERRORS)
async def get_project(
    db: DbSession,
    actor: CurrentActor,
    project_id: Annotated[int, Path(gt=0)],
) -> ProjectResponse:
    project, assigned = await ProjectAdminService(db).get_project(actor, project_id)
    return _project_response(project, assigned)


@router.put("/projects/{project_id}", response_model=ProjectResponse, responses=ADMIN_ERRORS)
async def update_project(
    db: DbSession,
    actor: CurrentActor,
    project_id: Annotated[int, Path(gt=0)],
    payload: ProjectUpdate,
) -> ProjectResponse:
    """Partial update; ``assigned_to`` replaces the whole assignment set."""
    project, assigned = await ProjectAdminService(db).update_project(
        actor, project_id, payload.model_dump(exclude_unset=True)
    )
    return _project_response(project, assigned)


@router.delete(
    "/projects/{project_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=ADMIN_ERRORS,
)
async def delete_project(
    db: DbSession,
    actor: CurrentActor,
    project_id: Annotated[int, Path(gt=0)],
) -> Response:
    await ProjectAdminService(db).delete_project(actor, project_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================================
# Settings and audit log
# ============================================================================


@router.get("/settings", response_model=SettingsResponse, responses=ADMIN_ERRORS)
async def get_settings(db: DbSession, actor: CurrentActor) -> SettingsResponse:
    provider = SettingsProvider(db)
    return SettingsResponse(settings=await provider.get_all_for(actor))


@router.put("/settings", response_model=SettingsResponse, responses=ADMIN_ERRORS)
async def update_settings(
    db: DbSession,
    actor: CurrentActor,
    payload: SettingsUpdate,
) -> SettingsResponse:
    values = await SettingsProvider(db).update(actor, payload.settings)
    return SettingsResponse(settings=values)


@router.get("/audit-logs", response_model=list[AuditLogResponse], responses=ADMIN_ERRORS)
async def list_audit_logs(
    db: DbSession,
    actor: CurrentActor,
    entity_type: str | None = None,
    entity_id: Annotated[int | None, Query(gt=0)] = None,
    user_id: Annotated[int | None, Query(gt=0)] = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
) -> list[AuditLogResponse]:
    """Browse the audit trail, newest first."""
    logs = await AuditRecorder(db).list_audit_logs(
        actor,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        limit=limit,
    )
    return [AuditLogResponse.model_validate(log) for log in logs]
