"""Authentication endpoints."""

from fastapi import APIRouter, status

from timesheet_tracker.api.dependencies import ClientIp, CurrentActor, DbSession
from timesheet_tracker.api.schemas import (
    ChangePasswordRequest,
    ErrorResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    UserResponse,
)
from timesheet_tracker.services.auth_service import AuthService

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={401: {"model": ErrorResponse}},
)
async def login(db: DbSession, client_ip: ClientIp, payload: LoginRequest) -> LoginResponse:
    """Exchange email and password for a bearer token."""
    result = await AuthService(db).login(payload.email, payload.password, ip_address=client_ip)
    return LoginResponse(
        access_token=result.token,
        expires_at=result.expires_at,
        user=UserResponse.model_validate(result.user),
    )


@router.get(
    "/me",
    response_model=UserResponse,
    responses={401: {"model": ErrorResponse}},
)
async def me(db: DbSession, actor: CurrentActor) -> UserResponse:
    """Profile of the authenticated user."""
    user = await AuthService(db).profile(actor)
    return UserResponse.model_validate(user)


@router.post(
    "/change-password",
    response_model=MessageResponse,
    responses={401: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def change_password(
    db: DbSession,
    actor: CurrentActor,
    payload: ChangePasswordRequest,
) -> MessageResponse:
    await AuthService(db).change_password(actor, payload.current_password, payload.new_password)
    return MessageResponse(message="Password changed")


@router.post(
    "/logout",
    response_model=MessageResponse,
    status_code=status.HTTP_200_OK,
)
async def logout(db: DbSession, actor: CurrentActor, client_ip: ClientIp) -> MessageResponse:
    await AuthService(db).logout(actor, ip_address=client_ip)
    return MessageResponse(message="Logged out")
