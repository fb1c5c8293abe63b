"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, computed_field, field_validator

from timesheet_tracker.services.state_machine import EntryStateMachine

RoleName = Literal["employee", "manager", "admin"]
ActiveStatus = Literal["active", "inactive"]
EntryStatusName = Literal["draft", "submitted", "approved", "rejected"]


# ============================================================================
# Common
# ============================================================================


class FieldErrorResponse(BaseModel):
    field: str
    message: str


class ErrorResponse(BaseModel):
    """Error body returned for every failed request."""

    detail: str
    code: str
    fields: list[FieldErrorResponse] | None = None
    current_status: str | None = None


class MessageResponse(BaseModel):
    message: str


# ============================================================================
# Auth schemas
# ============================================================================


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class UserResponse(BaseModel):
    """Schema for user response. Never includes the password hash."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    role: str
    department: str | None = None
    manager_id: int | None = None
    status: str
    created_at: datetime
    updated_at: datetime


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: UserResponse


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=6)


# ============================================================================
# Timesheet entry schemas
# ============================================================================


class EntryCreate(BaseModel):
    """Schema for creating a new timesheet entry in draft status."""

    project_id: int = Field(gt=0)
    entry_date: date
    hours: Decimal = Field(ge=Decimal("0.25"), le=Decimal("24"), decimal_places=2)
    description: str = Field(min_length=1)


class EntryUpdate(BaseModel):
    """Schema for editing a draft or rejected entry. All fields optional."""

    project_id: int | None = Field(default=None, gt=0)
    hours: Decimal | None = Field(
        default=None, ge=Decimal("0.25"), le=Decimal("24"), decimal_places=2
    )
    description: str | None = Field(default=None, min_length=1)


class EntryResponse(BaseModel):
    """Schema for timesheet entry response."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    project_id: int
    entry_date: date
    hours: Decimal
    description: str
    status: str
    submitted_at: datetime | None = None
    reviewed_at: datetime | None = None
    reviewed_by: int | None = None
    reviewer_comments: str | None = None
    created_at: datetime
    updated_at: datetime

    # Populated from joins on list endpoints
    project_code: str | None = None
    project_name: str | None = None
    employee_name: str | None = None

    @computed_field
    @property
    def allowed_actions(self) -> list[str]:
        """Lifecycle actions legal from the current status, before authorization."""
        return EntryStateMachine.allowed_actions(self.status)


class EntryListResponse(BaseModel):
    items: list[EntryResponse]
    total: int


class AssignedProjectResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    name: str
    description: str | None = None


# ============================================================================
# Approval schemas
# ============================================================================


class ApproveRequest(BaseModel):
    comments: str | None = Field(default=None, max_length=2000)


class RejectRequest(BaseModel):
    comments: str = Field(min_length=1, max_length=2000)

    @field_validator("comments")
    @classmethod
    def comments_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Comments are required to reject")
        return value.strip()


class ApprovalLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    entry_id: int
    manager_id: int
    action: str
    comments: str | None = None
    action_at: datetime


class TeamMemberResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    department: str | None = None
    role: str


# ============================================================================
# Admin schemas
# ============================================================================


class UserCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(min_length=6)
    role: RoleName = "employee"
    department: str | None = Field(default=None, max_length=255)
    manager_id: int | None = Field(default=None, gt=0)


class UserUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    email: EmailStr | None = None
    role: RoleName | None = None
    department: str | None = Field(default=None, max_length=255)
    manager_id: int | None = Field(default=None, gt=0)
    status: ActiveStatus | None = None


class ProjectCreate(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    billing_rate: Decimal = Field(ge=0, decimal_places=2)
    status: ActiveStatus = "active"
    assigned_to: list[int] = Field(default_factory=list)


class ProjectUpdate(BaseModel):
    code: str | None = Field(default=None, min_length=1, max_length=50)
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    billing_rate: Decimal | None = Field(default=None, ge=0, decimal_places=2)
    status: ActiveStatus | None = None
    assigned_to: list[int] | None = None


class ProjectResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    name: str
    description: str | None = None
    billing_rate: Decimal
    status: str
    created_at: datetime
    updated_at: datetime
    assigned_to: list[int] = Field(default_factory=list)


class SettingsUpdate(BaseModel):
    settings: dict[str, Any] = Field(min_length=1)


class SettingsResponse(BaseModel):
    settings: dict[str, str]


class AuditLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int | None = None
    action: str
    entity_type: str | None = None
    entity_id: int | None = None
    old_values: dict[str, Any] | None = None
    new_values: dict[str, Any] | None = None
    ip_address: str | None = None
    created_at: datetime
