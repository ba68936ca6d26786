"""Pydantic schemas for request/response validation."""
from datetime import datetime, timezone
from typing import Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator

from .models import (
    ProjectStatus,
    Priority,
    IssueType,
    IssueStatus,
)

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


def _to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Store timestamps as naive UTC, matching the model defaults."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# ============================================================================
# User / Auth Schemas
# ============================================================================

class UserSummary(BaseModel):
    """Lightweight user reference embedded in other responses."""

    id: UUID
    name: str
    email: str

    model_config = ConfigDict(from_attributes=True)


class UserResponse(UserSummary):
    """Schema for user responses."""

    created_at: datetime
    updated_at: datetime


class RegisterRequest(BaseModel):
    """Schema for registering a new account."""

    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=6, max_length=128)

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Name is required")
        return value

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class LoginRequest(BaseModel):
    """Schema for logging in with email and password."""

    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    """Schema returned after register/login."""

    user: UserResponse
    token: str
    token_type: str = "bearer"


class ProfileUpdate(BaseModel):
    """Schema for updating the caller's profile."""

    name: str = Field(..., min_length=1, max_length=255)

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Name is required")
        return value


class ProfileResponse(BaseModel):
    user: UserResponse


class PasswordChange(BaseModel):
    """Schema for changing the caller's password."""

    current_password: str
    new_password: str = Field(..., min_length=6, max_length=128)


class ForgotPasswordRequest(BaseModel):
    """Schema for requesting a password reset link."""

    email: str = Field(..., min_length=1)


class ForgotPasswordResponse(BaseModel):
    """Response for forgot-password; token fields are only set in development."""

    message: str
    reset_token: Optional[str] = None
    reset_url: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    """Schema for completing a password reset."""

    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=6, max_length=128)


class MessageResponse(BaseModel):
    """Generic acknowledgement."""

    message: str


# ============================================================================
# Project Schemas
# ============================================================================

class ProjectBase(BaseModel):
    """Base schema for project fields."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    status: ProjectStatus = ProjectStatus.PLANNING
    priority: Priority = Priority.MEDIUM
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    lead_id: Optional[UUID] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_dates(cls, value):
        return _to_naive_utc(value)


class ProjectCreate(ProjectBase):
    """Schema for creating a new project. The caller becomes the owner."""

    members: list[UUID] = Field(default_factory=list, description="Initial member user IDs")


class ProjectUpdate(BaseModel):
    """Schema for updating a project.

    Setting ``members`` replaces the member set and is reserved for the owner.
    """

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    status: Optional[ProjectStatus] = None
    priority: Optional[Priority] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    lead_id: Optional[UUID] = None
    members: Optional[list[UUID]] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def normalize_dates(cls, value):
        return _to_naive_utc(value)


class ProjectMemberResponse(BaseModel):
    """Schema for project member responses."""

    user_id: UUID
    user: UserSummary
    joined_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProjectResponse(ProjectBase):
    """Schema for project responses."""

    id: UUID
    created_by: UUID
    creator: UserSummary
    lead: Optional[UserSummary] = None
    members: list[ProjectMemberResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class ProjectSummary(BaseModel):
    """Lightweight project reference embedded in issue responses."""

    id: UUID
    name: str

    model_config = ConfigDict(from_attributes=True)


class InviteById(BaseModel):
    """Invite an existing user by id."""

    user_id: UUID


class InviteByEmail(BaseModel):
    """Invite an existing user by email address."""

    email: str


InviteTarget = Union[InviteById, InviteByEmail]


class ProjectInvite(BaseModel):
    """Schema for inviting a user; exactly one of user_id or email is used.

    When both are sent, email wins.
    """

    user_id: Optional[UUID] = None
    email: Optional[str] = None

    @model_validator(mode="after")
    def require_target(self) -> "ProjectInvite":
        if not self.email and self.user_id is None:
            raise ValueError("user_id or email required")
        return self

    def target(self) -> InviteTarget:
        if self.email:
            return InviteByEmail(email=self.email.strip().lower())
        return InviteById(user_id=self.user_id)


class DashboardStats(BaseModel):
    """Aggregate counters across the caller's projects."""

    total_projects: int
    completed_projects: int = Field(description="Projects with at least one issue where every issue is done")
    my_tasks: int = Field(description="Issues assigned to the caller")
    overdue: int = Field(description="Issues past due date and not done")
    in_progress: int
    total_issues: int


# ============================================================================
# Issue Schemas
# ============================================================================

class IssueCreate(BaseModel):
    """Schema for creating a new issue. Order is assigned by appending to the column."""

    project_id: UUID = Field(..., description="Owning project UUID")
    title: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    type: IssueType = IssueType.BUG
    status: IssueStatus = IssueStatus.OPEN
    priority: Priority = Priority.MEDIUM
    assignee_id: Optional[UUID] = None
    due_date: Optional[datetime] = None

    @field_validator("due_date")
    @classmethod
    def normalize_due_date(cls, value):
        return _to_naive_utc(value)

    @field_validator("assignee_id", mode="before")
    @classmethod
    def blank_assignee(cls, value):
        return None if value == "" else value


class IssueUpdate(BaseModel):
    """Schema for updating an issue (PUT and PATCH).

    Only fields present in the request are applied. An explicit null (or
    empty string) assignee unassigns the issue. Changing status moves the
    issue to the end of the destination column.
    """

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    type: Optional[IssueType] = None
    status: Optional[IssueStatus] = None
    priority: Optional[Priority] = None
    assignee_id: Optional[UUID] = None
    due_date: Optional[datetime] = None

    @field_validator("due_date")
    @classmethod
    def normalize_due_date(cls, value):
        return _to_naive_utc(value)

    @field_validator("assignee_id", mode="before")
    @classmethod
    def blank_assignee(cls, value):
        return None if value == "" else value


class IssueReorder(BaseModel):
    """Schema for moving an issue on the Kanban board.

    Both fields are optional: status defaults to the current column and
    order defaults to the end of the destination column.
    """

    status: Optional[IssueStatus] = None
    order: Optional[int] = Field(None, ge=0)


class IssueResponse(BaseModel):
    """Schema for full issue responses."""

    id: UUID
    title: str
    description: str
    type: IssueType
    status: IssueStatus
    priority: Priority
    order: int
    due_date: Optional[datetime] = None
    project_id: UUID
    project: ProjectSummary
    created_by: UUID
    creator: UserSummary
    assignee_id: Optional[UUID] = None
    assignee: Optional[UserSummary] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class IssuePage(BaseModel):
    """Schema for paginated issue views (assigned / created)."""

    total: int
    page: int
    limit: int
    issues: list[IssueResponse]


# ============================================================================
# Comment Schemas
# ============================================================================

class CommentBody(BaseModel):
    """Schema for posting a comment under /issues/{id}/comments."""

    content: str = Field(..., min_length=1)
    parent_id: Optional[UUID] = None


class CommentCreate(CommentBody):
    """Schema for posting a comment under /comments."""

    issue_id: UUID


class CommentResponse(BaseModel):
    """Schema for comment responses."""

    id: UUID
    issue_id: UUID
    parent_id: Optional[UUID] = None
    content: str
    author_id: UUID
    author: UserSummary
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
