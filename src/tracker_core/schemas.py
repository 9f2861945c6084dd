"""Pydantic schemas for request/response validation."""
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from .models import (
    ProjectMemberRole,
    ProjectStatus,
    TeamRole,
    UserRole,
    WorkItemPriority,
    WorkItemStatus,
    WorkItemType,
)

# Public webmail providers are refused for account creation
PUBLIC_EMAIL_DOMAINS = frozenset({
    "gmail.com",
    "googlemail.com",
    "yahoo.com",
    "hotmail.com",
    "outlook.com",
    "live.com",
    "aol.com",
    "icloud.com",
    "protonmail.com",
})


def ensure_corporate_email(email: str) -> str:
    domain = email.rsplit("@", 1)[-1].lower()
    if domain in PUBLIC_EMAIL_DOMAINS:
        raise ValueError("Only corporate email addresses are allowed")
    return email.lower()


# ============================================================================
# Auth Schemas
# ============================================================================

class OtpRequest(BaseModel):
    """Credentials submitted to request a login code."""

    email: EmailStr
    password: str = Field(..., min_length=1)


class OtpVerifyRequest(OtpRequest):
    """Credentials plus the code received out of band."""

    otp: str = Field(..., min_length=1, max_length=10)


class OtpSentResponse(BaseModel):
    success: bool = True
    message: str = "OTP sent successfully"


# ============================================================================
# User Schemas
# ============================================================================

class UserResponse(BaseModel):
    """Schema for user responses. Never carries the password hash."""

    id: UUID
    username: str
    email: str
    full_name: Optional[str] = None
    role: UserRole
    is_active: bool
    avatar_url: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class LoginResponse(BaseModel):
    success: bool = True
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class UserCreate(BaseModel):
    """Schema for creating a user."""

    username: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    full_name: Optional[str] = Field(None, max_length=255)
    role: UserRole = UserRole.USER
    avatar_url: Optional[str] = Field(None, max_length=500)

    @field_validator("email")
    @classmethod
    def corporate_email(cls, value: str) -> str:
        return ensure_corporate_email(value)


class UserInvite(BaseModel):
    """Schema for inviting a user by email."""

    email: EmailStr
    username: Optional[str] = Field(None, min_length=2, max_length=100)
    role: UserRole = UserRole.USER

    @field_validator("email")
    @classmethod
    def corporate_email(cls, value: str) -> str:
        return ensure_corporate_email(value)


class UserUpdate(BaseModel):
    """Schema for updating a user's profile. Role changes are admin-only."""

    full_name: Optional[str] = Field(None, max_length=255)
    avatar_url: Optional[str] = Field(None, max_length=500)
    password: Optional[str] = Field(None, min_length=8, max_length=128)
    role: Optional[UserRole] = None


class UserStatusUpdate(BaseModel):
    is_active: bool


class UserListResponse(BaseModel):
    """Schema for paginated user list."""

    items: list[UserResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


# ============================================================================
# Team Schemas
# ============================================================================

class TeamBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None


class TeamCreate(TeamBase):
    """Schema for creating a team."""

    pass


class TeamResponse(TeamBase):
    id: UUID
    created_by_user_id: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class TeamMemberCreate(BaseModel):
    """Schema for adding a user to a team."""

    user_id: UUID
    role: TeamRole = TeamRole.MEMBER


class TeamMemberResponse(BaseModel):
    id: UUID
    team_id: UUID
    user_id: UUID
    role: TeamRole
    joined_at: datetime
    user: Optional[UserResponse] = None

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


# ============================================================================
# Project Schemas
# ============================================================================

class ProjectBase(BaseModel):
    """Base schema for project fields."""

    key: str = Field(..., min_length=2, max_length=10, pattern=r"^[A-Z0-9]{2,10}$")
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = Field(None, max_length=100)
    status: ProjectStatus = ProjectStatus.ACTIVE
    team_id: Optional[UUID] = None
    start_date: Optional[datetime] = None
    target_date: Optional[datetime] = None


class ProjectCreate(ProjectBase):
    """Schema for creating a new project."""

    pass


class ProjectUpdate(BaseModel):
    """Schema for updating a project. Explicit nulls are applied (e.g. unassigning the team)."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = Field(None, max_length=100)
    status: Optional[ProjectStatus] = None
    team_id: Optional[UUID] = None
    start_date: Optional[datetime] = None
    target_date: Optional[datetime] = None


class ProjectResponse(ProjectBase):
    """Schema for project responses."""

    id: UUID
    created_by_user_id: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


# ============================================================================
# Project Member Schemas
# ============================================================================

class ProjectMemberCreate(BaseModel):
    """Schema for granting temporary project access."""

    user_id: UUID
    role: ProjectMemberRole = ProjectMemberRole.VIEWER
    expires_at: Optional[datetime] = None


class ProjectMemberResponse(BaseModel):
    id: UUID
    project_id: UUID
    user_id: UUID
    role: ProjectMemberRole
    expires_at: Optional[datetime] = None
    added_by_user_id: Optional[UUID] = None
    joined_at: datetime
    user: Optional[UserResponse] = None

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


# ============================================================================
# Work Item Schemas
# ============================================================================

class WorkItemCreate(BaseModel):
    """Schema for creating a work item.

    type and project_id are optional here so that a missing value is
    reported by the type gate as a 400 rather than a schema error.
    """

    type: Optional[WorkItemType] = None
    project_id: Optional[UUID] = None
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    status: WorkItemStatus = WorkItemStatus.TODO
    priority: WorkItemPriority = WorkItemPriority.MEDIUM
    parent_id: Optional[UUID] = None
    assignee_id: Optional[UUID] = None
    external_id: Optional[str] = Field(None, max_length=50)
    estimate: Optional[int] = Field(None, ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class WorkItemUpdate(BaseModel):
    """Schema for updating a work item. Explicit nulls are applied."""

    type: Optional[WorkItemType] = None
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    status: Optional[WorkItemStatus] = None
    priority: Optional[WorkItemPriority] = None
    parent_id: Optional[UUID] = None
    assignee_id: Optional[UUID] = None
    external_id: Optional[str] = Field(None, max_length=50)
    estimate: Optional[int] = Field(None, ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class WorkItemResponse(BaseModel):
    id: UUID
    project_id: UUID
    parent_id: Optional[UUID] = None
    type: WorkItemType
    external_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    status: WorkItemStatus
    priority: WorkItemPriority
    estimate: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    assignee_id: Optional[UUID] = None
    reporter_id: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


# ============================================================================
# Roadmap Template Schemas
# ============================================================================

class RoadmapTemplateBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = ""
    streams: list[str] = Field(default_factory=list)
    projects: list[Any] = Field(default_factory=list)


class RoadmapTemplateCreate(RoadmapTemplateBase):
    pass


class RoadmapTemplateUpdate(RoadmapTemplateBase):
    pass


class RoadmapTemplateResponse(RoadmapTemplateBase):
    id: UUID

    model_config = ConfigDict(from_attributes=True)
