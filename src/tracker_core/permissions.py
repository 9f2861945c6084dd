"""Role and membership based authorization.

Every guard in the API funnels through evaluate(), which takes a
PolicyRequest (who, on what, doing what) and returns a Decision. The
check_* helpers raise the matching PermissionDeniedError subclass so
routers only have to translate exceptions into HTTP responses.

Access to a project is resolved fresh on every call:
1. ADMIN → full access, no lookups
2. Temporary project grant → expired grants are a hard deny, otherwise
   temporary access with the grant's role
3. Member of the owning team → full access
4. Otherwise → denied
"""
import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol, Sequence
from uuid import UUID

from .models import ProjectMemberRole, UserRole, WorkItemType, utcnow

logger = logging.getLogger("tracker-core.permissions")


class DenyReason(str, enum.Enum):
    """Machine-readable reason attached to every denial."""

    UNAUTHENTICATED = "unauthenticated"
    USER_NOT_FOUND = "user_not_found"
    ACCESS_EXPIRED = "access_expired"
    PROJECT_ACCESS_DENIED = "project_access_denied"
    READ_ONLY_ACCESS = "read_only_access"
    MEMBERS_CANNOT_DELETE = "members_cannot_delete"
    VIEW_ONLY_TYPE = "view_only_type"
    STORY_CREATE_FORBIDDEN = "story_create_forbidden"
    DELETE_FORBIDDEN = "delete_forbidden"
    ADMIN_REQUIRED = "admin_required"
    SCRUM_MASTER_REQUIRED = "scrum_master_required"
    UNRECOGNIZED_ROLE = "unrecognized_role"
    VALIDATION_ERROR = "validation_error"


# ============================================================================
# Exceptions
# ============================================================================

class PermissionDeniedError(Exception):
    """Raised when a user lacks permission for an operation."""

    status_code = 403
    reason = DenyReason.UNRECOGNIZED_ROLE

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Unauthenticated(PermissionDeniedError):
    status_code = 401
    reason = DenyReason.UNAUTHENTICATED


class UserNotFound(PermissionDeniedError):
    status_code = 401
    reason = DenyReason.USER_NOT_FOUND


class AccessExpired(PermissionDeniedError):
    reason = DenyReason.ACCESS_EXPIRED


class ProjectAccessDenied(PermissionDeniedError):
    reason = DenyReason.PROJECT_ACCESS_DENIED


class ReadOnlyAccess(PermissionDeniedError):
    reason = DenyReason.READ_ONLY_ACCESS


class MembersCannotDelete(PermissionDeniedError):
    reason = DenyReason.MEMBERS_CANNOT_DELETE


class ViewOnlyType(PermissionDeniedError):
    reason = DenyReason.VIEW_ONLY_TYPE


class StoryCreateForbidden(PermissionDeniedError):
    reason = DenyReason.STORY_CREATE_FORBIDDEN


class DeleteForbidden(PermissionDeniedError):
    reason = DenyReason.DELETE_FORBIDDEN


class AdminRequired(PermissionDeniedError):
    reason = DenyReason.ADMIN_REQUIRED


class ScrumMasterRequired(PermissionDeniedError):
    reason = DenyReason.SCRUM_MASTER_REQUIRED


class UnrecognizedRole(PermissionDeniedError):
    reason = DenyReason.UNRECOGNIZED_ROLE


class ValidationError(PermissionDeniedError):
    """A required field is missing; reported as 400, not as a denial."""

    status_code = 400
    reason = DenyReason.VALIDATION_ERROR


ERRORS_BY_REASON: dict[DenyReason, type[PermissionDeniedError]] = {
    cls.reason: cls
    for cls in (
        Unauthenticated,
        UserNotFound,
        AccessExpired,
        ProjectAccessDenied,
        ReadOnlyAccess,
        MembersCannotDelete,
        ViewOnlyType,
        StoryCreateForbidden,
        DeleteForbidden,
        AdminRequired,
        ScrumMasterRequired,
        UnrecognizedRole,
        ValidationError,
    )
}


# ============================================================================
# Messages
# ============================================================================

MSG_NOT_LOGGED_IN = "Unauthorized: Not logged in"
MSG_USER_NOT_FOUND = "Unauthorized: User not found"
MSG_ADMIN_REQUIRED = "Forbidden: Admin access required"
MSG_SCRUM_MASTER_REQUIRED = "Forbidden: Scrum Master or Admin access required"
MSG_ACCESS_EXPIRED = "Your temporary project access has expired. Contact admin for access."
MSG_PROJECT_ACCESS_DENIED = (
    "Project access denied: You must be a team member or have project access "
    "to work on this project."
)
MSG_READ_ONLY = "Viewers have read-only access. Contact admin to upgrade your access level."
MSG_MEMBERS_CANNOT_DELETE = "Members cannot delete work items. Contact admin or scrum master."
MSG_VIEW_ONLY_TYPE = (
    "Members have VIEW-ONLY access to EPIC and FEATURE. Only Admin, Scrum Master, "
    "or Project Manager can create them."
)
MSG_STORY_CREATE_FORBIDDEN = (
    "Members cannot CREATE STORY. They can only update existing stories. Contact Admin, "
    "Scrum Master, or Project Manager to create stories."
)
MSG_UNRECOGNIZED_ROLE = "Access denied: Invalid user role"
MSG_SCRUM_MASTER_DELETE_TYPES = "Scrum Masters can only delete Stories, Tasks, and Bugs"
MSG_REGULAR_USER_DELETE = "Regular users cannot delete work items"
MSG_ENTITY_DELETE = "Only administrators can delete projects and teams"
MSG_TYPE_REQUIRED = "Work item type is required"
MSG_PROJECT_REQUIRED = "Project ID is required"


# ============================================================================
# Request descriptors
# ============================================================================

class Action(str, enum.Enum):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    MANAGE = "manage"


class ResourceKind(str, enum.Enum):
    """What a policy request is about."""

    PROJECT = "project"                # project-scoped read
    WORK_ITEM = "work_item"            # create/update/delete through the type gate
    WORK_ITEM_DELETION = "work_item_deletion"
    ENTITY_DELETION = "entity_deletion"  # whole projects and teams
    MANAGEMENT = "management"          # scrum master or admin operations
    ADMINISTRATION = "administration"  # admin-only operations


class AccessLevel(str, enum.Enum):
    NONE = "none"
    TEMPORARY = "temporary"
    FULL = "full"


@dataclass(frozen=True)
class ProjectAccess:
    """Resolved access of one user to one project."""

    level: AccessLevel
    role: Optional[ProjectMemberRole] = None
    expires_at: Optional[datetime] = None

    @property
    def granted(self) -> bool:
        return self.level != AccessLevel.NONE


NO_ACCESS = ProjectAccess(AccessLevel.NONE)
FULL_ACCESS = ProjectAccess(AccessLevel.FULL)


@dataclass(frozen=True)
class Subject:
    user_id: UUID
    role: UserRole

    @classmethod
    def from_user(cls, user) -> "Subject":
        return cls(user_id=user.id, role=user.role)


@dataclass(frozen=True)
class Resource:
    kind: ResourceKind
    project_id: Optional[UUID] = None
    access: Optional[ProjectAccess] = None
    work_item_type: Optional[WorkItemType] = None


@dataclass(frozen=True)
class PolicyRequest:
    subject: Subject
    resource: Resource
    action: Action


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[DenyReason] = None
    message: str = ""

    def raise_if_denied(self) -> None:
        if not self.allowed:
            raise ERRORS_BY_REASON[self.reason](self.message)


ALLOW = Decision(allowed=True)


def deny(reason: DenyReason, message: str) -> Decision:
    return Decision(allowed=False, reason=reason, message=message)


# ============================================================================
# Project access resolution
# ============================================================================

class AccessStore(Protocol):
    """Point lookups needed to resolve project access."""

    def get_project_members(self, project_id: UUID) -> Sequence: ...

    def get_team_members(self, team_id: UUID) -> Sequence: ...


def _as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def resolve_project_access(
    store: AccessStore,
    user,
    project,
    now: Optional[datetime] = None,
) -> ProjectAccess:
    """
    Determine how a user may reach a project.

    Args:
        store: Source of project and team membership rows
        user: User with id and role
        project: Project with id and team_id
        now: Evaluation time (defaults to current UTC time)

    Returns:
        ProjectAccess with level FULL, TEMPORARY or NONE

    Raises:
        AccessExpired: If the user's temporary grant has expired. This is
            raised before team membership is consulted.
    """
    if user.role == UserRole.ADMIN:
        return FULL_ACCESS

    now = _as_naive_utc(now) if now is not None else utcnow()

    grant = next(
        (m for m in store.get_project_members(project.id) if m.user_id == user.id),
        None,
    )
    if grant is not None:
        if grant.expires_at is not None and _as_naive_utc(grant.expires_at) < now:
            logger.warning(
                f"User {user.id} temporary access to project {project.id} expired at {grant.expires_at}"
            )
            raise AccessExpired(MSG_ACCESS_EXPIRED)
        logger.debug(f"User {user.id} has project member access to {project.id} as {grant.role.value}")
        return ProjectAccess(AccessLevel.TEMPORARY, role=grant.role, expires_at=grant.expires_at)

    if project.team_id is not None:
        team_members = store.get_team_members(project.team_id)
        if any(m.user_id == user.id for m in team_members):
            logger.debug(f"User {user.id} has team access to project {project.id} via team {project.team_id}")
            return FULL_ACCESS

    return NO_ACCESS


def require_project_access(
    store: AccessStore,
    user,
    project,
    now: Optional[datetime] = None,
) -> ProjectAccess:
    """
    Resolve project access and refuse users without any grant.

    Raises:
        AccessExpired: Temporary grant is past its expiry
        ProjectAccessDenied: No grant of any kind
    """
    access = resolve_project_access(store, user, project, now)
    evaluate(
        PolicyRequest(
            subject=Subject.from_user(user),
            resource=Resource(ResourceKind.PROJECT, project_id=project.id, access=access),
            action=Action.READ,
        )
    ).raise_if_denied()
    return access


# ============================================================================
# Decision table
# ============================================================================

def _evaluate_project(request: PolicyRequest) -> Decision:
    if request.subject.role == UserRole.ADMIN:
        return ALLOW
    access = request.resource.access
    if access is None or not access.granted:
        return deny(DenyReason.PROJECT_ACCESS_DENIED, MSG_PROJECT_ACCESS_DENIED)
    return ALLOW


def _missing_create_field(project_id, work_item_type) -> Optional[Decision]:
    if work_item_type is None:
        return deny(DenyReason.VALIDATION_ERROR, MSG_TYPE_REQUIRED)
    if project_id is None:
        return deny(DenyReason.VALIDATION_ERROR, MSG_PROJECT_REQUIRED)
    return None


def _evaluate_work_item(request: PolicyRequest) -> Decision:
    subject, resource, action = request.subject, request.resource, request.action

    if action == Action.CREATE:
        missing = _missing_create_field(resource.project_id, resource.work_item_type)
        if missing is not None:
            return missing

    if subject.role == UserRole.ADMIN:
        return ALLOW

    access = resource.access
    if resource.project_id is not None and (access is None or not access.granted):
        return deny(DenyReason.PROJECT_ACCESS_DENIED, MSG_PROJECT_ACCESS_DENIED)

    if subject.role in (UserRole.SCRUM_MASTER, UserRole.PROJECT_MANAGER):
        return ALLOW

    grant_role = access.role if access is not None and access.level == AccessLevel.TEMPORARY else None

    if grant_role == ProjectMemberRole.VIEWER:
        if action in (Action.CREATE, Action.UPDATE, Action.DELETE):
            return deny(DenyReason.READ_ONLY_ACCESS, MSG_READ_ONLY)
        return ALLOW

    if grant_role == ProjectMemberRole.MEMBER or subject.role == UserRole.USER:
        if action == Action.DELETE:
            return deny(DenyReason.MEMBERS_CANNOT_DELETE, MSG_MEMBERS_CANNOT_DELETE)
        if action in (Action.UPDATE, Action.READ):
            # Assignee restrictions, if any, belong to the caller
            return ALLOW
        if action == Action.CREATE:
            if resource.work_item_type in (WorkItemType.TASK, WorkItemType.BUG):
                return ALLOW
            if resource.work_item_type in (WorkItemType.EPIC, WorkItemType.FEATURE):
                return deny(DenyReason.VIEW_ONLY_TYPE, MSG_VIEW_ONLY_TYPE)
            if resource.work_item_type == WorkItemType.STORY:
                return deny(DenyReason.STORY_CREATE_FORBIDDEN, MSG_STORY_CREATE_FORBIDDEN)

    return deny(DenyReason.UNRECOGNIZED_ROLE, MSG_UNRECOGNIZED_ROLE)


SCRUM_MASTER_DELETABLE_TYPES = frozenset({WorkItemType.STORY, WorkItemType.TASK, WorkItemType.BUG})


def _evaluate_work_item_deletion(request: PolicyRequest) -> Decision:
    # Keyed on item type only; project and team membership are not consulted
    role = request.subject.role
    if role == UserRole.ADMIN:
        return ALLOW
    if role == UserRole.SCRUM_MASTER:
        if request.resource.work_item_type in SCRUM_MASTER_DELETABLE_TYPES:
            return ALLOW
        return deny(DenyReason.DELETE_FORBIDDEN, MSG_SCRUM_MASTER_DELETE_TYPES)
    return deny(DenyReason.DELETE_FORBIDDEN, MSG_REGULAR_USER_DELETE)


def _evaluate_entity_deletion(request: PolicyRequest) -> Decision:
    if request.subject.role == UserRole.ADMIN:
        return ALLOW
    return deny(DenyReason.ADMIN_REQUIRED, MSG_ENTITY_DELETE)


def _evaluate_management(request: PolicyRequest) -> Decision:
    if request.subject.role in (UserRole.ADMIN, UserRole.SCRUM_MASTER):
        return ALLOW
    return deny(DenyReason.SCRUM_MASTER_REQUIRED, MSG_SCRUM_MASTER_REQUIRED)


def _evaluate_administration(request: PolicyRequest) -> Decision:
    if request.subject.role == UserRole.ADMIN:
        return ALLOW
    return deny(DenyReason.ADMIN_REQUIRED, MSG_ADMIN_REQUIRED)


_EVALUATORS: dict[ResourceKind, Callable[[PolicyRequest], Decision]] = {
    ResourceKind.PROJECT: _evaluate_project,
    ResourceKind.WORK_ITEM: _evaluate_work_item,
    ResourceKind.WORK_ITEM_DELETION: _evaluate_work_item_deletion,
    ResourceKind.ENTITY_DELETION: _evaluate_entity_deletion,
    ResourceKind.MANAGEMENT: _evaluate_management,
    ResourceKind.ADMINISTRATION: _evaluate_administration,
}


def evaluate(request: PolicyRequest) -> Decision:
    """
    Evaluate a policy request against the permission table.

    Pure function: no lookups, no side effects. Project access must already
    be resolved into request.resource.access where it matters.
    """
    decision = _EVALUATORS[request.resource.kind](request)
    if decision.allowed:
        logger.debug(
            f"Allowed {request.action.value} on {request.resource.kind.value} "
            f"for user {request.subject.user_id} ({request.subject.role.value})"
        )
    else:
        logger.warning(
            f"Denied {request.action.value} on {request.resource.kind.value} "
            f"for user {request.subject.user_id} ({request.subject.role.value}): {decision.reason.value}"
        )
    return decision


# ============================================================================
# Guard helpers
# ============================================================================

def check_work_item_fields(
    project_id: Optional[UUID], work_item_type: Optional[WorkItemType]
) -> None:
    """
    Required fields for creating a work item, checked before identity.

    Raises:
        ValidationError: Missing type or project
    """
    missing = _missing_create_field(project_id, work_item_type)
    if missing is not None:
        missing.raise_if_denied()


def check_work_item_operation(
    user,
    action: Action,
    access: Optional[ProjectAccess],
    project_id: Optional[UUID] = None,
    work_item_type: Optional[WorkItemType] = None,
) -> None:
    """
    Work item type gate for create, update and delete.

    Raises:
        ValidationError: CREATE without a type or project
        PermissionDeniedError: Any denial from the decision table
    """
    evaluate(
        PolicyRequest(
            subject=Subject.from_user(user),
            resource=Resource(
                ResourceKind.WORK_ITEM,
                project_id=project_id,
                access=access,
                work_item_type=work_item_type,
            ),
            action=action,
        )
    ).raise_if_denied()


def check_work_item_delete(user, work_item_type: Optional[WorkItemType]) -> None:
    """
    Raises:
        DeleteForbidden: Unless ADMIN, or SCRUM_MASTER deleting a STORY, TASK or BUG
    """
    evaluate(
        PolicyRequest(
            subject=Subject.from_user(user),
            resource=Resource(ResourceKind.WORK_ITEM_DELETION, work_item_type=work_item_type),
            action=Action.DELETE,
        )
    ).raise_if_denied()


def check_entity_delete(user) -> None:
    """
    Raises:
        AdminRequired: Projects and teams may only be deleted by admins
    """
    evaluate(
        PolicyRequest(
            subject=Subject.from_user(user),
            resource=Resource(ResourceKind.ENTITY_DELETION),
            action=Action.DELETE,
        )
    ).raise_if_denied()


def check_scrum_master_or_admin(user) -> None:
    """
    Raises:
        ScrumMasterRequired: Unless ADMIN or SCRUM_MASTER
    """
    evaluate(
        PolicyRequest(
            subject=Subject.from_user(user),
            resource=Resource(ResourceKind.MANAGEMENT),
            action=Action.MANAGE,
        )
    ).raise_if_denied()


def check_admin(user) -> None:
    """
    Raises:
        AdminRequired: Unless ADMIN
    """
    evaluate(
        PolicyRequest(
            subject=Subject.from_user(user),
            resource=Resource(ResourceKind.ADMINISTRATION),
            action=Action.MANAGE,
        )
    ).raise_if_denied()
