"""Request-scoped guards shared by the API routers.

Each guard resolves the caller, evaluates the permission table and either
returns (letting the handler run) or raises an HTTPException. Guards run
before any write, so a denied request never mutates anything.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from ..crud import Store
from ..hierarchy_validation import HierarchyValidationError
from ..models import Project, User
from ..permissions import (
    MSG_NOT_LOGGED_IN,
    MSG_USER_NOT_FOUND,
    PermissionDeniedError,
    ProjectAccess,
    Unauthenticated,
    UserNotFound,
    check_admin,
    check_entity_delete,
    check_scrum_master_or_admin,
    require_project_access,
)
from .database import get_db
from .security import decode_access_token

logger = logging.getLogger("tracker-core.dependencies")


def permission_error_to_http(e: PermissionDeniedError) -> HTTPException:
    """Convert PermissionDeniedError to HTTPException with its status and reason."""
    return HTTPException(
        status_code=e.status_code,
        detail={"error": e.reason.value, "message": e.message},
    )


def hierarchy_error_to_http(e: HierarchyValidationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"error": e.reason, "message": e.message},
    )


@contextmanager
def guard_boundary(name: str) -> Iterator[None]:
    """
    Translate guard failures into HTTP errors.

    Domain denials keep their status; anything unexpected is logged and
    reported as a bare 500.
    """
    try:
        yield
    except PermissionDeniedError as e:
        raise permission_error_to_http(e) from e
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error in {name}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error",
        ) from e


def get_store(db: Session = Depends(get_db)) -> Store:
    return Store(db)


def get_current_user_id(authorization: Optional[str] = Header(None)) -> Optional[UUID]:
    """Extract the user ID from an `Authorization: Bearer <token>` header."""
    if not authorization or not authorization.startswith("Bearer "):
        return None
    return decode_access_token(authorization[len("Bearer "):])


def get_current_user(
    user_id: Optional[UUID] = Depends(get_current_user_id),
    store: Store = Depends(get_store),
) -> User:
    """
    Resolve the authenticated user.

    Raises:
        HTTPException 401: No identity on the request, or the identity no
            longer maps to an active user
    """
    return load_current_user(store, user_id)


def load_current_user(store: Store, user_id: Optional[UUID]) -> User:
    """Look up the caller by ID; 401 when absent, unknown or inactive."""
    with guard_boundary("identity lookup"):
        if user_id is None:
            raise Unauthenticated(MSG_NOT_LOGGED_IN)
        user = store.get_user(user_id)
        if user is None or not user.is_active:
            raise UserNotFound(MSG_USER_NOT_FOUND)
        return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    with guard_boundary("admin guard"):
        check_admin(user)
    return user


def require_scrum_master_or_admin(user: User = Depends(get_current_user)) -> User:
    with guard_boundary("scrum master guard"):
        check_scrum_master_or_admin(user)
    return user


def require_entity_delete(user: User = Depends(get_current_user)) -> User:
    with guard_boundary("entity deletion guard"):
        check_entity_delete(user)
    return user


@dataclass
class ProjectContext:
    """A project the current user may reach, with how they reach it."""

    project: Project
    access: ProjectAccess
    user: User


def resolve_project_context(store: Store, user: User, project_id: UUID) -> ProjectContext:
    """
    Load a project and resolve the user's access to it.

    Raises:
        HTTPException 404: Project does not exist
        HTTPException 403: Access expired or no grant of any kind
    """
    with guard_boundary("project access guard"):
        project = store.get_project(project_id)
        if project is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
        access = require_project_access(store, user, project)
        return ProjectContext(project=project, access=access, user=user)


def require_project_read(
    project_id: UUID,
    user: User = Depends(get_current_user),
    store: Store = Depends(get_store),
) -> ProjectContext:
    """Guard for project-scoped reads keyed by the `project_id` path parameter."""
    return resolve_project_context(store, user, project_id)
