"""Users API endpoints."""
import logging
import secrets
from math import ceil
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from tracker_core import crud, models, schemas
from tracker_core.permissions import check_admin

from ..database import get_db
from ..dependencies import (
    get_current_user,
    guard_boundary,
    require_admin,
    require_scrum_master_or_admin,
)
from ..security import hash_password

logger = logging.getLogger("tracker-core.users")

router = APIRouter(tags=["users"])


def _get_user_or_404(db: Session, user_id: UUID) -> models.User:
    user = crud.get_user_by_id(db, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("/", response_model=schemas.UserListResponse)
def list_users(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    search: Optional[str] = Query(None, description="Match username, email or name"),
    role: Optional[models.UserRole] = Query(None, description="Filter by role"),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """
    List users with pagination.
    """
    skip = (page - 1) * page_size
    users, total = crud.list_users(db, skip=skip, limit=page_size, search=search, role=role)

    return schemas.UserListResponse(
        items=[schemas.UserResponse.model_validate(u) for u in users],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=ceil(total / page_size) if total > 0 else 0,
    )


@router.post("/", response_model=schemas.UserResponse, status_code=201)
def create_user(
    user: schemas.UserCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_admin),
):
    """
    Create a user (admin only).

    - **email**: Corporate email; public webmail domains are rejected
    - **role**: System-wide role
    """
    if crud.get_user_by_email(db, user.email):
        raise HTTPException(status_code=409, detail="User with this email already exists")
    if crud.get_user_by_username(db, user.username):
        raise HTTPException(status_code=409, detail="Username is already taken")

    result = crud.create_user(
        db,
        username=user.username,
        email=user.email,
        password_hash=hash_password(user.password),
        full_name=user.full_name,
        role=user.role,
        avatar_url=user.avatar_url,
    )
    logger.info(f"User {current_user.id} created user {result.id} ({result.email})")
    return result


@router.post("/invite", response_model=schemas.UserResponse, status_code=201)
def invite_user(
    invite: schemas.UserInvite,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_scrum_master_or_admin),
):
    """
    Invite a user by email, creating the account if it does not exist.

    Invited accounts get a random password; existing accounts are returned unchanged.
    """
    existing = crud.get_user_by_email(db, invite.email)
    if existing:
        return existing

    username = invite.username or invite.email.split("@", 1)[0]
    if crud.get_user_by_username(db, username):
        username = f"{username}-{secrets.token_hex(3)}"

    result = crud.create_user(
        db,
        username=username,
        email=invite.email,
        password_hash=hash_password(secrets.token_urlsafe(24)),
        role=invite.role,
    )
    logger.info(f"User {current_user.id} invited {result.email} as {invite.role.value}")
    return result


@router.get("/by-email/{email}", response_model=schemas.UserResponse)
def get_user_by_email(
    email: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    user = crud.get_user_by_email(db, email)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("/{user_id}", response_model=schemas.UserResponse)
def get_user(
    user_id: UUID,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    return _get_user_or_404(db, user_id)


@router.patch("/{user_id}", response_model=schemas.UserResponse)
def update_user(
    user_id: UUID,
    user_update: schemas.UserUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """
    Update a user's profile.

    Users may edit themselves; admins may edit anyone and are the only ones
    who can change a role.
    """
    _get_user_or_404(db, user_id)

    with guard_boundary("update user"):
        if user_id != current_user.id or user_update.role is not None:
            check_admin(current_user)

    return crud.update_user(
        db,
        user_id,
        full_name=user_update.full_name,
        avatar_url=user_update.avatar_url,
        role=user_update.role,
        password_hash=hash_password(user_update.password) if user_update.password else None,
    )


@router.patch("/{user_id}/status", response_model=schemas.UserResponse)
def update_user_status(
    user_id: UUID,
    status_update: schemas.UserStatusUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_scrum_master_or_admin),
):
    """Activate or deactivate a user."""
    _get_user_or_404(db, user_id)
    if user_id == current_user.id and not status_update.is_active:
        raise HTTPException(status_code=400, detail="You cannot deactivate your own account")

    return crud.set_user_active(db, user_id, status_update.is_active)


@router.get("/{user_id}/teams", response_model=list[schemas.TeamResponse])
def get_user_teams(
    user_id: UUID,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    _get_user_or_404(db, user_id)
    return crud.get_teams_for_user(db, user_id)
