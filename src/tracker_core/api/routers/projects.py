"""Projects API endpoints."""
import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from tracker_core import crud, models, schemas

from ..database import get_db
from ..dependencies import (
    ProjectContext,
    get_current_user,
    require_entity_delete,
    require_project_read,
    require_scrum_master_or_admin,
)

logger = logging.getLogger("tracker-core.projects")

router = APIRouter(tags=["projects"])


def _get_project_or_404(db: Session, project_id: UUID) -> models.Project:
    project = crud.get_project(db, project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


@router.post("/", response_model=schemas.ProjectResponse, status_code=201)
def create_project(
    project: schemas.ProjectCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_scrum_master_or_admin),
):
    """
    Create a new project.

    - **key**: Short uppercase key, unique across projects
    - **name**: Project name
    - **team_id**: Optional owning team; its members get full access
    """
    if project.team_id and not crud.get_team(db, project.team_id):
        raise HTTPException(status_code=404, detail="Team not found")

    if crud.get_project_by_key(db, project.key):
        raise HTTPException(
            status_code=409,
            detail=f"Project with key '{project.key}' already exists",
        )

    try:
        result = crud.create_project(
            db=db,
            key=project.key,
            name=project.name,
            description=project.description,
            category=project.category,
            status=project.status,
            team_id=project.team_id,
            start_date=project.start_date,
            target_date=project.target_date,
            user_id=current_user.id,
        )
        logger.info(f"Created project '{result.name}' ({result.key})")
        return result
    except Exception as e:
        logger.error(f"Error creating project: {e}", exc_info=True)
        raise


@router.get("/", response_model=list[schemas.ProjectResponse])
def list_projects(
    status: Optional[models.ProjectStatus] = Query(None, description="Filter by status"),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """
    List the projects visible to the current user.

    Admins see every project. Everyone else sees their teams' projects plus
    projects they hold an unexpired temporary grant on.
    """
    return crud.get_projects_for_user(db, current_user, status_filter=status)


@router.get("/{project_id}", response_model=schemas.ProjectResponse)
def get_project(ctx: ProjectContext = Depends(require_project_read)):
    """
    Get a specific project.

    Requires team membership, an unexpired temporary grant, or the admin role.
    """
    return ctx.project


@router.patch("/{project_id}", response_model=schemas.ProjectResponse)
def update_project(
    project_id: UUID,
    project_update: schemas.ProjectUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_scrum_master_or_admin),
):
    """
    Update a project. Only the fields present in the request are changed.
    """
    _get_project_or_404(db, project_id)

    fields = project_update.model_dump(exclude_unset=True)
    if fields.get("team_id") and not crud.get_team(db, fields["team_id"]):
        raise HTTPException(status_code=404, detail="Team not found")
    for required in ("name", "status"):
        if required in fields and fields[required] is None:
            raise HTTPException(status_code=400, detail=f"{required} cannot be null")

    return crud.update_project(db, project_id, **fields)


@router.delete("/{project_id}", status_code=204)
def delete_project(
    project_id: UUID,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_entity_delete),
):
    """
    Delete a project with its work items and temporary grants (admin only).
    """
    _get_project_or_404(db, project_id)
    crud.delete_project(db, project_id)
    logger.info(f"User {current_user.id} deleted project {project_id}")
    return None


@router.get("/{project_id}/team-members", response_model=list[schemas.UserResponse])
def list_project_team_members(
    ctx: ProjectContext = Depends(require_project_read),
    db: Session = Depends(get_db),
):
    """Users of the team that owns the project; empty when it has no team."""
    if ctx.project.team_id is None:
        return []
    return [member.user for member in crud.get_team_members(db, ctx.project.team_id)]


# ============================================================================
# Temporary project members
# ============================================================================

@router.post("/{project_id}/members", response_model=schemas.ProjectMemberResponse, status_code=201)
def add_project_member(
    project_id: UUID,
    member: schemas.ProjectMemberCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_scrum_master_or_admin),
):
    """
    Grant a user outside the owning team temporary access to a project.

    - **role**: VIEWER (read-only) or MEMBER (may create tasks and bugs)
    - **expires_at**: Optional expiry; afterwards the user is refused outright
    """
    project = _get_project_or_404(db, project_id)
    if not crud.get_user_by_id(db, member.user_id):
        raise HTTPException(status_code=404, detail="User not found")

    if project.team_id and crud.is_team_member(db, project.team_id, member.user_id):
        raise HTTPException(
            status_code=400,
            detail="User is already a member of the project's team",
        )

    try:
        result = crud.add_project_member(
            db,
            project_id,
            member.user_id,
            role=member.role,
            expires_at=member.expires_at,
            added_by_user_id=current_user.id,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info(
        f"User {current_user.id} granted {member.user_id} {member.role.value} access to project {project_id}"
    )
    return result


@router.get("/{project_id}/members", response_model=list[schemas.ProjectMemberResponse])
def list_project_members(
    ctx: ProjectContext = Depends(require_project_read),
    db: Session = Depends(get_db),
):
    """List temporary grants on a project, expired ones included."""
    return crud.get_project_members(db, ctx.project.id)


@router.delete("/{project_id}/members/{user_id}", status_code=204)
def remove_project_member(
    project_id: UUID,
    user_id: UUID,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_scrum_master_or_admin),
):
    _get_project_or_404(db, project_id)
    if not crud.remove_project_member(db, project_id, user_id):
        raise HTTPException(status_code=404, detail="Project member not found")

    logger.info(f"User {current_user.id} revoked {user_id} access to project {project_id}")
    return None


@router.get("/{project_id}/work-items", response_model=list[schemas.WorkItemResponse])
def list_project_work_items(
    type: Optional[models.WorkItemType] = Query(None, description="Filter by type"),
    status: Optional[models.WorkItemStatus] = Query(None, description="Filter by status"),
    assignee_id: Optional[UUID] = Query(None, description="Filter by assignee"),
    ctx: ProjectContext = Depends(require_project_read),
    db: Session = Depends(get_db),
):
    """List a project's work items, oldest first."""
    return crud.get_work_items_by_project(
        db,
        ctx.project.id,
        work_item_type=type,
        status_filter=status,
        assignee_id=assignee_id,
    )
