"""Teams API endpoints."""
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from tracker_core import crud, models, schemas

from ..database import get_db
from ..dependencies import (
    get_current_user,
    require_admin,
    require_entity_delete,
    require_scrum_master_or_admin,
)

logger = logging.getLogger("tracker-core.teams")

router = APIRouter(tags=["teams"])


def _get_team_or_404(db: Session, team_id: UUID) -> models.Team:
    team = crud.get_team(db, team_id)
    if not team:
        raise HTTPException(status_code=404, detail="Team not found")
    return team


@router.post("/", response_model=schemas.TeamResponse, status_code=201)
def create_team(
    team: schemas.TeamCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_admin),
):
    """
    Create a new team (admin only).

    - **name**: Unique team name
    - **description**: Optional description
    """
    if crud.get_team_by_name(db, team.name):
        raise HTTPException(status_code=409, detail=f"Team '{team.name}' already exists")

    result = crud.create_team(db, name=team.name, description=team.description, user_id=current_user.id)
    logger.info(f"Created team '{result.name}' (ID: {result.id})")
    return result


@router.get("/", response_model=list[schemas.TeamResponse])
def list_teams(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """
    List teams. Admins see every team; everyone else sees the teams they belong to.
    """
    if current_user.role == models.UserRole.ADMIN:
        return crud.get_teams(db)
    return crud.get_teams_for_user(db, current_user.id)


@router.get("/{team_id}", response_model=schemas.TeamResponse)
def get_team(
    team_id: UUID,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    return _get_team_or_404(db, team_id)


@router.delete("/{team_id}", status_code=204)
def delete_team(
    team_id: UUID,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_entity_delete),
):
    """
    Delete a team and its memberships (admin only).

    Teams that still own projects cannot be deleted; reassign or delete the
    projects first.
    """
    _get_team_or_404(db, team_id)

    owned = crud.get_projects_by_team(db, team_id)
    if owned:
        raise HTTPException(
            status_code=400,
            detail=f"Team still owns {len(owned)} project(s); reassign or delete them first",
        )

    crud.delete_team(db, team_id)
    logger.info(f"User {current_user.id} deleted team {team_id}")
    return None


# ============================================================================
# Team Members
# ============================================================================

@router.post("/{team_id}/members", response_model=schemas.TeamMemberResponse, status_code=201)
def add_team_member(
    team_id: UUID,
    member: schemas.TeamMemberCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_scrum_master_or_admin),
):
    """
    Add a user to a team.

    Team members get full access to every project the team owns.
    """
    _get_team_or_404(db, team_id)
    if not crud.get_user_by_id(db, member.user_id):
        raise HTTPException(status_code=404, detail="User not found")

    try:
        result = crud.add_team_member(db, team_id, member.user_id, role=member.role)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info(f"User {current_user.id} added {member.user_id} to team {team_id}")
    return result


@router.get("/{team_id}/members", response_model=list[schemas.TeamMemberResponse])
def list_team_members(
    team_id: UUID,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    _get_team_or_404(db, team_id)
    return crud.get_team_members(db, team_id)


@router.delete("/{team_id}/members/{user_id}", status_code=204)
def remove_team_member(
    team_id: UUID,
    user_id: UUID,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_scrum_master_or_admin),
):
    _get_team_or_404(db, team_id)
    if not crud.remove_team_member(db, team_id, user_id):
        raise HTTPException(status_code=404, detail="Team member not found")

    logger.info(f"User {current_user.id} removed {user_id} from team {team_id}")
    return None


@router.get("/{team_id}/projects", response_model=list[schemas.ProjectResponse])
def list_team_projects(
    team_id: UUID,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    _get_team_or_404(db, team_id)
    return crud.get_projects_by_team(db, team_id)
