"""Roadmap template API endpoints."""
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from tracker_core import crud, models, schemas

from ..database import get_db
from ..dependencies import get_current_user, require_scrum_master_or_admin

logger = logging.getLogger("tracker-core.roadmap_templates")

router = APIRouter(tags=["roadmap-templates"])


@router.get("/", response_model=list[schemas.RoadmapTemplateResponse])
def list_roadmap_templates(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    return crud.get_roadmap_templates(db)


@router.post("/", response_model=schemas.RoadmapTemplateResponse, status_code=201)
def create_roadmap_template(
    template: schemas.RoadmapTemplateCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_scrum_master_or_admin),
):
    """
    Create a roadmap template.

    - **streams**: Ordered stream names
    - **projects**: Placeholder projects laid out on the streams
    """
    result = crud.create_roadmap_template(
        db,
        name=template.name,
        description=template.description,
        streams=template.streams,
        projects=template.projects,
    )
    logger.info(f"Created roadmap template '{result.name}' (ID: {result.id})")
    return result


@router.post("/seed", response_model=list[schemas.RoadmapTemplateResponse])
def seed_roadmap_templates(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_scrum_master_or_admin),
):
    """Insert the default templates if the table is empty; otherwise return what exists."""
    return crud.seed_roadmap_templates(db)


@router.put("/{template_id}", response_model=schemas.RoadmapTemplateResponse)
def update_roadmap_template(
    template_id: UUID,
    template: schemas.RoadmapTemplateUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_scrum_master_or_admin),
):
    result = crud.update_roadmap_template(
        db,
        template_id,
        name=template.name,
        description=template.description,
        streams=template.streams,
        projects=template.projects,
    )
    if not result:
        raise HTTPException(status_code=404, detail="Roadmap template not found")
    return result


@router.delete("/{template_id}", status_code=204)
def delete_roadmap_template(
    template_id: UUID,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_scrum_master_or_admin),
):
    if not crud.delete_roadmap_template(db, template_id):
        raise HTTPException(status_code=404, detail="Roadmap template not found")
    return None
