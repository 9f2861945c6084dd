"""Work item API endpoints.

Every write passes the work item type gate before anything is persisted.
Parent/child type pairs and cycles are checked after the gate.
"""
import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from tracker_core import crud, models, schemas
from tracker_core.crud import Store
from tracker_core.hierarchy_validation import (
    HierarchyValidationError,
    InvalidParentChildError,
    find_hierarchy_violations,
    validate_no_cycle,
    validate_parent_child,
)
from tracker_core.permissions import (
    Action,
    check_work_item_delete,
    check_work_item_fields,
    check_work_item_operation,
)

from ..database import get_db
from ..dependencies import (
    get_current_user,
    get_current_user_id,
    get_store,
    guard_boundary,
    hierarchy_error_to_http,
    load_current_user,
    resolve_project_context,
)

logger = logging.getLogger("tracker-core.work_items")

router = APIRouter(tags=["work-items"])

NON_NULLABLE_FIELDS = ("type", "title", "status", "priority")


def _get_work_item_or_404(store: Store, work_item_id: UUID) -> models.WorkItem:
    work_item = store.get_work_item(work_item_id)
    if not work_item:
        raise HTTPException(status_code=404, detail="Work item not found")
    return work_item


def _get_parent_or_error(db: Session, parent_id: UUID, project_id: UUID) -> models.WorkItem:
    parent = crud.get_work_item(db, parent_id)
    if not parent:
        raise HTTPException(status_code=404, detail="Parent work item not found")
    if parent.project_id != project_id:
        raise HTTPException(
            status_code=400,
            detail="Parent work item must belong to the same project",
        )
    return parent


def _ensure_assignee_exists(db: Session, assignee_id: Optional[UUID]) -> None:
    if assignee_id and not crud.get_user_by_id(db, assignee_id):
        raise HTTPException(status_code=404, detail="Assignee not found")


@router.post("/", response_model=schemas.WorkItemResponse, status_code=201)
def create_work_item(
    item: schemas.WorkItemCreate,
    db: Session = Depends(get_db),
    store: Store = Depends(get_store),
    user_id: Optional[UUID] = Depends(get_current_user_id),
):
    """
    Create a work item.

    - **type**: EPIC, FEATURE, STORY, TASK or BUG (required)
    - **project_id**: Owning project (required)
    - **parent_id**: Optional parent; the parent/child type pair must be allowed

    Members may only create tasks and bugs; viewers may create nothing.
    """
    with guard_boundary("create work item"):
        check_work_item_fields(item.project_id, item.type)
    current_user = load_current_user(store, user_id)

    with guard_boundary("create work item"):
        access = resolve_project_context(store, current_user, item.project_id).access
        check_work_item_operation(
            current_user,
            Action.CREATE,
            access,
            project_id=item.project_id,
            work_item_type=item.type,
        )

    if item.parent_id:
        parent = _get_parent_or_error(db, item.parent_id, item.project_id)
        try:
            validate_parent_child(parent.type, item.type)
        except HierarchyValidationError as e:
            raise hierarchy_error_to_http(e) from e
    _ensure_assignee_exists(db, item.assignee_id)

    result = crud.create_work_item(
        db,
        project_id=item.project_id,
        work_item_type=item.type,
        title=item.title,
        description=item.description,
        status=item.status,
        priority=item.priority,
        parent_id=item.parent_id,
        assignee_id=item.assignee_id,
        reporter_id=current_user.id,
        external_id=item.external_id,
        estimate=item.estimate,
        start_date=item.start_date,
        end_date=item.end_date,
    )
    logger.info(f"User {current_user.id} created {result.type.value} {result.id} in project {result.project_id}")
    return result


@router.get("/{work_item_id}", response_model=schemas.WorkItemResponse)
def get_work_item(
    work_item_id: UUID,
    db: Session = Depends(get_db),
    store: Store = Depends(get_store),
    current_user: models.User = Depends(get_current_user),
):
    """Get a work item. Requires access to the item's project."""
    work_item = _get_work_item_or_404(store, work_item_id)
    resolve_project_context(store, current_user, work_item.project_id)
    return work_item


@router.patch("/{work_item_id}", response_model=schemas.WorkItemResponse)
def update_work_item(
    work_item_id: UUID,
    item_update: schemas.WorkItemUpdate,
    db: Session = Depends(get_db),
    store: Store = Depends(get_store),
    current_user: models.User = Depends(get_current_user),
):
    """
    Update a work item. Only the fields present in the request are changed.

    Project access is resolved against the project the item is stored in.
    Re-parenting is checked for allowed type pairs and for cycles; a type
    change must still fit under the current parent and above the existing
    children.
    """
    work_item = _get_work_item_or_404(store, work_item_id)
    fields = item_update.model_dump(exclude_unset=True)
    new_type = fields.get("type") or work_item.type

    with guard_boundary("update work item"):
        ctx = resolve_project_context(store, current_user, work_item.project_id)
        check_work_item_operation(
            current_user,
            Action.UPDATE,
            ctx.access,
            project_id=work_item.project_id,
            work_item_type=new_type,
        )

    for field in NON_NULLABLE_FIELDS:
        if field in fields and fields[field] is None:
            raise HTTPException(status_code=400, detail=f"{field} cannot be null")

    try:
        if "parent_id" in fields:
            parent_id = fields["parent_id"]
            if parent_id is not None:
                parent = _get_parent_or_error(db, parent_id, work_item.project_id)
                validate_parent_child(parent.type, new_type)
                validate_no_cycle(work_item.id, parent_id, crud.get_parent_map(db, work_item.project_id))
        elif new_type != work_item.type and work_item.parent is not None:
            validate_parent_child(work_item.parent.type, new_type)

        if new_type != work_item.type:
            violations = find_hierarchy_violations(new_type, crud.get_child_types(db, work_item.id))
            if violations:
                raise InvalidParentChildError(new_type, violations[0])
    except HierarchyValidationError as e:
        raise hierarchy_error_to_http(e) from e

    if "assignee_id" in fields:
        _ensure_assignee_exists(db, fields["assignee_id"])

    result = crud.update_work_item(db, work_item_id, **fields)
    logger.info(f"User {current_user.id} updated work item {work_item_id}: {sorted(fields)}")
    return result


@router.delete("/{work_item_id}", status_code=204)
def delete_work_item(
    work_item_id: UUID,
    db: Session = Depends(get_db),
    store: Store = Depends(get_store),
    current_user: models.User = Depends(get_current_user),
):
    """
    Delete a work item.

    Admins may delete any item; scrum masters only stories, tasks and bugs.
    Children of the deleted item are kept and lose their parent.
    """
    work_item_type = _get_work_item_or_404(store, work_item_id).type

    with guard_boundary("delete work item"):
        check_work_item_delete(current_user, work_item_type)

    crud.delete_work_item(db, work_item_id)
    logger.info(f"User {current_user.id} deleted {work_item_type.value} {work_item_id}")
    return None
