"""Parent/child validation for the work item tree.

Two independent checks run whenever a work item gets a parent:
- the (parent type, child type) pair must appear in ALLOWED_CHILDREN
- the new parent must not be the item itself or one of its descendants

Neither check consults roles or memberships.
"""
import logging
from typing import Mapping, Optional
from uuid import UUID

from .models import WorkItemType

logger = logging.getLogger("tracker-core.hierarchy_validation")

MAX_HIERARCHY_DEPTH = 50


class HierarchyValidationError(ValueError):
    """Base class for work item tree violations."""

    reason = "hierarchy_violation"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidParentChildError(HierarchyValidationError):
    """Raised when a child type may not sit under a parent type."""

    reason = "invalid_parent_child"

    def __init__(self, parent_type: WorkItemType, child_type: WorkItemType):
        allowed = [t.value for t in allowed_child_types(parent_type)]
        message = (
            f"Invalid parent-child relationship: {child_type.value} cannot be a child of "
            f"{parent_type.value}. "
        )
        if allowed:
            message += f"{parent_type.value} can only contain: {', '.join(allowed)}."
        else:
            message += f"{parent_type.value} cannot have children."
        super().__init__(message)
        self.parent_type = parent_type
        self.child_type = child_type


class HierarchyCycleError(HierarchyValidationError):
    """Raised when re-parenting would turn the tree into a cycle."""

    reason = "hierarchy_cycle"

    def __init__(self, path: list[UUID]):
        super().__init__(
            "Circular hierarchy detected: " + " -> ".join(str(node) for node in path)
        )
        self.path = path


# Maps parent type → child types it may contain
ALLOWED_CHILDREN: dict[WorkItemType, frozenset[WorkItemType]] = {
    WorkItemType.EPIC: frozenset({WorkItemType.FEATURE}),
    WorkItemType.FEATURE: frozenset({WorkItemType.STORY, WorkItemType.BUG}),
    WorkItemType.STORY: frozenset({WorkItemType.TASK, WorkItemType.BUG}),
    WorkItemType.TASK: frozenset(),
    WorkItemType.BUG: frozenset({WorkItemType.TASK}),
}


def is_valid_parent_child(parent_type: WorkItemType, child_type: WorkItemType) -> bool:
    """Return True iff child_type may be nested directly under parent_type."""
    return child_type in ALLOWED_CHILDREN.get(parent_type, frozenset())


def allowed_child_types(parent_type: WorkItemType) -> list[WorkItemType]:
    """Child types allowed under parent_type, in enum declaration order."""
    allowed = ALLOWED_CHILDREN.get(parent_type, frozenset())
    return [t for t in WorkItemType if t in allowed]


def validate_parent_child(parent_type: WorkItemType, child_type: WorkItemType) -> None:
    """
    Validate a parent/child type pair.

    Raises:
        InvalidParentChildError: If the pair is not in ALLOWED_CHILDREN
    """
    if not is_valid_parent_child(parent_type, child_type):
        logger.warning(f"Rejected hierarchy: {parent_type.value} -> {child_type.value}")
        raise InvalidParentChildError(parent_type, child_type)


def find_hierarchy_violations(
    parent_type: WorkItemType,
    child_types: list[WorkItemType],
) -> list[WorkItemType]:
    """
    Return the child types that may not sit under parent_type.

    Used when an item's own type changes and its existing children must
    still fit underneath it.
    """
    return [t for t in child_types if not is_valid_parent_child(parent_type, t)]


def find_hierarchy_cycle(
    item_id: UUID,
    new_parent_id: Optional[UUID],
    parent_of: Mapping[UUID, Optional[UUID]],
    max_depth: int = MAX_HIERARCHY_DEPTH,
) -> Optional[list[UUID]]:
    """
    Check whether making new_parent_id the parent of item_id creates a cycle.

    Walks up from new_parent_id through the id → parent_id map. Reaching
    item_id means the new parent is a descendant of the item.

    Args:
        item_id: Item being re-parented
        new_parent_id: Proposed parent (None clears the parent)
        parent_of: Map of work item id to its current parent id
        max_depth: Walk bound; exceeding it is reported as a cycle

    Returns:
        The offending path (item_id first) if a cycle would form, None otherwise
    """
    if new_parent_id is None:
        return None

    path = [item_id]
    current: Optional[UUID] = new_parent_id
    seen: set[UUID] = set()

    while current is not None:
        path.append(current)
        if current == item_id:
            return path
        if current in seen or len(path) > max_depth:
            logger.warning(
                f"Hierarchy walk from {new_parent_id} exceeded depth {max_depth} or looped"
            )
            return path
        seen.add(current)
        current = parent_of.get(current)

    return None


def validate_no_cycle(
    item_id: UUID,
    new_parent_id: Optional[UUID],
    parent_of: Mapping[UUID, Optional[UUID]],
) -> None:
    """
    Raises:
        HierarchyCycleError: If the new parent is the item or one of its descendants
    """
    path = find_hierarchy_cycle(item_id, new_parent_id, parent_of)
    if path:
        raise HierarchyCycleError(path)
