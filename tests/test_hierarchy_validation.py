"""Tests for parent/child validation of the work item tree."""
from uuid import uuid4

import pytest

from tracker_core.hierarchy_validation import (
    ALLOWED_CHILDREN,
    MAX_HIERARCHY_DEPTH,
    HierarchyCycleError,
    InvalidParentChildError,
    allowed_child_types,
    find_hierarchy_cycle,
    find_hierarchy_violations,
    is_valid_parent_child,
    validate_no_cycle,
    validate_parent_child,
)
from tracker_core.models import WorkItemType

EPIC = WorkItemType.EPIC
FEATURE = WorkItemType.FEATURE
STORY = WorkItemType.STORY
TASK = WorkItemType.TASK
BUG = WorkItemType.BUG


class TestParentChildPairs:
    """Test the allowed parent → child table."""

    def test_allowed_pairs(self):
        for parent, child in [
            (EPIC, FEATURE),
            (FEATURE, STORY),
            (FEATURE, BUG),
            (STORY, TASK),
            (STORY, BUG),
            (BUG, TASK),
        ]:
            assert is_valid_parent_child(parent, child)
            validate_parent_child(parent, child)  # Should not raise

    def test_every_other_pair_is_rejected(self):
        allowed = {(p, c) for p, children in ALLOWED_CHILDREN.items() for c in children}
        for parent in WorkItemType:
            for child in WorkItemType:
                if (parent, child) in allowed:
                    continue
                assert not is_valid_parent_child(parent, child)
                with pytest.raises(InvalidParentChildError):
                    validate_parent_child(parent, child)

    def test_story_cannot_sit_directly_under_epic(self):
        with pytest.raises(InvalidParentChildError) as exc_info:
            validate_parent_child(EPIC, STORY)

        error = exc_info.value
        assert error.parent_type == EPIC
        assert error.child_type == STORY
        assert "STORY cannot be a child of EPIC" in error.message
        assert "EPIC can only contain: FEATURE" in error.message

    def test_task_cannot_have_children(self):
        with pytest.raises(InvalidParentChildError) as exc_info:
            validate_parent_child(TASK, BUG)
        assert "TASK cannot have children" in exc_info.value.message

    def test_allowed_child_types_in_declaration_order(self):
        assert allowed_child_types(FEATURE) == [STORY, BUG]
        assert allowed_child_types(STORY) == [TASK, BUG]
        assert allowed_child_types(TASK) == []

    def test_find_violations_for_type_change(self):
        # A STORY with a TASK and a BUG underneath turning into a FEATURE
        assert find_hierarchy_violations(FEATURE, [TASK, BUG]) == [TASK]
        assert find_hierarchy_violations(STORY, [TASK, BUG]) == []
        assert find_hierarchy_violations(TASK, []) == []


class TestCycleDetection:
    """Test re-parenting against the id → parent_id map."""

    def test_clearing_parent_never_cycles(self):
        assert find_hierarchy_cycle(uuid4(), None, {}) is None

    def test_self_parent_is_a_cycle(self):
        item = uuid4()
        assert find_hierarchy_cycle(item, item, {item: None}) == [item, item]

    def test_descendant_as_parent_is_a_cycle(self):
        epic, feature, story = uuid4(), uuid4(), uuid4()
        parent_of = {epic: None, feature: epic, story: feature}

        path = find_hierarchy_cycle(epic, story, parent_of)

        assert path == [epic, story, feature, epic]
        with pytest.raises(HierarchyCycleError) as exc_info:
            validate_no_cycle(epic, story, parent_of)
        assert exc_info.value.path == path
        assert exc_info.value.message.startswith("Circular hierarchy detected")

    def test_unrelated_parent_is_fine(self):
        a, b, c = uuid4(), uuid4(), uuid4()
        parent_of = {a: None, b: a, c: None}

        assert find_hierarchy_cycle(c, b, parent_of) is None
        validate_no_cycle(c, b, parent_of)  # Should not raise

    def test_existing_loop_elsewhere_is_reported(self):
        item, x, y = uuid4(), uuid4(), uuid4()
        # x and y already point at each other
        parent_of = {item: None, x: y, y: x}

        assert find_hierarchy_cycle(item, x, parent_of) is not None

    def test_walk_is_bounded(self):
        chain = [uuid4() for _ in range(MAX_HIERARCHY_DEPTH + 5)]
        parent_of = {node: (chain[i + 1] if i + 1 < len(chain) else None) for i, node in enumerate(chain)}

        path = find_hierarchy_cycle(uuid4(), chain[0], parent_of)

        assert path is not None
        assert len(path) == MAX_HIERARCHY_DEPTH + 1

    def test_chain_within_bound_is_fine(self):
        chain = [uuid4() for _ in range(10)]
        parent_of = {node: (chain[i + 1] if i + 1 < len(chain) else None) for i, node in enumerate(chain)}

        assert find_hierarchy_cycle(uuid4(), chain[0], parent_of) is None
