"""Unit tests for sub-task composition and cloning."""

import pytest

from tasktree.core.errors import CapacityExceededError, DuplicateSubtaskError, InvalidFieldError
from tasktree.domain.task import ContainerTask, LeafTask, TaskPriority, TaskStatus
from tasktree.modules.tasks import composition, state_machine


@pytest.mark.unit
class TestAddSubtask:
    """Tests for add_subtask."""

    def test_adds_up_to_capacity(self, make_container, make_leaf):
        """Test three leaves fit a container of capacity three, in order."""
        container = make_container(capacity=3)
        for task_id in (1, 2, 3):
            container = composition.add_subtask(container, make_leaf(id=task_id))

        assert [subtask.id for subtask in container.subtasks] == [1, 2, 3]

    def test_fourth_subtask_exceeds_capacity(self, make_container, make_leaf):
        """Test adding past capacity fails and states limit and current count."""
        container = make_container(capacity=3, subtasks=[make_leaf(id=1), make_leaf(id=2), make_leaf(id=3)])

        with pytest.raises(CapacityExceededError) as exc_info:
            composition.add_subtask(container, make_leaf(id=4))

        assert exc_info.value.limit == 3
        assert exc_info.value.current == 3
        assert "limit=3" in str(exc_info.value)
        assert "current=3" in str(exc_info.value)
        assert len(container.subtasks) == 3

    def test_zero_capacity_container_is_full(self, make_container, make_leaf):
        """Test a container with capacity zero accepts nothing."""
        with pytest.raises(CapacityExceededError):
            composition.add_subtask(make_container(capacity=0), make_leaf(id=1))

    def test_original_container_unchanged(self, make_container, make_leaf):
        """Test add_subtask returns a new container."""
        container = make_container()

        composition.add_subtask(container, make_leaf(id=1))

        assert container.subtasks == ()

    def test_duplicate_rejected(self, make_container, make_leaf):
        """Test the same identity cannot be attached twice."""
        container = composition.add_subtask(make_container(), make_leaf(id=1))

        with pytest.raises(DuplicateSubtaskError) as exc_info:
            composition.add_subtask(container, make_leaf(id=1))

        assert exc_info.value.subtask_id == 1
        assert len(container.subtasks) == 1

    def test_duplicate_is_an_invalid_field(self, make_container, make_leaf):
        """Test duplicates are reported as a kind of InvalidFieldError."""
        container = composition.add_subtask(make_container(), make_leaf(id=1))

        with pytest.raises(InvalidFieldError):
            composition.add_subtask(container, make_leaf(id=1))

    def test_container_subtask_rejected(self, make_container):
        """Test only leaf tasks can be nested."""
        with pytest.raises(InvalidFieldError, match="nested"):
            composition.add_subtask(make_container(), make_container(id=5))

    def test_started_container_rejects_subtasks(self, make_container, make_leaf):
        """Test structure is fixed once the container has started."""
        container = state_machine.start(make_container())

        with pytest.raises(InvalidFieldError, match="status"):
            composition.add_subtask(container, make_leaf(id=1))

    def test_status_checked_before_capacity(self, make_container, make_leaf):
        """Test a started, full container reports the status problem."""
        container = state_machine.start(make_container(capacity=0))

        with pytest.raises(InvalidFieldError):
            composition.add_subtask(container, make_leaf(id=1))

    def test_leaf_cannot_take_subtasks(self, make_leaf):
        """Test add_subtask needs a container."""
        with pytest.raises(InvalidFieldError, match="no sub-tasks"):
            composition.add_subtask(make_leaf(id=1), make_leaf(id=2))

    def test_sets_parent_when_container_has_identity(self, make_container, make_leaf):
        """Test the attached leaf records its container."""
        container = composition.add_subtask(make_container(id=10), make_leaf(id=1))

        assert container.subtasks[0].parent_id == 10

    def test_leaf_of_another_container_rejected(self, make_container, make_leaf):
        """Test a leaf already owned elsewhere cannot be attached."""
        with pytest.raises(InvalidFieldError, match="already belongs"):
            composition.add_subtask(make_container(id=10), make_leaf(id=1, parent_id=11))

    def test_identity_less_subtasks_can_repeat(self, make_container, make_leaf):
        """Test unpersisted leaves are not treated as duplicates."""
        container = composition.add_subtask(make_container(), make_leaf())
        container = composition.add_subtask(container, make_leaf())

        assert len(container.subtasks) == 2


@pytest.mark.unit
class TestClone:
    """Tests for clone."""

    def test_clone_leaf_resets_identity_and_lifecycle(self, make_leaf):
        """Test a clone is identity-less, pending and not completed."""
        source = make_leaf(id=7, status=TaskStatus.COMPLETED, completed=True, parent_id=3)

        cloned = composition.clone(source)

        assert isinstance(cloned, LeafTask)
        assert cloned.id is None
        assert cloned.status == TaskStatus.PENDING
        assert cloned.completed is False
        assert cloned.parent_id is None
        assert cloned.title == source.title
        assert cloned.points == source.points
        assert cloned.priority == source.priority

    def test_clone_applies_overrides(self, make_leaf):
        """Test overrides replace copied fields."""
        cloned = composition.clone(make_leaf(id=7), {"title": "Copy", "priority": TaskPriority.HIGH, "points": 8})

        assert cloned.title == "Copy"
        assert cloned.priority == TaskPriority.HIGH
        assert cloned.points == 8

    def test_override_can_clear_due_date(self, make_leaf):
        """Test an override present with None still applies."""
        cloned = composition.clone(make_leaf(due_date="2026-12-24T00:00:00"), {"due_date": None})

        assert cloned.due_date is None

    def test_invalid_override_rejected(self, make_leaf):
        """Test overrides go through construction validation."""
        with pytest.raises(InvalidFieldError, match="title"):
            composition.clone(make_leaf(), {"title": ""})

    def test_variant_mismatch_override_rejected(self, make_container):
        """Test leaf-only fields cannot be smuggled onto a container clone."""
        with pytest.raises(InvalidFieldError, match="points"):
            composition.clone(make_container(), {"points": 3})

    @pytest.mark.parametrize("field", ["id", "kind", "status", "completed", "subtasks"])
    def test_protected_override_rejected(self, make_leaf, field):
        """Test identity, variant, lifecycle and structure cannot be overridden."""
        with pytest.raises(InvalidFieldError) as exc_info:
            composition.clone(make_leaf(), {field: None})

        assert exc_info.value.field == field

    def test_clone_container_deep_copies_subtasks(self, make_container, make_leaf):
        """Test sub-tasks are cloned with fresh identity and reset lifecycle."""
        source = state_machine.start(
            make_container(id=10, subtasks=[make_leaf(id=1, parent_id=10), make_leaf(id=2, parent_id=10)])
        )

        cloned = composition.clone(source)

        assert isinstance(cloned, ContainerTask)
        assert cloned.id is None
        assert cloned.status == TaskStatus.PENDING
        assert len(cloned.subtasks) == 2
        for subtask in cloned.subtasks:
            assert subtask.id is None
            assert subtask.parent_id is None
            assert subtask.status == TaskStatus.PENDING
            assert subtask.completed is False

    def test_clone_subtasks_independent_of_source(self, make_container, make_leaf):
        """Test transitioning a clone's sub-tasks leaves the source alone."""
        source = make_container(subtasks=[make_leaf(id=1)])

        cloned = state_machine.start(composition.clone(source))

        assert cloned.subtasks[0].status == TaskStatus.IN_PROGRESS
        assert source.subtasks[0].status == TaskStatus.PENDING
        assert cloned.subtasks[0] is not source.subtasks[0]

    def test_capacity_override_below_subtask_count(self, make_container, make_leaf):
        """Test a smaller capacity on the clone surfaces CapacityExceededError."""
        source = make_container(subtasks=[make_leaf(id=1), make_leaf(id=2)])

        with pytest.raises(CapacityExceededError):
            composition.clone(source, {"capacity": 1})
