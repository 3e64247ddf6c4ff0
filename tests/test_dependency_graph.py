"""Tests for task dependency validation."""

import pytest

from unified_workflow.errors import ValidationError
from unified_workflow.services.dependency_graph import (
    find_cycle_members,
    validate_dependencies,
)


class TestFindCycleMembers:
    """Tests for Kahn's-algorithm cycle detection over index edges."""

    def test_empty_graph(self):
        assert find_cycle_members([]) == []

    def test_chain_is_acyclic(self):
        # 2 -> 1 -> 0
        assert find_cycle_members([[], [0], [1]]) == []

    def test_diamond_is_acyclic(self):
        assert find_cycle_members([[], [0], [0], [1, 2]]) == []

    def test_two_node_cycle(self):
        assert find_cycle_members([[1], [0]]) == [0, 1]

    def test_cycle_with_downstream_node(self):
        # 0 <-> 1, 2 depends on 1
        members = find_cycle_members([[1], [0], [1]])
        assert set(members) >= {0, 1}


class TestValidateDependencies:
    """Tests for validate_dependencies."""

    def test_no_dependencies(self):
        validate_dependencies(None, [], {})

    def test_new_task_with_known_dependencies(self):
        validate_dependencies(None, ["a", "b"], {"a": [], "b": ["a"]})

    def test_dangling_reference(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_dependencies(None, ["a", "ghost"], {"a": []})

        assert exc_info.value.details["invalid_task_ids"] == ["ghost"]

    def test_self_dependency(self):
        with pytest.raises(ValidationError):
            validate_dependencies("a", ["a"], {"a": []})

    def test_update_closing_a_cycle(self):
        # b already depends on a; making a depend on b closes the loop
        with pytest.raises(ValidationError) as exc_info:
            validate_dependencies("a", ["b"], {"a": [], "b": ["a"]})

        assert set(exc_info.value.details["task_ids"]) == {"a", "b"}

    def test_update_replacing_dependencies(self):
        # a used to depend on b; dropping that lets b depend on a later
        validate_dependencies("a", [], {"a": ["b"], "b": []})
        validate_dependencies("b", ["a"], {"a": [], "b": []})

    def test_long_cycle(self):
        graph = {"a": ["c"], "b": ["a"], "c": []}
        with pytest.raises(ValidationError):
            validate_dependencies("c", ["b"], graph)
