"""Write-time validation of Task dependency lists.

Tasks of one template form an arena indexed 0..n-1; ``depends_on_task_ids``
become index-based edges. A dependency list is accepted only if every ID
names a task of the same template and the resulting graph stays acyclic.
"""

from collections import deque
from collections.abc import Iterable, Mapping

from unified_workflow.errors import ValidationError


def find_cycle_members(edges: list[list[int]]) -> list[int]:
    """Return indices Kahn's algorithm cannot order: nodes on or behind a cycle.

    ``edges[i]`` lists the nodes that node ``i`` depends on.
    """
    n = len(edges)
    in_degree = [0] * n
    dependents: list[list[int]] = [[] for _ in range(n)]
    for node, deps in enumerate(edges):
        for dep in deps:
            dependents[dep].append(node)
            in_degree[node] += 1

    queue = deque(i for i in range(n) if in_degree[i] == 0)
    visited = 0
    while queue:
        node = queue.popleft()
        visited += 1
        for dependent in dependents[node]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                queue.append(dependent)

    if visited == n:
        return []
    return [i for i in range(n) if in_degree[i] > 0]


def validate_dependencies(
    task_id: str | None,
    depends_on: Iterable[str],
    template_tasks: Mapping[str, list[str]],
) -> None:
    """Check a task's dependency list against the rest of its template.

    Args:
        task_id: The task being updated, or None for a task not yet created.
        depends_on: The proposed ``depends_on_task_ids``.
        template_tasks: Every existing task of the template mapped to its
            current dependency list.

    Raises:
        ValidationError: On unknown task IDs or a dependency cycle.
    """
    depends_on = list(depends_on)
    if task_id is not None and task_id in depends_on:
        raise ValidationError(
            f"Task '{task_id}' cannot depend on itself",
            {"task_id": task_id},
        )

    unknown = [dep for dep in depends_on if dep not in template_tasks]
    if unknown:
        raise ValidationError(
            f"Task has invalid dependencies: {', '.join(unknown)}",
            {"invalid_task_ids": unknown},
        )

    # New tasks have no dependents yet, so they cannot close a cycle
    if task_id is None:
        return

    graph = dict(template_tasks)
    graph[task_id] = depends_on
    ids = list(graph)
    index = {tid: i for i, tid in enumerate(ids)}
    edges = [
        [index[dep] for dep in graph[tid] if dep in index] for tid in ids
    ]

    members = find_cycle_members(edges)
    if members:
        cycle_ids = [ids[i] for i in members]
        raise ValidationError(
            "Task dependencies would form a cycle",
            {"task_ids": cycle_ids},
        )
