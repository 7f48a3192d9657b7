"""Ordering links between tasks ("A has to be done before B")."""

from collections import defaultdict

from .recurrence import is_recurring


def would_create_cycle(
    edges: list[tuple[int, int]], task_id: int, depends_on_task_id: int
) -> bool:
    """
    Whether adding "task_id depends on depends_on_task_id" closes a loop.

    It does when task_id is already reachable from depends_on_task_id by
    following existing depends-on links.
    """
    if task_id == depends_on_task_id:
        return True

    graph = defaultdict(set)
    for source, target in edges:
        graph[source].add(target)

    stack = [depends_on_task_id]
    seen = set()
    while stack:
        current = stack.pop()
        if current == task_id:
            return True
        if current in seen:
            continue
        seen.add(current)
        stack.extend(graph[current])
    return False


def blocking_prerequisites(prerequisites: list) -> list:
    """
    Prerequisite tasks that still hold up their follow-up.

    Recurring tasks never stay completed, so they never block.
    """
    return [
        task
        for task in prerequisites
        if not task.is_completed and not is_recurring(task)
    ]
