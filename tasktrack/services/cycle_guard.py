"""Cycle detection for the task dependency graph."""

from __future__ import annotations

from collections import deque
from typing import Callable, Hashable, Iterable, Mapping, Union

EdgeLookup = Union[Mapping[Hashable, Iterable[Hashable]], Callable[[Hashable], Iterable[Hashable]]]


def _outgoing(edges: EdgeLookup, node: Hashable) -> Iterable[Hashable]:
    if callable(edges):
        return edges(node)
    return edges.get(node, ())


def has_path(edges: EdgeLookup, from_id: Hashable, to_id: Hashable) -> bool:
    """BFS over outgoing (depends-on) edges from ``from_id`` looking for ``to_id``."""
    visited: set[Hashable] = set()
    queue = deque([from_id])
    while queue:
        current = queue.popleft()
        if current == to_id:
            return True
        if current in visited:
            continue
        visited.add(current)
        queue.extend(n for n in _outgoing(edges, current) if n not in visited)
    return False


def would_create_cycle(task_id: Hashable, depends_on_task_id: Hashable, edges: EdgeLookup) -> bool:
    """
    True if adding ``task_id -> depends_on_task_id`` closes a cycle.

    That is the case iff ``task_id`` is already reachable from
    ``depends_on_task_id``. The direct reverse edge is just the one-hop case;
    transitive cycles (A -> B -> C -> A) are found by the same search.
    """
    return has_path(edges, depends_on_task_id, task_id)
