"""
Unit tests for circular dependency detection.

Edges read ``task -> depends_on``; adding ``a -> b`` closes a cycle iff
``a`` is reachable from ``b``.
"""

from __future__ import annotations

from collections import defaultdict

from tasktrack.services.cycle_guard import has_path, would_create_cycle


class TestHasPath:
    def test_direct_edge(self):
        assert has_path({1: [2]}, 1, 2) is True

    def test_transitive_path(self):
        adj = {1: [2], 2: [3], 3: [4]}
        assert has_path(adj, 1, 4) is True

    def test_edges_are_directed(self):
        adj = {1: [2], 2: [3]}
        assert has_path(adj, 3, 1) is False

    def test_node_reaches_itself(self):
        assert has_path({}, 7, 7) is True

    def test_callable_lookup(self):
        adj = {"a": ["b"], "b": ["c"]}
        calls: list[str] = []

        def lookup(node):
            calls.append(node)
            return adj.get(node, [])

        assert has_path(lookup, "a", "c") is True
        assert "a" in calls

    def test_diamond_visits_shared_node_once(self):
        adj = {1: [2, 3], 2: [4], 3: [4], 4: []}
        seen: list[int] = []

        def lookup(node):
            seen.append(node)
            return adj.get(node, [])

        assert has_path(lookup, 1, 99) is False
        assert seen.count(4) == 1


class TestWouldCreateCycle:
    def test_reverse_edge_is_a_cycle(self):
        # A -> B exists; B -> A would close it
        assert would_create_cycle(2, 1, {1: [2]}) is True

    def test_three_node_cycle(self):
        # A -> B -> C; C -> A closes the loop
        adj = {"A": ["B"], "B": ["C"]}
        assert would_create_cycle("C", "A", adj) is True

    def test_self_edge_reported_as_cycle(self):
        assert would_create_cycle(1, 1, {}) is True

    def test_independent_edge(self):
        adj = {1: [2], 3: [4]}
        assert would_create_cycle(1, 3, adj) is False

    def test_parallel_branches_are_fine(self):
        # A depends on B and C, B depends on C: still a DAG
        adj = {"A": ["B", "C"], "B": ["C"]}
        assert would_create_cycle("A", "C", adj) is False
        assert would_create_cycle("B", "C", adj) is False

    def test_long_chain_does_not_recurse(self):
        n = 20_000
        adj = defaultdict(list)
        for i in range(n):
            adj[i].append(i + 1)
        assert would_create_cycle(n, 0, adj) is True
        assert would_create_cycle(0, n, adj) is False
