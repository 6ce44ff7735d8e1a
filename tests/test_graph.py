"""
Tests for DependencyGraph traversal and cycle detection.
"""

import pytest

from taskgraph.exceptions import CycleError
from taskgraph.models import DependencyType, TaskDependency
from taskgraph.services.dependencies import new_dependency
from taskgraph.services.graph import DependencyGraph


def _raw_edge(dependent, prerequisite, dependency_type=DependencyType.FINISH_TO_START):
    """An edge that skips validation, as bulk data manipulation could produce."""
    dependency = TaskDependency(
        dependent_task_id=dependent.id,
        prerequisite_task_id=prerequisite.id,
        dependency_type=dependency_type,
    )
    dependency.dependent_task = dependent
    dependency.prerequisite_task = prerequisite
    return dependency


@pytest.fixture
def diamond(new_task):
    """
    design -> frame -> assembly
    design -> electronics -> assembly
    """
    design, frame, electronics, assembly = (
        new_task("Design"), new_task("Frame"), new_task("Electronics"), new_task("Assembly")
    )
    dependencies = [
        new_dependency(frame, design),
        new_dependency(electronics, design, DependencyType.START_TO_START),
        new_dependency(assembly, frame, DependencyType.BLOCKING),
        new_dependency(assembly, electronics),
    ]
    graph = DependencyGraph.from_dependencies([design, frame, electronics, assembly], dependencies)
    return graph, design, frame, electronics, assembly


class TestTraversal:
    def test_direct_neighbours(self, diamond):
        graph, design, frame, electronics, assembly = diamond

        assert graph.pre_dependencies(assembly.id) == {frame.id, electronics.id}
        assert graph.dependents(design.id) == {frame.id, electronics.id}
        assert graph.pre_dependencies(design.id) == set()

    def test_transitive(self, diamond):
        graph, design, frame, electronics, assembly = diamond

        assert graph.has_transitive_dependency(assembly.id, design.id)
        assert not graph.has_transitive_dependency(design.id, assembly.id)
        assert not graph.has_transitive_dependency(frame.id, electronics.id)
        assert graph.all_prerequisites(assembly.id) == {design.id, frame.id, electronics.id}
        assert graph.all_dependents(design.id) == {frame.id, electronics.id, assembly.id}

    def test_dependency_path(self, diamond):
        graph, design, frame, electronics, assembly = diamond

        path = graph.dependency_path(assembly.id, design.id)
        assert path[0] == assembly.id and path[-1] == design.id
        assert len(path) == 3
        assert graph.dependency_path(design.id, assembly.id) is None

    def test_shortest_path_in_execution_order(self, diamond):
        graph, design, frame, electronics, assembly = diamond

        path = graph.shortest_dependency_path(design.id, assembly.id)
        assert path[0] == design.id and path[-1] == assembly.id
        assert len(path) == 3
        assert graph.shortest_dependency_path(assembly.id, design.id) == []

    def test_topological_order(self, diamond):
        graph, design, frame, electronics, assembly = diamond

        order = graph.topological_order()
        assert order.index(design.id) < order.index(frame.id) < order.index(assembly.id)
        assert order.index(electronics.id) < order.index(assembly.id)

    def test_inactive_edges_are_left_out(self, new_task):
        a, b = new_task("A"), new_task("B")
        dependency = new_dependency(b, a)
        dependency.active = False
        graph = DependencyGraph.from_dependencies([a, b], [dependency])

        assert not graph.has_transitive_dependency(b.id, a.id)
        assert graph.dependencies == []

    def test_parallel_edges_of_different_types(self, new_task):
        a, b = new_task("A"), new_task("B")
        graph = DependencyGraph.from_dependencies(
            [a, b],
            [new_dependency(b, a), new_dependency(b, a, DependencyType.SOFT)],
        )

        assert graph.has_dependency(b.id, a.id, DependencyType.FINISH_TO_START)
        assert graph.has_dependency(b.id, a.id, DependencyType.SOFT)
        assert not graph.has_dependency(b.id, a.id, DependencyType.BLOCKING)
        assert len(graph.incoming(b.id)) == 2

    def test_most_connected(self, new_task):
        hub, a, b, c = new_task("Chassis"), new_task("A"), new_task("B"), new_task("C")
        graph = DependencyGraph.from_dependencies(
            [a, b, c, hub],
            [new_dependency(a, hub), new_dependency(b, hub), new_dependency(c, hub), new_dependency(c, a)],
        )

        ranked = graph.most_connected(2)
        assert ranked[0] == (hub.id, 3)
        assert ranked[1][1] == 2


class TestCycleDetection:
    """Cycle search must stay correct and terminate on damaged graphs."""

    def test_would_create_cycle(self, diamond):
        graph, design, frame, electronics, assembly = diamond

        assert graph.would_create_cycle(design.id, assembly.id)
        assert not graph.would_create_cycle(assembly.id, design.id)

    def test_self_is_reachable(self, diamond):
        graph, design, *_ = diamond
        assert graph.has_transitive_dependency(design.id, design.id)

    def test_terminates_on_existing_cycle(self, new_task):
        a, b, c, d = new_task("A"), new_task("B"), new_task("C"), new_task("D")
        graph = DependencyGraph.from_dependencies(
            [a, b, c, d],
            [_raw_edge(a, b), _raw_edge(b, c), _raw_edge(c, a)],
        )

        assert graph.has_transitive_dependency(a.id, c.id)
        assert not graph.has_transitive_dependency(a.id, d.id)

    def test_find_cycles(self, new_task):
        a, b, c, d = new_task("A"), new_task("B"), new_task("C"), new_task("D")
        graph = DependencyGraph.from_dependencies(
            [a, b, c, d],
            [_raw_edge(a, b), _raw_edge(b, c), _raw_edge(c, a), _raw_edge(d, a)],
        )

        cycles = graph.find_cycles()
        assert len(cycles) == 1
        assert set(cycles[0]) == {a.id, b.id, c.id}
        # Each listed task depends on the next one
        cycle = cycles[0]
        for current, following in zip(cycle, cycle[1:] + cycle[:1]):
            assert following in graph.pre_dependencies(current)

    def test_no_cycles_in_dag(self, diamond):
        graph, *_ = diamond
        assert graph.find_cycles() == []

    def test_topological_order_rejects_cycle(self, new_task):
        a, b = new_task("A"), new_task("B")
        graph = DependencyGraph.from_dependencies([a, b], [_raw_edge(a, b), _raw_edge(b, a)])

        with pytest.raises(CycleError) as exc_info:
            graph.topological_order()
        assert exc_info.value.error_code == "cycle_detected"
        assert exc_info.value.labels[0] == exc_info.value.labels[-1]

    def test_long_chain(self, new_task):
        tasks = [new_task(f"T{i}") for i in range(2000)]
        edges = [new_dependency(tasks[i + 1], tasks[i]) for i in range(len(tasks) - 1)]
        graph = DependencyGraph.from_dependencies(tasks, edges)

        assert graph.would_create_cycle(tasks[0].id, tasks[-1].id)
        assert len(graph.dependency_path(tasks[-1].id, tasks[0].id)) == len(tasks)


class TestHeaviestChain:
    def test_prefers_heavier_edges(self, diamond):
        graph, design, frame, electronics, assembly = diamond

        chain, weight = graph.heaviest_chain()
        # design -FS(5)-> frame -BLOCK(10)-> assembly beats SS(3) + FS(5)
        assert chain == [design.id, frame.id, assembly.id]
        assert weight == 15

    def test_soft_edges_add_nothing(self, new_task):
        a, b = new_task("A"), new_task("B")
        graph = DependencyGraph.from_dependencies([a, b], [new_dependency(b, a, DependencyType.SOFT)])

        _, weight = graph.heaviest_chain()
        assert weight == 0

    def test_parallel_edges_use_max_weight(self, new_task):
        a, b = new_task("A"), new_task("B")
        graph = DependencyGraph.from_dependencies(
            [a, b],
            [new_dependency(b, a, DependencyType.START_TO_FINISH), new_dependency(b, a, DependencyType.BLOCKING)],
        )

        chain, weight = graph.heaviest_chain()
        assert chain == [a.id, b.id]
        assert weight == 10

    def test_cycle_raises(self, new_task):
        a, b = new_task("A"), new_task("B")
        graph = DependencyGraph.from_dependencies([a, b], [_raw_edge(a, b), _raw_edge(b, a)])

        with pytest.raises(CycleError):
            graph.heaviest_chain()
