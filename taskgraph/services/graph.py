"""
Graph operations using NetworkX.

This module handles:
- Materialising a project's active dependency edges as one graph
- Cycle detection for dependency validation
- Traversal queries (transitive prerequisites/dependents, paths)
- Weighted longest chain over critical path weights
"""

import uuid
from typing import Iterable

import networkx as nx
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from taskgraph.exceptions import CycleError
from taskgraph.models import DependencyType, Task, TaskDependency


class DependencyGraph:
    """
    Adjacency structure for one project's dependency edges.

    Nodes are task IDs (carrying the Task under the "task" attribute).
    Edges go from prerequisite -> dependent and are keyed by dependency
    type, so two tasks may be joined by several edges of different types.
    """

    def __init__(self, project_id: uuid.UUID | None = None):
        self.project_id = project_id
        self._graph = nx.MultiDiGraph()

    @classmethod
    def from_dependencies(
        cls,
        tasks: Iterable[Task],
        dependencies: Iterable[TaskDependency],
        project_id: uuid.UUID | None = None,
        active_only: bool = True,
    ) -> "DependencyGraph":
        graph = cls(project_id)
        for task in tasks:
            graph.add_task(task)
        for dependency in dependencies:
            if active_only and not dependency.active:
                continue
            graph.add_dependency(dependency)
        return graph

    # =========================================================================
    # Mutation
    # =========================================================================

    def add_task(self, task: Task) -> None:
        self._graph.add_node(task.id, task=task)

    def add_dependency(self, dependency: TaskDependency) -> None:
        self._graph.add_edge(
            dependency.prerequisite_task_id,
            dependency.dependent_task_id,
            key=dependency.dependency_type,
            dependency=dependency,
            weight=dependency.critical_path_weight(),
        )

    def remove_dependency(self, dependency: TaskDependency) -> None:
        if self._graph.has_edge(
            dependency.prerequisite_task_id,
            dependency.dependent_task_id,
            key=dependency.dependency_type,
        ):
            self._graph.remove_edge(
                dependency.prerequisite_task_id,
                dependency.dependent_task_id,
                key=dependency.dependency_type,
            )

    # =========================================================================
    # Lookups
    # =========================================================================

    def __contains__(self, task_id: uuid.UUID) -> bool:
        return task_id in self._graph

    def __len__(self) -> int:
        return self._graph.number_of_nodes()

    def task(self, task_id: uuid.UUID) -> Task | None:
        if task_id not in self._graph:
            return None
        return self._graph.nodes[task_id].get("task")

    @property
    def tasks(self) -> list[Task]:
        return [data["task"] for _, data in self._graph.nodes(data=True) if "task" in data]

    @property
    def dependencies(self) -> list[TaskDependency]:
        return [data["dependency"] for _, _, data in self._graph.edges(data=True)]

    def label(self, task_id: uuid.UUID) -> str:
        """Task title for messages, falling back to the ID."""
        task = self.task(task_id)
        return task.title if task is not None else str(task_id)

    def pre_dependencies(self, task_id: uuid.UUID) -> set[uuid.UUID]:
        """Tasks that task_id directly depends on."""
        if task_id not in self._graph:
            return set()
        return set(self._graph.predecessors(task_id))

    def dependents(self, task_id: uuid.UUID) -> set[uuid.UUID]:
        """Tasks that directly depend on task_id."""
        if task_id not in self._graph:
            return set()
        return set(self._graph.successors(task_id))

    def incoming(self, task_id: uuid.UUID) -> list[TaskDependency]:
        """Edges on which task_id is the dependent."""
        if task_id not in self._graph:
            return []
        return [data["dependency"] for _, _, data in self._graph.in_edges(task_id, data=True)]

    def outgoing(self, task_id: uuid.UUID) -> list[TaskDependency]:
        """Edges on which task_id is the prerequisite."""
        if task_id not in self._graph:
            return []
        return [data["dependency"] for _, _, data in self._graph.out_edges(task_id, data=True)]

    def has_dependency(
        self,
        dependent_id: uuid.UUID,
        prerequisite_id: uuid.UUID,
        dependency_type: DependencyType,
    ) -> bool:
        return self._graph.has_edge(prerequisite_id, dependent_id, key=dependency_type)

    # =========================================================================
    # Cycle detection
    # =========================================================================

    def dependency_path(
        self,
        from_task_id: uuid.UUID,
        to_task_id: uuid.UUID,
    ) -> list[uuid.UUID] | None:
        """
        Find a chain by which from_task transitively depends on to_task.

        Depth-first search over pre-dependencies with an explicit stack and
        a visited set, so every task is expanded at most once (O(V+E)) and
        the search terminates even if the graph already holds a cycle.

        Returns the chain in "depends on" order, from_task first and
        to_task last, or None when no such chain exists.
        """
        if from_task_id == to_task_id:
            return [from_task_id]
        if from_task_id not in self._graph or to_task_id not in self._graph:
            return None

        came_from: dict[uuid.UUID, uuid.UUID] = {}
        visited = {from_task_id}
        stack = [from_task_id]

        while stack:
            current = stack.pop()
            for prerequisite in self._graph.predecessors(current):
                if prerequisite in visited:
                    continue
                visited.add(prerequisite)
                came_from[prerequisite] = current
                if prerequisite == to_task_id:
                    path = [to_task_id]
                    while path[-1] != from_task_id:
                        path.append(came_from[path[-1]])
                    path.reverse()
                    return path
                stack.append(prerequisite)

        return None

    def has_transitive_dependency(self, task_a: uuid.UUID, task_b: uuid.UUID) -> bool:
        """Whether task_a depends on task_b through any chain of active edges."""
        return self.dependency_path(task_a, task_b) is not None

    def would_create_cycle(self, dependent_id: uuid.UUID, prerequisite_id: uuid.UUID) -> bool:
        """A new edge dependent -> prerequisite closes a cycle iff prerequisite already depends on dependent."""
        return self.has_transitive_dependency(prerequisite_id, dependent_id)

    def find_cycles(self) -> list[list[uuid.UUID]]:
        """
        Report existing cycles, one per strongly connected component.

        Each cycle is listed in "depends on" order without repeating the
        first task. Only reachable through bulk or direct data manipulation,
        since single-edge inserts are checked.
        """
        cycles = []
        for component in nx.strongly_connected_components(self._graph):
            if len(component) == 1:
                node = next(iter(component))
                if not self._graph.has_edge(node, node):
                    continue
            subgraph = self._graph.subgraph(component)
            edges = nx.find_cycle(subgraph)
            # Edges run prerequisite -> dependent; reverse for "depends on" order
            cycles.append([edge[1] for edge in reversed(edges)])
        return cycles

    def topological_order(self) -> list[uuid.UUID]:
        """
        Tasks ordered so every prerequisite precedes its dependents.

        Raises:
            CycleError: if the graph contains a cycle.
        """
        try:
            return list(nx.topological_sort(self._graph))
        except nx.NetworkXUnfeasible:
            cycle = self.find_cycles()[0]
            closed = cycle + cycle[:1]
            raise CycleError(
                [str(t) for t in closed],
                labels=[self.label(t) for t in closed],
            )

    # =========================================================================
    # Traversal queries
    # =========================================================================

    def all_prerequisites(self, task_id: uuid.UUID) -> set[uuid.UUID]:
        """Every task that task_id transitively depends on."""
        if task_id not in self._graph:
            return set()
        return nx.ancestors(self._graph, task_id)

    def all_dependents(self, task_id: uuid.UUID) -> set[uuid.UUID]:
        """Every task that transitively depends on task_id."""
        if task_id not in self._graph:
            return set()
        return nx.descendants(self._graph, task_id)

    def shortest_dependency_path(
        self,
        from_task_id: uuid.UUID,
        to_task_id: uuid.UUID,
    ) -> list[uuid.UUID]:
        """
        Shortest chain of edges leading from from_task to to_task.

        Follows prerequisite -> dependent direction, so the result reads in
        execution order. Empty when to_task does not depend on from_task.
        """
        if from_task_id not in self._graph or to_task_id not in self._graph:
            return []
        try:
            return nx.shortest_path(self._graph, from_task_id, to_task_id)
        except nx.NetworkXNoPath:
            return []

    def heaviest_chain(self) -> tuple[list[uuid.UUID], float]:
        """
        Longest path by critical path weight.

        Parallel edges between the same two tasks count once, with their
        largest weight. SOFT and inactive edges weigh 0, so they never
        lengthen the chain.

        Returns:
            Tuple of (task IDs in execution order, total weight)
        """
        self.topological_order()  # raises CycleError on cyclic graphs

        collapsed = nx.DiGraph()
        collapsed.add_nodes_from(self._graph.nodes)
        for prerequisite, dependent, data in self._graph.edges(data=True):
            weight = data["weight"]
            if collapsed.has_edge(prerequisite, dependent):
                weight = max(weight, collapsed[prerequisite][dependent]["weight"])
            collapsed.add_edge(prerequisite, dependent, weight=weight)

        chain = nx.dag_longest_path(collapsed, weight="weight", default_weight=0)
        total = sum(
            collapsed[chain[i]][chain[i + 1]]["weight"]
            for i in range(len(chain) - 1)
        )
        return chain, float(total)

    def most_connected(self, limit: int = 10) -> list[tuple[uuid.UUID, int]]:
        """Tasks with the most incident edges, busiest first."""
        ranked = sorted(self._graph.degree, key=lambda item: item[1], reverse=True)
        return [(task_id, degree) for task_id, degree in ranked[:limit]]


async def build_project_graph(
    session: AsyncSession,
    project_id: uuid.UUID,
    active_only: bool = True,
) -> DependencyGraph:
    """
    Build a DependencyGraph from all tasks and dependencies in a project.

    Returns a graph where:
    - Nodes are task IDs
    - Edges go from prerequisite -> dependent
    """
    # Fetch all tasks in the project
    tasks_result = await session.execute(
        select(Task).where(Task.project_id == project_id)
    )
    tasks = list(tasks_result.scalars().all())

    # Fetch all dependencies whose dependent task is in this project
    task_ids = [task.id for task in tasks]
    deps_query = select(TaskDependency).where(
        TaskDependency.dependent_task_id.in_(task_ids)
    )
    if active_only:
        deps_query = deps_query.where(TaskDependency.active == True)  # noqa: E712
    deps_result = await session.execute(deps_query)
    dependencies = list(deps_result.scalars().all())

    return DependencyGraph.from_dependencies(tasks, dependencies, project_id, active_only)
