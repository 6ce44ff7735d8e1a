"""
Dependency lifecycle: construction, validation and readiness queries.

Every mutating operation locks the owning project row first, so cycle
detection and the insert it guards run as one unit per project. Checks
always run in the same order: self-dependency, cross-project, cycle,
duplicate. Nothing is flushed until all of them pass.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from taskgraph.exceptions import (
    CycleError,
    DependencyValidationError,
    DuplicateEdgeError,
    NotFoundError,
    TaskGraphException,
)
from taskgraph.logging_config import get_logger
from taskgraph.models import DependencyType, Project, Task, TaskDependency, check_endpoints
from taskgraph.services.graph import DependencyGraph, build_project_graph

logger = get_logger(__name__)


@dataclass
class DependencySpec:
    """One requested edge in a bulk create."""
    dependent_task_id: uuid.UUID
    prerequisite_task_id: uuid.UUID
    dependency_type: DependencyType = DependencyType.FINISH_TO_START
    lag_hours: int = 0
    notes: str | None = None


@dataclass
class BulkFailure:
    index: int
    error_code: str
    message: str
    # Set for bulk creates
    spec: DependencySpec | None = None
    # Set for bulk type changes
    dependency_id: uuid.UUID | None = None


@dataclass
class BulkResult:
    created: list[TaskDependency] = field(default_factory=list)
    failed: list[BulkFailure] = field(default_factory=list)


@dataclass
class BulkUpdateResult:
    updated: list[TaskDependency] = field(default_factory=list)
    failed: list[BulkFailure] = field(default_factory=list)


@dataclass
class ReactivationResult:
    reactivated: list[TaskDependency] = field(default_factory=list)
    # Edges left inactive because they would now close a cycle
    skipped: list[TaskDependency] = field(default_factory=list)


@dataclass
class DependencyStatistics:
    total: int
    active: int
    inactive: int
    critical: int
    by_type: dict[DependencyType, int]


@dataclass
class GraphValidationResult:
    """Integrity report for one project's dependency edges."""
    project_id: uuid.UUID
    cycles: list[list[uuid.UUID]] = field(default_factory=list)
    self_dependencies: list[uuid.UUID] = field(default_factory=list)
    cross_project: list[uuid.UUID] = field(default_factory=list)
    dangling: list[uuid.UUID] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not (self.cycles or self.self_dependencies or self.cross_project or self.dangling)


# =============================================================================
# Construction
# =============================================================================

def _check_cycle(graph: DependencyGraph, dependent: Task, prerequisite: Task) -> None:
    path = graph.dependency_path(prerequisite.id, dependent.id)
    if path is None:
        return
    closed = [dependent.id] + path
    raise CycleError(
        [str(task_id) for task_id in closed],
        dependent=dependent.title,
        prerequisite=prerequisite.title,
        labels=[graph.label(task_id) for task_id in closed],
    )


def new_dependency(
    dependent: Task,
    prerequisite: Task,
    dependency_type: DependencyType | None = DependencyType.FINISH_TO_START,
    *,
    lag_hours: int = 0,
    notes: str | None = None,
    graph: DependencyGraph | None = None,
) -> TaskDependency:
    """
    Build a validated dependency edge without persisting it.

    The endpoint checks always run. Cycle and duplicate checks need the
    project's current edges and run when ``graph`` is given.

    Raises:
        SelfDependencyError, CrossProjectError, CycleError, DuplicateEdgeError
    """
    dependency_type = dependency_type or DependencyType.FINISH_TO_START

    check_endpoints(dependent, prerequisite)
    if graph is not None:
        _check_cycle(graph, dependent, prerequisite)
        if graph.has_dependency(dependent.id, prerequisite.id, dependency_type):
            raise DuplicateEdgeError(dependent.title, prerequisite.title, dependency_type.display_name)

    dependency = TaskDependency(
        dependent_task_id=dependent.id,
        prerequisite_task_id=prerequisite.id,
        project_id=dependent.project_id,
        dependency_type=dependency_type,
        lag_hours=lag_hours,
        notes=notes,
    )
    dependency.dependent_task = dependent
    dependency.prerequisite_task = prerequisite
    return dependency


# =============================================================================
# Lookups
# =============================================================================

async def _get_task(session: AsyncSession, task_id: uuid.UUID, resource: str = "Task") -> Task:
    task = await session.get(Task, task_id)
    if not task:
        raise NotFoundError(resource, str(task_id))
    return task


def project_lock_statement(project_id: uuid.UUID):
    """SELECT ... FOR UPDATE on the project row."""
    return select(Project).where(Project.id == project_id).with_for_update()


async def lock_project(session: AsyncSession, project_id: uuid.UUID) -> Project:
    """Serialise writers on one project's dependency set for the rest of the transaction."""
    result = await session.execute(project_lock_statement(project_id))
    project = result.scalars().first()
    if not project:
        raise NotFoundError("Project", str(project_id))
    return project


async def _find_edge(
    session: AsyncSession,
    dependent_task_id: uuid.UUID,
    prerequisite_task_id: uuid.UUID,
    dependency_type: DependencyType,
) -> TaskDependency | None:
    result = await session.execute(
        select(TaskDependency).where(
            TaskDependency.dependent_task_id == dependent_task_id,
            TaskDependency.prerequisite_task_id == prerequisite_task_id,
            TaskDependency.dependency_type == dependency_type,
        )
    )
    return result.scalars().first()


async def get_dependency(session: AsyncSession, dependency_id: uuid.UUID) -> TaskDependency:
    dependency = await session.get(TaskDependency, dependency_id)
    if not dependency:
        raise NotFoundError("Dependency", str(dependency_id))
    return dependency


async def list_dependencies(
    session: AsyncSession,
    project_id: uuid.UUID | None = None,
    task_id: uuid.UUID | None = None,
    active: bool | None = None,
) -> list[TaskDependency]:
    """
    List dependencies.

    Optionally filter by:
    - project_id: all edges within a project
    - task_id: edges where the task is dependent OR prerequisite
    - active: only active (True) or inactive (False) edges
    """
    query = select(TaskDependency)
    if project_id:
        query = query.where(TaskDependency.project_id == project_id)
    if task_id:
        query = query.where(
            (TaskDependency.dependent_task_id == task_id)
            | (TaskDependency.prerequisite_task_id == task_id)
        )
    if active is not None:
        query = query.where(TaskDependency.active == active)

    result = await session.execute(query.order_by(TaskDependency.created_at))
    return list(result.scalars().all())


# =============================================================================
# Lifecycle
# =============================================================================

async def create_dependency(
    session: AsyncSession,
    dependent_task_id: uuid.UUID,
    prerequisite_task_id: uuid.UUID,
    dependency_type: DependencyType = DependencyType.FINISH_TO_START,
    lag_hours: int = 0,
    notes: str | None = None,
) -> TaskDependency:
    """
    Create a dependency, or reactivate an identical inactive one.

    Raises:
        NotFoundError: either task does not exist
        SelfDependencyError, CrossProjectError, CycleError, DuplicateEdgeError
    """
    dependent = await _get_task(session, dependent_task_id, "Dependent task")
    prerequisite = await _get_task(session, prerequisite_task_id, "Prerequisite task")

    try:
        check_endpoints(dependent, prerequisite)
        await lock_project(session, dependent.project_id)
        graph = await build_project_graph(session, dependent.project_id)

        existing = await _find_edge(session, dependent.id, prerequisite.id, dependency_type)
        if existing is not None and not existing.active:
            _check_cycle(graph, dependent, prerequisite)
            existing.active = True
            existing.lag_hours = lag_hours
            existing.notes = notes
            existing.updated_at = datetime.utcnow()
            await session.flush()
            logger.info(f"Reactivated dependency: {existing.description()}")
            return existing

        dependency = new_dependency(
            dependent,
            prerequisite,
            dependency_type,
            lag_hours=lag_hours,
            notes=notes,
            graph=graph,
        )
    except DependencyValidationError as exc:
        logger.warning(
            f"Rejected dependency {prerequisite.title} -> {dependent.title} "
            f"({dependency_type.short_code}): {exc.error_code}"
        )
        raise

    session.add(dependency)
    await session.flush()

    logger.info(
        f"Created dependency: {dependency.description()} "
        f"(project={dependency.project_id})"
    )
    return dependency


async def update_dependency(
    session: AsyncSession,
    dependency_id: uuid.UUID,
    dependency_type: DependencyType | None = None,
    **changes,
) -> TaskDependency:
    """
    Change type, lag or notes of an edge; endpoints are immutable.

    ``changes`` takes ``lag_hours`` and ``notes``. Only keys that are passed
    are applied, so ``notes=None`` clears the notes. Lag cannot be null and
    ``lag_hours=None`` leaves it unchanged.
    """
    unknown = set(changes) - {"lag_hours", "notes"}
    if unknown:
        raise TypeError(f"update_dependency() got unexpected fields: {sorted(unknown)}")

    dependency = await get_dependency(session, dependency_id)
    await lock_project(session, dependency.project_id)

    if dependency_type is not None and dependency_type != dependency.dependency_type:
        dependent = dependency.dependent_task
        prerequisite = dependency.prerequisite_task
        if await _find_edge(session, dependent.id, prerequisite.id, dependency_type):
            logger.warning(
                f"Rejected type change on {dependency.description()}: "
                f"{dependency_type.short_code} edge already exists"
            )
            raise DuplicateEdgeError(dependent.title, prerequisite.title, dependency_type.display_name)

        if dependency.active:
            graph = await build_project_graph(session, dependency.project_id)
            graph.remove_dependency(dependency)
            _check_cycle(graph, dependent, prerequisite)

        dependency.dependency_type = dependency_type

    if changes.get("lag_hours") is not None:
        dependency.lag_hours = changes["lag_hours"]
    if "notes" in changes:
        dependency.notes = changes["notes"]

    dependency.updated_at = datetime.utcnow()
    await session.flush()

    logger.info(f"Updated dependency: {dependency.description()}")
    return dependency


async def set_dependency_active(
    session: AsyncSession,
    dependency_id: uuid.UUID,
    active: bool,
) -> TaskDependency:
    """
    Activate or deactivate an edge.

    Deactivation never fails. Activation re-runs the cycle and duplicate
    checks against the edges that are active right now.
    """
    dependency = await get_dependency(session, dependency_id)
    if dependency.active == active:
        return dependency

    await lock_project(session, dependency.project_id)

    if active:
        dependent = dependency.dependent_task
        prerequisite = dependency.prerequisite_task
        graph = await build_project_graph(session, dependency.project_id)
        try:
            _check_cycle(graph, dependent, prerequisite)
            if graph.has_dependency(dependent.id, prerequisite.id, dependency.dependency_type):
                raise DuplicateEdgeError(
                    dependent.title, prerequisite.title, dependency.dependency_type.display_name
                )
        except DependencyValidationError as exc:
            logger.warning(f"Cannot reactivate {dependency.description()}: {exc.error_code}")
            raise

    dependency.active = active
    dependency.updated_at = datetime.utcnow()
    await session.flush()

    logger.info(f"{'Activated' if active else 'Deactivated'} dependency: {dependency.description()}")
    return dependency


async def delete_dependency(session: AsyncSession, dependency_id: uuid.UUID) -> TaskDependency:
    """Hard-delete an edge and return it (detached) for the caller's bookkeeping."""
    dependency = await get_dependency(session, dependency_id)
    await lock_project(session, dependency.project_id)

    description = dependency.description()
    await session.delete(dependency)
    await session.flush()

    logger.info(f"Deleted dependency: {description}")
    return dependency


async def create_bulk_dependencies(
    session: AsyncSession,
    specs: list[DependencySpec],
) -> BulkResult:
    """
    Create many edges, each in its own savepoint.

    A rejected item is logged and reported; the items before and after it
    are still created.
    """
    result = BulkResult()

    for index, spec in enumerate(specs):
        try:
            async with session.begin_nested():
                dependency = await create_dependency(
                    session,
                    spec.dependent_task_id,
                    spec.prerequisite_task_id,
                    spec.dependency_type,
                    spec.lag_hours,
                    spec.notes,
                )
        except TaskGraphException as exc:
            logger.warning(f"Bulk item {index} failed: {exc.message}")
            result.failed.append(
                BulkFailure(index=index, spec=spec, error_code=exc.error_code, message=exc.message)
            )
            continue
        result.created.append(dependency)

    logger.info(f"Bulk create: {len(result.created)} created, {len(result.failed)} failed")
    return result


async def update_dependency_types(
    session: AsyncSession,
    dependency_ids: list[uuid.UUID],
    new_type: DependencyType,
) -> BulkUpdateResult:
    """Change the type of many edges, each in its own savepoint."""
    result = BulkUpdateResult()

    for index, dependency_id in enumerate(dependency_ids):
        try:
            async with session.begin_nested():
                dependency = await update_dependency(session, dependency_id, new_type)
        except TaskGraphException as exc:
            logger.warning(f"Bulk type change {index} ({dependency_id}) failed: {exc.message}")
            result.failed.append(
                BulkFailure(
                    index=index,
                    dependency_id=dependency_id,
                    error_code=exc.error_code,
                    message=exc.message,
                )
            )
            continue
        result.updated.append(dependency)

    logger.info(
        f"Bulk type change to {new_type.short_code}: "
        f"{len(result.updated)} updated, {len(result.failed)} failed"
    )
    return result


async def remove_bulk_dependencies(
    session: AsyncSession,
    dependency_ids: list[uuid.UUID],
) -> list[TaskDependency]:
    """
    Hard-delete many edges and return the ones removed.

    Unknown ids are skipped. Every affected project is locked, in id
    order, before anything is deleted.
    """
    result = await session.execute(
        select(TaskDependency).where(TaskDependency.id.in_(dependency_ids))
    )
    edges = list(result.scalars().all())

    for project_id in sorted({edge.project_id for edge in edges}):
        await lock_project(session, project_id)

    for dependency in edges:
        await session.delete(dependency)
    await session.flush()

    logger.info(f"Bulk delete: {len(edges)} of {len(dependency_ids)} dependencies removed")
    return edges


async def remove_dependency_between(
    session: AsyncSession,
    dependent_task_id: uuid.UUID,
    prerequisite_task_id: uuid.UUID,
    dependency_type: DependencyType | None = None,
) -> list[TaskDependency]:
    """
    Delete the edges from one task to another, of any type unless one is given.

    Raises:
        NotFoundError: no matching edge
    """
    dependent = await _get_task(session, dependent_task_id, "Dependent task")
    await lock_project(session, dependent.project_id)

    query = select(TaskDependency).where(
        TaskDependency.dependent_task_id == dependent_task_id,
        TaskDependency.prerequisite_task_id == prerequisite_task_id,
    )
    if dependency_type is not None:
        query = query.where(TaskDependency.dependency_type == dependency_type)

    edges = list((await session.execute(query)).scalars().all())
    if not edges:
        raise NotFoundError("Dependency", f"{prerequisite_task_id} -> {dependent_task_id}")

    for dependency in edges:
        await session.delete(dependency)
    await session.flush()

    logger.info(
        f"Deleted {len(edges)} dependencies between "
        f"{prerequisite_task_id} -> {dependent_task_id}"
    )
    return edges


async def _incident_edges(
    session: AsyncSession,
    task_id: uuid.UUID,
    active: bool,
) -> list[TaskDependency]:
    result = await session.execute(
        select(TaskDependency).where(
            or_(
                TaskDependency.dependent_task_id == task_id,
                TaskDependency.prerequisite_task_id == task_id,
            ),
            TaskDependency.active == active,
        )
    )
    return list(result.scalars().all())


async def deactivate_task_dependencies(
    session: AsyncSession,
    task_id: uuid.UUID,
) -> list[TaskDependency]:
    """Deactivate every active edge touching a task (e.g. when it is put on hold)."""
    task = await _get_task(session, task_id)
    await lock_project(session, task.project_id)

    edges = await _incident_edges(session, task.id, active=True)
    now = datetime.utcnow()
    for dependency in edges:
        dependency.active = False
        dependency.updated_at = now
    await session.flush()

    logger.info(f"Deactivated {len(edges)} dependencies of task '{task.title}'")
    return edges


async def reactivate_task_dependencies(
    session: AsyncSession,
    task_id: uuid.UUID,
) -> ReactivationResult:
    """Reactivate every inactive edge touching a task, skipping those that would close a cycle."""
    task = await _get_task(session, task_id)
    await lock_project(session, task.project_id)

    graph = await build_project_graph(session, task.project_id)
    result = ReactivationResult()
    now = datetime.utcnow()

    for dependency in await _incident_edges(session, task.id, active=False):
        if graph.would_create_cycle(dependency.dependent_task_id, dependency.prerequisite_task_id):
            logger.warning(f"Left inactive, would close a cycle: {dependency.description()}")
            result.skipped.append(dependency)
            continue
        dependency.active = True
        dependency.updated_at = now
        graph.add_dependency(dependency)
        result.reactivated.append(dependency)

    await session.flush()
    logger.info(
        f"Reactivated {len(result.reactivated)} dependencies of task '{task.title}' "
        f"({len(result.skipped)} skipped)"
    )
    return result


# =============================================================================
# Readiness queries
# =============================================================================

async def get_prerequisite_dependencies(
    session: AsyncSession,
    task_id: uuid.UUID,
    include_inactive: bool = False,
) -> list[TaskDependency]:
    """Edges on which the task is the dependent (what it waits on)."""
    await _get_task(session, task_id)
    query = select(TaskDependency).where(TaskDependency.dependent_task_id == task_id)
    if not include_inactive:
        query = query.where(TaskDependency.active == True)  # noqa: E712
    result = await session.execute(query)
    return list(result.scalars().all())


async def get_dependent_dependencies(
    session: AsyncSession,
    task_id: uuid.UUID,
    include_inactive: bool = False,
) -> list[TaskDependency]:
    """Edges on which the task is the prerequisite (what waits on it)."""
    await _get_task(session, task_id)
    query = select(TaskDependency).where(TaskDependency.prerequisite_task_id == task_id)
    if not include_inactive:
        query = query.where(TaskDependency.active == True)  # noqa: E712
    result = await session.execute(query)
    return list(result.scalars().all())


async def get_blocking_dependencies(session: AsyncSession, task_id: uuid.UUID) -> list[TaskDependency]:
    prerequisites = await get_prerequisite_dependencies(session, task_id)
    return [dependency for dependency in prerequisites if dependency.is_blocking()]


async def can_task_start(session: AsyncSession, task_id: uuid.UUID) -> bool:
    return not await get_blocking_dependencies(session, task_id)


async def get_ready_tasks(session: AsyncSession, project_id: uuid.UUID) -> list[Task]:
    """Open tasks with no blocking incoming edge."""
    graph = await build_project_graph(session, project_id)
    return [
        task for task in graph.tasks
        if not task.completed
        and not any(dependency.is_blocking() for dependency in graph.incoming(task.id))
    ]


async def get_blocked_tasks(
    session: AsyncSession,
    project_id: uuid.UUID,
) -> list[tuple[Task, list[TaskDependency]]]:
    """Open tasks paired with the edges currently blocking them."""
    graph = await build_project_graph(session, project_id)
    blocked = []
    for task in graph.tasks:
        if task.completed:
            continue
        blocking = [dependency for dependency in graph.incoming(task.id) if dependency.is_blocking()]
        if blocking:
            blocked.append((task, blocking))
    return blocked


async def get_dependency_statistics(session: AsyncSession, project_id: uuid.UUID) -> DependencyStatistics:
    graph = await build_project_graph(session, project_id, active_only=False)
    dependencies = graph.dependencies

    by_type = {dependency_type: 0 for dependency_type in DependencyType}
    for dependency in dependencies:
        if dependency.active:
            by_type[dependency.dependency_type] += 1

    active = sum(by_type.values())
    return DependencyStatistics(
        total=len(dependencies),
        active=active,
        inactive=len(dependencies) - active,
        critical=sum(1 for d in dependencies if d.active and d.critical_path),
        by_type=by_type,
    )


async def get_dependency_path(
    session: AsyncSession,
    from_task_id: uuid.UUID,
    to_task_id: uuid.UUID,
) -> list[Task]:
    """Shortest chain of active edges from one task down to another; empty if none."""
    from_task = await _get_task(session, from_task_id)
    to_task = await _get_task(session, to_task_id)
    if from_task.project_id != to_task.project_id:
        return []

    graph = await build_project_graph(session, from_task.project_id)
    return [graph.task(task_id) for task_id in graph.shortest_dependency_path(from_task.id, to_task.id)]


async def validate_project_graph(session: AsyncSession, project_id: uuid.UUID) -> GraphValidationResult:
    """
    Check a project's stored active edges against the graph invariants.

    Single-edge writes cannot break these, but bulk or direct data changes
    can, so this reports instead of raising.
    """
    if not await session.get(Project, project_id):
        raise NotFoundError("Project", str(project_id))

    tasks_result = await session.execute(select(Task).where(Task.project_id == project_id))
    tasks = list(tasks_result.scalars().all())
    task_ids = [task.id for task in tasks]

    deps_result = await session.execute(
        select(TaskDependency).where(
            or_(
                TaskDependency.project_id == project_id,
                TaskDependency.dependent_task_id.in_(task_ids),
            ),
            TaskDependency.active == True,  # noqa: E712
        )
    )

    result = GraphValidationResult(project_id=project_id)
    sound = []
    for dependency in deps_result.scalars().all():
        if dependency.dependent_task is None or dependency.prerequisite_task is None:
            result.dangling.append(dependency.id)
            result.errors.append(f"Dependency {dependency.id} references a missing task")
        elif dependency.dependent_task_id == dependency.prerequisite_task_id:
            result.self_dependencies.append(dependency.id)
            result.errors.append(f"Task '{dependency.dependent_task.title}' depends on itself")
        elif dependency.dependent_task.project_id != dependency.prerequisite_task.project_id:
            result.cross_project.append(dependency.id)
            result.errors.append(f"{dependency.description()} crosses projects")
        else:
            sound.append(dependency)

    graph = DependencyGraph.from_dependencies(tasks, sound, project_id)
    for cycle in graph.find_cycles():
        result.cycles.append(cycle)
        chain = " -> ".join(graph.label(task_id) for task_id in cycle + cycle[:1])
        result.errors.append(f"Cycle: {chain}")

    if result.valid:
        logger.debug(f"Project {project_id} dependency graph is valid")
    else:
        logger.warning(f"Project {project_id} dependency graph has {len(result.errors)} problem(s)")
    return result
