"""
Critical Path Method (CPM) implementation.

Calculates, in hours from project start:
- Forward pass: Earliest Start (ES), Earliest Finish (EF)
- Backward pass: Latest Start (LS), Latest Finish (LF)
- Float: LS - ES
- Critical Path: tasks whose float is within tolerance, and the edges
  between them whose constraint is tight

Each edge constrains one event of the dependent task (its start or its
finish) relative to one event of the prerequisite, shifted by lag_hours:

    FS / BLOCKING   ES(d) >= EF(p) + lag
    SS              ES(d) >= ES(p) + lag
    FF              EF(d) >= EF(p) + lag
    SF              EF(d) >= ES(p) + lag

SOFT and inactive edges never take part.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from taskgraph.config import get_settings
from taskgraph.exceptions import CycleError, NotFoundError
from taskgraph.logging_config import get_logger
from taskgraph.models import Project, Task, TaskDependency, TaskEvent
from taskgraph.services.dependencies import lock_project
from taskgraph.services.graph import DependencyGraph, build_project_graph

logger = get_logger(__name__)


@dataclass
class TaskAnalysis:
    """Analysis results for a single task."""
    task_id: uuid.UUID
    title: str
    duration_hours: float
    # Forward pass results
    earliest_start: float
    earliest_finish: float
    # Backward pass results
    latest_start: float
    latest_finish: float
    # Float
    total_float: float  # Hours of float (0 = critical)
    is_critical: bool
    # Absolute times, when the project has a dated task to anchor on
    start_at: datetime | None = None
    finish_at: datetime | None = None


@dataclass
class ProjectAnalysis:
    """Complete CPM analysis for a project."""
    project_id: uuid.UUID | None
    project_duration_hours: float  # Latest task finish
    task_analyses: list[TaskAnalysis]
    critical_path_task_ids: list[uuid.UUID]
    critical_dependency_ids: list[uuid.UUID]
    heaviest_chain: list[uuid.UUID] = field(default_factory=list)
    heaviest_chain_weight: float = 0.0
    project_start: datetime | None = None
    project_finish: datetime | None = None


def _duration(task: Task, default_hours: float) -> float:
    if task.estimated_duration_hours is None:
        return default_hours
    return float(task.estimated_duration_hours)


def _required_start(
    dependency: TaskDependency,
    es: dict[uuid.UUID, float],
    ef: dict[uuid.UUID, float],
    dependent_duration: float,
) -> float:
    """Earliest start of the dependent allowed by one edge."""
    policy = dependency.dependency_type.policy
    prerequisite = dependency.prerequisite_task_id
    anchor = ef[prerequisite] if policy.prerequisite_event is TaskEvent.FINISH else es[prerequisite]
    bound = anchor + (dependency.lag_hours or 0)
    if policy.dependent_event is TaskEvent.FINISH:
        bound -= dependent_duration
    return bound


def _allowed_finish(
    dependency: TaskDependency,
    ls: dict[uuid.UUID, float],
    lf: dict[uuid.UUID, float],
    prerequisite_duration: float,
) -> float:
    """Latest finish of the prerequisite allowed by one edge."""
    policy = dependency.dependency_type.policy
    dependent = dependency.dependent_task_id
    late = lf[dependent] if policy.dependent_event is TaskEvent.FINISH else ls[dependent]
    bound = late - (dependency.lag_hours or 0)
    if policy.prerequisite_event is TaskEvent.START:
        bound += prerequisite_duration
    return bound


def calculate_critical_path(
    tasks: list[Task],
    dependencies: list[TaskDependency],
    project_id: uuid.UUID | None = None,
    default_duration_hours: float | None = None,
    tolerance_hours: float | None = None,
) -> ProjectAnalysis:
    """
    Calculate CPM forward and backward passes over already-loaded rows.

    Raises:
        CycleError: the scheduling edges contain a cycle.
    """
    settings = get_settings()
    if default_duration_hours is None:
        default_duration_hours = settings.default_task_duration_hours
    if tolerance_hours is None:
        tolerance_hours = settings.critical_float_tolerance_hours

    task_ids = {task.id for task in tasks}
    scheduling_edges = [
        dependency for dependency in dependencies
        if dependency.active
        and dependency.dependency_type.is_critical_path_relevant
        and dependency.dependent_task_id in task_ids
        and dependency.prerequisite_task_id in task_ids
    ]
    graph = DependencyGraph.from_dependencies(tasks, scheduling_edges, project_id)

    # Get topological order
    try:
        topo_order = graph.topological_order()
    except CycleError as exc:
        logger.error(f"Cycle detected in project {project_id}: {' -> '.join(exc.labels)}")
        raise

    duration = {task.id: _duration(task, default_duration_hours) for task in tasks}

    # =========================================================================
    # Forward Pass: Calculate ES and EF
    # =========================================================================
    es: dict[uuid.UUID, float] = {}
    ef: dict[uuid.UUID, float] = {}
    for task_id in topo_order:
        start = 0.0
        for dependency in graph.incoming(task_id):
            start = max(start, _required_start(dependency, es, ef, duration[task_id]))
        es[task_id] = start
        ef[task_id] = start + duration[task_id]

    # Project duration (max EF across all tasks)
    project_duration = max(ef.values(), default=0.0)

    # =========================================================================
    # Backward Pass: Calculate LF and LS
    # =========================================================================
    ls: dict[uuid.UUID, float] = {}
    lf: dict[uuid.UUID, float] = {}
    for task_id in reversed(topo_order):
        finish = project_duration
        for dependency in graph.outgoing(task_id):
            finish = min(finish, _allowed_finish(dependency, ls, lf, duration[task_id]))
        lf[task_id] = finish
        ls[task_id] = finish - duration[task_id]

    # =========================================================================
    # Calculate Float and Identify Critical Path
    # =========================================================================
    dated = [task.start_date for task in tasks if task.start_date is not None]
    project_start = datetime.combine(min(dated), time.min) if dated else None

    task_analyses = []
    critical_ids = []
    for task_id in topo_order:
        total_float = ls[task_id] - es[task_id]
        is_critical = total_float <= tolerance_hours
        if is_critical:
            critical_ids.append(task_id)

        analysis = TaskAnalysis(
            task_id=task_id,
            title=graph.label(task_id),
            duration_hours=duration[task_id],
            earliest_start=es[task_id],
            earliest_finish=ef[task_id],
            latest_start=ls[task_id],
            latest_finish=lf[task_id],
            total_float=total_float,
            is_critical=is_critical,
        )
        if project_start is not None:
            analysis.start_at = project_start + timedelta(hours=es[task_id])
            analysis.finish_at = project_start + timedelta(hours=ef[task_id])
        task_analyses.append(analysis)

    # A critical edge joins two critical tasks and is the one holding the dependent back
    critical_set = set(critical_ids)
    critical_dependency_ids = [
        dependency.id for dependency in scheduling_edges
        if dependency.prerequisite_task_id in critical_set
        and dependency.dependent_task_id in critical_set
        and abs(
            _required_start(dependency, es, ef, duration[dependency.dependent_task_id])
            - es[dependency.dependent_task_id]
        ) <= tolerance_hours
    ]

    chain, chain_weight = graph.heaviest_chain()

    return ProjectAnalysis(
        project_id=project_id,
        project_duration_hours=project_duration,
        task_analyses=task_analyses,
        critical_path_task_ids=critical_ids,
        critical_dependency_ids=critical_dependency_ids,
        heaviest_chain=chain,
        heaviest_chain_weight=chain_weight,
        project_start=project_start,
        project_finish=(
            project_start + timedelta(hours=project_duration) if project_start is not None else None
        ),
    )


async def analyze_critical_path(
    session: AsyncSession,
    project_id: uuid.UUID,
) -> ProjectAnalysis | None:
    """
    Perform complete CPM analysis on a project.

    Returns None for a project without tasks.
    """
    if not await session.get(Project, project_id):
        raise NotFoundError("Project", str(project_id))

    graph = await build_project_graph(session, project_id)
    if not graph.tasks:
        return None

    return calculate_critical_path(graph.tasks, graph.dependencies, project_id)


async def update_critical_path_markers(
    session: AsyncSession,
    project_id: uuid.UUID,
) -> int:
    """
    Write the critical_path flag on every edge of a project.

    Returns the number of edges marked critical.
    """
    await lock_project(session, project_id)

    tasks_result = await session.execute(select(Task).where(Task.project_id == project_id))
    tasks = list(tasks_result.scalars().all())
    deps_result = await session.execute(
        select(TaskDependency).where(TaskDependency.project_id == project_id)
    )
    dependencies = list(deps_result.scalars().all())

    critical = set()
    if tasks:
        analysis = calculate_critical_path(tasks, dependencies, project_id)
        critical = set(analysis.critical_dependency_ids)

    changed = 0
    for dependency in dependencies:
        flag = dependency.id in critical
        if dependency.critical_path != flag:
            dependency.critical_path = flag
            changed += 1
    await session.flush()

    logger.info(
        f"Critical path markers for project {project_id}: "
        f"{len(critical)} critical, {changed} changed"
    )
    return len(critical)
