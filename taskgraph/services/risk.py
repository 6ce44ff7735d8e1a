"""
Deterministic schedule risk summary for a project's dependency graph.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum

from sqlalchemy.ext.asyncio import AsyncSession

from taskgraph.config import get_settings
from taskgraph.exceptions import NotFoundError
from taskgraph.logging_config import get_logger
from taskgraph.models import DependencyType, Project, Task, TaskDependency
from taskgraph.services.critical_path import calculate_critical_path
from taskgraph.services.graph import DependencyGraph, build_project_graph

logger = get_logger(__name__)

# Share of open tasks that may be blocked before it counts as a risk factor
BLOCKED_SHARE_THRESHOLD = 0.3
# Share of all tasks that may be critical before it counts as a risk factor
CRITICAL_SHARE_THRESHOLD = 0.5


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


@dataclass
class RiskAssessment:
    level: RiskLevel
    factors: list[str] = field(default_factory=list)
    metrics: dict[str, float] = field(default_factory=dict)
    high_risk_task_ids: list[uuid.UUID] = field(default_factory=list)


@dataclass
class ScheduleRecommendations:
    recommendations: list[str] = field(default_factory=list)
    parallelizable_task_ids: list[uuid.UUID] = field(default_factory=list)
    soft_dependency_task_ids: list[uuid.UUID] = field(default_factory=list)
    long_lag_dependency_ids: list[uuid.UUID] = field(default_factory=list)
    external_constraint_ids: list[uuid.UUID] = field(default_factory=list)
    # Lag on critical edges above the review threshold
    potential_time_reduction_hours: int = 0


def find_external_constraints(
    dependencies: list[TaskDependency],
    min_lag_hours: int,
) -> list[TaskDependency]:
    """Active hard edges whose lag is long enough to suggest an outside wait (shipping, vendors)."""
    return [
        dependency for dependency in dependencies
        if dependency.active
        and dependency.dependency_type.is_hard_constraint
        and (dependency.lag_hours or 0) >= min_lag_hours
    ]


def assess_project_risk(
    tasks: list[Task],
    dependencies: list[TaskDependency],
    external_constraint_lag_hours: int | None = None,
) -> RiskAssessment:
    """
    Grade a project's schedule risk from its dependency structure.

    - CRITICAL when the active edges contain a cycle
    - otherwise one point per factor: external constraints, a high share of
      blocked open tasks, more than half the tasks critical
    - two or more factors is HIGH, one is MEDIUM, none is LOW
    """
    if external_constraint_lag_hours is None:
        external_constraint_lag_hours = get_settings().external_constraint_lag_hours

    graph = DependencyGraph.from_dependencies(tasks, dependencies)
    factors: list[str] = []
    high_risk: list[uuid.UUID] = []
    metrics: dict[str, float] = {"task_count": len(tasks)}

    def flag(task_id: uuid.UUID) -> None:
        if task_id not in high_risk:
            high_risk.append(task_id)

    cycles = graph.find_cycles()
    metrics["cycle_count"] = len(cycles)
    if cycles:
        factors.append("Circular dependencies detected")
        for cycle in cycles:
            for task_id in cycle:
                flag(task_id)

    external = find_external_constraints(graph.dependencies, external_constraint_lag_hours)
    metrics["external_constraint_count"] = len(external)
    if external:
        factors.append("External dependencies with significant lead times")
        for dependency in external:
            flag(dependency.dependent_task_id)

    open_tasks = [task for task in tasks if not task.completed]
    blocked = [
        task for task in open_tasks
        if any(dependency.is_blocking() for dependency in graph.incoming(task.id))
    ]
    metrics["blocked_task_count"] = len(blocked)
    if open_tasks and len(blocked) > len(open_tasks) * BLOCKED_SHARE_THRESHOLD:
        factors.append("High share of blocked tasks")

    if cycles:
        # No schedule exists for a cyclic graph
        metrics["critical_task_count"] = 0
        metrics["project_duration_hours"] = 0.0
        level = RiskLevel.CRITICAL
    else:
        analysis = calculate_critical_path(tasks, graph.dependencies)
        metrics["critical_task_count"] = len(analysis.critical_path_task_ids)
        metrics["project_duration_hours"] = analysis.project_duration_hours
        if tasks and len(analysis.critical_path_task_ids) > len(tasks) * CRITICAL_SHARE_THRESHOLD:
            factors.append("Long critical chain")
            for task in blocked:
                if task.id in analysis.critical_path_task_ids:
                    flag(task.id)

        if len(factors) >= 2:
            level = RiskLevel.HIGH
        elif factors:
            level = RiskLevel.MEDIUM
        else:
            level = RiskLevel.LOW

    return RiskAssessment(level=level, factors=factors, metrics=metrics, high_risk_task_ids=high_risk)


async def analyze_project_risk(session: AsyncSession, project_id: uuid.UUID) -> RiskAssessment:
    if not await session.get(Project, project_id):
        raise NotFoundError("Project", str(project_id))

    graph = await build_project_graph(session, project_id)
    assessment = assess_project_risk(graph.tasks, graph.dependencies)

    logger.info(f"Risk for project {project_id}: {assessment.level.value} ({len(assessment.factors)} factors)")
    return assessment


def recommend_schedule_changes(
    tasks: list[Task],
    dependencies: list[TaskDependency],
    review_lag_hours: int | None = None,
    external_constraint_lag_hours: int | None = None,
) -> ScheduleRecommendations:
    """
    Suggest where a project's schedule could be tightened.

    Looks at open tasks with no hard edges (can run in parallel), open
    tasks held only by soft edges, edges with long lag, and external
    constraints worth ordering early. Only active edges are considered.
    """
    settings = get_settings()
    if review_lag_hours is None:
        review_lag_hours = settings.review_lag_hours
    if external_constraint_lag_hours is None:
        external_constraint_lag_hours = settings.schedule_external_constraint_lag_hours

    graph = DependencyGraph.from_dependencies(tasks, dependencies)
    result = ScheduleRecommendations()
    open_tasks = [task for task in tasks if not task.completed]

    for task in open_tasks:
        edges = graph.incoming(task.id) + graph.outgoing(task.id)
        if not any(edge.dependency_type.is_hard_constraint for edge in edges):
            result.parallelizable_task_ids.append(task.id)
    if result.parallelizable_task_ids:
        result.recommendations.append(
            f"Consider parallelizing {len(result.parallelizable_task_ids)} independent tasks"
        )

    for task in open_tasks:
        if any(edge.dependency_type == DependencyType.SOFT for edge in graph.incoming(task.id)):
            result.soft_dependency_task_ids.append(task.id)
    if result.soft_dependency_task_ids:
        result.recommendations.append(
            f"Review soft dependencies for {len(result.soft_dependency_task_ids)} tasks "
            f"- these could potentially start earlier"
        )

    for dependency in graph.dependencies:
        if (dependency.lag_hours or 0) > review_lag_hours:
            result.long_lag_dependency_ids.append(dependency.id)
            result.recommendations.append(
                f"Review lag time for dependency: "
                f"{graph.label(dependency.prerequisite_task_id)} -> {graph.label(dependency.dependent_task_id)}"
            )

    external = find_external_constraints(graph.dependencies, external_constraint_lag_hours)
    result.external_constraint_ids = [dependency.id for dependency in external]
    if external:
        result.recommendations.append(
            f"Start procurement/ordering early for {len(external)} external dependencies"
        )

    if not graph.find_cycles():
        analysis = calculate_critical_path(tasks, graph.dependencies)
        critical = set(analysis.critical_dependency_ids)
        result.potential_time_reduction_hours = sum(
            dependency.lag_hours for dependency in graph.dependencies
            if dependency.id in critical and dependency.lag_hours > review_lag_hours
        )

    return result


async def analyze_schedule(session: AsyncSession, project_id: uuid.UUID) -> ScheduleRecommendations:
    if not await session.get(Project, project_id):
        raise NotFoundError("Project", str(project_id))

    graph = await build_project_graph(session, project_id)
    result = recommend_schedule_changes(graph.tasks, graph.dependencies)

    logger.info(f"Schedule review for project {project_id}: {len(result.recommendations)} recommendations")
    return result
