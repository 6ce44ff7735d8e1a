"""
Project routes for the Taskgraph API.
"""

import uuid
from datetime import datetime
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from taskgraph.database import get_session
from taskgraph.models import Project
from taskgraph.schemas import (
    BlockedTaskRead,
    CriticalPathRead,
    CriticalPathRefreshRead,
    DependencyRead,
    DependencyStatisticsRead,
    GraphValidationRead,
    ProjectCreate,
    ProjectRead,
    ProjectUpdate,
    RiskAssessmentRead,
    ScheduleRecommendationsRead,
    TaskRead,
)
from taskgraph.services import dependencies as service
from taskgraph.services.critical_path import analyze_critical_path, update_critical_path_markers
from taskgraph.services.graph import build_project_graph
from taskgraph.services.risk import analyze_project_risk, analyze_schedule
from taskgraph.exceptions import NotFoundError
from taskgraph.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()


async def _get_project(session: AsyncSession, project_id: uuid.UUID) -> Project:
    project = await session.get(Project, project_id)
    if not project:
        raise NotFoundError("Project", str(project_id))
    return project


@router.post("/", response_model=ProjectRead, status_code=status.HTTP_201_CREATED)
async def create_project(
    project_in: ProjectCreate,
    session: AsyncSession = Depends(get_session),
) -> Project:
    """Create a new project."""
    project = Project(**project_in.model_dump())
    session.add(project)
    await session.flush()

    logger.info(f"Created project: id={project.id} name='{project.name}'")

    return project


@router.get("/", response_model=list[ProjectRead])
async def list_projects(
    session: AsyncSession = Depends(get_session),
) -> list[Project]:
    """List all projects."""
    result = await session.execute(select(Project))
    projects = list(result.scalars().all())

    logger.debug(f"Listed {len(projects)} projects")

    return projects


@router.get("/{project_id}", response_model=ProjectRead)
async def get_project(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> Project:
    """Get a project by ID."""
    return await _get_project(session, project_id)


@router.patch("/{project_id}", response_model=ProjectRead)
async def update_project(
    project_id: uuid.UUID,
    project_in: ProjectUpdate,
    session: AsyncSession = Depends(get_session),
) -> Project:
    """Update a project."""
    project = await _get_project(session, project_id)

    update_data = project_in.model_dump(exclude_unset=True)

    logger.info(f"Updating project {project_id}: {update_data}")

    for field, value in update_data.items():
        setattr(project, field, value)

    project.updated_at = datetime.utcnow()
    await session.flush()
    return project


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> None:
    """Delete a project, its tasks and their dependencies."""
    project = await _get_project(session, project_id)

    logger.info(f"Deleting project {project_id}: '{project.name}'")

    await session.delete(project)


# =============================================================================
# Graph analysis
# =============================================================================

@router.get("/{project_id}/critical-path", response_model=CriticalPathRead)
async def get_critical_path(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> CriticalPathRead:
    """
    CPM analysis of the project: per-task earliest/latest times and float,
    the critical tasks and edges, and the heaviest weighted chain.

    A project whose scheduling edges form a cycle gets 400 cycle_detected.
    """
    analysis = await analyze_critical_path(session, project_id)
    if analysis is None:
        return CriticalPathRead(
            project_id=project_id,
            project_duration_hours=0.0,
            project_start=None,
            project_finish=None,
            critical_path_task_ids=[],
            critical_dependency_ids=[],
            heaviest_chain=[],
            heaviest_chain_weight=0.0,
            task_analyses=[],
        )
    return CriticalPathRead.model_validate(analysis)


@router.post("/{project_id}/critical-path/refresh", response_model=CriticalPathRefreshRead)
async def refresh_critical_path(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> CriticalPathRefreshRead:
    """Recompute the critical_path flag of every dependency now, without the worker."""
    critical = await update_critical_path_markers(session, project_id)
    return CriticalPathRefreshRead(project_id=project_id, critical_dependencies=critical)


@router.get("/{project_id}/validate", response_model=GraphValidationRead)
async def validate_project(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> GraphValidationRead:
    """Report cycles, self-dependencies, cross-project and dangling edges."""
    result = await service.validate_project_graph(session, project_id)
    return GraphValidationRead.model_validate(result)


@router.get("/{project_id}/statistics", response_model=DependencyStatisticsRead)
async def get_statistics(
    project_id: uuid.UUID,
    limit: int = Query(default=5, ge=1, le=50),
    session: AsyncSession = Depends(get_session),
) -> DependencyStatisticsRead:
    """Edge counts per type plus the most connected tasks."""
    await _get_project(session, project_id)
    stats = await service.get_dependency_statistics(session, project_id)
    graph = await build_project_graph(session, project_id)

    return DependencyStatisticsRead(
        project_id=project_id,
        total=stats.total,
        active=stats.active,
        inactive=stats.inactive,
        critical=stats.critical,
        by_type={t.short_code: count for t, count in stats.by_type.items()},
        most_connected=[task_id for task_id, degree in graph.most_connected(limit) if degree > 0],
    )


@router.get("/{project_id}/ready-tasks", response_model=list[TaskRead])
async def get_ready_tasks(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> list:
    """Open tasks that nothing blocks."""
    await _get_project(session, project_id)
    return await service.get_ready_tasks(session, project_id)


@router.get("/{project_id}/blocked-tasks", response_model=list[BlockedTaskRead])
async def get_blocked_tasks(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> list[BlockedTaskRead]:
    """Open tasks with the edges currently blocking them."""
    await _get_project(session, project_id)
    blocked = await service.get_blocked_tasks(session, project_id)
    return [
        BlockedTaskRead(
            task=TaskRead.model_validate(task),
            blocking_dependencies=[DependencyRead.from_dependency(d) for d in blocking],
        )
        for task, blocking in blocked
    ]


@router.get("/{project_id}/risk", response_model=RiskAssessmentRead)
async def get_risk(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> RiskAssessmentRead:
    assessment = await analyze_project_risk(session, project_id)
    return RiskAssessmentRead(
        project_id=project_id,
        level=assessment.level.value,
        factors=assessment.factors,
        metrics=assessment.metrics,
        high_risk_task_ids=assessment.high_risk_task_ids,
    )


@router.get("/{project_id}/schedule-recommendations", response_model=ScheduleRecommendationsRead)
async def get_schedule_recommendations(
    project_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> ScheduleRecommendationsRead:
    """Where the schedule could be tightened: parallel work, soft edges, long lags, early orders."""
    result = await analyze_schedule(session, project_id)
    return ScheduleRecommendationsRead(project_id=project_id, **vars(result))
