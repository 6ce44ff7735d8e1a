"""
Task routes for the Taskgraph API.
"""

import uuid
from datetime import datetime
from typing import Any
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from taskgraph.database import get_session
from taskgraph.models import Task, Project
from taskgraph.schemas import (
    CanStartRead,
    DependencyRead,
    ReactivationRead,
    TaskCreate,
    TaskRead,
    TaskUpdate,
)
from taskgraph.services import dependencies as service
from taskgraph.worker import enqueue_critical_path_refresh
from taskgraph.exceptions import NotFoundError, ValidationError
from taskgraph.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()


def _sync_completion(data: dict[str, Any], current_progress: int = 0) -> dict[str, Any]:
    """
    Keep progress == 100 <=> completed.

    An explicit progress decides completion. Otherwise completing a task
    sets progress to 100 and reopening a finished one resets it to 0.
    """
    progress = data.get("progress")
    completed = data.get("completed")

    if progress is not None:
        if completed is not None and completed != (progress == 100):
            raise ValidationError(
                "progress and completed disagree",
                details=[{
                    "loc": ["body", "completed"],
                    "msg": "completed must be true exactly when progress is 100",
                    "type": "value_error",
                }],
            )
        data["completed"] = progress == 100
    elif completed is not None:
        if completed:
            data["progress"] = 100
        elif current_progress == 100:
            data["progress"] = 0
    return data


async def _get_task(session: AsyncSession, task_id: uuid.UUID) -> Task:
    task = await session.get(Task, task_id)
    if not task:
        raise NotFoundError("Task", str(task_id))
    return task


@router.post("/", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
async def create_task(
    task_in: TaskCreate,
    session: AsyncSession = Depends(get_session),
) -> Task:
    """Create a new task."""
    # Verify project exists
    project = await session.get(Project, task_in.project_id)
    if not project:
        raise NotFoundError("Project", str(task_in.project_id))

    task_data = task_in.model_dump()
    task_data.update(_sync_completion(task_in.model_dump(exclude_unset=True)))
    task = Task(**task_data)
    session.add(task)
    await session.flush()

    logger.info(f"Created task: id={task.id} title='{task.title}' project={task.project_id}")

    return task


@router.get("/", response_model=list[TaskRead])
async def list_tasks(
    project_id: uuid.UUID | None = None,
    session: AsyncSession = Depends(get_session),
) -> list[Task]:
    """
    List tasks.

    Optionally filter by project_id.
    """
    query = select(Task)
    if project_id:
        query = query.where(Task.project_id == project_id)

    result = await session.execute(query)
    tasks = list(result.scalars().all())

    logger.debug(f"Listed {len(tasks)} tasks" + (f" for project={project_id}" if project_id else ""))

    return tasks


@router.get("/{task_id}", response_model=TaskRead)
async def get_task(
    task_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> Task:
    """Get a task by ID."""
    return await _get_task(session, task_id)


@router.patch("/{task_id}", response_model=TaskRead)
async def update_task(
    task_id: uuid.UUID,
    task_in: TaskUpdate,
    session: AsyncSession = Depends(get_session),
) -> Task:
    """
    Update a task.

    Progress and completion are kept consistent. Dates and durations feed
    the critical path, so the project's markers are refreshed.
    """
    task = await _get_task(session, task_id)
    # Serialises with edge writes that read this project's tasks
    await service.lock_project(session, task.project_id)
    await session.refresh(task)

    update_data = _sync_completion(task_in.model_dump(exclude_unset=True), task.progress)

    # Log what's being updated
    logger.info(f"Updating task {task_id}: {update_data}")

    for field, value in update_data.items():
        setattr(task, field, value)
    task.updated_at = datetime.utcnow()

    await session.flush()

    await enqueue_critical_path_refresh(str(task.project_id))

    return task


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    task_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> None:
    """
    Delete a task.

    This also deletes every dependency involving the task.
    """
    task = await _get_task(session, task_id)
    project_id = task.project_id

    logger.info(f"Deleting task {task_id}: '{task.title}'")

    await service.lock_project(session, project_id)
    # Incident edges go with the task (ORM cascade)
    await session.delete(task)
    await session.flush()

    await enqueue_critical_path_refresh(str(project_id))


# =============================================================================
# Dependency views of a task
# =============================================================================

@router.get("/{task_id}/prerequisites", response_model=list[DependencyRead])
async def get_prerequisites(
    task_id: uuid.UUID,
    include_inactive: bool = False,
    session: AsyncSession = Depends(get_session),
) -> list[DependencyRead]:
    """Edges this task waits on."""
    dependencies = await service.get_prerequisite_dependencies(session, task_id, include_inactive)
    return [DependencyRead.from_dependency(d) for d in dependencies]


@router.get("/{task_id}/dependents", response_model=list[DependencyRead])
async def get_dependents(
    task_id: uuid.UUID,
    include_inactive: bool = False,
    session: AsyncSession = Depends(get_session),
) -> list[DependencyRead]:
    """Edges that wait on this task."""
    dependencies = await service.get_dependent_dependencies(session, task_id, include_inactive)
    return [DependencyRead.from_dependency(d) for d in dependencies]


@router.get("/{task_id}/blocking-dependencies", response_model=list[DependencyRead])
async def get_blocking_dependencies(
    task_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> list[DependencyRead]:
    """Active hard edges whose prerequisite has not yet reached the required state."""
    dependencies = await service.get_blocking_dependencies(session, task_id)
    return [DependencyRead.from_dependency(d) for d in dependencies]


@router.get("/{task_id}/can-start", response_model=CanStartRead)
async def can_start(
    task_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> CanStartRead:
    blocking = await service.get_blocking_dependencies(session, task_id)
    return CanStartRead(
        task_id=task_id,
        can_start=not blocking,
        blocking_dependency_ids=[d.id for d in blocking],
    )


@router.post("/{task_id}/dependencies/deactivate", response_model=list[DependencyRead])
async def deactivate_task_dependencies(
    task_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> list[DependencyRead]:
    """Deactivate every active edge touching this task, e.g. while it is on hold."""
    dependencies = await service.deactivate_task_dependencies(session, task_id)
    if dependencies:
        await enqueue_critical_path_refresh(str(dependencies[0].project_id))
    return [DependencyRead.from_dependency(d) for d in dependencies]


@router.post("/{task_id}/dependencies/reactivate", response_model=ReactivationRead)
async def reactivate_task_dependencies(
    task_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> ReactivationRead:
    """Reactivate this task's inactive edges, skipping any that would now close a cycle."""
    result = await service.reactivate_task_dependencies(session, task_id)
    if result.reactivated:
        await enqueue_critical_path_refresh(str(result.reactivated[0].project_id))
    return ReactivationRead(
        reactivated=[DependencyRead.from_dependency(d) for d in result.reactivated],
        skipped=[DependencyRead.from_dependency(d) for d in result.skipped],
    )
