"""
Dependency routes for the Taskgraph API.
"""

import uuid
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from taskgraph.database import get_session
from taskgraph.schemas import (
    BulkFailureRead,
    BulkTypeFailureRead,
    DependencyBulkCreate,
    DependencyBulkDelete,
    DependencyBulkDeleteRead,
    DependencyBulkRead,
    DependencyBulkTypeUpdate,
    DependencyBulkUpdateRead,
    DependencyCreate,
    DependencyPathRead,
    DependencyRead,
    DependencyUpdate,
    PathStep,
)
from taskgraph.services import dependencies as service
from taskgraph.exceptions import ValidationError
from taskgraph.models import DependencyType
from taskgraph.worker import enqueue_critical_path_refresh
from taskgraph.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.post("/", response_model=DependencyRead, status_code=status.HTTP_201_CREATED)
async def create_dependency(
    dep_in: DependencyCreate,
    session: AsyncSession = Depends(get_session),
) -> DependencyRead:
    """
    Create a new dependency (edge in the task graph).

    Rejects self-dependencies, cross-project edges, edges that would close
    a cycle and duplicates, in that order. An identical inactive edge is
    reactivated instead of duplicated.
    """
    logger.info(
        f"Creating dependency: {dep_in.prerequisite_task_id} -> {dep_in.dependent_task_id} "
        f"({dep_in.dependency_type.short_code})"
    )

    dependency = await service.create_dependency(
        session,
        dep_in.dependent_task_id,
        dep_in.prerequisite_task_id,
        dep_in.dependency_type,
        dep_in.lag_hours,
        dep_in.notes,
    )

    await enqueue_critical_path_refresh(str(dependency.project_id))
    return DependencyRead.from_dependency(dependency)


@router.get("/", response_model=list[DependencyRead])
async def list_dependencies(
    project_id: uuid.UUID | None = None,
    task_id: uuid.UUID | None = None,
    active: bool | None = None,
    session: AsyncSession = Depends(get_session),
) -> list[DependencyRead]:
    """
    List dependencies.

    Optionally filter by:
    - project_id: Get all dependencies within a project
    - task_id: Get dependencies where task is dependent OR prerequisite
    - active: Only active or only inactive edges
    """
    dependencies = await service.list_dependencies(session, project_id, task_id, active)

    logger.debug(f"Listed {len(dependencies)} dependencies")

    return [DependencyRead.from_dependency(d) for d in dependencies]


@router.post("/bulk", response_model=DependencyBulkRead, status_code=status.HTTP_200_OK)
async def create_bulk_dependencies(
    bulk_in: DependencyBulkCreate,
    session: AsyncSession = Depends(get_session),
) -> DependencyBulkRead:
    """
    Create many dependencies. Each item is validated on its own; rejected
    items are reported and do not undo the accepted ones.
    """
    specs = [
        service.DependencySpec(
            dependent_task_id=item.dependent_task_id,
            prerequisite_task_id=item.prerequisite_task_id,
            dependency_type=item.dependency_type,
            lag_hours=item.lag_hours,
            notes=item.notes,
        )
        for item in bulk_in.items
    ]
    result = await service.create_bulk_dependencies(session, specs)

    for project_id in {str(d.project_id) for d in result.created}:
        await enqueue_critical_path_refresh(project_id)

    return DependencyBulkRead(
        created=[DependencyRead.from_dependency(d) for d in result.created],
        failed=[
            BulkFailureRead(index=f.index, error=f.error_code, message=f.message)
            for f in result.failed
        ],
    )


@router.get("/path", response_model=DependencyPathRead)
async def get_dependency_path(
    from_task_id: uuid.UUID,
    to_task_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> DependencyPathRead:
    """Shortest chain of active edges leading from one task to another."""
    tasks = await service.get_dependency_path(session, from_task_id, to_task_id)
    return DependencyPathRead(
        from_task_id=from_task_id,
        to_task_id=to_task_id,
        found=bool(tasks),
        tasks=[PathStep.model_validate(task) for task in tasks],
    )


@router.patch("/bulk", response_model=DependencyBulkUpdateRead)
async def update_bulk_dependency_types(
    bulk_in: DependencyBulkTypeUpdate,
    session: AsyncSession = Depends(get_session),
) -> DependencyBulkUpdateRead:
    """
    Change the type of many dependencies. Each change is checked for
    duplicates and cycles on its own.
    """
    result = await service.update_dependency_types(session, bulk_in.dependency_ids, bulk_in.dependency_type)

    for project_id in {str(d.project_id) for d in result.updated}:
        await enqueue_critical_path_refresh(project_id)

    return DependencyBulkUpdateRead(
        updated=[DependencyRead.from_dependency(d) for d in result.updated],
        failed=[
            BulkTypeFailureRead(
                index=f.index, dependency_id=f.dependency_id, error=f.error_code, message=f.message
            )
            for f in result.failed
        ],
    )


@router.delete("/bulk", response_model=DependencyBulkDeleteRead)
async def remove_bulk_dependencies(
    bulk_in: DependencyBulkDelete,
    session: AsyncSession = Depends(get_session),
) -> DependencyBulkDeleteRead:
    """Delete many dependencies. Unknown IDs are ignored."""
    removed = await service.remove_bulk_dependencies(session, bulk_in.dependency_ids)

    for project_id in {str(d.project_id) for d in removed}:
        await enqueue_critical_path_refresh(project_id)

    return DependencyBulkDeleteRead(removed=len(removed))


@router.delete("/between", status_code=status.HTTP_204_NO_CONTENT)
async def remove_dependency_between(
    dependent_task_id: uuid.UUID,
    prerequisite_task_id: uuid.UUID,
    dependency_type: str | None = Query(default=None),
    session: AsyncSession = Depends(get_session),
) -> None:
    """Delete the dependencies from one task to another, optionally of one type only."""
    parsed_type = None
    if dependency_type is not None:
        parsed_type = DependencyType.from_string(dependency_type)
        if parsed_type is None:
            raise ValidationError(f"Unknown dependency type '{dependency_type}'")

    removed = await service.remove_dependency_between(
        session, dependent_task_id, prerequisite_task_id, parsed_type
    )
    await enqueue_critical_path_refresh(str(removed[0].project_id))


@router.get("/{dependency_id}", response_model=DependencyRead)
async def get_dependency(
    dependency_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> DependencyRead:
    """Get a dependency by ID."""
    dependency = await service.get_dependency(session, dependency_id)
    return DependencyRead.from_dependency(dependency)


@router.patch("/{dependency_id}", response_model=DependencyRead)
async def update_dependency(
    dependency_id: uuid.UUID,
    dep_in: DependencyUpdate,
    session: AsyncSession = Depends(get_session),
) -> DependencyRead:
    """Change the type, lag or notes of a dependency."""
    update_data = dep_in.model_dump(exclude_unset=True)
    logger.info(f"Updating dependency {dependency_id}: {update_data}")

    dependency_type = update_data.pop("dependency_type", None)
    dependency = await service.update_dependency(session, dependency_id, dependency_type, **update_data)

    await enqueue_critical_path_refresh(str(dependency.project_id))
    return DependencyRead.from_dependency(dependency)


@router.post("/{dependency_id}/activate", response_model=DependencyRead)
async def activate_dependency(
    dependency_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> DependencyRead:
    """Reactivate a dependency. Fails if it would now close a cycle."""
    dependency = await service.set_dependency_active(session, dependency_id, True)
    await enqueue_critical_path_refresh(str(dependency.project_id))
    return DependencyRead.from_dependency(dependency)


@router.post("/{dependency_id}/deactivate", response_model=DependencyRead)
async def deactivate_dependency(
    dependency_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> DependencyRead:
    """Deactivate a dependency; it stops blocking and constraining immediately."""
    dependency = await service.set_dependency_active(session, dependency_id, False)
    await enqueue_critical_path_refresh(str(dependency.project_id))
    return DependencyRead.from_dependency(dependency)


@router.delete("/{dependency_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_dependency(
    dependency_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
) -> None:
    """
    Delete a dependency.

    This may let the dependent task start earlier, so the project's
    critical path is refreshed.
    """
    dependency = await service.delete_dependency(session, dependency_id)
    await enqueue_critical_path_refresh(str(dependency.project_id))
