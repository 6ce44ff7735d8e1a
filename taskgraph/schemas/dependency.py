import uuid
from datetime import datetime
from typing import Any
from pydantic import BaseModel, Field, field_validator

from taskgraph.models import DependencyType, TaskDependency


def _parse_dependency_type(value: Any) -> Any:
    """Accept symbolic names, short codes ("FS") and display names ("Finish-to-Start")."""
    if value is None or isinstance(value, DependencyType):
        return value
    if isinstance(value, str):
        parsed = DependencyType.from_string(value)
        if parsed is None:
            raise ValueError(f"Unknown dependency type '{value}'")
        return parsed
    return value


class DependencyCreate(BaseModel):
    """Schema for creating a new dependency."""
    dependent_task_id: uuid.UUID     # The task that waits
    prerequisite_task_id: uuid.UUID  # The task it waits on
    dependency_type: DependencyType = DependencyType.FINISH_TO_START
    lag_hours: int = 0  # positive = delay, negative = lead time
    notes: str | None = None

    @field_validator("dependency_type", mode="before")
    @classmethod
    def parse_dependency_type(cls, value: Any) -> Any:
        return _parse_dependency_type(value) or DependencyType.FINISH_TO_START


class DependencyUpdate(BaseModel):
    """Schema for updating a dependency. Endpoints cannot change."""
    dependency_type: DependencyType | None = None
    lag_hours: int | None = None
    notes: str | None = None

    @field_validator("dependency_type", mode="before")
    @classmethod
    def parse_dependency_type(cls, value: Any) -> Any:
        return _parse_dependency_type(value)


class DependencyRead(BaseModel):
    """Schema for reading a dependency, with its live predicates."""
    id: uuid.UUID
    dependent_task_id: uuid.UUID
    prerequisite_task_id: uuid.UUID
    project_id: uuid.UUID | None
    dependency_type: DependencyType
    type_short_code: str
    lag_hours: int
    critical_path: bool
    active: bool
    notes: str | None
    satisfied: bool
    blocking: bool
    critical_path_weight: float
    earliest_dependent_start: datetime | None
    description: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_dependency(cls, dependency: TaskDependency) -> "DependencyRead":
        return cls(
            id=dependency.id,
            dependent_task_id=dependency.dependent_task_id,
            prerequisite_task_id=dependency.prerequisite_task_id,
            project_id=dependency.project_id,
            dependency_type=dependency.dependency_type,
            type_short_code=dependency.dependency_type.short_code,
            lag_hours=dependency.lag_hours,
            critical_path=dependency.critical_path,
            active=dependency.active,
            notes=dependency.notes,
            satisfied=dependency.is_satisfied(),
            blocking=dependency.is_blocking(),
            critical_path_weight=dependency.critical_path_weight(),
            earliest_dependent_start=dependency.earliest_dependent_start(),
            description=dependency.description(),
            created_at=dependency.created_at,
            updated_at=dependency.updated_at,
        )


class DependencyBulkCreate(BaseModel):
    """Schema for creating many dependencies at once."""
    items: list[DependencyCreate] = Field(min_length=1)


class BulkFailureRead(BaseModel):
    index: int
    error: str
    message: str


class DependencyBulkRead(BaseModel):
    created: list[DependencyRead]
    failed: list[BulkFailureRead]


class DependencyBulkTypeUpdate(BaseModel):
    """Schema for changing the type of many dependencies at once."""
    dependency_ids: list[uuid.UUID] = Field(min_length=1)
    dependency_type: DependencyType

    @field_validator("dependency_type", mode="before")
    @classmethod
    def parse_dependency_type(cls, value: Any) -> Any:
        return _parse_dependency_type(value)


class BulkTypeFailureRead(BaseModel):
    index: int
    dependency_id: uuid.UUID
    error: str
    message: str


class DependencyBulkUpdateRead(BaseModel):
    updated: list[DependencyRead]
    failed: list[BulkTypeFailureRead]


class DependencyBulkDelete(BaseModel):
    dependency_ids: list[uuid.UUID] = Field(min_length=1)


class DependencyBulkDeleteRead(BaseModel):
    removed: int


class PathStep(BaseModel):
    id: uuid.UUID
    title: str

    model_config = {"from_attributes": True}


class DependencyPathRead(BaseModel):
    """Shortest chain of edges from one task down to another."""
    from_task_id: uuid.UUID
    to_task_id: uuid.UUID
    found: bool
    tasks: list[PathStep]


class ReactivationRead(BaseModel):
    reactivated: list[DependencyRead]
    skipped: list[DependencyRead]  # would close a cycle, left inactive
