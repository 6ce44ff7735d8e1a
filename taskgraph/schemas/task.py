import uuid
from datetime import date, datetime
from pydantic import BaseModel, Field


class TaskCreate(BaseModel):
    """Schema for creating a new task."""
    title: str
    description: str | None = None
    project_id: uuid.UUID
    start_date: date | None = None
    end_date: date | None = None
    estimated_duration_hours: float | None = Field(default=None, ge=0)
    progress: int = Field(default=0, ge=0, le=100)
    completed: bool = False


class TaskUpdate(BaseModel):
    """Schema for updating a task."""
    title: str | None = None
    description: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    estimated_duration_hours: float | None = Field(default=None, ge=0)
    progress: int | None = Field(default=None, ge=0, le=100)
    completed: bool | None = None


class TaskRead(BaseModel):
    """Schema for reading a task."""
    id: uuid.UUID
    title: str
    description: str | None
    completed: bool
    progress: int
    start_date: date | None
    end_date: date | None
    estimated_duration_hours: float | None
    project_id: uuid.UUID
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class CanStartRead(BaseModel):
    task_id: uuid.UUID
    can_start: bool
    blocking_dependency_ids: list[uuid.UUID]
