import uuid
from datetime import date, datetime
from typing import TYPE_CHECKING
from sqlmodel import SQLModel, Field, Relationship

if TYPE_CHECKING:
    from taskgraph.models.project import Project
    from taskgraph.models.dependency import TaskDependency


class Task(SQLModel, table=True):
    """
    Task model as seen by the dependency engine.

    The engine only reads these fields:
    - completed / progress: drive the satisfaction of outgoing edges
    - start_date / end_date: anchor earliest-start computations
    - project_id: dependencies never cross projects
    - estimated_duration_hours: used by the critical path pass

    progress == 100 <=> completed is maintained by the task routes,
    never by the dependency code.
    """

    __tablename__ = "tasks"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    title: str = Field(index=True)
    description: str | None = Field(default=None)
    completed: bool = Field(default=False)
    progress: int = Field(default=0, ge=0, le=100)
    start_date: date | None = Field(default=None)
    end_date: date | None = Field(default=None)
    estimated_duration_hours: float | None = Field(default=None, ge=0)

    # Foreign keys
    project_id: uuid.UUID = Field(foreign_key="projects.id", index=True)

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    project: "Project" = Relationship(back_populates="tasks")

    # Edges where this task is the dependent (what this task waits on)
    dependencies: list["TaskDependency"] = Relationship(
        back_populates="dependent_task",
        sa_relationship_kwargs={
            "foreign_keys": "TaskDependency.dependent_task_id",
            "cascade": "all",
        },
    )

    # Edges where this task is the prerequisite (what waits on this task)
    dependents: list["TaskDependency"] = Relationship(
        back_populates="prerequisite_task",
        sa_relationship_kwargs={
            "foreign_keys": "TaskDependency.prerequisite_task_id",
            "cascade": "all",
        },
    )
