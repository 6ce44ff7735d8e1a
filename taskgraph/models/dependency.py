import uuid
from datetime import datetime, time, timedelta
from typing import TYPE_CHECKING, Optional
from sqlalchemy import UniqueConstraint, event, inspect as sa_inspect, select as sa_select
from sqlmodel import SQLModel, Field, Relationship

from taskgraph.exceptions import CrossProjectError, SelfDependencyError
from taskgraph.models.dependency_type import DependencyType, TaskEvent

if TYPE_CHECKING:
    from taskgraph.models.task import Task
    from taskgraph.services.graph import DependencyGraph


def check_endpoints(dependent: "Task", prerequisite: "Task") -> None:
    """
    Reject edges that can never be valid, whatever the rest of the graph holds.

    Raises:
        SelfDependencyError: both ends are the same task.
        CrossProjectError: the tasks belong to different projects.
    """
    if dependent.id == prerequisite.id:
        raise SelfDependencyError(dependent.title)
    if dependent.project_id != prerequisite.project_id:
        raise CrossProjectError(
            dependent.title,
            prerequisite.title,
            str(dependent.project_id),
            str(prerequisite.project_id),
        )


class TaskDependency(SQLModel, table=True):
    """
    A typed, directed edge in a project's task graph.

    dependent_task waits on prerequisite_task according to dependency_type:
    "The dependent (successor) is constrained by the prerequisite (predecessor)"

    Example: If wiring can only start once the drive base is built:
    - prerequisite_task = drive base
    - dependent_task = wiring
    - dependency_type = FINISH_TO_START

    Every predicate below is a pure function of this edge and the current
    state of its two tasks. Inactive edges never block and never constrain.
    """

    __tablename__ = "task_dependencies"
    __table_args__ = (
        UniqueConstraint(
            "dependent_task_id",
            "prerequisite_task_id",
            "dependency_type",
            name="uq_task_dependency_edge",
        ),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)

    dependent_task_id: uuid.UUID = Field(foreign_key="tasks.id", index=True)
    prerequisite_task_id: uuid.UUID = Field(foreign_key="tasks.id", index=True)
    # Cached from dependent_task for same-project checks
    project_id: uuid.UUID | None = Field(default=None, foreign_key="projects.id", index=True)

    dependency_type: DependencyType = Field(default=DependencyType.FINISH_TO_START, index=True)
    lag_hours: int = Field(default=0)  # positive = delay, negative = lead time
    critical_path: bool = Field(default=False, index=True)  # set by the critical path pass
    active: bool = Field(default=True)
    notes: str | None = Field(default=None)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    dependent_task: Optional["Task"] = Relationship(
        back_populates="dependencies",
        sa_relationship_kwargs={
            "foreign_keys": "TaskDependency.dependent_task_id",
            "lazy": "selectin",
        },
    )
    prerequisite_task: Optional["Task"] = Relationship(
        back_populates="dependents",
        sa_relationship_kwargs={
            "foreign_keys": "TaskDependency.prerequisite_task_id",
            "lazy": "selectin",
        },
    )

    def _endpoints_missing(self) -> bool:
        return self.dependent_task is None or self.prerequisite_task is None

    def is_satisfied(self) -> bool:
        """
        Whether the constraint currently holds for the prerequisite's live state.

        FINISH_TO_FINISH and START_TO_FINISH are approximated by their
        prerequisite half only (prerequisite finished / started). Checking
        the dependent's finish needs its projected finish time, which only
        the critical path pass knows.
        """
        if not self.active or self._endpoints_missing():
            return True

        event_ = self.dependency_type.policy.prerequisite_event
        prerequisite = self.prerequisite_task
        if event_ is TaskEvent.FINISH:
            return prerequisite.completed
        if event_ is TaskEvent.START:
            return prerequisite.progress > 0 or prerequisite.completed
        return True  # SOFT: advisory only

    def is_blocking(self) -> bool:
        """Whether this edge stops the dependent task from starting or progressing."""
        if not self.active or not self.dependency_type.is_hard_constraint:
            return False
        return not self.is_satisfied()

    def earliest_dependent_start(self) -> datetime | None:
        """
        Earliest moment the dependent task may begin, from this edge alone.

        Finish-anchored edges count from the start of the prerequisite's end
        date, START_TO_START from the start of its start date; lag_hours is
        then added (negative lag gives lead time). Edges that constrain the
        dependent's finish, SOFT edges, inactive edges and prerequisites
        without the relevant date yield None.
        """
        if not self.active or self._endpoints_missing():
            return None

        policy = self.dependency_type.policy
        if policy.dependent_event is not TaskEvent.START:
            return None

        prerequisite = self.prerequisite_task
        if policy.prerequisite_event is TaskEvent.FINISH:
            anchor = prerequisite.end_date
        else:
            anchor = prerequisite.start_date
        if anchor is None:
            return None

        return datetime.combine(anchor, time.min) + timedelta(hours=self.lag_hours or 0)

    def critical_path_weight(self) -> float:
        """Edge weight for the longest-path pass; 0 for inactive and SOFT edges."""
        if not self.active or not self.dependency_type.is_critical_path_relevant:
            return 0.0
        return self.dependency_type.policy.weight

    def would_create_cycle(self, graph: "DependencyGraph") -> bool:
        """
        Whether committing this edge would close a cycle in ``graph``.

        True exactly when the prerequisite already depends, directly or
        transitively, on the dependent task.
        """
        if self.dependent_task_id is None or self.prerequisite_task_id is None:
            return False
        return graph.has_transitive_dependency(self.prerequisite_task_id, self.dependent_task_id)

    def description(self) -> str:
        """Human readable form, e.g. ``Drive base → Wiring (FS) (+24h lag)``."""
        if self._endpoints_missing():
            return "Invalid dependency"

        lag = ""
        if self.lag_hours:
            lag = f" (+{self.lag_hours}h lag)" if self.lag_hours > 0 else f" ({abs(self.lag_hours)}h lead)"

        return (
            f"{self.prerequisite_task.title} → {self.dependent_task.title} "
            f"({self.dependency_type.short_code}){lag}"
        )

    def validate_endpoints(self) -> None:
        """
        Enforce the per-edge invariants and cache the project.

        Only relationships that are already loaded are inspected, so this is
        safe to call from flush hooks.
        """
        loaded = sa_inspect(self).dict
        dependent = loaded.get("dependent_task")
        prerequisite = loaded.get("prerequisite_task")

        if (
            self.dependent_task_id is not None
            and self.dependent_task_id == self.prerequisite_task_id
        ):
            raise SelfDependencyError(dependent.title if dependent is not None else str(self.dependent_task_id))

        if dependent is not None and prerequisite is not None:
            check_endpoints(dependent, prerequisite)

        if self.project_id is None:
            owner = dependent if dependent is not None else prerequisite
            if owner is not None:
                self.project_id = owner.project_id

    def __repr__(self) -> str:
        return (
            f"TaskDependency(id={self.id}, dependent={self.dependent_task_id}, "
            f"prerequisite={self.prerequisite_task_id}, type={self.dependency_type.value})"
        )


@event.listens_for(TaskDependency, "before_insert")
@event.listens_for(TaskDependency, "before_update")
def _validate_before_flush(mapper, connection, target: TaskDependency) -> None:
    target.validate_endpoints()
    if target.project_id is None:
        # Neither task object is at hand: copy the project straight from the dependent row
        from taskgraph.models.task import Task

        tasks = Task.__table__
        target.project_id = connection.scalar(
            sa_select(tasks.c.project_id).where(tasks.c.id == target.dependent_task_id)
        )
