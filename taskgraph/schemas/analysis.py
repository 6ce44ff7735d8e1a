"""
Response schemas for project-level graph analysis.
"""

import uuid
from datetime import datetime
from pydantic import BaseModel

from taskgraph.schemas.dependency import DependencyRead
from taskgraph.schemas.task import TaskRead


class TaskAnalysisRead(BaseModel):
    """CPM results for one task, in hours from project start."""
    task_id: uuid.UUID
    title: str
    duration_hours: float
    earliest_start: float
    earliest_finish: float
    latest_start: float
    latest_finish: float
    total_float: float
    is_critical: bool
    start_at: datetime | None
    finish_at: datetime | None

    model_config = {"from_attributes": True}


class CriticalPathRead(BaseModel):
    project_id: uuid.UUID
    project_duration_hours: float
    project_start: datetime | None
    project_finish: datetime | None
    critical_path_task_ids: list[uuid.UUID]
    critical_dependency_ids: list[uuid.UUID]
    heaviest_chain: list[uuid.UUID]
    heaviest_chain_weight: float
    task_analyses: list[TaskAnalysisRead]

    model_config = {"from_attributes": True}


class CriticalPathRefreshRead(BaseModel):
    project_id: uuid.UUID
    critical_dependencies: int


class GraphValidationRead(BaseModel):
    project_id: uuid.UUID
    valid: bool
    cycles: list[list[uuid.UUID]]
    self_dependencies: list[uuid.UUID]
    cross_project: list[uuid.UUID]
    dangling: list[uuid.UUID]
    errors: list[str]

    model_config = {"from_attributes": True}


class DependencyStatisticsRead(BaseModel):
    project_id: uuid.UUID
    total: int
    active: int
    inactive: int
    critical: int
    by_type: dict[str, int]  # keyed by short code
    most_connected: list[uuid.UUID]


class BlockedTaskRead(BaseModel):
    task: TaskRead
    blocking_dependencies: list[DependencyRead]


class RiskAssessmentRead(BaseModel):
    project_id: uuid.UUID
    level: str
    factors: list[str]
    metrics: dict[str, float]
    high_risk_task_ids: list[uuid.UUID]


class ScheduleRecommendationsRead(BaseModel):
    project_id: uuid.UUID
    recommendations: list[str]
    parallelizable_task_ids: list[uuid.UUID]
    soft_dependency_task_ids: list[uuid.UUID]
    long_lag_dependency_ids: list[uuid.UUID]
    external_constraint_ids: list[uuid.UUID]
    potential_time_reduction_hours: int

    model_config = {"from_attributes": True}
