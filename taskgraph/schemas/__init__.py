from taskgraph.schemas.project import ProjectCreate, ProjectUpdate, ProjectRead
from taskgraph.schemas.task import TaskCreate, TaskUpdate, TaskRead, CanStartRead
from taskgraph.schemas.dependency import (
    DependencyCreate,
    DependencyUpdate,
    DependencyRead,
    DependencyBulkCreate,
    DependencyBulkRead,
    BulkFailureRead,
    DependencyBulkTypeUpdate,
    DependencyBulkUpdateRead,
    BulkTypeFailureRead,
    DependencyBulkDelete,
    DependencyBulkDeleteRead,
    DependencyPathRead,
    PathStep,
    ReactivationRead,
)
from taskgraph.schemas.analysis import (
    TaskAnalysisRead,
    CriticalPathRead,
    CriticalPathRefreshRead,
    GraphValidationRead,
    DependencyStatisticsRead,
    BlockedTaskRead,
    RiskAssessmentRead,
    ScheduleRecommendationsRead,
)

__all__ = [
    "ProjectCreate",
    "ProjectUpdate",
    "ProjectRead",
    "TaskCreate",
    "TaskUpdate",
    "TaskRead",
    "CanStartRead",
    "DependencyCreate",
    "DependencyUpdate",
    "DependencyRead",
    "DependencyBulkCreate",
    "DependencyBulkRead",
    "BulkFailureRead",
    "DependencyBulkTypeUpdate",
    "DependencyBulkUpdateRead",
    "BulkTypeFailureRead",
    "DependencyBulkDelete",
    "DependencyBulkDeleteRead",
    "DependencyPathRead",
    "PathStep",
    "ReactivationRead",
    "TaskAnalysisRead",
    "CriticalPathRead",
    "CriticalPathRefreshRead",
    "GraphValidationRead",
    "DependencyStatisticsRead",
    "BlockedTaskRead",
    "RiskAssessmentRead",
    "ScheduleRecommendationsRead",
]
