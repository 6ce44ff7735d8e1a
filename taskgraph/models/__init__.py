from taskgraph.models.dependency_type import DependencyType, DependencyPolicy, TaskEvent, POLICIES
from taskgraph.models.project import Project
from taskgraph.models.task import Task
from taskgraph.models.dependency import TaskDependency, check_endpoints

__all__ = [
    "DependencyType",
    "DependencyPolicy",
    "TaskEvent",
    "POLICIES",
    "Project",
    "Task",
    "TaskDependency",
    "check_endpoints",
]
