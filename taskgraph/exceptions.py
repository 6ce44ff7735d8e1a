"""
Structured exceptions and error responses for Taskgraph.

Provides consistent error handling across the API with:
- Custom exception classes
- Structured error response format
- FastAPI exception handlers
"""

from typing import Any, Dict, Optional, List
from fastapi import Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from taskgraph.logging_config import get_logger


# =============================================================================
# Error Response Schema
# =============================================================================

class ErrorDetail(BaseModel):
    """Detail of a single error. Extra keys (e.g. a cycle's ``path``) are passed through."""

    model_config = {"extra": "allow"}

    loc: Optional[List[str]] = None  # Location of error (e.g., ["body", "dependency_type"])
    msg: str
    type: str


class ErrorResponse(BaseModel):
    """Structured error response format."""
    error: str  # Error code (e.g., "not_found", "cycle_detected")
    message: str  # Human-readable message
    details: Optional[List[ErrorDetail]] = None


# =============================================================================
# Custom Exceptions
# =============================================================================

class TaskGraphException(Exception):
    """Base exception for all Taskgraph errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "internal_error",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[List[Dict[str, Any]]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class NotFoundError(TaskGraphException):
    """Resource not found."""

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            message=f"{resource} with ID {resource_id} not found",
            error_code="not_found",
            status_code=status.HTTP_404_NOT_FOUND,
        )
        self.resource = resource
        self.resource_id = resource_id


class DependencyValidationError(TaskGraphException):
    """A proposed dependency edge violates one of the graph invariants."""

    def __init__(
        self,
        message: str,
        error_code: str,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        details: Optional[List[Dict[str, Any]]] = None,
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status_code,
            details=details,
        )


class SelfDependencyError(DependencyValidationError):
    """Task cannot depend on itself."""

    def __init__(self, task: str):
        super().__init__(
            message=f"Task '{task}' cannot depend on itself",
            error_code="self_dependency",
        )
        self.task = task


class CrossProjectError(DependencyValidationError):
    """Cannot create dependency between tasks in different projects."""

    def __init__(
        self,
        dependent: str,
        prerequisite: str,
        dependent_project: str,
        prerequisite_project: str,
    ):
        super().__init__(
            message=(
                f"Task '{dependent}' (project {dependent_project}) cannot depend on "
                f"'{prerequisite}' (project {prerequisite_project}): "
                "dependencies must stay within one project"
            ),
            error_code="cross_project_dependency",
        )
        self.dependent = dependent
        self.prerequisite = prerequisite
        self.dependent_project = dependent_project
        self.prerequisite_project = prerequisite_project


class CycleError(DependencyValidationError):
    """
    Adding a dependency would create a cycle, or the graph already has one.

    ``path`` lists the task IDs of the cycle in "depends on" order, e.g.
    ``[C, B, A, C]`` when C depends on B, B on A and A on C. ``labels``
    holds the matching titles used in the message.
    """

    def __init__(
        self,
        path: List[str],
        dependent: Optional[str] = None,
        prerequisite: Optional[str] = None,
        labels: Optional[List[str]] = None,
    ):
        chain = " -> ".join(labels or path)
        if dependent is not None and prerequisite is not None:
            message = (
                f"Task '{dependent}' cannot depend on '{prerequisite}': "
                f"'{prerequisite}' already depends on '{dependent}' ({chain})"
            )
        else:
            message = f"Dependency graph contains a cycle ({chain})"
        super().__init__(
            message=message,
            error_code="cycle_detected",
            details=[{
                "loc": ["body"],
                "msg": chain,
                "type": "cycle_error",
                "path": list(path),
            }],
        )
        self.path = path
        self.labels = labels or path
        self.dependent = dependent
        self.prerequisite = prerequisite


class DuplicateEdgeError(DependencyValidationError):
    """An active dependency with the same endpoints and type already exists."""

    def __init__(self, dependent: str, prerequisite: str, dependency_type: str):
        super().__init__(
            message=(
                f"Task '{dependent}' already has a {dependency_type} dependency "
                f"on '{prerequisite}'"
            ),
            error_code="duplicate_dependency",
            status_code=status.HTTP_409_CONFLICT,
        )
        self.dependent = dependent
        self.prerequisite = prerequisite
        self.dependency_type = dependency_type


class ValidationError(TaskGraphException):
    """Request validation error."""

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None):
        super().__init__(
            message=message,
            error_code="validation_error",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
        )


# =============================================================================
# Exception Handlers
# =============================================================================

async def taskgraph_exception_handler(request: Request, exc: TaskGraphException) -> JSONResponse:
    """Handle TaskGraphException and return structured response."""
    body = ErrorResponse(error=exc.error_code, message=exc.message, details=exc.details)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger = get_logger("taskgraph.error")
    logger.exception(f"Unhandled exception: {exc}")

    body = ErrorResponse(error="internal_error", message="An unexpected error occurred")
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body.model_dump())


def register_exception_handlers(app):
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(TaskGraphException, taskgraph_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
