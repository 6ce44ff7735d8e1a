"""
Taskgraph - task dependency graph and critical path scheduling service.
"""

from fastapi import FastAPI
from contextlib import asynccontextmanager

from taskgraph import __version__
from taskgraph.database import init_db
from taskgraph.routes import tasks, dependencies, projects
from taskgraph.exceptions import register_exception_handlers
from taskgraph.logging_config import setup_logging, get_logger

# Initialize logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    logger.info("Starting Taskgraph API...")
    await init_db()
    logger.info("Database initialized")
    yield
    logger.info("Shutting down Taskgraph API...")


app = FastAPI(
    title="Taskgraph",
    description="Typed task dependencies, cycle-safe validation and critical path scheduling",
    version=__version__,
    lifespan=lifespan,
)

# Register custom exception handlers
register_exception_handlers(app)

# Include routers
app.include_router(projects.router, prefix="/projects", tags=["Projects"])
app.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])
app.include_router(dependencies.router, prefix="/dependencies", tags=["Dependencies"])


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
