"""
ARQ Worker for background task processing.

This worker handles:
- refresh_critical_path: Recomputes the critical_path flag on every
  dependency of a project after its graph changed

Usage:
    arq taskgraph.worker.WorkerSettings
"""

import uuid

from arq import create_pool
from arq.connections import RedisSettings, ArqRedis

from taskgraph.config import get_settings
from taskgraph.database import get_session_context
from taskgraph.exceptions import CycleError
from taskgraph.logging_config import setup_logging, get_logger
from taskgraph.services.critical_path import update_critical_path_markers

# Initialize logging for the worker
setup_logging()
logger = get_logger(__name__)

settings = get_settings()


async def refresh_critical_path(ctx: dict, project_id: str) -> int | None:
    """
    Recompute critical path markers for one project.

    Returns the number of critical edges, or None when the graph is cyclic
    and no schedule exists.
    """
    logger.info(f"Refreshing critical path for project {project_id[:8]}...")
    try:
        async with get_session_context() as session:
            return await update_critical_path_markers(session, uuid.UUID(project_id))
    except CycleError as exc:
        logger.warning(f"Skipped critical path refresh for {project_id[:8]}...: {exc.message}")
        return None


async def startup(ctx: dict) -> None:
    """Worker startup."""
    logger.info("ARQ Worker starting up...")
    logger.info(f"Redis: {settings.redis_url}")


async def shutdown(ctx: dict) -> None:
    """Worker shutdown - cleanup."""
    logger.info("ARQ Worker shutting down...")


class WorkerSettings:
    """ARQ Worker configuration."""

    functions = [refresh_critical_path]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    max_jobs = 10
    job_timeout = 300  # 5 minutes max per job


# Redis pool for enqueuing jobs from the API
_arq_pool: ArqRedis | None = None


async def get_arq_pool() -> ArqRedis:
    """Get or create the ARQ Redis pool for enqueuing jobs."""
    global _arq_pool
    if _arq_pool is None:
        logger.debug("Creating ARQ Redis pool")
        _arq_pool = await create_pool(RedisSettings.from_dsn(settings.redis_url))
    return _arq_pool


async def enqueue_critical_path_refresh(project_id: str) -> None:
    """Enqueue a critical path refresh for a project whose graph changed."""
    pool = await get_arq_pool()
    logger.debug(f"Enqueuing critical path refresh: project={project_id[:8]}...")
    await pool.enqueue_job("refresh_critical_path", project_id)
