"""
Pytest configuration and fixtures for Taskgraph tests.
"""

import uuid

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from taskgraph.main import app
from taskgraph.database import get_session
from taskgraph.models import Project, Task
from taskgraph.routes import dependencies as dependency_routes
from taskgraph.routes import tasks as task_routes


# In-memory SQLite shared by every session of one test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Let SQLAlchemy emit BEGIN itself so SAVEPOINTs work under aiosqlite
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    # Drop all tables after tests
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_session(test_engine):
    """Create a test database session."""
    async_session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session_maker() as session:
        yield session


@pytest.fixture
def enqueued(monkeypatch):
    """Replace the arq enqueue with a recorder of project IDs."""
    calls = []

    async def fake_enqueue(project_id: str) -> None:
        calls.append(project_id)

    monkeypatch.setattr(dependency_routes, "enqueue_critical_path_refresh", fake_enqueue)
    monkeypatch.setattr(task_routes, "enqueue_critical_path_refresh", fake_enqueue)
    return calls


@pytest_asyncio.fixture(scope="function")
async def client(test_engine, enqueued):
    """Create an async test client with test database."""
    async_session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async def override_get_session():
        async with async_session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# =============================================================================
# Factories
# =============================================================================

@pytest.fixture
def new_task():
    """Build unsaved tasks; all share one project unless project_id is given."""
    project_id = uuid.uuid4()

    def _new_task(title: str, **fields) -> Task:
        fields.setdefault("project_id", project_id)
        return Task(title=title, **fields)

    return _new_task


@pytest_asyncio.fixture
async def project(test_session):
    project = Project(name="Build Season")
    test_session.add(project)
    await test_session.flush()
    return project


@pytest.fixture
def make_task(test_session, project):
    """Create and flush a task in the test project."""

    async def _make_task(title: str, **fields) -> Task:
        fields.setdefault("project_id", project.id)
        task = Task(title=title, **fields)
        test_session.add(task)
        await test_session.flush()
        return task

    return _make_task
