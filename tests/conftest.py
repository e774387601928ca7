"""
Pytest fixtures for Prompt Workstation tests.
"""

from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from src.database import enable_sqlite_foreign_keys
from src.kernel.events.event_store import EventStore
from src.kernel.models import Base
from src.kernel.models.dependency import DependencyKind, ResourceDependency
from src.kernel.models.project import Project
from src.kernel.models.resource import Agent, Hook, HookEvent, ResourceRef, Rule
from src.kernel.repository import SqlResourceRepository

# One shared in-memory database per test
TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session configured like the application's."""
    session_maker = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def repo(db_session: AsyncSession) -> SqlResourceRepository:
    return SqlResourceRepository(db_session)


@pytest.fixture
def event_store(db_session: AsyncSession) -> EventStore:
    return EventStore(db_session)


@pytest_asyncio.fixture
async def project(db_session: AsyncSession) -> Project:
    """A project with a description and tags."""
    project = Project(
        slug="payments-api",
        name="Payments API",
        description="Card payments backend",
        tags=["python", "fastapi"],
    )
    db_session.add(project)
    await db_session.commit()
    return project


@pytest.fixture
def make_agent(db_session: AsyncSession):
    """Factory: persist an agent and return its ref."""

    async def _make(
        resource_id: str,
        name: Optional[str] = None,
        is_enabled: bool = True,
        **fields,
    ) -> ResourceRef:
        agent = Agent(
            id=resource_id,
            name=name or resource_id,
            is_enabled=is_enabled,
            **fields,
        )
        db_session.add(agent)
        await db_session.commit()
        return ResourceRef.of(agent)

    return _make


@pytest.fixture
def make_rule(db_session: AsyncSession):
    """Factory: persist a rule and return its ref."""

    async def _make(
        resource_id: str,
        name: Optional[str] = None,
        is_active: bool = True,
        **fields,
    ) -> ResourceRef:
        fields.setdefault("rule_content", f"Follow {resource_id}.")
        rule = Rule(
            id=resource_id,
            name=name or resource_id,
            is_active=is_active,
            **fields,
        )
        db_session.add(rule)
        await db_session.commit()
        return ResourceRef.of(rule)

    return _make


@pytest.fixture
def make_hook(db_session: AsyncSession):
    """Factory: persist a hook and return its ref."""

    async def _make(
        resource_id: str,
        name: Optional[str] = None,
        trigger: HookEvent = HookEvent.PRE_TOOL_USE,
        **fields,
    ) -> ResourceRef:
        fields.setdefault("command", f"./scripts/{resource_id}.sh")
        hook = Hook(
            id=resource_id,
            name=name or resource_id,
            trigger=trigger,
            **fields,
        )
        db_session.add(hook)
        await db_session.commit()
        return ResourceRef.of(hook)

    return _make


@pytest.fixture
def add_edge(db_session: AsyncSession):
    """Factory: persist a dependency edge between two refs."""

    async def _add(
        source: ResourceRef,
        target: ResourceRef,
        kind: DependencyKind = DependencyKind.REQUIRES,
        critical: bool = True,
        reason: Optional[str] = None,
    ) -> ResourceDependency:
        edge = ResourceDependency(
            source_resource_type=source.resource_type,
            source_resource_id=source.resource_id,
            target_resource_type=target.resource_type,
            target_resource_id=target.resource_id,
            dependency_type=kind,
            is_critical=critical,
            dependency_reason=reason,
        )
        db_session.add(edge)
        await db_session.commit()
        return edge

    return _add
