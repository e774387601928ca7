"""
System smoke test: full API flow in-process with SQLite.
Verifies health, projects, shared resources, dependencies, assignments,
imports and export, plus the error contract of the engine.
Uses a temp file DB so all connections share the same database.
"""

import io
import os
import tempfile
import uuid
import zipfile
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Use file-based SQLite so all connections share the same DB (in-memory is per-connection)
_tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
_tmp.close()
TEST_DB_PATH = _tmp.name
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{TEST_DB_PATH}"
os.environ["SUGGESTION_SERVICE_URL"] = ""
# Force config reload so app uses test DB
from src.config import get_settings
get_settings.cache_clear()

from src.database import enable_sqlite_foreign_keys, get_db
from src.kernel.models import Base
from src.main import app


TEST_ENGINE = create_async_engine(
    f"sqlite+aiosqlite:///{TEST_DB_PATH}",
    echo=False,
    connect_args={"check_same_thread": False},
)
enable_sqlite_foreign_keys(TEST_ENGINE)
TEST_SESSION_MAKER = async_sessionmaker(
    TEST_ENGINE,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TEST_SESSION_MAKER() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@pytest_asyncio.fixture
async def client():
    """Async client bound to the test DB."""
    async with TEST_ENGINE.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    app.dependency_overrides[get_db] = override_get_db
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.pop(get_db, None)


def pytest_sessionfinish(session, exitstatus):
    try:
        if os.path.exists(TEST_DB_PATH):
            os.unlink(TEST_DB_PATH)
    except OSError:
        pass


async def _create_project(client: AsyncClient, name: str = None) -> dict:
    r = await client.post(
        "/api/v1/projects",
        json={"name": name or f"Smoke {uuid.uuid4().hex[:8]}", "description": "Smoke test", "tags": ["smoke"]},
    )
    assert r.status_code == 201, r.text
    return r.json()


async def _create(client: AsyncClient, path: str, body: dict) -> str:
    r = await client.post(f"/api/v1/{path}", json=body)
    assert r.status_code == 201, r.text
    return r.json()["id"]


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    r = await client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "ok"
    assert data["database"] == "connected"
    assert data["suggestions_configured"] is False
    assert r.headers.get("X-Request-ID")


@pytest.mark.asyncio
async def test_request_id_is_echoed(client: AsyncClient):
    r = await client.get("/health", headers={"X-Request-ID": "smoke-123"})
    assert r.headers["X-Request-ID"] == "smoke-123"


@pytest.mark.asyncio
async def test_project_crud(client: AsyncClient):
    project = await _create_project(client, "Payments Gateway")
    assert project["slug"].startswith("payments-gateway")

    r = await client.get(f"/api/v1/projects/{project['id']}")
    assert r.status_code == 200
    assert r.json()["name"] == "Payments Gateway"

    r = await client.get(f"/api/v1/projects/by-slug/{project['slug']}")
    assert r.status_code == 200
    assert r.json()["id"] == project["id"]

    r = await client.patch(f"/api/v1/projects/{project['id']}", json={"description": "Updated"})
    assert r.status_code == 200
    assert r.json()["description"] == "Updated"

    r = await client.delete(f"/api/v1/projects/{project['id']}")
    assert r.status_code == 200

    r = await client.get(f"/api/v1/projects/{project['id']}")
    assert r.status_code == 404
    assert r.json()["code"] == "not_found"


@pytest.mark.asyncio
async def test_request_validation(client: AsyncClient):
    r = await client.post("/api/v1/projects", json={"name": ""})
    assert r.status_code == 422
    assert r.json()["code"] == "validation_error"


@pytest.mark.asyncio
async def test_assign_import_and_export_flow(client: AsyncClient):
    """Dependency-aware import followed by a full export."""
    project = await _create_project(client)
    pid = project["id"]
    agent_id = await _create(client, "agents", {"name": "Smoke Reviewer", "role": "a reviewer"})
    rule_id = await _create(client, "rules", {"name": "Typing", "rule_content": "Use type hints."})

    r = await client.post("/api/v1/dependencies", json={
        "source_resource_type": "agent",
        "source_resource_id": agent_id,
        "target_resource_type": "rule",
        "target_resource_id": rule_id,
        "dependency_type": "requires",
        "is_critical": True,
    })
    assert r.status_code == 201, r.text

    # Direct assignment refuses to leave the requirement unmet
    r = await client.post(f"/api/v1/projects/{pid}/assignments", json={
        "resource_type": "agent",
        "resource_id": agent_id,
        "is_primary": True,
    })
    assert r.status_code == 409
    body = r.json()
    assert body["code"] == "unresolved_critical_dependency"
    assert body["details"]["resources"] == [f"agent:{agent_id}", f"rule:{rule_id}"]

    # Import pulls the rule in
    r = await client.post(f"/api/v1/projects/{pid}/imports/preview", json={
        "seeds": [{"resource_type": "agent", "resource_id": agent_id}],
    })
    assert r.status_code == 200, r.text
    plan = r.json()
    assert plan["state"] == "previewed"
    assert sorted(p["ref"]["resource_type"] for p in plan["to_add"]) == ["agent", "rule"]

    r = await client.post(
        f"/api/v1/projects/{pid}/imports/apply",
        json={"plan": plan},
        headers={"X-Actor": "smoke"},
    )
    assert r.status_code == 200, r.text
    assert r.json()["state"] == "applied"

    r = await client.get(f"/api/v1/projects/{pid}/assignments")
    assert r.status_code == 200
    assert len(r.json()) == 2

    # The rule cannot leave while the agent requires it
    r = await client.delete(f"/api/v1/projects/{pid}/assignments/rule/{rule_id}")
    assert r.status_code == 409

    r = await client.get(f"/api/v1/projects/{pid}/export/check")
    assert r.status_code == 200
    assert r.json()["allowed"] is True

    r = await client.post(f"/api/v1/projects/{pid}/export")
    assert r.status_code == 200, r.text
    bundle = r.json()
    assert "CLAUDE.md" in bundle["files"]
    assert ".claude/rules.md" in bundle["files"]
    assert ".claude/hooks.json" not in bundle["files"]

    r = await client.get(f"/api/v1/projects/{pid}/export/zip")
    assert r.status_code == 200
    assert r.headers["content-type"] == "application/zip"
    assert project["slug"] in r.headers["content-disposition"]
    with zipfile.ZipFile(io.BytesIO(r.content)) as archive:
        assert archive.read("CLAUDE.md").decode("utf-8") == bundle["files"]["CLAUDE.md"]

    r = await client.get(f"/api/v1/projects/{pid}/export/history")
    assert r.status_code == 200
    assert [h["status"] for h in r.json()] == ["completed", "completed"]

    r = await client.get(f"/api/v1/projects/{pid}/events", params={"event_type": "import.applied"})
    assert r.status_code == 200
    events = r.json()
    assert len(events) == 1
    assert events[0]["actor"] == "smoke"
    assert events[0]["payload"]["dependency_additions"] == [f"rule:{rule_id}"]

    r = await client.get(f"/api/v1/projects/{pid}/events", params={"event_type": "export.completed"})
    assert len(r.json()) == 2


@pytest.mark.asyncio
async def test_export_without_agent_is_rejected(client: AsyncClient):
    project = await _create_project(client)
    r = await client.post(f"/api/v1/projects/{project['id']}/export")
    assert r.status_code == 422
    body = r.json()
    assert body["code"] == "export_validation_failed"
    assert body["details"]["report"][0]["reason"] == "no_agent_assigned"

    r = await client.get(f"/api/v1/projects/{project['id']}/export/history")
    assert [h["status"] for h in r.json()] == ["failed"]


@pytest.mark.asyncio
async def test_duplicate_assignment_and_reorder_mismatch(client: AsyncClient):
    project = await _create_project(client)
    pid = project["id"]
    rule_id = await _create(client, "rules", {"name": "Docs", "rule_content": "Write docstrings."})

    body = {"resource_type": "rule", "resource_id": rule_id}
    r = await client.post(f"/api/v1/projects/{pid}/assignments", json=body)
    assert r.status_code == 201, r.text
    r = await client.post(f"/api/v1/projects/{pid}/assignments", json=body)
    assert r.status_code == 409
    assert r.json()["code"] == "invariant_violation"

    r = await client.put(
        f"/api/v1/projects/{pid}/assignments/order",
        json={"resource_type": "rule", "ordered_ids": ["nope"]},
    )
    assert r.status_code == 409
    assert r.json()["details"]["invariant"] == "reorder_set_mismatch"


@pytest.mark.asyncio
async def test_unknown_project_assignment(client: AsyncClient):
    r = await client.get("/api/v1/projects/999999/assignments")
    assert r.status_code == 404
