"""Integration tests for export assembly and export history."""

import io
import json
import zipfile
from datetime import datetime, timezone

import pytest

from src.engines.assembly import (
    AssignmentOptions,
    ExportAssembler,
    ExportBlockReason,
    ResourceAssigner,
    pair_override,
)
from src.kernel.errors import ExportValidationFailed, NotFound
from src.kernel.models.dependency import DependencyKind
from src.kernel.models.event_log import EventType
from src.kernel.models.export_record import ExportStatus

GENERATED_AT = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


@pytest.fixture
def assigner(repo, event_store) -> ResourceAssigner:
    return ResourceAssigner(repo, event_store)


@pytest.fixture
def assembler(repo, event_store) -> ExportAssembler:
    return ExportAssembler(repo, event_store)


@pytest.fixture
def configured_project(project, assigner, make_agent, make_rule):
    """Project with a primary agent and one rule, both carrying settings."""

    async def _configure():
        agent = await make_agent(
            "a1",
            name="Code Reviewer",
            role="a careful reviewer",
            agent_config={"allowedTools": ["Read", "Grep"], "model": "sonnet"},
        )
        rule = await make_rule("r1", name="Type Hints", category="style")
        await assigner.assign(
            project.id, agent,
            AssignmentOptions(is_primary=True, config_overrides={"model": "opus", "theme": "dark"}),
        )
        await assigner.assign(project.id, rule, AssignmentOptions(config_overrides={"theme": "light"}))
        return project

    return _configure


class TestExport:
    @pytest.mark.asyncio
    async def test_bundle_layout(self, assembler, configured_project):
        project = await configured_project()

        bundle = await assembler.export(project.id, exported_by="dana", generated_at=GENERATED_AT)

        assert list(bundle.files) == [
            ".claude/agents/code-reviewer.md",
            ".claude/rules.md",
            ".claude/settings.json",
            "CLAUDE.md",
        ]
        assert [f.path for f in bundle.manifest] == list(bundle.files)
        assert bundle.generated_at == "2026-01-02T03:04:05Z"
        assert "2026-01-02T03:04:05Z" in bundle.files["CLAUDE.md"]
        assert "**Code Reviewer** (`agent:a1`) - a careful reviewer" in bundle.files["CLAUDE.md"]
        assert bundle.files[".claude/agents/code-reviewer.md"].startswith("---\nname: code-reviewer\n")
        assert [r.key for r in bundle.resources] == ["agent:a1", "rule:r1"]
        assert bundle.record_id

    @pytest.mark.asyncio
    async def test_settings_merge_later_entries_win(self, assembler, configured_project):
        project = await configured_project()

        bundle = await assembler.export(project.id, generated_at=GENERATED_AT)

        assert json.loads(bundle.files[".claude/settings.json"]) == {"model": "opus", "theme": "light"}

    @pytest.mark.asyncio
    async def test_same_state_same_bytes(self, assembler, configured_project):
        project = await configured_project()

        first = await assembler.export(project.id)
        second = await assembler.export(project.id)

        assert first.files == second.files
        assert first.to_zip() == second.to_zip()

    @pytest.mark.asyncio
    async def test_zip_contains_manifest_paths(self, assembler, configured_project):
        project = await configured_project()
        bundle = await assembler.export(project.id, generated_at=GENERATED_AT)

        with zipfile.ZipFile(io.BytesIO(bundle.to_zip())) as archive:
            assert archive.namelist() == list(bundle.files)
            assert archive.read("CLAUDE.md").decode("utf-8") == bundle.files["CLAUDE.md"]

    @pytest.mark.asyncio
    async def test_hooks_file_only_when_assigned(self, assembler, assigner, configured_project, make_hook):
        project = await configured_project()
        without = await assembler.export(project.id, generated_at=GENERATED_AT)
        assert ".claude/hooks.json" not in without.files

        await assigner.assign(project.id, await make_hook("h1", timeout_ms=5000))
        with_hook = await assembler.export(project.id, generated_at=GENERATED_AT)

        hooks = json.loads(with_hook.files[".claude/hooks.json"])
        assert json.dumps(hooks).count("./scripts/h1.sh") == 1

    @pytest.mark.asyncio
    async def test_colliding_agent_names_get_suffix(self, assembler, assigner, project, make_agent):
        a = await make_agent("aaaa1111xyz", name="Reviewer")
        b = await make_agent("bbbb2222xyz", name="Reviewer")
        await assigner.assign(project.id, a)
        await assigner.assign(project.id, b)

        bundle = await assembler.export(project.id, generated_at=GENERATED_AT)

        assert sorted(p for p in bundle.files if p.startswith(".claude/agents/")) == [
            ".claude/agents/reviewer-aaaa1111.md",
            ".claude/agents/reviewer-bbbb2222.md",
        ]

    @pytest.mark.asyncio
    async def test_one_file_per_agent_when_a_name_matches_a_suffix(
        self, assembler, assigner, project, make_agent,
    ):
        agents = [
            await make_agent("aaaa1111x", name="Reviewer"),
            await make_agent("bbbb2222x", name="Reviewer"),
            await make_agent("cccc3333x", name="reviewer-aaaa1111"),
        ]
        for agent in agents:
            await assigner.assign(project.id, agent)

        bundle = await assembler.export(project.id, generated_at=GENERATED_AT)

        agent_files = [p for p in bundle.files if p.startswith(".claude/agents/")]
        assert len(agent_files) == 3
        assert len([f for f in bundle.manifest if f.path.startswith(".claude/agents/")]) == 3
        assert bundle.files[".claude/agents/reviewer-aaaa1111.md"].startswith("---\nname: reviewer-aaaa1111\n")
        assert bundle.files[".claude/agents/reviewer-aaaa1111x.md"].startswith("---\nname: reviewer-aaaa1111x\n")

    @pytest.mark.asyncio
    async def test_persisted_override_keeps_export_open(
        self, assembler, assigner, project, make_agent, make_rule, add_edge,
    ):
        a1 = await make_agent("a1")
        r1 = await make_rule("r1")
        r2 = await make_rule("r2")
        await add_edge(r1, r2, DependencyKind.CONFLICTS)
        await assigner.assign(project.id, a1)
        await assigner.assign(project.id, r1)
        await assigner.assign(project.id, r2, overrides=[pair_override(r1, r2)])

        decision = await assembler.check(project.id)

        assert decision.allowed


class TestExportGate:
    @pytest.mark.asyncio
    async def test_no_agent_fails_and_is_recorded(
        self, assembler, assigner, repo, event_store, project, make_rule,
    ):
        await assigner.assign(project.id, await make_rule("r1"))

        with pytest.raises(ExportValidationFailed) as exc_info:
            await assembler.export(project.id)

        assert [item["reason"] for item in exc_info.value.report] == [ExportBlockReason.NO_AGENT_ASSIGNED.value]
        history = await assembler.history(project.id)
        assert [r.status for r in history] == [ExportStatus.FAILED]
        assert history[0].error_message
        assert await event_store.count_events(
            entity_type="project", entity_id=project.id, event_type=EventType.EXPORT_BLOCKED,
        ) == 1

    @pytest.mark.asyncio
    async def test_disabled_resource_blocks(self, assembler, assigner, repo, db_session, project, make_agent):
        a1 = await make_agent("a1")
        await assigner.assign(project.id, a1)
        agent = await repo.get_resource(a1)
        agent.is_enabled = False
        await db_session.commit()

        decision = await assembler.check(project.id)

        assert not decision.allowed
        assert [(i.reason, i.resources) for i in decision.items] == [
            (ExportBlockReason.DISABLED_RESOURCE, ["agent:a1"]),
        ]

    @pytest.mark.asyncio
    async def test_check_writes_nothing(self, assembler, project):
        decision = await assembler.check(project.id)

        assert not decision.allowed
        assert await assembler.history(project.id) == []

    @pytest.mark.asyncio
    async def test_missing_project(self, assembler):
        with pytest.raises(NotFound):
            await assembler.export(12345)
        with pytest.raises(NotFound):
            await assembler.history(12345)


@pytest.mark.asyncio
async def test_history_lists_every_run(assembler, configured_project):
    project = await configured_project()
    await assembler.export(project.id, generated_at=GENERATED_AT)
    await assembler.export(project.id, generated_at=GENERATED_AT)

    history = await assembler.history(project.id)

    assert len(history) == 2
    assert [r.status for r in history] == [ExportStatus.COMPLETED, ExportStatus.COMPLETED]
    assert history[0].included_resources == ["agent:a1", "rule:r1"]
    assert [f["path"] for f in history[0].file_manifest][-1] == "CLAUDE.md"
    assert await assembler.history(project.id, limit=1) != []


def test_unknown_template_version(repo):
    with pytest.raises(ValueError):
        ExportAssembler(repo, template_version="2")
