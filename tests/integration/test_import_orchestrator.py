"""Integration tests for preview/approve/apply imports."""

import pytest

from src.engines.assembly import (
    ImportOrchestrator,
    ImportPolicy,
    ImportState,
    ResourceAssigner,
    pair_override,
)
from src.kernel.errors import (
    ConflictDetected,
    InvalidTransition,
    NotFound,
    PlanStale,
    ValidationError,
)
from src.kernel.models.dependency import DependencyKind
from src.kernel.models.event_log import EventType


@pytest.fixture
def orchestrator(repo, event_store) -> ImportOrchestrator:
    return ImportOrchestrator(repo, event_store=event_store)


@pytest.fixture
def assigner(repo, event_store) -> ResourceAssigner:
    return ResourceAssigner(repo, event_store)


def _keys(refs):
    return [r.key for r in refs]


class TestPreview:
    @pytest.mark.asyncio
    async def test_required_resource_is_pulled_in(self, orchestrator, repo, project, make_agent, make_rule, add_edge):
        a1 = await make_agent("a1")
        r1 = await make_rule("r1")
        await add_edge(a1, r1)

        plan = await orchestrator.preview(project.id, [a1])

        assert plan.state == ImportState.PREVIEWED
        assert plan.applicable
        assert [(p.ref.key, p.order, p.via_dependency) for p in plan.to_add] == [
            ("agent:a1", 0, False),
            ("rule:r1", 0, True),
        ]
        assert _keys(plan.dependency_additions) == ["rule:r1"]
        assert plan.basis_fingerprint
        # Preview writes nothing
        assert await repo.list_assignments(project.id) == []

    @pytest.mark.asyncio
    async def test_already_assigned_resources_are_skipped(
        self, orchestrator, assigner, project, make_agent, make_rule, add_edge,
    ):
        a1 = await make_agent("a1")
        r1 = await make_rule("r1")
        r2 = await make_rule("r2")
        await add_edge(a1, r1)
        await assigner.assign(project.id, r1)
        await assigner.assign(project.id, r2)

        plan = await orchestrator.preview(project.id, [a1])

        assert _keys(plan.refs_to_add) == ["agent:a1"]
        assert _keys(plan.already_assigned) == ["rule:r1"]

    @pytest.mark.asyncio
    async def test_enhancements_only_on_request(self, orchestrator, project, make_agent, make_rule, add_edge):
        a1 = await make_agent("a1")
        r1 = await make_rule("r1")
        await add_edge(a1, r1, DependencyKind.ENHANCES)

        plain = await orchestrator.preview(project.id, [a1])
        assert _keys(plain.refs_to_add) == ["agent:a1"]
        assert [e.target.key for e in plain.suggestions] == ["rule:r1"]
        assert [f.rule.value for f in plain.findings] == ["missing_enhancement"]

        enriched = await orchestrator.preview(
            project.id, [a1], ImportPolicy(include_advisory_enhancements=True),
        )
        assert _keys(enriched.refs_to_add) == ["agent:a1", "rule:r1"]
        assert enriched.to_add[1].via_enhancement
        assert enriched.suggestions == []

    @pytest.mark.asyncio
    async def test_missing_critical_target_is_blocking(self, orchestrator, project, make_agent, make_rule, add_edge):
        a1 = await make_agent("a1")
        r1 = await make_rule("r1", is_active=False)
        await add_edge(a1, r1)

        plan = await orchestrator.preview(project.id, [a1])

        assert not plan.applicable
        assert [(e.source.key, e.target.key) for e in plan.unresolved] == [("agent:a1", "rule:r1")]

    @pytest.mark.asyncio
    async def test_cycles_are_reported_not_fatal(self, orchestrator, project, make_rule, add_edge):
        r1 = await make_rule("r1")
        r2 = await make_rule("r2")
        await add_edge(r1, r2)
        await add_edge(r2, r1)

        plan = await orchestrator.preview(project.id, [r2])

        assert [_keys(c) for c in plan.cycles] == [["rule:r1", "rule:r2"]]
        assert _keys(plan.refs_to_add) == ["rule:r1", "rule:r2"]
        assert plan.applicable

    @pytest.mark.asyncio
    async def test_invalid_seeds(self, orchestrator, project, make_agent):
        off = await make_agent("off", is_enabled=False)
        with pytest.raises(ValidationError):
            await orchestrator.preview(project.id, [])
        with pytest.raises(NotFound):
            await orchestrator.preview(project.id, [off])
        with pytest.raises(NotFound):
            await orchestrator.preview(404, [off])


class TestApply:
    @pytest.mark.asyncio
    async def test_apply_inserts_everything(
        self, orchestrator, repo, event_store, project, make_agent, make_rule, add_edge,
    ):
        a1 = await make_agent("a1")
        r1 = await make_rule("r1")
        await add_edge(a1, r1)
        plan = await orchestrator.preview(project.id, [a1])

        applied = await orchestrator.apply(plan, actor="dana")

        assert applied.state == ImportState.APPLIED
        rows = {r.resource_id: r for r in await repo.list_assignments(project.id)}
        assert set(rows) == {"a1", "r1"}
        assert rows["r1"].assignment_reason == "imported as dependency"
        assert rows["a1"].assignment_reason == "imported"
        assert not any(r.is_primary for r in rows.values())
        assert await event_store.count_events(
            entity_type="project", entity_id=project.id, event_type=EventType.IMPORT_APPLIED,
        ) == 1

    @pytest.mark.asyncio
    async def test_apply_after_approval(self, orchestrator, repo, project, make_rule):
        r1 = await make_rule("r1")
        plan = orchestrator.approve(await orchestrator.preview(project.id, [r1]))
        assert plan.state == ImportState.APPROVED

        await orchestrator.apply(plan)

        assert [r.resource_id for r in await repo.list_assignments(project.id)] == ["r1"]

    @pytest.mark.asyncio
    async def test_rejected_plan_cannot_be_applied(self, orchestrator, repo, project, make_rule):
        r1 = await make_rule("r1")
        plan = orchestrator.reject(await orchestrator.preview(project.id, [r1]))

        with pytest.raises(InvalidTransition):
            await orchestrator.apply(plan)
        assert plan.state == ImportState.REJECTED

    @pytest.mark.asyncio
    async def test_blocking_conflict_rolls_back(
        self, orchestrator, repo, event_store, project, make_rule, add_edge,
    ):
        project_id = project.id
        r1 = await make_rule("r1")
        r2 = await make_rule("r2")
        await add_edge(r1, r2, DependencyKind.CONFLICTS)
        plan = await orchestrator.preview(project_id, [r1, r2])
        assert not plan.applicable

        with pytest.raises(ConflictDetected):
            await orchestrator.apply(plan)

        assert plan.state == ImportState.ROLLED_BACK
        assert plan.error
        assert await repo.list_assignments(project_id) == []
        assert await event_store.count_events(
            entity_type="project", entity_id=project_id, event_type=EventType.IMPORT_ROLLED_BACK,
        ) == 1
        assert await event_store.count_events(
            entity_type="project", entity_id=project_id, event_type=EventType.IMPORT_APPLIED,
        ) == 0

    @pytest.mark.asyncio
    async def test_confirmed_override_lets_conflict_through(
        self, orchestrator, repo, project, make_rule, add_edge,
    ):
        r1 = await make_rule("r1")
        r2 = await make_rule("r2")
        await add_edge(r1, r2, DependencyKind.CONFLICTS)
        plan = await orchestrator.preview(project.id, [r1, r2])

        await orchestrator.apply(plan, confirmed_overrides=[pair_override(r1, r2)])

        assert len(await repo.list_assignments(project.id)) == 2
        overrides = await repo.list_overrides(project.id)
        assert [(o.first_resource, o.second_resource) for o in overrides] == [("rule:r1", "rule:r2")]

    @pytest.mark.asyncio
    async def test_policy_override_applies_at_preview(self, orchestrator, project, make_rule, add_edge):
        r1 = await make_rule("r1")
        r2 = await make_rule("r2")
        await add_edge(r1, r2, DependencyKind.CONFLICTS)

        plan = await orchestrator.preview(
            project.id, [r1, r2], ImportPolicy(override_conflicts=[pair_override(r2, r1)]),
        )

        assert plan.applicable
        await orchestrator.apply(plan)
        assert plan.state == ImportState.APPLIED


class TestStaleness:
    @pytest.mark.asyncio
    async def test_resource_assigned_meanwhile(self, orchestrator, assigner, project, make_rule):
        project_id = project.id
        r1 = await make_rule("r1")
        plan = await orchestrator.preview(project_id, [r1])
        await assigner.assign(project_id, r1)

        with pytest.raises(PlanStale) as exc_info:
            await orchestrator.apply(plan)

        assert exc_info.value.details["already_assigned"] == ["rule:r1"]
        assert plan.state == ImportState.ROLLED_BACK

    @pytest.mark.asyncio
    async def test_new_conflict_makes_plan_stale(
        self, orchestrator, assigner, repo, project, make_agent, make_rule, add_edge,
    ):
        project_id = project.id
        a1 = await make_agent("a1")
        r2 = await make_rule("r2")
        await add_edge(a1, r2, DependencyKind.CONFLICTS)
        plan = await orchestrator.preview(project_id, [a1])
        await assigner.assign(project_id, r2)

        with pytest.raises(PlanStale) as exc_info:
            await orchestrator.apply(plan)

        assert exc_info.value.details["blocking"][0]["rule"] == "declared_conflict"
        assert [r.resource_id for r in await repo.list_assignments(project_id)] == ["r2"]

    @pytest.mark.asyncio
    async def test_unrelated_change_is_absorbed(self, orchestrator, assigner, repo, project, make_rule):
        r1 = await make_rule("r1")
        r3 = await make_rule("r3")
        plan = await orchestrator.preview(project.id, [r1])
        await assigner.assign(project.id, r3)

        await orchestrator.apply(plan)

        assert sorted(r.resource_id for r in await repo.list_assignments(project.id)) == ["r1", "r3"]
