"""Unit tests for the import plan lifecycle."""

import pytest

from src.engines.assembly.import_orchestrator import (
    ImportPlan,
    ImportState,
    can_transition,
    valid_transitions,
)
from src.kernel.errors import InvalidTransition, ValidationError
from src.kernel.models.resource import ResourceRef


def _plan(state: ImportState = ImportState.REQUESTED) -> ImportPlan:
    return ImportPlan(project_id=1, seeds=[ResourceRef.parse("agent:a")], state=state)


class TestTransitions:
    def test_happy_path(self):
        plan = _plan()
        for state in (ImportState.PREVIEWED, ImportState.APPROVED, ImportState.APPLIED):
            plan.transition(state)
        assert plan.state == ImportState.APPLIED

    def test_preview_must_be_approved_or_rejected(self):
        assert not can_transition(ImportState.PREVIEWED, ImportState.APPLIED)
        assert valid_transitions(ImportState.PREVIEWED) == [ImportState.APPROVED, ImportState.REJECTED]

    def test_terminal_states(self):
        for state in (ImportState.REJECTED, ImportState.APPLIED, ImportState.ROLLED_BACK):
            assert valid_transitions(state) == []

    def test_rejected_plan_cannot_be_applied(self):
        plan = _plan(ImportState.REJECTED)
        with pytest.raises(InvalidTransition) as exc_info:
            plan.transition(ImportState.APPLIED)
        assert exc_info.value.details["from"] == "rejected"
        assert exc_info.value.details["allowed"] == []

    def test_requested_cannot_be_approved(self):
        plan = _plan()
        with pytest.raises(InvalidTransition) as exc_info:
            plan.transition(ImportState.APPROVED)
        assert exc_info.value.details["allowed"] == ["previewed"]

    def test_invalid_transition_is_a_validation_error(self):
        with pytest.raises(ValidationError):
            _plan(ImportState.APPLIED).transition(ImportState.PREVIEWED)


def test_plan_round_trips_through_json():
    plan = _plan(ImportState.PREVIEWED)
    restored = ImportPlan.model_validate_json(plan.model_dump_json())
    assert restored == plan
    assert restored.applicable
    assert restored.refs_to_add == []
