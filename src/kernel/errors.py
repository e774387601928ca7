"""
Error taxonomy for the assembly engine.

Every error carries a machine-readable ``code`` and a ``details`` dict with
the offending resource keys, edge kinds or invariant names, so the API layer
can render an actionable message without parsing strings.
"""

from typing import Any, Dict, List, Optional


class AssemblyError(Exception):
    """Base class for all engine errors."""

    code = "assembly_error"

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "code": self.code, "details": self.details}


class ValidationError(AssemblyError):
    """Malformed input, rejected before any storage call."""

    code = "validation_error"


class InvalidTransition(ValidationError):
    """An import plan was moved along an edge its state machine does not have."""

    code = "invalid_transition"


class NotFound(AssemblyError):
    """A project or resource does not exist (or is disabled)."""

    code = "not_found"


class NotAssigned(NotFound):
    """Unassign/reorder named a resource that is not assigned to the project."""

    code = "not_assigned"


class InvariantViolation(AssemblyError):
    """Duplicate primary, duplicate identity or a mismatched reorder set."""

    code = "invariant_violation"

    def __init__(self, message: str, *, invariant: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details={"invariant": invariant, **(details or {})})
        self.invariant = invariant


class DependencyCycle(AssemblyError):
    """Cycle among requires edges. Annotated on plans, never raised by the engine itself."""

    code = "dependency_cycle"


class UnresolvedCriticalDependency(AssemblyError):
    """A critical requires edge has its source assigned and its target missing."""

    code = "unresolved_critical_dependency"


class ConflictDetected(AssemblyError):
    """Two co-assigned resources are joined by a conflicts edge."""

    code = "conflict_detected"


class PlanStale(AssemblyError):
    """The assignment set changed since the plan (or export read) was computed."""

    code = "plan_stale"


class ExportValidationFailed(AssemblyError):
    """Export gate rejected the project; ``report`` lists every failed check."""

    code = "export_validation_failed"

    def __init__(self, message: str, *, report: List[Dict[str, Any]]):
        super().__init__(message, details={"report": report})
        self.report = report


class StorageTransactionFailed(AssemblyError):
    """Opaque lower-layer failure. The transaction has been rolled back."""

    code = "storage_transaction_failed"
