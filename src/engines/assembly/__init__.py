"""
Assembly Engine - assignment, dependency resolution, conflict detection and export.
"""

from src.engines.assembly.types import (
    CandidateAssignment,
    ConflictFinding,
    ConflictReport,
    ConflictRule,
    DependencyEdge,
    ExpansionPlan,
    FindingSeverity,
    ResourceOverride,
    pair_override,
)
from src.engines.assembly.dependency_resolver import (
    DependencyGraphResolver,
    UnknownEdgeKind,
)
from src.engines.assembly.conflict_detector import ConflictDetector
from src.engines.assembly.resource_assigner import (
    AssignmentOptions,
    AssignmentOutcome,
    AssignmentSpec,
    AvailableResource,
    ResourceAssigner,
)
from src.engines.assembly.import_orchestrator import (
    ImportOrchestrator,
    ImportPlan,
    ImportPolicy,
    ImportState,
    PlannedAssignment,
)
from src.engines.assembly.export_gate import (
    ExportBlockReason,
    ExportDecision,
    ExportGate,
)
from src.engines.assembly.export_assembler import (
    ExportAssembler,
    ExportBundle,
    ExportedFile,
)
from src.engines.assembly.templates import TEMPLATE_VERSION

__all__ = [
    "CandidateAssignment",
    "ConflictFinding",
    "ConflictReport",
    "ConflictRule",
    "DependencyEdge",
    "ExpansionPlan",
    "FindingSeverity",
    "ResourceOverride",
    "pair_override",
    "DependencyGraphResolver",
    "UnknownEdgeKind",
    "ConflictDetector",
    "AssignmentOptions",
    "AssignmentOutcome",
    "AssignmentSpec",
    "AvailableResource",
    "ResourceAssigner",
    "ImportOrchestrator",
    "ImportPlan",
    "ImportPolicy",
    "ImportState",
    "PlannedAssignment",
    "ExportBlockReason",
    "ExportDecision",
    "ExportGate",
    "ExportAssembler",
    "ExportBundle",
    "ExportedFile",
    "TEMPLATE_VERSION",
]
