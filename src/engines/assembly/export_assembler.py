"""
Export Assembler - renders a project's persisted assignment set into files.

Flow:
1. Snapshot the assignment set, the assigned resources and their edges
2. Gate: >=1 agent, no missing or disabled resource, no blocking finding
3. Render every file with the versioned templates (pure)
4. Re-read the assignment set; a change since step 1 raises PlanStale
5. Append an ExportRecord (completed or failed) with its audit event

The bundle is an in-memory path -> content map; ``to_zip`` packs it.
"""

import io
import time
import zipfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from src.engines.assembly import templates
from src.engines.assembly.conflict_detector import ConflictDetector
from src.engines.assembly.export_gate import ExportDecision, ExportGate
from src.engines.assembly.storage import (
    fingerprint_assignments,
    load_candidates,
    load_edges,
    load_overrides,
    ref_of,
)
from src.engines.assembly.templates import RenderItem
from src.engines.assembly.types import DependencyEdge
from src.kernel.errors import AssemblyError, ExportValidationFailed, NotFound, PlanStale
from src.kernel.events.event_store import EventStore
from src.kernel.events.event_types import ExportEvent
from src.kernel.models.assignment import Assignment
from src.kernel.models.base import utcnow
from src.kernel.models.event_log import EventType
from src.kernel.models.export_record import ExportRecord, ExportStatus
from src.kernel.models.project import Project
from src.kernel.models.resource import ResourceRef, ResourceType
from src.kernel.repository import ResourceRepository
from src.logging_config import bind_project, get_logger

logger = get_logger(__name__)

# Fixed entry timestamp so equal bundles zip to equal bytes
_ZIP_DATE_TIME = (1980, 1, 1, 0, 0, 0)


@dataclass
class ExportedFile:
    path: str
    size_bytes: int


@dataclass
class ExportBundle:
    """Rendered files of one export plus their manifest."""
    project_id: int
    files: Dict[str, str]
    manifest: List[ExportedFile]
    template_version: str
    resources: List[ResourceRef]
    generated_at: str
    record_id: Optional[str] = None

    @property
    def total_bytes(self) -> int:
        return sum(f.size_bytes for f in self.manifest)

    def to_zip(self) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for entry in self.manifest:
                info = zipfile.ZipInfo(entry.path, date_time=_ZIP_DATE_TIME)
                info.compress_type = zipfile.ZIP_DEFLATED
                info.external_attr = 0o644 << 16
                archive.writestr(info, self.files[entry.path].encode("utf-8"))
        return buffer.getvalue()


@dataclass
class _Snapshot:
    project: Project
    assignments: List[Assignment]
    fingerprint: str
    items: List[RenderItem] = field(default_factory=list)
    edges: List[DependencyEdge] = field(default_factory=list)
    decision: Optional[ExportDecision] = None


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ExportAssembler:
    """
    Usage:
        assembler = ExportAssembler(repo, EventStore(session))
        bundle = await assembler.export(project_id)
        archive = bundle.to_zip()
    """

    def __init__(
        self,
        repository: ResourceRepository,
        event_store: Optional[EventStore] = None,
        detector: Optional[ConflictDetector] = None,
        template_version: str = templates.TEMPLATE_VERSION,
    ):
        if template_version != templates.TEMPLATE_VERSION:
            raise ValueError(
                f"Unsupported export template version {template_version!r}; "
                f"available: {templates.TEMPLATE_VERSION!r}"
            )
        self.repository = repository
        self.event_store = event_store
        self.detector = detector or ConflictDetector()
        self.template_version = template_version

    async def check(self, project_id: int) -> ExportDecision:
        """Run the export gate without rendering or recording anything."""
        with bind_project(project_id):
            snapshot = await self._snapshot(project_id)
            return snapshot.decision

    async def export(
        self,
        project_id: int,
        exported_by: Optional[str] = None,
        generated_at: Optional[datetime] = None,
    ) -> ExportBundle:
        """
        Render the project's bundle and append it to the export history.

        Args:
            project_id: Project to export
            exported_by: Free-form actor recorded on the ExportRecord
            generated_at: Timestamp for the manifest; defaults to the latest
                change among the project, its assignments and their resources

        Raises:
            NotFound: Project missing
            ExportValidationFailed: Gate rejected the project (no files produced)
            PlanStale: Assignments changed while rendering
        """
        with bind_project(project_id):
            started_at = utcnow()
            started = time.monotonic()

            snapshot = await self._snapshot(project_id)
            if not snapshot.decision.allowed:
                report = snapshot.decision.report()
                message = f"Project {project_id} cannot be exported: {len(report)} check(s) failed"
                await self._record_failure(project_id, message, started_at, started, exported_by, report)
                logger.warning("Export blocked", extra={"failed_checks": len(report)})
                raise ExportValidationFailed(message, report=report)

            stamp = templates.format_timestamp(generated_at or self._last_change(snapshot))
            files = self._render(snapshot, stamp)

            current = await self.repository.list_assignments(project_id)
            if fingerprint_assignments(current) != snapshot.fingerprint:
                message = "Assignments changed while the export was rendered"
                await self._record_failure(project_id, message, started_at, started, exported_by, [])
                raise PlanStale(message, details={"project_id": project_id})

            manifest = [
                ExportedFile(path=path, size_bytes=len(content.encode("utf-8")))
                for path, content in files.items()
            ]
            bundle = ExportBundle(
                project_id=project_id,
                files=files,
                manifest=manifest,
                template_version=self.template_version,
                resources=[item.ref for item in snapshot.items],
                generated_at=stamp,
            )

            record = self._record(
                project_id, ExportStatus.COMPLETED, started_at, started, exported_by,
                resources=[r.key for r in bundle.resources],
                manifest=[{"path": f.path, "size_bytes": f.size_bytes} for f in manifest],
                file_size=bundle.total_bytes,
            )

            async def _persist() -> None:
                await self.repository.add(record)
                await self._log(EventType.EXPORT_COMPLETED, project_id, exported_by, ExportEvent(
                    project_id=project_id,
                    template_version=self.template_version,
                    file_count=len(manifest),
                    total_bytes=bundle.total_bytes,
                ))
                await self.repository.flush()

            await self.repository.run_in_transaction(_persist)
            bundle.record_id = record.id

            logger.info(
                "Export completed",
                extra={"files": len(manifest), "total_bytes": bundle.total_bytes},
            )
            return bundle

    async def history(self, project_id: int, limit: int = 50) -> List[ExportRecord]:
        project = await self.repository.get_project(project_id)
        if project is None:
            raise NotFound(f"Project {project_id} not found", details={"project_id": project_id})
        return await self.repository.list_export_records(project_id, limit=limit)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _snapshot(self, project_id: int) -> _Snapshot:
        project = await self.repository.get_project(project_id)
        if project is None:
            raise NotFound(f"Project {project_id} not found", details={"project_id": project_id})

        assignments, candidates = await load_candidates(self.repository, project_id)
        snapshot = _Snapshot(
            project=project,
            assignments=assignments,
            fingerprint=fingerprint_assignments(assignments),
        )

        refs = [c.ref for c in candidates]
        resources = await self.repository.get_resources(refs)
        missing = [ref for ref in refs if ref not in resources]
        disabled = [ref for ref in refs if ref in resources and not resources[ref].is_available]

        for assignment in assignments:
            ref = ref_of(assignment)
            if ref not in resources:
                continue
            snapshot.items.append(RenderItem(
                ref=ref,
                resource=resources[ref],
                is_primary=bool(assignment.is_primary),
                order=assignment.assignment_order,
                config_overrides=dict(assignment.config_overrides or {}),
            ))
        snapshot.items.sort(key=lambda i: (i.ref.resource_type.value,) + templates.render_key(i))

        snapshot.edges = await load_edges(self.repository, refs)
        overrides = await load_overrides(self.repository, project_id)
        report = self.detector.detect(candidates, snapshot.edges, overrides)

        agent_count = len([r for r in refs if r.resource_type == ResourceType.AGENT])
        snapshot.decision = ExportGate.evaluate(project_id, agent_count, missing, disabled, report)
        return snapshot

    def _render(self, snapshot: _Snapshot, stamp: str) -> Dict[str, str]:
        agents = templates.of_type(snapshot.items, ResourceType.AGENT)
        rules = templates.of_type(snapshot.items, ResourceType.RULE)
        hooks = templates.of_type(snapshot.items, ResourceType.HOOK)

        files: Dict[str, str] = {
            templates.MANIFEST_PATH: templates.render_manifest(snapshot.project, agents, stamp),
            templates.SETTINGS_PATH: templates.render_settings(snapshot.items),
        }
        names = templates.agent_names(agents)
        for item in agents:
            name = names[item.ref]
            files[templates.agent_path(name)] = templates.render_agent(item, name=name)
        if rules:
            files[templates.RULES_PATH] = templates.render_rules(rules, snapshot.edges)
        if hooks:
            files[templates.HOOKS_PATH] = templates.render_hooks(hooks)
        return dict(sorted(files.items()))

    @staticmethod
    def _last_change(snapshot: _Snapshot) -> datetime:
        stamps = [snapshot.project.updated_at, snapshot.project.created_at]
        stamps += [a.updated_at for a in snapshot.assignments]
        stamps += [item.resource.updated_at for item in snapshot.items]
        return max(_as_utc(s) for s in stamps if s is not None)

    def _record(
        self,
        project_id: int,
        status: ExportStatus,
        started_at: datetime,
        started: float,
        exported_by: Optional[str],
        resources: Optional[List[str]] = None,
        manifest: Optional[List[dict]] = None,
        file_size: int = 0,
        error_message: Optional[str] = None,
    ) -> ExportRecord:
        return ExportRecord(
            project_id=project_id,
            status=status,
            export_format="claude-code",
            template_version=self.template_version,
            included_resources=resources or [],
            file_manifest=manifest or [],
            file_size=file_size,
            error_message=error_message,
            processing_started_at=started_at,
            processing_completed_at=utcnow(),
            processing_duration_ms=int((time.monotonic() - started) * 1000),
            exported_by=exported_by,
        )

    async def _record_failure(
        self,
        project_id: int,
        message: str,
        started_at: datetime,
        started: float,
        exported_by: Optional[str],
        report: List[dict],
    ) -> None:
        record = self._record(
            project_id, ExportStatus.FAILED, started_at, started, exported_by, error_message=message,
        )

        async def _persist() -> None:
            await self.repository.add(record)
            await self._log(EventType.EXPORT_BLOCKED, project_id, exported_by, ExportEvent(
                project_id=project_id,
                template_version=self.template_version,
                blocking_items=[item.get("message", "") for item in report] or [message],
            ))
            await self.repository.flush()

        try:
            await self.repository.run_in_transaction(_persist)
        except AssemblyError:
            logger.exception("Could not record failed export")

    async def _log(
        self,
        event_type: EventType,
        project_id: int,
        actor: Optional[str],
        payload: ExportEvent,
    ) -> None:
        if self.event_store is None:
            return
        await self.event_store.log_from_model(
            event_type=event_type,
            entity_type="project",
            entity_id=project_id,
            actor=actor,
            payload_model=payload,
        )
