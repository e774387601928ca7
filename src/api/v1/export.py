"""
Export endpoints - bundle rendering, zip download and export history.
"""

from io import BytesIO
from typing import List

from fastapi import APIRouter, Query
from fastapi.responses import StreamingResponse

from src.api.deps import Actor, Assembler, Repository
from src.engines.assembly import ExportBundle, ExportDecision
from src.kernel.errors import NotFound
from src.schemas.export import ExportBundleResponse, ExportedFileResponse, ExportRecordResponse

router = APIRouter()


def _bundle_response(bundle: ExportBundle) -> ExportBundleResponse:
    return ExportBundleResponse(
        project_id=bundle.project_id,
        template_version=bundle.template_version,
        generated_at=bundle.generated_at,
        record_id=bundle.record_id,
        resources=[r.key for r in bundle.resources],
        manifest=[ExportedFileResponse(path=f.path, size_bytes=f.size_bytes) for f in bundle.manifest],
        total_bytes=bundle.total_bytes,
        files=bundle.files,
    )


@router.get("/projects/{project_id}/export/check", response_model=ExportDecision)
async def check_export(project_id: int, assembler: Assembler):
    """
    Run the export gate without producing files.

    Export is blocked if no agent is assigned, an assigned resource is
    missing or disabled, or the assignment set has a blocking finding.
    """
    return await assembler.check(project_id)


@router.post("/projects/{project_id}/export", response_model=ExportBundleResponse)
async def export_project(project_id: int, assembler: Assembler, actor: Actor):
    """Render the bundle and return its files inline."""
    bundle = await assembler.export(project_id, exported_by=actor)
    return _bundle_response(bundle)


@router.get("/projects/{project_id}/export/zip")
async def download_export(project_id: int, assembler: Assembler, repo: Repository, actor: Actor):
    """Render the bundle and stream it as a zip archive."""
    project = await repo.get_project(project_id)
    if project is None:
        raise NotFound(f"Project {project_id} not found", details={"project_id": project_id})

    bundle = await assembler.export(project_id, exported_by=actor)
    filename = f"{project.slug}-claude-config.zip"

    return StreamingResponse(
        BytesIO(bundle.to_zip()),
        media_type="application/zip",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "X-Export-Record": bundle.record_id or "",
        },
    )


@router.get("/projects/{project_id}/export/history", response_model=List[ExportRecordResponse])
async def export_history(
    project_id: int,
    assembler: Assembler,
    limit: int = Query(50, ge=1, le=200),
):
    """Export attempts, newest first. Failed attempts are listed too."""
    records = await assembler.history(project_id, limit=limit)
    return [ExportRecordResponse.model_validate(r) for r in records]
