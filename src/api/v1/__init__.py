"""
API v1 routes.
"""

from fastapi import APIRouter

from src.api.v1 import assignments, dependencies, export, imports, projects, resources, suggestions

router = APIRouter()

# Project sub-resources before projects so /projects/{id}/... never hits /projects/{project_id}
router.include_router(assignments.router, tags=["Assignments"])
router.include_router(imports.router, tags=["Imports"])
router.include_router(export.router, tags=["Export"])
router.include_router(suggestions.router, tags=["Suggestions"])
router.include_router(projects.router, prefix="/projects", tags=["Projects"])
router.include_router(resources.router, tags=["Resources"])
router.include_router(dependencies.router, prefix="/dependencies", tags=["Dependencies"])
