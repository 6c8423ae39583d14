"""
API v1 Router
"""

from fastapi import APIRouter

from . import rbac, tasks

router = APIRouter()

router.include_router(rbac.router, prefix="/rbac", tags=["RBAC"])
router.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: version and available endpoint groups."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/rbac",
            "/tasks/{task_id}/dependencies",
            "/tasks/{task_id}/status",
        ],
    }
