"""Health and root endpoints.

The version string is read from ``penpal_server.__version__``, resolved from
the installed package metadata.
"""

from fastapi import APIRouter, Request

from penpal_server import __version__

router = APIRouter()


@router.get("/")
async def root():
    """API identity and version."""
    return {"message": "Pen-pal Exchange API", "version": __version__}


@router.get("/health")
async def health_check(request: Request):
    """Health check endpoint."""
    worker = getattr(request.app.state, "sweep_worker", None)
    return {"status": "ok", "sweep_worker_running": bool(worker and worker.is_running)}
