import logging

from fastapi import APIRouter, Request

from share_api.settings import Settings
from share_api.utils.parallel import run_io

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """
    Health check endpoint for monitoring API status and component readiness.

    Returns status of API, storage, and database components along with deployment mode.
    """
    settings: Settings = request.app.state.settings
    object_store = request.app.state.object_store
    metadata_store = request.app.state.metadata_store

    health_status = {
        "status": "ok",
        "deployment_mode": settings.deployment_mode,
        "components": {
            "api": "ready",
            "storage": "initializing",
            "database": "initializing"
        },
        "ready": False
    }

    # Check bucket
    try:
        if await run_io(object_store.bucket_exists, timeout=settings.io_timeout_seconds):
            health_status["components"]["storage"] = "ready"
        else:
            health_status["components"]["storage"] = f"error: bucket {object_store.bucket_name} not found"
            health_status["status"] = "degraded"
    except Exception as e:
        logger.warning(f"Storage health check failed: {e}")
        health_status["components"]["storage"] = f"error: {str(e)}"
        health_status["status"] = "degraded"

    # Check database
    try:
        if await run_io(metadata_store.ping, timeout=settings.io_timeout_seconds):
            health_status["components"]["database"] = "ready"
        else:
            health_status["components"]["database"] = "error: ping failed"
            health_status["status"] = "degraded"
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        health_status["components"]["database"] = f"error: {str(e)}"
        health_status["status"] = "degraded"

    health_status["ready"] = all(
        state == "ready" for state in health_status["components"].values()
    )

    return health_status
