from fastapi import APIRouter, Depends

from file_gateway.dependencies import get_app_settings, get_file_service
from file_gateway.errors import BlobStoreError, MetadataIndexError
from file_gateway.service import FileService
from file_gateway.settings import Settings

router = APIRouter()


@router.get("/health")
def health_check(
    service: FileService = Depends(get_file_service),
    settings: Settings = Depends(get_app_settings),
):
    """
    Health check endpoint for monitoring API status and component readiness.

    Returns status of the blob store and metadata index along with the
    deployment mode and selected backend.
    """
    health_status = {
        "status": "ok",
        "deployment_mode": settings.deployment_mode,
        "storage_backend": service.blob_store.kind,
        "components": {
            "api": "ready",
            "storage": "ready",
            "index": "ready",
        },
        "ready": False,
    }

    try:
        service.blob_store.check()
    except BlobStoreError as e:
        health_status["components"]["storage"] = f"error: {str(e)}"
        health_status["status"] = "degraded"

    try:
        # Any id works; only reachability matters
        service.index.find_by_id("health-check")
    except MetadataIndexError as e:
        health_status["components"]["index"] = f"error: {str(e)}"
        health_status["status"] = "degraded"

    health_status["ready"] = all(
        state == "ready" for state in health_status["components"].values()
    )
    return health_status
