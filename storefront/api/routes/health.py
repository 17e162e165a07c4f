"""Health check shared by the three services."""
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from storefront.core.config import settings

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    state = request.app.state
    body = {
        "status": "healthy",
        "service": state.service_name,
        "version": settings.APP_VERSION,
        "storage": state.storage_backend,
        "database": "connected" if state.storage_backend == "postgres" else "not_used",
    }
    try:
        for check in state.health_checks:
            await check()
    except Exception as e:
        logger.error("Health check failed for %s: %s", state.service_name, e)
        body.update(status="unhealthy", database="unreachable")
        return JSONResponse(status_code=503, content=body)
    return body
