# product_composite/api/v1/routers/health.py
import time
import logging
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from product_composite.api.deps import composite_service
from product_composite.core.config import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])
START_TIME = time.time()


@router.get("/actuator/health")
async def health(svc = Depends(composite_service)):
    """
    Composite health: UP only when product, recommendation and review all
    answer their own health endpoint with a 2xx.
    """
    settings = get_settings()
    checks = await svc.health()
    checks["info"] = {
        "app_name": settings.APP_NAME,
        "env": settings.APP_ENV,
        "version": settings.GIT_SHA,
        "uptime_seconds": int(time.time() - START_TIME),
    }
    if checks["status"] != "UP":
        logger.warning("Health check DOWN: %s", checks["components"])
    return JSONResponse(status_code=200 if checks["status"] == "UP" else 503, content=checks)
