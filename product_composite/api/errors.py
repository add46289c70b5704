# product_composite/api/errors.py
from datetime import datetime, timezone
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from product_composite.core.errors import ServiceError
from product_composite.domain.models.product import HttpErrorInfo

logger = logging.getLogger(__name__)


def error_response(request: Request, status: int, message: str) -> JSONResponse:
    body = HttpErrorInfo(
        timestamp=datetime.now(timezone.utc).isoformat(),
        path=request.url.path,
        status=status,
        message=message,
    )
    return JSONResponse(status_code=status, content=body.model_dump(by_alias=True))


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    status = exc.status_code
    if status >= 500:
        logger.warning("Returning HTTP status: %s for path: %s, message: %s", status, request.url.path, exc.message)
    else:
        logger.debug("Returning HTTP status: %s for path: %s, message: %s", status, request.url.path, exc.message)
    return error_response(request, status, exc.message)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = "; ".join(f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg')}" for e in errors) or "Invalid input"
    return error_response(request, 422, message)


def install_error_handlers(app: FastAPI) -> None:
    """HttpErrorInfo bodies for every domain error and for request validation."""
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
