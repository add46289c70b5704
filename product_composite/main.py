from typing import Optional

from fastapi import FastAPI
from product_composite.core.config import get_settings
from product_composite.core.lifespan import lifespan
from product_composite.core.logging import configure_logging
from product_composite.api.errors import install_error_handlers
from product_composite.api.v1.routers.composite import router as composite_router
from product_composite.api.v1.routers.health import router as health_router
from product_composite.domain.services.composite_svc import ProductCompositeService

import logging


def create_app(composite: Optional[ProductCompositeService] = None) -> FastAPI:
    """
    Composite edge service. Pass `composite` to skip building the real
    HTTP/Kafka clients in the lifespan.
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        lifespan=lifespan,
        openapi_url="/openapi/v3/api-docs",
        docs_url="/openapi/swagger-ui.html",
        redoc_url=None,
    )
    app.state.composite = composite

    install_error_handlers(app)

    # ------- Routes -------
    app.include_router(health_router)            # /actuator/health, unauthenticated
    app.include_router(composite_router)         # /product-composite, JWT scopes
    return app


settings = get_settings()
configure_logging(level=logging.DEBUG if settings.DEBUG else logging.INFO)

app = create_app()
