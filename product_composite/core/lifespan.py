# product_composite/core/lifespan.py
from contextlib import asynccontextmanager
import logging

import httpx
from fastapi import FastAPI

from product_composite.core.config import get_settings
from product_composite.core.network import get_service_address
from product_composite.domain.services.composite_svc import ProductCompositeService
from product_composite.domain.services.integration import build_integration
from product_composite.domain.services.publisher import build_publisher

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Builds the shared clients of the composite: one httpx connection pool, one
    Kafka producer with its publish pool, one circuit breaker. Anything already
    placed on app.state.composite (tests) is left alone.
    """
    if getattr(app.state, "composite", None) is not None:
        yield
        return

    settings = get_settings()
    service_address = get_service_address()

    # --- Startup ---
    http = httpx.AsyncClient(timeout=settings.HTTP_CLIENT_TIMEOUT)
    try:
        publisher = build_publisher(settings)
    except Exception as e:
        logger.error("Kafka producer init failed (%s): %s", settings.KAFKA_BOOTSTRAP_SERVERS, e)
        await http.aclose()
        raise
    logger.info("Kafka producer connected to %s", settings.KAFKA_BOOTSTRAP_SERVERS)

    integration = build_integration(settings, http, service_address)
    app.state.composite = ProductCompositeService(integration, publisher, service_address)
    logger.info(
        "Composite ready at %s (product=%s, recommendation=%s, review=%s)",
        service_address, settings.product_service_url,
        settings.recommendation_service_url, settings.review_service_url,
    )

    # Application runs
    yield

    # --- Shutdown ---
    app.state.composite = None
    try:
        publisher.close()
        logger.info("Kafka producer closed")
    finally:
        await http.aclose()
