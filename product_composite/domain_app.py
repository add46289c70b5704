"""
Product, recommendation and review services.

    uvicorn --factory product_composite.domain_app:product_app
    uvicorn --factory product_composite.domain_app:recommendation_app
    uvicorn --factory product_composite.domain_app:review_app

Each one serves its GET endpoint to the composite and consumes its own
command topic into its own Mongo collection.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse

from product_composite.api.deps import domain_service
from product_composite.api.errors import install_error_handlers
from product_composite.core.config import get_settings
from product_composite.core.logging import configure_logging
from product_composite.core.network import get_service_address
from product_composite.db import mongo
from product_composite.domain.models.product import Product, Recommendation, Review
from product_composite.domain.repositories.product_repo import ProductRepo
from product_composite.domain.repositories.recommendation_repo import RecommendationRepo
from product_composite.domain.repositories.review_repo import ReviewRepo
from product_composite.domain.services.constants import ALL_KINDS, KIND_PRODUCT, KIND_RECOMMENDATION, KIND_REVIEW
from product_composite.domain.services.consumer import build_consumer
from product_composite.domain.services.core_svc import ProductService, RecommendationService, ReviewService
from product_composite.domain.services.message_processor import build_message_processor

logger = logging.getLogger(__name__)


# ------- Routes -------

product_router = APIRouter(tags=["product"])
recommendation_router = APIRouter(tags=["recommendation"])
review_router = APIRouter(tags=["review"])
health_router = APIRouter(tags=["health"])


@product_router.get("/product/{product_id}", response_model=Product)
async def get_product(
    product_id: int,
    delay: int = Query(0, ge=0, description="Seconds to wait before answering (fault injection)"),
    fault_percent: int = Query(0, ge=0, le=100, alias="faultPercent", description="Chance of failing (fault injection)"),
    svc = Depends(domain_service),
):
    return await svc.get_product(product_id, delay, fault_percent)


@recommendation_router.get("/recommendation", response_model=List[Recommendation])
async def get_recommendations(
    product_id: int = Query(..., alias="productId"),
    svc = Depends(domain_service),
):
    return await svc.get_recommendations(product_id)


@review_router.get("/review", response_model=List[Review])
async def get_reviews(
    product_id: int = Query(..., alias="productId"),
    svc = Depends(domain_service),
):
    return await svc.get_reviews(product_id)


@health_router.get("/actuator/health")
async def health(request: Request):
    """UP when Mongo answers a ping and the command consumer, if any, is still running."""
    components = {}
    try:
        await mongo.get_db().command("ping")
        components["mongodb"] = "ok"
    except Exception as e:
        components["mongodb"] = f"error: {e}"

    consumer_task = getattr(request.app.state, "consumer_task", None)
    if consumer_task is not None:
        components["consumer"] = "stopped" if consumer_task.done() else "running"

    status = "UP" if components["mongodb"] == "ok" and components.get("consumer") != "stopped" else "DOWN"
    if status != "UP":
        logger.warning("Health check DOWN: %s", components)
    return JSONResponse(status_code=200 if status == "UP" else 503, content={"status": status, "components": components})


def _log_consumer_exit(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Consumer task %s crashed: %r", task.get_name(), exc, exc_info=exc)


_ROUTERS = {
    KIND_PRODUCT: product_router,
    KIND_RECOMMENDATION: recommendation_router,
    KIND_REVIEW: review_router,
}


def _build_service(kind: str, db, service_address: str):
    if kind == KIND_PRODUCT:
        repo = ProductRepo(db)
        return repo, ProductService(repo, service_address)
    if kind == KIND_RECOMMENDATION:
        repo = RecommendationRepo(db)
        return repo, RecommendationService(repo, service_address)
    repo = ReviewRepo(db)
    return repo, ReviewService(repo, service_address)


def _topic_for(kind: str) -> str:
    settings = get_settings()
    return {
        KIND_PRODUCT: settings.KAFKA_TOPIC_PRODUCTS,
        KIND_RECOMMENDATION: settings.KAFKA_TOPIC_RECOMMENDATIONS,
        KIND_REVIEW: settings.KAFKA_TOPIC_REVIEWS,
    }[kind]


def _lifespan(kind: str, with_consumer: bool):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "domain_service", None) is not None:
            yield
            return

        settings = get_settings()

        # --- Startup ---
        await mongo.connect()
        repo, service = _build_service(kind, mongo.get_db(), get_service_address())
        try:
            await repo.ensure_indexes()
        except Exception as e:
            logger.warning("Could not ensure %s indexes at startup: %s", kind, e)
        app.state.domain_service = service

        consumer = None
        consumer_task: Optional[asyncio.Task] = None
        if with_consumer:
            processor = build_message_processor(kind, service)
            consumer = build_consumer(settings, kind, _topic_for(kind), processor)
            consumer_task = asyncio.create_task(consumer.run(), name=f"{kind}-consumer")
            consumer_task.add_done_callback(_log_consumer_exit)
            app.state.consumer_task = consumer_task
            logger.info("Consuming %s commands from topic %s", kind, _topic_for(kind))

        # Application runs
        yield

        # --- Shutdown ---
        if consumer is not None:
            await consumer.stop()
            if not consumer_task.done():
                try:
                    await asyncio.wait_for(consumer_task, timeout=settings.CONSUMER_BACKOFF + 5)
                except asyncio.TimeoutError:
                    consumer_task.cancel()
            await consumer.close()
        app.state.consumer_task = None
        app.state.domain_service = None
        await mongo.disconnect()

    return lifespan


def create_domain_app(kind: str, service=None, *, with_consumer: bool = True) -> FastAPI:
    """
    FastAPI app for one domain service. Pass `service` to skip Mongo/Kafka setup.
    """
    if kind not in ALL_KINDS:
        raise ValueError(f"Unknown service kind: {kind}")

    app = FastAPI(title=f"{kind}-service", lifespan=_lifespan(kind, with_consumer))
    app.state.domain_service = service
    install_error_handlers(app)
    app.include_router(health_router)
    app.include_router(_ROUTERS[kind])
    return app


def _configured_app(kind: str) -> FastAPI:
    settings = get_settings()
    configure_logging(level=logging.DEBUG if settings.DEBUG else logging.INFO)
    return create_domain_app(kind)


def product_app() -> FastAPI:
    return _configured_app(KIND_PRODUCT)


def recommendation_app() -> FastAPI:
    return _configured_app(KIND_RECOMMENDATION)


def review_app() -> FastAPI:
    return _configured_app(KIND_REVIEW)
