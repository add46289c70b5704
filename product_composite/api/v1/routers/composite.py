# product_composite/api/v1/routers/composite.py
from fastapi import APIRouter, Depends, Response
import time
import logging

from product_composite.api.deps import composite_service
from product_composite.core.security import require_read, require_write
from product_composite.domain.models.product import ProductAggregate

logger = logging.getLogger(__name__)

router = APIRouter(tags=["product-composite"])


@router.post("/product-composite", dependencies=[Depends(require_write)])
async def create_composite_product(
    body: ProductAggregate,
    svc = Depends(composite_service),
):
    """
    Emits CREATE commands for the product and each of its recommendations and
    reviews. The domain services persist them asynchronously.
    """
    logger.info("Request: create_composite_product product_id=%s, recommendations=%s, reviews=%s",
                body.product_id, len(body.recommendations or []), len(body.reviews or []))
    await svc.create_composite(body)
    return Response(status_code=200)


@router.get(
    "/product-composite/{product_id}",
    response_model=ProductAggregate,
    dependencies=[Depends(require_read)],
)
async def get_composite_product(
    product_id: int,
    svc = Depends(composite_service),
):
    """
    Product aggregate. Recommendations and reviews are empty when their
    service is unavailable; a missing product is a 404.
    """
    logger.info("Request: get_composite_product product_id=%s", product_id)
    start_time = time.perf_counter()

    aggregate = await svc.get_product_aggregate(product_id)

    elapsed_time = time.perf_counter() - start_time
    logger.info(
        "Response: get_composite_product product_id=%s, recommendations=%s, reviews=%s, elapsed_time=%.4fs",
        product_id, len(aggregate.recommendations), len(aggregate.reviews), elapsed_time,
    )
    return aggregate


@router.delete("/product-composite/{product_id}", dependencies=[Depends(require_write)])
async def delete_composite_product(
    product_id: int,
    svc = Depends(composite_service),
):
    """Emits DELETE commands for the product, its recommendations and its reviews. Idempotent."""
    logger.info("Request: delete_composite_product product_id=%s", product_id)
    await svc.delete_composite(product_id)
    return Response(status_code=200)
