import asyncio
import logging
import time
from typing import List

from product_composite.core.errors import InvalidInputError
from product_composite.domain.models.event import Event, EventType
from product_composite.domain.models.product import (
    Product,
    ProductAggregate,
    Recommendation,
    RecommendationSummary,
    Review,
    ReviewSummary,
    ServiceAddresses,
)
from product_composite.domain.services.constants import (
    PRODUCTS_BINDING,
    RECOMMENDATIONS_BINDING,
    REVIEWS_BINDING,
)
from product_composite.domain.services.integration import ProductCompositeIntegration
from product_composite.domain.services.publisher import CommandPublisher

logger = logging.getLogger(__name__)


def check_product_id(product_id: int) -> None:
    if product_id < 1:
        raise InvalidInputError(f"Invalid productId: {product_id}")


def _check_aggregate(body: ProductAggregate) -> None:
    check_product_id(body.product_id)
    for r in body.recommendations or []:
        if r.recommendation_id < 1:
            raise InvalidInputError(f"Invalid recommendationId: {r.recommendation_id}")
    for r in body.reviews or []:
        if r.review_id < 1:
            raise InvalidInputError(f"Invalid reviewId: {r.review_id}")


def create_product_aggregate(
    product: Product,
    recommendations: List[Recommendation],
    reviews: List[Review],
    service_address: str,
) -> ProductAggregate:
    """
    Merge the three downstream answers into the aggregate returned to callers.
    Addresses for recommendation/review come from the first entry, "" if none.
    """
    recommendation_summaries = [
        RecommendationSummary(
            recommendation_id=r.recommendation_id, author=r.author, rate=r.rate, content=r.content
        )
        for r in recommendations
    ]
    review_summaries = [
        ReviewSummary(review_id=r.review_id, author=r.author, subject=r.subject, content=r.content)
        for r in reviews
    ]

    addresses = ServiceAddresses(
        composite=service_address,
        product=product.service_address or "",
        recommendation=(recommendations[0].service_address or "") if recommendations else "",
        review=(reviews[0].service_address or "") if reviews else "",
    )

    return ProductAggregate(
        product_id=product.product_id,
        name=product.name,
        weight=product.weight,
        recommendations=recommendation_summaries,
        reviews=review_summaries,
        service_addresses=addresses,
    )


class ProductCompositeService:
    """
    Query side: concurrent fan-out/fan-in over the three downstream services.
    Command side: create/delete intents published on the bus.
    """

    def __init__(
        self,
        integration: ProductCompositeIntegration,
        publisher: CommandPublisher,
        service_address: str,
    ):
        self.integration = integration
        self.publisher = publisher
        self.service_address = service_address

    # ----- query -------------------------------------------------------------

    async def _optional(self, what: str, product_id: int, coro) -> list:
        """Partial-response policy: an optional leg that fails contributes no entries."""
        try:
            return await coro
        except Exception as e:
            logger.warning("getCompositeProduct: %s lookup failed for productId=%s, returning partial response: %r",
                           what, product_id, e)
            return []

    async def get_product_aggregate(self, product_id: int) -> ProductAggregate:
        check_product_id(product_id)
        t0 = time.perf_counter()
        logger.debug("getCompositeProduct: lookup a product aggregate for productId: %s", product_id)

        # gather cancels every leg if the caller is cancelled
        product, recommendations, reviews = await asyncio.gather(
            self.integration.get_product(product_id, 0, 0),
            self._optional("recommendation", product_id, self.integration.get_recommendations(product_id)),
            self._optional("review", product_id, self.integration.get_reviews(product_id)),
            return_exceptions=True,
        )
        if isinstance(product, BaseException):
            logger.warning("getCompositeProduct failed: %r", product)
            raise product

        aggregate = create_product_aggregate(product, recommendations, reviews, self.service_address)
        logger.debug("getCompositeProduct: aggregate found for productId=%s recommendations=%s reviews=%s in %.3fs",
                     product_id, len(recommendations), len(reviews), time.perf_counter() - t0)
        return aggregate

    # ----- commands ----------------------------------------------------------

    async def create_composite(self, body: ProductAggregate) -> None:
        _check_aggregate(body)
        product_id = body.product_id
        logger.debug("createCompositeProduct: creates a new composite entity for productId: %s", product_id)

        try:
            product = Product(product_id=product_id, name=body.name, weight=body.weight, service_address=None)
            await self.publisher.publish(PRODUCTS_BINDING, Event(event_type=EventType.CREATE, key=product_id, data=product))

            for r in body.recommendations or []:
                recommendation = Recommendation(
                    product_id=product_id,
                    recommendation_id=r.recommendation_id,
                    author=r.author,
                    rate=r.rate,
                    content=r.content,
                    service_address=None,
                )
                await self.publisher.publish(
                    RECOMMENDATIONS_BINDING, Event(event_type=EventType.CREATE, key=product_id, data=recommendation)
                )

            for r in body.reviews or []:
                review = Review(
                    product_id=product_id,
                    review_id=r.review_id,
                    author=r.author,
                    subject=r.subject,
                    content=r.content,
                    service_address=None,
                )
                await self.publisher.publish(
                    REVIEWS_BINDING, Event(event_type=EventType.CREATE, key=product_id, data=review)
                )
        except Exception as e:
            # already published events stay published; callers retry or delete the composite
            logger.warning("createCompositeProduct failed for productId=%s: %r", product_id, e)
            raise

        logger.debug("createCompositeProduct: composite entities created for productId: %s", product_id)

    async def delete_composite(self, product_id: int) -> None:
        check_product_id(product_id)
        logger.debug("deleteCompositeProduct: deletes a product aggregate for productId: %s", product_id)

        results = await asyncio.gather(
            *(
                self.publisher.publish(binding, Event(event_type=EventType.DELETE, key=product_id, data=None))
                for binding in (PRODUCTS_BINDING, REVIEWS_BINDING, RECOMMENDATIONS_BINDING)
            ),
            return_exceptions=True,
        )
        errors: List[BaseException] = [r for r in results if isinstance(r, BaseException)]
        if errors:
            logger.warning("delete failed for productId=%s: %s", product_id, [repr(e) for e in errors])
            raise errors[0]

        logger.debug("deleteCompositeProduct: aggregate entities deleted for productId: %s", product_id)

    async def health(self) -> dict:
        client = self.integration.client
        product, recommendation, review = await asyncio.gather(
            client.product_health(), client.recommendation_health(), client.review_health()
        )
        components = {"product": product, "recommendation": recommendation, "review": review}
        status = "UP" if all(c.status == "UP" for c in components.values()) else "DOWN"
        return {
            "status": status,
            "components": {name: c.model_dump(exclude_none=True) for name, c in components.items()},
        }
