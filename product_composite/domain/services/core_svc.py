"""
Domain services behind the composite: product, recommendation and review.
Each owns one repository; writes arrive as bus commands, reads as HTTP GETs.
"""
import asyncio
import logging
import random
from typing import List, Optional

from pymongo.errors import DuplicateKeyError

from product_composite.core.errors import InvalidInputError, NotFoundError
from product_composite.domain.models.product import Product, Recommendation, Review
from product_composite.domain.repositories.product_repo import ProductRepo
from product_composite.domain.repositories.recommendation_repo import RecommendationRepo
from product_composite.domain.repositories.review_repo import ReviewRepo

logger = logging.getLogger(__name__)


def _check_product_id(product_id: int) -> None:
    if product_id < 1:
        raise InvalidInputError(f"Invalid productId: {product_id}")


class ProductService:

    def __init__(self, repo: ProductRepo, service_address: str, rng: Optional[random.Random] = None):
        self.repo = repo
        self.service_address = service_address
        self._rng = rng or random.Random()

    async def create_product(self, body: Product) -> Product:
        _check_product_id(body.product_id)
        try:
            return await self.repo.insert(body)
        except DuplicateKeyError:
            raise InvalidInputError(f"Duplicate key, Product Id: {body.product_id}") from None

    async def get_product(self, product_id: int, delay: int = 0, fault_percent: int = 0) -> Product:
        _check_product_id(product_id)

        product = await self.repo.get_by_product_id(product_id)
        if product is None:
            raise NotFoundError(f"No product found for productId: {product_id}")

        self._throw_error_if_bad_luck(fault_percent)
        if delay > 0:
            logger.debug("Sleeping for %s seconds...", delay)
            await asyncio.sleep(delay)

        return product.model_copy(update={"service_address": self.service_address})

    async def delete_product(self, product_id: int) -> None:
        _check_product_id(product_id)
        logger.debug("deleteProduct: tries to delete an entity with productId: %s", product_id)
        await self.repo.delete_by_product_id(product_id)

    def _throw_error_if_bad_luck(self, fault_percent: int) -> None:
        """Test hook: fail `fault_percent` % of the calls."""
        if fault_percent <= 0:
            return
        value = self._rng.randint(1, 100)
        if fault_percent < value:
            logger.debug("No error triggered: faultPercent=%s, calculated=%s", fault_percent, value)
            return
        logger.debug("Bad luck, an error occurred: faultPercent=%s, calculated=%s", fault_percent, value)
        raise RuntimeError("Something went wrong...")


class RecommendationService:

    def __init__(self, repo: RecommendationRepo, service_address: str):
        self.repo = repo
        self.service_address = service_address

    async def create_recommendation(self, body: Recommendation) -> Recommendation:
        _check_product_id(body.product_id)
        if body.recommendation_id < 1:
            raise InvalidInputError(f"Invalid recommendationId: {body.recommendation_id}")
        try:
            return await self.repo.insert(body)
        except DuplicateKeyError:
            raise InvalidInputError(
                f"Duplicate key, Product Id: {body.product_id}, Recommendation Id:{body.recommendation_id}"
            ) from None

    async def get_recommendations(self, product_id: int) -> List[Recommendation]:
        _check_product_id(product_id)
        found = await self.repo.find_by_product_id(product_id)
        logger.debug("getRecommendations: response size: %s", len(found))
        return [r.model_copy(update={"service_address": self.service_address}) for r in found]

    async def delete_recommendations(self, product_id: int) -> None:
        _check_product_id(product_id)
        logger.debug("deleteRecommendations: tries to delete recommendations for the product with productId: %s", product_id)
        await self.repo.delete_by_product_id(product_id)


class ReviewService:

    def __init__(self, repo: ReviewRepo, service_address: str):
        self.repo = repo
        self.service_address = service_address

    async def create_review(self, body: Review) -> Review:
        _check_product_id(body.product_id)
        if body.review_id < 1:
            raise InvalidInputError(f"Invalid reviewId: {body.review_id}")
        try:
            return await self.repo.insert(body)
        except DuplicateKeyError:
            raise InvalidInputError(
                f"Duplicate key, Product Id: {body.product_id}, Review Id:{body.review_id}"
            ) from None

    async def get_reviews(self, product_id: int) -> List[Review]:
        _check_product_id(product_id)
        logger.info("Will get reviews for product with id=%s", product_id)
        found = await self.repo.find_by_product_id(product_id)
        logger.debug("getReviews: response size: %s", len(found))
        return [r.model_copy(update={"service_address": self.service_address}) for r in found]

    async def delete_reviews(self, product_id: int) -> None:
        _check_product_id(product_id)
        logger.debug("deleteReviews: tries to delete reviews for the product with productId: %s", product_id)
        await self.repo.delete_by_product_id(product_id)
