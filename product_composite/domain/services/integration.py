# product_composite/domain/services/integration.py
from __future__ import annotations

import logging
from typing import List, Optional

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from product_composite.core.config import Settings
from product_composite.core.errors import (
    CallNotPermittedError,
    InvalidInputError,
    NotFoundError,
    UpstreamError,
    UpstreamTimeoutError,
)
from product_composite.domain.models.product import (
    HealthStatus,
    Product,
    Recommendation,
    Review,
)
from product_composite.domain.services.constants import FALLBACK_NOT_FOUND_PRODUCT_ID
from product_composite.domain.services.resilience import (
    CircuitBreaker,
    CircuitBreakerConfig,
    RetryConfig,
    TimeLimiterConfig,
    resilient,
)

logger = logging.getLogger(__name__)

_recommendations = TypeAdapter(List[Recommendation])
_reviews = TypeAdapter(List[Review])


class _ErrorMessage(BaseModel):
    """The part of an HttpErrorInfo body the composite relies on; other fields may be missing or differently typed."""

    message: str


def _error_message(response: httpx.Response) -> str:
    """Message from an HttpErrorInfo body, else the raw status text."""
    try:
        return _ErrorMessage.model_validate_json(response.content).message
    except ValidationError:
        return f"{response.status_code} {response.reason_phrase}".strip()


def _decode(parse, response: httpx.Response, url: str):
    try:
        return parse(response.content)
    except ValidationError as e:
        raise UpstreamError(f"GET {url} returned an undecodable body: {e}", status=response.status_code, body=response.text) from e


def map_http_error(response: httpx.Response) -> Exception:
    status = response.status_code
    if status == 404:
        return NotFoundError(_error_message(response))
    if status == 422:
        return InvalidInputError(_error_message(response))
    logger.warning("Got an unexpected HTTP error: %s, will rethrow it", status)
    logger.warning("Error body: %s", response.text)
    return UpstreamError(
        f"{response.request.method} {response.request.url} failed with {status}",
        status=status,
        body=response.text,
    )


class DownstreamClient:
    """
    Thin async HTTP client for the product, recommendation and review services.
    One call per method, body read fully, non-2xx mapped to domain errors.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        product_url: str,
        recommendation_url: str,
        review_url: str,
    ):
        self.http = http
        self.product_url = product_url.rstrip("/")
        self.recommendation_url = recommendation_url.rstrip("/")
        self.review_url = review_url.rstrip("/")

    async def _get(self, url: str, params: Optional[dict] = None) -> httpx.Response:
        try:
            response = await self.http.get(url, params=params)
        except httpx.TimeoutException as e:
            raise UpstreamTimeoutError(f"GET {url} timed out: {e}") from e
        except httpx.TransportError as e:
            logger.warning("Got a unexpected error: %r, will rethrow it", e)
            raise UpstreamError(f"GET {url} failed: {e}") from e
        if response.is_success:
            return response
        raise map_http_error(response)

    async def get_product(self, product_id: int, delay: int = 0, fault_percent: int = 0) -> Product:
        url = f"{self.product_url}/product/{product_id}"
        logger.debug("Will call the getProduct API on URL: %s", url)
        response = await self._get(url, params={"delay": delay, "faultPercent": fault_percent})
        return _decode(Product.model_validate_json, response, url)

    async def get_recommendations(self, product_id: int) -> List[Recommendation]:
        url = f"{self.recommendation_url}/recommendation"
        logger.debug("Will call the getRecommendations API on URL: %s?productId=%s", url, product_id)
        response = await self._get(url, params={"productId": product_id})
        return _decode(_recommendations.validate_json, response, url)

    async def get_reviews(self, product_id: int) -> List[Review]:
        url = f"{self.review_url}/review"
        logger.debug("Will call the getReviews API on URL: %s?productId=%s", url, product_id)
        response = await self._get(url, params={"productId": product_id})
        return _decode(_reviews.validate_json, response, url)

    async def health(self, base_url: str) -> HealthStatus:
        url = f"{base_url.rstrip('/')}/actuator/health"
        try:
            response = await self.http.get(url)
        except httpx.HTTPError as e:
            return HealthStatus(status="DOWN", cause=str(e) or type(e).__name__)
        if response.is_success:
            return HealthStatus(status="UP")
        return HealthStatus(status="DOWN", cause=f"{response.status_code} {response.reason_phrase}")

    async def product_health(self) -> HealthStatus:
        return await self.health(self.product_url)

    async def recommendation_health(self) -> HealthStatus:
        return await self.health(self.recommendation_url)

    async def review_health(self) -> HealthStatus:
        return await self.health(self.review_url)


class ProductCompositeIntegration:
    """
    Query side of the composite: the product lookup goes through the resilience
    stack, recommendations and reviews use the bare client.
    """

    def __init__(
        self,
        client: DownstreamClient,
        circuit_breaker: CircuitBreaker,
        *,
        service_address: str,
        retry: Optional[RetryConfig] = None,
        time_limiter: Optional[TimeLimiterConfig] = None,
    ):
        self.client = client
        self.circuit_breaker = circuit_breaker
        self.service_address = service_address
        self._get_product = resilient(
            circuit_breaker=circuit_breaker,
            retry=retry,
            time_limiter=time_limiter,
            fallback=self._get_product_fallback_value,
        )(client.get_product)

    async def get_product(self, product_id: int, delay: int = 0, fault_percent: int = 0) -> Product:
        return await self._get_product(product_id, delay, fault_percent)

    async def get_recommendations(self, product_id: int) -> List[Recommendation]:
        return await self.client.get_recommendations(product_id)

    async def get_reviews(self, product_id: int) -> List[Review]:
        return await self.client.get_reviews(product_id)

    def _get_product_fallback_value(
        self, product_id: int, delay: int, fault_percent: int, *, exc: CallNotPermittedError
    ) -> Product:
        logger.warning(
            "Creating a fail-fast fallback product for productId = %s, delay = %s, faultPercent = %s and exception = %s",
            product_id, delay, fault_percent, exc,
        )
        if product_id == FALLBACK_NOT_FOUND_PRODUCT_ID:
            err_msg = f"Product Id: {product_id} not found in fallback cache!"
            logger.warning(err_msg)
            raise NotFoundError(err_msg)
        return Product(
            product_id=product_id,
            name=f"Fallback product{product_id}",
            weight=product_id,
            service_address=self.service_address,
        )


def build_product_circuit_breaker(settings: Settings) -> CircuitBreaker:
    return CircuitBreaker(
        "product",
        CircuitBreakerConfig(
            sliding_window_size=settings.RESILIENCE_PRODUCT_CIRCUITBREAKER_SLIDING_WINDOW_SIZE,
            minimum_number_of_calls=settings.RESILIENCE_PRODUCT_CIRCUITBREAKER_MINIMUM_NUMBER_OF_CALLS,
            failure_rate_threshold=settings.RESILIENCE_PRODUCT_CIRCUITBREAKER_FAILURE_RATE_THRESHOLD,
            wait_duration_in_open_state=settings.RESILIENCE_PRODUCT_CIRCUITBREAKER_WAIT_DURATION_IN_OPEN_STATE,
            permitted_number_of_calls_in_half_open_state=settings.RESILIENCE_PRODUCT_CIRCUITBREAKER_PERMITTED_CALLS_IN_HALF_OPEN_STATE,
        ),
    )


def build_integration(settings: Settings, http: httpx.AsyncClient, service_address: str) -> ProductCompositeIntegration:
    client = DownstreamClient(
        http,
        product_url=settings.product_service_url,
        recommendation_url=settings.recommendation_service_url,
        review_url=settings.review_service_url,
    )
    return ProductCompositeIntegration(
        client,
        build_product_circuit_breaker(settings),
        service_address=service_address,
        retry=RetryConfig(
            max_attempts=settings.RESILIENCE_PRODUCT_RETRY_MAX_ATTEMPTS,
            wait_duration=settings.RESILIENCE_PRODUCT_RETRY_WAIT_DURATION,
        ),
        time_limiter=TimeLimiterConfig(timeout_duration=settings.RESILIENCE_PRODUCT_TIMELIMITER_TIMEOUT_DURATION),
    )
