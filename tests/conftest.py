"""
Pytest configuration and shared fixtures.

- fake Kafka producer recording what the publisher sends
- httpx MockTransport-backed downstream client
- composite service wired with fast resilience settings
"""

import json
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
from kafka.errors import KafkaError
from pymongo.errors import DuplicateKeyError

from product_composite.domain.services.composite_svc import ProductCompositeService
from product_composite.domain.services.integration import DownstreamClient, ProductCompositeIntegration
from product_composite.domain.services.publisher import CommandPublisher
from product_composite.domain.services.resilience import (
    CircuitBreaker,
    CircuitBreakerConfig,
    RetryConfig,
    TimeLimiterConfig,
)

LOCAL_ADDRESS = "composite-host/10.0.0.1:8080"

TOPICS = {
    "products-out-0": "products",
    "recommendations-out-0": "recommendations",
    "reviews-out-0": "reviews",
}


# ============================================================
# Kafka doubles
# ============================================================

class FakeFuture:
    def __init__(self, error: Optional[Exception] = None):
        self.error = error

    def get(self, timeout=None):
        if self.error:
            raise self.error
        return "metadata"


class FakeProducer:
    """Records every send as a dict; topics in `fail_topics` fail broker acceptance."""

    def __init__(self, fail_topics=()):
        self.sent: List[Dict[str, Any]] = []
        self.fail_topics = set(fail_topics)
        self.closed = False

    def send(self, topic, key=None, value=None, headers=None):
        if topic in self.fail_topics:
            return FakeFuture(KafkaError(f"broker rejected {topic}"))
        self.sent.append({"topic": topic, "key": key, "value": value, "headers": dict(headers or [])})
        return FakeFuture()

    def flush(self, timeout=None):
        pass

    def close(self):
        self.closed = True

    def payloads(self, topic: Optional[str] = None) -> List[dict]:
        return [json.loads(m["value"]) for m in self.sent if topic is None or m["topic"] == topic]


@pytest.fixture
def fake_producer() -> FakeProducer:
    return FakeProducer()


@pytest.fixture
def executor():
    pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="publish-event")
    yield pool
    pool.shutdown(wait=True)


@pytest.fixture
def publisher(fake_producer, executor) -> CommandPublisher:
    return CommandPublisher(fake_producer, TOPICS, executor, send_timeout=1.0)


# ============================================================
# Mongo doubles
# ============================================================

class InMemoryRepo:
    """Repository double; `key` gives the unique index of an entity."""

    def __init__(self, key):
        self.key = key
        self.docs = []

    async def insert(self, entity):
        if any(self.key(d) == self.key(entity) for d in self.docs):
            raise DuplicateKeyError("E11000 duplicate key error")
        self.docs.append(entity)
        return entity

    async def get_by_product_id(self, product_id):
        return next((d for d in self.docs if d.product_id == product_id), None)

    async def find_by_product_id(self, product_id):
        return [d for d in self.docs if d.product_id == product_id]

    async def delete_by_product_id(self, product_id):
        before = len(self.docs)
        self.docs = [d for d in self.docs if d.product_id != product_id]
        return before - len(self.docs)


# ============================================================
# Downstream doubles
# ============================================================

def product_json(product_id=1, name="widget", weight=10, address="p-1") -> dict:
    return {"productId": product_id, "name": name, "weight": weight, "serviceAddress": address}


def error_json(status: int, message: str, path: str = "/product/1") -> dict:
    return {"timestamp": "2026-10-19T10:00:00Z", "path": path, "status": status, "message": message}


class Downstream:
    """
    Routes requests to per-service callables. Each callable receives the
    httpx.Request and returns an httpx.Response (or raises / sleeps).
    """

    def __init__(self):
        self.calls: List[httpx.Request] = []
        self.product: Callable = lambda req: httpx.Response(200, json=product_json())
        self.recommendation: Callable = lambda req: httpx.Response(200, json=[])
        self.review: Callable = lambda req: httpx.Response(200, json=[])
        self.health: Callable = lambda req: httpx.Response(200, json={"status": "UP"})

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        path = request.url.path
        if path.endswith("/actuator/health"):
            handler = self.health
        elif path.startswith("/product/"):
            handler = self.product
        elif path == "/recommendation":
            handler = self.recommendation
        elif path == "/review":
            handler = self.review
        else:
            return httpx.Response(404)
        result = handler(request)
        if hasattr(result, "__await__"):
            result = await result
        return result

    def calls_to(self, host: str) -> List[httpx.Request]:
        return [c for c in self.calls if c.url.host == host]


@pytest.fixture
def downstream() -> Downstream:
    return Downstream()


@pytest.fixture
def client(downstream) -> DownstreamClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(downstream))
    return DownstreamClient(
        http,
        product_url="http://product",
        recommendation_url="http://recommendation",
        review_url="http://review",
    )


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def breaker(clock) -> CircuitBreaker:
    return CircuitBreaker(
        "product",
        CircuitBreakerConfig(
            sliding_window_size=20,
            minimum_number_of_calls=10,
            failure_rate_threshold=50.0,
            wait_duration_in_open_state=10.0,
            permitted_number_of_calls_in_half_open_state=3,
        ),
        clock=clock,
    )


@pytest.fixture
def integration(client, breaker) -> ProductCompositeIntegration:
    return ProductCompositeIntegration(
        client,
        breaker,
        service_address=LOCAL_ADDRESS,
        retry=RetryConfig(max_attempts=3, wait_duration=0.0),
        time_limiter=TimeLimiterConfig(timeout_duration=0.05),
    )


@pytest.fixture
def composite(integration, publisher) -> ProductCompositeService:
    return ProductCompositeService(integration, publisher, LOCAL_ADDRESS)
