# product_composite/domain/services/publisher.py
from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Mapping

from kafka import KafkaProducer
from kafka.errors import KafkaError

from product_composite.core.config import Settings
from product_composite.core.errors import UpstreamError
from product_composite.domain.models.event import Event
from product_composite.domain.services.constants import (
    PARTITION_KEY_HEADER,
    PRODUCTS_BINDING,
    RECOMMENDATIONS_BINDING,
    REVIEWS_BINDING,
)

logger = logging.getLogger(__name__)


class CommandPublisher:
    """
    Sends command events to Kafka on a named binding.

    kafka-python sends are blocking, so they run on a dedicated bounded thread
    pool; the event loop only awaits the handoff. `publish` returns once the
    broker has accepted the record (no consumer acknowledgement).
    """

    def __init__(
        self,
        producer,
        topics: Mapping[str, str],
        executor: ThreadPoolExecutor,
        *,
        send_timeout: float = 10.0,
        max_pending: int = 100,
    ):
        self.producer = producer
        self.topics = dict(topics)
        self.executor = executor
        self.send_timeout = send_timeout
        self._pending = asyncio.Semaphore(max_pending)

    def topic_for(self, binding: str) -> str:
        try:
            return self.topics[binding]
        except KeyError:
            raise ValueError(f"Unknown binding: {binding}") from None

    async def publish(self, binding: str, event: Event) -> None:
        topic = self.topic_for(binding)
        partition_key = str(event.key)
        payload = event.to_json().encode("utf-8")
        logger.debug("Sending a %s message to %s (topic=%s, partitionKey=%s)",
                     event.event_type.value, binding, topic, partition_key)

        async with self._pending:
            loop = asyncio.get_running_loop()
            # shield: once handed to the pool the send completes even if the caller goes away
            await asyncio.shield(
                loop.run_in_executor(self.executor, self._send, topic, partition_key, payload)
            )

    def _send(self, topic: str, partition_key: str, payload: bytes) -> None:
        try:
            future = self.producer.send(
                topic,
                key=partition_key.encode("utf-8"),
                value=payload,
                headers=[(PARTITION_KEY_HEADER, partition_key.encode("utf-8"))],
            )
            future.get(timeout=self.send_timeout)
        except KafkaError as e:
            logger.warning("Publishing to topic %s failed: %r", topic, e)
            raise UpstreamError(f"Failed to publish to {topic}: {e}") from e

    def close(self) -> None:
        try:
            self.producer.flush(timeout=self.send_timeout)
        finally:
            self.producer.close()
            self.executor.shutdown(wait=True)


def topics_from_settings(settings: Settings) -> dict[str, str]:
    return {
        PRODUCTS_BINDING: settings.KAFKA_TOPIC_PRODUCTS,
        RECOMMENDATIONS_BINDING: settings.KAFKA_TOPIC_RECOMMENDATIONS,
        REVIEWS_BINDING: settings.KAFKA_TOPIC_REVIEWS,
    }


def build_publisher(settings: Settings) -> CommandPublisher:
    producer = KafkaProducer(
        bootstrap_servers=[s.strip() for s in settings.KAFKA_BOOTSTRAP_SERVERS.split(",") if s.strip()],
        acks=1,
        retries=3,
    )
    executor = ThreadPoolExecutor(
        max_workers=settings.PUBLISH_EVENT_POOL_SIZE,
        thread_name_prefix="publish-event",
    )
    return CommandPublisher(
        producer,
        topics_from_settings(settings),
        executor,
        send_timeout=settings.KAFKA_SEND_TIMEOUT,
        max_pending=settings.PUBLISH_EVENT_QUEUE_SIZE,
    )
