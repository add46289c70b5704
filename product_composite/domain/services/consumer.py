# product_composite/domain/services/consumer.py
from __future__ import annotations

import asyncio
import functools
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from kafka import KafkaConsumer, KafkaProducer

from product_composite.core.config import Settings
from product_composite.core.errors import InvalidInputError
from product_composite.domain.services.constants import DLQ_SUFFIX
from product_composite.domain.services.message_processor import MessageProcessor

logger = logging.getLogger(__name__)


class EventConsumer:
    """
    Kafka consumer loop of a domain service.

    kafka-python's consumer is blocking and not thread-safe, so every call on it
    goes through a single-thread executor. Offsets are committed after the
    records of a poll are handled (at-least-once). A record that keeps failing
    is retried `max_attempts` times, then forwarded to `<topic>.dlq`.
    """

    def __init__(
        self,
        consumer,
        processor: MessageProcessor,
        *,
        dlq_producer=None,
        max_attempts: int = 3,
        backoff: float = 1.0,
        poll_timeout_ms: int = 1000,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.consumer = consumer
        self.processor = processor
        self.dlq_producer = dlq_producer
        self.max_attempts = max_attempts
        self.backoff = backoff
        self.poll_timeout_ms = poll_timeout_ms
        self.executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="event-consumer")
        self._stopping = asyncio.Event()

    async def _blocking(self, fn, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, functools.partial(fn, *args, **kwargs))

    async def run(self) -> None:
        logger.info("Event consumer started")
        while not self._stopping.is_set():
            try:
                batches = await self._blocking(self.consumer.poll, timeout_ms=self.poll_timeout_ms)
            except Exception as e:
                logger.error("Polling failed, retrying in %ss: %r", self.backoff, e)
                await asyncio.sleep(self.backoff)
                continue
            if not batches:
                continue
            try:
                for records in batches.values():
                    for record in records:
                        await self.handle(record)
                await self._blocking(self.consumer.commit)
            except Exception as e:
                # offsets stay uncommitted, the records are redelivered after a rebalance or restart
                logger.error("Handling or committing a batch failed, retrying in %ss: %r", self.backoff, e)
                await asyncio.sleep(self.backoff)
        logger.info("Event consumer stopped")

    async def handle(self, record) -> None:
        attempt = 1
        while True:
            try:
                await self.processor.process(record.value)
                return
            except InvalidInputError as e:
                # e.g. duplicate key: the command was already applied
                logger.warning("Event at %s[%s]@%s rejected as invalid, skipping: %s",
                               record.topic, record.partition, record.offset, e.message)
                return
            except Exception as e:
                if attempt >= self.max_attempts:
                    logger.error("Event at %s[%s]@%s failed after %s attempts: %r",
                                 record.topic, record.partition, record.offset, attempt, e)
                    await self._dead_letter(record, e)
                    return
                logger.warning("Event at %s[%s]@%s failed (attempt %s/%s), redelivering: %r",
                               record.topic, record.partition, record.offset, attempt, self.max_attempts, e)
                attempt += 1
                await asyncio.sleep(self.backoff)

    async def _dead_letter(self, record, error: Exception) -> None:
        if self.dlq_producer is None:
            logger.error("No dead-letter producer configured, dropping event at %s@%s", record.topic, record.offset)
            return
        topic = f"{record.topic}{DLQ_SUFFIX}"
        headers = list(record.headers or []) + [("x-exception-message", str(error).encode("utf-8"))]
        future = await self._blocking(self.dlq_producer.send, topic, key=record.key, value=record.value, headers=headers)
        await self._blocking(future.get, timeout=10)
        logger.warning("Event at %s@%s moved to %s", record.topic, record.offset, topic)

    async def stop(self) -> None:
        self._stopping.set()

    async def close(self) -> None:
        await self._blocking(self.consumer.close)
        if self.dlq_producer is not None:
            await self._blocking(self.dlq_producer.close)
        self.executor.shutdown(wait=False)


def build_consumer(settings: Settings, kind: str, topic: str, processor: MessageProcessor) -> EventConsumer:
    servers = [s.strip() for s in settings.KAFKA_BOOTSTRAP_SERVERS.split(",") if s.strip()]
    consumer = KafkaConsumer(
        topic,
        bootstrap_servers=servers,
        group_id=settings.KAFKA_CONSUMER_GROUP or f"{kind}Group",
        enable_auto_commit=False,
        auto_offset_reset="earliest",
    )
    return EventConsumer(
        consumer,
        processor,
        dlq_producer=KafkaProducer(bootstrap_servers=servers),
        max_attempts=settings.CONSUMER_MAX_ATTEMPTS,
        backoff=settings.CONSUMER_BACKOFF,
    )
