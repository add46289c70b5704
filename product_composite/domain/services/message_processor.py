import json
import logging
from typing import Any, Awaitable, Callable

from pydantic import ValidationError

from product_composite.core.errors import EventProcessingError
from product_composite.domain.models.event import Event, EventType
from product_composite.domain.models.product import Product, Recommendation, Review
from product_composite.domain.services.constants import KIND_PRODUCT, KIND_RECOMMENDATION, KIND_REVIEW

logger = logging.getLogger(__name__)


class MessageProcessor:
    """
    Applies one bus command to a domain service.

    CREATE persists (a duplicate surfaces as InvalidInputError, which the
    consumer treats as processed), DELETE removes everything for the key
    (missing target is fine), anything else is an EventProcessingError.
    """

    def __init__(self, data_type: type, create: Callable[[Any], Awaitable[Any]], delete: Callable[[int], Awaitable[Any]]):
        self.data_type = data_type
        self.event_type = Event[int, data_type]
        self._create = create
        self._delete = delete

    def decode(self, raw: bytes | str) -> Event:
        try:
            doc = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise EventProcessingError(f"Undecodable event payload: {e}") from e
        if not isinstance(doc, dict):
            raise EventProcessingError(f"Undecodable event payload: expected an object, got {type(doc).__name__}")

        event_type = doc.get("eventType")
        if event_type not in {t.value for t in EventType}:
            raise EventProcessingError(f"Incorrect event type: {event_type}")
        try:
            return self.event_type.model_validate(doc)
        except ValidationError as e:
            raise EventProcessingError(f"Invalid {event_type} event: {e}") from e

    async def process(self, raw: bytes | str) -> Event:
        event = self.decode(raw)
        logger.info("Process message created at %s...", event.event_created_at.isoformat())

        if event.event_type is EventType.CREATE:
            logger.info("Create %s with ID: %s", self.data_type.__name__, event.key)
            await self._create(event.data)
        elif event.event_type is EventType.DELETE:
            logger.info("Delete %ss with ProductID: %s", self.data_type.__name__, event.key)
            await self._delete(event.key)
        else:
            raise EventProcessingError(f"Incorrect event type: {event.event_type}, expected a CREATE or DELETE event")

        logger.info("Message processing done!")
        return event


def build_message_processor(kind: str, service) -> MessageProcessor:
    if kind == KIND_PRODUCT:
        return MessageProcessor(Product, service.create_product, service.delete_product)
    if kind == KIND_RECOMMENDATION:
        return MessageProcessor(Recommendation, service.create_recommendation, service.delete_recommendations)
    if kind == KIND_REVIEW:
        return MessageProcessor(Review, service.create_review, service.delete_reviews)
    raise ValueError(f"Unknown service kind: {kind}")
