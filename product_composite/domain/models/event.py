from __future__ import annotations
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Generic, Optional, TypeVar
import json

from pydantic import BaseModel, ConfigDict, Field, model_validator

K = TypeVar("K")
V = TypeVar("V")


class EventType(str, Enum):
    CREATE = "CREATE"
    DELETE = "DELETE"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Event(BaseModel, Generic[K, V]):
    """
    Command envelope sent over the bus.

    Wire format: {"eventType", "key", "data", "eventCreatedAt"}.
    Two events are equal when type, key and data are equal; the creation
    timestamp is left out of equality and hashing.
    """

    event_type: EventType = Field(alias="eventType")
    key: K
    data: Optional[V] = None
    event_created_at: datetime = Field(default_factory=_now, alias="eventCreatedAt")

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @model_validator(mode="after")
    def _check_data(self):
        if self.event_type == EventType.CREATE and self.data is None:
            raise ValueError("CREATE event requires data")
        if self.event_type == EventType.DELETE and self.data is not None:
            raise ValueError("DELETE event must not carry data")
        return self

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Event):
            return NotImplemented
        return (self.event_type, self.key, self.data) == (other.event_type, other.key, other.data)

    def __hash__(self) -> int:
        return hash((self.event_type, self.key, self.data))

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


def _without_created_at(doc: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in doc.items() if k != "eventCreatedAt"}


def is_same_event_except_created_at(event_json: str, expected: Event) -> bool:
    """
    Compare an encoded event with an Event value, ignoring eventCreatedAt.
    Used to check what actually went over the wire.
    """
    try:
        actual = json.loads(event_json)
    except (TypeError, ValueError):
        return False
    if not isinstance(actual, dict):
        return False
    wanted = expected.model_dump(mode="json", by_alias=True)
    return _without_created_at(actual) == _without_created_at(wanted)
