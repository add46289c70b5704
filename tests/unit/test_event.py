"""
Unit tests for the bus command envelope.

Run: pytest tests/unit/test_event.py -v
"""

import json
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from product_composite.domain.models.event import Event, EventType, is_same_event_except_created_at
from product_composite.domain.models.product import Product


class TestEventEquality:
    """Equality ignores the creation timestamp"""

    def test_same_event_at_different_times_is_equal(self):
        t0 = datetime(2026, 1, 1, tzinfo=timezone.utc)
        e1 = Event(event_type=EventType.CREATE, key=1, data=Product(product_id=1, name="name", weight=1), event_created_at=t0)
        e2 = Event(event_type=EventType.CREATE, key=1, data=Product(product_id=1, name="name", weight=1),
                   event_created_at=t0 + timedelta(seconds=5))

        assert e1 == e2
        assert hash(e1) == hash(e2)

    def test_different_type_or_data_is_not_equal(self):
        create = Event(event_type=EventType.CREATE, key=1, data=Product(product_id=1, name="name", weight=1))
        delete = Event(event_type=EventType.DELETE, key=1, data=None)
        other = Event(event_type=EventType.CREATE, key=1, data=Product(product_id=2, name="name", weight=1))

        assert create != delete
        assert create != other

    def test_event_compare_against_json(self):
        """Event #1 and #2 are the same event at different times; #3 and #4 are different events"""
        event1 = Event(event_type=EventType.CREATE, key=1, data=Product(product_id=1, name="name", weight=1))
        event2 = Event(event_type=EventType.CREATE, key=1, data=Product(product_id=1, name="name", weight=1))
        event3 = Event(event_type=EventType.DELETE, key=1, data=None)
        event4 = Event(event_type=EventType.CREATE, key=1, data=Product(product_id=2, name="name", weight=1))

        event1_json = event1.to_json()

        assert is_same_event_except_created_at(event1_json, event2)
        assert not is_same_event_except_created_at(event1_json, event3)
        assert not is_same_event_except_created_at(event1_json, event4)

    def test_not_json_is_never_the_same_event(self):
        event = Event(event_type=EventType.DELETE, key=1, data=None)
        assert not is_same_event_except_created_at("not json", event)


class TestEventWireFormat:
    """JSON shape and round trip"""

    def test_json_keys(self):
        event = Event(event_type=EventType.CREATE, key=5, data=Product(product_id=5, name="n", weight=3))
        doc = json.loads(event.to_json())

        assert set(doc) == {"eventType", "key", "data", "eventCreatedAt"}
        assert doc["eventType"] == "CREATE"
        assert doc["key"] == 5
        assert doc["data"]["productId"] == 5
        assert datetime.fromisoformat(doc["eventCreatedAt"].replace("Z", "+00:00"))

    def test_round_trip_preserves_equality(self):
        event = Event(event_type=EventType.CREATE, key=5, data=Product(product_id=5, name="n", weight=3))
        decoded = Event[int, Product].model_validate_json(event.to_json())

        assert decoded == event
        assert decoded.data == Product(product_id=5, name="n", weight=3)

    def test_delete_round_trip(self):
        event = Event(event_type=EventType.DELETE, key=7, data=None)
        decoded = Event[int, Product].model_validate_json(event.to_json())

        assert decoded == event
        assert decoded.data is None


class TestEventInvariants:

    def test_create_requires_data(self):
        with pytest.raises(ValidationError):
            Event(event_type=EventType.CREATE, key=1, data=None)

    def test_delete_rejects_data(self):
        with pytest.raises(ValidationError):
            Event(event_type=EventType.DELETE, key=1, data=Product(product_id=1, name="n", weight=1))
