"""
Tests for the event router and the default rule set.

These tests verify that every matching rule fires, that missing fields mean
"no match", that a failing action is isolated, and the high-value boundary.
"""

import logging

import pytest

from order_pipeline.events import (
    EventType,
    OrderCreated,
    order_created,
    order_failed,
    order_urgent,
)
from order_pipeline.router import EventRouter, Rule, build_default_rules


class RecordingOrchestrator:
    def __init__(self):
        self.started = []

    def start_for_event(self, event):
        self.started.append(event.detail["orderId"])


class RecordingNotifications:
    def __init__(self):
        self.published = []

    def publish(self, event):
        self.published.append(event)


@pytest.fixture
def setup_default_router():
    """Router wired with the default rules and recording collaborators."""
    orchestrator = RecordingOrchestrator()
    notifications = RecordingNotifications()
    router = EventRouter(build_default_rules(orchestrator, notifications, high_value_threshold=500))
    yield {
        "router": router,
        "orchestrator": orchestrator,
        "notifications": notifications,
    }


class TestEventRouter:
    """Tests for generic routing behaviour."""

    def test_all_matching_rules_fire(self):
        calls = []
        router = EventRouter([
            Rule("one", lambda e: True, lambda e: calls.append("one")),
            Rule("two", lambda e: True, lambda e: calls.append("two")),
            Rule("never", lambda e: False, lambda e: calls.append("never")),
        ])

        fired = router.route(OrderCreated(detail={"orderId": "T1"}))

        assert sorted(fired) == ["one", "two"]
        assert sorted(calls) == ["one", "two"]

    def test_missing_field_is_no_match(self):
        router = EventRouter([Rule("value", lambda e: e.detail["orderValue"] > 1, lambda e: None)])
        assert router.route(OrderCreated(detail={"orderId": "T1"})) == []

    def test_mistyped_field_is_no_match(self):
        router = EventRouter([Rule("value", lambda e: e.detail["orderValue"] > 1, lambda e: None)])
        assert router.route(OrderCreated(detail={"orderValue": None})) == []

    def test_failing_action_does_not_stop_others(self, caplog):
        calls = []

        def explode(event):
            raise RuntimeError("handler exploded")

        router = EventRouter([
            Rule("bad", lambda e: True, explode),
            Rule("good", lambda e: True, lambda e: calls.append(e)),
        ])

        fired = router.route(OrderCreated(detail={}))

        assert set(fired) == {"bad", "good"}
        assert len(calls) == 1
        assert "handler exploded" in caplog.text

    def test_duplicate_rule_name_rejected(self):
        router = EventRouter([Rule("a", lambda e: True, lambda e: None)])
        with pytest.raises(ValueError):
            router.add_rule(Rule("a", lambda e: True, lambda e: None))

    def test_remove_rule(self):
        router = EventRouter([Rule("a", lambda e: True, lambda e: None)])
        assert router.remove_rule("a") is True
        assert router.remove_rule("a") is False
        assert router.rule_names == []

    def test_non_event_rejected(self):
        with pytest.raises(TypeError):
            EventRouter().route({"detailType": "Order Created"})

    def test_event_log(self):
        router = EventRouter()
        event = OrderCreated(detail={})
        router.route(event)

        assert router.get_event_log() == [event]
        router.clear_event_log()
        assert router.get_event_log() == []

    def test_event_log_is_bounded(self):
        router = EventRouter(event_log_size=2)
        events = [OrderCreated(detail={"orderId": f"T{i}"}) for i in range(5)]
        for event in events:
            router.route(event)

        assert router.get_event_log() == events[-2:]

    def test_envelope_logged_at_debug(self, caplog, make_order):
        caplog.set_level(logging.DEBUG, logger="event_router")
        EventRouter().route(order_created(make_order("T1")))

        assert '"detailType": "Order Created"' in caplog.text
        assert '"source": "order.system"' in caplog.text


class TestDefaultRules:
    """Tests for the standard rule set."""

    def test_high_value_starts_workflow(self, setup_default_router, make_order):
        router = setup_default_router["router"]
        fired = router.route(order_created(make_order("T1", items=[{"name": "X", "price": 501}])))

        assert "high-value" in fired
        assert setup_default_router["orchestrator"].started == ["T1"]

    def test_threshold_is_strict(self, setup_default_router, make_order):
        """Test that orderValue == 500 does not start a workflow."""
        router = setup_default_router["router"]
        fired = router.route(order_created(make_order("T1", items=[{"name": "X", "price": 500}])))

        assert "high-value" not in fired
        assert "order-created" in fired
        assert setup_default_router["orchestrator"].started == []

    def test_urgent_order_matches_created_and_urgent(self, setup_default_router, make_order):
        """Test the two-notification behaviour for urgent orders."""
        router = setup_default_router["router"]
        notifications = setup_default_router["notifications"]

        fired = router.route(order_created(make_order("T1", priority="urgent")))

        assert set(fired) == {"high-value", "order-created", "urgent"}
        published = sorted(e.event_type.value for e in notifications.published)
        assert published == [EventType.ORDER_CREATED.value, EventType.ORDER_URGENT.value]

    def test_failed_event_only_matches_failed_rule(self, setup_default_router, make_order):
        """Test that OrderFailed never restarts a workflow even for big orders."""
        router = setup_default_router["router"]
        order = make_order("T1", items=[{"name": "X", "price": 5000}], priority="urgent")

        fired = router.route(order_failed(order, "Payment declined", "ProcessPayment"))

        assert fired == ["failed"]
        assert setup_default_router["orchestrator"].started == []

    def test_completed_and_urgent_events_match_nothing(self, setup_default_router, make_order):
        router = setup_default_router["router"]
        created = order_created(make_order("T1", priority="urgent"))

        assert router.route(order_urgent(created)) == []

    def test_matching_rules_does_not_dispatch(self, setup_default_router, make_order):
        router = setup_default_router["router"]
        rules = router.matching_rules(order_created(make_order("T1")))

        assert {r.name for r in rules} == {"high-value", "order-created"}
        assert setup_default_router["orchestrator"].started == []
