"""
Rule-based event router.

Lifecycle events are matched against a set of independent rules. Every rule
whose predicate holds fires; there is no ordering and no first-match
short-circuit. This is the in-process counterpart of an event bus with
content-based filtering.

Design decisions:
- A rule is a name, a predicate and an action
- A predicate that trips over a missing or mistyped field simply does not match
- An action that raises is logged and does not stop the other rules
- Publishers don't know who is listening; rules are registered by the
  composition root (see pipeline.py)
"""

import json
import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Optional

from order_pipeline.events import EventType, OrderEvent, order_urgent
from shared.models import Priority

logger = logging.getLogger("event_router")

Predicate = Callable[[OrderEvent], bool]
Action = Callable[[OrderEvent], Any]


@dataclass
class Rule:
    """A named predicate/action pair."""
    name: str
    predicate: Predicate
    action: Action
    description: str = ""

    def matches(self, event: OrderEvent) -> bool:
        try:
            return bool(self.predicate(event))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.debug(f"Rule '{self.name}' does not match {event}: {e!r}")
            return False


class EventRouter:
    """
    Fans events out to every matching rule.

    Example:
        router = EventRouter()
        router.add_rule(Rule(
            name="failed",
            predicate=lambda e: e.event_type == EventType.ORDER_FAILED,
            action=notifications.publish,
        ))
        router.route(order_failed(order, "Payment declined"))
    """

    def __init__(self, rules: Optional[list[Rule]] = None, event_log_size: int = 1000):
        self._rules: dict[str, Rule] = {}
        self._lock = threading.Lock()
        self._event_log: deque[OrderEvent] = deque(maxlen=event_log_size)
        for rule in rules or []:
            self.add_rule(rule)

    def add_rule(self, rule: Rule) -> None:
        """
        Register a rule.

        Raises:
            ValueError: If a rule with the same name is already registered
        """
        with self._lock:
            if rule.name in self._rules:
                raise ValueError(f"Rule already registered: {rule.name}")
            self._rules[rule.name] = rule
        logger.debug(f"Registered rule '{rule.name}'")

    def remove_rule(self, name: str) -> bool:
        with self._lock:
            return self._rules.pop(name, None) is not None

    @property
    def rule_names(self) -> list[str]:
        with self._lock:
            return list(self._rules)

    def matching_rules(self, event: OrderEvent) -> list[Rule]:
        """Evaluate every predicate without dispatching."""
        with self._lock:
            rules = list(self._rules.values())
        return [rule for rule in rules if rule.matches(event)]

    def route(self, event: OrderEvent) -> list[str]:
        """
        Dispatch an event to every matching rule.

        Returns:
            Names of the rules that fired.

        Raises:
            TypeError: If `event` is not an OrderEvent
        """
        if not isinstance(event, OrderEvent):
            raise TypeError(f"Cannot route {type(event).__name__}; expected an OrderEvent")

        with self._lock:
            self._event_log.append(event)

        matched = self.matching_rules(event)
        logger.info(f"Routing {event} -> {[r.name for r in matched] or 'no rules'}")
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Envelope: {json.dumps(event.to_envelope(), default=str)}")

        for rule in matched:
            try:
                rule.action(event)
            except Exception as e:
                logger.error(f"Rule '{rule.name}' failed for {event}: {e}")

        return [rule.name for rule in matched]

    def get_event_log(self) -> list[OrderEvent]:
        """The most recently routed events, oldest first (useful for debugging and testing)."""
        with self._lock:
            return list(self._event_log)

    def clear_event_log(self) -> None:
        with self._lock:
            self._event_log.clear()


# =============================================================================
# Default rule set
# =============================================================================

def build_default_rules(orchestrator, notifications, high_value_threshold: float = 500.0) -> list[Rule]:
    """
    The pipeline's standard rules.

    Args:
        orchestrator: Starts workflows (needs `start_for_event(event)`)
        notifications: Delivers events (needs `publish(event)`)
        high_value_threshold: Orders strictly above this value start a workflow

    The "order-created" and "urgent" rules both match an urgent order, so its
    subscribers receive two notifications (orderCreated and orderUrgent).
    """
    def is_created(event: OrderEvent) -> bool:
        return event.event_type == EventType.ORDER_CREATED

    return [
        Rule(
            name="high-value",
            predicate=lambda e: is_created(e) and e.detail["orderValue"] > high_value_threshold,
            action=orchestrator.start_for_event,
            description=f"OrderCreated with orderValue > {high_value_threshold} starts the workflow",
        ),
        Rule(
            name="order-created",
            predicate=is_created,
            action=notifications.publish,
            description="Every OrderCreated goes to orderCreated subscribers",
        ),
        Rule(
            name="urgent",
            predicate=lambda e: is_created(e) and e.detail["priority"] == Priority.URGENT.value,
            action=lambda e: notifications.publish(order_urgent(e)),
            description="Urgent OrderCreated goes to orderUrgent subscribers",
        ),
        Rule(
            name="failed",
            predicate=lambda e: e.event_type == EventType.ORDER_FAILED,
            action=notifications.publish,
            description="Every OrderFailed goes to orderFailed subscribers",
        ),
    ]
