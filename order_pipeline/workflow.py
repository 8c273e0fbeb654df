"""
Order workflow orchestrator.

Each high-value order runs through an explicit finite-state machine:

    Validate -> ProcessPayment -> UpdateInventory -> SendNotification -> Success

Any step that rejects the order or raises goes to the shared HandleFailure
step, which records the reason, marks the order failed, emits OrderFailed and
ends in Failed.

Design decisions:
- Steps and outcomes are enums and TRANSITIONS covers every
  (step, outcome) pair, so the graph can be checked without running it
- Business rule failures are outcomes (REJECTED), not exceptions
- Every step writes its result to the order store before moving on
- Event emission and notification are best-effort; store writes are not
- One execution per order key; starting an order twice returns the first
- Finished executions are kept in a bounded history; once one is evicted,
  the order's stored status keeps it from being started again
- Executions run inline or on an injected executor
"""

import logging
import threading
import time
from collections import OrderedDict
from concurrent.futures import Executor, Future, wait
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from order_pipeline.events import OrderEvent, order_completed, order_failed
from order_pipeline.services.inventory import InventoryService
from order_pipeline.services.payment import PaymentGateway, SimulatedPaymentGateway
from shared.data_store import OrderStore
from shared.models import (
    InventoryUpdate,
    Order,
    OrderStatus,
    PaymentStatus,
    ValidationResult,
    utc_now_iso,
)

logger = logging.getLogger("workflow")


class WorkflowStep(str, Enum):
    VALIDATE = "Validate"
    PROCESS_PAYMENT = "ProcessPayment"
    UPDATE_INVENTORY = "UpdateInventory"
    SEND_NOTIFICATION = "SendNotification"
    HANDLE_FAILURE = "HandleFailure"
    SUCCESS = "Success"
    FAILED = "Failed"


class StepOutcome(str, Enum):
    PASSED = "passed"
    REJECTED = "rejected"
    ERRORED = "errored"


TERMINAL_STEPS = frozenset({WorkflowStep.SUCCESS, WorkflowStep.FAILED})

TRANSITIONS: dict[tuple[WorkflowStep, StepOutcome], WorkflowStep] = {
    (WorkflowStep.VALIDATE, StepOutcome.PASSED): WorkflowStep.PROCESS_PAYMENT,
    (WorkflowStep.VALIDATE, StepOutcome.REJECTED): WorkflowStep.HANDLE_FAILURE,
    (WorkflowStep.VALIDATE, StepOutcome.ERRORED): WorkflowStep.HANDLE_FAILURE,

    (WorkflowStep.PROCESS_PAYMENT, StepOutcome.PASSED): WorkflowStep.UPDATE_INVENTORY,
    (WorkflowStep.PROCESS_PAYMENT, StepOutcome.REJECTED): WorkflowStep.HANDLE_FAILURE,
    (WorkflowStep.PROCESS_PAYMENT, StepOutcome.ERRORED): WorkflowStep.HANDLE_FAILURE,

    (WorkflowStep.UPDATE_INVENTORY, StepOutcome.PASSED): WorkflowStep.SEND_NOTIFICATION,
    (WorkflowStep.UPDATE_INVENTORY, StepOutcome.REJECTED): WorkflowStep.HANDLE_FAILURE,
    (WorkflowStep.UPDATE_INVENTORY, StepOutcome.ERRORED): WorkflowStep.HANDLE_FAILURE,

    (WorkflowStep.SEND_NOTIFICATION, StepOutcome.PASSED): WorkflowStep.SUCCESS,
    (WorkflowStep.SEND_NOTIFICATION, StepOutcome.REJECTED): WorkflowStep.HANDLE_FAILURE,
    (WorkflowStep.SEND_NOTIFICATION, StepOutcome.ERRORED): WorkflowStep.HANDLE_FAILURE,

    (WorkflowStep.HANDLE_FAILURE, StepOutcome.PASSED): WorkflowStep.FAILED,
    (WorkflowStep.HANDLE_FAILURE, StepOutcome.REJECTED): WorkflowStep.FAILED,
    (WorkflowStep.HANDLE_FAILURE, StepOutcome.ERRORED): WorkflowStep.FAILED,
}


def next_step(step: WorkflowStep, outcome: StepOutcome) -> WorkflowStep:
    """
    Look up the successor of `step` given its outcome.

    Raises:
        ValueError: If `step` is terminal
    """
    if step in TERMINAL_STEPS:
        raise ValueError(f"{step.value} is terminal")
    return TRANSITIONS[(step, outcome)]


def validate_order(order: Order, max_order_value: float = 10000.0) -> ValidationResult:
    """
    Run the business checks.

    orderValue must lie strictly between 0 and max_order_value, and there
    must be at least one item with every price positive.
    """
    value = order.order_value
    has_items = len(order.items) > 0
    checks = {
        "has_order_id": bool(order.order_id),
        "has_valid_value": value is not None and 0 < value < max_order_value,
        "has_items": has_items,
        "items_have_price": has_items and all(item.price > 0 for item in order.items),
    }
    return ValidationResult(**checks, valid=all(checks.values()))


# =============================================================================
# Execution state
# =============================================================================

@dataclass
class StepRecord:
    """One entry of an execution's history."""
    step: WorkflowStep
    outcome: StepOutcome
    started_at: str
    finished_at: str
    detail: Optional[str] = None


@dataclass
class WorkflowExecution:
    """
    The state of one order's run through the workflow.

    `error` holds the exception of the step that failed; `compensation_error`
    is set only if HandleFailure itself raised.
    """
    execution_id: str
    order: Order
    current_step: WorkflowStep = WorkflowStep.VALIDATE
    history: list[StepRecord] = field(default_factory=list)
    validation_result: Optional[ValidationResult] = None
    payment_success: Optional[bool] = None
    transaction_id: Optional[str] = None
    inventory_updates: list[InventoryUpdate] = field(default_factory=list)
    notification_sent: bool = False
    completed_at: Optional[str] = None
    failure_reason: Optional[str] = None
    failed_step: Optional[WorkflowStep] = None
    error: Optional[dict[str, str]] = None
    compensation_error: Optional[dict[str, str]] = None
    started_at: str = field(default_factory=utc_now_iso)
    finished_at: Optional[str] = None
    _done: threading.Event = field(default_factory=threading.Event, repr=False, compare=False)

    @property
    def is_finished(self) -> bool:
        return self.current_step in TERMINAL_STEPS

    @property
    def succeeded(self) -> bool:
        return self.current_step == WorkflowStep.SUCCESS

    @property
    def visited_steps(self) -> list[WorkflowStep]:
        return [record.step for record in self.history]

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the execution reaches a terminal step."""
        return self._done.wait(timeout)

    def to_dict(self) -> dict[str, Any]:
        return {
            "executionId": self.execution_id,
            "orderId": self.order.order_id,
            "timestamp": self.order.timestamp,
            "currentStep": self.current_step.value,
            "history": [
                {"step": r.step.value, "outcome": r.outcome.value, "detail": r.detail}
                for r in self.history
            ],
            "paymentSuccess": self.payment_success,
            "transactionId": self.transaction_id,
            "notificationSent": self.notification_sent,
            "failureReason": self.failure_reason,
            "failedStep": self.failed_step.value if self.failed_step else None,
            "error": self.error,
        }


StepResult = tuple[StepOutcome, Optional[str]]


# =============================================================================
# Orchestrator
# =============================================================================

class WorkflowOrchestrator:
    """
    Drives executions through the step graph.

    Example:
        orchestrator = WorkflowOrchestrator(store, notifications=notifications, emit=router.route)
        execution = orchestrator.start(order)
        execution.wait(5)
    """

    def __init__(
        self,
        store: OrderStore,
        payment_gateway: Optional[PaymentGateway] = None,
        inventory: Optional[InventoryService] = None,
        notifications=None,
        emit: Optional[Callable[[OrderEvent], Any]] = None,
        max_order_value: float = 10000.0,
        executor: Optional[Executor] = None,
        history_limit: int = 1000,
    ):
        """
        Args:
            store: Order store every step writes to
            payment_gateway: Charges orders (defaults to a 90% simulated gateway)
            inventory: Stock ledger (defaults to an untracked one)
            notifications: Publisher for OrderCompleted (needs `publish(event)`)
            emit: Where OrderFailed goes, normally the event router's route()
            max_order_value: Exclusive upper bound checked by Validate
            executor: Runs executions in the background; None runs them inline
            history_limit: Finished executions kept for introspection
        """
        self.store = store
        self.payment_gateway = payment_gateway or SimulatedPaymentGateway()
        self.inventory = inventory or InventoryService()
        self.notifications = notifications
        self.emit = emit
        self.max_order_value = max_order_value
        self.executor = executor
        self.history_limit = history_limit

        self._lock = threading.Lock()
        self._active: dict[tuple[str, str], WorkflowExecution] = {}
        self._finished: OrderedDict[tuple[str, str], WorkflowExecution] = OrderedDict()
        self._futures: list[Future] = []

        self._steps: dict[WorkflowStep, Callable[[WorkflowExecution], StepResult]] = {
            WorkflowStep.VALIDATE: self._validate,
            WorkflowStep.PROCESS_PAYMENT: self._process_payment,
            WorkflowStep.UPDATE_INVENTORY: self._update_inventory,
            WorkflowStep.SEND_NOTIFICATION: self._send_notification,
            WorkflowStep.HANDLE_FAILURE: self._handle_failure,
        }

    # =========================================================================
    # Starting and running executions
    # =========================================================================

    def start(self, order: Order) -> Optional[WorkflowExecution]:
        """
        Start the workflow for an order, once per (order_id, timestamp).

        Returns:
            The new execution, the existing one if the order was already
            started, or None if the stored order is already past submitted
            and its execution has left the history.

        Raises:
            RuntimeError: If the executor refuses the execution (e.g. it was
                shut down); nothing stays registered for the order
        """
        with self._lock:
            existing = self._active.get(order.key) or self._finished.get(order.key)
            if existing is not None:
                logger.info(f"Workflow for {order.order_id} already started ({existing.execution_id})")
                return existing
            record = self.store.get(*order.key)
            if record is not None and record.status != OrderStatus.SUBMITTED:
                logger.info(f"Workflow for {order.order_id} not started: order is {record.status}")
                return None
            execution = WorkflowExecution(
                execution_id=f"execution-{order.order_id}-{int(time.time() * 1000)}",
                order=order,
            )
            self._active[order.key] = execution

        logger.info(f"Starting {execution.execution_id} (value=${order.order_value})")
        if self.executor is None:
            self.run(execution)
            return execution

        try:
            future = self.executor.submit(self.run, execution)
        except RuntimeError as e:
            with self._lock:
                self._active.pop(order.key, None)
            logger.error(f"Could not schedule {execution.execution_id}: {e}")
            raise
        with self._lock:
            self._futures.append(future)
        return execution

    def start_for_event(self, event: OrderEvent) -> Optional[WorkflowExecution]:
        """Start the workflow for the order an event refers to."""
        detail = event.detail
        order = self.store.get(detail["orderId"], detail["timestamp"])
        if order is None:
            order = Order.model_validate(detail)
        return self.start(order)

    def run(self, execution: WorkflowExecution) -> WorkflowExecution:
        """Drive an execution to a terminal step."""
        step = execution.current_step
        while step not in TERMINAL_STEPS:
            execution.current_step = step
            outcome, detail = self._run_step(step, execution)
            if outcome != StepOutcome.PASSED and step != WorkflowStep.HANDLE_FAILURE:
                execution.failure_reason = detail
                execution.failed_step = step
            step = next_step(step, outcome)

        execution.current_step = step
        execution.finished_at = utc_now_iso()
        self._retire(execution)
        execution._done.set()
        logger.info(f"{execution.execution_id} finished: {step.value}")
        return execution

    def _retire(self, execution: WorkflowExecution) -> None:
        key = execution.order.key
        with self._lock:
            self._active.pop(key, None)
            self._finished[key] = execution
            while len(self._finished) > self.history_limit:
                self._finished.popitem(last=False)

    def _run_step(self, step: WorkflowStep, execution: WorkflowExecution) -> StepResult:
        started_at = utc_now_iso()
        try:
            outcome, detail = self._steps[step](execution)
        except Exception as e:
            logger.exception(f"[{execution.execution_id}] {step.value} raised: {e}")
            error = {"type": type(e).__name__, "message": str(e), "step": step.value}
            if step == WorkflowStep.HANDLE_FAILURE:
                execution.compensation_error = error
            else:
                execution.error = error
            outcome, detail = StepOutcome.ERRORED, str(e) or type(e).__name__

        execution.history.append(StepRecord(
            step=step,
            outcome=outcome,
            started_at=started_at,
            finished_at=utc_now_iso(),
            detail=detail,
        ))
        logger.debug(f"[{execution.execution_id}] {step.value} -> {outcome.value}")
        return outcome, detail

    # =========================================================================
    # Steps
    # =========================================================================

    def _save(self, execution: WorkflowExecution, **changes: Any) -> None:
        order = execution.order
        execution.order = self.store.update(order.order_id, order.timestamp, **changes)

    def _validate(self, execution: WorkflowExecution) -> StepResult:
        result = validate_order(execution.order, self.max_order_value)
        execution.validation_result = result
        status = OrderStatus.VALIDATED if result.valid else OrderStatus.VALIDATION_FAILED
        self._save(execution, status=status, validation_result=result)

        if result.valid:
            return StepOutcome.PASSED, None
        checks = result.model_dump(by_alias=True, exclude={"valid"})
        failed = [name for name, ok in checks.items() if not ok]
        return StepOutcome.REJECTED, f"Order validation failed: {', '.join(failed)}"

    def _process_payment(self, execution: WorkflowExecution) -> StepResult:
        payment = self.payment_gateway.charge(execution.order)
        execution.payment_success = payment.success
        execution.transaction_id = payment.transaction_id
        self._save(
            execution,
            status=OrderStatus.PAYMENT_PROCESSED if payment.success else OrderStatus.PAYMENT_FAILED,
            payment_status=(PaymentStatus.COMPLETED if payment.success else PaymentStatus.FAILED).value,
            transaction_id=payment.transaction_id,
        )
        if payment.success:
            return StepOutcome.PASSED, payment.transaction_id
        return StepOutcome.REJECTED, payment.message or "Payment failed"

    def _update_inventory(self, execution: WorkflowExecution) -> StepResult:
        updates = self.inventory.adjust(execution.order)
        execution.inventory_updates = updates
        self._save(execution, status=OrderStatus.INVENTORY_UPDATED, inventory_updates=updates)
        return StepOutcome.PASSED, f"{len(updates)} items adjusted"

    def _send_notification(self, execution: WorkflowExecution) -> StepResult:
        completed_at = utc_now_iso()
        self._save(
            execution,
            status=OrderStatus.COMPLETED,
            notification_sent=True,
            completed_at=completed_at,
        )
        execution.notification_sent = True
        execution.completed_at = completed_at

        if self.notifications is not None:
            try:
                self.notifications.publish(order_completed(execution.order))
            except Exception as e:
                logger.error(f"[{execution.execution_id}] OrderCompleted notification failed: {e}")
        return StepOutcome.PASSED, None

    def _handle_failure(self, execution: WorkflowExecution) -> StepResult:
        reason = execution.failure_reason or "Unknown error"
        step = execution.failed_step.value if execution.failed_step else None
        logger.warning(f"[{execution.execution_id}] Order {execution.order.order_id} failed at {step}: {reason}")

        self._save(
            execution,
            status=OrderStatus.FAILED,
            failure_reason=reason,
            failed_at=utc_now_iso(),
        )

        if self.emit is not None:
            try:
                self.emit(order_failed(execution.order, reason, step))
            except Exception as e:
                logger.error(f"[{execution.execution_id}] OrderFailed emission failed: {e}")
        return StepOutcome.PASSED, reason

    # =========================================================================
    # Introspection
    # =========================================================================

    def get_execution(self, order_id: str, timestamp: str) -> Optional[WorkflowExecution]:
        key = (order_id, timestamp)
        with self._lock:
            return self._active.get(key) or self._finished.get(key)

    def executions(self) -> list[WorkflowExecution]:
        """Running executions, then the most recently finished ones."""
        with self._lock:
            return list(self._active.values()) + list(self._finished.values())

    def join(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for background executions to finish.

        Returns:
            True if nothing is still running when the call returns.
        """
        with self._lock:
            futures = list(self._futures)
        if not futures:
            return True
        done, not_done = wait(futures, timeout=timeout)
        with self._lock:
            self._futures = [f for f in self._futures if f not in done]
        return not not_done
