"""
Payment capability used by the ProcessPayment workflow step.

The workflow only sees the PaymentGateway protocol. The simulated gateway
approves a configurable share of charges; tests inject deterministic fakes.
"""

import logging
import random
import string
import time
from dataclasses import dataclass
from typing import Optional, Protocol

from shared.models import Order

logger = logging.getLogger("payment")

_BASE36 = string.digits + string.ascii_lowercase


@dataclass
class PaymentResult:
    """Outcome of a charge attempt."""
    success: bool
    amount: float
    transaction_id: Optional[str] = None
    message: str = ""


class PaymentGateway(Protocol):
    def charge(self, order: Order) -> PaymentResult:
        ...


def new_transaction_id(rng: Optional[random.Random] = None) -> str:
    """TXN-<epoch ms>-<9 base36 chars>."""
    rng = rng or random.Random()
    suffix = "".join(rng.choice(_BASE36) for _ in range(9))
    return f"TXN-{int(time.time() * 1000)}-{suffix}"


class SimulatedPaymentGateway:
    """
    Approves roughly `success_rate` of all charges.

    Args:
        success_rate: Probability a charge succeeds (0.0 to 1.0)
        rng: Random source, seedable for reproducible demos
        delay: Seconds to sleep per charge, to mimic a remote call
    """

    def __init__(self, success_rate: float = 0.9, rng: Optional[random.Random] = None, delay: float = 0.0):
        if not 0.0 <= success_rate <= 1.0:
            raise ValueError("success_rate must be between 0 and 1")
        self.success_rate = success_rate
        self.delay = delay
        self._rng = rng or random.Random()

    def charge(self, order: Order) -> PaymentResult:
        if self.delay:
            time.sleep(self.delay)

        amount = order.order_value or 0.0
        # Every attempt gets an id, declined ones included
        transaction_id = new_transaction_id(self._rng)
        if self._rng.random() < self.success_rate:
            result = PaymentResult(
                success=True,
                amount=amount,
                transaction_id=transaction_id,
                message="Payment approved",
            )
            logger.info(f"Charged ${amount:.2f} for order {order.order_id}: {transaction_id}")
        else:
            result = PaymentResult(
                success=False,
                amount=amount,
                transaction_id=transaction_id,
                message="Payment declined",
            )
            logger.warning(f"Payment declined for order {order.order_id} (${amount:.2f}): {transaction_id}")
        return result
