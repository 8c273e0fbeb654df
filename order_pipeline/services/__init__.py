"""
Capabilities the workflow steps call out to.

Each lives behind a small interface so tests can swap in deterministic fakes.
"""

from order_pipeline.services.inventory import InventoryService
from order_pipeline.services.payment import (
    PaymentGateway,
    PaymentResult,
    SimulatedPaymentGateway,
)

__all__ = [
    "InventoryService",
    "PaymentGateway",
    "PaymentResult",
    "SimulatedPaymentGateway",
]
