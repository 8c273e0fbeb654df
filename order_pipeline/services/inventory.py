"""
Inventory capability used by the UpdateInventory workflow step.

Items with a tracked stock level are decremented; items without one are
recorded in the adjustment log only.
"""

import logging
import threading
from collections import Counter
from typing import Optional

from shared.errors import InsufficientStockError
from shared.models import InventoryUpdate, Order

logger = logging.getLogger("inventory")


class InventoryService:
    """Thread-safe stock ledger."""

    def __init__(self, stock: Optional[dict[str, int]] = None):
        """
        Args:
            stock: Initial stock level per item id. Items not listed are untracked.
        """
        self._stock: dict[str, int] = dict(stock or {})
        self._lock = threading.Lock()

    def adjust(self, order: Order) -> list[InventoryUpdate]:
        """
        Reserve stock for every line of an order.

        All lines are checked before any stock moves, so a rejected order
        leaves the ledger untouched.

        Returns:
            One InventoryUpdate per order line.

        Raises:
            InsufficientStockError: If a tracked item cannot cover the order
        """
        wanted = Counter()
        for item in order.items:
            wanted[item.item_id] += item.quantity

        with self._lock:
            for item_id, quantity in wanted.items():
                available = self._stock.get(item_id)
                if available is not None and available < quantity:
                    raise InsufficientStockError(item_id, quantity, available)

            updates = []
            for item in order.items:
                if item.item_id in self._stock:
                    self._stock[item.item_id] -= item.quantity
                else:
                    logger.info(f"Item {item.item_id!r} is not stock-tracked; logging adjustment only")
                updates.append(InventoryUpdate(
                    item_id=item.item_id,
                    item_name=item.name,
                    quantity_reduced=item.quantity,
                ))

        logger.info(f"Adjusted inventory for order {order.order_id}: {len(updates)} lines")
        return updates

    def available(self, item_id: str) -> Optional[int]:
        """Current stock level, or None for untracked items."""
        with self._lock:
            return self._stock.get(item_id)

    def restock(self, item_id: str, quantity: int) -> int:
        """Add stock (starting tracking if needed) and return the new level."""
        if quantity < 0:
            raise ValueError("quantity must not be negative")
        with self._lock:
            self._stock[item_id] = self._stock.get(item_id, 0) + quantity
            return self._stock[item_id]
