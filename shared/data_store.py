"""
In-process order store.

Stands in for the key-value table the pipeline writes orders to. Records are
keyed on (order_id, timestamp) and reached via keyed upserts and a full scan.

Design decisions:
- Lazily seeded from an optional JSON file, and able to snapshot back to it
- Read-modify-write cycles hold a per-key lock, never a table-wide one
- Submission upserts are idempotent: redelivering a message never duplicates
  a record or regresses one the workflow has already advanced
- Status updates are checked against the forward-only transition table
- Readers get copies so stored records are only changed through the store
"""

import json
import logging
import threading
from pathlib import Path
from typing import Any, Optional

from shared.errors import StatusTransitionError
from shared.locks import KeyedLocks
from shared.models import Order, OrderStatus, can_transition

logger = logging.getLogger("data_store")

OrderKey = tuple[str, str]


class OrderStore:
    """
    Keyed order table.

    Example:
        store = OrderStore()
        record, created = store.upsert_submission(order)
        store.update(order.order_id, order.timestamp, status=OrderStatus.VALIDATED)
    """

    def __init__(self, data_file: Optional[Path] = None):
        """
        Initialize the store.

        Args:
            data_file: Optional JSON file holding a list of order records.
                       Loaded on first access; also the default snapshot target.
        """
        self.data_file = Path(data_file) if data_file else None

        # Loaded lazily
        self._orders: Optional[dict[OrderKey, Order]] = None
        self._table_lock = threading.Lock()
        self._key_locks = KeyedLocks()

    # =========================================================================
    # Data Loading (lazy)
    # =========================================================================

    def _load_json(self) -> list[dict]:
        if self.data_file is None or not self.data_file.exists():
            return []
        with open(self.data_file, "r") as f:
            return json.load(f)

    def _ensure_loaded(self) -> dict[OrderKey, Order]:
        with self._table_lock:
            if self._orders is None:
                records = [Order.model_validate(o) for o in self._load_json()]
                self._orders = {r.key: r for r in records}
                if records:
                    logger.info(f"Loaded {len(records)} orders from {self.data_file}")
            return self._orders

    def _read(self, key: OrderKey) -> Optional[Order]:
        orders = self._ensure_loaded()
        with self._table_lock:
            return orders.get(key)

    def _write(self, record: Order) -> None:
        orders = self._ensure_loaded()
        with self._table_lock:
            orders[record.key] = record

    # =========================================================================
    # Writes
    # =========================================================================

    def upsert_submission(self, order: Order) -> tuple[Order, bool]:
        """
        Persist a freshly consumed order unless its key already exists.

        Returns:
            (record, created). When the key exists the stored record is
            returned untouched, so redelivery of the same message is a no-op.
        """
        with self._key_locks.hold(order.key):
            existing = self._read(order.key)
            if existing is not None:
                logger.info(
                    f"Order {order.order_id} already stored (status={existing.status}), skipping insert"
                )
                return existing.model_copy(deep=True), False

            record = order.model_copy(deep=True)
            self._write(record)
            logger.info(f"Stored order {order.order_id} @ {order.timestamp}")
            return record.model_copy(deep=True), True

    def update(self, order_id: str, timestamp: str, **changes: Any) -> Order:
        """
        Merge `changes` into the record at (order_id, timestamp).

        Behaves as an upsert: a missing record is created from the key.
        Field names are the Python (snake_case) names.

        Raises:
            StatusTransitionError: If `status` would move backwards or sideways.
        """
        key = (order_id, timestamp)
        if "status" in changes and isinstance(changes["status"], OrderStatus):
            changes["status"] = changes["status"].value

        with self._key_locks.hold(key):
            current = self._read(key)
            if current is None:
                current = Order(order_id=order_id, timestamp=timestamp)

            new_status = changes.get("status")
            if new_status is not None and not can_transition(current.status, new_status):
                raise StatusTransitionError(order_id, current.status, new_status)

            updated = current.model_copy(update=changes, deep=True)
            self._write(updated)
            logger.debug(f"Updated order {order_id}: {sorted(changes)}")
            return updated.model_copy(deep=True)

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, order_id: str, timestamp: str) -> Optional[Order]:
        """Get one record by its composite key."""
        record = self._read((order_id, timestamp))
        return record.model_copy(deep=True) if record else None

    def get_by_order_id(self, order_id: str) -> list[Order]:
        """All records sharing an order id (one per submission timestamp)."""
        return [o for o in self.scan() if o.order_id == order_id]

    def scan(self) -> list[Order]:
        """Every stored record, oldest submission first. Unpaginated."""
        orders = self._ensure_loaded()
        with self._table_lock:
            records = [o.model_copy(deep=True) for o in orders.values()]
        return sorted(records, key=lambda o: o.timestamp)

    def count(self) -> int:
        orders = self._ensure_loaded()
        with self._table_lock:
            return len(orders)

    # =========================================================================
    # Utility Methods
    # =========================================================================

    def snapshot(self, path: Optional[Path] = None) -> Path:
        """
        Write every record to a JSON file.

        Defaults to the file the store was seeded from.
        """
        target = Path(path) if path else self.data_file
        if target is None:
            raise ValueError("No snapshot path given and the store has no data_file")
        records = [o.to_record() for o in self.scan()]
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "w") as f:
            json.dump(records, f, indent=2)
        logger.info(f"Wrote {len(records)} orders to {target}")
        return target

    def reload(self) -> None:
        """Drop in-memory state; the next access re-reads data_file."""
        with self._table_lock:
            self._orders = None
