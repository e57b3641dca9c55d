"""
Daily order-number sequence.

Numbers look like ORD_20240115_001: the UTC date plus a counter that
restarts at 1 every UTC day. The counter lives in process memory and is
seeded from the store on first use and on every date rollover. Several
intake processes may share a store, so the caller treats a unique
violation on insert as "someone else took this number" and calls resync().
"""

import logging
import threading
from datetime import date
from typing import Callable

from fulfillment_core.persistence.repo import FulfillmentRepository, format_order_number
from fulfillment_core.timing import utcnow

logger = logging.getLogger(__name__)


def _utc_today() -> date:
    return utcnow().date()


class OrderNumberSequence:
    """Thread-safe generator of daily order numbers."""

    def __init__(self, today: Callable[[], date] = _utc_today):
        self._today = today
        self._lock = threading.Lock()
        self._day: date | None = None
        self._counter = 0

    def next_number(self, repo: FulfillmentRepository) -> str:
        """Reserve the next number for today."""
        with self._lock:
            today = self._today()
            if self._day != today:
                self._counter = repo.count_orders_for_day(today)
                if self._day is not None:
                    logger.info(f"Order sequence rolled over to {today:%Y-%m-%d}", extra={"seed": self._counter})
                self._day = today
            self._counter += 1
            return format_order_number(today, self._counter)

    def resync(self, repo: FulfillmentRepository) -> None:
        """Move the counter past the highest number already stored today."""
        with self._lock:
            today = self._today()
            highest = repo.max_sequence_for_day(today)
            if self._day != today or highest > self._counter:
                self._counter = highest
            self._day = today
            logger.warning(
                "Order number conflict, resynced sequence from store",
                extra={"day": f"{today:%Y%m%d}", "seed": self._counter},
            )

    def release(self, number: str) -> bool:
        """
        Give back a reserved number whose order was never stored.

        Only the most recently issued number can be returned; once a later
        number is out the gap stays.
        """
        with self._lock:
            if self._day is None or self._counter == 0:
                return False
            if format_order_number(self._day, self._counter) != number:
                return False
            self._counter -= 1
            return True

    def reset(self) -> None:
        with self._lock:
            self._day = None
            self._counter = 0
