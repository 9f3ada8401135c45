"""
guards.py - Guard Layer

Two checks run before sensitive settlement operations:

1. ReentrancyGuard - one global exclusion section around every registry call
   (operations and queries alike). Other threads wait their turn; a call
   arriving on the thread that already holds the section (for example from a
   value-rail recipient hook) is refused with ReentrancyViolation instead of
   observing half-applied state.

2. require_margin() - modify and purchase must wait margin_duration seconds
   after the asset's last settlement.
"""

from __future__ import annotations
from contextlib import contextmanager
from typing import Iterator, Optional
import logging
import threading

from .core import MarginNotMet, ReentrancyViolation
from .store import AssetRecord

logger = logging.getLogger(__name__)


class ReentrancyGuard:
    """
    Global, thread-aware mutual exclusion for settlement operations.

    Example:
        guard = ReentrancyGuard()
        with guard.section("purchase", "PARCEL-7"):
            ...  # value transfers and state writes
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._owner: Optional[int] = None
        self._operation: Optional[str] = None

    @property
    def entered(self) -> bool:
        return self._owner is not None

    @property
    def active_operation(self) -> Optional[str]:
        return self._operation

    @contextmanager
    def section(self, operation: str, asset_id: Optional[str] = None) -> Iterator[None]:
        """
        Hold the exclusion section for the duration of the with-block.

        Raises:
            ReentrancyViolation: if the current thread already holds the section
        """
        label = f"{operation}:{asset_id}" if asset_id else operation
        me = threading.get_ident()
        if self._owner == me:
            raise ReentrancyViolation(
                f"{label} re-entered while {self._operation} is in flight"
            )
        self._lock.acquire()
        self._owner = me
        self._operation = label
        logger.debug("guard entered: %s", label)
        try:
            yield
        finally:
            self._owner = None
            self._operation = None
            self._lock.release()
            logger.debug("guard released: %s", label)


def margin_deadline(record: AssetRecord, margin_duration: int) -> int:
    """Earliest time a margin-guarded operation may run."""
    return record.last_settlement + margin_duration


def require_margin(record: AssetRecord, now: int, margin_duration: int) -> None:
    """
    Refuse margin-guarded operations until last_settlement + margin_duration.

    Raises:
        MarginNotMet: if now is strictly before the deadline
    """
    deadline = margin_deadline(record, margin_duration)
    if now < deadline:
        raise MarginNotMet(
            f"operation allowed from {deadline}, now is {now} "
            f"({deadline - now}s remaining)"
        )
