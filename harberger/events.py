"""
events.py - Observable Settlement Events

Every committed settlement and foreclosure appends one immutable event to the
registry's EventLog. Events are appended only after an operation has fully
committed, so observers never see an operation that was later rolled back.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Callable, List, Sequence, Type, TypeVar


@dataclass(frozen=True, slots=True)
class AssetMinted:
    asset_id: str
    minter: str
    owner: str
    price: int
    timestamp: int


@dataclass(frozen=True, slots=True)
class PriceModified:
    asset_id: str
    owner: str
    old_price: int
    new_price: int
    tax_paid: int
    timestamp: int


@dataclass(frozen=True, slots=True)
class AssetPurchased:
    asset_id: str
    seller: str
    buyer: str
    price: int
    tax_paid: int
    refund: int
    timestamp: int


@dataclass(frozen=True, slots=True)
class TaxPaid:
    asset_id: str
    payer: str
    amount: int
    refund: int
    timestamp: int


@dataclass(frozen=True, slots=True)
class AssetDefaulted:
    """The asset was repossessed by the treasury; price stays frozen."""
    asset_id: str
    former_holder: str
    treasury: str
    price: int
    last_settlement: int
    timestamp: int


HarbergerEvent = (AssetMinted, PriceModified, AssetPurchased, TaxPaid, AssetDefaulted)

E = TypeVar("E")

logger = logging.getLogger(__name__)

EventObserver = Callable[[object], None]


class EventLog:
    """
    Append-only, ordered record of settlement events with observer callbacks.

    append() stores an event; publish() hands events to the observers. The
    registry appends while it holds its guard and publishes after releasing
    it, so an observer may call back into the registry. An observer that
    raises is logged and skipped: the operation it watched has already
    committed.

    Example:
        log = EventLog()
        log.subscribe(lambda event: print(event))
        log.record(AssetMinted("PARCEL-7", "alice", "alice", ONE_UNIT, now))
    """

    def __init__(self):
        self._events: List[object] = []
        self._observers: List[EventObserver] = []

    def subscribe(self, observer: EventObserver) -> None:
        self._observers.append(observer)

    def unsubscribe(self, observer: EventObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def append(self, event: object) -> None:
        if not isinstance(event, HarbergerEvent):
            raise TypeError(f"not a settlement event: {type(event).__name__}")
        self._events.append(event)

    def publish(self, events: Sequence[object]) -> None:
        for event in events:
            for observer in list(self._observers):
                try:
                    observer(event)
                except Exception:
                    logger.exception(
                        "observer %r failed on %s for %s",
                        observer, type(event).__name__, event.asset_id,
                    )

    def record(self, event: object) -> None:
        """Append and publish in one step."""
        self.append(event)
        self.publish([event])

    def since(self, mark: int) -> List[object]:
        """Events appended after the log held `mark` entries."""
        return self._events[mark:]

    def for_asset(self, asset_id: str) -> List[object]:
        return [e for e in self._events if e.asset_id == asset_id]

    def of_type(self, event_type: Type[E]) -> List[E]:
        return [e for e in self._events if isinstance(e, event_type)]

    @property
    def events(self) -> List[object]:
        return list(self._events)

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self):
        return iter(list(self._events))
