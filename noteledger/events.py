"""
Externally observable ledger events. They carry only public data: commitments,
nullifier hashes, leaf indices and opaque encrypted payloads.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator

from noteledger.crypto import Field

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NoteCommitted:
    commitment: Field
    index: int
    encrypted_payload: bytes


@dataclass(frozen=True)
class NullifierSpent:
    nullifier: Field


@dataclass(frozen=True)
class Deposit:
    commitment: Field


@dataclass(frozen=True)
class Withdrawal:
    nullifier: Field


@dataclass(frozen=True)
class CollateralLocked:
    commitment: Field


@dataclass(frozen=True)
class CollateralReleased:
    nullifier: Field


Event = (
    NoteCommitted
    | NullifierSpent
    | Deposit
    | Withdrawal
    | CollateralLocked
    | CollateralReleased
)

Listener = Callable[[Event], None]


class EventLog:
    """
    Append-only log of committed events. Listeners are called, in
    subscription order, for every event once the operation that produced it
    has been applied.
    """

    def __init__(self):
        self._events: list[Event] = []
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener):
        self._listeners.append(listener)

    def publish(self, events: Iterable[Event]):
        for event in events:
            self._events.append(event)
            for listener in self._listeners:
                # the operation is already applied, listener failures are
                # logged and not raised to the submitter
                try:
                    listener(event)
                except Exception:
                    logger.exception("event listener failed on %s", event)

    def __len__(self):
        return len(self._events)

    def __iter__(self) -> Iterator[Event]:
        return iter(list(self._events))

    def __getitem__(self, index):
        return self._events[index]
