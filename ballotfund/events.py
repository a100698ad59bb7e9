"""Notification records emitted by election operations.

Every successful operation produces one of the records below and hands it to
all listeners subscribed to the election. Listeners are plain callables;
they are called synchronously while the election still holds its lock, so they
observe the state right after the operation (and during an election, the
transitional ELECTING phase).
"""

from __future__ import annotations

import dataclasses
import logging
from numbers import Number
from typing import Any, Callable, List

from ballotfund.cycle import Phase
from ballotfund.ledger import Account

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class Event:
    """Base notification record."""
    cycle: int
    step: int

    def to_dict(self) -> dict:
        out = {'event': type(self).__name__}
        for field in dataclasses.fields(self):
            value = getattr(self, field.name)
            out[field.name] = str(value) if isinstance(value, Phase) else value
        return out


@dataclasses.dataclass(frozen=True)
class CycleStarted(Event):
    threshold: int


@dataclasses.dataclass(frozen=True)
class CandidateRegistered(Event):
    candidate: Account
    name: str


@dataclasses.dataclass(frozen=True)
class VoteCast(Event):
    voter: Account
    candidate: Account


@dataclasses.dataclass(frozen=True)
class FundsPledged(Event):
    backer: Account
    candidate: Account
    value: Number


@dataclasses.dataclass(frozen=True)
class DelegationPerformed(Event):
    delegator: Account
    delegatee: Account
    votes: int


@dataclasses.dataclass(frozen=True)
class PhaseChanged(Event):
    phase: Phase


@dataclasses.dataclass(frozen=True)
class WinnerElected(Event):
    winner: Account
    votes: int
    pledged_total: Number


@dataclasses.dataclass(frozen=True)
class ClaimPaid(Event):
    claimant: Account
    value: Number
    kind: str
    """Either ``'winner'`` or ``'backer'``."""


@dataclasses.dataclass(frozen=True)
class CycleClosed(Event):
    pass


Listener = Callable[[Event], Any]


class Dispatcher:
    """Deliver events to subscribed listeners in subscription order."""
    def __init__(self):
        self.listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> None:
        self.listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        self.listeners.remove(listener)

    def emit(self, event: Event) -> None:
        logger.debug('emitting %s', event)
        for listener in self.listeners:
            listener(event)
