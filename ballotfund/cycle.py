'''Lifecycle of an election cycle.

A cycle moves strictly forward through four phases::

    CLOSED -> OPEN -> ELECTING -> CLAIM -> CLOSED (next cycle)

All transitions are made by the administrator. Every other operation is
valid in exactly one phase (OPEN for registration, voting, funding and
delegation; CLAIM for the claims) and is rejected with
:class:`ballotfund.errors.PhaseViolation` in any other.
'''

from __future__ import annotations

import enum
import logging
from typing import Any, Optional

from ballotfund.errors import PhaseViolation
from ballotfund.ledger import Account
from ballotfund.persist import simple_serialization

logger = logging.getLogger(__name__)


class Phase(enum.Enum):
    '''Lifecycle phase of an election cycle.'''
    CLOSED = 'closed'
    OPEN = 'open'
    ELECTING = 'electing'
    CLAIM = 'claim'

    def __str__(self) -> str:
        return self.name


NEXT_PHASE = {
    Phase.CLOSED: Phase.OPEN,
    Phase.OPEN: Phase.ELECTING,
    Phase.ELECTING: Phase.CLAIM,
    Phase.CLAIM: Phase.CLOSED,
}


@simple_serialization
class Cycle:
    '''State of the current election cycle.

    :param number: Ordinal number of the cycle; zero before the first one
        has been started.
    :param phase: Current lifecycle phase.
    :param vote_threshold: Minimum number of votes a candidate needs to
        receive pledges or delegations.
    :param winner: The elected candidate, set on entering the CLAIM phase.
    '''
    def __init__(self,
                 number: int = 0,
                 phase: Phase = Phase.CLOSED,
                 vote_threshold: int = 0,
                 winner: Optional[Account] = None,
                 ):
        self.number = number
        self.phase = phase
        self.vote_threshold = vote_threshold
        self.winner = winner

    def require(self, *phases: Phase, operation: Optional[str] = None) -> None:
        '''Check that the cycle is in one of the given phases.

        :raises PhaseViolation: If it is not.
        '''
        if self.phase not in phases:
            raise PhaseViolation(self.phase, phases, operation)

    def advance(self, target: Phase) -> None:
        '''Move to the target phase, which must directly follow the current.

        :raises PhaseViolation: If the target does not follow the current
            phase.
        '''
        if NEXT_PHASE[self.phase] is not target:
            raise PhaseViolation(
                self.phase,
                [phase for phase, nxt in NEXT_PHASE.items() if nxt is target],
                f'transition to {target}',
            )
        logger.debug('cycle %d: %s -> %s', self.number, self.phase, target)
        self.phase = target

    def start(self, vote_threshold: int) -> None:
        '''Open a new cycle with the given vote threshold.'''
        check_threshold(vote_threshold)
        self.require(Phase.CLOSED, operation='start cycle')
        self.number += 1
        self.vote_threshold = vote_threshold
        self.winner = None
        self.advance(Phase.OPEN)

    def set_winner(self, winner: Account) -> None:
        if self.winner is not None:
            raise PhaseViolation(self.phase, (), 'winner already set, elect')
        self.require(Phase.ELECTING, operation='set winner')
        self.winner = winner

    def __repr__(self) -> str:
        return f'<Cycle({self.number},{self.phase})>'


def check_threshold(value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(
            f'invalid vote threshold: {value!r}, must be a non-negative integer'
        )
