"""The election service owning all cycle state.

:class:`Election` is the only entry point for callers. It owns the cycle
state machine, the candidate registry, the voting ledger and the funding
escrow, checks the lifecycle phase for every operation and serializes all
operations under a single lock so that no two of them can interleave.

The lock is re-entrant: a value transfer that calls back into the election
on the same thread (such as a claimant trying to claim again while being
paid) is executed as a nested operation and sees the state of the outer one,
where the claimed balance is already zero.
"""

from __future__ import annotations

import functools
import logging
import threading
from numbers import Number
from typing import Any, Dict, List, Optional

import ballotfund.evaluate
from ballotfund import events
from ballotfund.candidate import CandidateProfile, CandidateRegistry
from ballotfund.cycle import Cycle, Phase, check_threshold
from ballotfund.delegation import delegate
from ballotfund.errors import ElectionError, NotAdministrator, NoCandidates, \
    PhaseViolation, UnclaimedFunds, InvariantViolation
from ballotfund.escrow import FundingEscrow, DEFAULT_MIN_PLEDGE
from ballotfund.ledger import Account, InMemoryLedger, StepClock, \
    ValueTransfer, check_account
from ballotfund.persist import serialize_value, deserialize_value, \
    scoped_class_name
from ballotfund.vote import VotingLedger

logger = logging.getLogger(__name__)


def operation(method):
    """Run the method under the election lock, logging rejections."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            try:
                return method(self, *args, **kwargs)
            except ElectionError as e:
                logger.debug('%s%r rejected: %s', method.__name__, args, e)
                raise
    return wrapper


class Election:
    """A single-cycle election with integrated fund escrow.

    :param admin: The administrator account; the only one allowed to start
        and close cycles and to trigger the election.
    :param ledger: Value transfer primitive moving pledged value in and out
        of escrow. If not given, an empty :class:`InMemoryLedger` is used.
    :param min_pledge: Smallest value accepted as a single pledge.
    """
    def __init__(self,
                 admin: Account,
                 ledger: Optional[ValueTransfer] = None,
                 min_pledge: Number = DEFAULT_MIN_PLEDGE,
                 ):
        check_account(admin)
        self.admin = admin
        self.ledger = InMemoryLedger() if ledger is None else ledger
        self.min_pledge = min_pledge
        self.clock = StepClock()
        self.cycle = Cycle()
        self.dispatcher = events.Dispatcher()
        self._lock = threading.RLock()
        self._reset_state()

    def _reset_state(self) -> None:
        self.registry = CandidateRegistry()
        self.voting = VotingLedger(self.registry)
        self.escrow = FundingEscrow(
            self.registry, self.voting, self.ledger, self.min_pledge
        )

    def _check_admin(self, caller: Account) -> None:
        if caller != self.admin:
            raise NotAdministrator(caller)

    def _emit(self, event_class: type, **payload) -> None:
        self.dispatcher.emit(event_class(
            cycle=self.cycle.number, step=self.clock.step, **payload
        ))

    def _advance(self, target: Phase) -> None:
        self.cycle.advance(target)
        self._emit(events.PhaseChanged, phase=target)

    def subscribe(self, listener: events.Listener) -> None:
        """Deliver all future notification records to the listener."""
        self.dispatcher.subscribe(listener)

    # administrator operations

    @operation
    def start_cycle(self, admin: Account, min_votes_for_funding: int) -> None:
        """Open a new cycle.

        :param admin: The calling account.
        :param min_votes_for_funding: Votes a candidate needs to accept
            pledges and delegations during the cycle.
        :raises NotAdministrator: If the caller is not the administrator.
        :raises PhaseViolation: If a cycle is still in progress.
        """
        self._check_admin(admin)
        check_threshold(min_votes_for_funding)
        self.cycle.require(Phase.CLOSED, operation='start_cycle')
        if self.cycle.number > 0:
            self._reset_state()
        self.clock.advance()
        self.cycle.start(min_votes_for_funding)
        self._emit(events.PhaseChanged, phase=Phase.OPEN)
        logger.info('cycle %d started, %d votes needed for funding',
                    self.cycle.number, min_votes_for_funding)
        self._emit(events.CycleStarted, threshold=min_votes_for_funding)

    @operation
    def elect(self, admin: Account) -> Account:
        """Close voting and elect the winner.

        :param admin: The calling account.
        :returns: The elected candidate.
        :raises NotAdministrator: If the caller is not the administrator.
        :raises PhaseViolation: If the cycle is not open or a winner is
            already set.
        :raises NoCandidates: If nobody registered.
        """
        self._check_admin(admin)
        self.cycle.require(Phase.OPEN, operation='elect')
        if not self.registry.roster:
            raise NoCandidates()
        if self.cycle.winner is not None:
            raise PhaseViolation(self.cycle.phase, (), 'elect, winner set')
        self.clock.advance()
        try:
            self._advance(Phase.ELECTING)
        finally:
            # the cycle never stays in ELECTING, even if a listener fails
            winner = ballotfund.evaluate.select_winner(
                self.registry.roster, self.registry.profiles
            )
            self.cycle.set_winner(winner)
            self.cycle.advance(Phase.CLAIM)
        self._emit(events.PhaseChanged, phase=Phase.CLAIM)
        profile = self.registry.profiles[winner]
        logger.info('cycle %d won by %s with %d votes and %s pledged',
                    self.cycle.number, winner,
                    profile.votes, profile.pledged_total)
        self._emit(events.WinnerElected, winner=winner,
                   votes=profile.votes, pledged_total=profile.pledged_total)
        return winner

    @operation
    def close_cycle(self, admin: Account) -> None:
        """Close a cycle whose escrow has been fully paid out.

        :raises NotAdministrator: If the caller is not the administrator.
        :raises PhaseViolation: If the cycle is not in the claim phase.
        :raises UnclaimedFunds: If any pledged value remains in escrow.
        """
        self._check_admin(admin)
        self.cycle.require(Phase.CLAIM, operation='close_cycle')
        remaining = self.escrow.total()
        if remaining:
            raise UnclaimedFunds(remaining)
        self.clock.advance()
        self._advance(Phase.CLOSED)
        logger.info('cycle %d closed', self.cycle.number)
        self._emit(events.CycleClosed)

    # open phase operations

    @operation
    def register(self, caller: Account, name: str) -> None:
        """Declare the caller's candidacy under the given display name.

        :raises PhaseViolation: If the cycle is not open.
        :raises AlreadyCandidate: If the caller has been a candidate in this
            cycle already.
        """
        self.cycle.require(Phase.OPEN, operation='register')
        profile = self.registry.register(caller, name)
        self._emit(events.CandidateRegistered,
                   candidate=caller, name=profile.name)

    @operation
    def vote(self, caller: Account, candidate: Account) -> None:
        """Cast the caller's single vote for the candidate.

        :raises PhaseViolation: If the cycle is not open.
        :raises AlreadyVoted: If the caller has already voted.
        :raises NotACandidate: If the candidate is not active.
        """
        self.cycle.require(Phase.OPEN, operation='vote')
        self.voting.vote(caller, candidate)
        self._emit(events.VoteCast, voter=caller, candidate=candidate)

    @operation
    def fund(self, caller: Account, candidate: Account, value: Number) -> None:
        """Pledge the value attached to the call to the candidate.

        :raises PhaseViolation: If the cycle is not open.
        :raises ValueError: If the value is not a finite number.
        :raises NotACandidate: If the candidate is not active.
        :raises BelowThreshold: If the candidate has not reached the vote
            threshold or the value is below the minimum pledge.
        :raises NotVotedForThisCandidate: If the caller did not vote for the
            candidate.
        :raises TransferFailed: If the value cannot be collected.
        """
        self.cycle.require(Phase.OPEN, operation='fund')
        self.escrow.fund(caller, candidate, value, self.cycle.vote_threshold)
        self._emit(events.FundsPledged,
                   backer=caller, candidate=candidate, value=value)

    @operation
    def delegate(self, caller: Account, candidate: Account) -> None:
        """Hand all of the caller's votes to the candidate and retire.

        :raises PhaseViolation: If the cycle is not open.
        :raises NotACandidate: If the caller or the candidate is not active.
        :raises SelfDelegation: If the caller delegates to itself.
        :raises BelowThreshold: If the candidate has not reached the vote
            threshold.
        """
        self.cycle.require(Phase.OPEN, operation='delegate')
        result = delegate(
            self.registry, caller, candidate, self.cycle.vote_threshold
        )
        self._emit(events.DelegationPerformed, delegator=caller,
                   delegatee=candidate, votes=result.votes)

    # claim phase operations

    @operation
    def winner_claim(self, caller: Account) -> Number:
        """Pay the winner the value pledged to them.

        :returns: The value paid out.
        :raises PhaseViolation: If the cycle is not in the claim phase.
        :raises NoWinner: If no winner is set.
        :raises NotWinner: If the caller is not the winner.
        :raises NothingToClaim: If the pledges were claimed already.
        :raises TransferFailed: If the payout fails.
        """
        self.cycle.require(Phase.CLAIM, operation='winner_claim')
        value = self.escrow.winner_claim(caller, self.cycle.winner)
        self._emit(events.ClaimPaid, claimant=caller, value=value,
                   kind='winner')
        return value

    @operation
    def backer_claim(self, caller: Account) -> Number:
        """Return the caller's pledge to a candidate that did not win.

        :returns: The value paid out.
        :raises PhaseViolation: If the cycle is not in the claim phase.
        :raises NoWinner: If no winner is set.
        :raises NothingToClaim: If the caller has no pledge left to reclaim.
        :raises BackedWinner: If the caller backed the winner.
        :raises TransferFailed: If the payout fails.
        """
        self.cycle.require(Phase.CLAIM, operation='backer_claim')
        value = self.escrow.backer_claim(caller, self.cycle.winner)
        self._emit(events.ClaimPaid, claimant=caller, value=value,
                   kind='backer')
        return value

    # queries

    @property
    def phase(self) -> Phase:
        return self.cycle.phase

    @property
    def winner(self) -> Optional[Account]:
        return self.cycle.winner

    @property
    def threshold(self) -> int:
        return self.cycle.vote_threshold

    @property
    def roster(self) -> List[Account]:
        return list(self.registry.roster)

    def profile(self, account: Account) -> Optional[CandidateProfile]:
        return self.registry.get(account)

    def voter_choice(self, account: Account) -> Optional[Account]:
        return self.voting.choice_of(account)

    def pledged_by(self, account: Account) -> Number:
        return self.escrow.pledged_by(account)

    def escrow_total(self) -> Number:
        return self.escrow.total()

    def standings(self) -> List[Account]:
        """Return active candidates in the order of the winner criteria."""
        with self._lock:
            return ballotfund.evaluate.standings(
                self.registry.roster, self.registry.profiles
            )

    def audit(self) -> None:
        """Check the consistency of the election state.

        :raises InvariantViolation: If the pledged totals of candidates do
            not match the pledges of backers, a retired candidate holds votes,
            the winner is not active or the ledger escrow does not match the
            pledges.
        """
        with self._lock:
            pledged = self.escrow.total()
            held = self.registry.total_pledged()
            if pledged != held:
                raise InvariantViolation(
                    f'backers pledged {pledged} but candidates hold {held}'
                )
            for cand, profile in self.registry.in_order():
                if not profile.active and profile.votes:
                    raise InvariantViolation(
                        f'retired candidate {cand} holds {profile.votes} votes'
                    )
                attached = sum(
                    self.escrow.pledged_by(backer)
                    for backer in self.escrow.backers_of(cand)
                )
                if attached != profile.pledged_total:
                    raise InvariantViolation(
                        f'{cand} holds {profile.pledged_total}'
                        f' but its backers pledged {attached}'
                    )
            winner = self.cycle.winner
            if winner is not None and not self.registry.is_active(winner):
                raise InvariantViolation(f'winner {winner} is not active')
            escrow = getattr(self.ledger, 'escrow', None)
            if escrow is not None and escrow != pledged:
                raise InvariantViolation(
                    f'ledger escrow {escrow} does not match pledges {pledged}'
                )

    # persistence

    def to_dict(self) -> Dict[str, Any]:
        """Export the election state (without the ledger) as a dictionary."""
        with self._lock:
            return {
                'class': scoped_class_name(self),
                'admin': serialize_value(self.admin),
                'min_pledge': serialize_value(self.min_pledge),
                'step': self.clock.step,
                'cycle': self.cycle.to_dict(),
                'registry': self.registry.to_dict(),
                'votes': self.voting.to_dict(),
                'pledges': self.escrow.to_dict(),
            }

    @classmethod
    def from_dict(cls,
                  value: Dict[str, Any],
                  ledger: Optional[ValueTransfer] = None,
                  ) -> Election:
        """Restore an election exported by :meth:`to_dict`.

        :param value: The exported state.
        :param ledger: Ledger holding the escrowed value of the restored
            election.
        """
        election = cls(
            deserialize_value(value['admin']),
            ledger=ledger,
            min_pledge=deserialize_value(value['min_pledge']),
        )
        election.clock = StepClock(value['step'])
        election.cycle = deserialize_value(value['cycle'])
        election.registry = CandidateRegistry.from_dict(value['registry'])
        election.voting = VotingLedger(election.registry)
        election.voting.restore(value['votes'])
        election.escrow = FundingEscrow(
            election.registry, election.voting, election.ledger,
            election.min_pledge,
        )
        election.escrow.restore(value['pledges'])
        return election

    def __repr__(self) -> str:
        return (
            f'<Election(cycle={self.cycle.number},phase={self.cycle.phase},'
            f'candidates={len(self.registry)})>'
        )
