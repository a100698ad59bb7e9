'''Funding escrow: pledges to candidates and their payout after the election.

While the cycle is open, a voter can pledge value to the candidate they voted
for, provided the candidate has gathered enough votes. The value is held in
escrow, recorded both on the backer's :class:`FundingRecord` and in the
candidate's pledged total, so that the two sides always sum to the same
amount.

Once the winner is known, the escrow pays out:

-   The winner claims everything pledged to them. The pledges of their
    backers are consumed by this claim.
-   Backers of any other candidate (including candidates retired by
    delegation, whose pledges stay with them) reclaim their own pledge.

Each payout zeroes the claimed balances *before* the value is transferred so
that a reentrant claim sees nothing left to claim. If the transfer fails, the
zeroed balances are restored and the failure is raised to the claimant.
'''

from __future__ import annotations

import logging
import math
from decimal import Decimal
from numbers import Number, Real
from typing import Any, Callable, Dict, List, Optional

from ballotfund.candidate import CandidateRegistry
from ballotfund.errors import BelowThreshold, NotVotedForThisCandidate, \
    NoWinner, NotWinner, NothingToClaim, BackedWinner
from ballotfund.ledger import Account, ValueTransfer
from ballotfund.persist import simple_serialization, serialize_value, \
    deserialize_value
from ballotfund.vote import VotingLedger

logger = logging.getLogger(__name__)

DEFAULT_MIN_PLEDGE = 1


@simple_serialization
class FundingRecord:
    '''Value pledged by a single backer.

    :param candidate: The candidate the pledge is attached to; always the
        candidate the backer voted for.
    :param amount_pledged: Value pledged and not yet paid out.
    '''
    def __init__(self, candidate: Account, amount_pledged: Number = 0):
        self.candidate = candidate
        self.amount_pledged = amount_pledged

    def __repr__(self) -> str:
        return f'<FundingRecord({self.candidate},{self.amount_pledged})>'


def check_value(value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, Number):
        raise ValueError(f'invalid value: {value!r}, must be a number')
    if isinstance(value, Decimal):
        finite = value.is_finite()
    elif isinstance(value, Real):
        finite = math.isfinite(value)
    else:
        finite = False
    if not finite:
        raise ValueError(f'invalid value: {value!r}, must be a finite real')


class FundingEscrow:
    '''Hold pledged value and pay it out after the election.

    :param registry: Registry of the cycle's candidates.
    :param voting: Voting ledger of the cycle, used to check that backers
        fund the candidate they voted for.
    :param transfer: Value transfer primitive of the host ledger.
    :param min_pledge: Smallest value accepted as a single pledge.
    '''
    def __init__(self,
                 registry: CandidateRegistry,
                 voting: VotingLedger,
                 transfer: ValueTransfer,
                 min_pledge: Number = DEFAULT_MIN_PLEDGE,
                 ):
        check_value(min_pledge)
        if min_pledge <= 0:
            raise ValueError(f'invalid minimum pledge: {min_pledge}, must be >0')
        self.registry = registry
        self.voting = voting
        self.transfer = transfer
        self.min_pledge = min_pledge
        self.records: Dict[Account, FundingRecord] = {}

    def fund(self,
             backer: Account,
             candidate: Account,
             value: Number,
             vote_threshold: int,
             ) -> FundingRecord:
        '''Pledge value to a candidate the backer voted for.

        :param backer: Account pledging the value.
        :param candidate: Candidate to receive the pledge.
        :param value: Value attached to the call; collected from the backer's
            wallet.
        :param vote_threshold: Votes the candidate needs to accept pledges.
        :raises NotACandidate: If the candidate is not active.
        :raises BelowThreshold: If the candidate has too few votes or the
            value is below the minimum pledge.
        :raises NotVotedForThisCandidate: If the backer voted for somebody
            else or did not vote at all.
        :raises TransferFailed: If the value cannot be collected.
        '''
        check_value(value)
        profile = self.registry.get_active(candidate)
        if profile.votes < vote_threshold:
            raise BelowThreshold(profile.votes, vote_threshold, 'votes')
        if value < self.min_pledge:
            raise BelowThreshold(value, self.min_pledge, 'pledge')
        chosen = self.voting.choice_of(backer)
        if chosen != candidate:
            raise NotVotedForThisCandidate(backer, candidate, chosen)
        self.transfer.collect(backer, value)
        record = self.records.get(backer)
        if record is None:
            record = self.records[backer] = FundingRecord(candidate)
        record.amount_pledged += value
        profile.pledged_total += value
        logger.info('%s pledged %s to %s, candidate now holds %s',
                    backer, value, candidate, profile.pledged_total)
        return record

    def winner_claim(self,
                     claimant: Account,
                     winner: Optional[Account],
                     ) -> Number:
        '''Pay the winner everything pledged to them.

        The pledges of the winner's backers are consumed by the claim.

        :returns: The value paid out.
        :raises NoWinner: If there is no winner.
        :raises NotWinner: If the claimant is not the winner.
        :raises NothingToClaim: If there is nothing pledged to the winner
            (anymore).
        :raises TransferFailed: If the payout fails; nothing is consumed.
        '''
        if winner is None:
            raise NoWinner()
        if claimant != winner:
            raise NotWinner(claimant, winner)
        profile = self.registry.profiles[winner]
        value = profile.pledged_total
        if not value:
            raise NothingToClaim(claimant, 'no unclaimed pledges to the winner')
        backing = [
            (record, record.amount_pledged)
            for record in self.records.values()
            if record.candidate == winner and record.amount_pledged
        ]

        profile.pledged_total = 0
        for record, _ in backing:
            record.amount_pledged = 0

        def restore():
            profile.pledged_total = value
            for record, amount in backing:
                record.amount_pledged = amount

        self._pay_out(claimant, value, restore)
        logger.info('winner %s claimed %s pledged by %d backers',
                    claimant, value, len(backing))
        return value

    def backer_claim(self,
                     claimant: Account,
                     winner: Optional[Account],
                     ) -> Number:
        '''Return a pledge to the backer of a candidate that did not win.

        :returns: The value paid out.
        :raises NoWinner: If there is no winner.
        :raises NothingToClaim: If the claimant has no unclaimed pledge.
        :raises BackedWinner: If the claimant backed the winner.
        :raises TransferFailed: If the payout fails; the pledge is kept.
        '''
        if winner is None:
            raise NoWinner()
        record = self.records.get(claimant)
        if record is None:
            raise NothingToClaim(claimant, 'no pledge made')
        if record.candidate == winner:
            raise BackedWinner(claimant, winner)
        value = record.amount_pledged
        if not value:
            raise NothingToClaim(claimant, 'pledge already reclaimed')
        profile = self.registry.profiles[record.candidate]

        record.amount_pledged = 0
        profile.pledged_total -= value

        def restore():
            record.amount_pledged = value
            profile.pledged_total += value

        self._pay_out(claimant, value, restore)
        logger.info('%s reclaimed %s pledged to %s',
                    claimant, value, record.candidate)
        return value

    def _pay_out(self,
                 claimant: Account,
                 value: Number,
                 restore: Callable[[], None],
                 ) -> None:
        try:
            self.transfer.send(claimant, value)
        except Exception:
            restore()
            logger.warning('payout of %s to %s failed, balances restored',
                           value, claimant)
            raise

    def pledged_by(self, backer: Account) -> Number:
        record = self.records.get(backer)
        return 0 if record is None else record.amount_pledged

    def backers_of(self, candidate: Account) -> List[Account]:
        return [
            backer for backer, record in self.records.items()
            if record.candidate == candidate
        ]

    def total(self) -> Number:
        '''Return the value currently held in escrow.'''
        return sum(record.amount_pledged for record in self.records.values())

    def to_dict(self) -> Dict[str, Any]:
        return serialize_value(self.records)

    def restore(self, value: Dict[str, Any]) -> None:
        '''Load records exported by :meth:`to_dict` into an empty escrow.'''
        if self.records:
            raise ValueError('cannot restore into an escrow holding pledges')
        self.records.update(deserialize_value(value))
