'''Delegation of a candidate's votes to another candidate.

A candidate can withdraw from the race by handing all of its votes over to
another active candidate that has reached the vote threshold. The delegating
candidate is retired for the rest of the cycle and cannot delegate, receive
votes or receive pledges again.

Only votes move. The value pledged to the delegating candidate stays attached
to it in the escrow and its backers reclaim it after the election like the
backers of any other losing candidate.
'''

import logging
from typing import NamedTuple

from ballotfund.candidate import CandidateRegistry
from ballotfund.errors import BelowThreshold, SelfDelegation
from ballotfund.ledger import Account

logger = logging.getLogger(__name__)


class Delegation(NamedTuple):
    '''Result of a delegation.'''
    delegator: Account
    delegatee: Account
    votes: int
    '''Number of votes moved.'''


def delegate(registry: CandidateRegistry,
             delegator: Account,
             delegatee: Account,
             vote_threshold: int,
             ) -> Delegation:
    '''Merge the delegator's votes into the delegatee and retire it.

    :param registry: Registry of the cycle's candidates.
    :param delegator: Candidate giving up its votes.
    :param delegatee: Candidate receiving the votes.
    :param vote_threshold: Votes the delegatee needs to accept delegations.
    :raises NotACandidate: If either of the candidates is not active.
    :raises SelfDelegation: If both are the same candidate.
    :raises BelowThreshold: If the delegatee has too few votes.
    '''
    source = registry.get_active(delegator)
    if delegator == delegatee:
        raise SelfDelegation(delegator)
    target = registry.get_active(delegatee)
    if target.votes < vote_threshold:
        raise BelowThreshold(target.votes, vote_threshold, 'votes')
    moved = source.votes
    target.votes += moved
    source.votes = 0
    source.active = False
    logger.info('%s delegated %d votes to %s, now at %d votes',
                delegator, moved, delegatee, target.votes)
    return Delegation(delegator, delegatee, moved)
