'''Determine the winner of a cycle.

The winner is the active candidate with the most votes. Ties in votes are
broken by the value pledged to the candidates; candidates tied in both
are decided in favour of the one that registered first (who has been running
the longest).

The evaluation is a single scan of the roster in registration order where
a candidate replaces the best one found so far only if it is strictly better,
which resolves the final tie-break without any additional bookkeeping.
'''

import logging
from numbers import Number
from typing import Dict, Iterable, List, NamedTuple, Optional

from ballotfund.candidate import CandidateProfile
from ballotfund.errors import NoCandidates
from ballotfund.ledger import Account

logger = logging.getLogger(__name__)


class BestSoFar(NamedTuple):
    '''The leading candidate found during the scan.'''
    candidate: Account
    votes: int
    funding: Number

    def beaten_by(self, profile: CandidateProfile) -> bool:
        '''Return True if the profile strictly beats this candidate.'''
        return (
            profile.votes > self.votes
            or (
                profile.votes == self.votes
                and profile.pledged_total > self.funding
            )
        )


def select_winner(roster: Iterable[Account],
                  profiles: Dict[Account, CandidateProfile],
                  ) -> Account:
    '''Select the winner among the active candidates.

    :param roster: Candidates in registration order.
    :param profiles: Profiles of the candidates.
    :returns: The winning candidate.
    :raises NoCandidates: If there is no active candidate.
    '''
    best: Optional[BestSoFar] = None
    for cand in roster:
        profile = profiles[cand]
        if not profile.active:
            continue
        if best is None or best.beaten_by(profile):
            best = BestSoFar(cand, profile.votes, profile.pledged_total)
            logger.debug('%s leads with %d votes and %s pledged',
                         cand, best.votes, best.funding)
    if best is None:
        raise NoCandidates()
    logger.info('%s is the best candidate, electing', best.candidate)
    return best.candidate


def standings(roster: Iterable[Account],
              profiles: Dict[Account, CandidateProfile],
              ) -> List[Account]:
    '''Return the active candidates ordered by the winner criteria.

    The first candidate of the list is the one :func:`select_winner` would
    select.
    '''
    order = {cand: i for i, cand in enumerate(roster)}
    return list(sorted(
        (cand for cand in order if profiles[cand].active),
        key=lambda cand: (
            -profiles[cand].votes,
            -profiles[cand].pledged_total,
            order[cand],
        )
    ))
