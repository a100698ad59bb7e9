'''Candidate profiles and the registry of candidates of a cycle.

Each account that declares candidacy gets a :class:`CandidateProfile`; its
account is appended to the registry roster, whose order is the final
tie-breaking criterion of the election (the longest-running candidate wins).
Profiles are never removed. A candidate that delegated its votes away stays
in the registry as inactive and can never run again in the same cycle.
'''

from __future__ import annotations

import logging
from numbers import Number
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ballotfund.errors import AlreadyCandidate, NotACandidate
from ballotfund.ledger import Account, check_account
from ballotfund.persist import simple_serialization, serialize_value, \
    deserialize_value

logger = logging.getLogger(__name__)


@simple_serialization
class CandidateProfile:
    '''Standing of a single candidate in the cycle.

    :param name: Display name of the candidate.
    :param active: Whether the candidate is still running. Becomes False
        permanently when the candidate delegates its votes.
    :param votes: Number of votes received directly or through delegation.
    :param pledged_total: Value pledged to the candidate and held in escrow.
    '''
    def __init__(self,
                 name: str,
                 active: bool = True,
                 votes: int = 0,
                 pledged_total: Number = 0,
                 ):
        self.name = name
        self.active = active
        self.votes = votes
        self.pledged_total = pledged_total

    def __eq__(self, other) -> bool:
        return (
            isinstance(other, CandidateProfile)
            and self.to_dict() == other.to_dict()
        )

    def __repr__(self) -> str:
        return (
            f'<CandidateProfile({self.name},votes={self.votes},'
            f'pledged={self.pledged_total}'
            + ('' if self.active else ',retired')
            + ')>'
        )


class CandidateRegistry:
    '''Record who has declared candidacy in the cycle and in what order.'''
    def __init__(self):
        self.profiles: Dict[Account, CandidateProfile] = {}
        self.roster: List[Account] = []

    def register(self, account: Account, name: str) -> CandidateProfile:
        '''Create a profile for a new candidate.

        :param account: Account declaring candidacy.
        :param name: Display name of the candidate.
        :raises AlreadyCandidate: If the account already has a profile in
            this cycle, whether active or retired.
        :raises ValueError: If the name is empty.
        '''
        check_account(account)
        if not isinstance(name, str) or not name.strip():
            raise ValueError(f'invalid candidate name: {name!r}')
        if account in self.profiles:
            raise AlreadyCandidate(account)
        profile = CandidateProfile(name.strip())
        self.profiles[account] = profile
        self.roster.append(account)
        logger.info('%s registered as candidate %r', account, profile.name)
        return profile

    def get(self, account: Account) -> Optional[CandidateProfile]:
        return self.profiles.get(account)

    def get_active(self, account: Account) -> CandidateProfile:
        '''Return the profile of an active candidate.

        :raises NotACandidate: If the account has no profile or its
            candidacy was retired by delegation.
        '''
        profile = self.profiles.get(account)
        if profile is None:
            raise NotACandidate(account)
        elif not profile.active:
            raise NotACandidate(account, retired=True)
        return profile

    def is_active(self, account: Account) -> bool:
        profile = self.profiles.get(account)
        return profile is not None and profile.active

    def in_order(self) -> Iterator[Tuple[Account, CandidateProfile]]:
        '''Yield (account, profile) pairs in registration order.'''
        for account in self.roster:
            yield account, self.profiles[account]

    def total_pledged(self) -> Number:
        return sum(profile.pledged_total for profile in self.profiles.values())

    def __len__(self) -> int:
        return len(self.roster)

    def __contains__(self, account: Account) -> bool:
        return account in self.profiles

    def to_dict(self) -> Dict[str, Any]:
        return {
            'roster': serialize_value(self.roster),
            'profiles': [self.profiles[acc].to_dict() for acc in self.roster],
        }

    @classmethod
    def from_dict(cls, value: Dict[str, Any]) -> CandidateRegistry:
        registry = cls()
        roster = deserialize_value(value['roster'])
        for account, profdef in zip(roster, value['profiles']):
            registry.profiles[account] = deserialize_value(profdef)
            registry.roster.append(account)
        return registry
