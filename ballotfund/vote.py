'''Voter records and the voting ledger.

Every voter gets exactly one simple vote per cycle, cast for a single active
candidate. The choice is final; it is not affected even when the chosen
candidate later delegates its votes to another candidate (the delegated
weight moves on the candidate side only).
'''

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from ballotfund.candidate import CandidateRegistry
from ballotfund.errors import AlreadyVoted
from ballotfund.ledger import Account, check_account
from ballotfund.persist import simple_serialization, serialize_value, \
    deserialize_value

logger = logging.getLogger(__name__)


@simple_serialization
class VoterRecord:
    '''The vote of a single voter.

    :param chosen_candidate: The candidate the voter voted for.
    '''
    def __init__(self, chosen_candidate: Account):
        self._chosen_candidate = chosen_candidate

    @property
    def chosen_candidate(self) -> Account:
        return self._chosen_candidate

    def __repr__(self) -> str:
        return f'<VoterRecord({self.chosen_candidate})>'


class VotingLedger:
    '''Record each voter's single choice and count it for the candidate.

    :param registry: Registry of the cycle's candidates, whose vote counters
        are incremented.
    '''
    def __init__(self, registry: CandidateRegistry):
        self.registry = registry
        self.records: Dict[Account, VoterRecord] = {}

    def vote(self, voter: Account, candidate: Account) -> VoterRecord:
        '''Cast the voter's vote for the candidate.

        Self-votes by candidates are allowed.

        :raises AlreadyVoted: If the voter has voted already in this cycle.
        :raises NotACandidate: If the candidate is not an active candidate.
        '''
        check_account(voter)
        existing = self.records.get(voter)
        if existing is not None:
            raise AlreadyVoted(voter, existing.chosen_candidate)
        profile = self.registry.get_active(candidate)
        record = VoterRecord(candidate)
        self.records[voter] = record
        profile.votes += 1
        logger.info('%s voted for %s, now at %d votes',
                    voter, candidate, profile.votes)
        return record

    def choice_of(self, voter: Account) -> Optional[Account]:
        '''Return the candidate the voter chose, or None if they did not vote.'''
        record = self.records.get(voter)
        return None if record is None else record.chosen_candidate

    def __len__(self) -> int:
        return len(self.records)

    def __contains__(self, voter: Account) -> bool:
        return voter in self.records

    def to_dict(self) -> Dict[str, Any]:
        return serialize_value(self.records)

    def restore(self, value: Dict[str, Any]) -> None:
        '''Load records exported by :meth:`to_dict` into an empty ledger.'''
        if self.records:
            raise ValueError('cannot restore into a ledger with votes cast')
        self.records.update(deserialize_value(value))
