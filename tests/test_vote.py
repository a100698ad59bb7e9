
import sys
import os

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), '..'))
from ballotfund.candidate import CandidateRegistry
from ballotfund.errors import AlreadyVoted, NotACandidate
from ballotfund.vote import VotingLedger


def make_ledger(*candidates):
    registry = CandidateRegistry()
    for cand in candidates:
        registry.register(cand, cand.upper())
    return VotingLedger(registry)


def test_vote_counts():
    ledger = make_ledger('x', 'y')
    ledger.vote('v1', 'x')
    ledger.vote('v2', 'x')
    ledger.vote('v3', 'y')
    assert ledger.registry.get('x').votes == 2
    assert ledger.registry.get('y').votes == 1
    assert ledger.choice_of('v1') == 'x'
    assert ledger.choice_of('nobody') is None
    assert len(ledger) == 3


def test_second_vote_rejected():
    ledger = make_ledger('x', 'y')
    ledger.vote('v1', 'x')
    for target in ['x', 'y', 'z']:
        with pytest.raises(AlreadyVoted) as exc_info:
            ledger.vote('v1', target)
        assert exc_info.value.chosen == 'x'
    assert ledger.choice_of('v1') == 'x'
    assert ledger.registry.get('x').votes == 1
    assert ledger.registry.get('y').votes == 0


def test_vote_for_unknown_candidate():
    ledger = make_ledger('x')
    with pytest.raises(NotACandidate):
        ledger.vote('v1', 'y')
    assert 'v1' not in ledger
    # the voter can still vote properly afterwards
    ledger.vote('v1', 'x')
    assert ledger.choice_of('v1') == 'x'


def test_vote_for_retired_candidate():
    ledger = make_ledger('x')
    ledger.registry.get('x').active = False
    with pytest.raises(NotACandidate):
        ledger.vote('v1', 'x')
    assert ledger.registry.get('x').votes == 0


def test_self_vote_allowed():
    ledger = make_ledger('x')
    ledger.vote('x', 'x')
    assert ledger.registry.get('x').votes == 1


def test_choice_is_read_only():
    ledger = make_ledger('x', 'y')
    record = ledger.vote('v1', 'x')
    with pytest.raises(AttributeError):
        record.chosen_candidate = 'y'
