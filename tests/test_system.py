
import sys
import os
import threading
import time

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), '..'))
from ballotfund import events
from ballotfund.cycle import Phase
from ballotfund.errors import PhaseViolation, NotAdministrator, \
    AlreadyVoted, NotACandidate, NoCandidates, NothingToClaim, NotWinner, \
    BackedWinner, TransferFailed, UnclaimedFunds, BelowThreshold, \
    NotVotedForThisCandidate, AlreadyCandidate, InvariantViolation
from ballotfund.ledger import InMemoryLedger
from ballotfund.system import Election

VOTERS = ['v' + str(i) for i in range(1, 10)]


def open_election(threshold=0, candidates=('x', 'y', 'z'), rejecting=()):
    ledger = InMemoryLedger({voter: 20 for voter in VOTERS}, rejecting=rejecting)
    election = Election('admin', ledger=ledger)
    election.start_cycle('admin', threshold)
    for cand in candidates:
        election.register(cand, cand.upper())
    return election


def cast(election, votes):
    '''Cast votes given as {candidate: [voters]}.'''
    for cand, voters in votes.items():
        for voter in voters:
            election.vote(voter, cand)


def test_full_cycle():
    election = open_election(threshold=2)
    cast(election, {'x': ['v1', 'v2', 'v3'], 'y': ['v4', 'v5']})
    election.fund('v1', 'x', 5)
    election.fund('v4', 'y', 2)
    assert election.elect('admin') == 'x'
    assert election.phase is Phase.CLAIM
    assert election.winner_claim('x') == 5
    assert election.backer_claim('v4') == 2
    assert election.ledger.balance('x') == 5
    assert election.ledger.balance('v4') == 20
    assert election.escrow_total() == 0
    election.audit()
    election.close_cycle('admin')
    assert election.phase is Phase.CLOSED


@pytest.mark.parametrize('operation, args', [
    ('register', ('w', 'W')),
    ('vote', ('v1', 'x')),
    ('fund', ('v1', 'x', 2)),
    ('delegate', ('y', 'x')),
])
def test_open_operations_rejected_after_election(operation, args):
    election = open_election()
    election.vote('v9', 'x')
    election.elect('admin')
    snapshot = election.to_dict()
    with pytest.raises(PhaseViolation):
        getattr(election, operation)(*args)
    assert election.to_dict() == snapshot


@pytest.mark.parametrize('operation, args', [
    ('register', ('w', 'W')),
    ('vote', ('v1', 'x')),
    ('fund', ('v1', 'x', 2)),
    ('delegate', ('y', 'x')),
    ('winner_claim', ('x', )),
    ('backer_claim', ('v1', )),
    ('elect', ('admin', )),
    ('close_cycle', ('admin', )),
])
def test_nothing_allowed_before_start(operation, args):
    election = Election('admin')
    with pytest.raises(PhaseViolation):
        getattr(election, operation)(*args)
    assert election.phase is Phase.CLOSED


@pytest.mark.parametrize('operation', ['winner_claim', 'backer_claim'])
def test_claims_rejected_while_open(operation):
    election = open_election()
    election.vote('v1', 'x')
    election.fund('v1', 'x', 3)
    with pytest.raises(PhaseViolation):
        getattr(election, operation)('x' if operation == 'winner_claim' else 'v1')
    assert election.escrow_total() == 3


@pytest.mark.parametrize('operation, args', [
    ('start_cycle', ('x', 1)),
    ('elect', ('x', )),
    ('close_cycle', ('x', )),
])
def test_admin_only(operation, args):
    election = open_election()
    with pytest.raises(NotAdministrator):
        getattr(election, operation)(*args)
    assert election.phase is Phase.OPEN


def test_cannot_start_twice():
    election = open_election(threshold=1)
    with pytest.raises(PhaseViolation):
        election.start_cycle('admin', 3)
    assert election.threshold == 1
    assert election.cycle.number == 1


def test_elect_without_candidates():
    election = open_election(candidates=())
    with pytest.raises(NoCandidates):
        election.elect('admin')
    assert election.phase is Phase.OPEN
    assert election.winner is None


def test_elect_once():
    election = open_election()
    election.elect('admin')
    with pytest.raises(PhaseViolation):
        election.elect('admin')
    assert election.winner == 'x'


def test_electing_phase_visible_to_listeners():
    election = open_election()
    seen = []

    def listener(event):
        if isinstance(event, events.PhaseChanged):
            seen.append((event.phase, election.phase, election.winner))
            if event.phase is Phase.ELECTING:
                with pytest.raises(PhaseViolation):
                    election.vote('v1', 'x')

    election.subscribe(listener)
    election.elect('admin')
    assert seen == [
        (Phase.ELECTING, Phase.ELECTING, None),
        (Phase.CLAIM, Phase.CLAIM, 'x'),
    ]
    assert election.voter_choice('v1') is None


def test_failing_listener_does_not_stall_election():
    election = open_election()
    cast(election, {'x': ['v1']})
    election.fund('v1', 'x', 5)

    def listener(event):
        if isinstance(event, events.PhaseChanged) and event.phase is Phase.ELECTING:
            raise RuntimeError('listener down')

    election.subscribe(listener)
    with pytest.raises(RuntimeError):
        election.elect('admin')
    assert election.phase is Phase.CLAIM
    assert election.winner == 'x'
    election.audit()
    assert election.winner_claim('x') == 5
    election.close_cycle('admin')
    assert election.phase is Phase.CLOSED


def test_second_vote_keeps_choice():
    election = open_election()
    election.vote('v1', 'x')
    for target in ['x', 'y', 'nobody']:
        with pytest.raises(AlreadyVoted):
            election.vote('v1', target)
    assert election.voter_choice('v1') == 'x'
    assert election.profile('x').votes == 1
    assert election.profile('y').votes == 0


@pytest.mark.parametrize('backer, candidate, value, error', [
    ('v1', 'w', 2, NotACandidate),
    ('v4', 'y', 2, BelowThreshold),
    ('v1', 'x', 0, BelowThreshold),
    ('v4', 'x', 2, NotVotedForThisCandidate),
])
def test_fund_rejections(backer, candidate, value, error):
    election = open_election(threshold=2)
    cast(election, {'x': ['v1', 'v2'], 'y': ['v4']})
    with pytest.raises(error):
        election.fund(backer, candidate, value)
    assert election.escrow_total() == 0
    assert election.ledger.escrow == 0
    # the same backer can fund with otherwise valid inputs
    chosen = election.voter_choice(backer)
    if chosen == 'x':
        election.fund(backer, 'x', 2)
        assert election.pledged_by(backer) == 2


def test_fund_wrong_phase():
    election = open_election()
    election.vote('v1', 'x')
    election.elect('admin')
    with pytest.raises(PhaseViolation):
        election.fund('v1', 'x', 2)
    assert election.ledger.balance('v1') == 20


def test_delegation():
    election = open_election(threshold=5)
    cast(election, {'x': VOTERS[:3], 'y': VOTERS[3:8]})
    election.delegate('x', 'y')
    assert election.profile('x').votes == 0
    assert not election.profile('x').active
    assert election.profile('y').votes == 8
    with pytest.raises(NotACandidate):
        election.delegate('x', 'y')
    assert election.profile('y').votes == 8
    with pytest.raises(AlreadyCandidate):
        election.register('x', 'X again')
    with pytest.raises(NotACandidate):
        election.vote('v9', 'x')


def test_delegated_candidate_backers_reclaim():
    election = open_election()
    cast(election, {'x': ['v1'], 'y': ['v2', 'v3']})
    election.fund('v1', 'x', 4)
    election.delegate('x', 'y')
    assert election.profile('x').pledged_total == 4
    assert election.profile('y').pledged_total == 0
    assert election.elect('admin') == 'y'
    with pytest.raises(NothingToClaim):
        election.winner_claim('y')
    assert election.backer_claim('v1') == 4
    election.audit()


def test_tie_break():
    election = open_election()
    cast(election, {
        'x': ['v1', 'v2', 'v3'],
        'y': ['v4', 'v5', 'v6'],
        'z': ['v7', 'v8', 'v9'],
    })
    election.fund('v1', 'x', 10)
    election.fund('v4', 'y', 20)
    election.fund('v7', 'z', 20)
    assert election.standings() == ['y', 'z', 'x']
    assert election.elect('admin') == 'y'


def test_winner_claim_exclusive():
    election = open_election()
    cast(election, {'x': ['v1', 'v2'], 'y': ['v3']})
    election.fund('v1', 'x', 2)
    election.fund('v2', 'x', 3)
    election.elect('admin')
    with pytest.raises(NotWinner):
        election.winner_claim('y')
    assert election.winner_claim('x') == 5
    assert election.profile('x').pledged_total == 0
    with pytest.raises(NothingToClaim):
        election.winner_claim('x')
    assert election.ledger.balance('x') == 5


def test_backer_claim_exclusive():
    election = open_election()
    cast(election, {'x': ['v1', 'v2'], 'y': ['v3']})
    election.fund('v1', 'x', 3)
    election.fund('v3', 'y', 2)
    election.elect('admin')
    with pytest.raises(BackedWinner):
        election.backer_claim('v1')
    assert election.backer_claim('v3') == 2
    with pytest.raises(NothingToClaim):
        election.backer_claim('v3')
    assert election.ledger.balance('v3') == 20
    election.winner_claim('x')
    with pytest.raises(NothingToClaim):
        election.backer_claim('v1')
    assert election.ledger.balance('v1') == 17


def test_failed_payout_restored():
    election = open_election(rejecting=['x'])
    cast(election, {'x': ['v1']})
    election.fund('v1', 'x', 3)
    election.elect('admin')
    with pytest.raises(TransferFailed):
        election.winner_claim('x')
    assert election.profile('x').pledged_total == 3
    assert election.pledged_by('v1') == 3
    election.audit()
    with pytest.raises(UnclaimedFunds):
        election.close_cycle('admin')


def test_reentrant_claim_through_election():
    election = open_election()
    cast(election, {'x': ['v1'], 'y': ['v2']})
    election.fund('v1', 'x', 3)
    election.fund('v2', 'y', 4)
    election.elect('admin')
    attempts = []

    def greedy(account, value):
        try:
            election.backer_claim('v2')
        except NothingToClaim as e:
            attempts.append(e)

    election.ledger.on_receive('v2', greedy)
    assert election.backer_claim('v2') == 4
    assert len(attempts) == 1
    assert election.ledger.balance('v2') == 20
    election.audit()


def test_next_cycle():
    election = open_election()
    cast(election, {'x': ['v1']})
    election.fund('v1', 'x', 3)
    election.elect('admin')
    with pytest.raises(UnclaimedFunds):
        election.close_cycle('admin')
    election.winner_claim('x')
    election.close_cycle('admin')
    with pytest.raises(PhaseViolation):
        election.close_cycle('admin')
    election.start_cycle('admin', 1)
    assert election.cycle.number == 2
    assert election.roster == []
    assert election.winner is None
    assert election.voter_choice('v1') is None
    election.register('x', 'X')
    election.vote('v1', 'x')
    assert election.profile('x').votes == 1


def test_events():
    election = Election('admin', ledger=InMemoryLedger({'v1': 5}))
    received = []
    election.subscribe(received.append)
    election.start_cycle('admin', 1)
    election.register('x', 'X')
    election.register('y', 'Y')
    election.vote('v1', 'x')
    election.fund('v1', 'x', 5)
    election.delegate('y', 'x')
    with pytest.raises(AlreadyVoted):
        election.vote('v1', 'y')
    election.elect('admin')
    election.winner_claim('x')
    election.close_cycle('admin')
    assert [type(event).__name__ for event in received] == [
        'PhaseChanged', 'CycleStarted',
        'CandidateRegistered', 'CandidateRegistered',
        'VoteCast', 'FundsPledged', 'DelegationPerformed',
        'PhaseChanged', 'PhaseChanged', 'WinnerElected',
        'ClaimPaid',
        'PhaseChanged', 'CycleClosed',
    ]
    assert received[5] == events.FundsPledged(
        cycle=1, step=1, backer='v1', candidate='x', value=5
    )
    assert received[6].votes == 0
    assert received[9].winner == 'x'
    assert received[9].pledged_total == 5
    assert received[10].kind == 'winner'
    assert received[10].value == 5
    assert [event.step for event in received] == [1] * 7 + [2] * 4 + [3] * 2
    assert received[0].to_dict() == {
        'event': 'PhaseChanged', 'cycle': 1, 'step': 1, 'phase': 'OPEN'
    }


def test_audit_detects_tampering():
    election = open_election()
    cast(election, {'x': ['v1']})
    election.fund('v1', 'x', 3)
    election.audit()
    election.profile('x').pledged_total = 2
    with pytest.raises(InvariantViolation):
        election.audit()


@pytest.mark.parametrize('threshold', [-1, 'two', 0.5])
def test_invalid_threshold_has_no_effect(threshold):
    election = Election('admin')
    with pytest.raises(ValueError):
        election.start_cycle('admin', threshold)
    assert election.phase is Phase.CLOSED
    assert election.clock.step == 0


def test_invalid_admin():
    with pytest.raises(ValueError):
        Election(None)


def run_threads(target, arg_lists):
    threads = [threading.Thread(target=target, args=args) for args in arg_lists]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()


def test_concurrent_votes_and_pledges():
    voters = ['w' + str(i) for i in range(200)]
    election = Election('admin', ledger=InMemoryLedger(
        {voter: 10 for voter in voters}
    ))
    election.start_cycle('admin', 0)
    election.register('x', 'X')
    election.register('y', 'Y')

    def back(chunk):
        for voter in chunk:
            cand = 'x' if int(voter[1:]) % 3 else 'y'
            election.vote(voter, cand)
            election.fund(voter, cand, 2)

    run_threads(back, [(voters[i::8], ) for i in range(8)])
    assert election.profile('x').votes == 133
    assert election.profile('y').votes == 67
    assert election.profile('x').pledged_total == 266
    assert election.profile('y').pledged_total == 134
    assert election.escrow_total() == 400
    assert election.ledger.escrow == 400
    election.audit()


def test_concurrent_double_votes():
    election = open_election()
    accepted = []
    rejected = []

    def vote_all():
        for voter in VOTERS:
            try:
                election.vote(voter, 'x')
            except AlreadyVoted:
                rejected.append(voter)
            else:
                accepted.append(voter)

    run_threads(vote_all, [()] * 6)
    assert sorted(accepted) == VOTERS
    assert len(rejected) == 5 * len(VOTERS)
    assert election.profile('x').votes == len(VOTERS)


def test_concurrent_winner_claims():
    election = open_election()
    cast(election, {'x': ['v1', 'v2']})
    election.fund('v1', 'x', 2)
    election.fund('v2', 'x', 3)
    election.elect('admin')
    # slow recipient keeps the payout in progress while others try to claim
    election.ledger.on_receive('x', lambda account, value: time.sleep(.01))
    barrier = threading.Barrier(10)
    paid = []
    refused = []

    def claim():
        barrier.wait()
        try:
            paid.append(election.winner_claim('x'))
        except NothingToClaim:
            refused.append(True)

    run_threads(claim, [()] * 10)
    assert paid == [5]
    assert len(refused) == 9
    assert election.ledger.balance('x') == 5
    assert election.escrow_total() == 0
    election.audit()
