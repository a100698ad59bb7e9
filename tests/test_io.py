
import sys
import os
import io
from decimal import Decimal

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), '..'))
import ballotfund.io
from ballotfund.io import Command, ParseError
from ballotfund.system import Election

SCRIPT = '''
# a short cycle
start admin 1
deposit v1 10
register x  Xavier  Example   # trailing comment
register y Yvonne
vote v1 x
fund v1 x 2.5
delegate y x
elect admin
winner_claim x
close admin
'''


def test_load():
    commands = ballotfund.io.loads(SCRIPT)
    assert [cmd.operation for cmd in commands] == [
        'start', 'deposit', 'register', 'register', 'vote', 'fund',
        'delegate', 'elect', 'winner_claim', 'close',
    ]
    assert commands[0] == Command('start', 'admin', (1, ), 3)
    assert commands[2].args == ('Xavier  Example', )
    assert commands[5].args == ('x', Decimal('2.5'))
    assert commands[7].args == ()


def test_load_file():
    commands = ballotfund.io.load(io.StringIO(SCRIPT))
    assert commands == ballotfund.io.loads(SCRIPT)


def test_dump_roundtrip():
    commands = ballotfund.io.loads(SCRIPT)
    reloaded = ballotfund.io.loads(ballotfund.io.dumps(commands))
    assert [cmd[:3] for cmd in reloaded] == [cmd[:3] for cmd in commands]


def test_execute():
    election = Election('admin', min_pledge=Decimal('0.5'))
    results = [
        ballotfund.io.execute(election, cmd)
        for cmd in ballotfund.io.loads(SCRIPT)
    ]
    assert results[7] == 'x'
    assert results[8] == Decimal('2.5')
    assert election.ledger.balance('x') == Decimal('2.5')
    assert election.cycle.number == 1


def test_escaped_hash_in_name():
    commands = ballotfund.io.loads(
        'register t Team \\#7  # seventh team\n'
        'register u Team #8\n'
    )
    assert commands[0].args == ('Team #7', )
    assert commands[1].args == ('Team', )
    dumped = ballotfund.io.dumps(commands[:1])
    assert dumped == 'register t Team \\#7\n'
    assert ballotfund.io.loads(dumped)[0].args == ('Team #7', )


@pytest.mark.parametrize(('line', 'message'), [
    ('start', 'expected operation and caller'),
    ('launch admin', 'unknown operation'),
    ('start admin', 'takes 1 arguments'),
    ('start admin one', 'invalid vote threshold'),
    ('fund v1 x', 'takes 2 arguments'),
    ('fund v1 x lots', 'invalid value'),
    ('vote v1 x y', 'takes 1 arguments'),
    ('register x', 'takes 1 arguments'),
    ('elect admin now', 'takes 0 arguments'),
])
def test_parse_errors(line, message):
    with pytest.raises(ParseError) as exc_info:
        ballotfund.io.loads('\n\n' + line)
    assert exc_info.value.lineno == 3
    assert message in str(exc_info.value)
    assert str(exc_info.value).startswith('line 3: ')
