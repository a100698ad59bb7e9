"""Operation scripts: a line-based text format driving an election.

Each non-empty line holds one operation called by one account::

    # comments start with a hash
    start admin 2
    deposit carol 10
    register alice Alice Smith
    vote carol alice
    fund carol alice 5
    delegate bob alice
    elect admin
    winner_claim alice
    backer_claim dave
    close admin

The display name of ``register`` takes the rest of the line; values are
integers, or decimals if they contain a decimal point. A hash starts
a comment anywhere on the line, so a hash inside a display name is written
escaped as ``\\#``::

    register team7 Team \\#7

``deposit`` is not an election operation; it credits a wallet in the host
ledger.
"""

from __future__ import annotations

import re
import typing
from decimal import Decimal, InvalidOperation
from numbers import Number
from typing import Any, Callable, Iterable, List, NamedTuple, Tuple, TextIO

from ballotfund.system import Election


COMMENT = re.compile(r'(?<!\\)#')


def strip_comment(line: str) -> str:
    return COMMENT.split(line, 1)[0].replace('\\#', '#').strip()


class ParseError(Exception):
    """An input that is invalid according to the script format was detected.

    :param lineno: Number of the offending line (one-based).
    """
    def __init__(self, message: str, lineno: int = None):
        self.lineno = lineno
        if lineno is not None:
            message = f'line {lineno}: {message}'
        super().__init__(message)


class Command(NamedTuple):
    operation: str
    caller: str
    args: Tuple[Any, ...] = ()
    lineno: int = None

    def __str__(self) -> str:
        return ' '.join(
            [self.operation, self.caller]
            + [str(arg).replace('#', '\\#') for arg in self.args]
        )


def parse_value(token: str) -> Number:
    try:
        if '.' in token:
            return Decimal(token)
        return int(token)
    except (ValueError, InvalidOperation) as e:
        raise ValueError(f'invalid value {token!r}') from e


def _parse_threshold(token: str) -> int:
    try:
        return int(token)
    except ValueError as e:
        raise ValueError(f'invalid vote threshold {token!r}') from e


# operation: (argument parsers, takes the rest of the line as text)
OPERATIONS = {
    'start': ([_parse_threshold], False),
    'deposit': ([parse_value], False),
    'register': ([str], True),
    'vote': ([str], False),
    'fund': ([str, parse_value], False),
    'delegate': ([str], False),
    'elect': ([], False),
    'winner_claim': ([], False),
    'backer_claim': ([], False),
    'close': ([], False),
}


def parse_line(line: str, lineno: int = None) -> Command:
    line = strip_comment(line)
    parts = line.split(None, 2)
    if len(parts) < 2:
        raise ParseError(f'expected operation and caller, got {line!r}', lineno)
    operation, caller = parts[0].lower(), parts[1]
    if operation not in OPERATIONS:
        raise ParseError(
            f'unknown operation {operation!r}, supported: '
            + ', '.join(OPERATIONS.keys()),
            lineno
        )
    parsers, rest_is_text = OPERATIONS[operation]
    rest = parts[2] if len(parts) > 2 else ''
    if rest_is_text:
        tokens = [rest] if rest else []
    else:
        tokens = rest.split()
    if len(tokens) != len(parsers):
        raise ParseError(
            f'{operation} takes {len(parsers)} arguments, got {len(tokens)}',
            lineno
        )
    try:
        args = tuple(parser(token) for parser, token in zip(parsers, tokens))
    except ValueError as e:
        raise ParseError(str(e), lineno) from e
    return Command(operation, caller, args, lineno)


def load_lines(lines: Iterable[str]) -> List[Command]:
    commands = []
    for lineno, line in enumerate(lines, start=1):
        if strip_comment(line):
            commands.append(parse_line(line, lineno))
    return commands


def dump_lines(commands: Iterable[Command]) -> Iterable[str]:
    for command in commands:
        yield str(command)


def loaders(line_loader: Callable[..., List[Command]]
            ) -> Tuple[Callable[..., List[Command]], Callable[..., List[Command]]]:
    """Create load() and loads() functions from an iterating function."""
    return_annot = typing.get_type_hints(line_loader).get('return')
    if return_annot is None:
        return_annot = Any

    def load(file: TextIO, **kwargs) -> return_annot:
        return line_loader(file, **kwargs)

    def loads(text: str, **kwargs) -> return_annot:
        return line_loader(iter(text.split('\n')), **kwargs)

    return load, loads


def dumpers(line_dumper: Callable[..., Iterable[str]]
            ) -> Tuple[Callable[..., None], Callable[..., str]]:
    """Create dump() and dumps() functions from a line generator function."""

    def dump(file: TextIO, *args, **kwargs) -> None:
        for line in line_dumper(*args, **kwargs):
            file.write(line + '\n')

    def dumps(*args, **kwargs) -> str:
        return ''.join(line + '\n' for line in line_dumper(*args, **kwargs))

    return dump, dumps


load, loads = loaders(load_lines)
dump, dumps = dumpers(dump_lines)


def execute(election: Election, command: Command) -> Any:
    """Call the election operation named by the command.

    :returns: What the operation returned.
    :raises ballotfund.errors.ElectionError: If the operation is rejected.
    """
    op, caller, args = command.operation, command.caller, command.args
    if op == 'start':
        return election.start_cycle(caller, *args)
    elif op == 'deposit':
        return election.ledger.deposit(caller, *args)
    elif op == 'close':
        return election.close_cycle(caller)
    else:
        return getattr(election, op)(caller, *args)
