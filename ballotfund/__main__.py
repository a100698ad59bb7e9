"""A commandline tool to replay an election operation script.

Runs all operations of the script against a fresh election with an in-memory
ledger, reporting rejected operations as it goes, and shows the standings and
the winner of the last cycle.
"""

import argparse
import io
import json
import logging
import sys
from numbers import Number
from typing import Optional

import ballotfund.io
import ballotfund.persist
from ballotfund.errors import ElectionError
from ballotfund.escrow import DEFAULT_MIN_PLEDGE
from ballotfund.io import ParseError
from ballotfund.ledger import InMemoryLedger
from ballotfund.system import Election


def positive_value(text: str) -> Number:
    value = ballotfund.io.parse_value(text)
    if value <= 0:
        raise argparse.ArgumentTypeError(f'must be positive, got {text}')
    return value


argparser = argparse.ArgumentParser(
    prog='ballotfund',
    description=__doc__,
    formatter_class=argparse.ArgumentDefaultsHelpFormatter,
)
argparser.add_argument(
    '-i', '--input-file',
    type=argparse.FileType('r', encoding='utf8'),
    help='file to load the operation script from',
)
argparser.add_argument(
    '-I', '--use-stdin',
    action='store_true',
    help='load the operation script from standard input',
)
argparser.add_argument(
    '-a', '--admin',
    default='admin',
    help='account of the election administrator',
)
argparser.add_argument(
    '-m', '--min-pledge',
    type=positive_value,
    default=DEFAULT_MIN_PLEDGE,
    help='smallest value accepted as a single pledge',
)
argparser.add_argument(
    '-o', '--output-file',
    type=argparse.FileType('w', encoding='utf8'),
    help='write a JSON snapshot of the final election state to this file',
)
argparser.add_argument(
    '-v', '--verbose',
    action='store_true',
    help='show all election log messages',
)
argparser.add_argument(
    '-q', '--quiet',
    action='store_true',
    help='do not show any election log messages',
)


def main(input_file: io.TextIOBase,
         use_stdin: bool = False,
         admin: str = 'admin',
         min_pledge: Number = DEFAULT_MIN_PLEDGE,
         output_file: Optional[io.TextIOBase] = None,
         verbose: bool = False,
         quiet: bool = False,
         ) -> int:
    logging.basicConfig(
        level=(
            logging.DEBUG if verbose
            else (logging.WARNING if quiet else logging.INFO)
        ),
        format='%(levelname)-10s %(message)s'
    )
    if use_stdin:
        input_file = sys.stdin
    try:
        commands = ballotfund.io.load(input_file)
    except ParseError as e:
        print(f'Invalid script: {e}', file=sys.stderr)
        return 2
    try:
        election = Election(
            admin, ledger=InMemoryLedger(), min_pledge=min_pledge
        )
    except ValueError as e:
        print(f'Invalid election setup: {e}', file=sys.stderr)
        return 2
    n_rejected = replay(election, commands)
    print()
    print(f'{len(commands)} operations, {n_rejected} rejected')
    show_result(election)
    if output_file is not None:
        json.dump(ballotfund.persist.to_dict(election), output_file, indent=2)
    return 0


def replay(election: Election, commands) -> int:
    """Run the commands against the election, returning the rejection count."""
    n_rejected = 0
    for command in commands:
        try:
            result = ballotfund.io.execute(election, command)
        except (ElectionError, ValueError) as e:
            n_rejected += 1
            print(f'{command.lineno or "-":>4}  {command}: rejected, {e}')
        else:
            if result is not None:
                print(f'{command.lineno or "-":>4}  {command}: {result}')
    return n_rejected


def show_result(election: Election) -> None:
    """Show the standings of the current cycle and its winner."""
    print(f'Cycle {election.cycle.number}, phase {election.phase}')
    standings = election.standings()
    if not standings:
        print('No active candidates')
        return
    names = [election.profile(cand).name for cand in standings]
    n_just_chars = len(max(names, key=len))
    for rank, (cand, name) in enumerate(zip(standings, names), start=1):
        profile = election.profile(cand)
        print(
            str(rank).rjust(3), ' ', name.ljust(n_just_chars), ' ',
            f'{profile.votes} votes, {profile.pledged_total} pledged'
        )
    if election.winner is not None:
        print(f'Elected: {election.profile(election.winner).name}')


if __name__ == '__main__':
    args = argparser.parse_args()
    if not args.input_file and not args.use_stdin:
        argparser.print_usage()
    else:
        sys.exit(main(**vars(args)))
