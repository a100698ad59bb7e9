"""Generate random operation scripts for election simulations.

The generated scripts follow the shape of a real cycle (start, a stretch of
open-phase operations, election, claims, closing) but the operations within
each stretch are drawn at random from a pool of accounts, so many of them are
rejected by the election. This makes the scripts useful for exercising the
election with arbitrary orderings of calls.
"""

import random
import string
from typing import Dict, Iterable, List, Optional

from ballotfund.io import Command

OPEN_WEIGHTS: Dict[str, float] = {
    'register': 2,
    'vote': 5,
    'fund': 4,
    'delegate': 1,
    'winner_claim': .2,
    'backer_claim': .2,
}
CLAIM_WEIGHTS: Dict[str, float] = {
    'winner_claim': 1,
    'backer_claim': 4,
    'vote': .2,
    'fund': .2,
}


def account_names(n: int) -> List[str]:
    """Return n distinct account names (a, b, ..., z, aa, ab, ...)."""
    names = []
    letters = string.ascii_lowercase
    for i in range(n):
        name = ''
        i += 1
        while i:
            i, rem = divmod(i - 1, len(letters))
            name = letters[rem] + name
        names.append(name)
    return names


class ScriptGenerator:
    """Generate random operation scripts covering whole cycles.

    :param n_accounts: Number of participating accounts (besides the
        administrator).
    :param max_threshold: Maximum vote threshold drawn for a cycle.
    :param max_pledge: Maximum value of a single pledge. Values down to zero
        are drawn so that some pledges fall below the minimum.
    :param wallet: Value deposited to each account's wallet at the start.
    :param admin: Name of the administrator account.
    :param seed: Seed of the random generator, for reproducible scripts.
    """
    def __init__(self,
                 n_accounts: int = 8,
                 max_threshold: int = 3,
                 max_pledge: int = 5,
                 wallet: int = 20,
                 admin: str = 'admin',
                 seed: Optional[int] = None,
                 ):
        if n_accounts < 1:
            raise ValueError(f'invalid account count: {n_accounts}')
        self.accounts = account_names(n_accounts)
        self.max_threshold = max_threshold
        self.max_pledge = max_pledge
        self.wallet = wallet
        self.admin = admin
        self.random = random.Random(seed)

    def generate(self,
                 n_open: int = 40,
                 n_claim: int = 15,
                 n_cycles: int = 1,
                 ) -> List[Command]:
        """Generate a script of the given number of cycles.

        :param n_open: Number of operations drawn in the open phase.
        :param n_claim: Number of operations drawn in the claim phase.
        :param n_cycles: Number of cycles to script.
        """
        commands = [
            Command('deposit', acc, (self.wallet,)) for acc in self.accounts
        ]
        for i in range(n_cycles):
            commands.extend(self.cycle(n_open, n_claim))
        return commands

    def cycle(self, n_open: int, n_claim: int) -> Iterable[Command]:
        threshold = self.random.randint(0, self.max_threshold)
        yield Command('start', self.admin, (threshold, ))
        for i in range(n_open):
            yield self.draw(OPEN_WEIGHTS)
        yield Command('elect', self.admin)
        for i in range(n_claim):
            yield self.draw(CLAIM_WEIGHTS)
        # drain the escrow so that the cycle can be closed
        for acc in self.accounts:
            yield Command('winner_claim', acc)
            yield Command('backer_claim', acc)
        yield Command('close', self.admin)

    def draw(self, weights: Dict[str, float]) -> Command:
        operation = self.random.choices(
            list(weights.keys()), weights=list(weights.values())
        )[0]
        caller = self.random.choice(self.accounts)
        if operation == 'register':
            args = (caller.upper(), )
        elif operation in ('vote', 'delegate'):
            args = (self.random.choice(self.accounts), )
        elif operation == 'fund':
            args = (
                self.random.choice(self.accounts),
                self.random.randint(0, self.max_pledge),
            )
        else:
            args = ()
        return Command(operation, caller, args)
