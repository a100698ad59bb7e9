'''Ledger primitives the election relies on.

The election does not keep account balances itself. It needs only three
things from its host:

-   An account identity type. Any hashable object that is not a set or tuple
    (strings, most typically) passes as an :class:`Account`.
-   A value transfer primitive (:class:`ValueTransfer`) that moves value
    between a wallet and the election escrow and either succeeds atomically or
    raises :class:`ballotfund.errors.TransferFailed`.
-   A monotonic step counter (:class:`StepClock`) advanced only by the
    administrator.

:class:`InMemoryLedger` is a complete in-process implementation of the
transfer primitive, used by the command line tool and the tests.
'''

from __future__ import annotations

import abc
import collections
import logging
from numbers import Number
from typing import Any, Callable, Dict, Iterable, Optional

from ballotfund.errors import TransferFailed

logger = logging.getLogger(__name__)


class Account(metaclass=abc.ABCMeta):
    '''An abstract marker class for account identities.

    The subclass check is overridden so that any hashable object that is not
    a set or tuple is accepted. Subclasses will not inherit this override.
    '''
    @classmethod
    def __subclasshook__(cls, subcl):
        if cls is Account:
            return (
                hasattr(subcl, '__hash__')
                and subcl.__hash__ is not None
                and not issubclass(subcl, collections.abc.Set)
                and not issubclass(subcl, tuple)
            )
        else:
            return super().__subclasshook__(subcl)


def check_account(account: Any) -> None:
    '''Check that an object can serve as an account identity.

    :raises ValueError: If it cannot.
    '''
    if account is None or not isinstance(account, Account):
        raise ValueError(f'invalid account: {account!r}')


class ValueTransfer(metaclass=abc.ABCMeta):
    '''Move value between account wallets and the election escrow.

    Both methods must either complete entirely or raise
    :class:`TransferFailed` without any effect.
    '''
    @abc.abstractmethod
    def collect(self, account: Account, value: Number) -> None:
        '''Move value attached to a call from the account into escrow.

        :raises TransferFailed: If the value cannot be collected.
        '''
        raise NotImplementedError

    @abc.abstractmethod
    def send(self, account: Account, value: Number) -> None:
        '''Pay value out of escrow to the account.

        :raises TransferFailed: If the payout is rejected.
        '''
        raise NotImplementedError


ReceiveHook = Callable[[Account, Number], None]


class InMemoryLedger(ValueTransfer):
    '''Keep wallet and escrow balances in memory.

    :param balances: Initial wallet balances.
    :param rejecting: Accounts whose payouts are always rejected, simulating
        recipients that refuse incoming value.
    '''
    def __init__(self,
                 balances: Optional[Dict[Account, Number]] = None,
                 rejecting: Iterable[Account] = (),
                 ):
        self.balances = collections.defaultdict(int)
        if balances:
            for account, value in balances.items():
                self.deposit(account, value)
        self.rejecting = set(rejecting)
        self.escrow = 0
        self._hooks: Dict[Account, ReceiveHook] = {}

    def deposit(self, account: Account, value: Number) -> None:
        '''Add value to a wallet from outside the election.'''
        check_account(account)
        if value < 0:
            raise ValueError(f'cannot deposit negative value {value}')
        self.balances[account] += value

    def balance(self, account: Account) -> Number:
        return self.balances.get(account, 0)

    def on_receive(self, account: Account, hook: Optional[ReceiveHook]) -> None:
        '''Call hook whenever the account is paid out of escrow.

        The hook runs after the payout is credited. If it raises, the payout
        is reverted and the transfer fails, like a recipient that refuses the
        value. Pass None to remove the hook.
        '''
        if hook is None:
            self._hooks.pop(account, None)
        else:
            self._hooks[account] = hook

    def collect(self, account: Account, value: Number) -> None:
        available = self.balance(account)
        if available < value:
            raise TransferFailed(
                account, value, f'insufficient balance {available}'
            )
        self.balances[account] -= value
        self.escrow += value
        logger.debug('collected %s from %s', value, account)

    def send(self, account: Account, value: Number) -> None:
        if account in self.rejecting:
            raise TransferFailed(account, value, 'recipient rejected transfer')
        if self.escrow < value:
            raise TransferFailed(
                account, value, f'escrow holds only {self.escrow}'
            )
        self.escrow -= value
        self.balances[account] += value
        hook = self._hooks.get(account)
        if hook is not None:
            try:
                hook(account, value)
            except Exception as e:
                self.balances[account] -= value
                self.escrow += value
                raise TransferFailed(
                    account, value, f'recipient hook raised {e!r}'
                ) from e
        logger.debug('sent %s to %s', value, account)


class StepClock:
    '''A monotonic step counter.

    :param start: Initial step.
    '''
    def __init__(self, start: int = 0):
        if start < 0:
            raise ValueError(f'invalid clock start: {start}')
        self.step = start

    def advance(self) -> int:
        '''Advance the clock by one step and return the new step.'''
        self.step += 1
        return self.step

    def __repr__(self) -> str:
        return f'<StepClock({self.step})>'
