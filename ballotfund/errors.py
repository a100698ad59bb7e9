'''Errors raised by election operations.

Every operation of an :class:`ballotfund.system.Election` checks all of its
preconditions before touching any state; if one of them fails, one of the
subclasses of :class:`ElectionError` defined here is raised and the election
is left exactly as it was. The single exception to the check-first rule is
:class:`TransferFailed` raised during a claim, where the claimed balance has
already been zeroed; the election restores it before letting the error
propagate.
'''

from typing import Any, Collection, Optional
from numbers import Number


class ElectionError(Exception):
    '''An election operation was rejected.'''
    pass


class PhaseViolation(ElectionError):
    '''An operation was called in the wrong lifecycle phase.

    :param actual: The phase the cycle is in.
    :param expected: Phases in which the operation is valid.
    :param operation: Name of the rejected operation.
    '''
    def __init__(self,
                 actual: Any,
                 expected: Collection[Any] = (),
                 operation: Optional[str] = None,
                 ):
        self.actual = actual
        self.expected = tuple(expected)
        self.operation = operation
        message = f'invalid phase: {actual}'
        if operation:
            message = f'{operation}: ' + message
        if self.expected:
            message += ', must be ' + ' or '.join(
                str(phase) for phase in self.expected
            )
        super().__init__(message)


class NotAdministrator(ElectionError):
    '''An administrative operation was called by another account.'''
    def __init__(self, caller: Any):
        self.caller = caller
        super().__init__(f'{caller} is not the election administrator')


class AlreadyCandidate(ElectionError):
    '''The account has already declared candidacy in this cycle.

    Applies to retired (delegated away) candidates as well.
    '''
    def __init__(self, account: Any):
        self.account = account
        super().__init__(f'{account} is already a candidate')


class NotACandidate(ElectionError):
    '''The account does not hold an active candidate profile.'''
    def __init__(self, account: Any, retired: bool = False):
        self.account = account
        self.retired = retired
        message = f'{account} is not an active candidate'
        if retired:
            message += ' (retired by delegation)'
        super().__init__(message)


class NoCandidates(ElectionError):
    '''An election was triggered with nobody registered.'''
    def __init__(self):
        super().__init__('no candidates registered')


class AlreadyVoted(ElectionError):
    '''The voter has already cast their vote in this cycle.'''
    def __init__(self, voter: Any, chosen: Any = None):
        self.voter = voter
        self.chosen = chosen
        super().__init__(f'{voter} has already voted')


class BelowThreshold(ElectionError):
    '''A quantity did not reach its required minimum.

    :param value: The quantity found too small.
    :param minimum: The minimum permissible value.
    :param quantity: Role of the quantity (e.g. votes, pledge).
    '''
    def __init__(self,
                 value: Number,
                 minimum: Number,
                 quantity: str = 'votes',
                 ):
        self.value = value
        self.minimum = minimum
        self.quantity = quantity
        super().__init__(f'insufficient {quantity}: {value}, must be >={minimum}')


class NotVotedForThisCandidate(ElectionError):
    '''Funding was attempted for a candidate the backer did not vote for.'''
    def __init__(self, backer: Any, candidate: Any, chosen: Any = None):
        self.backer = backer
        self.candidate = candidate
        self.chosen = chosen
        message = f'{backer} did not vote for {candidate}'
        if chosen is not None:
            message += f' (voted for {chosen})'
        super().__init__(message)


class SelfDelegation(ElectionError):
    '''A candidate tried to delegate to itself.'''
    def __init__(self, candidate: Any):
        self.candidate = candidate
        super().__init__(f'{candidate} cannot delegate to itself')


class NoWinner(ElectionError):
    '''A claim was attempted while no winner is set.'''
    def __init__(self):
        super().__init__('no winner elected')


class NotWinner(ElectionError):
    '''A winner claim was attempted by a different account.'''
    def __init__(self, caller: Any, winner: Any):
        self.caller = caller
        self.winner = winner
        super().__init__(f'{caller} is not the winner ({winner} is)')


class NothingToClaim(ElectionError):
    '''The caller holds no claimable escrowed value.'''
    def __init__(self, caller: Any, reason: Optional[str] = None):
        self.caller = caller
        message = f'nothing to claim for {caller}'
        if reason:
            message += f': {reason}'
        super().__init__(message)


class BackedWinner(NothingToClaim):
    '''A backer of the winning candidate tried to reclaim their pledge.

    Their pledge belongs to the winner.
    '''
    def __init__(self, caller: Any, winner: Any):
        self.winner = winner
        super().__init__(caller, f'pledge belongs to the winner {winner}')


class TransferFailed(ElectionError):
    '''The value transfer primitive rejected a transfer.

    :param account: Account the transfer was addressed to or drawn from.
    :param value: Value that failed to move.
    :param reason: Reason given by the ledger, if any.
    '''
    def __init__(self, account: Any, value: Number, reason: Optional[str] = None):
        self.account = account
        self.value = value
        self.reason = reason
        message = f'transfer of {value} for {account} failed'
        if reason:
            message += f': {reason}'
        super().__init__(message)


class UnclaimedFunds(ElectionError):
    '''The cycle cannot be closed while value remains in escrow.'''
    def __init__(self, remaining: Number):
        self.remaining = remaining
        super().__init__(f'{remaining} still held in escrow')


class InvariantViolation(ElectionError):
    '''An audit found the election state inconsistent.'''
    pass
