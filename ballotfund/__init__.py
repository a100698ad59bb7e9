"""Ballotfund - a single-cycle election with integrated fund escrow.

A cycle of a Ballotfund election goes through the following stages:

-   The administrator opens the cycle, setting the number of votes a candidate
    needs before it can receive pledges or delegations.
-   While the cycle is open, participants register as candidates (the
    :mod:`candidate` module), voters cast a single vote each (:mod:`vote`),
    pledge value to the candidate they voted for (:mod:`escrow`) and
    candidates may merge their votes into another candidate
    (:mod:`delegation`).
-   The administrator triggers the election; the winner is determined by
    votes, then pledged funds, then registration order (:mod:`evaluate`).
-   The winner claims the value pledged to them and the backers of the other
    candidates reclaim their own pledges.

All of this state is owned by an :class:`system.Election` object, which
serializes the operations and emits notification records (:mod:`events`).
Value moves through a :class:`ledger.ValueTransfer` primitive supplied by the
host.
"""

from ballotfund.system import Election    # noqa: F401
from ballotfund.cycle import Phase    # noqa: F401
