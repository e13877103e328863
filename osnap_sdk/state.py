"""
Proposal state machine.

A pure projection of a reconciled ProposalStatus onto the states shown to a
user, and the single action each state permits. State changes are driven by
the chain, never by this module.
"""
from enum import Enum
from typing import FrozenSet, Optional

from .models import ProposalStatus


class ProposalState(str, Enum):
    """User-visible proposal states"""
    NO_WALLET = "NO_WALLET"
    LOADING = "LOADING"
    ERROR = "ERROR"
    # Nothing proposed yet, or the last proposal was disputed and can be re-proposed
    AWAITING_PROPOSAL = "AWAITING_PROPOSAL"
    # Proposed and inside its dispute window
    PROPOSED = "PROPOSED"
    # Dispute window passed without dispute, ready to execute
    APPROVED = "APPROVED"
    EXECUTED = "EXECUTED"
    REJECTED = "REJECTED"


class Action(str, Enum):
    """Actions the action driver can perform"""
    APPROVE_BOND = "APPROVE_BOND"
    SUBMIT_PROPOSAL = "SUBMIT_PROPOSAL"
    EXECUTE_PROPOSAL = "EXECUTE_PROPOSAL"


TERMINAL_STATES = frozenset({ProposalState.EXECUTED, ProposalState.REJECTED})


def derive_state(status: Optional[ProposalStatus], wallet_connected: bool, loading: bool) -> ProposalState:
    """
    Derive the user-visible state of a proposal

    Conditions are checked in a fixed order and the first match wins.

    Args:
        status: Last reconciled status, or None if reconciliation failed
        wallet_connected: Whether a wallet account is connected
        loading: Whether a reconciliation is in flight

    Returns:
        The proposal state
    """
    if not wallet_connected:
        return ProposalState.NO_WALLET
    if loading:
        return ProposalState.LOADING
    if status is None:
        return ProposalState.ERROR
    if not status.has_submission:
        return ProposalState.AWAITING_PROPOSAL

    event = status.proposal_event
    if event is None:
        return ProposalState.ERROR

    if event.is_expired and not event.is_disputed and not event.is_settled:
        return ProposalState.APPROVED
    if event.is_settled and not event.is_disputed and not status.executed:
        return ProposalState.APPROVED
    if event.is_settled and status.executed:
        return ProposalState.EXECUTED
    if event.is_disputed and event.resolved_price is None:
        return ProposalState.AWAITING_PROPOSAL
    if event.is_disputed and event.resolved_price == 0:
        return ProposalState.REJECTED
    if not event.is_disputed and not event.is_settled and not event.is_expired:
        return ProposalState.PROPOSED
    return ProposalState.ERROR


def allowed_actions(state: ProposalState, status: Optional[ProposalStatus]) -> FrozenSet[Action]:
    """
    Return the actions permitted in a state

    At most one action is ever enabled: bond approval takes priority over
    submission while the allowance is short.
    """
    if state == ProposalState.AWAITING_PROPOSAL and status is not None:
        if status.needs_bond_approval:
            return frozenset({Action.APPROVE_BOND})
        return frozenset({Action.SUBMIT_PROPOSAL})
    if state == ProposalState.APPROVED:
        return frozenset({Action.EXECUTE_PROPOSAL})
    return frozenset()


def is_terminal(state: ProposalState) -> bool:
    return state in TERMINAL_STATES
