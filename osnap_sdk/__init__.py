"""
oSnap SDK - reconcile and drive optimistic governor proposals.
"""
from .version import __version__
from .chain import ChainReader
from .codec import ancillary_data, normalize_batch, proposal_hash
from .config import NetworkConfig
from .driver import ActionDriver, LocalAccountWallet, WalletProvider
from .exceptions import (
    OsnapError,
    ReadFailure,
    ConfigReadFailure,
    EventQueryIndeterminate,
    MalformedBatch,
    WrongNetwork,
    TransactionError,
    TransactionRejected,
    TransactionFailed,
)
from .models import BondInfo, ProposalEvent, ProposalStatus, Transaction, TxReceipt, WalletContext
from .reconciliation import ReconciliationEngine
from .session import ProposalSession
from .state import Action, ProposalState, allowed_actions, derive_state

__all__ = [
    "__version__",
    "ChainReader",
    "ancillary_data",
    "normalize_batch",
    "proposal_hash",
    "NetworkConfig",
    "ActionDriver",
    "LocalAccountWallet",
    "WalletProvider",
    "OsnapError",
    "ReadFailure",
    "ConfigReadFailure",
    "EventQueryIndeterminate",
    "MalformedBatch",
    "WrongNetwork",
    "TransactionError",
    "TransactionRejected",
    "TransactionFailed",
    "BondInfo",
    "ProposalEvent",
    "ProposalStatus",
    "Transaction",
    "TxReceipt",
    "WalletContext",
    "ReconciliationEngine",
    "ProposalSession",
    "Action",
    "ProposalState",
    "allowed_actions",
    "derive_state",
]
