"""
Exceptions for the oSnap SDK.

Reconciliation errors make a proposal status unusable and surface as the
ERROR state. Action errors are local to the action driver and leave the last
good status untouched.
"""
from typing import Optional


class OsnapError(Exception):
    """Base exception for all oSnap SDK errors."""
    pass


class ReadFailure(OsnapError):
    """Raised when a read-only contract call or log query fails."""
    pass


class ConfigReadFailure(ReadFailure):
    """Raised when the module configuration or bond state cannot be read."""
    pass


class EventQueryIndeterminate(OsnapError):
    """
    Raised when proposal correlation across the module and oracle event
    streams could not be completed.

    The proposal may or may not exist; the status is unknown.
    """
    pass


class MalformedBatch(OsnapError, ValueError):
    """Raised when a transaction batch is not well formed."""
    pass


class WrongNetwork(OsnapError):
    """Raised when the wallet is on another chain and cannot be switched."""

    def __init__(self, message: str, expected_chain_id: int, actual_chain_id: Optional[int] = None):
        self.expected_chain_id = expected_chain_id
        self.actual_chain_id = actual_chain_id
        super().__init__(message)


class TransactionError(OsnapError):
    """Base exception for action transaction failures."""
    pass


class TransactionRejected(TransactionError):
    """Raised when a transaction could not be built, signed or broadcast.

    Nothing was submitted, so retrying is safe.
    """
    pass


class TransactionFailed(TransactionError):
    """
    Raised when a broadcast transaction was not confirmed.

    The transaction may have reverted or may still be pending, so a retry can
    produce a duplicate.
    """

    def __init__(self, message: str, tx_hash: str, reverted: bool = False):
        self.tx_hash = tx_hash
        self.reverted = reverted
        super().__init__(message)
