"""
Data models for the oSnap SDK.
"""
from dataclasses import dataclass
from typing import Dict, Any, Optional, List, Tuple

from eth_utils import decode_hex, is_address, to_checksum_address
from pydantic import BaseModel, Field, field_validator

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class Transaction(BaseModel):
    """One low-level call of a proposed transaction batch"""
    to: str
    operation: int = 0
    value: int = Field(0, ge=0, lt=2**256)
    data: bytes = b""

    class Config:
        frozen = True

    @field_validator("to", mode="before")
    @classmethod
    def _checksum_to(cls, value: Any) -> str:
        if not isinstance(value, str) or not is_address(value):
            raise ValueError(f"invalid destination address: {value!r}")
        return to_checksum_address(value)

    @field_validator("operation")
    @classmethod
    def _check_operation(cls, value: int) -> int:
        # 0 = call, 1 = delegatecall
        if value not in (0, 1):
            raise ValueError(f"operation must be 0 (call) or 1 (delegatecall), got {value}")
        return value

    @field_validator("data", mode="before")
    @classmethod
    def _decode_data(cls, value: Any) -> bytes:
        if value is None:
            return b""
        if isinstance(value, (bytes, bytearray)):
            return bytes(value)
        if isinstance(value, str):
            return decode_hex(value)
        raise ValueError(f"call data must be bytes or a hex string, got {type(value).__name__}")

    def as_tuple(self) -> Tuple[str, int, int, bytes]:
        """Return the (to, operation, value, data) tuple used for ABI encoding"""
        return (self.to, self.operation, self.value, self.data)


class BondInfo(BaseModel):
    """Collateral token details and the connected account's bond position"""
    collateral: str
    symbol: str
    decimals: int
    allowance: int = 0
    balance: int = 0

    class Config:
        frozen = True


class OracleRequest(BaseModel):
    """A price request tracked by the optimistic oracle"""
    requester: str
    identifier: bytes
    timestamp: int
    ancillary_data: bytes
    expiration_timestamp: int
    disputer: str = ZERO_ADDRESS
    settled: bool = False
    resolved_price: Optional[int] = None

    class Config:
        frozen = True

    @property
    def is_disputed(self) -> bool:
        return self.disputer.lower() != ZERO_ADDRESS


class ProposalEvent(BaseModel):
    """Oracle-side view of a submitted proposal"""
    expiration_timestamp: int
    is_expired: bool
    is_disputed: bool
    is_settled: bool
    resolved_price: Optional[int] = None
    proposal_hash: str
    proposal_time: int

    class Config:
        frozen = True


class ProposalStatus(BaseModel):
    """Reconciled status of one proposal, recomputed from chain state"""
    governing_account: str
    oracle_address: str
    rules: str
    minimum_bond: int
    dispute_window_seconds: int
    bond: BondInfo
    needs_bond_approval: bool
    has_submission: bool = False
    is_active_dispute: bool = False
    proposal_hash: Optional[str] = None
    proposal_event: Optional[ProposalEvent] = None
    executed: bool = False

    class Config:
        frozen = True


class ProposePriceLog(BaseModel):
    """Decoded ProposePrice event emitted by the oracle"""
    requester: str
    identifier: bytes
    timestamp: int
    ancillary_data: bytes
    expiration_timestamp: int
    block_number: int = 0
    log_index: int = 0

    class Config:
        frozen = True

    @classmethod
    def from_log(cls, log: Dict[str, Any]) -> "ProposePriceLog":
        args = log["args"]
        return cls(
            requester=args["requester"],
            identifier=args["identifier"],
            timestamp=args["timestamp"],
            ancillary_data=args["ancillaryData"],
            expiration_timestamp=args["expirationTimestamp"],
            block_number=log.get("blockNumber", 0),
            log_index=log.get("logIndex", 0),
        )


class TransactionsProposedLog(BaseModel):
    """Decoded TransactionsProposed event emitted by the module"""
    explanation: str
    proposal_time: int
    proposal_hash: bytes = b""
    block_number: int = 0
    log_index: int = 0

    class Config:
        frozen = True

    @classmethod
    def from_log(cls, log: Dict[str, Any]) -> "TransactionsProposedLog":
        args = log["args"]
        explanation = args["explanation"]
        if isinstance(explanation, (bytes, bytearray)):
            explanation = bytes(explanation).decode("utf-8", errors="replace")
        return cls(
            explanation=explanation,
            proposal_time=args["proposalTime"],
            proposal_hash=args.get("proposalHash", b""),
            block_number=log.get("blockNumber", 0),
            log_index=log.get("logIndex", 0),
        )


class ProposalExecutedLog(BaseModel):
    """Decoded ProposalExecuted event emitted by the module"""
    proposal_hash: bytes
    proposal_time: int

    class Config:
        frozen = True

    @classmethod
    def from_log(cls, log: Dict[str, Any]) -> "ProposalExecutedLog":
        args = log["args"]
        return cls(proposal_hash=args["proposalHash"], proposal_time=args["proposalTime"])


@dataclass(frozen=True)
class WalletContext:
    """
    Snapshot of the connected wallet.

    Captured once at the start of an operation so that every read inside
    it sees the same account and chain.

    Attributes:
        account: Connected account address, or None when no wallet is connected
        chain_id: Chain the wallet is currently on, if known
    """
    account: Optional[str] = None
    chain_id: Optional[int] = None

    @property
    def connected(self) -> bool:
        return self.account is not None


class TxReceipt(BaseModel):
    """Transaction receipt from the blockchain"""
    tx_hash: str = Field(..., alias="transactionHash")
    block_number: int = Field(..., alias="blockNumber")
    block_hash: str = Field(..., alias="blockHash")
    status: int
    gas_used: int = Field(..., alias="gasUsed")
    from_address: str = Field(..., alias="from")
    to_address: Optional[str] = Field(None, alias="to")
    logs: List[Dict[str, Any]] = []

    class Config:
        populate_by_name = True


class ModuleConfig(BaseModel):
    """Configuration read from the optimistic governor module"""
    governing_account: str
    oracle_address: str
    rules: str
    minimum_bond: int
    dispute_window_seconds: int

    class Config:
        frozen = True
