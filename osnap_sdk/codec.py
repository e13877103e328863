"""
Ancillary data codec.

A proposal is identified twice: the module keys it by the keccak256 hash of
the ABI-encoded transaction list, the oracle keys its price request by
ancillary data that embeds that hash as text.
"""
from typing import Any, Iterable, List, Mapping, Optional, Tuple, Union

from eth_abi import encode
from eth_abi.packed import encode_packed
from eth_utils import keccak
from pydantic import ValidationError

from .exceptions import MalformedBatch
from .models import Transaction

TransactionBatch = Tuple[Transaction, ...]

TRANSACTION_TUPLE_TYPE = "(address,uint8,uint256,bytes)[]"
ANCILLARY_DATA_PREFIX = "proposalHash"


def normalize_batch(
    transactions: Optional[Iterable[Union[Transaction, Mapping[str, Any]]]]
) -> Optional[TransactionBatch]:
    """
    Validate a transaction batch and freeze it.

    Args:
        transactions: Transaction models or mappings with ``to``, ``operation``,
            ``value`` and ``data`` keys. None or empty means nothing is proposed.

    Returns:
        The batch as an immutable tuple, or None when there are no transactions

    Raises:
        MalformedBatch: If any call has an invalid address, operation, value or data
    """
    if transactions is None:
        return None

    batch: List[Transaction] = []
    for index, tx in enumerate(transactions):
        if isinstance(tx, Transaction):
            batch.append(tx)
            continue
        if not isinstance(tx, Mapping):
            raise MalformedBatch(f"Transaction {index} must be a mapping, got {type(tx).__name__}")
        try:
            batch.append(Transaction.model_validate(dict(tx)))
        except ValidationError as e:
            raise MalformedBatch(f"Transaction {index} is malformed: {e}") from e

    return tuple(batch) or None


def encode_transactions(batch: TransactionBatch) -> List[Tuple[str, int, int, bytes]]:
    """Return the tuple list passed to proposeTransactions/executeProposal"""
    return [tx.as_tuple() for tx in batch]


def proposal_hash(batch: TransactionBatch) -> bytes:
    """
    Compute the module-side proposal hash.

    Args:
        batch: Non-empty transaction batch

    Returns:
        32-byte keccak256 digest of the ABI-encoded transaction list
    """
    if not batch:
        raise MalformedBatch("Cannot hash an empty transaction batch")
    return keccak(encode([TRANSACTION_TUPLE_TYPE], [encode_transactions(batch)]))


def ancillary_data(hash_bytes: bytes) -> bytes:
    """
    Build the oracle ancillary data for a proposal hash.

    The hash is embedded as lowercase hex text without a 0x prefix, e.g.
    ``b"proposalHash:1f2e..."``.
    """
    if len(hash_bytes) != 32:
        raise ValueError(f"proposal hash must be 32 bytes, got {len(hash_bytes)}")
    return encode_packed(
        ["string", "bytes", "bytes"],
        [
            "",
            encode_packed(["string", "string"], [ANCILLARY_DATA_PREFIX, ":"]),
            hash_bytes.hex().encode("utf-8"),
        ],
    )
