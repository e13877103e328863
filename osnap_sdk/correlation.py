"""
Join functions correlating the module and oracle event streams.

The module and the oracle emit unrelated logs with no foreign key between
them, so every match here is made on explicit keys: explanation text,
proposal time, ancillary data and request timestamp. No ordering between the
two streams is assumed.
"""
from typing import Iterable, List, Optional

from .models import ProposalExecutedLog, ProposePriceLog, TransactionsProposedLog


def _chain_order(log) -> tuple:
    return (log.block_number, log.log_index)


def proposal_times_for_explanation(
    proposed: Iterable[TransactionsProposedLog],
    explanation: str
) -> List[int]:
    """
    Collect the proposal times of TransactionsProposed events whose
    explanation equals ``explanation`` exactly.

    Returns:
        Proposal times in chain order (oldest first)
    """
    matches = sorted((log for log in proposed if log.explanation == explanation), key=_chain_order)
    return [log.proposal_time for log in matches]


def proposal_times_for_hash(
    proposed: Iterable[TransactionsProposedLog],
    hash_bytes: bytes
) -> List[int]:
    """
    Collect the proposal times of TransactionsProposed events for exactly
    this batch. Other batches proposed under the same explanation are ignored.

    Returns:
        Proposal times in chain order (oldest first)
    """
    matches = sorted((log for log in proposed if bytes(log.proposal_hash) == hash_bytes), key=_chain_order)
    return [log.proposal_time for log in matches]


def correlation_timestamp(hash_timestamp: int, proposal_times: List[int]) -> Optional[int]:
    """
    Pick the timestamp that identifies the current oracle request.

    The module's ``proposalHashes`` entry wins while it is set. The module
    clears it once a proposal is executed or disputed, after which the most
    recent proposal time of the same batch is used instead.

    Returns:
        Request timestamp, or None when this batch was never proposed
    """
    if hash_timestamp > 0:
        return hash_timestamp
    if proposal_times:
        return max(proposal_times)
    return None


def join_oracle_proposals(
    proposals: Iterable[ProposePriceLog],
    ancillary: bytes,
    timestamp: int
) -> List[ProposePriceLog]:
    """
    Select the ProposePrice events belonging to this proposal.

    Both the ancillary data and the request timestamp must match: the same
    batch proposed twice has the same ancillary data but a different
    timestamp.

    Returns:
        Matching events in chain order (oldest first); empty when none match
    """
    matches = [
        log for log in proposals
        if bytes(log.ancillary_data) == ancillary and log.timestamp == timestamp
    ]
    return sorted(matches, key=_chain_order)


def is_executed(proposal_times: Iterable[int], executions: Iterable[ProposalExecutedLog]) -> bool:
    """
    Decide whether a proposal was executed.

    The module has no per-hash "executed" flag, so this is the intersection
    of explanation-matched proposal times with the proposal times of
    ProposalExecuted events for the same hash. Two distinct proposals sharing
    a proposal time would be indistinguishable here.
    """
    executed_times = {log.proposal_time for log in executions}
    return any(time in executed_times for time in proposal_times)
