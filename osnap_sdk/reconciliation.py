"""
Proposal reconciliation engine.

Computes the status of one proposal from the governor module's state, the
collateral token, and the event logs of both the module and its optimistic
oracle. Nothing is cached between calls: every status is recomputed from
chain history.
"""
import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Iterable, List, Mapping, Optional, Union

from eth_utils import is_address, to_checksum_address
from web3 import Web3

from ._rate_limited_log import rate_limited_log
from .abi import (
    ERC20_ABI,
    MODULE_ABI,
    ORACLE_ABI,
    REQUEST_DISPUTER,
    REQUEST_EXPIRATION_TIME,
    REQUEST_RESOLVED_PRICE,
    REQUEST_SETTLED,
)
from .chain import ChainReader
from .codec import ancillary_data, normalize_batch, proposal_hash
from .config import NetworkConfig
from .correlation import (
    correlation_timestamp,
    is_executed,
    join_oracle_proposals,
    proposal_times_for_explanation,
    proposal_times_for_hash,
)
from .exceptions import ConfigReadFailure, EventQueryIndeterminate, ReadFailure
from .models import (
    BondInfo,
    ModuleConfig,
    OracleRequest,
    ProposalEvent,
    ProposalExecutedLog,
    ProposalStatus,
    ProposePriceLog,
    Transaction,
    TransactionsProposedLog,
    WalletContext,
)

logger = logging.getLogger(__name__)

MODULE_CONFIG_CALLS = [
    ("avatar", ()),
    ("optimisticOracle", ()),
    ("rules", ()),
    ("bondAmount", ()),
    ("liveness", ()),
]


async def _gather_reads(*reads: Awaitable[Any]) -> List[Any]:
    """Run independent reads concurrently and raise the first ReadFailure"""
    results = await asyncio.gather(*reads, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return list(results)


def needs_bond_approval(minimum_bond: int, allowance: int) -> bool:
    """True when the module requires a bond the account has not yet approved"""
    return minimum_bond > 0 and minimum_bond > allowance


def parse_oracle_request(log: ProposePriceLog, raw_request: Any) -> OracleRequest:
    """Build an OracleRequest from a ProposePrice log and its getRequest() tuple"""
    settled = bool(raw_request[REQUEST_SETTLED])
    return OracleRequest(
        requester=log.requester,
        identifier=log.identifier,
        timestamp=log.timestamp,
        ancillary_data=log.ancillary_data,
        expiration_timestamp=log.expiration_timestamp or raw_request[REQUEST_EXPIRATION_TIME],
        disputer=raw_request[REQUEST_DISPUTER],
        settled=settled,
        # The oracle reports 0 until settlement; only a settled price is meaningful
        resolved_price=int(raw_request[REQUEST_RESOLVED_PRICE]) if settled else None,
    )


def build_proposal_event(request: OracleRequest, hash_bytes: bytes, now: float) -> ProposalEvent:
    return ProposalEvent(
        expiration_timestamp=request.expiration_timestamp,
        is_expired=now >= request.expiration_timestamp,
        is_disputed=request.is_disputed,
        is_settled=request.settled,
        resolved_price=request.resolved_price,
        proposal_hash=Web3.to_hex(hash_bytes),
        proposal_time=request.timestamp,
    )


class ReconciliationEngine:
    """
    Reconciles the status of oSnap proposals.

    The engine is stateless: callers pass the wallet snapshot explicitly and
    get back a complete ProposalStatus or an exception, never a partially
    filled status.
    """

    def __init__(
        self,
        chain: ChainReader,
        clock: Callable[[], float] = time.time,
        from_block: Optional[int] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the engine

        Args:
            chain: Chain reader for the network the module lives on
            clock: Returns the current unix time, used for dispute window expiry
            from_block: First block to search for logs (defaults to the
                network configuration, then genesis)
            logger: Optional logger instance to use for debug/info logging
        """
        self.chain = chain
        self.clock = clock
        self.from_block = from_block
        self.logger = logger or logging.getLogger(__name__)

    async def read_module_config(self, module_address: str) -> ModuleConfig:
        """Read the module configuration in one batched round trip"""
        avatar, oracle, rules, bond_amount, liveness = await self.chain.batch_call(
            module_address, MODULE_ABI, MODULE_CONFIG_CALLS
        )
        return ModuleConfig(
            governing_account=avatar,
            oracle_address=oracle,
            rules=rules,
            minimum_bond=int(bond_amount),
            dispute_window_seconds=int(liveness),
        )

    async def read_bond(self, module_address: str, account: Optional[str]) -> BondInfo:
        """
        Read the collateral token and the account's bond position

        Without a connected account allowance and balance are 0 and are not
        queried.
        """
        collateral = await self.chain.call(module_address, MODULE_ABI, "collateral")
        calls = [("symbol", ()), ("decimals", ())]
        if account:
            calls += [("allowance", (account, module_address)), ("balanceOf", (account,))]
        results = await self.chain.batch_call(collateral, ERC20_ABI, calls)

        allowance, balance = (int(results[2]), int(results[3])) if account else (0, 0)
        return BondInfo(
            collateral=collateral,
            symbol=results[0],
            decimals=int(results[1]),
            allowance=allowance,
            balance=balance,
        )

    async def _log_start_block(self, network: str) -> int:
        if self.from_block is not None:
            return self.from_block
        configured = NetworkConfig.get_from_block(network)
        if configured is not None:
            return configured
        lookback = NetworkConfig.get_event_lookback(network)
        if lookback:
            latest = await self.chain.block_number()
            return max(latest - lookback, 0)
        return 0

    async def get_proposal_status(
        self,
        network: str,
        module_address: str,
        explanation: str,
        transactions: Optional[Iterable[Union[Transaction, Mapping[str, Any]]]] = None,
        wallet: Optional[WalletContext] = None
    ) -> ProposalStatus:
        """
        Reconcile the status of a proposal

        Args:
            network: Network id (chain id as a string, e.g. "1")
            module_address: Optimistic governor module address
            explanation: Free-text explanation the proposal was submitted with
            transactions: Transaction batch; None or empty when nothing is proposed yet
            wallet: Wallet snapshot; allowance and balance are 0 when not connected

        Returns:
            The reconciled ProposalStatus

        Raises:
            MalformedBatch: If the batch is malformed (before any chain call)
            ValueError: If the module or account address is malformed
            ConfigReadFailure: If the module configuration or bond state cannot be read
            EventQueryIndeterminate: If the proposal cannot be correlated across
                the module and oracle event streams
        """
        batch = normalize_batch(transactions)
        if not is_address(module_address):
            raise ValueError(f"Invalid module address: {module_address!r}")
        module = to_checksum_address(module_address)

        wallet = wallet or WalletContext()
        account = None
        if wallet.account is not None:
            if not is_address(wallet.account):
                raise ValueError(f"Invalid account address: {wallet.account!r}")
            account = to_checksum_address(wallet.account)

        # 1-3. Configuration and bond state; fatal on failure
        try:
            config, bond = await _gather_reads(
                self.read_module_config(module),
                self.read_bond(module, account),
            )
        except ReadFailure as e:
            raise ConfigReadFailure(f"Failed to read module {module} configuration: {e}") from e

        base = dict(
            governing_account=config.governing_account,
            oracle_address=config.oracle_address,
            rules=config.rules,
            minimum_bond=config.minimum_bond,
            dispute_window_seconds=config.dispute_window_seconds,
            bond=bond,
            needs_bond_approval=needs_bond_approval(config.minimum_bond, bond.allowance),
        )

        # 4. Nothing proposed yet
        if batch is None:
            self.logger.debug(f"No transactions for module {module}; skipping event queries")
            return ProposalStatus(**base, has_submission=False)

        # 5-9. Correlate the module and oracle event streams
        hash_bytes = proposal_hash(batch)
        ancillary = ancillary_data(hash_bytes)
        self.logger.debug(f"Proposal hash {Web3.to_hex(hash_bytes)}, ancillary data {ancillary!r}")

        try:
            from_block = await self._log_start_block(network)
            hash_timestamp, oracle_logs, proposed_logs, executed_logs = await _gather_reads(
                self.chain.call(module, MODULE_ABI, "proposalHashes", [hash_bytes]),
                self.chain.get_logs(
                    config.oracle_address, ORACLE_ABI, "ProposePrice",
                    argument_filters={"requester": module}, from_block=from_block,
                ),
                self.chain.get_logs(module, MODULE_ABI, "TransactionsProposed", from_block=from_block),
                self.chain.get_logs(
                    module, MODULE_ABI, "ProposalExecuted",
                    argument_filters={"proposalHash": hash_bytes}, from_block=from_block,
                ),
            )
            proposals = [ProposePriceLog.from_log(log) for log in oracle_logs]
            proposed = [TransactionsProposedLog.from_log(log) for log in proposed_logs]
            executions = [ProposalExecutedLog.from_log(log) for log in executed_logs]
        except ReadFailure as e:
            raise EventQueryIndeterminate(f"Event queries for module {module} failed: {e}") from e
        except (KeyError, TypeError, ValueError) as e:
            raise EventQueryIndeterminate(f"Undecodable event log for module {module}: {e}") from e

        proposal_times = proposal_times_for_explanation(proposed, explanation)
        timestamp = correlation_timestamp(int(hash_timestamp), proposal_times_for_hash(proposed, hash_bytes))
        executed = is_executed(proposal_times, executions)
        self.logger.debug(
            f"proposalHashes={hash_timestamp} explanation proposal times={proposal_times} "
            f"execution times={[log.proposal_time for log in executions]} executed={executed}"
        )

        if timestamp is None:
            return ProposalStatus(
                **base,
                has_submission=False,
                proposal_hash=Web3.to_hex(hash_bytes),
                executed=executed,
            )

        matches = join_oracle_proposals(proposals, ancillary, timestamp)
        if not matches:
            message = (
                f"Proposal {Web3.to_hex(hash_bytes)} at {timestamp} on module {module} "
                f"has no matching oracle request yet"
            )
            rate_limited_log(message, level="warning", logger_instance=self.logger)
            raise EventQueryIndeterminate(message)

        try:
            raw_requests = await _gather_reads(*[
                self.chain.call(
                    config.oracle_address, ORACLE_ABI, "getRequest",
                    [log.requester, log.identifier, log.timestamp, log.ancillary_data],
                )
                for log in matches
            ])
        except ReadFailure as e:
            raise EventQueryIndeterminate(f"Oracle request lookup failed: {e}") from e

        now = self.clock()
        events = [
            build_proposal_event(parse_oracle_request(log, raw), hash_bytes, now)
            for log, raw in zip(matches, raw_requests)
        ]

        # 10. Assemble
        status = ProposalStatus(
            **base,
            has_submission=True,
            is_active_dispute=int(hash_timestamp) > 0,
            proposal_hash=Web3.to_hex(hash_bytes),
            proposal_event=events[0],
            executed=executed,
        )
        self.logger.debug(f"Reconciled status for module {module}: {status}")
        return status
