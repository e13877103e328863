"""
Action driver - executes proposal actions as on-chain transactions.

Every action is two-phase: the transaction is broadcast, then the driver
waits for it to be confirmed. Phase-1 failures raise TransactionRejected
(nothing was submitted); phase-2 failures raise TransactionFailed (the
transaction may have reverted or still be pending). A refresh callback runs
only after confirmation.
"""
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, Mapping, Optional, Protocol, Union

from eth_account import Account
from eth_account.signers.base import BaseAccount
from web3 import AsyncWeb3, Web3

from .abi import ERC20_ABI, MODULE_ABI
from .chain import RPC_ERRORS
from .codec import encode_transactions, normalize_batch
from .exceptions import MalformedBatch, TransactionFailed, TransactionRejected, WrongNetwork
from .models import ProposalStatus, Transaction, TxReceipt

logger = logging.getLogger(__name__)

OnConfirmed = Callable[[], Awaitable[Any]]


class WalletProvider(Protocol):
    """Protocol for wallets the driver can transact through"""

    @property
    def account(self) -> str:
        """Connected account address"""
        ...

    async def chain_id(self) -> int:
        """Return the chain the wallet is currently on"""
        ...

    async def switch_chain(self, chain_id: int) -> bool:
        """Ask the wallet to switch chains; False if it cannot"""
        ...

    async def send_transaction(self, transaction: Dict[str, Any]) -> str:
        """Sign and broadcast a transaction, returning its hash"""
        ...


class LocalAccountWallet:
    """
    Wallet backed by a local private key.

    Transactions are signed locally and broadcast with eth_sendRawTransaction
    through the node the wallet is connected to. A local key is bound to its
    node, so it cannot switch chains.
    """

    def __init__(self, w3: AsyncWeb3, priv_key: str, logger: Optional[logging.Logger] = None):
        """
        Initialize the wallet

        Args:
            w3: AsyncWeb3 instance connected to the target chain
            priv_key: Ethereum private key
            logger: Optional logger instance
        """
        if not priv_key:
            raise ValueError("priv_key must be provided")
        self.w3 = w3
        self._account: BaseAccount = Account.from_key(priv_key)
        self.logger = logger or logging.getLogger(__name__)

    @property
    def account(self) -> str:
        return self._account.address

    async def chain_id(self) -> int:
        return await self.w3.eth.chain_id

    async def switch_chain(self, chain_id: int) -> bool:
        self.logger.debug(f"Local account wallet cannot switch to chain {chain_id}")
        return False

    async def send_transaction(self, transaction: Dict[str, Any]) -> str:
        tx = dict(transaction)
        if "nonce" not in tx:
            tx["nonce"] = await self.w3.eth.get_transaction_count(self.account, "pending")

        try:
            signed_tx = self._account.sign_transaction(tx)
        except (TypeError, ValueError) as e:
            self.logger.error(f"Transaction signing failed: {e}")
            raise TransactionRejected(f"Failed to sign transaction: {e}") from e

        tx_hash = await self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
        return Web3.to_hex(tx_hash)


class ActionDriver:
    """
    Drives bond approval, proposal submission and proposal execution.

    The driver never touches reconciled status; callers pass a refresh
    callback that runs once the transaction is confirmed. Nothing is
    retried automatically.
    """

    def __init__(
        self,
        w3: AsyncWeb3,
        wallet: WalletProvider,
        chain_id: int,
        receipt_timeout: float = 120,
        poll_latency: float = 0.1,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the driver

        Args:
            w3: AsyncWeb3 instance used to build transactions and await receipts
            wallet: Wallet that signs and broadcasts
            chain_id: Chain the module lives on
            receipt_timeout: Seconds to wait for confirmation
            poll_latency: How often to poll for the receipt, in seconds
            logger: Optional logger instance to use for debug/info logging
        """
        self.w3 = w3
        self.wallet = wallet
        self.chain_id = chain_id
        self.receipt_timeout = receipt_timeout
        self.poll_latency = poll_latency
        self.logger = logger or logging.getLogger(__name__)

    async def approve_bond(
        self,
        module_address: str,
        status: ProposalStatus,
        on_confirmed: Optional[OnConfirmed] = None
    ) -> TxReceipt:
        """
        Approve the module to spend the minimum bond in collateral

        Args:
            module_address: Optimistic governor module address
            status: Reconciled status providing the collateral token and bond amount
            on_confirmed: Called after the approval is confirmed

        Returns:
            Confirmed transaction receipt
        """
        token = self.w3.eth.contract(address=Web3.to_checksum_address(status.bond.collateral), abi=ERC20_ABI)
        fn = token.functions.approve(Web3.to_checksum_address(module_address), status.minimum_bond)
        return await self._transact("approve bond", fn, on_confirmed)

    async def submit_proposal(
        self,
        module_address: str,
        transactions: Iterable[Union[Transaction, Mapping[str, Any]]],
        explanation: str,
        on_confirmed: Optional[OnConfirmed] = None
    ) -> TxReceipt:
        """
        Propose a transaction batch to the module

        Raises:
            MalformedBatch: If the batch is empty or malformed
        """
        batch = self._require_batch(transactions)
        module = self.w3.eth.contract(address=Web3.to_checksum_address(module_address), abi=MODULE_ABI)
        fn = module.functions.proposeTransactions(encode_transactions(batch), explanation.encode("utf-8"))
        return await self._transact("submit proposal", fn, on_confirmed)

    async def execute_proposal(
        self,
        module_address: str,
        transactions: Iterable[Union[Transaction, Mapping[str, Any]]],
        on_confirmed: Optional[OnConfirmed] = None
    ) -> TxReceipt:
        """
        Execute an approved transaction batch

        Raises:
            MalformedBatch: If the batch is empty or malformed
        """
        batch = self._require_batch(transactions)
        module = self.w3.eth.contract(address=Web3.to_checksum_address(module_address), abi=MODULE_ABI)
        fn = module.functions.executeProposal(encode_transactions(batch))
        return await self._transact("execute proposal", fn, on_confirmed)

    @staticmethod
    def _require_batch(transactions):
        batch = normalize_batch(transactions)
        if batch is None:
            raise MalformedBatch("Transaction batch must not be empty")
        return batch

    async def ensure_network(self) -> None:
        """
        Make sure the wallet is on the module's chain

        Raises:
            WrongNetwork: If the wallet is elsewhere and cannot switch
        """
        try:
            current = await self.wallet.chain_id()
        except RPC_ERRORS as e:
            raise TransactionRejected(f"Failed to read wallet chain id: {e}") from e
        if current == self.chain_id:
            return

        self.logger.info(f"Wallet is on chain {current}, requesting switch to {self.chain_id}")
        if not await self.wallet.switch_chain(self.chain_id):
            raise WrongNetwork(
                f"Wallet is on chain {current} and cannot switch to chain {self.chain_id}",
                expected_chain_id=self.chain_id,
                actual_chain_id=current,
            )

        current = await self.wallet.chain_id()
        if current != self.chain_id:
            raise WrongNetwork(
                f"Wallet is still on chain {current} after switching to chain {self.chain_id}",
                expected_chain_id=self.chain_id,
                actual_chain_id=current,
            )

    async def _transact(self, label: str, fn, on_confirmed: Optional[OnConfirmed]) -> TxReceipt:
        # Account captured once for the whole action
        from_address = self.wallet.account

        await self.ensure_network()

        # Phase 1: build and broadcast
        try:
            tx = await fn.build_transaction({"from": from_address, "chainId": self.chain_id})
            self.logger.debug(f"{label}: built transaction {tx}")
            tx_hash = await self.wallet.send_transaction(tx)
        except TransactionRejected:
            raise
        except RPC_ERRORS as e:
            self.logger.error(f"{label}: failed to send transaction: {e}")
            raise TransactionRejected(f"{label}: failed to send transaction: {e}") from e
        self.logger.info(f"{label}: transaction sent: {tx_hash}")

        # Phase 2: wait for confirmation
        try:
            web3_receipt = await self.w3.eth.wait_for_transaction_receipt(
                tx_hash,
                timeout=self.receipt_timeout,
                poll_latency=self.poll_latency
            )
        except RPC_ERRORS as e:
            self.logger.error(f"{label}: transaction {tx_hash} not confirmed: {e}")
            raise TransactionFailed(f"{label}: transaction {tx_hash} not confirmed: {e}", tx_hash=tx_hash) from e

        receipt = self._convert_receipt(web3_receipt)
        if receipt.status != 1:
            self.logger.error(f"{label}: transaction {tx_hash} reverted in block {receipt.block_number}")
            raise TransactionFailed(f"{label}: transaction {tx_hash} reverted", tx_hash=tx_hash, reverted=True)

        self.logger.info(f"{label}: transaction {tx_hash} confirmed in block {receipt.block_number}")
        if on_confirmed is not None:
            await on_confirmed()
        return receipt

    def _convert_receipt(self, web3_receipt: Mapping[str, Any]) -> TxReceipt:
        """
        Convert Web3 receipt to our TxReceipt model

        Args:
            web3_receipt: The Web3 transaction receipt

        Returns:
            Our TxReceipt model
        """
        receipt_dict = dict(web3_receipt)

        # Convert bytes to hex strings
        for key, value in list(receipt_dict.items()):
            if isinstance(value, bytes):
                receipt_dict[key] = Web3.to_hex(value)
        receipt_dict["logs"] = [dict(log) for log in receipt_dict.get("logs", [])]

        return TxReceipt.model_validate(receipt_dict)
