"""
ChainReader - read-only contract call and event log facade over JSON-RPC.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import aiohttp
from web3 import AsyncWeb3, AsyncHTTPProvider, Web3
from web3.exceptions import Web3Exception

from .config import validate_rpc_url
from .exceptions import ReadFailure

logger = logging.getLogger(__name__)

# Errors a node round trip can raise
RPC_ERRORS = (Web3Exception, aiohttp.ClientError, OSError, ValueError)

# (function name, positional arguments)
ContractCall = Tuple[str, Sequence[Any]]


class ChainReader:
    """
    Read-only access to contracts on one chain.

    All methods are coroutines and raise ReadFailure when the node cannot
    answer, wrapping the underlying web3 error.
    """

    def __init__(self, w3: AsyncWeb3, logger: Optional[logging.Logger] = None):
        """
        Initialize the reader

        Args:
            w3: Connected AsyncWeb3 instance
            logger: Optional logger instance to use for debug logging
        """
        self.w3 = w3
        self.logger = logger or logging.getLogger(__name__)
        self._contracts: Dict[Tuple[str, int], Any] = {}

    @classmethod
    def from_url(cls, rpc_url: str, logger: Optional[logging.Logger] = None) -> "ChainReader":
        """
        Create a reader for an RPC endpoint

        Raises:
            ValueError: If the URL does not use https (unless it's localhost/127.0.0.1)
        """
        validate_rpc_url(rpc_url)
        return cls(AsyncWeb3(AsyncHTTPProvider(rpc_url)), logger=logger)

    def contract(self, address: str, abi: List[Dict[str, Any]]):
        """Return a cached contract object for address and ABI"""
        checksum = Web3.to_checksum_address(address)
        key = (checksum, id(abi))
        if key not in self._contracts:
            self._contracts[key] = self.w3.eth.contract(address=checksum, abi=abi)
        return self._contracts[key]

    async def call(self, address: str, abi: List[Dict[str, Any]], fn_name: str, args: Sequence[Any] = ()) -> Any:
        """
        Call a view function

        Returns:
            The decoded return value
        """
        contract = self.contract(address, abi)
        try:
            return await getattr(contract.functions, fn_name)(*args).call()
        except RPC_ERRORS as e:
            self.logger.error(f"Call {fn_name} on {address} failed: {e}")
            raise ReadFailure(f"Call {fn_name} on {address} failed: {e}") from e

    async def batch_call(
        self,
        address: str,
        abi: List[Dict[str, Any]],
        calls: Sequence[ContractCall]
    ) -> List[Any]:
        """
        Call several view functions of one contract in a single JSON-RPC
        batch round trip

        Args:
            address: Contract address
            abi: Contract ABI
            calls: (function name, args) pairs

        Returns:
            Decoded return values, in the order of ``calls``
        """
        contract = self.contract(address, abi)
        names = ", ".join(name for name, _ in calls)
        self.logger.debug(f"Batch call on {address}: {names}")
        try:
            async with self.w3.batch_requests() as batch:
                for fn_name, args in calls:
                    batch.add(getattr(contract.functions, fn_name)(*args))
                results = await batch.async_execute()
        except RPC_ERRORS as e:
            self.logger.error(f"Batch call ({names}) on {address} failed: {e}")
            raise ReadFailure(f"Batch call ({names}) on {address} failed: {e}") from e

        if len(results) != len(calls):
            raise ReadFailure(f"Batch call on {address} returned {len(results)} results for {len(calls)} calls")
        return list(results)

    async def get_logs(
        self,
        address: str,
        abi: List[Dict[str, Any]],
        event_name: str,
        argument_filters: Optional[Dict[str, Any]] = None,
        from_block: int = 0
    ) -> List[Dict[str, Any]]:
        """
        Query decoded event logs

        Args:
            address: Emitting contract address
            abi: Contract ABI containing the event
            event_name: Event name
            argument_filters: Indexed argument values to filter on
            from_block: First block to search

        Returns:
            Logs as dicts with ``args``, ``blockNumber``, ``logIndex`` and
            ``transactionHash`` keys, in node order
        """
        contract = self.contract(address, abi)
        try:
            logs = await getattr(contract.events, event_name)().get_logs(
                argument_filters=argument_filters or None,
                from_block=from_block,
            )
        except RPC_ERRORS as e:
            self.logger.error(f"Log query {event_name} on {address} failed: {e}")
            raise ReadFailure(f"Log query {event_name} on {address} failed: {e}") from e

        self.logger.debug(f"{event_name} on {address} from block {from_block}: {len(logs)} logs")
        return [
            {
                "args": dict(log["args"]),
                "blockNumber": log.get("blockNumber", 0),
                "logIndex": log.get("logIndex", 0),
                "transactionHash": Web3.to_hex(log["transactionHash"]) if log.get("transactionHash") else None,
            }
            for log in logs
        ]

    async def close(self) -> None:
        """Close the provider's HTTP session."""
        disconnect = getattr(self.w3.provider, "disconnect", None)
        if callable(disconnect):
            try:
                await disconnect()
                self.logger.debug("Provider session closed.")
            except RPC_ERRORS as e:
                # Log warning but don't prevent cleanup
                self.logger.warning(f"Error closing provider session: {e}")

    async def __aenter__(self) -> "ChainReader":
        """Enter async context manager."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context manager, ensuring the session is closed."""
        await self.close()

    async def block_number(self) -> int:
        """Return the latest block number"""
        try:
            return await self.w3.eth.block_number
        except RPC_ERRORS as e:
            raise ReadFailure(f"Failed to read latest block number: {e}") from e
