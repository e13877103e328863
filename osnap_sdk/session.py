"""
ProposalSession - the closed loop around one proposal view.

Actions mutate the chain, the engine re-reads it, the state machine
re-derives the state. Only the most recently started reconciliation may
replace the visible status; older results are discarded as stale.
"""
import logging
from typing import Any, Callable, FrozenSet, Iterable, Mapping, Optional, Union

from .codec import TransactionBatch, normalize_batch
from .driver import ActionDriver
from .exceptions import OsnapError
from .models import ProposalStatus, Transaction, TxReceipt, WalletContext
from .reconciliation import ReconciliationEngine
from .state import Action, ProposalState, allowed_actions, derive_state

logger = logging.getLogger(__name__)


class ProposalSession:
    """
    Holds the visible status of one proposal and keeps it in sync with the chain.

    Attributes:
        status: Last good reconciled status, or None after a failed refresh
        error: Error of the last refresh, if it failed
        wallet: Wallet snapshot the current status was computed for
        loading: Whether a refresh is in flight
    """

    def __init__(
        self,
        engine: ReconciliationEngine,
        network: str,
        module_address: str,
        explanation: str,
        transactions: Optional[Iterable[Union[Transaction, Mapping[str, Any]]]] = None,
        wallet_source: Optional[Callable[[], WalletContext]] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the session

        Args:
            engine: Reconciliation engine for the module's network
            network: Network id
            module_address: Optimistic governor module address
            explanation: Proposal explanation
            transactions: Proposed transaction batch, if any
            wallet_source: Returns the current wallet state; called once per refresh
            logger: Optional logger instance

        Raises:
            MalformedBatch: If the batch is malformed
        """
        self.engine = engine
        self.network = network
        self.module_address = module_address
        self.explanation = explanation
        self.transactions: Optional[TransactionBatch] = normalize_batch(transactions)
        self.wallet_source = wallet_source or WalletContext
        self.logger = logger or logging.getLogger(__name__)

        self.status: Optional[ProposalStatus] = None
        self.error: Optional[Exception] = None
        self.wallet = WalletContext()
        self.loading = False
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def state(self) -> ProposalState:
        return derive_state(self.status, self.wallet.connected, self.loading)

    @property
    def actions(self) -> FrozenSet[Action]:
        return allowed_actions(self.state, self.status)

    async def refresh(self) -> bool:
        """
        Reconcile the proposal and publish the result if it is still current

        Returns:
            True if this refresh's result was applied, False if a newer
            refresh started while it was in flight
        """
        self._generation += 1
        generation = self._generation
        wallet = self.wallet_source()
        self.loading = True

        try:
            status = await self.engine.get_proposal_status(
                self.network,
                self.module_address,
                self.explanation,
                self.transactions,
                wallet,
            )
        except (OsnapError, ValueError) as e:
            if generation != self._generation:
                self.logger.debug(f"Discarding stale refresh #{generation} error: {e}")
                return False
            self.logger.warning(f"Refresh #{generation} failed: {e}")
            self._publish(None, e, wallet)
            return True
        except Exception as e:
            # Unexpected errors still end in ERROR, then propagate
            if generation == self._generation:
                self.logger.error(f"Refresh #{generation} failed unexpectedly: {e}")
                self._publish(None, e, wallet)
            raise
        finally:
            if generation == self._generation:
                self.loading = False

        if generation != self._generation:
            self.logger.debug(f"Discarding stale refresh #{generation}")
            return False

        self._publish(status, None, wallet)
        self.logger.debug(f"Refresh #{generation} applied, state {self.state.value}")
        return True

    def _publish(self, status: Optional[ProposalStatus], error: Optional[Exception], wallet: WalletContext) -> None:
        self.status = status
        self.error = error
        self.wallet = wallet
        self.loading = False

    def _require(self, action: Action) -> ProposalStatus:
        if action not in self.actions or self.status is None:
            raise OsnapError(f"{action.value} is not permitted in state {self.state.value}")
        return self.status

    async def approve_bond(self, driver: ActionDriver) -> TxReceipt:
        """Approve the bond, then refresh once the approval is confirmed"""
        status = self._require(Action.APPROVE_BOND)
        return await driver.approve_bond(self.module_address, status, on_confirmed=self.refresh)

    async def submit_proposal(self, driver: ActionDriver) -> TxReceipt:
        """Submit the proposal, then refresh once it is confirmed"""
        self._require(Action.SUBMIT_PROPOSAL)
        return await driver.submit_proposal(
            self.module_address, self.transactions or (), self.explanation, on_confirmed=self.refresh
        )

    async def execute_proposal(self, driver: ActionDriver) -> TxReceipt:
        """Execute the approved proposal, then refresh once it is confirmed"""
        self._require(Action.EXECUTE_PROPOSAL)
        return await driver.execute_proposal(
            self.module_address, self.transactions or (), on_confirmed=self.refresh
        )
