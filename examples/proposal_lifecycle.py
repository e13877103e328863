#!/usr/bin/env python3
"""
Example of driving an oSnap proposal through its lifecycle.
"""
import asyncio
import json
import os

from web3 import AsyncWeb3, AsyncHTTPProvider

from osnap_sdk import (
    ActionDriver,
    ChainReader,
    LocalAccountWallet,
    NetworkConfig,
    OsnapError,
    ProposalSession,
    ReconciliationEngine,
    WalletContext,
)
from osnap_sdk.state import Action


async def main():
    """
    Demonstrate the reconcile / act / refresh loop.

    This example shows how to:
    1. Reconcile a proposal's status from chain history
    2. Perform the single action its state permits
    3. Let the session refresh once the transaction is confirmed
    """
    # Read configuration from environment
    NETWORK = os.environ.get("OSNAP_NETWORK", "11155111")
    MODULE_ADDRESS = os.environ.get("OSNAP_MODULE_ADDRESS")
    PRIVATE_KEY = os.environ.get("PRIVATE_KEY")
    EXPLANATION = os.environ.get("OSNAP_EXPLANATION", "Example proposal")
    BATCH_FILE = os.environ.get("OSNAP_BATCH_FILE")

    # Verify configuration
    if not MODULE_ADDRESS:
        print("ERROR: OSNAP_MODULE_ADDRESS environment variable is required")
        return

    if not PRIVATE_KEY:
        print("ERROR: PRIVATE_KEY environment variable is required")
        return

    transactions = None
    if BATCH_FILE:
        with open(BATCH_FILE, "r", encoding="utf-8") as f:
            transactions = json.load(f)

    rpc_url = NetworkConfig.get_rpc_url(NETWORK)
    chain_id = NetworkConfig.get_chain_id(NETWORK)
    w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))
    wallet = LocalAccountWallet(w3, PRIVATE_KEY)

    session = ProposalSession(
        ReconciliationEngine(ChainReader(w3)),
        NETWORK,
        MODULE_ADDRESS,
        EXPLANATION,
        transactions=transactions,
        wallet_source=lambda: WalletContext(account=wallet.account, chain_id=chain_id),
    )
    driver = ActionDriver(w3, wallet, chain_id=chain_id)

    await session.refresh()
    print(f"State: {session.state.value}")
    if session.error:
        print(f"Error: {session.error}")
        return

    try:
        if Action.APPROVE_BOND in session.actions:
            receipt = await session.approve_bond(driver)
        elif Action.SUBMIT_PROPOSAL in session.actions:
            receipt = await session.submit_proposal(driver)
        elif Action.EXECUTE_PROPOSAL in session.actions:
            receipt = await session.execute_proposal(driver)
        else:
            print("No action available")
            return
    except OsnapError as e:
        print(f"Action failed: {e}")
        return

    print(f"Transaction {receipt.tx_hash} confirmed in block {receipt.block_number}")
    print(f"State: {session.state.value}")


if __name__ == "__main__":
    asyncio.run(main())
