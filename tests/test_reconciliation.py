"""
Tests for the ReconciliationEngine.
"""
import pytest
from eth_utils import to_checksum_address
from web3 import Web3

from osnap_sdk.codec import ancillary_data, proposal_hash
from osnap_sdk.config import NetworkConfig
from osnap_sdk.exceptions import ConfigReadFailure, EventQueryIndeterminate, MalformedBatch, ReadFailure
from osnap_sdk.models import WalletContext
from osnap_sdk.reconciliation import ReconciliationEngine, needs_bond_approval
from osnap_sdk.state import Action, ProposalState, allowed_actions, derive_state
from tests.conftest import TEST_NETWORK
from tests.test_helpers import (
    ACCOUNT,
    AVATAR,
    BOND,
    DISPUTER,
    IDENTIFIER,
    LIVENESS,
    MODULE,
    NOW,
    ORACLE,
    TARGET,
    TOKEN,
    add_proposal,
    make_batch,
    make_chain,
)

EXPLANATION = "Pay the Q3 contributor grants"
EVENT_QUERIES = {"ProposePrice", "TransactionsProposed", "ProposalExecuted"}


@pytest.mark.parametrize("minimum_bond,allowance,expected", [
    (0, 0, False),
    (BOND, 0, True),
    (BOND, BOND - 1, True),
    (BOND, BOND, False),
    (BOND, BOND + 1, False),
])
def test_needs_bond_approval(minimum_bond, allowance, expected):
    assert needs_bond_approval(minimum_bond, allowance) is expected


@pytest.mark.asyncio
async def test_no_transactions_skips_event_queries(engine, chain, wallet):
    """Without a batch no hash, ancillary data or event query is computed"""
    status = await engine.get_proposal_status(TEST_NETWORK, MODULE, EXPLANATION, None, wallet)

    assert status.has_submission is False
    assert status.proposal_event is None
    assert status.proposal_hash is None
    assert status.executed is False
    assert chain.log_queries == []
    assert "proposalHashes" not in [fn for _, fn, _ in chain.calls]


@pytest.mark.asyncio
async def test_module_config_and_bond(engine, chain, wallet):
    status = await engine.get_proposal_status(TEST_NETWORK, MODULE, EXPLANATION, [], wallet)

    assert status.governing_account == to_checksum_address(AVATAR)
    assert status.oracle_address == to_checksum_address(ORACLE)
    assert status.rules.startswith("I assert")
    assert status.minimum_bond == BOND
    assert status.dispute_window_seconds == LIVENESS
    assert status.bond.collateral == to_checksum_address(TOKEN)
    assert status.bond.symbol == "USDC"
    assert status.bond.decimals == 6
    assert status.bond.allowance == 0
    assert status.bond.balance == 10 * BOND
    assert status.needs_bond_approval is True


@pytest.mark.asyncio
async def test_module_config_read_in_one_batch(engine, chain, wallet):
    await engine.get_proposal_status(TEST_NETWORK, MODULE, EXPLANATION, None, wallet)

    module_batches = [names for address, names in chain.batches if address == MODULE]
    assert module_batches == [["avatar", "optimisticOracle", "rules", "bondAmount", "liveness"]]
    token_batches = [names for address, names in chain.batches if address == TOKEN]
    assert token_batches == [["symbol", "decimals", "allowance", "balanceOf"]]


@pytest.mark.asyncio
async def test_no_wallet_treats_allowance_and_balance_as_zero(engine, chain):
    status = await engine.get_proposal_status(TEST_NETWORK, MODULE, EXPLANATION, None, WalletContext())

    assert status.bond.allowance == 0
    assert status.bond.balance == 0
    assert status.needs_bond_approval is True
    called = [fn for _, fn, _ in chain.calls]
    assert "allowance" not in called
    assert "balanceOf" not in called


@pytest.mark.asyncio
async def test_exact_allowance_clears_bond_approval(wallet):
    chain = make_chain(allowance=BOND)
    engine = ReconciliationEngine(chain, clock=lambda: NOW)

    status = await engine.get_proposal_status(TEST_NETWORK, MODULE, EXPLANATION, None, wallet)

    assert status.needs_bond_approval is False


@pytest.mark.asyncio
async def test_zero_bond_never_needs_approval(wallet):
    engine = ReconciliationEngine(make_chain(bond_amount=0), clock=lambda: NOW)
    status = await engine.get_proposal_status(TEST_NETWORK, MODULE, EXPLANATION, None, wallet)
    assert status.needs_bond_approval is False


@pytest.mark.asyncio
async def test_batch_never_proposed(engine, chain, wallet):
    batch = make_batch()
    status = await engine.get_proposal_status(TEST_NETWORK, MODULE, EXPLANATION, batch, wallet)

    assert status.has_submission is False
    assert status.is_active_dispute is False
    assert status.proposal_event is None
    assert status.proposal_hash == Web3.to_hex(proposal_hash(batch))
    assert set(chain.event_queries()) == EVENT_QUERIES


@pytest.mark.asyncio
async def test_proposal_in_dispute_window(engine, chain, wallet):
    batch = make_batch()
    proposal_time = NOW - 100
    add_proposal(chain, batch, EXPLANATION, proposal_time)

    status = await engine.get_proposal_status(TEST_NETWORK, MODULE, EXPLANATION, batch, wallet)

    assert status.has_submission is True
    assert status.is_active_dispute is True
    event = status.proposal_event
    assert event.proposal_time == proposal_time
    assert event.expiration_timestamp == proposal_time + LIVENESS
    assert event.is_expired is False
    assert event.is_disputed is False
    assert event.is_settled is False
    assert event.resolved_price is None
    assert status.executed is False


@pytest.mark.asyncio
async def test_expiry_boundary(engine, chain, wallet):
    """A request expires at its expiration timestamp, not after it"""
    batch = make_batch()
    add_proposal(chain, batch, EXPLANATION, NOW - LIVENESS, expiration=NOW)

    status = await engine.get_proposal_status(TEST_NETWORK, MODULE, EXPLANATION, batch, wallet)

    assert status.proposal_event.is_expired is True


@pytest.mark.asyncio
async def test_disputed_proposal(engine, chain, wallet):
    batch = make_batch()
    add_proposal(chain, batch, EXPLANATION, NOW - 100, disputer=to_checksum_address(DISPUTER), live=False)

    status = await engine.get_proposal_status(TEST_NETWORK, MODULE, EXPLANATION, batch, wallet)

    assert status.has_submission is True
    assert status.is_active_dispute is False
    assert status.proposal_event.is_disputed is True
    assert status.proposal_event.resolved_price is None


@pytest.mark.asyncio
async def test_rejected_proposal_reports_resolved_price(engine, chain, wallet):
    batch = make_batch()
    add_proposal(
        chain, batch, EXPLANATION, NOW - 10_000,
        disputer=to_checksum_address(DISPUTER), settled=True, resolved_price=0, live=False,
    )

    status = await engine.get_proposal_status(TEST_NETWORK, MODULE, EXPLANATION, batch, wallet)

    assert status.proposal_event.is_settled is True
    assert status.proposal_event.resolved_price == 0


@pytest.mark.asyncio
async def test_executed_proposal(engine, chain, wallet):
    """Execution clears proposalHashes; the explanation's proposal time still correlates"""
    batch = make_batch()
    proposal_time = NOW - 10_000
    add_proposal(
        chain, batch, EXPLANATION, proposal_time,
        settled=True, resolved_price=10**18, live=False, executed=True,
    )

    status = await engine.get_proposal_status(TEST_NETWORK, MODULE, EXPLANATION, batch, wallet)

    assert status.has_submission is True
    assert status.is_active_dispute is False
    assert status.executed is True
    assert status.proposal_event.proposal_time == proposal_time
    assert status.proposal_event.is_settled is True


@pytest.mark.asyncio
async def test_execution_with_other_proposal_time_does_not_count(engine, chain, wallet):
    batch = make_batch()
    proposal_time = NOW - 10_000
    hash_bytes = add_proposal(chain, batch, EXPLANATION, proposal_time, settled=True, resolved_price=10**18)
    chain.add_log(MODULE, "ProposalExecuted", {"proposalHash": hash_bytes, "proposalTime": proposal_time - 1})

    status = await engine.get_proposal_status(TEST_NETWORK, MODULE, EXPLANATION, batch, wallet)

    assert status.executed is False


@pytest.mark.asyncio
async def test_execution_requires_matching_explanation(engine, chain, wallet):
    batch = make_batch()
    add_proposal(chain, batch, "Another proposal", NOW - 10_000, settled=True, resolved_price=10**18, executed=True)

    status = await engine.get_proposal_status(TEST_NETWORK, MODULE, EXPLANATION, batch, wallet)

    # proposalHashes still points at the request, but the explanation differs
    assert status.has_submission is True
    assert status.executed is False


@pytest.mark.asyncio
async def test_reproposal_of_identical_batch(engine, chain, wallet):
    """The timestamp, not the ancillary data alone, picks the current request"""
    batch = make_batch()
    first = NOW - 20_000
    second = NOW - 100
    add_proposal(chain, batch, EXPLANATION, first, disputer=to_checksum_address(DISPUTER), block_number=100)
    add_proposal(chain, batch, EXPLANATION, second, block_number=200)

    status = await engine.get_proposal_status(TEST_NETWORK, MODULE, EXPLANATION, batch, wallet)

    assert status.proposal_event.proposal_time == second
    assert status.proposal_event.is_disputed is False


@pytest.mark.asyncio
async def test_missing_oracle_event_is_indeterminate(engine, chain, wallet):
    """A submitted proposal whose oracle log is not visible yet is never reported as unproposed"""
    batch = make_batch()
    add_proposal(chain, batch, EXPLANATION, NOW - 100, oracle_event=False)

    with pytest.raises(EventQueryIndeterminate, match="no matching oracle request"):
        await engine.get_proposal_status(TEST_NETWORK, MODULE, EXPLANATION, batch, wallet)


@pytest.mark.asyncio
async def test_oracle_event_for_other_batch_is_ignored(engine, chain, wallet):
    batch = make_batch()
    other = make_batch(value=1)
    proposal_time = NOW - 100
    add_proposal(chain, batch, EXPLANATION, proposal_time, oracle_event=False)
    chain.add_log(ORACLE, "ProposePrice", {
        "requester": to_checksum_address(MODULE),
        "identifier": IDENTIFIER,
        "timestamp": proposal_time,
        "ancillaryData": ancillary_data(proposal_hash(other)),
        "expirationTimestamp": proposal_time + LIVENESS,
    })

    with pytest.raises(EventQueryIndeterminate):
        await engine.get_proposal_status(TEST_NETWORK, MODULE, EXPLANATION, batch, wallet)


@pytest.mark.asyncio
async def test_oracle_event_for_other_requester_is_ignored(engine, chain, wallet):
    batch = make_batch()
    proposal_time = NOW - 100
    add_proposal(chain, batch, EXPLANATION, proposal_time, oracle_event=False)
    chain.add_log(ORACLE, "ProposePrice", {
        "requester": to_checksum_address(ACCOUNT),
        "identifier": IDENTIFIER,
        "timestamp": proposal_time,
        "ancillaryData": ancillary_data(proposal_hash(batch)),
        "expirationTimestamp": proposal_time + LIVENESS,
    })

    with pytest.raises(EventQueryIndeterminate):
        await engine.get_proposal_status(TEST_NETWORK, MODULE, EXPLANATION, batch, wallet)


@pytest.mark.asyncio
@pytest.mark.parametrize("event_name,address", [
    ("ProposePrice", ORACLE),
    ("TransactionsProposed", MODULE),
    ("ProposalExecuted", MODULE),
])
async def test_event_query_failure_is_indeterminate(engine, chain, wallet, event_name, address):
    chain.fail_logs(address, event_name, ReadFailure("query returned more than 10000 results"))

    with pytest.raises(EventQueryIndeterminate):
        await engine.get_proposal_status(TEST_NETWORK, MODULE, EXPLANATION, make_batch(), wallet)


@pytest.mark.asyncio
async def test_oracle_request_failure_is_indeterminate(engine, chain, wallet):
    batch = make_batch()
    proposal_time = NOW - 100
    hash_bytes = add_proposal(chain, batch, EXPLANATION, proposal_time)
    chain.set(ORACLE, "getRequest", ReadFailure("timeout"), MODULE, IDENTIFIER, proposal_time, ancillary_data(hash_bytes))

    with pytest.raises(EventQueryIndeterminate):
        await engine.get_proposal_status(TEST_NETWORK, MODULE, EXPLANATION, batch, wallet)


@pytest.mark.asyncio
@pytest.mark.parametrize("address,fn_name", [
    (MODULE, "rules"),
    (MODULE, "collateral"),
    (TOKEN, "decimals"),
])
async def test_config_failure_is_fatal(engine, chain, wallet, address, fn_name):
    chain.set(address, fn_name, ReadFailure("rate limited"))

    with pytest.raises(ConfigReadFailure):
        await engine.get_proposal_status(TEST_NETWORK, MODULE, EXPLANATION, make_batch(), wallet)
    assert chain.log_queries == []


@pytest.mark.asyncio
async def test_malformed_batch_fails_before_chain_calls(engine, chain, wallet):
    with pytest.raises(MalformedBatch):
        await engine.get_proposal_status(TEST_NETWORK, MODULE, EXPLANATION, [{"to": "0xnot-an-address"}], wallet)
    assert chain.calls == []


@pytest.mark.asyncio
async def test_malformed_module_address(engine, chain, wallet):
    with pytest.raises(ValueError, match="Invalid module address"):
        await engine.get_proposal_status(TEST_NETWORK, "0x123", EXPLANATION, None, wallet)
    assert chain.calls == []


@pytest.mark.asyncio
async def test_log_search_uses_network_lookback(chain, wallet):
    NetworkConfig._networks_cache = {
        "137": {"chainId": 137, "rpc": "https://polygon.example.com", "eventLookbackBlocks": 1000}
    }
    chain.latest_block = 5000
    engine = ReconciliationEngine(chain, clock=lambda: NOW)

    await engine.get_proposal_status("137", MODULE, EXPLANATION, make_batch(), wallet)

    assert {from_block for _, _, _, from_block in chain.log_queries} == {4000}


@pytest.mark.asyncio
async def test_log_search_uses_configured_start_block(chain, wallet):
    NetworkConfig._networks_cache = {
        "1": {"chainId": 1, "rpc": "https://eth.example.com", "fromBlock": 17000000, "eventLookbackBlocks": 10}
    }
    engine = ReconciliationEngine(chain, clock=lambda: NOW)

    await engine.get_proposal_status("1", MODULE, EXPLANATION, make_batch(), wallet)

    assert {from_block for _, _, _, from_block in chain.log_queries} == {17000000}


@pytest.mark.asyncio
async def test_explicit_start_block_wins(chain, wallet):
    engine = ReconciliationEngine(chain, clock=lambda: NOW, from_block=42)
    await engine.get_proposal_status(TEST_NETWORK, MODULE, EXPLANATION, make_batch(), wallet)
    assert {from_block for _, _, _, from_block in chain.log_queries} == {42}


@pytest.mark.asyncio
async def test_other_batch_under_same_explanation_is_not_a_submission(engine, chain, wallet):
    """A cleared proposal of another batch does not make this batch proposed"""
    add_proposal(
        chain, make_batch(value=1), EXPLANATION, NOW - 5000,
        disputer=to_checksum_address(DISPUTER), live=False,
    )
    batch = make_batch(value=2)

    status = await engine.get_proposal_status(TEST_NETWORK, MODULE, EXPLANATION, batch, wallet)

    assert status.has_submission is False
    assert status.proposal_event is None
    assert status.proposal_hash == Web3.to_hex(proposal_hash(batch))
    assert derive_state(status, wallet.connected, loading=False) == ProposalState.AWAITING_PROPOSAL
    assert allowed_actions(ProposalState.AWAITING_PROPOSAL, status) == frozenset({Action.APPROVE_BOND})


@pytest.mark.asyncio
async def test_cleared_proposal_ignores_later_batch_with_same_explanation(engine, chain, wallet):
    """The fallback time comes from this batch's own proposal"""
    batch = make_batch(value=1)
    first = NOW - 20_000
    add_proposal(
        chain, batch, EXPLANATION, first,
        disputer=to_checksum_address(DISPUTER), live=False, block_number=100,
    )
    add_proposal(chain, make_batch(value=2), EXPLANATION, NOW - 100, block_number=200)

    status = await engine.get_proposal_status(TEST_NETWORK, MODULE, EXPLANATION, batch, wallet)

    assert status.has_submission is True
    assert status.is_active_dispute is False
    assert status.proposal_event.proposal_time == first
    assert status.proposal_event.is_disputed is True


@pytest.mark.asyncio
async def test_out_of_range_value_fails_before_chain_calls(engine, chain, wallet):
    with pytest.raises(MalformedBatch):
        await engine.get_proposal_status(
            TEST_NETWORK, MODULE, EXPLANATION, [{"to": TARGET, "value": 2**256}], wallet
        )
    assert chain.calls == []
