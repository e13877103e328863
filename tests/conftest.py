"""
Pytest fixtures for the oSnap SDK tests.
"""
import pytest

from osnap_sdk._rate_limited_log import reset_rate_limits
from osnap_sdk.config import NetworkConfig
from osnap_sdk.models import WalletContext
from osnap_sdk.reconciliation import ReconciliationEngine
from tests.test_helpers import ACCOUNT, NOW, make_chain

# Network id that is not in the packaged table, so logs are searched from genesis
TEST_NETWORK = "31337"


@pytest.fixture(autouse=True)
def _reset_shared_state():
    """Rate-limit memory and the network table cache are process-wide"""
    reset_rate_limits()
    yield
    reset_rate_limits()
    NetworkConfig._networks_cache = None


@pytest.fixture
def chain():
    return make_chain()


@pytest.fixture
def engine(chain):
    return ReconciliationEngine(chain, clock=lambda: NOW)


@pytest.fixture
def wallet():
    return WalletContext(account=ACCOUNT, chain_id=1)
