import pytest
from solders.keypair import Keypair

from mcp_lumifi.assets import InMemoryAssetLedger
from mcp_lumifi.auth import AllowListAuthorizer
from mcp_lumifi.contract import LumiFi
from mcp_lumifi.env import FixedClock, LedgerEnv, zero_ico_id
from mcp_lumifi.storage import InMemoryStorage

START_TIME = 1_710_000_000


@pytest.fixture
def contract_address():
    return Keypair().pubkey()


@pytest.fixture
def owner():
    return Keypair().pubkey()


@pytest.fixture
def other():
    return Keypair().pubkey()


@pytest.fixture
def asset():
    """Address of the reference asset sales are paid in."""
    return Keypair().pubkey()


@pytest.fixture
def clock():
    return FixedClock(START_TIME)


@pytest.fixture
def assets():
    return InMemoryAssetLedger()


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def authorizer():
    return AllowListAuthorizer()


@pytest.fixture
def env(storage, authorizer, assets, contract_address, clock):
    return LedgerEnv(
        storage=storage,
        authorizer=authorizer,
        assets=assets,
        contract_address=contract_address,
        clock=clock,
        ico_id_strategy=zero_ico_id,
    )


@pytest.fixture
def lumifi(env):
    return LumiFi(env)
