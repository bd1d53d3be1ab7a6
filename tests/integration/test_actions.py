from unittest.mock import patch

import pytest
from solders.keypair import Keypair

from mcp_lumifi import actions, server
from mcp_lumifi.assets import InMemoryAssetLedger
from mcp_lumifi.auth import AllowListAuthorizer
from mcp_lumifi.contract import LumiFi
from mcp_lumifi.env import FixedClock, LedgerEnv
from mcp_lumifi.storage import InMemoryStorage


@pytest.fixture
def owner():
    return Keypair().pubkey()


@pytest.fixture
def client(owner):
    env = LedgerEnv(
        storage=InMemoryStorage(),
        authorizer=AllowListAuthorizer(allow_all=True),
        assets=InMemoryAssetLedger(),
        contract_address=Keypair().pubkey(),
        clock=FixedClock(100),
    )
    ledger = LumiFi(env)
    ledger.create_token(owner, 77)
    ledger.add_liquidity("LUMI", owner, 1000, 1000)
    with patch.object(server, "ledger", ledger):
        yield actions.app.test_client()


def test_get_token(client, owner):
    resp = client.get(f"/tokens/{owner}")
    assert resp.status_code == 200
    assert resp.get_json()["total_supply"] == 77
    assert resp.headers["Access-Control-Allow-Origin"] == "*"


def test_get_pool_and_quote(client):
    assert client.get("/pools/LUMI").get_json() == {"pool": "LUMI", "token_reserve": 1000, "reference_reserve": 1000}
    assert client.get("/pools/LUMI/quote?amount=100").get_json()["token_out"] == 90
    assert client.get("/pools/LUMI/quote?amount=0").get_json()["token_out"] == 0


def test_missing_records_are_404(client):
    assert client.get("/pools/NOPE").status_code == 404
    assert client.get(f"/icos/{'00' * 32}").status_code == 404


def test_bad_input_is_400(client):
    assert client.get("/tokens/not-a-key").status_code == 400
    assert client.get("/pools/LUMI/quote").status_code == 400
    assert client.get("/pools/LUMI/quote?amount=-1").status_code == 400


def test_contribution_defaults_to_zero(client):
    account = Keypair().pubkey()
    assert client.get(f"/contributions/{account}").get_json() == {"account": str(account), "contribution": 0}
