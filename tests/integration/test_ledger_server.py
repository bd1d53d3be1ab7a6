import json
from unittest.mock import MagicMock, patch

import pytest
from solders.keypair import Keypair

from mcp_lumifi import server
from mcp_lumifi.assets import InMemoryAssetLedger
from mcp_lumifi.auth import AllowListAuthorizer, NonceRegistry, call_message
from mcp_lumifi.contract import LumiFi
from mcp_lumifi.env import LedgerEnv, SystemClock, zero_ico_id
from mcp_lumifi.storage import InMemoryStorage

NOW = 1_710_000_000


def sign(keypair: Keypair, operation: str, params: dict) -> dict:
    message = call_message(operation, params)
    return {str(keypair.pubkey()): str(keypair.sign_message(message))}


@pytest.fixture
def contract():
    return Keypair()


@pytest.fixture
def fresh_ledger(contract):
    """Replaces the server's ledger and nonces with empty ones for each test."""
    env = LedgerEnv(
        storage=InMemoryStorage(),
        authorizer=AllowListAuthorizer(),
        assets=InMemoryAssetLedger(),
        contract_address=contract.pubkey(),
        clock=SystemClock(),
        ico_id_strategy=zero_ico_id,
    )
    ledger = LumiFi(env)
    with patch.object(server, "ledger", ledger), patch.object(server, "nonces", NonceRegistry()):
        yield ledger


@pytest.fixture
def ctx():
    return MagicMock()


@pytest.mark.asyncio
async def test_create_token_and_mint(fresh_ledger, ctx):
    owner = Keypair()
    address = str(owner.pubkey())

    params = {"owner": address, "initial_supply": 1000, "nonce": 0}
    result = await server.create_token(context=ctx, owner=address, initial_supply=1000, nonce=0,
                                       signatures=sign(owner, "create_token", params))
    assert json.loads(result) == {"token": address}

    params = {"token_address": address, "amount": 500, "nonce": 1}
    result = await server.mint(context=ctx, token_address=address, amount=500, nonce=1,
                               signatures=sign(owner, "mint", params))
    assert json.loads(result) == {"token": address, "total_supply": 1500}

    info = json.loads(await server.get_token_info(context=ctx, token_address=address))
    assert info["balances"] == {address: 1500}

    assert json.loads(await server.get_nonce(context=ctx, account=address)) == {"account": address, "nonce": 2}


@pytest.mark.asyncio
async def test_mint_signed_by_someone_else_is_unauthorized(fresh_ledger, ctx):
    owner, intruder = Keypair(), Keypair()
    address = str(owner.pubkey())
    params = {"owner": address, "initial_supply": 10, "nonce": 0}
    await server.create_token(context=ctx, owner=address, initial_supply=10, nonce=0,
                              signatures=sign(owner, "create_token", params))

    params = {"token_address": address, "amount": 10**9, "nonce": 0}
    result = await server.mint(context=ctx, token_address=address, amount=10**9, nonce=0,
                               signatures=sign(intruder, "mint", params))

    assert result.startswith("Unauthorized error:")
    assert fresh_ledger.total_supply(address) == 10


@pytest.mark.asyncio
async def test_signature_for_other_amount_is_rejected(fresh_ledger, ctx):
    owner = Keypair()
    address = str(owner.pubkey())
    signatures = sign(owner, "create_token", {"owner": address, "initial_supply": 1, "nonce": 0})

    result = await server.create_token(context=ctx, owner=address, initial_supply=1_000_000, nonce=0,
                                       signatures=signatures)

    assert result.startswith("Unauthorized error:")


@pytest.mark.asyncio
async def test_resubmitted_signed_call_is_rejected(fresh_ledger, ctx):
    asset, buyer = Keypair().pubkey(), Keypair()
    buyer_address = str(buyer.pubkey())
    fresh_ledger.env.assets.deposit(asset, buyer.pubkey(), 1000)

    with patch("time.time", return_value=NOW):
        ico_id = json.loads(await server.start_ico(context=ctx, token=str(asset), target_amount=5000,
                                                   deadline=NOW + 60))["ico_id"]
        params = {"ico_id": ico_id, "buyer": buyer_address, "amount": 100, "nonce": 0}
        signatures = sign(buyer, "buy_token", params)

        first = await server.buy_token(context=ctx, ico_id=ico_id, buyer=buyer_address, amount=100, nonce=0,
                                       signatures=signatures)
        assert json.loads(first) == {"buyer": buyer_address, "contribution": 100}

        for _ in range(9):
            again = await server.buy_token(context=ctx, ico_id=ico_id, buyer=buyer_address, amount=100, nonce=0,
                                           signatures=signatures)
            assert again.startswith("Unauthorized error:")

    assert fresh_ledger.get_contribution(buyer_address) == 100
    assert fresh_ledger.env.assets.balance_of(asset, buyer.pubkey()) == 900


@pytest.mark.asyncio
async def test_signature_with_future_nonce_is_rejected(fresh_ledger, ctx):
    owner = Keypair()
    address = str(owner.pubkey())
    params = {"owner": address, "initial_supply": 5, "nonce": 3}

    result = await server.create_token(context=ctx, owner=address, initial_supply=5, nonce=3,
                                       signatures=sign(owner, "create_token", params))

    assert result.startswith("Unauthorized error:")
    assert server.nonces.current(address) == 0


@pytest.mark.asyncio
async def test_create_token_negative_supply(fresh_ledger, ctx):
    owner = Keypair()
    address = str(owner.pubkey())
    params = {"owner": address, "initial_supply": -1, "nonce": 0}
    result = await server.create_token(context=ctx, owner=address, initial_supply=-1, nonce=0,
                                       signatures=sign(owner, "create_token", params))
    assert result.startswith("InvalidAmount error:")
    # a rejected call leaves the nonce unspent
    assert server.nonces.current(address) == 0


@pytest.mark.asyncio
async def test_ico_lifecycle(fresh_ledger, contract, ctx):
    asset, buyer, treasurer = Keypair().pubkey(), Keypair(), Keypair()
    buyer_address = str(buyer.pubkey())
    fresh_ledger.env.assets.deposit(asset, buyer.pubkey(), 1000)

    with patch("time.time", return_value=NOW):
        started = json.loads(await server.start_ico(context=ctx, token=str(asset), target_amount=5000, deadline=NOW + 60))
        ico_id = started["ico_id"]
        assert ico_id == "00" * 32

        params = {"ico_id": ico_id, "buyer": buyer_address, "amount": 400, "nonce": 0}
        result = await server.buy_token(context=ctx, ico_id=ico_id, buyer=buyer_address, amount=400, nonce=0,
                                        signatures=sign(buyer, "buy_token", params))
        assert json.loads(result) == {"buyer": buyer_address, "contribution": 400}

    with patch("time.time", return_value=NOW + 61):
        params = {"ico_id": ico_id, "buyer": buyer_address, "amount": 100, "nonce": 1}
        result = await server.buy_token(context=ctx, ico_id=ico_id, buyer=buyer_address, amount=100, nonce=1,
                                        signatures=sign(buyer, "buy_token", params))
        assert result.startswith("ICOExpired error:")

    contribution = json.loads(await server.get_contribution(context=ctx, account=buyer_address))
    assert contribution["contribution"] == 400

    treasurer_address = str(treasurer.pubkey())
    params = {"token": str(asset), "recipient": treasurer_address, "amount": 401, "nonce": 0}
    result = await server.withdraw(context=ctx, token=str(asset), recipient=treasurer_address, amount=401, nonce=0,
                                   signatures=sign(treasurer, "withdraw", params))
    assert result.startswith("InsufficientFunds error:")

    params["amount"] = 400
    result = await server.withdraw(context=ctx, token=str(asset), recipient=treasurer_address, amount=400, nonce=0,
                                   signatures=sign(treasurer, "withdraw", params))
    assert json.loads(result)["contract_balance"] == 0
    assert fresh_ledger.env.assets.balance_of(asset, treasurer.pubkey()) == 400


@pytest.mark.asyncio
async def test_buy_token_unknown_ico(fresh_ledger, ctx):
    buyer = Keypair()
    address = str(buyer.pubkey())
    ico_id = "11" * 32
    params = {"ico_id": ico_id, "buyer": address, "amount": 1, "nonce": 0}
    result = await server.buy_token(context=ctx, ico_id=ico_id, buyer=address, amount=1, nonce=0,
                                    signatures=sign(buyer, "buy_token", params))
    assert result.startswith("ICONotFound error:")


@pytest.mark.asyncio
async def test_liquidity_and_swap(fresh_ledger, ctx):
    provider = Keypair()
    address = str(provider.pubkey())
    params = {"pool_symbol": "LUMI", "provider": address, "amount_token": 1000, "amount_reference": 1000, "nonce": 0}

    result = await server.add_liquidity(context=ctx, pool_symbol="LUMI", provider=address, amount_token=1000,
                                        amount_reference=1000, nonce=0,
                                        signatures=sign(provider, "add_liquidity", params))
    assert json.loads(result) == {"pool": "LUMI", "token_reserve": 1000, "reference_reserve": 1000}

    quote = json.loads(await server.quote_swap(context=ctx, pool_symbol="LUMI", amount_reference_in=100))
    assert quote["token_out"] == 90

    result = json.loads(await server.swap(context=ctx, pool_symbol="LUMI", amount_reference_in=100))
    assert result == {"pool": "LUMI", "token_out": 90, "token_reserve": 910, "reference_reserve": 1100}

    result = json.loads(await server.swap(context=ctx, pool_symbol="LUMI", amount_reference_in=0))
    assert result == {"pool": "LUMI", "token_out": 0, "token_reserve": 910, "reference_reserve": 1100}

    reserves = json.loads(await server.get_pool_reserves(context=ctx, pool_symbol="LUMI"))
    assert (reserves["token_reserve"], reserves["reference_reserve"]) == (910, 1100)


@pytest.mark.asyncio
async def test_swap_unknown_pool(fresh_ledger, ctx):
    result = await server.swap(context=ctx, pool_symbol="NOPE", amount_reference_in=5)
    assert result.startswith("TokenNotFound error:")

    result = await server.swap(context=ctx, pool_symbol="NOPE", amount_reference_in=0)
    assert result.startswith("TokenNotFound error:")


@pytest.mark.asyncio
async def test_malformed_input_is_reported(fresh_ledger, ctx):
    result = await server.get_token_info(context=ctx, token_address="not-a-key")
    assert result.startswith("Invalid input:")

    result = await server.get_ico_info(context=ctx, ico_id="zz")
    assert result.startswith("Invalid input:")

    result = await server.get_nonce(context=ctx, account="not-a-key")
    assert result.startswith("Invalid input:")


@pytest.mark.asyncio
async def test_unexpected_errors_are_not_leaked(fresh_ledger, ctx):
    with patch.object(LumiFi, "swap", side_effect=RuntimeError("disk on fire")):
        result = await server.swap(context=ctx, pool_symbol="LUMI", amount_reference_in=5)
    assert result == "An unexpected server error occurred."


@pytest.mark.asyncio
async def test_unexpected_errors_in_views_are_not_leaked(fresh_ledger, ctx):
    with patch.object(LumiFi, "get_reserves", side_effect=RuntimeError("disk on fire")):
        result = await server.get_pool_reserves(context=ctx, pool_symbol="LUMI")
    assert result == "An unexpected server error occurred."

    with patch.object(LumiFi, "quote_swap", side_effect=RuntimeError("disk on fire")):
        result = await server.quote_swap(context=ctx, pool_symbol="LUMI", amount_reference_in=5)
    assert result == "An unexpected server error occurred."

    with patch.object(LumiFi, "get_token", side_effect=KeyError("owner")):
        result = await server.get_token_info(context=ctx, token_address=str(Keypair().pubkey()))
    assert result == "An unexpected server error occurred."
