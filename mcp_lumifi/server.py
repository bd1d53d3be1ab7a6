"""
LumiFi Ledger Server - MCP Server Implementation

This module exposes the LumiFi ledger engine as a set of MCP tools: token issuance
and minting, ICO sales and contributions, custodial withdrawals and
constant-product liquidity pools, plus read-only views of every record.

Authorization:
- Mutating tools take a `signatures` map of base58 account -> base58 ed25519
  signature. Each signature must cover the canonical call message
  (mcp_lumifi.auth.call_message) of exactly the call being made, including
  the signer's current `nonce` (see the get_nonce tool).
- A SignatureAuthorizer is built per call; the engine asks it whether the
  accounts it needs (owner, buyer, recipient, provider) have signed.
- A successful call spends the nonce of every account that authorized it, so
  the same signed message is rejected if it is submitted again.

Error Handling:
- Contract errors are returned as "<Kind> error: <message>" and logged
- Malformed input is reported without internal details
- Unexpected exceptions are logged with traceback and reported generically

Calls run synchronously inside the server's event loop, so two calls never
interleave their reads and writes of the same record.
"""

import json
import time
from pathlib import Path
from typing import Any, Dict, Tuple

from pydantic import Field

from mcp.server.fastmcp import Context, FastMCP
from mcp.server.fastmcp.utilities.logging import get_logger

from mcp_lumifi import config
from mcp_lumifi.assets import InMemoryAssetLedger
from mcp_lumifi.auth import AllowListAuthorizer, NonceRegistry, SignatureAuthorizer, call_message
from mcp_lumifi.contract import LumiFi
from mcp_lumifi.env import ICO_ID_STRATEGIES, LedgerEnv, SystemClock
from mcp_lumifi.errors import (
    ArithmeticOverflowError,
    LumiFiError,
    TransferFailedError,
    ValidationError,
)
from mcp_lumifi.storage import InMemoryStorage, JsonFileStorage

logger = get_logger(__name__)

# Errors whose message is safe to hand back to the caller
KNOWN_ERRORS = (LumiFiError, ValidationError, ArithmeticOverflowError, TransferFailedError)


def create_ledger() -> LumiFi:
    """Builds the ledger from configuration. Nobody is authorized outside a signed call."""
    if config.STORAGE_BACKEND == "json":
        storage = JsonFileStorage(config.LEDGER_STATE_DIR)
    else:
        storage = InMemoryStorage()
    env = LedgerEnv(
        storage=storage,
        authorizer=AllowListAuthorizer(),
        assets=InMemoryAssetLedger(config.GENESIS_BALANCES),
        contract_address=config.CONTRACT_ADDRESS,
        clock=SystemClock(),
        ico_id_strategy=ICO_ID_STRATEGIES[config.ICO_ID_STRATEGY],
    )
    return LumiFi(env)


def create_nonce_registry() -> NonceRegistry:
    """Nonces persist next to the ledger records when the JSON backend is used."""
    if config.STORAGE_BACKEND == "json":
        state_dir = Path(config.LEDGER_STATE_DIR)
        state_dir.mkdir(parents=True, exist_ok=True)
        return NonceRegistry(state_dir / "nonces.json")
    return NonceRegistry()


# --- Server Setup ---
mcp = FastMCP(name="LumiFi Ledger Server")
ledger = create_ledger()
nonces = create_nonce_registry()


def signed_ledger(
    operation: str, params: Dict[str, Any], signatures: Dict[str, str]
) -> Tuple[LumiFi, SignatureAuthorizer]:
    """
    The shared ledger, authorizing exactly the accounts that signed this call
    with their current nonce. Call commit() on the returned authorizer once the
    call has succeeded.
    """
    authorizer = SignatureAuthorizer(
        call_message(operation, params), signatures or {}, nonce=params["nonce"], nonces=nonces
    )
    return ledger.as_caller(authorizer), authorizer


def error_message(error: Exception) -> str:
    if isinstance(error, LumiFiError):
        return f"{error.kind} error: {error}"
    if isinstance(error, ValidationError):
        return f"Invalid input: {error}"
    if isinstance(error, ArithmeticOverflowError):
        return f"Arithmetic overflow: {error}"
    return f"Transfer failed: {error}"


def log_operation_error(operation: str, error: Exception, duration: float) -> None:
    """Log operation error with structured information."""
    kind = getattr(error, "kind", type(error).__name__)
    logger.error(f"{operation} failed ({kind}): {error}, duration: {duration:.3f}s")


def log_operation_success(operation: str, details: str, duration: float) -> None:
    logger.info(f"{operation} completed: {details}, duration={duration:.3f}s")




# --- Token Registry Tools ---

@mcp.tool()
async def create_token(
    context: Context,
    owner: str = Field(..., description="Base58 address of the token owner."),
    initial_supply: int = Field(..., description="Initial supply credited to the owner."),
    nonce: int = Field(..., description="Signer's current nonce, as returned by get_nonce."),
    signatures: Dict[str, str] = Field(..., description="Map of signer address to signature of the call."),
) -> str:
    """Creates a token owned by `owner` (replacing any earlier one) and returns its address."""
    start_time = time.time()
    try:
        params = {"owner": owner, "initial_supply": initial_supply, "nonce": nonce}
        lumifi, authorizer = signed_ledger("create_token", params, signatures)
        token_address = lumifi.create_token(owner, initial_supply)
        authorizer.commit()
        log_operation_success("create_token", f"token={token_address}, supply={initial_supply}", time.time() - start_time)
        return json.dumps({"token": str(token_address)})
    except KNOWN_ERRORS as e:
        log_operation_error("create_token", e, time.time() - start_time)
        return error_message(e)
    except Exception as e:
        logger.exception(f"Unexpected error in create_token: {e}")
        return "An unexpected server error occurred."


@mcp.tool()
async def mint(
    context: Context,
    token_address: str = Field(..., description="Address of the token to mint."),
    amount: int = Field(..., description="Amount to mint; negative amounts burn."),
    nonce: int = Field(..., description="Signer's current nonce, as returned by get_nonce."),
    signatures: Dict[str, str] = Field(..., description="Map of signer address to signature of the call."),
) -> str:
    """Mints `amount` of a token to its owner. Only the owner's signature authorizes this."""
    start_time = time.time()
    try:
        params = {"token_address": token_address, "amount": amount, "nonce": nonce}
        lumifi, authorizer = signed_ledger("mint", params, signatures)
        lumifi.mint(token_address, amount)
        authorizer.commit()
        supply = lumifi.total_supply(token_address)
        log_operation_success("mint", f"token={token_address}, amount={amount}", time.time() - start_time)
        return json.dumps({"token": token_address, "total_supply": supply})
    except KNOWN_ERRORS as e:
        log_operation_error("mint", e, time.time() - start_time)
        return error_message(e)
    except Exception as e:
        logger.exception(f"Unexpected error in mint: {e}")
        return "An unexpected server error occurred."


# --- ICO Tools ---

@mcp.tool()
async def start_ico(
    context: Context,
    token: str = Field(..., description="Address of the asset contributions are paid in."),
    target_amount: int = Field(..., description="Fundraising target."),
    deadline: int = Field(..., description="Last accepted contribution time (Unix seconds)."),
) -> str:
    """Opens a sale and returns its identifier as hex."""
    start_time = time.time()
    try:
        ico_id = ledger.start_ico(token, target_amount, deadline)
        log_operation_success("start_ico", f"ico_id={ico_id.hex()}", time.time() - start_time)
        return json.dumps({"ico_id": ico_id.hex()})
    except KNOWN_ERRORS as e:
        log_operation_error("start_ico", e, time.time() - start_time)
        return error_message(e)
    except Exception as e:
        logger.exception(f"Unexpected error in start_ico: {e}")
        return "An unexpected server error occurred."


@mcp.tool()
async def buy_token(
    context: Context,
    ico_id: str = Field(..., description="Hex identifier of the sale."),
    buyer: str = Field(..., description="Address paying the contribution."),
    amount: int = Field(..., description="Contribution amount."),
    nonce: int = Field(..., description="Signer's current nonce, as returned by get_nonce."),
    signatures: Dict[str, str] = Field(..., description="Map of signer address to signature of the call."),
) -> str:
    """Contributes `amount` to a running sale."""
    start_time = time.time()
    try:
        params = {"ico_id": ico_id, "buyer": buyer, "amount": amount, "nonce": nonce}
        lumifi, authorizer = signed_ledger("buy_token", params, signatures)
        lumifi.buy_token(ico_id, buyer, amount)
        authorizer.commit()
        total = lumifi.get_contribution(buyer)
        log_operation_success("buy_token", f"ico_id={ico_id}, buyer={buyer}, amount={amount}", time.time() - start_time)
        return json.dumps({"buyer": buyer, "contribution": total})
    except KNOWN_ERRORS as e:
        log_operation_error("buy_token", e, time.time() - start_time)
        return error_message(e)
    except Exception as e:
        logger.exception(f"Unexpected error in buy_token: {e}")
        return "An unexpected server error occurred."


# --- Withdrawal Tool ---

@mcp.tool()
async def withdraw(
    context: Context,
    token: str = Field(..., description="Address of the asset to withdraw."),
    recipient: str = Field(..., description="Address receiving the funds."),
    amount: int = Field(..., description="Amount to withdraw."),
    nonce: int = Field(..., description="Signer's current nonce, as returned by get_nonce."),
    signatures: Dict[str, str] = Field(..., description="Map of signer address to signature of the call."),
) -> str:
    """Moves `amount` of an asset held by the contract to `recipient`."""
    start_time = time.time()
    try:
        params = {"token": token, "recipient": recipient, "amount": amount, "nonce": nonce}
        lumifi, authorizer = signed_ledger("withdraw", params, signatures)
        lumifi.withdraw(token, recipient, amount)
        authorizer.commit()
        log_operation_success("withdraw", f"token={token}, recipient={recipient}, amount={amount}", time.time() - start_time)
        return json.dumps({"recipient": recipient, "amount": amount, "contract_balance": lumifi.contract_balance(token)})
    except KNOWN_ERRORS as e:
        log_operation_error("withdraw", e, time.time() - start_time)
        return error_message(e)
    except Exception as e:
        logger.exception(f"Unexpected error in withdraw: {e}")
        return "An unexpected server error occurred."


# --- Liquidity Pool Tools ---

@mcp.tool()
async def add_liquidity(
    context: Context,
    pool_symbol: str = Field(..., description="Pool symbol (1-32 chars of [A-Za-z0-9_])."),
    provider: str = Field(..., description="Address providing liquidity."),
    amount_token: int = Field(..., description="Token amount added to the pool."),
    amount_reference: int = Field(..., description="Reference asset amount added to the pool."),
    nonce: int = Field(..., description="Signer's current nonce, as returned by get_nonce."),
    signatures: Dict[str, str] = Field(..., description="Map of signer address to signature of the call."),
) -> str:
    """Adds both amounts to the pool's reserves, creating the pool if needed."""
    start_time = time.time()
    try:
        params = {
            "pool_symbol": pool_symbol,
            "provider": provider,
            "amount_token": amount_token,
            "amount_reference": amount_reference,
            "nonce": nonce,
        }
        lumifi, authorizer = signed_ledger("add_liquidity", params, signatures)
        lumifi.add_liquidity(pool_symbol, provider, amount_token, amount_reference)
        authorizer.commit()
        token_reserve, reference_reserve = lumifi.get_reserves(pool_symbol)
        log_operation_success("add_liquidity", f"pool={pool_symbol}, provider={provider}", time.time() - start_time)
        return json.dumps({"pool": pool_symbol, "token_reserve": token_reserve, "reference_reserve": reference_reserve})
    except KNOWN_ERRORS as e:
        log_operation_error("add_liquidity", e, time.time() - start_time)
        return error_message(e)
    except Exception as e:
        logger.exception(f"Unexpected error in add_liquidity: {e}")
        return "An unexpected server error occurred."


@mcp.tool()
async def swap(
    context: Context,
    pool_symbol: str = Field(..., description="Pool symbol."),
    amount_reference_in: int = Field(..., description="Reference asset amount sold into the pool."),
) -> str:
    """Swaps reference asset for tokens at the constant-product price and returns the token output."""
    start_time = time.time()
    try:
        token_out = ledger.swap(pool_symbol, amount_reference_in)
        token_reserve, reference_reserve = ledger.get_reserves(pool_symbol)
        log_operation_success("swap", f"pool={pool_symbol}, in={amount_reference_in}, out={token_out}", time.time() - start_time)
        return json.dumps({
            "pool": pool_symbol,
            "token_out": token_out,
            "token_reserve": token_reserve,
            "reference_reserve": reference_reserve,
        })
    except KNOWN_ERRORS as e:
        log_operation_error("swap", e, time.time() - start_time)
        return error_message(e)
    except Exception as e:
        logger.exception(f"Unexpected error in swap: {e}")
        return "An unexpected server error occurred."


# --- Views ---

@mcp.tool()
async def get_nonce(context: Context, account: str = Field(..., description="Signer address.")) -> str:
    """Get the nonce the account's next signed call must carry."""
    try:
        return json.dumps({"account": account, "nonce": nonces.current(account)})
    except KNOWN_ERRORS as e:
        logger.error(f"get_nonce failed for {account}: {e}")
        return error_message(e)
    except Exception as e:
        logger.exception(f"Unexpected error in get_nonce: {e}")
        return "An unexpected server error occurred."


@mcp.tool()
async def get_token_info(context: Context, token_address: str = Field(..., description="Token address.")) -> str:
    """Get the supply, balances and owner of a token."""
    try:
        return ledger.get_token(token_address).model_dump_json(indent=2)
    except KNOWN_ERRORS as e:
        logger.error(f"get_token_info failed for {token_address}: {e}")
        return error_message(e)
    except Exception as e:
        logger.exception(f"Unexpected error in get_token_info: {e}")
        return "An unexpected server error occurred."


@mcp.tool()
async def get_ico_info(context: Context, ico_id: str = Field(..., description="Hex ICO identifier.")) -> str:
    """Get the parameters of a sale."""
    try:
        return ledger.get_ico(ico_id).model_dump_json(indent=2)
    except KNOWN_ERRORS as e:
        logger.error(f"get_ico_info failed for {ico_id}: {e}")
        return error_message(e)
    except Exception as e:
        logger.exception(f"Unexpected error in get_ico_info: {e}")
        return "An unexpected server error occurred."


@mcp.tool()
async def get_contribution(context: Context, account: str = Field(..., description="Contributor address.")) -> str:
    """Get an account's cumulative contribution across all sales."""
    try:
        return json.dumps({"account": account, "contribution": ledger.get_contribution(account)})
    except KNOWN_ERRORS as e:
        logger.error(f"get_contribution failed for {account}: {e}")
        return error_message(e)
    except Exception as e:
        logger.exception(f"Unexpected error in get_contribution: {e}")
        return "An unexpected server error occurred."


@mcp.tool()
async def get_pool_reserves(context: Context, pool_symbol: str = Field(..., description="Pool symbol.")) -> str:
    """Get the current reserves of a pool."""
    try:
        token_reserve, reference_reserve = ledger.get_reserves(pool_symbol)
        return json.dumps({"pool": pool_symbol, "token_reserve": token_reserve, "reference_reserve": reference_reserve})
    except KNOWN_ERRORS as e:
        logger.error(f"get_pool_reserves failed for {pool_symbol}: {e}")
        return error_message(e)
    except Exception as e:
        logger.exception(f"Unexpected error in get_pool_reserves: {e}")
        return "An unexpected server error occurred."


@mcp.tool()
async def quote_swap(
    context: Context,
    pool_symbol: str = Field(..., description="Pool symbol."),
    amount_reference_in: int = Field(..., description="Reference asset amount to price."),
) -> str:
    """Tokens a swap of `amount_reference_in` would return now. Does not change the pool."""
    try:
        token_out = ledger.quote_swap(pool_symbol, amount_reference_in)
        return json.dumps({"pool": pool_symbol, "token_out": token_out})
    except KNOWN_ERRORS as e:
        logger.error(f"quote_swap failed for {pool_symbol}: {e}")
        return error_message(e)
    except Exception as e:
        logger.exception(f"Unexpected error in quote_swap: {e}")
        return "An unexpected server error occurred."


def main() -> None:
    logger.info(f"Starting LumiFi Ledger MCP Server (contract {config.CONTRACT_ADDRESS})...")
    try:
        mcp.run(transport="stdio")
    except KeyboardInterrupt:
        logger.info("Server shutdown requested by user")


# --- Main Execution ---
if __name__ == "__main__":
    main()
