"""
Constant-Product Liquidity Pools

Each pool symbol maps to a pair of reserves (token, reference asset). Liquidity
is pooled without shares: add_liquidity() only grows both reserves. swap() sells
the reference asset into the pool for tokens using the fee-less constant-product
rule

    token_out = (amount_in * token_reserve) // (reference_reserve + amount_in)

Integer division truncates, so every swap rounds in the pool's favour by less
than one unit and token_reserve * reference_reserve never decreases.
"""
from typing import Tuple

from mcp.server.fastmcp.utilities.logging import get_logger
from mcp_lumifi.env import LedgerEnv
from mcp_lumifi.errors import InsufficientFundsError, InvalidAmountError, TokenNotFoundError
from mcp_lumifi.numeric import checked_add, checked_div, checked_mul, checked_sub, require_i128
from mcp_lumifi.schemas import AccountLike, DataKey, PoolReserves, parse_account, validate_symbol

logger = get_logger(__name__)


def compute_swap_output(token_reserve: int, reference_reserve: int, amount_in: int) -> int:
    """Tokens paid out for `amount_in` of the reference asset, before any reserve check."""
    if amount_in == 0:
        return 0
    numerator = checked_mul(amount_in, token_reserve)
    denominator = checked_add(reference_reserve, amount_in)
    return checked_div(numerator, denominator)


def add_liquidity(
    env: LedgerEnv,
    pool_symbol: str,
    provider: AccountLike,
    amount_token: int,
    amount_reference: int,
) -> None:
    pool_symbol = validate_symbol(pool_symbol)
    provider = parse_account(provider)
    require_i128(amount_token, "amount_token")
    require_i128(amount_reference, "amount_reference")

    env.authorizer.require_auth(provider)

    if amount_token <= 0 or amount_reference <= 0:
        logger.warning(f"Invalid liquidity amounts for {pool_symbol}: token={amount_token}, reference={amount_reference}")
        raise InvalidAmountError("Both liquidity amounts must be positive")

    key = DataKey.liquidity_pool(pool_symbol)
    pool = env.storage.get(key) or PoolReserves(symbol=pool_symbol)
    pool.token_reserve = checked_add(pool.token_reserve, amount_token)
    pool.reference_reserve = checked_add(pool.reference_reserve, amount_reference)

    env.storage.set(key, pool)
    logger.info(
        f"{provider} added liquidity to {pool_symbol}: reserves now "
        f"({pool.token_reserve}, {pool.reference_reserve})"
    )


def get_reserves(env: LedgerEnv, pool_symbol: str) -> Tuple[int, int]:
    pool = env.storage.get(DataKey.liquidity_pool(pool_symbol))
    if pool is None:
        raise TokenNotFoundError(f"Liquidity pool {pool_symbol} not found")
    return pool.token_reserve, pool.reference_reserve


def quote_swap(env: LedgerEnv, pool_symbol: str, amount_reference_in: int) -> int:
    """What swap() would pay out right now, without changing the pool."""
    require_i128(amount_reference_in, "amount_reference_in")
    token_reserve, reference_reserve = get_reserves(env, pool_symbol)
    if amount_reference_in < 0:
        raise InvalidAmountError(f"Swap input must not be negative, got {amount_reference_in}")
    return compute_swap_output(token_reserve, reference_reserve, amount_reference_in)


def swap(env: LedgerEnv, pool_symbol: str, amount_reference_in: int) -> int:
    """
    Sells `amount_reference_in` of the reference asset into the pool.

    The pool must exist (TokenNotFoundError) before the input is judged. A zero
    input pays out nothing and leaves the reserves as they are; a negative input
    is rejected with InvalidAmountError.
    """
    pool_symbol = validate_symbol(pool_symbol)
    require_i128(amount_reference_in, "amount_reference_in")

    key = DataKey.liquidity_pool(pool_symbol)
    pool = env.storage.get(key)
    if pool is None:
        logger.warning(f"Swap requested on unknown pool: {pool_symbol}")
        raise TokenNotFoundError(f"Liquidity pool {pool_symbol} not found")

    if amount_reference_in < 0:
        logger.warning(f"Negative swap input for {pool_symbol}: {amount_reference_in}")
        raise InvalidAmountError(f"Swap input must not be negative, got {amount_reference_in}")
    if amount_reference_in == 0:
        logger.debug(f"Zero swap on {pool_symbol}, reserves unchanged")
        return 0

    token_out = compute_swap_output(pool.token_reserve, pool.reference_reserve, amount_reference_in)
    if token_out > pool.token_reserve:
        logger.warning(f"Swap on {pool_symbol} would pay {token_out}, reserve is {pool.token_reserve}")
        raise InsufficientFundsError(f"Pool {pool_symbol} cannot pay out {token_out} tokens")

    new_token_reserve = checked_sub(pool.token_reserve, token_out)
    new_reference_reserve = checked_add(pool.reference_reserve, amount_reference_in)
    pool.token_reserve = new_token_reserve
    pool.reference_reserve = new_reference_reserve

    env.storage.set(key, pool)
    logger.debug(f"Swap on {pool_symbol}: in={amount_reference_in}, out={token_out}")
    logger.info(f"Swapped {amount_reference_in} reference for {token_out} tokens in {pool_symbol}")
    return token_out
