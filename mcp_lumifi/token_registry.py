"""
Token Registry

Issues a token bound to its owning account and lets the owner mint more of it.
A token's identity is its owner's address; the record lives under
DataKey.token(owner).

create_token() overwrites any earlier record of the same owner. AlreadyInitialized
exists in the error taxonomy but is not enforced here.

mint() accepts negative amounts, which burn from the owner's balance and the
total supply. Both values are checked against the signed 128-bit range.
"""
from solders.pubkey import Pubkey

from mcp.server.fastmcp.utilities.logging import get_logger
from mcp_lumifi.env import LedgerEnv
from mcp_lumifi.errors import InvalidAmountError, TokenNotFoundError, UnauthorizedError
from mcp_lumifi.numeric import checked_add, require_i128
from mcp_lumifi.schemas import AccountLike, DataKey, TokenRecord, parse_account

logger = get_logger(__name__)


def can_mint(env: LedgerEnv, token: TokenRecord) -> bool:
    """Capability check: only the recorded owner of a token may mint it."""
    return env.authorizer.is_authorized(parse_account(token.owner))


def create_token(env: LedgerEnv, owner: AccountLike, initial_supply: int) -> Pubkey:
    """Creates (or replaces) the token owned by `owner` and returns its address."""
    owner = parse_account(owner)
    require_i128(initial_supply, "initial_supply")
    logger.info(f"Starting token creation for owner: {owner}")

    env.authorizer.require_auth(owner)

    if initial_supply < 0:
        logger.warning(f"Invalid initial supply: {initial_supply}")
        raise InvalidAmountError(f"Initial supply must be non-negative, got {initial_supply}")

    token = TokenRecord.new(owner, initial_supply)
    env.storage.set(DataKey.token(owner), token)

    logger.info(f"Token successfully created for owner: {owner}")
    return owner


def mint(env: LedgerEnv, token_address: AccountLike, amount: int) -> None:
    token_address = parse_account(token_address)
    require_i128(amount)

    key = DataKey.token(token_address)
    token = env.storage.get(key)
    if token is None:
        logger.warning(f"Mint requested for unknown token: {token_address}")
        raise TokenNotFoundError(f"Token {token_address} not found")

    if not can_mint(env, token):
        logger.warning(f"Mint of {token_address} not authorized by owner {token.owner}")
        raise UnauthorizedError(f"Owner {token.owner} did not authorize minting")

    new_supply = checked_add(token.total_supply, amount)
    new_owner_balance = checked_add(token.balance_of(token.owner), amount)
    token.total_supply = new_supply
    token.balances[token.owner] = new_owner_balance

    env.storage.set(key, token)
    logger.info(f"Minted {amount} of {token_address}; total supply is now {new_supply}")


def get_token(env: LedgerEnv, token_address: AccountLike) -> TokenRecord:
    token = env.storage.get(DataKey.token(token_address))
    if token is None:
        raise TokenNotFoundError(f"Token {token_address} not found")
    return token


def balance(env: LedgerEnv, token_address: AccountLike, account: AccountLike) -> int:
    return get_token(env, token_address).balance_of(account)


def total_supply(env: LedgerEnv, token_address: AccountLike) -> int:
    return get_token(env, token_address).total_supply
