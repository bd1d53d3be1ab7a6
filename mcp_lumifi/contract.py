"""
LumiFi contract entry points.

LumiFi wraps a LedgerEnv and exposes the seven stable entry points of the
ledger (create_token, mint, start_ico, buy_token, withdraw, add_liquidity,
swap) together with read-only views. Each call runs to completion against the
environment's collaborators; every precondition is checked before the first
storage write, so a failed call leaves storage unchanged.

Example:
    >>> env = LedgerEnv(InMemoryStorage(), AllowListAuthorizer(allow_all=True),
    ...                 InMemoryAssetLedger(), contract_address=Keypair().pubkey())
    >>> lumifi = LumiFi(env)
    >>> lumifi.add_liquidity("LUMI", provider, 1000, 1000)
    >>> lumifi.swap("LUMI", 100)
    90
"""
from typing import Tuple

from solders.pubkey import Pubkey

from mcp_lumifi import ico_manager, liquidity_pool, token_registry, withdrawal
from mcp_lumifi.auth import Authorizer
from mcp_lumifi.env import LedgerEnv
from mcp_lumifi.schemas import AccountLike, IcoRecord, TokenRecord


class LumiFi:
    def __init__(self, env: LedgerEnv):
        self.env = env

    def as_caller(self, authorizer: Authorizer) -> "LumiFi":
        """Returns a view of the same ledger that authorizes calls with `authorizer`."""
        return LumiFi(self.env.with_authorizer(authorizer))

    @property
    def address(self) -> Pubkey:
        return self.env.contract_address

    # --- Token Registry ---

    def create_token(self, owner: AccountLike, initial_supply: int) -> Pubkey:
        return token_registry.create_token(self.env, owner, initial_supply)

    def mint(self, token_address: AccountLike, amount: int) -> None:
        token_registry.mint(self.env, token_address, amount)

    # --- ICO Manager ---

    def start_ico(self, token: AccountLike, target_amount: int, deadline: int) -> bytes:
        return ico_manager.start_ico(self.env, token, target_amount, deadline)

    def buy_token(self, ico_id, buyer: AccountLike, amount: int) -> None:
        ico_manager.buy_token(self.env, ico_id, buyer, amount)

    # --- Withdrawal ---

    def withdraw(self, token: AccountLike, recipient: AccountLike, amount: int) -> None:
        withdrawal.withdraw(self.env, token, recipient, amount)

    # --- Liquidity Pool ---

    def add_liquidity(self, pool_symbol: str, provider: AccountLike, amount_token: int, amount_reference: int) -> None:
        liquidity_pool.add_liquidity(self.env, pool_symbol, provider, amount_token, amount_reference)

    def swap(self, pool_symbol: str, amount_reference_in: int) -> int:
        return liquidity_pool.swap(self.env, pool_symbol, amount_reference_in)

    # --- Views ---

    def get_token(self, token_address: AccountLike) -> TokenRecord:
        return token_registry.get_token(self.env, token_address)

    def balance(self, token_address: AccountLike, account: AccountLike) -> int:
        return token_registry.balance(self.env, token_address, account)

    def total_supply(self, token_address: AccountLike) -> int:
        return token_registry.total_supply(self.env, token_address)

    def get_ico(self, ico_id) -> IcoRecord:
        return ico_manager.get_ico(self.env, ico_id)

    def get_contribution(self, account: AccountLike) -> int:
        return ico_manager.get_contribution(self.env, account)

    def get_reserves(self, pool_symbol: str) -> Tuple[int, int]:
        return liquidity_pool.get_reserves(self.env, pool_symbol)

    def quote_swap(self, pool_symbol: str, amount_reference_in: int) -> int:
        return liquidity_pool.quote_swap(self.env, pool_symbol, amount_reference_in)

    def contract_balance(self, asset: AccountLike) -> int:
        return self.env.assets.balance_of(asset, self.env.contract_address)
