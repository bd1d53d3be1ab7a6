"""
Asset-Transfer Collaborator

Moves external assets (the reference asset a sale is paid in, and any token once
it circulates outside the registry) between accounts. The engine only consumes
two operations:

    transfer(asset, source, destination, amount)
    balance_of(asset, account) -> int

A transfer either applies completely or raises TransferFailedError with both
balances untouched.
"""
from typing import Dict, Iterable, Optional, Tuple

from solders.pubkey import Pubkey

from mcp.server.fastmcp.utilities.logging import get_logger
from mcp_lumifi.errors import TransferFailedError
from mcp_lumifi.numeric import I128_MAX
from mcp_lumifi.schemas import AccountLike, parse_account

logger = get_logger(__name__)


class InMemoryAssetLedger:
    """Balances per (asset, account) pair held in memory."""

    def __init__(self, genesis: Optional[Iterable[Tuple[AccountLike, AccountLike, int]]] = None):
        self._balances: Dict[Tuple[Pubkey, Pubkey], int] = {}
        self.transfers = []  # (asset, source, destination, amount) of every applied transfer
        for asset, account, amount in genesis or ():
            self.deposit(asset, account, amount)

    def balance_of(self, asset: AccountLike, account: AccountLike) -> int:
        return self._balances.get((parse_account(asset), parse_account(account)), 0)

    def deposit(self, asset: AccountLike, account: AccountLike, amount: int) -> None:
        """Credits `amount` out of thin air. Used for genesis balances and test setup."""
        if amount < 0:
            raise TransferFailedError(f"Cannot deposit a negative amount: {amount}")
        key = (parse_account(asset), parse_account(account))
        new_balance = self._balances.get(key, 0) + amount
        if new_balance > I128_MAX:
            raise TransferFailedError(f"Deposit would overflow the balance of {key[1]}")
        self._balances[key] = new_balance

    def transfer(self, asset: AccountLike, source: AccountLike, destination: AccountLike, amount: int) -> None:
        asset, source, destination = parse_account(asset), parse_account(source), parse_account(destination)
        if amount < 0:
            raise TransferFailedError(f"Transfer amount must be non-negative, got {amount}")

        source_balance = self.balance_of(asset, source)
        if source_balance < amount:
            logger.warning(f"Transfer of {amount} {asset} from {source} rejected: balance {source_balance}")
            raise TransferFailedError(
                f"Insufficient {asset} balance in {source}: required {amount}, available {source_balance}"
            )
        destination_balance = self.balance_of(asset, destination)
        if source != destination and destination_balance + amount > I128_MAX:
            raise TransferFailedError(f"Transfer would overflow the balance of {destination}")

        self._balances[(asset, source)] = source_balance - amount
        self._balances[(asset, destination)] = self.balance_of(asset, destination) + amount
        self.transfers.append((asset, source, destination, amount))
        logger.debug(f"Transferred {amount} of {asset} from {source} to {destination}")
