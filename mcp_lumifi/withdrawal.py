"""
Withdrawal Path

The contract is a single custodian: any authorized recipient may pull up to the
contract's current balance of an asset, whichever sales funded it. The balance
is queried live from the asset collaborator, never from a local counter.
"""
from mcp.server.fastmcp.utilities.logging import get_logger
from mcp_lumifi.env import LedgerEnv
from mcp_lumifi.errors import InsufficientFundsError
from mcp_lumifi.numeric import require_i128
from mcp_lumifi.schemas import AccountLike, parse_account

logger = get_logger(__name__)


def withdraw(env: LedgerEnv, token: AccountLike, recipient: AccountLike, amount: int) -> None:
    token = parse_account(token)
    recipient = parse_account(recipient)
    require_i128(amount)

    env.authorizer.require_auth(recipient)

    contract_balance = env.assets.balance_of(token, env.contract_address)
    if amount > contract_balance:
        logger.warning(f"Withdrawal of {amount} {token} by {recipient} exceeds contract balance {contract_balance}")
        raise InsufficientFundsError(f"Requested {amount}, contract holds {contract_balance}")

    env.assets.transfer(token, env.contract_address, recipient, amount)
    logger.info(f"Withdrew {amount} of {token} to {recipient}")
