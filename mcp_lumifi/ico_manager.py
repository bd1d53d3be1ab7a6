"""
ICO Manager

Opens time-boxed sales and records contributions to them.

Sale identifiers come from the environment's ICO id strategy. The default
strategy returns the same all-zero identifier for every sale, so opening a new
sale replaces the previous one in storage.

Contributions are counted in one global ledger keyed by contributor
(DataKey.user), not per sale: an account that buys into two sales has a single
running total.
"""
from mcp.server.fastmcp.utilities.logging import get_logger
from mcp_lumifi.env import LedgerEnv
from mcp_lumifi.errors import ICOExpiredError, ICONotFoundError, InvalidAmountError
from mcp_lumifi.numeric import checked_add, require_i128, require_u64
from mcp_lumifi.schemas import (
    AccountLike,
    Contribution,
    DataKey,
    IcoRecord,
    parse_account,
    parse_ico_id,
)

logger = get_logger(__name__)


def start_ico(env: LedgerEnv, token: AccountLike, target_amount: int, deadline: int) -> bytes:
    """Stores a new sale and returns its 32-byte identifier."""
    token = parse_account(token)
    require_i128(target_amount, "target_amount")
    require_u64(deadline, "deadline")

    ico_id = parse_ico_id(env.ico_id_strategy(token, target_amount, deadline))
    key = DataKey.ico(ico_id)
    if env.storage.get(key) is not None:
        logger.info(f"ICO {ico_id.hex()} already exists and will be replaced")

    env.storage.set(key, IcoRecord(ico_id=ico_id, token=token, target_amount=target_amount, deadline=deadline))
    logger.info(f"Started ICO {ico_id.hex()} for token {token}: target={target_amount}, deadline={deadline}")
    return ico_id


def buy_token(env: LedgerEnv, ico_id, buyer: AccountLike, amount: int) -> None:
    """
    Contributes `amount` of the sale's asset from `buyer` to the contract.

    Raises:
        UnauthorizedError: buyer did not authorize the call
        InvalidAmountError: amount <= 0
        ICONotFoundError: no sale under ico_id
        ICOExpiredError: the ledger time is past the sale deadline
        TransferFailedError: the asset collaborator rejected the payment
    """
    ico_id = parse_ico_id(ico_id)
    buyer = parse_account(buyer)
    require_i128(amount)

    env.authorizer.require_auth(buyer)
    if amount <= 0:
        logger.warning(f"Invalid contribution amount from {buyer}: {amount}")
        raise InvalidAmountError(f"Contribution must be positive, got {amount}")

    ico = env.storage.get(DataKey.ico(ico_id))
    if ico is None:
        logger.warning(f"ICO not found: {ico_id.hex()}")
        raise ICONotFoundError(f"ICO {ico_id.hex()} not found")

    now = env.current_time()
    if now > ico.deadline:
        logger.warning(f"ICO {ico_id.hex()} expired at {ico.deadline}, current time {now}")
        raise ICOExpiredError(f"ICO {ico_id.hex()} ended at {ico.deadline}")

    user_key = DataKey.user(buyer)
    contribution = env.storage.get(user_key) or Contribution(account=buyer)
    new_total = checked_add(contribution.amount, amount)

    # the ledger entry is only written once the payment has gone through
    env.assets.transfer(ico.token, buyer, env.contract_address, amount)

    contribution.amount = new_total
    env.storage.set(user_key, contribution)
    logger.info(f"{buyer} contributed {amount} to ICO {ico_id.hex()}; cumulative contribution {new_total}")


def get_ico(env: LedgerEnv, ico_id) -> IcoRecord:
    ico = env.storage.get(DataKey.ico(ico_id))
    if ico is None:
        raise ICONotFoundError(f"ICO {parse_ico_id(ico_id).hex()} not found")
    return ico


def get_contribution(env: LedgerEnv, account: AccountLike) -> int:
    contribution = env.storage.get(DataKey.user(account))
    return contribution.amount if contribution is not None else 0
