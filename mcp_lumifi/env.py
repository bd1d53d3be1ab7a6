"""
Execution environment of a ledger call.

LedgerEnv bundles the collaborators every entry point consumes: storage,
authorization, asset transfers, the clock, the contract's own custody account
and the strategy used to assign ICO identifiers.
"""
import hashlib
import os
import time
from typing import Callable, Optional

from solders.pubkey import Pubkey

from mcp_lumifi.auth import Authorizer
from mcp_lumifi.numeric import check_u64
from mcp_lumifi.schemas import ICO_ID_LENGTH
from mcp_lumifi.storage import Storage


class SystemClock:
    """Wall-clock seconds since the epoch."""

    def current_time(self) -> int:
        return check_u64(int(time.time()))


class FixedClock:
    """A clock that only moves when told to."""

    def __init__(self, timestamp: int = 0):
        self.timestamp = check_u64(timestamp)

    def current_time(self) -> int:
        return self.timestamp

    def advance(self, seconds: int) -> int:
        self.timestamp = check_u64(self.timestamp + seconds)
        return self.timestamp


# --- ICO identifier strategies ---
# Each takes (token, target_amount, deadline) and returns 32 bytes.

IcoIdStrategy = Callable[[Pubkey, int, int], bytes]


def zero_ico_id(token: Pubkey, target_amount: int, deadline: int) -> bytes:
    """Every sale gets the all-zero id, so a new sale replaces the previous one."""
    return bytes(ICO_ID_LENGTH)


def random_ico_id(token: Pubkey, target_amount: int, deadline: int) -> bytes:
    return os.urandom(ICO_ID_LENGTH)


def derived_ico_id(token: Pubkey, target_amount: int, deadline: int) -> bytes:
    """sha256(token || target_amount as 16-byte signed BE || deadline as 8-byte BE)."""
    digest = hashlib.sha256()
    digest.update(bytes(token))
    digest.update(target_amount.to_bytes(16, "big", signed=True))
    digest.update(deadline.to_bytes(8, "big"))
    return digest.digest()


ICO_ID_STRATEGIES = {
    "zero": zero_ico_id,
    "random": random_ico_id,
    "derived": derived_ico_id,
}


class LedgerEnv:
    def __init__(
        self,
        storage: Storage,
        authorizer: Authorizer,
        assets,
        contract_address: Pubkey,
        clock=None,
        ico_id_strategy: Optional[IcoIdStrategy] = None,
    ):
        self.storage = storage
        self.authorizer = authorizer
        self.assets = assets
        self.contract_address = contract_address
        self.clock = clock or SystemClock()
        self.ico_id_strategy = ico_id_strategy or zero_ico_id

    def with_authorizer(self, authorizer: Authorizer) -> "LedgerEnv":
        """Same collaborators, different authorization context (one per call)."""
        return LedgerEnv(
            storage=self.storage,
            authorizer=authorizer,
            assets=self.assets,
            contract_address=self.contract_address,
            clock=self.clock,
            ico_id_strategy=self.ico_id_strategy,
        )

    def current_time(self) -> int:
        return self.clock.current_time()
