"""
Authorization Collaborator

An authorizer answers one question for the duration of a call: has the invoking
context proven control of this account? require_auth() turns a negative answer
into UnauthorizedError and must run before any state mutation.

- AllowListAuthorizer: a fixed set of accounts (or every account) is authorized.
  Used for trusted in-process callers and tests.
- SignatureAuthorizer: an account is authorized when it supplied a valid ed25519
  signature over the canonical message of the call being made, and that message
  carries the account's current nonce.

Nonces are per-account sequence numbers kept in a NonceRegistry. A signed call
is only accepted with the signer's current nonce, and the nonce advances when
the call succeeds, so a signature can never authorize a second call.
"""
import json
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Set, Union

from solders.pubkey import Pubkey
from solders.signature import Signature

from mcp.server.fastmcp.utilities.logging import get_logger
from mcp_lumifi.errors import UnauthorizedError, ValidationError
from mcp_lumifi.schemas import AccountLike, parse_account

logger = get_logger(__name__)


def call_message(operation: str, params: Mapping[str, Any]) -> bytes:
    """
    Canonical bytes a caller signs to authorize one call.

    Compact JSON with sorted keys; Pubkey and bytes values are rendered as
    base58 and hex respectively. Signed service calls include their `nonce`
    in params.
    """
    def _render(value):
        if isinstance(value, Pubkey):
            return str(value)
        if isinstance(value, (bytes, bytearray)):
            return bytes(value).hex()
        return value

    payload = {"operation": operation, "params": {k: _render(v) for k, v in params.items()}}
    return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")


class NonceRegistry:
    """
    Next expected nonce per account, starting at 0.

    With a path, the registry is loaded from and saved to a JSON file so that
    spent nonces survive a restart.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path is not None else None
        self._nonces: Dict[str, int] = {}
        if self.path is not None and self.path.is_file():
            with open(self.path, "r") as f:
                self._nonces = {account: int(nonce) for account, nonce in json.load(f).items()}
            logger.info(f"Loaded {len(self._nonces)} account nonces from {self.path}")

    def current(self, account: AccountLike) -> int:
        return self._nonces.get(str(parse_account(account)), 0)

    def advance(self, account: AccountLike) -> int:
        account = str(parse_account(account))
        self._nonces[account] = self._nonces.get(account, 0) + 1
        self._save()
        return self._nonces[account]

    def _save(self) -> None:
        if self.path is None:
            return
        tmp_path = self.path.with_suffix(".json.tmp")
        with open(tmp_path, "w") as f:
            json.dump(self._nonces, f, indent=4)
        os.replace(tmp_path, self.path)


class Authorizer(ABC):
    @abstractmethod
    def is_authorized(self, account: Pubkey) -> bool:
        ...

    def require_auth(self, account: AccountLike) -> None:
        account = parse_account(account)
        if not self.is_authorized(account):
            logger.warning(f"Authorization failed for account: {account}")
            raise UnauthorizedError(f"Account {account} did not authorize this call")


class AllowListAuthorizer(Authorizer):
    def __init__(self, accounts: Iterable[AccountLike] = (), allow_all: bool = False):
        self.accounts = {parse_account(a) for a in accounts}
        self.allow_all = allow_all

    def is_authorized(self, account: Pubkey) -> bool:
        return self.allow_all or account in self.accounts

    def grant(self, account: AccountLike) -> None:
        self.accounts.add(parse_account(account))

    def revoke(self, account: AccountLike) -> None:
        self.accounts.discard(parse_account(account))


class SignatureAuthorizer(Authorizer):
    """
    Checks ed25519 signatures over `message`, one per signing account.

    When a NonceRegistry is given, `nonce` must equal the signer's current
    nonce. Accounts that passed the check are remembered; commit() spends
    their nonces once the call has succeeded.
    """

    def __init__(
        self,
        message: bytes,
        signatures: Mapping[AccountLike, Union[Signature, str]],
        nonce: Optional[int] = None,
        nonces: Optional[NonceRegistry] = None,
    ):
        if nonces is not None and nonce is None:
            raise ValidationError("A nonce is required for signed calls")
        self.message = message
        self.nonce = nonce
        self.nonces = nonces
        self.authorized: Set[Pubkey] = set()
        self.signatures: Dict[Pubkey, Signature] = {}
        for account, signature in signatures.items():
            if isinstance(signature, str):
                try:
                    signature = Signature.from_string(signature)
                except ValueError as e:
                    raise ValidationError(f"Invalid signature format for {account}: {e}")
            self.signatures[parse_account(account)] = signature

    def is_authorized(self, account: Pubkey) -> bool:
        signature: Optional[Signature] = self.signatures.get(account)
        if signature is None or not signature.verify(account, self.message):
            return False
        if self.nonces is not None and self.nonces.current(account) != self.nonce:
            logger.warning(f"Stale nonce {self.nonce} for {account}, expected {self.nonces.current(account)}")
            return False
        self.authorized.add(account)
        return True

    def commit(self) -> None:
        """Spends the nonce of every account that authorized the call."""
        if self.nonces is None:
            return
        for account in self.authorized:
            self.nonces.advance(account)
        self.authorized.clear()
