"""
Pydantic Data Models for the LumiFi Ledger

This module defines the persistent records of the ledger engine and the
discriminated key space they are stored under. Pydantic enforces the numeric
ranges of every field, so a record that could not exist on-chain (a supply
beyond 128 bits, a negative reserve, a malformed account) can never be built
or loaded.

Key Components:
- DataKey: discriminated storage key (Token, ICO, User, LiquidityPool)
- TokenRecord: token identity, total supply and per-account balances
- IcoRecord: sale parameters (token, target amount, deadline)
- Contribution: global per-account contribution counter
- PoolReserves: paired reserves of one constant-product pool

Accounts are ed25519 public keys. Records hold their base58 form so that they
serialize to plain JSON; the engine API accepts solders Pubkey values.
"""
import re
from enum import Enum
from typing import Annotated, Dict, Union

from pydantic import BaseModel, ConfigDict, Field, StrictInt, field_validator
from solders.pubkey import Pubkey

from mcp_lumifi.errors import ValidationError
from mcp_lumifi.numeric import I128_MAX, I128_MIN, U64_MAX

I128 = Annotated[StrictInt, Field(ge=I128_MIN, le=I128_MAX)]
NonNegativeI128 = Annotated[StrictInt, Field(ge=0, le=I128_MAX)]
U64 = Annotated[StrictInt, Field(ge=0, le=U64_MAX)]

ICO_ID_LENGTH = 32
SYMBOL_PATTERN = re.compile(r"^[A-Za-z0-9_]{1,32}$")

AccountLike = Union[Pubkey, str]


def parse_account(value: AccountLike) -> Pubkey:
    """Parses a base58 account string (or passes a Pubkey through)."""
    if isinstance(value, Pubkey):
        return value
    try:
        return Pubkey.from_string(str(value).strip())
    except (ValueError, TypeError) as e:
        raise ValidationError(f"Invalid account address '{value}': {e}")


def account_str(value: AccountLike) -> str:
    return str(parse_account(value))


def validate_symbol(symbol: str) -> str:
    """Pool symbols are 1-32 characters of [A-Za-z0-9_]."""
    if not isinstance(symbol, str) or not SYMBOL_PATTERN.match(symbol):
        raise ValidationError(f"Invalid pool symbol: {symbol!r}")
    return symbol


def parse_ico_id(value: Union[bytes, str]) -> bytes:
    """Accepts raw 32 bytes or their 64-character hex rendering."""
    if isinstance(value, str):
        try:
            value = bytes.fromhex(value)
        except ValueError:
            raise ValidationError(f"ICO id must be hex encoded, got {value!r}")
    if not isinstance(value, (bytes, bytearray)) or len(value) != ICO_ID_LENGTH:
        raise ValidationError(f"ICO id must be exactly {ICO_ID_LENGTH} bytes")
    return bytes(value)


class DataKeyKind(str, Enum):
    token = "Token"
    ico = "ICO"
    user = "User"
    liquidity_pool = "LiquidityPool"


class DataKey(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: DataKeyKind
    value: str

    @classmethod
    def token(cls, owner: AccountLike) -> "DataKey":
        return cls(kind=DataKeyKind.token, value=account_str(owner))

    @classmethod
    def ico(cls, ico_id: Union[bytes, str]) -> "DataKey":
        return cls(kind=DataKeyKind.ico, value=parse_ico_id(ico_id).hex())

    @classmethod
    def user(cls, account: AccountLike) -> "DataKey":
        return cls(kind=DataKeyKind.user, value=account_str(account))

    @classmethod
    def liquidity_pool(cls, symbol: str) -> "DataKey":
        return cls(kind=DataKeyKind.liquidity_pool, value=validate_symbol(symbol))

    @property
    def slot(self) -> str:
        """Flat name of the storage slot, e.g. 'LiquidityPool_XLM_LUMI'."""
        return f"{self.kind.value}_{self.value}"


def _account_field(value) -> str:
    try:
        return account_str(value)
    except ValidationError as e:
        raise ValueError(str(e))


class TokenRecord(BaseModel):
    total_supply: I128
    balances: Dict[str, I128]
    owner: str

    @field_validator("owner", mode="before")
    @classmethod
    def _check_owner(cls, value):
        return _account_field(value)

    @field_validator("balances", mode="before")
    @classmethod
    def _check_balances(cls, value):
        return {_account_field(account): amount for account, amount in dict(value).items()}

    @classmethod
    def new(cls, owner: AccountLike, initial_supply: int) -> "TokenRecord":
        owner = account_str(owner)
        return cls(total_supply=initial_supply, balances={owner: initial_supply}, owner=owner)

    def balance_of(self, account: AccountLike) -> int:
        return self.balances.get(account_str(account), 0)


class IcoRecord(BaseModel):
    ico_id: str = Field(description="Hex rendering of the 32-byte sale identifier")
    token: str
    target_amount: I128
    deadline: U64

    @field_validator("ico_id", mode="before")
    @classmethod
    def _check_ico_id(cls, value):
        try:
            return parse_ico_id(value).hex()
        except ValidationError as e:
            raise ValueError(str(e))

    @field_validator("token", mode="before")
    @classmethod
    def _check_token(cls, value):
        return _account_field(value)


class Contribution(BaseModel):
    account: str
    amount: I128 = 0

    @field_validator("account", mode="before")
    @classmethod
    def _check_account(cls, value):
        return _account_field(value)


class PoolReserves(BaseModel):
    symbol: str
    token_reserve: NonNegativeI128 = 0
    reference_reserve: NonNegativeI128 = 0

    @field_validator("symbol")
    @classmethod
    def _check_symbol(cls, value):
        try:
            return validate_symbol(value)
        except ValidationError as e:
            raise ValueError(str(e))

    @property
    def product(self) -> int:
        return self.token_reserve * self.reference_reserve


RECORD_TYPES = {
    DataKeyKind.token: TokenRecord,
    DataKeyKind.ico: IcoRecord,
    DataKeyKind.user: Contribution,
    DataKeyKind.liquidity_pool: PoolReserves,
}
