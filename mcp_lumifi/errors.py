"""
Custom Exception Classes for the LumiFi Ledger

This module defines the error taxonomy of the ledger engine. Every contract-level
failure is a subclass of LumiFiError and carries a stable numeric code and kind
name, so that service layers can report failures without leaking internals.

Contract Error Kinds:
- Unauthorized (1): caller cannot prove control of the required account
- InsufficientFunds (2): withdrawal or swap would exceed available balance/reserve
- ICOExpired (3): contribution attempted after the ICO deadline
- AlreadyInitialized (4): reserved for duplicate token creation, never raised
- InvalidAmount (5): a quantity argument is non-positive where positivity is required
- TokenNotFound (6): lookup by token address or pool symbol fails
- ICONotFound (7): lookup by ICO identifier fails

Host Errors:
- ArithmeticOverflowError: a bounded-width integer operation left its range
- TransferFailedError: the asset-transfer collaborator rejected a movement
- ConfigurationError: invalid environment configuration
- ValidationError: malformed external input (keys, symbols, identifiers)

All errors are terminal for the call that raised them. The engine never retries;
the caller resubmits with corrected input.
"""


class LumiFiError(Exception):
    """Base class for contract-level failures."""

    code: int = 0
    kind: str = "LumiFiError"


class UnauthorizedError(LumiFiError):
    """Raised when the invoking context cannot prove control of an account."""

    code = 1
    kind = "Unauthorized"


class InsufficientFundsError(LumiFiError):
    """Raised when a withdrawal or swap would exceed the available balance or reserve."""

    code = 2
    kind = "InsufficientFunds"


class ICOExpiredError(LumiFiError):
    """Raised when a contribution arrives after the ICO deadline."""

    code = 3
    kind = "ICOExpired"


class AlreadyInitializedError(LumiFiError):
    """Reserved for duplicate token creation. No operation raises it."""

    code = 4
    kind = "AlreadyInitialized"


class InvalidAmountError(LumiFiError):
    """Raised when a quantity argument is out of its accepted range."""

    code = 5
    kind = "InvalidAmount"


class TokenNotFoundError(LumiFiError):
    """Raised when a token record or liquidity pool does not exist."""

    code = 6
    kind = "TokenNotFound"


class ICONotFoundError(LumiFiError):
    """Raised when no ICO record exists for an identifier."""

    code = 7
    kind = "ICONotFound"


CONTRACT_ERRORS = (
    UnauthorizedError,
    InsufficientFundsError,
    ICOExpiredError,
    AlreadyInitializedError,
    InvalidAmountError,
    TokenNotFoundError,
    ICONotFoundError,
)


def error_for_code(code: int) -> type:
    """Maps a numeric contract error code back to its exception class."""
    for error_cls in CONTRACT_ERRORS:
        if error_cls.code == code:
            return error_cls
    raise KeyError(f"Unknown contract error code: {code}")


class ArithmeticOverflowError(Exception):
    """Raised when a checked 128-bit or 64-bit operation overflows. Aborts the call."""


class TransferFailedError(Exception):
    """Raised if the asset-transfer collaborator cannot move the requested amount."""


class ConfigurationError(Exception):
    """Raised when there are configuration-related errors."""


class ValidationError(Exception):
    """Raised when input validation fails."""
