"""
Bounded-width integer arithmetic.

Ledger quantities are signed 128-bit integers and timestamps are unsigned 64-bit
integers. Python integers are unbounded, so every mutation goes through the
checked helpers below; leaving the range raises ArithmeticOverflowError and
aborts the call before anything is written.
"""
from mcp_lumifi.errors import ArithmeticOverflowError, ValidationError

I128_MIN = -(2**127)
I128_MAX = 2**127 - 1
U64_MAX = 2**64 - 1


def check_i128(value: int) -> int:
    """Returns value unchanged if it fits a signed 128-bit integer."""
    if value < I128_MIN or value > I128_MAX:
        raise ArithmeticOverflowError(f"i128 overflow: {value}")
    return value


def check_u64(value: int) -> int:
    """Returns value unchanged if it fits an unsigned 64-bit integer."""
    if value < 0 or value > U64_MAX:
        raise ArithmeticOverflowError(f"u64 overflow: {value}")
    return value


def checked_add(a: int, b: int) -> int:
    return check_i128(a + b)


def checked_sub(a: int, b: int) -> int:
    return check_i128(a - b)


def checked_mul(a: int, b: int) -> int:
    return check_i128(a * b)


def checked_div(a: int, b: int) -> int:
    """
    Integer division truncating toward zero, as fixed-width hardware division does.

    For two non-negative operands this is floor division.
    """
    if b == 0:
        raise ArithmeticOverflowError("i128 division by zero")
    quotient = abs(a) // abs(b)
    if (a < 0) != (b < 0):
        quotient = -quotient
    return check_i128(quotient)


def require_i128(value, name: str = "amount") -> int:
    """Rejects call arguments that are not integers representable as i128."""
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer, got {type(value).__name__}")
    if value < I128_MIN or value > I128_MAX:
        raise ValidationError(f"{name} does not fit a signed 128-bit integer: {value}")
    return value


def require_u64(value, name: str = "timestamp") -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer, got {type(value).__name__}")
    if value < 0 or value > U64_MAX:
        raise ValidationError(f"{name} does not fit an unsigned 64-bit integer: {value}")
    return value
