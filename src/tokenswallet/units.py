"""Exact conversion between human decimal amounts and chain base units.

No floating point: amounts are split on the decimal point and scaled with
integer arithmetic (wei for Ethereum, planck for Substrate).
"""

import re

from tokenswallet.errors import InvalidAmount

_AMOUNT_RE = re.compile(r"^\d+(\.\d+)?$")

ETHER_DECIMALS = 18


def parse_units(human: str, decimals: int) -> int:
    """Parse a decimal string like ``"1.23"`` into integer base units.

    Raises:
        InvalidAmount: If the string is not a plain non-negative decimal or
            carries more fractional digits than the chain can represent.
    """
    if not isinstance(human, str):
        raise InvalidAmount(f"Amount must be a decimal string, got {type(human).__name__}")

    value = human.strip()
    if not _AMOUNT_RE.match(value):
        raise InvalidAmount(f"Amount must be a valid decimal number: {human!r}")

    int_part, _, frac_part = value.partition(".")
    frac_part = frac_part.rstrip("0")
    if len(frac_part) > decimals:
        raise InvalidAmount(
            f"Amount {human} has more than {decimals} decimal places"
        )

    base = 10**decimals
    return int(int_part) * base + int(frac_part.ljust(decimals, "0") or "0")


def is_positive_decimal(human: str) -> bool:
    """Check the amount is a plain decimal string greater than zero.

    Precision is not checked here; that needs the chain's decimals.
    """
    if not isinstance(human, str) or not _AMOUNT_RE.match(human.strip()):
        return False
    return any(ch not in "0." for ch in human.strip())


def parse_positive_units(human: str, decimals: int) -> int:
    """Like ``parse_units`` but rejects zero."""
    value = parse_units(human, decimals)
    if value <= 0:
        raise InvalidAmount("Amount must be greater than 0")
    return value


def format_units(value: int, decimals: int) -> str:
    """Format integer base units as a decimal string with trailing zeros trimmed."""
    sign = "-" if value < 0 else ""
    value = abs(value)
    base = 10**decimals
    integer, remainder = divmod(value, base)
    frac = str(remainder).rjust(decimals, "0").rstrip("0") if decimals else ""
    return f"{sign}{integer}.{frac}" if frac else f"{sign}{integer}"


def normalize_amount(human: str) -> str:
    """Canonical form of a decimal string (``"0.10"`` -> ``"0.1"``, ``"1.0"`` -> ``"1"``)."""
    int_part, _, frac_part = human.strip().partition(".")
    int_part = int_part.lstrip("0") or "0"
    frac_part = frac_part.rstrip("0")
    return f"{int_part}.{frac_part}" if frac_part else int_part
