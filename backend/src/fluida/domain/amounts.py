"""
Token amount conversion between raw on-chain units and decimal values.

SPL token balances are reported as integer strings in the token's smallest
unit (6 decimals for USDC). Conversion uses Decimal with enough precision
for the full integer so large balances never lose digits.
"""

import re
from decimal import Decimal, localcontext

from fluida.errors import ParseError

_RAW_AMOUNT_PATTERN = re.compile(r"^-?\d+$")


def parse_raw_amount(raw_amount: int | str) -> int:
    """
    Parse a raw token amount into an integer.

    Args:
        raw_amount: Integer or integer string as returned by the RPC node

    Raises:
        ParseError: If the value is not an integer
    """
    if isinstance(raw_amount, bool):
        raise ParseError(f"Invalid raw token amount: {raw_amount!r}")
    if isinstance(raw_amount, int):
        return raw_amount
    if isinstance(raw_amount, str):
        candidate = raw_amount.strip()
        if _RAW_AMOUNT_PATTERN.match(candidate):
            return int(candidate)
    raise ParseError(f"Invalid raw token amount: {raw_amount!r}")


def convert_token_amount(raw_amount: int | str, decimals: int) -> Decimal:
    """
    Convert a raw token amount to its decimal value.

    Computes ``raw_amount / 10**decimals`` exactly.

    Example:
        >>> convert_token_amount("100000000", 6)
        Decimal('100.000000')

    Raises:
        ParseError: If the raw amount is malformed or decimals is negative
    """
    value = parse_raw_amount(raw_amount)
    if isinstance(decimals, bool) or not isinstance(decimals, int) or decimals < 0:
        raise ParseError(f"Invalid token decimals: {decimals!r}")

    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, len(str(abs(value))) + 1)
        return Decimal(value).scaleb(-decimals)
