"""Decimal-aware scaling between human amounts and ledger integers.

Every amount crossing the ledger boundary is an integer scaled by the token's
declared decimals. Conversions here run in a local Decimal context wide enough
for uint256 so that 18-decimal balances never lose digits.
"""

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, DecimalException, localcontext

from bitres.models import ZERO

# uint256 max has 78 digits
_LEDGER_PRECISION = 80
# Larger magnitudes cannot be a ledger amount and would overflow Decimal scaling
_MAX_ADJUSTED_EXPONENT = 77


def parse_amount(value: object) -> Decimal | None:
    """Parse user input into a finite Decimal, or None if it is not a number.

    Accepts str, int and Decimal. Floats are rejected to keep binary rounding
    out of monetary values. Empty strings, NaN/Infinity and magnitudes no
    uint256 amount could reach (e.g. "1e1000000") yield None.
    """
    if value is None or isinstance(value, (bool, float)):
        return None
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, int):
        amount = Decimal(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            amount = Decimal(text)
        except DecimalException:
            return None
    else:
        return None
    if not amount.is_finite() or amount.adjusted() > _MAX_ADJUSTED_EXPONENT:
        return None
    return amount


def to_base_units(amount: Decimal | str | int, decimals: int) -> int:
    """Scale a human amount to ledger units, truncating extra precision.

    Truncation always rounds DOWN so a scaled amount never exceeds what the
    user typed (and therefore never exceeds a balance they were shown).

    Raises:
        ValueError: If the amount is not a finite number or is negative.
    """
    parsed = parse_amount(amount)
    if parsed is None:
        raise ValueError(f"Invalid amount: {amount!r}")
    if parsed < 0:
        raise ValueError(f"Amount must be non-negative: {amount!r}")
    with localcontext() as ctx:
        ctx.prec = _LEDGER_PRECISION
        return int(parsed.scaleb(decimals).to_integral_value(rounding=ROUND_DOWN))


def from_base_units(value: int, decimals: int) -> Decimal:
    """Scale ledger units back to a human Decimal without rounding."""
    with localcontext() as ctx:
        ctx.prec = _LEDGER_PRECISION
        return Decimal(value).scaleb(-decimals)


def safe_div(numerator: Decimal, denominator: Decimal) -> Decimal:
    """Divide, returning zero instead of raising when the denominator is zero."""
    if denominator == 0:
        return ZERO
    return numerator / denominator


def format_amount(value: Decimal, places: int) -> str:
    """Render a Decimal with a fixed number of places (half-up), e.g. '181.36'."""
    quantum = Decimal(1).scaleb(-places)
    with localcontext() as ctx:
        ctx.prec = _LEDGER_PRECISION
        return f"{value.quantize(quantum, rounding=ROUND_HALF_UP):f}"


def quantize_down(value: Decimal, places: int) -> Decimal:
    """Truncate a Decimal to ``places`` fractional digits."""
    quantum = Decimal(1).scaleb(-places)
    with localcontext() as ctx:
        ctx.prec = _LEDGER_PRECISION
        return value.quantize(quantum, rounding=ROUND_DOWN)
