"""
Monetary amounts for request pricing.

Prices arrive either as numbers or as ``"$0.0012"``-style strings. Internally
every amount is an integer number of micro-dollars so that repeated
multiplicative adjustments never accumulate floating-point drift; values are
formatted back into the caller's representation at the boundary.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Union

from shared.errors import UnparseablePriceError

Price = Union[str, int, float, Decimal]

MICROS_PER_DOLLAR = 1_000_000
QUOTE_PLACES = 4

_MICROS = Decimal(MICROS_PER_DOLLAR)


class PriceStyle(str, Enum):
    """How a price is represented to callers."""
    STRING = "string"
    NUMERIC = "numeric"


def price_style(price: Price) -> PriceStyle:
    """Return the representation style of a configured price."""
    return PriceStyle.STRING if isinstance(price, str) else PriceStyle.NUMERIC


def parse_price(price: Price) -> int:
    """Convert a price into micro-dollars.

    Accepts ``"$0.001"``, ``"0.001"``, ints, floats and ``Decimal``. Anything
    that is not a finite, non-negative, whole number of micro-dollars raises
    ``UnparseablePriceError``; amounts are never rounded silently.
    """
    if isinstance(price, bool):
        raise UnparseablePriceError(price)

    if isinstance(price, str):
        text = price.strip()
        if text.startswith("$"):
            text = text[1:].strip()
        if not text:
            raise UnparseablePriceError(price)
        try:
            amount = Decimal(text)
        except InvalidOperation:
            raise UnparseablePriceError(price) from None
    elif isinstance(price, Decimal):
        amount = price
    elif isinstance(price, (int, float)):
        amount = Decimal(str(price))
    else:
        raise UnparseablePriceError(price)

    if not amount.is_finite():
        raise UnparseablePriceError(price)
    if amount < 0:
        raise UnparseablePriceError(price, f"Price must not be negative: {price!r}")

    micros = amount * _MICROS
    if micros != micros.to_integral_value():
        raise UnparseablePriceError(price, f"Price is finer than one micro-dollar ($0.000001): {price!r}")
    return int(micros)


def micros_to_decimal(micros: int) -> Decimal:
    """Micro-dollars as an exact dollar ``Decimal``."""
    return Decimal(micros) / _MICROS


def format_micros(micros: int, places: int = QUOTE_PLACES) -> str:
    """Format micro-dollars as ``$x.xxxx`` with a fixed number of decimal places."""
    quantum = Decimal(1).scaleb(-places)
    amount = micros_to_decimal(micros).quantize(quantum, rounding=ROUND_HALF_UP)
    return f"${amount:f}"


def format_price(micros: int, style: PriceStyle) -> Price:
    """Render micro-dollars in the given style, rounded to four decimal places."""
    if style is PriceStyle.STRING:
        return format_micros(micros)
    quantum = Decimal(1).scaleb(-QUOTE_PLACES)
    return float(micros_to_decimal(micros).quantize(quantum, rounding=ROUND_HALF_UP))
