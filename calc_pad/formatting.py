from decimal import Context, Decimal, ROUND_HALF_UP

from calc_pad.units import Dimension, Value

# --- Display Configuration ---
DISPLAY_DECIMALS = 3
# Whole numbers below this print without decimals
INTEGER_DISPLAY_LIMIT = 1e15

_QUANTUM = Decimal(1).scaleb(-DISPLAY_DECIMALS)
# Wide enough for any finite float written out in full
_CONTEXT = Context(prec=400)


def format_number(magnitude: float) -> str:
    """Render a magnitude with thousands separators, e.g. ``1,234.5``."""
    magnitude = float(magnitude)
    if magnitude == 0:
        return "0"
    if magnitude.is_integer() and abs(magnitude) < INTEGER_DISPLAY_LIMIT:
        return f"{int(magnitude):,}"

    rounded = Decimal(repr(magnitude)).quantize(
        _QUANTUM, rounding=ROUND_HALF_UP, context=_CONTEXT
    )
    text = f"{rounded:,}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    if text == "-0":
        return "0"
    return text


def format_value(value: Value) -> str:
    """Render a value with its unit's display name, e.g. ``931,322.575 GiB``."""
    number = format_number(value.magnitude)
    if value.unit is None:
        return number
    if value.dimension is Dimension.PERCENTAGE:
        return f"{number}%"
    return f"{number} {value.unit.name}"
