from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")


def to_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    # str() first so floats like 0.1 don't carry binary noise
    return Decimal(str(value))


def round_money(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount) -> int:
    """``90.5`` -> ``9050``."""
    return int((to_decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(cents) -> Decimal:
    return round_money(Decimal(int(cents)) / 100)


def format_percent(value) -> str:
    """Discount label stored on orders/invoice lines, e.g. ``10%`` or ``12.5%``."""
    number = to_decimal(value).normalize()
    text = format(number, "f")
    return f"{text}%"
