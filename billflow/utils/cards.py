import re

from billflow.errors import ValidationError

EXPIRY_PATTERN = re.compile(r"(\d{2})/?(\d{2})")


def parse_expiry(expiry: str):
    """
    Parse ``MM/YY`` or ``MMYY`` into ``(month, year)`` with a four-digit year.

    Raises ``ValidationError`` for anything else, including months outside
    01-12.
    """
    match = EXPIRY_PATTERN.fullmatch((expiry or "").strip())
    if not match:
        raise ValidationError("Invalid card expiry date format. Expected MM/YY")

    month = int(match.group(1))
    year = 2000 + int(match.group(2))
    if month < 1 or month > 12:
        raise ValidationError("Invalid card expiry month")
    return month, year
