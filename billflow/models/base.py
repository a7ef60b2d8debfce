from datetime import datetime
from decimal import Decimal

from billflow.extensions import db


def as_float(value):
    """JSON-friendly money value; Numeric columns come back as Decimal."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return float(value)
    return value


def as_iso(value):
    return value.isoformat() if value else None


class TimestampMixin:
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class SoftDeleteMixin:
    is_delete = db.Column(db.Boolean, default=False, nullable=False, index=True)
