from datetime import datetime, timedelta, timezone

from dateutil.relativedelta import relativedelta

from billflow.errors import ValidationError
from billflow.models import BillingCycle


def utcnow():
    return datetime.utcnow()


def add_billing_period(start: datetime, billing_cycle: str) -> datetime:
    """End of one billing period starting at ``start``. Month ends clamp (Jan 31 + 1 month = Feb 28/29)."""
    cycle = (billing_cycle or "").strip().lower()
    if cycle == BillingCycle.MONTHLY.lower():
        return start + relativedelta(months=1)
    if cycle == BillingCycle.ANNUAL.lower():
        return start + relativedelta(years=1)
    raise ValidationError(f"Unknown billing cycle: {billing_cycle}")


def add_days(start: datetime, days: int) -> datetime:
    return start + timedelta(days=days)


def from_unix(timestamp):
    """Gateway timestamps are unix seconds; store naive UTC like the rest of the schema."""
    if not timestamp:
        return None
    return datetime.fromtimestamp(int(timestamp), tz=timezone.utc).replace(tzinfo=None)
