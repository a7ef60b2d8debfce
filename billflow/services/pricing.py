from dataclasses import dataclass, field
from decimal import Decimal
from typing import List

from billflow.models import BillingCycle
from billflow.utils.money import format_percent, round_money, to_decimal


@dataclass
class PriceBreakdown:
    items: List[dict] = field(default_factory=list)
    sub_total: Decimal = Decimal("0.00")
    discount: Decimal = Decimal("0.00")
    total: Decimal = Decimal("0.00")
    discount_type: str = "0%"


def is_annual(billing_cycle) -> bool:
    return (billing_cycle or "").strip().lower() == BillingCycle.ANNUAL.lower()


def _line(description, price, discount_percent):
    # lines are printed gross; the discount is taken off the totals only
    return {
        "description": description,
        "quantity": 1,
        "amount": float(round_money(price)),
        "subTotal": float(round_money(price)),
        "discountType": format_percent(discount_percent),
        "vatRate": "",
        "vatType": "",
    }


def price_selection(package, add_ons) -> PriceBreakdown:
    """
    Price a package plus add-ons for the package's billing cycle.

    Each line is discounted by its own percentage:
    ``sub_total = sum(price)``, ``discount = sum(price * pct / 100)``,
    ``total = sub_total - discount``, each rounded half-up to cents.
    """
    annual = is_annual(package.billing_cycle)

    package_price = to_decimal(package.price_yearly if annual else package.price_monthly)
    package_pct = to_decimal(package.discount)

    items = [_line(f"{package.name} - {package.billing_cycle}", package_price, package_pct)]
    sub_total = package_price
    discount = package_price * package_pct / 100

    for add_on in add_ons or []:
        price = to_decimal(add_on.get("yearlyPrice") if annual else add_on.get("monthlyPrice"))
        pct = to_decimal(add_on.get("discount"))
        label = add_on.get("feature") or add_on.get("module")
        items.append(_line(f"Add-on: {label}", price, pct))
        sub_total += price
        discount += price * pct / 100

    sub_total = round_money(sub_total)
    discount = round_money(discount)
    return PriceBreakdown(
        items=items,
        sub_total=sub_total,
        discount=discount,
        total=round_money(sub_total - discount),
        discount_type=format_percent(package_pct),
    )
