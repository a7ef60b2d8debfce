"""
Request body schemas.

Clients send camelCase keys; services receive snake_case dicts via
``model_dump``. Unknown keys are ignored, so only the fields declared here
can reach a service.
"""

from decimal import Decimal
from typing import List, Optional

from flask import request
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from billflow.models import BillingCycle, OrderStatus


class RequestModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


def parse_body(schema):
    """Validate the JSON body against ``schema``; pydantic errors become 400s."""
    return schema.model_validate(request.get_json(silent=True) or {})


def _strip(value):
    return value.strip() if isinstance(value, str) else value


class PayNowRequest(RequestModel):
    customer_id: int = Field(gt=0)
    order_id: int = Field(gt=0)
    invoice_id: int = Field(gt=0)
    payment_method_id: Optional[int] = Field(default=None, gt=0)
    auto_renew: bool = True


class PaymentMethodCreateRequest(RequestModel):
    customer_id: int = Field(gt=0)
    payment_method: str = Field(min_length=1, max_length=30)
    name: Optional[str] = None
    card_number: str = Field(min_length=12, max_length=23)
    card_holder_name: str = Field(min_length=1, max_length=150)
    card_expiry_date: Optional[str] = None
    card_cvv: Optional[str] = Field(default=None, max_length=4)
    zip_code: Optional[str] = None
    country: Optional[str] = None
    is_default: bool = False

    @field_validator("payment_method", "card_number", "card_holder_name", mode="before")
    @classmethod
    def strip_strings(cls, value):
        return _strip(value)

    @field_validator("card_number")
    @classmethod
    def digits_only(cls, value):
        digits = value.replace(" ", "").replace("-", "")
        if not digits.isdigit():
            raise ValueError("cardNumber must contain only digits")
        return digits


class PaymentMethodUpdateRequest(RequestModel):
    payment_method: Optional[str] = Field(default=None, min_length=1, max_length=30)
    name: Optional[str] = None
    card_number: Optional[str] = Field(default=None, min_length=12, max_length=23)
    card_holder_name: Optional[str] = None
    card_expiry_date: Optional[str] = None
    card_cvv: Optional[str] = Field(default=None, max_length=4)
    zip_code: Optional[str] = None
    country: Optional[str] = None
    is_default: Optional[bool] = None

    @field_validator("card_number")
    @classmethod
    def digits_only(cls, value):
        if value is None:
            return value
        digits = value.replace(" ", "").replace("-", "")
        if not digits.isdigit():
            raise ValueError("cardNumber must contain only digits")
        return digits

    def changes(self) -> dict:
        data = self.model_dump(exclude_unset=True)
        # the gateway selector is fixed once a method is stored
        data.pop("payment_method", None)
        return data


class OrderUpdateRequest(RequestModel):
    status: Optional[str] = None
    note: Optional[str] = None

    @field_validator("status")
    @classmethod
    def known_status(cls, value):
        if value is not None and value not in OrderStatus.ALL:
            raise ValueError(f"status must be one of: {', '.join(OrderStatus.ALL)}")
        return value

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


class SelectPackageRequest(RequestModel):
    package_id: int = Field(gt=0)


class AddOnSelection(RequestModel):
    module: str
    feature: str


class SelectAddOnsRequest(RequestModel):
    selected_add_ons: List[AddOnSelection] = Field(default_factory=list)


class AutoRenewRequest(RequestModel):
    auto_renew: bool


class CancelSubscriptionRequest(RequestModel):
    cancel_at_period_end: bool = False


class PackageAddOn(RequestModel):
    module: str = Field(min_length=1)
    feature: str = Field(min_length=1)
    monthly_price: float = Field(default=0, ge=0)
    yearly_price: float = Field(default=0, ge=0)
    discount: float = Field(default=0, ge=0, le=100)
    description: Optional[str] = None


class PackageUpdateRequest(RequestModel):
    """Admin edits to a package. Only these fields can change."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=150)
    description: Optional[str] = None
    price_monthly: Optional[Decimal] = Field(default=None, ge=0)
    price_yearly: Optional[Decimal] = Field(default=None, ge=0)
    discount: Optional[Decimal] = Field(default=None, ge=0, le=100)
    billing_cycle: Optional[str] = None
    extra_add_on: Optional[List[PackageAddOn]] = None
    is_active: Optional[bool] = None
    stripe_monthly_price_id: Optional[str] = None
    stripe_yearly_price_id: Optional[str] = None
    stripe_coupon_id: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, value):
        return _strip(value)

    @field_validator("billing_cycle")
    @classmethod
    def known_cycle(cls, value):
        if value is not None and value not in BillingCycle.ALL:
            raise ValueError(f"billingCycle must be one of: {', '.join(BillingCycle.ALL)}")
        return value

    def changes(self) -> dict:
        data = self.model_dump(exclude_unset=True)
        if self.extra_add_on is not None:
            # stored with the same camelCase keys customers select add-ons by
            data["extra_add_on"] = [add_on.model_dump(by_alias=True) for add_on in self.extra_add_on]
        return data


class PackageCreateRequest(PackageUpdateRequest):
    name: str = Field(min_length=1, max_length=150)
    price_monthly: Decimal = Field(default=Decimal("0"), ge=0)
    price_yearly: Decimal = Field(default=Decimal("0"), ge=0)
    discount: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    billing_cycle: str = BillingCycle.MONTHLY
    extra_add_on: List[PackageAddOn] = Field(default_factory=list)
    is_active: bool = True

    def fields(self) -> dict:
        data = self.model_dump()
        data["extra_add_on"] = [add_on.model_dump(by_alias=True) for add_on in self.extra_add_on]
        return data
