from billflow.extensions import db

from .base import SoftDeleteMixin, TimestampMixin, as_float, as_iso


class CustomerStatus:
    ACTIVE = "Active"
    TRIAL = "Trial"
    LICENSE_EXPIRED = "License Expired"
    FREE = "Free"
    INACTIVE = "Inactive"


class Currency(TimestampMixin, SoftDeleteMixin, db.Model):
    __tablename__ = "currencies"

    id = db.Column(db.Integer, primary_key=True)
    currency_code = db.Column(db.String(3), nullable=False, unique=True)
    currency_name = db.Column(db.String(100), nullable=False)
    currency_symbol = db.Column(db.String(10), nullable=True)
    exchange_rate = db.Column(db.Numeric(12, 6), nullable=False, default=1)

    def to_dict(self):
        return {
            "id": self.id,
            "currencyCode": self.currency_code,
            "currencyName": self.currency_name,
            "currencySymbol": self.currency_symbol,
            "exchangeRate": as_float(self.exchange_rate),
        }


class Customer(TimestampMixin, SoftDeleteMixin, db.Model):
    """
    A tenant of the SaaS product. Customers are never removed; only their
    ``status`` changes as subscriptions start, lapse or get cancelled.
    """

    __tablename__ = "customers"

    id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String(100), nullable=True)
    last_name = db.Column(db.String(100), nullable=True)
    email = db.Column(db.String(255), nullable=False, index=True)
    status = db.Column(db.String(30), nullable=False, default=CustomerStatus.TRIAL, index=True)
    expiry_date = db.Column(db.DateTime, nullable=True)
    currency_id = db.Column(db.Integer, db.ForeignKey("currencies.id"), nullable=True)
    stripe_customer_id = db.Column(db.String(255), nullable=True, index=True)
    package_id = db.Column(db.Integer, db.ForeignKey("packages.id"), nullable=True)

    currency = db.relationship("Currency")

    @property
    def full_name(self):
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    def to_dict(self):
        return {
            "id": self.id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
            "status": self.status,
            "expiryDate": as_iso(self.expiry_date),
            "currencyId": self.currency_id,
            "packageId": self.package_id,
            "stripeCustomerId": self.stripe_customer_id,
            "createdAt": as_iso(self.created_at),
        }
