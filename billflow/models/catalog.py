from billflow.extensions import db

from .base import SoftDeleteMixin, TimestampMixin, as_float, as_iso


class BillingCycle:
    MONTHLY = "Monthly"
    ANNUAL = "Annual"

    ALL = (MONTHLY, ANNUAL)


class Package(TimestampMixin, SoftDeleteMixin, db.Model):
    """
    A sellable plan.

    ``extra_add_on`` is the list of optional add-ons customers may pick, each a
    dict with ``module``, ``feature``, ``monthlyPrice``, ``yearlyPrice``,
    ``discount`` and ``description``.
    """

    __tablename__ = "packages"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text, nullable=True)
    price_monthly = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    price_yearly = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    billing_cycle = db.Column(db.String(20), nullable=False, default=BillingCycle.MONTHLY)
    extra_add_on = db.Column(db.JSON, nullable=False, default=list)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    stripe_monthly_price_id = db.Column(db.String(255), nullable=True)
    stripe_yearly_price_id = db.Column(db.String(255), nullable=True)
    stripe_coupon_id = db.Column(db.String(255), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "priceMonthly": as_float(self.price_monthly),
            "priceYearly": as_float(self.price_yearly),
            "discount": as_float(self.discount),
            "billingCycle": self.billing_cycle,
            "extraAddOn": self.extra_add_on or [],
            "isActive": self.is_active,
            "stripeMonthlyPriceId": self.stripe_monthly_price_id,
            "stripeYearlyPriceId": self.stripe_yearly_price_id,
            "stripeCouponId": self.stripe_coupon_id,
            "createdAt": as_iso(self.created_at),
        }


class PackageModule(TimestampMixin, SoftDeleteMixin, db.Model):
    __tablename__ = "package_modules"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False, unique=True)
    # [{"name": "...", "price": 0}]
    included_features = db.Column(db.JSON, nullable=False, default=list)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "includedFeatures": self.included_features or [],
        }


class CustomerPackage(TimestampMixin, SoftDeleteMixin, db.Model):
    """The customer's current package selection plus a snapshot of chosen add-ons."""

    __tablename__ = "customer_packages"

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    package_id = db.Column(db.Integer, db.ForeignKey("packages.id"), nullable=False)
    add_ons = db.Column(db.JSON, nullable=False, default=list)

    package = db.relationship("Package")

    def to_dict(self):
        return {
            "id": self.id,
            "customerId": self.customer_id,
            "packageId": self.package_id,
            "addOns": self.add_ons or [],
            "updatedAt": as_iso(self.updated_at),
        }
