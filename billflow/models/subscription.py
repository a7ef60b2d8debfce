from datetime import datetime

from billflow.extensions import db

from .base import SoftDeleteMixin, TimestampMixin, as_iso


class SubscriptionStatus:
    ACTIVE = "active"
    CANCELLED = "cancelled"
    PAST_DUE = "past_due"


class Subscription(TimestampMixin, SoftDeleteMixin, db.Model):
    __tablename__ = "subscriptions"

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    customer_package_id = db.Column(db.Integer, db.ForeignKey("customer_packages.id"), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default=SubscriptionStatus.ACTIVE, index=True)
    start_date = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    end_date = db.Column(db.DateTime, nullable=False)
    auto_renew = db.Column(db.Boolean, nullable=False, default=True)
    # gateway-side subscription id, when the plan is billed by the gateway
    subscription_id = db.Column(db.String(255), nullable=True, index=True)
    currency_id = db.Column(db.Integer, db.ForeignKey("currencies.id"), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "customerId": self.customer_id,
            "customerPackageId": self.customer_package_id,
            "status": self.status,
            "startDate": as_iso(self.start_date),
            "endDate": as_iso(self.end_date),
            "autoRenew": self.auto_renew,
            "subscriptionId": self.subscription_id,
            "currencyId": self.currency_id,
        }
