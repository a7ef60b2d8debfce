from datetime import datetime

from billflow.extensions import db

from .base import SoftDeleteMixin, TimestampMixin, as_float, as_iso


class OrderStatus:
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"
    INCOMPLETE = "incomplete"

    ALL = (PENDING, PROCESSING, COMPLETED, CANCELLED, FAILED, INCOMPLETE)
    OPEN = (PENDING, PROCESSING)


class Order(TimestampMixin, SoftDeleteMixin, db.Model):
    """
    A purchase attempt for the customer's selected package and add-ons.

    Lifecycle: created ``pending``; ``processing`` once a charge is submitted;
    ``completed``/``failed`` only from gateway webhooks.
    """

    __tablename__ = "orders"

    # one live pending order per customer; closes the check-then-create race
    __table_args__ = (
        db.Index(
            "uq_orders_one_pending_per_customer",
            "customer_id",
            unique=True,
            sqlite_where=db.text("status = 'pending' AND is_delete = false"),
            postgresql_where=db.text("status = 'pending' AND is_delete = false"),
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    order_number = db.Column(db.String(20), nullable=False, unique=True)
    original_order_number = db.Column(db.String(40), nullable=False)
    custom_order_number = db.Column(db.String(40), nullable=False)
    order_date = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    sub_total = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount_type = db.Column(db.String(20), nullable=True)
    total = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default=OrderStatus.PENDING, index=True)
    currency_id = db.Column(db.Integer, db.ForeignKey("currencies.id"), nullable=True)
    note = db.Column(db.Text, nullable=True)
    added_by = db.Column(db.Integer, nullable=True)

    invoice = db.relationship("Invoice", back_populates="order", uselist=False)

    def to_dict(self):
        return {
            "id": self.id,
            "customerId": self.customer_id,
            "orderNumber": self.order_number,
            "originalOrderNumber": self.original_order_number,
            "customOrderNumber": self.custom_order_number,
            "orderDate": as_iso(self.order_date),
            "subTotal": as_float(self.sub_total),
            "discount": as_float(self.discount),
            "discountType": self.discount_type,
            "total": as_float(self.total),
            "status": self.status,
            "currencyId": self.currency_id,
            "note": self.note,
            "addedBy": self.added_by,
            "createdAt": as_iso(self.created_at),
            "updatedAt": as_iso(self.updated_at),
        }
