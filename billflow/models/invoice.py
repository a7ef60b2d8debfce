from datetime import datetime

from billflow.extensions import db

from .base import SoftDeleteMixin, TimestampMixin, as_float, as_iso


class InvoiceStatus:
    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    UNPAID = "unpaid"
    CANCELLED = "cancelled"
    VOID = "void"


class PaymentStatus:
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


class Invoice(TimestampMixin, SoftDeleteMixin, db.Model):
    """
    Billing document for exactly one Order.

    ``items`` holds the printed lines: ``description``, ``quantity``,
    ``amount``, ``subTotal``, ``discountType``, ``vatRate`` and ``vatType``.
    Line amounts are gross; the discount is only applied to the totals.
    """

    __tablename__ = "invoices"

    __table_args__ = (
        db.Index(
            "uq_invoices_one_draft_per_customer",
            "customer_id",
            unique=True,
            sqlite_where=db.text("status = 'draft' AND is_delete = false"),
            postgresql_where=db.text("status = 'draft' AND is_delete = false"),
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(40), nullable=False, unique=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, nullable=True)
    currency_id = db.Column(db.Integer, db.ForeignKey("currencies.id"), nullable=True)

    amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    sub_total = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount_value = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount_type = db.Column(db.String(20), nullable=True)
    outstanding_balance = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    status = db.Column(db.String(20), nullable=False, default=InvoiceStatus.DRAFT, index=True)
    payment_status = db.Column(db.String(20), nullable=False, default=PaymentStatus.PENDING, index=True)

    items = db.Column(db.JSON, nullable=False, default=list)
    plan = db.Column(db.String(20), nullable=True)
    due_date = db.Column(db.DateTime, nullable=True)
    issue_date = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    customer_name = db.Column(db.String(255), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)

    order = db.relationship("Order", back_populates="invoice")

    def to_dict(self):
        return {
            "id": self.id,
            "invoiceNumber": self.invoice_number,
            "customerId": self.customer_id,
            "orderId": self.order_id,
            "userId": self.user_id,
            "currencyId": self.currency_id,
            "amount": as_float(self.amount),
            "total": as_float(self.total),
            "subTotal": as_float(self.sub_total),
            "discountValue": as_float(self.discount_value),
            "discountType": self.discount_type,
            "outstandingBalance": as_float(self.outstanding_balance),
            "status": self.status,
            "paymentStatus": self.payment_status,
            "items": self.items or [],
            "plan": self.plan,
            "dueDate": as_iso(self.due_date),
            "issueDate": as_iso(self.issue_date),
            "customerName": self.customer_name,
            "customerEmail": self.customer_email,
            "createdAt": as_iso(self.created_at),
        }
