from datetime import datetime

from billflow.extensions import db

from .base import TimestampMixin, as_float, as_iso


class TransactionStatus:
    COMPLETED = "completed"
    FAILED = "failed"


class Transaction(TimestampMixin, db.Model):
    """
    Immutable ledger row for one charge outcome.

    The storage constraints here are what make webhook settlement idempotent:
    ``reference`` (the gateway charge id) is unique, and an invoice can carry
    at most one ``completed`` row.
    """

    __tablename__ = "transactions"

    __table_args__ = (
        db.Index(
            "uq_transactions_one_completed_per_invoice",
            "invoice_id",
            unique=True,
            sqlite_where=db.text("status = 'completed'"),
            postgresql_where=db.text("status = 'completed'"),
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    reference = db.Column(db.String(255), nullable=False, unique=True)
    status = db.Column(db.String(20), nullable=False, index=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=True, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    payment_method_id = db.Column(db.Integer, nullable=True)
    currency_id = db.Column(db.Integer, db.ForeignKey("currencies.id"), nullable=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    description = db.Column(db.String(500), nullable=True)
    transaction_date = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "reference": self.reference,
            "status": self.status,
            "invoiceId": self.invoice_id,
            "orderId": self.order_id,
            "customerId": self.customer_id,
            "paymentMethodId": self.payment_method_id,
            "currencyId": self.currency_id,
            "amount": as_float(self.amount),
            "description": self.description,
            "transactionDate": as_iso(self.transaction_date),
        }
