from billflow.extensions import db

from .base import SoftDeleteMixin, TimestampMixin, as_iso


class PaymentMethod(TimestampMixin, SoftDeleteMixin, db.Model):
    """
    A stored card. ``card_number``, ``card_expiry_date`` and ``card_cvv`` hold
    ``ivHex:cipherHex`` strings produced by ``billflow.utils.encryption``;
    plaintext never reaches this table.
    """

    __tablename__ = "payment_methods"

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    payment_method = db.Column(db.String(30), nullable=False)
    name = db.Column(db.String(150), nullable=True)

    card_number = db.Column(db.Text, nullable=True)
    card_expiry_date = db.Column(db.Text, nullable=True)
    card_cvv = db.Column(db.Text, nullable=True)
    card_holder_name = db.Column(db.String(150), nullable=True)
    zip_code = db.Column(db.String(20), nullable=True)
    country = db.Column(db.String(100), nullable=True)

    is_default = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self, masked=None):
        """``masked`` carries the masked card fields; ciphertext is never exposed."""
        masked = masked or {}
        return {
            "id": self.id,
            "customerId": self.customer_id,
            "paymentMethod": self.payment_method,
            "name": self.name,
            "cardNumber": masked.get("card_number"),
            "cardExpiryDate": masked.get("card_expiry_date"),
            "cardCvv": masked.get("card_cvv"),
            "cardHolderName": self.card_holder_name,
            "zipCode": self.zip_code,
            "country": self.country,
            "isDefault": self.is_default,
            "isActive": self.is_active,
            "createdAt": as_iso(self.created_at),
            "updatedAt": as_iso(self.updated_at),
        }
