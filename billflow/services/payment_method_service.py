import logging

from billflow.errors import NotFoundError, ValidationError
from billflow.models import Customer, PaymentMethod
from billflow.utils.encryption import DecryptionError, decrypt, encrypt, mask_card_number, mask_cvv, mask_expiry

logger = logging.getLogger(__name__)

ENCRYPTED_FIELDS = ("card_number", "card_expiry_date", "card_cvv")
PLAIN_FIELDS = ("name", "card_holder_name", "zip_code", "country", "is_active")


class PaymentMethodService:
    """
    Per-customer card vault.

    Card number, expiry and CVV are encrypted before they touch the session
    and are only ever returned masked. At most one live method per customer
    is the default.
    """

    def __init__(self, session, encryption_key):
        self.session = session
        self.encryption_key = encryption_key

    # ============ QUERIES ============

    def _live(self):
        return self.session.query(PaymentMethod).filter_by(is_delete=False)

    def get(self, payment_method_id) -> PaymentMethod:
        payment_method = self._live().filter_by(id=payment_method_id).first()
        if not payment_method:
            raise NotFoundError("Payment method not found")
        return payment_method

    def list_for_customer(self, customer_id):
        return (
            self._live()
            .filter_by(customer_id=customer_id)
            .order_by(PaymentMethod.is_default.desc(), PaymentMethod.created_at.desc(), PaymentMethod.id.desc())
            .all()
        )

    def get_default(self, customer_id) -> PaymentMethod:
        payment_method = self._live().filter_by(customer_id=customer_id, is_default=True).first()
        if not payment_method:
            raise NotFoundError("No default payment method found")
        return payment_method

    def find_for_charge(self, customer_id, payment_method_id=None):
        """Active method to charge: the explicit one if given, else the default."""
        query = self._live().filter_by(customer_id=customer_id, is_active=True)
        if payment_method_id is not None:
            return query.filter_by(id=payment_method_id).first()
        return query.filter_by(is_default=True).first()

    # ============ COMMANDS ============

    def create(self, customer_id, data: dict) -> PaymentMethod:
        customer = self.session.query(Customer).filter_by(id=customer_id, is_delete=False).first()
        if not customer:
            raise NotFoundError("Customer not found")

        gateway = data["payment_method"].strip().lower()
        duplicate = self._live().filter_by(customer_id=customer_id, payment_method=gateway).first()
        if duplicate:
            raise ValidationError("Payment method already exists. Please update it instead.")

        is_default = bool(data.get("is_default"))
        if is_default:
            self._unset_defaults(customer_id)

        payment_method = PaymentMethod(
            customer_id=customer_id,
            payment_method=gateway,
            is_default=is_default,
            is_active=data.get("is_active", True),
        )
        for name in PLAIN_FIELDS:
            if name in data and name != "is_active":
                setattr(payment_method, name, data[name])
        for name in ENCRYPTED_FIELDS:
            if data.get(name):
                setattr(payment_method, name, encrypt(data[name], self.encryption_key))

        self.session.add(payment_method)
        self.session.commit()

        logger.info(
            "Payment method created",
            extra={"customer_id": customer_id, "payment_method_id": payment_method.id, "gateway": gateway},
        )
        return payment_method

    def update(self, payment_method_id, data: dict) -> PaymentMethod:
        """Apply allow-listed changes; card fields are re-encrypted."""
        payment_method = self.get(payment_method_id)

        if data.get("is_default") and not payment_method.is_default:
            self._unset_defaults(payment_method.customer_id, exclude_id=payment_method.id)
        if "is_default" in data:
            payment_method.is_default = bool(data["is_default"])

        for name in PLAIN_FIELDS:
            if name in data:
                setattr(payment_method, name, data[name])
        for name in ENCRYPTED_FIELDS:
            if data.get(name) is not None:
                setattr(payment_method, name, encrypt(data[name], self.encryption_key))

        self.session.commit()
        logger.info("Payment method updated", extra={"payment_method_id": payment_method.id, "fields": sorted(data)})
        return payment_method

    def delete(self, payment_method_id) -> None:
        payment_method = self.get(payment_method_id)
        payment_method.is_delete = True
        payment_method.is_default = False
        self.session.commit()
        logger.info("Payment method deleted", extra={"payment_method_id": payment_method_id})

    def set_default(self, payment_method_id) -> PaymentMethod:
        payment_method = self.get(payment_method_id)
        self._unset_defaults(payment_method.customer_id, exclude_id=payment_method.id)
        payment_method.is_default = True
        self.session.commit()
        return payment_method

    def _unset_defaults(self, customer_id, exclude_id=None):
        query = self._live().filter_by(customer_id=customer_id, is_default=True)
        if exclude_id is not None:
            query = query.filter(PaymentMethod.id != exclude_id)
        query.update({PaymentMethod.is_default: False}, synchronize_session="fetch")

    # ============ CARD DATA ============

    def decrypt_card(self, payment_method: PaymentMethod) -> dict:
        """Plain card fields for charging. Never log or return the result."""
        return {
            name: decrypt(getattr(payment_method, name), self.encryption_key) if getattr(payment_method, name) else None
            for name in ENCRYPTED_FIELDS
        }

    def serialize(self, payment_method: PaymentMethod) -> dict:
        try:
            number = decrypt(payment_method.card_number, self.encryption_key) if payment_method.card_number else ""
            masked_number = mask_card_number(number) if number else None
        except DecryptionError:
            logger.warning("Stored card number could not be decrypted", extra={"payment_method_id": payment_method.id})
            masked_number = "****-****-****-****"

        return payment_method.to_dict(masked={
            "card_number": masked_number,
            "card_expiry_date": mask_expiry(payment_method.card_expiry_date) if payment_method.card_expiry_date else None,
            "card_cvv": mask_cvv(payment_method.card_cvv) if payment_method.card_cvv else None,
        })
