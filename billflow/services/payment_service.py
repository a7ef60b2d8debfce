import logging

from billflow.errors import (
    ConflictError,
    GatewayNotImplementedError,
    NotFoundError,
    UnsupportedGatewayError,
    ValidationError,
)
from billflow.models import (
    Currency,
    Customer,
    CustomerPackage,
    Invoice,
    Order,
    OrderStatus,
    Package,
    PaymentStatus,
)
from billflow.utils.cards import parse_expiry
from billflow.utils.countries import convert_country_to_iso
from billflow.utils.money import to_decimal, to_minor_units

logger = logging.getLogger(__name__)

PAYMENT_STATUS_MESSAGES = {
    "succeeded": "Payment succeeded",
    "requires_action": "Payment requires additional authentication",
    "processing": "Payment is processing",
}


class PaymentProcessor:
    """
    Charges a stored card for a pending Order/Invoice.

    The charge result is only reported here. Order, Invoice, Transaction and
    Subscription state is settled by the webhook reconciler when the gateway
    confirms the outcome.
    """

    def __init__(self, session, gateway, vault):
        self.session = session
        self.gateway = gateway
        self.vault = vault

    def payment_now(self, customer_id, order_id, invoice_id, payment_method_id=None, auto_renew=True) -> dict:
        payment_method = self.vault.find_for_charge(customer_id, payment_method_id)
        if not payment_method:
            raise NotFoundError("No active payment method found")

        invoice = (
            self.session.query(Invoice)
            .filter_by(id=invoice_id, customer_id=customer_id, payment_status=PaymentStatus.PENDING, is_delete=False)
            .first()
        )
        if not invoice:
            raise NotFoundError("Invoice not found or Invoice already paid")

        order = (
            self.session.query(Order)
            .filter_by(id=order_id, customer_id=customer_id, status=OrderStatus.PENDING, is_delete=False)
            .first()
        )
        if not order:
            raise NotFoundError("Order not found or order already paid")

        customer = self.session.query(Customer).filter_by(id=customer_id, is_delete=False).first()
        if not customer:
            raise NotFoundError("Customer not found")

        customer_package = (
            self.session.query(CustomerPackage)
            .filter_by(customer_id=customer_id, is_delete=False)
            .order_by(CustomerPackage.id.desc())
            .first()
        )
        if not customer_package:
            raise NotFoundError("Customer package not found")

        package = self.session.query(Package).filter_by(id=customer_package.package_id).first()
        if not package:
            raise NotFoundError("Package not found")

        currency = self.session.query(Currency).filter_by(id=customer.currency_id).first()
        if not currency:
            raise NotFoundError("Currency not found")

        if to_decimal(invoice.amount) <= 0:
            raise ValidationError("Invoice amount must be greater than zero")

        gateway_name = (payment_method.payment_method or "").strip().lower()
        if gateway_name == "paypal":
            raise GatewayNotImplementedError("PayPal payment not yet implemented")
        if gateway_name != "stripe":
            raise UnsupportedGatewayError(f"Unsupported payment method: {payment_method.payment_method}")

        self._claim_order(order.id)

        return self._charge_stripe(payment_method, invoice, order, customer, customer_package, currency, package, auto_renew)

    def _claim_order(self, order_id):
        """Move the order pending -> processing; only one concurrent request can win."""
        claimed = (
            self.session.query(Order)
            .filter(Order.id == order_id, Order.status == OrderStatus.PENDING)
            .update({Order.status: OrderStatus.PROCESSING}, synchronize_session=False)
        )
        if claimed != 1:
            self.session.rollback()
            raise ConflictError("Payment is already being processed for this order")
        # committed before any gateway call so other requests see the claim
        self.session.commit()

    def _release_order(self, order_id):
        self.session.rollback()
        self.session.query(Order).filter(
            Order.id == order_id, Order.status == OrderStatus.PROCESSING
        ).update({Order.status: OrderStatus.PENDING}, synchronize_session=False)
        self.session.commit()
        logger.info("Order released for retry", extra={"order_id": order_id})

    def _charge_stripe(self, payment_method, invoice, order, customer, customer_package, currency, package, auto_renew):
        submitted = False
        try:
            card = self.vault.decrypt_card(payment_method)
            exp_month, exp_year = parse_expiry(card["card_expiry_date"])
            if not payment_method.country:
                raise ValidationError("Payment method country is required")
            country = convert_country_to_iso(payment_method.country)

            gateway_payment_method = self.gateway.tokenize_card(
                card_number=card["card_number"],
                exp_month=exp_month,
                exp_year=exp_year,
                cvc=card["card_cvv"],
                holder_name=payment_method.card_holder_name,
                zip_code=payment_method.zip_code,
                country=country,
            )

            stripe_customer_id = customer.stripe_customer_id
            if not stripe_customer_id:
                stripe_customer_id = self.gateway.find_or_create_customer(
                    email=customer.email,
                    name=customer.full_name or None,
                    metadata={"customerId": str(customer.id)},
                )
                customer.stripe_customer_id = stripe_customer_id
                self.session.commit()

            self.gateway.attach_payment_method(gateway_payment_method, stripe_customer_id)
            self.gateway.set_default_payment_method(stripe_customer_id, gateway_payment_method)

            amount = to_minor_units(invoice.amount)
            metadata = {
                "customerId": str(customer.id),
                "orderId": str(order.id),
                "invoiceId": str(invoice.id),
                "customerPackageId": str(customer_package.id),
                "paymentMethodId": str(payment_method.id),
                "currencyId": str(currency.id),
                "packageId": str(package.id),
                "packageName": package.name or "",
                "billingCycle": package.billing_cycle or "Monthly",
                "autoRenew": str(bool(auto_renew)).lower(),
                "localInvoiceNumber": invoice.invoice_number or "",
            }

            submitted = True
            intent = self.gateway.create_payment_intent(
                amount=amount,
                currency=currency.currency_code,
                customer_id=stripe_customer_id,
                payment_method_id=gateway_payment_method,
                metadata=metadata,
                description=f"Payment for Invoice #{invoice.invoice_number}",
                idempotency_key=f"payment_{invoice.id}_{payment_method.id}_{amount}",
            )
        except Exception as e:
            logger.warning(
                "Payment attempt failed",
                extra={
                    "order_id": order.id,
                    "invoice_id": invoice.id,
                    "error_type": type(e).__name__,
                    "submitted": submitted,
                },
            )
            if not submitted:
                self._release_order(order.id)
            return {
                "success": False,
                "message": getattr(e, "message", None) or str(e) or "Payment processing failed",
                "errorCode": getattr(e, "code", None),
                "errorType": getattr(e, "type", None) or type(e).__name__,
            }

        logger.info(
            "Payment intent submitted",
            extra={"order_id": order.id, "invoice_id": invoice.id, "payment_intent_id": intent.id, "status": intent.status},
        )

        result = {
            "paymentIntentId": intent.id,
            "status": intent.status,
        }
        if intent.status in PAYMENT_STATUS_MESSAGES:
            result.update(success=True, message=PAYMENT_STATUS_MESSAGES[intent.status], clientSecret=intent.client_secret)
            if intent.status == "requires_action":
                result.update(requiresAction=True, nextActionUrl=intent.next_action_url)
            return result

        result.update(success=False, message="Payment could not be completed", error=intent.error_message)
        return result
