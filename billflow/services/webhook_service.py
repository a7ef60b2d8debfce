"""
Gateway webhook reconciliation.

Charge outcomes arrive asynchronously, possibly more than once and out of
order. Settlement is idempotent through three layers: a pre-check for an
existing completed Transaction, a re-check under a row lock inside the
database transaction, and the unique constraints on ``transactions``.
"""

import logging

from sqlalchemy.exc import IntegrityError

from billflow.errors import NotFoundError, WebhookSignatureError
from billflow.models import (
    Customer,
    CustomerPackage,
    CustomerStatus,
    Invoice,
    InvoiceStatus,
    Order,
    OrderStatus,
    Package,
    PaymentStatus,
    Subscription,
    SubscriptionStatus,
    Transaction,
    TransactionStatus,
)
from billflow.utils.dates import add_billing_period, add_days, from_unix, utcnow
from billflow.utils.money import from_minor_units

from .gateway import subscription_period
from .order_service import allocate_order_number
from .pricing import price_selection

logger = logging.getLogger(__name__)

RENEWAL_GRACE_DAYS = 7

GATEWAY_SUBSCRIPTION_STATUS = {
    "active": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELLED,
    "unpaid": SubscriptionStatus.PAST_DUE,
}


def parse_metadata_id(value):
    """Metadata values are strings; return a positive int id or None."""
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def parse_metadata_bool(value, default=True):
    if value is None:
        return default
    return str(value).strip().lower() == "true"


def invoice_subscription_id(gateway_invoice: dict):
    """Subscription id of a gateway invoice, across old and new payload shapes."""
    subscription = gateway_invoice.get("subscription")
    if isinstance(subscription, dict):
        return subscription.get("id")
    if subscription:
        return subscription
    parent = gateway_invoice.get("parent") or {}
    details = parent.get("subscription_details") or {}
    return details.get("subscription")


class WebhookReconciler:
    def __init__(self, session, gateway, notifications=None):
        self.session = session
        self.gateway = gateway
        self.notifications = notifications
        self._handlers = {
            "payment_intent.succeeded": self.handle_payment_succeeded,
            "payment_intent.payment_failed": self.handle_payment_failed,
            "invoice.payment_succeeded": self.handle_renewal_succeeded,
            "invoice.payment_failed": self.handle_renewal_failed,
            "customer.subscription.updated": self.handle_subscription_updated,
            "customer.subscription.deleted": self.handle_subscription_deleted,
        }

    def handle_event(self, payload: bytes, signature: str) -> dict:
        """
        Verify and dispatch one webhook delivery.

        Unknown event types are acknowledged and ignored. Handler errors
        propagate after rollback so the endpoint answers non-2xx and the
        gateway redelivers.
        """
        if not signature:
            raise WebhookSignatureError("Missing signature header")

        event = self.gateway.verify_webhook(payload, signature)
        event_type = event.get("type")
        handler = self._handlers.get(event_type)
        if handler is None:
            logger.info("Ignoring unhandled webhook event", extra={"event_type": event_type, "event_id": event.get("id")})
            return {"received": True}

        handler((event.get("data") or {}).get("object") or {})
        return {"received": True}

    # ============ HELPERS ============

    def _has_completed_transaction(self, invoice_id) -> bool:
        return (
            self.session.query(Transaction.id)
            .filter_by(invoice_id=invoice_id, status=TransactionStatus.COMPLETED)
            .first()
            is not None
        )

    def _has_reference(self, reference) -> bool:
        return self.session.query(Transaction.id).filter_by(reference=reference).first() is not None

    def _record_transaction(self, **fields) -> bool:
        """Insert a ledger row; False means a concurrent delivery already recorded it."""
        self.session.add(Transaction(transaction_date=utcnow(), **fields))
        try:
            self.session.flush()
        except IntegrityError:
            self.session.rollback()
            logger.info(
                "Transaction already recorded by another delivery",
                extra={"reference": fields.get("reference"), "invoice_id": fields.get("invoice_id")},
            )
            return False
        return True

    def _require(self, model, message, **filters):
        row = self.session.query(model).filter_by(**filters).first()
        if row is None:
            raise NotFoundError(message)
        return row

    def _notify(self, invoice_id):
        if self.notifications is not None:
            self.notifications.send_invoice_email(invoice_id)

    # ============ ONE-OFF CHARGES ============

    def handle_payment_succeeded(self, intent: dict):
        metadata = intent.get("metadata") or {}
        if not metadata.get("customerId"):
            logger.info("Skipping payment_intent.succeeded: no customerId in metadata", extra={"payment_intent_id": intent.get("id")})
            return

        customer_id = parse_metadata_id(metadata.get("customerId"))
        invoice_id = parse_metadata_id(metadata.get("invoiceId"))
        order_id = parse_metadata_id(metadata.get("orderId"))
        customer_package_id = parse_metadata_id(metadata.get("customerPackageId"))
        currency_id = parse_metadata_id(metadata.get("currencyId"))
        payment_method_id = parse_metadata_id(metadata.get("paymentMethodId"))
        if not (customer_id and invoice_id and order_id and customer_package_id and currency_id):
            logger.error(
                "Missing required metadata for payment success",
                extra={"payment_intent_id": intent.get("id"), "metadata_keys": sorted(metadata)},
            )
            return

        if self._has_completed_transaction(invoice_id):
            logger.info("Invoice already settled, ignoring duplicate success", extra={"invoice_id": invoice_id})
            return

        reference = intent["id"]
        amount = from_minor_units(intent.get("amount_received") or intent.get("amount") or 0)

        try:
            invoice = (
                self.session.query(Invoice)
                .filter_by(id=invoice_id)
                .with_for_update()
                .first()
            )
            if invoice is None:
                raise NotFoundError(f"Invoice {invoice_id} not found")

            if self._has_completed_transaction(invoice_id):
                self.session.rollback()
                logger.info("Invoice settled concurrently, ignoring", extra={"invoice_id": invoice_id})
                return

            recorded = self._record_transaction(
                reference=reference,
                status=TransactionStatus.COMPLETED,
                invoice_id=invoice_id,
                order_id=order_id,
                customer_id=customer_id,
                payment_method_id=payment_method_id,
                currency_id=currency_id,
                amount=amount,
                description=f"Payment for invoice #{invoice_id}",
            )
            if not recorded:
                return

            self.session.query(Order).filter(
                Order.id == order_id, Order.status != OrderStatus.COMPLETED
            ).update({Order.status: OrderStatus.COMPLETED}, synchronize_session=False)
            self.session.query(Invoice).filter(
                Invoice.id == invoice_id, Invoice.payment_status != PaymentStatus.PAID
            ).update(
                {
                    Invoice.status: InvoiceStatus.PAID,
                    Invoice.payment_status: PaymentStatus.PAID,
                    Invoice.outstanding_balance: 0,
                },
                synchronize_session=False,
            )

            customer_package = self._require(
                CustomerPackage, f"CustomerPackage {customer_package_id} not found", id=customer_package_id, is_delete=False
            )
            package = self._require(Package, f"Package {customer_package.package_id} not found", id=customer_package.package_id)

            start = utcnow()
            end = add_billing_period(start, package.billing_cycle)
            auto_renew = parse_metadata_bool(metadata.get("autoRenew"))

            subscription = (
                self.session.query(Subscription)
                .filter_by(customer_package_id=customer_package.id, customer_id=customer_id, is_delete=False)
                .first()
            )
            if subscription is None:
                subscription = Subscription(customer_id=customer_id, customer_package_id=customer_package.id)
                self.session.add(subscription)
            subscription.status = SubscriptionStatus.ACTIVE
            subscription.start_date = start
            subscription.end_date = end
            subscription.auto_renew = auto_renew
            subscription.currency_id = currency_id

            customer = self._require(Customer, f"Customer {customer_id} not found", id=customer_id)
            customer.status = CustomerStatus.ACTIVE
            customer.expiry_date = end

            self.session.commit()
        except Exception:
            self.session.rollback()
            logger.exception("Failed to settle successful payment", extra={"invoice_id": invoice_id, "reference": reference})
            raise

        logger.info(
            "Payment settled",
            extra={"invoice_id": invoice_id, "order_id": order_id, "customer_id": customer_id, "reference": reference},
        )
        self._notify(invoice_id)

    def handle_payment_failed(self, intent: dict):
        """
        Record a failed charge. A completed Transaction for the invoice always
        wins, whatever order the events arrive in.
        """
        metadata = intent.get("metadata") or {}
        if not metadata.get("customerId"):
            logger.info("Skipping payment_intent.payment_failed: no customerId in metadata", extra={"payment_intent_id": intent.get("id")})
            return

        customer_id = parse_metadata_id(metadata.get("customerId"))
        invoice_id = parse_metadata_id(metadata.get("invoiceId"))
        order_id = parse_metadata_id(metadata.get("orderId"))
        if not (customer_id and invoice_id and order_id):
            logger.error("Missing required metadata for payment failure", extra={"payment_intent_id": intent.get("id")})
            return

        reference = intent["id"]
        if self._has_completed_transaction(invoice_id):
            logger.info("Invoice already paid, ignoring failure", extra={"invoice_id": invoice_id, "reference": reference})
            return
        if self._has_reference(reference):
            logger.info("Failure already recorded", extra={"reference": reference})
            return

        error = intent.get("last_payment_error") or {}
        try:
            recorded = self._record_transaction(
                reference=reference,
                status=TransactionStatus.FAILED,
                invoice_id=invoice_id,
                order_id=order_id,
                customer_id=customer_id,
                payment_method_id=parse_metadata_id(metadata.get("paymentMethodId")),
                currency_id=parse_metadata_id(metadata.get("currencyId")),
                amount=from_minor_units(intent.get("amount") or 0),
                description=f"Failed: {error.get('message') or 'Unknown error'}",
            )
            if not recorded:
                return

            self.session.query(Order).filter(
                Order.id == order_id, Order.status != OrderStatus.COMPLETED
            ).update({Order.status: OrderStatus.FAILED}, synchronize_session=False)
            self.session.query(Invoice).filter(
                Invoice.id == invoice_id, Invoice.payment_status != PaymentStatus.PAID
            ).update(
                {Invoice.status: InvoiceStatus.UNPAID, Invoice.payment_status: PaymentStatus.FAILED},
                synchronize_session=False,
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            logger.exception("Failed to record payment failure", extra={"invoice_id": invoice_id, "reference": reference})
            raise

        logger.info("Payment failure recorded", extra={"invoice_id": invoice_id, "order_id": order_id, "reference": reference})

    # ============ AUTO-RENEWALS ============

    def _renewal_context(self, gateway_invoice: dict, event_type: str):
        subscription_id = invoice_subscription_id(gateway_invoice)
        if not subscription_id:
            return None

        gateway_subscription = self.gateway.retrieve_subscription(subscription_id)
        metadata = gateway_subscription.metadata or {}
        if not metadata.get("customerId"):
            logger.info(f"Skipping {event_type}: no customerId in subscription metadata", extra={"subscription_id": subscription_id})
            return None

        context = {
            "subscription_id": subscription_id,
            "customer_id": parse_metadata_id(metadata.get("customerId")),
            "customer_package_id": parse_metadata_id(metadata.get("customerPackageId")),
            "currency_id": parse_metadata_id(metadata.get("currencyId")),
            "reference": gateway_invoice.get("payment_intent") or gateway_invoice.get("id"),
        }
        if not (context["customer_id"] and context["customer_package_id"] and context["currency_id"]):
            logger.error(f"Missing required metadata for {event_type}", extra={"subscription_id": subscription_id})
            return None
        return context

    def _load_renewal_rows(self, context):
        customer = self._require(
            Customer, f"Customer {context['customer_id']} not found", id=context["customer_id"], is_delete=False
        )
        customer_package = self._require(
            CustomerPackage,
            f"CustomerPackage {context['customer_package_id']} not found",
            id=context["customer_package_id"],
            is_delete=False,
        )
        package = self._require(
            Package,
            f"Package {customer_package.package_id} not found",
            id=customer_package.package_id,
            is_delete=False,
            is_active=True,
        )
        subscription = (
            self.session.query(Subscription)
            .filter_by(customer_package_id=customer_package.id, customer_id=customer.id, is_delete=False)
            .first()
        ) or self.session.query(Subscription).filter_by(customer_id=customer.id, is_delete=False).first()
        return customer, customer_package, package, subscription

    def _create_renewal_documents(self, customer, customer_package, package, currency_id, order_status, invoice_fields, note):
        pricing = price_selection(package, customer_package.add_ons)
        now = utcnow()
        order_number = allocate_order_number(self.session)

        order = Order(
            customer_id=customer.id,
            order_number=order_number,
            original_order_number=f"ORD-{order_number}",
            custom_order_number=f"CUST-ORD-{order_number}",
            order_date=now,
            sub_total=pricing.sub_total,
            discount=pricing.discount,
            discount_type=pricing.discount_type,
            total=pricing.total,
            status=order_status,
            currency_id=currency_id,
            note=note,
        )
        self.session.add(order)
        self.session.flush()

        invoice = Invoice(
            invoice_number=f"INV-{order_number}",
            customer_id=customer.id,
            order_id=order.id,
            currency_id=currency_id,
            amount=pricing.total,
            total=pricing.total,
            sub_total=pricing.sub_total,
            discount_value=pricing.discount,
            discount_type=pricing.discount_type,
            items=pricing.items,
            plan=package.billing_cycle,
            issue_date=now,
            customer_name=customer.full_name,
            customer_email=customer.email,
            **invoice_fields(pricing, now),
        )
        self.session.add(invoice)
        self.session.flush()
        return order, invoice, pricing

    def handle_renewal_succeeded(self, gateway_invoice: dict):
        """A subscription renewal charged by the gateway: record it as a paid order."""
        if gateway_invoice.get("billing_reason") == "subscription_create":
            # the first period is settled through payment_intent.succeeded
            return
        context = self._renewal_context(gateway_invoice, "invoice.payment_succeeded")
        if context is None:
            return

        reference = context["reference"]
        if self._has_reference(reference):
            logger.info("Renewal already recorded", extra={"reference": reference})
            return

        try:
            customer, customer_package, package, subscription = self._load_renewal_rows(context)
            order, invoice, pricing = self._create_renewal_documents(
                customer,
                customer_package,
                package,
                context["currency_id"],
                OrderStatus.COMPLETED,
                lambda pricing, now: {
                    "status": InvoiceStatus.PAID,
                    "payment_status": PaymentStatus.PAID,
                    "outstanding_balance": 0,
                    "due_date": now,
                },
                note=f"Auto-renewal for {package.name}",
            )

            amount_paid = gateway_invoice.get("amount_paid")
            recorded = self._record_transaction(
                reference=reference,
                status=TransactionStatus.COMPLETED,
                invoice_id=invoice.id,
                order_id=order.id,
                customer_id=customer.id,
                currency_id=context["currency_id"],
                amount=from_minor_units(amount_paid) if amount_paid is not None else pricing.total,
                description=f"Auto-renewal payment for {package.name}",
            )
            if not recorded:
                return

            start = utcnow()
            end = add_billing_period(start, package.billing_cycle)
            if subscription is None:
                subscription = Subscription(customer_id=customer.id, customer_package_id=customer_package.id)
                self.session.add(subscription)
            subscription.status = SubscriptionStatus.ACTIVE
            subscription.start_date = start
            subscription.end_date = end
            subscription.subscription_id = context["subscription_id"]
            subscription.currency_id = context["currency_id"]

            customer.status = CustomerStatus.ACTIVE
            customer.expiry_date = end

            self.session.commit()
        except Exception:
            self.session.rollback()
            logger.exception("Failed to record renewal", extra={"reference": reference})
            raise

        logger.info("Renewal recorded", extra={"customer_id": customer.id, "invoice_id": invoice.id, "reference": reference})
        self._notify(invoice.id)

    def handle_renewal_failed(self, gateway_invoice: dict):
        context = self._renewal_context(gateway_invoice, "invoice.payment_failed")
        if context is None:
            return

        # one failed row per dunning attempt; the bare reference is kept for the eventual success
        attempt = gateway_invoice.get("attempt_count") or 1
        reference = f"{context['reference']}:attempt-{attempt}"
        if self._has_reference(reference):
            logger.info("Renewal failure already recorded", extra={"reference": reference})
            return

        error = gateway_invoice.get("last_finalization_error") or {}
        try:
            customer, customer_package, package, subscription = self._load_renewal_rows(context)
            order, invoice, pricing = self._create_renewal_documents(
                customer,
                customer_package,
                package,
                context["currency_id"],
                OrderStatus.INCOMPLETE,
                lambda pricing, now: {
                    "status": InvoiceStatus.UNPAID,
                    "payment_status": PaymentStatus.FAILED,
                    "outstanding_balance": pricing.total,
                    "due_date": add_days(now, RENEWAL_GRACE_DAYS),
                },
                note=f"Failed auto-renewal for {package.name}",
            )

            recorded = self._record_transaction(
                reference=reference,
                status=TransactionStatus.FAILED,
                invoice_id=invoice.id,
                order_id=order.id,
                customer_id=customer.id,
                currency_id=context["currency_id"],
                amount=pricing.total,
                description=f"Failed auto-renewal: {error.get('message') or 'Payment failed'}",
            )
            if not recorded:
                return

            if subscription is not None:
                subscription.status = SubscriptionStatus.PAST_DUE
            customer.status = CustomerStatus.INACTIVE

            self.session.commit()
        except Exception:
            self.session.rollback()
            logger.exception("Failed to record renewal failure", extra={"reference": reference})
            raise

        logger.info("Renewal failure recorded", extra={"customer_id": customer.id, "invoice_id": invoice.id, "reference": reference})
        self._notify(invoice.id)

    # ============ SUBSCRIPTION MIRRORING ============

    def _find_local_subscription(self, gateway_subscription: dict, event_type: str):
        metadata = gateway_subscription.get("metadata") or {}
        if not metadata.get("customerId"):
            logger.info(f"Skipping {event_type}: no customerId in metadata", extra={"subscription_id": gateway_subscription.get("id")})
            return None, None

        customer_id = parse_metadata_id(metadata.get("customerId"))
        if not customer_id:
            logger.error("Invalid customerId in subscription metadata", extra={"subscription_id": gateway_subscription.get("id")})
            return None, None

        query = self.session.query(Subscription).filter_by(customer_id=customer_id, is_delete=False)
        subscription = query.filter_by(subscription_id=gateway_subscription.get("id")).first() or query.first()
        return customer_id, subscription

    def handle_subscription_updated(self, gateway_subscription: dict):
        customer_id, subscription = self._find_local_subscription(gateway_subscription, "customer.subscription.updated")
        if subscription is None:
            return

        try:
            status = GATEWAY_SUBSCRIPTION_STATUS.get(gateway_subscription.get("status"))
            if status:
                subscription.status = status
            subscription.auto_renew = not gateway_subscription.get("cancel_at_period_end", False)

            start = from_unix(subscription_period(gateway_subscription, "current_period_start"))
            end = from_unix(subscription_period(gateway_subscription, "current_period_end"))
            if start:
                subscription.start_date = start
            if end:
                subscription.end_date = end

            customer = self._require(Customer, f"Customer {customer_id} not found", id=customer_id)
            if subscription.status == SubscriptionStatus.ACTIVE:
                customer.status = CustomerStatus.ACTIVE
                customer.expiry_date = subscription.end_date
            else:
                customer.status = CustomerStatus.INACTIVE

            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info(
            "Subscription mirrored from gateway",
            extra={"subscription_id": subscription.id, "status": subscription.status, "auto_renew": subscription.auto_renew},
        )

    def handle_subscription_deleted(self, gateway_subscription: dict):
        customer_id, subscription = self._find_local_subscription(gateway_subscription, "customer.subscription.deleted")
        if subscription is None:
            return

        try:
            subscription.status = SubscriptionStatus.CANCELLED
            subscription.auto_renew = False
            customer = self._require(Customer, f"Customer {customer_id} not found", id=customer_id)
            customer.status = CustomerStatus.INACTIVE
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info("Subscription cancelled by gateway", extra={"subscription_id": subscription.id})
