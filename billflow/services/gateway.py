"""
Stripe card gateway.

Every network call goes through ``gateway_enabled_guard`` (feature flag and
key checks) and ``gateway_operation_context`` (structured start/finish/failure
logging with duration). Stripe SDK errors leave this module as
``GatewayError`` so callers never depend on SDK exception types.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from functools import wraps
from contextlib import contextmanager
from typing import Any, Callable, Dict, Optional

import sentry_sdk
import stripe

from billflow.config.feature_flags import feature_flags
from billflow.errors import (
    GatewayDisabledError,
    GatewayError,
    GatewayMisconfiguredError,
    WebhookSignatureError,
)

logger = logging.getLogger(__name__)

# sandbox card numbers -> Stripe's fixed test payment method tokens
TEST_CARD_TOKENS = {
    "4242424242424242": "pm_card_visa",
    "5555555555554444": "pm_card_mastercard",
    "378282246310005": "pm_card_amex",
    "4000000000000002": "pm_card_chargeDeclined",
    "4000000000009995": "pm_card_visa_debit",
}
DEFAULT_TEST_TOKEN = "pm_card_visa"

CARD_ERROR_MESSAGES = {
    "card_declined": "Card was declined. Please use a different payment method.",
    "incorrect_number": "Card number is incorrect. Please check and try again.",
    "invalid_expiry_month": "Card expiry date is invalid.",
    "invalid_expiry_year": "Card expiry date is invalid.",
    "invalid_cvc": "Card CVC is invalid.",
}
RAW_CARD_DATA_MESSAGE = (
    "Raw card data API is not enabled in your Stripe account. "
    "Please enable it in Stripe Dashboard: Settings > Integration > Enable raw card data APIs"
)


def resolve_test_card_token(card_number: str) -> str:
    return TEST_CARD_TOKENS.get((card_number or "").replace(" ", ""), DEFAULT_TEST_TOKEN)


@dataclass
class PaymentIntentResult:
    id: str
    status: str
    client_secret: Optional[str] = None
    next_action_url: Optional[str] = None
    error_message: Optional[str] = None


@dataclass
class GatewaySubscription:
    id: str
    status: str
    cancel_at_period_end: bool = False
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


def _field(obj, name, default=None):
    """Read ``name`` from a StripeObject or a plain dict."""
    if obj is None:
        return default
    try:
        value = obj[name]
    except (KeyError, TypeError, IndexError):
        return getattr(obj, name, default)
    return default if value is None else value


def _plain(obj) -> Dict[str, Any]:
    if obj is None:
        return {}
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


def to_gateway_error(error: Exception, message: str = None) -> GatewayError:
    if isinstance(error, GatewayError):
        return error
    code = getattr(error, "code", None)
    error_type = getattr(getattr(error, "error", None), "type", None) or type(error).__name__
    text = message or getattr(error, "user_message", None) or str(error) or "Payment gateway error"
    return GatewayError(text, code=code, type=error_type)


# ==================== FEATURE FLAG GUARDS ====================

def gateway_enabled_guard(func: Callable = None, *, operation_name: str = None):
    """
    Block gateway operations when FEATURE_ENABLE_STRIPE is off or the
    secret key is missing.
    """
    def decorator(f):
        @wraps(f)
        def wrapper(self, *args, **kwargs):
            operation = operation_name or f.__name__

            if not feature_flags.ENABLE_STRIPE:
                logger.warning(
                    f"Stripe operation blocked: {operation}",
                    extra={"stripe_operation": operation, "feature_flag": "ENABLE_STRIPE"},
                )
                sentry_sdk.capture_message(f"Stripe operation blocked: {operation}", level="warning")
                raise GatewayDisabledError(operation=operation)

            if not self.secret_key:
                logger.error("Stripe misconfigured - missing API key", extra={"operation": operation})
                raise GatewayMisconfiguredError("STRIPE_SECRET_KEY")

            return f(self, *args, **kwargs)
        return wrapper

    if func:
        return decorator(func)
    return decorator


@contextmanager
def gateway_operation_context(operation_name: str, **context_vars):
    """
    Log a gateway call and convert SDK errors.

    Example:
        with gateway_operation_context("create_payment_intent", invoice_id=12):
            stripe.PaymentIntent.create(...)
    """
    start_time = datetime.now()
    sentry_sdk.set_tag("stripe_operation", operation_name)

    logger.info(
        f"Starting Stripe operation: {operation_name}",
        extra={"operation": operation_name, **context_vars},
    )
    try:
        yield
    except Exception as e:
        duration = (datetime.now() - start_time).total_seconds()
        logger.error(
            f"Stripe operation failed: {operation_name}",
            extra={
                "operation": operation_name,
                "duration_seconds": duration,
                "error_type": type(e).__name__,
                "error_code": getattr(e, "code", None),
                **context_vars,
            },
        )
        if isinstance(e, stripe.StripeError):
            raise to_gateway_error(e) from e
        raise

    duration = (datetime.now() - start_time).total_seconds()
    logger.info(
        f"Completed Stripe operation: {operation_name}",
        extra={"operation": operation_name, "duration_seconds": duration, **context_vars},
    )


# ==================== STRIPE GATEWAY ====================

class StripeGateway:
    """Thin, logged wrapper over the Stripe SDK calls the billing flows need."""

    name = "stripe"

    def __init__(
        self,
        secret_key: Optional[str],
        webhook_secret: Optional[str] = None,
        test_mode: Optional[bool] = None,
        timeout: int = 30,
        max_retries: int = 2,
        webhook_tolerance: int = 300,
    ):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.webhook_tolerance = webhook_tolerance
        if test_mode is None:
            test_mode = bool(secret_key) and "test" in secret_key
        self.test_mode = test_mode

        if secret_key:
            stripe.api_key = secret_key
            stripe.max_network_retries = max_retries
            stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

            logger.info(
                "Stripe client initialized",
                extra={
                    "api_key_prefix": secret_key[:8] + "...",
                    "test_mode": self.test_mode,
                    "max_retries": max_retries,
                    "timeout": timeout,
                },
            )

    @classmethod
    def from_config(cls, config) -> "StripeGateway":
        return cls(
            secret_key=config.get("STRIPE_SECRET_KEY"),
            webhook_secret=config.get("STRIPE_WEBHOOK_SECRET"),
            test_mode=config.get("STRIPE_TEST_MODE"),
            timeout=config.get("STRIPE_TIMEOUT", 30),
            max_retries=config.get("STRIPE_MAX_RETRIES", 2),
            webhook_tolerance=config.get("STRIPE_WEBHOOK_TOLERANCE", 300),
        )

    # ============ PAYMENT METHODS ============

    @gateway_enabled_guard(operation_name="tokenize_card")
    def tokenize_card(
        self,
        card_number: str,
        exp_month: int,
        exp_year: int,
        cvc: str,
        holder_name: Optional[str] = None,
        zip_code: Optional[str] = None,
        country: Optional[str] = None,
    ) -> str:
        """
        Turn raw card data into a gateway payment method id.

        In test mode known sandbox numbers map to Stripe's fixed test tokens
        (unknown numbers map to the Visa success token). Live mode creates a
        card payment method and translates known card errors into messages
        fit for the customer.
        """
        if self.test_mode:
            token = resolve_test_card_token(card_number)
            with gateway_operation_context("retrieve_test_payment_method", token=token):
                payment_method = stripe.PaymentMethod.retrieve(token)
            return payment_method.id

        with gateway_operation_context("create_payment_method", country=country):
            try:
                payment_method = stripe.PaymentMethod.create(
                    type="card",
                    card={
                        "number": card_number,
                        "exp_month": exp_month,
                        "exp_year": exp_year,
                        "cvc": cvc,
                    },
                    billing_details={
                        "name": holder_name,
                        "address": {"postal_code": zip_code, "country": country},
                    },
                )
            except stripe.StripeError as e:
                raise self._translate_card_error(e) from e
        return payment_method.id

    @staticmethod
    def _translate_card_error(error) -> GatewayError:
        code = getattr(error, "code", None)
        message = CARD_ERROR_MESSAGES.get(code)
        if message is None and "raw card data" in str(error).lower():
            message = RAW_CARD_DATA_MESSAGE
        return to_gateway_error(error, message)

    @gateway_enabled_guard(operation_name="find_or_create_customer")
    def find_or_create_customer(self, email: str, name: Optional[str] = None, metadata: Optional[dict] = None) -> str:
        with gateway_operation_context("find_or_create_customer"):
            try:
                existing = stripe.Customer.list(email=email, limit=1)
                if existing.data:
                    return existing.data[0].id
            except stripe.StripeError as e:
                # lookup is an optimization; creating a fresh customer is always valid
                logger.warning("Stripe customer lookup failed, creating a new one", extra={"error_code": e.code})

            customer = stripe.Customer.create(email=email, name=name, metadata=metadata or {})
            logger.info("Stripe customer created", extra={"stripe_customer_id": customer.id})
            return customer.id

    @gateway_enabled_guard(operation_name="attach_payment_method")
    def attach_payment_method(self, payment_method_id: str, customer_id: str) -> None:
        with gateway_operation_context("attach_payment_method", stripe_customer_id=customer_id):
            try:
                stripe.PaymentMethod.attach(payment_method_id, customer=customer_id)
            except stripe.InvalidRequestError as e:
                if e.code != "resource_already_exists":
                    raise
                logger.info("Payment method already attached", extra={"stripe_customer_id": customer_id})

    @gateway_enabled_guard(operation_name="set_default_payment_method")
    def set_default_payment_method(self, customer_id: str, payment_method_id: str) -> None:
        with gateway_operation_context("set_default_payment_method", stripe_customer_id=customer_id):
            stripe.Customer.modify(
                customer_id,
                invoice_settings={"default_payment_method": payment_method_id},
            )

    # ============ CHARGES ============

    @gateway_enabled_guard(operation_name="create_payment_intent")
    def create_payment_intent(
        self,
        amount: int,
        currency: str,
        customer_id: str,
        payment_method_id: str,
        metadata: Dict[str, str],
        description: str,
        idempotency_key: str,
    ) -> PaymentIntentResult:
        """Create and confirm a card charge for ``amount`` minor units."""
        with gateway_operation_context(
            "create_payment_intent",
            amount=amount,
            currency=currency,
            invoice_id=metadata.get("invoiceId"),
        ):
            intent = stripe.PaymentIntent.create(
                amount=amount,
                currency=currency.lower(),
                customer=customer_id,
                payment_method=payment_method_id,
                metadata=metadata,
                description=description,
                confirm=True,
                automatic_payment_methods={"enabled": True, "allow_redirects": "never"},
                idempotency_key=idempotency_key,
            )

        next_action = _field(intent, "next_action")
        redirect = _field(next_action, "redirect_to_url")
        last_error = _field(intent, "last_payment_error")

        logger.info(
            "Stripe payment intent created",
            extra={"payment_intent_id": intent.id, "status": intent.status},
        )
        return PaymentIntentResult(
            id=intent.id,
            status=intent.status,
            client_secret=_field(intent, "client_secret"),
            next_action_url=_field(redirect, "url"),
            error_message=_field(last_error, "message"),
        )

    # ============ SUBSCRIPTIONS ============

    @gateway_enabled_guard(operation_name="retrieve_subscription")
    def retrieve_subscription(self, subscription_id: str) -> GatewaySubscription:
        with gateway_operation_context("retrieve_subscription", subscription_id=subscription_id):
            subscription = stripe.Subscription.retrieve(subscription_id)
        return self._to_subscription(subscription)

    @gateway_enabled_guard(operation_name="cancel_subscription")
    def cancel_subscription(self, subscription_id: str) -> GatewaySubscription:
        with gateway_operation_context("cancel_subscription", subscription_id=subscription_id):
            subscription = stripe.Subscription.cancel(subscription_id)
        return self._to_subscription(subscription)

    @gateway_enabled_guard(operation_name="update_subscription")
    def update_subscription(self, subscription_id: str, cancel_at_period_end: bool) -> GatewaySubscription:
        with gateway_operation_context(
            "update_subscription",
            subscription_id=subscription_id,
            cancel_at_period_end=cancel_at_period_end,
        ):
            subscription = stripe.Subscription.modify(
                subscription_id,
                cancel_at_period_end=cancel_at_period_end,
            )
        return self._to_subscription(subscription)

    @staticmethod
    def _to_subscription(subscription) -> GatewaySubscription:
        return GatewaySubscription(
            id=_field(subscription, "id"),
            status=_field(subscription, "status"),
            cancel_at_period_end=bool(_field(subscription, "cancel_at_period_end", False)),
            current_period_start=subscription_period(subscription, "current_period_start"),
            current_period_end=subscription_period(subscription, "current_period_end"),
            metadata=_plain(_field(subscription, "metadata")),
        )

    # ============ WEBHOOKS ============

    def verify_webhook(self, payload: bytes, sig_header: str) -> Dict[str, Any]:
        """
        Verify the ``Stripe-Signature`` header and return the event as a dict.

        Signature verification is local, so it is not subject to the feature
        flag guard.
        """
        if not self.webhook_secret:
            raise GatewayMisconfiguredError("STRIPE_WEBHOOK_SECRET")

        text = payload.decode("utf-8") if isinstance(payload, (bytes, bytearray)) else payload
        try:
            stripe.Webhook.construct_event(text, sig_header, self.webhook_secret, tolerance=self.webhook_tolerance)
            event = json.loads(text)
        except (stripe.SignatureVerificationError, ValueError) as e:
            logger.warning("Webhook signature verification failed", extra={"error_type": type(e).__name__})
            raise WebhookSignatureError("Webhook signature verification failed") from e

        logger.info(
            "Stripe webhook received",
            extra={"event_id": event.get("id"), "event_type": event.get("type"), "livemode": event.get("livemode")},
        )
        return event


def subscription_period(subscription, name: str) -> Optional[int]:
    """
    Period boundary (unix seconds) of a gateway subscription.

    Newer API versions moved ``current_period_*`` from the subscription onto
    its items, so fall back to the first item.
    """
    value = _field(subscription, name)
    if value:
        return int(value)
    items = _field(_field(subscription, "items"), "data") or []
    if items:
        value = _field(items[0], name)
    return int(value) if value else None
