import hashlib
import hmac
import json
import time
from decimal import Decimal

import pytest
from faker import Faker
from flask_jwt_extended import create_access_token

from billflow import create_app
from billflow.extensions import db
from billflow.models import (
    BillingCycle,
    Currency,
    Customer,
    CustomerPackage,
    CustomerStatus,
    Package,
)
from billflow.services import get_services
from billflow.services.gateway import (
    GatewaySubscription,
    PaymentIntentResult,
    StripeGateway,
    resolve_test_card_token,
)

# Initialize Faker for generating test data
fake = Faker()

WEBHOOK_SECRET = "whsec_test_secret"


def pytest_configure(config):
    config.addinivalue_line("markers", "db: mark test as database-intensive")
    config.addinivalue_line("markers", "payment: mark test as payment-related")


class FakeGateway(StripeGateway):
    """
    Gateway double: no network, every call recorded.

    Webhook signature verification is inherited, so signed test payloads go
    through the real Stripe verification code.
    """

    def __init__(self):
        super().__init__(secret_key="sk_test_fake", webhook_secret=WEBHOOK_SECRET, test_mode=True)
        self.reset()

    def reset(self):
        self.calls = []
        self.intent = PaymentIntentResult(id="pi_fake_1", status="succeeded", client_secret="pi_fake_1_secret")
        self.errors = {}
        self.subscriptions = {}
        self.webhook_secret = WEBHOOK_SECRET

    def _record(self, _call, **kwargs):
        self.calls.append((_call, kwargs))
        error = self.errors.get(_call)
        if error is not None:
            raise error

    def called(self, name):
        return [kwargs for call, kwargs in self.calls if call == name]

    def tokenize_card(self, card_number, exp_month, exp_year, cvc, holder_name=None, zip_code=None, country=None):
        self._record(
            "tokenize_card",
            card_number=card_number,
            exp_month=exp_month,
            exp_year=exp_year,
            country=country,
        )
        return resolve_test_card_token(card_number)

    def find_or_create_customer(self, email, name=None, metadata=None):
        self._record("find_or_create_customer", email=email, name=name, metadata=metadata)
        return "cus_fake_1"

    def attach_payment_method(self, payment_method_id, customer_id):
        self._record("attach_payment_method", payment_method_id=payment_method_id, customer_id=customer_id)

    def set_default_payment_method(self, customer_id, payment_method_id):
        self._record("set_default_payment_method", customer_id=customer_id, payment_method_id=payment_method_id)

    def create_payment_intent(self, **kwargs):
        self._record("create_payment_intent", **kwargs)
        return self.intent

    def retrieve_subscription(self, subscription_id):
        self._record("retrieve_subscription", subscription_id=subscription_id)
        return self.subscriptions[subscription_id]

    def cancel_subscription(self, subscription_id):
        self._record("cancel_subscription", subscription_id=subscription_id)
        subscription = self.subscriptions.get(subscription_id) or GatewaySubscription(id=subscription_id, status="active")
        subscription.status = "canceled"
        return subscription

    def update_subscription(self, subscription_id, cancel_at_period_end):
        self._record("update_subscription", subscription_id=subscription_id, cancel_at_period_end=cancel_at_period_end)
        subscription = self.subscriptions.get(subscription_id) or GatewaySubscription(id=subscription_id, status="active")
        subscription.cancel_at_period_end = cancel_at_period_end
        return subscription


# ==================== APP / DATABASE ====================

@pytest.fixture(scope="session")
def gateway():
    return FakeGateway()


@pytest.fixture(scope="session")
def app(gateway):
    """Create application for testing with the gateway double injected"""
    app = create_app("testing", gateway=gateway)
    yield app


@pytest.fixture(autouse=True)
def database(app, gateway):
    """Fresh tables and a clean gateway double for every test"""
    gateway.reset()
    with app.app_context():
        db.create_all()
        yield db
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def services(database):
    return get_services()


@pytest.fixture()
def auth_headers(database):
    token = create_access_token(identity="1")
    return {
        "Authorization": f"Bearer {token}",
        "X-Request-ID": fake.uuid4(),
    }


# ==================== FACTORIES ====================

@pytest.fixture()
def currency(database):
    currency = Currency(currency_code="USD", currency_name="US Dollar", currency_symbol="$", exchange_rate=1)
    db.session.add(currency)
    db.session.commit()
    return currency


@pytest.fixture()
def make_package(database):
    def _make(**overrides):
        fields = {
            "name": fake.unique.word().title() + " Plan",
            "description": fake.sentence(),
            "price_monthly": Decimal("100.00"),
            "price_yearly": Decimal("1000.00"),
            "discount": Decimal("10"),
            "billing_cycle": BillingCycle.MONTHLY,
            "extra_add_on": [
                {
                    "module": "Billing",
                    "feature": "Installments",
                    "monthlyPrice": 20,
                    "yearlyPrice": 200,
                    "discount": 5,
                    "description": "Installment plans",
                },
                {
                    "module": "Matters",
                    "feature": "Document storage",
                    "monthlyPrice": 15,
                    "yearlyPrice": 150,
                    "discount": 0,
                    "description": "Extra storage",
                },
            ],
            "is_active": True,
        }
        fields.update(overrides)
        package = Package(**fields)
        db.session.add(package)
        db.session.commit()
        return package

    return _make


@pytest.fixture()
def package(make_package):
    return make_package()


@pytest.fixture()
def make_customer(currency):
    def _make(**overrides):
        fields = {
            "first_name": fake.first_name(),
            "last_name": fake.last_name(),
            "email": fake.unique.email(),
            "status": CustomerStatus.TRIAL,
            "currency_id": currency.id,
        }
        fields.update(overrides)
        customer = Customer(**fields)
        db.session.add(customer)
        db.session.commit()
        return customer

    return _make


@pytest.fixture()
def customer(make_customer):
    return make_customer()


@pytest.fixture()
def customer_package(customer, package):
    customer_package = CustomerPackage(customer_id=customer.id, package_id=package.id, add_ons=[])
    customer.package_id = package.id
    db.session.add(customer_package)
    db.session.commit()
    return customer_package


@pytest.fixture()
def card_data():
    return {
        "payment_method": "stripe",
        "name": "Company card",
        "card_number": "4242424242424242",
        "card_expiry_date": "12/30",
        "card_cvv": "123",
        "card_holder_name": fake.name(),
        "zip_code": fake.postcode(),
        "country": "United States",
        "is_default": True,
    }


@pytest.fixture()
def payment_method(services, customer, card_data):
    return services.vault.create(customer.id, card_data)


@pytest.fixture()
def pending_pair(services, customer_package):
    order, invoice, _ = services.orders.create_order(customer_package.customer_id, 1)
    return order, invoice


# ==================== WEBHOOKS ====================

def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    """Build a Stripe-Signature header the way Stripe does."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_event(event_type: str, obj: dict, event_id: str = None) -> dict:
    return {
        "id": event_id or f"evt_{fake.uuid4()[:14]}",
        "object": "event",
        "type": event_type,
        "livemode": False,
        "data": {"object": obj},
    }


def payment_intent(intent_id, amount, metadata, last_error=None):
    return {
        "id": intent_id,
        "object": "payment_intent",
        "amount": amount,
        "amount_received": amount if last_error is None else 0,
        "currency": "usd",
        "metadata": metadata,
        "last_payment_error": last_error,
    }


@pytest.fixture()
def post_event(client):
    def _post(event: dict, secret: str = WEBHOOK_SECRET):
        payload = json.dumps(event)
        return client.post(
            "/api/payments/webhook",
            data=payload,
            headers={"Stripe-Signature": sign_payload(payload, secret), "Content-Type": "application/json"},
        )

    return _post


@pytest.fixture()
def charge_metadata(pending_pair, customer, customer_package, package, payment_method, currency):
    order, invoice = pending_pair
    return {
        "customerId": str(customer.id),
        "orderId": str(order.id),
        "invoiceId": str(invoice.id),
        "customerPackageId": str(customer_package.id),
        "paymentMethodId": str(payment_method.id),
        "currencyId": str(currency.id),
        "packageId": str(package.id),
        "packageName": package.name,
        "billingCycle": package.billing_cycle,
        "autoRenew": "true",
        "localInvoiceNumber": invoice.invoice_number,
    }
