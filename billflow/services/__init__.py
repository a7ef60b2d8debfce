"""
Service container.

Services are built once per application in ``init_services`` with the
request-scoped ``db.session`` and a single gateway instance, and looked up
from routes through ``get_services()``. Tests swap the gateway by passing
one to ``create_app``.
"""

import logging
from dataclasses import dataclass

from flask import current_app

from billflow.extensions import db, mail

from .catalog_service import CatalogService
from .gateway import StripeGateway
from .notification_service import NotificationService
from .order_service import OrderBuilder
from .payment_method_service import PaymentMethodService
from .payment_service import PaymentProcessor
from .subscription_service import SubscriptionLifecycle
from .webhook_service import WebhookReconciler

logger = logging.getLogger(__name__)

EXTENSION_KEY = "billflow"


@dataclass
class BillingServices:
    gateway: StripeGateway
    catalog: CatalogService
    vault: PaymentMethodService
    orders: OrderBuilder
    payments: PaymentProcessor
    webhooks: WebhookReconciler
    subscriptions: SubscriptionLifecycle
    notifications: NotificationService


def init_services(app, gateway=None) -> BillingServices:
    if gateway is None:
        gateway = StripeGateway.from_config(app.config)

    session = db.session
    vault = PaymentMethodService(session, app.config.get("ENCRYPTION_KEY"))
    notifications = NotificationService(mail, session, app.config.get("MAIL_DEFAULT_SENDER"))

    services = BillingServices(
        gateway=gateway,
        catalog=CatalogService(session),
        vault=vault,
        orders=OrderBuilder(session),
        payments=PaymentProcessor(session, gateway, vault),
        webhooks=WebhookReconciler(session, gateway, notifications),
        subscriptions=SubscriptionLifecycle(session, gateway),
        notifications=notifications,
    )
    app.extensions[EXTENSION_KEY] = services
    logger.info("Billing services initialized", extra={"gateway": gateway.name, "test_mode": gateway.test_mode})
    return services


def get_services() -> BillingServices:
    return current_app.extensions[EXTENSION_KEY]


__all__ = ["BillingServices", "init_services", "get_services"]
