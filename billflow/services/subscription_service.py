import logging

from billflow.errors import NotFoundError
from billflow.models import Customer, CustomerStatus, Subscription, SubscriptionStatus
from billflow.utils.dates import from_unix, utcnow

logger = logging.getLogger(__name__)


class SubscriptionLifecycle:
    """
    Customer-initiated subscription changes.

    When the subscription is billed by the gateway, the gateway is told first
    and a gateway failure leaves local state untouched. The only exception is
    ``delete``, which always completes locally.
    """

    def __init__(self, session, gateway):
        self.session = session
        self.gateway = gateway

    def get(self, subscription_id) -> Subscription:
        subscription = self.session.query(Subscription).filter_by(id=subscription_id, is_delete=False).first()
        if not subscription:
            raise NotFoundError("Subscription not found")
        return subscription

    def _customer(self, subscription):
        return self.session.query(Customer).filter_by(id=subscription.customer_id).first()

    def cancel(self, subscription_id, cancel_at_period_end=False) -> Subscription:
        subscription = self.get(subscription_id)

        gateway_subscription = None
        if subscription.subscription_id:
            if cancel_at_period_end:
                gateway_subscription = self.gateway.update_subscription(
                    subscription.subscription_id, cancel_at_period_end=True
                )
            else:
                gateway_subscription = self.gateway.cancel_subscription(subscription.subscription_id)

        if cancel_at_period_end:
            self._cancel_at_period_end(subscription, gateway_subscription)
        else:
            self._cancel_now(subscription)
        self.session.commit()

        logger.info(
            "Subscription cancelled",
            extra={
                "subscription_id": subscription.id,
                "customer_id": subscription.customer_id,
                "cancel_at_period_end": cancel_at_period_end,
            },
        )
        return subscription

    def _cancel_now(self, subscription):
        now = utcnow()
        subscription.status = SubscriptionStatus.CANCELLED
        subscription.auto_renew = False
        subscription.end_date = now

        customer = self._customer(subscription)
        if customer:
            customer.status = CustomerStatus.INACTIVE
            customer.expiry_date = now

    def _cancel_at_period_end(self, subscription, gateway_subscription):
        # access continues until the paid period runs out
        subscription.auto_renew = False
        period_end = from_unix(gateway_subscription.current_period_end) if gateway_subscription else None
        if period_end:
            subscription.end_date = period_end

        customer = self._customer(subscription)
        if customer:
            customer.expiry_date = subscription.end_date

    def delete(self, subscription_id) -> None:
        """Cancel immediately and soft delete; a gateway failure is logged only."""
        subscription = self.get(subscription_id)

        if subscription.subscription_id:
            try:
                self.gateway.cancel_subscription(subscription.subscription_id)
            except Exception:
                logger.exception(
                    "Gateway cancellation failed, deleting locally",
                    extra={"subscription_id": subscription.id, "gateway_subscription_id": subscription.subscription_id},
                )

        self._cancel_now(subscription)
        subscription.is_delete = True
        self.session.commit()
        logger.info("Subscription deleted", extra={"subscription_id": subscription.id})

    def set_auto_renew(self, subscription_id, auto_renew: bool) -> Subscription:
        subscription = self.get(subscription_id)

        if subscription.subscription_id:
            self.gateway.update_subscription(subscription.subscription_id, cancel_at_period_end=not auto_renew)

        subscription.auto_renew = auto_renew
        self.session.commit()
        logger.info(
            "Subscription auto-renew updated",
            extra={"subscription_id": subscription.id, "auto_renew": auto_renew},
        )
        return subscription
