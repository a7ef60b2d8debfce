from flask import Blueprint
from flask_jwt_extended import jwt_required

from billflow.schemas import AutoRenewRequest, CancelSubscriptionRequest, parse_body
from billflow.services import get_services

from .helpers import success

bp = Blueprint("subscriptions", __name__, url_prefix="/api/subscriptions")


@bp.route("/<int:subscription_id>/cancel", methods=["POST"])
@jwt_required()
def cancel_subscription(subscription_id):
    payload = parse_body(CancelSubscriptionRequest)
    subscription = get_services().subscriptions.cancel(subscription_id, payload.cancel_at_period_end)

    if payload.cancel_at_period_end:
        message = "Subscription will be cancelled at the end of the billing period"
    else:
        message = "Subscription cancelled successfully"
    return success(subscription.to_dict(), message)


@bp.route("/<int:subscription_id>", methods=["DELETE"])
@jwt_required()
def delete_subscription(subscription_id):
    get_services().subscriptions.delete(subscription_id)
    return success(message="Subscription deleted successfully")


@bp.route("/<int:subscription_id>/auto-renew", methods=["PATCH"])
@jwt_required()
def set_auto_renew(subscription_id):
    payload = parse_body(AutoRenewRequest)
    subscription = get_services().subscriptions.set_auto_renew(subscription_id, payload.auto_renew)
    state = "enabled" if payload.auto_renew else "disabled"
    return success(subscription.to_dict(), f"Auto-renewal {state} successfully")
