import logging

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from billflow.errors import GatewayMisconfiguredError
from billflow.schemas import PayNowRequest, parse_body
from billflow.services import get_services

logger = logging.getLogger(__name__)

bp = Blueprint("payments", __name__, url_prefix="/api/payments")

SIGNATURE_HEADER = "Stripe-Signature"


@bp.route("/pay-now", methods=["POST"])
@jwt_required()
def pay_now():
    """
    Charge the customer's card for a pending order.

    Gateway outcomes, including declines, are reported in the body with a
    200; Order and Invoice state changes arrive later through the webhook.
    """
    payload = parse_body(PayNowRequest)
    result = get_services().payments.payment_now(
        customer_id=payload.customer_id,
        order_id=payload.order_id,
        invoice_id=payload.invoice_id,
        payment_method_id=payload.payment_method_id,
        auto_renew=payload.auto_renew,
    )
    return jsonify(result), 200


@bp.route("/webhook", methods=["POST"])
def stripe_webhook():
    # the signature covers the exact bytes, so the body must not be re-parsed first
    payload = request.get_data()
    signature = request.headers.get(SIGNATURE_HEADER)

    try:
        result = get_services().webhooks.handle_event(payload, signature)
    except GatewayMisconfiguredError as e:
        logger.error("Webhook endpoint misconfigured", extra={"missing_config": e.missing_config})
        return jsonify({"success": False, "message": "Server configuration error"}), 500

    return jsonify(result), 200
