from flask import Blueprint
from flask_jwt_extended import jwt_required

from billflow.schemas import PaymentMethodCreateRequest, PaymentMethodUpdateRequest, parse_body
from billflow.services import get_services

from .helpers import success

bp = Blueprint("payment_methods", __name__, url_prefix="/api/payment-methods")


@bp.route("", methods=["POST"])
@jwt_required()
def create_payment_method():
    payload = parse_body(PaymentMethodCreateRequest)
    vault = get_services().vault

    data = payload.model_dump(exclude={"customer_id"})
    payment_method = vault.create(payload.customer_id, data)
    return success(vault.serialize(payment_method), "Payment method created successfully", 201)


@bp.route("/customer/<int:customer_id>", methods=["GET"])
@jwt_required()
def list_payment_methods(customer_id):
    vault = get_services().vault
    methods = vault.list_for_customer(customer_id)
    return success([vault.serialize(m) for m in methods], "Payment methods retrieved successfully")


@bp.route("/customer/<int:customer_id>/default", methods=["GET"])
@jwt_required()
def get_default_payment_method(customer_id):
    vault = get_services().vault
    return success(vault.serialize(vault.get_default(customer_id)), "Default payment method retrieved successfully")


@bp.route("/<int:payment_method_id>", methods=["GET"])
@jwt_required()
def get_payment_method(payment_method_id):
    vault = get_services().vault
    return success(vault.serialize(vault.get(payment_method_id)), "Payment method retrieved successfully")


@bp.route("/<int:payment_method_id>", methods=["PUT"])
@jwt_required()
def update_payment_method(payment_method_id):
    payload = parse_body(PaymentMethodUpdateRequest)
    vault = get_services().vault
    payment_method = vault.update(payment_method_id, payload.changes())
    return success(vault.serialize(payment_method), "Payment method updated successfully")


@bp.route("/<int:payment_method_id>", methods=["DELETE"])
@jwt_required()
def delete_payment_method(payment_method_id):
    get_services().vault.delete(payment_method_id)
    return success(message="Payment method deleted successfully")


@bp.route("/<int:payment_method_id>/default", methods=["PATCH"])
@jwt_required()
def set_default_payment_method(payment_method_id):
    vault = get_services().vault
    payment_method = vault.set_default(payment_method_id)
    return success(vault.serialize(payment_method), "Default payment method updated successfully")
