from flask import Blueprint, request
from flask_jwt_extended import jwt_required

from billflow.schemas import OrderUpdateRequest, parse_body
from billflow.services import get_services

from .helpers import acting_user_id, page_args, success

bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _order_with_invoice(order, invoice=None):
    data = order.to_dict()
    invoice = invoice or order.invoice
    data["invoice"] = invoice.to_dict() if invoice else None
    return data


@bp.route("/customer/<int:customer_id>", methods=["POST"])
@jwt_required()
def create_order(customer_id):
    """Create the customer's pending order and draft invoice, or return the open pair."""
    order, invoice, created = get_services().orders.create_order(customer_id, acting_user_id())

    data = {
        "order": order.to_dict() if order else None,
        "invoice": invoice.to_dict() if invoice else None,
    }
    if created:
        return success(data, "Order and invoice created successfully", 201)
    return success(data, "Pending order or invoice already exists")


@bp.route("/customer/<int:customer_id>", methods=["GET"])
@jwt_required()
def list_customer_orders(customer_id):
    orders = get_services().orders.list_customer_orders(customer_id)
    return success([_order_with_invoice(order) for order in orders], "Orders retrieved successfully")


@bp.route("", methods=["GET"])
@jwt_required()
def list_orders():
    page, limit = page_args()
    orders, pagination = get_services().orders.list_orders(
        page=page,
        limit=limit,
        status=request.args.get("status"),
        customer_id=request.args.get("customerId", type=int),
    )
    return success([order.to_dict() for order in orders], "Orders retrieved successfully", pagination=pagination)


@bp.route("/<int:order_id>", methods=["GET"])
@jwt_required()
def get_order(order_id):
    order = get_services().orders.get_order(order_id)
    return success(_order_with_invoice(order), "Order retrieved successfully")


@bp.route("/<int:order_id>", methods=["PUT"])
@jwt_required()
def update_order(order_id):
    payload = parse_body(OrderUpdateRequest)
    order = get_services().orders.update_order(order_id, payload.changes())
    return success(order.to_dict(), "Order updated successfully")


@bp.route("/<int:order_id>", methods=["DELETE"])
@jwt_required()
def delete_order(order_id):
    get_services().orders.delete_order(order_id)
    return success(message="Order deleted successfully")
