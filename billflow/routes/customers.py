from flask import Blueprint
from flask_jwt_extended import jwt_required

from billflow.schemas import SelectAddOnsRequest, SelectPackageRequest, parse_body
from billflow.services import get_services

from .helpers import success

bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@bp.route("/<int:customer_id>/package", methods=["POST"])
@jwt_required()
def select_package(customer_id):
    payload = parse_body(SelectPackageRequest)
    customer_package = get_services().catalog.select_package(customer_id, payload.package_id)
    return success(customer_package.to_dict(), "Package selected successfully")


@bp.route("/<int:customer_id>/packages/<int:package_id>/add-ons", methods=["POST"])
@jwt_required()
def select_add_ons(customer_id, package_id):
    payload = parse_body(SelectAddOnsRequest)
    selected = [add_on.model_dump() for add_on in payload.selected_add_ons]
    customer_package = get_services().catalog.select_add_ons(customer_id, package_id, selected)
    return success(customer_package.to_dict(), "Add-ons updated successfully")
