from flask import Blueprint
from flask_jwt_extended import jwt_required

from billflow.schemas import PackageCreateRequest, PackageUpdateRequest, parse_body
from billflow.services import get_services

from .helpers import success

bp = Blueprint("packages", __name__, url_prefix="/api/packages")


@bp.route("", methods=["GET"])
@jwt_required()
def list_packages():
    packages = get_services().catalog.list_packages()
    return success([package.to_dict() for package in packages], "Packages retrieved successfully")


@bp.route("/active", methods=["GET"])
@jwt_required()
def list_active_packages():
    packages = get_services().catalog.list_packages(active_only=True)
    return success([package.to_dict() for package in packages], "Packages retrieved successfully")


@bp.route("/<int:package_id>", methods=["GET"])
@jwt_required()
def get_package(package_id):
    package = get_services().catalog.find_package(package_id)
    return success(package.to_dict(), "Package retrieved successfully")


@bp.route("", methods=["POST"])
@jwt_required()
def create_package():
    payload = parse_body(PackageCreateRequest)
    package = get_services().catalog.create_package(payload.fields())
    return success(package.to_dict(), "Package created successfully", 201)


@bp.route("/<int:package_id>", methods=["PUT"])
@jwt_required()
def update_package(package_id):
    payload = parse_body(PackageUpdateRequest)
    package = get_services().catalog.update_package(package_id, payload.changes())
    return success(package.to_dict(), "Package updated successfully")


@bp.route("/<int:package_id>", methods=["DELETE"])
@jwt_required()
def delete_package(package_id):
    get_services().catalog.delete_package(package_id)
    return success(message="Package deleted successfully")
