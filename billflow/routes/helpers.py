from flask import jsonify, request
from flask_jwt_extended import get_jwt_identity

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def acting_user_id():
    """JWT subject of the caller, as an int when it is numeric."""
    identity = get_jwt_identity()
    if isinstance(identity, str) and identity.isdigit():
        return int(identity)
    return identity


def success(data=None, message=None, status_code=200, **extra):
    body = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    body.update(extra)
    return jsonify(body), status_code


def page_args():
    page = max(1, request.args.get("page", 1, type=int) or 1)
    limit = request.args.get("limit", DEFAULT_PAGE_SIZE, type=int) or DEFAULT_PAGE_SIZE
    return page, min(MAX_PAGE_SIZE, max(1, limit))
