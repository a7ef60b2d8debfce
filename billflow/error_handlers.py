import logging

from flask import jsonify, request
from pydantic import ValidationError as PydanticValidationError
from werkzeug.exceptions import HTTPException

from billflow.errors import BillingError

logger = logging.getLogger(__name__)


def first_validation_message(exc: PydanticValidationError) -> str:
    """Collapse a pydantic error into the single message returned to clients."""
    error = exc.errors()[0]
    location = ".".join(str(part) for part in error.get("loc", ()) if part != "__root__")
    message = error.get("msg", "Invalid request")
    return f"{location}: {message}" if location else message


def register_error_handlers(app):
    """Register JSON error handlers for the application."""

    @app.errorhandler(BillingError)
    def handle_billing_error(e):
        if e.status_code >= 500:
            logger.error(
                "Billing error",
                extra={"path": request.path, "error_type": type(e).__name__, "error_message": e.message},
            )
        else:
            logger.info(
                "Request rejected",
                extra={"path": request.path, "status_code": e.status_code, "error_message": e.message},
            )
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(PydanticValidationError)
    def handle_validation_error(e):
        message = first_validation_message(e)
        logger.info("Validation failed", extra={"path": request.path, "error_message": message})
        return jsonify({"success": False, "message": message}), 400

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        return jsonify({
            "success": False,
            "message": e.description,
            "error": e.name,
        }), e.code

    @app.errorhandler(Exception)
    def handle_exception(e):
        # no stack traces or exception text in the response body
        logger.exception("Unhandled exception", extra={"path": request.path, "method": request.method})
        return jsonify({
            "success": False,
            "message": "Something went wrong. Please try again later.",
        }), 500
