"""
Flask application factory.

Fails fast when a production deployment is missing required secrets.
"""

import logging
from datetime import datetime

import sentry_sdk
from flask import Flask, jsonify
from sentry_sdk.integrations.flask import FlaskIntegration
from sqlalchemy import text

from billflow.config import ConfigurationError, get_config
from billflow.error_handlers import register_error_handlers
from billflow.extensions import db, init_extensions
from billflow.logging_config import setup_logging
from billflow.middleware import init_request_id_middleware
from billflow.routes import register_blueprints
from billflow.services import init_services

logger = logging.getLogger(__name__)


def setup_sentry(app: Flask) -> None:
    """Initialize Sentry error tracking when a DSN is configured."""
    sentry_dsn = app.config.get("SENTRY_DSN")
    if not sentry_dsn:
        return

    sentry_sdk.init(
        dsn=sentry_dsn,
        integrations=[FlaskIntegration()],
        traces_sample_rate=0.1,
        environment=app.config.get("ENVIRONMENT"),
        release=app.config.get("APP_VERSION"),
        send_default_pii=False,
    )
    logger.info("Sentry error tracking initialized")


def register_health_check(app: Flask) -> None:
    @app.route("/health", methods=["GET"])
    def health_check():
        status = {
            "status": "healthy",
            "timestamp": datetime.utcnow().isoformat(),
            "environment": app.config.get("ENVIRONMENT"),
            "version": app.config.get("APP_VERSION"),
            "checks": {},
        }
        try:
            db.session.execute(text("SELECT 1"))
            status["checks"]["database"] = "healthy"
        except Exception:
            logger.exception("Health check database query failed")
            status["checks"]["database"] = "unhealthy"
            status["status"] = "degraded"

        return jsonify(status), 200 if status["status"] == "healthy" else 503


def create_app(config_name=None, gateway=None) -> Flask:
    """
    Build the application.

    ``gateway`` replaces the Stripe gateway built from config; tests use it
    to inject a double.
    """
    config_class = get_config(config_name)
    missing = config_class.validate()
    if missing:
        raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")

    app = Flask(__name__)
    app.config.from_object(config_class)

    setup_logging(app)
    setup_sentry(app)

    init_extensions(app)
    init_request_id_middleware(app)
    register_error_handlers(app)

    init_services(app, gateway=gateway)
    register_blueprints(app)
    register_health_check(app)

    logger.info("Application created", extra={"environment": app.config.get("ENVIRONMENT")})
    return app


__all__ = ["create_app"]
