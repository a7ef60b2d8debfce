"""
Flask extensions initialization module.
"""

import logging

from flask import jsonify
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from flask_mail import Mail
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
jwt = JWTManager()
cors = CORS()
migrate = Migrate()
mail = Mail()

logger = logging.getLogger(__name__)


def init_extensions(app):
    """Initialize all Flask extensions against ``app``."""

    db.init_app(app)
    logger.info("SQLAlchemy initialized")

    migrate.init_app(app, db)
    logger.info("Flask-Migrate initialized")

    jwt.init_app(app)
    setup_jwt_callbacks()
    logger.info("JWT Manager initialized")

    init_cors(app)
    logger.info("CORS initialized")

    mail.init_app(app)
    logger.info("Flask-Mail initialized")

    if app.config.get("CREATE_TABLES_ON_START", False):
        create_tables(app)

    return app


def init_cors(app):
    cors_config = {
        "origins": app.config.get("CORS_ORIGINS") or [],
        "methods": ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        "allow_headers": ["Content-Type", "Authorization", "X-Request-ID"],
        "supports_credentials": False,
        "max_age": 600,
    }
    cors.init_app(app, **cors_config)


def setup_jwt_callbacks():
    """Return JWT failures in the same envelope as every other error."""

    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return jsonify({
            "success": False,
            "message": "The token has expired. Please refresh your token.",
        }), 401

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        return jsonify({
            "success": False,
            "message": "Invalid token. Please provide a valid authentication token.",
        }), 401

    @jwt.unauthorized_loader
    def missing_token_callback(error):
        return jsonify({
            "success": False,
            "message": "Authentication required. Please provide a valid token.",
        }), 401


def create_tables(app):
    """Create all tables; used by development and the CLI."""
    with app.app_context():
        # models must be imported so their tables are registered on the metadata
        from billflow import models  # noqa: F401

        db.create_all()
        logger.info("Database tables created/verified")


__all__ = ["db", "jwt", "cors", "migrate", "mail", "init_extensions", "create_tables"]
