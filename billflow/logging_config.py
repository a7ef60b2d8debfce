import logging
import logging.config
import sys
import time

from flask import g, has_request_context, request


class RequestIdFilter(logging.Filter):
    """Stamp every record with the current request id (or '-' outside a request)."""

    def filter(self, record):
        record.request_id = g.get("request_id", "-") if has_request_context() else "-"
        return True


def build_logging_config(level="INFO"):
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "request_id": {"()": RequestIdFilter},
        },
        "formatters": {
            "json": {
                "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                "format": "%(asctime)s %(levelname)s %(name)s %(request_id)s %(message)s",
                "json_ensure_ascii": False,
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "json",
                "filters": ["request_id"],
                "stream": sys.stdout,
            },
        },
        "loggers": {
            "billflow": {
                "handlers": ["console"],
                "level": level,
                "propagate": False,
            },
            # stripe's own logger is noisy at INFO and may echo request bodies
            "stripe": {
                "handlers": ["console"],
                "level": "WARNING",
                "propagate": False,
            },
        },
        "root": {
            "handlers": ["console"],
            "level": "WARNING",
        },
    }


def setup_logging(app):
    """
    Configure JSON logging for the application.

    Request/response logging is enabled when LOG_REQUESTS or DEBUG is set.
    """
    level = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    logging.config.dictConfig(build_logging_config(level))

    logger = logging.getLogger("billflow")
    logger.info(
        "Logging configured",
        extra={"environment": app.config.get("ENVIRONMENT"), "log_level": level},
    )

    if app.config.get("LOG_REQUESTS") or app.debug:
        _register_request_logging(app)


def _register_request_logging(app):
    logger = logging.getLogger("billflow.requests")

    @app.before_request
    def log_request():
        g.request_started_at = time.time()
        logger.info(
            "Request started",
            extra={
                "method": request.method,
                "path": request.path,
                "remote_addr": request.remote_addr,
            },
        )

    @app.after_request
    def log_response(response):
        started = g.get("request_started_at")
        duration_ms = round((time.time() - started) * 1000, 2) if started else None
        logger.info(
            "Request finished",
            extra={
                "method": request.method,
                "path": request.path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        return response
