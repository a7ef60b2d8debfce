import os
from datetime import timedelta


class ConfigurationError(Exception):
    """
    Raised when an invalid or unsupported configuration is requested.
    """
    pass


def _env_bool(name, default=False):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class BaseConfig:
    """
    Base configuration shared by all environments.
    """

    ENVIRONMENT = "base"

    # Flask
    DEBUG = False
    TESTING = False
    SECRET_KEY = os.getenv("SECRET_KEY")

    # Application
    APP_NAME = "billflow"
    APP_VERSION = os.getenv("APP_VERSION", "1.0.0")

    # Database
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///billflow.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CREATE_TABLES_ON_START = _env_bool("CREATE_TABLES_ON_START")

    # JWT
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(minutes=15)
    JWT_TOKEN_LOCATION = ["headers"]
    JWT_HEADER_NAME = "Authorization"
    JWT_HEADER_TYPE = "Bearer"
    JWT_ERROR_MESSAGE_KEY = "message"

    # CORS
    CORS_ORIGINS = [o for o in os.getenv("CORS_ORIGINS", "").split(",") if o]

    # Card vault
    ENCRYPTION_KEY = os.getenv("ENCRYPTION_KEY")

    # Stripe
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
    STRIPE_WEBHOOK_TOLERANCE = int(os.getenv("STRIPE_WEBHOOK_TOLERANCE", "300"))
    STRIPE_MAX_RETRIES = int(os.getenv("STRIPE_MAX_RETRIES", "2"))
    STRIPE_TIMEOUT = int(os.getenv("STRIPE_TIMEOUT", "30"))
    # unset means "derive from the secret key" (sk_test_... keys are sandbox keys)
    STRIPE_TEST_MODE = _env_bool("STRIPE_TEST_MODE") if os.getenv("STRIPE_TEST_MODE") is not None else None

    # Mail
    MAIL_SERVER = os.getenv("MAIL_SERVER", "localhost")
    MAIL_PORT = int(os.getenv("MAIL_PORT", "25"))
    MAIL_USE_TLS = _env_bool("MAIL_USE_TLS")
    MAIL_USERNAME = os.getenv("MAIL_USERNAME")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.getenv("MAIL_DEFAULT_SENDER", "billing@billflow.local")
    MAIL_SUPPRESS_SEND = False

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_REQUESTS = _env_bool("LOG_REQUESTS")

    # Monitoring
    SENTRY_DSN = os.getenv("SENTRY_DSN")

    REQUIRED_SETTINGS = ()

    @classmethod
    def validate(cls):
        """Return the names of required settings that are missing."""
        return [name for name in cls.REQUIRED_SETTINGS if not getattr(cls, name, None)]
