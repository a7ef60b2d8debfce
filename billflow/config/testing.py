from .base import BaseConfig


class TestingConfig(BaseConfig):
    """
    Test configuration: in-memory SQLite, sandbox Stripe keys, no outgoing mail.
    """

    ENVIRONMENT = "testing"
    TESTING = True

    SECRET_KEY = "test-secret-key"
    JWT_SECRET_KEY = "test-jwt-secret-key-with-enough-bytes"
    ENCRYPTION_KEY = "test-encryption-key"

    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"

    STRIPE_SECRET_KEY = "sk_test_mock"
    STRIPE_WEBHOOK_SECRET = "whsec_test_secret"

    MAIL_SUPPRESS_SEND = True
    LOG_LEVEL = "WARNING"
