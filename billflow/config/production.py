from .base import BaseConfig


class ProductionConfig(BaseConfig):
    """
    Production configuration.

    Every secret MUST come from the environment.
    """

    ENVIRONMENT = "production"
    DEBUG = False

    REQUIRED_SETTINGS = (
        "SECRET_KEY",
        "JWT_SECRET_KEY",
        "ENCRYPTION_KEY",
        "STRIPE_SECRET_KEY",
        "STRIPE_WEBHOOK_SECRET",
    )
