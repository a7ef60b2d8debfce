import os

from .base import BaseConfig


class DevelopmentConfig(BaseConfig):
    """
    Development configuration.
    """

    ENVIRONMENT = "development"
    DEBUG = True

    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-jwt-secret-key")
    ENCRYPTION_KEY = os.getenv("ENCRYPTION_KEY", "dev-encryption-key")

    CREATE_TABLES_ON_START = True
    LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")
