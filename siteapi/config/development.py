from .base import BaseConfig


class DevelopmentConfig(BaseConfig):
    """
    Development configuration.
    """

    DEBUG = True
    ENVIRONMENT = "development"

    SECRET_KEY = BaseConfig.SECRET_KEY or "dev-secret-key"
    JWT_SECRET_KEY = BaseConfig.JWT_SECRET_KEY or "dev-jwt-secret"
    ADMIN_TOKEN = BaseConfig.ADMIN_TOKEN or "dev-admin-token"
    LOG_LEVEL = "DEBUG"
