from .base import BaseConfig, ConfigurationError


class ProductionConfig(BaseConfig):
    """
    Production configuration.
    """

    DEBUG = False
    ENVIRONMENT = "production"

    REQUIRED = ("SECRET_KEY", "ADMIN_TOKEN", "AIRTABLE_TOKEN", "AIRTABLE_BASE_ID")

    @classmethod
    def validate(cls):
        """Fail fast when a required secret is missing."""
        missing = [name for name in cls.REQUIRED if not getattr(cls, name, None)]
        if missing:
            raise ConfigurationError(
                f"Missing required production settings: {', '.join(missing)}"
            )
        if "*" in cls.CORS_ORIGINS:
            raise ConfigurationError("Wildcard CORS origin '*' is not allowed in production")
