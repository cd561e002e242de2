import os


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

    # Flask
    DEBUG = False
    TESTING = False
    SECRET_KEY = os.getenv("SECRET_KEY")
    ENVIRONMENT = "base"

    # Application
    APP_NAME = "Personal Site API"
    APP_VERSION = os.getenv("APP_VERSION", "1.0.0")
    SITE_URL = os.getenv("SITE_URL", "http://localhost:5000")
    FRONTEND_URL = os.getenv("FRONTEND_URL")

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_REQUESTS = _env_bool("LOG_REQUESTS")

    # Admin
    ADMIN_TOKEN = os.getenv("ADMIN_TOKEN")

    # Auth tokens
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY") or os.getenv("SECRET_KEY")
    JWT_ACCESS_TOKEN_HOURS = int(os.getenv("JWT_ACCESS_TOKEN_HOURS", "24"))

    # Tabular data store
    AIRTABLE_TOKEN = os.getenv("AIRTABLE_TOKEN")
    AIRTABLE_BASE_ID = os.getenv("AIRTABLE_BASE_ID")
    AIRTABLE_API_URL = os.getenv("AIRTABLE_API_URL", "https://api.airtable.com/v0")
    AIRTABLE_TIMEOUT = float(os.getenv("AIRTABLE_TIMEOUT", "10"))

    # Shared cache
    REDIS_URL = os.getenv("REDIS_URL")
    ADMISSION_WINDOW_BACKEND = os.getenv("ADMISSION_WINDOW_BACKEND", "memory")

    # Reputation service
    PROXYCHECK_API_KEY = os.getenv("PROXYCHECK_API_KEY")
    PROXYCHECK_API_URL = os.getenv("PROXYCHECK_API_URL", "https://proxycheck.io/v2")
    REPUTATION_ENABLED = _env_bool("REPUTATION_ENABLED", True)

    # Chat webhook
    DISCORD_WEBHOOK_URL = os.getenv("DISCORD_WEBHOOK_URL")
    DISCORD_MENTION_ID = os.getenv("DISCORD_MENTION_ID", "")

    # Mail
    MICROSOFT_TENANT_ID = os.getenv("MICROSOFT_TENANT_ID")
    MICROSOFT_CLIENT_ID = os.getenv("MICROSOFT_CLIENT_ID")
    MICROSOFT_CLIENT_SECRET = os.getenv("MICROSOFT_CLIENT_SECRET")
    SENDER_EMAIL = os.getenv("SENDER_EMAIL")
    CONTACT_RECIPIENT = os.getenv("CONTACT_RECIPIENT") or os.getenv("SENDER_EMAIL")

    # Payments
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
    DONATION_PRODUCT_NAME = os.getenv("DONATION_PRODUCT_NAME", "Buy me an energy drink")

    # Error tracking
    SENTRY_DSN = os.getenv("SENTRY_DSN")

    # Endpoint rate limits (flask-limiter)
    RATELIMIT_ENABLED = _env_bool("RATELIMIT_ENABLED", True)
    RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "memory://")
    LOGIN_RATE_LIMIT = os.getenv("LOGIN_RATE_LIMIT", "10 per minute")

    # CORS
    CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
