from .base import BaseConfig


class TestingConfig(BaseConfig):
    """
    Test configuration. External collaborators are replaced by fakes in tests.
    """

    TESTING = True
    DEBUG = False
    ENVIRONMENT = "testing"

    SECRET_KEY = "test-secret-key"
    JWT_SECRET_KEY = "test-jwt-secret-key-with-enough-bytes"
    ADMIN_TOKEN = "test-admin-token"

    AIRTABLE_TOKEN = None
    AIRTABLE_BASE_ID = None
    REDIS_URL = None
    ADMISSION_WINDOW_BACKEND = "memory"
    DISCORD_WEBHOOK_URL = None
    STRIPE_SECRET_KEY = "sk_test_mock"
    STRIPE_WEBHOOK_SECRET = "whsec_test"
    SENTRY_DSN = None
    PROXYCHECK_API_KEY = None
    SENDER_EMAIL = "owner@example.com"
    CONTACT_RECIPIENT = "owner@example.com"

    RATELIMIT_ENABLED = False
    LOG_LEVEL = "WARNING"
