"""
Flask application factory for the personal site API.
"""

import logging
from typing import Optional

import sentry_sdk
from flask import Flask
from sentry_sdk.integrations.flask import FlaskIntegration

from siteapi.cli import init_cli
from siteapi.config import ConfigurationError, get_config
from siteapi.errors import register_error_handlers
from siteapi.extensions import init_extensions, init_services
from siteapi.logging_config import setup_logging
from siteapi.middleware import init_request_id_middleware, init_security_headers
from siteapi.routes import register_blueprints

logger = logging.getLogger(__name__)


def setup_sentry(app: Flask) -> None:
    """Initialize Sentry error tracking"""
    sentry_dsn = app.config.get("SENTRY_DSN")

    if sentry_dsn:
        sentry_sdk.init(
            dsn=sentry_dsn,
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=app.config.get("ENVIRONMENT"),
            release=app.config.get("APP_VERSION", "1.0.0"),
            send_default_pii=False,
        )
        logger.info("Sentry error tracking initialized")


def log_startup_summary(app: Flask) -> None:
    container = app.extensions["siteapi"]

    def state(flag):
        return "Configured" if flag else "Not configured"

    summary_lines = [
        "=" * 60,
        "APPLICATION STARTUP SUMMARY",
        "=" * 60,
        f"Environment:      {app.config.get('ENVIRONMENT')}",
        f"Debug Mode:       {app.config.get('DEBUG')}",
        f"App Version:      {app.config.get('APP_VERSION', '1.0.0')}",
        f"Data store:       {state(app.config.get('AIRTABLE_TOKEN'))}",
        f"Window store:     {type(container.window_store).__name__}",
        f"Reputation:       {'Enabled' if container.reputation else 'Disabled'}",
        f"Chat webhook:     {state(container.notifier.configured)}",
        f"Email:            {state(container.mailer.configured)}",
        f"Stripe:           {state(container.gateway.configured)}",
        f"Sentry:           {'Enabled' if app.config.get('SENTRY_DSN') else 'Disabled'}",
        f"Login limit:      {app.config.get('LOGIN_RATE_LIMIT')}",
        "=" * 60,
    ]
    logger.info("\n".join(summary_lines))


def create_app(config_name: Optional[str] = None, **service_overrides) -> Flask:
    """
    Application factory.

    Args:
        config_name: Configuration name (development, production, testing)
        service_overrides: Collaborators passed through to ``init_services``

    Raises:
        ConfigurationError: If the configuration is unknown or incomplete
    """
    config = get_config(config_name)
    if hasattr(config, "validate"):
        config.validate()

    app = Flask(__name__)
    app.config.from_object(config)

    setup_logging(app)
    setup_sentry(app)

    init_request_id_middleware(app)
    init_security_headers(app)
    init_extensions(app)
    init_services(app, **service_overrides)

    register_error_handlers(app)
    register_blueprints(app)
    init_cli(app)

    log_startup_summary(app)
    return app


__all__ = ["ConfigurationError", "create_app"]
