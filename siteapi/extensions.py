# siteapi/extensions.py
"""
Flask extensions and the per-app service container.

Collaborators are built once in ``init_services`` and stored on
``app.extensions["siteapi"]``; tests replace them with in-memory fakes by
passing overrides.
"""

import logging
from datetime import timedelta

import redis
from flask import current_app, jsonify
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from flask_limiter import Limiter

from siteapi.admission import (
    AbuseClassifier,
    MemoryCooldownCache,
    MemoryWindowStore,
    RateLimiter,
    RedisCooldownCache,
    RedisWindowStore,
    ReputationClient,
)
from siteapi.config import AdmissionConfig
from siteapi.integrations import (
    DisabledTableClient,
    DiscordNotifier,
    GraphMailer,
    NullMailer,
    StripeGateway,
    TableClient,
)
from siteapi.middleware.admission import client_ip
from siteapi.moderation import AppealService, ModerationLedger
from siteapi.services import AccountService, AnalyticsService, DonationService, NewsletterService

logger = logging.getLogger(__name__)

EXTENSION_KEY = "siteapi"

jwt = JWTManager()
cors = CORS()
limiter = Limiter(key_func=client_ip, default_limits=[])


class Services:
    """Everything a request handler needs, wired for one app."""

    def __init__(
        self,
        tables,
        window_store,
        cooldowns,
        reputation,
        notifier,
        mailer,
        gateway,
        site_url="",
        admission_config=AdmissionConfig,
    ):
        self.tables = tables
        self.window_store = window_store
        self.cooldowns = cooldowns
        self.reputation = reputation
        self.notifier = notifier
        self.mailer = mailer
        self.gateway = gateway

        self.ledger = ModerationLedger(tables)
        self.rate_limiter = RateLimiter(
            window_store,
            rules=admission_config.RATE_LIMITS,
            strict_rules=admission_config.STRICT_RATE_LIMITS,
            sweep_probability=admission_config.SWEEP_PROBABILITY,
        )
        self.classifier = AbuseClassifier(
            self.ledger,
            self.rate_limiter,
            reputation=reputation,
            notifier=notifier,
            cooldowns=cooldowns,
            config=admission_config,
        )
        self.vpn_alerts = self.classifier.alerts
        self.appeals = AppealService(self.ledger, notifier)
        self.newsletter = NewsletterService(tables, mailer, notifier, site_url=site_url)
        self.accounts = AccountService(tables, mailer, notifier, site_url=site_url)
        self.analytics = AnalyticsService(tables)
        self.donations = DonationService(gateway, tables, mailer, notifier, site_url=site_url)


def _redis_client(app):
    url = app.config.get("REDIS_URL")
    if not url:
        return None
    return redis.from_url(
        url,
        decode_responses=True,
        socket_timeout=AdmissionConfig.REPUTATION_TIMEOUT,
        socket_connect_timeout=AdmissionConfig.REPUTATION_TIMEOUT,
    )


def build_tables(app):
    token = app.config.get("AIRTABLE_TOKEN")
    base_id = app.config.get("AIRTABLE_BASE_ID")
    if not token or not base_id:
        logger.warning("Data store credentials missing, data endpoints will return 503")
        return DisabledTableClient()
    return TableClient(
        token,
        base_id,
        base_url=app.config.get("AIRTABLE_API_URL", "https://api.airtable.com/v0"),
        timeout=app.config.get("AIRTABLE_TIMEOUT", 10.0),
    )


def build_window_backends(app):
    """Sliding windows and notification cooldowns: Redis when configured, else memory."""
    if app.config.get("ADMISSION_WINDOW_BACKEND") == "redis":
        client = _redis_client(app)
        if client is not None:
            logger.info("Using Redis for admission windows")
            return RedisWindowStore(client), RedisCooldownCache(client)
        logger.warning("ADMISSION_WINDOW_BACKEND=redis but REDIS_URL is not set, using memory")
    return MemoryWindowStore(), MemoryCooldownCache()


def build_mailer(app):
    settings = (
        app.config.get("MICROSOFT_TENANT_ID"),
        app.config.get("MICROSOFT_CLIENT_ID"),
        app.config.get("MICROSOFT_CLIENT_SECRET"),
        app.config.get("SENDER_EMAIL"),
    )
    if all(settings):
        return GraphMailer(*settings)
    return NullMailer()


def init_services(app, **overrides):
    """
    Build the service container for ``app``.

    Keyword overrides (``tables``, ``window_store``, ``cooldowns``,
    ``reputation``, ``notifier``, ``mailer``, ``gateway``) replace the
    collaborators built from configuration.
    """
    if "window_store" in overrides and "cooldowns" in overrides:
        window_store, cooldowns = overrides["window_store"], overrides["cooldowns"]
    else:
        window_store, cooldowns = build_window_backends(app)
        window_store = overrides.get("window_store", window_store)
        cooldowns = overrides.get("cooldowns", cooldowns)

    if "reputation" in overrides:
        reputation = overrides["reputation"]
    elif app.config.get("REPUTATION_ENABLED", True):
        reputation = ReputationClient(
            api_key=app.config.get("PROXYCHECK_API_KEY"),
            base_url=app.config.get("PROXYCHECK_API_URL", "https://proxycheck.io/v2"),
            timeout=AdmissionConfig.REPUTATION_TIMEOUT,
        )
    else:
        reputation = None

    container = Services(
        tables=overrides["tables"] if "tables" in overrides else build_tables(app),
        window_store=window_store,
        cooldowns=cooldowns,
        reputation=reputation,
        notifier=overrides.get("notifier") or DiscordNotifier(
            app.config.get("DISCORD_WEBHOOK_URL"),
            mention_id=app.config.get("DISCORD_MENTION_ID", ""),
            timeout=AdmissionConfig.NOTIFY_TIMEOUT,
        ),
        mailer=overrides.get("mailer") or build_mailer(app),
        gateway=overrides.get("gateway") or StripeGateway(
            app.config.get("STRIPE_SECRET_KEY"),
            app.config.get("STRIPE_WEBHOOK_SECRET"),
            product_name=app.config.get("DONATION_PRODUCT_NAME", "Donation"),
        ),
        site_url=app.config.get("SITE_URL", ""),
    )
    app.extensions[EXTENSION_KEY] = container
    return container


def services() -> Services:
    return current_app.extensions[EXTENSION_KEY]


def init_extensions(app):
    app.config.setdefault(
        "JWT_ACCESS_TOKEN_EXPIRES", timedelta(hours=app.config.get("JWT_ACCESS_TOKEN_HOURS", 24))
    )
    jwt.init_app(app)
    setup_jwt_callbacks()

    cors.init_app(
        app,
        resources={r"/api/*": {"origins": app.config.get("CORS_ORIGINS", [])}},
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
        max_age=600,
    )

    limiter.init_app(app)
    logger.info("Extensions initialized")


def setup_jwt_callbacks():

    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return jsonify({
            "error": "token_expired",
            "message": "The token has expired. Please log in again.",
        }), 401

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        return jsonify({
            "error": "invalid_token",
            "message": "Invalid token. Please provide a valid authentication token.",
        }), 401

    @jwt.unauthorized_loader
    def missing_token_callback(error):
        return jsonify({
            "error": "authorization_required",
            "message": "Authentication required. Please provide a valid token.",
        }), 401
