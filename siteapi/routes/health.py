from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify

from siteapi.extensions import services
from siteapi.integrations.tables import DisabledTableClient

bp = Blueprint("health", __name__)


@bp.route("/health", methods=["GET"])
def health_check():
    """Report which collaborators are configured. Never calls them."""
    container = services()
    checks = {
        "dataStore": "disabled" if isinstance(container.tables, DisabledTableClient) else "configured",
        "windowStore": type(container.window_store).__name__,
        "reputation": "enabled" if container.reputation else "disabled",
        "notifier": "configured" if container.notifier.configured else "disabled",
        "mailer": "configured" if container.mailer.configured else "disabled",
        "payments": "configured" if container.gateway.configured else "disabled",
    }
    return jsonify({
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": current_app.config.get("ENVIRONMENT"),
        "version": current_app.config.get("APP_VERSION", "1.0.0"),
        "checks": checks,
    })
