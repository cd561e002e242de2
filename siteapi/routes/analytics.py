from flask import Blueprint, jsonify, request

from siteapi.extensions import services
from siteapi.middleware.admin_guard import admin_required
from siteapi.middleware.admission import client_ip

bp = Blueprint("analytics", __name__, url_prefix="/api")


@bp.route("/page-views", methods=["POST"])
def track_page_view():
    result = services().analytics.track(request.get_json(silent=True) or {}, ip=client_ip())
    return jsonify({"success": True, **result}), 201


@bp.route("/admin/page-stats", methods=["GET"])
@admin_required
def page_stats():
    return jsonify(services().analytics.stats())
