from flask import Blueprint, jsonify, request

from siteapi.errors import ConflictError, NotFoundError, ValidationError
from siteapi.extensions import services
from siteapi.middleware.admin_guard import admin_required
from siteapi.moderation.models import AllowEntry, BlockEntry, InvalidStateTransition, parse_timestamp, utcnow
from siteapi.moderation.vpn_alerts import AlertNotFound, UnknownAlertAction

bp = Blueprint("moderation", __name__, url_prefix="/api/admin")


def _expires_at(payload):
    raw = payload.get("expiresAt")
    if not raw:
        return None
    value = parse_timestamp(raw)
    if value is None:
        raise ValidationError("expiresAt must be an ISO-8601 timestamp")
    return value


# -- VPN alerts ---------------------------------------------------------------

@bp.route("/vpn-alerts", methods=["GET"])
@admin_required
def list_vpn_alerts():
    limit = request.args.get("limit", 200, type=int)
    return jsonify(services().vpn_alerts.list(limit=max(1, min(limit, 200))))


@bp.route("/vpn-alerts/<alert_id>", methods=["POST"])
@admin_required
def update_vpn_alert(alert_id):
    payload = request.get_json(silent=True) or {}
    try:
        alert = services().vpn_alerts.update(
            alert_id,
            payload.get("action"),
            ip=payload.get("ip"),
            note=payload.get("note"),
            expires_at=_expires_at(payload),
        )
    except UnknownAlertAction as e:
        raise ValidationError(str(e)) from e
    except AlertNotFound as e:
        raise NotFoundError(str(e)) from e
    except InvalidStateTransition as e:
        raise ConflictError(str(e)) from e
    return jsonify({"success": True, "alert": alert.to_dict()})


# -- allowlist ----------------------------------------------------------------

@bp.route("/allowlist", methods=["GET"])
@admin_required
def list_allowlist():
    entries = services().ledger.list_allowlist()
    return jsonify({"allowlist": [e.to_dict() for e in entries], "total": len(entries)})


@bp.route("/allowlist", methods=["POST"])
@admin_required
def add_allowlist():
    payload = request.get_json(silent=True) or {}
    ip = (payload.get("ip") or "").strip()
    if not ip:
        raise ValidationError("IP required")

    entry, created = services().ledger.upsert_allow(AllowEntry(
        ip=ip,
        note=(payload.get("note") or "").strip(),
        added_at=utcnow(),
        expires_at=_expires_at(payload),
    ))
    return jsonify({"success": True, "created": created, "entry": entry.to_dict()}), 201 if created else 200


@bp.route("/allowlist", methods=["DELETE"])
@admin_required
def remove_allowlist():
    payload = request.get_json(silent=True) or {}
    record_id = payload.get("id") or request.args.get("id")
    ip = payload.get("ip") or request.args.get("ip")
    if not record_id and not ip:
        raise ValidationError("IP or id required")
    if not services().ledger.remove_allow(record_id=record_id, ip=ip):
        raise NotFoundError("Allowlist entry not found")
    return jsonify({"success": True})


# -- block list ---------------------------------------------------------------

@bp.route("/blocked-ips", methods=["GET"])
@admin_required
def list_blocked_ips():
    blocks = services().ledger.list_blocks()
    return jsonify({"blockedIps": [b.to_dict() for b in blocks], "total": len(blocks)})


@bp.route("/blocked-ips", methods=["POST"])
@admin_required
def add_blocked_ip():
    payload = request.get_json(silent=True) or {}
    ip = (payload.get("ip") or "").strip()
    if not ip:
        raise ValidationError("IP required")

    entry = services().ledger.upsert_block(BlockEntry(
        ip=ip,
        reason=(payload.get("reason") or "").strip() or "Manual block",
        blocked_at=utcnow(),
        expires_at=_expires_at(payload),
        auto_blocked=False,
    ))
    return jsonify({"success": True, "entry": entry.to_dict()}), 201


@bp.route("/blocked-ips/<record_id>", methods=["DELETE"])
@admin_required
def remove_blocked_ip(record_id):
    if not services().ledger.remove_block(record_id=record_id):
        raise NotFoundError("Block entry not found")
    return jsonify({"success": True})
