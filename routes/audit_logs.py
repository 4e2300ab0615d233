from flask import Blueprint, jsonify, request

from security.rbac import admin_only
from utils.audit import list_events
from utils.errors import ValidationError

audit_bp = Blueprint("audit", __name__, url_prefix="/api/activity-logs")


def _user_id_filter():
    raw = request.args.get("userId")
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError("userId must be an integer")


@audit_bp.get("")
@audit_bp.get("/")
@admin_only
def list_audit_logs():
    page = request.args.get("page", default=1, type=int)
    limit = request.args.get("limit", type=int)
    user_id = _user_id_filter()
    action = request.args.get("action") or None

    rows, total, page, limit = list_events(user_id=user_id, action=action, page=page, limit=limit)

    return jsonify(
        logs=[r.to_dict() for r in rows],
        pagination={"page": page, "limit": limit, "total": total},
    ), 200
