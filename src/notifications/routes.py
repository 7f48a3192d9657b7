from flask import Blueprint, g, jsonify
from pydantic import BaseModel, Field

from src.auth.tokens import require_session
from src.households.utils import require_household_member
from src.schemas import ClockTime, RequestModel, parse_args, parse_body

from . import database as db
from .utils import send_due_notifications

notifications_bp = Blueprint(
    "notifications",
    __name__,
    url_prefix="/api/households/<int:household_id>/notifications",
)


class NotificationQuery(BaseModel):
    unread_only: bool = False
    limit: int = Field(default=50, ge=1, le=200)


class PreferencesUpdate(RequestModel):
    enable_task_assigned: bool | None = None
    enable_task_due: bool | None = None
    enable_task_completed: bool | None = None
    enable_comments: bool | None = None
    enable_reminders: bool | None = None
    enable_borrow: bool | None = None
    dnd_start: ClockTime | None = None
    dnd_end: ClockTime | None = None


@notifications_bp.route("", methods=["GET"])
@require_session
@require_household_member
def list_notifications(household_id):
    query = parse_args(NotificationQuery)
    return jsonify(
        db.list_notifications(
            g.member["id"], unread_only=query.unread_only, limit=query.limit
        )
    )


@notifications_bp.route("/unread-count", methods=["GET"])
@require_session
@require_household_member
def unread_count(household_id):
    return jsonify({"count": db.unread_count(g.member["id"])})


@notifications_bp.route("/<int:notification_id>/read", methods=["POST"])
@require_session
@require_household_member
def mark_as_read(household_id, notification_id):
    db.mark_as_read(g.member["id"], notification_id)
    return jsonify({"success": True})


@notifications_bp.route("/read-all", methods=["POST"])
@require_session
@require_household_member
def mark_all_as_read(household_id):
    updated = db.mark_all_as_read(g.member["id"])
    return jsonify({"success": True, "updated": updated})


@notifications_bp.route("/<int:notification_id>", methods=["DELETE"])
@require_session
@require_household_member
def delete_notification(household_id, notification_id):
    db.delete_notification(g.member["id"], notification_id)
    return jsonify({"success": True})


@notifications_bp.route("/preferences", methods=["GET"])
@require_session
@require_household_member
def get_preferences(household_id):
    return jsonify(db.get_preferences(g.member["id"], household_id))


@notifications_bp.route("/preferences", methods=["PUT"])
@require_session
@require_household_member
def update_preferences(household_id):
    data = parse_body(PreferencesUpdate)
    preferences = db.save_preferences(
        g.member["id"], household_id, data.model_dump(exclude_unset=True)
    )
    return jsonify(preferences)


@notifications_bp.route("/scan-due", methods=["POST"])
@require_session
@require_household_member
def scan_due(household_id):
    """Send due reminders now instead of waiting for the scheduled scan."""
    return jsonify({"sent": send_due_notifications(household_id)})
