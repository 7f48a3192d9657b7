from flask import Blueprint, jsonify
from pydantic import BaseModel, Field

from src.auth.tokens import require_session
from src.households.utils import require_household_member
from src.schemas import parse_args

from . import database as db

activities_bp = Blueprint(
    "activities", __name__, url_prefix="/api/households/<int:household_id>/activities"
)


class ActivityQuery(BaseModel):
    limit: int = Field(default=50, ge=1, le=200)
    offset: int = Field(default=0, ge=0)
    type: str | None = None


@activities_bp.route("", methods=["GET"])
@require_session
@require_household_member
def list_activities(household_id):
    query = parse_args(ActivityQuery)
    activities = db.list_activities(
        household_id, limit=query.limit, offset=query.offset, activity_type=query.type
    )
    total = db.count_activities(household_id, activity_type=query.type)
    return jsonify(
        {
            "activities": activities,
            "total": total,
            "limit": query.limit,
            "offset": query.offset,
        }
    )
