import calendar
import datetime

from flask import Blueprint, g, jsonify

from src.auth.tokens import require_session
from src.errors import NotFoundError
from src.households.utils import require_household_member
from src.schemas import parse_args, parse_body

from . import database as db
from . import utils
from .schemas import EventCreate, EventQuery, EventUpdate

calendar_bp = Blueprint(
    "calendar", __name__, url_prefix="/api/households/<int:household_id>/calendar"
)


def _adjacent_months(year: int, month: int) -> tuple[int, int, int, int]:
    """(prev_year, prev_month, next_year, next_month) around a month."""
    index = year * 12 + month - 1
    prev_year, prev_month = divmod(index - 1, 12)
    next_year, next_month = divmod(index + 1, 12)
    return prev_year, prev_month + 1, next_year, next_month + 1


def _shows_on(event: dict, day: datetime.date) -> bool:
    start, end = event["start_datetime"], event["end_datetime"]
    last_day = end.date()
    # A multi-day event ending at 00:00 is over before its end date begins
    if last_day > start.date() and (end.hour, end.minute, end.second) == (0, 0, 0):
        last_day -= datetime.timedelta(days=1)
    return start.date() <= day <= last_day


def _events_on(events: list, day: datetime.date) -> list:
    """Events of one day, all-day ones first, then by start."""
    return sorted(
        (event for event in events if _shows_on(event, day)),
        key=lambda event: (not event["all_day"], event["start_datetime"]),
    )


def _month_grid(year: int, month: int, today: datetime.date, events: list) -> list:
    """Weeks of the month, Sunday first. Days of the neighbouring months carry no events."""
    weeks = []
    for week in calendar.Calendar(firstweekday=calendar.SUNDAY).monthdatescalendar(year, month):
        cells = []
        for day in week:
            in_month = day.month == month
            cells.append(
                {
                    "day_number": day.day,
                    "date": day.isoformat(),
                    "is_current_month": in_month,
                    "is_today": day == today,
                    "events": (
                        [utils.serialize(event) for event in _events_on(events, day)]
                        if in_month
                        else []
                    ),
                }
            )
        weeks.append(cells)
    return weeks


# --- Month view ---


@calendar_bp.route("", methods=["GET"])
@calendar_bp.route("/<int:year>/<int:month>", methods=["GET"])
@require_session
@require_household_member
def view(household_id, year: int = None, month: int = None):
    """Month grid with stored events and the task occurrences falling in the month."""
    now = datetime.datetime.now(tz=datetime.timezone.utc)

    if year is None:
        year, month = now.year, now.month
    if not 1 <= month <= 12:
        raise NotFoundError("Invalid month")

    today = now.date()
    prev_year, prev_month, next_year, next_month = _adjacent_months(year, month)
    events = utils.month_events(household_id, year, month)

    return jsonify(
        {
            "year": year,
            "month": month,
            "month_name": calendar.month_name[month],
            "weeks": _month_grid(year, month, today, events),
            "today_events": [utils.serialize(event) for event in _events_on(events, today)],
            "navigation": {
                "prev_year": prev_year,
                "prev_month": prev_month,
                "next_year": next_year,
                "next_month": next_month,
            },
        }
    )


# --- Events ---


@calendar_bp.route("/events", methods=["GET"])
@require_session
@require_household_member
def list_events(household_id):
    query = parse_args(EventQuery)
    events = db.list_events(household_id, event_type=query.type)
    return jsonify(utils.enrich_borrow_events(events))


@calendar_bp.route("/events", methods=["POST"])
@require_session
@require_household_member
def create_event(household_id):
    data = parse_body(EventCreate)
    utils.check_task(household_id, data.related_task_id)
    event_id = db.insert_event(
        household_id, utils.event_fields(data.model_dump()), created_by=g.member["id"]
    )
    return jsonify(db.get_event(household_id, event_id)), 201


@calendar_bp.route("/events/<int:event_id>", methods=["PATCH"])
@require_session
@require_household_member
def update_event(household_id, event_id):
    event = db.get_event(household_id, event_id)
    if event is None:
        raise NotFoundError("Event not found")
    data = parse_body(EventUpdate)
    fields = {
        key: value
        for key, value in data.model_dump(exclude_unset=True).items()
        if value is not None or key in ("description", "end_date", "icon")
    }
    db.update_event(household_id, event_id, utils.event_fields(fields))
    return jsonify(db.get_event(household_id, event_id))


@calendar_bp.route("/events/<int:event_id>", methods=["DELETE"])
@require_session
@require_household_member
def delete_event(household_id, event_id):
    if not db.delete_event(household_id, event_id):
        raise NotFoundError("Event not found")
    return jsonify({"success": True})


@calendar_bp.route("/events/<int:event_id>/complete", methods=["POST"])
@require_session
@require_household_member
def complete_event(household_id, event_id):
    if db.get_event(household_id, event_id) is None:
        raise NotFoundError("Event not found")
    db.set_completed(event_id, True)
    return jsonify(db.get_event(household_id, event_id))
