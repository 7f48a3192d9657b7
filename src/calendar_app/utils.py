import calendar
import datetime
import logging

from src.borrow_app import database as borrow_db
from src.database import format_timestamp, parse_timestamp
from src.errors import ValidationError
from src.tasks_app import database as tasks_db
from src.tasks_app.recurrence import occurrences_between

from . import database as db

logger = logging.getLogger(__name__)


def month_bounds(year: int, month: int) -> tuple[datetime.datetime, datetime.datetime]:
    """First and last instant of a month."""
    last_day = calendar.monthrange(year, month)[1]
    start = datetime.datetime(year, month, 1)
    end = datetime.datetime(year, month, last_day, 23, 59, 59)
    return start, end


def with_times(event: dict) -> dict:
    """Add the start_datetime / end_datetime the day filter works with."""
    start = parse_timestamp(event["start_date"])
    end = parse_timestamp(event.get("end_date")) or start
    return {**event, "start_datetime": start, "end_datetime": end}


def serialize(event: dict) -> dict:
    """Drop the datetime helpers again before the event goes out as JSON."""
    return {
        key: value
        for key, value in event.items()
        if key not in ("start_datetime", "end_datetime")
    }


def task_occurrence_events(tasks, start: datetime.datetime, end: datetime.datetime) -> list[dict]:
    """
    One virtual "task" event per open task occurrence inside [start, end].

    Tasks due at midnight without a duration in minutes show as all-day
    entries; a duration stretches the entry over several days or minutes.
    """
    events = []
    for task in tasks:
        if task.is_completed or task.due_date is None:
            continue
        for due in occurrences_between(task, start, end):
            finish = due
            if task.duration_minutes:
                finish = due + datetime.timedelta(minutes=task.duration_minutes)
            elif task.duration_days:
                finish = due + datetime.timedelta(days=task.duration_days)
            all_day = due.time() == datetime.time() and not task.duration_minutes
            events.append(
                {
                    "id": f"task-{task.id}-{due.date().isoformat()}",
                    "household_id": task.household_id,
                    "title": task.name,
                    "description": task.description,
                    "start_date": format_timestamp(due),
                    "end_date": format_timestamp(finish),
                    "all_day": all_day,
                    "event_type": "task",
                    "icon": None,
                    "related_task_id": task.id,
                    "related_borrow_id": None,
                    "is_completed": False,
                    "is_virtual": True,
                }
            )
    return events


def enrich_borrow_events(events: list[dict]) -> list[dict]:
    """Borrow entries carry their request (status, borrower, item) along."""
    requests = {}
    for event in events:
        borrow_id = event.get("related_borrow_id")
        if not borrow_id:
            continue
        if borrow_id not in requests:
            requests[borrow_id] = borrow_db.get_request(borrow_id)
        request = requests[borrow_id]
        event["borrow"] = (
            {
                "id": request["id"],
                "status": request["status"],
                "item_id": request["inventory_item_id"],
                "item_name": request["item_name"],
                "borrower_name": request["borrower_name"],
                "start_date": request["start_date"],
                "end_date": request["end_date"],
            }
            if request
            else None
        )
    return events


def month_events(household_id: int, year: int, month: int) -> list[dict]:
    """Stored events overlapping the month plus the month's task occurrences."""
    start, end = month_bounds(year, month)
    stored = db.list_events_between(
        household_id, format_timestamp(start), format_timestamp(end)
    )
    for event in stored:
        event["is_virtual"] = False
    tasks = tasks_db.list_tasks(household_id, include_completed=False)
    events = enrich_borrow_events(stored) + task_occurrence_events(tasks, start, end)
    return [with_times(event) for event in events]


def event_fields(data: dict) -> dict:
    """Request fields in the shape the events table stores."""
    fields = dict(data)
    for key in ("start_date", "end_date"):
        if key in fields:
            fields[key] = format_timestamp(fields[key])
    return fields


def check_task(household_id: int, task_id: int | None):
    if task_id is not None and tasks_db.get_task(household_id, task_id) is None:
        raise ValidationError(f"Task {task_id} does not exist in this household")
