import datetime

from src.calendar_app import utils
from src.tasks_app.models import Task


def task(**fields):
    fields.setdefault("id", 1)
    fields.setdefault("household_id", 1)
    fields.setdefault("name", "Bins")
    return Task(**fields)


def test_month_bounds():
    start, end = utils.month_bounds(2028, 2)
    assert start == datetime.datetime(2028, 2, 1)
    assert end == datetime.datetime(2028, 2, 29, 23, 59, 59)


def test_with_times_and_serialize():
    event = {"id": 1, "start_date": "2026-03-20T09:00:00", "end_date": None}
    timed = utils.with_times(event)
    assert timed["start_datetime"] == datetime.datetime(2026, 3, 20, 9)
    assert timed["end_datetime"] == timed["start_datetime"]
    assert utils.serialize(timed) == event


def test_task_occurrence_events_inside_window():
    weekly = task(frequency="weekly", due_date=datetime.datetime(2026, 3, 2))
    events = utils.task_occurrence_events(
        [weekly], datetime.datetime(2026, 3, 5), datetime.datetime(2026, 3, 20)
    )
    assert [e["id"] for e in events] == ["task-1-2026-03-09", "task-1-2026-03-16"]
    assert all(e["all_day"] and e["is_virtual"] for e in events)


def test_task_occurrence_events_skip_completed_and_undated():
    done = task(id=2, due_date=datetime.datetime(2026, 3, 9), is_completed=True)
    undated = task(id=3)
    events = utils.task_occurrence_events(
        [done, undated], datetime.datetime(2026, 3, 1), datetime.datetime(2026, 3, 31)
    )
    assert events == []


def test_task_occurrence_events_with_duration():
    timed = task(due_date=datetime.datetime(2026, 3, 9, 18), duration_minutes=90)
    multi_day = task(id=2, due_date=datetime.datetime(2026, 3, 10), duration_days=2)
    events = utils.task_occurrence_events(
        [timed, multi_day], datetime.datetime(2026, 3, 1), datetime.datetime(2026, 3, 31)
    )
    assert events[0]["end_date"] == "2026-03-09T19:30:00"
    assert events[0]["all_day"] is False
    assert events[1]["end_date"] == "2026-03-12T00:00:00"
    assert events[1]["all_day"] is True


def test_event_fields_formats_dates():
    fields = utils.event_fields(
        {"title": "Trip", "start_date": datetime.datetime(2026, 3, 20, 9, 30, 15, 500)}
    )
    assert fields["start_date"] == "2026-03-20T09:30:15"
