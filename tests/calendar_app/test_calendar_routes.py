import datetime
from unittest.mock import patch

import pytest

from src.calendar_app import routes as calendar_routes


@pytest.fixture
def calendar_url(household):
    return f"{household['url']}/calendar"


def event_at(id, start, end, all_day=False):
    return {"id": id, "start_datetime": start, "end_datetime": end, "all_day": all_day}


def fixed_now(now):
    """Patch the routes' datetime module so that "today" is `now`."""
    patcher = patch("src.calendar_app.routes.datetime")
    mock_dt = patcher.start()
    mock_dt.datetime.now.return_value = now
    mock_dt.date = datetime.date
    mock_dt.timedelta = datetime.timedelta
    mock_dt.timezone = datetime.timezone
    return patcher


# --- Tests for _events_on ---


def test_events_on_single_day_event():
    """Test filtering for an event that starts and ends on the target day."""
    target_date = datetime.date(2026, 5, 15)
    event = event_at(
        "1",
        datetime.datetime(2026, 5, 15, 10, tzinfo=datetime.timezone.utc),
        datetime.datetime(2026, 5, 15, 11, tzinfo=datetime.timezone.utc),
    )
    filtered = calendar_routes._events_on([event], target_date)
    assert [e["id"] for e in filtered] == ["1"]


def test_events_on_multi_day_event_spanning():
    """Test filtering for an event that spans across the target day."""
    event = event_at(
        "2",
        datetime.datetime(2026, 5, 14, 10),
        datetime.datetime(2026, 5, 16, 11),
    )
    filtered = calendar_routes._events_on([event], datetime.date(2026, 5, 15))
    assert [e["id"] for e in filtered] == ["2"]


def test_events_on_midnight_end():
    """An event ending at 00:00 does not show on its end date."""
    event = event_at(
        "3",
        datetime.datetime(2026, 5, 15),
        datetime.datetime(2026, 5, 16),
        all_day=True,
    )
    assert calendar_routes._events_on([event], datetime.date(2026, 5, 15))
    assert calendar_routes._events_on([event], datetime.date(2026, 5, 16)) == []


def test_events_on_event_outside_target():
    event = event_at("4", datetime.datetime(2026, 5, 16, 10), datetime.datetime(2026, 5, 16, 11))
    assert calendar_routes._events_on([event], datetime.date(2026, 5, 15)) == []


def test_events_on_sorting():
    """Test sorting of events (all-day first, then by time)."""
    later = event_at("1", datetime.datetime(2026, 5, 15, 14), datetime.datetime(2026, 5, 15, 15))
    all_day = event_at(
        "2", datetime.datetime(2026, 5, 15), datetime.datetime(2026, 5, 15), all_day=True
    )
    earlier = event_at("3", datetime.datetime(2026, 5, 15, 9), datetime.datetime(2026, 5, 15, 10))
    filtered = calendar_routes._events_on(
        [later, all_day, earlier], datetime.date(2026, 5, 15)
    )
    assert [e["id"] for e in filtered] == ["2", "3", "1"]


def test_adjacent_months_wrap_years():
    assert calendar_routes._adjacent_months(2026, 1) == (2025, 12, 2026, 2)
    assert calendar_routes._adjacent_months(2026, 12) == (2026, 11, 2027, 1)


# --- Tests for the month view ---


def test_view_route_specific_month(client, household, calendar_url, create_task):
    """Task occurrences appear as virtual events on their days."""
    create_task(name="Bins", frequency="weekly", due_date="2026-03-02")

    patcher = fixed_now(datetime.datetime(2026, 3, 9, 12, tzinfo=datetime.timezone.utc))
    try:
        response = client.get(f"{calendar_url}/2026/3", headers=household["headers"])
    finally:
        patcher.stop()

    assert response.status_code == 200
    data = response.get_json()
    assert data["month_name"] == "March"
    assert data["navigation"] == {
        "prev_year": 2026,
        "prev_month": 2,
        "next_year": 2026,
        "next_month": 4,
    }

    days = [day for week in data["weeks"] for day in week if day["is_current_month"]]
    assert len(days) == 31
    with_bins = [day["date"] for day in days if day["events"]]
    assert with_bins == ["2026-03-02", "2026-03-09", "2026-03-16", "2026-03-23", "2026-03-30"]

    event = days[1]["events"][0]
    assert event["event_type"] == "task"
    assert event["is_virtual"] is True
    assert event["all_day"] is True
    assert "start_datetime" not in event

    assert [e["title"] for e in data["today_events"]] == ["Bins"]
    today = next(day for day in days if day["is_today"])
    assert today["date"] == "2026-03-09"


def test_view_route_weeks_start_on_sunday(client, household, calendar_url):
    response = client.get(f"{calendar_url}/2026/3", headers=household["headers"])
    first_week = response.get_json()["weeks"][0]
    # 1 March 2026 is a Sunday
    assert first_week[0]["date"] == "2026-03-01"


def test_view_route_with_stored_event(client, household, calendar_url):
    client.post(
        f"{calendar_url}/events",
        json={
            "title": "Holiday",
            "start_date": "2026-03-20T00:00:00",
            "end_date": "2026-03-22T00:00:00",
            "all_day": True,
        },
        headers=household["headers"],
    )
    response = client.get(f"{calendar_url}/2026/3", headers=household["headers"])
    days = [
        day
        for week in response.get_json()["weeks"]
        for day in week
        if day["events"]
    ]
    assert [day["date"] for day in days] == ["2026-03-20", "2026-03-21"]
    assert days[0]["events"][0]["is_virtual"] is False


def test_view_route_default(client, household, calendar_url):
    patcher = fixed_now(datetime.datetime(2026, 5, 2, 12, tzinfo=datetime.timezone.utc))
    try:
        response = client.get(calendar_url, headers=household["headers"])
    finally:
        patcher.stop()
    data = response.get_json()
    assert (data["year"], data["month"]) == (2026, 5)


def test_view_route_invalid_month(client, household, calendar_url):
    response = client.get(f"{calendar_url}/2026/13", headers=household["headers"])
    assert response.status_code == 404
    assert response.get_json()["error"] == "Invalid month"


# --- Tests for stored events ---


def test_create_update_and_delete_event(client, household, calendar_url):
    response = client.post(
        f"{calendar_url}/events",
        json={
            "title": "Dentist",
            "start_date": "2026-03-20T09:30:00",
            "end_date": "2026-03-20T10:00:00",
            "event_type": "reminder",
            "icon": "tooth",
        },
        headers=household["headers"],
    )
    assert response.status_code == 201
    event = response.get_json()
    assert event["created_by"] == household["member"]["id"]
    assert event["all_day"] is False

    response = client.patch(
        f"{calendar_url}/events/{event['id']}",
        json={"title": None, "icon": None, "start_date": "2026-03-20T09:00:00"},
        headers=household["headers"],
    )
    updated = response.get_json()
    assert updated["title"] == "Dentist"
    assert updated["icon"] is None
    assert updated["start_date"] == "2026-03-20T09:00:00"

    response = client.post(
        f"{calendar_url}/events/{event['id']}/complete", headers=household["headers"]
    )
    assert response.get_json()["is_completed"] is True

    response = client.delete(f"{calendar_url}/events/{event['id']}", headers=household["headers"])
    assert response.status_code == 200
    response = client.delete(f"{calendar_url}/events/{event['id']}", headers=household["headers"])
    assert response.status_code == 404


def test_event_validation(client, household, calendar_url):
    response = client.post(
        f"{calendar_url}/events",
        json={"title": "Trip", "start_date": "2026-03-20T00:00:00", "end_date": "2026-03-19T00:00:00"},
        headers=household["headers"],
    )
    assert response.status_code == 400

    response = client.post(
        f"{calendar_url}/events",
        json={"title": "Trip", "start_date": "2026-03-20T00:00:00", "related_task_id": 9999},
        headers=household["headers"],
    )
    assert response.status_code == 400


def test_event_dates_with_mixed_offsets(client, household, calendar_url):
    response = client.post(
        f"{calendar_url}/events",
        json={"title": "Call", "start_date": "2026-03-20T08:00:00-05:00", "end_date": "2026-03-20T12:00:00"},
        headers=household["headers"],
    )
    assert response.status_code == 400

    response = client.post(
        f"{calendar_url}/events",
        json={"title": "Call", "start_date": "2026-03-20T08:00:00-05:00", "end_date": "2026-03-20T14:00:00"},
        headers=household["headers"],
    )
    assert response.status_code == 201
    event = response.get_json()
    assert event["start_date"] == "2026-03-20T13:00:00"
    assert event["end_date"] == "2026-03-20T14:00:00"


def test_list_events_by_type(
client, household, calendar_url):
    for title, event_type in (("Party", "other"), ("Call mum", "reminder")):
        client.post(
            f"{calendar_url}/events",
            json={"title": title, "start_date": "2026-03-20T18:00:00", "event_type": event_type},
            headers=household["headers"],
        )
    response = client.get(f"{calendar_url}/events?type=reminder", headers=household["headers"])
    assert [e["title"] for e in response.get_json()] == ["Call mum"]

    response = client.get(f"{calendar_url}/events?type=birthday", headers=household["headers"])
    assert response.status_code == 400


def test_events_are_household_scoped(client, household, outsider, calendar_url):
    event = client.post(
        f"{calendar_url}/events",
        json={"title": "Party", "start_date": "2026-03-20T18:00:00"},
        headers=household["headers"],
    ).get_json()
    response = client.delete(
        f"{outsider['url']}/calendar/events/{event['id']}", headers=outsider["headers"]
    )
    assert response.status_code == 404
