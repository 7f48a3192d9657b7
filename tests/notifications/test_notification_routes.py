import datetime

import pytest

from src.database import utcnow
from src.notifications.utils import due_message, in_dnd_window


@pytest.fixture
def bob_url(household):
    return f"{household['url']}/notifications"


@pytest.fixture
def assigned(household, second_member, create_task):
    """Two tasks assigned to Bob, so Bob has two unread notifications."""
    bob_id = second_member["member"]["id"]
    create_task(name="Water the plants", assigned_to=[bob_id])
    create_task(name="Walk the dog", assigned_to=[bob_id])
    return second_member


# --- Tests for helpers ---


def test_due_message():
    assert due_message("Bins", 0, False) == 'The task "Bins" is due today!'
    assert due_message("Bins", 2, True) == 'The next occurrence of "Bins" is in 2 day(s)'


def test_dnd_window_wraps_past_midnight():
    preferences = {"dnd_start": "22:00", "dnd_end": "07:00"}
    assert in_dnd_window(preferences, datetime.time(23, 30))
    assert in_dnd_window(preferences, datetime.time(6, 59))
    assert not in_dnd_window(preferences, datetime.time(7, 0))
    assert not in_dnd_window({"dnd_start": None, "dnd_end": None}, datetime.time(23))


# --- Tests for notification routes ---


def test_list_and_unread_count(client, bob_url, assigned):
    response = client.get(bob_url, headers=assigned["headers"])
    data = response.get_json()
    assert [n["message"] for n in data] == [
        'You have been assigned the task "Walk the dog"',
        'You have been assigned the task "Water the plants"',
    ]
    assert all(n["is_read"] is False for n in data)

    response = client.get(f"{bob_url}/unread-count", headers=assigned["headers"])
    assert response.get_json() == {"count": 2}


def test_mark_as_read(client, bob_url, assigned):
    first = client.get(bob_url, headers=assigned["headers"]).get_json()[0]
    response = client.post(f"{bob_url}/{first['id']}/read", headers=assigned["headers"])
    assert response.status_code == 200

    unread = client.get(f"{bob_url}?unread_only=true", headers=assigned["headers"])
    assert len(unread.get_json()) == 1

    response = client.post(f"{bob_url}/read-all", headers=assigned["headers"])
    assert response.get_json()["updated"] == 1
    response = client.get(f"{bob_url}/unread-count", headers=assigned["headers"])
    assert response.get_json() == {"count": 0}


def test_members_only_touch_their_own_notifications(client, household, bob_url, assigned):
    notification = client.get(bob_url, headers=assigned["headers"]).get_json()[0]
    response = client.post(
        f"{bob_url}/{notification['id']}/read", headers=household["headers"]
    )
    assert response.status_code == 404
    response = client.delete(f"{bob_url}/{notification['id']}", headers=household["headers"])
    assert response.status_code == 404


def test_delete_notification(client, bob_url, assigned):
    notification = client.get(bob_url, headers=assigned["headers"]).get_json()[0]
    response = client.delete(f"{bob_url}/{notification['id']}", headers=assigned["headers"])
    assert response.status_code == 200
    assert len(client.get(bob_url, headers=assigned["headers"]).get_json()) == 1


def test_preferences_default_to_enabled(client, bob_url, second_member):
    response = client.get(f"{bob_url}/preferences", headers=second_member["headers"])
    preferences = response.get_json()
    assert preferences["enable_task_assigned"] is True
    assert preferences["dnd_start"] is None


def test_disabled_type_is_not_stored(client, bob_url, second_member, create_task):
    response = client.put(
        f"{bob_url}/preferences",
        json={"enable_task_assigned": False, "dnd_start": "22:00", "dnd_end": "07:00"},
        headers=second_member["headers"],
    )
    preferences = response.get_json()
    assert preferences["enable_task_assigned"] is False
    assert preferences["enable_reminders"] is True
    assert preferences["dnd_end"] == "07:00"

    create_task(assigned_to=[second_member["member"]["id"]])
    assert client.get(bob_url, headers=second_member["headers"]).get_json() == []


def test_invalid_dnd_time(client, bob_url, second_member):
    response = client.put(
        f"{bob_url}/preferences",
        json={"dnd_start": "25:00"},
        headers=second_member["headers"],
    )
    assert response.status_code == 400


def test_scan_due_sends_once_per_day(client, household, bob_url, second_member, create_task):
    today = utcnow().date()
    create_task(
        name="Pay rent",
        assigned_to=[second_member["member"]["id"]],
        due_date=today.isoformat(),
    )
    create_task(
        name="Far away",
        assigned_to=[second_member["member"]["id"]],
        due_date=(today + datetime.timedelta(days=30)).isoformat(),
    )

    response = client.post(f"{bob_url}/scan-due", headers=household["headers"])
    assert response.get_json() == {"sent": 1}
    response = client.post(f"{bob_url}/scan-due", headers=household["headers"])
    assert response.get_json() == {"sent": 0}

    due = [
        n
        for n in client.get(bob_url, headers=second_member["headers"]).get_json()
        if n["type"] == "task_due"
    ]
    assert due[0]["message"] == 'The task "Pay rent" is due today!'
