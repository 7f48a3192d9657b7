import pytest


@pytest.fixture
def alice_id(household):
    return household["member"]["id"]


@pytest.fixture
def bob_id(second_member):
    return second_member["member"]["id"]


@pytest.fixture
def tasks_url(household):
    return f"{household['url']}/tasks"


def notifications(client, household, headers):
    response = client.get(f"{household['url']}/notifications", headers=headers)
    return response.get_json()


# --- Tests for create / read / update / delete ---


def test_create_task(client, household, second_member, create_task, bob_id):
    task = create_task(
        name="Clean the bathroom",
        assigned_to=[bob_id],
        frequency="weekly",
        due_date="2026-03-02",
        due_time="07:15",
    )
    assert task["due_date"] == "2026-03-02T07:15:00"
    assert task["assignees"] == [{"member_id": bob_id, "member_name": "Bob"}]
    assert task["is_recurring"] is True
    assert task["repeat_label"] == "every 1 week"
    assert task["created_by"] == household["member"]["id"]

    received = notifications(client, household, second_member["headers"])
    assert [n["type"] for n in received] == ["task_assigned"]
    assert "Clean the bathroom" in received[0]["message"]


def test_create_task_validation(client, household, tasks_url):
    response = client.post(
        tasks_url,
        json={"name": "Mop", "repeat_interval": 2},
        headers=household["headers"],
    )
    assert response.status_code == 400
    assert response.get_json()["error"] == "repeat_unit is required with repeat_interval"

    response = client.post(
        tasks_url,
        json={"name": "Mop", "due_time": "07:00"},
        headers=household["headers"],
    )
    assert response.status_code == 400

    response = client.post(
        tasks_url,
        json={"name": "Mop", "colour": "red"},
        headers=household["headers"],
    )
    assert response.status_code == 400


def test_create_task_with_member_of_other_household(client, household, outsider, tasks_url):
    response = client.post(
        tasks_url,
        json={"name": "Mop", "assigned_to": [outsider["member"]["id"]]},
        headers=household["headers"],
    )
    assert response.status_code == 404


def test_update_task(client, household, create_task, tasks_url, alice_id):
    task = create_task(frequency="daily", due_date="2026-03-02")
    response = client.patch(
        f"{tasks_url}/{task['id']}",
        json={"description": "Bins go out on Monday", "due_time": "19:30", "name": None},
        headers=household["headers"],
    )
    assert response.status_code == 200
    updated = response.get_json()
    assert updated["name"] == task["name"]
    assert updated["description"] == "Bins go out on Monday"
    assert updated["due_date"] == "2026-03-02T19:30:00"

    response = client.patch(
        f"{tasks_url}/{task['id']}",
        json={"clear_repeat": True, "excluded_members": [alice_id]},
        headers=household["headers"],
    )
    updated = response.get_json()
    assert updated["frequency"] == "once"
    assert updated["is_recurring"] is False
    assert updated["excluded_members"] == [alice_id]


def test_delete_task(client, household, create_task, tasks_url):
    task = create_task()
    response = client.delete(f"{tasks_url}/{task['id']}", headers=household["headers"])
    assert response.status_code == 200
    response = client.get(f"{tasks_url}/{task['id']}", headers=household["headers"])
    assert response.status_code == 404


def test_tasks_are_household_scoped(client, household, outsider, create_task):
    task = create_task()
    response = client.get(
        f"{outsider['url']}/tasks/{task['id']}", headers=outsider["headers"]
    )
    assert response.status_code == 404


# --- Tests for completion ---


def test_complete_one_off_task(
    client, household, second_member, create_task, tasks_url, alice_id
):
    task = create_task(assigned_to=[alice_id])
    response = client.post(
        f"{tasks_url}/{task['id']}/complete",
        json={"comment": "Done!", "photo_urls": ["/api/uploads/bins.jpg"]},
        headers=second_member["headers"],
    )
    assert response.status_code == 200
    result = response.get_json()
    assert result["task"]["is_completed"] is True
    assert result["task"]["completed_by"] == second_member["member"]["id"]
    assert result["next_due_date"] is None

    received = notifications(client, household, household["headers"])
    assert [n["type"] for n in received] == ["task_completed"]

    response = client.get(f"{tasks_url}/{task['id']}/activities", headers=household["headers"])
    completed = [a for a in response.get_json() if a["action"] == "completed"]
    assert completed[0]["comment"] == "Done!"
    assert completed[0]["photo_urls"] == ["/api/uploads/bins.jpg"]


def test_complete_recurring_task_advances_due_date(client, household, create_task, tasks_url):
    task = create_task(frequency="weekly", due_date="2026-03-02")
    response = client.post(
        f"{tasks_url}/{task['id']}/complete", json={}, headers=household["headers"]
    )
    result = response.get_json()
    assert result["task"]["is_completed"] is False
    assert result["task"]["due_date"] == "2026-03-09T00:00:00"
    assert result["next_due_date"] == "2026-03-09T00:00:00"


def test_monthly_same_weekday_completion(client, household, create_task, tasks_url):
    task = create_task(
        frequency="monthly",
        monthly_recurrence_mode="same_weekday",
        due_date="2026-02-19",
    )
    response = client.post(
        f"{tasks_url}/{task['id']}/complete", json={}, headers=household["headers"]
    )
    assert response.get_json()["next_due_date"] == "2026-03-19T00:00:00"


def test_rotation_hands_over_and_undo_restores(
    client, household, second_member, create_task, tasks_url, alice_id, bob_id
):
    task = create_task(
        frequency="weekly",
        due_date="2026-03-02",
        enable_rotation=True,
        assigned_to=[alice_id],
    )
    response = client.post(
        f"{tasks_url}/{task['id']}/complete", json={}, headers=household["headers"]
    )
    assert response.get_json()["task"]["assigned_to"] == [bob_id]
    received = notifications(client, household, second_member["headers"])
    assert [n["type"] for n in received] == ["task_assigned"]

    response = client.post(
        f"{tasks_url}/{task['id']}/undo-completion", headers=household["headers"]
    )
    assert response.status_code == 200
    restored = response.get_json()
    assert restored["assigned_to"] == [alice_id]
    assert restored["due_date"] == "2026-03-02T00:00:00"

    response = client.post(
        f"{tasks_url}/{task['id']}/undo-completion", headers=household["headers"]
    )
    assert response.status_code == 404


def test_toggle_reopens_one_off_task(client, household, create_task, tasks_url):
    task = create_task()
    response = client.post(
        f"{tasks_url}/{task['id']}/toggle",
        json={"is_completed": True},
        headers=household["headers"],
    )
    assert response.get_json()["task"]["is_completed"] is True

    response = client.post(
        f"{tasks_url}/{task['id']}/toggle",
        json={"is_completed": False},
        headers=household["headers"],
    )
    assert response.get_json()["task"]["is_completed"] is False


# --- Tests for skipped occurrences ---


def test_skip_and_restore_occurrence(client, household, create_task, tasks_url):
    task = create_task(frequency="weekly", due_date="2026-03-02")
    response = client.post(
        f"{tasks_url}/{task['id']}/skip",
        json={"date": "2026-03-02"},
        headers=household["headers"],
    )
    skipped = response.get_json()
    assert skipped["skipped_dates"] == ["2026-03-02"]
    assert skipped["due_date"] == "2026-03-09T00:00:00"

    response = client.post(
        f"{tasks_url}/{task['id']}/skip",
        json={"date": "2026-03-16"},
        headers=household["headers"],
    )
    assert response.get_json()["due_date"] == "2026-03-09T00:00:00"

    response = client.get(
        f"{tasks_url}/{task['id']}/occurrences?count=3", headers=household["headers"]
    )
    assert [o["due_date"] for o in response.get_json()] == [
        "2026-03-09T00:00:00",
        "2026-03-23T00:00:00",
        "2026-03-30T00:00:00",
    ]

    response = client.post(
        f"{tasks_url}/{task['id']}/restore",
        json={"date": "2026-03-16"},
        headers=household["headers"],
    )
    assert response.get_json()["skipped_dates"] == ["2026-03-02"]

    response = client.post(
        f"{tasks_url}/{task['id']}/restore",
        json={"date": "2026-03-16"},
        headers=household["headers"],
    )
    assert response.status_code == 404


def test_skip_one_off_task(client, household, create_task, tasks_url):
    task = create_task(due_date="2026-03-02")
    response = client.post(
        f"{tasks_url}/{task['id']}/skip",
        json={"date": "2026-03-02"},
        headers=household["headers"],
    )
    assert response.status_code == 400


# --- Tests for milestones and reminders ---


def test_milestone_notifies_assignees(
    client, household, second_member, create_task, tasks_url, bob_id
):
    task = create_task(name="Paint the fence", assigned_to=[bob_id])
    response = client.post(
        f"{tasks_url}/{task['id']}/milestone",
        json={"comment": "First coat done", "file_urls": ["/api/uploads/plan.pdf"]},
        headers=household["headers"],
    )
    assert response.status_code == 201

    types = [n["type"] for n in notifications(client, household, second_member["headers"])]
    assert "comment_added" in types


def test_reminder(client, household, second_member, create_task, tasks_url, bob_id):
    unassigned = create_task(name="Unassigned")
    response = client.post(
        f"{tasks_url}/{unassigned['id']}/reminder", json={}, headers=household["headers"]
    )
    assert response.status_code == 400

    task = create_task(name="Feed the cat", assigned_to=[bob_id])
    response = client.post(
        f"{tasks_url}/{task['id']}/reminder",
        json={"comment": "before 8 please"},
        headers=household["headers"],
    )
    assert response.get_json()["notified"] == 1
    reminders = [
        n
        for n in notifications(client, household, second_member["headers"])
        if n["type"] == "reminder"
    ]
    assert reminders[0]["message"] == 'Alice reminds you about "Feed the cat": before 8 please'


# --- Tests for rotation plans ---


def test_occurrences_rotate_without_plan(
    client, household, create_task, tasks_url, alice_id, bob_id
):
    task = create_task(
        frequency="weekly",
        due_date="2026-03-02",
        enable_rotation=True,
        assigned_to=[alice_id],
    )
    response = client.get(
        f"{tasks_url}/{task['id']}/occurrences?count=3", headers=household["headers"]
    )
    occurrences = response.get_json()
    assert [o["member_ids"] for o in occurrences] == [[alice_id], [bob_id], [alice_id]]
    assert occurrences[1]["member_names"] == ["Bob"]


def test_one_off_rotating_task_keeps_assignees(
    client, household, create_task, tasks_url, alice_id, bob_id
):
    task = create_task(enable_rotation=True, assigned_to=[alice_id])
    response = client.post(
        f"{tasks_url}/{task['id']}/complete", json={}, headers=household["headers"]
    )
    completed = response.get_json()["task"]
    assert completed["is_completed"] is True
    assert completed["assigned_to"] == [alice_id]


def test_autofill_plan_drives_rotation(
    client, household, create_task, tasks_url, alice_id, bob_id
):
    task = create_task(
        frequency="weekly",
        due_date="2026-03-02",
        enable_rotation=True,
        assigned_to=[alice_id],
    )
    response = client.post(
        f"{tasks_url}/{task['id']}/rotation/autofill",
        json={"count": 3},
        headers=household["headers"],
    )
    schedule = response.get_json()["schedule"]
    assert [[slot["member_id"] for slot in o["members"]] for o in schedule] == [
        [alice_id],
        [bob_id],
        [alice_id],
    ]

    client.post(f"{tasks_url}/{task['id']}/complete", json={}, headers=household["headers"])
    response = client.get(f"{tasks_url}/{task['id']}/rotation", headers=household["headers"])
    rotation = response.get_json()
    assert [o["occurrence_number"] for o in rotation["schedule"]] == [1, 2]
    assert rotation["schedule"][0]["members"][0]["member_id"] == bob_id

    client.post(f"{tasks_url}/{task['id']}/undo-completion", headers=household["headers"])
    response = client.get(f"{tasks_url}/{task['id']}/rotation", headers=household["headers"])
    schedule = response.get_json()["schedule"]
    assert len(schedule) == 3
    assert schedule[0]["members"][0]["member_id"] == alice_id


def test_replace_and_extend_rotation(
    client, household, create_task, tasks_url, alice_id, bob_id
):
    task = create_task(frequency="weekly", due_date="2026-03-02", enable_rotation=True)
    response = client.put(
        f"{tasks_url}/{task['id']}/rotation",
        json={
            "schedule": [
                {"occurrence_number": 1, "members": [{"position": 1, "member_id": bob_id}]},
                {"occurrence_number": 2, "members": [], "notes": "Guests visiting"},
            ]
        },
        headers=household["headers"],
    )
    schedule = response.get_json()["schedule"]
    assert schedule[0]["members"][0]["member_name"] == "Bob"
    assert schedule[1]["notes"] == "Guests visiting"

    response = client.post(
        f"{tasks_url}/{task['id']}/rotation/extend",
        json={"members": [{"position": 1, "member_id": alice_id}]},
        headers=household["headers"],
    )
    assert [o["occurrence_number"] for o in response.get_json()["schedule"]] == [1, 2, 3]

    response = client.put(
        f"{tasks_url}/{task['id']}/rotation",
        json={"schedule": [{"occurrence_number": 1}, {"occurrence_number": 1}]},
        headers=household["headers"],
    )
    assert response.status_code == 400


def test_rotation_plan_with_open_occurrence(
    client, household, create_task, tasks_url, alice_id, bob_id
):
    response = client.post(
        f"{household['url']}/members",
        json={"member_name": "Charlie"},
        headers=household["headers"],
    )
    charlie_id = response.get_json()["id"]
    task = create_task(
        frequency="weekly",
        due_date="2026-03-02",
        enable_rotation=True,
        assigned_to=[alice_id],
    )
    rotation_url = f"{tasks_url}/{task['id']}/rotation"

    response = client.put(
        rotation_url,
        json={
            "schedule": [
                {"occurrence_number": 1, "members": [{"position": 1, "member_id": alice_id}]},
                {"occurrence_number": 2, "members": []},
                {"occurrence_number": 3, "members": [{"position": 1, "member_id": charlie_id}]},
            ]
        },
        headers=household["headers"],
    )
    assert [o["occurrence_number"] for o in response.get_json()["schedule"]] == [1, 2, 3]

    response = client.get(
        f"{tasks_url}/{task['id']}/occurrences?count=3", headers=household["headers"]
    )
    assert [o["member_ids"] for o in response.get_json()] == [
        [alice_id],
        [bob_id],
        [charlie_id],
    ]

    response = client.post(
        f"{rotation_url}/extend",
        json={"members": [{"position": 1, "member_id": bob_id}]},
        headers=household["headers"],
    )
    assert response.status_code == 200
    assert [o["occurrence_number"] for o in response.get_json()["schedule"]] == [1, 2, 3, 4]

    # The open occurrence hands the task to the computed next member
    client.post(f"{tasks_url}/{task['id']}/complete", json={}, headers=household["headers"])
    response = client.get(f"{tasks_url}/{task['id']}", headers=household["headers"])
    assert [a["member_id"] for a in response.get_json()["assignees"]] == [bob_id]

    schedule = client.get(rotation_url, headers=household["headers"]).get_json()["schedule"]
    assert [o["occurrence_number"] for o in schedule] == [1, 2, 3]
    assert schedule[0]["members"] == []
    assert schedule[1]["members"][0]["member_id"] == charlie_id


# --- Tests for occurrence items ---


def test_occurrence_items(client, household, tasks_url, create_task, create_inventory_item):
    task = create_task()
    drill = create_inventory_item()
    ladder = create_inventory_item(name="Ladder")
    second_url = f"{tasks_url}/{task['id']}/occurrences/2/items"

    response = client.post(
        second_url,
        json={
            "inventory_item_id": drill["id"],
            "borrow_start_date": "2026-11-02T08:00:00Z",
            "borrow_end_date": "2026-11-02T18:00:00",
            "notes": "Bring the bits",
        },
        headers=household["headers"],
    )
    assert response.status_code == 201
    link = response.get_json()
    assert link["occurrence_number"] == 2
    assert link["item_name"] == "Drill"
    assert link["borrow_status"] == "pending"
    assert link["borrow_start_date"] == "2026-11-02T08:00:00"
    assert link["added_by"] == household["member"]["id"]

    response = client.post(
        second_url, json={"inventory_item_id": drill["id"]}, headers=household["headers"]
    )
    assert response.status_code == 409

    response = client.post(
        f"{tasks_url}/{task['id']}/occurrences/1/items",
        json={"inventory_item_id": ladder["id"]},
        headers=household["headers"],
    )
    assert response.status_code == 201

    items = client.get(f"{tasks_url}/{task['id']}/items", headers=household["headers"]).get_json()
    assert [(i["occurrence_number"], i["item_name"]) for i in items] == [(1, "Ladder"), (2, "Drill")]
    items = client.get(second_url, headers=household["headers"]).get_json()
    assert [i["item_name"] for i in items] == ["Drill"]

    # The link belongs to occurrence 2, not 1
    response = client.delete(
        f"{tasks_url}/{task['id']}/occurrences/1/items/{link['id']}", headers=household["headers"]
    )
    assert response.status_code == 404

    response = client.delete(f"{second_url}/{link['id']}", headers=household["headers"])
    assert response.status_code == 200
    assert client.get(second_url, headers=household["headers"]).get_json() == []


def test_occurrence_item_must_belong_to_household(
    client, household, outsider, tasks_url, create_task, create_inventory_item
):
    task = create_task()
    response = client.post(
        f"{outsider['url']}/inventory",
        json={"name": "Saw", "ownership_type": "household"},
        headers=outsider["headers"],
    )
    saw = response.get_json()

    response = client.post(
        f"{tasks_url}/{task['id']}/occurrences/1/items",
        json={"inventory_item_id": saw["id"]},
        headers=household["headers"],
    )
    assert response.status_code == 404

    drill = create_inventory_item()
    response = client.post(
        f"{tasks_url}/{task['id']}/occurrences/0/items",
        json={"inventory_item_id": drill["id"]},
        headers=household["headers"],
    )
    assert response.status_code == 400

    response = client.get(f"{tasks_url}/{task['id']}/items", headers=outsider["headers"])
    assert response.status_code == 403


def test_update_occurrence_item_borrow(
    client, household, second_member, tasks_url, create_task, create_inventory_item
):
    task = create_task()
    drill = create_inventory_item()
    link = client.post(
        f"{tasks_url}/{task['id']}/occurrences/1/items",
        json={"inventory_item_id": drill["id"]},
        headers=household["headers"],
    ).get_json()
    url = f"{tasks_url}/{task['id']}/occurrences/1/items/{link['id']}"

    borrow = client.post(
        f"{household['url']}/borrow/requests",
        json={
            "inventory_item_id": drill["id"],
            "start_date": "2026-05-01T10:00:00",
            "end_date": "2026-05-05T18:00:00",
        },
        headers=second_member["headers"],
    ).get_json()

    response = client.patch(
        url,
        json={
            "borrow_status": "borrowed",
            "borrow_request_id": borrow["id"],
            "borrow_start_date": "2026-05-01T10:00:00",
            "borrow_end_date": "2026-05-05T18:00:00",
        },
        headers=household["headers"],
    )
    assert response.status_code == 200
    updated = response.get_json()
    assert updated["borrow_status"] == "borrowed"
    assert updated["borrow_request_id"] == borrow["id"]
    assert updated["borrow_end_date"] == "2026-05-05T18:00:00"

    for body in (
        {"borrow_end_date": "2026-04-30T00:00:00"},
        {"borrow_status": "lost"},
        {"borrow_status": None},
        {"borrow_request_id": 9999},
    ):
        response = client.patch(url, json=body, headers=household["headers"])
        assert response.status_code == 400, body

    response = client.patch(
        url, json={"borrow_request_id": None, "notes": "Returned early"}, headers=household["headers"]
    )
    updated = response.get_json()
    assert updated["borrow_request_id"] is None
    assert updated["borrow_status"] == "borrowed"
    assert updated["notes"] == "Returned early"


def test_occurrence_items_go_with_the_item(
    client, household, tasks_url, create_task, create_inventory_item
):
    task = create_task()
    drill = create_inventory_item()
    client.post(
        f"{tasks_url}/{task['id']}/occurrences/1/items",
        json={"inventory_item_id": drill["id"]},
        headers=household["headers"],
    )

    client.delete(f"{household['url']}/inventory/{drill['id']}", headers=household["headers"])
    items = client.get(f"{tasks_url}/{task['id']}/items", headers=household["headers"]).get_json()
    assert items == []


# --- Tests for dependencies ---


def test_prerequisites_block_completion(client, household, create_task, tasks_url):
    buy_paint = create_task(name="Buy paint")
    paint = create_task(name="Paint the wall", prerequisites=[buy_paint["id"]])
    assert [p["id"] for p in paint["prerequisites"]] == [buy_paint["id"]]

    response = client.post(
        f"{tasks_url}/{paint['id']}/complete", json={}, headers=household["headers"]
    )
    assert response.status_code == 409
    assert response.get_json()["details"] == ['"Buy paint" is not completed']

    response = client.post(
        f"{tasks_url}/{paint['id']}/complete",
        json={"force": True},
        headers=household["headers"],
    )
    assert response.status_code == 200


def test_recurring_prerequisite_never_blocks(client, household, create_task, tasks_url):
    vacuum = create_task(name="Vacuum", frequency="weekly", due_date="2026-03-02")
    mop = create_task(name="Mop", prerequisites=[vacuum["id"]])
    response = client.post(
        f"{tasks_url}/{mop['id']}/complete", json={}, headers=household["headers"]
    )
    assert response.status_code == 200


def test_dependency_cycles_are_rejected(client, household, create_task, tasks_url):
    first = create_task(name="First")
    second = create_task(name="Second", prerequisites=[first["id"]])

    response = client.post(
        f"{tasks_url}/{first['id']}/dependencies",
        json={"prerequisites": [second["id"]]},
        headers=household["headers"],
    )
    assert response.status_code == 400

    response = client.get(f"{tasks_url}/dependencies", headers=household["headers"])
    assert response.get_json() == [
        {"task_id": second["id"], "depends_on_task_id": first["id"]}
    ]


def test_replace_dependencies(client, household, create_task, tasks_url):
    first = create_task(name="First")
    second = create_task(name="Second", prerequisites=[first["id"]])
    third = create_task(name="Third")

    response = client.put(
        f"{tasks_url}/{second['id']}/dependencies",
        json={"followups": [third["id"]]},
        headers=household["headers"],
    )
    links = response.get_json()
    assert links["prerequisites"] == []
    assert [f["id"] for f in links["followups"]] == [third["id"]]


def test_dependencies_stay_inside_household(client, household, outsider, create_task, tasks_url):
    theirs = client.post(
        f"{outsider['url']}/tasks", json={"name": "Theirs"}, headers=outsider["headers"]
    ).get_json()
    ours = create_task(name="Ours")
    response = client.post(
        f"{tasks_url}/{ours['id']}/dependencies",
        json={"prerequisites": [theirs["id"]]},
        headers=household["headers"],
    )
    assert response.status_code == 404
