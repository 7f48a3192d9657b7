from src.tasks_app.rotation import (
    autofill_schedule,
    eligible_member_ids,
    generate_schedule,
    members_of,
    next_assignees,
    planned_occurrence,
    shift_schedule,
)


def occurrence(number, *member_ids, notes=None):
    return {
        "occurrence_number": number,
        "members": [
            {"position": position, "member_id": member_id}
            for position, member_id in enumerate(member_ids, start=1)
        ],
        "notes": notes,
    }


# --- Tests for eligible_member_ids ---


def test_eligible_members_skip_inactive_and_excluded():
    members = [
        {"id": 1, "is_active": True},
        {"id": 2, "is_active": False},
        {"id": 3, "is_active": True},
        {"id": 4, "is_active": True},
    ]
    assert eligible_member_ids(members, [4]) == [1, 3]


# --- Tests for next_assignees ---


def test_next_assignees_single_person_wraps_around():
    assert next_assignees([1], [1, 2, 3]) == [2]
    assert next_assignees([3], [1, 2, 3]) == [1]


def test_next_assignees_group_of_two():
    assert next_assignees([1, 2], [1, 2, 3, 4]) == [3, 4]
    assert next_assignees([3, 4], [1, 2, 3, 4]) == [1, 2]


def test_next_assignees_required_persons_overrides_group_size():
    assert next_assignees([1], [1, 2, 3, 4], required_persons=2) == [2, 3]


def test_next_assignees_capped_by_eligible_members():
    assert next_assignees([1], [1, 2], required_persons=5) == [2, 1]


def test_next_assignees_without_eligible_current_member():
    assert next_assignees([9], [1, 2, 3]) == [1]


def test_next_assignees_nobody_eligible_keeps_current():
    assert next_assignees([1, 2], []) == [1, 2]


# --- Tests for plans ---


def test_generate_schedule_starts_with_current_group():
    schedule = generate_schedule([2], [1, 2, 3], 4)
    assert [members_of(o) for o in schedule] == [[2], [3], [1], [2]]
    assert [o["occurrence_number"] for o in schedule] == [1, 2, 3, 4]


def test_generate_schedule_without_assignees():
    schedule = generate_schedule([], [1, 2, 3], 2, required_persons=2)
    assert [members_of(o) for o in schedule] == [[1, 2], [3, 1]]


def test_autofill_fills_only_open_slots():
    schedule = [occurrence(1, 1, None), occurrence(2, None, 3)]
    filled = autofill_schedule(schedule, [1, 2, 3])
    assert [members_of(o) for o in filled] == [[1, 1], [2, 3]]
    # Input plan is left untouched
    assert schedule[0]["members"][1]["member_id"] is None


def test_shift_schedule_renumbers_and_keeps_notes():
    schedule = [occurrence(1, 1), occurrence(2, 2, notes="bring gloves"), occurrence(3, 3)]
    shifted = shift_schedule(schedule)
    assert [o["occurrence_number"] for o in shifted] == [1, 2]
    assert members_of(shifted[0]) == [2]
    assert shifted[0]["notes"] == "bring gloves"


def test_shift_schedule_keeps_gaps():
    schedule = [occurrence(3, 3), occurrence(1, 1), occurrence(5, 2)]
    shifted = shift_schedule(schedule)
    assert [o["occurrence_number"] for o in shifted] == [2, 4]
    assert planned_occurrence(shifted, 1) is None
    assert members_of(planned_occurrence(shifted, 2)) == [3]


def test_members_of_orders_by_position():
    planned = {
        "occurrence_number": 1,
        "members": [
            {"position": 2, "member_id": 5},
            {"position": 1, "member_id": 7},
            {"position": 3, "member_id": None},
        ],
    }
    assert members_of(planned) == [7, 5]
    assert members_of(None) == []
