"""
Who does a rotating task next.

A rotation plan is a list of occurrences, each shaped like
{"occurrence_number": 1, "members": [{"position": 1, "member_id": 4}], "notes": None}.
A member_id of None (or 0) marks an open slot.
"""

import copy


def eligible_member_ids(members: list[dict], excluded_ids) -> list[int]:
    """Active members that are not excluded, in household order."""
    excluded = set(excluded_ids or [])
    return [
        member["id"]
        for member in members
        if member.get("is_active", True) and member["id"] not in excluded
    ]


def next_assignees(
    current: list[int], eligible: list[int], required_persons: int = None
) -> list[int]:
    """
    The group taking over from `current`.

    The group starts right after the last current assignee in eligible order
    and wraps around. Its size is required_persons, falling back to the size
    of the current group, capped by the number of eligible members. When no
    current assignee is eligible the group starts at the first eligible member.
    """
    if not eligible:
        return list(current)

    size = min(required_persons or len(current) or 1, len(eligible))

    positions = [eligible.index(member_id) for member_id in current if member_id in eligible]
    start = max(positions) + 1 if positions else 0

    return [eligible[(start + offset) % len(eligible)] for offset in range(size)]


def autofill_schedule(schedule: list[dict], eligible: list[int]) -> list[dict]:
    """Fill open slots round-robin through the eligible members; assigned slots stay."""
    filled = copy.deepcopy(schedule)
    if not eligible:
        return filled

    member_index = 0
    for occurrence in filled:
        for slot in occurrence["members"]:
            if not slot.get("member_id"):
                slot["member_id"] = eligible[member_index % len(eligible)]
                member_index += 1
    return filled


def generate_schedule(
    current: list[int],
    eligible: list[int],
    count: int,
    required_persons: int = None,
) -> list[dict]:
    """A fresh plan of `count` occurrences, the first one being the current group."""
    schedule = []
    group = [member_id for member_id in current if member_id in eligible]
    if not group:
        group = next_assignees([], eligible, required_persons)

    for occurrence_number in range(1, count + 1):
        schedule.append(
            {
                "occurrence_number": occurrence_number,
                "members": [
                    {"position": position, "member_id": member_id}
                    for position, member_id in enumerate(group, start=1)
                ],
                "notes": None,
            }
        )
        group = next_assignees(group, eligible, required_persons)
    return schedule


def shift_schedule(schedule: list[dict]) -> list[dict]:
    """Drop occurrence 1 and move every later occurrence one step forward, notes included."""
    shifted = []
    for occurrence in sorted(schedule, key=lambda occurrence: occurrence["occurrence_number"]):
        if occurrence["occurrence_number"] <= 1:
            continue
        moved = copy.deepcopy(occurrence)
        moved["occurrence_number"] -= 1
        shifted.append(moved)
    return shifted


def planned_occurrence(schedule: list[dict], number: int) -> dict | None:
    """The planned occurrence with this number; plans may have gaps."""
    return next(
        (occurrence for occurrence in schedule if occurrence["occurrence_number"] == number),
        None,
    )


def members_of(occurrence: dict | None) -> list[int]:
    if not occurrence:
        return []
    slots = sorted(occurrence["members"], key=lambda slot: slot["position"])
    return [slot["member_id"] for slot in slots if slot.get("member_id")]
