"""
Task operations that touch several tables at once: completing and undoing,
skipping occurrences, rotating assignees and linking dependencies.
"""

import datetime
import logging

from src.activities import database as activity_db
from src.borrow_app import database as borrow_db
from src.database import format_timestamp, now_iso, parse_timestamp, transaction
from src.errors import ConflictError, NotFoundError, ValidationError
from src.households import database as households_db
from src.households.utils import validate_member_ids
from src.inventory_app import utils as inventory
from src.notifications import utils as notify

from . import database as db
from .dependencies import blocking_prerequisites, would_create_cycle
from .models import Task
from .recurrence import (
    calculate_next_due_date,
    effective_interval,
    is_recurring,
    upcoming_occurrences,
)
from .rotation import (
    autofill_schedule,
    eligible_member_ids,
    generate_schedule,
    members_of,
    next_assignees,
    planned_occurrence,
    shift_schedule,
)

logger = logging.getLogger(__name__)

# Fields of TaskFields copied onto the Task as given
PLAIN_FIELDS = (
    "name",
    "description",
    "frequency",
    "custom_frequency_days",
    "repeat_interval",
    "repeat_unit",
    "monthly_recurrence_mode",
    "enable_rotation",
    "required_persons",
    "duration_days",
    "duration_minutes",
)
NOT_NULL_FIELDS = ("name", "frequency", "monthly_recurrence_mode", "enable_rotation")


def require_task(household_id: int, task_id: int) -> Task:
    task = db.get_task(household_id, task_id)
    if task is None:
        raise NotFoundError("Task not found")
    return task


def combine_due(due_date: datetime.date | None, due_time: str | None):
    """Due date and optional HH:MM time as one datetime; midnight without a time."""
    if due_date is None:
        return None
    time_of_day = datetime.time()
    if due_time:
        hours, minutes = due_time.split(":")
        time_of_day = datetime.time(int(hours), int(minutes))
    return datetime.datetime.combine(due_date, time_of_day)


def validate_recurrence(task: Task):
    if task.repeat_interval and task.repeat_unit is None:
        raise ValidationError("repeat_unit is required with repeat_interval")
    if task.repeat_unit in ("days", "weeks", "months") and not task.repeat_interval:
        raise ValidationError("repeat_interval is required with repeat_unit")
    if task.frequency == "custom" and not (
        task.custom_frequency_days or task.repeat_interval
    ):
        raise ValidationError("A custom frequency needs custom_frequency_days")


def task_details(task: Task) -> dict:
    """Task as returned by the API, with assignee names and dependency links."""
    details = task.to_dict()
    names = households_db.get_member_names(task.assigned_to)
    details["assignees"] = [
        {"member_id": member_id, "member_name": names.get(member_id, "Unknown")}
        for member_id in task.assigned_to
    ]
    details["is_recurring"] = is_recurring(task)
    details["repeat_label"] = describe_interval(task)
    details["excluded_members"] = db.get_exclusions(task.id)
    details["prerequisites"] = db.get_prerequisites(task.id)
    details["followups"] = db.get_followups(task.id)
    return details


# --- Create / update / delete ---


def create_task(household_id: int, member: dict, data) -> Task:
    fields = data.model_dump(exclude_unset=True)
    task = Task(household_id=household_id, created_by=member["id"])
    for field in PLAIN_FIELDS:
        if fields.get(field) is not None:
            setattr(task, field, fields[field])
    task.assigned_to = validate_member_ids(household_id, data.assigned_to or [])
    task.due_date = combine_due(data.due_date, data.due_time)
    validate_recurrence(task)

    excluded = validate_member_ids(household_id, data.excluded_members or [])

    with transaction():
        db.insert_task(task)
        if excluded:
            db.set_exclusions(task.id, excluded)
        link_dependencies(task, data.prerequisites, data.followups)
        activity_db.log_activity(
            household_id,
            member["id"],
            "task",
            "created",
            f'Task "{task.name}" created',
            related_item_id=task.id,
            metadata={"due_date": format_timestamp(task.due_date)},
        )
        notify.notify_task_assigned(task, task.assigned_to, assigned_by=member["id"])

    return task


def update_task(task: Task, member: dict, data) -> Task:
    fields = data.model_dump(exclude_unset=True)
    previous_assignees = list(task.assigned_to)

    for field in PLAIN_FIELDS:
        if field not in fields:
            continue
        if fields[field] is None and field in NOT_NULL_FIELDS:
            continue
        setattr(task, field, fields[field])

    if data.clear_repeat:
        task.repeat_interval = None
        task.repeat_unit = None
        task.custom_frequency_days = None
        task.frequency = "once"
        task.enable_rotation = False

    if "assigned_to" in fields:
        task.assigned_to = validate_member_ids(task.household_id, data.assigned_to or [])

    if "due_date" in fields:
        task.due_date = combine_due(data.due_date, data.due_time)
    elif data.due_time is not None:
        if task.due_date is None:
            raise ValidationError("due_time needs a due_date")
        task.due_date = combine_due(task.due_date.date(), data.due_time)

    validate_recurrence(task)

    with transaction():
        db.save_task(task)
        if "excluded_members" in fields:
            db.set_exclusions(
                task.id,
                validate_member_ids(task.household_id, data.excluded_members or []),
            )
        activity_db.log_activity(
            task.household_id,
            member["id"],
            "task",
            "updated",
            f'Task "{task.name}" updated',
            related_item_id=task.id,
            metadata={"fields": sorted(fields)},
        )
        newly_assigned = [m for m in task.assigned_to if m not in previous_assignees]
        notify.notify_task_assigned(task, newly_assigned, assigned_by=member["id"])

    return task


def delete_task(task: Task, member: dict):
    with transaction():
        db.delete_task(task.id)
        activity_db.log_activity(
            task.household_id,
            member["id"],
            "task",
            "deleted",
            f'Task "{task.name}" deleted',
            related_item_id=task.id,
        )


# --- Rotation ---


def eligible_for(task: Task) -> list[int]:
    members = households_db.list_members(task.household_id, active_only=True)
    return eligible_member_ids(members, db.get_exclusions(task.id))


def rotate_assignees(task: Task) -> tuple[list[int], dict | None]:
    """
    Assignees for the occurrence after the current one.

    A stored plan wins: occurrence 1 is dropped, the rest move forward and
    the new occurrence 1 names the next group. Without a plan, or when that
    occurrence is still open, the group is computed.

    Returns:
        tuple: (new assignees, the dropped plan occurrence or None)
    """
    schedule = db.get_rotation_schedule(task.id)
    if schedule:
        dropped = planned_occurrence(schedule, 1) or {
            "occurrence_number": 1,
            "members": [],
            "notes": None,
        }
        shifted = shift_schedule(schedule)
        db.set_rotation_schedule(task.id, shifted)
        # An open next occurrence falls back to the computed group
        planned = members_of(planned_occurrence(shifted, 1))
        if planned:
            return planned, dropped
        return next_assignees(task.assigned_to, eligible_for(task), task.required_persons), dropped

    return next_assignees(task.assigned_to, eligible_for(task), task.required_persons), None


def autofill_rotation(task: Task, count: int, slots: int = None) -> list[dict]:
    """
    Plan `count` occurrences.

    Without a plan one is generated starting at the current group. An
    existing plan keeps its assigned members: every occurrence is padded to
    `slots` positions, missing occurrences are appended and open slots are
    filled round-robin.
    """
    eligible = eligible_for(task)
    if not eligible:
        raise ValidationError("No eligible members to rotate between")

    size = slots or task.required_persons or max(len(task.assigned_to), 1)
    schedule = db.get_rotation_schedule(task.id)
    if not schedule:
        schedule = generate_schedule(task.assigned_to, eligible, count, size)
    else:
        planned_numbers = {occurrence["occurrence_number"] for occurrence in schedule}
        schedule += [
            {"occurrence_number": number, "members": [], "notes": None}
            for number in range(1, count + 1)
            if number not in planned_numbers
        ]
        schedule.sort(key=lambda occurrence: occurrence["occurrence_number"])
        for occurrence in schedule:
            taken = {slot["position"] for slot in occurrence["members"]}
            occurrence["members"] += [
                {"position": position, "member_id": None}
                for position in range(1, size + 1)
                if position not in taken
            ]
        schedule = autofill_schedule(schedule, eligible)

    db.set_rotation_schedule(task.id, schedule)
    return db.get_rotation_schedule(task.id)


def extend_rotation(task: Task, members: list[dict], notes: str = None) -> list[dict]:
    schedule = db.get_rotation_schedule(task.id)
    validate_member_ids(
        task.household_id, [slot["member_id"] for slot in members if slot.get("member_id")]
    )
    last = max((occurrence["occurrence_number"] for occurrence in schedule), default=0)
    schedule.append({"occurrence_number": last + 1, "members": members, "notes": notes})
    db.set_rotation_schedule(task.id, schedule)
    return db.get_rotation_schedule(task.id)


def replace_rotation(task: Task, schedule: list[dict]) -> list[dict]:
    numbers = [occurrence["occurrence_number"] for occurrence in schedule]
    if len(numbers) != len(set(numbers)):
        raise ValidationError("Occurrence numbers must be unique")
    member_ids = [
        slot["member_id"]
        for occurrence in schedule
        for slot in occurrence["members"]
        if slot.get("member_id")
    ]
    validate_member_ids(task.household_id, member_ids)
    db.set_rotation_schedule(task.id, schedule)
    return db.get_rotation_schedule(task.id)


# --- Completion ---


def check_prerequisites(task: Task, force: bool = False):
    prerequisites = [
        require_task(task.household_id, link["id"])
        for link in db.get_prerequisites(task.id)
    ]
    blocking = blocking_prerequisites(prerequisites)
    if blocking and not force:
        raise ConflictError(
            "Complete the prerequisite tasks first",
            [f'"{prerequisite.name}" is not completed' for prerequisite in blocking],
        )


def complete_task(
    task: Task,
    member: dict,
    comment: str = None,
    photo_urls: list[str] = None,
    force: bool = False,
) -> dict:
    """
    Record that the current occurrence of a task is done.

    Recurring tasks stay open: the due date moves one interval ahead and
    rotating tasks hand over to the next group. One-off tasks are marked
    completed.
    """
    check_prerequisites(task, force)

    original_due = task.due_date
    previous_assignees = list(task.assigned_to)
    recurring = is_recurring(task)
    dropped_occurrence = None

    with transaction():
        if recurring:
            task.due_date = calculate_next_due_date(task)
            task.is_completed = False
            task.completed_by = None
            task.completed_at = None
            task.completion_photo_urls = []
            if task.enable_rotation:
                task.assigned_to, dropped_occurrence = rotate_assignees(task)
        else:
            task.is_completed = True
            task.completed_by = member["id"]
            task.completed_at = now_iso()
            task.completion_photo_urls = list(photo_urls or [])

        db.save_task(task)

        activity_id = activity_db.log_activity(
            task.household_id,
            member["id"],
            "task",
            "completed",
            f'{member["member_name"]} completed "{task.name}"',
            related_item_id=task.id,
            comment=comment,
            photo_urls=photo_urls,
            metadata={
                "original_due_date": format_timestamp(original_due),
                "next_due_date": format_timestamp(task.due_date) if recurring else None,
                "recurring": recurring,
                "previous_assignees": previous_assignees,
                "dropped_occurrence": dropped_occurrence,
            },
        )

        if task.created_by and task.created_by != member["id"]:
            notify.notify_task_completed(task, member["member_name"], task.created_by)

        if recurring and task.enable_rotation:
            handed_over = [m for m in task.assigned_to if m not in previous_assignees]
            notify.notify_task_assigned(task, handed_over, assigned_by=member["id"])

    logger.info(f"Task {task.id} completed by member {member['id']}")
    return {
        "task": task.to_dict(),
        "activity_id": activity_id,
        "next_due_date": format_timestamp(task.due_date) if recurring else None,
    }


def reopen_task(task: Task, member: dict) -> Task:
    """Take back the completion of a one-off task."""
    if not task.is_completed:
        return task
    with transaction():
        task.is_completed = False
        task.completed_by = None
        task.completed_at = None
        task.completion_photo_urls = []
        db.save_task(task)
        activity_db.log_activity(
            task.household_id,
            member["id"],
            "task",
            "reopened",
            f'"{task.name}" reopened',
            related_item_id=task.id,
        )
    return task


def undo_completion(task: Task, member: dict) -> Task:
    """
    Revert the latest completion: due date, assignees and rotation plan go
    back to what they were and the completion entry leaves the history.
    """
    activity = activity_db.get_latest_activity(
        task.household_id, "task", "completed", task.id
    )
    if activity is None:
        raise NotFoundError("This task has no completion to undo")

    metadata = activity["metadata"]
    with transaction():
        if metadata.get("recurring"):
            task.due_date = parse_timestamp(metadata.get("original_due_date"))
            task.assigned_to = metadata.get("previous_assignees", task.assigned_to)
            dropped = metadata.get("dropped_occurrence")
            if dropped:
                schedule = db.get_rotation_schedule(task.id)
                for occurrence in schedule:
                    occurrence["occurrence_number"] += 1
                dropped["occurrence_number"] = 1
                db.set_rotation_schedule(task.id, [dropped] + schedule)
        else:
            task.is_completed = False
            task.completed_by = None
            task.completed_at = None
            task.completion_photo_urls = []

        db.save_task(task)
        activity_db.delete_activity(activity["id"])

    logger.info(f"Completion of task {task.id} undone by member {member['id']}")
    return task


# --- Skipped occurrences ---


def skip_occurrence(task: Task, member: dict, day: datetime.date) -> Task:
    if not is_recurring(task):
        raise ValidationError("Only recurring tasks have occurrences to skip")

    key = day.isoformat()
    with transaction():
        task.skipped_dates = sorted(set(task.skipped_dates) | {key})
        if task.due_date is not None and task.due_date.date() == day:
            task.due_date = calculate_next_due_date(task)
        db.save_task(task)
        activity_db.log_activity(
            task.household_id,
            member["id"],
            "task",
            "occurrence_skipped",
            f'Occurrence of "{task.name}" on {key} skipped',
            related_item_id=task.id,
            metadata={"date": key},
        )
    return task


def restore_occurrence(task: Task, member: dict, day: datetime.date) -> Task:
    key = day.isoformat()
    if key not in task.skipped_dates:
        raise NotFoundError(f"{key} is not a skipped occurrence")

    with transaction():
        task.skipped_dates = [skipped for skipped in task.skipped_dates if skipped != key]
        db.save_task(task)
        activity_db.log_activity(
            task.household_id,
            member["id"],
            "task",
            "occurrence_restored",
            f'Occurrence of "{task.name}" on {key} restored',
            related_item_id=task.id,
            metadata={"date": key},
        )
    return task


# --- Milestones and reminders ---


def add_milestone(
    task: Task, member: dict, comment=None, photo_urls=None, file_urls=None
) -> int:
    with transaction():
        activity_id = activity_db.log_activity(
            task.household_id,
            member["id"],
            "task",
            "milestone",
            f'Progress on "{task.name}"',
            related_item_id=task.id,
            comment=comment,
            photo_urls=photo_urls,
            file_urls=file_urls,
        )
        if comment:
            recipients = set(task.assigned_to)
            if task.created_by:
                recipients.add(task.created_by)
            notify.notify_comment_added(
                task, member["id"], member["member_name"], sorted(recipients)
            )
    return activity_id


def send_reminder(task: Task, member: dict, comment: str = None) -> dict:
    if not task.assigned_to:
        raise ValidationError("Nobody is assigned to this task")

    with transaction():
        activity_id = activity_db.log_activity(
            task.household_id,
            member["id"],
            "task",
            "reminder",
            f'{member["member_name"]} sent a reminder for "{task.name}"',
            related_item_id=task.id,
            comment=comment,
        )
        sent = notify.notify_reminder(
            task, member["id"], member["member_name"], task.assigned_to, comment
        )
    return {"activity_id": activity_id, "notified": len(sent)}


# --- Occurrences ---


def upcoming_with_assignees(task: Task, count: int) -> list[dict]:
    """Next due dates, each with the members planned for it."""
    schedule = db.get_rotation_schedule(task.id) if task.enable_rotation else []
    eligible = eligible_for(task) if task.enable_rotation else []

    occurrences = []
    group = list(task.assigned_to)
    for index, due in enumerate(upcoming_occurrences(task, count)):
        planned = planned_occurrence(schedule, index + 1)
        if planned and members_of(planned):
            group = members_of(planned)
        elif index > 0 and task.enable_rotation:
            group = next_assignees(group, eligible, task.required_persons)

        names = households_db.get_member_names(group)
        occurrences.append(
            {
                "occurrence_number": index + 1,
                "due_date": format_timestamp(due),
                "member_ids": list(group),
                "member_names": [names.get(m, "Unknown") for m in group],
                "notes": planned["notes"] if planned else None,
            }
        )
    return occurrences


# --- Dependencies ---


def link_dependencies(task: Task, prerequisites: list[int], followups: list[int]):
    """Add links; every linked task must be in the same household and no loop may form."""
    edges = db.list_dependency_edges(task.household_id)
    new_edges = [(task.id, other) for other in prerequisites]
    new_edges += [(other, task.id) for other in followups]

    for source, target in new_edges:
        other = target if source == task.id else source
        require_task(task.household_id, other)
        if would_create_cycle(edges, source, target):
            raise ValidationError(
                f"Linking task {source} after task {target} would create a cycle"
            )
        if db.add_dependency(source, target):
            edges.append((source, target))


def replace_dependencies(task: Task, prerequisites: list[int], followups: list[int]):
    with transaction():
        db.clear_dependencies(task.id)
        link_dependencies(task, prerequisites, followups)


def describe_interval(task: Task) -> str | None:
    interval = effective_interval(task)
    if interval is None:
        return None
    count, unit = interval
    return f"every {count} {unit[:-1] if count == 1 else unit}"


def add_dependencies(task: Task, prerequisites: list[int], followups: list[int]):
    with transaction():
        link_dependencies(task, prerequisites, followups)


# --- Occurrence items ---


def check_occurrence_number(occurrence_number: int):
    if occurrence_number < 1:
        raise ValidationError("Occurrence numbers start at 1")


def require_occurrence_item(task: Task, occurrence_number: int, link_id: int) -> dict:
    link = db.get_occurrence_item(task.id, link_id)
    if link is None or link["occurrence_number"] != occurrence_number:
        raise NotFoundError("Occurrence item not found")
    return link


def add_occurrence_item(task: Task, member: dict, occurrence_number: int, data) -> dict:
    """Attach a household inventory item to one occurrence; each item at most once."""
    check_occurrence_number(occurrence_number)
    item = inventory.require_item(task.household_id, data.inventory_item_id)
    link_id = db.add_occurrence_item(
        task.id, occurrence_number, {**data.model_dump(), "added_by": member["id"]}
    )
    if link_id is None:
        raise ConflictError(f'"{item["name"]}" is already on occurrence {occurrence_number}')
    logger.info(f"Item {item['id']} added to occurrence {occurrence_number} of task {task.id}")
    return db.get_occurrence_item(task.id, link_id)


def update_occurrence_item(task: Task, link: dict, data) -> dict:
    fields = data.model_dump(exclude_unset=True)
    if "borrow_status" in fields:
        if fields["borrow_status"] is None:
            raise ValidationError("borrow_status cannot be null")
        fields["borrow_status"] = str(fields["borrow_status"])

    request_id = fields.get("borrow_request_id")
    if request_id is not None:
        request = borrow_db.get_request(request_id)
        if (
            request is None
            or request["inventory_item_id"] != link["inventory_item_id"]
            or task.household_id
            not in (request["borrower_household_id"], request["owner_household_id"])
        ):
            raise ValidationError(f"Borrow request {request_id} is not for this item")

    window = {
        key: fields[key] if key in fields else parse_timestamp(link[key])
        for key in ("borrow_start_date", "borrow_end_date")
    }
    start, end = window["borrow_start_date"], window["borrow_end_date"]
    if start and end and end < start:
        raise ValidationError("borrow_end_date must not be before borrow_start_date")
    for key in window:
        if key in fields:
            fields[key] = format_timestamp(fields[key])

    db.update_occurrence_item(link["id"], fields)
    return db.get_occurrence_item(task.id, link["id"])
