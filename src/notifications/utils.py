import datetime
import logging

from src.config import get_config
from src.database import format_timestamp, utcnow

from . import database as db

logger = logging.getLogger(__name__)


def notify(
    household_id: int,
    member_id: int,
    notification_type: str,
    title: str,
    message: str,
    related_task_id: int = None,
    related_borrow_id: int = None,
) -> int | None:
    """
    Store a notification unless the member switched this type off.

    Returns:
        int | None: the notification id, None when it was suppressed
    """
    preferences = db.get_preferences(member_id, household_id)
    flag = db.PREFERENCE_FOR_TYPE.get(notification_type)
    if flag and not preferences[flag]:
        logger.debug(f"{notification_type} disabled for member {member_id}")
        return None

    return db.create_notification(
        household_id,
        member_id,
        notification_type,
        title,
        message,
        related_task_id=related_task_id,
        related_borrow_id=related_borrow_id,
    )


def notify_task_assigned(task, member_ids, assigned_by: int = None) -> list[int]:
    """Tell newly assigned members about a task; the assigner is skipped."""
    sent = []
    for member_id in member_ids:
        if member_id == assigned_by:
            continue
        notification_id = notify(
            task.household_id,
            member_id,
            "task_assigned",
            "New task assigned",
            f'You have been assigned the task "{task.name}"',
            related_task_id=task.id,
        )
        if notification_id:
            sent.append(notification_id)
    return sent


def due_message(task_name: str, days_until: int, recurring: bool) -> str:
    if recurring:
        if days_until == 0:
            return f'The next occurrence of "{task_name}" is today!'
        return f'The next occurrence of "{task_name}" is in {days_until} day(s)'
    if days_until == 0:
        return f'The task "{task_name}" is due today!'
    return f'The task "{task_name}" is due in {days_until} day(s)'


def notify_task_due(task, member_id: int, days_until: int, recurring: bool) -> int | None:
    return notify(
        task.household_id,
        member_id,
        "task_due",
        "Task due" if days_until == 0 else "Task due soon",
        due_message(task.name, days_until, recurring),
        related_task_id=task.id,
    )


def notify_task_completed(task, completed_by_name: str, recipient_id: int) -> int | None:
    return notify(
        task.household_id,
        recipient_id,
        "task_completed",
        "Task completed",
        f'{completed_by_name} completed the task "{task.name}"',
        related_task_id=task.id,
    )


def notify_comment_added(task, author_id: int, author_name: str, recipient_ids) -> list[int]:
    sent = []
    for member_id in recipient_ids:
        if member_id == author_id:
            continue
        notification_id = notify(
            task.household_id,
            member_id,
            "comment_added",
            "New comment",
            f'{author_name} commented on "{task.name}"',
            related_task_id=task.id,
        )
        if notification_id:
            sent.append(notification_id)
    return sent


def notify_reminder(
    task, sender_id: int, sender_name: str, recipient_ids, comment: str = None
) -> list[int]:
    message = f'{sender_name} reminds you about "{task.name}"'
    if comment:
        message += f": {comment}"

    sent = []
    for member_id in recipient_ids:
        if member_id == sender_id:
            continue
        notification_id = notify(
            task.household_id,
            member_id,
            "reminder",
            "Reminder",
            message,
            related_task_id=task.id,
        )
        if notification_id:
            sent.append(notification_id)
    return sent


def notify_borrow_event(
    household_id: int, member_id: int, title: str, message: str, borrow_id: int
) -> int | None:
    return notify(
        household_id, member_id, "borrow", title, message, related_borrow_id=borrow_id
    )


def _parse_clock(value: str) -> datetime.time:
    hours, minutes = value.split(":")
    return datetime.time(int(hours), int(minutes))


def in_dnd_window(preferences: dict, at: datetime.time) -> bool:
    """
    Whether `at` falls inside the member's do-not-disturb window.

    Windows may wrap past midnight (22:00 to 07:00). The start is inclusive,
    the end exclusive.
    """
    if not preferences.get("dnd_start") or not preferences.get("dnd_end"):
        return False
    start = _parse_clock(preferences["dnd_start"])
    end = _parse_clock(preferences["dnd_end"])
    if start == end:
        return False
    if start < end:
        return start <= at < end
    return at >= start or at < end


def send_due_notifications(household_id: int, today: datetime.date = None) -> int:
    """
    Notify assignees of open tasks due within the configured window.

    Each assignee gets at most one due notification per task and day.

    Returns:
        int: number of notifications stored
    """
    from src.tasks_app import database as tasks_db
    from src.tasks_app.recurrence import is_recurring

    today = today or utcnow().date()
    window = get_config().get("notifications.due_soon_days", 1)
    start_of_day = format_timestamp(datetime.datetime.combine(today, datetime.time()))

    sent = 0
    for task in tasks_db.list_tasks(household_id, include_completed=False):
        if task.due_date is None:
            continue
        days_until = (task.due_date.date() - today).days
        if not 0 <= days_until <= window:
            continue
        for member_id in task.assigned_to:
            if db.has_notification_since(member_id, "task_due", task.id, start_of_day):
                continue
            if notify_task_due(task, member_id, days_until, is_recurring(task)):
                sent += 1

    if sent:
        logger.info(f"Sent {sent} due notifications in household {household_id}")
    return sent
