import logging

from src.database import db_connection, now_iso, row_to_dict
from src.errors import NotFoundError

logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = (
    "task_assigned",
    "task_due",
    "task_completed",
    "comment_added",
    "reminder",
    "borrow",
    "general",
)

# Preference column that switches each notification type on or off
PREFERENCE_FOR_TYPE = {
    "task_assigned": "enable_task_assigned",
    "task_due": "enable_task_due",
    "task_completed": "enable_task_completed",
    "comment_added": "enable_comments",
    "reminder": "enable_reminders",
    "borrow": "enable_borrow",
}

PREFERENCE_FLAGS = tuple(PREFERENCE_FOR_TYPE.values())


def default_preferences(member_id: int, household_id: int) -> dict:
    preferences = {flag: True for flag in PREFERENCE_FLAGS}
    preferences.update(
        {
            "member_id": member_id,
            "household_id": household_id,
            "dnd_start": None,
            "dnd_end": None,
        }
    )
    return preferences


@db_connection
def get_preferences(cursor, member_id: int, household_id: int) -> dict:
    """Stored preferences of a member, everything enabled when none were saved."""
    cursor.execute(
        f"""
        SELECT member_id, household_id, {", ".join(PREFERENCE_FLAGS)}, dnd_start, dnd_end
        FROM notification_preferences WHERE member_id = ?
        """,
        (member_id,),
    )
    row = cursor.fetchone()
    if row is None:
        return default_preferences(member_id, household_id)
    return row_to_dict(row, bool_fields=PREFERENCE_FLAGS)


@db_connection
def save_preferences(cursor, member_id: int, household_id: int, fields: dict) -> dict:
    preferences = get_preferences(member_id, household_id)
    preferences.update(fields)

    values = [int(preferences[flag]) for flag in PREFERENCE_FLAGS]
    cursor.execute(
        f"""
        INSERT INTO notification_preferences (
            member_id, household_id, {", ".join(PREFERENCE_FLAGS)},
            dnd_start, dnd_end, updated_at
        )
        VALUES (?, ?, {", ".join("?" for _ in PREFERENCE_FLAGS)}, ?, ?, ?)
        ON CONFLICT (member_id) DO UPDATE SET
            {", ".join(f"{flag} = excluded.{flag}" for flag in PREFERENCE_FLAGS)},
            dnd_start = excluded.dnd_start,
            dnd_end = excluded.dnd_end,
            updated_at = excluded.updated_at
        """,
        (
            member_id,
            household_id,
            *values,
            preferences["dnd_start"],
            preferences["dnd_end"],
            now_iso(),
        ),
    )
    return get_preferences(member_id, household_id)


@db_connection
def create_notification(
    cursor,
    household_id: int,
    member_id: int,
    notification_type: str,
    title: str,
    message: str,
    related_task_id: int = None,
    related_borrow_id: int = None,
) -> int:
    if notification_type not in NOTIFICATION_TYPES:
        raise ValueError(f"Unknown notification type: {notification_type}")

    cursor.execute(
        """
        INSERT INTO notifications (
            household_id, member_id, type, title, message,
            related_task_id, related_borrow_id, is_read, created_at
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?)
        """,
        (
            household_id,
            member_id,
            notification_type,
            title,
            message,
            related_task_id,
            related_borrow_id,
            now_iso(),
        ),
    )
    return cursor.lastrowid


@db_connection
def list_notifications(
    cursor, member_id: int, unread_only: bool = False, limit: int = 50
) -> list[dict]:
    query = """
        SELECT id, household_id, member_id, type, title, message, related_task_id,
               related_borrow_id, is_read, read_at, created_at
        FROM notifications WHERE member_id = ?
    """
    if unread_only:
        query += " AND is_read = 0"
    query += " ORDER BY created_at DESC, id DESC LIMIT ?"
    cursor.execute(query, (member_id, limit))
    return [row_to_dict(row, bool_fields=("is_read",)) for row in cursor.fetchall()]


@db_connection
def unread_count(cursor, member_id: int) -> int:
    cursor.execute(
        "SELECT COUNT(*) FROM notifications WHERE member_id = ? AND is_read = 0",
        (member_id,),
    )
    return cursor.fetchone()[0]


@db_connection
def mark_as_read(cursor, member_id: int, notification_id: int):
    cursor.execute(
        """
        UPDATE notifications SET is_read = 1, read_at = COALESCE(read_at, ?)
        WHERE id = ? AND member_id = ?
        """,
        (now_iso(), notification_id, member_id),
    )
    if cursor.rowcount == 0:
        raise NotFoundError("Notification not found")


@db_connection
def mark_all_as_read(cursor, member_id: int) -> int:
    cursor.execute(
        "UPDATE notifications SET is_read = 1, read_at = ? WHERE member_id = ? AND is_read = 0",
        (now_iso(), member_id),
    )
    return cursor.rowcount


@db_connection
def delete_notification(cursor, member_id: int, notification_id: int):
    cursor.execute(
        "DELETE FROM notifications WHERE id = ? AND member_id = ?",
        (notification_id, member_id),
    )
    if cursor.rowcount == 0:
        raise NotFoundError("Notification not found")


@db_connection
def has_notification_since(
    cursor, member_id: int, notification_type: str, related_task_id: int, since: str
) -> bool:
    cursor.execute(
        """
        SELECT 1 FROM notifications
        WHERE member_id = ? AND type = ? AND related_task_id = ? AND created_at >= ?
        LIMIT 1
        """,
        (member_id, notification_type, related_task_id, since),
    )
    return cursor.fetchone() is not None
