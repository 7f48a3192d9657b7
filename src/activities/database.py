"""
Activity history: an append-only log of what happened in a household.

Every feature module writes here; rows are only removed when a recurring
task completion is undone.
"""

import logging

from src.database import db_connection, dump_json, now_iso, row_to_dict

logger = logging.getLogger(__name__)

ACTIVITY_TYPES = ("shopping", "task", "project", "member", "inventory", "other")
JSON_FIELDS = ("photo_urls", "file_urls", "metadata")
UNKNOWN_MEMBER = "Unknown"

SELECT_ACTIVITY = """
    SELECT a.id, a.household_id, a.member_id, a.activity_type, a.action,
           a.description, a.related_item_id, a.comment, a.photo_urls,
           a.file_urls, a.metadata, a.created_at,
           m.member_name,
           t.id AS task_id, t.name AS task_name
    FROM activity_history a
        LEFT JOIN household_members m ON m.id = a.member_id
        LEFT JOIN tasks t ON a.activity_type = 'task'
            AND t.id = a.related_item_id
            AND t.household_id = a.household_id
"""


def _activity(row) -> dict:
    activity = row_to_dict(row, json_fields=JSON_FIELDS)
    activity["member_name"] = activity["member_name"] or UNKNOWN_MEMBER
    task_id = activity.pop("task_id")
    task_name = activity.pop("task_name")
    activity["task_details"] = (
        {"id": task_id, "name": task_name} if task_id is not None else None
    )
    return activity


@db_connection
def log_activity(
    cursor,
    household_id: int,
    member_id: int | None,
    activity_type: str,
    action: str,
    description: str,
    related_item_id: int = None,
    comment: str = None,
    photo_urls: list = None,
    file_urls: list = None,
    metadata: dict = None,
) -> int:
    if activity_type not in ACTIVITY_TYPES:
        raise ValueError(f"Unknown activity type: {activity_type}")

    cursor.execute(
        """
        INSERT INTO activity_history (
            household_id, member_id, activity_type, action, description,
            related_item_id, comment, photo_urls, file_urls, metadata, created_at
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            household_id,
            member_id,
            activity_type,
            action,
            description,
            related_item_id,
            comment,
            dump_json(photo_urls or []),
            dump_json(file_urls or []),
            dump_json(metadata or {}),
            now_iso(),
        ),
    )
    activity_id = cursor.lastrowid
    logger.info(f"Activity {activity_type}/{action} in household {household_id}")
    return activity_id


@db_connection
def list_activities(
    cursor,
    household_id: int,
    limit: int = 50,
    offset: int = 0,
    activity_type: str = None,
) -> list[dict]:
    """Newest first, each entry carrying the acting member's name."""
    query = SELECT_ACTIVITY + " WHERE a.household_id = ?"
    params: list = [household_id]
    if activity_type:
        query += " AND a.activity_type = ?"
        params.append(activity_type)
    query += " ORDER BY a.created_at DESC, a.id DESC LIMIT ? OFFSET ?"
    params.extend([limit, offset])

    cursor.execute(query, params)
    return [_activity(row) for row in cursor.fetchall()]


@db_connection
def count_activities(cursor, household_id: int, activity_type: str = None) -> int:
    query = "SELECT COUNT(*) FROM activity_history WHERE household_id = ?"
    params: list = [household_id]
    if activity_type:
        query += " AND activity_type = ?"
        params.append(activity_type)
    cursor.execute(query, params)
    return cursor.fetchone()[0]


@db_connection
def list_task_activities(cursor, household_id: int, task_id: int) -> list[dict]:
    cursor.execute(
        SELECT_ACTIVITY
        + """
        WHERE a.household_id = ? AND a.activity_type = 'task' AND a.related_item_id = ?
        ORDER BY a.created_at DESC, a.id DESC
        """,
        (household_id, task_id),
    )
    return [_activity(row) for row in cursor.fetchall()]


@db_connection
def get_latest_activity(
    cursor, household_id: int, activity_type: str, action: str, related_item_id: int
) -> dict | None:
    cursor.execute(
        SELECT_ACTIVITY
        + """
        WHERE a.household_id = ? AND a.activity_type = ? AND a.action = ?
            AND a.related_item_id = ?
        ORDER BY a.created_at DESC, a.id DESC
        LIMIT 1
        """,
        (household_id, activity_type, action, related_item_id),
    )
    row = cursor.fetchone()
    return _activity(row) if row else None


@db_connection
def delete_activity(cursor, activity_id: int):
    cursor.execute("DELETE FROM activity_history WHERE id = ?", (activity_id,))
