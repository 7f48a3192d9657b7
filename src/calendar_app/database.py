import logging

from src.database import db_connection, now_iso, row_to_dict

logger = logging.getLogger(__name__)

EVENT_TYPES = ("task", "borrow_start", "borrow_return", "reminder", "other")

EVENT_COLUMNS = """
    id, household_id, title, description, start_date, end_date, all_day,
    event_type, icon, related_task_id, related_borrow_id, is_completed,
    completed_at, created_by, created_at
"""


def _event(row) -> dict | None:
    return row_to_dict(row, bool_fields=("all_day", "is_completed"))


@db_connection
def insert_event(cursor, household_id: int, fields: dict, created_by: int = None) -> int:
    cursor.execute(
        """
        INSERT INTO calendar_events (
            household_id, title, description, start_date, end_date, all_day,
            event_type, icon, related_task_id, related_borrow_id, is_completed,
            created_by, created_at
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?)
        """,
        (
            household_id,
            fields["title"],
            fields.get("description"),
            fields["start_date"],
            fields.get("end_date"),
            int(bool(fields.get("all_day"))),
            fields.get("event_type") or "other",
            fields.get("icon"),
            fields.get("related_task_id"),
            fields.get("related_borrow_id"),
            created_by,
            now_iso(),
        ),
    )
    event_id = cursor.lastrowid
    logger.info(f"Calendar event {event_id} '{fields['title']}' added to household {household_id}")
    return event_id


@db_connection
def get_event(cursor, household_id: int, event_id: int) -> dict | None:
    cursor.execute(
        f"SELECT {EVENT_COLUMNS} FROM calendar_events WHERE id = ? AND household_id = ?",
        (event_id, household_id),
    )
    return _event(cursor.fetchone())


@db_connection
def list_events(cursor, household_id: int, event_type: str = None) -> list[dict]:
    query = f"SELECT {EVENT_COLUMNS} FROM calendar_events WHERE household_id = ?"
    params = [household_id]
    if event_type:
        query += " AND event_type = ?"
        params.append(event_type)
    query += " ORDER BY start_date, id"
    cursor.execute(query, params)
    return [_event(row) for row in cursor.fetchall()]


@db_connection
def list_events_between(cursor, household_id: int, start: str, end: str) -> list[dict]:
    """Events overlapping [start, end]; an event without an end lasts until its start."""
    cursor.execute(
        f"""
        SELECT {EVENT_COLUMNS} FROM calendar_events
        WHERE household_id = ?
            AND start_date <= ?
            AND COALESCE(end_date, start_date) >= ?
        ORDER BY start_date, id
        """,
        (household_id, end, start),
    )
    return [_event(row) for row in cursor.fetchall()]


@db_connection
def update_event(cursor, household_id: int, event_id: int, fields: dict):
    allowed = ("title", "description", "start_date", "end_date", "all_day", "event_type", "icon")
    updates = {key: value for key, value in fields.items() if key in allowed}
    if "all_day" in updates:
        updates["all_day"] = int(bool(updates["all_day"]))
    if not updates:
        return
    assignments = ", ".join(f"{key} = ?" for key in updates)
    cursor.execute(
        f"UPDATE calendar_events SET {assignments} WHERE id = ? AND household_id = ?",
        (*updates.values(), event_id, household_id),
    )


@db_connection
def set_completed(cursor, event_id: int, is_completed: bool = True):
    cursor.execute(
        "UPDATE calendar_events SET is_completed = ?, completed_at = ? WHERE id = ?",
        (int(is_completed), now_iso() if is_completed else None, event_id),
    )


@db_connection
def delete_event(cursor, household_id: int, event_id: int) -> bool:
    cursor.execute(
        "DELETE FROM calendar_events WHERE id = ? AND household_id = ?",
        (event_id, household_id),
    )
    return cursor.rowcount > 0


# --- Borrow events ---


@db_connection
def list_borrow_events(cursor, borrow_id: int) -> list[dict]:
    cursor.execute(
        f"SELECT {EVENT_COLUMNS} FROM calendar_events WHERE related_borrow_id = ? ORDER BY start_date",
        (borrow_id,),
    )
    return [_event(row) for row in cursor.fetchall()]


@db_connection
def delete_borrow_events(cursor, borrow_id: int) -> int:
    cursor.execute("DELETE FROM calendar_events WHERE related_borrow_id = ?", (borrow_id,))
    return cursor.rowcount


@db_connection
def complete_borrow_return_event(cursor, borrow_id: int):
    cursor.execute(
        """
        UPDATE calendar_events SET is_completed = 1, completed_at = ?
        WHERE related_borrow_id = ? AND event_type = 'borrow_return'
        """,
        (now_iso(), borrow_id),
    )
