import logging
import sqlite3

from src.database import db_connection, dump_json, format_timestamp, now_iso, row_to_dict

from .models import Task

logger = logging.getLogger(__name__)

TASK_COLUMNS = (
    "id",
    "household_id",
    "name",
    "description",
    "assigned_to",
    "frequency",
    "custom_frequency_days",
    "repeat_interval",
    "repeat_unit",
    "monthly_recurrence_mode",
    "enable_rotation",
    "required_persons",
    "due_date",
    "duration_days",
    "duration_minutes",
    "is_completed",
    "completed_by",
    "completed_at",
    "completion_photo_urls",
    "skipped_dates",
    "created_by",
    "created_at",
    "updated_at",
)

# Columns written back by save_task; id, household_id and created_* never change
MUTABLE_COLUMNS = TASK_COLUMNS[2:-3] + ("updated_at",)


def _task_values(task: Task, columns) -> list:
    values = []
    for column in columns:
        value = getattr(task, column)
        if column in ("assigned_to", "completion_photo_urls", "skipped_dates"):
            value = dump_json(value)
        elif column == "due_date":
            value = format_timestamp(value)
        elif column in ("enable_rotation", "is_completed"):
            value = int(bool(value))
        values.append(value)
    return values


@db_connection
def insert_task(cursor, task: Task) -> Task:
    timestamp = now_iso()
    task.created_at = timestamp
    task.updated_at = timestamp
    columns = TASK_COLUMNS[1:]
    cursor.execute(
        f"""
        INSERT INTO tasks ({", ".join(columns)})
        VALUES ({", ".join("?" for _ in columns)})
        """,
        _task_values(task, columns),
    )
    task.id = cursor.lastrowid
    logger.info(f"Task {task.id} '{task.name}' added to household {task.household_id}")
    return task


@db_connection
def save_task(cursor, task: Task) -> Task:
    task.updated_at = now_iso()
    assignments = ", ".join(f"{column} = ?" for column in MUTABLE_COLUMNS)
    cursor.execute(
        f"UPDATE tasks SET {assignments} WHERE id = ?",
        (*_task_values(task, MUTABLE_COLUMNS), task.id),
    )
    return task


@db_connection
def get_task(cursor, household_id: int, task_id: int) -> Task | None:
    cursor.execute(
        f"SELECT {', '.join(TASK_COLUMNS)} FROM tasks WHERE id = ? AND household_id = ?",
        (task_id, household_id),
    )
    row = cursor.fetchone()
    return Task.from_row(row) if row else None


@db_connection
def list_tasks(cursor, household_id: int, include_completed: bool = True) -> list[Task]:
    """Open tasks first, then by due date with undated tasks last."""
    query = f"SELECT {', '.join(TASK_COLUMNS)} FROM tasks WHERE household_id = ?"
    if not include_completed:
        query += " AND is_completed = 0"
    query += " ORDER BY is_completed, due_date IS NULL, due_date, id"
    cursor.execute(query, (household_id,))
    return [Task.from_row(row) for row in cursor.fetchall()]


@db_connection
def delete_task(cursor, task_id: int):
    cursor.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
    logger.info(f"Deleted task {task_id}")


# --- Rotation exclusions ---


@db_connection
def get_exclusions(cursor, task_id: int) -> list[int]:
    cursor.execute(
        "SELECT member_id FROM task_rotation_exclusions WHERE task_id = ? ORDER BY member_id",
        (task_id,),
    )
    return [row["member_id"] for row in cursor.fetchall()]


@db_connection
def set_exclusions(cursor, task_id: int, member_ids: list[int]):
    cursor.execute("DELETE FROM task_rotation_exclusions WHERE task_id = ?", (task_id,))
    cursor.executemany(
        "INSERT INTO task_rotation_exclusions (task_id, member_id) VALUES (?, ?)",
        [(task_id, member_id) for member_id in dict.fromkeys(member_ids)],
    )


# --- Rotation plan ---


@db_connection
def get_rotation_schedule(cursor, task_id: int) -> list[dict]:
    """Planned occurrences in order, each with its members by position and notes."""
    cursor.execute(
        """
        SELECT s.occurrence_number, s.position, s.member_id, m.member_name
        FROM task_rotation_schedule s
            LEFT JOIN household_members m ON m.id = s.member_id
        WHERE s.task_id = ?
        ORDER BY s.occurrence_number, s.position
        """,
        (task_id,),
    )
    slot_rows = cursor.fetchall()

    cursor.execute(
        """
        SELECT occurrence_number, notes, is_skipped
        FROM task_rotation_occurrence_notes WHERE task_id = ?
        """,
        (task_id,),
    )
    notes = {row["occurrence_number"]: row for row in cursor.fetchall()}

    occurrences: dict[int, dict] = {}
    for row in slot_rows:
        occurrence = occurrences.setdefault(
            row["occurrence_number"],
            {"occurrence_number": row["occurrence_number"], "members": []},
        )
        occurrence["members"].append(
            {
                "position": row["position"],
                "member_id": row["member_id"],
                "member_name": row["member_name"],
            }
        )

    # Occurrences may carry notes without any planned member yet
    for number in notes:
        occurrences.setdefault(number, {"occurrence_number": number, "members": []})

    schedule = []
    for number in sorted(occurrences):
        occurrence = occurrences[number]
        note = notes.get(number)
        occurrence["notes"] = note["notes"] if note else None
        occurrence["is_skipped"] = bool(note["is_skipped"]) if note else False
        schedule.append(occurrence)
    return schedule


@db_connection
def set_rotation_schedule(cursor, task_id: int, schedule: list[dict]):
    """Replace the whole plan of a task."""
    cursor.execute("DELETE FROM task_rotation_schedule WHERE task_id = ?", (task_id,))
    cursor.execute(
        "DELETE FROM task_rotation_occurrence_notes WHERE task_id = ?", (task_id,)
    )

    for occurrence in schedule:
        number = occurrence["occurrence_number"]
        for slot in occurrence["members"]:
            if not slot.get("member_id"):
                continue
            cursor.execute(
                """
                INSERT INTO task_rotation_schedule (task_id, occurrence_number, position, member_id)
                VALUES (?, ?, ?, ?)
                """,
                (task_id, number, slot["position"], slot["member_id"]),
            )
        # One row per occurrence, so occurrences without members are kept
        cursor.execute(
            """
            INSERT INTO task_rotation_occurrence_notes (task_id, occurrence_number, notes, is_skipped)
            VALUES (?, ?, ?, ?)
            """,
            (
                task_id,
                number,
                occurrence.get("notes"),
                int(bool(occurrence.get("is_skipped"))),
            ),
        )


# --- Dependencies ---
# A row (task_id, depends_on_task_id) means depends_on_task_id has to be done
# before task_id: it is a prerequisite of task_id and task_id is its follow-up.


@db_connection
def get_prerequisites(cursor, task_id: int) -> list[dict]:
    cursor.execute(
        """
        SELECT t.id, t.name, t.is_completed, t.due_date
        FROM task_dependencies d JOIN tasks t ON t.id = d.depends_on_task_id
        WHERE d.task_id = ?
        ORDER BY t.name
        """,
        (task_id,),
    )
    return [
        {**dict(row), "is_completed": bool(row["is_completed"])}
        for row in cursor.fetchall()
    ]


@db_connection
def get_followups(cursor, task_id: int) -> list[dict]:
    cursor.execute(
        """
        SELECT t.id, t.name, t.is_completed, t.due_date
        FROM task_dependencies d JOIN tasks t ON t.id = d.task_id
        WHERE d.depends_on_task_id = ?
        ORDER BY t.name
        """,
        (task_id,),
    )
    return [
        {**dict(row), "is_completed": bool(row["is_completed"])}
        for row in cursor.fetchall()
    ]


@db_connection
def list_dependency_edges(cursor, household_id: int) -> list[tuple[int, int]]:
    """Every (task_id, depends_on_task_id) pair in the household."""
    cursor.execute(
        """
        SELECT d.task_id, d.depends_on_task_id
        FROM task_dependencies d JOIN tasks t ON t.id = d.task_id
        WHERE t.household_id = ?
        ORDER BY d.task_id, d.depends_on_task_id
        """,
        (household_id,),
    )
    return [(row["task_id"], row["depends_on_task_id"]) for row in cursor.fetchall()]


@db_connection
def add_dependency(cursor, task_id: int, depends_on_task_id: int) -> bool:
    """Returns False when the link already existed."""
    try:
        cursor.execute(
            """
            INSERT INTO task_dependencies (task_id, depends_on_task_id, created_at)
            VALUES (?, ?, ?)
            """,
            (task_id, depends_on_task_id, now_iso()),
        )
    except sqlite3.IntegrityError:
        return False
    return True


@db_connection
def clear_dependencies(cursor, task_id: int):
    """Remove every link the task takes part in, either direction."""
    cursor.execute(
        "DELETE FROM task_dependencies WHERE task_id = ? OR depends_on_task_id = ?",
        (task_id, task_id),
    )


# --- Occurrence items ---
# Inventory items a task needs on one particular occurrence, with the borrow
# window and status of each.

OCCURRENCE_ITEM_QUERY = """
    SELECT o.*, i.name AS item_name, i.details AS item_details,
        i.photo_urls AS item_photo_urls, i.category_id AS item_category_id
    FROM task_occurrence_items o
        LEFT JOIN inventory_items i ON i.id = o.inventory_item_id
"""


def _occurrence_item(row) -> dict | None:
    return row_to_dict(row, json_fields=("item_photo_urls",))


@db_connection
def list_occurrence_items(cursor, task_id: int, occurrence_number: int = None) -> list[dict]:
    """Items of every occurrence of a task, or of one, ordered by occurrence."""
    if occurrence_number is None:
        cursor.execute(
            OCCURRENCE_ITEM_QUERY + " WHERE o.task_id = ? ORDER BY o.occurrence_number, o.id",
            (task_id,),
        )
    else:
        cursor.execute(
            OCCURRENCE_ITEM_QUERY
            + " WHERE o.task_id = ? AND o.occurrence_number = ? ORDER BY o.id",
            (task_id, occurrence_number),
        )
    return [_occurrence_item(row) for row in cursor.fetchall()]


@db_connection
def get_occurrence_item(cursor, task_id: int, link_id: int) -> dict | None:
    cursor.execute(OCCURRENCE_ITEM_QUERY + " WHERE o.id = ? AND o.task_id = ?", (link_id, task_id))
    return _occurrence_item(cursor.fetchone())


@db_connection
def add_occurrence_item(cursor, task_id: int, occurrence_number: int, fields: dict) -> int | None:
    """Returns the new row id, or None when the item is already on that occurrence."""
    now = now_iso()
    try:
        cursor.execute(
            """
            INSERT INTO task_occurrence_items (
                task_id, occurrence_number, inventory_item_id, borrow_start_date,
                borrow_end_date, borrow_status, notes, added_by, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, 'pending', ?, ?, ?, ?)
            """,
            (
                task_id,
                occurrence_number,
                fields["inventory_item_id"],
                format_timestamp(fields.get("borrow_start_date")),
                format_timestamp(fields.get("borrow_end_date")),
                fields.get("notes"),
                fields.get("added_by"),
                now,
                now,
            ),
        )
    except sqlite3.IntegrityError:
        return None
    return cursor.lastrowid


@db_connection
def update_occurrence_item(cursor, link_id: int, fields: dict):
    allowed = ("borrow_start_date", "borrow_end_date", "borrow_status", "borrow_request_id", "notes")
    updates = {key: value for key, value in fields.items() if key in allowed}
    if not updates:
        return
    assignments = ", ".join(f"{key} = ?" for key in updates)
    cursor.execute(
        f"UPDATE task_occurrence_items SET {assignments}, updated_at = ? WHERE id = ?",
        (*updates.values(), now_iso(), link_id),
    )


@db_connection
def delete_occurrence_item(cursor, link_id: int):
    cursor.execute("DELETE FROM task_occurrence_items WHERE id = ?", (link_id,))
