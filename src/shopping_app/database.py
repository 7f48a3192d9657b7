import logging
import sqlite3

from src.database import db_connection, dump_json, get_next_color, now_iso, row_to_dict
from src.errors import ConflictError, NotFoundError

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = ["Groceries", "Household", "Personal care", "Other"]

SELECT_ITEM = """
    SELECT i.id, i.household_id, i.name, i.category_id, i.details, i.photo_urls,
           i.notes, i.is_completed, i.task_id, i.added_by, i.completed_by,
           i.completed_at, i.created_at, i.updated_at,
           c.name AS category_name, c.color AS category_color,
           t.name AS task_name
    FROM shopping_items i
        LEFT JOIN shopping_categories c ON c.id = i.category_id
        LEFT JOIN tasks t ON t.id = i.task_id
"""


def _item(row) -> dict | None:
    return row_to_dict(row, json_fields=("photo_urls",), bool_fields=("is_completed",))


# --- Categories ---


@db_connection
def create_default_categories(cursor, household_id: int):
    """Seed a new household with the default categories, each with the next palette color."""
    timestamp = now_iso()
    for name in DEFAULT_CATEGORIES:
        cursor.execute(
            """
            INSERT INTO shopping_categories (household_id, name, color, created_at)
            VALUES (?, ?, ?, ?)
            """,
            (household_id, name, get_next_color(cursor), timestamp),
        )


@db_connection
def list_categories(cursor, household_id: int) -> list[dict]:
    cursor.execute(
        """
        SELECT id, household_id, name, color, created_at
        FROM shopping_categories WHERE household_id = ?
        ORDER BY name
        """,
        (household_id,),
    )
    return [dict(row) for row in cursor.fetchall()]


@db_connection
def get_category(cursor, household_id: int, category_id: int) -> dict | None:
    cursor.execute(
        """
        SELECT id, household_id, name, color, created_at
        FROM shopping_categories WHERE id = ? AND household_id = ?
        """,
        (category_id, household_id),
    )
    row = cursor.fetchone()
    return dict(row) if row else None


@db_connection
def create_category(cursor, household_id: int, name: str, color: str = None) -> dict:
    """Names are unique per household, ignoring case. Without a color the palette's next one is used."""
    color = color or get_next_color(cursor)
    try:
        cursor.execute(
            """
            INSERT INTO shopping_categories (household_id, name, color, created_at)
            VALUES (?, ?, ?, ?)
            """,
            (household_id, name, color, now_iso()),
        )
    except sqlite3.IntegrityError as e:
        raise ConflictError(f'A category named "{name}" already exists') from e
    category_id = cursor.lastrowid
    logger.info(f"Category {category_id} '{name}' added to household {household_id}")
    return get_category(household_id, category_id)


@db_connection
def update_category(cursor, household_id: int, category_id: int, fields: dict) -> dict:
    updates = {key: fields[key] for key in ("name", "color") if fields.get(key)}
    if updates:
        assignments = ", ".join(f"{key} = ?" for key in updates)
        try:
            cursor.execute(
                f"UPDATE shopping_categories SET {assignments} WHERE id = ? AND household_id = ?",
                (*updates.values(), category_id, household_id),
            )
        except sqlite3.IntegrityError as e:
            raise ConflictError(f'A category named "{updates["name"]}" already exists') from e

    category = get_category(household_id, category_id)
    if category is None:
        raise NotFoundError("Category not found")
    return category


@db_connection
def delete_category(cursor, household_id: int, category_id: int):
    """Categories still used by shopping or inventory items can't be deleted."""
    cursor.execute(
        """
        SELECT
            (SELECT COUNT(*) FROM shopping_items WHERE category_id = ?) +
            (SELECT COUNT(*) FROM inventory_items WHERE category_id = ?)
        """,
        (category_id, category_id),
    )
    in_use = cursor.fetchone()[0]
    if in_use:
        raise ConflictError(f"Category is still used by {in_use} item(s)")

    cursor.execute(
        "DELETE FROM shopping_categories WHERE id = ? AND household_id = ?",
        (category_id, household_id),
    )
    if cursor.rowcount == 0:
        raise NotFoundError("Category not found")
    logger.info(f"Deleted category {category_id}")


# --- Items ---


@db_connection
def list_items(cursor, household_id: int) -> list[dict]:
    """Open items first, then by category name, newest first within a category."""
    cursor.execute(
        SELECT_ITEM
        + """
        WHERE i.household_id = ?
        ORDER BY i.is_completed, c.name IS NULL, c.name, i.created_at DESC, i.id DESC
        """,
        (household_id,),
    )
    return [_item(row) for row in cursor.fetchall()]


@db_connection
def get_item(cursor, household_id: int, item_id: int) -> dict | None:
    cursor.execute(
        SELECT_ITEM + " WHERE i.id = ? AND i.household_id = ?", (item_id, household_id)
    )
    return _item(cursor.fetchone())


@db_connection
def get_items(cursor, household_id: int, item_ids: list[int]) -> list[dict]:
    if not item_ids:
        return []
    placeholders = ",".join("?" for _ in item_ids)
    cursor.execute(
        SELECT_ITEM + f" WHERE i.household_id = ? AND i.id IN ({placeholders})",
        (household_id, *item_ids),
    )
    return [_item(row) for row in cursor.fetchall()]


@db_connection
def add_item(cursor, household_id: int, added_by: int, fields: dict) -> dict:
    timestamp = now_iso()
    cursor.execute(
        """
        INSERT INTO shopping_items (
            household_id, name, category_id, details, photo_urls, notes,
            is_completed, task_id, added_by, created_at, updated_at
        )
        VALUES (?, ?, ?, ?, ?, ?, 0, ?, ?, ?, ?)
        """,
        (
            household_id,
            fields["name"],
            fields.get("category_id"),
            fields.get("details"),
            dump_json(fields.get("photo_urls") or []),
            fields.get("notes"),
            fields.get("task_id"),
            added_by,
            timestamp,
            timestamp,
        ),
    )
    item_id = cursor.lastrowid
    logger.info(f"Shopping item {item_id} '{fields['name']}' added to household {household_id}")
    return get_item(household_id, item_id)


@db_connection
def update_item(cursor, household_id: int, item_id: int, fields: dict) -> dict:
    allowed = ("name", "category_id", "details", "photo_urls", "notes", "task_id")
    updates = {key: value for key, value in fields.items() if key in allowed}
    if "photo_urls" in updates:
        updates["photo_urls"] = dump_json(updates["photo_urls"] or [])
    if updates:
        assignments = ", ".join(f"{key} = ?" for key in updates)
        cursor.execute(
            f"UPDATE shopping_items SET {assignments}, updated_at = ? WHERE id = ? AND household_id = ?",
            (*updates.values(), now_iso(), item_id, household_id),
        )

    item = get_item(household_id, item_id)
    if item is None:
        raise NotFoundError("Shopping item not found")
    return item


@db_connection
def set_completed(
    cursor, household_id: int, item_id: int, is_completed: bool, member_id: int
) -> dict:
    cursor.execute(
        """
        UPDATE shopping_items
        SET is_completed = ?, completed_by = ?, completed_at = ?, updated_at = ?
        WHERE id = ? AND household_id = ?
        """,
        (
            int(is_completed),
            member_id if is_completed else None,
            now_iso() if is_completed else None,
            now_iso(),
            item_id,
            household_id,
        ),
    )
    if cursor.rowcount == 0:
        raise NotFoundError("Shopping item not found")
    return get_item(household_id, item_id)


@db_connection
def link_to_task(cursor, household_id: int, item_ids: list[int], task_id: int | None) -> int:
    """Attach items to a task, or detach them when task_id is None."""
    if not item_ids:
        return 0
    placeholders = ",".join("?" for _ in item_ids)
    cursor.execute(
        f"""
        UPDATE shopping_items SET task_id = ?, updated_at = ?
        WHERE household_id = ? AND id IN ({placeholders})
        """,
        (task_id, now_iso(), household_id, *item_ids),
    )
    return cursor.rowcount


@db_connection
def list_task_items(cursor, household_id: int, task_id: int) -> list[dict]:
    cursor.execute(
        SELECT_ITEM + " WHERE i.household_id = ? AND i.task_id = ? ORDER BY i.name",
        (household_id, task_id),
    )
    return [_item(row) for row in cursor.fetchall()]


@db_connection
def delete_items(cursor, household_id: int, item_ids: list[int]) -> int:
    if not item_ids:
        return 0
    placeholders = ",".join("?" for _ in item_ids)
    cursor.execute(
        f"DELETE FROM shopping_items WHERE household_id = ? AND id IN ({placeholders})",
        (household_id, *item_ids),
    )
    logger.info(f"Deleted {cursor.rowcount} shopping item(s) from household {household_id}")
    return cursor.rowcount
