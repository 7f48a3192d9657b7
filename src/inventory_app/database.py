import logging

from src.database import db_connection, dump_json, now_iso, row_to_dict

logger = logging.getLogger(__name__)

SELECT_ITEM = """
    SELECT i.id, i.household_id, i.name, i.details, i.category_id, i.photo_urls,
           i.ownership_type, i.created_by, i.created_at, i.updated_at,
           c.name AS category_name, c.color AS category_color
    FROM inventory_items i
        LEFT JOIN shopping_categories c ON c.id = i.category_id
"""


def _load_owners(cursor, items: list[dict]) -> list[dict]:
    """Attach owner_ids and owner_names to each item."""
    if not items:
        return items
    by_id = {item["id"]: item for item in items}
    for item in items:
        item["owner_ids"] = []
        item["owner_names"] = []

    placeholders = ",".join("?" for _ in by_id)
    cursor.execute(
        f"""
        SELECT o.item_id, o.member_id, m.member_name
        FROM inventory_ownership o JOIN household_members m ON m.id = o.member_id
        WHERE o.item_id IN ({placeholders})
        ORDER BY m.member_name
        """,
        list(by_id),
    )
    for row in cursor.fetchall():
        by_id[row["item_id"]]["owner_ids"].append(row["member_id"])
        by_id[row["item_id"]]["owner_names"].append(row["member_name"])
    return items


def _items(cursor) -> list[dict]:
    items = [row_to_dict(row, json_fields=("photo_urls",)) for row in cursor.fetchall()]
    return _load_owners(cursor, items)


@db_connection
def insert_item(cursor, household_id: int, created_by: int, fields: dict) -> int:
    timestamp = now_iso()
    cursor.execute(
        """
        INSERT INTO inventory_items (
            household_id, name, details, category_id, photo_urls, ownership_type,
            created_by, created_at, updated_at
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            household_id,
            fields["name"],
            fields.get("details"),
            fields.get("category_id"),
            dump_json(fields.get("photo_urls") or []),
            fields.get("ownership_type") or "household",
            created_by,
            timestamp,
            timestamp,
        ),
    )
    item_id = cursor.lastrowid
    logger.info(f"Inventory item {item_id} '{fields['name']}' added to household {household_id}")
    return item_id


@db_connection
def set_owners(cursor, item_id: int, member_ids: list[int]):
    cursor.execute("DELETE FROM inventory_ownership WHERE item_id = ?", (item_id,))
    cursor.executemany(
        "INSERT INTO inventory_ownership (item_id, member_id) VALUES (?, ?)",
        [(item_id, member_id) for member_id in dict.fromkeys(member_ids)],
    )


@db_connection
def get_item(cursor, item_id: int) -> dict | None:
    """Item by id; callers check that it belongs to their household."""
    cursor.execute(SELECT_ITEM + " WHERE i.id = ?", (item_id,))
    items = _items(cursor)
    return items[0] if items else None


@db_connection
def list_items(cursor, household_id: int) -> list[dict]:
    cursor.execute(
        SELECT_ITEM + " WHERE i.household_id = ? ORDER BY i.name COLLATE NOCASE, i.id",
        (household_id,),
    )
    return _items(cursor)


@db_connection
def update_item(cursor, item_id: int, fields: dict):
    allowed = ("name", "details", "category_id", "photo_urls", "ownership_type")
    updates = {key: value for key, value in fields.items() if key in allowed}
    if "photo_urls" in updates:
        updates["photo_urls"] = dump_json(updates["photo_urls"] or [])
    if not updates:
        return
    assignments = ", ".join(f"{key} = ?" for key in updates)
    cursor.execute(
        f"UPDATE inventory_items SET {assignments}, updated_at = ? WHERE id = ?",
        (*updates.values(), now_iso(), item_id),
    )


@db_connection
def delete_item(cursor, item_id: int):
    cursor.execute("DELETE FROM inventory_items WHERE id = ?", (item_id,))
    logger.info(f"Deleted inventory item {item_id}")
