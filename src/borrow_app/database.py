import logging

from src.database import db_connection, dump_json, now_iso, row_to_dict

logger = logging.getLogger(__name__)

SELECT_REQUEST = """
    SELECT r.id, r.inventory_item_id, r.borrower_household_id, r.borrower_member_id,
           r.owner_household_id, r.status, r.start_date, r.end_date,
           r.request_message, r.response_message, r.approved_by, r.approved_at,
           r.borrowed_at, r.returned_at, r.condition_report, r.created_at,
           r.updated_at,
           i.name AS item_name, i.ownership_type,
           m.member_name AS borrower_name
    FROM borrow_requests r
        LEFT JOIN inventory_items i ON i.id = r.inventory_item_id
        LEFT JOIN household_members m ON m.id = r.borrower_member_id
"""

# Columns a status change may write
STATUS_FIELDS = (
    "response_message",
    "approved_by",
    "approved_at",
    "borrowed_at",
    "returned_at",
    "condition_report",
)


def _request(row) -> dict | None:
    request = row_to_dict(row)
    if request is not None:
        request["borrower_name"] = request["borrower_name"] or "Unknown"
    return request


@db_connection
def insert_request(cursor, fields: dict) -> int:
    timestamp = now_iso()
    cursor.execute(
        """
        INSERT INTO borrow_requests (
            inventory_item_id, borrower_household_id, borrower_member_id,
            owner_household_id, status, start_date, end_date, request_message,
            approved_by, approved_at, created_at, updated_at
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            fields["inventory_item_id"],
            fields["borrower_household_id"],
            fields["borrower_member_id"],
            fields["owner_household_id"],
            fields["status"],
            fields["start_date"],
            fields["end_date"],
            fields.get("request_message"),
            fields.get("approved_by"),
            fields.get("approved_at"),
            timestamp,
            timestamp,
        ),
    )
    request_id = cursor.lastrowid
    logger.info(
        f"Borrow request {request_id} for item {fields['inventory_item_id']} created ({fields['status']})"
    )
    return request_id


@db_connection
def get_request(cursor, request_id: int) -> dict | None:
    cursor.execute(SELECT_REQUEST + " WHERE r.id = ?", (request_id,))
    return _request(cursor.fetchone())


@db_connection
def update_status(cursor, request_id: int, status: str, fields: dict = None):
    updates = {key: value for key, value in (fields or {}).items() if key in STATUS_FIELDS}
    assignments = "".join(f", {key} = ?" for key in updates)
    cursor.execute(
        f"UPDATE borrow_requests SET status = ?{assignments}, updated_at = ? WHERE id = ?",
        (status, *updates.values(), now_iso(), request_id),
    )
    logger.info(f"Borrow request {request_id} is now {status}")


@db_connection
def list_item_borrows(cursor, item_id: int) -> list[dict]:
    cursor.execute(
        SELECT_REQUEST + " WHERE r.inventory_item_id = ? ORDER BY r.start_date, r.id",
        (item_id,),
    )
    return [_request(row) for row in cursor.fetchall()]


@db_connection
def list_by_borrower(cursor, member_id: int) -> list[dict]:
    cursor.execute(
        SELECT_REQUEST + " WHERE r.borrower_member_id = ? ORDER BY r.created_at DESC, r.id DESC",
        (member_id,),
    )
    return [_request(row) for row in cursor.fetchall()]


@db_connection
def list_by_owner(cursor, household_id: int, status: str = None) -> list[dict]:
    query = SELECT_REQUEST + " WHERE r.owner_household_id = ?"
    params = [household_id]
    if status:
        query += " AND r.status = ?"
        params.append(status)
    query += " ORDER BY r.created_at DESC, r.id DESC"
    cursor.execute(query, params)
    return [_request(row) for row in cursor.fetchall()]


# --- Guidelines ---


def _guideline(row) -> dict | None:
    return row_to_dict(row, json_fields=("checklist_items", "photo_requirements"))


@db_connection
def get_guideline(cursor, item_id: int) -> dict | None:
    cursor.execute(
        """
        SELECT id, inventory_item_id, instructions_text, checklist_items,
               photo_requirements, created_by, created_at, updated_at
        FROM borrow_guidelines WHERE inventory_item_id = ?
        """,
        (item_id,),
    )
    return _guideline(cursor.fetchone())


@db_connection
def save_guideline(
    cursor,
    item_id: int,
    instructions_text: str | None,
    checklist_items: list[dict],
    photo_requirements: list[dict],
    member_id: int,
) -> dict:
    """One guideline per item: inserts or replaces it."""
    timestamp = now_iso()
    cursor.execute(
        """
        INSERT INTO borrow_guidelines (
            inventory_item_id, instructions_text, checklist_items,
            photo_requirements, created_by, created_at, updated_at
        )
        VALUES (?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT (inventory_item_id) DO UPDATE SET
            instructions_text = excluded.instructions_text,
            checklist_items = excluded.checklist_items,
            photo_requirements = excluded.photo_requirements,
            updated_at = excluded.updated_at
        """,
        (
            item_id,
            instructions_text,
            dump_json(checklist_items),
            dump_json(photo_requirements),
            member_id,
            timestamp,
            timestamp,
        ),
    )
    return get_guideline(item_id)


@db_connection
def delete_guideline(cursor, item_id: int) -> bool:
    cursor.execute("DELETE FROM borrow_guidelines WHERE inventory_item_id = ?", (item_id,))
    return cursor.rowcount > 0


# --- Return photos ---


@db_connection
def add_return_photos(cursor, request_id: int, photos: list[dict], member_id: int):
    timestamp = now_iso()
    cursor.executemany(
        """
        INSERT INTO borrow_return_photos (
            borrow_request_id, photo_requirement_id, photo_url, filename,
            uploaded_by, uploaded_at
        )
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        [
            (
                request_id,
                photo["requirement_id"],
                photo["photo_url"],
                photo.get("filename"),
                member_id,
                timestamp,
            )
            for photo in photos
        ],
    )


@db_connection
def list_return_photos(cursor, request_id: int) -> list[dict]:
    cursor.execute(
        """
        SELECT id, borrow_request_id, photo_requirement_id, photo_url, filename,
               uploaded_by, uploaded_at
        FROM borrow_return_photos WHERE borrow_request_id = ?
        ORDER BY uploaded_at, id
        """,
        (request_id,),
    )
    return [dict(row) for row in cursor.fetchall()]
