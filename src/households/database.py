import logging
import sqlite3

from src.database import db_connection, now_iso, row_to_dict
from src.errors import ConflictError, NotFoundError

logger = logging.getLogger(__name__)

MEMBER_BOOL_FIELDS = ("is_active",)


def _member(row):
    return row_to_dict(row, bool_fields=MEMBER_BOOL_FIELDS)


@db_connection
def invite_code_exists(cursor, invite_code: str) -> bool:
    cursor.execute("SELECT 1 FROM households WHERE invite_code = ?", (invite_code,))
    return cursor.fetchone() is not None


@db_connection
def insert_household(cursor, name: str, invite_code: str, created_by: int) -> int:
    timestamp = now_iso()
    cursor.execute(
        """
        INSERT INTO households (name, invite_code, created_by, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?)
        """,
        (name, invite_code, created_by, timestamp, timestamp),
    )
    return cursor.lastrowid


@db_connection
def get_household(cursor, household_id: int) -> dict | None:
    cursor.execute(
        """
        SELECT id, name, invite_code, created_by, created_at, updated_at
        FROM households WHERE id = ?
        """,
        (household_id,),
    )
    return row_to_dict(cursor.fetchone())


@db_connection
def get_household_by_invite_code(cursor, invite_code: str) -> dict | None:
    cursor.execute(
        "SELECT id, name, invite_code, created_by FROM households WHERE invite_code = ?",
        (invite_code.strip().upper(),),
    )
    return row_to_dict(cursor.fetchone())


@db_connection
def set_invite_code(cursor, household_id: int, invite_code: str):
    cursor.execute(
        "UPDATE households SET invite_code = ?, updated_at = ? WHERE id = ?",
        (invite_code, now_iso(), household_id),
    )


@db_connection
def delete_household(cursor, household_id: int):
    cursor.execute("DELETE FROM households WHERE id = ?", (household_id,))
    if cursor.rowcount == 0:
        raise NotFoundError("Household not found")
    logger.info(f"Deleted household {household_id}")


@db_connection
def list_household_ids(cursor) -> list[int]:
    cursor.execute("SELECT id FROM households ORDER BY id")
    return [row["id"] for row in cursor.fetchall()]


@db_connection
def list_user_households(cursor, user_id: int) -> list[dict]:
    """Households where the user holds an active membership."""
    cursor.execute(
        """
        SELECT h.id, h.name, h.created_by, m.id AS member_id, m.member_name,
               (SELECT COUNT(*) FROM household_members
                WHERE household_id = h.id AND is_active = 1) AS member_count
        FROM households h
            JOIN household_members m ON m.household_id = h.id
        WHERE m.user_id = ? AND m.is_active = 1
        ORDER BY h.name
        """,
        (user_id,),
    )
    return [dict(row) for row in cursor.fetchall()]


@db_connection
def add_member(
    cursor,
    household_id: int,
    member_name: str,
    user_id: int = None,
    photo_url: str = None,
) -> dict:
    """Adds a member; names are unique within a household, ignoring case."""
    timestamp = now_iso()
    try:
        cursor.execute(
            """
            INSERT INTO household_members (
                household_id, user_id, member_name, photo_url, is_active,
                created_at, updated_at
            )
            VALUES (?, ?, ?, ?, 1, ?, ?)
            """,
            (household_id, user_id, member_name, photo_url, timestamp, timestamp),
        )
    except sqlite3.IntegrityError as e:
        raise ConflictError(
            f'A member named "{member_name}" already exists in this household'
        ) from e
    return get_member(cursor.lastrowid)


@db_connection
def get_member(cursor, member_id: int) -> dict | None:
    cursor.execute(
        """
        SELECT id, household_id, user_id, member_name, photo_url, is_active,
               created_at, updated_at
        FROM household_members WHERE id = ?
        """,
        (member_id,),
    )
    return _member(cursor.fetchone())


@db_connection
def get_membership(cursor, household_id: int, user_id: int) -> dict | None:
    """The user's membership row in a household, active or not."""
    cursor.execute(
        """
        SELECT id, household_id, user_id, member_name, photo_url, is_active,
               created_at, updated_at
        FROM household_members
        WHERE household_id = ? AND user_id = ?
        ORDER BY is_active DESC, id
        LIMIT 1
        """,
        (household_id, user_id),
    )
    return _member(cursor.fetchone())


@db_connection
def list_members(cursor, household_id: int, active_only: bool = False) -> list[dict]:
    query = """
        SELECT id, household_id, user_id, member_name, photo_url, is_active,
               created_at, updated_at
        FROM household_members
        WHERE household_id = ?
    """
    if active_only:
        query += " AND is_active = 1"
    query += " ORDER BY is_active DESC, member_name"
    cursor.execute(query, (household_id,))
    return [_member(row) for row in cursor.fetchall()]


@db_connection
def get_member_names(cursor, member_ids: list[int]) -> dict[int, str]:
    if not member_ids:
        return {}
    placeholders = ",".join("?" for _ in member_ids)
    cursor.execute(
        f"SELECT id, member_name FROM household_members WHERE id IN ({placeholders})",
        list(member_ids),
    )
    return {row["id"]: row["member_name"] for row in cursor.fetchall()}


@db_connection
def update_member(cursor, member_id: int, fields: dict) -> dict:
    allowed = {"member_name", "photo_url", "is_active", "user_id"}
    updates = {key: value for key, value in fields.items() if key in allowed}
    if updates:
        assignments = ", ".join(f"{key} = ?" for key in updates)
        try:
            cursor.execute(
                f"UPDATE household_members SET {assignments}, updated_at = ? WHERE id = ?",
                (*updates.values(), now_iso(), member_id),
            )
        except sqlite3.IntegrityError as e:
            raise ConflictError(
                f'A member named "{updates.get("member_name")}" already exists in this household'
            ) from e
    member = get_member(member_id)
    if member is None:
        raise NotFoundError("Member not found")
    return member
