import datetime
import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from functools import wraps
from pathlib import Path
from typing import Any, Iterable

from src.config import get_config

logger = logging.getLogger(__name__)

# Palette handed out to shopping categories created without a color
DEFAULT_COLORS = [
    "#3D5A80",
    "#8336E7",
    "#616042",
    "#CD3813",
    "#293241",
    "#9D4348",
    "#088745",
    "#68710A",
    "#A84710",
    "#EE1B49",
]

# Cursor of the transaction opened by transaction() on this thread, if any
_local = threading.local()


def get_database_file() -> Path:
    return Path(get_config().get("database.path"))


def get_connection() -> sqlite3.Connection:
    conn = sqlite3.connect(get_database_file())
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


# create a decorator to wrap database functions in a connection and close after use
def db_connection(func):
    """
    Passes a cursor as first argument to the wrapped function.

    The outermost call opens the connection, commits on success, rolls back
    on error and always closes. Calls made while a connection is open on this
    thread (nested functions or a transaction() block) reuse its cursor.
    """

    @wraps(func)
    def wrapper(*args, **kwargs):
        with transaction(func.__name__) as cursor:
            return func(cursor, *args, **kwargs)

    return wrapper


@contextmanager
def transaction(label: str = "transaction", immediate: bool = False):
    """
    Run several db_connection functions on one connection, committed together.

    With ``immediate`` the write lock is taken up front (BEGIN IMMEDIATE), so
    rows read inside the block can't change before it commits. Other writers
    wait for it, up to the connection timeout.
    """
    active_cursor = getattr(_local, "cursor", None)
    if active_cursor is not None:
        if immediate and not active_cursor.connection.in_transaction:
            active_cursor.execute("BEGIN IMMEDIATE")
        yield active_cursor
        return

    conn = get_connection()
    _local.cursor = conn.cursor()
    try:
        if immediate:
            _local.cursor.execute("BEGIN IMMEDIATE")
        yield _local.cursor
        conn.commit()
    except sqlite3.Error as e:
        logger.error(f"Database error in {label}: {e}")
        conn.rollback()
        raise
    except Exception:
        conn.rollback()
        raise
    finally:
        _local.cursor = None
        conn.close()


SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        email TEXT NOT NULL UNIQUE COLLATE NOCASE,
        password_hash TEXT NOT NULL,
        role TEXT NOT NULL DEFAULT 'user',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        last_signed_in TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS households (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        invite_code TEXT NOT NULL UNIQUE,
        created_by INTEGER REFERENCES users(id) ON DELETE SET NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS household_members (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        household_id INTEGER NOT NULL REFERENCES households(id) ON DELETE CASCADE,
        user_id INTEGER REFERENCES users(id) ON DELETE SET NULL,
        member_name TEXT NOT NULL COLLATE NOCASE,
        photo_url TEXT,
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (household_id, member_name)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS default_colors (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        hex_code TEXT NOT NULL UNIQUE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS color_index (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        current_index INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS shopping_categories (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        household_id INTEGER NOT NULL REFERENCES households(id) ON DELETE CASCADE,
        name TEXT NOT NULL COLLATE NOCASE,
        color TEXT NOT NULL,
        created_at TEXT NOT NULL,
        UNIQUE (household_id, name)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tasks (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        household_id INTEGER NOT NULL REFERENCES households(id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        description TEXT,
        assigned_to TEXT,
        frequency TEXT NOT NULL DEFAULT 'once',
        custom_frequency_days INTEGER,
        repeat_interval INTEGER,
        repeat_unit TEXT,
        monthly_recurrence_mode TEXT NOT NULL DEFAULT 'same_date',
        enable_rotation INTEGER NOT NULL DEFAULT 0,
        required_persons INTEGER,
        due_date TEXT,
        duration_days INTEGER,
        duration_minutes INTEGER,
        is_completed INTEGER NOT NULL DEFAULT 0,
        completed_by INTEGER REFERENCES household_members(id) ON DELETE SET NULL,
        completed_at TEXT,
        completion_photo_urls TEXT,
        skipped_dates TEXT,
        created_by INTEGER REFERENCES household_members(id) ON DELETE SET NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS task_rotation_exclusions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        task_id INTEGER NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
        member_id INTEGER NOT NULL REFERENCES household_members(id) ON DELETE CASCADE,
        UNIQUE (task_id, member_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS task_rotation_schedule (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        task_id INTEGER NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
        occurrence_number INTEGER NOT NULL,
        position INTEGER NOT NULL,
        member_id INTEGER NOT NULL REFERENCES household_members(id) ON DELETE CASCADE,
        UNIQUE (task_id, occurrence_number, position)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS task_rotation_occurrence_notes (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        task_id INTEGER NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
        occurrence_number INTEGER NOT NULL,
        notes TEXT,
        is_skipped INTEGER NOT NULL DEFAULT 0,
        UNIQUE (task_id, occurrence_number)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS task_dependencies (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        task_id INTEGER NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
        depends_on_task_id INTEGER NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
        created_at TEXT NOT NULL,
        UNIQUE (task_id, depends_on_task_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS shopping_items (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        household_id INTEGER NOT NULL REFERENCES households(id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        category_id INTEGER REFERENCES shopping_categories(id),
        details TEXT,
        photo_urls TEXT,
        notes TEXT,
        is_completed INTEGER NOT NULL DEFAULT 0,
        task_id INTEGER REFERENCES tasks(id) ON DELETE SET NULL,
        added_by INTEGER REFERENCES household_members(id) ON DELETE SET NULL,
        completed_by INTEGER REFERENCES household_members(id) ON DELETE SET NULL,
        completed_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS inventory_items (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        household_id INTEGER NOT NULL REFERENCES households(id) ON DELETE CASCADE,
        name TEXT NOT NULL,
        details TEXT,
        category_id INTEGER REFERENCES shopping_categories(id),
        photo_urls TEXT,
        ownership_type TEXT NOT NULL DEFAULT 'household',
        created_by INTEGER REFERENCES household_members(id) ON DELETE SET NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS inventory_ownership (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        item_id INTEGER NOT NULL REFERENCES inventory_items(id) ON DELETE CASCADE,
        member_id INTEGER NOT NULL REFERENCES household_members(id) ON DELETE CASCADE,
        UNIQUE (item_id, member_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS activity_history (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        household_id INTEGER NOT NULL REFERENCES households(id) ON DELETE CASCADE,
        member_id INTEGER REFERENCES household_members(id) ON DELETE SET NULL,
        activity_type TEXT NOT NULL,
        action TEXT NOT NULL,
        description TEXT NOT NULL,
        related_item_id INTEGER,
        comment TEXT,
        photo_urls TEXT,
        file_urls TEXT,
        metadata TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS notifications (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        household_id INTEGER NOT NULL REFERENCES households(id) ON DELETE CASCADE,
        member_id INTEGER NOT NULL REFERENCES household_members(id) ON DELETE CASCADE,
        type TEXT NOT NULL,
        title TEXT NOT NULL,
        message TEXT NOT NULL,
        related_task_id INTEGER REFERENCES tasks(id) ON DELETE SET NULL,
        related_borrow_id INTEGER,
        is_read INTEGER NOT NULL DEFAULT 0,
        read_at TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS notification_preferences (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        member_id INTEGER NOT NULL UNIQUE REFERENCES household_members(id) ON DELETE CASCADE,
        household_id INTEGER NOT NULL REFERENCES households(id) ON DELETE CASCADE,
        enable_task_assigned INTEGER NOT NULL DEFAULT 1,
        enable_task_due INTEGER NOT NULL DEFAULT 1,
        enable_task_completed INTEGER NOT NULL DEFAULT 1,
        enable_comments INTEGER NOT NULL DEFAULT 1,
        enable_reminders INTEGER NOT NULL DEFAULT 1,
        enable_borrow INTEGER NOT NULL DEFAULT 1,
        dnd_start TEXT,
        dnd_end TEXT,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS borrow_requests (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        inventory_item_id INTEGER NOT NULL REFERENCES inventory_items(id) ON DELETE CASCADE,
        borrower_household_id INTEGER NOT NULL REFERENCES households(id) ON DELETE CASCADE,
        borrower_member_id INTEGER NOT NULL REFERENCES household_members(id) ON DELETE CASCADE,
        owner_household_id INTEGER NOT NULL REFERENCES households(id) ON DELETE CASCADE,
        status TEXT NOT NULL DEFAULT 'pending',
        start_date TEXT NOT NULL,
        end_date TEXT NOT NULL,
        request_message TEXT,
        response_message TEXT,
        approved_by INTEGER REFERENCES household_members(id) ON DELETE SET NULL,
        approved_at TEXT,
        borrowed_at TEXT,
        returned_at TEXT,
        condition_report TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS borrow_guidelines (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        inventory_item_id INTEGER NOT NULL UNIQUE REFERENCES inventory_items(id) ON DELETE CASCADE,
        instructions_text TEXT,
        checklist_items TEXT,
        photo_requirements TEXT,
        created_by INTEGER REFERENCES household_members(id) ON DELETE SET NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS borrow_return_photos (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        borrow_request_id INTEGER NOT NULL REFERENCES borrow_requests(id) ON DELETE CASCADE,
        photo_requirement_id TEXT NOT NULL,
        photo_url TEXT NOT NULL,
        filename TEXT,
        uploaded_by INTEGER REFERENCES household_members(id) ON DELETE SET NULL,
        uploaded_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS task_occurrence_items (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        task_id INTEGER NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
        occurrence_number INTEGER NOT NULL,
        inventory_item_id INTEGER NOT NULL REFERENCES inventory_items(id) ON DELETE CASCADE,
        borrow_start_date TEXT,
        borrow_end_date TEXT,
        borrow_status TEXT NOT NULL DEFAULT 'pending',
        borrow_request_id INTEGER REFERENCES borrow_requests(id) ON DELETE SET NULL,
        notes TEXT,
        added_by INTEGER REFERENCES household_members(id) ON DELETE SET NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (task_id, occurrence_number, inventory_item_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS uploaded_files (
        filename TEXT PRIMARY KEY,
        uploaded_by INTEGER REFERENCES users(id) ON DELETE SET NULL,
        uploaded_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS calendar_events (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        household_id INTEGER NOT NULL REFERENCES households(id) ON DELETE CASCADE,
        title TEXT NOT NULL,
        description TEXT,
        start_date TEXT NOT NULL,
        end_date TEXT,
        all_day INTEGER NOT NULL DEFAULT 0,
        event_type TEXT NOT NULL DEFAULT 'other',
        icon TEXT,
        related_task_id INTEGER REFERENCES tasks(id) ON DELETE SET NULL,
        related_borrow_id INTEGER REFERENCES borrow_requests(id) ON DELETE CASCADE,
        is_completed INTEGER NOT NULL DEFAULT 0,
        completed_at TEXT,
        created_by INTEGER REFERENCES household_members(id) ON DELETE SET NULL,
        created_at TEXT NOT NULL
    )
    """,
]

# Tables in the order rows can be inserted without breaking foreign keys
TABLES = [
    "users",
    "households",
    "household_members",
    "default_colors",
    "color_index",
    "shopping_categories",
    "tasks",
    "task_rotation_exclusions",
    "task_rotation_schedule",
    "task_rotation_occurrence_notes",
    "task_dependencies",
    "shopping_items",
    "inventory_items",
    "inventory_ownership",
    "activity_history",
    "notifications",
    "notification_preferences",
    "borrow_requests",
    "borrow_guidelines",
    "borrow_return_photos",
    "task_occurrence_items",
    "uploaded_files",
    "calendar_events",
]

# Columns added after the first release; older database files get them on startup
MIGRATIONS = [
    ("tasks", "monthly_recurrence_mode", "TEXT NOT NULL DEFAULT 'same_date'"),
    ("tasks", "skipped_dates", "TEXT"),
    ("tasks", "required_persons", "INTEGER"),
    ("activity_history", "file_urls", "TEXT"),
    ("notifications", "related_borrow_id", "INTEGER"),
    ("notification_preferences", "enable_borrow", "INTEGER NOT NULL DEFAULT 1"),
    ("borrow_requests", "condition_report", "TEXT"),
    ("calendar_events", "all_day", "INTEGER NOT NULL DEFAULT 0"),
]


def create_all():
    """
    Creates every table in the database. Safe to call on an existing file.
    """
    database_file = get_database_file()
    database_file.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(database_file)
    cursor = conn.cursor()

    for statement in SCHEMA:
        cursor.execute(statement)

    # Populate default_colors if empty
    cursor.execute("SELECT COUNT(*) FROM default_colors")
    if cursor.fetchone()[0] == 0:
        cursor.executemany(
            "INSERT INTO default_colors (hex_code) VALUES (?)",
            [(color,) for color in DEFAULT_COLORS],
        )

    # Initialize color_index if empty
    cursor.execute("SELECT COUNT(*) FROM color_index")
    if cursor.fetchone()[0] == 0:
        cursor.execute("INSERT INTO color_index (id, current_index) VALUES (1, 0)")

    conn.commit()
    conn.close()


def run_migrations():
    """Run database migrations to update schema"""
    conn = sqlite3.connect(get_database_file())
    cursor = conn.cursor()

    for table, column, definition in MIGRATIONS:
        cursor.execute(f"PRAGMA table_info({table})")
        columns = [row[1] for row in cursor.fetchall()]

        if column not in columns:
            logger.info(f"Adding {column} column to {table} table...")
            cursor.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")
            conn.commit()

    conn.close()


def initialize_db():
    """
    Initializes the database and creates the necessary tables.
    """
    create_all()
    run_migrations()
    logger.info(f"Database ready at {get_database_file()}")


def get_next_color(cursor) -> str:
    """Gets the next default color from the database and increments the index."""
    cursor.execute("SELECT current_index FROM color_index WHERE id = 1")
    current_index = cursor.fetchone()[0]

    cursor.execute("SELECT COUNT(*) FROM default_colors")
    color_count = cursor.fetchone()[0]

    if color_count == 0:
        return "#6B7280"

    # The modulo is applied *before* fetching to handle wrap-around correctly
    effective_index = current_index % color_count
    cursor.execute(
        "SELECT hex_code FROM default_colors WHERE id = ?", (effective_index + 1,)
    )
    color_hex = cursor.fetchone()[0]

    cursor.execute(
        "UPDATE color_index SET current_index = ? WHERE id = 1", (current_index + 1,)
    )

    return color_hex


# --- Value helpers shared by the feature modules ---


def utcnow() -> datetime.datetime:
    """Current UTC time as a naive datetime, the form every timestamp is stored in."""
    return datetime.datetime.now(tz=datetime.timezone.utc).replace(
        tzinfo=None, microsecond=0
    )


def format_timestamp(value: datetime.datetime | datetime.date | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime.datetime):
        if value.tzinfo is not None:
            value = value.astimezone(datetime.timezone.utc).replace(tzinfo=None)
        return value.replace(microsecond=0).isoformat()
    return datetime.datetime.combine(value, datetime.time()).isoformat()


def parse_timestamp(value: str | None) -> datetime.datetime | None:
    if not value:
        return None
    parsed = datetime.datetime.fromisoformat(value)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return parsed


def now_iso() -> str:
    return format_timestamp(utcnow())


def dump_json(value: Any) -> str | None:
    if value is None:
        return None
    return json.dumps(value)


def load_json(raw: Any, default: Any = None) -> Any:
    """
    Decode a JSON column.

    Tolerates NULL and empty strings, values that were encoded twice and
    bare scalars stored where a list is expected.
    """
    if raw is None or raw == "":
        return default
    value = raw
    # Unwrap at most twice: older rows were sometimes stored double-encoded
    for _ in range(2):
        if not isinstance(value, str):
            break
        try:
            value = json.loads(value)
        except ValueError:
            break
    if isinstance(default, list) and not isinstance(value, list):
        return [value]
    return value


def row_to_dict(
    row: sqlite3.Row | None,
    json_fields: Iterable[str] = (),
    bool_fields: Iterable[str] = (),
) -> dict | None:
    """Convert a row to a plain dict, decoding JSON and boolean columns."""
    if row is None:
        return None
    result = dict(row)
    for field in json_fields:
        if field in result:
            default: Any = {} if field == "metadata" else []
            result[field] = load_json(result[field], default)
    for field in bool_fields:
        if field in result:
            result[field] = bool(result[field])
    return result
