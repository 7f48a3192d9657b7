import logging
import sqlite3

from werkzeug.security import check_password_hash, generate_password_hash

from src.database import db_connection, now_iso
from src.errors import AuthenticationError, ConflictError, NotFoundError

from .models import User

logger = logging.getLogger(__name__)

USER_COLUMNS = (
    "id, name, email, password_hash, role, created_at, updated_at, last_signed_in"
)


@db_connection
def create_user(cursor, name: str, email: str, password: str) -> User:
    """Adds a user account. Emails are unique regardless of case."""
    cursor.execute("SELECT id FROM users WHERE email = ?", (email,))
    if cursor.fetchone():
        raise ConflictError("An account with this email already exists")

    timestamp = now_iso()
    try:
        cursor.execute(
            """
            INSERT INTO users (name, email, password_hash, role, created_at, updated_at)
            VALUES (?, ?, ?, 'user', ?, ?)
            """,
            (name, email, generate_password_hash(password), timestamp, timestamp),
        )
    except sqlite3.IntegrityError as e:
        raise ConflictError("An account with this email already exists") from e

    logger.info(f"Registered user {cursor.lastrowid}")
    return get_user(cursor.lastrowid)


@db_connection
def get_user(cursor, user_id: int) -> User | None:
    cursor.execute(f"SELECT {USER_COLUMNS} FROM users WHERE id = ?", (user_id,))
    row = cursor.fetchone()
    return User.from_row(row) if row else None


@db_connection
def get_user_by_email(cursor, email: str) -> User | None:
    cursor.execute(f"SELECT {USER_COLUMNS} FROM users WHERE email = ?", (email,))
    row = cursor.fetchone()
    return User.from_row(row) if row else None


def authenticate(email: str, password: str) -> User:
    """Returns the user for valid credentials and records the sign-in."""
    user = get_user_by_email(email)
    if user is None or not check_password_hash(user.password_hash, password):
        raise AuthenticationError("Invalid email or password")
    record_sign_in(user.id)
    return get_user(user.id)


@db_connection
def record_sign_in(cursor, user_id: int):
    cursor.execute(
        "UPDATE users SET last_signed_in = ? WHERE id = ?", (now_iso(), user_id)
    )


@db_connection
def update_profile(cursor, user_id: int, name: str = None, email: str = None) -> User:
    if email is not None:
        cursor.execute(
            "SELECT id FROM users WHERE email = ? AND id != ?", (email, user_id)
        )
        if cursor.fetchone():
            raise ConflictError("An account with this email already exists")

    cursor.execute(
        """
        UPDATE users
        SET name = COALESCE(?, name), email = COALESCE(?, email), updated_at = ?
        WHERE id = ?
        """,
        (name, email, now_iso(), user_id),
    )
    if cursor.rowcount == 0:
        raise NotFoundError("User not found")
    return get_user(user_id)


@db_connection
def change_password(cursor, user_id: int, current_password: str, new_password: str):
    cursor.execute("SELECT password_hash FROM users WHERE id = ?", (user_id,))
    row = cursor.fetchone()
    if row is None:
        raise NotFoundError("User not found")
    if not check_password_hash(row["password_hash"], current_password):
        raise AuthenticationError("Current password is incorrect")

    cursor.execute(
        "UPDATE users SET password_hash = ?, updated_at = ? WHERE id = ?",
        (generate_password_hash(new_password), now_iso(), user_id),
    )
    logger.info(f"Password changed for user {user_id}")
