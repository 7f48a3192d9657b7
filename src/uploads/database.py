from src.database import db_connection, now_iso


@db_connection
def record_upload(cursor, filename: str, user_id: int):
    cursor.execute(
        "INSERT INTO uploaded_files (filename, uploaded_by, uploaded_at) VALUES (?, ?, ?)",
        (filename, user_id, now_iso()),
    )


@db_connection
def get_uploader(cursor, filename: str) -> int | None:
    """Id of the user who uploaded a file; None when unknown."""
    cursor.execute("SELECT uploaded_by FROM uploaded_files WHERE filename = ?", (filename,))
    row = cursor.fetchone()
    return row["uploaded_by"] if row else None


@db_connection
def forget_upload(cursor, filename: str):
    cursor.execute("DELETE FROM uploaded_files WHERE filename = ?", (filename,))
