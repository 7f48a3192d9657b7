"""
Backup and maintenance commands for the household database.

    python -m src.maintenance.backup backup
    python -m src.maintenance.backup restore backups/backup-20260101-030000-000000.json
    python -m src.maintenance.backup list
    python -m src.maintenance.backup scan-due
"""

import argparse
import datetime
import json
import logging
import sqlite3
import sys
from contextlib import closing
from pathlib import Path

from src.config import VERSION, get_config
from src.database import TABLES, get_database_file, initialize_db

logger = logging.getLogger(__name__)

BACKUP_PREFIX = "backup-"


def backup_dir() -> Path:
    return Path(get_config().get("backup.directory"))


def _connect() -> sqlite3.Connection:
    # Foreign keys stay off so a partial restore does not cascade into other tables
    conn = sqlite3.connect(get_database_file())
    conn.row_factory = sqlite3.Row
    return conn


def _columns(conn: sqlite3.Connection, table: str) -> list[str]:
    return [row[1] for row in conn.execute(f"PRAGMA table_info({table})")]


def dump_tables() -> dict[str, list[dict]]:
    with closing(_connect()) as conn:
        return {
            table: [dict(row) for row in conn.execute(f"SELECT * FROM {table}")]  # nosec B608
            for table in TABLES
        }


def create_backup(directory: Path = None) -> Path:
    """Write every table to a timestamped JSON file and prune old backups."""
    directory = Path(directory or backup_dir())
    directory.mkdir(parents=True, exist_ok=True)

    now = datetime.datetime.now()
    path = directory / f"{BACKUP_PREFIX}{now.strftime('%Y%m%d-%H%M%S-%f')}.json"
    payload = {
        "timestamp": now.isoformat(),
        "version": VERSION,
        "tables": dump_tables(),
    }

    with open(path, "w") as f:
        json.dump(payload, f, indent=2)

    rows = sum(len(rows) for rows in payload["tables"].values())
    logger.info(f"Backup written to {path} ({rows} rows)")
    prune_backups(directory, get_config().get("backup.keep"))
    return path


def list_backups(directory: Path = None) -> list[Path]:
    """Backup files, oldest first."""
    directory = Path(directory or backup_dir())
    if not directory.exists():
        return []
    return sorted(directory.glob(f"{BACKUP_PREFIX}*.json"))


def prune_backups(directory: Path, keep: int) -> list[Path]:
    backups = list_backups(directory)
    removed = backups[:-keep] if len(backups) > keep else []
    for path in removed:
        path.unlink()
        logger.info(f"Removed old backup {path.name}")
    return removed


def restore_backup(path: Path, tables: list[str] = None) -> dict[str, int]:
    """
    Replace the rows of the given tables (all by default) with a backup's.

    Tables are cleared children first and refilled parents first, all in
    one transaction. Columns the backup lacks keep their defaults; columns
    the database no longer has are ignored.

    Returns:
        dict: restored row count per table
    """
    with open(path) as f:
        payload = json.load(f)

    backup_tables = payload.get("tables")
    if not isinstance(backup_tables, dict):
        raise ValueError(f"{path} is not a backup file")

    selected = tables or TABLES
    unknown = sorted(set(selected) - set(TABLES))
    if unknown:
        raise ValueError(f"Unknown tables: {', '.join(unknown)}")
    ordered = [table for table in TABLES if table in selected and table in backup_tables]

    initialize_db()
    restored = {}
    with closing(_connect()) as conn:
        try:
            for table in reversed(ordered):
                conn.execute(f"DELETE FROM {table}")  # nosec B608

            for table in ordered:
                columns = set(_columns(conn, table))
                count = 0
                for row in backup_tables[table]:
                    names = [name for name in row if name in columns]
                    placeholders = ", ".join("?" for _ in names)
                    conn.execute(
                        f"INSERT INTO {table} ({', '.join(names)}) VALUES ({placeholders})",  # nosec B608
                        [row[name] for name in names],
                    )
                    count += 1
                restored[table] = count
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.error(f"Restore from {path} failed, nothing was changed: {e}")
            raise

        violations = conn.execute("PRAGMA foreign_key_check").fetchall()
        if violations:
            logger.warning(f"Restore left {len(violations)} rows with dangling references")

    logger.info(f"Restored {sum(restored.values())} rows from {path}")
    return restored


def scan_due() -> int:
    """Send due reminders in every household."""
    from src.households import database as households_db
    from src.notifications.utils import send_due_notifications

    return sum(
        send_due_notifications(household_id)
        for household_id in households_db.list_household_ids()
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Household database maintenance")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("backup", help="Write a backup of every table")

    restore = commands.add_parser("restore", help="Restore tables from a backup file")
    restore.add_argument("file", type=Path, help="Backup file to restore")
    restore.add_argument(
        "--tables",
        nargs="+",
        choices=TABLES,
        metavar="TABLE",
        help="Only restore these tables",
    )

    commands.add_parser("list", help="List existing backups")
    commands.add_parser("scan-due", help="Send due task reminders for every household")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    get_config()
    initialize_db()

    if args.command == "backup":
        print(f"Backup written to {create_backup()}")
    elif args.command == "restore":
        if not args.file.exists():
            print(f"Backup file not found: {args.file}", file=sys.stderr)
            return 1
        restored = restore_backup(args.file, args.tables)
        for table, count in restored.items():
            print(f"{table}: {count} rows")
    elif args.command == "list":
        backups = list_backups()
        if not backups:
            print("No backups found.")
        for path in backups:
            print(f"{path.name}\t{path.stat().st_size} bytes")
    elif args.command == "scan-due":
        print(f"Sent {scan_due()} due notifications.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
