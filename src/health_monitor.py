"""
Health monitoring for the Household Manager service.

Watches the machine the service runs on, the errors the app records, the
SQLite database and how old the newest backup is. Thresholds come from the
"health" section of the configuration.
"""

import logging
import os
import sqlite3
import threading
import time
from collections import deque
from contextlib import closing
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict

import psutil

from src.config import get_config
from src.database import TABLES, get_connection, get_database_file

logger = logging.getLogger(__name__)

HEALTHY = "healthy"
WARNING = "warning"
CRITICAL = "critical"


def _escalate(current: str, new: str) -> str:
    """The worse of two health states."""
    order = (HEALTHY, WARNING, CRITICAL)
    return max(current, new, key=order.index)


def _directory_usage(directory: Path) -> Dict[str, Any]:
    """File count and total size of a directory tree."""
    if not directory.exists():
        return {"path": str(directory), "exists": False, "files": 0, "size_mb": 0}

    files = [path for path in directory.rglob("*") if path.is_file()]
    size = sum(path.stat().st_size for path in files)
    return {
        "path": str(directory),
        "exists": True,
        "files": len(files),
        "size_mb": round(size / (1024 * 1024), 2),
    }


class HealthMonitor:
    """Resource, error, database and backup monitoring."""

    def __init__(self):
        self.start_time = time.time()
        self.error_count = 0
        self.last_error_time = None
        # Only the newest critical errors are kept
        self.critical_errors = deque(maxlen=50)
        self.monitoring_enabled = True
        self.lock = threading.Lock()

    @staticmethod
    def settings() -> Dict[str, Any]:
        return get_config().get("health")

    @property
    def restart_threshold(self) -> int:
        return self.settings()["restart_threshold"]

    @property
    def restart_window(self) -> int:
        return self.settings()["restart_window_seconds"]

    def get_system_info(self) -> Dict[str, Any]:
        """Resource usage of the machine and of this process."""
        try:
            cpu_percent = psutil.cpu_percent(interval=self.settings()["cpu_sample_seconds"])
            memory = psutil.virtual_memory()

            # Disk usage where the household data lives
            data_dir = get_database_file().parent
            disk = psutil.disk_usage(str(data_dir if data_dir.exists() else Path.cwd()))

            process = psutil.Process()
            uptime_seconds = time.time() - self.start_time

            return {
                "timestamp": datetime.now().isoformat(),
                "uptime_seconds": round(uptime_seconds, 2),
                "uptime_hours": round(uptime_seconds / 3600, 2),
                "system": {
                    "cpu_percent": cpu_percent,
                    "cpu_count": psutil.cpu_count(),
                    "memory_percent": memory.percent,
                    "memory_available_mb": round(memory.available / (1024 * 1024), 2),
                    "disk_percent": round(disk.used / disk.total * 100, 2),
                    "disk_free_gb": round(disk.free / (1024**3), 2),
                },
                "process": {
                    "memory_mb": round(process.memory_info().rss / (1024 * 1024), 2),
                    "cpu_percent": process.cpu_percent(),
                    "pid": process.pid,
                    "threads": process.num_threads(),
                },
                "storage": {
                    "uploads": _directory_usage(Path(get_config().get("uploads.directory"))),
                },
                "errors": {
                    "total_count": self.error_count,
                    "critical_count": len(self.critical_errors),
                    "last_error_time": (
                        self.last_error_time.isoformat() if self.last_error_time else None
                    ),
                },
            }

        except (psutil.Error, OSError) as e:
            logger.error(f"System information unavailable: {e}")
            return {
                "timestamp": datetime.now().isoformat(),
                "error": "Failed to collect system information",
                "details": str(e),
            }

    def get_backup_status(self) -> Dict[str, Any]:
        """The newest backup file and its age."""
        from src.maintenance.backup import list_backups

        backups = list_backups()
        if not backups:
            return {"count": 0, "latest": None, "age_hours": None}

        latest = backups[-1]
        age = time.time() - latest.stat().st_mtime
        return {
            "count": len(backups),
            "latest": latest.name,
            "age_hours": round(age / 3600, 2),
        }

    def check_health(self) -> Dict[str, Any]:
        """Combine resources, recorded errors, database and backups into one status."""
        limits = self.settings()
        system_info = self.get_system_info()
        health_status = HEALTHY
        issues = []

        if "system" in system_info:
            system = system_info["system"]
            if system["cpu_percent"] > limits["cpu_warning_percent"]:
                health_status = _escalate(health_status, WARNING)
                issues.append("High CPU usage")

            if system["memory_percent"] > limits["memory_warning_percent"]:
                health_status = _escalate(health_status, WARNING)
                issues.append("High memory usage")

            if system["disk_percent"] > limits["disk_critical_percent"]:
                health_status = _escalate(health_status, CRITICAL)
                issues.append("Low disk space")

            if system_info["process"]["memory_mb"] > limits["process_memory_warning_mb"]:
                health_status = _escalate(health_status, WARNING)
                issues.append("High process memory usage")

        recent_critical_errors = self.recent_critical_errors()
        if len(recent_critical_errors) >= self.restart_threshold:
            health_status = _escalate(health_status, CRITICAL)
            minutes = self.restart_window // 60
            issues.append(
                f"Too many critical errors ({len(recent_critical_errors)} in {minutes} minutes)"
            )

        database = self.get_database_status()
        if not database["exists"] or "error" in database:
            health_status = _escalate(health_status, CRITICAL)
            issues.append("Database unavailable")

        backups = self.get_backup_status()
        max_age = limits["backup_max_age_hours"]
        if max_age and backups["age_hours"] is not None and backups["age_hours"] > max_age:
            health_status = _escalate(health_status, WARNING)
            issues.append(f"Newest backup is older than {max_age} hours")

        return {
            "status": health_status,
            "issues": issues,
            "system_info": system_info,
            "backups": backups,
            "monitoring_enabled": self.monitoring_enabled,
        }

    def record_error(self, error_type: str, message: str, is_critical: bool = False) -> bool:
        """Count an application error. Returns True once critical errors call for a restart."""
        with self.lock:
            self.error_count += 1
            self.last_error_time = datetime.now()

            if not is_critical:
                logger.warning(f"{error_type}: {message}")
                return False

            self.critical_errors.append(
                {"timestamp": self.last_error_time, "type": error_type, "message": message}
            )
            logger.error(f"Critical {error_type}: {message}")

        restart = self.should_restart()
        if restart:
            logger.critical(
                f"{self.restart_threshold} critical errors within {self.restart_window}s, restart advised"
            )
        return restart

    def recent_critical_errors(self) -> list:
        """Critical errors inside the restart window, oldest first."""
        since = datetime.now() - timedelta(seconds=self.restart_window)
        return [error for error in self.critical_errors if error["timestamp"] > since]

    def should_restart(self) -> bool:
        return len(self.recent_critical_errors()) >= self.restart_threshold

    def error_summary(self) -> Dict[str, Any]:
        return {
            "total_errors": self.error_count,
            "critical_errors": len(self.critical_errors),
            "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
            "recent_critical_errors": [
                {**error, "timestamp": error["timestamp"].isoformat()}
                for error in self.recent_critical_errors()
            ],
            "restart_threshold": self.restart_threshold,
            "restart_window_seconds": self.restart_window,
            "should_restart": self.should_restart(),
        }

    def get_database_status(self) -> Dict[str, Any]:
        """Check the household database file and count the rows of each table."""
        db_file = get_database_file()
        if not db_file.exists():
            return {"path": str(db_file), "exists": False, "error": "Database file not found"}

        stat = os.stat(db_file)
        db_status = {
            "path": str(db_file),
            "exists": True,
            "size_bytes": stat.st_size,
            "modified": datetime.fromtimestamp(stat.st_mtime).isoformat(),
            "readable": os.access(db_file, os.R_OK),
            "writable": os.access(db_file, os.W_OK),
        }

        try:
            with closing(get_connection()) as conn:
                db_status["tables"] = {
                    table: conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]  # nosec B608
                    for table in TABLES
                }
        except sqlite3.Error as e:
            logger.error(f"Failed to read database tables: {e}")
            db_status["error"] = str(e)

        return db_status

    def reset(self):
        """Forget recorded errors, e.g. after an operator fixed the cause."""
        with self.lock:
            self.error_count = 0
            self.last_error_time = None
            self.critical_errors.clear()
        logger.info("Health monitor error history cleared")

    def set_monitoring(self, enabled: bool):
        self.monitoring_enabled = enabled
        logger.info(f"Health monitoring {'on' if enabled else 'off'}")


health_monitor = HealthMonitor()
