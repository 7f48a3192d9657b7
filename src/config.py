"""
Configuration management for the Household Manager application.

Settings come from a JSON file merged over DEFAULTS, then from HOUSEHOLD_*
environment variables. Sections are read with dot notation, e.g.
``get_config().get("uploads.max_edge")``.
"""

import copy
import json
import logging
import os
import secrets
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Callable, Dict, Optional

VERSION = "1.0.0"

logger = logging.getLogger(__name__)


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


# Environment variable -> (dotted key, converter)
ENV_OVERRIDES: Dict[str, tuple[str, Callable[[str], Any]]] = {
    "HOUSEHOLD_DEBUG": ("app.debug", _as_bool),
    "HOUSEHOLD_PORT": ("app.port", int),
    "HOUSEHOLD_ENV": ("app.environment", str.lower),
    "HOUSEHOLD_SECRET_KEY": ("app.secret_key", str),
    "HOUSEHOLD_DATABASE": ("database.path", str),
    "HOUSEHOLD_UPLOAD_DIR": ("uploads.directory", str),
    "HOUSEHOLD_LOG_LEVEL": ("logging.level", str.upper),
}

# Settings that must be strictly positive
POSITIVE_KEYS = (
    "auth.session_lifetime_seconds",
    "auth.password_min_length",
    "auth.member_password_min_length",
    "auth.login_per_minute",
    "auth.login_per_hour",
    "uploads.max_file_size",
    "uploads.max_edge",
    "uploads.thumbnail_size",
    "uploads.per_minute",
    "uploads.per_hour",
    "backup.keep",
)


def merge_settings(base: Dict, override: Dict) -> Dict:
    """Return ``base`` with ``override`` merged in, section by section."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_settings(merged[key], value)
        else:
            merged[key] = value
    return merged


class Config:
    """Configuration manager for the Household Manager application."""

    DEFAULTS: dict[str, dict[str, Any]] = {
        "app": {
            "debug": False,
            "host": "0.0.0.0",  # nosec B104 # Served to the household's local network
            "port": 5000,
            "secret_key": None,
            "use_reloader": False,
            "environment": "production",  # production, development, testing
            "service_name": "Household Manager",
        },
        "database": {
            "path": "data/household.db",
        },
        "auth": {
            "session_lifetime_seconds": 60 * 60 * 24 * 30,  # 30 days
            "password_min_length": 6,
            "member_password_min_length": 4,
            "login_per_minute": 10,
            "login_per_hour": 100,
        },
        "uploads": {
            "directory": "data/uploads",
            "max_file_size": 16 * 1024 * 1024,  # 16MB
            "max_edge": 2000,
            "thumbnail_size": 300,
            "jpeg_quality": 85,
            "per_minute": 20,
            "per_hour": 200,
        },
        "notifications": {
            "due_soon_days": 1,
        },
        "backup": {
            "directory": "backups",
            "keep": 30,
        },
        "health": {
            "cpu_sample_seconds": 1,
            "cpu_warning_percent": 90,
            "memory_warning_percent": 85,
            "disk_critical_percent": 90,
            "process_memory_warning_mb": 512,
            "backup_max_age_hours": 48,
            "restart_threshold": 5,
            "restart_window_seconds": 600,
        },
        "logging": {
            "level": "INFO",
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            "file": "logs/household.log",
            "max_bytes": 10485760,  # 10MB
            "backup_count": 5,
        },
    }

    def __init__(self, config_file: Optional[str] = None):
        # Messages gathered before logging exists; flushed once it is set up
        self._startup_messages: list[tuple[int, str]] = []
        self.config_file = Path(config_file) if config_file else self._locate_file()
        self.config = self._read()
        self._validate()
        self._setup_logging()
        for level, message in self._startup_messages:
            logger.log(level, message)
        self._startup_messages.clear()

    def _note(self, message: str, level: int = logging.INFO):
        self._startup_messages.append((level, message))

    @staticmethod
    def candidate_files() -> list[Path]:
        """Places searched for config.json, in order."""
        return [
            Path.cwd() / "config.json",
            Path.home() / ".household" / "config.json",
            Path(__file__).parent.parent / "config.json",
            Path("/etc/household/config.json"),
        ]

    def _locate_file(self) -> Path:
        explicit = os.environ.get("HOUSEHOLD_CONFIG")
        if explicit:
            return Path(explicit)

        found = next((path for path in self.candidate_files() if path.exists()), None)
        if found is not None:
            return found

        target = Path.cwd() / "config.json"
        self._write_default_file(target)
        return target

    def _write_default_file(self, path: Path):
        """Write DEFAULTS with a freshly generated secret key."""
        settings = copy.deepcopy(self.DEFAULTS)
        settings["app"]["secret_key"] = secrets.token_hex(32)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(settings, indent=2))
        except OSError as e:
            self._note(f"Could not write default config to {path}: {e}", logging.WARNING)
            return
        self._note(f"Created default configuration file at {path}")

    def _read(self) -> Dict[str, Any]:
        settings = copy.deepcopy(self.DEFAULTS)

        if self.config_file.exists():
            try:
                settings = merge_settings(settings, json.loads(self.config_file.read_text()))
            except (OSError, ValueError) as e:
                self._note(
                    f"Ignoring unreadable config file {self.config_file}: {e}", logging.ERROR
                )
            else:
                self._note(f"Loaded configuration from {self.config_file}")

        for variable, (key, convert) in ENV_OVERRIDES.items():
            raw = os.environ.get(variable)
            if raw is None:
                continue
            try:
                self._assign(settings, key, convert(raw))
            except ValueError as e:
                self._note(f"Ignoring {variable}={raw!r}: {e}", logging.WARNING)
            else:
                self._note(f"{key} overridden by {variable}")

        return settings

    @staticmethod
    def _assign(settings: Dict[str, Any], key: str, value: Any):
        *sections, name = key.split(".")
        target = settings
        for section in sections:
            target = target.setdefault(section, {})
        target[name] = value

    def _problems(self) -> list[str]:
        """Every invalid setting, so they can be reported together."""
        problems = []

        if not 1 <= self.get("app.port", 0) <= 65535:
            problems.append("app.port must be between 1 and 65535")

        problems += [f"{key} must be positive" for key in POSITIVE_KEYS if self.get(key, 0) <= 0]

        if not 1 <= self.get("uploads.jpeg_quality", 0) <= 95:
            problems.append("uploads.jpeg_quality must be between 1 and 95")

        if self.get("notifications.due_soon_days", 0) < 0:
            problems.append("notifications.due_soon_days cannot be negative")

        problems += [
            f"health.{key} cannot be negative"
            for key, value in self.config["health"].items()
            if value < 0
        ]

        level = self.get("logging.level")
        if not isinstance(logging.getLevelName(str(level)), int):
            problems.append(f"Unknown logging level: {level}")

        for key, directory in (
            ("database.path", Path(self.get("database.path")).parent),
            ("uploads.directory", Path(self.get("uploads.directory"))),
            ("backup.directory", Path(self.get("backup.directory"))),
        ):
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                problems.append(f"Cannot create {key}: {e}")

        return problems

    def _validate(self):
        if not self.get("app.secret_key"):
            self.config["app"]["secret_key"] = secrets.token_hex(32)
            self._note("No secret key configured; generated one for this run", logging.WARNING)

        problems = self._problems()
        if problems:
            raise ValueError(f"Configuration validation failed: {'; '.join(problems)}")

    def _setup_logging(self):
        """Route the root logger to the console and a rotating log file."""
        settings = self.config["logging"]
        level = logging.getLevelName(settings["level"])
        formatter = logging.Formatter(settings["format"])

        log_file = Path(settings["file"])
        log_file.parent.mkdir(parents=True, exist_ok=True)

        handlers: list[logging.Handler] = [logging.StreamHandler()]
        if settings.get("max_bytes"):
            handlers.append(
                RotatingFileHandler(
                    log_file,
                    maxBytes=settings["max_bytes"],
                    backupCount=settings.get("backup_count", 5),
                )
            )
        else:
            handlers.append(logging.FileHandler(log_file))

        root = logging.getLogger()
        # Reloading must not stack handlers
        for old in list(root.handlers):
            root.removeHandler(old)
            old.close()
        for handler in handlers:
            handler.setFormatter(formatter)
            root.addHandler(handler)
        root.setLevel(level)

        logging.getLogger("werkzeug").setLevel(level)
        logging.getLogger("PIL").setLevel(max(level, logging.INFO))

    def get(self, key: str, default: Any = None) -> Any:
        """Value at a dotted key such as "auth.login_per_minute"."""
        value: Any = self.config
        for part in key.split("."):
            if not isinstance(value, dict) or part not in value:
                return default
            value = value[part]
        return value

    def set(self, key: str, value: Any):
        self._assign(self.config, key, value)

    def save(self):
        """Write the current settings back to the config file."""
        self.config_file.write_text(json.dumps(self.config, indent=2))
        logger.info(f"Configuration saved to {self.config_file}")

    def public_settings(self) -> Dict[str, Any]:
        """Settings a client may see: no secret key, paths or server thresholds."""
        public = {
            section: copy.deepcopy(values)
            for section, values in self.config.items()
            if section not in ("database", "backup", "health")
        }
        public["app"].pop("secret_key", None)
        public["logging"] = {"level": self.config["logging"]["level"]}
        return public

    @property
    def environment(self) -> str:
        return self.config["app"]["environment"]

    def is_production(self) -> bool:
        return self.environment == "production"

    def is_development(self) -> bool:
        return self.environment == "development"

    def is_testing(self) -> bool:
        return self.environment == "testing"

    def __getitem__(self, key: str) -> Any:
        return self.config[key]

    def __contains__(self, key: str) -> bool:
        return key in self.config


_config: Optional[Config] = None


def get_config() -> Config:
    """The process-wide configuration, loaded on first use."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def set_config(config: Config) -> Config:
    """Install an already built configuration as the global instance."""
    global _config
    _config = config
    return _config


def reload_config() -> Config:
    """Re-read the configuration file currently in use."""
    global _config
    _config = Config(str(_config.config_file) if _config is not None else None)
    return _config
