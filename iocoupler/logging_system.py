# iocoupler/logging_system.py
"""
Structured logging for coupler sessions.

Provides:
- Plain console logging and rotating JSON file logging
- Event classification (severity, category)
- In-memory audit trail of process-affecting events (staged outputs,
  discovery results)
- A global logger factory so every module can call get_logger(__name__)
"""

import json
import logging
import logging.handlers
import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

__all__ = [
    "EventSeverity",
    "EventCategory",
    "LogEntry",
    "JSONFormatter",
    "CouplerLogger",
    "configure_logging",
    "get_logger",
]

# ----------------------------------------------------------------
# Event Classification
# ----------------------------------------------------------------


class EventSeverity(Enum):
    """
    Event severity levels.

    Lower number = higher severity
    """

    CRITICAL = 1
    ERROR = 3
    WARNING = 4
    NOTICE = 5  # Normal but significant events
    INFO = 6
    DEBUG = 7


class EventCategory(Enum):
    """Event categories."""

    PROCESS = "process"  # Output mutations, process image changes
    AUDIT = "audit"  # Operator-initiated actions
    SYSTEM = "system"  # Session lifecycle
    COMMUNICATION = "communication"  # Transport/protocol events
    DIAGNOSTIC = "diagnostic"  # Discovery, inventory


LOGGING_TO_SEVERITY = {
    logging.CRITICAL: EventSeverity.CRITICAL,
    logging.ERROR: EventSeverity.ERROR,
    logging.WARNING: EventSeverity.WARNING,
    logging.INFO: EventSeverity.INFO,
    logging.DEBUG: EventSeverity.DEBUG,
}

SEVERITY_TO_LOGGING = {
    EventSeverity.CRITICAL: logging.CRITICAL,
    EventSeverity.ERROR: logging.ERROR,
    EventSeverity.WARNING: logging.WARNING,
    EventSeverity.NOTICE: logging.INFO,
    EventSeverity.INFO: logging.INFO,
    EventSeverity.DEBUG: logging.DEBUG,
}

# Categories retained in the audit trail
AUDITED_CATEGORIES = (EventCategory.PROCESS, EventCategory.AUDIT)


# ----------------------------------------------------------------
# Structured Log Entry
# ----------------------------------------------------------------


@dataclass
class LogEntry:
    """Structured log entry."""

    wall_time: float
    severity: EventSeverity
    category: EventCategory
    message: str

    device: str = ""  # Coupler host or name
    component: str = ""
    event_id: str = ""
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialisation."""
        entry_dict = {
            "wall_time": self.wall_time,
            "severity": self.severity.name,
            "category": self.category.value,
            "message": self.message,
        }

        if self.device:
            entry_dict["device"] = self.device
        if self.component:
            entry_dict["component"] = self.component
        if self.event_id:
            entry_dict["event_id"] = self.event_id
        if self.data:
            entry_dict["data"] = json.dumps(self.data, default=str)

        return entry_dict

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict())

    def to_human_readable(self) -> str:
        """Convert to human-readable format."""
        severity_str = f"[{self.severity.name:8s}]"
        device_str = f"{self.device}:" if self.device else ""
        component_str = f"{self.component}:" if self.component else ""

        return f"{severity_str} {device_str}{component_str} {self.message}"


# ----------------------------------------------------------------
# JSON Formatter for Python logging
# ----------------------------------------------------------------


class JSONFormatter(logging.Formatter):
    """Format log records as JSON lines."""

    def __init__(self, device: str = ""):
        super().__init__()
        self.device = device

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        severity = LOGGING_TO_SEVERITY.get(record.levelno, EventSeverity.INFO)

        log_entry = LogEntry(
            wall_time=record.created,
            severity=severity,
            category=EventCategory.SYSTEM,
            message=record.getMessage(),
            device=self.device,
            component=record.name,
        )

        if record.exc_info:
            log_entry.data["exception"] = self.formatException(record.exc_info)

        return log_entry.to_json()


# ----------------------------------------------------------------
# Coupler Logger
# ----------------------------------------------------------------


class CouplerLogger:
    """
    Logger wrapper used throughout the package.

    Wraps Python's logging with:
    - Console output
    - Optional rotating JSON log file
    - Event classification and an audit trail
    """

    def __init__(
        self,
        name: str,
        device: str = "",
        log_dir: Path | None = None,
        level: int = logging.DEBUG,
        enable_json: bool = True,
        enable_console: bool = True,
        max_audit_entries: int = 10000,
    ):
        """
        Initialise logger.

        Args:
            name: Logger name (typically module name)
            device: Device name for context
            log_dir: Directory for log files (None = no file logging)
            level: Minimum level handled
            enable_json: Enable JSON formatted logs (requires log_dir)
            enable_console: Enable console output
            max_audit_entries: Maximum audit trail entries to retain
        """
        self.name = name
        self.device = device
        self.log_dir = log_dir
        self.enable_json = enable_json

        self.logger = logging.getLogger(name)
        self.logger.setLevel(level)
        self.logger.propagate = False

        self.logger.handlers.clear()

        if enable_console:
            self._add_console_handler()

        if enable_json and log_dir:
            self._add_json_handler()

        self.audit_trail: list[LogEntry] = []
        self._max_audit_entries = max_audit_entries

    def _add_console_handler(self) -> None:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)8s] %(name)s: %(message)s")
        )
        self.logger.addHandler(handler)

    def _add_json_handler(self) -> None:
        """Add JSON file handler with rotation, shared by loggers writing the same file."""
        if not self.log_dir:
            return

        self.log_dir.mkdir(parents=True, exist_ok=True)
        log_file = (self.log_dir / f"{self.device or 'coupler'}.json.log").resolve()

        with _json_handlers_lock:
            handler = _json_handlers.get(log_file)
            if handler is None:
                # 10MB max, 5 backups
                handler = logging.handlers.RotatingFileHandler(
                    log_file,
                    maxBytes=10 * 1024 * 1024,
                    backupCount=5,
                )
                handler.setFormatter(JSONFormatter(device=self.device))
                _json_handlers[log_file] = handler

        if handler not in self.logger.handlers:
            self.logger.addHandler(handler)

    def attach_log_dir(self, log_dir: Path) -> None:
        """Start JSON file logging for a logger created without a log directory."""
        if not self.enable_json or self.log_dir:
            return
        self.log_dir = Path(log_dir)
        self._add_json_handler()

    # ----------------------------------------------------------------
    # Standard logging methods
    # ----------------------------------------------------------------

    def debug(self, message: str, **kwargs) -> None:
        self.logger.debug(message, **kwargs)

    def info(self, message: str, **kwargs) -> None:
        self.logger.info(message, **kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self.logger.warning(message, **kwargs)

    def error(self, message: str, **kwargs) -> None:
        self.logger.error(message, **kwargs)

    # ----------------------------------------------------------------
    # Structured events
    # ----------------------------------------------------------------

    def log_event(
        self,
        severity: EventSeverity,
        category: EventCategory,
        message: str,
        **kwargs,
    ) -> LogEntry:
        """
        Log a structured event.

        Args:
            severity: Event severity level
            category: Event category
            message: Event message
            **kwargs: Additional context (device, component, data)

        Returns:
            LogEntry that was created
        """
        device = kwargs.pop("device", self.device)

        entry = LogEntry(
            wall_time=time.time(),
            severity=severity,
            category=category,
            message=message,
            device=device,
            event_id=uuid.uuid4().hex[:12],
            **kwargs,
        )

        self.logger.log(SEVERITY_TO_LOGGING.get(severity, logging.INFO), entry.to_human_readable())

        if category in AUDITED_CATEGORIES:
            self.audit_trail.append(entry)
            if len(self.audit_trail) > self._max_audit_entries:
                self.audit_trail = self.audit_trail[-self._max_audit_entries :]

        return entry

    # ----------------------------------------------------------------
    # Audit trail access
    # ----------------------------------------------------------------

    def get_audit_trail(
        self,
        limit: int = 100,
        category: EventCategory | None = None,
    ) -> list[LogEntry]:
        """Most recent audit entries (oldest first), optionally filtered by category."""
        entries = self.audit_trail
        if category:
            entries = [e for e in entries if e.category == category]
        return entries[-limit:]

    def clear_audit_trail(self) -> int:
        count = len(self.audit_trail)
        self.audit_trail.clear()
        return count


# ----------------------------------------------------------------
# Global logger factory
# ----------------------------------------------------------------

_loggers: dict[str, CouplerLogger] = {}
_loggers_lock = threading.Lock()
_default_log_dir: Path | None = None
_default_level: int = logging.INFO

# One rotating handler per log file
_json_handlers: dict[Path, logging.Handler] = {}
_json_handlers_lock = threading.Lock()


def configure_logging(
    log_dir: Path | str | None = None,
    level: int | str = logging.INFO,
) -> None:
    """
    Configure global logging settings.

    Applies to loggers created before and after this call. Existing loggers
    without a log directory start writing JSON files to log_dir.

    Args:
        log_dir: Directory for JSON log files
        level: Logging level name or number
    """
    global _default_log_dir, _default_level

    if log_dir:
        _default_log_dir = Path(log_dir)
        _default_log_dir.mkdir(parents=True, exist_ok=True)

    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown logging level: {level}")
        level = resolved
    _default_level = level

    with _loggers_lock:
        for existing in _loggers.values():
            existing.logger.setLevel(level)
            if _default_log_dir:
                existing.attach_log_dir(_default_log_dir)


def get_logger(name: str, device: str = "", **kwargs) -> CouplerLogger:
    """
    Get or create a logger.

    Args:
        name: Logger name (typically __name__)
        device: Device name for context
        **kwargs: Additional CouplerLogger arguments

    Returns:
        CouplerLogger instance
    """
    logger_key = f"{name}:{device}"

    with _loggers_lock:
        if logger_key not in _loggers:
            if "log_dir" not in kwargs and _default_log_dir:
                kwargs["log_dir"] = _default_log_dir
            kwargs.setdefault("level", _default_level)

            _loggers[logger_key] = CouplerLogger(name, device, **kwargs)

        return _loggers[logger_key]
