"""Structured JSON logging configuration.

Configures Python logging to emit JSON-formatted log entries with required
fields: request_id, level, timestamp, environment. Extraction-specific fields
are added contextually through the ``extra`` dict (target_url, method,
proxy_id, identity_id for attempts; duration_ms, image_count for completions;
error_reason, error_type for failures; console_messages, failed_requests for
browser diagnostics).

Entries go to stderr and, when a log directory is configured, to a daily
``scraper-YYYY-MM-DD.log`` file that ``get_recent_logs`` reads back.

SECURITY: Never logs proxy credentials or auth tokens.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path

from imgharvest.middleware.request_id import request_id_var

# Patterns that should be redacted from log output
_SENSITIVE_PATTERNS = re.compile(
    r"(api.key|secret|password|token|credential|authorization)"
    r"[\s]*[=:]\s*\S+",
    re.IGNORECASE,
)

# user:pass@ in proxy URLs
_URL_CREDENTIALS = re.compile(r"(?<=://)[^/@\s:]+:[^/@\s]+@")

# Structured fields copied from the log record when present
_STRUCTURED_FIELDS: tuple[str, ...] = (
    "target_url",
    "method",
    "phase",
    "proxy_id",
    "identity_id",
    "duration_ms",
    "image_count",
    "fallback_used",
    "error_reason",
    "error_type",
    "context",
    "console_messages",
    "failed_requests",
)

_SANITIZED_FIELDS = frozenset({"error_reason"})

_environment: str = "development"


class JsonFormatter(logging.Formatter):
    """Formats log records as JSON with structured fields.

    Each entry contains at minimum: request_id, level, timestamp, message,
    environment. Additional fields can be attached via the ``extra`` dict on
    log calls.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": self._sanitize(record.getMessage()),
            "request_id": getattr(record, "request_id", None) or request_id_var.get(),
            "environment": _environment,
        }

        for name in _STRUCTURED_FIELDS:
            if hasattr(record, name):
                value = getattr(record, name)
                if name in _SANITIZED_FIELDS:
                    value = self._sanitize(str(value))
                entry[name] = value

        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self._sanitize(
                self.formatException(record.exc_info)
            )

        return json.dumps(entry, default=str)

    @staticmethod
    def _sanitize(text: str) -> str:
        """Remove sensitive values from log text."""
        text = _URL_CREDENTIALS.sub("[REDACTED]@", text)
        return _SENSITIVE_PATTERNS.sub("[REDACTED]", text)


def log_file_path(log_dir: str | Path, day: datetime | None = None) -> Path:
    """Return the daily log file path inside *log_dir*."""
    day = day or datetime.now(timezone.utc)
    return Path(log_dir) / f"scraper-{day.strftime('%Y-%m-%d')}.log"


class DailyFileHandler(logging.FileHandler):
    """File handler that switches to a new ``scraper-<date>.log`` each UTC day."""

    def __init__(self, log_dir: str | Path) -> None:
        self._log_dir = Path(log_dir)
        self._log_dir.mkdir(parents=True, exist_ok=True)
        self._current = log_file_path(self._log_dir)
        super().__init__(self._current, encoding="utf-8", delay=True)

    def emit(self, record: logging.LogRecord) -> None:
        target = log_file_path(self._log_dir)
        if target != self._current:
            self.acquire()
            try:
                self.close()
                self._current = target
                self.baseFilename = str(target.resolve())
            finally:
                self.release()
        super().emit(record)


def configure_logging(
    level: str = "INFO",
    *,
    log_dir: str | None = None,
    environment: str = "development",
) -> None:
    """Configure the root logger with JSON formatting.

    Parameters
    ----------
    level:
        Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    log_dir:
        Directory for the daily JSON log file. ``None`` disables file output.
    environment:
        Deployment environment stamped on every entry.
    """
    global _environment
    _environment = environment

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Remove existing handlers to avoid duplicates
    root.handlers.clear()

    formatter = JsonFormatter()
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    root.addHandler(handler)

    if log_dir:
        file_handler = DailyFileHandler(log_dir)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)


# ---------------------------------------------------------------------------
# Specialised log helpers
# ---------------------------------------------------------------------------


def log_scraping_error(
    log: logging.Logger,
    url: str,
    method: str,
    error: BaseException,
    context: dict | None = None,
) -> None:
    """Log a failed extraction attempt with its full context."""
    log.error(
        "Scraping failed for %s",
        url,
        exc_info=(type(error), error, error.__traceback__),
        extra={
            "target_url": url,
            "method": method,
            "error_reason": str(error),
            "error_type": type(error).__name__,
            "context": context or {},
        },
    )


def log_browser_console(log: logging.Logger, url: str, messages: list[dict]) -> None:
    """Log console messages captured while rendering *url*."""
    if messages:
        log.info(
            "Browser console messages for %s",
            url,
            extra={"target_url": url, "console_messages": messages},
        )


def log_network_failure(log: logging.Logger, url: str, failed_requests: list[dict]) -> None:
    """Log failed or error-status network requests seen while rendering *url*."""
    if failed_requests:
        log.warning(
            "Network failures detected for %s",
            url,
            extra={"target_url": url, "failed_requests": failed_requests},
        )


def get_recent_logs(
    log_dir: str | Path,
    limit: int = 50,
    level: str | None = None,
) -> list[dict]:
    """Return up to *limit* of today's log entries, newest first.

    Lines that are not valid JSON are skipped. When *level* is given only
    entries with that level are returned.
    """
    path = log_file_path(log_dir)
    if not path.exists():
        return []

    entries: list[dict] = []
    with path.open(encoding="utf-8") as fh:
        for line in fh:
            line = line.strip()
            if not line:
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                continue
            if level and entry.get("level") != level.upper():
                continue
            entries.append(entry)

    return list(reversed(entries[-limit:])) if limit > 0 else []
