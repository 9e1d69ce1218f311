# genstudio/logging_config.py
"""
Stderr-only logging configuration.

Two formats: JSON lines for machine consumption and the human-readable
CLI format. stdout is reserved for command output.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

CLI_FORMAT = "%(asctime)s  %(levelname)-7s  %(message)s"
JOB_FIELDS = ("job_kind", "job_id", "job_state")


class JsonFormatter(logging.Formatter):
    """
    Formats log records as JSON for structured logging.

    Job context passed via `extra` (job_kind, job_id, job_state) is lifted
    into top-level keys so one job's lines can be filtered together.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON line."""
        log_data: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        for field in JOB_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_data[field] = value

        # Include exception info if present
        if record.exc_info:
            log_data["exc"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def _install(handler: logging.Handler, level: int) -> None:
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # httpx logs every request at INFO
    for logger_name in ["httpx", "httpcore"]:
        logging.getLogger(logger_name).setLevel(
            logging.DEBUG if level <= logging.DEBUG else logging.WARNING
        )


def configure_logging(verbosity: int = 1) -> None:
    """
    Configure logging to output JSON to stderr only.

    Clears existing handlers to prevent stdout pollution.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter())
    _install(handler, verbosity_level(verbosity))


def verbosity_level(verbosity: int) -> int:
    """Map a -v count to a log level: warnings only, then INFO, then DEBUG."""
    if verbosity >= 2:
        return logging.DEBUG
    if verbosity == 1:
        return logging.INFO
    return logging.WARNING


def configure_cli_logging(verbosity: int = 0) -> None:
    """Simple human-readable logging to stderr for interactive CLI use."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(CLI_FORMAT, datefmt="%H:%M:%S"))
    _install(handler, verbosity_level(verbosity))
