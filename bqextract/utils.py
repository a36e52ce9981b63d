"""
Logging helpers for bqextract.

Orchestrator log records carry run-scoped fields through `extra=`
(reference_name, run_id, event). The structured format writes them as
JSON keys; the plain console format prefixes the message with the run id.
Console output goes through rich when the pretty format is selected.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from rich.logging import RichHandler


# Fields the orchestrator attaches to its log records
RUN_FIELDS = ("reference_name", "run_id", "event")

PLAIN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def run_fields(record: logging.LogRecord) -> dict[str, Any]:
    """Run-scoped fields present on a record."""
    return {key: getattr(record, key) for key in RUN_FIELDS if hasattr(record, key)}


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, run fields included."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        log_data = {
            "timestamp": created.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **run_fields(record),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data)


class RunConsoleFormatter(logging.Formatter):
    """`LEVEL: [run_id] message`, with the bracket omitted outside a run."""

    def format(self, record: logging.LogRecord) -> str:
        run_id = getattr(record, "run_id", None)
        prefix = f"[{run_id}] " if run_id else ""
        return f"{record.levelname}: {prefix}{record.getMessage()}"


def setup_logging(
    log_file: Optional[Path] = None,
    log_level: str = "INFO",
    log_format: str = "structured",
    console_output: bool = True,
) -> logging.Logger:
    """
    Set up logging for extraction runs.

    Args:
        log_file: Path to log file (None for console only)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: "structured" (JSON), "plain" or "pretty" (rich console)
        console_output: Also log to console

    Returns:
        Configured "bqextract" logger
    """
    logger = logging.getLogger("bqextract")
    logger.setLevel(getattr(logging, log_level.upper()))
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(
            StructuredFormatter() if log_format == "structured" else logging.Formatter(PLAIN_FORMAT)
        )
        logger.addHandler(file_handler)

    if console_output:
        if log_format == "pretty":
            console_handler: logging.Handler = RichHandler(rich_tracebacks=True, show_time=False)
        else:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(RunConsoleFormatter())
        logger.addHandler(console_handler)

    return logger
