"""
Utility functions for modstage.

Includes logging setup, the phase log collaborator and console output.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Protocol, runtime_checkable

from rich.console import Console
from rich.logging import RichHandler


# Global console for pretty output
console = Console()

LOGGER_NAME = "modstage"

# Context keys accepted from callers, mapped to LogRecord attribute names.
# "module" is a reserved LogRecord attribute.
CONTEXT_FIELDS = {
    "event": "event",
    "module": "module_name",
    "phase": "phase",
    "attempt": "attempt",
    "metadata": "metadata",
}


def setup_logging(
    log_file: Optional[Path] = None,
    log_level: str = "INFO",
    log_format: str = "structured",
    console_output: bool = True,
) -> logging.Logger:
    """
    Set up the modstage logger.

    Args:
        log_file: Optional path to a log file
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: "structured" (JSON) or "pretty" (human-readable)
        console_output: Also log to console

    Returns:
        Configured logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, log_level.upper()))
    logger.handlers = []  # Clear existing handlers

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        if log_format == "structured":
            file_handler.setFormatter(StructuredFormatter())
        else:
            file_handler.setFormatter(
                logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            )
        logger.addHandler(file_handler)

    if console_output:
        if log_format == "pretty":
            console_handler = RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_time=False)
        else:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(StructuredFormatter())
        logger.addHandler(console_handler)

    if not logger.handlers:
        # Keeps records off the lastResort stderr handler
        logger.addHandler(logging.NullHandler())

    return logger


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add explicit context fields if present
        for key, attr in CONTEXT_FIELDS.items():
            if hasattr(record, attr):
                log_data[key] = getattr(record, attr)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


@runtime_checkable
class PhaseLog(Protocol):
    """
    Logging collaborator used by the phase runner and orchestrator.

    Purely observational: implementations must not raise and their return
    value is ignored. Context (module, phase, attempt, event) is passed
    explicitly by the caller.
    """

    def log(self, message: str, is_warning: bool = False, **context: Any) -> None:
        ...


class LoggerPhaseLog:
    """PhaseLog backed by a stdlib logger."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(f"{LOGGER_NAME}.run")

    def log(self, message: str, is_warning: bool = False, **context: Any) -> None:
        level = logging.WARNING if is_warning else logging.INFO
        self.logger.log(level, message, extra=_extra(context))

    def debug(self, message: str, **context: Any) -> None:
        self.logger.debug(message, extra=_extra(context))


def _extra(context: dict[str, Any]) -> dict[str, Any]:
    """Map known context keys with values onto LogRecord-safe names."""
    return {
        CONTEXT_FIELDS[k]: v
        for k, v in context.items()
        if k in CONTEXT_FIELDS and v is not None
    }


def format_duration(seconds: float) -> str:
    """
    Format duration in seconds to human-readable string.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted string (e.g., "1m 23s", "45s", "120ms")
    """
    if seconds < 1:
        return f"{int(seconds * 1000)}ms"
    if seconds < 60:
        return f"{int(seconds)}s"

    minutes = int(seconds // 60)
    remaining_seconds = int(seconds % 60)

    if minutes < 60:
        return f"{minutes}m {remaining_seconds}s"

    hours = minutes // 60
    remaining_minutes = minutes % 60
    return f"{hours}h {remaining_minutes}m {remaining_seconds}s"


# Console mark and rich style per outcome status ("info" for neutral notes)
STATUS_MARKS = {
    "succeeded": ("✓", "bold green"),
    "failed": ("✗", "bold red"),
    "skipped": ("-", "yellow"),
    "cancelled": ("⚠", "bold magenta"),
    "info": ("ℹ", "bold cyan"),
}


def status_markup(status: str) -> str:
    """Rich markup for a status value, e.g. in a summary table cell."""
    _, style = STATUS_MARKS[status]
    return f"[{style}]{status}[/{style}]"


def print_status(status: str, message: str) -> None:
    """Print a message prefixed with the mark of an outcome status."""
    mark, style = STATUS_MARKS[status]
    console.print(f"[{style}]{mark}[/{style}] {message}")


def print_run_header(module_count: int, phases: list[str]) -> None:
    """
    Print the rule opening a run's console summary.

    Args:
        module_count: Number of modules in the run
        phases: Phase names, in order
    """
    console.rule(
        f"[bold blue]modstage run[/bold blue]: {module_count} module(s), "
        f"{' -> '.join(phases)}"
    )
