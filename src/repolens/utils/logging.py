"""Standardized logging system.

Provides three output modes:
- Human mode: [LEVEL] message (colored if TTY)
- Verbose mode: [LEVEL][HH:MM:SS] logger: message
- CI/JSON mode: {"level":"...","ts":"...","logger":"...","msg":"..."}

Pipeline code logs through JobLogAdapter so every line carries the job id.
"""

import json
import logging
import sys
from collections.abc import MutableMapping
from datetime import UTC, datetime
from enum import Enum
from typing import Any, TextIO

ROOT_LOGGER = "repolens"


class LogMode(Enum):
    """Logging output mode."""

    HUMAN = "human"
    VERBOSE = "verbose"
    JSON = "json"


class Colors:
    """ANSI color codes for terminal output."""

    RESET = "\033[0m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    RED = "\033[31m"
    CYAN = "\033[36m"
    GRAY = "\033[90m"


LEVEL_COLORS = {
    logging.DEBUG: Colors.GRAY,
    logging.INFO: Colors.GREEN,
    logging.WARNING: Colors.YELLOW,
    logging.ERROR: Colors.RED,
    logging.CRITICAL: Colors.RED,
}


def _is_tty(stream: TextIO | None = None) -> bool:
    """Check if the stream is a TTY (supports colors)."""
    if stream is None:
        stream = sys.stderr
    return hasattr(stream, "isatty") and stream.isatty()


def _job_prefix(record: logging.LogRecord) -> str:
    job_id = getattr(record, "job_id", None)
    return f"[{job_id[:8]}] " if job_id else ""


class HumanFormatter(logging.Formatter):
    """Formatter for human-readable output.

    Format: [LEVEL] message
    """

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record."""
        message = f"{_job_prefix(record)}{record.getMessage()}"
        if self.use_colors:
            color = LEVEL_COLORS.get(record.levelno, Colors.RESET)
            return f"{color}[{record.levelname}]{Colors.RESET} {message}"
        return f"[{record.levelname}] {message}"


class VerboseFormatter(logging.Formatter):
    """Formatter for verbose output with timestamps and logger names.

    Format: [LEVEL][HH:MM:SS] logger: message
    """

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record with timestamp."""
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        message = f"{record.name}: {_job_prefix(record)}{record.getMessage()}"
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        if self.use_colors:
            color = LEVEL_COLORS.get(record.levelno, Colors.RESET)
            return f"{color}[{record.levelname}]{Colors.RESET}[{timestamp}] {message}"
        return f"[{record.levelname}][{timestamp}] {message}"


class JSONFormatter(logging.Formatter):
    """Formatter for JSON lines output (machine-readable).

    Format: {"level":"INFO","ts":"2026-01-31T19:45:23+00:00","logger":"...","msg":"..."}
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON."""
        log_entry: dict[str, Any] = {
            "level": record.levelname,
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        job_id = getattr(record, "job_id", None)
        if job_id:
            log_entry["job_id"] = job_id
        if hasattr(record, "extra_data"):
            log_entry.update(record.extra_data)
        if record.exc_info:
            log_entry["exc"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class RepoLensLogger(logging.Logger):
    """Custom logger with structured logging support."""

    def structured(
        self,
        level: int,
        msg: str,
        **kwargs: Any,
    ) -> None:
        """Log a message with additional structured data.

        Args:
            level: Log level
            msg: Log message
            **kwargs: Additional data included in JSON output
        """
        if not self.isEnabledFor(level):
            return
        record = self.makeRecord(self.name, level, "(unknown)", 0, msg, (), None)
        if kwargs:
            record.extra_data = kwargs  # type: ignore[attr-defined]
        self.handle(record)


logging.setLoggerClass(RepoLensLogger)


class JobLogAdapter(logging.LoggerAdapter):
    """Logger adapter that tags every record with a job id."""

    def __init__(self, logger: logging.Logger, job_id: str) -> None:
        super().__init__(logger, {"job_id": job_id})

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("job_id", self.extra["job_id"])  # type: ignore[index]
        kwargs["extra"] = extra
        return msg, kwargs


def get_logger(name: str = ROOT_LOGGER) -> RepoLensLogger:
    """Get a RepoLens logger instance.

    Args:
        name: Logger name

    Returns:
        RepoLensLogger instance
    """
    return logging.getLogger(name)  # type: ignore[return-value]


def setup_logging(
    mode: LogMode = LogMode.HUMAN,
    level: int = logging.INFO,
    stream: TextIO | None = None,
) -> None:
    """Configure the package logger with the specified mode.

    Args:
        mode: Output mode (human, verbose, json)
        level: Minimum log level
        stream: Output stream (default: stderr, so JSON results on stdout stay clean)
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    logger.handlers.clear()
    logger.propagate = False

    output = stream or sys.stderr
    use_colors = _is_tty(output)

    if mode == LogMode.JSON:
        formatter: logging.Formatter = JSONFormatter()
    elif mode == LogMode.VERBOSE:
        formatter = VerboseFormatter(use_colors=use_colors)
    else:
        formatter = HumanFormatter(use_colors=use_colors)

    handler = logging.StreamHandler(output)
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    # LiteLLM and httpx are chatty at INFO
    for noisy in ("LiteLLM", "litellm", "httpx"):
        logging.getLogger(noisy).setLevel(logging.DEBUG if level <= logging.DEBUG else logging.WARNING)


def configure_from_cli(
    verbose: bool = False,
    quiet: bool = False,
    ci: bool = False,
) -> LogMode:
    """Configure logging based on CLI flags.

    Args:
        verbose: Enable verbose mode with timestamps
        quiet: Suppress info messages (warnings and errors only)
        ci: Enable JSON output for CI/CD

    Returns:
        The selected log mode
    """
    if ci:
        mode = LogMode.JSON
    elif verbose:
        mode = LogMode.VERBOSE
    else:
        mode = LogMode.HUMAN

    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    setup_logging(mode=mode, level=level)
    return mode
