"""Structured logging for gentl-conformance.

Builds on Python's standard logging module with:
- Structured data support (key-value pairs in logs)
- JSON formatting option for machine-readable run logs
- Context management for per-configuration tracking
- An optional run log file written next to the console output

Design Principles:
- Compatible with standard logging (drop-in replacement)
- Structured data via extra dict (Python logging standard)
- Thread-safe context management

Security Note:
    Producer paths and device names come from the host environment and from
    vendor firmware. Pass them as structured keyword arguments rather than
    interpolating them into the message string:

    # SAFE - structured data is formatted separately
    logger.info("Device enumerated", device_name=name, producer=path)

    # UNSAFE - a device name containing CRLF could forge log lines
    logger.info(f"Device {name} enumerated under {path}")

Example:
    logger = get_logger(__name__)

    logger.info("Run started")
    logger.info("Spec cache hit", key="gentl_Cam_Mono8")

    with LogContext(configuration="a1b2c3d4", device_id=1):
        logger.info("Running test point")  # Includes configuration context

    # Write the run log to a file as well
    configure_logging(log_file=Path("/tmp/log0101202412000.txt"), force=True)
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
import threading
from collections.abc import MutableMapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, cast

#: Name of the package root logger that owns all handlers.
ROOT_LOGGER_NAME = "gentl_conformance"

# Context variable for structured logging context
_log_context: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar(
    "log_context", default={}
)


# =============================================================================
# Structured Log Record
# =============================================================================


class StructuredLogRecord(logging.LogRecord):
    """LogRecord with structured data support.

    Extends standard LogRecord to include structured key-value data
    that can be formatted as JSON or human-readable text.
    """

    structured_data: dict[str, Any]

    def __init__(
        self,
        name: str,
        level: int,
        pathname: str,
        lineno: int,
        msg: object,
        args: tuple[Any, ...] | MutableMapping[str, Any] | None,
        exc_info: Any,
        func: str | None = None,
        sinfo: str | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize a structured log record.

        Args:
            name: Logger name (e.g., 'gentl_conformance.devices.producers').
            level: Numeric log level.
            pathname: Source file where the log call was made.
            lineno: Line number in the source file.
            msg: Log message (may contain % placeholders).
            args: Arguments for % formatting, or None.
            exc_info: Exception info tuple, or None.
            func: Function name, or None.
            sinfo: Stack info string, or None.
            **kwargs: If 'structured_data' is present its dict is stored,
                otherwise an empty dict.
        """
        super().__init__(
            name, level, pathname, lineno, msg, args, exc_info, func, sinfo
        )
        self.structured_data = kwargs.get("structured_data", {})


# =============================================================================
# Structured Logger
# =============================================================================


class StructuredLogger(logging.Logger):
    """Logger with structured data support.

    Extends standard Logger to accept keyword arguments that become
    structured data in the log record.

    Usage:
        logger = StructuredLogger("gentl_conformance.suite")
        logger.warning("Unknown test token", token="tFoo")
    """

    def debug(
        self,
        msg: object,
        *args: Any,
        exc_info: Any = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        extra: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> None:
        """Log debug message with optional structured data kwargs."""
        if self.isEnabledFor(logging.DEBUG):
            self._log(
                logging.DEBUG,
                msg,
                args,
                exc_info=exc_info,
                extra=extra,
                stack_info=stack_info,
                stacklevel=stacklevel + 1,
                **kwargs,
            )

    def info(
        self,
        msg: object,
        *args: Any,
        exc_info: Any = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        extra: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> None:
        """Log info message with optional structured data kwargs."""
        if self.isEnabledFor(logging.INFO):
            self._log(
                logging.INFO,
                msg,
                args,
                exc_info=exc_info,
                extra=extra,
                stack_info=stack_info,
                stacklevel=stacklevel + 1,
                **kwargs,
            )

    def warning(
        self,
        msg: object,
        *args: Any,
        exc_info: Any = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        extra: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> None:
        """Log warning message with optional structured data kwargs."""
        if self.isEnabledFor(logging.WARNING):
            self._log(
                logging.WARNING,
                msg,
                args,
                exc_info=exc_info,
                extra=extra,
                stack_info=stack_info,
                stacklevel=stacklevel + 1,
                **kwargs,
            )

    def error(
        self,
        msg: object,
        *args: Any,
        exc_info: Any = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        extra: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> None:
        """Log error message with optional structured data kwargs."""
        if self.isEnabledFor(logging.ERROR):
            self._log(
                logging.ERROR,
                msg,
                args,
                exc_info=exc_info,
                extra=extra,
                stack_info=stack_info,
                stacklevel=stacklevel + 1,
                **kwargs,
            )

    def _log(
        self,
        level: int,
        msg: object,
        args: tuple[Any, ...] | MutableMapping[str, Any] | None = None,
        exc_info: Any = None,
        extra: dict[str, Any] | None = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        **kwargs: Any,
    ) -> None:
        """Log a message with structured data support.

        Keyword arguments are merged over the active LogContext values,
        so a call-site value overrides the ambient one with the same key.

        Args:
            level: Numeric log level.
            msg: Log message, may contain % placeholders.
            args: Arguments for % formatting.
            exc_info: Exception info or True to capture the current one.
            extra: Extra dict for the LogRecord; 'structured_data' is
                added or overwritten.
            stack_info: If True, include a stack trace.
            stacklevel: Stack frames to skip for caller info.
            **kwargs: Structured key-value data (producer, device_id, key...).
        """
        context = _log_context.get()
        structured_data = {**context, **kwargs}

        if extra is None:
            extra = {}
        extra["structured_data"] = structured_data

        super()._log(
            level,
            msg,
            args,
            exc_info=exc_info,
            extra=extra,
            stack_info=stack_info,
            stacklevel=stacklevel + 1,
        )


# =============================================================================
# Formatters
# =============================================================================


class StructuredFormatter(logging.Formatter):
    """Human-readable formatter with structured data.

    Format: timestamp - name - level - message | key=value key=value
    """

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        include_structured: bool = True,
    ) -> None:
        """Initialize the structured formatter.

        Args:
            fmt: Format string using LogRecord attributes. Defaults to
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'.
            datefmt: Date format for %(asctime)s, or None for the default.
            include_structured: If True, append ' | key=value' pairs.
        """
        if fmt is None:
            fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        super().__init__(fmt, datefmt)
        self.include_structured = include_structured

    def format(self, record: logging.LogRecord) -> str:
        """Format a record as text, appending structured data if present.

        Args:
            record: The LogRecord to format. A missing or empty
                'structured_data' attribute yields only the base format.

        Returns:
            Formatted line, e.g.
            '... - WARNING - Unknown test token | token=tFoo'.
        """
        base = super().format(record)

        if not self.include_structured:
            return base

        structured = getattr(record, "structured_data", {})
        if not structured:
            return base

        pairs = " ".join(f"{k}={_format_value(v)}" for k, v in structured.items())
        return f"{base} | {pairs}"


class JSONFormatter(logging.Formatter):
    """JSON formatter for machine-readable run logs.

    Outputs each log record as a single JSON line with:
    - timestamp (ISO format)
    - level
    - logger name
    - message
    - All structured data as top-level keys
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as a single-line JSON object.

        Args:
            record: The LogRecord to format. Its 'structured_data' is merged
                at top level; exception info is added as 'exception'.

        Returns:
            Single-line JSON string with no trailing newline.
        """
        log_dict: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        structured = getattr(record, "structured_data", {})
        log_dict.update(structured)

        if record.exc_info:
            log_dict["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_dict, default=str)


def _format_value(value: Any) -> str:
    """Format a value for key=value output.

    Rules:
    - None: 'null'
    - Strings: as-is, quoted when they contain spaces
    - Dicts/lists: JSON
    - Everything else: str()

    Args:
        value: Value to format.

    Returns:
        String representation for log output.

    Example:
        >>> _format_value(None)
        'null'
        >>> _format_value("/opt/My Producer")
        '"/opt/My Producer"'
        >>> _format_value([1, 2])
        '[1, 2]'
    """
    if value is None:
        return "null"
    if isinstance(value, str):
        if " " in value:
            return f'"{value}"'
        return value
    if isinstance(value, dict | list):
        return json.dumps(value, default=str)
    return str(value)


# =============================================================================
# Context Management
# =============================================================================


@dataclass
class LogContext:
    """Context manager for structured logging context.

    Adds key-value pairs to all log messages within the context.
    Thread-safe and supports nesting.

    Usage:
        with LogContext(test_file="tFormats"):
            with LogContext(configuration="a1b2c3d4", video_format="Mono8"):
                logger.info("Running")  # Includes all three
    """

    _kwargs: dict[str, Any] = field(default_factory=dict, init=False, repr=True)
    _token: contextvars.Token[dict[str, Any]] | None = field(
        default=None, init=False, repr=False
    )

    def __init__(self, **kwargs: Any) -> None:
        """Initialize a logging context with key-value pairs.

        Args:
            **kwargs: Key-value pairs injected into every record emitted
                inside the context. Inner contexts override outer values.
        """
        self._kwargs = kwargs

    def __enter__(self) -> LogContext:
        """Activate this context's values on top of the current ones.

        Returns:
            Self.
        """
        current = _log_context.get()
        new_context = {**current, **self._kwargs}
        self._token = _log_context.set(new_context)
        return self

    def __exit__(self, *args: Any) -> None:
        """Restore the previous logging context. Exceptions propagate."""
        if self._token is not None:
            _log_context.reset(self._token)


# =============================================================================
# Configuration
# =============================================================================

_configured = False
_config_lock = threading.Lock()


def configure_logging(
    level: int | str = logging.INFO,
    json_format: bool = False,
    stream: Any = None,
    include_structured: bool = True,
    force: bool = False,
    log_file: Path | str | None = None,
) -> None:
    """Configure the gentl-conformance structured logging system.

    Sets up handlers and formatters on the 'gentl_conformance' root
    logger. Idempotent: later calls have no effect unless force=True.
    Protected by a lock for concurrent initialization.

    The run log file, when given, receives the same records as the console
    stream with the same formatter, so the file is a faithful diary of the
    run that can be attached to a bug report.

    Args:
        level: Minimum level, int or name ('DEBUG', 'INFO'...). Default INFO.
        json_format: Use JSONFormatter instead of StructuredFormatter.
        stream: Console stream. Default: sys.stderr.
        include_structured: Append ' | key=value' data in text mode.
        force: Reconfigure even if already configured.
        log_file: Optional path of a run log file. Parent directories are
            created; the file is opened in write mode.

    Raises:
        OSError: If the run log file cannot be created.

    Example:
        >>> configure_logging(level=logging.DEBUG)
        >>> configure_logging(log_file="/tmp/log0101202412000.txt", force=True)
    """
    with _config_lock:
        if force:
            _reset_logging_impl()
        _configure_logging_impl(
            level, json_format, stream, include_structured, log_file
        )


def _configure_logging_impl(
    level: int | str = logging.INFO,
    json_format: bool = False,
    stream: Any = None,
    include_structured: bool = True,
    log_file: Path | str | None = None,
) -> None:
    """Internal implementation of configure_logging (assumes lock is held)."""
    global _configured

    if _configured:
        return

    logging.setLoggerClass(StructuredLogger)

    if stream is None:
        stream = sys.stderr

    formatter: logging.Formatter
    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = StructuredFormatter(include_structured=include_structured)

    handlers: list[logging.Handler] = [logging.StreamHandler(stream)]
    if log_file is not None:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, mode="w", encoding="utf-8"))

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    # Prevent propagation to root logger (avoid duplicate logs)
    root.propagate = False

    _configured = True


def _reset_logging_impl() -> None:
    """Internal implementation of reset_logging (assumes lock is held)."""
    global _configured

    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    _configured = False


def reset_logging() -> None:
    """Reset the logging system to its unconfigured state.

    Removes and closes every handler on the package root logger (which
    also closes an open run log file). The next configure_logging() or
    get_logger() call reinitializes logging.
    """
    with _config_lock:
        _reset_logging_impl()


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger for the given module.

    Configures logging with defaults (INFO, text, stderr) on first use if
    configure_logging() has not been called yet.

    Args:
        name: Logger name, normally __name__.

    Returns:
        StructuredLogger supporting ``logger.info("msg", key=value)``.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("Producer discovered", producer="/opt/gentl/vendor")
    """
    # Double-checked locking pattern for thread-safe lazy initialization
    if not _configured:
        with _config_lock:
            if not _configured:  # pragma: no branch
                _configure_logging_impl()

    logger = logging.getLogger(name)

    # setLoggerClass() in configure guarantees the subclass
    return cast(StructuredLogger, logger)


def run_log_path(log_directory: Path | str, when: datetime | None = None) -> Path:
    """Build the run log path for a suite run.

    The file name follows ``log<MMddyyyyHHmmss>.txt`` so successive runs
    sort chronologically within a month and never collide in practice.

    Args:
        log_directory: Directory that will hold the log file.
        when: Timestamp to encode; defaults to now (local time).

    Returns:
        Full path of the log file (not created).

    Example:
        >>> run_log_path("/tmp", datetime(2024, 3, 9, 14, 5, 7)).name
        'log03092024140507.txt'
    """
    when = when or datetime.now()
    return Path(log_directory) / f"log{when:%m%d%Y%H%M%S}.txt"
