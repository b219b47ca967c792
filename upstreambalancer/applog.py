"""Application logging: severity levels, per-thread names and version banner."""

from __future__ import annotations

import datetime
import enum
import logging
import platform
import sys
import threading
from typing import TextIO

PROGRAM_NAME = "upstreambalancer"
PROGRAM_VERSION = "1.6.0"

GIT_REV = "N/A"
GIT_REV_SHORT = "N/A"
GIT_TAG = "N/A"
GIT_BRANCH = "N/A"
BUILD_DATETIME = "N/A"

PROXY_HANDSHAKE_AUTH = False

# Maximum number of time-history records kept per upstream when memory use is limited.
LIMIT_TIME_HISTORY_NUMBER = 12

LOGGER_NAME = "upstreambalancer"

_UNNAMED_THREAD = "no name"


class SeverityLevel(enum.IntEnum):
    """Severity of a log record, from least to most severe."""

    trace = 0
    debug = 1
    info = 2
    info_VSERION = 3
    warning = 4
    error = 5
    fatal = 6

    @property
    def label(self) -> str:
        """Text written for this level in log lines."""
        return self.name

    @property
    def logging_level(self) -> int:
        """The matching numeric level of the standard logging module."""
        return _LOGGING_LEVELS[self]

    @classmethod
    def parse(cls, value: "SeverityLevel | str | int") -> "SeverityLevel":
        """Return the level named or numbered by ``value``."""
        if isinstance(value, SeverityLevel):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip()]
            except KeyError:
                raise ValueError(f"unknown severity level {value!r}") from None
        if isinstance(value, int) and not isinstance(value, bool):
            try:
                return cls(value)
            except ValueError:
                raise ValueError(f"unknown severity level {value!r}") from None
        raise TypeError(f"severity level must be a name or number, not {type(value).__name__}")


_LOGGING_LEVELS = {
    SeverityLevel.trace: 5,
    SeverityLevel.debug: logging.DEBUG,
    SeverityLevel.info: logging.INFO,
    SeverityLevel.info_VSERION: 25,
    SeverityLevel.warning: logging.WARNING,
    SeverityLevel.error: logging.ERROR,
    SeverityLevel.fatal: logging.CRITICAL,
}


class AssertionFailure(AssertionError):
    """Raised when an internal consistency check fails."""

    def __init__(self, expr: str, function: str, file: str, line: int, msg: str | None = None):
        self.expr = expr
        self.msg = msg
        self.function = function
        self.file = file
        self.line = line
        super().__init__(_assertion_text(expr, msg, function, file, line))


_thread_state = threading.local()


def set_thread_name(name: str) -> None:
    """Set the name shown in log lines for the calling thread."""
    _thread_state.name = str(name)


def get_thread_name() -> str:
    """Return the calling thread's log name, or ``"no name"`` if none is set."""
    name = getattr(_thread_state, "name", "")
    return name if name else _UNNAMED_THREAD


class _LineFormatter(logging.Formatter):
    """Formats records as ``[time][G:rev][thread id][thread name][severity] message``."""

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S.%f")
        thread_name = getattr(record, "thread_name", None) or get_thread_name()
        severity = getattr(record, "severity", None) or record.levelname.lower()
        text = (
            f"[{stamp}][G:{GIT_REV_SHORT}][{record.thread}]"
            f"[{thread_name.rjust(6)}][{severity}] {record.getMessage()}"
        )
        if record.exc_info:
            text = f"{text}\n{self.formatException(record.exc_info)}"
        return text


_handler_lock = threading.Lock()
_installed_handler: logging.Handler | None = None


def get_logger() -> logging.Logger:
    """Return the application logger."""
    return logging.getLogger(LOGGER_NAME)


def init_logging(stream: TextIO | None = None) -> logging.Handler:
    """Send application log lines to ``stream`` (standard output by default).

    A handler installed by an earlier call is replaced. The version banner and
    one sample line per severity level are logged. Returns the new handler.
    """
    global _installed_handler
    target = sys.stdout if stream is None else stream
    logger = get_logger()
    handler = logging.StreamHandler(target)
    handler.setFormatter(_LineFormatter())
    handler.setLevel(SeverityLevel.trace.logging_level)
    with _handler_lock:
        if _installed_handler is not None:
            logger.removeHandler(_installed_handler)
        logger.addHandler(handler)
        _installed_handler = handler
    logger.setLevel(SeverityLevel.trace.logging_level)
    logger.propagate = False

    log(SeverityLevel.info_VSERION, version_info())
    for level in SeverityLevel:
        log(level, f"log({level.label})")
    return handler


def log(level: SeverityLevel | str | int, message: object) -> None:
    """Write ``message`` to the application log at ``level``."""
    severity = SeverityLevel.parse(level)
    get_logger().log(
        severity.logging_level,
        "%s",
        message,
        extra={"severity": severity.label, "thread_name": get_thread_name()},
    )


def relay_prefix(relay_id: object) -> str:
    """Return the prefix that tags a log line with a relay session id."""
    return f"[R:{str(relay_id).rjust(6)}] "


def log_with_id(relay_id: object, level: SeverityLevel | str | int, message: object) -> None:
    """Write ``message`` tagged with ``relay_id`` to the application log."""
    log(level, f"{relay_prefix(relay_id)}{message}")


_version_lock = threading.Lock()
_version_text: str | None = None


def _build_version_info() -> str:
    lines = [
        PROGRAM_NAME,
        f"   ProgramVersion {PROGRAM_VERSION}",
        f"   CodeVersion_GIT_REV {GIT_REV}",
        f"   CodeVersion_GIT_REV_F {GIT_REV_SHORT}",
        f"   CodeVersion_GIT_TAG {GIT_TAG}",
        f"   CodeVersion_GIT_BRANCH {GIT_BRANCH}",
        f"   Python {platform.python_version()}",
    ]
    try:
        import ssl
    except ImportError:
        lines.append("   OpenSSL Version unavailable")
    else:
        lines.append(f"   OpenSSL Version {ssl.OPENSSL_VERSION}")
    lines.append(f"   BUILD_DATETIME {BUILD_DATETIME}")
    lines.append(f"   Need_ProxyHandshakeAuth {'ON' if PROXY_HANDSHAKE_AUTH else 'OFF'}")
    lines.append(" " + "-" * 73 + " ")
    return "\n".join(lines)


def version_info() -> str:
    """Return the version and build information banner."""
    global _version_text
    if _version_text is None:
        with _version_lock:
            if _version_text is None:
                _version_text = _build_version_info()
    return _version_text


def _assertion_text(expr: str, msg: str | None, function: str, file: str, line: int) -> str:
    if msg is None:
        head = f"assertion_failed : [{expr}]"
    else:
        head = f"assertion_failed_msg : [{expr}] msg [{msg}]"
    return f"{head} on function [{function}] on file [{file}] at line [{line}]"


def assertion_failed(expr: str, function: str, file: str, line: int) -> None:
    """Log a failed check at fatal level and raise AssertionFailure."""
    log(SeverityLevel.fatal, _assertion_text(expr, None, function, file, line))
    raise AssertionFailure(expr, function, file, line)


def assertion_failed_msg(expr: str, msg: str, function: str, file: str, line: int) -> None:
    """Log a failed check with a message at fatal level and raise AssertionFailure."""
    log(SeverityLevel.fatal, _assertion_text(expr, msg, function, file, line))
    raise AssertionFailure(expr, function, file, line, msg)