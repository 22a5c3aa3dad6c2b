"""Central logging configuration for the update client.

The host application calls :func:`ensure_app_logging` once at startup so that
the update lifecycle (checks, downloads, installs, rollbacks) is recorded in a
deterministic file that can be attached to bug reports.  Repeated calls are
no-ops, which keeps tests and embedded hosts from stacking handlers.

Two environment variables control where the log file is written:

``BUNDLE_UPDATER_LOG_FILE``
    Absolute path to the log file that should be created.

``BUNDLE_UPDATER_LOG_DIR``
    Directory where the default log file name will be created.  Ignored when
    ``BUNDLE_UPDATER_LOG_FILE`` is present.
"""

from __future__ import annotations

import logging
import os
import re
import sys
from enum import Enum
from pathlib import Path
from typing import Iterable

_LOG_FILE_ENV = "BUNDLE_UPDATER_LOG_FILE"
_LOG_DIR_ENV = "BUNDLE_UPDATER_LOG_DIR"
_DEFAULT_DIRNAME = ".bundle_updater"
_DEFAULT_LOGNAME = "updater.log"
_HANDLER_TAG = "_bundle_updater_logging_handler"

_CONFIGURED = False
_LOG_PATH: Path | None = None
_FILE_HANDLER: logging.FileHandler | None = None

USER_PLACEHOLDER = "<user>"
USER_HOME_PLACEHOLDER = "<user_home>"


class LogVerbosity(str, Enum):
    """Verbosity levels supported by the update log file."""

    DISABLED = "disabled"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    VERBOSE = "verbose"


_VERBOSITY_LEVELS: dict[LogVerbosity, int] = {
    LogVerbosity.DISABLED: logging.CRITICAL + 1,
    LogVerbosity.ERROR: logging.ERROR,
    LogVerbosity.WARNING: logging.WARNING,
    LogVerbosity.INFO: logging.INFO,
    LogVerbosity.VERBOSE: logging.DEBUG,
}

_DEFAULT_VERBOSITY = LogVerbosity.INFO
_CURRENT_VERBOSITY = _DEFAULT_VERBOSITY


def _build_redaction_patterns() -> list[tuple[re.Pattern[str], str]]:
    patterns: list[tuple[re.Pattern[str], str]] = []
    flags = re.IGNORECASE if os.name == "nt" else 0

    home = os.path.normpath(str(Path.home()))
    if home and home not in {os.sep, "."}:
        patterns.append((re.compile(re.escape(home), flags), USER_HOME_PLACEHOLDER))

    names = {Path.home().name}
    for env_var in ("USERNAME", "USER", "LOGNAME"):
        value = os.environ.get(env_var)
        if value:
            names.add(value.strip())
    for name in sorted((name for name in names if name), key=len, reverse=True):
        patterns.append(
            (re.compile(rf"(?<!\w){re.escape(name)}(?!\w)", re.IGNORECASE), USER_PLACEHOLDER)
        )
    return patterns


_REDACTION_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = tuple(_build_redaction_patterns())


def _sanitize_text(message: str) -> str:
    if not message:
        return message
    redacted = message
    for pattern, replacement in _REDACTION_PATTERNS:
        redacted = pattern.sub(replacement, redacted)
    return redacted


class _RedactingFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        return _sanitize_text(super().format(record))


def ensure_app_logging() -> Path:
    """Configure the root logger for the update client.

    The first invocation installs a file handler (filtered by the current
    verbosity) and, when stderr is interactive, a console handler at INFO.

    Returns
    -------
    Path
        Location of the log file that records update diagnostics.
    """

    global _CONFIGURED, _LOG_PATH, _FILE_HANDLER

    if _CONFIGURED and _LOG_PATH is not None:
        return _LOG_PATH

    log_path = _resolve_log_path()
    log_path.parent.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    formatter = _RedactingFormatter(
        "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setLevel(_VERBOSITY_LEVELS[_CURRENT_VERBOSITY])
    file_handler.setFormatter(formatter)
    setattr(file_handler, _HANDLER_TAG, True)
    root.addHandler(file_handler)
    _FILE_HANDLER = file_handler

    if _should_log_to_stderr(root.handlers):
        stream_handler = logging.StreamHandler()
        stream_handler.setLevel(logging.INFO)
        stream_handler.setFormatter(formatter)
        setattr(stream_handler, _HANDLER_TAG, True)
        root.addHandler(stream_handler)

    _CONFIGURED = True
    _LOG_PATH = log_path

    logging.getLogger(__name__).info(
        "Writing update logs to %s (verbosity=%s)",
        log_path,
        _CURRENT_VERBOSITY.value,
    )
    return log_path


def set_file_log_verbosity(verbosity: LogVerbosity | str) -> None:
    """Adjust the minimum severity recorded in the update log file."""

    global _CURRENT_VERBOSITY

    if isinstance(verbosity, str):
        try:
            verbosity = LogVerbosity(verbosity.lower())
        except ValueError as exc:
            raise ValueError(f"Unsupported log verbosity: {verbosity}") from exc

    ensure_app_logging()
    _CURRENT_VERBOSITY = verbosity
    if _FILE_HANDLER is not None:
        _FILE_HANDLER.setLevel(_VERBOSITY_LEVELS[verbosity])
    logging.getLogger(__name__).info("File log verbosity set to %s", verbosity.value)


def get_file_log_verbosity() -> LogVerbosity:
    return _CURRENT_VERBOSITY


def _resolve_log_path() -> Path:
    env_file = os.environ.get(_LOG_FILE_ENV)
    if env_file:
        return Path(env_file).expanduser()

    env_dir = os.environ.get(_LOG_DIR_ENV)
    if env_dir:
        return Path(env_dir).expanduser() / _DEFAULT_LOGNAME

    return Path.home() / _DEFAULT_DIRNAME / "logs" / _DEFAULT_LOGNAME


def _should_log_to_stderr(handlers: Iterable[logging.Handler]) -> bool:
    stderr = getattr(sys, "stderr", None)
    is_tty = getattr(stderr, "isatty", None)
    if not callable(is_tty):
        return False
    try:
        if not is_tty():
            return False
    except (OSError, ValueError):
        return False

    for handler in handlers:
        if isinstance(handler, logging.StreamHandler) and handler.stream is stderr:
            return False
    return True


def _reset_for_tests() -> None:
    """Remove handlers installed by :func:`ensure_app_logging`."""

    global _CONFIGURED, _LOG_PATH, _FILE_HANDLER, _CURRENT_VERBOSITY

    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_TAG, False):
            root.removeHandler(handler)
            handler.close()

    _CONFIGURED = False
    _LOG_PATH = None
    _FILE_HANDLER = None
    _CURRENT_VERBOSITY = _DEFAULT_VERBOSITY


__all__ = [
    "LogVerbosity",
    "ensure_app_logging",
    "get_file_log_verbosity",
    "set_file_log_verbosity",
]
