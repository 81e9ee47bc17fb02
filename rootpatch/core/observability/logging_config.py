"""
Logging for rootpatch runs.

``main.py`` calls ``setup_logging`` once per invocation; modules log
through ``logging.getLogger(__name__)``.

Two audiences read this output.  The console (stderr) is for the
operator and stays terse unless ``-v``/``--debug`` is given.  The
optional log file is for after-the-fact diagnosis of a failed patch:
it gets full detail, including the debug lines that carry every host
command line and the verbatim output of the elevated script, and it
is appended to so earlier sessions survive a reboot-and-retry.

Console level precedence:
    CLI flag  >  RP_LOG_LEVEL  >  WARNING

The file is enabled by RP_LOG_FILE, at RP_LOG_FILE_LEVEL (default:
the console level).

The sudo boundary registers the administrator password here; every
record is scrubbed of registered secrets before any handler sees it.
"""

from __future__ import annotations

import logging
import os
import sys
import threading

# Console format per level threshold: (format, datefmt)
_CONSOLE_FORMATS: tuple[tuple[int, str, str | None], ...] = (
    (logging.DEBUG, "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s", "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
)
_CONSOLE_DEFAULT = "%(message)s"

_FILE_FORMAT = "%(asctime)s %(process)d %(levelname)-5s %(name)s:%(lineno)d — %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"

_MASK = "********"

_secrets: set[str] = set()
_secrets_lock = threading.Lock()

# Handlers owned by the last setup_logging call
_installed: list[logging.Handler] = []


# ── Secrets ─────────────────────────────────────────────────────


def register_secret(value: str) -> None:
    """Mask ``value`` in all log output from now on."""
    if not value:
        return
    with _secrets_lock:
        _secrets.add(value)


def forget_secret(value: str) -> None:
    with _secrets_lock:
        _secrets.discard(value)


def _scrub(text: str, secrets: list[str]) -> str:
    for secret in secrets:
        text = text.replace(secret, _MASK)
    return text


class SecretFilter(logging.Filter):
    """Replace registered secrets in the message and any traceback text."""

    def filter(self, record: logging.LogRecord) -> bool:
        with _secrets_lock:
            active = list(_secrets)
        if not active:
            return True

        message = record.getMessage()
        masked = _scrub(message, active)
        if masked != message:
            record.msg = masked
            record.args = None

        if record.exc_info and not record.exc_text:
            record.exc_text = logging.Formatter().formatException(record.exc_info)
        if record.exc_text:
            record.exc_text = _scrub(record.exc_text, active)
        return True


# ── Setup ───────────────────────────────────────────────────────


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> None:
    """Install the console handler and, optionally, the session log file.

    Replaces any handlers already on the root logger, so calling it
    again (tests, repeated CLI invocations in one process) does not
    stack output.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Path of the session log, appended to.
        log_file_level: Level for the file; defaults to ``level``.
    """
    console_level = _parse_level(level)
    secret_filter = SecretFilter()

    fmt, datefmt = _CONSOLE_DEFAULT, None
    for threshold, candidate, candidate_datefmt in _CONSOLE_FORMATS:
        if console_level <= threshold:
            fmt, datefmt = candidate, candidate_datefmt
            break

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    console.addFilter(secret_filter)

    root = logging.getLogger()
    root.handlers.clear()
    while _installed:
        _installed.pop().close()
    root.addHandler(console)
    _installed.append(console)
    root_level = console_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        root_level = min(root_level, file_level)

        session = logging.FileHandler(os.path.expanduser(log_file), mode="a", encoding="utf-8")
        session.setLevel(file_level)
        session.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
        session.addFilter(secret_filter)
        root.addHandler(session)
        _installed.append(session)

    root.setLevel(root_level)

    # A broken stderr must not abort a half-finished patch
    logging.raiseExceptions = False

    if log_file:
        logging.getLogger(__name__).debug(
            "rootpatch session started (pid %d, console %s)",
            os.getpid(), logging.getLevelName(console_level),
        )


def _parse_level(level: str | None) -> int:
    """Level name → numeric level; unknown or empty names mean WARNING."""
    if not level:
        return logging.WARNING
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        return logging.WARNING
    return numeric
