"""Unified logging configuration.

The supervisor side logs to ``<home>/warren.log`` (rotating) and optionally
to the console.  Every record carries a ``caller`` attribute taken from the
``log_caller`` context variable, so lines emitted while a conversation is
being run are tagged with its group folder::

    2026-10-19 12:00:00,123 INFO [g1] warren.supervisor: Spawning agent ...

The agent runner is different: its stdout is reserved for result frames,
so ``configure_runner_logging()`` sends everything to stderr.
"""

import contextvars
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

log_caller: contextvars.ContextVar[str] = contextvars.ContextVar("log_caller", default="-")

_FORMAT = "%(asctime)s %(levelname)s [%(caller)s] %(name)s: %(message)s"
_RUNNER_FORMAT = "[agent-runner] %(levelname)s %(message)s"

_MAX_BYTES = 5 * 1024 * 1024
_BACKUPS = 3


class CallerFilter(logging.Filter):
    """Attach the current ``log_caller`` value to each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.caller = log_caller.get()
        return True


def log_file_path(hc_home: Path) -> Path:
    return hc_home / "warren.log"


def _level(name: str | None) -> int:
    if not name:
        return logging.INFO
    name = name.upper()
    if name == "TRACE":
        return logging.DEBUG
    return getattr(logging, name, logging.INFO)


def configure_logging(
    hc_home: Path,
    *,
    console: bool = False,
    level: str | None = None,
) -> None:
    """Install file (and optionally console) handlers on the ``warren`` logger.

    Safe to call more than once: existing Warren handlers are replaced.
    """
    root = logging.getLogger("warren")
    for h in list(root.handlers):
        if getattr(h, "_warren", False):
            root.removeHandler(h)
            h.close()

    root.setLevel(_level(level))
    formatter = logging.Formatter(_FORMAT)

    hc_home.mkdir(parents=True, exist_ok=True)
    fh = RotatingFileHandler(
        log_file_path(hc_home), maxBytes=_MAX_BYTES, backupCount=_BACKUPS,
    )
    handlers: list[logging.Handler] = [fh]
    if console:
        handlers.append(logging.StreamHandler(sys.stderr))

    for h in handlers:
        h._warren = True  # type: ignore[attr-defined]
        h.setFormatter(formatter)
        h.addFilter(CallerFilter())
        root.addHandler(h)


def configure_runner_logging(level: str | None = None) -> None:
    """Log to stderr only — stdout carries result frames."""
    root = logging.getLogger("warren")
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_RUNNER_FORMAT))
    root.addHandler(handler)
    root.setLevel(_level(level))
    root.propagate = False
