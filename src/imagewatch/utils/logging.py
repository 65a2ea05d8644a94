"""Logging for imagewatch.

Workers bind the image and queue they are handling with ``log_context``;
every record logged inside that block carries those fields, whichever
module emits it::

    with log_context(image="org/app", queue="size"):
        inspector.inspect_size("org/app")

    INFO 2016-06-01 10:00:00,000: Updating org/app version 3f1c with size 1200 [image=org/app queue=size]
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import IO, Any, Iterator

ROOT_LOGGER = "imagewatch"

PLAIN_FORMAT = "%(levelname).4s %(asctime)s: %(message)s%(work)s"
STRUCTURED_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(threadName)s] %(message)s%(work)s"

_work_fields: ContextVar[dict[str, Any] | None] = ContextVar("imagewatch_work_fields", default=None)


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Attach fields to every record logged inside the block.

    Nested blocks add to the outer fields; the outer set is restored on
    exit.

    Args:
        **fields: Context such as ``image``, ``queue`` or ``notification``
    """
    token = _work_fields.set({**current_context(), **fields})
    try:
        yield
    finally:
        _work_fields.reset(token)


def current_context() -> dict[str, Any]:
    """Fields bound by the enclosing ``log_context`` blocks."""
    return dict(_work_fields.get() or {})


class WorkContextFilter(logging.Filter):
    """Puts the bound work fields on each record.

    ``record.work_fields`` holds the mapping; ``record.work`` is the
    rendered suffix the formats end with: `` [image=org/app queue=size]``
    for people, `` image=org/app queue=size`` for log collectors.
    """

    def __init__(self, structured: bool = False) -> None:
        super().__init__()
        self.structured = structured

    def filter(self, record: logging.LogRecord) -> bool:
        fields = current_context()
        record.work_fields = fields
        if not fields:
            record.work = ""
        else:
            pairs = " ".join(f"{k}={v}" for k, v in fields.items())
            record.work = f" {pairs}" if self.structured else f" [{pairs}]"
        return True


def configure_logging(
    level: str = "INFO",
    structured: bool = False,
    stream: IO[str] | None = None,
) -> logging.Logger:
    """Send imagewatch logs to stderr.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        structured: One ``key=value`` line per record, with logger and
            thread names, for workers whose output is collected
        stream: Where to write, stderr by default

    Returns:
        The ``imagewatch`` logger
    """
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.addFilter(WorkContextFilter(structured))
    handler.setFormatter(logging.Formatter(STRUCTURED_FORMAT if structured else PLAIN_FORMAT))

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, level.upper()))
    logger.handlers = [handler]
    logger.propagate = False
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the ``imagewatch`` hierarchy."""
    if not name.startswith(ROOT_LOGGER):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)
