"""Logging setup for the pipeline workers.

``configure_logging()`` is called once when the Celery app is imported
(``workers/celery_app.py``).  Both ``logging.getLogger(__name__)`` and
``structlog.get_logger(__name__)`` loggers end up in the same handler, so
importer modules and tasks can use either.

Each task body runs inside :func:`bound_run`, which tags every record
emitted during that run with the Celery task id (``run_id``) and whatever
context the task binds, typically ``course_id``::

    with bound_run(self.request.id, course_id=course_id):
        asyncio.run(...)

Connection URLs (``postgresql+asyncpg://user:pw@...``, ``redis://:pw@...``)
show up in driver error messages; their credentials are masked before
rendering, as are values under secret-looking keys.
"""

from __future__ import annotations

import logging
import re
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

import structlog
from structlog.types import EventDict, WrappedLogger

REDACTED = "[REDACTED]"

run_id_var: ContextVar[str | None] = ContextVar("run_id", default=None)
"""Id of the task run in progress, or ``None`` outside a run."""

_SECRET_KEY_PARTS: tuple[str, ...] = ("password", "secret", "token", "authorization")

_URL_CREDENTIALS = re.compile(r"(?P<scheme>[a-z][a-z0-9+.-]*://)[^/@\s:]*:[^/@\s]*@")

_QUIET_LOGGERS: tuple[str, ...] = ("httpx", "httpcore", "sqlalchemy.engine", "celery.redirected")


@contextmanager
def bound_run(run_id: str | None, **context: Any) -> Iterator[None]:
    """Attach *run_id* and *context* to every record logged inside the block.

    The previous values are restored on exit, so a worker process that runs
    many tasks never carries one task's ids into the next.
    """
    token = run_id_var.set(run_id)
    try:
        with structlog.contextvars.bound_contextvars(**context):
            yield
    finally:
        run_id_var.reset(token)


def mask_url_credentials(text: str) -> str:
    """Replace the ``user:password@`` part of any URL in *text*."""
    return _URL_CREDENTIALS.sub(rf"\g<scheme>{REDACTED}@", text)


def _is_secret_key(key: object) -> bool:
    lowered = str(key).lower()
    return any(part in lowered for part in _SECRET_KEY_PARTS)


def _redact_secrets(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """Mask secret-keyed values and URL credentials in string values.

    Nested dicts (API query parameters, error metadata) are checked one level
    deep.  Continuation blocks (``continue``) are not secrets.
    """
    for key, value in list(event_dict.items()):
        if _is_secret_key(key):
            event_dict[key] = REDACTED
        elif isinstance(value, str):
            event_dict[key] = mask_url_credentials(value)
        elif isinstance(value, dict):
            event_dict[key] = {
                k: REDACTED if _is_secret_key(k) else v for k, v in value.items()
            }
    return event_dict


def _add_run_id(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    run_id = run_id_var.get()
    if run_id is not None:
        event_dict.setdefault("run_id", run_id)
    return event_dict


def configure_logging(log_level: str = "INFO") -> None:
    """Route stdlib and structlog records through one stdout handler.

    ``DEBUG`` renders for a terminal; any other level renders one JSON object
    per line with ``timestamp``, ``level``, ``logger``, ``event`` and, inside
    a run, ``run_id`` plus the bound context.  Calling it again replaces the
    previous handler.
    """
    level_name = log_level.upper()
    debug = level_name == "DEBUG"

    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        _add_run_id,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        _redact_secrets,
    ]
    renderer: structlog.types.Processor = (
        structlog.dev.ConsoleRenderer(colors=True)
        if debug
        else structlog.processors.JSONRenderer()
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level_name, logging.INFO))
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if debug else logging.WARNING)

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
