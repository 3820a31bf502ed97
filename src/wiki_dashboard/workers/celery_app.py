"""Celery application for the Wiki Dashboard pipeline.

Configures the broker, result backend, serialization and the Beat schedule.
All configuration values are sourced from ``Settings``.

Usage (starting a worker)::

    celery -A wiki_dashboard.workers.celery_app worker --loglevel=info

Usage (starting the Beat scheduler)::

    celery -A wiki_dashboard.workers.celery_app beat --loglevel=info

Usage (within application code)::

    from wiki_dashboard.workers.celery_app import celery_app

    celery_app.send_task(
        "wiki_dashboard.workers.tasks.import_course_revisions",
        kwargs={"course_id": 42, "all_time": True},
    )
"""

from __future__ import annotations

import logging

from celery import Celery
from celery.signals import task_postrun, worker_process_init
from dotenv import load_dotenv

_logger = logging.getLogger(__name__)

# Settings read .env themselves; load it into os.environ too so child
# processes and third-party libraries see the same values.
load_dotenv()

from wiki_dashboard.config.settings import get_settings  # noqa: E402
from wiki_dashboard.core.logging_config import configure_logging  # noqa: E402

settings = get_settings()
configure_logging(settings.log_level)

#: The global Celery application instance.
celery_app = Celery(
    "wiki_dashboard",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["wiki_dashboard.workers.tasks"],
)

# ---------------------------------------------------------------------------
# Core configuration
# ---------------------------------------------------------------------------

celery_app.conf.update(
    # JSON only: task arguments are course IDs and flags.
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # Acknowledge after completion so a crashed import is redelivered;
    # imports are idempotent.
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    result_expires=86_400,
    # Full re-imports of large courses take a while.
    task_soft_time_limit=3_600,
    task_time_limit=7_200,
    task_max_retries=3,
    task_routes={
        "wiki_dashboard.workers.tasks.update_all_revision_scores": {"queue": "scoring"},
    },
    beat_schedule_filename="celerybeat-schedule",
)

from wiki_dashboard.workers.beat_schedule import beat_schedule  # noqa: E402

celery_app.conf.beat_schedule = beat_schedule


# ---------------------------------------------------------------------------
# Engine disposal: pooled asyncpg connections are bound to the event loop
# that created them.
# ---------------------------------------------------------------------------
@worker_process_init.connect
def _dispose_engine_on_fork(**kwargs: object) -> None:  # noqa: ARG001
    """Dispose the async engine after Celery forks a worker process.

    Connections inherited from the parent belong to the parent's loop;
    disposing forces the child to open its own on first use.
    """
    from wiki_dashboard.core import database as _db  # noqa: PLC0415

    _db.async_engine.sync_engine.dispose(close=False)


@task_postrun.connect
def _dispose_engine_after_task(**kwargs: object) -> None:  # noqa: ARG001
    """Dispose the pool after each task.

    Every task body calls ``asyncio.run()``, which closes its loop on
    return; connections left in the pool would be unusable by the next task.
    """
    from wiki_dashboard.core import database as _db  # noqa: PLC0415

    try:
        _db.async_engine.sync_engine.dispose(close=False)
    except Exception as exc:  # noqa: BLE001
        _logger.debug("engine disposal after task failed: %s", exc)
