"""Celery Beat periodic task schedule for the Wiki Dashboard pipeline.

All times are UTC (configured in ``celery_app.py``).

Schedule overview:

+-----------------------------+------------------+-------------------------------+
| Task name                   | Schedule         | Purpose                       |
+=============================+==================+===============================+
| update_current_courses      | Every hour, :05  | Import new revisions for each |
|                             |                  | current course, then score    |
|                             |                  | them.                         |
+-----------------------------+------------------+-------------------------------+
| update_all_revision_scores  | 02:30 daily      | Score pending revisions on    |
|                             |                  | every scoreable wiki.         |
+-----------------------------+------------------+-------------------------------+
"""

from __future__ import annotations

from celery.schedules import crontab

#: Applied to ``celery_app.conf.beat_schedule`` in ``celery_app.py``.
beat_schedule: dict[str, dict] = {  # type: ignore[type-arg]
    "update_current_courses": {
        "task": "wiki_dashboard.workers.tasks.update_current_courses",
        "schedule": crontab(minute=5),
        "options": {
            "queue": "celery",
            "expires": 3_000,  # skip if the next run is nearly due
        },
    },
    "update_all_revision_scores": {
        "task": "wiki_dashboard.workers.tasks.update_all_revision_scores",
        "schedule": crontab(hour=2, minute=30),
        "options": {
            "queue": "scoring",
            "expires": 3_600,
        },
    },
}
