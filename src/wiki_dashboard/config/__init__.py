"""Configuration package for the Wiki Dashboard pipeline.

Re-exports the settings accessor so that callers can write::

    from wiki_dashboard.config import get_settings
"""

from __future__ import annotations

from wiki_dashboard.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
