"""Configuration loaders."""

from mws_jobs.config.settings import (
    QueueSettings,
    Partition,
    get_settings,
    reload_settings,
    reset_settings,
)

__all__ = [
    "QueueSettings",
    "Partition",
    "get_settings",
    "reload_settings",
    "reset_settings",
]
