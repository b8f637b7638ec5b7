"""
Queue worker: long-running process that advances queued jobs.

Each cycle:
1. Opens a fresh database session
2. Advances the report and feed queues of every configured partition
3. Closes the session and waits poll_interval_seconds

Settings are loaded once at startup.

CONSTRAINTS:
- Exactly one worker per partition; overlapping sweeps are not coordinated
- Graceful shutdown on SIGTERM/SIGINT
- Survives restarts (all progress persisted in the job table)

Callback handlers are registered by the host. Set MWS_JOBS_CALLBACK_MODULE
to an importable module exposing register_callbacks(registry).

Usage:
    python -m mws_jobs.workers.queue_worker
"""

import importlib
import os
import sys
import signal
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

CALLBACK_MODULE_ENV_VAR = "MWS_JOBS_CALLBACK_MODULE"


@dataclass
class WorkerStats:
    """Cumulative statistics for the worker process lifetime."""

    cycles: int = 0
    partitions_swept: int = 0
    jobs_submitted: int = 0
    jobs_downloaded: int = 0
    jobs_completed: int = 0
    jobs_purged: int = 0
    errors: int = 0
    started_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def record(self, summary: dict) -> None:
        self.partitions_swept += summary.get("partitions_swept", 0)
        self.jobs_submitted += summary.get("submitted", 0)
        self.jobs_downloaded += summary.get("downloaded", 0)
        self.jobs_completed += summary.get("callbacks_delivered", 0)
        self.jobs_purged += summary.get("purged", 0) + summary.get("no_data", 0)
        self.errors += summary.get("partitions_failed", 0)

    def to_dict(self) -> dict:
        uptime = (
            datetime.now(timezone.utc) - self.started_at
        ).total_seconds()
        return {
            "cycles": self.cycles,
            "partitions_swept": self.partitions_swept,
            "jobs_submitted": self.jobs_submitted,
            "jobs_downloaded": self.jobs_downloaded,
            "jobs_completed": self.jobs_completed,
            "jobs_purged": self.jobs_purged,
            "errors": self.errors,
            "uptime_seconds": round(uptime, 2),
        }


def load_callback_registry(module_name: Optional[str] = None):
    """
    Build the callback registry from the host's callback module.

    The module must define register_callbacks(registry).
    """
    from mws_jobs.jobs.callbacks import CallbackRegistry

    registry = CallbackRegistry()
    module_name = module_name or os.getenv(CALLBACK_MODULE_ENV_VAR)
    if not module_name:
        logger.warning("No callback module configured; handler callbacks will fail")
        return registry

    module = importlib.import_module(module_name)
    module.register_callbacks(registry)
    logger.info("Loaded callbacks from %s", module_name)
    return registry


def run_cycle(db_session: Session, stats: WorkerStats, settings, registry) -> None:
    """Run one worker cycle over every configured partition."""
    from mws_jobs.jobs.runner import run_worker_cycle

    try:
        summary = run_worker_cycle(
            db_session,
            partitions=[(p.region, p.merchant_id) for p in settings.partitions],
            callback_registry=registry,
            settings=settings,
        )
        stats.record(summary)
        stats.cycles += 1

    except Exception:
        stats.errors += 1
        db_session.rollback()
        logger.exception(
            "queue_worker.cycle_error",
            extra={"cycle": stats.cycles},
        )


def run_worker() -> WorkerStats:
    """
    Main worker loop. Runs until SIGTERM/SIGINT.

    Creates a fresh DB session each cycle for connection health.
    """
    from mws_jobs.config.settings import get_settings
    from mws_jobs.database.session import init_db, session_scope

    settings = get_settings()
    registry = load_callback_registry()
    stats = WorkerStats()
    shutdown_event = threading.Event()

    def _handle_signal(sig, _frame):
        logger.info("Received signal %s, shutting down gracefully", sig)
        shutdown_event.set()

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)

    init_db()

    logger.info(
        "Queue worker starting",
        extra={
            "poll_interval_seconds": settings.poll_interval_seconds,
            "partitions": len(settings.partitions),
        },
    )

    while not shutdown_event.is_set():
        with session_scope() as session:
            run_cycle(session, stats, settings, registry)

        shutdown_event.wait(timeout=settings.poll_interval_seconds)

    logger.info("Queue worker stopped", extra=stats.to_dict())
    return stats


def main():
    """Entry point for running worker from command line."""
    try:
        run_worker()
        sys.exit(0)
    except Exception as e:
        logger.error("Queue worker crashed", extra={"error": str(e)})
        sys.exit(1)


if __name__ == "__main__":
    main()
