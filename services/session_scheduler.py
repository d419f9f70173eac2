"""
APScheduler-based background sweep for idle conversation sessions.

This module is a small wrapper around APScheduler (Advanced Python Scheduler) that
runs `ConversationStateManager.sweep` on a fixed interval of half the idle timeout.
We use the background (thread-based) scheduler so the sweep runs on its own thread,
independently of the worker threads serving requests. Failures inside a sweep are
logged and never stop the schedule. Lifecycle wiring (start/stop) is aligned with
the application startup and shutdown events in main.py.
"""

from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from monitoring.metrics import ERROR_COUNT
from .session_manager import ConversationStateManager

SWEEP_JOB_ID = "conversation_session_sweep"


def run_sweep_job(manager: ConversationStateManager, logger: logging.Logger) -> None:
    """
    Execute one idle-session sweep; never raise exceptions.

    A failing sweep is logged at WARNING level and counted, and the scheduler keeps
    triggering future runs.
    """
    try:
        removed = manager.sweep()
        logger.info("session_sweep summary: removed=%s active=%s", removed, manager.active_count())
    except Exception as exc:
        ERROR_COUNT.labels(type='sweep', location='session_scheduler').inc()
        logger.warning("session_sweep failed: %s", exc)


def start_session_sweeper(app, manager: ConversationStateManager) -> BackgroundScheduler:
    """
    Start the periodic session sweep and store the scheduler on the app state.

    The interval is half the manager's idle timeout (never less than one second),
    so an idle session is removed at most 1.5 timeouts after its last access.
    """
    interval_seconds = max(manager.idle_timeout_seconds / 2, 1)
    logger = logging.getLogger(__name__)
    scheduler = BackgroundScheduler(daemon=True)
    scheduler.add_job(
        run_sweep_job,
        trigger=IntervalTrigger(seconds=interval_seconds),
        args=[manager, logger],
        id=SWEEP_JOB_ID,
        coalesce=True,
        max_instances=1,
    )
    scheduler.start()
    logger.info("session_sweep scheduled every %.0f seconds", interval_seconds)
    setattr(app.state, "session_scheduler", scheduler)
    return scheduler


def shutdown_session_sweeper(app) -> None:
    """Stop the session sweep scheduler if it was started."""
    scheduler = getattr(app.state, "session_scheduler", None)
    if scheduler is None:
        return
    try:
        scheduler.shutdown(wait=False)
    except Exception as exc:
        logging.getLogger(__name__).warning("session_sweep shutdown failed: %s", exc)
    setattr(app.state, "session_scheduler", None)
