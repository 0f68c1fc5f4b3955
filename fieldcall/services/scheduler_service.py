"""
Field Activity Call Sampling Service
Scheduler Service.

A lightweight in-process job runner: job functions register themselves by
name with ``@register_job`` and are executed inside the Flask app context,
either on demand (``run_job``, used by the CLI and tests) or periodically by
a daemon polling thread started with ``start()``.

Architecture:
    - Job registry: name → callable(app), filled at import time
    - SchedulerService: app binding, manual trigger, polling thread
    - Last outcome per job kept in memory for diagnostics
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable

from flask import Flask

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job Registry
# ═══════════════════════════════════════════════════════════════════════════

_job_registry: dict[str, Callable] = {}


def register_job(name: str):
    """Decorator to register a job function.

    Usage:
        @register_job("auto_sampling")
        def run_auto_sampling(app):
            ...
    """
    def decorator(fn: Callable) -> Callable:
        _job_registry[name] = fn
        return fn
    return decorator


def get_registered_jobs() -> dict[str, Callable]:
    """Return all registered job functions."""
    return dict(_job_registry)


class SchedulerService:
    """
    Lightweight scheduler service.

    Jobs are executed one at a time within the Flask app context.
    """

    _app: Flask | None = None
    _thread: threading.Thread | None = None
    _stop_event: threading.Event | None = None
    _lock = threading.Lock()
    _last_runs: dict[str, dict] = {}

    @classmethod
    def init_app(cls, app: Flask) -> None:
        """Bind the scheduler to a Flask app."""
        cls._app = app
        app.extensions["scheduler"] = cls
        logger.info("SchedulerService initialized with %d registered jobs",
                    len(_job_registry))

    @classmethod
    def run_job(cls, job_name: str) -> dict:
        """
        Execute a single job by name.

        Returns:
            Dict with job_name, status, duration_ms, result and error.
        """
        fn = _job_registry.get(job_name)
        if not fn:
            return {"status": "error", "error": f"Unknown job: {job_name}"}

        if not cls._app:
            return {"status": "error", "error": "Scheduler not initialized"}

        start = time.monotonic()
        result = None
        error = None
        status = "success"

        with cls._lock:
            try:
                with cls._app.app_context():
                    result = fn(cls._app)
            except Exception as exc:
                status = "failed"
                error = str(exc)
                logger.exception("Job %s failed: %s", job_name, exc)

        duration_ms = int((time.monotonic() - start) * 1000)
        outcome = {
            "job_name": job_name,
            "status": status,
            "duration_ms": duration_ms,
            "result": result,
            "error": error,
            "finished_at": datetime.now(timezone.utc).isoformat(),
        }
        cls._last_runs[job_name] = outcome
        return outcome

    @classmethod
    def last_run(cls, job_name: str) -> dict | None:
        return cls._last_runs.get(job_name)

    # ── Polling thread ───────────────────────────────────────────────────

    @classmethod
    def start(cls, job_name: str = "auto_sampling", interval_seconds: int | None = None) -> None:
        """Run ``job_name`` every ``interval_seconds`` on a daemon thread."""
        if cls._thread and cls._thread.is_alive():
            return
        if not cls._app:
            raise RuntimeError("SchedulerService.init_app() must be called before start()")

        interval = interval_seconds or cls._app.config.get("AUTO_RUN_INTERVAL_SECONDS", 3600)
        cls._stop_event = threading.Event()

        def _loop(stop_event: threading.Event):
            logger.info("Scheduler thread started: %s every %ss", job_name, interval)
            while not stop_event.wait(interval):
                cls.run_job(job_name)
            logger.info("Scheduler thread stopped")

        cls._thread = threading.Thread(
            target=_loop, args=(cls._stop_event,), name="fieldcall-scheduler", daemon=True,
        )
        cls._thread.start()

    @classmethod
    def stop(cls, timeout: float = 5.0) -> None:
        if cls._stop_event:
            cls._stop_event.set()
        if cls._thread:
            cls._thread.join(timeout)
        cls._thread = None
        cls._stop_event = None

    @classmethod
    def is_running(cls) -> bool:
        return bool(cls._thread and cls._thread.is_alive())
