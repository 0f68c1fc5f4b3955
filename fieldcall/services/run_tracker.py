"""
Field Activity Call Sampling Service
Run tracker: SamplingRun lifecycle.

    running ──▶ completed      (at least one item succeeded, or no errors)
            └─▶ failed         (nothing succeeded and at least one error)

The executor owns an in-memory ``RunState``; this module is the only place
that copies it onto the SamplingRun row. Counters only ever grow between
checkpoints, so a poller never sees a run go backwards.
"""

import logging
from dataclasses import dataclass, field

from flask import current_app

from fieldcall.models import db
from fieldcall.models.sampling import (
    RUN_STATUS_COMPLETED, RUN_STATUS_FAILED, RUN_STATUS_RUNNING, SamplingRun,
)
from fieldcall.services import sampling_config_service
from fieldcall.utils.helpers import utcnow

logger = logging.getLogger(__name__)


@dataclass
class RunState:
    """Mutable accumulator threaded through one execution."""

    matched: int = 0
    attempted: int = 0
    processed: int = 0
    tasks_created_total: int = 0
    sampled_activities: int = 0
    inactive_activities: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)
    last_activity_id: int | None = None
    results: list[dict] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def record_success(self, activity_id: int, result) -> None:
        self.processed += 1
        self.tasks_created_total += result.tasks_created or 0
        if result.skipped:
            self.skipped += 1
        if result.activity_lifecycle_status == "sampled":
            self.sampled_activities += 1
        elif result.activity_lifecycle_status == "inactive":
            self.inactive_activities += 1
        self.results.append({"activityId": activity_id, **result.to_dict()})

    def record_error(self, activity_id: int, exc: Exception) -> str:
        message = f"Activity {activity_id}: {exc}"
        self.errors.append(message)
        return message

    def final_status(self) -> str:
        if self.processed == 0 and self.error_count > 0:
            return RUN_STATUS_FAILED
        return RUN_STATUS_COMPLETED

    def error_tail(self, size: int) -> list[str]:
        return self.errors[-size:] if size > 0 else []


def _tail_size() -> int:
    return current_app.config.get("SAMPLING_ERROR_TAIL", 50)


def start_run(*, user_id: str | None, run_type: str, matched: int = 0,
              lifecycle_status: str | None = None, date_from=None, date_to=None,
              sampling_percentage: float | None = None, force_run: bool = False,
              activity_ids_count: int | None = None, scheduled: bool = False) -> SamplingRun:
    """Persist a new run in ``running`` before any item is touched."""
    run = SamplingRun(
        created_by_user_id=user_id,
        run_type=run_type,
        status=RUN_STATUS_RUNNING,
        started_at=utcnow(),
        lifecycle_status=lifecycle_status,
        date_from=date_from,
        date_to=date_to,
        sampling_percentage=sampling_percentage,
        force_run=bool(force_run),
        activity_ids_count=activity_ids_count,
        scheduled=scheduled,
        matched=matched,
        error_messages=[],
    )
    db.session.add(run)
    db.session.commit()
    logger.info(
        "Sampling run started",
        extra={"run_id": run.id, "run_type": run_type, "user_id": user_id},
    )
    return run


def _copy_state(run: SamplingRun, state: RunState) -> None:
    run.matched = state.matched
    run.processed = state.processed
    run.tasks_created_total = state.tasks_created_total
    run.sampled_activities = state.sampled_activities
    run.inactive_activities = state.inactive_activities
    run.skipped = state.skipped
    run.error_count = state.error_count
    run.last_activity_id = state.last_activity_id
    run.error_messages = state.error_tail(_tail_size())


def checkpoint(run: SamplingRun, state: RunState) -> None:
    """Write a progress snapshot and commit."""
    _copy_state(run, state)
    run.last_progress_at = utcnow()
    db.session.commit()


def finish_run(run: SamplingRun, state: RunState) -> SamplingRun:
    """Stamp the final status, counters and error tail. Called once per run."""
    now = utcnow()
    _copy_state(run, state)
    run.status = state.final_status()
    run.finished_at = now
    run.last_progress_at = now
    db.session.commit()

    log = logger.warning if run.status == RUN_STATUS_FAILED else logger.info
    log(
        "Sampling run %s: matched=%d processed=%d tasks=%d sampled=%d inactive=%d skipped=%d errors=%d",
        run.status, run.matched, run.processed, run.tasks_created_total,
        run.sampled_activities, run.inactive_activities, run.skipped, run.error_count,
        extra={"run_id": run.id, "run_type": run.run_type},
    )

    if run.scheduled:
        sampling_config_service.record_auto_run(run)
    return run


def abort_run(run: SamplingRun, state: RunState, exc: Exception) -> SamplingRun:
    """Finalise a run whose execution raised outside the per-item loop."""
    db.session.rollback()
    state.errors.append(f"Run aborted: {exc}")
    _copy_state(run, state)
    run.status = RUN_STATUS_FAILED
    run.finished_at = utcnow()
    db.session.commit()
    logger.error("Sampling run aborted: %s", exc, extra={"run_id": run.id, "run_type": run.run_type})
    return run


def latest_run(user_id: str | None) -> SamplingRun | None:
    """Most recently started run of ``user_id`` (for UI polling)."""
    return (
        SamplingRun.query
        .filter(SamplingRun.created_by_user_id == user_id)
        .order_by(SamplingRun.started_at.desc(), SamplingRun.id.desc())
        .first()
    )


def has_running_run(user_id: str | None, run_type: str) -> bool:
    return db.session.query(
        SamplingRun.query.filter(
            SamplingRun.created_by_user_id == user_id,
            SamplingRun.run_type == run_type,
            SamplingRun.status == RUN_STATUS_RUNNING,
        ).exists()
    ).scalar()
