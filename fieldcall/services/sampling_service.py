"""
Field Activity Call Sampling Service
Sampling run orchestration: validated request → persisted, finished run.

    first_sample: range (auto | suggested | explicit) → eligibility query →
                  allocation plan → grouped execution
    adhoc:        explicit ids, or lifecycle + date filter → flat execution

The run row is created before the first item and finalised exactly once,
also when execution itself blows up.
"""

import logging
from datetime import timedelta

from flask import current_app

from fieldcall.models.activity import LIFECYCLE_ACTIVE, Activity
from fieldcall.models.sampling import RUN_TYPE_FIRST_SAMPLE
from fieldcall.services import eligibility_query, range_resolver, run_tracker
from fieldcall.services.allocator import allocate
from fieldcall.services.run_executor import ExecutionOptions, RunExecutor, apply_scope_cap, max_bulk
from fieldcall.services.run_tracker import RunState
from fieldcall.services.sampling_config_service import get_config
from fieldcall.services.sampling_requests import RunRequest
from fieldcall.utils.helpers import utcnow

logger = logging.getLogger(__name__)


def _response_errors(state: RunState) -> list[str]:
    size = current_app.config.get("SAMPLING_RESPONSE_ERRORS", 10)
    return state.error_tail(size)


def window_cooling_days(cfg, force_run: bool) -> int:
    """Days kept out of a first-sample window; forced runs skip the cooling gate."""
    return 0 if force_run else (cfg.activity_cooling_days or 0)


def _first_sample_window(req: RunRequest, user_id: str | None, cooling_days: int):
    """Explicit dates win; a missing side is filled from the resolved range.

    The end is capped at the cooling cutoff in every case, so the recorded
    ``date_to`` never covers activities the sampler would refuse.
    """
    resolved = range_resolver.resolve_range(user_id, cooling_days)
    date_from = req.date_from or resolved.date_from
    date_to = min(req.date_to or resolved.date_to, range_resolver.window_end(cooling_days))
    source = "explicit" if (req.date_from or req.date_to) else resolved.source
    return date_from, date_to, source


def _adhoc_ids(req: RunRequest) -> tuple[list[int], int]:
    if req.activity_ids:
        return list(req.activity_ids), len(req.activity_ids)

    query = Activity.query.filter(
        Activity.lifecycle_status == (req.lifecycle_status or LIFECYCLE_ACTIVE),
    )
    if req.date_from:
        query = query.filter(Activity.date >= req.date_from)
    if req.date_to:
        query = query.filter(Activity.date <= req.date_to)
    matched = query.count()
    rows = (
        query.with_entities(Activity.id)
        .order_by(Activity.date.desc(), Activity.id.desc())
        .limit(max_bulk())
        .all()
    )
    return [row.id for row in rows], matched


def execute_run(req: RunRequest, *, user_id: str | None, scheduled: bool = False) -> dict:
    """Run sampling for ``req`` on behalf of ``user_id`` and return the summary."""
    cfg = get_config()
    options = ExecutionOptions(
        percentage=req.sampling_percentage,
        force_run=req.force_run,
        run_by_user_id=user_id,
        scheduled_date=utcnow() + timedelta(days=cfg.task_due_in_days or 0),
        set_first_sample_run=req.run_type == RUN_TYPE_FIRST_SAMPLE,
    )
    state = RunState()
    summary: dict = {"runType": req.run_type}

    if req.run_type == RUN_TYPE_FIRST_SAMPLE:
        lifecycle = req.lifecycle_status or LIFECYCLE_ACTIVE
        date_from, date_to, source = _first_sample_window(
            req, user_id, window_cooling_days(cfg, req.force_run),
        )
        state.matched = eligibility_query.count_eligible(date_from, date_to, lifecycle)
        candidates = eligibility_query.fetch_candidates(
            date_from, date_to, lifecycle, limit=max_bulk(),
        )
        candidates = apply_scope_cap(candidates, state.matched)
        plan = allocate(candidates, req.sampling_percentage, cfg)
        summary.update(rangeSource=source, allocation=plan.to_dict())
        percentage = plan.percentage
    else:
        lifecycle = None if req.activity_ids else (req.lifecycle_status or LIFECYCLE_ACTIVE)
        date_from, date_to = req.date_from, req.date_to
        ids, state.matched = _adhoc_ids(req)
        ids = apply_scope_cap(ids, state.matched)
        percentage = req.sampling_percentage

    run = run_tracker.start_run(
        user_id=user_id,
        run_type=req.run_type,
        matched=state.matched,
        lifecycle_status=lifecycle,
        date_from=date_from,
        date_to=date_to,
        sampling_percentage=percentage,
        force_run=req.force_run,
        activity_ids_count=len(req.activity_ids) if req.activity_ids else None,
        scheduled=scheduled,
    )
    executor = RunExecutor(run, state, options)
    try:
        if req.run_type == RUN_TYPE_FIRST_SAMPLE:
            executor.execute_grouped(plan)
        else:
            executor.execute_flat(ids)
    except Exception as exc:
        run_tracker.abort_run(run, state, exc)
        raise
    run = run_tracker.finish_run(run, state)

    summary.update(
        runId=run.id,
        status=run.status,
        dateFrom=date_from.isoformat() if date_from else None,
        dateTo=date_to.isoformat() if date_to else None,
        matched=state.matched,
        processed=state.processed,
        sampledActivities=state.sampled_activities,
        inactiveActivities=state.inactive_activities,
        skipped=state.skipped,
        tasksCreatedTotal=state.tasks_created_total,
        errorCount=state.error_count,
        errors=_response_errors(state),
    )
    return summary


def first_sample_range(user_id: str | None) -> dict:
    """Resolved window for the next first-sample run plus its live backlog."""
    resolved = range_resolver.resolve_range(user_id, get_config().activity_cooling_days)
    last = range_resolver.last_first_sample_run(user_id)
    data = resolved.to_dict()
    data["matchedCount"] = eligibility_query.count_eligible(resolved.date_from, resolved.date_to)
    data["lastRun"] = last.to_dict() if last else None
    return data
