"""
Field Activity Call Sampling Service
Run executor: drives the per-activity sampler over a run's candidates.

Two paths:
    grouped (first-sample): walks the allocation plan officer by officer,
        largest activity first, capping each call at the officer's remaining
        budget (target minus farmers already selected for that officer). The
        officer's first activity is sampled with a minimum of one farmer.
    flat (ad-hoc): every id sampled at the request percentage, no budget.

Items are processed strictly one after another: the officer budget must see
the previous activity's result before the next call. A failing item is
recorded as ``"Activity <id>: <message>"`` and the run moves on.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from flask import current_app

from fieldcall.models import db
from fieldcall.services import activity_sampler, run_tracker
from fieldcall.services.allocator import AllocationPlan
from fieldcall.services.run_tracker import RunState

logger = logging.getLogger(__name__)


@dataclass
class ExecutionOptions:
    percentage: float | None = None
    force_run: bool = False
    run_by_user_id: str | None = None
    scheduled_date: datetime | None = None
    set_first_sample_run: bool = False


def max_bulk() -> int:
    return current_app.config.get("SAMPLING_MAX_BULK", 5000)


def apply_scope_cap(ids: list, matched: int) -> list:
    """Trim ``ids`` to the bulk cap, warning when the match was larger."""
    cap = max_bulk()
    if matched > cap or len(ids) > cap:
        logger.warning(
            "Sampling run truncated by safety cap: matched=%d processing=%d cap=%d",
            matched, min(len(ids), cap), cap,
        )
    return ids[:cap]


class RunExecutor:
    """Sequential executor bound to one SamplingRun."""

    def __init__(self, run, state: RunState, options: ExecutionOptions):
        self.run = run
        self.state = state
        self.options = options
        self.progress_every = max(1, current_app.config.get("SAMPLING_PROGRESS_EVERY", 5))
        self._total = 0

    # ── Public paths ─────────────────────────────────────────────────────

    def execute_grouped(self, plan: AllocationPlan) -> RunState:
        self._total = plan.activity_count
        for group in plan.groups:
            created_for_officer = 0
            for index, cand in enumerate(group.activities):
                remaining = max(0, group.target - created_for_officer)
                result = self._sample_one(
                    cand.id,
                    plan.percentage,
                    min_farmers_to_sample=1 if index == 0 else None,
                    max_farmers_to_sample=remaining,
                )
                if result is not None:
                    created_for_officer += result.sampled_count
            logger.debug(
                "Officer %s: target=%d selected=%d",
                group.officer_id, group.target, created_for_officer,
            )
        return self.state

    def execute_flat(self, activity_ids: list[int]) -> RunState:
        self._total = len(activity_ids)
        for activity_id in activity_ids:
            self._sample_one(activity_id, self.options.percentage)
        return self.state

    # ── Internals ────────────────────────────────────────────────────────

    def _sample_one(self, activity_id: int, percentage, *,
                    min_farmers_to_sample=None, max_farmers_to_sample=None):
        state = self.state
        result = None
        try:
            result = activity_sampler.sample_and_create_tasks(
                activity_id,
                percentage,
                run_by_user_id=self.options.run_by_user_id,
                force_run=self.options.force_run,
                scheduled_date=self.options.scheduled_date,
                set_first_sample_run=self.options.set_first_sample_run,
                min_farmers_to_sample=min_farmers_to_sample,
                max_farmers_to_sample=max_farmers_to_sample,
                run_id=self.run.id,
            )
        except Exception as exc:
            db.session.rollback()
            message = state.record_error(activity_id, exc)
            logger.error(message, extra={"run_id": self.run.id, "activity_id": activity_id})
        else:
            state.record_success(activity_id, result)

        state.attempted += 1
        state.last_activity_id = activity_id
        if state.attempted % self.progress_every == 0 or state.attempted == self._total:
            run_tracker.checkpoint(self.run, state)
        return result
