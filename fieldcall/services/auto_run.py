"""
Field Activity Call Sampling Service
Auto-run gate for scheduled first-sample runs.

A scheduled run goes ahead only when, in this order:

    1. auto-run is enabled                      else reason ``disabled``
    2. today is on/after the activation date    else ``not_yet_active``
    3. eligible backlog in the resolved range
       reaches the configured threshold         else ``below_threshold``
    4. no first-sample run of this initiator
       is still ``running``                     else ``already_running``

A refused gate creates no SamplingRun. Check 4 reads persisted state and is
not atomic with run creation: two triggers landing together can both pass.
"""

import logging
from dataclasses import dataclass

from fieldcall.models.sampling import RUN_TYPE_FIRST_SAMPLE
from fieldcall.services import eligibility_query, range_resolver, run_tracker, sampling_service
from fieldcall.services.range_resolver import DateRange
from fieldcall.services.sampling_config_service import get_config
from fieldcall.services.sampling_requests import RunRequest
from fieldcall.utils.helpers import today

logger = logging.getLogger(__name__)

REASON_DISABLED = "disabled"
REASON_NOT_YET_ACTIVE = "not_yet_active"
REASON_BELOW_THRESHOLD = "below_threshold"
REASON_ALREADY_RUNNING = "already_running"


@dataclass
class GateDecision:
    proceed: bool
    reason: str | None = None
    range: DateRange | None = None
    matched_count: int | None = None
    threshold: int | None = None

    def to_dict(self):
        data = {"ran": False, "reason": self.reason}
        if self.matched_count is not None:
            data["matchedCount"] = self.matched_count
            data["threshold"] = self.threshold
        if self.range is not None:
            data.update(dateFrom=self.range.date_from.isoformat(),
                        dateTo=self.range.date_to.isoformat())
        return data


def evaluate_gate(initiator: str | None, *, force_run: bool = False) -> GateDecision:
    cfg = get_config()
    if not cfg.auto_run_enabled:
        return GateDecision(False, REASON_DISABLED)

    if cfg.auto_run_activate_from and today() < cfg.auto_run_activate_from:
        return GateDecision(False, REASON_NOT_YET_ACTIVE)

    window = range_resolver.resolve_range(
        initiator, sampling_service.window_cooling_days(cfg, force_run),
    )
    backlog = eligibility_query.count_eligible(window.date_from, window.date_to)
    threshold = cfg.auto_run_threshold or 0
    if backlog < threshold:
        return GateDecision(False, REASON_BELOW_THRESHOLD, window, backlog, threshold)

    if run_tracker.has_running_run(initiator, RUN_TYPE_FIRST_SAMPLE):
        return GateDecision(False, REASON_ALREADY_RUNNING, window, backlog, threshold)

    return GateDecision(True, None, window, backlog, threshold)


def run_if_due(initiator: str | None, *, sampling_percentage: float | None = None,
               force_run: bool = False) -> dict:
    """Evaluate the gate and, when it passes, execute a first-sample run.

    Returns ``{ran: False, reason, ...}`` or ``{ran: True, run: <summary>}``.
    """
    decision = evaluate_gate(initiator, force_run=force_run)
    if not decision.proceed:
        logger.info("Auto-run skipped for %s: %s", initiator, decision.reason)
        return decision.to_dict()

    logger.info(
        "Auto-run starting for %s: backlog=%d threshold=%d",
        initiator, decision.matched_count, decision.threshold,
    )
    # Same resolver as the gate, so the run covers the window that was counted
    req = RunRequest(
        run_type=RUN_TYPE_FIRST_SAMPLE,
        sampling_percentage=sampling_percentage,
        force_run=force_run,
    )
    summary = sampling_service.execute_run(req, user_id=initiator, scheduled=True)
    return {"ran": True, "run": summary}
