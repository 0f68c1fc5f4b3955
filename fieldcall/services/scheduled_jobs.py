"""
Field Activity Call Sampling Service
Scheduled Jobs.

Jobs:
    - auto_sampling: evaluates the auto-run gate for the configured initiator
      and runs a first-sample run when it passes
"""

from __future__ import annotations

import logging
from typing import Any

from fieldcall.services.scheduler_service import register_job

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job: Auto Sampling
# ═══════════════════════════════════════════════════════════════════════════

@register_job("auto_sampling")
def run_auto_sampling(app) -> dict[str, Any]:
    """Gate-checked first-sample run on behalf of the scheduler initiator."""
    from fieldcall.services.auto_run import run_if_due

    initiator = app.config.get("AUTO_RUN_INITIATOR", "scheduler")
    outcome = run_if_due(initiator)
    if outcome.get("ran"):
        run = outcome["run"]
        logger.info(
            "Auto sampling: run %s %s, processed=%s tasks=%s",
            run["runId"], run["status"], run["processed"], run["tasksCreatedTotal"],
        )
    else:
        logger.info("Auto sampling: not run (%s)", outcome.get("reason"))
    return outcome
