"""
Field Activity Call Sampling Service
Activity lifecycle transitions driven by configuration and manual action.

    active | inactive ──(type disabled)──▶ not_eligible ──(type enabled)──▶ previous status
    active ──(sampled by a run)──▶ sampled | inactive
    any matched ──(manual reactivate, confirm=YES)──▶ active

``sampled`` is never touched by the eligibility toggle in either direction;
only a manual reactivation moves an activity out of it.
"""

import logging

from sqlalchemy import func

from fieldcall.models import db
from fieldcall.models.activity import (
    ACTIVITY_TYPES, LIFECYCLE_ACTIVE, LIFECYCLE_NOT_ELIGIBLE, LIFECYCLE_SAMPLED, Activity,
)
from fieldcall.models.call_task import CallTask
from fieldcall.models.sampling import SamplingAudit
from fieldcall.services import sampling_config_service
from fieldcall.services.sampling_requests import ReactivateFilter, ReactivateRequest
from fieldcall.utils.helpers import utcnow

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Eligibility toggle
# ═══════════════════════════════════════════════════════════════════════════

def split_types(eligible_types: list[str]) -> tuple[list[str], list[str]]:
    """Return (enabled, disabled) over the known types. Empty input enables all."""
    if not eligible_types:
        return list(ACTIVITY_TYPES), []
    enabled = [t for t in ACTIVITY_TYPES if t in eligible_types]
    disabled = [t for t in ACTIVITY_TYPES if t not in eligible_types]
    return enabled, disabled


def apply_eligibility(eligible_types: list[str], *, user_id: str | None = None) -> dict:
    """Persist the eligible type list and move activities accordingly.

    - disabled types: every non-``sampled`` activity → ``not_eligible``,
      remembering the status it had in ``pre_ineligible_status``
    - enabled types:  every ``not_eligible`` activity → its remembered
      status, or ``active`` when none was recorded
    """
    sampling_config_service.update_config(
        {"eligibleActivityTypes": list(eligible_types)}, user_id=user_id,
    )
    enabled, disabled = split_types(eligible_types)
    now = utcnow()

    disabled_count = 0
    if disabled:
        disabled_count = Activity.query.filter(
            Activity.type.in_(disabled),
            Activity.lifecycle_status.notin_([LIFECYCLE_SAMPLED, LIFECYCLE_NOT_ELIGIBLE]),
        ).update(
            {
                # SET reads pre-update values, so this captures the old status
                "pre_ineligible_status": Activity.lifecycle_status,
                "lifecycle_status": LIFECYCLE_NOT_ELIGIBLE,
                "lifecycle_updated_at": now,
            },
            synchronize_session=False,
        )

    reactivated_count = 0
    if enabled:
        reactivated_count = Activity.query.filter(
            Activity.type.in_(enabled),
            Activity.lifecycle_status == LIFECYCLE_NOT_ELIGIBLE,
        ).update(
            {
                "lifecycle_status": func.coalesce(Activity.pre_ineligible_status, LIFECYCLE_ACTIVE),
                "pre_ineligible_status": None,
                "lifecycle_updated_at": now,
            },
            synchronize_session=False,
        )

    db.session.commit()
    logger.info(
        "Eligibility applied: disabled=%s (%d moved), enabled=%s (%d restored)",
        disabled, disabled_count, enabled, reactivated_count,
    )
    return {
        "eligibleActivityTypes": list(eligible_types),
        "enabledTypes": enabled,
        "disabledTypes": disabled,
        "disabledCount": disabled_count,
        "reactivatedCount": reactivated_count,
    }


# ═══════════════════════════════════════════════════════════════════════════
#  Manual reactivation
# ═══════════════════════════════════════════════════════════════════════════

def _matching_ids(flt: ReactivateFilter) -> list[int]:
    query = db.session.query(Activity.id)
    if flt.activity_ids:
        query = query.filter(Activity.id.in_(flt.activity_ids))
    if flt.from_status:
        query = query.filter(Activity.lifecycle_status == flt.from_status)
    if flt.date_from:
        query = query.filter(Activity.date >= flt.date_from)
    if flt.date_to:
        query = query.filter(Activity.date <= flt.date_to)
    return [row.id for row in query]


def reactivate_preview(flt: ReactivateFilter) -> dict:
    """Counts a reactivation with the same filter would touch. Read-only."""
    ids = _matching_ids(flt)
    if not ids:
        return {"activities": 0, "tasksWithCallLog": 0, "tasksWithoutCallLog": 0, "audits": 0}

    tasks = CallTask.query.filter(CallTask.activity_id.in_(ids))
    return {
        "activities": len(ids),
        "tasksWithCallLog": tasks.filter(CallTask.call_log.isnot(None)).count(),
        "tasksWithoutCallLog": tasks.filter(CallTask.call_log.is_(None)).count(),
        "audits": SamplingAudit.query.filter(SamplingAudit.activity_id.in_(ids)).count(),
    }


def reactivate(request: ReactivateRequest, *, user_id: str | None = None) -> dict:
    """Move matched activities back to ``active`` and into the recurring backlog.

    Optional cascades delete call tasks without a call outcome and/or the
    sampling audit history. Tasks with a recorded ``call_log`` always survive.
    """
    ids = _matching_ids(request.filter)
    result = {
        "count": len(ids),
        "modifiedCount": 0,
        "tasksDeleted": 0,
        "tasksPreserved": 0,
        "auditsDeleted": 0,
    }
    if not ids:
        return result

    if request.delete_existing_tasks:
        result["tasksDeleted"] = CallTask.query.filter(
            CallTask.activity_id.in_(ids),
            CallTask.call_log.is_(None),
        ).delete(synchronize_session=False)
        result["tasksPreserved"] = CallTask.query.filter(
            CallTask.activity_id.in_(ids),
        ).count()

    if request.delete_existing_audit:
        result["auditsDeleted"] = SamplingAudit.query.filter(
            SamplingAudit.activity_id.in_(ids),
        ).delete(synchronize_session=False)

    result["modifiedCount"] = Activity.query.filter(Activity.id.in_(ids)).update(
        {
            "lifecycle_status": LIFECYCLE_ACTIVE,
            "lifecycle_updated_at": utcnow(),
            "first_sample_run": False,
            "pre_ineligible_status": None,
        },
        synchronize_session=False,
    )
    db.session.commit()

    logger.info(
        "Reactivated %d activities by %s (tasks deleted=%d preserved=%d, audits deleted=%d)",
        result["count"], user_id, result["tasksDeleted"], result["tasksPreserved"],
        result["auditsDeleted"],
    )
    return result
