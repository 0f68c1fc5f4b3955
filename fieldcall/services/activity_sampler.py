"""
Field Activity Call Sampling Service
Per-activity sampler.

Owns everything that happens to one activity during a run:

    - gates: lifecycle must be ``active``, the type must be eligible and,
      unless ``force_run``, the activity must be older than the activity
      cooling window
    - farmer selection: farmers still inside the farmer cooling window are
      excluded, the rest are reservoir-sampled
    - writes: one unassigned CallTask per selected farmer (deduplicated per
      activity), a CoolingPeriod upsert per selected farmer, the activity's
      lifecycle (``sampled`` when anything was selected, else ``inactive``)
      and one SamplingAudit row

Raises NotFoundError for an unknown activity; callers running a batch are
expected to catch, record and continue.
"""

import logging
import math
import random
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from fieldcall.core.exceptions import NotFoundError
from fieldcall.models import db
from fieldcall.models.activity import (
    LIFECYCLE_ACTIVE, LIFECYCLE_INACTIVE, LIFECYCLE_SAMPLED, Activity,
)
from fieldcall.models.call_task import CallTask, CoolingPeriod
from fieldcall.models.sampling import SAMPLING_ALGORITHM, SamplingAudit
from fieldcall.services.sampling_config_service import get_config
from fieldcall.utils.helpers import today, utcnow

logger = logging.getLogger(__name__)


@dataclass
class SampleResult:
    tasks_created: int = 0
    skipped: bool = False
    skip_reason: str | None = None
    total_farmers: int = 0
    eligible_farmers: int = 0
    sampled_count: int = 0
    activity_lifecycle_status: str | None = None

    def to_dict(self):
        return {
            "tasksCreated": self.tasks_created,
            "skipped": self.skipped,
            "skipReason": self.skip_reason,
            "totalFarmers": self.total_farmers,
            "eligibleFarmers": self.eligible_farmers,
            "sampledCount": self.sampled_count,
            "activityLifecycleStatus": self.activity_lifecycle_status,
        }


# ── Sampling primitives ──────────────────────────────────────────────────────

def calculate_sample_size(population: int, percentage: float) -> int:
    """ceil(population × pct / 100), at least 1 and at most the population."""
    if population <= 0:
        return 0
    return max(1, min(math.ceil(population * percentage / 100), population))


def reservoir_sample(items: list, k: int, rng=random) -> list:
    """Uniformly choose ``k`` items in one pass (Algorithm R)."""
    if k <= 0:
        return []
    if k >= len(items):
        return list(items)
    reservoir = list(items[:k])
    for i in range(k, len(items)):
        j = rng.randint(0, i)
        if j < k:
            reservoir[j] = items[i]
    return reservoir


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes for timezone-aware columns
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


# ── Gates & selection ────────────────────────────────────────────────────────

def _cooling_blocked_farmers(farmer_ids: list[int], farmer_cooling_days: int) -> set[int]:
    if not farmer_ids:
        return set()
    now = utcnow()
    rows = CoolingPeriod.query.filter(CoolingPeriod.farmer_id.in_(farmer_ids)).all()
    window = timedelta(days=farmer_cooling_days)
    return {
        row.farmer_id for row in rows
        if row.last_call_date and _as_utc(row.last_call_date) + window > now
    }


def _past_activity_cooling(activity: Activity, activity_cooling_days: int) -> bool:
    return today() >= activity.date + timedelta(days=activity_cooling_days)


def _skip(activity: Activity, reason: str) -> SampleResult:
    return SampleResult(
        skipped=True,
        skip_reason=reason,
        total_farmers=len(activity.farmers),
        activity_lifecycle_status=activity.lifecycle_status or LIFECYCLE_ACTIVE,
    )


# ── Writes ───────────────────────────────────────────────────────────────────

def _create_unassigned_tasks(farmer_ids: list[int], activity_id: int,
                             scheduled_date: datetime) -> int:
    existing = {
        fid for (fid,) in db.session.query(CallTask.farmer_id).filter(
            CallTask.activity_id == activity_id,
            CallTask.farmer_id.in_(farmer_ids),
        )
    } if farmer_ids else set()

    created = 0
    for farmer_id in farmer_ids:
        if farmer_id in existing:
            continue
        db.session.add(CallTask(
            farmer_id=farmer_id,
            activity_id=activity_id,
            status="unassigned",
            assigned_agent_id=None,
            retry_count=0,
            scheduled_date=scheduled_date,
        ))
        created += 1
    return created


def _touch_cooling(farmer_ids: list[int], farmer_cooling_days: int, now: datetime) -> None:
    rows = {
        row.farmer_id: row
        for row in CoolingPeriod.query.filter(CoolingPeriod.farmer_id.in_(farmer_ids)).all()
    } if farmer_ids else {}
    expires_at = now + timedelta(days=farmer_cooling_days)
    for farmer_id in farmer_ids:
        row = rows.get(farmer_id)
        if row is None:
            row = CoolingPeriod(farmer_id=farmer_id)
            db.session.add(row)
        row.last_call_date = now
        row.cooling_period_days = farmer_cooling_days
        row.expires_at = expires_at


# ── Entry point ──────────────────────────────────────────────────────────────

def sample_and_create_tasks(activity_id: int, percentage: float | None = None, *,
                            run_by_user_id: str | None = None,
                            force_run: bool = False,
                            scheduled_date: datetime | None = None,
                            set_first_sample_run: bool = False,
                            min_farmers_to_sample: int | None = None,
                            max_farmers_to_sample: int | None = None,
                            run_id: int | None = None,
                            rng=random) -> SampleResult:
    """Sample one activity's farmers and create their call tasks.

    Args:
        activity_id: Primary key of the Activity.
        percentage: Explicit percentage; defaults to the type override, then
            the config default.
        force_run: Skip the activity cooling gate (lifecycle still applies).
        scheduled_date: Due date stamped on created tasks (default now).
        set_first_sample_run: Mark the activity as consumed by a recurring run.
        min_farmers_to_sample: Raise the sample size to this (bounded by the
            eligible farmers).
        max_farmers_to_sample: Cap the sample size; 0 selects nobody.
        run_id: Owning SamplingRun, recorded on the audit row.

    Returns:
        SampleResult. Commits on every non-skipped path.
    """
    config = get_config()
    activity = db.session.get(Activity, activity_id)
    if activity is None:
        raise NotFoundError(resource="Activity", resource_id=activity_id)

    if activity.lifecycle_status and activity.lifecycle_status != LIFECYCLE_ACTIVE:
        return _skip(activity, "Provide only Active activities for sampling "
                               f"(current: {activity.lifecycle_status})")

    if not config.is_type_eligible(activity.type):
        return _skip(activity, f'Activity type "{activity.type}" is not eligible per Sampling Control')

    if not force_run and not _past_activity_cooling(activity, config.activity_cooling_days):
        return _skip(activity, f"Activity is within activityCoolingDays={config.activity_cooling_days}")

    farmer_ids = [f.id for f in activity.farmers]
    total_farmers = len(farmer_ids)
    if total_farmers == 0:
        logger.warning("Activity %s has no farmers", activity_id)
        return SampleResult(activity_lifecycle_status=activity.lifecycle_status or LIFECYCLE_ACTIVE)

    pct = float(percentage) if percentage else config.percentage_for_type(activity.type)

    blocked = _cooling_blocked_farmers(farmer_ids, config.farmer_cooling_days)
    eligible = [fid for fid in farmer_ids if fid not in blocked]
    if not eligible:
        logger.warning("No eligible farmers for activity %s (all in farmer cooling window)", activity_id)

    sample_size = calculate_sample_size(len(eligible), pct)
    if min_farmers_to_sample is not None and eligible:
        sample_size = max(sample_size, min(min_farmers_to_sample, len(eligible)))
    if max_farmers_to_sample is not None:
        sample_size = min(sample_size, max(0, max_farmers_to_sample))

    selected = reservoir_sample(eligible, sample_size, rng=rng)

    now = utcnow()
    scheduled_date = scheduled_date or now
    tasks_created = _create_unassigned_tasks(selected, activity.id, scheduled_date)
    _touch_cooling(selected, config.farmer_cooling_days, now)

    new_status = LIFECYCLE_SAMPLED if selected else LIFECYCLE_INACTIVE
    activity.set_lifecycle(new_status, now)
    activity.last_sampling_run_at = now
    if set_first_sample_run:
        activity.first_sample_run = True
        activity.first_sampled_at = now

    db.session.add(SamplingAudit(
        activity_id=activity.id,
        run_id=run_id,
        sampling_percentage=pct,
        total_farmers=total_farmers,
        sampled_count=len(selected),
        algorithm=SAMPLING_ALGORITHM,
        meta={
            "eligibleFarmers": len(eligible),
            "tasksCreated": tasks_created,
            "activityType": activity.type,
            "activityCoolingDays": config.activity_cooling_days,
            "farmerCoolingDays": config.farmer_cooling_days,
            "eligibleActivityTypes": list(config.eligible_activity_types or []),
            "scheduledDate": scheduled_date.isoformat(),
            "runByUserId": run_by_user_id,
            "runId": run_id,
        },
    ))
    db.session.commit()

    logger.info(
        "Sampling completed for activity %s: %d/%d sampled (%s%%), %d tasks created",
        activity_id, len(selected), len(eligible), pct, tasks_created,
    )
    return SampleResult(
        tasks_created=tasks_created,
        total_farmers=total_farmers,
        eligible_farmers=len(eligible),
        sampled_count=len(selected),
        activity_lifecycle_status=new_status,
    )
