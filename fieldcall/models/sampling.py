"""
Field Activity Call Sampling Service
Sampling control models.

Models:
    - SamplingConfig: Singleton (key='default') sampling + auto-run settings
    - SamplingRun:    One record per sampling execution (progress + outcome)
    - SamplingAudit:  Append-only per-activity sampling outcome
"""

from datetime import datetime, timezone

from fieldcall.models import db


# ── Constants ────────────────────────────────────────────────────────────────

CONFIG_KEY = "default"

RUN_TYPE_FIRST_SAMPLE = "first_sample"
RUN_TYPE_ADHOC = "adhoc"
RUN_TYPES = frozenset({RUN_TYPE_FIRST_SAMPLE, RUN_TYPE_ADHOC})

RUN_STATUS_RUNNING = "running"
RUN_STATUS_COMPLETED = "completed"
RUN_STATUS_FAILED = "failed"
RUN_STATUSES = frozenset({RUN_STATUS_RUNNING, RUN_STATUS_COMPLETED, RUN_STATUS_FAILED})

SAMPLING_ALGORITHM = "Reservoir Sampling"

DEFAULT_CONFIG = {
    "activity_cooling_days": 5,
    "farmer_cooling_days": 30,
    "default_percentage": 10.0,
    "activity_type_percentages": {
        "Field Day": 10,
        "Group Meeting": 10,
        "Demo Visit": 10,
        "OFM": 10,
        "Other": 10,
    },
    "eligible_activity_types": [],  # empty => all eligible
    "auto_run_enabled": False,
    "auto_run_threshold": 200,
    "auto_run_activate_from": None,
    "task_due_in_days": 0,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class SamplingConfig(db.Model):
    """
    Singleton sampling configuration.

    Holds the default and per-type percentages, eligible activity types,
    cooling windows, the auto-run gate and bookkeeping of the last scheduled
    run. Mutated only through explicit config updates or auto-run bookkeeping.
    """

    __tablename__ = "sampling_config"

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(20), nullable=False, unique=True, default=CONFIG_KEY)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    activity_cooling_days = db.Column(db.Integer, nullable=False, default=5)
    farmer_cooling_days = db.Column(db.Integer, nullable=False, default=30)
    default_percentage = db.Column(db.Float, nullable=False, default=10.0)
    activity_type_percentages = db.Column(db.JSON, nullable=False, default=dict)
    eligible_activity_types = db.Column(db.JSON, nullable=False, default=list,
                                        comment="Empty list means every type is eligible")

    auto_run_enabled = db.Column(db.Boolean, nullable=False, default=False)
    auto_run_threshold = db.Column(db.Integer, nullable=False, default=200)
    auto_run_activate_from = db.Column(db.Date, nullable=True)
    task_due_in_days = db.Column(db.Integer, nullable=False, default=0)

    # Auto-run bookkeeping
    last_auto_run_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_auto_run_id = db.Column(db.Integer, nullable=True)
    last_auto_run_matched = db.Column(db.Integer, nullable=True)
    last_auto_run_processed = db.Column(db.Integer, nullable=True)
    last_auto_run_tasks_created = db.Column(db.Integer, nullable=True)

    updated_by_user_id = db.Column(db.String(150), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def percentage_for_type(self, activity_type: str | None) -> float:
        """Per-type override, else the default percentage."""
        overrides = self.activity_type_percentages or {}
        value = overrides.get(activity_type) if activity_type else None
        return float(value) if value else float(self.default_percentage)

    def is_type_eligible(self, activity_type: str) -> bool:
        eligible = self.eligible_activity_types or []
        return not eligible or activity_type in eligible

    def to_dict(self):
        return {
            "key": self.key,
            "isActive": self.is_active,
            "activityCoolingDays": self.activity_cooling_days,
            "farmerCoolingDays": self.farmer_cooling_days,
            "defaultPercentage": self.default_percentage,
            "activityTypePercentages": self.activity_type_percentages or {},
            "eligibleActivityTypes": self.eligible_activity_types or [],
            "autoRunEnabled": self.auto_run_enabled,
            "autoRunThreshold": self.auto_run_threshold,
            "autoRunActivateFrom": _iso(self.auto_run_activate_from),
            "taskDueInDays": self.task_due_in_days,
            "lastAutoRunAt": _iso(self.last_auto_run_at),
            "lastAutoRunId": self.last_auto_run_id,
            "lastAutoRunMatched": self.last_auto_run_matched,
            "lastAutoRunProcessed": self.last_auto_run_processed,
            "lastAutoRunTasksCreated": self.last_auto_run_tasks_created,
            "updatedByUserId": self.updated_by_user_id,
            "updatedAt": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<SamplingConfig {self.key} default={self.default_percentage}%>"


class SamplingRun(db.Model):
    """
    One sampling execution.

    Created in ``running`` before the first item, checkpointed while the
    executor works and finalised once as ``completed`` or ``failed``.
    """

    __tablename__ = "sampling_runs"
    __table_args__ = (
        db.Index("ix_sampling_runs_user_started", "created_by_user_id", "started_at"),
        db.Index("ix_sampling_runs_user_type_started", "created_by_user_id", "run_type", "started_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    created_by_user_id = db.Column(db.String(150), nullable=True, index=True)
    run_type = db.Column(db.String(20), nullable=False, default=RUN_TYPE_ADHOC,
                         comment="first_sample | adhoc")
    status = db.Column(db.String(20), nullable=False, default=RUN_STATUS_RUNNING, index=True,
                       comment="running | completed | failed")
    started_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    finished_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Applied filters
    lifecycle_status = db.Column(db.String(20), nullable=True)
    date_from = db.Column(db.Date, nullable=True)
    date_to = db.Column(db.Date, nullable=True)
    sampling_percentage = db.Column(db.Float, nullable=True)
    force_run = db.Column(db.Boolean, nullable=False, default=False)
    activity_ids_count = db.Column(db.Integer, nullable=True,
                                   comment="Number of explicit activity ids, when given")
    scheduled = db.Column(db.Boolean, nullable=False, default=False,
                          comment="True when started by the auto-run scheduler")

    # Counters
    matched = db.Column(db.Integer, nullable=False, default=0)
    processed = db.Column(db.Integer, nullable=False, default=0)
    tasks_created_total = db.Column(db.Integer, nullable=False, default=0)
    sampled_activities = db.Column(db.Integer, nullable=False, default=0)
    inactive_activities = db.Column(db.Integer, nullable=False, default=0)
    skipped = db.Column(db.Integer, nullable=False, default=0)
    error_count = db.Column(db.Integer, nullable=False, default=0)

    last_progress_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_activity_id = db.Column(db.Integer, nullable=True)
    error_messages = db.Column(db.JSON, nullable=False, default=list)

    @property
    def is_finished(self) -> bool:
        return self.status != RUN_STATUS_RUNNING

    def to_dict(self):
        return {
            "id": self.id,
            "createdByUserId": self.created_by_user_id,
            "runType": self.run_type,
            "status": self.status,
            "startedAt": _iso(self.started_at),
            "finishedAt": _iso(self.finished_at),
            "filters": {
                "lifecycleStatus": self.lifecycle_status,
                "dateFrom": _iso(self.date_from),
                "dateTo": _iso(self.date_to),
                "samplingPercentage": self.sampling_percentage,
                "forceRun": self.force_run,
                "activityIdsCount": self.activity_ids_count,
            },
            "isFinished": self.is_finished,
            "scheduled": self.scheduled,
            "matched": self.matched,
            "processed": self.processed,
            "tasksCreatedTotal": self.tasks_created_total,
            "sampledActivities": self.sampled_activities,
            "inactiveActivities": self.inactive_activities,
            "skipped": self.skipped,
            "errorCount": self.error_count,
            "lastProgressAt": _iso(self.last_progress_at),
            "lastActivityId": self.last_activity_id,
            "errorMessages": list(self.error_messages or []),
        }

    def __repr__(self):
        return f"<SamplingRun {self.id} {self.run_type} [{self.status}] {self.processed}/{self.matched}>"


class SamplingAudit(db.Model):
    """Immutable record of one activity's sampling outcome in one run."""

    __tablename__ = "sampling_audits"

    id = db.Column(db.Integer, primary_key=True)
    activity_id = db.Column(db.Integer, db.ForeignKey("activities.id", ondelete="CASCADE"),
                            nullable=False, index=True)
    run_id = db.Column(db.Integer, nullable=True, index=True)
    sampling_percentage = db.Column(db.Float, nullable=False)
    total_farmers = db.Column(db.Integer, nullable=False, default=0)
    sampled_count = db.Column(db.Integer, nullable=False, default=0)
    algorithm = db.Column(db.String(50), nullable=False, default=SAMPLING_ALGORITHM)
    meta = db.Column("metadata", db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, index=True)

    activity = db.relationship("Activity", lazy="joined")

    def to_dict(self):
        activity = self.activity
        return {
            "id": self.id,
            "activityId": self.activity_id,
            "activity": {
                "type": activity.type,
                "date": _iso(activity.date),
                "location": activity.location,
                "territory": activity.territory,
            } if activity else None,
            "runId": self.run_id,
            "samplingPercentage": self.sampling_percentage,
            "totalFarmers": self.total_farmers,
            "sampledCount": self.sampled_count,
            "algorithm": self.algorithm,
            "metadata": self.meta or {},
            "createdAt": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<SamplingAudit activity={self.activity_id} {self.sampled_count}/{self.total_farmers}>"
