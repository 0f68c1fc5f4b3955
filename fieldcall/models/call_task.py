"""
Field Activity Call Sampling Service
Call task models.

Models:
    - CallTask:      One outbound call to one sampled farmer of one activity
    - CoolingPeriod: Last time a farmer was selected; blocks re-selection
                     within the farmer cooling window
"""

from datetime import datetime, timezone

from fieldcall.models import db


# ── Constants ────────────────────────────────────────────────────────────────

TASK_STATUSES = frozenset({
    "unassigned", "sampled_in_queue", "in_progress",
    "completed", "not_reachable", "invalid_number",
})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CallTask(db.Model):
    """
    Outbound call task for one (activity, farmer) pair.

    Created unassigned by the per-activity sampler. ``call_log`` stays null
    until an agent records a call outcome; tasks with a call log are never
    removed by reactivation.
    """

    __tablename__ = "call_tasks"
    __table_args__ = (
        db.UniqueConstraint("activity_id", "farmer_id", name="uq_call_task_activity_farmer"),
    )

    id = db.Column(db.Integer, primary_key=True)
    farmer_id = db.Column(db.Integer, db.ForeignKey("farmers.id", ondelete="CASCADE"),
                          nullable=False, index=True)
    activity_id = db.Column(db.Integer, db.ForeignKey("activities.id", ondelete="CASCADE"),
                            nullable=False, index=True)
    status = db.Column(db.String(30), nullable=False, default="unassigned", index=True,
                       comment="unassigned | sampled_in_queue | in_progress | completed | "
                               "not_reachable | invalid_number")
    assigned_agent_id = db.Column(db.String(150), nullable=True, index=True)
    scheduled_date = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    retry_count = db.Column(db.Integer, nullable=False, default=0)
    call_log = db.Column(db.JSON(none_as_null=True), nullable=True,
                         comment="Outcome recorded by the agent; null until called")

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    farmer = db.relationship("Farmer", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "farmerId": self.farmer_id,
            "activityId": self.activity_id,
            "status": self.status,
            "assignedAgentId": self.assigned_agent_id,
            "scheduledDate": self.scheduled_date.isoformat() if self.scheduled_date else None,
            "retryCount": self.retry_count,
            "callLog": self.call_log,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<CallTask {self.id} activity={self.activity_id} farmer={self.farmer_id} [{self.status}]>"


class CoolingPeriod(db.Model):
    """Most recent selection of a farmer, one row per farmer."""

    __tablename__ = "cooling_periods"

    id = db.Column(db.Integer, primary_key=True)
    farmer_id = db.Column(db.Integer, db.ForeignKey("farmers.id", ondelete="CASCADE"),
                          nullable=False, unique=True)
    last_call_date = db.Column(db.DateTime(timezone=True), nullable=False)
    cooling_period_days = db.Column(db.Integer, nullable=False, default=30)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def __repr__(self):
        return f"<CoolingPeriod farmer={self.farmer_id} until {self.expires_at}>"
