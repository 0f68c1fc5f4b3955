"""
Field Activity Call Sampling Service
Field activity models.

Models:
    - Farmer:   A farmer reachable by phone, attached to one or more activities
    - Activity: One recorded field event (field day, meeting, demo) with its
                attendees and sampling lifecycle

Activities and farmers are written by the ingestion sync; this service only
mutates the lifecycle columns of Activity.
"""

from datetime import datetime, timezone

from sqlalchemy import func, select

from fieldcall.models import db


# ── Constants ────────────────────────────────────────────────────────────────

ACTIVITY_TYPES = ("Field Day", "Group Meeting", "Demo Visit", "OFM", "Other")

LIFECYCLE_ACTIVE = "active"
LIFECYCLE_SAMPLED = "sampled"
LIFECYCLE_INACTIVE = "inactive"
LIFECYCLE_NOT_ELIGIBLE = "not_eligible"
LIFECYCLE_STATUSES = frozenset({
    LIFECYCLE_ACTIVE, LIFECYCLE_SAMPLED, LIFECYCLE_INACTIVE, LIFECYCLE_NOT_ELIGIBLE,
})

UNKNOWN_OFFICER = "unknown"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


activity_farmers = db.Table(
    "activity_farmers",
    db.Column("activity_id", db.Integer,
              db.ForeignKey("activities.id", ondelete="CASCADE"), primary_key=True),
    db.Column("farmer_id", db.Integer,
              db.ForeignKey("farmers.id", ondelete="CASCADE"), primary_key=True),
)


class Farmer(db.Model):
    """A farmer who attended one or more activities."""

    __tablename__ = "farmers"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    mobile_number = db.Column(db.String(20), nullable=False, unique=True)
    location = db.Column(db.String(200), default="")
    preferred_language = db.Column(db.String(30), default="Hindi")
    territory = db.Column(db.String(200), default="")

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "mobileNumber": self.mobile_number,
            "location": self.location,
            "preferredLanguage": self.preferred_language,
            "territory": self.territory,
        }

    def __repr__(self):
        return f"<Farmer {self.id}: {self.name}>"


class Activity(db.Model):
    """
    One recorded field event and its sampling lifecycle.

    ``first_sample_run`` marks activities already consumed by a recurring
    (first-sample) run; ``lifecycle_status`` is the coarse state that decides
    whether the activity can be sampled. ``sampled`` is protected: only a
    manual reactivation moves an activity out of it.
    """

    __tablename__ = "activities"
    __table_args__ = (
        db.Index("ix_activities_lifecycle_first_date", "lifecycle_status", "first_sample_run", "date"),
    )

    id = db.Column(db.Integer, primary_key=True)
    activity_id = db.Column(db.String(100), nullable=False, unique=True,
                            comment="Activity id in the field-force app")
    type = db.Column(db.String(50), nullable=False, index=True,
                     comment="Field Day | Group Meeting | Demo Visit | OFM | Other")
    date = db.Column(db.Date, nullable=False, index=True)
    officer_id = db.Column(db.String(100), nullable=True, index=True)
    officer_name = db.Column(db.String(200), nullable=True)
    location = db.Column(db.String(200), default="")
    territory = db.Column(db.String(200), default="")

    first_sample_run = db.Column(db.Boolean, nullable=False, default=False)
    first_sampled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    lifecycle_status = db.Column(db.String(20), nullable=False, default=LIFECYCLE_ACTIVE,
                                 comment="active | sampled | inactive | not_eligible")
    lifecycle_updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    pre_ineligible_status = db.Column(db.String(20), nullable=True,
                                      comment="status to restore when the type is re-enabled")
    last_sampling_run_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    farmers = db.relationship("Farmer", secondary=activity_farmers, lazy="select",
                              order_by="Farmer.id")

    @classmethod
    def farmer_count_expr(cls):
        """Correlated scalar subquery: number of farmers linked to the activity."""
        return (
            select(func.count(activity_farmers.c.farmer_id))
            .where(activity_farmers.c.activity_id == cls.id)
            .correlate(cls)
            .scalar_subquery()
        )

    def set_lifecycle(self, status: str, when: datetime | None = None) -> None:
        self.lifecycle_status = status
        self.lifecycle_updated_at = when or _utcnow()

    def to_dict(self, include_farmers=False):
        result = {
            "id": self.id,
            "activityId": self.activity_id,
            "type": self.type,
            "date": self.date.isoformat() if self.date else None,
            "officerId": self.officer_id,
            "officerName": self.officer_name,
            "location": self.location,
            "territory": self.territory,
            "firstSampleRun": self.first_sample_run,
            "firstSampledAt": self.first_sampled_at.isoformat() if self.first_sampled_at else None,
            "lifecycleStatus": self.lifecycle_status,
            "lifecycleUpdatedAt": self.lifecycle_updated_at.isoformat() if self.lifecycle_updated_at else None,
            "lastSamplingRunAt": self.last_sampling_run_at.isoformat() if self.last_sampling_run_at else None,
        }
        if include_farmers:
            result["farmers"] = [f.to_dict() for f in self.farmers]
        return result

    def __repr__(self):
        return f"<Activity {self.id} {self.type} {self.date} [{self.lifecycle_status}]>"
