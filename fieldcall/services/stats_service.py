"""
Field Activity Call Sampling Service
Sampling Control read models: dashboard stats, activity listing, audit history.
"""

import logging

from sqlalchemy import case, func

from fieldcall.models import db
from fieldcall.models.activity import (
    LIFECYCLE_ACTIVE, LIFECYCLE_INACTIVE, LIFECYCLE_NOT_ELIGIBLE, LIFECYCLE_SAMPLED,
    Activity, activity_farmers,
)
from fieldcall.models.call_task import CallTask
from fieldcall.models.sampling import SamplingAudit
from fieldcall.services.sampling_requests import ActivityListQuery, AuditQuery, StatsQuery

logger = logging.getLogger(__name__)

_COUNTERS = (
    "totalActivities", "active", "sampled", "inactive", "notEligible",
    "farmersTotal", "sampledFarmers", "tasksCreated", "unassignedTasks",
)

_LIFECYCLE_KEYS = {
    LIFECYCLE_ACTIVE: "active",
    LIFECYCLE_SAMPLED: "sampled",
    LIFECYCLE_INACTIVE: "inactive",
    LIFECYCLE_NOT_ELIGIBLE: "notEligible",
}


def _date_filters(date_from, date_to) -> list:
    clauses = []
    if date_from:
        clauses.append(Activity.date >= date_from)
    if date_to:
        clauses.append(Activity.date <= date_to)
    return clauses


def get_stats(query: StatsQuery) -> dict:
    """Counts by activity type and lifecycle for activities in the date range.

    ``sampledFarmers`` sums the latest audit of each activity, so resampled
    activities are not double counted.
    """
    where = _date_filters(query.date_from, query.date_to)
    by_type: dict[str, dict] = {}

    def row_for(activity_type):
        return by_type.setdefault(activity_type, {"type": activity_type, **{k: 0 for k in _COUNTERS}})

    lifecycle_rows = (
        db.session.query(Activity.type, Activity.lifecycle_status, func.count(Activity.id))
        .filter(*where)
        .group_by(Activity.type, Activity.lifecycle_status)
    )
    for activity_type, status, count in lifecycle_rows:
        row = row_for(activity_type)
        row["totalActivities"] += count
        key = _LIFECYCLE_KEYS.get(status)
        if key:
            row[key] += count

    farmer_rows = (
        db.session.query(Activity.type, func.count(activity_farmers.c.farmer_id))
        .join(activity_farmers, activity_farmers.c.activity_id == Activity.id)
        .filter(*where)
        .group_by(Activity.type)
    )
    for activity_type, count in farmer_rows:
        row_for(activity_type)["farmersTotal"] = count

    task_rows = (
        db.session.query(
            Activity.type,
            func.count(CallTask.id),
            func.sum(case((CallTask.status == "unassigned", 1), else_=0)),
        )
        .join(CallTask, CallTask.activity_id == Activity.id)
        .filter(*where)
        .group_by(Activity.type)
    )
    for activity_type, tasks, unassigned in task_rows:
        row = row_for(activity_type)
        row["tasksCreated"] = tasks
        row["unassignedTasks"] = int(unassigned or 0)

    latest_audit = (
        db.session.query(func.max(SamplingAudit.id).label("id"))
        .group_by(SamplingAudit.activity_id)
        .subquery()
    )
    sampled_rows = (
        db.session.query(Activity.type, func.sum(SamplingAudit.sampled_count))
        .join(SamplingAudit, SamplingAudit.activity_id == Activity.id)
        .join(latest_audit, latest_audit.c.id == SamplingAudit.id)
        .filter(*where)
        .group_by(Activity.type)
    )
    for activity_type, sampled in sampled_rows:
        row_for(activity_type)["sampledFarmers"] = int(sampled or 0)

    rows = sorted(by_type.values(), key=lambda r: r["totalActivities"], reverse=True)
    totals = {k: sum(r[k] for r in rows) for k in _COUNTERS}
    return {
        "dateFrom": query.date_from.isoformat() if query.date_from else None,
        "dateTo": query.date_to.isoformat() if query.date_to else None,
        "totals": totals,
        "byType": rows,
    }


def activities_query(query: ActivityListQuery):
    """Activity listing query, newest first."""
    q = Activity.query
    if query.lifecycle_status:
        q = q.filter(Activity.lifecycle_status == query.lifecycle_status)
    if query.type:
        q = q.filter(Activity.type == query.type)
    q = q.filter(*_date_filters(query.date_from, query.date_to))
    return q.order_by(Activity.date.desc(), Activity.id.desc())


def audits_query(query: AuditQuery):
    """Audit history query, newest first."""
    q = SamplingAudit.query
    if query.activity_id:
        q = q.filter(SamplingAudit.activity_id == query.activity_id)
    return q.order_by(SamplingAudit.created_at.desc(), SamplingAudit.id.desc())
