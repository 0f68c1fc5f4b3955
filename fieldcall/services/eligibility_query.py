"""
Field Activity Call Sampling Service
Eligibility query for recurring (first-sample) runs.

One predicate, shared by the preview count and the candidate fetch: an
activity is a candidate when it was never first-sampled, has the requested
lifecycle status, falls inside the date window (inclusive) and has at least
one farmer. Keep every selection path going through ``build_eligibility_filter``
so a previewed ``matchedCount`` is exactly what a run will see.
"""

from datetime import date

from sqlalchemy import func, select

from fieldcall.models import db
from fieldcall.models.activity import LIFECYCLE_ACTIVE, Activity


def build_eligibility_filter(range_start: date | None = None,
                             range_end: date | None = None,
                             lifecycle_status: str = LIFECYCLE_ACTIVE) -> list:
    """Return the SQLAlchemy clauses selecting recurring-run candidates."""
    clauses = [
        Activity.first_sample_run.is_(False),
        Activity.lifecycle_status == lifecycle_status,
        Activity.farmer_count_expr() > 0,
    ]
    if range_start is not None:
        clauses.append(Activity.date >= range_start)
    if range_end is not None:
        clauses.append(Activity.date <= range_end)
    return clauses


def count_eligible(range_start: date | None = None,
                   range_end: date | None = None,
                   lifecycle_status: str = LIFECYCLE_ACTIVE) -> int:
    stmt = select(func.count(Activity.id)).where(
        *build_eligibility_filter(range_start, range_end, lifecycle_status)
    )
    return db.session.execute(stmt).scalar_one()


def fetch_candidates(range_start: date | None = None,
                     range_end: date | None = None,
                     lifecycle_status: str = LIFECYCLE_ACTIVE,
                     *, limit: int | None = None) -> list[dict]:
    """Fetch candidate rows (newest first) as plain dicts for the allocator.

    Each row carries ``id``, ``activity_id``, ``officer_id``, ``type``,
    ``date`` and ``farmer_count``.
    """
    farmer_count = Activity.farmer_count_expr().label("farmer_count")
    stmt = (
        select(
            Activity.id,
            Activity.activity_id,
            Activity.officer_id,
            Activity.type,
            Activity.date,
            farmer_count,
        )
        .where(*build_eligibility_filter(range_start, range_end, lifecycle_status))
        .order_by(Activity.date.desc(), Activity.id.desc())
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    return [dict(row._mapping) for row in db.session.execute(stmt)]


def eligible_date_span(lifecycle_status: str = LIFECYCLE_ACTIVE) -> tuple[date | None, date | None]:
    """Min/max activity date over the unbounded eligibility predicate."""
    stmt = select(func.min(Activity.date), func.max(Activity.date)).where(
        *build_eligibility_filter(None, None, lifecycle_status)
    )
    earliest, latest = db.session.execute(stmt).one()
    return earliest, latest
