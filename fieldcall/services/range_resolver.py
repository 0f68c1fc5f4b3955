"""
Field Activity Call Sampling Service
Date-range resolution for recurring (first-sample) runs.

Two sources:
    auto: continue from the previous first-sample run's ``date_to`` up to
                the window end. The previous end day is included again so
                activities that arrived late for that day are still picked up.
    suggested: span of the currently eligible, never-sampled activities, or
                a trailing fallback window when nothing is eligible.

The window end never passes ``today - cooling_days``. Activities newer than
that are refused by the sampler's activity-cooling gate, so a window covering
them would advance the next run's start past activities nobody sampled.

Read-only.
"""

from dataclasses import dataclass
from datetime import date, timedelta

from flask import current_app

from fieldcall.models.sampling import RUN_TYPE_FIRST_SAMPLE, SamplingRun
from fieldcall.services.eligibility_query import eligible_date_span
from fieldcall.utils.helpers import today

SOURCE_AUTO = "auto"
SOURCE_SUGGESTED = "suggested"


@dataclass(frozen=True)
class DateRange:
    date_from: date
    date_to: date
    source: str

    def to_dict(self):
        return {
            "source": self.source,
            "dateFrom": self.date_from.isoformat(),
            "dateTo": self.date_to.isoformat(),
        }


def window_end(cooling_days: int = 0) -> date:
    """Latest activity date a run can sample today."""
    return today() - timedelta(days=max(0, cooling_days or 0))


def last_first_sample_run(user_id: str | None) -> SamplingRun | None:
    """Most recently started first-sample run of ``user_id`` that recorded an end date."""
    return (
        SamplingRun.query
        .filter(
            SamplingRun.created_by_user_id == user_id,
            SamplingRun.run_type == RUN_TYPE_FIRST_SAMPLE,
            SamplingRun.date_to.isnot(None),
        )
        .order_by(SamplingRun.started_at.desc(), SamplingRun.id.desc())
        .first()
    )


def resolve_first_sample_range(user_id: str | None, cooling_days: int = 0) -> DateRange | None:
    """Auto range continuing the user's last first-sample run, else None."""
    prior = last_first_sample_run(user_id)
    if prior is None:
        return None
    end = window_end(cooling_days)
    # A prior run ending after the current window end still yields a one-day window
    start = min(prior.date_to, end)
    return DateRange(start, end, SOURCE_AUTO)


def suggested_range(fallback_days: int | None = None, cooling_days: int = 0) -> DateRange:
    end = window_end(cooling_days)
    earliest, latest = eligible_date_span()
    if earliest is not None and latest is not None:
        return DateRange(min(earliest, end), min(latest, end), SOURCE_SUGGESTED)

    if fallback_days is None:
        fallback_days = current_app.config.get("SAMPLING_FALLBACK_WINDOW_DAYS", 30)
    return DateRange(end - timedelta(days=fallback_days), end, SOURCE_SUGGESTED)


def resolve_range(user_id: str | None, cooling_days: int = 0) -> DateRange:
    """Auto range when a prior run exists, otherwise the suggested range."""
    return (resolve_first_sample_range(user_id, cooling_days)
            or suggested_range(cooling_days=cooling_days))
