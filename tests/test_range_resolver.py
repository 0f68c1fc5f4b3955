"""
Tests: first-sample date range resolution (auto vs suggested).
"""

from datetime import date, timedelta

from fieldcall.models import db as _db
from fieldcall.models.sampling import SamplingRun
from fieldcall.services import range_resolver
from fieldcall.utils.helpers import today, utcnow


def _make_run(user_id="lead-1", run_type="first_sample", date_to=None, started_ago_minutes=0,
              status="completed"):
    run = SamplingRun(
        created_by_user_id=user_id,
        run_type=run_type,
        status=status,
        started_at=utcnow() - timedelta(minutes=started_ago_minutes),
        date_from=date_to - timedelta(days=7) if date_to else None,
        date_to=date_to,
    )
    _db.session.add(run)
    _db.session.commit()
    return run


class TestAutoRange:

    def test_no_prior_run_returns_none(self):
        assert range_resolver.resolve_first_sample_range("lead-1") is None

    def test_continues_from_prior_date_to_with_overlap(self):
        _make_run(date_to=date(2024, 3, 10))
        rng = range_resolver.resolve_first_sample_range("lead-1")
        assert rng.source == "auto"
        assert rng.date_from == date(2024, 3, 10)
        assert rng.date_to == today()

    def test_latest_run_wins(self):
        _make_run(date_to=date(2024, 1, 31), started_ago_minutes=120)
        _make_run(date_to=date(2024, 2, 29), started_ago_minutes=5)
        rng = range_resolver.resolve_first_sample_range("lead-1")
        assert rng.date_from == date(2024, 2, 29)

    def test_ignores_adhoc_runs_and_other_users(self):
        _make_run(run_type="adhoc", date_to=date(2024, 3, 1))
        _make_run(user_id="lead-2", date_to=date(2024, 3, 2))
        assert range_resolver.resolve_first_sample_range("lead-1") is None

    def test_prior_run_without_date_to_is_ignored(self):
        _make_run(date_to=None)
        assert range_resolver.resolve_first_sample_range("lead-1") is None


class TestSuggestedRange:

    def test_span_of_eligible_activities(self, make_activity):
        make_activity(3, days_ago=40)
        make_activity(2, days_ago=12)
        # not eligible: already first-sampled, not active, no farmers
        make_activity(2, days_ago=90, first_sample_run=True)
        make_activity(2, days_ago=80, lifecycle_status="sampled")
        make_activity(0, days_ago=70)

        rng = range_resolver.suggested_range()
        assert rng.source == "suggested"
        assert rng.date_from == today() - timedelta(days=40)
        assert rng.date_to == today() - timedelta(days=12)

    def test_fallback_window_when_nothing_eligible(self):
        rng = range_resolver.suggested_range()
        assert rng.date_to == today()
        assert rng.date_from == today() - timedelta(days=30)

    def test_explicit_fallback_days(self):
        rng = range_resolver.suggested_range(fallback_days=7)
        assert rng.date_from == today() - timedelta(days=7)


class TestResolveRange:

    def test_prefers_auto(self, make_activity):
        make_activity(3, days_ago=40)
        _make_run(date_to=date(2024, 3, 10))
        assert range_resolver.resolve_range("lead-1").source == "auto"

    def test_falls_back_to_suggested(self, make_activity):
        make_activity(3, days_ago=40)
        rng = range_resolver.resolve_range("lead-1")
        assert rng.source == "suggested"
        assert rng.to_dict()["dateFrom"] == (today() - timedelta(days=40)).isoformat()


class TestCoolingCutoff:

    def test_auto_end_stops_at_cutoff(self):
        _make_run(date_to=date(2024, 3, 10))
        rng = range_resolver.resolve_first_sample_range("lead-1", cooling_days=5)
        assert rng.date_to == today() - timedelta(days=5)

    def test_prior_end_past_cutoff_gives_one_day_window(self):
        _make_run(date_to=today())
        rng = range_resolver.resolve_first_sample_range("lead-1", cooling_days=5)
        assert rng.date_from == rng.date_to == today() - timedelta(days=5)

    def test_suggested_span_capped(self, make_activity):
        make_activity(3, days_ago=12)
        make_activity(3, days_ago=2)
        rng = range_resolver.suggested_range(cooling_days=5)
        assert rng.date_from == today() - timedelta(days=12)
        assert rng.date_to == today() - timedelta(days=5)

    def test_fallback_window_ends_at_cutoff(self):
        rng = range_resolver.suggested_range(fallback_days=7, cooling_days=5)
        assert rng.date_to == today() - timedelta(days=5)
        assert rng.date_from == today() - timedelta(days=12)
