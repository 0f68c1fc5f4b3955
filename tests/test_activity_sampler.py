"""
Tests: per-activity sampler (gates, cooling, clamps, writes).
"""

import random
from datetime import timedelta

import pytest

from fieldcall.core.exceptions import NotFoundError
from fieldcall.models import db as _db
from fieldcall.models.activity import Activity
from fieldcall.models.call_task import CallTask, CoolingPeriod
from fieldcall.models.sampling import SamplingAudit
from fieldcall.services.activity_sampler import (
    calculate_sample_size, reservoir_sample, sample_and_create_tasks,
)
from fieldcall.services.sampling_config_service import get_config
from fieldcall.utils.helpers import utcnow


def _tasks(activity):
    return CallTask.query.filter_by(activity_id=activity.id).all()


class TestPrimitives:

    @pytest.mark.parametrize("population,pct,expected", [
        (0, 10, 0),
        (1, 10, 1),
        (10, 10, 1),
        (11, 10, 2),
        (10, 100, 10),
        (3, 1, 1),
    ])
    def test_calculate_sample_size(self, population, pct, expected):
        assert calculate_sample_size(population, pct) == expected

    def test_reservoir_sample_size_and_membership(self):
        items = list(range(50))
        picked = reservoir_sample(items, 7, rng=random.Random(42))
        assert len(picked) == 7
        assert len(set(picked)) == 7
        assert set(picked) <= set(items)

    def test_reservoir_sample_edges(self):
        assert reservoir_sample([1, 2, 3], 0) == []
        assert sorted(reservoir_sample([1, 2, 3], 5)) == [1, 2, 3]


class TestSampling:

    def test_creates_unassigned_tasks_and_marks_sampled(self, make_activity):
        act = make_activity(10)
        result = sample_and_create_tasks(act.id, 30, run_by_user_id="lead-1", run_id=7)

        assert result.skipped is False
        assert result.total_farmers == 10
        assert result.eligible_farmers == 10
        assert result.sampled_count == 3
        assert result.tasks_created == 3
        assert result.activity_lifecycle_status == "sampled"

        tasks = _tasks(act)
        assert len(tasks) == 3
        assert {t.status for t in tasks} == {"unassigned"}
        assert all(t.assigned_agent_id is None for t in tasks)
        assert CoolingPeriod.query.count() == 3

        activity = _db.session.get(Activity, act.id)
        assert activity.lifecycle_status == "sampled"
        assert activity.last_sampling_run_at is not None
        assert activity.first_sample_run is False

    def test_writes_audit(self, make_activity):
        act = make_activity(10)
        sample_and_create_tasks(act.id, 20, run_by_user_id="lead-1", run_id=7)

        audit = SamplingAudit.query.filter_by(activity_id=act.id).one()
        assert audit.run_id == 7
        assert audit.sampling_percentage == 20
        assert audit.total_farmers == 10
        assert audit.sampled_count == 2
        assert audit.algorithm == "Reservoir Sampling"
        assert audit.meta["runByUserId"] == "lead-1"
        assert audit.meta["tasksCreated"] == 2

    def test_audit_history_is_append_only(self, make_activity):
        act = make_activity(4)
        sample_and_create_tasks(act.id, 50)
        act = _db.session.get(Activity, act.id)
        act.set_lifecycle("active")
        _db.session.commit()
        sample_and_create_tasks(act.id, 50)
        assert SamplingAudit.query.filter_by(activity_id=act.id).count() == 2

    def test_type_percentage_used_without_explicit_value(self, make_activity):
        cfg = get_config()
        cfg.activity_type_percentages = {"Field Day": 50}
        _db.session.commit()
        act = make_activity(10)
        assert sample_and_create_tasks(act.id).sampled_count == 5

    def test_set_first_sample_run(self, make_activity):
        act = make_activity(5)
        sample_and_create_tasks(act.id, 10, set_first_sample_run=True)
        activity = _db.session.get(Activity, act.id)
        assert activity.first_sample_run is True
        assert activity.first_sampled_at is not None

    def test_scheduled_date_stamped_on_tasks(self, make_activity):
        act = make_activity(2)
        due = utcnow() + timedelta(days=3)
        sample_and_create_tasks(act.id, 100, scheduled_date=due)
        for task in _tasks(act):
            assert task.scheduled_date.date() == due.date()

    def test_existing_tasks_not_duplicated(self, make_activity):
        act = make_activity(3)
        for farmer in act.farmers:
            _db.session.add(CallTask(farmer_id=farmer.id, activity_id=act.id))
        _db.session.commit()

        result = sample_and_create_tasks(act.id, 100)
        assert result.sampled_count == 3
        assert result.tasks_created == 0
        assert len(_tasks(act)) == 3

    def test_unknown_activity_raises(self):
        with pytest.raises(NotFoundError):
            sample_and_create_tasks(99999, 10)


class TestGates:

    def test_non_active_activity_skipped(self, make_activity):
        act = make_activity(3, lifecycle_status="inactive")
        result = sample_and_create_tasks(act.id, 100)
        assert result.skipped is True
        assert "current: inactive" in result.skip_reason
        assert result.activity_lifecycle_status == "inactive"
        assert _tasks(act) == []

    def test_ineligible_type_skipped_but_left_active(self, make_activity):
        cfg = get_config()
        cfg.eligible_activity_types = ["OFM"]
        _db.session.commit()
        act = make_activity(3, activity_type="Field Day")

        result = sample_and_create_tasks(act.id, 100)
        assert result.skipped is True
        assert result.activity_lifecycle_status == "active"
        assert _db.session.get(Activity, act.id).lifecycle_status == "active"

    def test_activity_cooling_gate(self, make_activity):
        act = make_activity(3, days_ago=1)
        result = sample_and_create_tasks(act.id, 100)
        assert result.skipped is True
        assert "activityCoolingDays=5" in result.skip_reason

    def test_force_run_bypasses_activity_cooling(self, make_activity):
        act = make_activity(3, days_ago=1)
        result = sample_and_create_tasks(act.id, 100, force_run=True)
        assert result.skipped is False
        assert result.tasks_created == 3

    def test_activity_exactly_at_cooling_boundary_is_sampled(self, make_activity):
        act = make_activity(2, days_ago=5)
        assert sample_and_create_tasks(act.id, 100).skipped is False


class TestFarmerCooling:

    def test_recently_called_farmers_excluded(self, make_activity):
        act = make_activity(4)
        blocked = act.farmers[:3]
        now = utcnow()
        for farmer in blocked:
            _db.session.add(CoolingPeriod(
                farmer_id=farmer.id, last_call_date=now - timedelta(days=2),
                cooling_period_days=30, expires_at=now + timedelta(days=28),
            ))
        _db.session.commit()

        result = sample_and_create_tasks(act.id, 100)
        assert result.eligible_farmers == 1
        assert [t.farmer_id for t in _tasks(act)] == [act.farmers[3].id]

    def test_expired_cooling_does_not_block(self, make_activity):
        act = make_activity(2)
        now = utcnow()
        for farmer in act.farmers:
            _db.session.add(CoolingPeriod(
                farmer_id=farmer.id, last_call_date=now - timedelta(days=45),
                cooling_period_days=30, expires_at=now - timedelta(days=15),
            ))
        _db.session.commit()
        assert sample_and_create_tasks(act.id, 100).eligible_farmers == 2

    def test_all_blocked_marks_inactive(self, make_activity):
        act = make_activity(2)
        now = utcnow()
        for farmer in act.farmers:
            _db.session.add(CoolingPeriod(
                farmer_id=farmer.id, last_call_date=now,
                cooling_period_days=30, expires_at=now + timedelta(days=30),
            ))
        _db.session.commit()

        result = sample_and_create_tasks(act.id, 100, min_farmers_to_sample=1)
        assert result.sampled_count == 0
        assert result.activity_lifecycle_status == "inactive"
        assert _db.session.get(Activity, act.id).lifecycle_status == "inactive"

    def test_selected_farmers_start_cooling(self, make_activity):
        first = make_activity(3)
        sample_and_create_tasks(first.id, 100)
        second = make_activity(first.farmers)
        result = sample_and_create_tasks(second.id, 100)
        assert result.eligible_farmers == 0
        assert result.activity_lifecycle_status == "inactive"


class TestClamps:

    def test_min_raises_sample_size(self, make_activity):
        act = make_activity(10)
        result = sample_and_create_tasks(act.id, 1, min_farmers_to_sample=4)
        assert result.sampled_count == 4

    def test_min_bounded_by_eligible(self, make_activity):
        act = make_activity(2)
        result = sample_and_create_tasks(act.id, 1, min_farmers_to_sample=5)
        assert result.sampled_count == 2

    def test_max_caps_sample_size(self, make_activity):
        act = make_activity(10)
        result = sample_and_create_tasks(act.id, 50, max_farmers_to_sample=2)
        assert result.sampled_count == 2

    def test_zero_max_selects_nobody(self, make_activity):
        act = make_activity(10)
        result = sample_and_create_tasks(act.id, 50, min_farmers_to_sample=1, max_farmers_to_sample=0)
        assert result.sampled_count == 0
        assert result.activity_lifecycle_status == "inactive"
