"""
Tests: eligibility toggle and manual reactivation.
"""

import pytest

from fieldcall.models import db as _db
from fieldcall.models.activity import Activity
from fieldcall.models.call_task import CallTask
from fieldcall.models.sampling import SamplingAudit
from fieldcall.services import eligibility_state
from fieldcall.services.activity_sampler import sample_and_create_tasks
from fieldcall.services.sampling_config_service import get_config
from fieldcall.services.sampling_requests import ReactivateFilter, ReactivateRequest


def _status(activity):
    return _db.session.get(Activity, activity.id).lifecycle_status


# ═════════════════════════════════════════════════════════════════════════
# Eligibility toggle
# ═════════════════════════════════════════════════════════════════════════


class TestSplitTypes:

    def test_empty_enables_everything(self):
        enabled, disabled = eligibility_state.split_types([])
        assert disabled == []
        assert "Field Day" in enabled and "OFM" in enabled

    def test_split(self):
        enabled, disabled = eligibility_state.split_types(["OFM"])
        assert enabled == ["OFM"]
        assert "OFM" not in disabled
        assert "Field Day" in disabled


class TestApplyEligibility:

    def test_disabling_moves_active_to_not_eligible(self, make_activity):
        field_day = make_activity(2, activity_type="Field Day")
        ofm = make_activity(2, activity_type="OFM")

        result = eligibility_state.apply_eligibility(["OFM"], user_id="lead-1")

        assert _status(field_day) == "not_eligible"
        assert _status(ofm) == "active"
        assert result["disabledCount"] == 1
        assert result["reactivatedCount"] == 0
        assert get_config().eligible_activity_types == ["OFM"]

    def test_sampled_untouched_in_both_directions(self, make_activity):
        sampled = make_activity(2, activity_type="Field Day", lifecycle_status="sampled")
        eligibility_state.apply_eligibility(["OFM"])
        assert _status(sampled) == "sampled"
        eligibility_state.apply_eligibility([])
        assert _status(sampled) == "sampled"

    def test_round_trip_restores_active(self, make_activity):
        acts = [make_activity(1, activity_type="Group Meeting") for _ in range(3)]
        eligibility_state.apply_eligibility(["OFM"])
        assert {_status(a) for a in acts} == {"not_eligible"}

        result = eligibility_state.apply_eligibility(["OFM", "Group Meeting"])
        assert {_status(a) for a in acts} == {"active"}
        assert result["reactivatedCount"] == 3

    def test_round_trip_restores_inactive(self, make_activity):
        inactive = make_activity(2, activity_type="Field Day", lifecycle_status="inactive")
        active = make_activity(2, activity_type="Field Day")

        eligibility_state.apply_eligibility(["OFM"])
        assert _status(inactive) == "not_eligible"
        assert _db.session.get(Activity, inactive.id).pre_ineligible_status == "inactive"

        result = eligibility_state.apply_eligibility([])
        assert _status(inactive) == "inactive"
        assert _status(active) == "active"
        assert result["reactivatedCount"] == 2
        assert _db.session.get(Activity, inactive.id).pre_ineligible_status is None

    def test_unrecorded_not_eligible_restores_active(self, make_activity):
        act = make_activity(1, activity_type="Field Day", lifecycle_status="not_eligible")
        eligibility_state.apply_eligibility([])
        assert _status(act) == "active"

    def test_empty_list_re_enables_all(self, make_activity):
        act = make_activity(1, activity_type="Demo Visit")
        eligibility_state.apply_eligibility(["OFM"])
        result = eligibility_state.apply_eligibility([])
        assert _status(act) == "active"
        assert result["disabledTypes"] == []

    def test_already_not_eligible_not_recounted(self, make_activity):
        make_activity(1, activity_type="Field Day", lifecycle_status="not_eligible")
        result = eligibility_state.apply_eligibility(["OFM"])
        assert result["disabledCount"] == 0

    def test_disabled_type_blocks_sampling(self, make_activity):
        act = make_activity(3, activity_type="Field Day")
        eligibility_state.apply_eligibility(["OFM"])
        result = sample_and_create_tasks(act.id, 100)
        assert result.skipped is True
        assert CallTask.query.count() == 0


# ═════════════════════════════════════════════════════════════════════════
# Reactivation
# ═════════════════════════════════════════════════════════════════════════


@pytest.fixture()
def sampled_activity(make_activity):
    """A sampled activity with 3 tasks (one already called) and one audit."""
    act = make_activity(3, first_sample_run=True)
    sample_and_create_tasks(act.id, 100)
    task = CallTask.query.filter_by(activity_id=act.id).first()
    task.call_log = {"outcome": "answered", "rating": 4}
    _db.session.commit()
    return act


def _request(ids=None, **kwargs):
    return ReactivateRequest(filter=ReactivateFilter(activity_ids=ids or []), **kwargs)


class TestReactivate:

    def test_preview_counts(self, sampled_activity):
        counts = eligibility_state.reactivate_preview(ReactivateFilter(activity_ids=[sampled_activity.id]))
        assert counts == {"activities": 1, "tasksWithCallLog": 1, "tasksWithoutCallLog": 2, "audits": 1}

    def test_preview_is_read_only(self, sampled_activity):
        eligibility_state.reactivate_preview(ReactivateFilter(activity_ids=[sampled_activity.id]))
        assert _status(sampled_activity) == "sampled"
        assert CallTask.query.count() == 3

    def test_preview_with_no_match(self):
        counts = eligibility_state.reactivate_preview(ReactivateFilter(activity_ids=[424242]))
        assert counts["activities"] == 0

    def test_reactivate_returns_to_backlog(self, sampled_activity):
        result = eligibility_state.reactivate(_request([sampled_activity.id]), user_id="lead-1")
        activity = _db.session.get(Activity, sampled_activity.id)
        assert result["count"] == 1
        assert result["modifiedCount"] == 1
        assert activity.lifecycle_status == "active"
        assert activity.first_sample_run is False
        # no cascade requested
        assert CallTask.query.count() == 3
        assert SamplingAudit.query.count() == 1

    def test_task_cascade_preserves_called_tasks(self, sampled_activity):
        result = eligibility_state.reactivate(
            _request([sampled_activity.id], delete_existing_tasks=True),
        )
        assert result["tasksDeleted"] == 2
        assert result["tasksPreserved"] == 1
        (survivor,) = CallTask.query.all()
        assert survivor.call_log["outcome"] == "answered"

    def test_audit_cascade(self, sampled_activity):
        result = eligibility_state.reactivate(
            _request([sampled_activity.id], delete_existing_audit=True),
        )
        assert result["auditsDeleted"] == 1
        assert SamplingAudit.query.count() == 0

    def test_from_status_narrows_ids(self, make_activity):
        inactive = make_activity(1, lifecycle_status="inactive")
        sampled = make_activity(1, lifecycle_status="sampled")
        req = ReactivateRequest(filter=ReactivateFilter(
            activity_ids=[inactive.id, sampled.id], from_status="inactive",
        ))
        result = eligibility_state.reactivate(req)
        assert result["count"] == 1
        assert _status(inactive) == "active"
        assert _status(sampled) == "sampled"

    def test_reactivated_activity_is_sampled_again(self, sampled_activity):
        eligibility_state.reactivate(_request([sampled_activity.id]))
        # farmers are still cooling, so the resample selects nobody
        result = sample_and_create_tasks(sampled_activity.id, 100)
        assert result.skipped is False
        assert result.activity_lifecycle_status == "inactive"
        assert SamplingAudit.query.filter_by(activity_id=sampled_activity.id).count() == 2

    def test_reactivating_not_eligible_forgets_prior_status(self, make_activity):
        act = make_activity(2, activity_type="Field Day", lifecycle_status="inactive")
        eligibility_state.apply_eligibility(["OFM"])
        eligibility_state.reactivate(_request([act.id]))
        assert _status(act) == "active"
        assert _db.session.get(Activity, act.id).pre_ineligible_status is None
