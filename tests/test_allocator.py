"""
Tests: stratified allocation across field officers.

The allocator is pure; candidates are plain dicts shaped like the rows
returned by ``eligibility_query.fetch_candidates``.
"""

from types import SimpleNamespace

import pytest

from fieldcall.services.allocator import Candidate, allocate, resolve_percentage


def _row(pk, officer, farmers):
    return {"id": pk, "officer_id": officer, "farmer_count": farmers}


def _targets(plan):
    return {g.officer_id: g.target for g in plan.groups}


class TestScenario:
    """Officer A (10, 4, 2 farmers) and officer B (1 farmer) at 10%."""

    @pytest.fixture()
    def plan(self):
        rows = [_row(1, "A", 4), _row(2, "B", 1), _row(3, "A", 10), _row(4, "A", 2)]
        return allocate(rows, sampling_percentage=10)

    def test_totals(self, plan):
        assert plan.total_weight == 17
        assert plan.desired_total == 2

    def test_targets_with_fairness_floor(self, plan):
        assert _targets(plan) == {"A": 2, "B": 1}
        assert plan.target_total == 3

    def test_largest_activity_first(self, plan):
        group_a = next(g for g in plan.groups if g.officer_id == "A")
        assert [c.farmer_count for c in group_a.activities] == [10, 4, 2]
        assert [c.id for c in group_a.activities] == [3, 1, 4]


class TestFairnessFloor:

    def test_every_group_gets_at_least_one(self):
        rows = [_row(1, "BIG", 100)] + [_row(10 + i, f"S{i}", 1) for i in range(10)]
        plan = allocate(rows, sampling_percentage=10)
        assert plan.desired_total == 11
        assert all(g.target >= 1 for g in plan.groups)
        assert _targets(plan)["BIG"] == 10

    def test_target_sum_may_exceed_desired_total(self):
        rows = [_row(1, "BIG", 100)] + [_row(10 + i, f"S{i}", 1) for i in range(10)]
        plan = allocate(rows, sampling_percentage=10)
        # 10 for BIG plus a floor of 1 for each small officer
        assert plan.target_total == 20
        assert plan.target_total >= plan.desired_total

    @pytest.mark.parametrize("counts,pct", [
        ([3, 7, 1, 1, 25], 10),
        ([50, 50], 1),
        ([1], 100),
        ([2, 9, 4, 4, 13, 1], 33),
    ])
    def test_sum_of_targets_never_below_desired(self, counts, pct):
        rows = [_row(i, f"O{i}", n) for i, n in enumerate(counts, start=1)]
        plan = allocate(rows, sampling_percentage=pct)
        assert all(g.target >= 1 for g in plan.groups)
        assert plan.target_total >= plan.desired_total


class TestRounding:

    def test_half_rounds_up(self):
        # each officer's share is exactly 2.5
        plan = allocate([_row(1, "X", 5), _row(2, "Y", 5)], sampling_percentage=50)
        assert plan.desired_total == 5
        assert _targets(plan) == {"X": 3, "Y": 3}

    def test_desired_total_clamped_to_at_least_one(self):
        plan = allocate([_row(1, "X", 3)], sampling_percentage=1)
        assert plan.desired_total == 1

    def test_desired_total_clamped_to_total_weight(self):
        plan = allocate([_row(1, "X", 3), _row(2, "Y", 4)], sampling_percentage=100)
        assert plan.desired_total == 7


class TestGrouping:

    def test_blank_and_missing_officer_grouped_as_unknown(self):
        plan = allocate([_row(1, None, 2), _row(2, "  ", 3), _row(3, "", 1)], sampling_percentage=10)
        assert [g.officer_id for g in plan.groups] == ["unknown"]
        assert plan.groups[0].total_farmers == 6

    def test_zero_farmer_candidates_discarded(self):
        plan = allocate([_row(1, "A", 0), _row(2, "B", 4)], sampling_percentage=10)
        assert [g.officer_id for g in plan.groups] == ["B"]
        assert plan.activity_count == 1

    def test_empty_batch(self):
        plan = allocate([_row(1, "A", 0)], sampling_percentage=10)
        assert plan.groups == []
        assert plan.total_weight == 0
        assert plan.desired_total == 0

    def test_accepts_candidate_objects(self):
        plan = allocate([Candidate(id=1, officer_id="A", farmer_count=5)], sampling_percentage=20)
        assert _targets(plan) == {"A": 1}


class TestPercentage:

    def test_explicit_percentage_wins(self):
        cfg = SimpleNamespace(default_percentage=50)
        assert resolve_percentage(25, cfg) == 25.0

    def test_config_default_used_when_not_given(self):
        cfg = SimpleNamespace(default_percentage=50)
        plan = allocate([_row(1, "A", 10)], config=cfg)
        assert plan.percentage == 50.0
        assert plan.desired_total == 5

    def test_fallback_without_config(self):
        assert resolve_percentage(None, None) == 10.0

    def test_plan_serialises(self):
        plan = allocate([_row(1, "A", 10), _row(2, "B", 1)], sampling_percentage=10)
        data = plan.to_dict()
        assert data["desiredTotal"] == 2
        assert {g["officerId"] for g in data["groups"]} == {"A", "B"}
