"""
Field Activity Call Sampling Service
Stratified allocation of a first-sample batch across field officers.

Pure computation over already-fetched candidates:

    1. Candidates with no farmers are dropped.
    2. Remaining candidates are grouped by officer (blank → "unknown"); each
       group keeps its activities ordered by farmer count, largest first.
    3. One percentage is resolved for the whole batch.
    4. desired_total = clamp(ceil(total_weight × pct / 100), 1, total_weight)
    5. target(group) = max(1, round_half_up(group_weight / total_weight × desired_total))

The floor of one farmer per officer means ``sum(targets)`` can exceed
``desired_total`` when there are many small officers. That overshoot is kept.
"""

import math
from dataclasses import dataclass, field

from fieldcall.models.activity import UNKNOWN_OFFICER


@dataclass
class Candidate:
    """One activity as seen by the allocator."""

    id: int
    officer_id: str
    farmer_count: int
    activity_id: str | None = None
    type: str | None = None


@dataclass
class OfficerGroup:
    officer_id: str
    total_farmers: int = 0
    activities: list[Candidate] = field(default_factory=list)
    target: int = 0

    def to_dict(self):
        return {
            "officerId": self.officer_id,
            "totalFarmers": self.total_farmers,
            "activityCount": len(self.activities),
            "target": self.target,
        }


@dataclass
class AllocationPlan:
    percentage: float
    total_weight: int
    desired_total: int
    groups: list[OfficerGroup]

    @property
    def activity_count(self) -> int:
        return sum(len(g.activities) for g in self.groups)

    @property
    def target_total(self) -> int:
        return sum(g.target for g in self.groups)

    def to_dict(self):
        return {
            "percentage": self.percentage,
            "totalWeight": self.total_weight,
            "desiredTotal": self.desired_total,
            "targetTotal": self.target_total,
            "groups": [g.to_dict() for g in self.groups],
        }


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _officer_key(officer_id) -> str:
    key = str(officer_id).strip() if officer_id is not None else ""
    return key or UNKNOWN_OFFICER


def _as_candidate(row) -> Candidate:
    if isinstance(row, Candidate):
        return row
    return Candidate(
        id=row["id"],
        officer_id=_officer_key(row.get("officer_id")),
        farmer_count=int(row.get("farmer_count") or 0),
        activity_id=row.get("activity_id"),
        type=row.get("type"),
    )


def resolve_percentage(sampling_percentage=None, config=None) -> float:
    """Explicit request value, else the config default (10 with no config)."""
    if sampling_percentage:
        return float(sampling_percentage)
    if config is not None and config.default_percentage:
        return float(config.default_percentage)
    return 10.0


def allocate(candidates, sampling_percentage=None, config=None) -> AllocationPlan:
    """Group candidates by officer and compute each officer's farmer target.

    Args:
        candidates: ``Candidate`` objects or mappings with ``id``,
            ``officer_id`` and ``farmer_count`` (as returned by
            ``eligibility_query.fetch_candidates``).
        sampling_percentage: Request override; falls back to the config.
        config: ``SamplingConfig`` row, used only for the default percentage.
    """
    pct = resolve_percentage(sampling_percentage, config)

    groups: dict[str, OfficerGroup] = {}
    for row in candidates:
        cand = _as_candidate(row)
        if cand.farmer_count <= 0:
            continue
        cand.officer_id = _officer_key(cand.officer_id)
        group = groups.setdefault(cand.officer_id, OfficerGroup(cand.officer_id))
        group.activities.append(cand)
        group.total_farmers += cand.farmer_count

    total_weight = sum(g.total_farmers for g in groups.values())
    if total_weight == 0:
        return AllocationPlan(pct, 0, 0, [])

    desired_total = max(1, min(math.ceil(total_weight * pct / 100), total_weight))

    for group in groups.values():
        # Stable sort keeps the fetch order among equal-sized activities
        group.activities.sort(key=lambda c: c.farmer_count, reverse=True)
        share = group.total_farmers / total_weight * desired_total
        group.target = max(1, _round_half_up(share))

    return AllocationPlan(pct, total_weight, desired_total, list(groups.values()))
