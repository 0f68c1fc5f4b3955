"""
Field Activity Call Sampling Service
Validated request objects for the Sampling Control API.

Every endpoint parses its body or query string into one of these before
touching the database. Parsers collect field errors and raise a single
``ValidationError("Validation failed", details={field: message})``.
"""

from dataclasses import dataclass, field
from datetime import date

from fieldcall.core.exceptions import ValidationError
from fieldcall.models.activity import ACTIVITY_TYPES, LIFECYCLE_STATUSES
from fieldcall.models.sampling import RUN_TYPE_ADHOC, RUN_TYPES
from fieldcall.utils.helpers import parse_date_input

REACTIVATE_FROM_STATUSES = frozenset({"inactive", "not_eligible", "sampled"})
CONFIRM_TOKEN = "YES"

_TRUE = {"true", "1", "yes", "on"}
_FALSE = {"false", "0", "no", "off"}


# ── Field parsers ────────────────────────────────────────────────────────────
# Each returns the parsed value or records a message in ``errors`` and
# returns the default.

def _date(errors: dict, name: str, value) -> date | None:
    try:
        return parse_date_input(value)
    except ValueError as exc:
        errors[name] = str(exc)
        return None


def _number(errors: dict, name: str, value, *, lo=None, hi=None, integer=False, default=None):
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        errors[name] = "Must be a number"
        return default
    try:
        parsed = int(value) if integer else float(value)
        if integer and isinstance(value, float) and not value.is_integer():
            raise ValueError
    except (TypeError, ValueError):
        errors[name] = "Must be an integer" if integer else "Must be a number"
        return default
    if (lo is not None and parsed < lo) or (hi is not None and parsed > hi):
        if hi is None:
            errors[name] = f"Must be >= {lo}"
        else:
            errors[name] = f"Must be between {lo} and {hi}"
        return default
    return parsed


def _bool(errors: dict, name: str, value, default=False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in _TRUE | _FALSE:
        return value.strip().lower() in _TRUE
    errors[name] = "Must be a boolean"
    return default


def _choice(errors: dict, name: str, value, choices) -> str | None:
    if value is None or value == "":
        return None
    if value not in choices:
        errors[name] = f"Must be one of: {', '.join(sorted(choices))}"
        return None
    return value


def _id_list(errors: dict, name: str, value) -> list[int]:
    """Accept a JSON list or a comma-separated string of integer ids."""
    if value is None or value == "":
        return []
    if isinstance(value, str):
        value = [v for v in (part.strip() for part in value.split(",")) if v]
    if not isinstance(value, list):
        errors[name] = "Must be an array of activity ids"
        return []
    ids = []
    for item in value:
        if isinstance(item, bool):
            errors[name] = "Activity ids must be integers"
            return []
        try:
            ids.append(int(item))
        except (TypeError, ValueError):
            errors[name] = "Activity ids must be integers"
            return []
    return ids


def _type_list(errors: dict, name: str, value, *, required=False) -> list[str]:
    if value is None:
        if required:
            errors[name] = f"{name} array is required"
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        errors[name] = f"{name} array is required" if required else "Must be an array of strings"
        return []
    unknown = [v for v in value if v not in ACTIVITY_TYPES]
    if unknown:
        errors[name] = f"Unknown activity types: {', '.join(unknown)}"
        return []
    # de-duplicate, keep order
    return list(dict.fromkeys(value))


def _date_order(errors: dict, date_from, date_to) -> None:
    if date_from and date_to and date_from > date_to:
        errors["dateFrom"] = "dateFrom must be on or before dateTo"


def _raise_if(errors: dict) -> None:
    if errors:
        raise ValidationError("Validation failed", details=errors)


def _body(payload) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Validation failed", details={"body": "JSON object expected"})
    return payload


# ── Run ──────────────────────────────────────────────────────────────────────

@dataclass
class RunRequest:
    """Body of POST /run."""

    run_type: str = RUN_TYPE_ADHOC
    activity_ids: list[int] = field(default_factory=list)
    lifecycle_status: str | None = None
    date_from: date | None = None
    date_to: date | None = None
    sampling_percentage: float | None = None
    force_run: bool = False

    @classmethod
    def from_payload(cls, payload) -> "RunRequest":
        data = _body(payload)
        errors: dict[str, str] = {}
        req = cls(
            run_type=_choice(errors, "runType", data.get("runType"), RUN_TYPES) or RUN_TYPE_ADHOC,
            activity_ids=_id_list(errors, "activityIds", data.get("activityIds")),
            lifecycle_status=_choice(errors, "lifecycleStatus", data.get("lifecycleStatus"),
                                     LIFECYCLE_STATUSES),
            date_from=_date(errors, "dateFrom", data.get("dateFrom")),
            date_to=_date(errors, "dateTo", data.get("dateTo")),
            sampling_percentage=_number(errors, "samplingPercentage",
                                        data.get("samplingPercentage"), lo=1, hi=100),
            force_run=_bool(errors, "forceRun", data.get("forceRun")),
        )
        _date_order(errors, req.date_from, req.date_to)
        _raise_if(errors)
        return req


@dataclass
class AutoRunRequest:
    """Body of POST /auto-run. The window and run type always come from the gate."""

    sampling_percentage: float | None = None
    force_run: bool = False

    ACCEPTED = ("samplingPercentage", "forceRun")

    @classmethod
    def from_payload(cls, payload) -> "AutoRunRequest":
        data = _body(payload)
        errors: dict[str, str] = {
            name: "Not accepted by auto-run" for name in data if name not in cls.ACCEPTED
        }
        req = cls(
            sampling_percentage=_number(errors, "samplingPercentage",
                                        data.get("samplingPercentage"), lo=1, hi=100),
            force_run=_bool(errors, "forceRun", data.get("forceRun")),
        )
        _raise_if(errors)
        return req


# ── Reactivation ─────────────────────────────────────────────────────────────

@dataclass
class ReactivateFilter:
    """Which activities a reactivation (or its preview) targets.

    Explicit ids win; they are still narrowed by ``from_status`` and the
    date window when those are given.
    """

    activity_ids: list[int] = field(default_factory=list)
    from_status: str | None = None
    date_from: date | None = None
    date_to: date | None = None

    @classmethod
    def parse(cls, data: dict, errors: dict) -> "ReactivateFilter":
        flt = cls(
            activity_ids=_id_list(errors, "activityIds", data.get("activityIds")),
            from_status=_choice(errors, "fromStatus", data.get("fromStatus"),
                                REACTIVATE_FROM_STATUSES),
            date_from=_date(errors, "dateFrom", data.get("dateFrom")),
            date_to=_date(errors, "dateTo", data.get("dateTo")),
        )
        _date_order(errors, flt.date_from, flt.date_to)
        return flt

    @classmethod
    def from_args(cls, args) -> "ReactivateFilter":
        errors: dict[str, str] = {}
        flt = cls.parse(args, errors)
        _raise_if(errors)
        return flt

    def to_dict(self):
        return {
            "activityIds": self.activity_ids,
            "fromStatus": self.from_status,
            "dateFrom": self.date_from.isoformat() if self.date_from else None,
            "dateTo": self.date_to.isoformat() if self.date_to else None,
        }


@dataclass
class ReactivateRequest:
    filter: ReactivateFilter
    delete_existing_tasks: bool = False
    delete_existing_audit: bool = False

    @classmethod
    def from_payload(cls, payload) -> "ReactivateRequest":
        data = _body(payload)
        errors: dict[str, str] = {}
        if data.get("confirm") != CONFIRM_TOKEN:
            errors["confirm"] = "Type YES to confirm"
        req = cls(
            filter=ReactivateFilter.parse(data, errors),
            delete_existing_tasks=_bool(errors, "deleteExistingTasks", data.get("deleteExistingTasks")),
            delete_existing_audit=_bool(errors, "deleteExistingAudit", data.get("deleteExistingAudit")),
        )
        _raise_if(errors)
        return req


# ── Config & eligibility ─────────────────────────────────────────────────────

@dataclass
class ConfigUpdate:
    """Partial update of SamplingConfig; only supplied keys are applied."""

    values: dict = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload) -> "ConfigUpdate":
        data = _body(payload)
        errors: dict[str, str] = {}
        values: dict = {}

        for name, lo, hi in (("activityCoolingDays", 0, 365),
                             ("farmerCoolingDays", 0, 365),
                             ("taskDueInDays", 0, 365),
                             ("autoRunThreshold", 0, None)):
            if name in data:
                parsed = _number(errors, name, data[name], lo=lo, hi=hi, integer=True)
                if parsed is None and name not in errors:
                    errors[name] = "Must be an integer"
                values[name] = parsed

        if "defaultPercentage" in data:
            parsed = _number(errors, "defaultPercentage", data["defaultPercentage"], lo=1, hi=100)
            if parsed is None and "defaultPercentage" not in errors:
                errors["defaultPercentage"] = "Must be a number"
            values["defaultPercentage"] = parsed

        if "activityTypePercentages" in data:
            raw = data["activityTypePercentages"]
            if not isinstance(raw, dict):
                errors["activityTypePercentages"] = "Must be an object"
            else:
                percentages = {}
                for key, value in raw.items():
                    if key not in ACTIVITY_TYPES:
                        errors["activityTypePercentages"] = f"Unknown activity type: {key}"
                        break
                    parsed = _number(errors, f"activityTypePercentages.{key}", value, lo=1, hi=100)
                    if parsed is not None:
                        percentages[key] = parsed
                values["activityTypePercentages"] = percentages

        if "eligibleActivityTypes" in data:
            values["eligibleActivityTypes"] = _type_list(
                errors, "eligibleActivityTypes", data["eligibleActivityTypes"])

        if "autoRunEnabled" in data:
            values["autoRunEnabled"] = _bool(errors, "autoRunEnabled", data["autoRunEnabled"])

        if "autoRunActivateFrom" in data:
            values["autoRunActivateFrom"] = _date(errors, "autoRunActivateFrom",
                                                  data["autoRunActivateFrom"])

        _raise_if(errors)
        return cls(values=values)

    def changes(self) -> dict:
        return dict(self.values)


@dataclass
class ApplyEligibilityRequest:
    eligible_activity_types: list[str]

    @classmethod
    def from_payload(cls, payload) -> "ApplyEligibilityRequest":
        data = _body(payload)
        errors: dict[str, str] = {}
        types = _type_list(errors, "eligibleActivityTypes",
                           data.get("eligibleActivityTypes"), required=True)
        _raise_if(errors)
        return cls(eligible_activity_types=types)


# ── Listings ─────────────────────────────────────────────────────────────────

def _page(errors: dict, args) -> tuple[int, int]:
    page = _number(errors, "page", args.get("page"), lo=1, integer=True, default=1)
    limit = _number(errors, "limit", args.get("limit"), lo=1, hi=100, integer=True, default=20)
    return page, limit


@dataclass
class ActivityListQuery:
    lifecycle_status: str | None = None
    type: str | None = None
    date_from: date | None = None
    date_to: date | None = None
    page: int = 1
    limit: int = 20

    @classmethod
    def from_args(cls, args) -> "ActivityListQuery":
        errors: dict[str, str] = {}
        page, limit = _page(errors, args)
        query = cls(
            lifecycle_status=_choice(errors, "lifecycleStatus", args.get("lifecycleStatus"),
                                     LIFECYCLE_STATUSES),
            type=(args.get("type") or "").strip() or None,
            date_from=_date(errors, "dateFrom", args.get("dateFrom")),
            date_to=_date(errors, "dateTo", args.get("dateTo")),
            page=page,
            limit=limit,
        )
        _raise_if(errors)
        return query


@dataclass
class StatsQuery:
    date_from: date | None = None
    date_to: date | None = None

    @classmethod
    def from_args(cls, args) -> "StatsQuery":
        errors: dict[str, str] = {}
        query = cls(
            date_from=_date(errors, "dateFrom", args.get("dateFrom")),
            date_to=_date(errors, "dateTo", args.get("dateTo")),
        )
        _date_order(errors, query.date_from, query.date_to)
        _raise_if(errors)
        return query


@dataclass
class AuditQuery:
    activity_id: int | None = None
    page: int = 1
    limit: int = 20

    @classmethod
    def from_args(cls, args) -> "AuditQuery":
        errors: dict[str, str] = {}
        page, limit = _page(errors, args)
        query = cls(
            activity_id=_number(errors, "activityId", args.get("activityId"), lo=1, integer=True),
            page=page,
            limit=limit,
        )
        _raise_if(errors)
        return query
