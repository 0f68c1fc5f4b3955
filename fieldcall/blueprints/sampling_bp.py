"""
Sampling Control Blueprint.

Endpoints (all under /api/v1/sampling, all require ``config.sampling``):
    GET  /stats: counts by type and lifecycle for a date range
    GET  /activities: paginated activity listing
    GET  /config: read sampling config
    PUT  /config: update sampling config
    POST /apply-eligibility: enable/disable activity types
    GET  /reactivate-preview: dry-run counts for a reactivation
    POST /reactivate: reactivate activities (confirm="YES")
    GET  /first-sample-range: next recurring window + live backlog
    POST /auto-run: gate-checked recurring run (scheduler entry)
    POST /run: execute a sampling run
    GET  /run-status/latest: latest run of the requesting user
    GET  /audit: paginated sampling audit history

Layer contract:
    - Requests are parsed into validated objects before any persistence.
    - Service layer owns all business logic and commits.
"""

import logging

from flask import Blueprint, current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from fieldcall import limiter
from fieldcall.auth import current_user_id, require_permission
from fieldcall.blueprints import paginate_query
from fieldcall.core.exceptions import NotFoundError, ValidationError
from fieldcall.models import db
from fieldcall.services import (
    auto_run, eligibility_state, run_tracker, sampling_config_service,
    sampling_service, stats_service,
)
from fieldcall.services.sampling_requests import (
    ActivityListQuery, ApplyEligibilityRequest, AuditQuery, AutoRunRequest, ConfigUpdate,
    ReactivateFilter, ReactivateRequest, RunRequest, StatsQuery,
)
from fieldcall.utils.errors import E, api_error, api_ok

logger = logging.getLogger(__name__)

sampling_bp = Blueprint("sampling", __name__, url_prefix="/api/v1/sampling")

PERMISSION = "config.sampling"


def _run_rate_limit() -> str:
    return current_app.config.get("SAMPLING_RUN_RATE_LIMIT", "10 per minute")


# ── Error handlers ────────────────────────────────────────────────────────────


@sampling_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, str(error))


@sampling_bp.errorhandler(ValidationError)
def _handle_validation(error: ValidationError):
    return api_error(E.VALIDATION_INVALID, str(error), details=error.details)


@sampling_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    if isinstance(error, HTTPException):
        return jsonify({"success": False, "error": {"message": error.description}}), error.code
    logger.exception("Unexpected error in sampling_bp endpoint=%s", request.endpoint)
    db.session.rollback()
    return api_error(E.INTERNAL, "Internal server error")


# ═════════════════════════════════════════════════════════════════════════
# Dashboard & listings
# ═════════════════════════════════════════════════════════════════════════


@sampling_bp.route("/stats", methods=["GET"])
@require_permission(PERMISSION)
def get_stats():
    """Activity/farmer/task counts by type and lifecycle.

    Query params: dateFrom, dateTo (ISO dates, optional)
    """
    query = StatsQuery.from_args(request.args)
    return api_ok(stats_service.get_stats(query))


@sampling_bp.route("/activities", methods=["GET"])
@require_permission(PERMISSION)
def list_activities():
    """Query params: lifecycleStatus, type, dateFrom, dateTo, page, limit (≤ 100)."""
    query = ActivityListQuery.from_args(request.args)
    items, pagination = paginate_query(stats_service.activities_query(query), query.page, query.limit)
    activities = [dict(a.to_dict(), farmerCount=len(a.farmers)) for a in items]
    return api_ok({"activities": activities, "pagination": pagination})


@sampling_bp.route("/audit", methods=["GET"])
@require_permission(PERMISSION)
def list_audit():
    query = AuditQuery.from_args(request.args)
    items, pagination = paginate_query(stats_service.audits_query(query), query.page, query.limit)
    return api_ok({"audits": [a.to_dict() for a in items], "pagination": pagination})


# ═════════════════════════════════════════════════════════════════════════
# Configuration & eligibility
# ═════════════════════════════════════════════════════════════════════════


@sampling_bp.route("/config", methods=["GET"])
@require_permission(PERMISSION)
def get_config():
    cfg = sampling_config_service.get_config()
    return api_ok({"config": cfg.to_dict()})


@sampling_bp.route("/config", methods=["PUT"])
@require_permission(PERMISSION)
def update_config():
    """Partial update; only supplied fields change.

    Body: activityCoolingDays, farmerCoolingDays (0–365), defaultPercentage
    (1–100), activityTypePercentages, eligibleActivityTypes, autoRunEnabled,
    autoRunThreshold, autoRunActivateFrom, taskDueInDays
    """
    update = ConfigUpdate.from_payload(request.get_json(silent=True))
    cfg = sampling_config_service.update_config(update.changes(), user_id=current_user_id())
    return api_ok({"config": cfg.to_dict()}, message="Sampling config updated")


@sampling_bp.route("/apply-eligibility", methods=["POST"])
@require_permission(PERMISSION)
def apply_eligibility():
    """Body: {"eligibleActivityTypes": [...]} (empty list = all types eligible)."""
    req = ApplyEligibilityRequest.from_payload(request.get_json(silent=True))
    result = eligibility_state.apply_eligibility(req.eligible_activity_types, user_id=current_user_id())
    return api_ok(result, message="Eligibility applied")


@sampling_bp.route("/reactivate-preview", methods=["GET"])
@require_permission(PERMISSION)
def reactivate_preview():
    """Query params: activityIds (comma separated), fromStatus, dateFrom, dateTo."""
    flt = ReactivateFilter.from_args(request.args)
    counts = eligibility_state.reactivate_preview(flt)
    return api_ok({"filters": flt.to_dict(), **counts})


@sampling_bp.route("/reactivate", methods=["POST"])
@require_permission(PERMISSION)
def reactivate():
    """Body: confirm="YES", activityIds?, fromStatus?, dateFrom?, dateTo?,
    deleteExistingTasks?, deleteExistingAudit?
    """
    req = ReactivateRequest.from_payload(request.get_json(silent=True))
    result = eligibility_state.reactivate(req, user_id=current_user_id())
    return api_ok(result, message="Activities reactivated to Active")


# ═════════════════════════════════════════════════════════════════════════
# Runs
# ═════════════════════════════════════════════════════════════════════════


@sampling_bp.route("/first-sample-range", methods=["GET"])
@require_permission(PERMISSION)
def first_sample_range():
    return api_ok(sampling_service.first_sample_range(current_user_id()))


@sampling_bp.route("/run", methods=["POST"])
@limiter.limit(_run_rate_limit)
@require_permission(PERMISSION)
def run_sampling():
    """Body: runType (first_sample|adhoc), activityIds, lifecycleStatus,
    dateFrom, dateTo, samplingPercentage (1–100), forceRun
    """
    req = RunRequest.from_payload(request.get_json(silent=True))
    summary = sampling_service.execute_run(req, user_id=current_user_id())
    return api_ok(summary, message="Sampling run completed")


@sampling_bp.route("/auto-run", methods=["POST"])
@limiter.limit(_run_rate_limit)
@require_permission(PERMISSION)
def auto_run_sampling():
    """Optional body: samplingPercentage, forceRun. Returns {ran, reason?, run?}."""
    req = AutoRunRequest.from_payload(request.get_json(silent=True))
    outcome = auto_run.run_if_due(
        current_user_id(),
        sampling_percentage=req.sampling_percentage,
        force_run=req.force_run,
    )
    return api_ok(outcome)


@sampling_bp.route("/run-status/latest", methods=["GET"])
@require_permission(PERMISSION)
def latest_run_status():
    run = run_tracker.latest_run(current_user_id())
    return api_ok({"run": run.to_dict() if run else None})
