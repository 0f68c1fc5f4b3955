"""
Field Activity Call Sampling Service
Sampling config service.

The ``default`` SamplingConfig row is the single source of truth for
percentages, cooling windows, eligible types and the auto-run gate. It is
created lazily with the seed values on first read.
"""

import copy
import logging

from fieldcall.models import db
from fieldcall.models.sampling import CONFIG_KEY, DEFAULT_CONFIG, SamplingConfig

logger = logging.getLogger(__name__)

# Request field (camelCase) → model column
_UPDATABLE_FIELDS = {
    "activityCoolingDays": "activity_cooling_days",
    "farmerCoolingDays": "farmer_cooling_days",
    "defaultPercentage": "default_percentage",
    "activityTypePercentages": "activity_type_percentages",
    "eligibleActivityTypes": "eligible_activity_types",
    "autoRunEnabled": "auto_run_enabled",
    "autoRunThreshold": "auto_run_threshold",
    "autoRunActivateFrom": "auto_run_activate_from",
    "taskDueInDays": "task_due_in_days",
}


def get_config() -> SamplingConfig:
    """Return the active config, seeding it with defaults if missing."""
    cfg = SamplingConfig.query.filter_by(key=CONFIG_KEY).first()
    if cfg is not None:
        return cfg

    cfg = SamplingConfig(key=CONFIG_KEY, is_active=True)
    for column, value in copy.deepcopy(DEFAULT_CONFIG).items():
        setattr(cfg, column, value)
    db.session.add(cfg)
    db.session.commit()
    logger.info("Seeded default sampling config")
    return cfg


def update_config(changes: dict, *, user_id: str | None = None) -> SamplingConfig:
    """Apply validated changes (camelCase keys) to the config and commit.

    Args:
        changes: Output of ``ConfigUpdate.changes()``; only supplied fields.
        user_id: Acting user, stored as ``updated_by_user_id``.
    """
    cfg = get_config()
    for field, value in changes.items():
        column = _UPDATABLE_FIELDS.get(field)
        if column:
            setattr(cfg, column, value)
    cfg.updated_by_user_id = user_id
    db.session.commit()
    logger.info("Sampling config updated by %s: %s", user_id, sorted(changes))
    return cfg


def record_auto_run(run) -> None:
    """Copy a finished scheduled run's outcome onto the config bookkeeping."""
    cfg = get_config()
    cfg.last_auto_run_at = run.finished_at or run.started_at
    cfg.last_auto_run_id = run.id
    cfg.last_auto_run_matched = run.matched
    cfg.last_auto_run_processed = run.processed
    cfg.last_auto_run_tasks_created = run.tasks_created_total
    db.session.commit()
