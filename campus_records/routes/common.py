"""Helpers shared by the route blueprints."""

from __future__ import annotations

from typing import Any, Dict, Tuple

from flask import current_app

from ..db import RecordStore
from ..enrollment import EnrollmentManager
from ..errors import ValidationFailed
from ..stats import StatsReporter
from ..validation import GLOBAL_ERROR_KEY

STORE_EXTENSION = "record_store"


def get_store() -> RecordStore:
    return current_app.extensions[STORE_EXTENSION]


def get_enrollment_manager() -> EnrollmentManager:
    return EnrollmentManager(get_store())


def get_stats_reporter() -> StatsReporter:
    return StatsReporter(get_store())


def require_valid(result: Tuple[Dict[str, Any], Dict[str, str]]) -> Dict[str, Any]:
    """Return the cleaned payload or raise ``ValidationFailed``."""

    cleaned, errors = result
    if errors:
        details = {k: v for k, v in errors.items() if k != GLOBAL_ERROR_KEY}
        message = errors.get(GLOBAL_ERROR_KEY, "Validation failed.")
        raise ValidationFailed(details, message)
    return cleaned
