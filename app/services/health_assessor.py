"""
Client Portal
Health Assessor — overall health plus named factors per project.

Health is a destructive overwrite: only the latest snapshot is stored.
"""

from collections.abc import Mapping

from app.core.exceptions import InvalidHealthStatus, ValidationError
from app.models.project_status import DEFAULT_HEALTH_STATUS, HEALTH_STATUSES

CONVENTIONAL_FACTORS = ("timeline", "budget", "scopeClarity", "communication")


def initial_health_factors() -> dict:
    return {name: DEFAULT_HEALTH_STATUS for name in CONVENTIONAL_FACTORS}


def validate_health_status(value) -> str:
    if value not in HEALTH_STATUSES:
        raise InvalidHealthStatus(value, HEALTH_STATUSES)
    return value


def validate_factors(factors) -> dict:
    """Factors are an open map of name → status string; ``None`` means empty."""
    if factors is None:
        return {}
    if not isinstance(factors, Mapping):
        raise ValidationError(
            "healthFactors must be an object mapping factor name to status",
            details={"healthFactors": "must be an object"},
        )
    bad = sorted(
        str(k) for k, v in factors.items()
        if not isinstance(k, str) or not isinstance(v, str)
    )
    if bad:
        raise ValidationError(
            "healthFactors values must be strings",
            details={"healthFactors": {k: "must be a string" for k in bad}},
        )
    return dict(factors)


def apply_health(state, overall_status, factors, at):
    """Validate both inputs first, then overwrite the snapshot on *state*."""
    status = validate_health_status(overall_status)
    clean = validate_factors(factors)
    state.health_status = status
    state.health_factors = clean
    state.health_last_updated = at
    return state
