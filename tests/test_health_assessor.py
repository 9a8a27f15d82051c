"""Health snapshot tests: validation runs before anything is overwritten."""

import pytest

from app.core.exceptions import InvalidHealthStatus, StatusStateNotFound, ValidationError
from app.models.project_status import HEALTH_STATUSES, ProjectStatusState
from app.services.health_assessor import (
    CONVENTIONAL_FACTORS,
    initial_health_factors,
    validate_factors,
    validate_health_status,
)


def _state(project_id):
    return ProjectStatusState.query.filter_by(project_id=project_id).one()


class TestValidation:
    @pytest.mark.parametrize("value", HEALTH_STATUSES)
    def test_known_statuses(self, value):
        assert validate_health_status(value) == value

    @pytest.mark.parametrize("value", ["good", "OK", "", None, 3])
    def test_unknown_status(self, value):
        with pytest.raises(InvalidHealthStatus) as exc:
            validate_health_status(value)
        assert exc.value.allowed == list(HEALTH_STATUSES)

    def test_factors_open_map(self):
        factors = {"timeline": "AT_RISK", "vendorSupport": "slow but steady"}
        assert validate_factors(factors) == factors

    def test_factors_none_is_empty(self):
        assert validate_factors(None) == {}

    @pytest.mark.parametrize("factors", [["timeline"], "GOOD", {"timeline": 3}, {"budget": None}])
    def test_bad_factors(self, factors):
        with pytest.raises(ValidationError):
            validate_factors(factors)

    def test_initial_factors(self):
        assert initial_health_factors() == {name: "GOOD" for name in CONVENTIONAL_FACTORS}


class TestUpdateHealth:
    def test_overwrites_snapshot(self, project, service, admin_user):
        before = _state(project.id).health_last_updated
        state = service.update_health(
            project.id, "AT_RISK", {"timeline": "AT_RISK", "budget": "GOOD"}, admin_user.id,
        )
        assert state.health_status == "AT_RISK"
        assert state.health_factors == {"timeline": "AT_RISK", "budget": "GOOD"}
        assert state.health_last_updated >= before
        assert state.last_updated_by_id == admin_user.id

    def test_invalid_status_leaves_health_untouched(self, project, service, admin_user):
        service.update_health(project.id, "EXCELLENT", {"budget": "EXCELLENT"}, admin_user.id)
        with pytest.raises(InvalidHealthStatus):
            service.update_health(project.id, "MEH", {"budget": "CRITICAL"}, admin_user.id)
        state = _state(project.id)
        assert state.health_status == "EXCELLENT"
        assert state.health_factors == {"budget": "EXCELLENT"}

    def test_invalid_factors_leave_health_untouched(self, project, service, admin_user):
        with pytest.raises(ValidationError):
            service.update_health(project.id, "CRITICAL", ["budget"], admin_user.id)
        assert _state(project.id).health_status == "GOOD"

    def test_does_not_touch_lifecycle(self, project, service, admin_user, recorder):
        service.update_health(project.id, "CRITICAL", None, admin_user.id)
        state = _state(project.id)
        assert state.current_status == "SCOPING"
        assert state.health_factors == {}
        assert recorder.status_changes == []

    def test_no_state(self, bare_project, service, admin_user):
        with pytest.raises(StatusStateNotFound):
            service.update_health(bare_project.id, "GOOD", {}, admin_user.id)
