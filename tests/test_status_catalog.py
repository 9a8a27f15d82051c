"""
Status catalog tests.

Covers the seeded default graph, catalog queries, start-up validation and
fabricated catalogs built without a database.
"""

import pytest

from app.core.exceptions import CatalogConfigurationError, UnknownStatusCode
from app.models.project_status import StatusTransition, StatusType
from app.services.status_catalog import (
    DEFAULT_LEGACY_STATUS_MAP,
    DEFAULT_STATUS_TYPES,
    DEFAULT_TRANSITIONS,
    StatusCatalog,
    StatusTypeDef,
    backfill_status_for,
    default_catalog,
    load_status_catalog,
    seed_status_catalog,
    validate_catalog,
)


def _status(code, order, category="EXECUTION", **kw):
    return StatusTypeDef(code, code.title(), f"{code} description", order, category, **kw)


def _tiny_catalog(transitions=(("START", "COMPLETED"),), statuses=None, legacy_map=None):
    statuses = statuses or [_status("START", 1, "INITIAL"), _status("COMPLETED", 2, "COMPLETION")]
    legacy_map = legacy_map if legacy_map is not None else {"START": "planning", "COMPLETED": "completed"}
    return StatusCatalog(statuses, transitions, legacy_map)


# ═════════════════════════════════════════════════════════════════════════════
# Seeded catalog
# ═════════════════════════════════════════════════════════════════════════════


class TestSeed:
    def test_seed_rows_present(self):
        assert StatusType.query.count() == len(DEFAULT_STATUS_TYPES) == 15
        assert StatusTransition.query.count() == len(DEFAULT_TRANSITIONS)

    def test_seed_is_idempotent(self):
        assert seed_status_catalog() == 0
        assert StatusType.query.count() == 15

    def test_loaded_catalog_matches_seed(self):
        catalog = load_status_catalog()
        assert catalog.codes() == [s.code for s in sorted(DEFAULT_STATUS_TYPES, key=lambda s: s.order)]
        assert set(catalog.transitions) == set(DEFAULT_TRANSITIONS)
        validate_catalog(catalog)

    def test_app_catalog_is_loaded(self, catalog):
        assert len(catalog) == 15
        assert "SCOPING" in catalog
        assert "NOPE" not in catalog


class TestDefaultGraph:
    @pytest.mark.parametrize("src,expected", [
        ("SCOPING", ["REVIEWING"]),
        ("REVIEWING", ["SCOPING", "PROPOSAL_PHASE"]),
        ("PROPOSAL_PHASE", ["REVIEWING", "APPROVED"]),
        ("PROJECT_IN_PROGRESS", ["ON_HOLD", "INTERNAL_REVIEW"]),
        ("INTERNAL_REVIEW", ["REVISION_REQUIRED", "READY_FOR_CLIENT_REVIEW"]),
        ("UAT_TESTING", ["REVISION_REQUIRED", "DEPLOYMENT_PREPARATION"]),
        ("DEPLOYED", ["COMPLETED"]),
        ("COMPLETED", ["MAINTENANCE"]),
        ("MAINTENANCE", ["PROJECT_IN_PROGRESS"]),
    ])
    def test_valid_next_statuses_sorted_by_order(self, catalog, src, expected):
        assert [s.code for s in catalog.valid_next_statuses(src)] == expected

    def test_every_status_has_an_exit(self, catalog):
        for code in catalog.codes():
            assert catalog.valid_next_statuses(code), f"{code} is a dead end"

    def test_edges_are_exactly_the_seed(self, catalog):
        for src in catalog.codes():
            for dst in catalog.codes():
                assert catalog.is_valid_transition(src, dst) == ((src, dst) in DEFAULT_TRANSITIONS)

    def test_no_self_loops(self, catalog):
        assert all(src != dst for src, dst in catalog.transitions)

    def test_statuses_ordered(self, catalog):
        orders = [s.order for s in catalog.all_statuses()]
        assert orders == sorted(orders)


class TestLookup:
    def test_get_known(self, catalog):
        s = catalog.get("APPROVED")
        assert s.name == "Approved"
        assert s.category == "INITIAL"
        assert s.requires_client_action is True

    def test_get_unknown_raises(self, catalog):
        with pytest.raises(UnknownStatusCode) as exc:
            catalog.get("BOGUS")
        assert exc.value.details == {"statusCode": "BOGUS"}

    def test_valid_next_for_unknown_raises(self, catalog):
        with pytest.raises(UnknownStatusCode):
            catalog.valid_next_statuses("BOGUS")

    def test_unknown_endpoints_are_not_valid_edges(self, catalog):
        assert catalog.is_valid_transition("BOGUS", "SCOPING") is False
        assert catalog.is_valid_transition("SCOPING", "BOGUS") is False

    def test_to_list_carries_next_statuses(self, catalog):
        listing = {row["code"]: row for row in catalog.to_list()}
        assert listing["SCOPING"]["next_statuses"] == ["REVIEWING"]
        assert listing["COMPLETED"]["color"] == "#27ae60"
        assert set(listing) == set(catalog.codes())

    @pytest.mark.parametrize("code,legacy", [
        ("SCOPING", "planning"),
        ("SETTING_UP", "planning"),
        ("PROJECT_IN_PROGRESS", "in_progress"),
        ("DEPLOYED", "in_progress"),
        ("ON_HOLD", "on_hold"),
        ("COMPLETED", "completed"),
        ("MAINTENANCE", "completed"),
    ])
    def test_legacy_status_for(self, catalog, code, legacy):
        assert catalog.legacy_status_for(code) == legacy

    def test_every_status_has_legacy_mapping(self):
        assert set(DEFAULT_LEGACY_STATUS_MAP) == {s.code for s in DEFAULT_STATUS_TYPES}

    @pytest.mark.parametrize("legacy,code", [
        ("planning", "SCOPING"),
        ("in_progress", "PROJECT_IN_PROGRESS"),
        ("on_hold", "ON_HOLD"),
        ("completed", "COMPLETED"),
        (None, "SCOPING"),
        ("archived", "SCOPING"),
    ])
    def test_backfill_status_for(self, legacy, code):
        assert backfill_status_for(legacy) == code


# ═════════════════════════════════════════════════════════════════════════════
# Fabricated catalogs + validation
# ═════════════════════════════════════════════════════════════════════════════


class TestFabricatedCatalog:
    def test_default_catalog_needs_no_database(self):
        catalog = default_catalog()
        validate_catalog(catalog)
        assert len(catalog) == 15

    def test_catalog_is_read_only(self):
        catalog = _tiny_catalog()
        with pytest.raises(TypeError):
            catalog.legacy_map["START"] = "completed"
        with pytest.raises(AttributeError):
            catalog.get("START").name = "Other"

    def test_tiny_catalog_queries(self):
        catalog = _tiny_catalog()
        assert [s.code for s in catalog.valid_next_statuses("START")] == ["COMPLETED"]
        assert catalog.valid_next_statuses("COMPLETED") == []
        assert catalog.legacy_status_for("COMPLETED") == "completed"

    def test_missing_legacy_mapping_raises(self):
        catalog = _tiny_catalog(legacy_map={"START": "planning"})
        with pytest.raises(CatalogConfigurationError):
            catalog.legacy_status_for("COMPLETED")


class TestValidateCatalog:
    def test_valid_tiny_catalog(self):
        validate_catalog(_tiny_catalog())

    def test_self_loop_rejected(self):
        catalog = _tiny_catalog(transitions=[("START", "START"), ("START", "COMPLETED")])
        with pytest.raises(CatalogConfigurationError, match="self-loop on START"):
            validate_catalog(catalog)

    def test_unknown_edge_endpoint_rejected(self):
        catalog = _tiny_catalog(transitions=[("START", "GHOST"), ("START", "COMPLETED")])
        with pytest.raises(CatalogConfigurationError, match="unknown code GHOST"):
            validate_catalog(catalog)

    def test_unknown_category_rejected(self):
        statuses = [_status("START", 1, "LIMBO"), _status("COMPLETED", 2, "COMPLETION")]
        with pytest.raises(CatalogConfigurationError, match="unknown category"):
            validate_catalog(_tiny_catalog(statuses=statuses))

    def test_bad_legacy_value_rejected(self):
        catalog = _tiny_catalog(legacy_map={"START": "drafting", "COMPLETED": "completed"})
        with pytest.raises(CatalogConfigurationError, match="not a project status"):
            validate_catalog(catalog)

    def test_missing_completion_status_rejected(self):
        statuses = [_status("START", 1, "INITIAL"), _status("END", 2, "COMPLETION")]
        catalog = StatusCatalog(statuses, [("START", "END")], {"START": "planning", "END": "completed"})
        with pytest.raises(CatalogConfigurationError, match="completion status COMPLETED"):
            validate_catalog(catalog)

    def test_unreachable_completion_rejected(self):
        statuses = [
            _status("START", 1, "INITIAL"),
            _status("TRAP", 2),
            _status("COMPLETED", 3, "COMPLETION"),
        ]
        catalog = StatusCatalog(
            statuses,
            [("START", "COMPLETED"), ("START", "TRAP")],
            {"START": "planning", "TRAP": "in_progress", "COMPLETED": "completed"},
        )
        # Dead ends are allowed; only statuses with exits must reach COMPLETED
        validate_catalog(catalog)

        looping = StatusCatalog(
            statuses + [_status("LOOP", 4)],
            [("START", "COMPLETED"), ("TRAP", "LOOP"), ("LOOP", "TRAP")],
            {"START": "planning", "TRAP": "in_progress", "LOOP": "in_progress", "COMPLETED": "completed"},
        )
        with pytest.raises(CatalogConfigurationError) as exc:
            validate_catalog(looping)
        problems = exc.value.context["problems"]
        assert "TRAP cannot reach COMPLETED" in problems
        assert "LOOP cannot reach COMPLETED" in problems

    def test_collects_every_problem(self):
        catalog = _tiny_catalog(
            transitions=[("START", "START"), ("START", "GHOST")],
            legacy_map={"START": "planning"},
        )
        with pytest.raises(CatalogConfigurationError) as exc:
            validate_catalog(catalog)
        assert len(exc.value.context["problems"]) >= 3

    def test_empty_catalog_rejected(self):
        with pytest.raises(CatalogConfigurationError, match="catalog is empty"):
            validate_catalog(StatusCatalog([], [], {}))
