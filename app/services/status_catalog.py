"""
Client Portal
Status Catalog — the registry of lifecycle statuses and legal transitions.

The catalog is an immutable value built once at application start-up:

    seed_status_catalog()          # insert default rows if the table is empty
    catalog = load_status_catalog()
    validate_catalog(catalog)      # raises CatalogConfigurationError
    app.extensions["status_catalog"] = catalog

and handed to ProjectStatusService by reference.  Nothing at request time
writes to project_status_types / project_status_transitions.

Unit tests build fabricated catalogs directly:

    StatusCatalog(statuses=[...], transitions=[("A", "B")], legacy_map={...})
"""

import logging
from collections import deque
from dataclasses import asdict, dataclass
from types import MappingProxyType

from flask import current_app

from app.core.exceptions import CatalogConfigurationError, UnknownStatusCode
from app.models import db
from app.models.portal import LEGACY_PROJECT_STATUSES
from app.models.project_status import STATUS_CATEGORIES, StatusTransition, StatusType

logger = logging.getLogger(__name__)

COMPLETION_STATUS = "COMPLETED"


@dataclass(frozen=True)
class StatusTypeDef:
    """Read-only view of one catalog status."""

    code: str
    name: str
    description: str
    order: int
    category: str
    client_visible: bool = True
    requires_client_action: bool = False
    color: str = "#95a5a6"
    icon: str = "circle"

    def to_dict(self) -> dict:
        return asdict(self)


# ── Default seed ─────────────────────────────────────────────────────────────

DEFAULT_STATUS_TYPES = (
    StatusTypeDef("SCOPING", "Scoping", "Defining the project scope and requirements",
                  10, "INITIAL", True, False, "#3498db", "scroll"),
    StatusTypeDef("REVIEWING", "Reviewing", "Reviewing project requirements and feasibility",
                  20, "INITIAL", True, False, "#9b59b6", "search"),
    StatusTypeDef("PROPOSAL_PHASE", "Proposal Phase", "Creating and finalizing the project proposal",
                  30, "INITIAL", True, False, "#e74c3c", "file-text"),
    StatusTypeDef("APPROVED", "Approved", "Project proposal has been approved",
                  40, "INITIAL", True, True, "#2ecc71", "check-circle"),
    StatusTypeDef("SETTING_UP", "Setting Up", "Setting up the project infrastructure and environment",
                  50, "EXECUTION", True, False, "#f39c12", "tool"),
    StatusTypeDef("PROJECT_IN_PROGRESS", "In Progress", "Work is actively being done on the project",
                  60, "EXECUTION", True, False, "#27ae60", "activity"),
    StatusTypeDef("ON_HOLD", "On Hold", "Project is temporarily paused",
                  70, "EXECUTION", True, False, "#95a5a6", "pause-circle"),
    StatusTypeDef("REVISION_REQUIRED", "Revision Required", "Changes are needed based on feedback",
                  80, "REVIEW", True, False, "#e67e22", "repeat"),
    StatusTypeDef("INTERNAL_REVIEW", "Internal Review", "Project is being reviewed internally",
                  90, "REVIEW", True, False, "#34495e", "check-square"),
    StatusTypeDef("READY_FOR_CLIENT_REVIEW", "Ready for Client Review", "Project is ready for client review",
                  100, "REVIEW", True, True, "#16a085", "eye"),
    StatusTypeDef("UAT_TESTING", "UAT Testing", "User acceptance testing in progress",
                  110, "REVIEW", True, True, "#d35400", "zap"),
    StatusTypeDef("DEPLOYMENT_PREPARATION", "Deployment Prep", "Preparing for final deployment",
                  120, "COMPLETION", True, False, "#8e44ad", "package"),
    StatusTypeDef("DEPLOYED", "Deployed", "Project has been deployed",
                  130, "COMPLETION", True, False, "#2980b9", "send"),
    StatusTypeDef("COMPLETED", "Completed", "Project is complete",
                  140, "COMPLETION", True, False, "#27ae60", "check"),
    StatusTypeDef("MAINTENANCE", "Maintenance", "Project is in maintenance mode",
                  150, "COMPLETION", True, False, "#7f8c8d", "tool"),
)

DEFAULT_TRANSITIONS = (
    ("SCOPING", "REVIEWING"),
    ("REVIEWING", "PROPOSAL_PHASE"),
    ("REVIEWING", "SCOPING"),
    ("PROPOSAL_PHASE", "APPROVED"),
    ("PROPOSAL_PHASE", "REVIEWING"),
    ("APPROVED", "SETTING_UP"),
    ("SETTING_UP", "PROJECT_IN_PROGRESS"),
    ("PROJECT_IN_PROGRESS", "ON_HOLD"),
    ("PROJECT_IN_PROGRESS", "INTERNAL_REVIEW"),
    ("ON_HOLD", "PROJECT_IN_PROGRESS"),
    ("INTERNAL_REVIEW", "REVISION_REQUIRED"),
    ("INTERNAL_REVIEW", "READY_FOR_CLIENT_REVIEW"),
    ("READY_FOR_CLIENT_REVIEW", "REVISION_REQUIRED"),
    ("READY_FOR_CLIENT_REVIEW", "UAT_TESTING"),
    ("REVISION_REQUIRED", "PROJECT_IN_PROGRESS"),
    ("UAT_TESTING", "REVISION_REQUIRED"),
    ("UAT_TESTING", "DEPLOYMENT_PREPARATION"),
    ("DEPLOYMENT_PREPARATION", "DEPLOYED"),
    ("DEPLOYED", "COMPLETED"),
    # Reopening cycle: finished work can come back for maintenance and new scope
    ("COMPLETED", "MAINTENANCE"),
    ("MAINTENANCE", "PROJECT_IN_PROGRESS"),
)

# Granular code → coarse projects.status value read by older consumers.
DEFAULT_LEGACY_STATUS_MAP = MappingProxyType({
    "SCOPING": "planning",
    "REVIEWING": "planning",
    "PROPOSAL_PHASE": "planning",
    "APPROVED": "planning",
    "SETTING_UP": "planning",
    "PROJECT_IN_PROGRESS": "in_progress",
    "REVISION_REQUIRED": "in_progress",
    "INTERNAL_REVIEW": "in_progress",
    "READY_FOR_CLIENT_REVIEW": "in_progress",
    "UAT_TESTING": "in_progress",
    "DEPLOYMENT_PREPARATION": "in_progress",
    "DEPLOYED": "in_progress",
    "ON_HOLD": "on_hold",
    "COMPLETED": "completed",
    "MAINTENANCE": "completed",
})

# Coarse value → status a pre-existing project is backfilled into.
LEGACY_BACKFILL_MAP = MappingProxyType({
    "planning": "SCOPING",
    "in_progress": "PROJECT_IN_PROGRESS",
    "on_hold": "ON_HOLD",
    "completed": "COMPLETED",
})


def backfill_status_for(legacy_status: str | None) -> str:
    return LEGACY_BACKFILL_MAP.get(legacy_status or "", "SCOPING")


class StatusCatalog:
    """Immutable status registry plus its transition graph."""

    def __init__(self, statuses, transitions, legacy_map=None):
        ordered = tuple(sorted(statuses, key=lambda s: (s.order, s.code)))
        self._statuses = ordered
        self._by_code = MappingProxyType({s.code: s for s in ordered})
        self._transitions = tuple((src, dst) for src, dst in transitions)

        adjacency: dict[str, list[str]] = {}
        for src, dst in self._transitions:
            adjacency.setdefault(src, []).append(dst)
        self._adjacency = MappingProxyType({k: tuple(v) for k, v in adjacency.items()})

        self._legacy_map = MappingProxyType(
            dict(DEFAULT_LEGACY_STATUS_MAP if legacy_map is None else legacy_map)
        )

    def __len__(self) -> int:
        return len(self._statuses)

    def __contains__(self, code) -> bool:
        return code in self._by_code

    def __repr__(self) -> str:
        return f"<StatusCatalog statuses={len(self._statuses)} transitions={len(self._transitions)}>"

    @property
    def transitions(self) -> tuple:
        return self._transitions

    @property
    def legacy_map(self):
        return self._legacy_map

    def codes(self) -> list[str]:
        return [s.code for s in self._statuses]

    def all_statuses(self) -> list[StatusTypeDef]:
        return list(self._statuses)

    def get(self, code: str) -> StatusTypeDef:
        status = self._by_code.get(code)
        if status is None:
            raise UnknownStatusCode(code)
        return status

    def valid_next_statuses(self, code: str) -> list[StatusTypeDef]:
        """Every status reachable by exactly one edge from *code*, sorted by order."""
        self.get(code)
        targets = self._adjacency.get(code, ())
        return sorted(
            (self._by_code[t] for t in targets if t in self._by_code),
            key=lambda s: s.order,
        )

    def is_valid_transition(self, from_code: str, to_code: str) -> bool:
        return to_code in self._by_code and to_code in self._adjacency.get(from_code, ())

    def legacy_status_for(self, code: str) -> str:
        try:
            return self._legacy_map[code]
        except KeyError:
            raise CatalogConfigurationError(
                f"No legacy status mapping for {code}", context={"status_code": code},
            ) from None

    def to_list(self) -> list[dict]:
        """Catalog listing for the API, each status with its outgoing edges."""
        return [
            {
                **s.to_dict(),
                "next_statuses": [n.code for n in self.valid_next_statuses(s.code)],
            }
            for s in self._statuses
        ]


# ── Validation ───────────────────────────────────────────────────────────────


def validate_catalog(catalog: StatusCatalog, completion_code: str = COMPLETION_STATUS) -> None:
    """Raise CatalogConfigurationError describing every problem found."""
    problems: list[str] = []
    codes = set(catalog.codes())

    if not codes:
        problems.append("catalog is empty")

    for status in catalog.all_statuses():
        if status.category not in STATUS_CATEGORIES:
            problems.append(f"{status.code}: unknown category {status.category!r}")
        legacy = catalog.legacy_map.get(status.code)
        if legacy is None:
            problems.append(f"{status.code}: no legacy status mapping")
        elif legacy not in LEGACY_PROJECT_STATUSES:
            problems.append(f"{status.code}: legacy mapping {legacy!r} is not a project status")

    for src, dst in catalog.transitions:
        if src == dst:
            problems.append(f"self-loop on {src}")
        for end in (src, dst):
            if end not in codes:
                problems.append(f"edge {src}->{dst} references unknown code {end}")

    if completion_code not in codes:
        problems.append(f"completion status {completion_code} is not registered")
    else:
        reverse: dict[str, set[str]] = {}
        for src, dst in catalog.transitions:
            reverse.setdefault(dst, set()).add(src)
        reaches = {completion_code}
        queue = deque([completion_code])
        while queue:
            for prev in reverse.get(queue.popleft(), ()):
                if prev not in reaches:
                    reaches.add(prev)
                    queue.append(prev)
        sources = {src for src, _ in catalog.transitions}
        for code in sorted(sources & codes):
            if code not in reaches:
                problems.append(f"{code} cannot reach {completion_code}")

    if problems:
        logger.error("Status catalog failed validation: %s", "; ".join(problems))
        raise CatalogConfigurationError(
            "Status catalog is misconfigured: " + "; ".join(problems),
            context={"problems": problems},
        )


# ── Persistence ──────────────────────────────────────────────────────────────


def seed_status_catalog(statuses=DEFAULT_STATUS_TYPES, transitions=DEFAULT_TRANSITIONS) -> int:
    """Insert the default catalog when project_status_types is empty.

    Returns the number of statuses inserted (0 when already seeded).
    Flushes only; the caller commits.
    """
    if db.session.query(StatusType.id).first() is not None:
        logger.debug("Status catalog already seeded")
        return 0

    for s in statuses:
        db.session.add(StatusType(
            code=s.code,
            name=s.name,
            description=s.description,
            order=s.order,
            category=s.category,
            client_visible=s.client_visible,
            requires_client_action=s.requires_client_action,
            color=s.color,
            icon=s.icon,
        ))
    db.session.flush()
    for src, dst in transitions:
        db.session.add(StatusTransition(from_status=src, to_status=dst))
    db.session.flush()

    logger.info("Seeded status catalog: %d statuses, %d transitions", len(statuses), len(transitions))
    return len(statuses)


def load_status_catalog(legacy_map=None) -> StatusCatalog:
    """Build an immutable catalog from the database rows."""
    rows = StatusType.query.order_by(StatusType.order).all()
    edges = StatusTransition.query.order_by(StatusTransition.id).all()
    return StatusCatalog(
        statuses=[
            StatusTypeDef(
                code=r.code,
                name=r.name,
                description=r.description or "",
                order=r.order,
                category=r.category,
                client_visible=bool(r.client_visible),
                requires_client_action=bool(r.requires_client_action),
                color=r.color,
                icon=r.icon,
            )
            for r in rows
        ],
        transitions=[(e.from_status, e.to_status) for e in edges],
        legacy_map=legacy_map,
    )


def default_catalog() -> StatusCatalog:
    """Catalog built from the in-code seed, without touching the database."""
    return StatusCatalog(DEFAULT_STATUS_TYPES, DEFAULT_TRANSITIONS)


def get_status_catalog() -> StatusCatalog:
    """Return the catalog loaded into the running app."""
    catalog = current_app.extensions.get("status_catalog")
    if catalog is None:
        raise CatalogConfigurationError("Status catalog has not been loaded")
    return catalog
