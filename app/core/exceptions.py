"""
Platform-wide exception hierarchy.

Services raise these types; blueprints register handlers against the base
classes once and get consistent HTTP status codes everywhere:

    NotFoundError    → 404
    ValidationError  → 422 (InvalidTransition → 400, with the legal alternatives)
    ConflictError    → 409
    IntegrityFailure → 500 (logged with full context)

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Project", resource_id=42)
    raise ValidationError("question is required", details={"question": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable model/entity name (e.g. "Project", "Clarification").
        resource_id: The PK that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Distinct from HTTP 400 (malformed input, caught in blueprint) — this
    exception signals that the data was well-formed but violated a business
    rule.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation collides with existing state. Maps to HTTP 409.

    Args:
        resource: Model name.
        field: The field whose value collides.
        value: The conflicting value.
        message: Optional override for the generated message.
    """

    def __init__(
        self,
        resource: str,
        field: str,
        value: str | None = None,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(message or f"{resource} with {field}={value!r} already exists")


class IntegrityFailure(Exception):
    """Raised when persisted state contradicts an invariant. Maps to HTTP 500.

    These indicate a bug or a lost race; they are never swallowed.

    Args:
        message: What was found to be inconsistent.
        context: Identifiers that help locate the bad rows in logs.
    """

    def __init__(self, message: str, context: dict | None = None) -> None:
        self.context = context or {}
        super().__init__(message)


# ── Project status workflow ──────────────────────────────────────────────────


class UnknownStatusCode(ValidationError):
    """Status code is not registered in the catalog."""

    def __init__(self, code: str | None) -> None:
        self.code = code
        super().__init__(f"Unknown status code: {code!r}", details={"statusCode": code})


class InvalidTransition(ValidationError):
    """The requested edge is not in the catalog graph.

    Carries the attempted edge and the legal alternatives so the caller can
    re-derive its options instead of retrying the same call.
    """

    def __init__(self, from_status: str, to_status: str, allowed: list[str]) -> None:
        self.from_status = from_status
        self.to_status = to_status
        self.allowed = list(allowed)
        super().__init__(
            f"Invalid status transition from {from_status} to {to_status}",
            details={
                "from": from_status,
                "to": to_status,
                "allowed": self.allowed,
            },
        )


class InvalidHealthStatus(ValidationError):
    def __init__(self, value, allowed) -> None:
        self.value = value
        self.allowed = list(allowed)
        super().__init__(
            f"Invalid health status {value!r}. Must be one of: {', '.join(self.allowed)}",
            details={"healthStatus": value, "allowed": self.allowed},
        )


class ProjectNotFound(NotFoundError):
    def __init__(self, project_id: int) -> None:
        super().__init__(resource="Project", resource_id=project_id)
        self.project_id = project_id


class StatusStateNotFound(ProjectNotFound):
    """Project exists (or may exist) but has no status row yet.

    The HTTP layer recovers from this on reads by initializing the status.
    """

    def __init__(self, project_id: int) -> None:
        NotFoundError.__init__(self, resource="Project status data", resource_id=project_id)
        self.project_id = project_id


class ClarificationNotFound(NotFoundError):
    def __init__(self, clarification_id: int) -> None:
        super().__init__(resource="Clarification", resource_id=clarification_id)


class DuplicateStatusState(ConflictError):
    def __init__(self, project_id: int) -> None:
        self.project_id = project_id
        super().__init__(
            "ProjectStatusState", "project_id", str(project_id),
            message=f"Status data already initialized for project {project_id}",
        )


class ClarificationAlreadyResolved(ConflictError):
    def __init__(self, clarification_id: int) -> None:
        self.clarification_id = clarification_id
        super().__init__(
            "Clarification", "status", "RESOLVED",
            message="This clarification has already been resolved",
        )


class ConcurrentModificationError(ConflictError):
    """Another writer changed the project's status data first."""

    def __init__(self, project_id: int) -> None:
        self.project_id = project_id
        super().__init__(
            "ProjectStatusState", "version", None,
            message=(
                f"Status data for project {project_id} was modified concurrently; "
                "reload and try again"
            ),
        )


class LedgerIntegrityError(IntegrityFailure):
    """The history ledger does not have exactly one open entry where it must."""


class CatalogConfigurationError(IntegrityFailure):
    """The status catalog failed start-up validation."""
