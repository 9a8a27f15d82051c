"""
Client Portal
Status History Ledger.

Every project owns an append-only list of StatusHistoryEntry rows.  The
entry with ``to_date IS NULL`` is the interval the project is currently in;
there is never more than one (also enforced by a partial unique index).

Closing and opening happen in the caller's unit of work — these helpers only
flush.  The explicit flush between close and open keeps the partial unique
index satisfied at every statement boundary.
"""

import logging
from datetime import datetime, timedelta, timezone

from app.core.exceptions import LedgerIntegrityError
from app.models import db
from app.models.project_status import StatusHistoryEntry

logger = logging.getLogger(__name__)

# Smallest representable interval; a closed entry always has to_date > from_date.
_MIN_INTERVAL = timedelta(microseconds=1)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Normalise a stored timestamp to an aware UTC datetime.

    SQLite hands back naive datetimes even for timezone=True columns.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def get_open_entry(project_id: int) -> StatusHistoryEntry | None:
    entries = (
        StatusHistoryEntry.query
        .filter_by(project_id=project_id)
        .filter(StatusHistoryEntry.to_date.is_(None))
        .all()
    )
    if len(entries) > 1:
        logger.error(
            "Ledger has %d open entries for project %s", len(entries), project_id,
            extra={"project_id": project_id},
        )
        raise LedgerIntegrityError(
            f"Project {project_id} has {len(entries)} open status history entries",
            context={"project_id": project_id, "entry_ids": [e.id for e in entries]},
        )
    return entries[0] if entries else None


def require_open_entry(project_id: int, expected_status: str | None = None) -> StatusHistoryEntry:
    """Return the open entry, raising LedgerIntegrityError if it is missing or stale."""
    entry = get_open_entry(project_id)
    if entry is None:
        logger.error("No open status history entry for project %s", project_id,
                     extra={"project_id": project_id})
        raise LedgerIntegrityError(
            f"Project {project_id} has no open status history entry",
            context={"project_id": project_id},
        )
    if expected_status is not None and entry.status_code != expected_status:
        logger.error(
            "Open entry %s for project %s is %s, state says %s",
            entry.id, project_id, entry.status_code, expected_status,
            extra={"project_id": project_id},
        )
        raise LedgerIntegrityError(
            f"Open history entry for project {project_id} does not match current status",
            context={
                "project_id": project_id,
                "entry_id": entry.id,
                "entry_status": entry.status_code,
                "current_status": expected_status,
            },
        )
    return entry


def open_entry(
    project_id: int,
    status_code: str,
    actor_id: int,
    at: datetime,
    notes: str | None = None,
) -> StatusHistoryEntry:
    entry = StatusHistoryEntry(
        project_id=project_id,
        status_code=status_code,
        from_date=at,
        changed_by_id=actor_id,
        notes=notes,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def close_entry(entry: StatusHistoryEntry, at: datetime) -> StatusHistoryEntry:
    """Stamp ``to_date`` and ``duration`` (seconds) on an open entry."""
    if entry.to_date is not None:
        raise LedgerIntegrityError(
            f"Status history entry {entry.id} is already closed",
            context={"project_id": entry.project_id, "entry_id": entry.id},
        )
    from_date = as_utc(entry.from_date)
    to_date = max(as_utc(at), from_date + _MIN_INTERVAL)
    entry.from_date = from_date
    entry.to_date = to_date
    entry.duration = (to_date - from_date).total_seconds()
    db.session.flush()
    return entry


def close_and_open(
    project_id: int,
    current_status: str,
    new_status: str,
    actor_id: int,
    at: datetime,
    notes: str | None = None,
) -> tuple[StatusHistoryEntry, StatusHistoryEntry]:
    """Close the open interval and start the next one. Returns (closed, opened)."""
    closed = close_entry(require_open_entry(project_id, current_status), at)
    opened = open_entry(project_id, new_status, actor_id, as_utc(closed.to_date), notes)
    return closed, opened


def annotate_open_entry(project_id: int, sub_status: str | None, reason: str | None):
    entry = get_open_entry(project_id)
    if entry is None:
        logger.warning("No open history entry to annotate for project %s", project_id,
                       extra={"project_id": project_id})
        return None
    entry.sub_status = sub_status
    entry.sub_status_reason = reason
    db.session.flush()
    return entry


def list_history(project_id: int, visible_codes=None) -> list[StatusHistoryEntry]:
    """History for a project, most recent first.

    ``visible_codes`` restricts the result to those status codes (used to
    hide internal statuses from clients).
    """
    q = StatusHistoryEntry.query.filter_by(project_id=project_id)
    if visible_codes is not None:
        q = q.filter(StatusHistoryEntry.status_code.in_(list(visible_codes)))
    return q.order_by(StatusHistoryEntry.from_date.desc(), StatusHistoryEntry.id.desc()).all()
