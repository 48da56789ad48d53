# Overview: Service-layer operations for the audit log; appends Activity rows for domain events.

from __future__ import annotations

from sqlalchemy.exc import SQLAlchemyError

from ..enums import ActivityType
from ..errors import DependentWriteFailure
from ..models import Activity
from .document_store import store
from .events import DomainEvent
"""
Audit Log Invariants (authoritative)

- Append-only record of domain events. No updates, no deletes.
- No domain/business logic here; the engine never reads activities back.
- An activity is the required companion of the write that produced the
  event: failing to append it is reported as DependentWriteFailure.
"""


def append_activity(
    *,
    module: str,
    activity_type: ActivityType,
    event: str,
    description: str,
    branch_id: int | None = None,
    user_id: int | None = None,
    data: dict | None = None,
) -> Activity:
    try:
        return store.create(
            Activity,
            module=module,
            type=activity_type,
            event=event,
            description=description,
            branch_id=branch_id,
            user_id=user_id,
            data=data,
        )
    except SQLAlchemyError as exc:
        raise DependentWriteFailure(
            f"Failed to log {module} activity",
            details={"event": event},
        ) from exc


def record_event(event: DomainEvent) -> Activity:
    """Dispatcher handler: every DomainEvent becomes one Activity row."""
    return append_activity(
        module=event.module,
        activity_type=event.activity,
        event=event.name,
        description=event.summary or event.description,
        branch_id=event.branch_id,
        user_id=event.user_id,
        data=event.data,
    )
