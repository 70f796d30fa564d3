"""
TraceHub: Audit event model.

Models:
    - AuditEvent: append-only record of domain events (created, approved,
      trace linked, test run approved, ...).

`record_event` is the audit sink used by every service. It is best-effort:
the row is written inside a SAVEPOINT of the caller's transaction so a
failing insert rolls back only itself, and the error is logged instead of
being raised.
"""

import json
import logging
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError

from tracehub.models import db

logger = logging.getLogger(__name__)


class AuditEvent(db.Model):
    """
    Immutable audit trail entry.

    One row per domain event. ``payload_json`` holds the event-specific
    snapshot (changed fields, counts, ids).
    """

    __tablename__ = "audit_events"
    __table_args__ = (
        db.Index("idx_audit_aggregate", "aggregate_type", "aggregate_id"),
        db.Index("idx_audit_event_name", "event_name"),
        db.Index("idx_audit_occurred", "occurred_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    event_type = db.Column(
        db.String(30), nullable=False,
        comment="lifecycle | traceability | test_execution",
    )
    event_name = db.Column(
        db.String(60), nullable=False,
        comment="UserRequirementApproved | TraceCreated | TestRunApproved | …",
    )
    aggregate_type = db.Column(db.String(40), nullable=False)
    aggregate_id = db.Column(db.String(60), nullable=False)
    actor_id = db.Column(db.Integer, nullable=True, comment="users.id")
    payload_json = db.Column(db.Text, default="{}")
    occurred_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    @property
    def payload(self) -> dict:
        try:
            return json.loads(self.payload_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "event_name": self.event_name,
            "aggregate_type": self.aggregate_type,
            "aggregate_id": self.aggregate_id,
            "actor_id": self.actor_id,
            "payload": self.payload,
            "occurred_at": self.occurred_at.isoformat() if self.occurred_at else None,
        }

    def __repr__(self):
        return f"<AuditEvent {self.id}: {self.event_name} on {self.aggregate_type}/{self.aggregate_id}>"


# ── Audit sink ───────────────────────────────────────────────────────────────

def record_event(
    event_type: str,
    event_name: str,
    aggregate_type: str,
    aggregate_id,
    actor_id: int | None = None,
    payload: dict | None = None,
) -> AuditEvent | None:
    """
    Append one audit row inside a SAVEPOINT of the current transaction.

    Returns the flushed AuditEvent, or None when the write failed. Failures
    are logged and never propagate to the caller.
    """
    event = AuditEvent(
        event_type=event_type,
        event_name=event_name,
        aggregate_type=aggregate_type,
        aggregate_id=str(aggregate_id),
        actor_id=actor_id,
        payload_json=json.dumps(payload or {}, default=str),
    )
    # Pending business rows go out first so their errors still propagate.
    db.session.flush()
    try:
        with db.session.begin_nested():
            db.session.add(event)
    except SQLAlchemyError:
        logger.warning(
            "Audit event %s for %s/%s could not be recorded",
            event_name, aggregate_type, aggregate_id, exc_info=True,
            extra={"event_name": event_name, "aggregate_id": str(aggregate_id),
                   "actor_id": actor_id},
        )
        return None
    return event
