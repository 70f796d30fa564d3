"""
TraceHub: Trace edge model.

A trace is a directed edge between two entity identifiers. The kind of each
endpoint is never stored: it is re-derived from the identifier prefix on
every read, so the table holds only

    id, from_id, to_id, created_by, created_at, is_system_generated

`UNIQUE(from_id, to_id)` is what makes concurrent duplicate creation safe:
exactly one insert wins and the loser sees an IntegrityError.
"""

from datetime import datetime, timezone

from tracehub.models import db
from tracehub.models.lifecycle import _iso
from tracehub.services.entity_types import resolve_type


class Trace(db.Model):
    """Directed traceability edge (from_id → to_id)."""

    __tablename__ = "traces"
    __table_args__ = (
        db.UniqueConstraint("from_id", "to_id", name="uq_trace_from_to"),
        db.Index("idx_trace_to", "to_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    from_id = db.Column(db.String(20), nullable=False, index=True)
    to_id = db.Column(db.String(20), nullable=False)
    created_by = db.Column(db.Integer, nullable=True, comment="users.id")
    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    is_system_generated = db.Column(db.Boolean, nullable=False, default=False)

    @property
    def from_type(self):
        return resolve_type(self.from_id)

    @property
    def to_type(self):
        return resolve_type(self.to_id)

    def to_dict(self):
        return {
            "id": self.id,
            "from_id": self.from_id,
            "from_type": self.from_type.value,
            "to_id": self.to_id,
            "to_type": self.to_type.value,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "is_system_generated": self.is_system_generated,
        }

    def __repr__(self):
        flag = " (system)" if self.is_system_generated else ""
        return f"<Trace {self.from_id} → {self.to_id}{flag}>"
