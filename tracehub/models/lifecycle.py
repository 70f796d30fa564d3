"""
Lifecycle Mixin: draft/approved state shared by the four lifecycle-bearing
entity kinds (user requirement, system requirement, risk, test case).

State machine:
    draft    --approve(password)-->               approved  (revision + 1)
    approved --edit(password, no approve)-->      draft     (revision kept)
    approved --reapprove(password)-->             approved  (revision + 1)
    draft    --edit-->                            draft

Invariants kept by the helpers below:
    status == "approved"  <=>  approved_at and approved_by are both set
    revision only moves on a transition into "approved"

Only the lifecycle service mutates these columns; the trace store reads them.
"""

from datetime import datetime, timezone

from tracehub.models import db

STATUS_DRAFT = "draft"
STATUS_APPROVED = "approved"
LIFECYCLE_STATUSES = {STATUS_DRAFT, STATUS_APPROVED}

TITLE_MAX_LENGTH = 200


def _iso(value):
    return value.isoformat() if value else None


class LifecycleMixin:
    """Columns and transition helpers for lifecycle-bearing entities."""

    # Human-readable id, e.g. UR-14 / SR-2 / RISK-7 / TC-3
    id = db.Column(db.String(20), primary_key=True)
    title = db.Column(db.String(TITLE_MAX_LENGTH), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")

    status = db.Column(db.String(20), nullable=False, default=STATUS_DRAFT, comment="draft | approved")
    revision = db.Column(db.Integer, nullable=False, default=0)

    created_by = db.Column(db.Integer, nullable=True, comment="users.id")
    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    modified_by = db.Column(db.Integer, nullable=True, comment="users.id")
    last_modified = db.Column(db.DateTime(timezone=True), nullable=True)

    approved_by = db.Column(db.Integer, nullable=True, comment="users.id")
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approval_notes = db.Column(db.Text, nullable=True)

    # Overridden per kind: name used for audit aggregates and error messages.
    AGGREGATE_TYPE = "Entity"
    LABEL = "Entity"
    REQUIRED_FIELDS = ("title", "description")

    # ── Capability interface ────────────────────────────────────────────

    @property
    def is_approved(self):
        return self.status == STATUS_APPROVED

    def mark_approved(self, user_id, notes=None, *, at=None):
        """Transition into approved and bump the revision counter."""
        self.status = STATUS_APPROVED
        self.revision = (self.revision or 0) + 1
        self.approved_at = at or datetime.now(timezone.utc)
        self.approved_by = user_id
        self.approval_notes = notes

    def reset_to_draft(self):
        """Edit-invalidates-approval: drop approval, keep the revision."""
        self.status = STATUS_DRAFT
        self.approved_at = None
        self.approved_by = None

    def touch(self, user_id):
        self.modified_by = user_id
        self.last_modified = datetime.now(timezone.utc)

    def missing_required_fields(self, overrides=None):
        """Names of fields that must be filled before approval.

        *overrides* holds pending values that have not been applied yet, so
        an update can be checked before anything is written.
        """
        overrides = overrides or {}
        missing = []
        for field in self.REQUIRED_FIELDS:
            value = overrides[field] if field in overrides else getattr(self, field)
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(field)
        return missing

    def summary(self):
        """Short view used when this entity is the endpoint of a trace."""
        return {
            "title": self.title,
            "description": self.description or "",
            "status": self.status,
        }

    def lifecycle_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "revision": self.revision,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "modified_by": self.modified_by,
            "last_modified": _iso(self.last_modified),
            "approved_by": self.approved_by,
            "approved_at": _iso(self.approved_at),
            "approval_notes": self.approval_notes,
            "deleted_at": _iso(getattr(self, "deleted_at", None)),
        }

    def to_dict(self):
        return self.lifecycle_dict()
