"""
Soft Delete Mixin.

Adds `deleted_at` timestamp column and query helpers for soft delete.
Lifecycle-bearing entities include this mixin and are never physically
removed; a tombstoned row is invisible to every query and may not be
referenced by new traces.

Usage:
    class MyModel(SoftDeleteMixin, db.Model):
        ...

    obj.soft_delete()
    MyModel.query_active().all()
"""

from datetime import datetime, timezone

from tracehub.models import db


class SoftDeleteMixin:
    """Mixin that adds soft delete support to any SQLAlchemy model."""

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, default=None, index=True)

    def soft_delete(self):
        """Mark this record as deleted."""
        self.deleted_at = datetime.now(timezone.utc)

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    @classmethod
    def query_active(cls):
        """Return a query that excludes soft-deleted records."""
        return cls.query.filter(cls.deleted_at.is_(None))

    @classmethod
    def get_active(cls, entity_id):
        """Return the non-deleted row with this primary key, or None."""
        return cls.query_active().filter(cls.id == entity_id).first()
