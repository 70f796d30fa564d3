"""
TraceHub: Requirement domain models.

Models:
    - UserRequirement:   stakeholder-level need (UR-n)
    - SystemRequirement: system-level requirement derived from user needs (SR-n)

Both carry the shared draft/approved lifecycle and soft-delete tombstone.
Traceability between them lives in the `traces` table, never in FKs here.
"""

from tracehub.models import db
from tracehub.models.lifecycle import LifecycleMixin
from tracehub.models.soft_delete import SoftDeleteMixin


class UserRequirement(LifecycleMixin, SoftDeleteMixin, db.Model):
    """User requirement: top of the traceability chain."""

    __tablename__ = "user_requirements"

    AGGREGATE_TYPE = "UserRequirement"
    LABEL = "User requirement"

    def __repr__(self):
        return f"<UserRequirement {self.id}: {self.title[:30]} [{self.status} r{self.revision}]>"


class SystemRequirement(LifecycleMixin, SoftDeleteMixin, db.Model):
    """System requirement, traced from user requirements and verified by test cases."""

    __tablename__ = "system_requirements"

    AGGREGATE_TYPE = "SystemRequirement"
    LABEL = "System requirement"

    def __repr__(self):
        return f"<SystemRequirement {self.id}: {self.title[:30]} [{self.status} r{self.revision}]>"
