"""
Per-kind identifier counters.

One row per prefix (UR, SR, RISK, TC, TRES, TR). Rows are created lazily on
first use and bumped with a single UPDATE inside the caller's transaction, so
concurrent writers serialise on the row lock. Gaps after a rollback are fine.
"""

from tracehub.models import db


class IdSequence(db.Model):
    __tablename__ = "id_sequences"

    name = db.Column(db.String(10), primary_key=True, comment="UR | SR | RISK | TC | TRES | TR")
    last_value = db.Column(db.Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<IdSequence {self.name}={self.last_value}>"
