"""
TraceHub: Risk record model.

A risk record is a lifecycle-bearing entity that additionally scores a
hazard by severity and two individual probabilities:

    p_total    = max(P1, P2)                 persisted on every change
    risk_score = f"{severity}{p_total}"      derived for display, e.g. "43"

`p_total_calculation_method` documents how the manufacturer justifies
P_total; it is stored verbatim and never interpreted.
"""

from tracehub.models import db
from tracehub.models.lifecycle import LifecycleMixin
from tracehub.models.soft_delete import SoftDeleteMixin
from tracehub.services.risk_calculation import compute_risk_score


class RiskRecord(LifecycleMixin, SoftDeleteMixin, db.Model):
    """Risk analysis record (RISK-n)."""

    __tablename__ = "risk_records"

    AGGREGATE_TYPE = "Risk"
    LABEL = "Risk"
    REQUIRED_FIELDS = LifecycleMixin.REQUIRED_FIELDS + (
        "hazard", "harm", "p_total_calculation_method",
        "severity", "probability_p1", "probability_p2", "p_total",
    )

    hazard = db.Column(db.Text, nullable=False, default="")
    harm = db.Column(db.Text, nullable=False, default="")
    foreseeable_sequence = db.Column(db.Text, nullable=True)

    severity = db.Column(db.Integer, nullable=False, comment="1-5")
    probability_p1 = db.Column(db.Integer, nullable=False, comment="P1, 1-5")
    probability_p2 = db.Column(db.Integer, nullable=False, comment="P2, 1-5")
    p_total_calculation_method = db.Column(db.Text, nullable=False, default="")
    p_total = db.Column(db.Integer, nullable=False, comment="max(P1, P2), persisted")

    @property
    def risk_score(self):
        if self.severity is None or self.p_total is None:
            return None
        return compute_risk_score(self.severity, self.p_total)

    def to_dict(self):
        d = self.lifecycle_dict()
        d.update({
            "hazard": self.hazard,
            "harm": self.harm,
            "foreseeable_sequence": self.foreseeable_sequence,
            "severity": self.severity,
            "probability_p1": self.probability_p1,
            "probability_p2": self.probability_p2,
            "p_total_calculation_method": self.p_total_calculation_method,
            "p_total": self.p_total,
            "risk_score": self.risk_score,
        })
        return d

    def __repr__(self):
        return f"<RiskRecord {self.id}: S{self.severity} P{self.p_total} [{self.status} r{self.revision}]>"
