"""
TraceHub: Testing domain models.

Models:
    - TestCase:        lifecycle-bearing test specification (TC-n)
    - TestStep:        ordered step within a test case
    - TestRun:         manual execution campaign over approved test cases (TR-n)
    - TestRunCase:     one test case inside one run
    - TestStepResult:  pass/fail outcome of one step inside a run case
    - TestResult:      immutable evidence minted on run approval (TRES-n)

Architecture ref:
    Test Case ──1:N──▶ Test Step
    Test Run  ──1:N──▶ Test Run Case ──1:N──▶ Test Step Result
    Test Run  ──1:N──▶ Test Result  ◀── trace (system-generated) ── Test Case

Lifecycles:
    Test run case: not_started → in_progress → complete
    Test run:      not_started → in_progress → complete → approved
"""

from datetime import datetime, timezone

from tracehub.models import db
from tracehub.models.lifecycle import LifecycleMixin, _iso
from tracehub.models.soft_delete import SoftDeleteMixin


# ── Constants ────────────────────────────────────────────────────────────

RUN_NOT_STARTED = "not_started"
RUN_IN_PROGRESS = "in_progress"
RUN_COMPLETE = "complete"
RUN_APPROVED = "approved"

RUN_STATUSES = {RUN_NOT_STARTED, RUN_IN_PROGRESS, RUN_COMPLETE, RUN_APPROVED}

RESULT_PENDING = "pending"
RESULT_PASS = "pass"
RESULT_FAIL = "fail"

STEP_STATUSES = {RESULT_PASS, RESULT_FAIL}


# ═════════════════════════════════════════════════════════════════════════════
# TEST CASE
# ═════════════════════════════════════════════════════════════════════════════

class TestCase(LifecycleMixin, SoftDeleteMixin, db.Model):
    """
    Test case specification.

    Shares the draft/approved lifecycle with requirements and risks. Only
    approved test cases can be pulled into a test run.
    """

    __tablename__ = "test_cases"
    __test__ = False

    AGGREGATE_TYPE = "TestCase"
    LABEL = "Test case"

    steps = db.relationship(
        "TestStep", backref="test_case", lazy="select",
        cascade="all, delete-orphan", order_by="TestStep.step_number",
    )

    def missing_required_fields(self, overrides=None):
        missing = super().missing_required_fields(overrides)
        steps = (overrides or {}).get("steps", self.steps)
        if not steps:
            missing.append("steps")
        return missing

    def to_dict(self, include_steps=False):
        d = self.lifecycle_dict()
        if include_steps:
            d["steps"] = [s.to_dict() for s in self.steps]
        return d

    def __repr__(self):
        return f"<TestCase {self.id}: {self.title[:30]} [{self.status} r{self.revision}]>"


class TestStep(db.Model):
    """Atomic step within a test case (1-based, contiguous)."""

    __tablename__ = "test_steps"
    __test__ = False
    __table_args__ = (
        db.UniqueConstraint("test_case_id", "step_number", name="uq_test_step_case_number"),
    )

    id = db.Column(db.Integer, primary_key=True)
    test_case_id = db.Column(
        db.String(20), db.ForeignKey("test_cases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    step_number = db.Column(db.Integer, nullable=False)
    action = db.Column(db.Text, nullable=False, default="")
    expected_result = db.Column(db.Text, nullable=False, default="")

    def to_dict(self):
        return {
            "id": self.id,
            "test_case_id": self.test_case_id,
            "step_number": self.step_number,
            "action": self.action,
            "expected_result": self.expected_result,
        }

    def __repr__(self):
        return f"<TestStep {self.test_case_id}#{self.step_number}>"


# ═════════════════════════════════════════════════════════════════════════════
# TEST RUN
# ═════════════════════════════════════════════════════════════════════════════

class TestRun(db.Model):
    """
    Manual execution campaign over a fixed set of approved test cases.

    Status and overall_result are derived from the run cases by the test
    execution service; they are never set directly by a caller.
    """

    __tablename__ = "test_runs"
    __test__ = False

    id = db.Column(db.String(20), primary_key=True, comment="TR-n")
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(
        db.String(20), nullable=False, default=RUN_NOT_STARTED,
        comment="not_started | in_progress | complete | approved",
    )
    overall_result = db.Column(
        db.String(20), nullable=False, default=RESULT_PENDING,
        comment="pending | pass | fail",
    )

    created_by = db.Column(db.Integer, nullable=True, comment="users.id")
    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    approved_by = db.Column(db.Integer, nullable=True, comment="users.id")
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    cases = db.relationship(
        "TestRunCase", backref="test_run", lazy="select",
        cascade="all, delete-orphan", order_by="TestRunCase.id",
    )

    @property
    def is_approved(self):
        return self.status == RUN_APPROVED

    def to_dict(self, include_cases=False):
        d = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "overall_result": self.overall_result,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "approved_by": self.approved_by,
            "approved_at": _iso(self.approved_at),
        }
        if include_cases:
            d["cases"] = [c.to_dict() for c in self.cases]
        return d

    def __repr__(self):
        return f"<TestRun {self.id}: {self.name[:30]} [{self.status}/{self.overall_result}]>"


class TestRunCase(db.Model):
    """One test case inside one test run."""

    __tablename__ = "test_run_cases"
    __test__ = False
    __table_args__ = (
        db.UniqueConstraint("test_run_id", "test_case_id", name="uq_test_run_case"),
    )

    id = db.Column(db.Integer, primary_key=True)
    test_run_id = db.Column(
        db.String(20), db.ForeignKey("test_runs.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    test_case_id = db.Column(
        db.String(20), db.ForeignKey("test_cases.id"),
        nullable=False, index=True,
    )
    status = db.Column(
        db.String(20), nullable=False, default=RUN_NOT_STARTED,
        comment="not_started | in_progress | complete",
    )
    result = db.Column(
        db.String(20), nullable=False, default=RESULT_PENDING,
        comment="pending | pass | fail",
    )
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    executed_by = db.Column(db.Integer, nullable=True, comment="users.id")

    test_case = db.relationship("TestCase", lazy="joined")
    step_results = db.relationship(
        "TestStepResult", backref="run_case", lazy="select",
        cascade="all, delete-orphan", order_by="TestStepResult.step_number",
    )

    def to_dict(self, include_steps=False):
        d = {
            "id": self.id,
            "test_run_id": self.test_run_id,
            "test_case_id": self.test_case_id,
            "test_case_title": self.test_case.title if self.test_case else None,
            "status": self.status,
            "result": self.result,
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "executed_by": self.executed_by,
        }
        if include_steps:
            d["steps"] = [s.to_dict() for s in (self.test_case.steps if self.test_case else [])]
            d["step_results"] = [r.to_dict() for r in self.step_results]
        return d

    def __repr__(self):
        return f"<TestRunCase {self.id}: {self.test_run_id}/{self.test_case_id} [{self.status}/{self.result}]>"


class TestStepResult(db.Model):
    """Pass/fail outcome for one step; last write wins per (run case, step)."""

    __tablename__ = "test_step_results"
    __test__ = False
    __table_args__ = (
        db.UniqueConstraint("test_run_case_id", "step_number", name="uq_step_result_case_step"),
    )

    id = db.Column(db.Integer, primary_key=True)
    test_run_case_id = db.Column(
        db.Integer, db.ForeignKey("test_run_cases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    step_number = db.Column(db.Integer, nullable=False)
    expected_result = db.Column(db.Text, default="", comment="Copied from the test step")
    actual_result = db.Column(db.Text, nullable=False, default="")
    status = db.Column(db.String(10), nullable=False, comment="pass | fail")
    evidence_ref = db.Column(db.String(200), nullable=True, comment="Evidence file reference")
    executed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    executed_by = db.Column(db.Integer, nullable=True, comment="users.id")

    def to_dict(self):
        return {
            "id": self.id,
            "test_run_case_id": self.test_run_case_id,
            "step_number": self.step_number,
            "expected_result": self.expected_result,
            "actual_result": self.actual_result,
            "status": self.status,
            "evidence_ref": self.evidence_ref,
            "executed_at": _iso(self.executed_at),
            "executed_by": self.executed_by,
        }

    def __repr__(self):
        return f"<TestStepResult case#{self.test_run_case_id} step#{self.step_number} → {self.status}>"


# ═════════════════════════════════════════════════════════════════════════════
# TEST RESULT  (derived, immutable)
# ═════════════════════════════════════════════════════════════════════════════

class TestResult(db.Model):
    """
    Immutable evidence record minted when a test run is approved.

    Never edited or deleted; always paired with a system-generated trace
    from its test case.
    """

    __tablename__ = "test_results"
    __test__ = False

    id = db.Column(db.String(20), primary_key=True, comment="TRES-n")
    test_run_id = db.Column(
        db.String(20), db.ForeignKey("test_runs.id"), nullable=False, index=True,
    )
    test_case_id = db.Column(
        db.String(20), db.ForeignKey("test_cases.id"), nullable=False, index=True,
    )
    result = db.Column(db.String(10), nullable=False, comment="pass | fail")
    executed_by = db.Column(db.Integer, nullable=True, comment="users.id")
    executed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    test_run = db.relationship("TestRun", lazy="joined")

    def summary(self):
        run_name = self.test_run.name if self.test_run else ""
        return {
            "title": f"Test Result: {self.result} - {run_name}",
            "description": f"Result from test run {self.test_run_id}",
            "status": self.result,
        }

    def to_dict(self):
        return {
            "id": self.id,
            "test_run_id": self.test_run_id,
            "test_case_id": self.test_case_id,
            "result": self.result,
            "executed_by": self.executed_by,
            "executed_at": _iso(self.executed_at),
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<TestResult {self.id}: {self.test_case_id} → {self.result}>"
