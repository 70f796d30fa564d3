"""
Test Execution Pipeline: test runs, run cases and step results.

Hierarchy:
    TestRun ──1:N──▶ TestRunCase ──1:N──▶ TestStepResult

Aggregation (re-evaluated after every recorded step):
    run case  complete  ⇔ every defined step of its test case has a result
              result    = fail if any step failed, else pass
    run       complete  ⇔ every run case is complete
              overall   = fail if any case failed, else pass

Approval mints one immutable TestResult per complete case plus a
system-generated trace (test case → test result), all in one transaction.
A case found incomplete mid-approval aborts the whole transaction.

Usage:
    from tracehub.services import test_execution

    run = test_execution.create_run("Release 1.2", "", ["TC-1", "TC-2"], actor_id=1)
    test_execution.record_step_result(run.id, "TC-1", 1, "pass", "OK", actor_id=1)
    test_execution.approve_run(run.id, actor_id=1, password="...")
"""

import logging
import math
from datetime import datetime, timezone

from tracehub.core.exceptions import BadRequestError, NotFoundError, ValidationError
from tracehub.models import db
from tracehub.models.audit import record_event
from tracehub.models.testing import (
    RESULT_FAIL,
    RESULT_PASS,
    RESULT_PENDING,
    RUN_APPROVED,
    RUN_COMPLETE,
    RUN_IN_PROGRESS,
    RUN_NOT_STARTED,
    RUN_STATUSES,
    STEP_STATUSES,
    TestCase,
    TestResult,
    TestRun,
    TestRunCase,
    TestStep,
    TestStepResult,
)
from tracehub.models.trace import Trace
from tracehub.services import trace_service
from tracehub.services.auth_service import require_password
from tracehub.services.code_generator import generate_id, generate_test_run_id
from tracehub.services.entity_types import (
    REQUIREMENT_KINDS,
    EntityKind,
    normalize_id,
    resolve_model,
    resolve_type,
)
from tracehub.utils.helpers import atomic

logger = logging.getLogger(__name__)

EVENT_TYPE = "test_execution"
NAME_MAX_LENGTH = 200
EVIDENCE_MAX_LENGTH = 200


def _now():
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════════════
# Lookups
# ═════════════════════════════════════════════════════════════════════════════

def get_run(run_id) -> TestRun:
    normalized = normalize_id(run_id)
    run = db.session.get(TestRun, normalized)
    if run is None:
        raise NotFoundError("TestRun", normalized, message="Test run not found")
    return run


def _get_run_case(run: TestRun, test_case_id) -> TestRunCase:
    normalized = normalize_id(test_case_id)
    run_case = TestRunCase.query.filter_by(
        test_run_id=run.id, test_case_id=normalized,
    ).first()
    if run_case is None:
        raise NotFoundError(
            "TestRunCase", normalized, message="Test case not found in this test run",
        )
    return run_case


def _ensure_mutable(run: TestRun):
    if run.status == RUN_APPROVED:
        raise BadRequestError("Cannot modify approved test run")


# ═════════════════════════════════════════════════════════════════════════════
# Aggregation
# ═════════════════════════════════════════════════════════════════════════════

def _evaluate_case(run_case: TestRunCase):
    """Derive run case status/result from its step results."""
    defined = {step.step_number for step in run_case.test_case.steps}
    recorded = {r.step_number: r.status for r in run_case.step_results}

    if defined and defined.issubset(recorded):
        result = RESULT_FAIL if any(recorded[n] == RESULT_FAIL for n in defined) else RESULT_PASS
        if run_case.status != RUN_COMPLETE:
            run_case.completed_at = _now()
        run_case.status = RUN_COMPLETE
        run_case.result = result
    else:
        run_case.status = RUN_IN_PROGRESS
        run_case.result = RESULT_PENDING
        run_case.completed_at = None


def _evaluate_run(run: TestRun):
    """Derive run status/overall_result from its cases."""
    statuses = [case.status for case in run.cases]
    if statuses and all(status == RUN_COMPLETE for status in statuses):
        failed = any(case.result == RESULT_FAIL for case in run.cases)
        if run.status != RUN_COMPLETE:
            logger.info("Test run %s complete (%s)", run.id, "fail" if failed else "pass")
        run.status = RUN_COMPLETE
        run.overall_result = RESULT_FAIL if failed else RESULT_PASS
    elif any(status != RUN_NOT_STARTED for status in statuses):
        run.status = RUN_IN_PROGRESS
        run.overall_result = RESULT_PENDING


def _start_case(run: TestRun, run_case: TestRunCase, actor_id):
    """Reset a run case to in_progress, discarding earlier step outcomes."""
    run_case.step_results.clear()
    run_case.status = RUN_IN_PROGRESS
    run_case.result = RESULT_PENDING
    run_case.started_at = _now()
    run_case.completed_at = None
    run_case.executed_by = actor_id
    if run.status in (RUN_NOT_STARTED, RUN_COMPLETE):
        run.status = RUN_IN_PROGRESS
        run.overall_result = RESULT_PENDING


# ═════════════════════════════════════════════════════════════════════════════
# Runs
# ═════════════════════════════════════════════════════════════════════════════

def create_run(name, description, test_case_ids, actor_id) -> TestRun:
    """
    Create a test run over approved, live test cases.

    Raises:
        ValidationError: bad name, empty list, or any case missing / deleted / not approved
    """
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Name is required", details={"name": "required"})
    if len(name.strip()) > NAME_MAX_LENGTH:
        raise ValidationError(
            f"Name exceeds maximum length of {NAME_MAX_LENGTH}", details={"name": "too_long"},
        )
    if description is not None and not isinstance(description, str):
        raise ValidationError("Description must be a string", details={"description": "invalid"})
    if not isinstance(test_case_ids, list) or not test_case_ids:
        raise ValidationError(
            "At least one test case is required", details={"test_case_ids": "required"},
        )

    ordered_ids = []
    for raw_id in test_case_ids:
        normalized = normalize_id(raw_id)
        if resolve_type(normalized) != EntityKind.TEST_CASE:
            raise ValidationError(
                f"{normalized} is not a test case", details={"test_case_ids": normalized},
            )
        if normalized not in ordered_ids:
            ordered_ids.append(normalized)

    found = {
        tc.id: tc
        for tc in TestCase.query_active().filter(TestCase.id.in_(ordered_ids)).all()
    }
    invalid = [
        tc_id for tc_id in ordered_ids
        if tc_id not in found or not found[tc_id].is_approved
    ]
    if invalid:
        raise ValidationError(
            "All test cases must exist and be approved",
            details={"invalid_test_case_ids": invalid},
        )

    with atomic():
        run = TestRun(
            id=generate_test_run_id(),
            name=name.strip(),
            description=description or "",
            status=RUN_NOT_STARTED,
            overall_result=RESULT_PENDING,
            created_by=actor_id,
        )
        run.cases = [
            TestRunCase(test_case_id=tc_id, status=RUN_NOT_STARTED, result=RESULT_PENDING)
            for tc_id in ordered_ids
        ]
        db.session.add(run)
        db.session.flush()
        record_event(
            EVENT_TYPE, "TestRunCreated", "TestRun", run.id, actor_id,
            {"name": run.name, "test_case_ids": ordered_ids},
        )

    logger.info("Test run %s created with %d case(s) by user %s",
                run.id, len(ordered_ids), actor_id)
    return run


def list_runs(status=None) -> list[TestRun]:
    query = TestRun.query
    if status:
        if status not in RUN_STATUSES:
            raise ValidationError(f"Invalid status filter: {status}")
        query = query.filter(TestRun.status == status)
    return query.order_by(TestRun.created_at.desc(), TestRun.id.desc()).all()


def get_run_detail(run_id) -> dict:
    """Run with every case, its defined steps and its recorded step results."""
    run = get_run(run_id)
    d = run.to_dict()
    d["cases"] = [case.to_dict(include_steps=True) for case in run.cases]
    return d


# ═════════════════════════════════════════════════════════════════════════════
# Execution
# ═════════════════════════════════════════════════════════════════════════════

def begin_case_execution(run_id, test_case_id, actor_id) -> TestRunCase:
    """(Re)start one case: clears its step results and marks it in_progress."""
    run = get_run(run_id)
    _ensure_mutable(run)
    run_case = _get_run_case(run, test_case_id)

    with atomic():
        _start_case(run, run_case, actor_id)
        record_event(
            EVENT_TYPE, "TestCaseExecutionStarted", "TestRun", run.id, actor_id,
            {"test_case_id": run_case.test_case_id, "test_run_case_id": run_case.id},
        )

    logger.info("Execution of %s started in run %s by user %s",
                run_case.test_case_id, run.id, actor_id)
    return run_case


def record_step_result(
    run_id,
    test_case_id,
    step_number,
    status,
    actual_result,
    actor_id,
    evidence_ref=None,
) -> dict:
    """
    Upsert the result of one step (last write wins) and re-aggregate.

    Returns the step result together with the updated case and run state.
    """
    if status not in STEP_STATUSES:
        raise ValidationError("Status must be pass or fail", details={"status": "invalid"})
    raw_step_number = step_number
    try:
        if isinstance(raw_step_number, bool):
            raise TypeError
        step_number = int(raw_step_number)
        # 1.5 → reject rather than silently truncate
        if step_number != raw_step_number and not isinstance(raw_step_number, str):
            raise ValueError
    except (TypeError, ValueError):
        raise ValidationError("Step number must be an integer",
                              details={"step_number": "invalid"}) from None
    if step_number < 1:
        raise ValidationError("Step number must be positive", details={"step_number": "invalid"})
    if actual_result is None:
        actual_result = ""
    if not isinstance(actual_result, str):
        raise ValidationError("Actual result must be a string", details={"actual_result": "invalid"})
    if evidence_ref is not None and (
        not isinstance(evidence_ref, str) or len(evidence_ref) > EVIDENCE_MAX_LENGTH
    ):
        raise ValidationError("Invalid evidence reference", details={"evidence_ref": "invalid"})

    run = get_run(run_id)
    _ensure_mutable(run)
    run_case = _get_run_case(run, test_case_id)
    step = TestStep.query.filter_by(
        test_case_id=run_case.test_case_id, step_number=step_number,
    ).first()
    if step is None:
        raise NotFoundError("TestStep", step_number, message="Test step not found")

    with atomic():
        if run_case.status == RUN_NOT_STARTED:
            _start_case(run, run_case, actor_id)

        step_result = next(
            (r for r in run_case.step_results if r.step_number == step_number), None,
        )
        if step_result is None:
            step_result = TestStepResult(step_number=step_number)
            run_case.step_results.append(step_result)
        step_result.expected_result = step.expected_result
        step_result.actual_result = actual_result
        step_result.status = status
        step_result.evidence_ref = evidence_ref
        step_result.executed_at = _now()
        step_result.executed_by = actor_id

        _evaluate_case(run_case)
        _evaluate_run(run)
        db.session.flush()

        record_event(
            EVENT_TYPE, "TestStepRecorded", "TestRun", run.id, actor_id,
            {
                "test_case_id": run_case.test_case_id,
                "step_number": step_number,
                "status": status,
                "case_status": run_case.status,
                "run_status": run.status,
            },
        )

    return {
        "step_result": step_result.to_dict(),
        "test_run_case": run_case.to_dict(),
        "test_run": run.to_dict(),
    }


# ═════════════════════════════════════════════════════════════════════════════
# Approval
# ═════════════════════════════════════════════════════════════════════════════

def approve_run(run_id, actor_id, *, password=None) -> dict:
    """
    Approve a complete run: mint TestResults and their derived traces.

    All-or-nothing: any failure rolls back every result and edge.

    Raises:
        BadRequestError: already approved, not complete, or password missing
        UnauthorizedError: wrong password
    """
    run = get_run(run_id)
    if run.status == RUN_APPROVED:
        raise BadRequestError("Test run is already approved")
    if run.status != RUN_COMPLETE:
        raise BadRequestError("Test run must be complete before approval")
    require_password(actor_id, password)

    minted = []
    with atomic():
        for run_case in run.cases:
            if run_case.status != RUN_COMPLETE or run_case.result not in STEP_STATUSES:
                raise BadRequestError(
                    f"Test case {run_case.test_case_id} is not complete",
                    details={"test_case_id": run_case.test_case_id},
                )
            test_result = TestResult(
                id=generate_id(EntityKind.TEST_RESULT),
                test_run_id=run.id,
                test_case_id=run_case.test_case_id,
                result=run_case.result,
                executed_by=run_case.executed_by,
                executed_at=run_case.completed_at,
            )
            db.session.add(test_result)
            db.session.flush()
            trace_service.create_derived_trace(run_case.test_case_id, test_result.id, actor_id)
            minted.append(test_result)

        run.status = RUN_APPROVED
        run.approved_at = _now()
        run.approved_by = actor_id
        record_event(
            EVENT_TYPE, "TestRunApproved", "TestRun", run.id, actor_id,
            {
                "overall_result": run.overall_result,
                "test_result_ids": [r.id for r in minted],
            },
        )

    logger.info("Test run %s approved by user %s: %d test result(s) created",
                run.id, actor_id, len(minted))
    return {
        "test_run": run.to_dict(),
        "test_results": [r.to_dict() for r in minted],
    }


# ═════════════════════════════════════════════════════════════════════════════
# Reporting
# ═════════════════════════════════════════════════════════════════════════════

def get_test_case_results(test_case_id) -> dict:
    """Execution history of one test case across runs, plus its TestResults."""
    normalized = normalize_id(test_case_id)
    if resolve_type(normalized) != EntityKind.TEST_CASE:
        raise ValidationError(f"{normalized} is not a test case", details={"id": normalized})
    test_case = TestCase.get_active(normalized)
    if test_case is None:
        raise NotFoundError("TestCase", normalized, message="Test case not found")

    executions = (
        TestRunCase.query.filter_by(test_case_id=normalized)
        .order_by(TestRunCase.id.desc())
        .all()
    )
    results = (
        TestResult.query.filter_by(test_case_id=normalized)
        .order_by(TestResult.created_at.desc(), TestResult.id.desc())
        .all()
    )

    history = []
    for run_case in executions:
        d = run_case.to_dict()
        d["test_run_name"] = run_case.test_run.name
        d["test_run_status"] = run_case.test_run.status
        d["step_results"] = [r.to_dict() for r in run_case.step_results]
        history.append(d)

    return {
        "test_case": test_case.to_dict(include_steps=True),
        "executions": history,
        "test_results": [r.to_dict() for r in results],
    }


def get_requirement_test_coverage(requirement_id) -> dict:
    """
    Test cases traced from a requirement and the latest completed result of each.

    coverage_percentage = cases with a completed execution / linked cases.
    """
    normalized = normalize_id(requirement_id)
    kind = resolve_type(normalized)
    if kind not in REQUIREMENT_KINDS:
        raise ValidationError(f"{normalized} is not a requirement", details={"id": normalized})
    if resolve_model(kind).get_active(normalized) is None:
        raise NotFoundError(kind.value, normalized, message="Requirement not found")

    linked_ids = [
        row.to_id
        for row in Trace.query.filter(Trace.from_id == normalized, Trace.to_id.like("TC-%")).all()
    ]
    test_cases = (
        TestCase.query_active().filter(TestCase.id.in_(linked_ids)).order_by(TestCase.id).all()
        if linked_ids else []
    )

    latest_results = []
    for test_case in test_cases:
        latest = (
            TestRunCase.query
            .filter_by(test_case_id=test_case.id, status=RUN_COMPLETE)
            .order_by(TestRunCase.completed_at.desc(), TestRunCase.id.desc())
            .first()
        )
        if latest is not None:
            latest_results.append({
                "test_case_id": test_case.id,
                "test_run": {"id": latest.test_run.id, "name": latest.test_run.name},
                "result": latest.result,
                "executed_at": latest.completed_at.isoformat() if latest.completed_at else None,
            })

    total = len(test_cases)
    passed = sum(1 for r in latest_results if r["result"] == RESULT_PASS)
    failed = sum(1 for r in latest_results if r["result"] == RESULT_FAIL)
    executed = len(latest_results)
    return {
        "requirement_id": normalized,
        "test_cases": [tc.to_dict() for tc in test_cases],
        "latest_results": latest_results,
        "coverage_stats": {
            "total_tests": total,
            "passed_tests": passed,
            "failed_tests": failed,
            "pending_tests": total - executed,
            "coverage_percentage": math.floor(executed * 100 / total + 0.5) if total else 0,
        },
    }
