"""
TraceHub
Test Execution API: test runs, step recording and approval.

    GET  /api/v1/test-runs                                          list (?status=)
    POST /api/v1/test-runs                                          {name, description, test_case_ids}
    GET  /api/v1/test-runs/<run_id>                                 run + cases + steps + results
    POST /api/v1/test-runs/<run_id>/test-cases/<tc_id>/execute      (re)start a case
    PUT  /api/v1/test-runs/<run_id>/test-cases/<tc_id>/steps/<n>    {status, actual_result, evidence_ref}
    PUT  /api/v1/test-runs/<run_id>/approve                         {password}
    GET  /api/v1/test-cases/<tc_id>/results                         execution history
    GET  /api/v1/requirements/<req_id>/test-coverage                coverage summary
"""

import logging

from flask import Blueprint, jsonify, request

from tracehub.services import test_execution
from tracehub.services.auth_service import current_principal
from tracehub.utils.helpers import json_body

logger = logging.getLogger(__name__)

testing_bp = Blueprint("testing", __name__, url_prefix="/api/v1")


@testing_bp.before_request
def _require_principal():
    current_principal()


# ── Test runs ────────────────────────────────────────────────────────────────

@testing_bp.route("/test-runs", methods=["GET"])
def list_runs():
    runs = test_execution.list_runs(status=request.args.get("status"))
    return jsonify({"items": [r.to_dict() for r in runs], "total": len(runs)}), 200


@testing_bp.route("/test-runs", methods=["POST"])
def create_run():
    data = json_body()
    run = test_execution.create_run(
        data.get("name"),
        data.get("description"),
        data.get("test_case_ids"),
        current_principal(),
    )
    return jsonify(run.to_dict(include_cases=True)), 201


@testing_bp.route("/test-runs/<run_id>", methods=["GET"])
def get_run(run_id):
    return jsonify(test_execution.get_run_detail(run_id)), 200


@testing_bp.route("/test-runs/<run_id>/test-cases/<test_case_id>/execute", methods=["POST"])
def begin_execution(run_id, test_case_id):
    run_case = test_execution.begin_case_execution(run_id, test_case_id, current_principal())
    return jsonify(run_case.to_dict(include_steps=True)), 200


@testing_bp.route(
    "/test-runs/<run_id>/test-cases/<test_case_id>/steps/<int:step_number>",
    methods=["PUT"],
)
def record_step(run_id, test_case_id, step_number):
    data = json_body()
    result = test_execution.record_step_result(
        run_id,
        test_case_id,
        step_number,
        data.get("status"),
        data.get("actual_result"),
        current_principal(),
        evidence_ref=data.get("evidence_ref"),
    )
    return jsonify(result), 200


@testing_bp.route("/test-runs/<run_id>/approve", methods=["PUT"])
def approve_run(run_id):
    data = json_body()
    result = test_execution.approve_run(run_id, current_principal(), password=data.get("password"))
    return jsonify(result), 200


# ── Reporting ────────────────────────────────────────────────────────────────

@testing_bp.route("/test-cases/<test_case_id>/results", methods=["GET"])
def test_case_results(test_case_id):
    return jsonify(test_execution.get_test_case_results(test_case_id)), 200


@testing_bp.route("/requirements/<requirement_id>/test-coverage", methods=["GET"])
def requirement_coverage(requirement_id):
    return jsonify(test_execution.get_requirement_test_coverage(requirement_id)), 200
