"""
TraceHub
Traceability API: directed links between requirements, risks, test cases
and test results.

    GET    /api/v1/traces                         every live edge with endpoint summaries
    POST   /api/v1/traces                         {from_id, to_id}
    DELETE /api/v1/traces/<from_id>/<to_id>       user-created edges only
    GET    /api/v1/requirements/<id>/traces       upstream + downstream of one entity
"""

import logging

from flask import Blueprint, jsonify

from tracehub.core.exceptions import BadRequestError
from tracehub.services import trace_service
from tracehub.services.auth_service import current_principal
from tracehub.utils.helpers import json_body

logger = logging.getLogger(__name__)

traceability_bp = Blueprint("traceability", __name__, url_prefix="/api/v1")


@traceability_bp.before_request
def _require_principal():
    current_principal()


@traceability_bp.route("/traces", methods=["GET"])
def list_traces():
    traces = trace_service.list_all_traces()
    return jsonify({"traces": traces, "total": len(traces)}), 200


@traceability_bp.route("/traces", methods=["POST"])
def create_trace():
    data = json_body()
    trace = trace_service.create_trace(data.get("from_id"), data.get("to_id"), current_principal())
    return jsonify(trace.to_dict()), 201


@traceability_bp.route("/traces/<from_id>/<to_id>", methods=["DELETE"])
def delete_trace(from_id, to_id):
    actor_id = current_principal()
    trace = trace_service.get_trace(from_id, to_id)
    if trace.is_system_generated:
        raise BadRequestError("System-generated traces cannot be deleted")
    trace_service.delete_trace(from_id, to_id, actor_id)
    return jsonify({"message": "Trace deleted"}), 200


@traceability_bp.route("/requirements/<entity_id>/traces", methods=["GET"])
def entity_traces(entity_id):
    return jsonify(trace_service.list_traces_for_entity(entity_id)), 200
