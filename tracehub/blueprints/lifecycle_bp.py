"""
TraceHub
Lifecycle API: CRUD and approval for the four lifecycle-bearing kinds.

Collections:
    user-requirements, system-requirements, risks, test-cases

Endpoints (per collection):
    GET    /api/v1/<collection>                 list (?status=, ?search=)
    POST   /api/v1/<collection>                 create (status=approved needs password)
    GET    /api/v1/<collection>/<id>            detail
    PATCH  /api/v1/<collection>/<id>            edit (password when approved)
    POST   /api/v1/<collection>/<id>/approve    approve (password)
    DELETE /api/v1/<collection>/<id>            soft delete (password when approved)
"""

import logging

from flask import Blueprint, jsonify, request

from tracehub.models.testing import TestCase
from tracehub.services import lifecycle
from tracehub.services.auth_service import current_principal
from tracehub.services.entity_types import COLLECTIONS, kind_from_collection
from tracehub.utils.helpers import json_body

logger = logging.getLogger(__name__)

lifecycle_bp = Blueprint("lifecycle", __name__, url_prefix="/api/v1")

_COLLECTION_RULE = "<any({}):collection>".format(
    ", ".join(f"'{name}'" for name in COLLECTIONS)
)


@lifecycle_bp.before_request
def _require_principal():
    current_principal()


def _serialize(entity):
    if isinstance(entity, TestCase):
        return entity.to_dict(include_steps=True)
    return entity.to_dict()


@lifecycle_bp.route(f"/{_COLLECTION_RULE}", methods=["GET"])
def list_entities(collection):
    items = lifecycle.list_entities(
        kind_from_collection(collection),
        status=request.args.get("status"),
        search=request.args.get("search"),
    )
    return jsonify({"items": [e.to_dict() for e in items], "total": len(items)}), 200


@lifecycle_bp.route(f"/{_COLLECTION_RULE}", methods=["POST"])
def create_entity(collection):
    data = json_body()
    entity = lifecycle.create_entity(
        kind_from_collection(collection), data, current_principal(),
        password=data.get("password"),
    )
    return jsonify(_serialize(entity)), 201


@lifecycle_bp.route(f"/{_COLLECTION_RULE}/<entity_id>", methods=["GET"])
def get_entity(collection, entity_id):
    entity = lifecycle.get_entity(entity_id, kind_from_collection(collection))
    return jsonify(_serialize(entity)), 200


@lifecycle_bp.route(f"/{_COLLECTION_RULE}/<entity_id>", methods=["PATCH"])
def update_entity(collection, entity_id):
    data = json_body()
    entity = lifecycle.update_entity(
        kind_from_collection(collection), entity_id, data, current_principal(),
        password=data.get("password"),
    )
    return jsonify(_serialize(entity)), 200


@lifecycle_bp.route(f"/{_COLLECTION_RULE}/<entity_id>/approve", methods=["POST"])
def approve_entity(collection, entity_id):
    data = json_body()
    entity = lifecycle.approve_entity(
        kind_from_collection(collection), entity_id, current_principal(),
        password=data.get("password"),
        notes=data.get("approval_notes"),
    )
    return jsonify(_serialize(entity)), 200


@lifecycle_bp.route(f"/{_COLLECTION_RULE}/<entity_id>", methods=["DELETE"])
def delete_entity(collection, entity_id):
    data = json_body()
    entity = lifecycle.soft_delete_entity(
        kind_from_collection(collection), entity_id, current_principal(),
        password=data.get("password"),
    )
    return jsonify({"message": f"{entity.LABEL} deleted", "id": entity.id}), 200
