"""
Trace Graph Store: directed edges between any two entities.

Edges carry no type columns; both endpoint kinds are derived from the
identifier prefix on every read. Rules:

  - user-created edges may not touch a TestResult (BadRequest)
  - both endpoints must exist and not be soft-deleted (NotFound, naming
    the side that failed)
  - (from_id, to_id) is unique; a duplicate user create is a Conflict, a
    duplicate derived create is a silent no-op
  - listings hide edges whose endpoint has been soft-deleted

This service only ever *reads* lifecycle columns on the entity tables.

Usage:
    from tracehub.services import trace_service

    trace_service.create_trace("UR-1", "SR-4", actor_id=user.id)
    trace_service.list_traces_for_entity("SR-4")  # → {"upstream": [...], "downstream": [...]}
"""

import logging
from collections import defaultdict

from sqlalchemy.exc import IntegrityError

from tracehub.core.exceptions import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from tracehub.models import db
from tracehub.models.audit import record_event
from tracehub.models.trace import Trace
from tracehub.services.entity_types import (
    EntityKind,
    is_lifecycle_kind,
    normalize_id,
    resolve_model,
    resolve_type,
)
from tracehub.utils.helpers import atomic

logger = logging.getLogger(__name__)

EVENT_TYPE = "traceability"


# ── Endpoint lookup ──────────────────────────────────────────────────────────

def find_entity(entity_id):
    """Return the live row for *entity_id*, or None if absent / soft-deleted."""
    normalized = normalize_id(entity_id)
    kind = resolve_type(normalized)
    model = resolve_model(kind)
    if is_lifecycle_kind(kind):
        return model.get_active(normalized)
    return db.session.get(model, normalized)


def reject_derived_endpoint(entity_id, side: str) -> str:
    """Refuse a TestResult endpoint for a user edge; return the normalised id.

    Only the type is consulted, so this runs before any existence check.
    """
    normalized = normalize_id(entity_id)
    if resolve_type(normalized) == EntityKind.TEST_RESULT:
        raise BadRequestError(
            "Test results can only be linked by test run approval",
            details={side.lower(): normalized},
        )
    return normalized


def require_live_endpoint(entity_id: str, side: str) -> str:
    """NotFound naming *side* ("Source" / "Target") unless the entity is live."""
    if find_entity(entity_id) is None:
        raise NotFoundError("Entity", entity_id, message=f"{side} not found")
    return entity_id


def validate_endpoint(entity_id, side: str) -> str:
    """Check one endpoint of a user-created edge and return its normalised id."""
    return require_live_endpoint(reject_derived_endpoint(entity_id, side), side)


def _live_summaries(entity_ids) -> dict:
    """Batch-load summaries for a set of ids: one query per entity kind."""
    by_kind = defaultdict(set)
    for entity_id in entity_ids:
        by_kind[resolve_type(entity_id)].add(entity_id)

    summaries = {}
    for kind, ids in by_kind.items():
        model = resolve_model(kind)
        query = model.query_active() if is_lifecycle_kind(kind) else model.query
        for row in query.filter(model.id.in_(ids)).all():
            summaries[row.id] = row.summary()
    return summaries


# ── Queries ──────────────────────────────────────────────────────────────────

def list_all_traces() -> list[dict]:
    """Every edge whose two endpoints are live, newest first."""
    traces = Trace.query.order_by(Trace.created_at.desc(), Trace.id.desc()).all()
    ids = {t.from_id for t in traces} | {t.to_id for t in traces}
    summaries = _live_summaries(ids)

    result = []
    for trace in traces:
        source = summaries.get(trace.from_id)
        target = summaries.get(trace.to_id)
        if source is None or target is None:
            continue
        d = trace.to_dict()
        d.update({
            "from_title": source["title"],
            "from_status": source["status"],
            "to_title": target["title"],
            "to_status": target["status"],
        })
        result.append(d)
    return result


def _annotate(trace, other_id, summaries):
    other = summaries[other_id]
    return {
        "trace_id": trace.id,
        "id": other_id,
        "type": resolve_type(other_id).value,
        "title": other["title"],
        "description": other["description"],
        "status": other["status"],
        "is_system_generated": trace.is_system_generated,
        "created_by": trace.created_by,
        "created_at": trace.created_at.isoformat() if trace.created_at else None,
    }


def list_traces_for_entity(entity_id) -> dict:
    """
    Upstream (edges pointing at the entity) and downstream (edges leaving it).

    Raises:
        ValidationError: unrecognised identifier
        NotFoundError: entity absent or soft-deleted
    """
    normalized = normalize_id(entity_id)
    kind = resolve_type(normalized)
    if find_entity(normalized) is None:
        raise NotFoundError(kind.value, normalized)

    incoming = Trace.query.filter(Trace.to_id == normalized).order_by(Trace.id).all()
    outgoing = Trace.query.filter(Trace.from_id == normalized).order_by(Trace.id).all()
    summaries = _live_summaries(
        {t.from_id for t in incoming} | {t.to_id for t in outgoing}
    )

    return {
        "id": normalized,
        "type": kind.value,
        "upstream": [
            _annotate(t, t.from_id, summaries) for t in incoming if t.from_id in summaries
        ],
        "downstream": [
            _annotate(t, t.to_id, summaries) for t in outgoing if t.to_id in summaries
        ],
    }


def get_trace(from_id, to_id) -> Trace:
    trace = Trace.query.filter_by(
        from_id=normalize_id(from_id), to_id=normalize_id(to_id),
    ).first()
    if trace is None:
        raise NotFoundError("Trace", message="Trace relationship not found")
    return trace


# ── Mutations ────────────────────────────────────────────────────────────────

def _trace_exists(from_id: str, to_id: str) -> bool:
    return (
        db.session.query(Trace.id)
        .filter(Trace.from_id == from_id, Trace.to_id == to_id)
        .first()
        is not None
    )


def add_user_trace(from_id: str, to_id: str, actor_id) -> Trace:
    """Insert a user-created edge into the current transaction.

    Endpoints must already be validated. A duplicate pair, whether found
    up front or raised by the unique constraint, is a ConflictError.
    """
    if _trace_exists(from_id, to_id):
        raise ConflictError("Trace", "from_id,to_id", f"{from_id}→{to_id}",
                            message="Trace relationship already exists")
    trace = Trace(
        from_id=from_id, to_id=to_id, created_by=actor_id, is_system_generated=False,
    )
    db.session.add(trace)
    try:
        db.session.flush()
    except IntegrityError:
        # Lost the race against a concurrent insert of the same pair
        raise ConflictError("Trace", "from_id,to_id", f"{from_id}→{to_id}",
                            message="Trace relationship already exists") from None
    record_event(
        EVENT_TYPE, "TraceCreated", "Trace", f"{from_id}->{to_id}", actor_id,
        {"from_id": from_id, "to_id": to_id, "is_system_generated": False},
    )
    return trace


def create_trace(from_id, to_id, actor_id) -> Trace:
    """
    Link two entities on behalf of a user.

    Raises:
        ValidationError: unrecognised identifier or self-link
        BadRequestError: either endpoint is a TestResult
        NotFoundError: "Source not found" / "Target not found"
        ConflictError: the edge already exists
    """
    source = reject_derived_endpoint(from_id, "Source")
    target = reject_derived_endpoint(to_id, "Target")
    require_live_endpoint(source, "Source")
    require_live_endpoint(target, "Target")
    if source == target:
        raise ValidationError("An entity cannot be traced to itself",
                              details={"to_id": "same_as_from_id"})

    with atomic():
        trace = add_user_trace(source, target, actor_id)

    logger.info("Trace created: %s → %s by user %s", source, target, actor_id)
    return trace


def delete_trace(from_id, to_id, actor_id) -> None:
    """Remove one edge. NotFound if the pair is not linked."""
    trace = get_trace(from_id, to_id)
    payload = {
        "from_id": trace.from_id,
        "to_id": trace.to_id,
        "is_system_generated": trace.is_system_generated,
    }
    with atomic():
        db.session.delete(trace)
        record_event(
            EVENT_TYPE, "TraceDeleted", "Trace",
            f"{payload['from_id']}->{payload['to_id']}", actor_id, payload,
        )
    logger.info("Trace deleted: %s → %s by user %s",
                payload["from_id"], payload["to_id"], actor_id)


def create_derived_trace(from_id, to_id, actor_id) -> Trace | None:
    """
    Insert a system-generated edge inside the caller's transaction.

    Used only by test run approval. Conflict-tolerant: an existing pair is
    left untouched and None is returned, so approval retries never fail.
    """
    source = normalize_id(from_id)
    target = normalize_id(to_id)
    if _trace_exists(source, target):
        logger.debug("Derived trace %s → %s already present", source, target)
        return None

    trace = Trace(
        from_id=source, to_id=target, created_by=actor_id, is_system_generated=True,
    )
    try:
        with db.session.begin_nested():
            db.session.add(trace)
    except IntegrityError:
        logger.debug("Derived trace %s → %s inserted concurrently", source, target)
        return None
    return trace
