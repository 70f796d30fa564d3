"""
Lifecycle Engine: draft/approved state machine for the four
lifecycle-bearing entity kinds (user requirement, system requirement,
risk, test case).

Transitions:
    create(status=draft)                       → draft     (revision 0)
    create(status=approved, password)          → approved  (revision 1)
    draft    --update-->                       draft     (no password)
    draft    --update(status=approved, pw)-->  approved  (revision + 1)
    approved --update(pw)-->                   draft     (revision kept)
    approved --update(status=approved, pw)-->  approved  (revision + 1)
    *        --approve(pw)-->                  approved  (rejects if already approved)
    *        --soft_delete(pw if approved)-->  tombstoned

Every mutating call validates first (fields, password, title uniqueness),
then runs exactly one transaction. This module is the only writer of
status / revision / approved_at / approved_by.

Usage:
    from tracehub.services import lifecycle

    ur = lifecycle.create_entity(EntityKind.USER_REQUIREMENT,
                                 {"title": "...", "description": "..."}, actor_id=1)
    lifecycle.approve_entity(EntityKind.USER_REQUIREMENT, ur.id, 1, password="...")
"""

import logging

from sqlalchemy import func, or_

from tracehub.core.exceptions import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from tracehub.models import db
from tracehub.models.audit import record_event
from tracehub.models.lifecycle import (
    LIFECYCLE_STATUSES,
    STATUS_APPROVED,
    STATUS_DRAFT,
    TITLE_MAX_LENGTH,
)
from tracehub.models.testing import TestStep
from tracehub.services import trace_service
from tracehub.services.auth_service import require_password
from tracehub.services.code_generator import generate_id
from tracehub.services.entity_types import (
    LIFECYCLE_KINDS,
    REQUIREMENT_KINDS,
    EntityKind,
    normalize_id,
    resolve_model,
    resolve_type,
)
from tracehub.services.risk_calculation import compute_p_total, validate_scale
from tracehub.utils.helpers import atomic

logger = logging.getLogger(__name__)

EVENT_TYPE = "lifecycle"

_TEXT_FIELDS = ("title", "description")
_RISK_TEXT_FIELDS = ("hazard", "harm", "p_total_calculation_method")
_RISK_SCALE_FIELDS = ("severity", "probability_p1", "probability_p2")


def _require_lifecycle_kind(kind) -> EntityKind:
    try:
        kind = EntityKind(kind)
    except ValueError:
        raise ValidationError(f"Unknown entity kind: {kind}") from None
    if kind not in LIFECYCLE_KINDS:
        raise ValidationError(f"{kind.value} does not have a lifecycle")
    return kind


# ═════════════════════════════════════════════════════════════════════════════
# Field validation (pure, no session access)
# ═════════════════════════════════════════════════════════════════════════════

def _label(field: str) -> str:
    return field.replace("_", " ").capitalize()


def _clean_text(data: dict, field: str, *, max_length: int | None = None) -> str:
    value = data.get(field)
    if value is None:
        raise ValidationError(f"{_label(field)} is required", details={field: "required"})
    if not isinstance(value, str):
        raise ValidationError(f"{_label(field)} must be a string", details={field: "invalid"})
    if not value.strip():
        raise ValidationError(
            f"{_label(field)} cannot be empty or whitespace only",
            details={field: "required"},
        )
    if max_length is not None and len(value) > max_length:
        raise ValidationError(
            f"{_label(field)} exceeds maximum length of {max_length}",
            details={field: "too_long"},
        )
    return value.strip() if field == "title" else value


def _clean_steps(steps) -> list[dict]:
    """Validate a test step list and renumber it 1..N in the given order."""
    if not isinstance(steps, list):
        raise ValidationError("Steps must be a list", details={"steps": "invalid"})
    cleaned = []
    for index, step in enumerate(steps, start=1):
        if not isinstance(step, dict):
            raise ValidationError(f"Step {index} must be an object", details={"steps": "invalid"})
        action = step.get("action")
        expected = step.get("expected_result")
        if not isinstance(action, str) or not action.strip():
            raise ValidationError(
                f"Step {index}: action is required", details={f"steps[{index}].action": "required"},
            )
        if not isinstance(expected, str) or not expected.strip():
            raise ValidationError(
                f"Step {index}: expected_result is required",
                details={f"steps[{index}].expected_result": "required"},
            )
        cleaned.append({"step_number": index, "action": action, "expected_result": expected})
    return cleaned


def _validate_fields(kind: EntityKind, data: dict, entity=None) -> dict:
    """
    Validate the editable fields of *kind* found in *data*.

    On create (*entity* is None) every required field must be present; on
    update only the supplied fields are checked. Returns the cleaned
    column values, with p_total recomputed for risks whenever any scoring
    input is supplied.
    """
    partial = entity is not None
    changes = {}

    for field in _TEXT_FIELDS:
        if partial and field not in data:
            continue
        max_length = TITLE_MAX_LENGTH if field == "title" else None
        changes[field] = _clean_text(data, field, max_length=max_length)

    if kind == EntityKind.RISK:
        for field in _RISK_TEXT_FIELDS:
            if partial and field not in data:
                continue
            changes[field] = _clean_text(data, field)
        if "foreseeable_sequence" in data:
            sequence = data["foreseeable_sequence"]
            if sequence is not None and not isinstance(sequence, str):
                raise ValidationError(
                    "Foreseeable sequence must be a string",
                    details={"foreseeable_sequence": "invalid"},
                )
            changes["foreseeable_sequence"] = sequence
        for field in _RISK_SCALE_FIELDS:
            if partial and field not in data:
                continue
            if data.get(field) is None:
                raise ValidationError(f"{_label(field)} is required", details={field: "required"})
            changes[field] = validate_scale(field, data[field])

        scoring_inputs = _RISK_SCALE_FIELDS + ("p_total_calculation_method",)
        if any(field in changes for field in scoring_inputs):
            p1 = changes.get("probability_p1", getattr(entity, "probability_p1", None))
            p2 = changes.get("probability_p2", getattr(entity, "probability_p2", None))
            changes["p_total"] = compute_p_total(p1, p2)

    return changes


def _requested_status(data: dict, default=None):
    status = data.get("status", default)
    if status is not None and (not isinstance(status, str) or status not in LIFECYCLE_STATUSES):
        raise ValidationError(
            f"Invalid status: {status}", details={"status": "must be draft or approved"},
        )
    return status


def _approval_notes(data: dict, notes=None):
    notes = data.get("approval_notes", notes)
    if notes is not None and not isinstance(notes, str):
        raise ValidationError("Approval notes must be a string", details={"approval_notes": "invalid"})
    return notes


def _check_title_unique(model, title: str, exclude_id=None):
    """Case-insensitive title uniqueness among live rows of one kind."""
    query = model.query_active().filter(func.lower(model.title) == title.lower())
    if exclude_id is not None:
        query = query.filter(model.id != exclude_id)
    if query.first() is not None:
        raise ConflictError(
            model.AGGREGATE_TYPE, "title", title,
            message=f"{model.LABEL} with this title already exists",
        )


def _ensure_complete(entity, overrides=None):
    missing = entity.missing_required_fields(overrides)
    if missing:
        raise ValidationError(
            f"Cannot approve incomplete {entity.LABEL.lower()}: missing {', '.join(missing)}",
            details={field: "required" for field in missing},
        )


def _linked_requirement_ids(data: dict) -> list[str]:
    """Validate `linked_requirements` for a new test case (deduplicated, ordered)."""
    raw = data.get("linked_requirements") or []
    if not isinstance(raw, list):
        raise ValidationError(
            "linked_requirements must be a list", details={"linked_requirements": "invalid"},
        )
    seen = []
    for requirement_id in raw:
        normalized = normalize_id(requirement_id)
        if resolve_type(normalized) not in REQUIREMENT_KINDS:
            raise ValidationError(
                f"{normalized} is not a requirement",
                details={"linked_requirements": normalized},
            )
        trace_service.validate_endpoint(normalized, "Source")
        if normalized not in seen:
            seen.append(normalized)
    return seen


# ═════════════════════════════════════════════════════════════════════════════
# Queries
# ═════════════════════════════════════════════════════════════════════════════

def get_entity(entity_id, kind=None):
    """
    Return the live entity for *entity_id*.

    When *kind* is given the identifier must resolve to that kind, so
    `/risks/UR-1` is a 404 rather than a user requirement.
    """
    normalized = normalize_id(entity_id)
    resolved = resolve_type(normalized)
    if kind is not None and resolved != EntityKind(kind):
        raise NotFoundError(EntityKind(kind).value, normalized)
    if resolved not in LIFECYCLE_KINDS:
        entity = trace_service.find_entity(normalized)
    else:
        entity = resolve_model(resolved).get_active(normalized)
    if entity is None:
        raise NotFoundError(resolved.value, normalized)
    return entity


def list_entities(kind, status=None, search=None) -> list:
    """Live entities of one kind, most recently modified first."""
    kind = _require_lifecycle_kind(kind)
    model = resolve_model(kind)
    query = model.query_active()
    if status:
        if status not in LIFECYCLE_STATUSES:
            raise ValidationError(f"Invalid status filter: {status}")
        query = query.filter(model.status == status)
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(model.id.ilike(pattern), model.title.ilike(pattern)))
    return query.order_by(
        func.coalesce(model.last_modified, model.created_at).desc(), model.id,
    ).all()


# ═════════════════════════════════════════════════════════════════════════════
# Mutations
# ═════════════════════════════════════════════════════════════════════════════

def create_entity(kind, data: dict, actor_id, *, password=None):
    """
    Create a lifecycle-bearing entity.

    `data["status"] == "approved"` creates it directly in approved state
    (revision 1) and requires the actor's password. Test cases accept
    `steps` and `linked_requirements`.

    Raises:
        ValidationError, BadRequestError, UnauthorizedError, NotFoundError, ConflictError
    """
    kind = _require_lifecycle_kind(kind)
    model = resolve_model(kind)

    fields = _validate_fields(kind, data)
    status = _requested_status(data, STATUS_DRAFT)
    notes = _approval_notes(data)

    steps = []
    linked = []
    if kind == EntityKind.TEST_CASE:
        steps = _clean_steps(data.get("steps") or [])
        linked = _linked_requirement_ids(data)

    entity = model(**fields)
    if kind == EntityKind.TEST_CASE:
        entity.steps = [TestStep(**step) for step in steps]

    if status == STATUS_APPROVED:
        _ensure_complete(entity)
        require_password(actor_id, password)

    _check_title_unique(model, fields["title"])

    with atomic():
        entity.id = generate_id(kind)
        entity.created_by = actor_id
        entity.status = STATUS_DRAFT
        entity.revision = 0
        entity.touch(actor_id)
        if status == STATUS_APPROVED:
            entity.mark_approved(actor_id, notes)
        db.session.add(entity)
        db.session.flush()

        for requirement_id in linked:
            trace_service.add_user_trace(requirement_id, entity.id, actor_id)

        record_event(
            EVENT_TYPE, f"{model.AGGREGATE_TYPE}Created", model.AGGREGATE_TYPE, entity.id, actor_id,
            {
                "title": entity.title,
                "status": entity.status,
                "revision": entity.revision,
                "linked_requirements": linked or None,
            },
        )

    logger.info("%s created: %s [%s r%s] by user %s",
                model.AGGREGATE_TYPE, entity.id, entity.status, entity.revision, actor_id)
    return entity


def update_entity(kind, entity_id, data: dict, actor_id, *, password=None):
    """
    Edit an entity.

    - approved entity, or `status: approved` requested → password mandatory
    - approved entity edited without re-approval → reset to draft, revision kept
    - `status: approved` requested → revision + 1, approval stamped
    - test case `steps` replace the existing steps wholesale
    """
    kind = _require_lifecycle_kind(kind)
    entity = get_entity(entity_id, kind)
    model = type(entity)

    changes = _validate_fields(kind, data, entity)
    wants_approval = _requested_status(data) == STATUS_APPROVED
    notes = _approval_notes(data)

    steps = None
    if kind == EntityKind.TEST_CASE and "steps" in data:
        steps = _clean_steps(data["steps"])

    was_approved = entity.is_approved
    if wants_approval:
        overrides = dict(changes)
        if steps is not None:
            overrides["steps"] = steps
        _ensure_complete(entity, overrides)
    if was_approved or wants_approval:
        require_password(actor_id, password)

    if "title" in changes:
        _check_title_unique(model, changes["title"], exclude_id=entity.id)

    previous = {"status": entity.status, "revision": entity.revision}
    with atomic():
        for field, value in changes.items():
            setattr(entity, field, value)
        if steps is not None:
            _replace_steps(entity, steps)
        entity.touch(actor_id)
        if wants_approval:
            entity.mark_approved(actor_id, notes)
        elif was_approved:
            entity.reset_to_draft()

        record_event(
            EVENT_TYPE, f"{model.AGGREGATE_TYPE}Updated", model.AGGREGATE_TYPE, entity.id, actor_id,
            {
                "changed_fields": sorted(changes) + (["steps"] if steps is not None else []),
                "previous_status": previous["status"],
                "status": entity.status,
                "revision": entity.revision,
            },
        )
        if wants_approval:
            record_event(
                EVENT_TYPE, f"{model.AGGREGATE_TYPE}Approved", model.AGGREGATE_TYPE, entity.id,
                actor_id, {"revision": entity.revision, "approval_notes": notes},
            )

    if wants_approval:
        logger.info("%s %s approved (revision %s → %s) by user %s",
                    model.AGGREGATE_TYPE, entity.id, previous["revision"], entity.revision, actor_id)
    elif was_approved:
        logger.info("%s %s edited while approved; reset to draft (revision %s)",
                    model.AGGREGATE_TYPE, entity.id, entity.revision)
    return entity


def _replace_steps(test_case, steps: list[dict]):
    # Old rows must be gone before the new step numbers are inserted.
    test_case.steps.clear()
    db.session.flush()
    test_case.steps.extend(TestStep(**step) for step in steps)


def approve_entity(kind, entity_id, actor_id, *, password=None, notes=None):
    """
    Move a draft entity to approved (revision + 1).

    Raises:
        BadRequestError: already approved, or password missing
        ValidationError: required fields incomplete
        UnauthorizedError: wrong password
    """
    kind = _require_lifecycle_kind(kind)
    entity = get_entity(entity_id, kind)
    model = type(entity)

    if entity.is_approved:
        raise BadRequestError(f"{model.LABEL} is already approved")
    if notes is not None and not isinstance(notes, str):
        raise ValidationError("Approval notes must be a string", details={"approval_notes": "invalid"})
    _ensure_complete(entity)
    require_password(actor_id, password)

    previous_revision = entity.revision
    with atomic():
        entity.touch(actor_id)
        entity.mark_approved(actor_id, notes)
        record_event(
            EVENT_TYPE, f"{model.AGGREGATE_TYPE}Approved", model.AGGREGATE_TYPE, entity.id, actor_id,
            {"revision": entity.revision, "approval_notes": notes},
        )

    logger.info("%s %s approved (revision %s → %s) by user %s",
                model.AGGREGATE_TYPE, entity.id, previous_revision, entity.revision, actor_id)
    return entity


def soft_delete_entity(kind, entity_id, actor_id, *, password=None):
    """Tombstone an entity; approved entities need the actor's password."""
    kind = _require_lifecycle_kind(kind)
    entity = get_entity(entity_id, kind)
    model = type(entity)

    if entity.is_approved:
        require_password(actor_id, password)

    with atomic():
        entity.soft_delete()
        entity.touch(actor_id)
        record_event(
            EVENT_TYPE, f"{model.AGGREGATE_TYPE}Deleted", model.AGGREGATE_TYPE, entity.id, actor_id,
            {"status": entity.status, "revision": entity.revision},
        )

    logger.info("%s %s soft-deleted by user %s", model.AGGREGATE_TYPE, entity.id, actor_id)
    return entity
