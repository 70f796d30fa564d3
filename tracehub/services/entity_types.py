"""
Entity Type Resolver.

The identifier prefix is the only source of truth for an entity's kind:

    UR-14    → user_requirement
    SR-2     → system_requirement
    RISK-7   → risk
    TC-3     → test_case
    TRES-9   → test_result

Matching is case-insensitive. An identifier whose prefix is not one of the
five above is rejected with a ValidationError; there is no default kind.

`resolve_type` and `normalize_id` are pure. `resolve_model` maps a kind to
its SQLAlchemy model (one table per kind).
"""

from enum import Enum

from tracehub.core.exceptions import ValidationError


class EntityKind(str, Enum):
    USER_REQUIREMENT = "user_requirement"
    SYSTEM_REQUIREMENT = "system_requirement"
    RISK = "risk"
    TEST_CASE = "test_case"
    TEST_RESULT = "test_result"


# Longest prefix first so "TRES-" is never mistaken for anything shorter.
PREFIXES = (
    ("TRES-", EntityKind.TEST_RESULT),
    ("RISK-", EntityKind.RISK),
    ("UR-", EntityKind.USER_REQUIREMENT),
    ("SR-", EntityKind.SYSTEM_REQUIREMENT),
    ("TC-", EntityKind.TEST_CASE),
)

SEQUENCE_NAMES = {
    EntityKind.USER_REQUIREMENT: "UR",
    EntityKind.SYSTEM_REQUIREMENT: "SR",
    EntityKind.RISK: "RISK",
    EntityKind.TEST_CASE: "TC",
    EntityKind.TEST_RESULT: "TRES",
}

LIFECYCLE_KINDS = (
    EntityKind.USER_REQUIREMENT,
    EntityKind.SYSTEM_REQUIREMENT,
    EntityKind.RISK,
    EntityKind.TEST_CASE,
)

REQUIREMENT_KINDS = (EntityKind.USER_REQUIREMENT, EntityKind.SYSTEM_REQUIREMENT)

# URL collection slug → kind (used by the HTTP layer)
COLLECTIONS = {
    "user-requirements": EntityKind.USER_REQUIREMENT,
    "system-requirements": EntityKind.SYSTEM_REQUIREMENT,
    "risks": EntityKind.RISK,
    "test-cases": EntityKind.TEST_CASE,
}


def normalize_id(entity_id) -> str:
    """Strip and upper-case an identifier; empty input is a ValidationError."""
    if not isinstance(entity_id, str) or not entity_id.strip():
        raise ValidationError("Entity id is required", details={"id": "required"})
    return entity_id.strip().upper()


def resolve_type(entity_id) -> EntityKind:
    """Map an identifier to its EntityKind by prefix."""
    normalized = normalize_id(entity_id)
    for prefix, kind in PREFIXES:
        if normalized.startswith(prefix) and len(normalized) > len(prefix):
            return kind
    raise ValidationError(
        f"Unrecognized entity id: {entity_id}",
        details={"id": "unknown_prefix"},
    )


def is_lifecycle_kind(kind: EntityKind) -> bool:
    return kind in LIFECYCLE_KINDS


def resolve_model(kind: EntityKind):
    """Return the model class backing *kind*."""
    from tracehub.models.requirement import SystemRequirement, UserRequirement
    from tracehub.models.risk import RiskRecord
    from tracehub.models.testing import TestCase, TestResult

    return {
        EntityKind.USER_REQUIREMENT: UserRequirement,
        EntityKind.SYSTEM_REQUIREMENT: SystemRequirement,
        EntityKind.RISK: RiskRecord,
        EntityKind.TEST_CASE: TestCase,
        EntityKind.TEST_RESULT: TestResult,
    }[kind]


def resolve_collection(kind: EntityKind) -> str:
    """Return the table name backing *kind*."""
    return resolve_model(kind).__tablename__


def kind_from_collection(collection: str) -> EntityKind | None:
    return COLLECTIONS.get(collection)
