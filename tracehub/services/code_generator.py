"""
Auto-ID Generator Service

Generates human-readable identifiers for:
  - User requirements:    UR-{seq}     (e.g. UR-1, UR-14)
  - System requirements:  SR-{seq}     (e.g. SR-2)
  - Risk records:         RISK-{seq}   (e.g. RISK-7)
  - Test cases:           TC-{seq}     (e.g. TC-3)
  - Test results:         TRES-{seq}   (e.g. TRES-9)
  - Test runs:            TR-{seq}     (e.g. TR-4)

Each prefix has its own counter row in `id_sequences`. The counter is bumped
with a single UPDATE inside the caller's transaction, so two writers can
never receive the same value. A rolled-back transaction gives its value back.
"""

import logging

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from tracehub.models import db
from tracehub.models.sequence import IdSequence
from tracehub.services.entity_types import SEQUENCE_NAMES, EntityKind

logger = logging.getLogger(__name__)

TEST_RUN_SEQUENCE = "TR"


def _bump(name: str) -> int:
    stmt = (
        update(IdSequence)
        .where(IdSequence.name == name)
        .values(last_value=IdSequence.last_value + 1)
        .execution_options(synchronize_session=False)
    )
    return db.session.execute(stmt).rowcount


def next_sequence_value(name: str) -> int:
    """Atomically increment and return the counter for *name*."""
    if not _bump(name):
        # First id of this kind: create the row, or lose the race and bump.
        try:
            with db.session.begin_nested():
                db.session.add(IdSequence(name=name, last_value=1))
            return 1
        except IntegrityError:
            logger.debug("Sequence %s created concurrently, retrying bump", name)
            _bump(name)
    value = db.session.execute(
        select(IdSequence.last_value).where(IdSequence.name == name)
    ).scalar_one()
    return value


def generate_id(kind: EntityKind) -> str:
    """Generate next identifier for an entity kind: UR-1, RISK-3, TRES-12, ..."""
    name = SEQUENCE_NAMES[kind]
    return f"{name}-{next_sequence_value(name)}"


def generate_test_run_id() -> str:
    """Generate next test run identifier: TR-1, TR-2, ..."""
    return f"{TEST_RUN_SEQUENCE}-{next_sequence_value(TEST_RUN_SEQUENCE)}"
