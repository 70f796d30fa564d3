"""Shared utility functions.

atomic:          one transaction per mutating service call
json_body:       request JSON as a dict (empty dict for missing/invalid body)
"""
import logging
from contextlib import contextmanager

from flask import request

from tracehub.models import db

logger = logging.getLogger(__name__)


@contextmanager
def atomic():
    """Run the enclosed block as a single transaction.

    Commits on success. On any exception the session is rolled back and the
    exception re-raised, so no partial state is ever visible.

    Usage::

        with atomic():
            entity.mark_approved(user_id)
            record_event(...)

    All validation (including password checks) belongs *before* the block.
    """
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.debug("Transaction rolled back", exc_info=True)
        raise


def json_body() -> dict:
    """Return the request JSON object, or {} when absent or not an object."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}
