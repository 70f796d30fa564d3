"""
Risk Score Calculator.

Pure, deterministic helpers used by the lifecycle service whenever a risk's
severity or probabilities are part of a create/update payload:

    p_total    = max(P1, P2)
    risk_score = f"{severity}{p_total}"

All inputs are integers on the 1..5 scale; anything else is rejected with a
ValidationError before the calculation runs. The free-text calculation
method is documentation only and does not change the formula.
"""

import logging

from tracehub.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

SCALE_MIN = 1
SCALE_MAX = 5


def validate_scale(name: str, value) -> int:
    """Coerce *value* to int and ensure it lies on the 1..5 scale."""
    if isinstance(value, bool):
        raise ValidationError(
            f"{name} must be an integer between {SCALE_MIN} and {SCALE_MAX}",
            details={name: "invalid"},
        )
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(
            f"{name} must be an integer between {SCALE_MIN} and {SCALE_MAX}",
            details={name: "invalid"},
        ) from None
    if number != value and not isinstance(value, str):
        # 2.5 → reject rather than silently truncate
        raise ValidationError(
            f"{name} must be an integer between {SCALE_MIN} and {SCALE_MAX}",
            details={name: "invalid"},
        )
    if not SCALE_MIN <= number <= SCALE_MAX:
        raise ValidationError(
            f"{name} must be between {SCALE_MIN} and {SCALE_MAX}",
            details={name: "out_of_range"},
        )
    return number


def compute_p_total(p1, p2) -> int:
    """P_total = max(P1, P2)."""
    p1 = validate_scale("probability_p1", p1)
    p2 = validate_scale("probability_p2", p2)
    p_total = max(p1, p2)
    logger.debug("p_total computed: P1=%s P2=%s -> %s", p1, p2, p_total)
    return p_total


def compute_risk_score(severity, p_total) -> str:
    """Display score: severity followed by P_total, e.g. (4, 3) → "43"."""
    severity = validate_scale("severity", severity)
    p_total = validate_scale("p_total", p_total)
    return f"{severity}{p_total}"
