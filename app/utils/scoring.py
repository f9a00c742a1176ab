"""
Compliance score and grade computation.

score = round_half_up(100 * passed / total), where a control passes when its
effective status (correction if any, else the scanned status) is PASS. WARN and
FAIL both count in the denominator only. No controls scores 0 / F.
"""
from typing import Iterable, Mapping, NamedTuple, Optional, Tuple

from app.models.control_correction import ControlStatus

# Inclusive lower bounds, checked in order
GRADE_THRESHOLDS: Tuple[Tuple[int, str], ...] = (
    (90, "A"),
    (80, "B"),
    (70, "C"),
    (60, "D"),
)
FAILING_GRADE = "F"


class ScoreResult(NamedTuple):
    """Score (0-100) and letter grade."""
    score: int
    grade: str


def grade_for(score: int) -> str:
    """Letter grade for a 0-100 score."""
    for lower_bound, grade in GRADE_THRESHOLDS:
        if score >= lower_bound:
            return grade
    return FAILING_GRADE


def percentage(passed: int, total: int) -> int:
    """
    100 * passed / total rounded half up, in integer arithmetic.

    floor(100p/t + 1/2) == (200p + t) // 2t, which avoids float rounding
    surprises (Python's round() is half-to-even).
    """
    if total <= 0:
        return 0
    return (200 * passed + total) // (2 * total)


def effective_status(status: str, corrected_status: Optional[str] = None) -> str:
    """Correction wins over the scanned status."""
    return (corrected_status or status).upper()


def score_statuses(statuses: Iterable[str]) -> ScoreResult:
    """Score a flat list of effective statuses."""
    total = 0
    passed = 0
    for status in statuses:
        total += 1
        if status.upper() == ControlStatus.PASS.value:
            passed += 1
    value = percentage(passed, total)
    return ScoreResult(score=value, grade=grade_for(value))


def score_controls(controls: Iterable, corrections: Optional[Mapping[str, str]] = None) -> ScoreResult:
    """
    Score parsed controls with an optional overlay of corrected statuses.

    Args:
        controls: Objects exposing ``id`` and ``status`` (see ParsedControl)
        corrections: control id -> corrected status

    Returns:
        ScoreResult; identical inputs always give identical results.
    """
    corrections = corrections or {}
    return score_statuses(
        effective_status(control.status, corrections.get(control.id))
        for control in controls
    )


def mean_score(scores: Iterable[Optional[int]]) -> Optional[int]:
    """
    Arithmetic mean of the non-null scores, rounded half up; None when there are none.

    Machines without a score yet are excluded rather than counted as zero.
    """
    values = [s for s in scores if s is not None]
    if not values:
        return None
    return (2 * sum(values) + len(values)) // (2 * len(values))
