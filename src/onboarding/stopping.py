"""
When to stop asking about a category.

Stop if any of these holds, checked in order:
- confidence has reached the target
- the per-category question cap is hit
- learning has plateaued: the last 3 confidence deltas average (in absolute
  value) below the plateau threshold. Needs at least 3 deltas.
"""

from enum import Enum
from typing import Sequence

CONFIDENCE_TARGET = 0.85
MAX_QUESTIONS_PER_CATEGORY = 10
PLATEAU_THRESHOLD = 0.1
PLATEAU_WINDOW = 3


class StopReason(Enum):
    CONFIDENT = "confident"
    QUESTION_CAP = "question_cap"
    PLATEAU = "plateau"


def stop_reason(
    confidence: float,
    questions_asked_in_category: int,
    recent_deltas: Sequence[float] = (),
    *,
    confidence_target: float = CONFIDENCE_TARGET,
    max_questions: int = MAX_QUESTIONS_PER_CATEGORY,
    plateau_threshold: float = PLATEAU_THRESHOLD,
) -> StopReason | None:
    """First rule that says stop, or None to keep going."""
    if confidence >= confidence_target:
        return StopReason.CONFIDENT
    if questions_asked_in_category >= max_questions:
        return StopReason.QUESTION_CAP
    if len(recent_deltas) >= PLATEAU_WINDOW:
        window = recent_deltas[-PLATEAU_WINDOW:]
        if sum(abs(d) for d in window) / PLATEAU_WINDOW < plateau_threshold:
            return StopReason.PLATEAU
    return None


def should_stop(
    confidence: float,
    questions_asked_in_category: int,
    recent_deltas: Sequence[float] = (),
    **thresholds,
) -> bool:
    return stop_reason(confidence, questions_asked_in_category, recent_deltas, **thresholds) is not None
