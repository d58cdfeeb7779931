from __future__ import annotations

import math
from typing import Dict, List, Sequence

from .constants import CUSTOM_DURATION, WORDS_PER_MINUTE
from .models import Template


OPENING_WEIGHT = 0.15
CLOSING_WEIGHT = 0.10
TWO_FIELD_WEIGHTS = (0.6, 0.4)


def _to_float(value, default: float = 0.0) -> float:
    try:
        parsed = float(str(value).strip())
    except (TypeError, ValueError):
        return default
    if math.isnan(parsed) or math.isinf(parsed):
        return default
    return parsed


def round_half_up(value: float) -> int:
    # Suggestions are never negative, so floor(x + 0.5) rounds .5 upwards.
    return int(math.floor(value + 0.5))


def parse_duration(selection: str, custom: str = "") -> float:
    if str(selection).strip() == CUSTOM_DURATION:
        seconds = _to_float(custom)
    else:
        seconds = _to_float(selection)
    return max(0.0, seconds)


def total_words_for(seconds: float) -> int:
    return round_half_up((seconds / 60.0) * WORDS_PER_MINUTE)


def compute_weights(field_count: int) -> List[float]:
    if field_count <= 0:
        return []
    if field_count == 1:
        return [1.0]
    if field_count == 2:
        return list(TWO_FIELD_WEIGHTS)
    middle_weight = (1.0 - OPENING_WEIGHT - CLOSING_WEIGHT) / (field_count - 2)
    return [OPENING_WEIGHT] + [middle_weight] * (field_count - 2) + [CLOSING_WEIGHT]


def allocate(labels: Sequence[str], seconds: float) -> Dict[str, int]:
    """Split the spoken word total across ``labels``.

    Each field is rounded on its own; the suggestions may miss the total by a
    few words and are not renormalised.
    """
    if not labels or not seconds or seconds <= 0:
        return {}
    total_words = total_words_for(seconds)
    weights = compute_weights(len(labels))
    return {label: round_half_up(total_words * weight) for label, weight in zip(labels, weights)}


def compute_budget(template: Template, seconds: float) -> Dict[str, int]:
    return allocate(template.labels(), seconds)
