"""Scale normalization for analysis results.

Models mix fractional (0-1) and percentage (1-100) scales freely. Before
validation every score-like number is rewritten onto one canonical integer
scale of 1-100:

- ``0 <= x < 1``  -> ``round(x * 100)``, never below 1
- ``1 <= x <= 100`` -> ``round(x)``
- anything else (negative, above 100, NaN, bool, non-numeric) -> 50
"""

from __future__ import annotations

import copy
import logging
import math
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_SCORE: int = 50

# Sub-fields of insight content that carry a score
SCORE_FIELDS: frozenset[str] = frozenset(
    {
        "score",
        "level",
        "rating",
        "effectiveness",
        "progress",
        "clarity",
        "action",
        "intensity",
        "relevance",
    }
)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _to_float(value: int | float) -> float:
    # JSON integers have no size limit; anything past float range is out of scale
    try:
        return float(value)
    except OverflowError:
        return math.inf if value > 0 else -math.inf


def _as_number(value: Any) -> float | None:
    """Return ``value`` as a float if it is a real number or a numeric string."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _to_float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def normalize_score(value: Any) -> int:
    """Map a score from either source scale onto the 1-100 integer scale.

    Args:
        value: Raw score (int, float, or anything else).

    Returns:
        Integer in [1, 100].

    Example:
        >>> normalize_score(0.73)
        73
        >>> normalize_score(0)
        1
        >>> normalize_score(150)
        50
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_SCORE

    number = _to_float(value)
    if math.isnan(number):
        return DEFAULT_SCORE

    if 0 <= number < 1:
        return max(1, _round_half_up(number * 100))
    if 1 <= number <= 100:
        return _round_half_up(number)
    return DEFAULT_SCORE


def nesting_depth(value: Any) -> int:
    """Return how many container levels deep ``value`` goes (0 for scalars)."""
    deepest = 0
    stack = [(value, 1)]
    while stack:
        node, depth = stack.pop()
        if isinstance(node, dict):
            children = node.values()
        elif isinstance(node, list):
            children = node
        else:
            continue
        deepest = max(deepest, depth)
        stack.extend((child, depth + 1) for child in children)
    return deepest


def _normalize_named_fields(node: Any) -> Any:
    """Recursively normalize score-named fields inside insight content."""
    if isinstance(node, dict):
        for key, value in node.items():
            if key in SCORE_FIELDS:
                number = _as_number(value)
                if number is not None:
                    node[key] = normalize_score(number)
                    continue
            node[key] = _normalize_named_fields(value)
        return node
    if isinstance(node, list):
        return [_normalize_named_fields(item) for item in node]
    return node


def normalize_insight(insight: Any) -> Any:
    """Normalize one insight's content in place and return it."""
    if not isinstance(insight, dict):
        return insight

    content = insight.get("content")
    if insight.get("type") == "score":
        number = _as_number(content)
        if number is not None:
            insight["content"] = normalize_score(number)
            return insight

    if isinstance(content, (dict, list)):
        insight["content"] = _normalize_named_fields(content)
    return insight


def _normalize_entries(entries: Any, field_name: str) -> None:
    if not isinstance(entries, list):
        return
    for entry in entries:
        if isinstance(entry, dict) and field_name in entry:
            number = _as_number(entry[field_name])
            if number is not None:
                entry[field_name] = normalize_score(number)


def normalize_analysis(data: dict[str, Any]) -> dict[str, Any]:
    """Normalize every score-like number in a parsed analysis object.

    Covers insight content, numeric ``metrics`` values,
    ``emotionalArc[].intensity`` and ``topics[].relevance``. The input is
    not mutated.

    Args:
        data: Parsed analysis object (camelCase keys).

    Returns:
        A normalized deep copy.
    """
    result = copy.deepcopy(data)

    insights = result.get("insights")
    if isinstance(insights, list):
        result["insights"] = [normalize_insight(insight) for insight in insights]

    metrics = result.get("metrics")
    if isinstance(metrics, dict):
        for key, value in metrics.items():
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                metrics[key] = normalize_score(value)

    _normalize_entries(result.get("emotionalArc"), "intensity")
    _normalize_entries(result.get("topics"), "relevance")

    return result
