"""Schema validation with a guaranteed result.

``validate_analysis`` never raises for content problems. Required top-level
fields are defaulted first (the "safe" object); if strict validation of that
object still fails, the safe object itself is returned and the issues are
recorded instead of propagated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from chatlens.core.models import AnalysisResult

logger = logging.getLogger(__name__)

DEFAULT_LANGUAGE: str = "en"
DEFAULT_SUMMARY: str = "Analysis completed successfully."

_LEGACY_LIST_FIELDS = ("emotionalArc", "topics", "communicationPatterns")


@dataclass
class ValidationReport:
    """Outcome of validating one analysis object.

    Attributes:
        data: Validated model dump, or the safe object when invalid.
        is_valid: Whether strict validation passed.
        issues: Human-readable validation issues (empty when valid).
    """

    data: dict[str, Any]
    is_valid: bool
    issues: list[str] = field(default_factory=list)


def _non_blank(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def build_safe_data(data: dict[str, Any]) -> dict[str, Any]:
    """Fill required fields with defaults and drop ill-typed legacy sections.

    Args:
        data: Normalized analysis object (camelCase keys).

    Returns:
        New dict with ``detectedLanguage``, ``overallSummary``, ``insights``,
        ``metrics`` and ``templateData`` always present.
    """
    safe: dict[str, Any] = {
        "detectedLanguage": data.get("detectedLanguage")
        if _non_blank(data.get("detectedLanguage"))
        else DEFAULT_LANGUAGE,
        "overallSummary": data.get("overallSummary")
        if _non_blank(data.get("overallSummary"))
        else DEFAULT_SUMMARY,
        "insights": data["insights"] if isinstance(data.get("insights"), list) else [],
        "metrics": data["metrics"] if isinstance(data.get("metrics"), dict) else {},
        "templateData": data["templateData"] if isinstance(data.get("templateData"), dict) else {},
    }

    if isinstance(data.get("personality"), dict):
        safe["personality"] = data["personality"]
    for key in _LEGACY_LIST_FIELDS:
        if isinstance(data.get(key), list):
            safe[key] = data[key]

    return safe


def _format_issues(error: ValidationError) -> list[str]:
    issues = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        issues.append(f"{location or '<root>'}: {item.get('msg', 'invalid')}")
    return issues


def validate_analysis(data: dict[str, Any]) -> ValidationReport:
    """Validate an analysis object, degrading to the safe object on failure.

    Args:
        data: Normalized analysis object.

    Returns:
        ValidationReport; ``data`` is always a usable analysis dict.
    """
    safe = build_safe_data(data if isinstance(data, dict) else {})

    try:
        result = AnalysisResult.model_validate(safe)
    except ValidationError as e:
        issues = _format_issues(e)
        logger.warning(f"Analysis failed schema validation ({len(issues)} issues); using safe data")
        for issue in issues[:10]:
            logger.debug(f"Validation issue: {issue}")
        return ValidationReport(data=safe, is_valid=False, issues=issues)

    return ValidationReport(data=result.to_wire(), is_valid=True)
