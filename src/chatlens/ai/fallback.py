"""Structural extractor used when no repair stage yields a JSON object.

Builds a minimal analysis from whatever prose the model returned instead of
failing the request. Right-to-left script (Arabic, Hebrew) is the usual
reason a response breaks JSON, so runs of that script are lifted out and
become the summary:

- ``detectedLanguage``: "ar" or "he" from the dominant script, else "en"
- ``overallSummary``: the joined prose, or a localized placeholder
- exactly one ``text`` insight carrying the same prose
- fixed ``metrics`` confidence/completeness and empty ``templateData``

Example:
    >>> result = extract_fallback_result("تحليل المحادثة إيجابي")
    >>> result["detectedLanguage"]
    'ar'
"""

from __future__ import annotations

import logging
import re
from typing import Any

from chatlens.ai.repair import ARABIC_CHARS, HEBREW_CHARS, RTL_CHARS

logger = logging.getLogger(__name__)


# =============================================================================
# Placeholder Constants
# =============================================================================


FALLBACK_INSIGHT_TITLES: dict[str, str] = {
    "ar": "تحليل عام",
    "he": "ניתוח כללי",
    "en": "General analysis",
}

FALLBACK_SUMMARIES: dict[str, str] = {
    "ar": "تم إكمال التحليل بنجاح",
    "he": "הניתוח הושלם בהצלחה",
    "en": "The analysis completed, but the response could not be fully structured.",
}

FALLBACK_METRICS: dict[str, int] = {"confidence": 70, "completeness": 60}

FALLBACK_PRIORITY: int = 3
FALLBACK_CONFIDENCE: float = 0.7

# Script runs with interleaved whitespace and punctuation
_RTL_RUN = re.compile(f"[{RTL_CHARS}\\s.,;:!?()\\-،؛؟«»]+")
_ARABIC_RE = re.compile(f"[{ARABIC_CHARS}]")
_HEBREW_RE = re.compile(f"[{HEBREW_CHARS}]")
_WHITESPACE = re.compile(r"\s+")
_LEADING_PUNCTUATION = " .,;:!?)-،؛؟»"


def extract_rtl_prose(text: str) -> str:
    """Join every right-to-left script run in ``text`` into one string.

    Runs consisting only of whitespace or punctuation are dropped, and
    internal whitespace is collapsed.
    """
    runs = []
    for match in _RTL_RUN.finditer(text or ""):
        run = match.group(0)
        if _ARABIC_RE.search(run) or _HEBREW_RE.search(run):
            runs.append(_WHITESPACE.sub(" ", run).strip().lstrip(_LEADING_PUNCTUATION))
    return " ".join(runs).strip()


def detect_script_language(text: str) -> str:
    """Return "ar", "he" or "en" from the dominant right-to-left script."""
    arabic = len(_ARABIC_RE.findall(text or ""))
    hebrew = len(_HEBREW_RE.findall(text or ""))
    if arabic == 0 and hebrew == 0:
        return "en"
    return "ar" if arabic >= hebrew else "he"


def extract_fallback_result(raw_text: str) -> dict[str, Any]:
    """Build a minimal, always-valid analysis object from raw model text.

    Args:
        raw_text: The unparseable provider output.

    Returns:
        A camelCase analysis dict. Never raises.
    """
    prose = extract_rtl_prose(raw_text)
    language = detect_script_language(prose)
    summary = prose or FALLBACK_SUMMARIES[language]

    logger.warning(
        f"Using structural fallback ({language}, {len(prose)} chars of extracted prose)"
    )

    return {
        "detectedLanguage": language,
        "overallSummary": summary,
        "insights": [
            {
                "type": "text",
                "title": FALLBACK_INSIGHT_TITLES[language],
                "content": summary,
                "metadata": {
                    "category": "general",
                    "priority": FALLBACK_PRIORITY,
                    "confidence": FALLBACK_CONFIDENCE,
                },
            }
        ],
        "metrics": dict(FALLBACK_METRICS),
        "templateData": {},
    }
