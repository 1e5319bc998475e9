"""Tests for the structural extractor in chatlens.ai.fallback."""

from __future__ import annotations

import pytest

from chatlens.ai.fallback import (
    FALLBACK_INSIGHT_TITLES,
    FALLBACK_METRICS,
    FALLBACK_SUMMARIES,
    detect_script_language,
    extract_fallback_result,
    extract_rtl_prose,
)
from chatlens.core.models import AnalysisResult


class TestScriptDetection:
    """Tests for language detection from RTL script."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("مرحبا بكم", "ar"),
            ("שלום עולם", "he"),
            ("hello world", "en"),
            ("", "en"),
            ("مرحبا שלום عالم", "ar"),
        ],
    )
    def test_detect(self, text: str, expected: str) -> None:
        assert detect_script_language(text) == expected

    def test_prose_extraction_drops_latin_and_structure(self) -> None:
        text = '{"summary": المحادثة إيجابية جدا ]] {{ "x": "y"'
        assert extract_rtl_prose(text) == "المحادثة إيجابية جدا"

    def test_prose_runs_are_joined(self) -> None:
        assert extract_rtl_prose("Result: مرحبا بكم | في التحليل") == "مرحبا بكم في التحليل"


class TestExtractFallbackResult:
    """Tests for the minimal analysis built from unparseable text."""

    def test_arabic_prose(self) -> None:
        text = "هذه المحادثة ودية وإيجابية. الطرفان يتواصلان بوضوح."
        result = extract_fallback_result(text)

        assert result["detectedLanguage"] == "ar"
        assert result["overallSummary"] == text
        assert len(result["insights"]) == 1
        insight = result["insights"][0]
        assert insight["type"] == "text"
        assert insight["title"] == FALLBACK_INSIGHT_TITLES["ar"]
        assert insight["content"] == text
        assert insight["metadata"] == {"category": "general", "priority": 3, "confidence": 0.7}
        assert result["metrics"] == FALLBACK_METRICS
        assert result["templateData"] == {}

    def test_hebrew_prose(self) -> None:
        result = extract_fallback_result("השיחה הייתה חיובית")

        assert result["detectedLanguage"] == "he"
        assert result["insights"][0]["title"] == FALLBACK_INSIGHT_TITLES["he"]

    def test_no_rtl_uses_english_placeholder(self) -> None:
        result = extract_fallback_result("Sorry, I can't do that")

        assert result["detectedLanguage"] == "en"
        assert result["overallSummary"] == FALLBACK_SUMMARIES["en"]

    def test_metrics_are_a_copy(self) -> None:
        result = extract_fallback_result("")
        result["metrics"]["confidence"] = 1

        assert FALLBACK_METRICS["confidence"] == 70

    @pytest.mark.parametrize("text", ["", "garbage", "قال", "{{{ שלום", "\x00"])
    def test_result_always_validates(self, text: str) -> None:
        AnalysisResult.model_validate(extract_fallback_result(text))
