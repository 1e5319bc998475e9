"""Tests for schema validation with a guaranteed result."""

from __future__ import annotations

from typing import Any

from chatlens.ai.validation import (
    DEFAULT_LANGUAGE,
    DEFAULT_SUMMARY,
    build_safe_data,
    validate_analysis,
)


class TestBuildSafeData:
    """Tests for defaulting required fields."""

    def test_empty_object_gets_all_defaults(self) -> None:
        assert build_safe_data({}) == {
            "detectedLanguage": DEFAULT_LANGUAGE,
            "overallSummary": DEFAULT_SUMMARY,
            "insights": [],
            "metrics": {},
            "templateData": {},
        }

    def test_blank_and_mistyped_fields_are_replaced(self) -> None:
        safe = build_safe_data(
            {"detectedLanguage": "   ", "overallSummary": ["a"], "insights": "nope", "metrics": 3}
        )

        assert safe["detectedLanguage"] == DEFAULT_LANGUAGE
        assert safe["overallSummary"] == DEFAULT_SUMMARY
        assert safe["insights"] == []
        assert safe["metrics"] == {}

    def test_legacy_sections_kept_only_when_well_typed(self) -> None:
        safe = build_safe_data({"personality": "grumpy", "topics": [], "emotionalArc": {"x": 1}})

        assert "personality" not in safe
        assert "emotionalArc" not in safe
        assert safe["topics"] == []


class TestValidateAnalysis:
    """Tests for validate_analysis."""

    def test_clean_result(self, clean_analysis: dict[str, Any]) -> None:
        report = validate_analysis(clean_analysis)

        assert report.is_valid
        assert report.issues == []
        assert report.data == {
            "detectedLanguage": "en",
            "overallSummary": "Friendly exchange",
            "insights": [
                {
                    "type": "text",
                    "title": "Tone",
                    "content": "warm",
                    "metadata": {"priority": 3},
                }
            ],
            "metrics": {},
            "templateData": {},
        }

    def test_metadata_extras_preserved(self) -> None:
        data = {
            "detectedLanguage": "en",
            "overallSummary": "s",
            "insights": [
                {
                    "type": "metric",
                    "title": "Talk ratio",
                    "content": 60,
                    "metadata": {"unit": "%", "chartTypeHint": "bar"},
                }
            ],
        }
        report = validate_analysis(data)

        assert report.is_valid
        assert report.data["insights"][0]["metadata"] == {"unit": "%", "chartTypeHint": "bar"}

    def test_unknown_insight_type_falls_back_to_safe_data(self) -> None:
        data = {
            "detectedLanguage": "en",
            "overallSummary": "s",
            "insights": [{"type": "bogus", "title": "t", "content": "c"}],
        }
        report = validate_analysis(data)

        assert not report.is_valid
        assert report.issues
        assert report.data["detectedLanguage"] == "en"
        assert report.data["insights"] == [{"type": "bogus", "title": "t", "content": "c"}]

    def test_unnormalized_score_is_invalid(self) -> None:
        data = {
            "detectedLanguage": "en",
            "overallSummary": "s",
            "insights": [{"type": "score", "title": "t", "content": 150}],
        }
        assert not validate_analysis(data).is_valid

    def test_legacy_sections_validated(self) -> None:
        data = {
            "detectedLanguage": "en",
            "overallSummary": "s",
            "insights": [],
            "personality": {"traits": ["kind"], "summary": "nice"},
            "topics": [{"name": "work", "keywords": ["office"], "relevance": 80}],
        }
        report = validate_analysis(data)

        assert report.is_valid
        assert report.data["personality"] == {"traits": ["kind"], "summary": "nice"}
        assert report.data["topics"][0]["relevance"] == 80

    def test_non_dict_input(self) -> None:
        report = validate_analysis(["not", "an", "object"])  # type: ignore[arg-type]

        assert report.is_valid
        assert report.data["overallSummary"] == DEFAULT_SUMMARY
