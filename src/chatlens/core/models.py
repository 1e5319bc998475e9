"""Core data models for chatlens.

This module consolidates the data structures that flow through the analysis
pipeline into a single location.

Models follow a tiered flow:
1. REQUEST (ProviderId, AnalysisRequest)
2. RAW PROVIDER OUTPUT (RawProviderResponse)
3. ANALYSIS CONTRACT (Insight, InsightMetadata, AnalysisResult + legacy sections)
4. OUTBOUND ENVELOPE (AnalysisOutcome)

The AnalysisResult contract is camelCase on the wire (``detectedLanguage``,
``overallSummary``, ``templateData`` ...). Models accept either the alias or
the Python field name.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    JsonValue,
    SecretStr,
    computed_field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

# Substitution marker for the conversation text inside analysis prompts
CHAT_CONTENT_MARKER: str = "${chatContent}"

_FENCE_PATTERN = re.compile(r"^\s*```[\w-]*\s*\n?[\s\S]*?```\s*$")


# =============================================================================
# Enums
# =============================================================================


class ProviderId(str, Enum):
    """Supported text-generation backends.

    Attributes:
        GOOGLE: Completion-style Gemini backend (google-generativeai).
        OPENAI: Chat backend with JSON-object response format.
        ANTHROPIC: Messages-style backend.
        GOOGLE_GENAI: Generate-content backend (google-genai client).
        GOOGLE_VERTEX_AI: Raw REST predict endpoint with bearer auth.
    """

    GOOGLE = "google"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE_GENAI = "google-genai"
    GOOGLE_VERTEX_AI = "google-vertex-ai"


class InsightType(str, Enum):
    """Closed set of insight kinds used for display."""

    TEXT = "text"
    LIST = "list"
    SCORE = "score"
    TIMELINE = "timeline"
    METRIC = "metric"
    CHART = "chart"
    TABLE = "table"
    CATEGORY = "category"


# =============================================================================
# Request / Raw Response
# =============================================================================


class AnalysisRequest(BaseModel):
    """A single analysis invocation.

    Immutable once constructed; created per invocation and discarded after
    the pipeline completes.

    Attributes:
        conversation: Opaque conversation text.
        provider: Backend family to call.
        model: Model identifier for that backend.
        api_key: Credential, never logged.
        prompt_template: Prompt containing the ${chatContent} marker.
        template_id: Identifier the template was resolved from.
        user_id: Optional caller identity (enables persistence).
        file_name: Name of the uploaded conversation file, if any.
    """

    model_config = ConfigDict(frozen=True)

    conversation: str
    provider: ProviderId
    model: str
    api_key: SecretStr
    prompt_template: str
    template_id: str | None = None
    user_id: str | None = None
    file_name: str | None = None

    def render_prompt(self) -> str:
        """Substitute the conversation into the prompt template.

        Every occurrence of the marker is replaced; no other ``$`` sequences
        are interpreted.

        Returns:
            The prompt sent to the provider.
        """
        return self.prompt_template.replace(CHAT_CONTENT_MARKER, self.conversation)


class RawProviderResponse(BaseModel):
    """Unprocessed text returned by a provider adapter.

    Attributes:
        provider: Backend that produced the text.
        model: Model that produced the text.
        text: Generated text (may be empty, may be fenced).
        latency_ms: Time spent in the provider call.
        attempts: Number of calls made (more than 1 after rate-limit retries).
    """

    provider: ProviderId
    model: str
    text: str = ""
    latency_ms: float | None = None
    attempts: int = 1

    @computed_field  # type: ignore[prop-decorator]
    @property
    def fenced(self) -> bool:
        """Whether the text is wrapped in markdown code fences."""
        return bool(_FENCE_PATTERN.match(self.text))


# =============================================================================
# Analysis Contract
# =============================================================================


class _CamelModel(BaseModel):
    """Base for wire models serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class InsightMetadata(_CamelModel):
    """Shared metadata block of an insight.

    Unknown keys (``unit``, ``chartTypeHint`` ...) are preserved.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    category: str | None = None
    priority: int | None = Field(default=None, ge=1, le=5)
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    timestamp: str | None = None
    tags: list[str] | None = None
    color: str | None = None
    icon: str | None = None


class Insight(_CamelModel):
    """One discrete, taggable unit of analysis output.

    The ``type`` tag selects how ``content`` is interpreted by consumers; the
    content itself stays an opaque JSON value.
    """

    type: InsightType
    title: str
    content: JsonValue = None
    metadata: InsightMetadata = Field(default_factory=InsightMetadata)

    @model_validator(mode="after")
    def check_score_range(self) -> "Insight":
        """Numeric score content must already be on the 1-100 integer scale."""
        if self.type == InsightType.SCORE and isinstance(self.content, (int, float)):
            if isinstance(self.content, bool):
                raise ValueError("score content must be numeric, not boolean")
            if not 1 <= self.content <= 100 or self.content != int(self.content):
                raise ValueError(f"score content {self.content!r} is not an integer in [1, 100]")
        return self


class Personality(_CamelModel):
    """Legacy personality section."""

    traits: list[str]
    summary: str


class EmotionalArcEntry(_CamelModel):
    """Legacy emotional arc point."""

    timestamp: str
    emotion: str
    intensity: float = Field(ge=0, le=100)
    context: str


class TopicEntry(_CamelModel):
    """Legacy topic entry."""

    name: str
    keywords: list[str]
    relevance: float = Field(ge=0, le=100)


class CommunicationPattern(_CamelModel):
    """Legacy communication pattern entry."""

    pattern: str
    examples: list[str]
    impact: str


class AnalysisResult(_CamelModel):
    """The analysis contract returned to callers.

    Attributes:
        detected_language: Language tag or name detected in the conversation.
        overall_summary: Overarching summary of the conversation's dynamics.
        insights: Ordered insights, possibly empty.
        metrics: Free-form metric map.
        template_data: Template-specific extra data.
        personality: Legacy personality section.
        emotional_arc: Legacy emotional arc entries.
        topics: Legacy topic entries.
        communication_patterns: Legacy communication pattern entries.
    """

    detected_language: str = Field(min_length=1)
    overall_summary: str = Field(min_length=1)
    insights: list[Insight]
    metrics: dict[str, JsonValue] | None = None
    template_data: dict[str, JsonValue] | None = None

    personality: Personality | None = None
    emotional_arc: list[EmotionalArcEntry] | None = None
    topics: list[TopicEntry] | None = None
    communication_patterns: list[CommunicationPattern] | None = None

    @field_validator("detected_language", "overall_summary")
    @classmethod
    def reject_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v

    def to_wire(self) -> dict[str, Any]:
        """Serialize with camelCase keys, omitting unset optional sections."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# =============================================================================
# Outbound Envelope
# =============================================================================


class AnalysisOutcome(BaseModel):
    """Success or failure envelope returned to the caller.

    Attributes:
        success: Whether an analysis was produced.
        data: The AnalysisResult as a camelCase JSON object.
        analysis_id: Identifier of the persisted record, if saved.
        error: Human-readable failure message.
        validated: Whether ``data`` passed strict schema validation.
        recovery: Which repair stage (or the extractor) produced ``data``.
        duration_ms: Wall time of the invocation.
    """

    success: bool
    data: dict[str, Any] | None = None
    analysis_id: str | None = None
    error: str | None = None
    validated: bool = False
    recovery: str | None = None
    duration_ms: float | None = None

    @classmethod
    def ok(
        cls,
        data: dict[str, Any],
        *,
        analysis_id: str | None = None,
        validated: bool = True,
        recovery: str | None = None,
        duration_ms: float | None = None,
    ) -> "AnalysisOutcome":
        return cls(
            success=True,
            data=data,
            analysis_id=analysis_id,
            validated=validated,
            recovery=recovery,
            duration_ms=duration_ms,
        )

    @classmethod
    def fail(cls, message: str, *, duration_ms: float | None = None) -> "AnalysisOutcome":
        return cls(success=False, error=message, duration_ms=duration_ms)
