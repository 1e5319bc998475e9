"""Core data models for chatlens."""

from chatlens.core.models import (
    CHAT_CONTENT_MARKER,
    AnalysisOutcome,
    AnalysisRequest,
    AnalysisResult,
    CommunicationPattern,
    EmotionalArcEntry,
    Insight,
    InsightMetadata,
    InsightType,
    Personality,
    ProviderId,
    RawProviderResponse,
    TopicEntry,
)

__all__ = [
    "CHAT_CONTENT_MARKER",
    "AnalysisOutcome",
    "AnalysisRequest",
    "AnalysisResult",
    "CommunicationPattern",
    "EmotionalArcEntry",
    "Insight",
    "InsightMetadata",
    "InsightType",
    "Personality",
    "ProviderId",
    "RawProviderResponse",
    "TopicEntry",
]
