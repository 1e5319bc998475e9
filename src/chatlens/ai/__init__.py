"""AI module for chatlens.

Provider adapters, the rate-limit retry policy, and the content-recovery
stages (repair, structural fallback, normalization, validation) that turn
raw model text into an analysis result.

The orchestrating ``ConversationAnalyzer`` lives in ``chatlens.ai.analyzer``
and is not re-exported here, since it depends on the template and storage
modules which themselves import this package.

Exports:
    - ProviderAdapter, get_adapter, PROVIDER_CATALOG: provider access
    - RetryController: bounded exponential backoff for rate limits
    - repair_json, extract_fallback_result, normalize_analysis,
      validate_analysis: content recovery stages
    - Exception hierarchy for typed error handling
"""

from chatlens.ai.client import (
    # Adapter contract
    ProviderAdapter,
    RedactingFilter,
    RetryController,
    classify_error,
    # Exceptions
    ChatlensError,
    ContentBlockedError,
    EmptyResponseError,
    InputError,
    ModelAccessError,
    ProviderAuthenticationError,
    ProviderConfigurationError,
    ProviderError,
    ProviderRateLimitError,
    ProviderServerError,
    ProviderUnavailableError,
    RetriesExhaustedError,
    UnsupportedProviderError,
)
from chatlens.ai.diagnostics import (
    CountingObserver,
    EventKind,
    LoggingObserver,
    PipelineEvent,
    PipelineObserver,
)
from chatlens.ai.fallback import extract_fallback_result
from chatlens.ai.normalize import normalize_analysis, normalize_score
from chatlens.ai.providers import PROVIDER_CATALOG, get_adapter, is_known_model
from chatlens.ai.repair import ParseAttempt, RepairOutcome, parse_attempt, repair_json
from chatlens.ai.validation import ValidationReport, build_safe_data, validate_analysis

__all__ = [
    # Adapter contract
    "ProviderAdapter",
    "RedactingFilter",
    "RetryController",
    "classify_error",
    "PROVIDER_CATALOG",
    "get_adapter",
    "is_known_model",
    # Content recovery
    "ParseAttempt",
    "RepairOutcome",
    "parse_attempt",
    "repair_json",
    "extract_fallback_result",
    "normalize_analysis",
    "normalize_score",
    "ValidationReport",
    "build_safe_data",
    "validate_analysis",
    # Diagnostics
    "CountingObserver",
    "EventKind",
    "LoggingObserver",
    "PipelineEvent",
    "PipelineObserver",
    # Exceptions
    "ChatlensError",
    "ContentBlockedError",
    "EmptyResponseError",
    "InputError",
    "ModelAccessError",
    "ProviderAuthenticationError",
    "ProviderConfigurationError",
    "ProviderError",
    "ProviderRateLimitError",
    "ProviderServerError",
    "ProviderUnavailableError",
    "RetriesExhaustedError",
    "UnsupportedProviderError",
]
