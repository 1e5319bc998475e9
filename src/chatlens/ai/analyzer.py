"""Conversation analyzer: the end-to-end analysis pipeline.

Turns one conversation into an analysis result:

1. Validate caller input and resolve the template
2. Call the provider (rate-limited Google calls are retried with backoff)
3. Recover a JSON object from the raw text (repair cascade, then the
   structural extractor)
4. Normalize score scales
5. Validate, degrading to the safe object instead of failing
6. Persist the result when a user id is present (best-effort)

Only input problems and provider failures produce a failure envelope.
Malformed model output never does.

Example:
    >>> from chatlens.ai.analyzer import ConversationAnalyzer
    >>>
    >>> analyzer = ConversationAnalyzer()
    >>> outcome = analyzer.analyze_chat(
    ...     conversation=text,
    ...     provider="openai",
    ...     model="gpt-4o-mini",
    ...     api_key=key,
    ...     template_id="communication-analysis",
    ... )
    >>> if outcome.success:
    ...     print(outcome.data["overallSummary"])
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any, Callable, Mapping

from chatlens.ai.client import (
    ChatlensError,
    ContentBlockedError,
    InputError,
    ModelAccessError,
    ProviderAdapter,
    ProviderAuthenticationError,
    ProviderConfigurationError,
    ProviderError,
    ProviderRateLimitError,
    RedactingFilter,
    RetriesExhaustedError,
    RetryController,
    classify_error,
)
from chatlens.ai.diagnostics import EventKind, LoggingObserver, PipelineEvent, PipelineObserver
from chatlens.ai.fallback import extract_fallback_result
from chatlens.ai.normalize import nesting_depth, normalize_analysis
from chatlens.ai.providers import get_adapter, is_known_model, resolve_provider
from chatlens.ai.repair import repair_json
from chatlens.ai.validation import validate_analysis
from chatlens.config import AppConfig, get_config
from chatlens.core.models import AnalysisOutcome, AnalysisRequest, ProviderId, RawProviderResponse
from chatlens.storage import AnalysisRecord, AnalysisStore, JsonFileAnalysisStore
from chatlens.templates import TemplateStore
from chatlens.utils.logging import LogContext

logger = logging.getLogger(__name__)
logger.addFilter(RedactingFilter())


# =============================================================================
# User-facing Messages
# =============================================================================


MISSING_SELECTION_MESSAGE = (
    "Missing model configuration, API key, or analysis template. Please check your settings."
)
EMPTY_FILE_MESSAGE = "The file appears to be empty."
NO_FILE_MESSAGE = "No file uploaded."
UNREADABLE_FILE_MESSAGE = "The file could not be read as UTF-8 text."
INVALID_MODEL_MESSAGE = "Invalid model configuration. Please check your settings."

AUTH_MESSAGE = "Invalid API key. Please check your API key and try again."
RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please wait a moment and try again."
MODEL_ACCESS_MESSAGE = (
    "You do not have access to this model. Please check your API key permissions."
)
SAFETY_MESSAGE = (
    "The content was flagged by safety filters. Please try with different content."
)
GENERIC_MESSAGE = "Failed to analyze conversation. Please check your settings and try again."

EXTRACTOR_RECOVERY = "extractor"

# Deeper documents go to the extractor instead of the recursive stages
MAX_NESTING_DEPTH = 64


def describe_error(exc: BaseException) -> str:
    """Map any failure to the message shown to the caller.

    Input errors and provider configuration errors carry their own
    actionable message. Everything else maps to a fixed message per
    category, so provider error text never leaks to the caller.
    """
    if isinstance(exc, (InputError, ProviderConfigurationError)):
        return exc.message
    if isinstance(exc, Exception) and not isinstance(exc, ChatlensError):
        exc = classify_error(exc, model="")

    if isinstance(exc, ProviderAuthenticationError):
        return AUTH_MESSAGE
    if isinstance(exc, (ProviderRateLimitError, RetriesExhaustedError)):
        return RATE_LIMIT_MESSAGE
    if isinstance(exc, ModelAccessError):
        return MODEL_ACCESS_MESSAGE
    if isinstance(exc, ContentBlockedError):
        return SAFETY_MESSAGE
    return GENERIC_MESSAGE


class ConversationAnalyzer:
    """Runs the analysis pipeline for one or many conversations.

    Holds no per-invocation state, so one instance may serve concurrent
    analyses. Collaborators are injectable for testing.

    Attributes:
        config: Application configuration.
        templates: Template store used to resolve template ids.
        store: Persistence layer for completed analyses.
        observer: Receives diagnostic events.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        template_store: TemplateStore | None = None,
        store: AnalysisStore | None = None,
        observer: PipelineObserver | None = None,
        adapters: Mapping[ProviderId | str, ProviderAdapter] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config or get_config()
        self.templates = template_store or TemplateStore.from_config(self.config)
        self.store = store or JsonFileAnalysisStore.from_config(self.config)
        self.observer = observer or LoggingObserver()
        self._adapters = {resolve_provider(k): v for k, v in (adapters or {}).items()}
        self._sleep = sleep

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    def analyze_chat(
        self,
        conversation: str | None,
        provider: str | None,
        model: str | None,
        api_key: str | None,
        template_id: str | None,
        user_id: str | None = None,
        file_name: str | None = None,
    ) -> AnalysisOutcome:
        """Analyze a conversation text.

        Args:
            conversation: The conversation to analyze.
            provider: Provider identifier (e.g. "google", "openai").
            model: Model identifier for that provider.
            api_key: Provider credential.
            template_id: Analysis template id.
            user_id: Optional caller identity; enables persistence.
            file_name: Name of the source file, recorded with the analysis.

        Returns:
            AnalysisOutcome; failures carry a user-facing message.
        """
        start_time = time.time()
        try:
            request = self._build_request(
                conversation, provider, model, api_key, template_id, user_id, file_name
            )
        except InputError as e:
            logger.warning(f"Rejected analysis request: {e.message}")
            return AnalysisOutcome.fail(e.message, duration_ms=(time.time() - start_time) * 1000)

        return self.run(request, _started=start_time)

    def analyze_file(
        self,
        path: Path | str | None,
        provider: str | None,
        model: str | None,
        api_key: str | None,
        template_id: str | None,
        user_id: str | None = None,
    ) -> AnalysisOutcome:
        """Analyze a conversation stored in a UTF-8 text file."""
        if path is None or not Path(path).is_file():
            return AnalysisOutcome.fail(NO_FILE_MESSAGE)

        file_path = Path(path)
        try:
            conversation = file_path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            return AnalysisOutcome.fail(UNREADABLE_FILE_MESSAGE)
        except OSError:
            return AnalysisOutcome.fail(NO_FILE_MESSAGE)

        return self.analyze_chat(
            conversation,
            provider,
            model,
            api_key,
            template_id,
            user_id=user_id,
            file_name=file_path.name,
        )

    def run(self, request: AnalysisRequest, _started: float | None = None) -> AnalysisOutcome:
        """Execute the pipeline for a validated request.

        Args:
            request: The analysis request.

        Returns:
            Success envelope with the analysis, or a failure envelope for
            provider errors.
        """
        start_time = _started if _started is not None else time.time()
        provider = request.provider.value

        try:
            with LogContext(f"Analysis via {provider}/{request.model}", logger=logger):
                response = self._invoke(request)
        except ProviderError as e:
            self.observer.record(
                PipelineEvent(
                    EventKind.PROVIDER_FAILURE,
                    provider=provider,
                    model=request.model,
                    detail=type(e).__name__,
                    data={"status_code": e.status_code},
                )
            )
            return AnalysisOutcome.fail(
                describe_error(e), duration_ms=(time.time() - start_time) * 1000
            )

        data, recovery, validated = self.process_response(
            response.text, provider=provider, model=request.model
        )
        duration_ms = (time.time() - start_time) * 1000
        analysis_id = self._persist(request, data, validated, duration_ms)

        return AnalysisOutcome.ok(
            data,
            analysis_id=analysis_id,
            validated=validated,
            recovery=recovery,
            duration_ms=duration_ms,
        )

    def process_response(
        self,
        raw_text: str,
        provider: str | None = None,
        model: str | None = None,
    ) -> tuple[dict[str, Any], str, bool]:
        """Recover, normalize and validate an analysis from raw model text.

        Never raises for any string input.

        Args:
            raw_text: Generated text as returned by the provider.
            provider: Provider name, for diagnostics.
            model: Model name, for diagnostics.

        Returns:
            Tuple of (analysis dict, recovery stage, passed strict validation).
        """
        raw_text = raw_text or ""
        outcome = repair_json(raw_text)
        report = None

        if outcome.success and isinstance(outcome.value, dict):
            recovery = outcome.stage
            if outcome.stage != "direct":
                self.observer.record(
                    PipelineEvent(
                        EventKind.REPAIR_STAGE,
                        provider=provider,
                        model=model,
                        detail=outcome.stage,
                        data={"failed_attempts": len(outcome.errors)},
                    )
                )
            depth = nesting_depth(outcome.value)
            if depth > MAX_NESTING_DEPTH:
                logger.warning(f"Parsed response is nested {depth} levels deep; using extractor")
            else:
                report = validate_analysis(normalize_analysis(outcome.value))
        elif outcome.success:
            logger.warning(
                f"Response parsed to {type(outcome.value).__name__}, not an object; using extractor"
            )

        if report is None:
            parsed = extract_fallback_result(raw_text)
            recovery = EXTRACTOR_RECOVERY
            self.observer.record(
                PipelineEvent(
                    EventKind.STRUCTURAL_FALLBACK,
                    provider=provider,
                    model=model,
                    detail=parsed["detectedLanguage"],
                    data={"response_chars": len(raw_text), "errors": list(outcome.errors)},
                )
            )
            report = validate_analysis(normalize_analysis(parsed))

        if not report.is_valid:
            self.observer.record(
                PipelineEvent(
                    EventKind.VALIDATION_FALLBACK,
                    provider=provider,
                    model=model,
                    detail=f"{len(report.issues)} issues",
                    data={"issues": report.issues[:10]},
                )
            )

        return report.data, recovery, report.is_valid

    def describe_error(self, exc: BaseException) -> str:
        """User-facing message for ``exc`` (see module-level ``describe_error``)."""
        return describe_error(exc)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _build_request(
        self,
        conversation: str | None,
        provider: str | None,
        model: str | None,
        api_key: str | None,
        template_id: str | None,
        user_id: str | None,
        file_name: str | None,
    ) -> AnalysisRequest:
        if not model or not provider or not api_key or not template_id:
            raise InputError(MISSING_SELECTION_MESSAGE)
        if conversation is None or not conversation.strip():
            raise InputError(EMPTY_FILE_MESSAGE)

        provider_id = resolve_provider(provider)
        if not is_known_model(provider_id, model):
            if self.config.ai.strict_models:
                raise InputError(INVALID_MODEL_MESSAGE)
            logger.warning(f"Model '{model}' is not in the {provider_id.value} catalog; trying anyway")

        template = self.templates.get(template_id, user_id)

        return AnalysisRequest(
            conversation=conversation,
            provider=provider_id,
            model=model,
            api_key=api_key,
            prompt_template=template.analysis_prompt,
            template_id=template.id,
            user_id=user_id,
            file_name=file_name,
        )

    def _adapter_for(self, provider_id: ProviderId) -> ProviderAdapter:
        adapter = self._adapters.get(provider_id)
        if adapter is not None:
            return adapter
        return get_adapter(provider_id, self.config)

    def _invoke(self, request: AnalysisRequest) -> RawProviderResponse:
        adapter = self._adapter_for(request.provider)
        if not adapter.retry_on_rate_limit:
            return adapter.invoke(request)

        attempts = 0

        def attempt() -> RawProviderResponse:
            nonlocal attempts
            attempts += 1
            return adapter.invoke(request)

        def on_retry(attempt_number: int, delay: float, error: ProviderRateLimitError) -> None:
            self.observer.record(
                PipelineEvent(
                    EventKind.PROVIDER_RETRY,
                    provider=request.provider.value,
                    model=request.model,
                    detail=f"attempt {attempt_number}",
                    data={"attempt": attempt_number, "delay_seconds": delay},
                )
            )

        ai = self.config.ai
        retry = RetryController(
            max_attempts=ai.max_attempts,
            backoff_base=ai.backoff_base,
            jitter=ai.retry_jitter,
            sleep=self._sleep,
            on_retry=on_retry,
        )
        response = retry.call(attempt)
        return response.model_copy(update={"attempts": attempts})

    def _persist(
        self,
        request: AnalysisRequest,
        data: dict[str, Any],
        validated: bool,
        duration_ms: float,
    ) -> str | None:
        """Save the analysis when a user id is present. Never raises."""
        if not request.user_id:
            return None

        record = AnalysisRecord(
            user_id=request.user_id,
            template_id=request.template_id,
            model=request.model,
            provider=request.provider.value,
            file_name=request.file_name,
            analysis_result=data,
            validated=validated,
            duration_ms=duration_ms,
        )
        try:
            return self.store.save(record)
        except Exception as e:
            logger.error(f"Failed to save analysis: {type(e).__name__}")
            self.observer.record(
                PipelineEvent(
                    EventKind.PERSISTENCE_FAILURE,
                    provider=request.provider.value,
                    model=request.model,
                    detail=type(e).__name__,
                )
            )
            return None
