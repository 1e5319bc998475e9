"""Provider call contract, error taxonomy, and rate-limit retry for chatlens.

Every backend family is reached through a ``ProviderAdapter`` subclass (see
``chatlens.ai.providers``). This module defines what those adapters share:

- A typed exception hierarchy for predictable error handling
- The ``ProviderAdapter`` call contract (``invoke(request) -> RawProviderResponse``)
- The ``RetryController`` that retries rate-limited calls with exponential backoff
- Secure log redaction to prevent accidental credential exposure

Example:
    >>> from chatlens.ai.client import RetryController, ProviderRateLimitError
    >>>
    >>> retry = RetryController(max_attempts=3, backoff_base=2.0)
    >>> response = retry.call(adapter.invoke, request)

Security Rules:
- NEVER log API keys (ever, in any form)
- NEVER log full prompts (they contain the user's conversation)
- NEVER log full responses
"""

from __future__ import annotations

import logging
import random
import re
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Literal, TypeVar

from chatlens.core.models import AnalysisRequest, ProviderId, RawProviderResponse

# =============================================================================
# Secure Logging Filter
# =============================================================================


class RedactingFilter(logging.Filter):
    """Logging filter that redacts sensitive information.

    Scans log messages for patterns that look like API keys or tokens
    and replaces them with [REDACTED].

    Patterns detected:
    - Strings following api_key=, key=, token=, bearer, secret=
    - Provider key shapes (sk-..., sk-ant-..., AIza...)

    Example:
        >>> logger = logging.getLogger("my_module")
        >>> logger.addFilter(RedactingFilter())
        >>> logger.info("Using api_key=AIzaSy123456789...")
        # Output: "Using api_key=[REDACTED]"
    """

    PATTERNS = [
        # Key-value patterns
        re.compile(r'(api_key\s*[=:]\s*)["\']?([a-zA-Z0-9_\-]{16,})["\']?', re.IGNORECASE),
        re.compile(r'(key\s*[=:]\s*)["\']?([a-zA-Z0-9_\-]{16,})["\']?', re.IGNORECASE),
        re.compile(r'(token\s*[=:]\s*)["\']?([a-zA-Z0-9_\-\.]{16,})["\']?', re.IGNORECASE),
        re.compile(r"(bearer\s+)([a-zA-Z0-9_\-\.]{16,})", re.IGNORECASE),
        re.compile(r'(secret\s*[=:]\s*)["\']?([a-zA-Z0-9_\-]{16,})["\']?', re.IGNORECASE),
        # Standalone provider key shapes
        re.compile(r"\bAIza[a-zA-Z0-9_\-]{30,}\b"),
        re.compile(r"\bsk-(?:ant-)?[a-zA-Z0-9_\-]{20,}\b"),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact the record in place; always allow it through."""
        if isinstance(record.msg, str):
            record.msg = self._redact(record.msg)

        if record.args:
            if isinstance(record.args, dict):
                record.args = {
                    k: self._redact(v) if isinstance(v, str) else v for k, v in record.args.items()
                }
            else:
                record.args = tuple(
                    self._redact(arg) if isinstance(arg, str) else arg for arg in record.args
                )

        return True

    def _redact(self, text: str) -> str:
        for pattern in self.PATTERNS[:5]:
            text = pattern.sub(r"\1[REDACTED]", text)

        for pattern in self.PATTERNS[5:]:
            text = pattern.sub("[REDACTED]", text)

        return text


logger = logging.getLogger(__name__)
logger.addFilter(RedactingFilter())

T = TypeVar("T")


# =============================================================================
# Exception Hierarchy
# =============================================================================


class ChatlensError(Exception):
    """Root of every error raised by chatlens."""


class InputError(ChatlensError):
    """Invalid or missing caller input. Fatal, surfaced verbatim, never retried."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class UnsupportedProviderError(InputError):
    """The provider identifier is not one of the supported backends."""

    def __init__(self, provider: str) -> None:
        super().__init__(f"Unsupported provider: {provider}")
        self.provider = provider


class ProviderError(ChatlensError):
    """Base exception for all provider call failures.

    Attributes:
        message: Human-readable error description (safe to log).
        retriable: Whether the operation can be retried.
        status_code: HTTP status code, when the backend exposed one.
        original_error: The underlying exception that caused this error.

    Example:
        >>> try:
        ...     adapter.invoke(request)
        ... except ProviderError as e:
        ...     if e.retriable:
        ...         # Rate limited
        ...     else:
        ...         # Permanent failure
    """

    def __init__(
        self,
        message: str,
        retriable: bool = False,
        status_code: int | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.retriable = retriable
        self.status_code = status_code
        self.original_error = original_error

    def __str__(self) -> str:
        """Return message without exposing sensitive details."""
        return self.message


class ProviderUnavailableError(ProviderError):
    """The SDK for a backend family is not installed."""

    def __init__(self, provider: str, package: str) -> None:
        super().__init__(f"{package} package not installed; {provider} backend unavailable")
        self.provider = provider
        self.package = package


class ProviderConfigurationError(ProviderError):
    """Backend-specific settings (project, region ...) are missing.

    The message is actionable and surfaced to the caller as-is.
    """


class ProviderAuthenticationError(ProviderError):
    """Credential missing, invalid, or rejected. Never retriable."""

    def __init__(
        self,
        message: str = "API authentication failed. Please check your API key.",
        status_code: int | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, original_error=original_error)


class ProviderRateLimitError(ProviderError):
    """The backend signalled throttling (HTTP 429 or a rate-limit marker).

    This is the only retriable provider failure.
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded. Please wait before retrying.",
        status_code: int | None = 429,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(
            message, retriable=True, status_code=status_code, original_error=original_error
        )


class RetriesExhaustedError(ProviderError):
    """Every attempt allowed by the RetryController was rate limited.

    Attributes:
        attempts: Number of calls made.
        last_error: The final rate-limit error.
    """

    def __init__(self, attempts: int, last_error: ProviderRateLimitError | None = None) -> None:
        super().__init__(
            f"Max retries exceeded after {attempts} attempts",
            status_code=429,
            original_error=last_error,
        )
        self.attempts = attempts
        self.last_error = last_error


class ModelAccessError(ProviderError):
    """The credential has no access to the requested model, or it does not exist."""

    def __init__(
        self,
        model_name: str,
        message: str | None = None,
        status_code: int | None = None,
        original_error: Exception | None = None,
    ) -> None:
        msg = message or f"No access to model '{model_name}'."
        super().__init__(msg, status_code=status_code, original_error=original_error)
        self.model_name = model_name


class ContentBlockedError(ProviderError):
    """The backend rejected the content through its safety filters."""

    def __init__(
        self,
        message: str = "Content blocked by safety filters.",
        blocked_reason: str | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, original_error=original_error)
        self.blocked_reason = blocked_reason


class ProviderServerError(ProviderError):
    """Server-side error (5xx). Not retried by the pipeline."""


class EmptyResponseError(ProviderError):
    """The backend returned no generated text."""

    def __init__(self, provider: str, detail: str | None = None) -> None:
        msg = f"No content returned by {provider}"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)
        self.provider = provider


# =============================================================================
# Error Mapping
# =============================================================================


RATE_LIMIT_MARKERS = ("429", "rate limit", "rate_limit", "ratelimit", "too many requests")
AUTH_MARKERS = ("401", "api key", "api_key", "unauthorized", "unauthenticated", "invalid_api_key")
ACCESS_MARKERS = ("403", "model_not_found", "permission", "access", "not found")
SAFETY_MARKERS = ("content_filter", "safety", "blocked")


def classify_error(
    error: Exception,
    model: str,
    status_code: int | None = None,
) -> ProviderError:
    """Map an arbitrary SDK/HTTP failure to the provider error taxonomy.

    Used by adapters once their SDK-specific exception types have been
    checked. Matching falls back to message markers.

    Args:
        error: The original exception.
        model: Model identifier, for ModelAccessError.
        status_code: HTTP status, when known.

    Returns:
        Mapped ProviderError subclass.
    """
    if isinstance(error, ProviderError):
        return error

    error_str = str(error).lower()

    if status_code == 429 or any(marker in error_str for marker in RATE_LIMIT_MARKERS):
        return ProviderRateLimitError(status_code=status_code or 429, original_error=error)

    if status_code == 401 or any(marker in error_str for marker in AUTH_MARKERS):
        return ProviderAuthenticationError(status_code=status_code, original_error=error)

    if any(marker in error_str for marker in SAFETY_MARKERS):
        return ContentBlockedError(original_error=error)

    if status_code in (403, 404) or any(marker in error_str for marker in ACCESS_MARKERS):
        return ModelAccessError(model, status_code=status_code, original_error=error)

    if status_code is not None and status_code >= 500:
        return ProviderServerError(str(error), status_code=status_code, original_error=error)

    return ProviderError(str(error), status_code=status_code, original_error=error)


# =============================================================================
# Adapter Contract
# =============================================================================


class ProviderAdapter(ABC):
    """Uniform call contract over one backend family.

    Subclasses build the backend-specific request, submit the rendered
    prompt, and extract generated text from the backend envelope. They do
    not touch shared state.

    Attributes:
        provider_id: The backend family this adapter serves.
        retry_on_rate_limit: Whether calls are wrapped by the RetryController.
    """

    provider_id: ProviderId
    retry_on_rate_limit: bool = False

    def __init__(self, config: Any) -> None:
        self._config = config
        self._logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        self._logger.addFilter(RedactingFilter())

    def invoke(self, request: AnalysisRequest) -> RawProviderResponse:
        """Call the backend once and wrap the generated text.

        Args:
            request: The analysis request (prompt is rendered here).

        Returns:
            RawProviderResponse with non-empty text.

        Raises:
            ProviderError: Any typed provider failure.
        """
        api_key = request.api_key.get_secret_value().strip()
        if not api_key:
            raise ProviderAuthenticationError("No API key configured. Please check your API key.")

        start_time = time.time()
        text = self._generate(request.render_prompt(), api_key, request.model)
        latency_ms = (time.time() - start_time) * 1000

        if not text or not text.strip():
            raise EmptyResponseError(self.provider_id.value)

        self._logger.info(
            f"Generation successful: {len(text)} chars in {latency_ms:.0f}ms",
            extra={"provider": self.provider_id.value, "model": request.model},
        )
        return RawProviderResponse(
            provider=self.provider_id,
            model=request.model,
            text=text,
            latency_ms=latency_ms,
        )

    @abstractmethod
    def _generate(self, prompt: str, api_key: str, model: str) -> str:
        """Submit the prompt and return the generated text ("" if none)."""


# =============================================================================
# Retry Controller
# =============================================================================


class RetryController:
    """Bounded exponential backoff for rate-limited provider calls.

    Only ``ProviderRateLimitError`` is retried. Every other exception
    propagates immediately. The wait before attempt ``n`` (n >= 2) is
    ``backoff_base ** (n - 1)`` seconds plus optional jitter, so the default
    policy makes 3 attempts with waits of 2s and 4s.

    Attributes:
        max_attempts: Total calls allowed, the first one included.
        backoff_base: Exponential base in seconds.
        jitter: Upper bound of uniform random seconds added to each wait.

    Example:
        >>> retry = RetryController(max_attempts=3, backoff_base=2.0)
        >>> text = retry.call(adapter.invoke, request)
    """

    def __init__(
        self,
        max_attempts: int = 3,
        backoff_base: float = 2.0,
        jitter: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
        on_retry: Callable[[int, float, ProviderRateLimitError], None] | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.jitter = jitter
        self._sleep = sleep
        self._on_retry = on_retry
        self._logger = logging.getLogger(f"{__name__}.RetryController")

    def delay_before(self, attempt: int) -> float:
        """Seconds to wait before ``attempt`` (1-based); 0 for the first."""
        if attempt <= 1:
            return 0.0
        delay = self.backoff_base ** (attempt - 1)
        if self.jitter:
            delay += random.uniform(0, self.jitter)
        return delay

    def call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Execute ``func`` retrying only on rate-limit errors.

        Returns:
            The function's return value.

        Raises:
            RetriesExhaustedError: Every attempt was rate limited.
            ProviderError: Any other failure, unchanged, on first occurrence.
        """
        last_error: ProviderRateLimitError | None = None

        for attempt in range(1, self.max_attempts + 1):
            if attempt > 1:
                delay = self.delay_before(attempt)
                self._logger.warning(
                    f"Rate limit hit, waiting {delay:.1f}s before attempt {attempt}/{self.max_attempts}"
                )
                if self._on_retry is not None and last_error is not None:
                    self._on_retry(attempt, delay, last_error)
                self._sleep(delay)

            try:
                return func(*args, **kwargs)
            except ProviderRateLimitError as e:
                last_error = e

        self._logger.error(f"Max retries ({self.max_attempts}) exhausted: rate limited")
        raise RetriesExhaustedError(self.max_attempts, last_error)
