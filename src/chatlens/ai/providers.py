"""Provider adapters for every supported text-generation backend.

Each adapter turns a rendered prompt into generated text through one
backend family and maps that backend's failures into the
``chatlens.ai.client`` exception hierarchy:

- ``GoogleAdapter``: google-generativeai completion call (retry-wrapped)
- ``OpenAIAdapter``: chat completion with JSON-object response format
- ``AnthropicAdapter``: messages call with a system instruction
- ``GenAIAdapter``: google-genai ``Client.models.generate_content``
- ``VertexAdapter``: raw Vertex AI REST predict endpoint

Example:
    >>> from chatlens.ai.providers import get_adapter
    >>> from chatlens.config import get_config
    >>>
    >>> adapter = get_adapter("openai", get_config())
    >>> response = adapter.invoke(request)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import requests

from chatlens.ai.client import (
    ContentBlockedError,
    ModelAccessError,
    ProviderAdapter,
    ProviderAuthenticationError,
    ProviderConfigurationError,
    ProviderError,
    ProviderRateLimitError,
    ProviderServerError,
    ProviderUnavailableError,
    UnsupportedProviderError,
    classify_error,
)
from chatlens.config import AppConfig
from chatlens.core.models import ProviderId

# Import Google Generative AI SDK
try:
    import google.generativeai as genai
    from google.api_core import exceptions as google_exceptions

    GENAI_AVAILABLE = True
except ImportError:
    genai = None  # type: ignore
    google_exceptions = None  # type: ignore
    GENAI_AVAILABLE = False

# Import the google-genai client SDK
try:
    from google import genai as google_genai
    from google.genai import errors as genai_errors

    GOOGLE_GENAI_AVAILABLE = True
except ImportError:
    google_genai = None  # type: ignore
    genai_errors = None  # type: ignore
    GOOGLE_GENAI_AVAILABLE = False

try:
    import openai

    OPENAI_AVAILABLE = True
except ImportError:
    openai = None  # type: ignore
    OPENAI_AVAILABLE = False

try:
    import anthropic

    ANTHROPIC_AVAILABLE = True
except ImportError:
    anthropic = None  # type: ignore
    ANTHROPIC_AVAILABLE = False

logger = logging.getLogger(__name__)


# =============================================================================
# Provider Catalog
# =============================================================================


@dataclass(frozen=True)
class ProviderInfo:
    """Display metadata for one backend family.

    Attributes:
        provider_id: Backend identifier.
        display_name: Human-readable name.
        package: Distribution that must be installed to use it.
        models: Known model identifiers (not exhaustive).
    """

    provider_id: ProviderId
    display_name: str
    package: str
    models: tuple[str, ...] = field(default_factory=tuple)


PROVIDER_CATALOG: dict[ProviderId, ProviderInfo] = {
    ProviderId.GOOGLE: ProviderInfo(
        ProviderId.GOOGLE,
        "Google Gemini",
        "google-generativeai",
        ("gemini-2.5-flash", "gemini-2.5-pro", "gemini-2.0-flash"),
    ),
    ProviderId.OPENAI: ProviderInfo(
        ProviderId.OPENAI,
        "OpenAI",
        "openai",
        ("gpt-4o", "gpt-4o-mini", "gpt-3.5-turbo", "gpt-4-turbo"),
    ),
    ProviderId.ANTHROPIC: ProviderInfo(
        ProviderId.ANTHROPIC,
        "Anthropic Claude",
        "anthropic",
        ("claude-3-5-sonnet", "claude-3-5-haiku", "claude-3-opus", "claude-3-haiku-20240307"),
    ),
    ProviderId.GOOGLE_GENAI: ProviderInfo(
        ProviderId.GOOGLE_GENAI,
        "Google GenAI",
        "google-genai",
        ("gemini-2.5-flash", "gemini-2.5-pro", "gemini-2.0-flash"),
    ),
    ProviderId.GOOGLE_VERTEX_AI: ProviderInfo(
        ProviderId.GOOGLE_VERTEX_AI,
        "Google Vertex AI",
        "requests",
        ("gemini-1.5-pro-002", "gemini-1.5-flash-002", "gemini-1.0-pro-002", "text-bison"),
    ),
}


def resolve_provider(provider: str | ProviderId) -> ProviderId:
    """Convert a provider identifier string to ProviderId.

    Raises:
        UnsupportedProviderError: If the identifier is not supported.
    """
    if isinstance(provider, ProviderId):
        return provider
    try:
        return ProviderId(str(provider).strip())
    except ValueError:
        raise UnsupportedProviderError(str(provider)) from None


def is_known_model(provider: str | ProviderId, model: str) -> bool:
    """Check whether ``model`` is listed in the catalog for ``provider``."""
    info = PROVIDER_CATALOG.get(resolve_provider(provider))
    return info is not None and model in info.models


def _sdk_error_is(error: Exception, module: Any, name: str) -> bool:
    """isinstance check against an SDK exception class looked up by name.

    Returns False when the SDK is missing or the attribute is not a class
    (e.g. the SDK module is mocked).
    """
    if module is None:
        return False
    cls = getattr(module, name, None)
    return isinstance(cls, type) and isinstance(error, cls)


def _status_of(error: Exception) -> int | None:
    status = getattr(error, "status_code", None)
    if status is None:
        status = getattr(error, "code", None)
    return status if isinstance(status, int) else None


# =============================================================================
# Adapters
# =============================================================================


class GoogleAdapter(ProviderAdapter):
    """Completion-style Gemini backend via google-generativeai.

    The only adapter wrapped by the RetryController.
    """

    provider_id = ProviderId.GOOGLE
    retry_on_rate_limit = True

    def _generate(self, prompt: str, api_key: str, model: str) -> str:
        if not GENAI_AVAILABLE:
            raise ProviderUnavailableError(self.provider_id.value, "google-generativeai")

        try:
            genai.configure(api_key=api_key)
            model_instance = genai.GenerativeModel(model)
            raw_response = model_instance.generate_content(prompt)
        except Exception as e:
            self._logger.error(f"Generation failed: {type(e).__name__}", extra={"model": model})
            raise self._map_exception(e, model) from e

        try:
            return raw_response.text or ""
        except ValueError:
            # Response might be blocked
            feedback = getattr(raw_response, "prompt_feedback", None)
            block_reason = getattr(feedback, "block_reason", None)
            if block_reason:
                raise ContentBlockedError(blocked_reason=str(block_reason)) from None
            return ""

    def _map_exception(self, error: Exception, model: str) -> ProviderError:
        """Map google.api_core exceptions, then fall back to message markers."""
        if _sdk_error_is(error, google_exceptions, "ResourceExhausted"):
            return ProviderRateLimitError(original_error=error)
        if _sdk_error_is(error, google_exceptions, "Unauthenticated"):
            return ProviderAuthenticationError(status_code=401, original_error=error)
        if _sdk_error_is(error, google_exceptions, "PermissionDenied"):
            return ModelAccessError(model, status_code=403, original_error=error)
        if _sdk_error_is(error, google_exceptions, "NotFound"):
            return ModelAccessError(model, status_code=404, original_error=error)
        if _sdk_error_is(error, google_exceptions, "InternalServerError"):
            return ProviderServerError(str(error), status_code=500, original_error=error)
        if _sdk_error_is(error, google_exceptions, "ServiceUnavailable"):
            return ProviderServerError(str(error), status_code=503, original_error=error)

        return classify_error(error, model)


class OpenAIAdapter(ProviderAdapter):
    """Chat backend with JSON-object response format."""

    provider_id = ProviderId.OPENAI

    def _generate(self, prompt: str, api_key: str, model: str) -> str:
        if not OPENAI_AVAILABLE:
            raise ProviderUnavailableError(self.provider_id.value, "openai")

        ai = self._config.ai
        try:
            client = openai.OpenAI(api_key=api_key)
            completion = client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": ai.system_instruction},
                    {"role": "user", "content": prompt},
                ],
                temperature=ai.temperature,
                response_format={"type": "json_object"},
            )
        except Exception as e:
            self._logger.error(f"Generation failed: {type(e).__name__}", extra={"model": model})
            raise self._map_exception(e, model) from e

        if not completion.choices:
            return ""
        return completion.choices[0].message.content or ""

    def _map_exception(self, error: Exception, model: str) -> ProviderError:
        if _sdk_error_is(error, openai, "RateLimitError"):
            return ProviderRateLimitError(original_error=error)
        if _sdk_error_is(error, openai, "AuthenticationError"):
            return ProviderAuthenticationError(status_code=401, original_error=error)
        if _sdk_error_is(error, openai, "PermissionDeniedError") or _sdk_error_is(
            error, openai, "NotFoundError"
        ):
            return ModelAccessError(model, status_code=_status_of(error), original_error=error)

        return classify_error(error, model, _status_of(error))


class AnthropicAdapter(ProviderAdapter):
    """Messages-style backend with a system instruction."""

    provider_id = ProviderId.ANTHROPIC

    def _generate(self, prompt: str, api_key: str, model: str) -> str:
        if not ANTHROPIC_AVAILABLE:
            raise ProviderUnavailableError(self.provider_id.value, "anthropic")

        ai = self._config.ai
        try:
            client = anthropic.Anthropic(api_key=api_key)
            message = client.messages.create(
                model=model,
                max_tokens=ai.max_output_tokens,
                temperature=ai.temperature,
                system=ai.system_instruction,
                messages=[{"role": "user", "content": prompt}],
            )
        except Exception as e:
            self._logger.error(f"Generation failed: {type(e).__name__}", extra={"model": model})
            raise self._map_exception(e, model) from e

        if not message.content:
            return ""
        block = message.content[0]
        # Only a leading text block counts as generated text
        return block.text if getattr(block, "type", None) == "text" else ""

    def _map_exception(self, error: Exception, model: str) -> ProviderError:
        if _sdk_error_is(error, anthropic, "RateLimitError"):
            return ProviderRateLimitError(original_error=error)
        if _sdk_error_is(error, anthropic, "AuthenticationError"):
            return ProviderAuthenticationError(status_code=401, original_error=error)
        if _sdk_error_is(error, anthropic, "PermissionDeniedError") or _sdk_error_is(
            error, anthropic, "NotFoundError"
        ):
            return ModelAccessError(model, status_code=_status_of(error), original_error=error)

        return classify_error(error, model, _status_of(error))


class GenAIAdapter(ProviderAdapter):
    """Generate-content backend via the google-genai client."""

    provider_id = ProviderId.GOOGLE_GENAI

    def _generate(self, prompt: str, api_key: str, model: str) -> str:
        if not GOOGLE_GENAI_AVAILABLE:
            raise ProviderUnavailableError(self.provider_id.value, "google-genai")

        try:
            client = google_genai.Client(api_key=api_key)
            response = client.models.generate_content(model=model, contents=prompt)
        except Exception as e:
            self._logger.error(f"Generation failed: {type(e).__name__}", extra={"model": model})
            raise self._map_exception(e, model) from e

        return response.text or ""

    def _map_exception(self, error: Exception, model: str) -> ProviderError:
        status = _status_of(error) if _sdk_error_is(error, genai_errors, "APIError") else None
        return classify_error(error, model, status)


class VertexAdapter(ProviderAdapter):
    """Raw Vertex AI REST predict endpoint with bearer authorization.

    Project and region come from ``config.vertex``; the key is sent as a
    bearer token.
    """

    provider_id = ProviderId.GOOGLE_VERTEX_AI

    ENDPOINT_TEMPLATE = (
        "https://{region}-aiplatform.{host}/v1/projects/{project}"
        "/locations/{region}/publishers/google/models/{model}:predict"
    )

    def endpoint_for(self, model: str) -> str:
        """Build the predict URL for ``model``.

        Raises:
            ProviderConfigurationError: If project or region is missing.
        """
        vertex = self._config.vertex
        if not vertex.is_configured():
            raise ProviderConfigurationError(
                "Vertex AI Project ID or Region not configured. "
                "Please set them in settings or environment."
            )
        return self.ENDPOINT_TEMPLATE.format(
            region=vertex.region, host=vertex.host, project=vertex.project_id, model=model
        )

    def _generate(self, prompt: str, api_key: str, model: str) -> str:
        vertex = self._config.vertex
        endpoint = self.endpoint_for(model)
        body = {
            "instances": [{"prompt": prompt}],
            "parameters": {
                "temperature": self._config.ai.temperature,
                "maxOutputTokens": vertex.max_output_tokens,
                "topP": vertex.top_p,
                "topK": vertex.top_k,
            },
        }

        try:
            response = requests.post(
                endpoint,
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {api_key}",
                },
                json=body,
                timeout=vertex.timeout_seconds,
            )
        except requests.Timeout as e:
            raise ProviderError(
                f"Vertex AI request timed out after {vertex.timeout_seconds}s", original_error=e
            ) from e
        except requests.RequestException as e:
            raise ProviderError(f"Vertex AI request failed: {type(e).__name__}", original_error=e) from e

        if not response.ok:
            raise self._map_status(response.status_code, response.text, model)

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError("Vertex AI returned a non-JSON response", original_error=e) from e

        return self.extract_prediction(data)

    @staticmethod
    def extract_prediction(data: Any) -> str:
        """Pull generated text out of a predict response envelope.

        Supports the flat ``content`` shape and the nested structValue
        candidate shape. Returns "" when neither is present.
        """
        if not isinstance(data, dict):
            return ""
        predictions = data.get("predictions") or []
        if not predictions or not isinstance(predictions[0], dict):
            return ""

        prediction = predictions[0]
        if prediction.get("content"):
            return str(prediction["content"])

        try:
            candidates = prediction["structValue"]["fields"]["candidates"]["listValue"]["values"]
            if candidates:
                return candidates[0]["structValue"]["fields"]["content"]["stringValue"] or ""
        except (KeyError, TypeError, IndexError):
            pass
        return ""

    @staticmethod
    def _map_status(status_code: int, body: str, model: str) -> ProviderError:
        message = f"Vertex AI API error: {status_code}"
        if status_code in (401, 403):
            return ProviderAuthenticationError(status_code=status_code)
        if status_code == 404:
            return ModelAccessError(model, status_code=status_code)
        if status_code == 429:
            return ProviderRateLimitError(status_code=status_code)
        if status_code >= 500:
            return ProviderServerError(message, status_code=status_code)
        # Error bodies can echo the prompt, keep only a short prefix
        detail = body.strip()[:200]
        return ProviderError(f"{message} {detail}".strip(), status_code=status_code)


# =============================================================================
# Registry
# =============================================================================


ADAPTERS: dict[ProviderId, type[ProviderAdapter]] = {
    ProviderId.GOOGLE: GoogleAdapter,
    ProviderId.OPENAI: OpenAIAdapter,
    ProviderId.ANTHROPIC: AnthropicAdapter,
    ProviderId.GOOGLE_GENAI: GenAIAdapter,
    ProviderId.GOOGLE_VERTEX_AI: VertexAdapter,
}


def get_adapter(provider: str | ProviderId, config: AppConfig) -> ProviderAdapter:
    """Create the adapter for ``provider``.

    Args:
        provider: Provider identifier (e.g. "openai").
        config: Application configuration.

    Returns:
        A ready-to-use adapter instance.

    Raises:
        UnsupportedProviderError: If the provider is not supported.
    """
    provider_id = resolve_provider(provider)
    return ADAPTERS[provider_id](config)
