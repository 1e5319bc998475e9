"""Pytest fixtures for chatlens tests."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable
from unittest.mock import MagicMock

import pytest

from chatlens.ai.analyzer import ConversationAnalyzer
from chatlens.ai.client import ProviderAdapter
from chatlens.ai.diagnostics import CountingObserver
from chatlens.config import AIConfig, AppConfig, PathsConfig, VertexConfig, reset_config
from chatlens.core.models import ProviderId
from chatlens.storage import AnalysisStore
from chatlens.templates import TemplateStore

# =============================================================================
# Test Doubles
# =============================================================================


class ScriptedAdapter(ProviderAdapter):
    """Adapter that replays scripted outputs instead of calling a backend.

    Each call consumes the next item of ``outputs``; an exception item is
    raised, a string item is returned as generated text. Once the script is
    exhausted ``default`` is returned.
    """

    def __init__(
        self,
        outputs: list[Any] | None = None,
        provider_id: ProviderId = ProviderId.OPENAI,
        retry_on_rate_limit: bool = False,
        default: str = "",
    ) -> None:
        super().__init__(config=MagicMock())
        self.provider_id = provider_id
        self.retry_on_rate_limit = retry_on_rate_limit
        self.outputs = list(outputs or [])
        self.default = default
        self.prompts: list[str] = []
        self.calls = 0
        self._lock = threading.Lock()

    def _generate(self, prompt: str, api_key: str, model: str) -> str:
        with self._lock:
            self.calls += 1
            self.prompts.append(prompt)
            item = self.outputs.pop(0) if self.outputs else self.default
        if isinstance(item, BaseException):
            raise item
        return item


# =============================================================================
# Global State
# =============================================================================


@pytest.fixture(autouse=True)
def reset_global_state(monkeypatch: pytest.MonkeyPatch):
    """Reset config cache, package logger and provider env vars per test."""
    for var in ("GOOGLE_CLOUD_PROJECT_ID", "GOOGLE_CLOUD_REGION", "CHATLENS_API_KEY"):
        monkeypatch.delenv(var, raising=False)
    reset_config()
    yield
    reset_config()
    package_logger = logging.getLogger("chatlens")
    package_logger.handlers = []
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)


# =============================================================================
# Configuration
# =============================================================================


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    """Configuration with all paths inside a temp directory."""
    return AppConfig(
        ai=AIConfig(),
        vertex=VertexConfig(project_id="test-project", region="us-central1"),
        paths=PathsConfig(data_dir=tmp_path / "data"),
    )


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """A YAML config file pointing data_dir into the temp directory."""
    path = tmp_path / "chatlens.yaml"
    path.write_text(
        f"paths:\n  data_dir: {tmp_path / 'data'}\nai:\n  max_attempts: 3\n",
        encoding="utf-8",
    )
    return path


# =============================================================================
# Sample Data
# =============================================================================


@pytest.fixture
def clean_analysis() -> dict[str, Any]:
    """A well-formed analysis object as a model would return it."""
    return {
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
    }


@pytest.fixture
def clean_analysis_json(clean_analysis: dict[str, Any]) -> str:
    return json.dumps(clean_analysis)


@pytest.fixture
def conversation() -> str:
    return "Alice: Hi Bob, how was the trip?\nBob: Great, thanks for asking!"


# =============================================================================
# Analyzer
# =============================================================================


@pytest.fixture
def observer() -> CountingObserver:
    return CountingObserver()


@pytest.fixture
def mock_store() -> MagicMock:
    """Analysis store double whose save() returns a fixed id."""
    store = MagicMock(spec=AnalysisStore)
    store.save.return_value = "0" * 32
    return store


@pytest.fixture
def sleeps() -> list[float]:
    """Collects backoff waits instead of sleeping."""
    return []


@pytest.fixture
def make_analyzer(
    app_config: AppConfig,
    observer: CountingObserver,
    mock_store: MagicMock,
    sleeps: list[float],
) -> Callable[..., ConversationAnalyzer]:
    """Factory for analyzers wired to a single scripted adapter."""

    def _make(adapter: ScriptedAdapter, store: AnalysisStore | None = None) -> ConversationAnalyzer:
        return ConversationAnalyzer(
            config=app_config,
            template_store=TemplateStore(),
            store=store or mock_store,
            observer=observer,
            adapters={adapter.provider_id: adapter},
            sleep=sleeps.append,
        )

    return _make


@pytest.fixture
def scripted() -> type[ScriptedAdapter]:
    """The scripted adapter class, for tests that build their own."""
    return ScriptedAdapter
