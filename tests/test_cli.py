"""Tests for CLI commands using Click's testing utilities."""

from __future__ import annotations

import io
import json
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner
from rich.console import Console

from chatlens import __version__
from chatlens.cli.main import cli
from chatlens.core.models import AnalysisOutcome

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def runner() -> CliRunner:
    """Create a Click test runner."""
    return CliRunner()


@pytest.fixture
def console_output():
    """Route CLI console output to a wide in-memory console."""
    buffer = io.StringIO()
    with patch("chatlens.cli.main.console", Console(file=buffer, width=200)):
        yield buffer


@pytest.fixture
def chat_file(tmp_path: Path, conversation: str) -> Path:
    path = tmp_path / "chat.txt"
    path.write_text(conversation, encoding="utf-8")
    return path


@pytest.fixture
def success_outcome(clean_analysis: dict[str, Any]) -> AnalysisOutcome:
    return AnalysisOutcome.ok(
        {**clean_analysis, "metrics": {"engagement": 80}, "templateData": {}},
        recovery="direct",
        duration_ms=12.5,
    )


@pytest.fixture
def mock_analyzer():
    """Patch the analyzer class used by the CLI."""
    with patch("chatlens.cli.main.ConversationAnalyzer") as analyzer_cls:
        yield analyzer_cls.return_value


# =============================================================================
# Version / Help
# =============================================================================


class TestVersion:
    """Tests for version and help output."""

    def test_version_option(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        for command in ("analyze", "templates", "providers", "repair"):
            assert command in result.output

    def test_missing_config_file(self, runner: CliRunner, tmp_path: Path, console_output) -> None:
        result = runner.invoke(cli, ["--config", str(tmp_path / "missing.yaml"), "providers"])

        assert result.exit_code == 1
        assert "Config file not found" in console_output.getvalue()


# =============================================================================
# Analyze Command
# =============================================================================


def _analyze_args(config_file: Path, chat_file: Path, *extra: str) -> list[str]:
    return [
        "--config", str(config_file),
        "analyze", str(chat_file),
        "-p", "openai",
        "-m", "gpt-4o-mini",
        *extra,
    ]


class TestAnalyzeCommand:
    """Tests for the analyze command."""

    def test_success_prints_summary(
        self,
        runner: CliRunner,
        config_file: Path,
        chat_file: Path,
        mock_analyzer: MagicMock,
        success_outcome: AnalysisOutcome,
        console_output: io.StringIO,
    ) -> None:
        mock_analyzer.analyze_file.return_value = success_outcome

        result = runner.invoke(cli, _analyze_args(config_file, chat_file, "--api-key", "k"))

        assert result.exit_code == 0
        printed = console_output.getvalue()
        assert "Friendly exchange" in printed
        assert "Tone" in printed
        assert "engagement" in printed

    def test_forwards_options(
        self,
        runner: CliRunner,
        config_file: Path,
        chat_file: Path,
        mock_analyzer: MagicMock,
        success_outcome: AnalysisOutcome,
        console_output: io.StringIO,
    ) -> None:
        mock_analyzer.analyze_file.return_value = success_outcome

        runner.invoke(
            cli,
            [
                "--config", str(config_file),
                "analyze", str(chat_file),
                "-p", "anthropic",
                "-m", "claude-3-5-sonnet",
                "-t", "business-meeting",
                "--user", "alice",
            ],
            env={"CHATLENS_API_KEY": "env-key"},
        )

        kwargs = mock_analyzer.analyze_file.call_args.kwargs
        assert kwargs["provider"] == "anthropic"
        assert kwargs["model"] == "claude-3-5-sonnet"
        assert kwargs["template_id"] == "business-meeting"
        assert kwargs["api_key"] == "env-key"
        assert kwargs["user_id"] == "alice"

    def test_json_output(
        self,
        runner: CliRunner,
        config_file: Path,
        chat_file: Path,
        mock_analyzer: MagicMock,
        success_outcome: AnalysisOutcome,
        console_output: io.StringIO,
    ) -> None:
        mock_analyzer.analyze_file.return_value = success_outcome

        result = runner.invoke(cli, _analyze_args(config_file, chat_file, "--api-key", "k", "--json"))

        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert payload["success"] is True
        assert payload["data"]["overallSummary"] == "Friendly exchange"

    def test_output_file(
        self,
        runner: CliRunner,
        config_file: Path,
        chat_file: Path,
        mock_analyzer: MagicMock,
        success_outcome: AnalysisOutcome,
        console_output: io.StringIO,
        tmp_path: Path,
    ) -> None:
        mock_analyzer.analyze_file.return_value = success_outcome
        output = tmp_path / "out" / "result.json"

        result = runner.invoke(
            cli, _analyze_args(config_file, chat_file, "--api-key", "k", "-o", str(output))
        )

        assert result.exit_code == 0
        assert json.loads(output.read_text(encoding="utf-8"))["detectedLanguage"] == "en"
        assert "Result written to" in console_output.getvalue()

    def test_failure_exits_nonzero(
        self,
        runner: CliRunner,
        config_file: Path,
        chat_file: Path,
        mock_analyzer: MagicMock,
        console_output: io.StringIO,
    ) -> None:
        mock_analyzer.analyze_file.return_value = AnalysisOutcome.fail("Invalid API key.")

        result = runner.invoke(cli, _analyze_args(config_file, chat_file, "--api-key", "bad"))

        assert result.exit_code == 1
        assert "Invalid API key." in console_output.getvalue()

    def test_provider_required(self, runner: CliRunner, config_file: Path, chat_file: Path) -> None:
        result = runner.invoke(
            cli, ["--config", str(config_file), "analyze", str(chat_file), "-m", "gpt-4o-mini"]
        )

        assert result.exit_code == 2
        assert "--provider" in result.output


# =============================================================================
# Listing Commands
# =============================================================================


class TestListingCommands:
    """Tests for the templates and providers commands."""

    def test_templates(self, runner: CliRunner, config_file: Path, console_output: io.StringIO) -> None:
        result = runner.invoke(cli, ["--config", str(config_file), "templates"])

        assert result.exit_code == 0
        printed = console_output.getvalue()
        assert "communication-analysis" in printed
        assert "coaching-session" in printed

    def test_user_templates(
        self, runner: CliRunner, config_file: Path, tmp_path: Path, console_output: io.StringIO
    ) -> None:
        user_dir = tmp_path / "data" / "templates" / "alice"
        user_dir.mkdir(parents=True)
        (user_dir / "mine.yaml").write_text(
            "id: my-template\nname: Mine\nanalysis_prompt: 'Look at ${chatContent}'\n",
            encoding="utf-8",
        )

        runner.invoke(cli, ["--config", str(config_file), "templates", "--user", "alice"])

        assert "my-template" in console_output.getvalue()

    def test_providers(self, runner: CliRunner, config_file: Path, console_output: io.StringIO) -> None:
        result = runner.invoke(cli, ["--config", str(config_file), "providers"])

        assert result.exit_code == 0
        printed = console_output.getvalue()
        for provider in ("google", "openai", "anthropic", "google-genai", "google-vertex-ai"):
            assert provider in printed


# =============================================================================
# Repair Command
# =============================================================================


class TestRepairCommand:
    """Tests for the repair command."""

    def test_clean_response(
        self, runner: CliRunner, config_file: Path, tmp_path: Path, clean_analysis_json: str
    ) -> None:
        response = tmp_path / "response.txt"
        response.write_text(clean_analysis_json, encoding="utf-8")

        result = runner.invoke(cli, ["--config", str(config_file), "repair", str(response)])

        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert payload["recovery"] == "direct"
        assert payload["validated"] is True
        assert payload["data"]["overallSummary"] == "Friendly exchange"

    def test_unparseable_response_writes_output(
        self, runner: CliRunner, config_file: Path, tmp_path: Path
    ) -> None:
        response = tmp_path / "response.txt"
        response.write_text("هذه المحادثة ودية", encoding="utf-8")
        output = tmp_path / "repaired.json"

        result = runner.invoke(
            cli, ["--config", str(config_file), "repair", str(response), "-o", str(output)]
        )

        assert result.exit_code == 0
        payload = json.loads(output.read_text(encoding="utf-8"))
        assert payload["recovery"] == "extractor"
        assert payload["data"]["detectedLanguage"] == "ar"
        assert payload["data"]["overallSummary"] == "هذه المحادثة ودية"
