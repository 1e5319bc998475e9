"""Tests for configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from chatlens.config import (
    AIConfig,
    AppConfig,
    ConfigFileError,
    PathsConfig,
    get_config,
    load_config,
    reset_config,
)


@pytest.fixture
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point HOME and the working directory at an empty temp directory."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(tmp_path)
    return home


class TestDefaults:
    """Tests for in-code defaults."""

    def test_ai_defaults(self) -> None:
        ai = AIConfig()

        assert ai.temperature == 0.7
        assert ai.max_output_tokens == 4000
        assert ai.max_attempts == 3
        assert ai.backoff_base == 2.0
        assert ai.strict_models is False

    def test_paths_resolve_relative_to_data_dir(self, tmp_path: Path) -> None:
        paths = PathsConfig(data_dir=tmp_path)

        assert paths.log_dir == tmp_path.resolve() / "logs"
        assert paths.analyses_dir == tmp_path.resolve() / "analyses"

    def test_vertex_unconfigured_by_default(self, isolated_home: Path) -> None:
        assert not load_config().vertex.is_configured()


class TestLoadConfig:
    """Tests for load_config."""

    def test_yaml_file_values(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text(
            "ai:\n  max_attempts: 5\n  temperature: 0.2\n"
            "vertex:\n  project_id: my-project\n  region: us-east1\n"
            "debug: true\n",
            encoding="utf-8",
        )

        config = load_config(path)

        assert config.ai.max_attempts == 5
        assert config.ai.temperature == 0.2
        assert config.vertex.is_configured()
        assert config.debug is True

    def test_missing_explicit_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigFileError):
            load_config(tmp_path / "nope.yaml")

    def test_malformed_yaml_uses_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("ai: [unclosed\n", encoding="utf-8")

        assert load_config(path).ai == AIConfig()

    def test_invalid_values_use_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("ai:\n  temperature: 9\n", encoding="utf-8")

        assert load_config(path).ai.temperature == 0.7

    def test_local_file_is_discovered(self, isolated_home: Path, tmp_path: Path) -> None:
        (tmp_path / "chatlens.yaml").write_text("ai:\n  max_attempts: 4\n", encoding="utf-8")

        assert load_config().ai.max_attempts == 4

    def test_environment_variables(self, isolated_home: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHATLENS_AI__TEMPERATURE", "0.3")
        monkeypatch.setenv("CHATLENS_VERBOSE", "true")

        config = load_config()

        assert config.ai.temperature == 0.3
        assert config.verbose is True

    def test_file_section_wins_over_environment(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("CHATLENS_AI__TEMPERATURE", "0.3")
        path = tmp_path / "config.yaml"
        path.write_text("ai:\n  temperature: 0.9\n", encoding="utf-8")

        assert load_config(path).ai.temperature == 0.9


class TestGetConfig:
    """Tests for the cached accessor."""

    def test_cached_until_reset(self, isolated_home: Path) -> None:
        first = get_config()

        assert get_config() is first
        reset_config()
        assert get_config() is not first
        assert isinstance(get_config(), AppConfig)
