"""Central Configuration System for chatlens.

This module is the single source of truth for application configuration.
Every other module that needs settings imports from here.

The configuration system supports:
- Multi-source configuration (config file > environment variables > defaults)
- Provider generation parameters and retry behavior
- Vertex AI project/region resolution for the REST predict backend
- Graceful degradation when the config file is missing or malformed

Example:
    >>> from chatlens.config import get_config
    >>>
    >>> cfg = get_config()
    >>> print(cfg.ai.max_attempts)  # 3 by default

Config File Format (YAML):
    ```yaml
    ai:
      temperature: 0.7
      max_output_tokens: 4000
      max_attempts: 3
      backoff_base: 2.0
      retry_jitter: 0.0

    vertex:
      project_id: my-project
      region: us-central1
      timeout_seconds: 120

    paths:
      data_dir: ~/.chatlens
      templates_dir: ./templates

    debug: false
    verbose: false
    ```
"""

from __future__ import annotations

import functools
import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings

# Configure module logger - never log secrets
logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================


class ConfigError(Exception):
    """Base exception for configuration errors.

    All configuration-related exceptions inherit from this class to allow
    for easy exception handling at a higher level.
    """

    pass


class ConfigFileError(ConfigError):
    """Exception raised for YAML config file issues.

    Raised when:
    - Config file exists but cannot be read
    - Config file contains malformed YAML
    - Config file has structural issues
    """

    pass


# =============================================================================
# Constants
# =============================================================================


DEFAULT_SYSTEM_INSTRUCTION: str = (
    "You are an expert communication analyst. Respond only with valid JSON as requested. "
    "Ensure proper JSON formatting: use commas to separate array elements, not periods. "
    "All string values must be properly quoted and escaped."
)


# =============================================================================
# Configuration Models
# =============================================================================


class AIConfig(BaseModel):
    """Configuration for provider invocation.

    Controls generation parameters shared by the provider adapters and the
    rate-limit retry policy.

    Attributes:
        temperature: Sampling temperature (0.0=deterministic, 2.0=creative).
        max_output_tokens: Output token bound for messages-style backends.
        system_instruction: System prompt for chat and messages backends.
        max_attempts: Total attempts for rate-limited calls (first call included).
        backoff_base: Exponential base; the wait before attempt n is base**(n-1).
        retry_jitter: Upper bound of random seconds added to each wait.
        strict_models: Reject models missing from the provider catalog.

    Example:
        >>> ai_config = AIConfig(temperature=0.2, max_attempts=5)
    """

    temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Sampling temperature (0=deterministic, 2=creative).",
    )
    max_output_tokens: int = Field(
        default=4000, ge=100, le=32000, description="Maximum tokens in model response."
    )
    system_instruction: str = Field(
        default=DEFAULT_SYSTEM_INSTRUCTION,
        description="System instruction sent to chat and messages style backends.",
    )
    max_attempts: int = Field(
        default=3, ge=1, le=10, description="Total attempts when a provider is rate limited."
    )
    backoff_base: float = Field(
        default=2.0, ge=1.0, le=10.0, description="Exponential backoff base (seconds)."
    )
    retry_jitter: float = Field(
        default=0.0, ge=0.0, le=5.0, description="Random jitter added to each backoff wait."
    )
    strict_models: bool = Field(
        default=False, description="Reject models that are not in the provider catalog."
    )


class VertexConfig(BaseModel):
    """Settings for the Vertex AI REST predict backend.

    Project and region fall back to the GOOGLE_CLOUD_PROJECT_ID and
    GOOGLE_CLOUD_REGION environment variables when not configured.

    Attributes:
        project_id: Google Cloud project hosting the model.
        region: Vertex AI region, e.g. us-central1.
        host: API host suffix used to build the endpoint URL.
        timeout_seconds: Upper bound on the HTTP request.
        max_output_tokens: Generation bound sent in the request parameters.
        top_p: Nucleus sampling parameter.
        top_k: Top-k sampling parameter.
    """

    project_id: str | None = Field(default=None, description="Google Cloud project ID.")
    region: str | None = Field(default=None, description="Vertex AI region.")
    host: str = Field(default="googleapis.com", description="API host suffix.")
    timeout_seconds: int = Field(
        default=120, ge=5, le=600, description="HTTP request timeout in seconds."
    )
    max_output_tokens: int = Field(default=2048, ge=1, le=32000)
    top_p: float = Field(default=0.95, ge=0.0, le=1.0)
    top_k: int = Field(default=40, ge=1, le=1000)

    @model_validator(mode="after")
    def resolve_environment(self) -> "VertexConfig":
        """Fill project/region from the Google Cloud environment variables.

        Returns:
            Self with resolved values.
        """
        if not self.project_id:
            object.__setattr__(self, "project_id", os.environ.get("GOOGLE_CLOUD_PROJECT_ID"))
        if not self.region:
            object.__setattr__(self, "region", os.environ.get("GOOGLE_CLOUD_REGION"))
        return self

    def is_configured(self) -> bool:
        """Check whether both project and region are known."""
        return bool(self.project_id and self.region)


class PathsConfig(BaseModel):
    """Configuration for application file system paths.

    Attributes:
        data_dir: Base directory for stored analyses. Default ~/.chatlens
        templates_dir: Optional directory of YAML analysis templates.
        log_dir: Directory for log files. Default: data_dir/logs

    Example:
        >>> paths = PathsConfig()
        >>> print(paths.analyses_dir)
        >>> # ~/.chatlens/analyses
    """

    data_dir: Path = Field(
        default_factory=lambda: Path.home() / ".chatlens", description="Base data directory."
    )
    templates_dir: Path | None = Field(
        default=None, description="Directory containing user YAML templates."
    )
    log_dir: Path | None = Field(
        default=None, description="Log directory. Defaults to data_dir/logs."
    )

    model_config = {"arbitrary_types_allowed": True}

    @field_validator("data_dir", "templates_dir", mode="before")
    @classmethod
    def expand_path(cls, v: Any) -> Path | None:
        """Expand ~ and resolve path."""
        if isinstance(v, str):
            return Path(v).expanduser().resolve()
        elif isinstance(v, Path):
            return v.expanduser().resolve()
        return v

    @model_validator(mode="after")
    def resolve_defaults(self) -> "PathsConfig":
        """Resolve None defaults relative to data_dir.

        Returns:
            Self with resolved paths.
        """
        if self.log_dir is None:
            object.__setattr__(self, "log_dir", self.data_dir / "logs")
        else:
            object.__setattr__(self, "log_dir", Path(self.log_dir).expanduser().resolve())
        return self

    @property
    def analyses_dir(self) -> Path:
        """Directory where persisted analyses are written."""
        return self.data_dir / "analyses"


class AppConfig(BaseSettings):
    """Top-level application configuration.

    Combines all configuration sections and supports loading from environment
    variables with the CHATLENS_ prefix.

    Configuration priority (highest wins):
    1. Sections present in the config file (YAML)
    2. Environment variables (CHATLENS_*)
    3. In-code defaults

    Attributes:
        ai: Provider invocation settings.
        vertex: Vertex AI REST backend settings.
        paths: Filesystem path configuration.
        debug: Enable debug mode (verbose logging).
        verbose: Enable verbose output to console.

    Example:
        >>> config = AppConfig()
        >>> config.vertex.is_configured()
        False
    """

    ai: AIConfig = Field(default_factory=AIConfig)
    vertex: VertexConfig = Field(default_factory=VertexConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    debug: bool = Field(default=False, description="Enable debug mode.")
    verbose: bool = Field(default=False, description="Enable verbose output.")

    model_config = {
        "env_prefix": "CHATLENS_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
        "extra": "ignore",
    }


# =============================================================================
# Loading
# =============================================================================


def _read_config_file(config_file: Path) -> dict[str, Any]:
    """Read a YAML config file, returning {} for empty or unusable content."""
    try:
        content = config_file.read_text(encoding="utf-8")
    except OSError as e:
        logger.warning(f"Failed to read config file {config_file}: {type(e).__name__}. Using defaults.")
        return {}

    if not content.strip():
        return {}

    try:
        loaded = yaml.safe_load(content)
    except yaml.YAMLError as e:
        logger.warning(f"Failed to parse config file {config_file}: {e}. Using defaults.")
        return {}

    if isinstance(loaded, dict):
        return loaded
    if loaded is not None:
        logger.warning(f"Config file {config_file} has unexpected format. Using defaults.")
    return {}


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from file, environment, and defaults.

    If no config file is found, uses defaults only (not an error).
    If the config file is malformed, logs a warning and uses defaults.

    Args:
        path: Optional path to config file. If None, searches default locations.

    Returns:
        Fully-populated AppConfig instance.

    Raises:
        ConfigFileError: If an explicitly requested file does not exist.

    Example:
        >>> config = load_config()  # Defaults and env vars
        >>> config = load_config(Path("./chatlens.yaml"))
    """
    if path is not None and not Path(path).exists():
        raise ConfigFileError(f"Config file not found: {path}")

    search_paths = [
        path,
        Path("./chatlens.yaml"),
        Path("./chatlens.yml"),
        Path.home() / ".chatlens" / "config.yaml",
    ]

    config_data: dict[str, Any] = {}
    for search_path in search_paths:
        if search_path is not None and Path(search_path).exists():
            config_data = _read_config_file(Path(search_path))
            logger.debug(f"Loaded configuration from {search_path}")
            break

    try:
        sections: dict[str, Any] = {}
        for key, model in (("ai", AIConfig), ("vertex", VertexConfig), ("paths", PathsConfig)):
            section = config_data.get(key)
            if isinstance(section, dict) and section:
                sections[key] = model(**section)
        for flag in ("debug", "verbose"):
            if flag in config_data:
                sections[flag] = bool(config_data[flag])
        return AppConfig(**sections)
    except Exception as e:
        logger.warning(f"Error parsing config values: {e}. Using defaults.")
        return AppConfig()


@functools.lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Get the cached configuration singleton.

    Returns:
        Cached AppConfig instance.
    """
    return load_config()


def reset_config() -> None:
    """Clear the configuration cache for testing.

    After calling this, the next call to get_config() will reload
    configuration from sources.
    """
    get_config.cache_clear()
