"""RepoLens configuration system.

Configuration is YAML-based with a handful of CLI overrides (--config, --depth).
Supports environment variable substitution (${VAR}) in config files.

Configuration file discovery (in priority order):
1. CLI --config argument
2. ./.repolens/config.yaml
3. ./repolens.yaml
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from repolens.models.job import AnalysisDepth
from repolens.models.llm_config import LLMConfig

DEFAULT_IGNORE_PATTERNS: tuple[str, ...] = (
    "node_modules/",
    ".git/",
    "dist/",
    "build/",
    "coverage/",
    ".next/",
    "__pycache__/",
    "*.pyc",
    ".venv/",
    "venv/",
    "vendor/",
    "*.min.js",
    "*.min.css",
    "*.map",
    "*.lock",
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    ".DS_Store",
)

# =============================================================================
# Configuration Dataclasses
# =============================================================================


@dataclass
class SourceConfig:
    """Source access configuration.

    Attributes:
        temp_dir: Directory for checkouts (system temp dir when None)
        clone_timeout: Clone timeout in seconds
        max_file_bytes: Files larger than this are unreadable
        tree_depth: Maximum directory tree depth
        ignore_patterns: Glob patterns excluded from listings
        tokens: Access tokens keyed by platform (github, gitlab, bitbucket)
    """

    temp_dir: str | None = None
    clone_timeout: float = 300.0
    max_file_bytes: int = 1024 * 1024
    tree_depth: int = 5
    ignore_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_IGNORE_PATTERNS))
    tokens: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate source configuration."""
        if self.clone_timeout <= 0:
            raise ValueError(f"clone_timeout must be positive (got {self.clone_timeout})")
        if self.max_file_bytes <= 0:
            raise ValueError(f"max_file_bytes must be positive (got {self.max_file_bytes})")


@dataclass
class PipelineConfig:
    """Pipeline coordinator configuration.

    Attributes:
        task_timeout: Default reasoning call timeout in seconds
        stage_timeout: Timeout for source access calls other than clone
        file_limits: Files inspected per analysis depth
        max_analysis_file_bytes: Files at or above this size are never inspected
        batch_concurrency: Jobs run at once by a batch submission
        max_batch_size: Largest accepted batch
        registry_size: Jobs kept in the in-memory registry
        subscriber_queue_size: Progress snapshots buffered per subscriber
    """

    task_timeout: float = 60.0
    stage_timeout: float = 120.0
    file_limits: dict[str, int] = field(
        default_factory=lambda: {"quick": 20, "standard": 50, "deep": 100}
    )
    max_analysis_file_bytes: int = 500_000
    batch_concurrency: int = 3
    max_batch_size: int = 10
    registry_size: int = 1000
    subscriber_queue_size: int = 100

    def __post_init__(self) -> None:
        """Validate pipeline configuration."""
        for depth in AnalysisDepth:
            if self.file_limits.get(depth.value, 0) <= 0:
                raise ValueError(f"file_limits.{depth.value} must be a positive integer")
        if self.batch_concurrency < 1:
            raise ValueError(f"batch_concurrency must be >= 1 (got {self.batch_concurrency})")
        if self.max_batch_size < 1:
            raise ValueError(f"max_batch_size must be >= 1 (got {self.max_batch_size})")
        if self.registry_size < 1:
            raise ValueError(f"registry_size must be >= 1 (got {self.registry_size})")

    def file_limit(self, depth: AnalysisDepth) -> int:
        """Return how many files are inspected at a depth."""
        return self.file_limits[depth.value]


@dataclass
class CacheConfig:
    """Result cache configuration.

    Attributes:
        backend: "memory" or "http"
        url: Base URL of the HTTP cache service
        api_key: Bearer token for the HTTP cache service
        ttl_days: Entry lifetime in days
        timeout: Cache call timeout in seconds
        enabled: Whether results are cached at all
    """

    backend: str = "memory"
    url: str | None = None
    api_key: str | None = None
    ttl_days: int = 7
    timeout: float = 5.0
    enabled: bool = True

    def __post_init__(self) -> None:
        """Validate cache configuration."""
        valid_backends = {"memory", "http"}
        if self.backend not in valid_backends:
            raise ValueError(f"Invalid cache backend: {self.backend}. Valid: {valid_backends}")
        if self.backend == "http" and not self.url:
            raise ValueError("cache.url is required for the http backend")

    @property
    def ttl_seconds(self) -> int:
        """Return the entry lifetime in seconds."""
        return self.ttl_days * 24 * 60 * 60


@dataclass
class NotificationConfig:
    """Notification delivery configuration.

    Attributes:
        timeout: Webhook delivery timeout in seconds
        user_agent: User-Agent header sent with webhooks
    """

    timeout: float = 10.0
    user_agent: str = "RepoLens-Webhook/1.0"


@dataclass
class RepoLensConfig:
    """Top-level RepoLens configuration.

    Attributes:
        llm: Reasoning provider settings
        source: Source access settings
        pipeline: Coordinator settings
        cache: Result cache settings
        notifications: Webhook settings
    """

    llm: LLMConfig = field(
        default_factory=lambda: LLMConfig(
            provider="ollama", model="llama3.2", api_base="http://localhost:11434"
        )
    )
    source: SourceConfig = field(default_factory=SourceConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)

    _config_path: Path | None = field(default=None, repr=False)

    @property
    def config_path(self) -> Path | None:
        """Get the path to the config file that was loaded."""
        return self._config_path


# =============================================================================
# Environment Variable Substitution
# =============================================================================

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def substitute_env_vars(value: Any) -> Any:
    """Substitute environment variables in config values.

    Supports ${VAR} syntax. Example: ${GITHUB_TOKEN} -> value of GITHUB_TOKEN

    Args:
        value: Config value (string, dict, list, or other)

    Returns:
        Value with environment variables substituted

    Raises:
        ValueError: If a referenced variable is not set
    """
    if isinstance(value, str):

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ValueError(f"Environment variable not set: {var_name}")
            return env_value

        return _ENV_VAR_PATTERN.sub(replace_var, value)

    elif isinstance(value, dict):
        return {k: substitute_env_vars(v) for k, v in value.items()}

    elif isinstance(value, list):
        return [substitute_env_vars(v) for v in value]

    return value


# =============================================================================
# Config File Discovery
# =============================================================================


def find_config_file(start_path: Path | None = None) -> Path | None:
    """Find configuration file in standard locations.

    Search order:
    1. ./.repolens/config.yaml
    2. ./repolens.yaml

    Args:
        start_path: Starting directory for search (defaults to cwd)

    Returns:
        Path to config file if found, None otherwise
    """
    if start_path is None:
        start_path = Path.cwd()

    start_path = start_path.resolve()

    candidates = [
        start_path / ".repolens" / "config.yaml",
        start_path / "repolens.yaml",
    ]

    for candidate in candidates:
        if candidate.exists():
            return candidate

    return None


# =============================================================================
# Config Loading
# =============================================================================


def load_config_from_dict(data: dict[str, Any]) -> RepoLensConfig:
    """Load configuration from a dictionary.

    Args:
        data: Configuration dictionary

    Returns:
        RepoLensConfig instance

    Raises:
        ValueError: If a section fails validation
    """
    data = substitute_env_vars(data)

    config = RepoLensConfig()

    if "llm" in data:
        llm_data = dict(data["llm"] or {})
        llm_data.setdefault("provider", config.llm.provider)
        llm_data.setdefault("model", config.llm.model)
        if llm_data["provider"] == "ollama":
            llm_data.setdefault("api_base", "http://localhost:11434")
        config.llm = LLMConfig.from_dict(llm_data)

    if "source" in data:
        source_data = data["source"] or {}
        defaults = SourceConfig()
        config.source = SourceConfig(
            temp_dir=source_data.get("temp_dir", defaults.temp_dir),
            clone_timeout=float(source_data.get("clone_timeout", defaults.clone_timeout)),
            max_file_bytes=int(source_data.get("max_file_bytes", defaults.max_file_bytes)),
            tree_depth=int(source_data.get("tree_depth", defaults.tree_depth)),
            ignore_patterns=list(source_data.get("ignore_patterns", defaults.ignore_patterns)),
            tokens={k: str(v) for k, v in (source_data.get("tokens") or {}).items() if v},
        )

    if "pipeline" in data:
        pipeline_data = data["pipeline"] or {}
        defaults_p = PipelineConfig()
        file_limits = dict(defaults_p.file_limits)
        file_limits.update({k: int(v) for k, v in (pipeline_data.get("file_limits") or {}).items()})
        config.pipeline = PipelineConfig(
            task_timeout=float(pipeline_data.get("task_timeout", defaults_p.task_timeout)),
            stage_timeout=float(pipeline_data.get("stage_timeout", defaults_p.stage_timeout)),
            file_limits=file_limits,
            max_analysis_file_bytes=int(
                pipeline_data.get("max_analysis_file_bytes", defaults_p.max_analysis_file_bytes)
            ),
            batch_concurrency=int(
                pipeline_data.get("batch_concurrency", defaults_p.batch_concurrency)
            ),
            max_batch_size=int(pipeline_data.get("max_batch_size", defaults_p.max_batch_size)),
            registry_size=int(pipeline_data.get("registry_size", defaults_p.registry_size)),
            subscriber_queue_size=int(
                pipeline_data.get("subscriber_queue_size", defaults_p.subscriber_queue_size)
            ),
        )

    if "cache" in data:
        cache_data = data["cache"] or {}
        config.cache = CacheConfig(
            backend=cache_data.get("backend", "memory"),
            url=cache_data.get("url"),
            api_key=cache_data.get("api_key"),
            ttl_days=int(cache_data.get("ttl_days", 7)),
            timeout=float(cache_data.get("timeout", 5.0)),
            enabled=bool(cache_data.get("enabled", True)),
        )

    if "notifications" in data:
        notify_data = data["notifications"] or {}
        config.notifications = NotificationConfig(
            timeout=float(notify_data.get("timeout", 10.0)),
            user_agent=notify_data.get("user_agent", NotificationConfig.user_agent),
        )

    return config


def load_config(
    config_path: Path | None = None,
    auto_discover: bool = True,
) -> RepoLensConfig:
    """Load configuration from file.

    Args:
        config_path: Explicit path to config file
        auto_discover: Whether to search for config file if not specified

    Returns:
        RepoLensConfig instance

    Raises:
        FileNotFoundError: If config_path specified but doesn't exist
    """
    if config_path is not None:
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        found_path = config_path
    elif auto_discover:
        found_path = find_config_file()
    else:
        found_path = None

    if found_path is not None:
        with open(found_path) as f:
            data = yaml.safe_load(f) or {}
        config = load_config_from_dict(data)
        config._config_path = found_path
    else:
        config = RepoLensConfig()

    return config


def create_default_config() -> str:
    """Create default configuration YAML content.

    Returns:
        YAML string with default configuration and comments
    """
    return '''# RepoLens Configuration

# Reasoning provider (any LiteLLM-supported backend)
llm:
  provider: "ollama"     # ollama, claude, openai, gemini, bedrock
  model: "llama3.2"
  # api_key: "${ANTHROPIC_API_KEY}"  # Required for claude/openai/gemini
  api_base: "http://localhost:11434"
  temperature: 0.3
  max_tokens: 4096

# Repository access
source:
  clone_timeout: 300     # seconds
  max_file_bytes: 1048576
  tree_depth: 5
  # tokens:
  #   github: "${GITHUB_TOKEN}"
  #   gitlab: "${GITLAB_TOKEN}"

# Job pipeline
pipeline:
  task_timeout: 60       # seconds per analysis task
  file_limits:
    quick: 20
    standard: 50
    deep: 100
  batch_concurrency: 3
  max_batch_size: 10

# Result cache
cache:
  backend: "memory"      # memory, http
  # url: "https://cache.example.com"
  ttl_days: 7

# Webhook notifications
notifications:
  timeout: 10
'''
