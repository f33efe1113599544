"""Reasoning service configuration.

Defines which LiteLLM provider/model answers analysis tasks.
Supports Claude, OpenAI, Gemini, Ollama and Bedrock.
"""

from dataclasses import dataclass, field
from typing import Any

# Valid LLM providers
VALID_PROVIDERS = frozenset({"claude", "openai", "gemini", "ollama", "bedrock"})

# LiteLLM model prefix per provider
_LITELLM_PREFIXES = {
    "claude": "anthropic",
    "openai": "openai",
    "gemini": "gemini",
    "ollama": "ollama",
    "bedrock": "bedrock",
}


@dataclass
class LLMConfig:
    """Configuration for the reasoning provider.

    Attributes:
        provider: LLM provider (claude, openai, gemini, ollama, bedrock)
        model: Model identifier (e.g., "claude-sonnet-4-5", "gpt-4o")
        api_key: API key (not required for Ollama or Bedrock)
        api_base: API base URL (required for Ollama)
        temperature: Default sampling temperature, in [0, 1]
        max_tokens: Default maximum response tokens
        enabled: Whether analysis tasks call the provider at all
    """

    provider: str
    model: str
    api_key: str | None = None
    api_base: str | None = None
    temperature: float = field(default=0.3)
    max_tokens: int = field(default=4096)
    enabled: bool = field(default=True)

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self.provider = self.provider.lower().strip()

        if self.provider not in VALID_PROVIDERS:
            raise ValueError(
                f"Invalid provider '{self.provider}'. "
                f"Must be one of: {sorted(VALID_PROVIDERS)}"
            )

        if not self.model or not self.model.strip():
            raise ValueError("Model identifier cannot be empty")
        self.model = self.model.strip()

        if not 0.0 <= self.temperature <= 1.0:
            raise ValueError(f"temperature must be between 0 and 1. Got: {self.temperature}")

        if self.max_tokens <= 0:
            raise ValueError(f"max_tokens must be positive. Got: {self.max_tokens}")

        # Provider-specific validation
        if self.provider == "ollama":
            if not self.api_base:
                raise ValueError("api_base is required for Ollama provider")
        elif self.provider == "bedrock":
            # Bedrock reads AWS credentials from the environment
            pass
        elif not self.api_key:
            raise ValueError(f"api_key is required for {self.provider} provider")

    def validate(self) -> list[str]:
        """Validate configuration and return warnings.

        Returns:
            List of warning messages (empty if no warnings)
        """
        warnings: list[str] = []

        if self.max_tokens < 1000:
            warnings.append(
                f"max_tokens is set to {self.max_tokens}, which may truncate structured output"
            )

        if self.api_base and not self.api_base.startswith(("http://", "https://")):
            warnings.append(f"api_base '{self.api_base}' does not start with http:// or https://")

        return warnings

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "provider": self.provider,
            "model": self.model,
            "api_key": self.api_key,
            "api_base": self.api_base,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "enabled": self.enabled,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LLMConfig":
        """Create LLMConfig from dictionary.

        Args:
            data: Dictionary with configuration values

        Returns:
            LLMConfig instance
        """
        return cls(
            provider=str(data.get("provider", "")),
            model=str(data.get("model", "")),
            api_key=data.get("api_key") or None,
            api_base=data.get("api_base") or None,
            temperature=float(data.get("temperature", 0.3)),
            max_tokens=int(data.get("max_tokens", 4096)),
            enabled=bool(data.get("enabled", True)),
        )

    def get_litellm_model_name(self) -> str:
        """Get the model name in LiteLLM ``provider/model`` format."""
        prefix = _LITELLM_PREFIXES[self.provider]
        if self.model.startswith(f"{prefix}/"):
            return self.model
        return f"{prefix}/{self.model}"
