"""Reasoning service integration for RepoLens.

Provides an async reasoning client over LiteLLM for multi-provider support
(Claude, OpenAI, Gemini, Ollama, Bedrock) and the per-category system prompts.
"""

from repolens.llm.client import (
    LiteLLMReasoningClient,
    ReasoningRequest,
    ReasoningResponse,
    ReasoningService,
    create_client,
    parse_structured_output,
)
from repolens.llm.prompts import SYSTEM_PROMPTS, get_system_prompt
from repolens.models.llm_config import VALID_PROVIDERS, LLMConfig

__all__ = [
    "LLMConfig",
    "LiteLLMReasoningClient",
    "ReasoningRequest",
    "ReasoningResponse",
    "ReasoningService",
    "SYSTEM_PROMPTS",
    "VALID_PROVIDERS",
    "create_client",
    "get_system_prompt",
    "parse_structured_output",
]
