"""Reasoning service client using LiteLLM.

Provides one async interface over every LiteLLM provider. Each call is
bounded by a timeout; any failure (provider error, timeout, empty response)
surfaces as ReasoningError so the pipeline can record it against the task.
"""

import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import litellm

from repolens.errors import ReasoningError
from repolens.models.llm_config import LLMConfig
from repolens.models.tasks import OutputShape, TaskCategory

logger = logging.getLogger(__name__)

_JSON_FENCE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)


@dataclass
class ReasoningRequest:
    """One call to the reasoning service.

    Attributes:
        task_id: Task being executed
        category: Task category
        prompt: Rendered task content
        system_prompt: Category system prompt
        max_output_tokens: Output token ceiling
        timeout: Call timeout in seconds
        temperature: Sampling temperature (provider default when None)
        output_shape: Expected output shape
    """

    task_id: str
    category: TaskCategory
    prompt: str
    system_prompt: str | None = None
    max_output_tokens: int = 4096
    timeout: float = 60.0
    temperature: float | None = None
    output_shape: OutputShape = OutputShape.STRUCTURED


@dataclass
class ReasoningResponse:
    """Response from the reasoning service.

    Attributes:
        output: Generated text
        tokens_used: Total tokens consumed by the call
        model: Model that produced the response
        finish_reason: Reason for completion (stop, length, etc.)
    """

    output: str
    tokens_used: int = 0
    model: str = ""
    finish_reason: str | None = None


class ReasoningService(ABC):
    """Interface of the external reasoning service."""

    @abstractmethod
    async def complete(self, request: ReasoningRequest) -> ReasoningResponse:
        """Run one reasoning call.

        Raises:
            ReasoningError: If the call fails or times out
        """


class LiteLLMReasoningClient(ReasoningService):
    """Reasoning service backed by ``litellm.acompletion``.

    Supports multiple providers through a single interface:
    - Claude (Anthropic)
    - OpenAI
    - Gemini (Google)
    - Ollama (local)
    - Bedrock (AWS)
    """

    def __init__(self, config: LLMConfig) -> None:
        """Initialize the client.

        Args:
            config: LLM configuration with provider, model, and credentials
        """
        self.config = config

    def _completion_kwargs(self, request: ReasoningRequest) -> dict[str, Any]:
        messages: list[dict[str, str]] = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.prompt})

        kwargs: dict[str, Any] = {
            "model": self.config.get_litellm_model_name(),
            "messages": messages,
            "temperature": (
                request.temperature if request.temperature is not None else self.config.temperature
            ),
            "max_tokens": request.max_output_tokens or self.config.max_tokens,
            "timeout": request.timeout,
        }
        if self.config.api_key:
            kwargs["api_key"] = self.config.api_key
        if self.config.api_base:
            kwargs["api_base"] = self.config.api_base
        return kwargs

    async def complete(self, request: ReasoningRequest) -> ReasoningResponse:
        """Run one reasoning call with a bounded timeout.

        Args:
            request: Reasoning request

        Returns:
            ReasoningResponse with generated text and token usage

        Raises:
            ReasoningError: If the call fails, times out or returns nothing
        """
        kwargs = self._completion_kwargs(request)
        logger.debug(
            "Reasoning call for %s (%s, max_tokens=%d, timeout=%.0fs)",
            request.task_id,
            kwargs["model"],
            kwargs["max_tokens"],
            request.timeout,
        )

        try:
            response = await asyncio.wait_for(
                litellm.acompletion(**kwargs), timeout=request.timeout
            )
        except TimeoutError as e:
            raise ReasoningError(
                f"Task {request.task_id} timed out after {request.timeout:.0f}s"
            ) from e
        except litellm.exceptions.AuthenticationError as e:
            raise ReasoningError(f"Authentication failed for {self.config.provider}: {e}") from e
        except litellm.exceptions.RateLimitError as e:
            raise ReasoningError(f"Rate limit exceeded for {self.config.provider}: {e}") from e
        except litellm.exceptions.APIConnectionError as e:
            raise ReasoningError(f"Connection failed to {self.config.provider}: {e}") from e
        except Exception as e:
            raise ReasoningError(f"Reasoning call for {request.task_id} failed: {e}") from e

        if not response.choices:
            raise ReasoningError(f"Reasoning call for {request.task_id} returned no choices")

        choice = response.choices[0]
        content = choice.message.content or ""
        if not content.strip():
            raise ReasoningError(f"Reasoning call for {request.task_id} returned empty output")

        tokens_used = 0
        usage = getattr(response, "usage", None)
        if usage:
            tokens_used = usage.total_tokens or (
                (usage.prompt_tokens or 0) + (usage.completion_tokens or 0)
            )

        return ReasoningResponse(
            output=content,
            tokens_used=tokens_used,
            model=response.model or self.config.model,
            finish_reason=choice.finish_reason,
        )

    async def check_available(self) -> bool:
        """Check whether the provider answers a minimal request.

        Returns:
            True if provider is reachable and credentials are valid
        """
        request = ReasoningRequest(
            task_id="preflight",
            category=TaskCategory.ARCHITECTURE,
            prompt="Say 'ok'",
            max_output_tokens=10,
            timeout=30.0,
            output_shape=OutputShape.TEXT,
        )
        try:
            await self.complete(request)
        except ReasoningError as e:
            logger.debug("Reasoning provider unavailable: %s", e)
            return False
        return True


def parse_structured_output(text: str) -> Any | None:
    """Parse JSON from a reasoning response.

    Uses the first fenced block (```json or bare ```) when present, otherwise
    the whole text.

    Args:
        text: Response text

    Returns:
        Parsed JSON value, or None if the text is not valid JSON
    """
    match = _JSON_FENCE.search(text)
    candidate = match.group(1) if match else text.strip()
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        logger.debug("Response is not valid JSON (%d chars)", len(text))
        return None


def create_client(config: LLMConfig) -> LiteLLMReasoningClient:
    """Create a reasoning client from configuration.

    Args:
        config: LLM configuration

    Returns:
        Configured LiteLLMReasoningClient instance

    Raises:
        ValueError: If LLM is disabled in config
    """
    if not config.enabled:
        raise ValueError("LLM is disabled in configuration")

    return LiteLLMReasoningClient(config)
