"""Answer generation through an Agno agent.

The retrieval pipeline only needs ``complete(system_prompt, history,
user_message)``; this module provides that capability on top of Agno's
Agent and OpenAIChat model.

Each call builds a short-lived Agent whose system message is the grounded
prompt for that question. The model client is created once and shared.
Failures are never turned into answer text: they propagate so the caller
decides how to present them.
"""

import logging
from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from agno.agent import Agent
from agno.models.message import Message
from agno.models.openai import OpenAIChat

from docchat.agent.config import GeneratorConfig, get_generator_config
from docchat.models.schemas import ChatMessage, Completion

logger = logging.getLogger(__name__)


class GenerationError(RuntimeError):
    """Raised when the agent run finishes in an error state without raising."""


@runtime_checkable
class Generator(Protocol):
    """Chat-completion capability consumed by the RAG service."""

    async def complete(
        self,
        system_prompt: str,
        history: Sequence[ChatMessage],
        user_message: str,
    ) -> Completion: ...


def _total_tokens(response: object) -> int:
    metrics = getattr(response, "metrics", None)
    if metrics is None:
        return 0
    if isinstance(metrics, dict):
        total = metrics.get("total_tokens", 0)
        # Older run outputs report one count per model call
        return sum(total) if isinstance(total, list) else int(total or 0)
    return int(getattr(metrics, "total_tokens", 0) or 0)


class AgnoGenerator:
    """Generator backed by an Agno agent with an OpenAI-compatible model."""

    def __init__(self, config: GeneratorConfig | None = None) -> None:
        """Initialize the generator.

        Args:
            config: Optional generator configuration.
                    Loads from environment if not provided.
        """
        self._config = config or get_generator_config()
        self._model = self._create_model()

    def _create_model(self) -> OpenAIChat:
        """Create the shared chat model client."""
        options: dict[str, object] = {
            "id": self._config.model_name,
            "api_key": self._config.api_key,
            "temperature": self._config.temperature,
            "max_tokens": self._config.max_tokens,
        }
        if self._config.base_url:
            options["base_url"] = self._config.base_url
        if self._config.request_timeout:
            options["timeout"] = self._config.request_timeout
        return OpenAIChat(**options)

    def _create_agent(self, system_prompt: str) -> Agent:
        return Agent(
            model=self._model,
            system_message=system_prompt,
            description="Answers questions about uploaded documents from retrieved context.",
        )

    async def complete(
        self,
        system_prompt: str,
        history: Sequence[ChatMessage],
        user_message: str,
    ) -> Completion:
        """Generate an answer.

        Args:
            system_prompt: Instructions including the retrieved context.
            history: Earlier conversation turns, oldest first.
            user_message: The question to answer.

        Returns:
            Completion with the answer text and total tokens used.

        Raises:
            GenerationError: If the agent run ends in an error state.
            Exception: Provider errors are propagated unchanged.
        """
        agent = self._create_agent(system_prompt)
        messages = [Message(role=m.role, content=m.content) for m in history]
        messages.append(Message(role="user", content=user_message))

        response = await agent.arun(messages)

        status = getattr(response, "status", None)
        if str(getattr(status, "value", status)).lower() == "error":
            raise GenerationError(f"Generation failed: {response.content}")

        content = response.content
        text = content if isinstance(content, str) else str(content or "")
        tokens = _total_tokens(response)
        logger.debug(f"Generated {len(text)} chars using {tokens} tokens")
        return Completion(text=text, tokens_used=tokens)
