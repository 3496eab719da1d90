"""Model-completion collaborator.

The plan engine treats the model as a single opaque call: an ordered list of
role-tagged messages and a token budget go in, free-form text comes out. The
only failure mode exposed to callers is CompletionError.
"""

from __future__ import annotations

import os
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal, Protocol

from loguru import logger
from pydantic_ai import Agent
from pydantic_ai.models.openai import OpenAIModel

from app.config.settings import settings


@dataclass(frozen=True)
class ChatMessage:
    role: Literal["system", "user"]
    content: str


class CompletionError(Exception):
    """Raised when the model returns no completion or the call fails."""

    pass


class CompletionClient(Protocol):
    async def complete(self, messages: Sequence[ChatMessage], max_tokens: int) -> str: ...


def get_model(provider: str, model_name: str) -> OpenAIModel:
    if provider == "openai":
        # pydantic_ai reads the key from the environment
        if settings.openai_api_key and not os.getenv("OPENAI_API_KEY"):
            os.environ["OPENAI_API_KEY"] = settings.openai_api_key
        return OpenAIModel(model_name)

    raise ValueError(f"Unsupported LLM provider: {provider}")


class PydanticAICompletionClient:
    """CompletionClient backed by a pydantic_ai Agent with plain text output."""

    def __init__(self, provider: str | None = None, model_name: str | None = None):
        self.provider = provider or settings.llm_provider
        self.model_name = model_name or settings.llm_model

    async def complete(self, messages: Sequence[ChatMessage], max_tokens: int) -> str:
        """Run one completion.

        System messages become the agent's system prompt; the remaining
        messages are joined, in order, into the user prompt.

        Raises:
            CompletionError: On any model failure or an empty completion
        """
        system_prompt = "\n\n".join(m.content for m in messages if m.role == "system")
        user_prompt = "\n\n".join(m.content for m in messages if m.role != "system")

        logger.debug(
            "Requesting model completion",
            provider=self.provider,
            model=self.model_name,
            max_tokens=max_tokens,
            prompt_chars=len(system_prompt) + len(user_prompt),
        )

        try:
            model = get_model(self.provider, self.model_name)
            agent = Agent(
                model=model,
                system_prompt=system_prompt,
                output_type=str,
            )
            result = await agent.run(user_prompt, model_settings={"max_tokens": max_tokens})
        except Exception as e:
            logger.error(
                "Model completion failed",
                provider=self.provider,
                model=self.model_name,
                error_type=type(e).__name__,
                error_message=str(e),
                exc_info=True,
            )
            raise CompletionError(f"Model completion failed: {type(e).__name__}: {e}") from e

        output = result.output
        if not output or not output.strip():
            logger.error("Model returned an empty completion", model=self.model_name)
            raise CompletionError("Model returned an empty completion")

        logger.debug("Model completion received", model=self.model_name, response_chars=len(output))
        return output
