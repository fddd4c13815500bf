"""Chat model used for summaries — PydanticAI agent behind a small protocol."""

from __future__ import annotations

import logging
import os
from typing import Protocol, Sequence

from pydantic_ai import Agent
from pydantic_ai.messages import ModelRequest, UserPromptPart

logger = logging.getLogger(__name__)

# Variables pydantic-ai reads for providers whose name does not map to
# <PROVIDER>_API_KEY
PROVIDER_KEY_ENV = {
    "google-gla": "GEMINI_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "cohere": "CO_API_KEY",
}


class SummarizationError(RuntimeError):
    """The chat model call failed."""


class ChatModel(Protocol):
    """Anything that turns a list of user messages into a reply."""

    async def chat(self, messages: Sequence[str]) -> str: ...


def parse_model_name(model: str) -> tuple[str, str]:
    """Split ``provider:model`` (or ``provider://model``) into its parts."""
    value = model.strip().replace("://", ":", 1)
    provider, sep, name = value.partition(":")
    if not sep or not provider or not name:
        raise ValueError(f"Invalid model {model!r}: expected 'provider:model', e.g. 'openai:gpt-4o-mini'")
    return provider, name


class PydanticAIChatModel:
    """Sends each message as its own user turn through a PydanticAI agent.

    The earlier messages go in as history and the last one is the prompt
    the agent answers.
    """

    def __init__(self, model: str) -> None:
        provider, name = parse_model_name(model)
        self.model = f"{provider}:{name}"
        self._agent = Agent(self.model)

    async def chat(self, messages: Sequence[str]) -> str:
        *history, prompt = messages
        result = await self._agent.run(
            prompt,
            message_history=[ModelRequest(parts=[UserPromptPart(content=m)]) for m in history] or None,
        )
        return str(result.output)


def api_key_env(provider: str) -> str:
    """Environment variable holding the API key for *provider*."""
    return PROVIDER_KEY_ENV.get(provider, f"{provider.upper().replace('-', '_')}_API_KEY")


def build_chat_model(model: str, api_key: str = "") -> PydanticAIChatModel:
    """Build the chat model, exporting *api_key* for its provider when given."""
    provider, _ = parse_model_name(model)
    if api_key:
        env_name = api_key_env(provider)
        os.environ.setdefault(env_name, api_key)
        logger.info("model api key provided", extra={"provider": provider, "env": env_name})
    else:
        logger.info("no model api key configured", extra={"provider": provider})
    return PydanticAIChatModel(model)
