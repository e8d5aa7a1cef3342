"""Chat-model access behind a single prompt-in, text-out contract."""

from __future__ import annotations

import logging
from typing import Any, Protocol

import openai
from langchain_core.messages import HumanMessage, SystemMessage

from sap_assistant.config import LLMConfig
from sap_assistant.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)


class LanguageModel(Protocol):
    """Minimal contract every pipeline stage uses to reach the model."""

    async def complete(
        self, system_prompt: str, user_prompt: str, *, json_mode: bool = False
    ) -> str:
        """Return the model's reply text (a JSON object when ``json_mode``)."""


class ChatModelClient:
    """Adapts a LangChain chat model to the ``LanguageModel`` contract.

    Transport, authentication and quota failures are raised as
    ``UpstreamUnavailable``; nothing is retried or guessed here.
    """

    def __init__(self, chat_model: Any, *, model_name: str = "") -> None:
        self.chat_model = chat_model
        self.model_name = model_name or str(getattr(chat_model, "model_name", ""))

    async def complete(
        self, system_prompt: str, user_prompt: str, *, json_mode: bool = False
    ) -> str:
        messages = [SystemMessage(content=system_prompt), HumanMessage(content=user_prompt)]
        runnable = (
            self.chat_model.bind(response_format={"type": "json_object"})
            if json_mode
            else self.chat_model
        )
        logger.info(
            "Requesting %s response from model %s",
            "JSON" if json_mode else "text",
            self.model_name,
        )
        try:
            result = await runnable.ainvoke(messages)
        except openai.APIStatusError as exc:
            logger.error("Model call failed with status %s: %s", exc.status_code, exc.message)
            raise UpstreamUnavailable(exc.message, status_code=exc.status_code) from exc
        except openai.APIError as exc:
            logger.error("Model call failed: %s", exc)
            raise UpstreamUnavailable(
                str(exc) or "No response received from AI service."
            ) from exc

        content = message_text(result)
        if not content.strip():
            logger.error("Unexpected empty response from model %s", self.model_name)
            raise UpstreamUnavailable("Invalid response structure from AI.")
        return content


def message_text(message: Any) -> str:
    """Flatten a chat message (or plain string) into text."""
    if isinstance(message, str):
        return message
    content = getattr(message, "content", message)
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict) and "text" in item:
                parts.append(str(item["text"]))
            else:
                parts.append(str(item))
        return " ".join(parts).strip()
    return str(content)


def create_chat_model(config: LLMConfig) -> ChatModelClient | None:
    """Build the default client, or ``None`` when no API key is configured."""
    if not config.configured:
        return None

    from langchain_openai import ChatOpenAI

    chat_model = ChatOpenAI(
        model=config.model,
        temperature=config.temperature,
        api_key=config.api_key,
        base_url=config.base_url,
    )
    return ChatModelClient(chat_model, model_name=config.model)
