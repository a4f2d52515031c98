"""Chat completion gateway: the model side of the agent loop."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Protocol

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage
from langchain_core.tools import BaseTool

from rag_assistant.config import ChatConfig
from rag_assistant.errors import ConfigurationError

logger = logging.getLogger(__name__)


class ChatGateway(Protocol):
    """Stateless completion call.

    Returns an `AIMessage` whose `tool_calls` are the model's directives; an
    empty `tool_calls` list means the text content is the final answer.
    """

    def complete(
        self,
        messages: Sequence[BaseMessage],
        tools: Sequence[BaseTool] | None = None,
    ) -> AIMessage:
        """Run one completion over the full message list."""


class LangChainChatGateway:
    """Adapts any LangChain chat model to `ChatGateway`."""

    def __init__(self, llm: BaseChatModel) -> None:
        self.llm = llm

    def complete(
        self,
        messages: Sequence[BaseMessage],
        tools: Sequence[BaseTool] | None = None,
    ) -> AIMessage:
        runnable: Any = self.llm.bind_tools(list(tools)) if tools else self.llm
        response = runnable.invoke(list(messages))
        if isinstance(response, AIMessage):
            return response
        return AIMessage(content=message_text(response))


def create_chat_model(config: ChatConfig) -> BaseChatModel:
    """Create the OpenAI-compatible chat model (DeepSeek works via `base_url`)."""

    if not config.api_key:
        raise ConfigurationError(
            "No chat API key configured; set OPENAI_API_KEY (and OPENAI_BASE_URL for other providers)."
        )

    from langchain_openai import ChatOpenAI

    logger.info("Using chat model %s", config.model)
    return ChatOpenAI(
        model=config.model,
        api_key=config.api_key,
        base_url=config.base_url,
        temperature=config.temperature,
        timeout=config.timeout_seconds,
    )


def message_text(message: Any) -> str:
    """Flatten a message's content (string or content blocks) into text."""

    if isinstance(message, dict):
        return str(message.get("content", ""))
    content = getattr(message, "content", message)
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict):
                if item.get("type", "text") == "text" and "text" in item:
                    parts.append(str(item["text"]))
            else:
                parts.append(str(item))
        return "".join(parts).strip()
    return str(content)
