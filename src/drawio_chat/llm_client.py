"""
Language-model client (Azure OpenAI or any OpenAI-compatible endpoint).
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Iterable, Optional

from openai import AsyncAzureOpenAI, AsyncOpenAI
from openai.types.chat import (
    ChatCompletion,
    ChatCompletionChunk,
    ChatCompletionMessageParam,
    ChatCompletionToolParam,
)

from drawio_chat.config import LlmSettings

logger = logging.getLogger("drawio-chat")


class LlmClient:
    """Thin wrapper over the ``openai`` SDK; the SDK client is created lazily."""

    def __init__(self, settings: LlmSettings, client: Optional[AsyncOpenAI] = None) -> None:
        self.settings = settings
        self._client = client

    @property
    def model(self) -> str:
        return self.settings.model_name

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = self._create_client()
        return self._client

    def _create_client(self) -> AsyncOpenAI:
        s = self.settings
        if s.provider == "azure":
            return AsyncAzureOpenAI(
                azure_endpoint=s.azure_endpoint,
                api_version=s.azure_api_version,
                api_key=s.azure_api_key,
            )
        return AsyncOpenAI(api_key=s.api_key, base_url=s.base_url)

    def _request(
        self,
        messages: Iterable[ChatCompletionMessageParam],
        tools: Optional[list[ChatCompletionToolParam]],
        tool_choice: Optional[str],
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"model": self.model, "messages": list(messages)}
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = tool_choice or self.settings.tool_choice
        return kwargs

    async def complete(
        self,
        messages: Iterable[ChatCompletionMessageParam],
        tools: Optional[list[ChatCompletionToolParam]] = None,
        tool_choice: Optional[str] = None,
    ) -> ChatCompletion:
        logger.info("Using LLM: %s (%s)", self.settings.provider, self.model)
        return await self.client.chat.completions.create(
            **self._request(messages, tools, tool_choice)
        )

    async def stream(
        self,
        messages: Iterable[ChatCompletionMessageParam],
        tools: Optional[list[ChatCompletionToolParam]] = None,
        tool_choice: Optional[str] = None,
    ) -> AsyncIterator[ChatCompletionChunk]:
        logger.info("Using LLM (stream): %s (%s)", self.settings.provider, self.model)
        return await self.client.chat.completions.create(
            stream=True, **self._request(messages, tools, tool_choice)
        )
