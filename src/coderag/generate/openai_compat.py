"""OpenAI-compatible chat provider.

Works with any server implementing the OpenAI /v1/chat/completions API:
OpenAI, OpenRouter, LiteLLM proxy, vLLM, Ollama (OpenAI-compat mode), etc.
"""

from __future__ import annotations

import json
import logging
import os
from typing import TYPE_CHECKING
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from coderag.exceptions import GenerationError
from coderag.generate.base import BaseGenerator
from coderag.types import ChatResponse

if TYPE_CHECKING:
    from collections.abc import Callable

    from coderag.config import CoderagConfig
    from coderag.types import ChatMessage

__all__ = ["OpenAICompatGenerator"]

logger = logging.getLogger(__name__)

_DEFAULT_BASE_URL = "https://api.openai.com/v1"
_SSE_DATA = "data:"
_SSE_DONE = "[DONE]"


class OpenAICompatGenerator(BaseGenerator):
    """Chat provider using any OpenAI-compatible /chat/completions endpoint.

    Streaming uses server-sent events: ``data: {json}`` lines terminated by
    ``data: [DONE]``.

    Config fields used::

        [llm]
        provider = "openai"
        model = "gpt-4o-mini"
        api_key_env = "OPENAI_API_KEY"   # env var name; empty = no auth
        base_url = ""                     # empty = https://api.openai.com/v1
        temperature = 0.7
    """

    _DEFAULT_TIMEOUT = 120  # seconds

    def __init__(self, config: CoderagConfig) -> None:
        self._model = config.llm.model
        self._base_url = (config.llm.base_url or _DEFAULT_BASE_URL).rstrip("/")
        self._temperature = config.llm.temperature
        self._api_key_env = config.llm.api_key_env
        self._api_key: str | None = None
        if self._api_key_env:
            self._api_key = os.environ.get(self._api_key_env)
            if not self._api_key:
                logger.warning(
                    "API key env var %s is not set; requests may fail", self._api_key_env
                )

    @property
    def name(self) -> str:
        return "OpenAI-compatible"

    def is_available(self) -> bool:
        return not self._api_key_env or bool(self._api_key)

    def chat(self, messages: list[ChatMessage]) -> ChatResponse:
        with self._open(messages, stream=False) as resp:
            body = resp.read()
        try:
            data = json.loads(body)
            content = data["choices"][0]["message"]["content"] or ""
        except json.JSONDecodeError as e:
            raise GenerationError(f"Chat API returned invalid JSON from {self._base_url}") from e
        except (KeyError, IndexError, TypeError) as e:
            raise GenerationError(
                f"Unexpected response format from {self._base_url}: missing message content"
            ) from e
        logger.info("Chat completed via OpenAI-compatible API (%s)", self._model)
        return ChatResponse(content=content, done=True)

    def stream_chat(
        self,
        messages: list[ChatMessage],
        callback: Callable[[ChatResponse], None],
    ) -> None:
        content = ""
        try:
            with self._open(messages, stream=True) as resp:
                for raw in resp:
                    line = raw.decode("utf-8").strip()
                    if not line.startswith(_SSE_DATA):
                        continue
                    data = line[len(_SSE_DATA) :].strip()
                    if data == _SSE_DONE:
                        break
                    try:
                        event = json.loads(data)
                        delta = event["choices"][0].get("delta", {}).get("content") or ""
                    except (json.JSONDecodeError, KeyError, IndexError, TypeError):
                        logger.debug("Skipping unreadable stream event: %r", data[:80])
                        continue
                    if delta:
                        content += delta
                        callback(ChatResponse(content=content, done=False))
        except (ConnectionError, TimeoutError) as e:
            raise GenerationError(f"Chat stream interrupted: {e}") from e
        callback(ChatResponse(content=content, done=True))
        logger.info("Chat stream completed via OpenAI-compatible API (%s)", self._model)

    def _open(self, messages: list[ChatMessage], *, stream: bool):  # noqa: ANN202
        url = f"{self._base_url}/chat/completions"
        payload = json.dumps(
            {
                "model": self._model,
                "messages": [{"role": m.role, "content": m.content} for m in messages],
                "temperature": self._temperature,
                "stream": stream,
            }
        ).encode("utf-8")

        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        req = Request(url, data=payload, headers=headers)

        try:
            return urlopen(req, timeout=self._DEFAULT_TIMEOUT)
        except HTTPError as e:
            raise GenerationError(f"Chat API error (HTTP {e.code}): {e.reason}") from e
        except (ConnectionError, URLError, TimeoutError) as e:
            raise GenerationError(f"Chat API not reachable at {self._base_url}. Error: {e}") from e
