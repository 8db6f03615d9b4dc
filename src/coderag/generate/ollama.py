"""Ollama chat provider using the native /api/chat endpoint."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from coderag.embed.ollama import DEFAULT_OLLAMA_URL, ollama_is_running
from coderag.exceptions import GenerationError
from coderag.generate.base import BaseGenerator
from coderag.types import ChatResponse

if TYPE_CHECKING:
    from collections.abc import Callable

    from coderag.config import CoderagConfig
    from coderag.types import ChatMessage

__all__ = ["OllamaGenerator"]

logger = logging.getLogger(__name__)


class OllamaGenerator(BaseGenerator):
    """Chat provider using a local Ollama instance.

    Streaming responses arrive as newline-delimited JSON objects, each with a
    ``message.content`` fragment and a ``done`` flag.

    Config fields used::

        [llm]
        provider = "ollama"
        model = "llama3.2"
        base_url = ""           # empty = http://localhost:11434
        temperature = 0.7
    """

    _DEFAULT_TIMEOUT = 120  # seconds

    def __init__(self, config: CoderagConfig) -> None:
        self._model = config.llm.model
        self._base_url = (config.llm.base_url or DEFAULT_OLLAMA_URL).rstrip("/")
        self._temperature = config.llm.temperature

    @property
    def name(self) -> str:
        return "Ollama"

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def model(self) -> str:
        return self._model

    def is_available(self) -> bool:
        return ollama_is_running(self._base_url)

    def chat(self, messages: list[ChatMessage]) -> ChatResponse:
        with self._open(messages, stream=False) as resp:
            body = resp.read()
        try:
            data = json.loads(body)
        except json.JSONDecodeError as e:
            raise GenerationError(f"Ollama returned invalid JSON from {self._base_url}") from e
        content = data.get("message", {}).get("content", "")
        logger.info("Ollama chat completed (%s, %d chars)", self._model, len(content))
        return ChatResponse(content=content, done=True)

    def stream_chat(
        self,
        messages: list[ChatMessage],
        callback: Callable[[ChatResponse], None],
    ) -> None:
        content = ""
        done = False
        try:
            with self._open(messages, stream=True) as resp:
                for raw in resp:
                    line = raw.decode("utf-8").strip()
                    if not line:
                        continue
                    try:
                        event = json.loads(line)
                    except json.JSONDecodeError:
                        logger.debug("Skipping undecodable stream line: %r", line[:80])
                        continue
                    if "error" in event:
                        raise GenerationError(f"Ollama error: {event['error']}")
                    content += event.get("message", {}).get("content", "")
                    done = bool(event.get("done", False))
                    callback(ChatResponse(content=content, done=done))
                    if done:
                        break
        except (ConnectionError, TimeoutError) as e:
            raise GenerationError(f"Ollama stream interrupted: {e}") from e
        if not done:
            callback(ChatResponse(content=content, done=True))
        logger.info("Ollama stream completed (%s, %d chars)", self._model, len(content))

    def _open(self, messages: list[ChatMessage], *, stream: bool):  # noqa: ANN202
        url = f"{self._base_url}/api/chat"
        payload = json.dumps(
            {
                "model": self._model,
                "messages": [{"role": m.role, "content": m.content} for m in messages],
                "stream": stream,
                "options": {"temperature": self._temperature},
            }
        ).encode("utf-8")
        req = Request(url, data=payload, headers={"Content-Type": "application/json"})
        try:
            return urlopen(req, timeout=self._DEFAULT_TIMEOUT)
        except HTTPError as e:
            raise GenerationError(f"Ollama API error (HTTP {e.code}): {e.reason}") from e
        except (ConnectionError, URLError, TimeoutError) as e:
            raise GenerationError(
                f"Ollama not reachable at {self._base_url}. Is Ollama running? Error: {e}"
            ) from e
