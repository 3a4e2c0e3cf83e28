from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Optional

import httpx
from openai import OpenAI, OpenAIError
from openai.types.chat import ChatCompletionChunk


logger = logging.getLogger("consultation.llm")

# Errors the SDK lets through while a stream is being read.
STREAM_ERRORS = (OpenAIError, httpx.HTTPError, ValueError)


class ChatCompletionError(RuntimeError):
    """Raised when the completion provider rejects the call or the stream breaks."""


class ChatCompletionClient:
    """
    Thin wrapper over the OpenAI SDK's streaming chat completion iterator.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 120.0,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.client = OpenAI(
            api_key=api_key,
            base_url=self.base_url,
            timeout=timeout,
            max_retries=0,
            http_client=http_client,
        )

    def stream_chat(
        self,
        *,
        model: str,
        messages: List[Dict[str, Any]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> Iterator[str]:
        """
        Open a streaming completion and return an iterator of text fragments.

        The HTTP request is sent before this method returns, so connection
        failures and error statuses surface here rather than on first iteration.
        """
        options: Dict[str, Any] = {}
        if temperature is not None:
            options["temperature"] = temperature
        if max_tokens:
            options["max_tokens"] = max_tokens
        try:
            stream = self.client.chat.completions.create(
                model=model,
                messages=messages,
                stream=True,
                **options,
            )
        except OpenAIError as exc:
            raise ChatCompletionError(f"Completion request failed: {exc}") from exc
        logger.debug("Opened completion stream model=%s messages=%d", model, len(messages))
        return self._iter_fragments(stream)

    def _iter_fragments(self, stream: Any) -> Iterator[str]:
        try:
            for chunk in stream:
                fragment = delta_text(chunk)
                if fragment:
                    yield fragment
        except STREAM_ERRORS as exc:
            raise ChatCompletionError(f"Completion stream interrupted: {exc}") from exc
        finally:
            stream.close()


def delta_text(chunk: ChatCompletionChunk) -> str:
    # usage-only chunks carry no choices
    if not chunk.choices:
        return ""
    delta = chunk.choices[0].delta
    if delta is None or not isinstance(delta.content, str):
        return ""
    return delta.content
