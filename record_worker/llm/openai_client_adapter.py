from collections.abc import Iterator, Sequence
from typing import Any

import httpx
import openai

from record_worker.llm.client_base import BaseCompletionClient
from record_worker.llm.exceptions import LLMError, LLMNetworkError
from record_worker.rendering.base import PageImage


class OpenAIClientAdapter(BaseCompletionClient):
    """Streaming completion client built on the OpenAI-compatible chat API."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        timeout_seconds: int,
        base_url: str | None = None,
        temperature: float = 0.0,
    ) -> None:
        self._client = openai.OpenAI(
            api_key=api_key,
            timeout=timeout_seconds,
            base_url=base_url,
        )
        self._model = model
        self._temperature = temperature

    @property
    def model(self) -> str:
        return self._model

    def stream_completion(
        self,
        prompt: str,
        images: Sequence[PageImage] = (),
        model: str | None = None,
    ) -> Iterator[str]:
        try:
            stream = self._client.chat.completions.create(
                model=model or self._model,
                temperature=self._temperature,
                stream=True,
                messages=[{"role": "user", "content": self._build_content(prompt, images)}],
            )
            for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta
        except (openai.APIConnectionError, httpx.ConnectError, httpx.TimeoutException) as exc:
            raise LLMNetworkError(f"AI provider network error: {exc}") from exc
        except openai.APIError as exc:
            raise LLMError(f"AI provider API error: {exc}") from exc

    @staticmethod
    def _build_content(prompt: str, images: Sequence[PageImage]) -> list[dict[str, Any]]:
        content: list[dict[str, Any]] = [{"type": "text", "text": prompt}]
        for image in images:
            content.append({"type": "image_url", "image_url": {"url": image.data_url()}})
        return content
