"""Example completion client adapter.

Use this module as a reference when implementing new provider adapters.
Implement BaseCompletionClient and register the provider in CompletionClientFactory.
"""

import re
from collections.abc import Iterator, Sequence

from record_worker.llm.client_base import BaseCompletionClient
from record_worker.rendering.base import PageImage


class ExampleClientAdapter(BaseCompletionClient):
    """Example adapter that replays scripted responses word by word.

    No network calls. Each completion consumes the next scripted response;
    once they run out, DEFAULT_RESPONSE is returned. Prompts are kept in
    ``prompts`` so callers can inspect what was asked.
    """

    DEFAULT_RESPONSE = '```json\n[{"type": "note", "title": "Example", "tags": []}]\n```'

    def __init__(self, responses: Sequence[str] = ()) -> None:
        self._responses = list(responses)
        self.prompts: list[str] = []
        self.image_counts: list[int] = []

    def stream_completion(
        self,
        prompt: str,
        images: Sequence[PageImage] = (),
        model: str | None = None,
    ) -> Iterator[str]:
        _ = model
        self.prompts.append(prompt)
        self.image_counts.append(len(images))
        response = self._responses.pop(0) if self._responses else self.DEFAULT_RESPONSE
        for token in re.split(r"(?<= )", response):
            if token:
                yield token
