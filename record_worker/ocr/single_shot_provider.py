from collections.abc import Sequence
from typing import ClassVar

from record_worker.llm.prompt_loader import render_prompt
from record_worker.ocr.base import BaseParseProvider
from record_worker.ocr.token_budget import TokenBudget
from record_worker.records.models import Record
from record_worker.rendering.base import PageImage


class SingleShotLLMProvider(BaseParseProvider):
    """Sends every page in one multimodal prompt and parses the whole answer."""

    name: ClassVar[str] = "llm"

    def parse(self, record: Record, images: Sequence[PageImage]) -> Record:
        if record.transcription:
            prompt = render_prompt(
                "parse_multimodal_transcription", transcription=record.transcription
            )
        else:
            prompt = render_prompt("parse_multimodal")

        budget = TokenBudget(len(images), self._average_page_tokens)
        record = self._report(record)

        content = ""
        for delta in self._client.stream_completion(prompt, images):
            content += delta
            budget.consume()
            record = self._report(
                record, budget.processed, budget.total, metadata={"text_delta": delta}
            )

        return self._finalize(record, content)
