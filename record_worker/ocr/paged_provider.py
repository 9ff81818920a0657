from collections.abc import Iterator, Sequence
from typing import ClassVar

from record_worker.llm.prompt_loader import render_prompt
from record_worker.logging.logger import Log
from record_worker.ocr.base import PAGE_SEPARATOR, BaseParseProvider, compose_parse_result
from record_worker.ocr.token_budget import TokenBudget
from record_worker.processing.exceptions import ProcessingError
from record_worker.records.models import (
    DOCUMENT_PAGES_TOTAL,
    DOCUMENT_PARSED_PAGES,
    Record,
    page_content_type,
)
from record_worker.records.text_blocks import strip_code_fences
from record_worker.rendering.base import PageImage


class PagedLLMProvider(BaseParseProvider):
    """Parses one page per model call, checkpointing after every page.

    A parse interrupted after page k resumes at page k + 1 with pages
    1..k reloaded from the record's page annotations.
    """

    name: ClassVar[str] = "llm-paged"

    def parse(self, record: Record, images: Sequence[PageImage]) -> Record:
        pages = self._page_count(record, images)
        if pages == 0:
            raise ProcessingError("Record has no pages to parse")

        parsed = self._resume_point(record, pages)
        if not parsed:
            self._drop_pages_after(record, pages)
        budget = TokenBudget(pages, self._average_page_tokens)
        record_text = ""
        for page_number in range(1, parsed + 1):
            record_text += (record.get_extra(page_content_type(page_number)) or "") + PAGE_SEPARATOR
            budget.consume(self._average_page_tokens)
        if parsed:
            Log.info(f"Resuming parse at page {parsed + 1} of {pages}", record_id=record.id)

        record = self._report(record, budget.processed, budget.total, parsed, pages)

        for page_number in range(parsed + 1, pages + 1):
            page_text = ""
            tokens = 0
            for delta in self._stream_page(record, page_number, images):
                page_text += delta
                tokens += 1
                budget.consume()
                record = self._report(
                    record,
                    budget.processed,
                    budget.total,
                    page_number,
                    pages,
                    {"text_delta": delta},
                )

            page_text = strip_code_fences(page_text)
            record_text += page_text + PAGE_SEPARATOR
            budget.complete_page(tokens)
            record = self._report(
                record,
                budget.processed,
                budget.total,
                page_number,
                pages,
                {"page_delta": page_text, "record_text": record_text},
            )
            Log.debug(f"Page {page_number}/{pages} parsed ({tokens} tokens)", record_id=record.id)

        metadata = ""
        prompt = render_prompt("parse_metadata", page=pages, record_text=record_text)
        for delta in self._client.stream_completion(prompt):
            metadata += delta
            budget.consume()
            record = self._report(
                record, budget.processed, budget.total, pages, pages, {"text_delta": delta}
            )

        return self._finalize(
            record, compose_parse_result(strip_code_fences(metadata).strip(), record_text)
        )

    def _page_count(self, record: Record, images: Sequence[PageImage]) -> int:
        if not images and record.transcription:
            return 1
        return len(images)

    def _stream_page(
        self,
        record: Record,
        page_number: int,
        images: Sequence[PageImage],
    ) -> Iterator[str]:
        if not images:
            # Transcription-only record: the transcription is its single page.
            yield from record.transcription.splitlines(keepends=True)
            return
        prompt = render_prompt("parse_page", page=page_number)
        yield from self._client.stream_completion(prompt, [images[page_number - 1]])

    @staticmethod
    def _drop_pages_after(record: Record, pages: int) -> None:
        """Remove page annotations left over from a longer earlier version."""
        page_number = pages + 1
        while record.get_extra(page_content_type(page_number)) is not None:
            record.remove_extra(page_content_type(page_number))
            page_number += 1

    @staticmethod
    def _resume_point(record: Record, pages: int) -> int:
        try:
            parsed = int(record.get_extra(DOCUMENT_PARSED_PAGES) or 0)
            total = int(record.get_extra(DOCUMENT_PAGES_TOTAL) or pages)
        except ValueError:
            return 0
        if total != pages or parsed < 0:
            return 0
        return min(parsed, pages)
