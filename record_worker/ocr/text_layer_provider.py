from collections.abc import Iterator, Sequence
from typing import ClassVar

from record_worker.llm.client_base import BaseCompletionClient
from record_worker.ocr.paged_provider import PagedLLMProvider
from record_worker.processing.progress import ProgressReconciler
from record_worker.records.models import Record
from record_worker.records.record_service import RecordService
from record_worker.rendering.base import PageImage
from record_worker.rendering.page_renderer import PageRenderer


class TextLayerProvider(PagedLLMProvider):
    """Reads page text from the PDF text layer instead of asking a model.

    Pages are streamed line by line with the same checkpointing as the
    paged provider; only the metadata pass goes to the model.
    """

    name: ClassVar[str] = "pdf-text"

    def __init__(
        self,
        *,
        client: BaseCompletionClient,
        records: RecordService,
        reconciler: ProgressReconciler,
        renderer: PageRenderer,
        average_page_tokens: int = 1000,
    ) -> None:
        super().__init__(
            client=client,
            records=records,
            reconciler=reconciler,
            average_page_tokens=average_page_tokens,
        )
        self._renderer = renderer

    def _page_count(self, record: Record, images: Sequence[PageImage]) -> int:
        return len(self._renderer.extract_text_pages(record))

    def _stream_page(
        self,
        record: Record,
        page_number: int,
        images: Sequence[PageImage],
    ) -> Iterator[str]:
        text = self._renderer.extract_text_pages(record)[page_number - 1]
        yield from text.splitlines(keepends=True)
