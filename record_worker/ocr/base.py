from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any, ClassVar

from record_worker.database.models import PARSE_OPERATION
from record_worker.llm.client_base import BaseCompletionClient
from record_worker.processing.exceptions import ProcessingError
from record_worker.processing.progress import ProgressReconciler
from record_worker.records.models import Record
from record_worker.records.record_service import RecordService
from record_worker.rendering.base import PageImage

PAGE_SEPARATOR = "\n\n"


def compose_parse_result(metadata: str, record_text: str) -> str:
    """Wrap metadata JSON and page markdown into the fenced result format."""
    return f"```json\n{metadata}\n```\n\n```markdown\n{record_text}\n```"


class BaseParseProvider(ABC):
    """Contract for all parse providers."""

    name: ClassVar[str] = ""

    def __init__(
        self,
        *,
        client: BaseCompletionClient,
        records: RecordService,
        reconciler: ProgressReconciler,
        average_page_tokens: int = 1000,
    ) -> None:
        self._client = client
        self._records = records
        self._reconciler = reconciler
        self._average_page_tokens = average_page_tokens

    @abstractmethod
    def parse(self, record: Record, images: Sequence[PageImage]) -> Record:
        """Extract text and structure from the record's page images.

        Args:
            record: The record being parsed; its parse lock is already held.
            images: Rendered pages of all attachments, in order.

        Returns:
            The saved, parsed record.

        Raises:
            RecordValidationError: if the model rejected the document. The
                record has been deleted.
            ProcessingError: if the result could not be applied.
        """

    def _report(
        self,
        record: Record,
        progress: int = 0,
        progress_of: int = 0,
        page: int = 0,
        pages: int = 0,
        metadata: dict[str, Any] | None = None,
    ) -> Record:
        return self._reconciler.report(
            record, PARSE_OPERATION, True, progress, progress_of, page, pages, metadata
        )

    def _finalize(self, record: Record, text: str) -> Record:
        record.mark_parsed()
        updated = self._records.update_from_text(text, record)
        if updated is None:
            raise ProcessingError("Failed to update record")
        return updated
