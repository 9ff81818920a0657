from record_worker.database.models import TRANSLATE_OPERATION
from record_worker.llm.client_base import BaseCompletionClient
from record_worker.llm.prompt_loader import render_prompt
from record_worker.logging.logger import Log
from record_worker.ocr.base import compose_parse_result
from record_worker.ocr.token_budget import TokenBudget
from record_worker.processing.exceptions import OperationLockedError, ProcessingError
from record_worker.processing.locks import OperationLocks
from record_worker.processing.progress import ProgressReconciler
from record_worker.records.models import (
    PRESERVED_ATTACHMENTS,
    REFERENCE_RECORD_IDS,
    TRANSLATION_LANGUAGE,
    Record,
    RecordExtra,
    page_content_type,
    split_ids,
)
from record_worker.records.record_service import RecordService
from record_worker.records.text_blocks import strip_code_fences


class Translator:
    """Creates a translated copy of a parsed record, page by page.

    The copy shares the source's attachment files and the two records
    reference each other through annotations.
    """

    def __init__(
        self,
        *,
        client: BaseCompletionClient,
        records: RecordService,
        locks: OperationLocks,
        reconciler: ProgressReconciler,
        average_page_tokens: int = 1000,
    ) -> None:
        self._client = client
        self._records = records
        self._locks = locks
        self._reconciler = reconciler
        self._average_page_tokens = average_page_tokens

    def translate(self, record: Record, language: str = "English") -> Record:
        """Translate ``record`` into ``language`` and return the new record.

        Raises:
            OperationLockedError: if another session is translating it.
            ProcessingError: if the record has no text to translate.
        """
        lock = self._locks.acquire(record, TRANSLATE_OPERATION)
        if lock is None:
            raise OperationLockedError(
                f"Record {record.id} is being translated in another session"
            )

        Log.info(f"Translating into {language}", record_id=record.id)
        try:
            translated = self._translate(record, language)
        except Exception as exc:
            Log.error(f"Translation failed: {exc}", record_id=record.id)
            self._reconciler.fail(record, TRANSLATE_OPERATION, exc)
            if record.id is not None:
                self._locks.fail(record.id, TRANSLATE_OPERATION, str(exc))
            raise

        self._reconciler.complete(record, TRANSLATE_OPERATION)
        if record.id is not None:
            self._locks.finish(record.id, TRANSLATE_OPERATION)
        Log.info(f"Translation saved as record {translated.id}", record_id=record.id)
        return translated

    def _translate(self, record: Record, language: str) -> Record:
        pages = self._gather_pages(record)
        if not pages:
            raise ProcessingError(f"Record {record.id} has no text to translate")

        total_pages = len(pages)
        budget = TokenBudget(total_pages, self._average_page_tokens)
        self._reconciler.report(
            record, TRANSLATE_OPERATION, True, 0, budget.total, 0, total_pages
        )

        translated_pages: list[str] = []
        for page_number, page_text in enumerate(pages, start=1):
            prompt = render_prompt(
                "translate_page", language=language, page=page_number, page_text=page_text
            )
            translated = ""
            tokens = 0
            for delta in self._client.stream_completion(prompt):
                translated += delta
                tokens += 1
                budget.consume()
                self._reconciler.report(
                    record,
                    TRANSLATE_OPERATION,
                    True,
                    budget.processed,
                    budget.total,
                    page_number,
                    total_pages,
                    {"text_delta": delta},
                )
            translated_pages.append(translated)
            budget.complete_page(tokens)
            self._reconciler.report(
                record,
                TRANSLATE_OPERATION,
                True,
                budget.processed,
                budget.total,
                page_number,
                total_pages,
                {"page_delta": translated},
            )

        translated_text = "\n\n".join(translated_pages)
        metadata = ""
        prompt = render_prompt("parse_metadata", page=total_pages, record_text=translated_text)
        for delta in self._client.stream_completion(prompt):
            metadata += delta
            budget.consume()
            self._reconciler.report(
                record,
                TRANSLATE_OPERATION,
                True,
                budget.processed,
                budget.total,
                total_pages,
                total_pages,
                {"text_delta": delta},
            )

        new_record = self._records.update_from_text(
            compose_parse_result(strip_code_fences(metadata).strip(), translated_text),
            folder_id=record.folder_id,
            extra=[
                RecordExtra(REFERENCE_RECORD_IDS, str(record.id)),
                RecordExtra(TRANSLATION_LANGUAGE, language),
                RecordExtra(
                    PRESERVED_ATTACHMENTS,
                    ", ".join(str(a.id) for a in record.attachments),
                ),
            ],
        )
        if new_record is None:
            raise ProcessingError("Failed to create translated record")

        for page_number, page_text in enumerate(translated_pages, start=1):
            new_record.set_extra(page_content_type(page_number), page_text)
        new_record.attachments = list(record.attachments)
        new_record.event_date = record.event_date or (
            record.created_at.isoformat() if record.created_at else None
        )
        new_record.mark_parsed()

        references = split_ids(record.get_extra(REFERENCE_RECORD_IDS))
        if str(new_record.id) not in references:
            references.append(str(new_record.id))
            record.set_extra(REFERENCE_RECORD_IDS, ", ".join(references))

        self._records.save(record)
        return self._records.save(new_record)

    @staticmethod
    def _gather_pages(record: Record) -> list[str]:
        pages: list[str] = []
        page_number = 1
        while True:
            content = record.get_extra(page_content_type(page_number))
            if not content:
                break
            pages.append(content)
            page_number += 1
        if not pages and record.text:
            pages.append(record.text)
        return pages
