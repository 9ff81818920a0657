from collections.abc import Sequence

from record_worker.database.repositories.records_repository import RecordsRepository
from record_worker.llm.client_base import BaseCompletionClient
from record_worker.llm.prompt_loader import render_prompt
from record_worker.logging.logger import Log
from record_worker.processing.exceptions import RecordNotFoundError, RecordValidationError
from record_worker.records.extraction import (
    has_json_block,
    parse_extraction,
    parse_metadata_object,
)
from record_worker.records.metadata import apply_derived_metadata
from record_worker.records.models import (
    PRESERVED_ATTACHMENTS,
    REFERENCE_RECORD_IDS,
    Record,
    RecordExtra,
    split_ids,
)
from record_worker.storage.attachment_store import AttachmentStore


class RecordService:
    """Persists records and turns model output into record content."""

    def __init__(
        self,
        *,
        repository: RecordsRepository,
        store: AttachmentStore,
        client: BaseCompletionClient | None = None,
    ) -> None:
        self._repository = repository
        self._store = store
        self._client = client

    def find_by_id(self, record_id: int) -> Record:
        return self._repository.find_by_id(record_id)

    def list_folder(self, folder_id: int) -> list[Record]:
        return self._repository.list_by_folder(folder_id)

    def save(self, record: Record) -> Record:
        """Refresh checksum and derived metadata, then persist."""
        record.update_checksum()
        apply_derived_metadata(record)
        return self._repository.save(record)

    def delete(self, record: Record) -> bool:
        """Delete the record and the attachment files nobody else uses.

        Attachments listed as preserved, by this record or by any record it
        references, are kept on disk.
        """
        preserved = self._preserved_attachment_ids(record)
        for attachment in record.attachments:
            if str(attachment.id) in preserved:
                Log.debug(f"Keeping preserved attachment {attachment.id}", record_id=record.id)
                continue
            if not self._store.delete(attachment):
                Log.warning(
                    f"Attachment file already gone: {attachment.storage_key}",
                    record_id=record.id,
                )

        if record.id is None:
            return True
        deleted = self._repository.delete(record.id)
        if deleted:
            Log.info("Record deleted", record_id=record.id)
        return deleted

    def update_from_text(
        self,
        text: str,
        record: Record | None = None,
        folder_id: int | None = None,
        extra: Sequence[RecordExtra] | None = None,
    ) -> Record | None:
        """Apply model output to ``record``, or create a new record in ``folder_id``.

        Output with ```json blocks updates structure and text. Plain text only
        creates a new note, with metadata generated by an extra model call.
        Returns None when there is nothing to update and nowhere to create.

        Raises:
            RecordValidationError: if the model flagged the content as invalid.
                The record is deleted first.
        """
        if not has_json_block(text):
            if record is None and folder_id is not None:
                return self._create_note(text, folder_id, extra)
            return None

        result = parse_extraction(text)
        error_item = result.error_item()
        if error_item is not None:
            if record is not None:
                self.delete(record)
            raise RecordValidationError(f"Not a valid document: {error_item['error']}")

        event_date = result.discovered_event_date()
        if record is not None:
            if event_date is None and record.created_at is not None:
                event_date = record.created_at.isoformat()
            record.json = result.items
            record.text = result.markdown
            record.type = result.discovered_type()
            record.event_date = event_date
            record.extra.extend(RecordExtra(e.type, e.value) for e in extra or ())
            return self.save(record)

        if folder_id is None:
            return None
        new_record = Record(
            folder_id=folder_id,
            type=result.discovered_type(),
            json=result.items,
            text=result.markdown,
            event_date=event_date,
            extra=[RecordExtra(e.type, e.value) for e in extra or ()],
        )
        return self.save(new_record)

    def _create_note(
        self,
        text: str,
        folder_id: int,
        extra: Sequence[RecordExtra] | None,
    ) -> Record:
        metadata: dict[str, object] = {}
        if self._client is not None:
            metadata = parse_metadata_object(
                self._client.call(render_prompt("generate_metadata", text=text))
            )

        raw_tags = metadata.get("tags")
        note = Record(
            folder_id=folder_id,
            type="note",
            json=[metadata] if metadata else None,
            text=text,
            title=str(metadata.get("title") or ""),
            description=str(metadata.get("summary") or ""),
            tags=[str(tag) for tag in raw_tags] if isinstance(raw_tags, list) else [],
            extra=[RecordExtra(e.type, e.value) for e in extra or ()],
        )
        return self.save(note)

    def _preserved_attachment_ids(self, record: Record) -> set[str]:
        preserved = set(split_ids(record.get_extra(PRESERVED_ATTACHMENTS)))
        for reference_id in split_ids(record.get_extra(REFERENCE_RECORD_IDS)):
            try:
                referenced = self._repository.find_by_id(int(reference_id))
            except (RecordNotFoundError, ValueError):
                continue
            preserved.update(split_ids(referenced.get_extra(PRESERVED_ATTACHMENTS)))
        return preserved
