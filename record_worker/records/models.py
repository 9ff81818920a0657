import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

PAGE_CONTENT = "Page {page} content"
DOCUMENT_PARSED_PAGES = "Document parsed pages"
DOCUMENT_PAGES_TOTAL = "Document pages total"
REFERENCE_RECORD_IDS = "Reference record Ids"
TRANSLATION_LANGUAGE = "Translation language"
PRESERVED_ATTACHMENTS = "Preserved attachments"
LAST_PROCESSING_STEP = "Last processing step"

# Presence of any of these marks a record as derived from another one.
DERIVED_RECORD_ANNOTATIONS = (
    TRANSLATION_LANGUAGE,
    REFERENCE_RECORD_IDS,
    PRESERVED_ATTACHMENTS,
)


def page_content_type(page: int) -> str:
    return PAGE_CONTENT.format(page=page)


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def split_ids(value: str | None) -> list[str]:
    """Split a comma-separated id annotation into trimmed, non-empty ids."""
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


@dataclass(frozen=True)
class Attachment:
    """A file attached to a record, addressed by its storage key."""

    id: int | None
    storage_key: str
    display_name: str = ""
    mime_type: str = "application/pdf"
    size: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "storage_key": self.storage_key,
            "display_name": self.display_name,
            "mime_type": self.mime_type,
            "size": self.size,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Attachment":
        return cls(
            id=raw.get("id"),
            storage_key=raw["storage_key"],
            display_name=raw.get("display_name") or "",
            mime_type=raw.get("mime_type") or "application/pdf",
            size=raw.get("size") or 0,
        )


@dataclass
class RecordExtra:
    """A typed key/value annotation attached to a record."""

    type: str
    value: str

    def to_dict(self) -> dict[str, str]:
        return {"type": self.type, "value": self.value}


@dataclass
class OperationProgress:
    """Snapshot of a running operation, shown next to the record."""

    operation_name: str = ""
    page: int = 0
    pages: int = 0
    progress: int = 0
    progress_of: int = 0
    text_delta: str = ""
    page_delta: str | None = None
    record_text: str | None = None
    message: str | None = None
    processed_on_different_device: bool = False


@dataclass
class Record:
    """A user document: attachments plus the text and metadata extracted from them.

    ``operation_*`` fields are transient. They are never persisted and get
    recomputed from the operations table whenever records are loaded.
    """

    folder_id: int
    id: int | None = None
    title: str = ""
    description: str = ""
    tags: list[str] = field(default_factory=list)
    type: str = "note"
    json: list[dict[str, Any]] | None = None
    text: str = ""
    extra: list[RecordExtra] = field(default_factory=list)
    transcription: str = ""
    event_date: str | None = None
    checksum: str = ""
    checksum_at_last_parse: str = ""
    attachments: list[Attachment] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    operation_name: str = ""
    operation_in_progress: bool = False
    operation_error: str | None = None
    operation_progress: OperationProgress | None = None

    def get_extra(self, extra_type: str) -> str | None:
        """Return the value of the last annotation of this type."""
        for item in reversed(self.extra):
            if item.type == extra_type:
                return item.value
        return None

    def set_extra(self, extra_type: str, value: str) -> None:
        """Replace the annotation value in place, or append it."""
        for item in reversed(self.extra):
            if item.type == extra_type:
                item.value = value
                return
        self.extra.append(RecordExtra(type=extra_type, value=value))

    def remove_extra(self, extra_type: str) -> None:
        self.extra = [item for item in self.extra if item.type != extra_type]

    def has_derived_annotations(self) -> bool:
        return any(self.get_extra(t) is not None for t in DERIVED_RECORD_ANNOTATIONS)

    def attachments_key(self) -> str:
        joined = "-".join(a.storage_key for a in self.attachments)
        return f"record-{sha256_hex(joined)}"

    def compute_checksum(self) -> str:
        key = self.attachments_key()
        if self.transcription:
            key += sha256_hex(self.transcription)
        return key

    def update_checksum(self) -> None:
        self.checksum = self.compute_checksum()

    def mark_parsed(self) -> None:
        """Remember the content fingerprint this parse was produced from."""
        self.checksum_at_last_parse = self.compute_checksum()

    def needs_reparse(self) -> bool:
        return self.json is None or self.checksum != self.checksum_at_last_parse

    def is_processable(self) -> bool:
        return bool(self.attachments) or bool(self.transcription)
