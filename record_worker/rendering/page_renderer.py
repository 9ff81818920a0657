from record_worker.logging.logger import Log
from record_worker.records.models import Attachment, Record
from record_worker.rendering.base import BasePdfRenderer, PageImage
from record_worker.rendering.exceptions import PageRenderError
from record_worker.storage.attachment_store import AttachmentStore
from record_worker.storage.exceptions import StorageError

_PDF_MIME_TYPE = "application/pdf"
_JPEG_MIME_TYPE = "image/jpeg"


class PageRenderer:
    """Turns a record's attachments into page images and page texts.

    Results are cached by the record's attachments key, so re-queued records
    with unchanged attachments are not rendered twice.
    """

    def __init__(
        self,
        *,
        store: AttachmentStore,
        renderer: BasePdfRenderer,
        max_height: int = 3200,
    ) -> None:
        self._store = store
        self._renderer = renderer
        self._max_height = max_height
        self._images: dict[str, list[PageImage]] = {}
        self._texts: dict[str, list[str]] = {}

    def render_record(self, record: Record) -> list[PageImage]:
        """Return one image per page across all attachments, in order.

        Attachments that cannot be read or rendered are logged and skipped.
        """
        key = record.attachments_key()
        cached = self._images.get(key)
        if cached is not None:
            return cached

        images: list[PageImage] = []
        for attachment in record.attachments:
            try:
                images.extend(self._render_attachment(attachment))
            except (PageRenderError, StorageError) as exc:
                Log.warning(
                    f"Skipping attachment {attachment.display_name or attachment.storage_key}: {exc}",
                    record_id=record.id,
                )
        Log.info(f"Rendered {len(images)} page image(s)", record_id=record.id)
        self._images[key] = images
        return images

    def extract_text_pages(self, record: Record) -> list[str]:
        """Return the PDF text layer, one entry per page across all attachments."""
        key = record.attachments_key()
        cached = self._texts.get(key)
        if cached is not None:
            return cached

        pages: list[str] = []
        for attachment in record.attachments:
            if attachment.mime_type != _PDF_MIME_TYPE:
                continue
            try:
                pages.extend(self._renderer.extract_pages(self._store.read(attachment)))
            except (PageRenderError, StorageError) as exc:
                Log.warning(
                    f"Skipping text layer of {attachment.display_name or attachment.storage_key}: {exc}",
                    record_id=record.id,
                )
        self._texts[key] = pages
        return pages

    def clear(self) -> None:
        self._images.clear()
        self._texts.clear()

    def _render_attachment(self, attachment: Attachment) -> list[PageImage]:
        name = attachment.display_name or attachment.storage_key
        if attachment.mime_type.startswith("image/"):
            return [
                PageImage(
                    name=name,
                    content_type=attachment.mime_type,
                    data=self._store.read(attachment),
                )
            ]
        if attachment.mime_type != _PDF_MIME_TYPE:
            raise PageRenderError(f"Unsupported attachment type '{attachment.mime_type}'")

        pages = self._renderer.render(self._store.read(attachment), self._max_height)
        return [
            PageImage(name=f"{name} page {index}", content_type=_JPEG_MIME_TYPE, data=data)
            for index, data in enumerate(pages, start=1)
        ]
