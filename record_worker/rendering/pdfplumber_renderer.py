import io

import pdfplumber

from record_worker.rendering.base import BasePdfRenderer
from record_worker.rendering.exceptions import PageRenderError


class PdfPlumberRenderer(BasePdfRenderer):
    """Renders PDF pages and reads their text layer using pdfplumber."""

    def render(self, pdf_bytes: bytes, max_height: int) -> list[bytes]:
        try:
            with pdfplumber.open(io.BytesIO(pdf_bytes)) as pdf:
                return [self._page_to_jpeg(page, max_height) for page in pdf.pages]
        except Exception as exc:
            raise PageRenderError(f"pdfplumber rendering failed: {exc}") from exc

    def extract_pages(self, pdf_bytes: bytes) -> list[str]:
        try:
            with pdfplumber.open(io.BytesIO(pdf_bytes)) as pdf:
                return [(page.extract_text() or "").strip() for page in pdf.pages]
        except Exception as exc:
            raise PageRenderError(f"pdfplumber extraction failed: {exc}") from exc

    @staticmethod
    def _page_to_jpeg(page: pdfplumber.page.Page, max_height: int) -> bytes:
        image = page.to_image(height=max_height).original.convert("RGB")
        buffer = io.BytesIO()
        image.save(buffer, format="JPEG")
        return buffer.getvalue()
