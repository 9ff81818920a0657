import pymupdf

from record_worker.rendering.base import BasePdfRenderer
from record_worker.rendering.exceptions import PageRenderError


class PyMuPdfRenderer(BasePdfRenderer):
    """Renders PDF pages and reads their text layer using PyMuPDF."""

    def render(self, pdf_bytes: bytes, max_height: int) -> list[bytes]:
        try:
            with pymupdf.open(stream=pdf_bytes, filetype="pdf") as doc:  # type: ignore[no-untyped-call]
                images = []
                for page in doc:
                    zoom = max_height / page.rect.height
                    pixmap = page.get_pixmap(matrix=pymupdf.Matrix(zoom, zoom))
                    images.append(pixmap.tobytes("jpeg"))
            return images
        except Exception as exc:
            raise PageRenderError(f"pymupdf rendering failed: {exc}") from exc

    def extract_pages(self, pdf_bytes: bytes) -> list[str]:
        try:
            with pymupdf.open(stream=pdf_bytes, filetype="pdf") as doc:  # type: ignore[no-untyped-call]
                return [page.get_text().strip() for page in doc]
        except Exception as exc:
            raise PageRenderError(f"pymupdf extraction failed: {exc}") from exc
