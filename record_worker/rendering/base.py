import base64
from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class PageImage:
    """One rendered page, ready to be attached to a prompt."""

    name: str
    content_type: str
    data: bytes

    def data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.content_type};base64,{encoded}"


class BasePdfRenderer(ABC):
    """Contract for all PDF rendering adapters."""

    @abstractmethod
    def render(self, pdf_bytes: bytes, max_height: int) -> list[bytes]:
        """Render every page of a PDF to JPEG bytes.

        Args:
            pdf_bytes: Raw PDF file content.
            max_height: Target height of each page image in pixels.

        Returns:
            One JPEG image per page, in page order.

        Raises:
            PageRenderError: if rendering fails for any reason.
        """

    @abstractmethod
    def extract_pages(self, pdf_bytes: bytes) -> list[str]:
        """Extract the text layer of every page, in page order.

        Raises:
            PageRenderError: if extraction fails for any reason.
        """
