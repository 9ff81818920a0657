import pytest

from record_worker.config.settings import Settings
from record_worker.rendering.base import BasePdfRenderer
from record_worker.rendering.exceptions import PageRenderError
from record_worker.rendering.factory import PdfRendererFactory
from record_worker.rendering.pdfplumber_renderer import PdfPlumberRenderer
from record_worker.rendering.pymupdf_renderer import PyMuPdfRenderer

_JPEG_MAGIC = b"\xff\xd8"


@pytest.fixture(params=[PyMuPdfRenderer, PdfPlumberRenderer], ids=["pymupdf", "pdfplumber"])
def renderer(request: pytest.FixtureRequest) -> BasePdfRenderer:
    return request.param()


class TestRender:
    def test_renders_one_jpeg_per_page(
        self, renderer: BasePdfRenderer, multi_page_pdf_bytes: bytes
    ) -> None:
        images = renderer.render(multi_page_pdf_bytes, max_height=200)
        assert len(images) == 2
        assert all(image.startswith(_JPEG_MAGIC) for image in images)

    def test_raises_on_invalid_bytes(self, renderer: BasePdfRenderer) -> None:
        with pytest.raises(PageRenderError):
            renderer.render(b"not a pdf", max_height=200)


class TestExtractPages:
    def test_returns_text_per_page(
        self, renderer: BasePdfRenderer, multi_page_pdf_bytes: bytes
    ) -> None:
        pages = renderer.extract_pages(multi_page_pdf_bytes)
        assert len(pages) == 2
        assert "Page one content" in pages[0]
        assert "Page two content" in pages[1]

    def test_blank_page_gives_empty_string(
        self, renderer: BasePdfRenderer, empty_pdf_bytes: bytes
    ) -> None:
        assert renderer.extract_pages(empty_pdf_bytes) == [""]

    def test_page_text_is_stripped(
        self, renderer: BasePdfRenderer, sample_pdf_bytes: bytes
    ) -> None:
        (page,) = renderer.extract_pages(sample_pdf_bytes)
        assert page == page.strip()
        assert "Hello PDF World" in page

    def test_raises_on_invalid_bytes(self, renderer: BasePdfRenderer) -> None:
        with pytest.raises(PageRenderError):
            renderer.extract_pages(b"not a pdf")


class TestPdfRendererFactory:
    @pytest.mark.parametrize(
        ("engine", "expected"),
        [("pymupdf", PyMuPdfRenderer), ("pdfplumber", PdfPlumberRenderer), ("PyMuPDF", PyMuPdfRenderer)],
    )
    def test_creates_configured_engine(self, engine: str, expected: type) -> None:
        assert isinstance(PdfRendererFactory.create(Settings(pdf_engine=engine)), expected)

    def test_unknown_engine_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown PDF engine 'ghostscript'"):
            PdfRendererFactory.create(Settings(pdf_engine="ghostscript"))
