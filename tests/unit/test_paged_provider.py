import pytest

from record_worker.database.models import PARSE_OPERATION
from record_worker.llm.example_client_adapter import ExampleClientAdapter
from record_worker.ocr.paged_provider import PagedLLMProvider
from record_worker.processing.exceptions import ProcessingError, RecordValidationError
from record_worker.records.models import DOCUMENT_PAGES_TOTAL, DOCUMENT_PARSED_PAGES
from record_worker.rendering.base import PageImage

_METADATA = '```json\n[{"type": "lab", "title": "Report", "tags": ["lab"]}]\n```'


def _make_images(count: int) -> list[PageImage]:
    return [
        PageImage(name=f"page {i}", content_type="image/jpeg", data=b"jpeg")
        for i in range(1, count + 1)
    ]


def _make_provider(harness, responses: list[str]) -> tuple[PagedLLMProvider, ExampleClientAdapter]:
    client = ExampleClientAdapter(responses)
    provider = PagedLLMProvider(
        client=client,
        records=harness.records,
        reconciler=harness.reconciler,
        average_page_tokens=10,
    )
    return provider, client


class TestPagedProvider:
    def test_two_page_document_end_to_end(self, harness) -> None:
        record = harness.make_record()
        provider, client = _make_provider(
            harness,
            ["Page one text", "```markdown\nPage two text\n```", _METADATA],
        )

        parsed = provider.parse(record, _make_images(2))

        assert parsed.json == [{"type": "lab", "title": "Report", "tags": ["lab"]}]
        assert parsed.text.startswith("Page one text\n\nPage two text\n")
        assert parsed.title == "Report"
        assert parsed.get_extra("Page 1 content") == "Page one text"
        assert parsed.get_extra("Page 2 content") == "Page two text\n"
        assert parsed.get_extra(DOCUMENT_PARSED_PAGES) is None
        assert parsed.checksum_at_last_parse == parsed.checksum
        assert client.image_counts == [1, 1, 0]
        assert "page 1" in client.prompts[0]
        assert "Page two text" in client.prompts[2]

    def test_resumes_after_three_of_five_pages(self, harness) -> None:
        record = harness.make_record()
        for page in (1, 2, 3):
            record.set_extra(f"Page {page} content", f"saved {page}")
        record.set_extra(DOCUMENT_PARSED_PAGES, "3")
        record.set_extra(DOCUMENT_PAGES_TOTAL, "5")
        provider, client = _make_provider(harness, ["fresh 4", "fresh 5", _METADATA])

        parsed = provider.parse(record, _make_images(5))

        assert len(client.prompts) == 3
        assert "page 4" in client.prompts[0]
        assert "page 5" in client.prompts[1]
        assert parsed.text.startswith(
            "saved 1\n\nsaved 2\n\nsaved 3\n\nfresh 4\n\nfresh 5\n\n"
        )

    def test_page_count_change_restarts_from_first_page(self, harness) -> None:
        record = harness.make_record()
        record.set_extra("Page 1 content", "stale")
        record.set_extra(DOCUMENT_PARSED_PAGES, "1")
        record.set_extra(DOCUMENT_PAGES_TOTAL, "3")
        provider, client = _make_provider(harness, ["new 1", "new 2", _METADATA])

        parsed = provider.parse(record, _make_images(2))

        assert "page 1" in client.prompts[0]
        assert parsed.get_extra("Page 1 content") == "new 1"

    def test_checkpoint_saved_after_each_page(self, harness) -> None:
        record = harness.make_record()
        provider, _ = _make_provider(harness, ["one", "two", "three", _METADATA])
        provider.parse(record, _make_images(3))

        page_events = [
            e for e in harness.tracker.history(record.id) if e.page_delta is not None
        ]
        assert [e.page for e in page_events] == [1, 2, 3]

    def test_reported_progress_is_monotonic(self, harness) -> None:
        record = harness.make_record()
        provider, _ = _make_provider(
            harness,
            [" ".join(["word"] * 40), "short", _METADATA],
        )
        provider.parse(record, _make_images(2))

        events = [
            e for e in harness.tracker.history(record.id) if e.operation_name == PARSE_OPERATION
        ]
        processed = [e.progress for e in events]
        assert processed == sorted(processed)
        assert all(e.progress <= e.progress_of for e in events if e.progress_of)

    def test_invalid_document_is_deleted(self, harness) -> None:
        record = harness.make_record()
        provider, _ = _make_provider(
            harness, ["page", '```json\n[{"error": "not a document"}]\n```']
        )
        with pytest.raises(RecordValidationError):
            provider.parse(record, _make_images(1))
        assert record.id not in harness.records_repo.rows

    def test_no_pages_raises(self, harness) -> None:
        record = harness.make_record()
        provider, _ = _make_provider(harness, [])
        with pytest.raises(ProcessingError, match="no pages"):
            provider.parse(record, [])

    def test_transcription_only_record_is_parsed_as_one_page(self, harness) -> None:
        record = harness.make_record(attachments=0, transcription="Dictated note\nBP 120/80")
        provider, client = _make_provider(harness, [_METADATA])

        parsed = provider.parse(record, [])

        assert len(client.prompts) == 1
        assert "Dictated note" in client.prompts[0]
        assert parsed.get_extra("Page 1 content") == "Dictated note\nBP 120/80"
        assert parsed.text.startswith("Dictated note\nBP 120/80")
        assert parsed.title == "Report"

    def test_fresh_parse_drops_pages_of_longer_earlier_version(self, harness) -> None:
        record = harness.make_record()
        for page in (1, 2, 3):
            record.set_extra(f"Page {page} content", f"old {page}")
        provider, _ = _make_provider(harness, ["new 1", "new 2", _METADATA])

        parsed = provider.parse(record, _make_images(2))

        assert parsed.get_extra("Page 1 content") == "new 1"
        assert parsed.get_extra("Page 2 content") == "new 2"
        assert parsed.get_extra("Page 3 content") is None
