from unittest.mock import MagicMock

import pytest

from record_worker.database.models import PARSE_OPERATION
from record_worker.llm.example_client_adapter import ExampleClientAdapter
from record_worker.ocr.base import BaseParseProvider
from record_worker.ocr.paged_provider import PagedLLMProvider
from record_worker.processing.exceptions import RecordValidationError
from record_worker.processing.processor import RecordProcessor
from record_worker.rendering.base import BasePdfRenderer
from record_worker.rendering.page_renderer import PageRenderer

_METADATA = '```json\n[{"type": "lab", "title": "Blood panel", "tags": ["lab"]}]\n```'


def _make_processor(harness, provider: BaseParseProvider) -> RecordProcessor:
    renderer = PageRenderer(store=harness.store, renderer=MagicMock(spec=BasePdfRenderer))
    return RecordProcessor(
        locks=harness.locks,
        reconciler=harness.reconciler,
        renderer=renderer,
        provider=provider,
    )


def _paged_provider(harness, responses: list[str]) -> PagedLLMProvider:
    return PagedLLMProvider(
        client=ExampleClientAdapter(responses),
        records=harness.records,
        reconciler=harness.reconciler,
        average_page_tokens=10,
    )


class TestRecordProcessor:
    def test_successful_parse_finishes_the_lock(self, harness) -> None:
        record = harness.make_record()
        processor = _make_processor(harness, _paged_provider(harness, ["Hemoglobin 14", _METADATA]))

        parsed = processor.process(record)

        assert parsed is not None
        assert parsed.title == "Blood panel"
        assert parsed.operation_in_progress is False
        assert parsed.operation_error is None
        lock = harness.operations_repo.rows[0]
        assert lock.finished is True
        assert lock.errored is False
        assert lock.last_step_session_id == "session-a"
        assert harness.locks.is_held(record.id, PARSE_OPERATION) is False

    def test_parsed_record_no_longer_needs_parsing(self, harness) -> None:
        record = harness.make_record()
        processor = _make_processor(harness, _paged_provider(harness, ["text", _METADATA]))

        parsed = processor.process(record)

        assert parsed.needs_reparse() is False

    def test_foreign_lock_skips_and_marks_other_device(self, harness) -> None:
        record = harness.make_record()
        harness.foreign_lock(record.id, PARSE_OPERATION, progress=40, progress_of=100)
        provider = MagicMock(spec=BaseParseProvider)
        provider.name = "mock"
        processor = _make_processor(harness, provider)

        result = processor.process(record)

        assert result is None
        provider.parse.assert_not_called()
        assert record.operation_progress.processed_on_different_device is True
        assert record.operation_progress.progress == 40
        assert record.operation_progress.message.startswith("Processing on another device since")
        assert len(harness.operations_repo.rows) == 1

    def test_provider_failure_fails_the_lock_and_reraises(self, harness) -> None:
        record = harness.make_record()
        provider = MagicMock(spec=BaseParseProvider)
        provider.name = "mock"
        provider.parse.side_effect = RuntimeError("model timed out")
        processor = _make_processor(harness, provider)

        with pytest.raises(RuntimeError, match="model timed out"):
            processor.process(record)

        lock = harness.operations_repo.rows[0]
        assert lock.errored is True
        assert lock.finished is False
        assert lock.error_message == "model timed out"
        assert record.operation_error == "model timed out"
        assert record.operation_in_progress is False

    def test_rejected_document_is_deleted_and_lock_errored(self, harness) -> None:
        record = harness.make_record()
        rejection = '```json\n[{"error": "not a medical document"}]\n```'
        processor = _make_processor(harness, _paged_provider(harness, ["cat photo", rejection]))

        with pytest.raises(RecordValidationError):
            processor.process(record)

        assert record.id not in harness.records_repo.rows
        assert harness.operations_repo.rows[0].errored is True

    def test_lock_taken_over_from_stale_foreign_session(self, harness) -> None:
        record = harness.make_record()
        harness.foreign_lock(record.id, PARSE_OPERATION)
        harness.clock.advance(600)
        processor = _make_processor(harness, _paged_provider(harness, ["text", _METADATA]))

        assert processor.process(record) is not None
        lock = harness.operations_repo.rows[0]
        assert lock.started_on_session_id == "session-a"
        assert lock.finished is True
