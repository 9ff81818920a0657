from record_worker.database.models import PARSE_OPERATION
from record_worker.logging.logger import Log
from record_worker.ocr.base import BaseParseProvider
from record_worker.processing.locks import OperationLocks
from record_worker.processing.progress import ProgressReconciler
from record_worker.records.models import Record
from record_worker.rendering.page_renderer import PageRenderer


class RecordProcessor:
    """Runs one parse operation end to end under the record's parse lock."""

    def __init__(
        self,
        *,
        locks: OperationLocks,
        reconciler: ProgressReconciler,
        renderer: PageRenderer,
        provider: BaseParseProvider,
    ) -> None:
        self._locks = locks
        self._reconciler = reconciler
        self._renderer = renderer
        self._provider = provider

    @property
    def provider(self) -> BaseParseProvider:
        return self._provider

    def process(self, record: Record) -> Record | None:
        """Parse a record.

        Returns the parsed record, or None when another session is already
        parsing it.

        Raises:
            RecordValidationError: if the record was rejected and deleted.
            Exception: any provider failure, after the lock has been failed.
        """
        lock = self._locks.acquire(record, PARSE_OPERATION)
        if lock is None:
            current = self._locks.current(record.id, PARSE_OPERATION) if record.id else None
            if current is not None:
                self._reconciler.report_foreign(record, current)
            return None

        Log.info(f"Parsing with {self._provider.name}", record_id=record.id)
        try:
            record.update_checksum()
            record = self._reconciler.report(record, PARSE_OPERATION, True)
            images = self._renderer.render_record(record)
            record = self._provider.parse(record, images)
        except Exception as exc:
            Log.error(f"Parse failed: {exc}", record_id=record.id)
            self._reconciler.fail(record, PARSE_OPERATION, exc)
            if record.id is not None:
                self._locks.fail(record.id, PARSE_OPERATION, str(exc))
            raise

        record = self._reconciler.complete(record, PARSE_OPERATION)
        if record.id is not None:
            self._locks.finish(record.id, PARSE_OPERATION)
        Log.info("Parse finished", record_id=record.id)
        return record
