from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from record_worker.database.models import (
    PARSE_OPERATION,
    TRANSLATE_OPERATION,
    OperationLock,
)
from record_worker.logging.logger import Log
from record_worker.processing.locks import OperationLocks, latest_by_operation, utc_now
from record_worker.processing.progress import ProgressReconciler
from record_worker.processing.queue import CompletionCallback, ProcessingQueue
from record_worker.processing.translator import Translator
from record_worker.records.models import REFERENCE_RECORD_IDS, Record


@dataclass
class TriggerSummary:
    """What one pass over the loaded records decided."""

    enqueued: list[int] = field(default_factory=list)
    translated: list[int] = field(default_factory=list)
    resumed: list[int] = field(default_factory=list)
    foreign: list[int] = field(default_factory=list)
    processed: int = 0


class AutoTriggerController:
    """Decides, after every record list refresh, what to parse or translate."""

    def __init__(
        self,
        *,
        queue: ProcessingQueue,
        translator: Translator,
        locks: OperationLocks,
        reconciler: ProgressReconciler,
        auto_parse: bool = True,
        auto_translate: bool = False,
        translation_language: str = "English",
        recent_update_window: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._queue = queue
        self._translator = translator
        self._locks = locks
        self._reconciler = reconciler
        self._auto_parse = auto_parse
        self._auto_translate = auto_translate
        self._language = translation_language
        self._recent_update_window = recent_update_window
        self._clock = clock

    def on_records_loaded(self, records: Sequence[Record]) -> TriggerSummary:
        summary = TriggerSummary()
        record_ids = [r.id for r in records if r.id is not None]
        latest = latest_by_operation(self._locks.find_for_records(record_ids))

        skipped: set[int] = set()
        for record in records:
            if record.id is None:
                continue
            for operation_name in (PARSE_OPERATION, TRANSLATE_OPERATION):
                lock = latest.get((record.id, operation_name))
                if lock is None:
                    continue
                outcome = self._apply_lock(record, lock)
                if outcome == "foreign":
                    summary.foreign.append(record.id)
                    skipped.add(record.id)
                    break
                if outcome == "resumable":
                    self._resume(record, record.id, operation_name, summary)
                    skipped.add(record.id)
                    break

        for record in records:
            if record.id is None or record.id in skipped or not self.is_eligible(record):
                continue
            if self.needs_parsing(record):
                if self._auto_parse and self._queue.enqueue(record, self._after_parse()):
                    summary.enqueued.append(record.id)
            elif self._should_translate(record, latest.get((record.id, TRANSLATE_OPERATION))):
                if self._translate(record):
                    summary.translated.append(record.id)

        summary.processed = self._queue.drain()
        return summary

    @staticmethod
    def is_eligible(record: Record) -> bool:
        return not record.has_derived_annotations() and bool(record.attachments)

    def needs_parsing(self, record: Record) -> bool:
        return (
            record.needs_reparse()
            and not record.operation_in_progress
            and not record.operation_error
            and self._recently_updated(record)
        )

    def _apply_lock(self, record: Record, lock: OperationLock) -> str:
        """Copy lock state onto the record's transient fields."""
        policy = self._locks.policy
        if policy.is_foreign(lock):
            self._reconciler.report_foreign(record, lock)
            return "foreign"
        if policy.is_live(lock):
            record.operation_name = lock.operation_name
            record.operation_in_progress = True
            return "resumable"
        if (
            lock.errored
            and lock.operation_name == PARSE_OPERATION
            and self._failed_after_last_change(record, lock)
        ):
            record.operation_name = lock.operation_name
            record.operation_error = lock.error_message or "Operation failed"
            return "errored"
        return "idle"

    @staticmethod
    def _failed_after_last_change(record: Record, lock: OperationLock) -> bool:
        """True when the failure is at least as recent as the record's last edit."""
        if lock.last_step is None or record.updated_at is None:
            return True
        return lock.last_step >= record.updated_at

    def _resume(
        self,
        record: Record,
        record_id: int,
        operation_name: str,
        summary: TriggerSummary,
    ) -> None:
        Log.info(f"Resuming {operation_name} started by this session", record_id=record_id)
        if operation_name == PARSE_OPERATION:
            if self._queue.enqueue(record, self._after_parse()):
                summary.resumed.append(record_id)
        elif self._translate(record):
            summary.resumed.append(record_id)

    def _should_translate(self, record: Record, lock: OperationLock | None) -> bool:
        if not self._auto_translate or record.needs_reparse():
            return False
        if record.get_extra(REFERENCE_RECORD_IDS) is not None:
            return False
        if lock is None:
            return True
        if self._locks.policy.is_foreign(lock):
            return False
        if lock.errored:
            Log.debug("Earlier translation failed, not retrying", record_id=record.id)
            return False
        return True

    def _after_parse(self) -> CompletionCallback | None:
        if not self._auto_translate:
            return None

        def translate_parsed(parsed: Record) -> None:
            self._translator.translate(parsed, self._language)

        return translate_parsed

    def _translate(self, record: Record) -> bool:
        try:
            self._translator.translate(record, self._language)
        except Exception as exc:
            Log.error(f"Automatic translation failed: {exc}", record_id=record.id)
            return False
        return True

    def _recently_updated(self, record: Record) -> bool:
        if record.updated_at is None:
            return False
        return self._clock() - record.updated_at < self._recent_update_window
