import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

from record_worker.database.models import PARSE_OPERATION
from record_worker.logging.logger import Log
from record_worker.processing.processor import RecordProcessor
from record_worker.processing.progress import ProgressReconciler
from record_worker.records.models import Record

CompletionCallback = Callable[[Record], None]


@dataclass(eq=False)
class QueueEntry:
    record: Record
    callback: CompletionCallback | None = None

    def matches(self, record: Record) -> bool:
        return self.record.id == record.id


class ProcessingQueue:
    """FIFO of records waiting to be parsed, drained one record at a time.

    An entry stays at the head of the queue while it is being processed, so
    re-enqueueing a record that is currently running is a no-op.
    """

    def __init__(self, processor: RecordProcessor, reconciler: ProgressReconciler) -> None:
        self._processor = processor
        self._reconciler = reconciler
        self._entries: deque[QueueEntry] = deque()
        self._mutex = threading.Lock()
        self._draining = False

    def __len__(self) -> int:
        with self._mutex:
            return len(self._entries)

    @property
    def is_draining(self) -> bool:
        with self._mutex:
            return self._draining

    def contains(self, record: Record) -> bool:
        with self._mutex:
            return any(entry.matches(record) for entry in self._entries)

    def enqueue(self, record: Record, callback: CompletionCallback | None = None) -> bool:
        """Add a record to the queue. Returns False if it was not added."""
        if not record.is_processable():
            Log.debug("Not queued: no attachments and no transcription", record_id=record.id)
            return False
        if record.id is None:
            Log.debug("Not queued: record has not been saved")
            return False
        with self._mutex:
            if any(entry.matches(record) for entry in self._entries):
                return False
            self._entries.append(QueueEntry(record=record, callback=callback))
            position = len(self._entries)
        self._reconciler.report_waiting(record, PARSE_OPERATION, position)
        Log.info(f"Queued for parsing (queue length {position})", record_id=record.id)
        return True

    def drain(self) -> int:
        """Process queued records until the queue is empty.

        When a drain is already running, only the waiting records' progress
        is refreshed. Returns the number of entries processed by this call.
        """
        with self._mutex:
            if self._draining:
                waiting = list(self._entries)[1:]
            else:
                waiting = None
                self._draining = True

        if waiting is not None:
            for position, entry in enumerate(waiting, start=2):
                self._reconciler.report_waiting(entry.record, PARSE_OPERATION, position)
            return 0

        processed = 0
        try:
            while True:
                with self._mutex:
                    if not self._entries:
                        self._draining = False
                        return processed
                    entry = self._entries[0]

                try:
                    self._process_entry(entry)
                finally:
                    with self._mutex:
                        self._entries.remove(entry)
                    processed += 1
        except BaseException:
            with self._mutex:
                self._draining = False
            raise

    def _process_entry(self, entry: QueueEntry) -> None:
        try:
            result = self._processor.process(entry.record)
        except Exception as exc:
            Log.error(f"Processing failed, moving on: {exc}", record_id=entry.record.id)
            return

        if result is None or entry.callback is None:
            return
        try:
            entry.callback(result)
        except Exception as exc:
            Log.error(f"Post-parse callback failed: {exc}", record_id=result.id)
