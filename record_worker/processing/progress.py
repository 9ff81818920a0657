"""Progress reporting: transient record state, lock steps and page checkpoints."""

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from record_worker.database.models import OperationLock
from record_worker.processing.locks import OperationLocks, utc_now
from record_worker.records.models import (
    DOCUMENT_PAGES_TOTAL,
    DOCUMENT_PARSED_PAGES,
    LAST_PROCESSING_STEP,
    OperationProgress,
    Record,
    page_content_type,
)
from record_worker.records.record_service import RecordService


@dataclass(frozen=True)
class ProgressEvent:
    """One progress report, as kept in the per-record history."""

    record_id: int | None
    operation_name: str
    in_progress: bool
    progress: int = 0
    progress_of: int = 0
    page: int = 0
    pages: int = 0
    text_delta: str | None = None
    page_delta: str | None = None
    message: str | None = None
    error: str | None = None
    processed_on_different_device: bool = False
    at: datetime = field(default_factory=utc_now)


class ProgressTracker:
    """In-memory progress snapshots and history, keyed by record id."""

    def __init__(self) -> None:
        self._current: dict[int, OperationProgress] = {}
        self._history: dict[int, list[ProgressEvent]] = {}
        self._mutex = threading.Lock()

    def append(self, event: ProgressEvent) -> OperationProgress:
        key = event.record_id if event.record_id is not None else -1
        with self._mutex:
            snapshot = self._current.get(key)
            if snapshot is None or snapshot.operation_name != event.operation_name:
                snapshot = OperationProgress(operation_name=event.operation_name)
                self._current[key] = snapshot
            snapshot.page = event.page
            snapshot.pages = event.pages
            snapshot.progress = event.progress
            snapshot.progress_of = event.progress_of
            snapshot.message = event.message or event.error
            snapshot.processed_on_different_device = event.processed_on_different_device
            if event.text_delta:
                snapshot.text_delta += event.text_delta
            if event.page_delta is not None:
                snapshot.page_delta = event.page_delta
                snapshot.text_delta = ""
            self._history.setdefault(key, []).append(event)
            return snapshot

    def current(self, record_id: int) -> OperationProgress | None:
        with self._mutex:
            return self._current.get(record_id)

    def history(self, record_id: int) -> list[ProgressEvent]:
        with self._mutex:
            return list(self._history.get(record_id, []))


class ProgressReconciler:
    """Folds streaming progress into the record, the lock row and the tracker.

    Lock writes are throttled: state transitions, errors and messages are
    written at once, plain progress only every ``write_every`` units.
    Page checkpoints are saved to the record so an interrupted parse can
    resume from the next page.
    """

    def __init__(
        self,
        *,
        locks: OperationLocks,
        records: RecordService,
        tracker: ProgressTracker | None = None,
        write_every: int = 30,
        heartbeat_interval: timedelta = timedelta(minutes=30),
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._locks = locks
        self._records = records
        self._tracker = tracker or ProgressTracker()
        self._write_every = write_every
        self._heartbeat_interval = heartbeat_interval
        self._clock = clock
        self._last_state: dict[tuple[int | None, str], tuple[bool, bool]] = {}
        self._last_written: dict[tuple[int | None, str], int] = {}
        self._last_numbers: dict[tuple[int | None, str], tuple[int, int, int, int]] = {}

    @property
    def tracker(self) -> ProgressTracker:
        return self._tracker

    def report(
        self,
        record: Record,
        operation_name: str,
        in_progress: bool,
        progress: int = 0,
        progress_of: int = 0,
        page: int = 0,
        pages: int = 0,
        metadata: dict[str, Any] | None = None,
        error: BaseException | str | None = None,
    ) -> Record:
        metadata = metadata or {}
        message = metadata.get("message")
        text_delta = metadata.get("text_delta")
        page_delta = metadata.get("page_delta")
        record_text = metadata.get("record_text")
        error_text = str(error) if error is not None else None
        key = (record.id, operation_name)

        record.operation_name = operation_name
        record.operation_in_progress = in_progress
        record.operation_error = error_text

        state = (in_progress, error_text is not None)
        state_changed = self._last_state.get(key) != state
        self._last_state[key] = state
        self._last_numbers[key] = (progress, progress_of, page, pages)

        if record.id is not None:
            last_written = self._last_written.get(key)
            if (
                state_changed
                or error_text is not None
                or message
                or last_written is None
                or progress - last_written >= self._write_every
            ):
                self._locks.step(
                    record.id,
                    operation_name,
                    progress=progress,
                    progress_of=progress_of,
                    page=page,
                    pages=pages,
                    message=message or error_text,
                    text_delta=text_delta,
                    page_delta=page_delta,
                    record_text=record_text,
                )
                self._last_written[key] = progress

        needs_save = False
        if progress > 0 and progress_of > 0:
            record.operation_progress = OperationProgress(
                operation_name=operation_name,
                page=page,
                pages=pages,
                progress=progress,
                progress_of=progress_of,
                text_delta=text_delta or "",
                page_delta=page_delta,
                record_text=record_text,
                message=message,
            )
            needs_save = in_progress and self._touch_heartbeat(record)

        if page_delta is not None and record_text is not None:
            record.text = record_text
            record.set_extra(page_content_type(page), page_delta)
            if page >= pages:
                record.remove_extra(DOCUMENT_PARSED_PAGES)
                record.remove_extra(DOCUMENT_PAGES_TOTAL)
            else:
                record.set_extra(DOCUMENT_PARSED_PAGES, str(page))
                record.set_extra(DOCUMENT_PAGES_TOTAL, str(pages))
            needs_save = True

        if needs_save:
            record = self._records.save(record)

        self._tracker.append(
            ProgressEvent(
                record_id=record.id,
                operation_name=operation_name,
                in_progress=in_progress,
                progress=progress,
                progress_of=progress_of,
                page=page,
                pages=pages,
                text_delta=text_delta,
                page_delta=page_delta,
                message=message,
                error=error_text,
                at=self._clock(),
            )
        )
        return record

    def complete(self, record: Record, operation_name: str) -> Record:
        """Report the end of an operation without regressing its progress."""
        progress, progress_of, page, pages = self._last_numbers.get(
            (record.id, operation_name), (0, 0, 0, 0)
        )
        record = self.report(
            record,
            operation_name,
            False,
            progress,
            max(progress_of, progress),
            page,
            pages,
        )
        self._forget(record.id, operation_name)
        return record

    def fail(self, record: Record, operation_name: str, error: BaseException | str) -> Record:
        progress, progress_of, page, pages = self._last_numbers.get(
            (record.id, operation_name), (0, 0, 0, 0)
        )
        record = self.report(
            record,
            operation_name,
            False,
            progress,
            progress_of,
            page,
            pages,
            error=error,
        )
        self._forget(record.id, operation_name)
        return record

    def report_foreign(self, record: Record, lock: OperationLock) -> Record:
        """Show that another session is running the operation on this record."""
        started = lock.started_on.isoformat() if lock.started_on else "unknown time"
        message = f"Processing on another device since {started}"
        record.operation_name = lock.operation_name
        record.operation_in_progress = True
        record.operation_error = None
        record.operation_progress = OperationProgress(
            operation_name=lock.operation_name,
            page=lock.page,
            pages=lock.pages,
            progress=lock.progress,
            progress_of=lock.progress_of,
            message=message,
            processed_on_different_device=True,
        )
        self._tracker.append(
            ProgressEvent(
                record_id=record.id,
                operation_name=lock.operation_name,
                in_progress=True,
                progress=lock.progress,
                progress_of=lock.progress_of,
                page=lock.page,
                pages=lock.pages,
                message=message,
                processed_on_different_device=True,
                at=self._clock(),
            )
        )
        return record

    def _touch_heartbeat(self, record: Record) -> bool:
        now = self._clock()
        previous = record.get_extra(LAST_PROCESSING_STEP)
        if previous:
            try:
                if now - datetime.fromisoformat(previous) < self._heartbeat_interval:
                    return False
            except (TypeError, ValueError):
                pass
        record.set_extra(LAST_PROCESSING_STEP, now.isoformat())
        return True

    def _forget(self, record_id: int | None, operation_name: str) -> None:
        key = (record_id, operation_name)
        self._last_state.pop(key, None)
        self._last_written.pop(key, None)
        self._last_numbers.pop(key, None)

    def report_waiting(self, record: Record, operation_name: str, position: int) -> Record:
        """Show a queued record as pending without touching its lock."""
        message = f"Waiting in queue (position {position})"
        record.operation_name = operation_name
        record.operation_in_progress = True
        record.operation_error = None
        self._tracker.append(
            ProgressEvent(
                record_id=record.id,
                operation_name=operation_name,
                in_progress=True,
                message=message,
                at=self._clock(),
            )
        )
        return record
