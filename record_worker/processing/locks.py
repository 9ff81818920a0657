"""Cross-session operation locks backed by the operations table."""

import threading
import uuid
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta

import psycopg

from record_worker.database.models import OperationLock
from record_worker.database.repositories.operations_repository import OperationsRepository
from record_worker.logging.logger import Log
from record_worker.processing.exceptions import ProcessingError
from record_worker.records.models import Record


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class SessionIdentity:
    """Who is stamping lock rows: one worker process is one session."""

    session_id: str
    user_agent: str

    @classmethod
    def create(cls, session_id: str = "", user_agent: str = "record-worker") -> "SessionIdentity":
        return cls(session_id=session_id or str(uuid.uuid4()), user_agent=user_agent)


class OperationLockPolicy:
    """Answers liveness and ownership questions about lock rows."""

    def __init__(
        self,
        session: SessionIdentity,
        stale_after: timedelta = timedelta(minutes=5),
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.session = session
        self.stale_after = stale_after
        self.clock = clock

    def is_active(self, lock: OperationLock) -> bool:
        return not lock.finished and not lock.errored

    def is_stale(self, lock: OperationLock) -> bool:
        if lock.last_step is None:
            return True
        return self.clock() - lock.last_step >= self.stale_after

    def is_live(self, lock: OperationLock) -> bool:
        return self.is_active(lock) and not self.is_stale(lock)

    def is_foreign(self, lock: OperationLock) -> bool:
        return self.is_live(lock) and lock.last_step_session_id != self.session.session_id

    def is_resumable(self, lock: OperationLock) -> bool:
        return self.is_live(lock) and lock.last_step_session_id == self.session.session_id


def latest_by_operation(
    locks: Iterable[OperationLock],
) -> dict[tuple[int | None, str], OperationLock]:
    """Keep the first lock seen per (record_id, operation_name).

    Callers pass locks ordered by last step, newest first.
    """
    latest: dict[tuple[int | None, str], OperationLock] = {}
    for lock in locks:
        latest.setdefault((lock.record_id, lock.operation_name), lock)
    return latest


class OperationLocks:
    """Acquires, steps and releases the locks held by this session.

    Step writes are fire-and-forget on a single background thread, so they
    reach the database in order. Acquire, finish and fail are synchronous;
    finish and fail wait for pending step writes first.
    """

    def __init__(
        self,
        repository: OperationsRepository,
        policy: OperationLockPolicy,
    ) -> None:
        self._repository = repository
        self._policy = policy
        self._held: dict[tuple[int, str], OperationLock] = {}
        self._held_mutex = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="lock-writes")
        self._pending: list[Future[None]] = []

    @property
    def policy(self) -> OperationLockPolicy:
        return self._policy

    def current(self, record_id: int, operation_name: str) -> OperationLock | None:
        """Return the newest stored lock for the record and operation."""
        return self._repository.find(record_id=record_id, operation_name=operation_name)

    def find_for_records(self, record_ids: Sequence[int]) -> list[OperationLock]:
        return self._repository.find_for_records(record_ids)

    def acquire(self, record: Record, operation_name: str) -> OperationLock | None:
        """Take the lock for an operation on a record.

        Returns None when another session holds a live lock. Stale, terminal
        and own locks are reclaimed in place.
        """
        if record.id is None:
            raise ProcessingError("Record must be saved before it can be locked")

        existing = self.current(record.id, operation_name)
        if existing is not None and self._policy.is_foreign(existing):
            Log.info(
                f"{operation_name} is locked by session {existing.last_step_session_id}",
                record_id=record.id,
            )
            return None

        now = self._policy.clock()
        session = self._policy.session
        lock = existing or OperationLock(record_id=record.id, operation_name=operation_name)
        lock.progress = lock.progress_of = lock.page = lock.pages = 0
        lock.message = lock.text_delta = lock.page_delta = lock.record_text = None
        lock.started_on = lock.last_step = now
        lock.started_on_user_agent = lock.last_step_user_agent = session.user_agent
        lock.started_on_session_id = lock.last_step_session_id = session.session_id
        lock.finished = lock.errored = False
        lock.error_message = None

        if existing is not None:
            Log.debug(f"Reclaiming {operation_name} lock {lock.operation_id}", record_id=record.id)
            lock = self._repository.update(lock)
        else:
            lock = self._repository.create(lock)

        with self._held_mutex:
            self._held[(record.id, operation_name)] = lock
        return lock

    def is_held(self, record_id: int, operation_name: str) -> bool:
        with self._held_mutex:
            return (record_id, operation_name) in self._held

    def step(
        self,
        record_id: int,
        operation_name: str,
        *,
        progress: int = 0,
        progress_of: int = 0,
        page: int = 0,
        pages: int = 0,
        message: str | None = None,
        text_delta: str | None = None,
        page_delta: str | None = None,
        record_text: str | None = None,
    ) -> None:
        """Record progress on a held lock and write it in the background."""
        with self._held_mutex:
            lock = self._held.get((record_id, operation_name))
            if lock is None:
                return
            lock.progress = progress
            lock.progress_of = progress_of
            lock.page = page
            lock.pages = pages
            lock.message = message
            lock.text_delta = text_delta
            lock.page_delta = page_delta
            lock.record_text = record_text
            self._stamp(lock)
            snapshot = replace(lock)
            self._pending = [f for f in self._pending if not f.done()]
            self._pending.append(self._executor.submit(self._write_step, snapshot))

    def finish(self, record_id: int, operation_name: str) -> None:
        self._release(record_id, operation_name, errored=False, error_message=None)

    def fail(self, record_id: int, operation_name: str, message: str) -> None:
        self._release(record_id, operation_name, errored=True, error_message=message)

    def flush(self) -> None:
        """Block until every queued step write has completed."""
        with self._held_mutex:
            pending = list(self._pending)
            self._pending.clear()
        wait(pending)

    def shutdown(self) -> None:
        self.flush()
        self._executor.shutdown(wait=True)

    def _release(
        self,
        record_id: int,
        operation_name: str,
        *,
        errored: bool,
        error_message: str | None,
    ) -> None:
        self.flush()
        with self._held_mutex:
            lock = self._held.pop((record_id, operation_name), None)
        if lock is None:
            return

        lock.finished = not errored
        lock.errored = errored
        lock.error_message = error_message
        self._stamp(lock)
        try:
            self._repository.update(lock)
        except psycopg.Error as exc:
            Log.error(f"Failed to release {operation_name} lock: {exc}", record_id=record_id)

    def _stamp(self, lock: OperationLock) -> None:
        session = self._policy.session
        lock.last_step = self._policy.clock()
        lock.last_step_user_agent = session.user_agent
        lock.last_step_session_id = session.session_id

    def _write_step(self, lock: OperationLock) -> None:
        try:
            self._repository.update(lock)
        except psycopg.Error as exc:
            Log.warning(
                f"Lock step write failed for {lock.operation_id}: {exc}",
                record_id=lock.record_id,
            )
