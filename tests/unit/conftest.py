"""In-memory stand-ins for the two repositories and a controllable clock."""

import threading
from dataclasses import replace
from datetime import UTC, datetime, timedelta

import pytest

from record_worker.database.models import LastUpdate, OperationLock
from record_worker.processing.exceptions import RecordNotFoundError
from record_worker.processing.locks import OperationLockPolicy, OperationLocks, SessionIdentity
from record_worker.processing.progress import ProgressReconciler, ProgressTracker
from record_worker.records.models import Attachment, Record
from record_worker.records.record_service import RecordService
from record_worker.storage.attachment_store import AttachmentStore


class FakeClock:
    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2024, 5, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class InMemoryOperationsRepository:
    def __init__(self) -> None:
        self.rows: list[OperationLock] = []
        self.writes: list[OperationLock] = []
        self._mutex = threading.Lock()
        self._next_id = 1

    def find(self, *, record_id=None, operation_id=None, operation_name=None):
        matches = [
            row
            for row in self._sorted()
            if (record_id is None or row.record_id == record_id)
            and (operation_id is None or row.operation_id == operation_id)
            and (operation_name is None or row.operation_name == operation_name)
        ]
        return replace(matches[0]) if matches else None

    def find_for_records(self, record_ids):
        return [replace(row) for row in self._sorted() if row.record_id in record_ids]

    def create(self, lock: OperationLock) -> OperationLock:
        with self._mutex:
            lock.id = self._next_id
            self._next_id += 1
            self.rows.append(replace(lock))
            self.writes.append(replace(lock))
        return lock

    def update(self, lock: OperationLock) -> OperationLock:
        with self._mutex:
            for index, row in enumerate(self.rows):
                if (lock.id is not None and row.id == lock.id) or (
                    lock.id is None and row.operation_id == lock.operation_id
                ):
                    self.rows[index] = replace(lock, id=row.id)
                    self.writes.append(replace(lock))
                    return lock
        return self.create(lock)

    def delete(self, *, record_id=None, operation_id=None) -> bool:
        before = len(self.rows)
        self.rows = [
            row
            for row in self.rows
            if not (
                (operation_id is not None and row.operation_id == operation_id)
                or (operation_id is None and record_id is not None and row.record_id == record_id)
            )
        ]
        return len(self.rows) < before

    def _sorted(self) -> list[OperationLock]:
        floor = datetime.min.replace(tzinfo=UTC)
        return sorted(
            self.rows,
            key=lambda row: (row.last_step or floor, row.id or 0),
            reverse=True,
        )


class InMemoryRecordsRepository:
    def __init__(self, clock: FakeClock) -> None:
        self.rows: dict[int, Record] = {}
        self.saves: list[int] = []
        self._clock = clock
        self._next_id = 1

    def find_by_id(self, record_id: int) -> Record:
        if record_id not in self.rows:
            raise RecordNotFoundError(f"Record {record_id} not found")
        return self.rows[record_id]

    def list_by_folder(self, folder_id: int) -> list[Record]:
        return [r for r in self.rows.values() if r.folder_id == folder_id]

    def save(self, record: Record) -> Record:
        if record.id is None:
            record.id = self._next_id
            self._next_id += 1
            record.created_at = self._clock()
        elif record.id not in self.rows:
            raise RecordNotFoundError(f"Record {record.id} not found")
        record.updated_at = self._clock()
        self.rows[record.id] = record
        self.saves.append(record.id)
        return record

    def delete(self, record_id: int) -> bool:
        return self.rows.pop(record_id, None) is not None

    def get_last_update(self, folder_id: int) -> LastUpdate | None:
        records = [r for r in self.rows.values() if r.folder_id == folder_id and r.updated_at]
        if not records:
            return None
        latest = max(records, key=lambda r: r.updated_at)
        return LastUpdate(record_id=latest.id, updated_at=latest.updated_at)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def operations_repo() -> InMemoryOperationsRepository:
    return InMemoryOperationsRepository()


@pytest.fixture()
def records_repo(clock: FakeClock) -> InMemoryRecordsRepository:
    return InMemoryRecordsRepository(clock)


class Harness:
    """Real lock manager, record service and reconciler over in-memory storage."""

    def __init__(self, tmp_path, clock, operations_repo, records_repo) -> None:
        self.clock = clock
        self.files_root = tmp_path
        self.operations_repo = operations_repo
        self.records_repo = records_repo
        self.session = SessionIdentity(session_id="session-a", user_agent="test-agent")
        self.policy = OperationLockPolicy(self.session, timedelta(minutes=5), clock)
        self.locks = OperationLocks(operations_repo, self.policy)
        self.store = AttachmentStore(tmp_path)
        self.records = RecordService(repository=records_repo, store=self.store)
        self.tracker = ProgressTracker()
        self.reconciler = ProgressReconciler(
            locks=self.locks,
            records=self.records,
            tracker=self.tracker,
            clock=clock,
        )

    def make_record(self, attachments: int = 1, **fields) -> Record:
        """Save a record whose attachment files exist under the files root."""
        record = Record(folder_id=fields.pop("folder_id", 1), **fields)
        for index in range(attachments):
            key = f"blob-{len(self.records_repo.rows)}-{index}.jpg"
            (self.files_root / key).write_bytes(b"\xff\xd8 fake jpeg")
            record.attachments.append(
                Attachment(
                    id=100 + len(self.records_repo.rows) * 10 + index,
                    storage_key=key,
                    display_name=key,
                    mime_type="image/jpeg",
                    size=12,
                )
            )
        return self.records.save(record)

    def foreign_lock(self, record_id: int, operation_name: str, **fields) -> OperationLock:
        lock = OperationLock(
            record_id=record_id,
            operation_name=operation_name,
            started_on=self.clock(),
            started_on_session_id="session-b",
            last_step=self.clock(),
            last_step_session_id="session-b",
            last_step_user_agent="other-agent",
            **fields,
        )
        return self.operations_repo.create(lock)


@pytest.fixture()
def harness(tmp_path, clock, operations_repo, records_repo):
    h = Harness(tmp_path, clock, operations_repo, records_repo)
    yield h
    h.locks.shutdown()
