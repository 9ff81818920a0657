from datetime import datetime, timedelta

from record_worker.config.settings import Settings
from record_worker.database.repositories.operations_repository import OperationsRepository
from record_worker.database.repositories.records_repository import RecordsRepository
from record_worker.llm.factory import CompletionClientFactory
from record_worker.logging.logger import Log
from record_worker.ocr.factory import ParseProviderFactory
from record_worker.processing.auto_trigger import AutoTriggerController, TriggerSummary
from record_worker.processing.locks import OperationLockPolicy, OperationLocks, SessionIdentity
from record_worker.processing.processor import RecordProcessor
from record_worker.processing.progress import ProgressEvent, ProgressReconciler, ProgressTracker
from record_worker.processing.queue import CompletionCallback, ProcessingQueue
from record_worker.processing.translator import Translator
from record_worker.records.models import OperationProgress, Record
from record_worker.records.record_service import RecordService
from record_worker.rendering.factory import PdfRendererFactory
from record_worker.rendering.page_renderer import PageRenderer
from record_worker.storage.attachment_store import AttachmentStore


class RecordPipeline:
    """Entry point for callers: queue, progress, translation and refresh."""

    def __init__(
        self,
        *,
        records: RecordService,
        repository: RecordsRepository,
        locks: OperationLocks,
        tracker: ProgressTracker,
        queue: ProcessingQueue,
        translator: Translator,
        auto_trigger: AutoTriggerController,
        translation_language: str = "English",
    ) -> None:
        self._records = records
        self._repository = repository
        self._locks = locks
        self._tracker = tracker
        self._queue = queue
        self._translator = translator
        self._auto_trigger = auto_trigger
        self._translation_language = translation_language
        self._last_seen: dict[int, datetime] = {}

    @property
    def queue_length(self) -> int:
        return len(self._queue)

    @property
    def session(self) -> SessionIdentity:
        return self._locks.policy.session

    def progress(self, record_id: int) -> OperationProgress | None:
        return self._tracker.current(record_id)

    def progress_history(self, record_id: int) -> list[ProgressEvent]:
        return self._tracker.history(record_id)

    def enqueue_for_parsing(
        self,
        record: Record,
        on_complete: CompletionCallback | None = None,
    ) -> bool:
        """Queue a record for parsing and drain the queue."""
        added = self._queue.enqueue(record, on_complete)
        self._queue.drain()
        return added

    def translate(self, record: Record, language: str | None = None) -> Record:
        return self._translator.translate(record, language or self._translation_language)

    def has_changes_since(self, folder_id: int, since: datetime | None) -> bool:
        last = self._repository.get_last_update(folder_id)
        if last is None:
            return False
        return since is None or last.updated_at > since

    def refresh(self, folder_id: int, force: bool = False) -> TriggerSummary | None:
        """Reload the folder when it changed and run the auto-trigger on it.

        Returns None when nothing changed since the previous refresh.
        """
        last = self._repository.get_last_update(folder_id)
        if last is None:
            return None
        since = self._last_seen.get(folder_id)
        if not force and since is not None and last.updated_at <= since:
            return None

        self._last_seen[folder_id] = last.updated_at
        records = self._records.list_folder(folder_id)
        Log.debug(f"Loaded {len(records)} record(s) from folder {folder_id}")
        summary = self._auto_trigger.on_records_loaded(records)
        if summary.enqueued or summary.translated or summary.resumed:
            Log.info(
                f"Folder {folder_id}: enqueued={summary.enqueued} "
                f"translated={summary.translated} resumed={summary.resumed} "
                f"processed={summary.processed}"
            )
        return summary

    def close(self) -> None:
        self._locks.shutdown()


def build_pipeline(settings: Settings) -> RecordPipeline:
    """Wire the pipeline from settings. The connection pool must be initialized."""
    session = SessionIdentity.create(settings.session_id, settings.user_agent)
    policy = OperationLockPolicy(session, timedelta(seconds=settings.lock_stale_seconds))
    locks = OperationLocks(OperationsRepository(), policy)

    repository = RecordsRepository()
    store = AttachmentStore(settings.files_root)
    client = CompletionClientFactory.create(settings)
    records = RecordService(repository=repository, store=store, client=client)

    tracker = ProgressTracker()
    reconciler = ProgressReconciler(
        locks=locks,
        records=records,
        tracker=tracker,
        write_every=settings.lock_write_every,
        heartbeat_interval=timedelta(seconds=settings.heartbeat_interval_seconds),
    )
    renderer = PageRenderer(
        store=store,
        renderer=PdfRendererFactory.create(settings),
        max_height=settings.pdf_max_height,
    )
    provider = ParseProviderFactory.create(
        settings,
        client=client,
        records=records,
        reconciler=reconciler,
        renderer=renderer,
    )
    processor = RecordProcessor(
        locks=locks,
        reconciler=reconciler,
        renderer=renderer,
        provider=provider,
    )
    queue = ProcessingQueue(processor, reconciler)
    translator = Translator(
        client=client,
        records=records,
        locks=locks,
        reconciler=reconciler,
        average_page_tokens=settings.average_page_tokens,
    )
    auto_trigger = AutoTriggerController(
        queue=queue,
        translator=translator,
        locks=locks,
        reconciler=reconciler,
        auto_parse=settings.auto_parse_record,
        auto_translate=settings.auto_translate_record,
        translation_language=settings.translation_language,
        recent_update_window=timedelta(seconds=settings.recent_update_window_seconds),
    )
    Log.info(f"Pipeline ready: provider={provider.name} session={session.session_id}")
    return RecordPipeline(
        records=records,
        repository=repository,
        locks=locks,
        tracker=tracker,
        queue=queue,
        translator=translator,
        auto_trigger=auto_trigger,
        translation_language=settings.translation_language,
    )
