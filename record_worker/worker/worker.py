import time

from record_worker.config.settings import Settings
from record_worker.logging.logger import Log
from record_worker.processing.auto_trigger import TriggerSummary
from record_worker.processing.service import RecordPipeline


class Worker:
    """Poll loop: refresh folder -> auto-trigger -> sleep."""

    def __init__(self, pipeline: RecordPipeline, settings: Settings) -> None:
        self._pipeline = pipeline
        self._settings = settings

    def run(self, max_polls: int | None = None) -> None:
        """Main poll loop. Runs forever until interrupted.

        If max_polls is set, stop after that many refreshes (for testing).
        """
        Log.info(f"Worker started, watching folder {self._settings.folder_id}")
        polls = 0
        try:
            while max_polls is None or polls < max_polls:
                summary = self._try_refresh(force=polls == 0)
                polls += 1
                if summary is None:
                    Log.debug("No changes, sleeping")
                if max_polls is not None and polls >= max_polls:
                    break
                time.sleep(self._settings.poll_interval_seconds)
        except KeyboardInterrupt:
            Log.info("Worker shutting down gracefully")

    def _try_refresh(self, force: bool) -> TriggerSummary | None:
        """Refresh the watched folder. Gracefully handle DB errors."""
        try:
            return self._pipeline.refresh(self._settings.folder_id, force=force)
        except Exception as exc:
            Log.warning(f"Refresh failed, will retry: {exc}")
            return None
