from record_worker.config.settings import Settings
from record_worker.database.connection import close_pool, init_pool
from record_worker.database.schema import ensure_schema
from record_worker.logging.logger import Log
from record_worker.processing.service import build_pipeline
from record_worker.worker.worker import Worker


def main() -> None:
    """Entry point: initialize pool -> build pipeline -> start worker loop."""
    settings = Settings()
    Log.configure(settings.log_level, settings.session_id or "-")
    init_pool(settings)

    pipeline = None
    try:
        ensure_schema()
        pipeline = build_pipeline(settings)
        Log.configure(settings.log_level, pipeline.session.session_id)
        worker = Worker(pipeline, settings)
        worker.run()
    finally:
        if pipeline is not None:
            pipeline.close()
        close_pool()


if __name__ == "__main__":
    main()
