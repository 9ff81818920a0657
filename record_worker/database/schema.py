"""DDL for the two tables the pipeline touches."""

from record_worker.database.connection import get_connection
from record_worker.logging.logger import Log

RECORDS_DDL = """
CREATE TABLE IF NOT EXISTS records (
    id SERIAL PRIMARY KEY,
    folder_id INTEGER NOT NULL,
    title TEXT,
    description TEXT,
    tags JSONB,
    type TEXT NOT NULL DEFAULT 'note',
    json JSONB,
    text TEXT,
    extra JSONB,
    transcription TEXT,
    event_date TEXT,
    checksum TEXT NOT NULL DEFAULT '',
    checksum_last_parsed TEXT NOT NULL DEFAULT '',
    attachments JSONB NOT NULL DEFAULT '[]'::jsonb,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
)
"""

RECORDS_FOLDER_INDEX_DDL = """
CREATE INDEX IF NOT EXISTS records_folder_updated_idx
    ON records (folder_id, updated_at DESC)
"""

OPERATIONS_DDL = """
CREATE TABLE IF NOT EXISTS operations (
    id SERIAL PRIMARY KEY,
    record_id INTEGER,
    operation_id TEXT,
    operation_name TEXT,
    operation_progress INTEGER NOT NULL DEFAULT 0,
    operation_progress_of INTEGER NOT NULL DEFAULT 0,
    operation_page INTEGER NOT NULL DEFAULT 0,
    operation_pages INTEGER NOT NULL DEFAULT 0,
    operation_message TEXT,
    operation_text_delta TEXT,
    operation_page_delta TEXT,
    operation_record_text TEXT,
    operation_started_on TIMESTAMPTZ,
    operation_started_on_user_agent TEXT,
    operation_started_on_session_id TEXT,
    operation_last_step TIMESTAMPTZ,
    operation_last_step_user_agent TEXT,
    operation_last_step_session_id TEXT,
    operation_finished BOOLEAN NOT NULL DEFAULT FALSE,
    operation_errored BOOLEAN NOT NULL DEFAULT FALSE,
    operation_error_message TEXT
)
"""

OPERATIONS_INDEX_DDL = """
CREATE INDEX IF NOT EXISTS operations_record_idx
    ON operations (record_id, operation_last_step DESC)
"""


def ensure_schema() -> None:
    """Create the records and operations tables when they are missing."""
    with get_connection() as conn:
        for statement in (
            RECORDS_DDL,
            RECORDS_FOLDER_INDEX_DDL,
            OPERATIONS_DDL,
            OPERATIONS_INDEX_DDL,
        ):
            conn.execute(statement)
        conn.commit()
    Log.debug("Database schema ensured")
