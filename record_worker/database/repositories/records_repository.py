from typing import Any

from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from record_worker.database.connection import get_connection
from record_worker.database.models import LastUpdate
from record_worker.processing.exceptions import RecordNotFoundError
from record_worker.records.models import Attachment, Record, RecordExtra

_COLUMNS = """
    id, folder_id, title, description, tags, type, json, text, extra,
    transcription, event_date, checksum, checksum_last_parsed, attachments,
    created_at, updated_at
"""


class RecordsRepository:
    """Database operations for the records table."""

    def find_by_id(self, record_id: int) -> Record:
        """Find a record by ID.

        Raises:
            RecordNotFoundError: if no record with this ID exists.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_COLUMNS} FROM records WHERE id = %s",
                    (record_id,),
                )
                row = cur.fetchone()

        if row is None:
            raise RecordNotFoundError(f"Record {record_id} not found")
        return self._to_record(row)

    def list_by_folder(self, folder_id: int) -> list[Record]:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_COLUMNS} FROM records WHERE folder_id = %s ORDER BY id",
                    (folder_id,),
                )
                rows = cur.fetchall()
        return [self._to_record(row) for row in rows]

    def save(self, record: Record) -> Record:
        """Insert a new record or update an existing one, in place.

        Raises:
            RecordNotFoundError: if the record has an id that no longer exists.
        """
        values = (
            record.title or None,
            record.description or None,
            Jsonb(record.tags),
            record.type,
            Jsonb(record.json) if record.json is not None else None,
            record.text,
            Jsonb([item.to_dict() for item in record.extra]),
            record.transcription or None,
            record.event_date,
            record.checksum,
            record.checksum_at_last_parse,
            Jsonb([attachment.to_dict() for attachment in record.attachments]),
        )
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                if record.id is None:
                    cur.execute(
                        """
                        INSERT INTO records (
                            folder_id, title, description, tags, type, json, text,
                            extra, transcription, event_date, checksum,
                            checksum_last_parsed, attachments
                        ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                        RETURNING id, created_at, updated_at
                        """,
                        (record.folder_id, *values),
                    )
                else:
                    cur.execute(
                        """
                        UPDATE records
                        SET title = %s, description = %s, tags = %s, type = %s,
                            json = %s, text = %s, extra = %s, transcription = %s,
                            event_date = %s, checksum = %s, checksum_last_parsed = %s,
                            attachments = %s, updated_at = NOW()
                        WHERE id = %s
                        RETURNING id, created_at, updated_at
                        """,
                        (*values, record.id),
                    )
                row = cur.fetchone()
            conn.commit()

        if row is None:
            raise RecordNotFoundError(f"Record {record.id} not found")
        record.id = row["id"]
        record.created_at = row["created_at"]
        record.updated_at = row["updated_at"]
        return record

    def delete(self, record_id: int) -> bool:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM records WHERE id = %s", (record_id,))
                deleted = cur.rowcount
            conn.commit()
        return deleted > 0

    def get_last_update(self, folder_id: int) -> LastUpdate | None:
        """Return the most recently updated record of the folder, if any."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    SELECT id, updated_at
                    FROM records
                    WHERE folder_id = %s
                    ORDER BY updated_at DESC
                    LIMIT 1
                    """,
                    (folder_id,),
                )
                row = cur.fetchone()

        if row is None:
            return None
        return LastUpdate(record_id=row["id"], updated_at=row["updated_at"])

    @staticmethod
    def _to_record(row: dict[str, Any]) -> Record:
        return Record(
            id=row["id"],
            folder_id=row["folder_id"],
            title=row["title"] or "",
            description=row["description"] or "",
            tags=list(row["tags"] or []),
            type=row["type"] or "note",
            json=row["json"],
            text=row["text"] or "",
            extra=[RecordExtra(type=e["type"], value=e["value"]) for e in row["extra"] or []],
            transcription=row["transcription"] or "",
            event_date=row["event_date"],
            checksum=row["checksum"] or "",
            checksum_at_last_parse=row["checksum_last_parsed"] or "",
            attachments=[Attachment.from_dict(a) for a in row["attachments"] or []],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
