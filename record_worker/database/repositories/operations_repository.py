from collections.abc import Sequence
from typing import Any

from psycopg.rows import dict_row

from record_worker.database.connection import get_connection
from record_worker.database.models import OperationLock

_COLUMNS = """
    id, record_id, operation_id, operation_name,
    operation_progress, operation_progress_of, operation_page, operation_pages,
    operation_message, operation_text_delta, operation_page_delta, operation_record_text,
    operation_started_on, operation_started_on_user_agent, operation_started_on_session_id,
    operation_last_step, operation_last_step_user_agent, operation_last_step_session_id,
    operation_finished, operation_errored, operation_error_message
"""


class OperationsRepository:
    """Database operations for the operations (lock) table.

    The table does not enforce uniqueness per (record_id, operation_name);
    callers check before they create.
    """

    def find(
        self,
        *,
        record_id: int | None = None,
        operation_id: str | None = None,
        operation_name: str | None = None,
    ) -> OperationLock | None:
        """Return the most recently stepped lock matching the filter."""
        clauses: list[str] = []
        params: list[Any] = []
        if record_id is not None:
            clauses.append("record_id = %s")
            params.append(record_id)
        if operation_id is not None:
            clauses.append("operation_id = %s")
            params.append(operation_id)
        if operation_name is not None:
            clauses.append("operation_name = %s")
            params.append(operation_name)
        if not clauses:
            raise ValueError("find() needs record_id, operation_id or operation_name")

        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_COLUMNS}
                    FROM operations
                    WHERE {" AND ".join(clauses)}
                    ORDER BY operation_last_step DESC NULLS LAST, id DESC
                    LIMIT 1
                    """,
                    tuple(params),
                )
                row = cur.fetchone()
        return self._to_lock(row) if row is not None else None

    def find_for_records(self, record_ids: Sequence[int]) -> list[OperationLock]:
        """Return all locks for the given records, most recently stepped first."""
        if not record_ids:
            return []
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_COLUMNS}
                    FROM operations
                    WHERE record_id = ANY(%s)
                    ORDER BY operation_last_step DESC NULLS LAST, id DESC
                    """,
                    (list(record_ids),),
                )
                rows = cur.fetchall()
        return [self._to_lock(row) for row in rows]

    def create(self, lock: OperationLock) -> OperationLock:
        """Insert a lock row and return it with the assigned id."""
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO operations (
                        record_id, operation_id, operation_name,
                        operation_progress, operation_progress_of,
                        operation_page, operation_pages,
                        operation_message, operation_text_delta,
                        operation_page_delta, operation_record_text,
                        operation_started_on, operation_started_on_user_agent,
                        operation_started_on_session_id,
                        operation_last_step, operation_last_step_user_agent,
                        operation_last_step_session_id,
                        operation_finished, operation_errored, operation_error_message
                    ) VALUES (
                        %s, %s, %s, %s, %s, %s, %s, %s, %s, %s,
                        %s, %s, %s, %s, %s, %s, %s, %s, %s, %s
                    )
                    RETURNING id
                    """,
                    (
                        lock.record_id,
                        lock.operation_id,
                        lock.operation_name,
                        *self._mutable_values(lock),
                    ),
                )
                row = cur.fetchone()
            conn.commit()
        if row is None:
            raise RuntimeError(f"Insert of operation {lock.operation_id} returned no id")
        lock.id = row[0]
        return lock

    def update(self, lock: OperationLock) -> OperationLock:
        """Replace every field of the lock, inserting it when no row matches.

        Rows are matched by id when known, otherwise by operation_id.
        """
        if lock.id is not None:
            where, key = "id = %s", lock.id
        else:
            where, key = "operation_id = %s", lock.operation_id
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    UPDATE operations
                    SET operation_progress = %s,
                        operation_progress_of = %s,
                        operation_page = %s,
                        operation_pages = %s,
                        operation_message = %s,
                        operation_text_delta = %s,
                        operation_page_delta = %s,
                        operation_record_text = %s,
                        operation_started_on = %s,
                        operation_started_on_user_agent = %s,
                        operation_started_on_session_id = %s,
                        operation_last_step = %s,
                        operation_last_step_user_agent = %s,
                        operation_last_step_session_id = %s,
                        operation_finished = %s,
                        operation_errored = %s,
                        operation_error_message = %s
                    WHERE {where}
                    """,
                    (*self._mutable_values(lock), key),
                )
                updated = cur.rowcount
            conn.commit()
        if updated == 0:
            return self.create(lock)
        return lock

    def delete(
        self,
        *,
        record_id: int | None = None,
        operation_id: str | None = None,
    ) -> bool:
        """Delete locks by record id or operation id. Returns True if any row went away."""
        if operation_id is not None:
            where, key = "operation_id = %s", operation_id
        elif record_id is not None:
            where, key = "record_id = %s", record_id
        else:
            return False
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(f"DELETE FROM operations WHERE {where}", (key,))
                deleted = cur.rowcount
            conn.commit()
        return deleted > 0

    @staticmethod
    def _mutable_values(lock: OperationLock) -> tuple[Any, ...]:
        return (
            lock.progress,
            lock.progress_of,
            lock.page,
            lock.pages,
            lock.message,
            lock.text_delta,
            lock.page_delta,
            lock.record_text,
            lock.started_on,
            lock.started_on_user_agent,
            lock.started_on_session_id,
            lock.last_step,
            lock.last_step_user_agent,
            lock.last_step_session_id,
            lock.finished,
            lock.errored,
            lock.error_message,
        )

    @staticmethod
    def _to_lock(row: dict[str, Any]) -> OperationLock:
        return OperationLock(
            id=row["id"],
            record_id=row["record_id"],
            operation_id=row["operation_id"] or "",
            operation_name=row["operation_name"] or "",
            progress=row["operation_progress"] or 0,
            progress_of=row["operation_progress_of"] or 0,
            page=row["operation_page"] or 0,
            pages=row["operation_pages"] or 0,
            message=row["operation_message"],
            text_delta=row["operation_text_delta"],
            page_delta=row["operation_page_delta"],
            record_text=row["operation_record_text"],
            started_on=row["operation_started_on"],
            started_on_user_agent=row["operation_started_on_user_agent"],
            started_on_session_id=row["operation_started_on_session_id"],
            last_step=row["operation_last_step"],
            last_step_user_agent=row["operation_last_step_user_agent"],
            last_step_session_id=row["operation_last_step_session_id"],
            finished=bool(row["operation_finished"]),
            errored=bool(row["operation_errored"]),
            error_message=row["operation_error_message"],
        )
