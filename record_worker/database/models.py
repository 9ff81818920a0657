from dataclasses import dataclass
from datetime import datetime

PARSE_OPERATION = "parse"
TRANSLATE_OPERATION = "translate"

REGISTERED_OPERATIONS = (PARSE_OPERATION, TRANSLATE_OPERATION)


def operation_id_for(operation_name: str, record_id: int | None) -> str:
    """Composite lock key: ``{operation_name}-{record_id}``."""
    return f"{operation_name}-{record_id}"


@dataclass
class OperationLock:
    """Represents a row from the operations table."""

    record_id: int | None
    operation_name: str
    operation_id: str = ""
    id: int | None = None
    progress: int = 0
    progress_of: int = 0
    page: int = 0
    pages: int = 0
    message: str | None = None
    text_delta: str | None = None
    page_delta: str | None = None
    record_text: str | None = None
    started_on: datetime | None = None
    started_on_user_agent: str | None = None
    started_on_session_id: str | None = None
    last_step: datetime | None = None
    last_step_user_agent: str | None = None
    last_step_session_id: str | None = None
    finished: bool = False
    errored: bool = False
    error_message: str | None = None

    def __post_init__(self) -> None:
        if not self.operation_id:
            self.operation_id = operation_id_for(self.operation_name, self.record_id)


@dataclass(frozen=True)
class LastUpdate:
    """Most recently updated record of a folder."""

    record_id: int
    updated_at: datetime
