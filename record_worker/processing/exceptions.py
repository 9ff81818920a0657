class ProcessingError(Exception):
    """Base exception for record processing failures."""


class RecordValidationError(ProcessingError):
    """Raised when the model reports that a record is not a valid document.

    The record has already been deleted when this is raised.
    """


class OperationLockedError(ProcessingError):
    """Raised when another session holds a live lock for the operation."""


class RecordNotFoundError(ProcessingError):
    """Raised when a record cannot be found in the database."""
