class StorageError(Exception):
    """Base exception for attachment storage errors."""


class AttachmentNotFoundError(StorageError):
    """Raised when an attachment's file is missing from storage."""
