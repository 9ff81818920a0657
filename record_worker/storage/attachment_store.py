from pathlib import Path

from record_worker.records.models import Attachment
from record_worker.storage.exceptions import AttachmentNotFoundError, StorageError


def attachment_file_path(files_root: Path, storage_key: str) -> Path:
    """Build path to attachment file: {files_root}/{storage_key}"""
    return files_root / storage_key


class AttachmentStore:
    """Reads and removes attachment bytes under a local files root."""

    FILES_ROOT = Path("/app/data")

    def __init__(self, files_root: Path | None = None) -> None:
        self._files_root = files_root if files_root is not None else self.FILES_ROOT

    def read(self, attachment: Attachment) -> bytes:
        """Read attachment bytes from disk.

        Raises:
            AttachmentNotFoundError: if the file does not exist at resolved path.
        """
        path = self._resolve_path(attachment)
        if not path.exists():
            raise AttachmentNotFoundError(f"File not found: {path}")
        return path.read_bytes()

    def delete(self, attachment: Attachment) -> bool:
        """Remove the attachment's file. Returns False if it was already gone."""
        path = self._resolve_path(attachment)
        if not path.exists():
            return False
        path.unlink()
        return True

    def _resolve_path(self, attachment: Attachment) -> Path:
        path = attachment_file_path(self._files_root, attachment.storage_key)
        root = self._files_root.resolve()
        if not path.resolve().is_relative_to(root):
            raise StorageError(f"Storage key escapes files root: {attachment.storage_key}")
        return path
