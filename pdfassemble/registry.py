import logging
import os
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Sequence

from werkzeug.utils import secure_filename

from .errors import InvalidInputError, NotFoundError, StorageError, TooLargeError
from .jobs import utcnow

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"


@dataclass(frozen=True)
class StoredFile:
    id: str
    original_name: str
    stored_name: str
    storage_path: str
    size_bytes: int
    uploaded_at: datetime


class FileRegistry:
    """Uploaded PDFs: bytes in ``upload_dir``, metadata in memory.

    Entries keep insertion order. Each id owns exactly one file on disk for
    as long as the entry exists.
    """

    def __init__(self, upload_dir: str, max_bytes: int, clock: Callable[[], datetime] = utcnow):
        self.upload_dir = upload_dir
        self.max_bytes = max_bytes
        self._clock = clock
        self._files: Dict[str, StoredFile] = {}
        self._lock = threading.Lock()
        os.makedirs(self.upload_dir, exist_ok=True)

    def put(self, data: bytes, original_name: str, mime_type: str) -> StoredFile:
        if mime_type != PDF_MIME_TYPE:
            raise InvalidInputError("Only PDF files are allowed")
        if len(data) > self.max_bytes:
            raise TooLargeError(self.max_bytes)

        file_id = str(uuid.uuid4())
        safe_name = secure_filename(original_name or "") or "upload.pdf"
        stored_name = f"{uuid.uuid4()}-{safe_name}"
        path = os.path.join(self.upload_dir, stored_name)
        try:
            with open(path, "wb") as fh:
                fh.write(data)
        except OSError as e:
            logger.error("Failed to store upload %s: %s", original_name, e)
            raise StorageError("Upload failed") from e

        stored = StoredFile(
            id=file_id,
            original_name=original_name,
            stored_name=stored_name,
            storage_path=path,
            size_bytes=len(data),
            uploaded_at=self._clock(),
        )
        with self._lock:
            self._files[file_id] = stored
        logger.info("Stored %s as %s (%d bytes)", original_name, file_id, stored.size_bytes)
        return stored

    def get(self, file_id: str) -> StoredFile:
        with self._lock:
            stored = self._files.get(file_id)
        if stored is None:
            raise NotFoundError("File not found")
        return stored

    def list(self) -> List[StoredFile]:
        with self._lock:
            return list(self._files.values())

    def resolve(self, file_ids: Sequence[str]) -> List[StoredFile]:
        """Look up ``file_ids`` in order; the first unknown id raises."""
        with self._lock:
            resolved = []
            for file_id in file_ids:
                stored = self._files.get(file_id)
                if stored is None:
                    raise NotFoundError(f"PDF with ID {file_id} not found")
                resolved.append(stored)
            return resolved

    def delete(self, file_id: str) -> None:
        stored = self.get(file_id)

        # Bytes go first. The entry survives a failed removal so the caller can retry.
        try:
            os.remove(stored.storage_path)
        except FileNotFoundError:
            logger.warning("Stored file for %s was already gone: %s", file_id, stored.storage_path)
        except OSError as e:
            logger.error("Failed to delete %s: %s", stored.storage_path, e)
            raise StorageError("Delete failed") from e

        with self._lock:
            self._files.pop(file_id, None)
        logger.info("Deleted file %s", file_id)

    def __len__(self):
        with self._lock:
            return len(self._files)
