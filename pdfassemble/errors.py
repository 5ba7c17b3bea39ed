"""
Exceptions raised by the registry, job store and assembly service.

Every error carries the HTTP status the API answers with, so route handlers
only need to raise and the error handlers in ``app.py`` do the rest.
"""

from typing import Any, Dict, Optional


class AssemblyServiceError(Exception):
    """Base exception for all service errors"""

    status_code = 500

    def __init__(self, message: str, code: str = "INTERNAL_ERROR", status_code: Optional[int] = None):
        self.message = message
        self.code = code
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": self.message,
        }


class InvalidInputError(AssemblyServiceError):
    """Bad MIME type, empty id list or missing multipart field"""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message, code="INVALID_INPUT")


class TooLargeError(AssemblyServiceError):
    status_code = 413

    def __init__(self, limit_bytes: int):
        self.limit_bytes = limit_bytes
        max_mb = limit_bytes // (1024 * 1024)
        super().__init__(f"File too large (max {max_mb}MB)", code="TOO_LARGE")


class NotFoundError(AssemblyServiceError):
    """Unknown file or job id"""

    status_code = 404

    def __init__(self, message: str):
        super().__init__(message, code="NOT_FOUND")


class NotReadyError(AssemblyServiceError):
    """Download requested before the job completed"""

    status_code = 400

    def __init__(self, message: str = "Assembly not completed"):
        super().__init__(message, code="NOT_READY")


class StorageError(AssemblyServiceError):
    """Disk read, write or delete failed"""

    def __init__(self, message: str):
        super().__init__(message, code="IO_FAILURE")


class JobStateError(AssemblyServiceError):
    """Illegal transition out of a terminal job state"""

    status_code = 409

    def __init__(self, job_id: str, current: str, wanted: str):
        self.job_id = job_id
        super().__init__(
            f"Job {job_id} cannot move from {current} to {wanted}",
            code="INVALID_STATE",
        )
