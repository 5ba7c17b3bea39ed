import enum
import logging
import threading
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence

from .errors import JobStateError, NotFoundError

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, enum.Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class AssemblyJob:
    id: str
    input_file_ids: List[str]
    output_name: str
    created_at: datetime
    estimated_time: int = 0
    status: JobStatus = JobStatus.PROCESSING
    progress: int = 0
    output_path: Optional[str] = None
    error: Optional[str] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None

    @property
    def finished_at(self) -> Optional[datetime]:
        return self.completed_at or self.failed_at


class JobStore:
    """In-memory assembly jobs.

    All reads and writes go through one lock and readers get copies, so a
    status poll never sees a half-applied update. Progress only moves forward
    and stays below 100 until the job completes; completed and failed are
    final.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self.clock = clock
        self._jobs: Dict[str, AssemblyJob] = {}
        self._lock = threading.Lock()

    def create(self, input_file_ids: Sequence[str], output_name: str, estimated_time: int = 0) -> AssemblyJob:
        job = AssemblyJob(
            id=str(uuid.uuid4()),
            input_file_ids=list(input_file_ids),
            output_name=output_name,
            created_at=self.clock(),
            estimated_time=estimated_time,
        )
        with self._lock:
            self._jobs[job.id] = job
            return self._copy(job)

    def get(self, job_id: str) -> AssemblyJob:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise NotFoundError("Job not found")
            return self._copy(job)

    def list(self) -> List[AssemblyJob]:
        with self._lock:
            return [self._copy(job) for job in self._jobs.values()]

    def update_progress(self, job_id: str, progress: int) -> AssemblyJob:
        with self._lock:
            job = self._processing(job_id, JobStatus.PROCESSING)
            job.progress = max(job.progress, min(int(progress), 99))
            return self._copy(job)

    def complete(self, job_id: str, output_path: str) -> AssemblyJob:
        with self._lock:
            job = self._processing(job_id, JobStatus.COMPLETED)
            job.status = JobStatus.COMPLETED
            job.progress = 100
            job.output_path = output_path
            job.completed_at = self.clock()
            logger.info("Job %s completed", job_id)
            return self._copy(job)

    def fail(self, job_id: str, message: str) -> AssemblyJob:
        with self._lock:
            job = self._processing(job_id, JobStatus.FAILED)
            job.status = JobStatus.FAILED
            job.error = message
            job.failed_at = self.clock()
            logger.info("Job %s failed: %s", job_id, message)
            return self._copy(job)

    def remove(self, job_id: str) -> Optional[AssemblyJob]:
        with self._lock:
            job = self._jobs.pop(job_id, None)
            return self._copy(job) if job is not None else None

    def __len__(self):
        with self._lock:
            return len(self._jobs)

    def _processing(self, job_id, wanted):
        job = self._jobs.get(job_id)
        if job is None:
            raise NotFoundError("Job not found")
        if job.status is not JobStatus.PROCESSING:
            raise JobStateError(job_id, job.status.value, wanted.value)
        return job

    @staticmethod
    def _copy(job):
        return replace(job, input_file_ids=list(job.input_file_ids))
