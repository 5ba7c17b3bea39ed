import logging
import os
import time
from typing import Optional, Sequence, Tuple

from werkzeug.utils import secure_filename

from .errors import InvalidInputError, NotFoundError, NotReadyError
from .jobs import AssemblyJob, JobStatus, JobStore
from .registry import FileRegistry
from .worker import AssemblyWorker, first_page_pdf

logger = logging.getLogger(__name__)

SECONDS_PER_FILE = 2  # rough estimate reported to clients


def default_output_name() -> str:
    return f"assembled_{int(time.time() * 1000)}.pdf"


class AssemblyService:
    """Job lifecycle on top of the file registry, job store and worker pool."""

    def __init__(self, registry: FileRegistry, jobs: JobStore, worker: AssemblyWorker, output_dir: str):
        self.registry = registry
        self.jobs = jobs
        self.worker = worker
        self.output_dir = output_dir
        os.makedirs(self.output_dir, exist_ok=True)

    def create_assembly(self, file_ids: Sequence[str], output_name: Optional[str] = None) -> AssemblyJob:
        if not file_ids or not isinstance(file_ids, (list, tuple)):
            raise InvalidInputError("No PDF IDs provided")
        if not all(isinstance(file_id, str) for file_id in file_ids):
            raise InvalidInputError("PDF IDs must be strings")
        if output_name is not None and not isinstance(output_name, str):
            raise InvalidInputError("outputName must be a string")

        # Validate all PDFs exist before any job is created
        files = self.registry.resolve(file_ids)

        output_name = output_name or default_output_name()
        job = self.jobs.create(file_ids, output_name, estimated_time=len(files) * SECONDS_PER_FILE)
        safe_name = secure_filename(output_name) or "assembled.pdf"
        output_path = os.path.join(self.output_dir, f"{job.id}_{safe_name}")

        logger.info("Created job %s for %d file(s)", job.id, len(files))
        self.worker.submit(job.id, files, output_path)
        return job

    def get_status(self, job_id: str) -> AssemblyJob:
        return self.jobs.get(job_id)

    def get_download(self, job_id: str) -> Tuple[str, str]:
        job = self.jobs.get(job_id)
        if job.status is not JobStatus.COMPLETED:
            raise NotReadyError()
        if not os.path.exists(job.output_path):
            raise NotFoundError("Output file not found")
        return job.output_path, job.output_name

    def thumbnail(self, file_id: str) -> bytes:
        stored = self.registry.get(file_id)
        data = first_page_pdf(stored.storage_path)
        if data is None:
            raise NotFoundError("No pages found in PDF")
        return data
