import logging
import os
import threading
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from .jobs import JobStatus, JobStore

logger = logging.getLogger(__name__)


class JobReaper:
    """Drops finished jobs, and their output files, once they outlive ``retention``.

    Completed jobs expire ``retention`` after ``completed_at`` and failed jobs
    ``retention`` after ``failed_at``. Jobs still processing are never touched.
    """

    def __init__(self, jobs: JobStore, retention: timedelta, interval: float,
                 clock: Optional[Callable[[], datetime]] = None):
        self.jobs = jobs
        self.retention = retention
        self.interval = interval
        self.clock = clock or jobs.clock
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run_once(self) -> List[str]:
        cutoff = self.clock() - self.retention
        removed = []
        for job in self.jobs.list():
            if job.status is JobStatus.PROCESSING:
                continue
            if job.finished_at is None or job.finished_at >= cutoff:
                continue
            if job.output_path:
                self._remove_output(job.id, job.output_path)
            self.jobs.remove(job.id)
            removed.append(job.id)

        if removed:
            logger.info("Reaped %d expired job(s)", len(removed))
        return removed

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="job-reaper", daemon=True)
        self._thread.start()
        logger.info("Job reaper running every %ss (retention %s)", self.interval, self.retention)

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _loop(self):
        while not self._stop.wait(self.interval):
            try:
                self.run_once()
            except Exception:
                logger.exception("Reaper sweep failed")

    @staticmethod
    def _remove_output(job_id, path):
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error("Could not remove output of job %s: %s", job_id, e)
