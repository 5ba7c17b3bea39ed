import logging
import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Dict, Optional, Sequence

import fitz  # PyMuPDF

from .jobs import JobStore
from .registry import StoredFile

logger = logging.getLogger(__name__)

# MuPDF is not thread-safe: one document operation at a time across the process.
_mupdf_lock = threading.Lock()


# --- PDF PROCESSING LOGIC ---
def merge_pdfs(paths: Sequence[str], output_path: str,
               on_progress: Optional[Callable[[int, int], None]] = None) -> int:
    """Concatenate every page of ``paths`` into ``output_path``.

    Inputs are appended in the order given and keep their own page order.
    ``on_progress(done, total)`` fires after each input is fully merged.
    Returns the page count of the merged document.
    """
    with _mupdf_lock:
        return _merge(paths, output_path, on_progress)


def _merge(paths, output_path, on_progress):
    total = len(paths)
    input_docs = []
    out_doc = fitz.open()
    try:
        for done, path in enumerate(paths, start=1):
            doc = fitz.open(path, filetype="pdf")
            input_docs.append(doc)
            out_doc.insert_pdf(doc)
            if on_progress:
                on_progress(done, total)

        if out_doc.page_count == 0:
            raise ValueError("No pages to assemble")

        out_doc.save(output_path)
        return out_doc.page_count
    finally:
        out_doc.close()
        for doc in input_docs: doc.close()


def first_page_pdf(path: str) -> Optional[bytes]:
    """A one-page PDF holding page 1 of ``path``, or None for an empty document."""
    with _mupdf_lock, fitz.open(path, filetype="pdf") as src:
        if src.page_count == 0:
            return None
        with fitz.open() as thumb:
            thumb.insert_pdf(src, from_page=0, to_page=0)
            return thumb.tobytes()


def file_progress(done: int, total: int) -> int:
    return round(done / total * 100)


class AssemblyWorker:
    """Runs merges on a thread pool and records the outcome in the job store.

    Every submitted job ends completed or failed; nothing is retried. The
    future for each job is kept until it settles so callers can wait on it.
    """

    def __init__(self, jobs: JobStore, max_workers: Optional[int] = None):
        self.jobs = jobs
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="assembly")
        self._futures: Dict[str, Future] = {}
        self._lock = threading.Lock()

    def submit(self, job_id: str, files: Sequence[StoredFile], output_path: str) -> Future:
        future = self._executor.submit(self._run, job_id, list(files), output_path)
        with self._lock:
            self._futures[job_id] = future
        future.add_done_callback(lambda _f: self._forget(job_id))
        return future

    def wait(self, job_id: str, timeout: Optional[float] = None) -> None:
        with self._lock:
            future = self._futures.get(job_id)
        if future is not None:
            future.result(timeout=timeout)

    def pending(self) -> int:
        with self._lock:
            return len(self._futures)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _forget(self, job_id):
        with self._lock:
            self._futures.pop(job_id, None)

    def _run(self, job_id, files, output_path):
        logger.info("Assembling job %s from %d file(s)", job_id, len(files))

        def on_progress(done, total):
            self.jobs.update_progress(job_id, file_progress(done, total))

        try:
            pages = merge_pdfs([f.storage_path for f in files], output_path, on_progress)
        except Exception as e:
            logger.warning("Assembly of job %s failed: %s", job_id, e)
            self._discard(output_path)
            self.jobs.fail(job_id, str(e))
            return

        logger.info("Job %s assembled %d page(s) into %s", job_id, pages, output_path)
        self.jobs.complete(job_id, output_path)

    @staticmethod
    def _discard(path):
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error("Could not remove partial output %s: %s", path, e)
