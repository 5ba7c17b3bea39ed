import os
import time
from datetime import timedelta

import pytest

from pdfassemble.errors import NotFoundError
from pdfassemble.jobs import JobStore
from pdfassemble.reaper import JobReaper


@pytest.fixture
def store(clock):
    return JobStore(clock=clock)


@pytest.fixture
def reaper(store):
    return JobReaper(store, retention=timedelta(hours=1), interval=3600)


def finished_job(store, tmp_path, name="out.pdf"):
    job = store.create(["a"], name)
    path = tmp_path / f"{job.id}_{name}"
    path.write_bytes(b"%PDF-1.4")
    store.complete(job.id, str(path))
    return job.id, path


def test_completed_job_expires_after_retention(store, reaper, clock, tmp_path):
    job_id, path = finished_job(store, tmp_path)

    clock.advance(minutes=59)
    assert reaper.run_once() == []
    store.get(job_id)

    clock.advance(minutes=2)
    assert reaper.run_once() == [job_id]
    with pytest.raises(NotFoundError):
        store.get(job_id)
    assert not path.exists()


def test_processing_jobs_are_never_reaped(store, reaper, clock):
    job = store.create(["a"], "out.pdf")
    clock.advance(days=3)

    assert reaper.run_once() == []
    store.get(job.id)


def test_failed_jobs_expire_after_retention(store, reaper, clock):
    job = store.create(["a"], "out.pdf")
    store.fail(job.id, "boom")

    clock.advance(minutes=30)
    assert reaper.run_once() == []
    clock.advance(minutes=31)
    assert reaper.run_once() == [job.id]


def test_missing_output_file_does_not_block_reaping(store, reaper, clock, tmp_path):
    job_id, path = finished_job(store, tmp_path)
    os.remove(path)
    clock.advance(hours=2)

    assert reaper.run_once() == [job_id]


def test_output_removal_failure_is_logged_not_raised(store, reaper, clock, tmp_path, monkeypatch, caplog):
    job_id, path = finished_job(store, tmp_path)
    clock.advance(hours=2)

    def refuse(p):
        raise PermissionError("read-only")

    monkeypatch.setattr("pdfassemble.reaper.os.remove", refuse)
    assert reaper.run_once() == [job_id]
    assert "Could not remove output" in caplog.text
    assert len(store) == 0


def test_background_thread_sweeps_on_interval(store, clock, tmp_path):
    job_id, _ = finished_job(store, tmp_path)
    clock.advance(hours=2)
    reaper = JobReaper(store, retention=timedelta(hours=1), interval=0.01)

    reaper.start()
    try:
        deadline = time.monotonic() + 5
        while len(store) and time.monotonic() < deadline:
            time.sleep(0.01)
    finally:
        reaper.stop(timeout=5)

    assert len(store) == 0
    assert not reaper.running
