"""
Pytest configuration for pdfassemble tests
Provides an isolated Flask app, a controllable clock and PDF builders
"""
import io
import sys
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path

import fitz  # PyMuPDF
import pytest

# Get the project root directory
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from app import create_app  # noqa: E402


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def build_pdf(label, pages):
    """PDF bytes whose pages read ``<label>:1`` .. ``<label>:<pages>``."""
    doc = fitz.open()
    for i in range(1, pages + 1):
        page = doc.new_page()
        page.insert_text((72, 72), f"{label}:{i}")
    data = doc.tobytes()
    doc.close()
    return data


def page_labels(pdf_bytes):
    with fitz.open(stream=pdf_bytes, filetype="pdf") as doc:
        return [page.get_text().strip() for page in doc]


def upload(client, data, name="doc.pdf", mimetype="application/pdf"):
    return client.post(
        "/api/pdfs/upload",
        data={"pdf": (io.BytesIO(data), name, mimetype)},
        content_type="multipart/form-data",
    )


def poll_until_done(client, job_id, timeout=10.0):
    """Poll the status endpoint until the job settles; returns every body seen."""
    seen = []
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        body = client.get(f"/api/pdfs/assemble/{job_id}/status").get_json()
        seen.append(body)
        if body["status"] != "processing":
            return seen
        time.sleep(0.01)
    raise AssertionError(f"job {job_id} still processing after {timeout}s")


def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line("markers", "integration: HTTP API tests")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def app_config(tmp_path):
    return {
        "TESTING": True,
        "UPLOAD_DIR": str(tmp_path / "uploads"),
        "ASSEMBLED_DIR": str(tmp_path / "assembled"),
        "START_REAPER": False,
        "ASSEMBLY_MAX_WORKERS": 2,
    }


@pytest.fixture
def flask_app(app_config, clock):
    app = create_app(app_config, clock=clock)
    yield app
    app.extensions["pdfassemble"].worker.shutdown()


@pytest.fixture
def services(flask_app):
    return flask_app.extensions["pdfassemble"]


@pytest.fixture
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture
def pdf_a():
    return build_pdf("A", 3)


@pytest.fixture
def pdf_b():
    return build_pdf("B", 1)


# A valid PDF whose page tree is empty; offsets are filled in by empty_pdf().
_EMPTY_PDF_OBJECTS = [
    b"<< /Type /Catalog /Pages 2 0 R >>",
    b"<< /Type /Pages /Kids [] /Count 0 >>",
]


def empty_pdf():
    """PDF bytes with a catalog and a zero-page /Pages tree."""
    out = b"%PDF-1.4\n"
    offsets = []
    for num, body in enumerate(_EMPTY_PDF_OBJECTS, start=1):
        offsets.append(len(out))
        out += b"%d 0 obj\n" % num + body + b"\nendobj\n"
    xref_at = len(out)
    out += b"xref\n0 %d\n0000000000 65535 f \n" % (len(offsets) + 1)
    for offset in offsets:
        out += b"%010d 00000 n \n" % offset
    out += b"trailer\n<< /Size %d /Root 1 0 R >>\nstartxref\n%d\n%%%%EOF\n" % (len(offsets) + 1, xref_at)
    return out
