import logging
import os
import sys

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def _env_bool(name, default):
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


PORT = int(os.getenv("PORT", "3001"))
API_PREFIX = os.getenv("API_PREFIX", "/api")

UPLOAD_DIR = os.path.abspath(os.getenv("UPLOAD_DIR", os.path.join(BASE_DIR, "uploads")))
ASSEMBLED_DIR = os.path.abspath(os.getenv("ASSEMBLED_DIR", os.path.join(BASE_DIR, "assembled")))

MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))  # 10MB limit

JOB_RETENTION_SECONDS = int(os.getenv("JOB_RETENTION_SECONDS", "3600"))
REAPER_INTERVAL_SECONDS = int(os.getenv("REAPER_INTERVAL_SECONDS", "3600"))
START_REAPER = _env_bool("START_REAPER", True)

# MuPDF work is serialized process-wide, so extra workers only queue jobs; a long
# merge also delays thumbnail requests until it finishes.
ASSEMBLY_MAX_WORKERS = int(os.getenv("ASSEMBLY_MAX_WORKERS", "4"))

# Comma-separated origins allowed to call the API from a browser, "*" for any.
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def as_mapping():
    """Settings in the shape ``app.config`` expects."""
    return {
        "PORT": PORT,
        "API_PREFIX": API_PREFIX,
        "UPLOAD_DIR": UPLOAD_DIR,
        "ASSEMBLED_DIR": ASSEMBLED_DIR,
        "MAX_UPLOAD_BYTES": MAX_UPLOAD_BYTES,
        "JOB_RETENTION_SECONDS": JOB_RETENTION_SECONDS,
        "REAPER_INTERVAL_SECONDS": REAPER_INTERVAL_SECONDS,
        "START_REAPER": START_REAPER,
        "ASSEMBLY_MAX_WORKERS": ASSEMBLY_MAX_WORKERS,
        "CORS_ORIGINS": CORS_ORIGINS,
    }


def configure_logging(level=None):
    logging.basicConfig(
        level=level or LOG_LEVEL,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stdout,
    )
