import io
import logging
import os
from dataclasses import dataclass
from datetime import timedelta

from flask import Blueprint, Flask, current_app, jsonify, request, send_file, url_for
from flask_cors import CORS
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from pdfassemble import config
from pdfassemble.errors import AssemblyServiceError, InvalidInputError, TooLargeError
from pdfassemble.jobs import JobStatus, JobStore, utcnow
from pdfassemble.reaper import JobReaper
from pdfassemble.registry import FileRegistry
from pdfassemble.service import AssemblyService
from pdfassemble.worker import AssemblyWorker

logger = logging.getLogger(__name__)

api = Blueprint('api', __name__)


@dataclass
class Services:
    registry: FileRegistry
    jobs: JobStore
    worker: AssemblyWorker
    assembly: AssemblyService
    reaper: JobReaper


def services() -> Services:
    return current_app.extensions['pdfassemble']


def _iso(dt):
    return dt.isoformat() if dt else None


def file_to_dict(stored):
    return {
        'id': stored.id,
        'name': stored.original_name,
        'filename': stored.stored_name,
        'size': stored.size_bytes,
        'uploadedAt': _iso(stored.uploaded_at),
    }


def job_status_to_dict(job):
    body = {
        'jobId': job.id,
        'status': job.status.value,
        'progress': job.progress,
        'estimatedTime': job.estimated_time,
    }
    if job.status is JobStatus.COMPLETED:
        body['downloadUrl'] = url_for('api.download_assembly', job_id=job.id)
    if job.status is JobStatus.FAILED:
        body['error'] = job.error
    return body


# --- FLASK ROUTES ---

@api.route('/health', methods=['GET'])
def health():
    s = services()
    return jsonify({'status': 'ok', 'files': len(s.registry), 'jobs': len(s.jobs)})

@api.route('/pdfs', methods=['GET'])
def list_pdfs():
    files = []
    for stored in services().registry.list():
        entry = file_to_dict(stored)
        entry['thumbnailUrl'] = url_for('api.get_thumbnail', file_id=stored.id)
        files.append(entry)
    return jsonify(files)

@api.route('/pdfs/upload', methods=['POST'])
def upload_pdf():
    file = request.files.get('pdf')
    if file is None or file.filename == '':
        raise InvalidInputError('No file uploaded')

    stored = services().registry.put(file.read(), file.filename, file.mimetype)
    return jsonify({'success': True, 'file': file_to_dict(stored)})

@api.route('/pdfs/<file_id>', methods=['DELETE'])
def delete_pdf(file_id):
    services().registry.delete(file_id)
    return jsonify({'success': True})

@api.route('/pdfs/<file_id>/thumbnail', methods=['GET'])
def get_thumbnail(file_id):
    try:
        data = services().assembly.thumbnail(file_id)
    except AssemblyServiceError:
        raise
    except Exception:
        logger.exception('Thumbnail generation failed for %s', file_id)
        return jsonify({'success': False, 'error': 'Thumbnail generation failed'}), 500

    return send_file(
        io.BytesIO(data),
        mimetype='application/pdf',
        as_attachment=False,
        download_name=f'thumbnail-{file_id}.pdf',
    )

@api.route('/pdfs/assemble', methods=['POST'])
def assemble():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    job = services().assembly.create_assembly(data.get('pdfIds'), data.get('outputName'))
    return jsonify({
        'jobId': job.id,
        'status': job.status.value,
        'estimatedTime': job.estimated_time,
    })

@api.route('/pdfs/assemble/<job_id>/status', methods=['GET'])
def assembly_status(job_id):
    job = services().assembly.get_status(job_id)
    return jsonify(job_status_to_dict(job))

@api.route('/pdfs/assemble/<job_id>/download', methods=['GET'])
def download_assembly(job_id):
    path, name = services().assembly.get_download(job_id)
    return send_file(path, mimetype='application/pdf', as_attachment=True, download_name=name)


# --- ERROR HANDLERS ---

def handle_service_error(e):
    if e.status_code >= 500:
        logger.error('%s on %s %s: %s', e.code, request.method, request.path, e.message)
    return jsonify(e.to_dict()), e.status_code

def handle_large_file(e):
    limit = current_app.config['MAX_UPLOAD_BYTES']
    return handle_service_error(TooLargeError(limit))

def handle_http_exception(e):
    logger.info('HTTP %s on %s %s', e.code, request.method, request.path)
    return jsonify({'success': False, 'error': e.description}), e.code or 400

def handle_error(e):
    logger.exception('Unhandled error on %s %s', request.method, request.path)
    return jsonify({'success': False, 'error': 'Internal server error'}), 500


def create_app(overrides=None, clock=utcnow):
    app = Flask(__name__)
    app.config.update(config.as_mapping())
    if overrides:
        app.config.update(overrides)
    # Leave room for the multipart envelope; the registry enforces the real ceiling.
    app.config['MAX_CONTENT_LENGTH'] = app.config['MAX_UPLOAD_BYTES'] + 1024 * 1024
    for key in ('UPLOAD_DIR', 'ASSEMBLED_DIR'):
        app.config[key] = os.path.abspath(app.config[key])

    registry = FileRegistry(app.config['UPLOAD_DIR'], app.config['MAX_UPLOAD_BYTES'], clock=clock)
    jobs = JobStore(clock=clock)
    worker = AssemblyWorker(jobs, max_workers=app.config['ASSEMBLY_MAX_WORKERS'])
    reaper = JobReaper(
        jobs,
        retention=timedelta(seconds=app.config['JOB_RETENTION_SECONDS']),
        interval=app.config['REAPER_INTERVAL_SECONDS'],
        clock=clock,
    )
    app.extensions['pdfassemble'] = Services(
        registry=registry,
        jobs=jobs,
        worker=worker,
        assembly=AssemblyService(registry, jobs, worker, app.config['ASSEMBLED_DIR']),
        reaper=reaper,
    )

    CORS(app, resources={f"{app.config['API_PREFIX']}/*": {'origins': app.config['CORS_ORIGINS']}})
    app.register_blueprint(api, url_prefix=app.config['API_PREFIX'])
    app.register_error_handler(AssemblyServiceError, handle_service_error)
    app.register_error_handler(RequestEntityTooLarge, handle_large_file)
    app.register_error_handler(HTTPException, handle_http_exception)
    app.register_error_handler(Exception, handle_error)

    if app.config['START_REAPER']:
        reaper.start()
    return app


if __name__ == '__main__':
    config.configure_logging()
    app = create_app()
    logger.info('PDF Assembly API server running on port %s', config.PORT)
    logger.info('API available at http://localhost:%s%s', config.PORT, config.API_PREFIX)
    app.run(host='0.0.0.0', port=config.PORT)
