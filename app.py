"""
Call QA Analysis Service

This service scores voice-bot call transcripts (and optional call recordings)
against the MagicBricks property search script and returns the full analysis
to the dashboard client.
"""

import time
import os
import json
import logging
from datetime import datetime, timezone

from flask import Flask, request, jsonify, g
from werkzeug.exceptions import HTTPException
from werkzeug.utils import secure_filename

# Import configuration
from config import get_config

# Import models
from models import build_analysis_config

# Import services
from services import (
    create_call_analyzer,
    create_audio_processor,
    ServiceHealthChecker,
    MAGICBRICKS_SAMPLE_TRANSCRIPT
)

# Import utilities
from utils import log_api_call, parse_form_data, AudioProcessingError

# Load configuration
config_name = os.getenv('FLASK_ENV', 'development')
app_config = get_config(config_name)

# Configure logging
logging.basicConfig(
    level=getattr(logging, str(app_config.LOG_LEVEL).upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(app_config.LOG_FILE),
        logging.StreamHandler()
    ]
)

logger = logging.getLogger(__name__)

# Initialize Flask app
app = Flask(__name__)
app.config.from_object(app_config)

# Initialize services
try:
    call_analyzer = create_call_analyzer(app_config)
    audio_processor = create_audio_processor(app_config)
    logger.info("Call QA services initialized successfully")
except Exception as e:
    logger.error(f"Failed to initialize services: {e}")
    raise


def utc_timestamp():
    return datetime.now(timezone.utc).isoformat()


def invalid_transcript_response(transcript):
    return jsonify({
        'error': 'Valid transcript string is required',
        'receivedType': type(transcript).__name__ if transcript is not None else 'undefined',
        'receivedValue': transcript if isinstance(transcript, (str, int, float, bool)) else None
    }), 400


def read_analysis_request():
    """Pull transcript and config overrides from a JSON or multipart request"""
    if request.is_json:
        data = request.get_json(silent=True) or {}
        overrides = data.get('config') or {}
        return data.get('transcript'), overrides if isinstance(overrides, dict) else {}

    form = request.form.to_dict()
    raw_config = form.pop('config', None)
    overrides = parse_form_data(form)
    if raw_config:
        try:
            extra = json.loads(raw_config)
        except ValueError:
            logger.warning("Ignoring unparseable config field")
            extra = {}
        if isinstance(extra, dict):
            overrides.update(extra)
    return request.form.get('transcript'), overrides


def save_upload(audio_file):
    filename = secure_filename(audio_file.filename)
    upload_folder = app_config.UPLOAD_FOLDER
    os.makedirs(upload_folder, exist_ok=True)
    upload_path = os.path.join(upload_folder, f"{int(time.time() * 1000)}-{filename}")
    audio_file.save(upload_path)
    logger.info(f"Audio file saved: {upload_path}")
    return upload_path


# ==================== HEALTH & STATUS ENDPOINTS ====================

@app.route('/api/health', methods=['GET'])
def health_check():
    """Health check endpoint for the analysis service"""
    try:
        services_status = {
            'analyzer': 'ok' if ServiceHealthChecker.check_analyzer(call_analyzer) else 'error',
            'upload_folder': 'ok' if ServiceHealthChecker.check_upload_folder(app_config.UPLOAD_FOLDER) else 'error'
        }
        overall_status = 'healthy' if all(
            status == 'ok' for status in services_status.values()
        ) else 'unhealthy'

        health_data = {
            'status': overall_status,
            'timestamp': utc_timestamp(),
            'message': 'Voice Bot QA Analysis API is running',
            'service': app_config.SERVICE_NAME,
            'version': app_config.SERVICE_VERSION,
            'services': services_status
        }

        status_code = 200 if overall_status == 'healthy' else 503
        return jsonify(health_data), status_code

    except Exception as e:
        logger.error(f"Health check failed: {str(e)}")
        return jsonify({
            'status': 'unhealthy',
            'error': str(e),
            'timestamp': utc_timestamp(),
            'service': app_config.SERVICE_NAME
        }), 503

@app.route('/api/test-connection', methods=['POST'])
def test_connection():
    """Echo the request payload back to the client"""
    try:
        received = request.get_json(silent=True) if request.is_json else request.form.to_dict()
        logger.info("Test connection request received")
        return jsonify({
            'success': True,
            'message': 'Connection successful!',
            'timestamp': utc_timestamp(),
            'receivedData': received or {}
        })

    except Exception as e:
        logger.error(f"Test connection error: {str(e)}")
        return jsonify({'success': False, 'error': str(e)}), 500

# ==================== ANALYSIS ENDPOINTS ====================

@app.route('/api/analyze', methods=['POST'])
def analyze_call():
    """Analyze a call transcript with an optional recording"""
    upload_path = None
    try:
        transcript, overrides = read_analysis_request()

        if not isinstance(transcript, str) or not transcript.strip():
            return invalid_transcript_response(transcript)

        analysis_config = build_analysis_config(app_config, overrides)
        logger.info(f"Analysis request: {len(transcript)} characters, config {analysis_config.to_dict()}")

        audio_data = None
        audio_file = request.files.get('audioFile')
        if audio_file and audio_file.filename:
            if not audio_processor.is_supported(audio_file.filename):
                return jsonify({'success': False, 'error': 'Only audio files are allowed!'}), 400

            upload_path = save_upload(audio_file)
            try:
                audio_data = audio_processor.process(upload_path)
            except AudioProcessingError as e:
                logger.warning(f"Audio processing failed, continuing with transcript only: {str(e)}")

        results = call_analyzer.analyze(transcript, audio_data, analysis_config)

        response_data = {'success': True}
        response_data.update(results)
        response_data['timestamp'] = utc_timestamp()
        return jsonify(response_data)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Analysis error: {str(e)}", exc_info=True)
        return jsonify({
            'success': False,
            'error': str(e),
            'timestamp': utc_timestamp()
        }), 500

    finally:
        if upload_path and os.path.exists(upload_path):
            os.remove(upload_path)
            logger.debug(f"Removed uploaded file {upload_path}")

@app.route('/api/test-sample', methods=['GET'])
def test_sample():
    """Analyze the canonical MagicBricks sample call"""
    try:
        analysis_config = build_analysis_config(app_config)
        results = call_analyzer.analyze(MAGICBRICKS_SAMPLE_TRANSCRIPT, None, analysis_config)

        response_data = {'success': True}
        response_data.update(results)
        response_data['timestamp'] = utc_timestamp()
        return jsonify(response_data)

    except Exception as e:
        logger.error(f"Sample test error: {str(e)}")
        return jsonify({
            'success': False,
            'error': str(e),
            'timestamp': utc_timestamp()
        }), 500

@app.route('/api/config/defaults', methods=['GET'])
def get_default_config():
    """Analysis settings applied when a request sends no overrides"""
    return jsonify({
        'config': build_analysis_config(app_config).to_dict(),
        'allowedAudioExtensions': sorted(app_config.ALLOWED_AUDIO_EXTENSIONS),
        'maxUploadBytes': app_config.MAX_CONTENT_LENGTH
    })

# ==================== ERROR HANDLERS ====================

@app.errorhandler(404)
def not_found(error):
    return jsonify({'error': 'Endpoint not found'}), 404

@app.errorhandler(413)
def file_too_large(error):
    return jsonify({'error': 'File too large. Maximum size is 100MB.'}), 413

@app.errorhandler(500)
def internal_error(error):
    logger.error(f"Internal server error: {str(error)}")
    return jsonify({'error': 'Internal server error'}), 500

@app.errorhandler(Exception)
def handle_exception(e):
    if isinstance(e, HTTPException):
        return jsonify({'error': e.description}), e.code
    logger.error(f"Unhandled exception: {str(e)}", exc_info=True)
    return jsonify({'error': 'An unexpected error occurred'}), 500

# ==================== MIDDLEWARE ====================

@app.before_request
def before_request():
    g.request_start = time.time()

@app.after_request
def after_request(response):
    """Add CORS headers for all responses"""
    response.headers.add('Access-Control-Allow-Origin', '*')
    response.headers.add('Access-Control-Allow-Headers', 'Content-Type,Authorization')
    response.headers.add('Access-Control-Allow-Methods', 'GET,PUT,POST,DELETE,OPTIONS')

    started = g.get('request_start')
    if started is not None:
        log_api_call(request.path, request.method, response.status_code, time.time() - started)
    return response

# ==================== STARTUP ====================

if __name__ == '__main__':
    # Configuration
    port = int(os.environ.get('PORT', 5000))
    debug_mode = os.environ.get('FLASK_ENV') == 'development'

    logger.info(f"Starting Call QA Analysis Service on port {port}")

    try:
        app.run(
            host='0.0.0.0',
            port=port,
            debug=debug_mode,
            threaded=True
        )
    except Exception as e:
        logger.error(f"Failed to start service: {e}")
        raise
