import io
import json
import os
import unittest
from unittest.mock import patch

os.environ['FLASK_ENV'] = 'testing'

from . import BaseTestCase, MockServices
from utils import AudioProcessingError
from services.qa_engine.samples import MAGICBRICKS_SAMPLE_TRANSCRIPT

import app as app_module


class TestAPI(BaseTestCase):

    def setUp(self):
        super().setUp()
        app_module.app.config['TESTING'] = True
        self.client = app_module.app.test_client()

    def post_json(self, payload):
        return self.client.post('/api/analyze', data=json.dumps(payload), content_type='application/json')

    def test_health(self):
        response = self.client.get('/api/health')
        data = response.get_json()

        self.assertEqual(response.status_code, 200)
        self.assertEqual(data['status'], 'healthy')
        self.assertEqual(data['message'], 'Voice Bot QA Analysis API is running')
        self.assertEqual(data['services'], {'analyzer': 'ok', 'upload_folder': 'ok'})

    def test_test_connection_echoes_payload(self):
        response = self.client.post('/api/test-connection', data=json.dumps({'ping': 1}),
                                    content_type='application/json')
        data = response.get_json()

        self.assertTrue(data['success'])
        self.assertEqual(data['message'], 'Connection successful!')
        self.assertEqual(data['receivedData'], {'ping': 1})

    def test_analyze_json(self):
        response = self.post_json({'transcript': MAGICBRICKS_SAMPLE_TRANSCRIPT})
        data = response.get_json()

        self.assertEqual(response.status_code, 200)
        self.assert_api_response_valid(data, ['success', 'overallScore', 'intentFlow', 'scoreBreakdown', 'timestamp'])
        self.assertTrue(data['success'])
        self.assert_score_range(data['overallScore'])
        self.assertTrue(data['intentFlow']['objectiveAchieved'])

    def test_analyze_json_with_config(self):
        response = self.post_json({
            'transcript': MAGICBRICKS_SAMPLE_TRANSCRIPT,
            'config': {'weightingProfile': 'auto', 'latencyScoringMode': 'contextual'}
        })
        data = response.get_json()

        self.assertEqual(data['scoringProfile'], 'property_inquiry')
        self.assertEqual(data['responseLatencyAnalysis']['scoringMode'], 'contextual')

    def test_invalid_transcript(self):
        response = self.post_json({'transcript': 123})
        data = response.get_json()

        self.assertEqual(response.status_code, 400)
        self.assertEqual(data['error'], 'Valid transcript string is required')
        self.assertEqual(data['receivedType'], 'int')
        self.assertEqual(data['receivedValue'], 123)

    def test_missing_transcript(self):
        response = self.post_json({})
        data = response.get_json()

        self.assertEqual(response.status_code, 400)
        self.assertEqual(data['receivedType'], 'undefined')
        self.assertIsNone(data['receivedValue'])

    def test_multipart_form_config(self):
        response = self.client.post('/api/analyze', data={
            'transcript': MAGICBRICKS_SAMPLE_TRANSCRIPT,
            'config': json.dumps({'weightingProfile': 'auto'})
        }, content_type='multipart/form-data')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()['scoringProfile'], 'property_inquiry')

    def test_unsupported_upload_rejected(self):
        response = self.client.post('/api/analyze', data={
            'transcript': MAGICBRICKS_SAMPLE_TRANSCRIPT,
            'audioFile': (io.BytesIO(b'not audio'), 'notes.txt')
        }, content_type='multipart/form-data')

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()['error'], 'Only audio files are allowed!')

    def test_audio_failure_degrades_to_transcript(self):
        processor = MockServices.create_mock_audio_processor(error=AudioProcessingError('bad audio'))

        with patch.object(app_module, 'audio_processor', processor):
            response = self.client.post('/api/analyze', data={
                'transcript': MAGICBRICKS_SAMPLE_TRANSCRIPT,
                'audioFile': (io.BytesIO(b'RIFF'), 'call.wav')
            }, content_type='multipart/form-data')

        data = response.get_json()
        self.assertEqual(response.status_code, 200)
        self.assertTrue(data['success'])
        self.assertFalse(data['analysisApproach']['audioAvailable'])
        processor.process.assert_called_once()
        self.assertFalse(os.path.exists(processor.process.call_args[0][0]))

    def test_audio_measurements_reach_analysis(self):
        audio = self.create_audio_data(duration=150.0)
        processor = MockServices.create_mock_audio_processor(audio_data=audio)

        with patch.object(app_module, 'audio_processor', processor):
            response = self.client.post('/api/analyze', data={
                'transcript': MAGICBRICKS_SAMPLE_TRANSCRIPT,
                'audioFile': (io.BytesIO(b'RIFF'), 'call.wav')
            }, content_type='multipart/form-data')

        data = response.get_json()
        self.assertEqual(data['callDuration'], 150.0)
        self.assertTrue(data['analysisApproach']['audioAvailable'])

    def test_test_sample(self):
        response = self.client.get('/api/test-sample')
        data = response.get_json()

        self.assertEqual(response.status_code, 200)
        self.assertTrue(data['success'])
        self.assertTrue(data['magicBricksAnalysis']['objectiveAchieved'])

    def test_config_defaults(self):
        data = self.client.get('/api/config/defaults').get_json()

        self.assertEqual(data['config']['silenceValidationMode'], 'fixed')
        self.assertEqual(data['allowedAudioExtensions'], ['flac', 'm4a', 'mp3', 'ogg', 'wav'])
        self.assertEqual(data['maxUploadBytes'], 100 * 1024 * 1024)

    def test_unknown_endpoint(self):
        response = self.client.get('/api/does-not-exist')

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json(), {'error': 'Endpoint not found'})

    def test_cors_headers(self):
        response = self.client.get('/api/config/defaults')
        self.assertEqual(response.headers['Access-Control-Allow-Origin'], '*')


if __name__ == '__main__':
    unittest.main()
