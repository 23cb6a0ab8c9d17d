"""
Tests package for the Call QA Analyzer

This package contains all test cases and testing utilities.
"""

import os
import sys
import unittest
from unittest.mock import Mock
from datetime import datetime

# Add project root to Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)

# Test configuration
TEST_CONFIG = {
    'FLASK_ENV': 'testing',
    'LOG_LEVEL': 'WARNING',
    'ANALYSIS_SEED': '42'
}

for _key, _value in TEST_CONFIG.items():
    os.environ.setdefault(_key, _value)

class BaseTestCase(unittest.TestCase):
    """Base test case with common setup and utilities"""

    def setUp(self):
        """Set up test fixtures"""
        self.maxDiff = None
        self.test_start_time = datetime.now()

    def tearDown(self):
        """Clean up after tests"""
        test_duration = datetime.now() - self.test_start_time
        if test_duration.total_seconds() > 10:  # Warn about slow tests
            print(f"Warning: {self._testMethodName} took {test_duration.total_seconds():.2f}s")

    def create_turns(self, *lines):
        """Parse 'Speaker: text' lines into turns"""
        from services.qa_engine.turn_parser import parse_turns
        return parse_turns('\n'.join(lines))

    def create_audio_data(self, **kwargs):
        """Create AudioData with a three minute default duration"""
        from models import AudioData, SilenceCandidate

        silences = [
            SilenceCandidate(start=start, end=start + length, duration=length)
            for start, length in kwargs.pop('silences', [])
        ]
        default_data = {
            'duration': 180.0,
            'silences': silences,
            'sample_rate': 16000,
            'channels': 1,
            'format': 'wav'
        }

        return AudioData(**{**default_data, **kwargs})

    def create_analysis_config(self, **kwargs):
        """Create an AnalysisConfig from camelCase overrides"""
        from models import AnalysisConfig
        return AnalysisConfig.from_dict(kwargs)

    def assert_api_response_valid(self, response, expected_keys=None):
        """Assert that an API response has valid structure"""
        self.assertIsInstance(response, dict)

        if expected_keys:
            for key in expected_keys:
                self.assertIn(key, response)

    def assert_score_range(self, score, low=0, high=100):
        self.assertGreaterEqual(score, low)
        self.assertLessEqual(score, high)

class MockServices:
    """Mock services for testing"""

    @staticmethod
    def create_mock_audio_processor(audio_data=None, error=None):
        """Create mock audio processor"""
        mock_processor = Mock()
        mock_processor.is_supported.return_value = True
        if error is not None:
            mock_processor.process.side_effect = error
        else:
            mock_processor.process.return_value = audio_data
        return mock_processor

    @staticmethod
    def create_failing_component(method_name, message='component failure'):
        """Create a component whose analysis method raises"""
        mock_component = Mock()
        getattr(mock_component, method_name).side_effect = RuntimeError(message)
        return mock_component

# Export everything
__all__ = [
    'BaseTestCase',
    'MockServices',
    'TEST_CONFIG'
]

# Test runner utilities
def run_all_tests():
    """Run all tests in the package"""
    loader = unittest.TestLoader()
    suite = loader.discover(os.path.dirname(os.path.abspath(__file__)), pattern='test_*.py',
                            top_level_dir=project_root)
    runner = unittest.TextTestRunner(verbosity=2)
    return runner.run(suite)

__all__.append('run_all_tests')
