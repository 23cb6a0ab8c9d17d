"""
Services package for the Call QA Analyzer

This package contains the analysis engine and the audio processor used by the API.
"""

import os
import logging

from .qa_engine import CallQAAnalyzer, MAGICBRICKS_SAMPLE_TRANSCRIPT
from .audio_processor import AudioProcessor

logger = logging.getLogger(__name__)

__all__ = [
    'CallQAAnalyzer',
    'AudioProcessor',
    'MAGICBRICKS_SAMPLE_TRANSCRIPT'
]

# Package metadata
__version__ = '1.0.0'
__author__ = 'Call QA Team'
__description__ = 'Call transcript and audio quality analysis services'


# Service factory functions
def create_call_analyzer(config=None):
    """
    Factory function to create a call analyzer instance.

    Args:
        config: Application configuration object (currently unused, kept for symmetry)

    Returns:
        CallQAAnalyzer: Analyzer with the default component set
    """
    return CallQAAnalyzer()

def create_audio_processor(config=None):
    """
    Factory function to create an audio processor instance.

    Args:
        config: Application configuration object supplying the seed and allowed formats

    Returns:
        AudioProcessor: Configured audio processor instance
    """
    if config is None:
        return AudioProcessor()
    return AudioProcessor(
        seed=getattr(config, 'ANALYSIS_SEED', 42),
        allowed_extensions=getattr(config, 'ALLOWED_AUDIO_EXTENSIONS', None)
    )

# Service health check utilities
class ServiceHealthChecker:
    """Utility class for checking service health"""

    @staticmethod
    def check_analyzer(analyzer):
        """Run a one-line transcript through the analyzer"""
        try:
            result = analyzer.analyze('Chat Bot: Hello\nHuman: Hi')
            return 0 <= result['overallScore'] <= 100
        except Exception as e:
            logger.warning(f"Analyzer health check failed: {e}")
            return False

    @staticmethod
    def check_upload_folder(upload_folder):
        """Check the upload folder exists and is writable"""
        try:
            os.makedirs(upload_folder, exist_ok=True)
            return os.access(upload_folder, os.W_OK)
        except OSError as e:
            logger.warning(f"Upload folder health check failed: {e}")
            return False

# Export factories and health checker
__all__.extend(['create_call_analyzer', 'create_audio_processor', 'ServiceHealthChecker'])
