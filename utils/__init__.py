"""
Utilities package for the Call QA Analyzer

This package contains utility functions, decorators and the error classes
shared by the analysis engine and the HTTP layer.
"""

from .helpers import (
    truncate_text,
    strip_punctuation,
    split_words,
    count_words,
    extract_topics,
    extract_keywords,
    calculate_similarity_score,
    calculate_word_similarity,
    jaccard_similarity,
    ngrams,
    clamp,
    grade_for_score,
    parse_form_data,
    log_api_call,
    timing_decorator,
    first_match
)

__all__ = [
    'truncate_text',
    'strip_punctuation',
    'split_words',
    'count_words',
    'extract_topics',
    'extract_keywords',
    'calculate_similarity_score',
    'calculate_word_similarity',
    'jaccard_similarity',
    'ngrams',
    'clamp',
    'grade_for_score',
    'parse_form_data',
    'log_api_call',
    'timing_decorator',
    'first_match'
]

# Package metadata
__version__ = '1.0.0'
__author__ = 'Call QA Team'
__description__ = 'Utility functions and helpers for the Call QA Analyzer'

# Constants
DEFAULT_TRANSCRIPT = 'Chat Bot: Hello, this is a default transcript for analysis.\nHuman: Thank you.'
ALLOWED_AUDIO_EXTENSIONS = {'wav', 'mp3', 'm4a', 'ogg', 'flac'}

# Error classes
class AudioProcessingError(Exception):
    """Raised when an audio file cannot be probed"""
    pass

class AnalysisError(Exception):
    """Raised when the static analysis catalogs are inconsistent"""
    pass

# Export error classes and constants
__all__.extend([
    'AudioProcessingError', 'AnalysisError',
    'DEFAULT_TRANSCRIPT', 'ALLOWED_AUDIO_EXTENSIONS'
])
