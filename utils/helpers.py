"""
Helper utilities for the Call QA Analyzer

This module contains text and timing utilities used throughout the analysis engine.
"""

import logging
import time
from functools import wraps
from typing import Dict, List, Optional, Any, Iterable

import regex as re
from rapidfuzz.distance import Levenshtein

# Configure logging
logger = logging.getLogger(__name__)

# Topic stop words (length > 3 words that carry no topic)
TOPIC_STOP_WORDS = {
    'this', 'that', 'with', 'have', 'will', 'from', 'they', 'know', 'want', 'been',
    'good', 'much', 'some', 'time', 'very', 'when', 'come', 'here', 'just', 'like',
    'long', 'make', 'many', 'over', 'such', 'take', 'than', 'them', 'well', 'were'
}

# Keyword stop words, English and Hindi
KEYWORD_STOP_WORDS = {
    'the', 'a', 'an', 'and', 'or', 'but', 'in', 'on', 'at', 'to', 'for', 'of', 'with', 'by',
    'है', 'हैं', 'का', 'की', 'के', 'में', 'से', 'को', 'और', 'या', 'पर'
}

_PUNCTUATION = re.compile(r'[^\w\s]')
_WHITESPACE = re.compile(r'\s+')


# Text processing
def truncate_text(text: str, max_length: int = 100, always_suffix: bool = True) -> str:
    """
    Shorten text for display in analysis entries.

    Args:
        text: Text to shorten
        max_length: Number of characters to keep
        always_suffix: Append '...' even when the text is short enough

    Returns:
        str: Shortened text
    """
    if text is None:
        return ''
    if always_suffix:
        return text[:max_length] + '...'
    return text[:max_length] + ('...' if len(text) > max_length else '')


def strip_punctuation(text: str, replacement: str = '') -> str:
    """Remove every character that is neither a word character nor whitespace"""
    return _PUNCTUATION.sub(replacement, text)


def split_words(text: str) -> List[str]:
    """Split on whitespace runs, dropping empty tokens"""
    return [word for word in _WHITESPACE.split(text.strip()) if word]


def count_words(text: str) -> int:
    """Count whitespace separated tokens; empty text counts as one token"""
    return max(1, len(split_words(text)))


def extract_topics(text: str) -> List[str]:
    """
    Extract topic words from an utterance.

    Args:
        text: Text to extract topics from

    Returns:
        list: Unique topic words in order of first appearance
    """
    words = split_words(strip_punctuation(text.lower()))
    topics = [word for word in words if len(word) > 3 and word not in TOPIC_STOP_WORDS]
    return list(dict.fromkeys(topics))


def extract_keywords(text: str) -> List[str]:
    """
    Extract keywords from text.

    Args:
        text: Text to extract keywords from

    Returns:
        list: Keywords longer than two characters, stop words removed
    """
    words = split_words(strip_punctuation(text.lower(), ' '))
    return [word for word in words if len(word) > 2 and word not in KEYWORD_STOP_WORDS]


# Similarity utilities
def calculate_similarity_score(text1: str, text2: str) -> float:
    """
    Character level Levenshtein similarity between two texts.

    Args:
        text1: First text
        text2: Second text

    Returns:
        float: Similarity score between 0 and 1
    """
    max_length = max(len(text1), len(text2))
    if max_length == 0:
        return 1.0
    return (max_length - Levenshtein.distance(text1, text2)) / max_length


def calculate_word_similarity(text1: str, text2: str) -> float:
    """Word level Levenshtein similarity between two texts"""
    words1 = text1.lower().split()
    words2 = text2.lower().split()
    max_length = max(len(words1), len(words2))
    if max_length == 0:
        return 1.0
    return (max_length - Levenshtein.distance(words1, words2)) / max_length


def jaccard_similarity(items1: Iterable[Any], items2: Iterable[Any]) -> float:
    """
    Jaccard similarity of two collections.

    Returns:
        float: |intersection| / |union|, or 0.0 when both are empty
    """
    set1, set2 = set(items1), set(items2)
    union = set1 | set2
    if not union:
        return 0.0
    return len(set1 & set2) / len(union)


def ngrams(words: List[str], size: int) -> List[str]:
    """Contiguous word n-grams joined by a single space"""
    return [' '.join(words[i:i + size]) for i in range(len(words) - size + 1)]


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    """Clamp a value into [low, high]"""
    return max(low, min(high, value))


def grade_for_score(score: float) -> str:
    """Letter grade used across audio quality and latency reports"""
    if score >= 90:
        return 'A'
    if score >= 80:
        return 'B'
    if score >= 70:
        return 'C'
    if score >= 60:
        return 'D'
    return 'F'


# Request parsing
def parse_form_data(form_data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Parse analysis configuration fields sent as multipart form values.

    Args:
        form_data: Raw form data

    Returns:
        dict: Parsed values with numbers converted where possible
    """
    parsed = {}
    for key, value in form_data.items():
        if key in ('transcript', 'audioFile'):
            continue
        if isinstance(value, str):
            value = value.strip()
            if value.lower() in ('true', 'false'):
                parsed[key] = value.lower() == 'true'
                continue
            try:
                parsed[key] = int(value) if value.lstrip('-').isdigit() else float(value)
                continue
            except ValueError:
                pass
        parsed[key] = value
    return parsed


# Logging utilities
def log_api_call(endpoint: str, method: str, status_code: int, duration: float):
    """
    Log API call details.

    Args:
        endpoint: API endpoint
        method: HTTP method
        status_code: Response status code
        duration: Request duration in seconds
    """
    logger.info(
        f"API Call: {method} {endpoint} - {status_code} - {duration:.3f}s"
    )


# Decorator utilities
def timing_decorator(func):
    """Decorator to measure function execution time"""
    @wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.time()
        result = func(*args, **kwargs)
        end_time = time.time()
        logger.debug(f"{func.__name__} took {end_time - start_time:.3f} seconds")
        return result
    return wrapper


def first_match(patterns: Iterable, text: str) -> Optional[Any]:
    """Return the first compiled pattern that matches text, or None"""
    for pattern in patterns:
        if pattern.search(text):
            return pattern
    return None
