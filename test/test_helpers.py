import logging
import unittest

from . import BaseTestCase
from utils import (
    truncate_text,
    strip_punctuation,
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
    timing_decorator
)


class TestTextHelpers(BaseTestCase):

    def test_truncate_text(self):
        self.assertEqual(truncate_text('hello', 3), 'hel...')
        self.assertEqual(truncate_text('hi', 10), 'hi...')
        self.assertEqual(truncate_text('hi', 10, always_suffix=False), 'hi')
        self.assertEqual(truncate_text('hello world', 5, always_suffix=False), 'hello...')
        self.assertEqual(truncate_text(None), '')

    def test_strip_punctuation_keeps_devanagari(self):
        self.assertEqual(strip_punctuation('नमस्ते, Rahul!'), 'नमस्ते Rahul')
        self.assertEqual(strip_punctuation('a.b', ' '), 'a b')

    def test_count_words(self):
        self.assertEqual(count_words('one  two three'), 3)
        self.assertEqual(count_words(''), 1)

    def test_extract_topics_and_keywords(self):
        self.assertEqual(extract_topics('Budget for this flat, budget again'), ['budget', 'flat', 'again'])
        self.assertEqual(extract_keywords('The flat in Pune है'), ['flat', 'pune'])

    def test_similarity_scores(self):
        self.assertEqual(calculate_similarity_score('abc', 'abc'), 1.0)
        self.assertEqual(calculate_similarity_score('', ''), 1.0)
        self.assertAlmostEqual(calculate_similarity_score('abcd', 'abcf'), 0.75)
        self.assertAlmostEqual(calculate_word_similarity('a b c d', 'a b c e'), 0.75)
        self.assertAlmostEqual(jaccard_similarity(['a', 'b'], ['b', 'c']), 1 / 3)
        self.assertEqual(jaccard_similarity([], []), 0.0)

    def test_ngrams(self):
        self.assertEqual(ngrams(['a', 'b', 'c'], 2), ['a b', 'b c'])
        self.assertEqual(ngrams(['a'], 2), [])

    def test_clamp_and_grade(self):
        self.assertEqual(clamp(120), 100.0)
        self.assertEqual(clamp(-5), 0.0)
        self.assertEqual(grade_for_score(90), 'A')
        self.assertEqual(grade_for_score(79.9), 'C')
        self.assertEqual(grade_for_score(10), 'F')


class TestRequestHelpers(BaseTestCase):

    def test_parse_form_data(self):
        parsed = parse_form_data({
            'transcript': 'Chat Bot: Hi',
            'silenceThreshold': '6.5',
            'maxAllowedLatencyViolations': '4',
            'repetitionMode': 'fuzzy',
            'debug': 'true'
        })

        self.assertNotIn('transcript', parsed)
        self.assertEqual(parsed['silenceThreshold'], 6.5)
        self.assertEqual(parsed['maxAllowedLatencyViolations'], 4)
        self.assertEqual(parsed['repetitionMode'], 'fuzzy')
        self.assertIs(parsed['debug'], True)

    def test_log_api_call(self):
        with self.assertLogs('utils.helpers', level=logging.INFO) as captured:
            log_api_call('/api/analyze', 'POST', 200, 0.1234)
        self.assertIn('API Call: POST /api/analyze - 200 - 0.123s', captured.output[0])

    def test_timing_decorator_preserves_result(self):
        @timing_decorator
        def add(a, b):
            return a + b

        self.assertEqual(add(2, 3), 5)
        self.assertEqual(add.__name__, 'add')


if __name__ == '__main__':
    unittest.main()
