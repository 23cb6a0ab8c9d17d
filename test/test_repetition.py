import unittest

from . import BaseTestCase
from models import AnalysisConfig, RepetitionMode
from services.qa_engine.repetition_detector import (
    RepetitionDetector,
    are_identical,
    repetition_severity,
    classify_repetition_type
)
from services.qa_engine.samples import DUPLICATE_GREETING_TRANSCRIPT, MAGICBRICKS_SAMPLE_TRANSCRIPT


class TestRepetitionDetector(BaseTestCase):

    def setUp(self):
        super().setUp()
        self.detector = RepetitionDetector()
        self.config = AnalysisConfig()

    def detect(self, *lines, config=None):
        return self.detector.detect(self.create_turns(*lines), config or self.config)

    def test_identical_consecutive_bot_lines(self):
        repetitions = self.detector.detect(self.create_turns(DUPLICATE_GREETING_TRANSCRIPT), self.config)

        self.assertEqual(len(repetitions), 1)
        self.assertEqual(repetitions[0]['severity'], 10)
        self.assertEqual(repetitions[0]['type'], 'single_line_repetition')
        self.assertTrue(repetitions[0]['isProblematicRepetition'])
        self.assertEqual(repetitions[0]['turnIndices'], [0, 1])

    def test_customer_turn_breaks_repetition(self):
        self.assertEqual(self.detect('Chat Bot: Hello', 'Human: Hi', 'Chat Bot: Hello'), [])

    def test_case_and_punctuation_ignored(self):
        repetitions = self.detect('Chat Bot: Hello there!', 'Chat Bot: hello   there')
        self.assertEqual(len(repetitions), 1)

    def test_short_bot_lines_ignored(self):
        self.assertEqual(self.detect('Chat Bot: Hi', 'Chat Bot: Hi'), [])

    def test_block_repetition(self):
        repetitions = self.detect(
            'Chat Bot: क्या आप property ढूंढ रहे हैं?',
            'Chat Bot: आपका बजट क्या है?',
            'Chat Bot: क्या आप property ढूंढ रहे हैं?',
            'Chat Bot: आपका बजट क्या है?'
        )

        self.assertEqual(len(repetitions), 1)
        self.assertEqual(repetitions[0]['type'], 'block_pattern_repetition')
        self.assertEqual(repetitions[0]['blockSize'], 2)
        self.assertEqual(repetitions[0]['turnIndices'], [0, 1, 2, 3])

    def test_sample_transcript_has_no_repetition(self):
        self.assertEqual(self.detector.detect(self.create_turns(MAGICBRICKS_SAMPLE_TRANSCRIPT), self.config), [])

    def test_no_bot_turns(self):
        self.assertEqual(self.detect('Human: Hello', 'Human: Hello'), [])

    def test_exact_mode_never_reports_fuzzy(self):
        repetitions = self.detect(
            'Chat Bot: आपका बजट छत्तीस लाख रुपये है',
            'Chat Bot: आपका बजट छत्तीस लाख रुपये ही है'
        )
        self.assertFalse(any(r['type'] == 'fuzzy_repetition' for r in repetitions))

    def test_fuzzy_mode_keeps_exact_hits_once(self):
        config = AnalysisConfig(repetition_mode=RepetitionMode.FUZZY)
        repetitions = self.detect(
            'Chat Bot: Hello there friend',
            'Chat Bot: Hello there friend',
            'Chat Bot: Hello there my friend',
            config=config
        )

        exact = [r for r in repetitions if r['type'] == 'single_line_repetition']
        fuzzy = [r for r in repetitions if r['type'] == 'fuzzy_repetition']
        self.assertEqual(len(exact), 1)
        for repetition in fuzzy:
            self.assertGreater(repetition['severity'], 5)
            self.assertNotEqual(repetition['text1'], repetition['text2'])
        self.assertEqual(fuzzy, sorted(fuzzy, key=lambda r: r['severity'], reverse=True))


class TestRepetitionScoring(BaseTestCase):

    def test_are_identical(self):
        self.assertTrue(are_identical('नमस्ते, Rahul', 'नमस्ते rahul'))
        self.assertFalse(are_identical('', ''))
        self.assertFalse(are_identical('...', '...'))

    def test_severity_decays_with_distance(self):
        self.assertEqual(repetition_severity(1.0, 0), 10)
        self.assertLess(repetition_severity(1.0, 10), repetition_severity(1.0, 1))
        self.assertAlmostEqual(repetition_severity(1.0, 40), 1.0)

    def test_classify_repetition_type(self):
        self.assertEqual(classify_repetition_type(0.95, 0.9, 0.9), 'exact_repetition')
        self.assertEqual(classify_repetition_type(0.7, 0.85, 0.5), 'semantic_repetition')
        self.assertEqual(classify_repetition_type(0.4, 0.5, 0.9), 'structural_repetition')
        self.assertEqual(classify_repetition_type(0.4, 0.75, 0.5), 'conceptual_repetition')
        self.assertEqual(classify_repetition_type(0.3, 0.3, 0.3), 'partial_repetition')


if __name__ == '__main__':
    unittest.main()
