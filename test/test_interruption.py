import unittest

import numpy as np

from . import BaseTestCase
from services.qa_engine.interruption_analyzer import (
    InterruptionAnalyzer,
    ends_abruptly,
    recovery_quality
)

LONG_BOT_LINE = ('Chat Bot: Aapne recently hamare platform par kuch properties mein interest dikhaya tha '
                 'aur hamne aapke area mein teen top agents shortlist kiye hain jo aapki help karenge')


class TestInterruptionAnalyzer(BaseTestCase):

    def setUp(self):
        super().setUp()
        self.analyzer = InterruptionAnalyzer()
        self.rng = np.random.default_rng(42)

    def test_no_turns_default(self):
        result = self.analyzer.analyze([], None, self.rng)

        self.assertEqual(result['interruptionScore'], 85)
        self.assertEqual(result['analysisSource'], 'default_fallback')

    def test_bot_interrupts_human(self):
        turns = self.create_turns(
            'Chat Bot: Namaste.',
            'Human: I was looking for a flat near the station and my budget is around and',
            'Chat Bot: Ok sure',
            'Human: Fine.'
        )
        result = self.analyzer.analyze(turns, None, self.rng)

        self.assertEqual(len(result['interruptions']), 1)
        interruption = result['interruptions'][0]
        self.assertEqual(interruption['interruptionType'], 'bot_interrupts_human')
        self.assertEqual(interruption['turnIndex'], 2)
        self.assertEqual(interruption['severity'], 7)
        self.assertFalse(interruption['contextAppropriate'])
        # 100 - 7 * 2 + 2 * 2
        self.assertEqual(result['interruptionScore'], 90)
        self.assertTrue(result['recommendations'][0].startswith('CRITICAL'))

    def test_human_interrupts_bot_with_recovery(self):
        turns = self.create_turns(
            LONG_BOT_LINE,
            'Human: wait',
            'Chat Bot: Sorry, let me continue with the details for you'
        )
        result = self.analyzer.analyze(turns, None, self.rng)

        interruption = result['interruptions'][0]
        self.assertEqual(interruption['interruptionType'], 'human_interrupts_bot')
        self.assertEqual(interruption['handlingQuality'], 8)
        self.assertTrue(interruption['contextAppropriate'])
        self.assertEqual(result['analysisSource'], 'transcript_fallback')

    def test_audio_interruption_data(self):
        turns = self.create_turns('Human: Mujhe flat chahiye', 'Chat Bot: Ji', 'Human: Pune mein')
        audio = self.create_audio_data(interruption_data=[
            {'turnIndex': 1, 'type': 'bot_interrupts_human', 'overlapDuration': 1.0}
        ])
        result = self.analyzer.analyze(turns, audio, self.rng)

        self.assertEqual(result['analysisSource'], 'audio_primary')
        self.assertEqual(result['interruptions'][0]['severity'], 7)
        self.assertEqual(result['interruptions'][0]['overlapDuration'], 1.0)
        self.assertEqual(result['interruptionScore'], 90)

    def test_insignificant_overlap_scores_turn_quality(self):
        audio = self.create_audio_data(interruption_data=[
            {'turnIndex': 0, 'type': 'bot_interrupts_human', 'overlapDuration': 0.2}
        ])
        result = self.analyzer.analyze(self.create_turns('Chat Bot: Hello'), audio, self.rng)

        self.assertEqual(result['interruptions'], [])
        # gap 8, transition 9, flow 0.8
        self.assertEqual(result['interruptionScore'], 59)
        self.assertEqual(result['conversationFlow']['smoothTransitions'], 1)

    def test_transcript_patterns_are_seeded(self):
        turns = self.create_turns('Chat Bot: Hello', 'Human: Hi', 'Chat Bot: Namaste', 'Human: Haan')

        first = self.analyzer.analyze(turns, None, np.random.default_rng(3))
        second = self.analyzer.analyze(turns, None, np.random.default_rng(3))
        self.assertEqual(first, second)
        self.assert_score_range(first['interruptionScore'])


class TestInterruptionHelpers(BaseTestCase):

    def test_ends_abruptly(self):
        self.assertTrue(ends_abruptly('I was saying that'))
        self.assertTrue(ends_abruptly('I want a flat but'))
        self.assertFalse(ends_abruptly('I want a flat.'))

    def test_recovery_quality(self):
        self.assertEqual(recovery_quality('Sorry, let me continue with the details'), 8)
        self.assertEqual(recovery_quality('Sorry'), 6)
        self.assertEqual(recovery_quality('one two three four five six seven eight nine ten eleven'), 4)
        self.assertEqual(recovery_quality('Ok'), 2)


if __name__ == '__main__':
    unittest.main()
