import unittest

import numpy as np

from . import BaseTestCase
from models import AnalysisConfig
from services.qa_engine.audio_analyzer import (
    SilenceAnalyzer,
    FixedSilenceValidator,
    SeededSilenceValidator,
    DurationAnalyzer,
    AudioQualityAnalyzer,
    build_visualization,
    conversation_efficiency
)


class TestSilenceAnalyzer(BaseTestCase):

    def setUp(self):
        super().setUp()
        self.analyzer = SilenceAnalyzer(FixedSilenceValidator())
        self.config = AnalysisConfig()

    def test_no_audio_means_no_silences(self):
        self.assertEqual(self.analyzer.analyze(None, self.config), [])

    def test_short_silence_never_reported(self):
        audio = self.create_audio_data(silences=[(60.0, 4.9)])
        self.assertEqual(self.analyzer.analyze(audio, self.config), [])

    def test_boundary_and_rhythm_pauses_dismissed(self):
        audio = self.create_audio_data(silences=[(2.0, 12.0), (60.0, 6.0), (175.0, 12.0)])
        self.assertEqual(self.analyzer.analyze(audio, self.config), [])

    def test_long_mid_call_silence_kept(self):
        audio = self.create_audio_data(silences=[(60.0, 12.0)])
        segments = self.analyzer.analyze(audio, self.config)

        self.assertEqual(len(segments), 1)
        segment = segments[0]
        self.assertEqual(segment['startTime'], 60.0)
        self.assertEqual(segment['endTime'], 72.0)
        self.assertEqual(segment['speaker'], 'bot')
        self.assertEqual(segment['conversationPhase'], 'greeting')
        self.assertEqual(segment['severity'], 1.0)
        self.assertAlmostEqual(segment['impactScore'], 3.21, places=2)
        self.assertEqual(segment['priority'], 'low')
        self.assertEqual(segment['qualityScore'], FixedSilenceValidator.QUALITY)

    def test_segments_sorted_by_impact(self):
        audio = self.create_audio_data(silences=[(60.0, 12.0), (100.0, 20.0)])
        segments = self.analyzer.analyze(audio, self.config)

        self.assertEqual([s['duration'] for s in segments], [20.0, 12.0])

    def test_impact_floor_is_configurable(self):
        audio = self.create_audio_data(silences=[(60.0, 12.0)])
        config = self.create_analysis_config(silenceImpactFloor=4.0)

        self.assertEqual(self.analyzer.analyze(audio, config), [])

    def test_default_floor_keeps_twelve_second_silence(self):
        audio = self.create_audio_data(silences=[(60.0, 12.0)])
        segments = self.analyzer.analyze(audio, self.config)

        self.assertEqual(self.config.silence_impact_floor, 3.0)
        self.assertEqual(len(segments), 1)
        self.assertGreater(segments[0]['impactScore'], 3.0)
        self.assertLess(segments[0]['impactScore'], 4.0)

    def test_seeded_validator_is_deterministic(self):
        audio = self.create_audio_data(silences=[(30.0, 9.0), (60.0, 12.0), (100.0, 20.0)])

        first = SilenceAnalyzer(SeededSilenceValidator(np.random.default_rng(5))).analyze(audio, self.config)
        second = SilenceAnalyzer(SeededSilenceValidator(np.random.default_rng(5))).analyze(audio, self.config)
        self.assertEqual(first, second)


class TestDurationAnalyzer(BaseTestCase):

    def setUp(self):
        super().setUp()
        self.analyzer = DurationAnalyzer()
        self.config = AnalysisConfig()

    def test_upper_bound_is_inclusive(self):
        result = self.analyzer.analyze(self.create_audio_data(duration=210.0), self.config)

        self.assertEqual(result['status'], 'optimal')
        self.assertTrue(result['withinIdealRange'])
        self.assertEqual(result['deviationFromIdeal'], 0)

    def test_too_long(self):
        result = self.analyzer.analyze(self.create_audio_data(duration=210.6), self.config)

        self.assertEqual(result['status'], 'too_long')
        self.assertFalse(result['withinIdealRange'])
        self.assertAlmostEqual(result['deviationFromIdeal'], 0.01)

    def test_too_short(self):
        result = self.analyzer.analyze(self.create_audio_data(duration=30.0), self.config)

        self.assertEqual(result['status'], 'too_short')
        self.assertAlmostEqual(result['deviationFromIdeal'], 0.5)

    def test_without_audio_assumes_three_minutes(self):
        result = self.analyzer.analyze(None, self.config)

        self.assertEqual(result['totalDurationMinutes'], 3.0)
        self.assertEqual(result['status'], 'optimal')

    def test_conversation_efficiency_without_flow(self):
        self.assertEqual(conversation_efficiency({}, 3.0), 0.5)
        self.assertEqual(conversation_efficiency({'intentMappings': []}, 0), 0.5)


class TestAudioQualityAnalyzer(BaseTestCase):

    def setUp(self):
        super().setUp()
        self.analyzer = AudioQualityAnalyzer()

    def test_reference_profile_without_audio(self):
        result = self.analyzer.analyze(None, np.random.default_rng(42))

        self.assertEqual(result['overallScore'], 82)
        self.assertEqual(result['analysisSource'], 'reference_profile')

        result['metrics']['clarityScore']['value'] = 0
        self.assertEqual(self.analyzer.analyze(None, np.random.default_rng(42))['metrics']['clarityScore']['value'], 85)

    def test_estimated_metrics(self):
        audio = self.create_audio_data()
        first = self.analyzer.analyze(audio, np.random.default_rng(42))
        second = self.analyzer.analyze(audio, np.random.default_rng(42))

        self.assertEqual(first, second)
        self.assertEqual(first['analysisSource'], 'audio_primary')
        self.assert_score_range(first['overallScore'])
        self.assertIn(first['qualityGrade'], ('A', 'B', 'C', 'D', 'F'))
        self.assertEqual(set(first['metrics']), {
            'signalToNoiseRatio', 'totalHarmonicDistortion', 'clarityScore',
            'backgroundNoiseLevel', 'volumeConsistency', 'frequencyResponse'
        })
        self.assertTrue(first['recommendations'])


class TestVisualization(BaseTestCase):

    def test_sample_rate_and_markers(self):
        audio = self.create_audio_data(duration=10.0)
        segments = [{'startTime': 3.0, 'endTime': 9.0, 'duration': 6.0, 'speaker': 'bot'}]
        result = build_visualization(audio, segments, np.random.default_rng(42))

        self.assertEqual(result['sampleRate'], 100)
        self.assertEqual(len(result['waveformData']), 1000)
        self.assertEqual(result['waveformData'][1]['time'], 0.01)
        self.assertEqual(result['silenceMarkers'], [{'start': 3.0, 'end': 9.0, 'duration': 6.0, 'speaker': 'bot'}])

    def test_default_duration_without_audio(self):
        result = build_visualization(None, [], np.random.default_rng(42))

        self.assertEqual(result['duration'], 180)
        self.assertEqual(len(result['waveformData']), 18000)


if __name__ == '__main__':
    unittest.main()
