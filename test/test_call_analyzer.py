import unittest

from . import BaseTestCase, MockServices
from models import AnalysisConfig, SilenceValidationMode, WeightingProfile
from utils import DEFAULT_TRANSCRIPT
from services.qa_engine import CallQAAnalyzer, analyze_call
from services.qa_engine.latency_analyzer import LatencyAnalyzer
from services.qa_engine.hallucination_detector import HallucinationDetector
from services.qa_engine.interruption_analyzer import InterruptionAnalyzer
from services.qa_engine.intent_classifier import IntentFlowAnalyzer
from services.qa_engine.samples import (
    MAGICBRICKS_SAMPLE_TRANSCRIPT,
    WRONG_NUMBER_SAMPLE_TRANSCRIPT,
    DUPLICATE_GREETING_TRANSCRIPT
)

RESULT_KEYS = [
    'overallScore', 'callDuration', 'silenceViolations', 'repetitions', 'intentFlow',
    'callDurationAnalysis', 'responseLatencyAnalysis', 'hallucinationAnalysis',
    'interruptionAnalysis', 'audioQualityAnalysis', 'scoreBreakdown', 'scoringProfile',
    'visualizationData', 'overallRecommendations', 'analysisApproach', 'magicBricksAnalysis'
]


class TestCallQAAnalyzer(BaseTestCase):

    def setUp(self):
        super().setUp()
        self.analyzer = CallQAAnalyzer()
        self.config = AnalysisConfig(silence_validation_mode=SilenceValidationMode.FIXED)

    def test_sample_call(self):
        result = self.analyzer.analyze(MAGICBRICKS_SAMPLE_TRANSCRIPT, config=self.config)

        self.assert_api_response_valid(result, RESULT_KEYS)
        self.assert_score_range(result['overallScore'])
        self.assertEqual(result['callDuration'], 0)
        self.assertEqual(result['silenceViolations'], [])
        self.assertEqual(result['repetitions'], [])
        self.assertTrue(result['intentFlow']['objectiveAchieved'])
        self.assertTrue(result['magicBricksAnalysis']['objectiveAchieved'])
        self.assertEqual(result['callDurationAnalysis']['totalDurationMinutes'], 3.0)
        self.assertEqual(result['audioQualityAnalysis']['analysisSource'], 'reference_profile')
        self.assertFalse(result['analysisApproach']['audioAvailable'])
        self.assertEqual(len(result['visualizationData']['waveformData']), 18000)

    def test_wrong_number_call(self):
        result = self.analyzer.analyze(WRONG_NUMBER_SAMPLE_TRANSCRIPT, config=self.config)

        self.assertFalse(result['intentFlow']['objectiveAchieved'])
        self.assertEqual(result['intentFlow']['conversationContext']['key'], 'wrong_number')
        self.assert_score_range(result['overallScore'])

    def test_duplicate_greeting_is_penalised(self):
        result = self.analyzer.analyze(DUPLICATE_GREETING_TRANSCRIPT, config=self.config)

        self.assertEqual(len(result['repetitions']), 1)
        self.assertLess(result['scoreBreakdown']['componentScores']['repetitionAvoidance'], 100)

    def test_invalid_transcript_is_replaced(self):
        expected = self.analyzer.analyze(DEFAULT_TRANSCRIPT, config=self.config)

        for transcript in (None, '', '   ', 42):
            with self.assertLogs('services.qa_engine.call_analyzer', level='WARNING'):
                result = self.analyzer.analyze(transcript, config=self.config)
            self.assertEqual(result, expected)

    def test_transcript_without_speakers_uses_defaults(self):
        result = self.analyzer.analyze('call started\njust narration', config=self.config)

        self.assertEqual(result['responseLatencyAnalysis'], LatencyAnalyzer.default_result())
        self.assertEqual(result['hallucinationAnalysis'], HallucinationDetector.default_result())
        self.assertEqual(result['interruptionAnalysis'], InterruptionAnalyzer.default_result())
        self.assertEqual(result['intentFlow'], IntentFlowAnalyzer.default_result())
        self.assert_score_range(result['overallScore'])

    def test_results_are_deterministic(self):
        first = self.analyzer.analyze(MAGICBRICKS_SAMPLE_TRANSCRIPT)
        second = CallQAAnalyzer().analyze(MAGICBRICKS_SAMPLE_TRANSCRIPT)

        self.assertEqual(first, second)

    def test_audio_measurements_are_used(self):
        audio = self.create_audio_data(duration=120.0, silences=[(60.0, 12.0)])
        result = self.analyzer.analyze(MAGICBRICKS_SAMPLE_TRANSCRIPT, audio, self.config)

        self.assertEqual(result['callDuration'], 120.0)
        self.assertEqual(len(result['silenceViolations']), 1)
        self.assertEqual(result['visualizationData']['silenceMarkers'][0]['start'], 60.0)
        self.assertEqual(result['audioQualityAnalysis']['analysisSource'], 'audio_primary')
        self.assertTrue(result['analysisApproach']['audioAvailable'])

    def test_weighting_profile_from_config(self):
        config = AnalysisConfig(silence_validation_mode=SilenceValidationMode.FIXED,
                                weighting_profile=WeightingProfile.AUTO)
        result = self.analyzer.analyze(MAGICBRICKS_SAMPLE_TRANSCRIPT, config=config)

        self.assertEqual(result['scoringProfile'], 'property_inquiry')


class TestStageFailures(BaseTestCase):

    def test_failing_component_falls_back_to_default(self):
        analyzer = CallQAAnalyzer(latency_analyzer=MockServices.create_failing_component('analyze'))

        with self.assertLogs('services.qa_engine.call_analyzer', level='ERROR') as captured:
            result = analyzer.analyze(MAGICBRICKS_SAMPLE_TRANSCRIPT)

        self.assertEqual(result['responseLatencyAnalysis'], LatencyAnalyzer.default_result())
        self.assertIn('Response latency analysis failed', captured.output[0])
        self.assert_score_range(result['overallScore'])

    def test_failing_hallucination_detector(self):
        analyzer = CallQAAnalyzer(hallucination_detector=MockServices.create_failing_component('detect'))

        with self.assertLogs('services.qa_engine.call_analyzer', level='ERROR'):
            result = analyzer.analyze(MAGICBRICKS_SAMPLE_TRANSCRIPT)
        self.assertEqual(result['hallucinationAnalysis']['analysisSource'], 'default_fallback')

    def test_failing_aggregator_scores_zero(self):
        analyzer = CallQAAnalyzer(aggregator=MockServices.create_failing_component('aggregate'))

        with self.assertLogs('services.qa_engine.call_analyzer', level='ERROR'):
            result = analyzer.analyze(MAGICBRICKS_SAMPLE_TRANSCRIPT)

        self.assertEqual(result['overallScore'], 0.0)
        self.assertEqual(result['scoreBreakdown'], {})
        self.assertEqual(result['overallRecommendations'], [])
        self.assertIn('intentFlow', result)


class TestAnalyzeCall(BaseTestCase):

    def test_module_function(self):
        result = analyze_call(MAGICBRICKS_SAMPLE_TRANSCRIPT)
        self.assert_api_response_valid(result, RESULT_KEYS)


if __name__ == '__main__':
    unittest.main()
