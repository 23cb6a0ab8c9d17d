import unittest

from . import BaseTestCase
from models import WeightingProfile
from services.qa_engine.score_aggregator import (
    WeightedScoreAggregator,
    WEIGHTING_PROFILES,
    resolve_profile,
    silence_score,
    repetition_score,
    duration_score,
    latency_score,
    intent_score
)

OPTIMAL_DURATION = {
    'totalDurationMinutes': 2.0,
    'idealRangeMin': 1.0,
    'idealRangeMax': 3.5,
    'withinIdealRange': True,
    'deviationFromIdeal': 0,
    'status': 'optimal'
}


def flow_with_context(key, **kwargs):
    return dict(kwargs, conversationContext={'key': key})


class TestWeightingProfiles(BaseTestCase):

    def test_weights_sum_to_one(self):
        for profile, weights in WEIGHTING_PROFILES.items():
            self.assertAlmostEqual(sum(weights.values()), 1.0, msg=profile.value)

    def test_auto_profile_resolution(self):
        self.assertEqual(resolve_profile(WeightingProfile.AUTO, flow_with_context('successful_property_inquiry')),
                         WeightingProfile.PROPERTY_INQUIRY)
        self.assertEqual(resolve_profile(WeightingProfile.AUTO, flow_with_context('callback_scenario')),
                         WeightingProfile.CALLBACK_SCHEDULING)
        self.assertEqual(resolve_profile(WeightingProfile.AUTO, flow_with_context('wrong_number')),
                         WeightingProfile.STANDARD)
        self.assertEqual(resolve_profile(WeightingProfile.AUTO, {}), WeightingProfile.STANDARD)

    def test_explicit_profile_is_kept(self):
        self.assertEqual(resolve_profile(WeightingProfile.CALLBACK_SCHEDULING, flow_with_context('wrong_number')),
                         WeightingProfile.CALLBACK_SCHEDULING)


class TestComponentScores(BaseTestCase):

    def test_silence_score(self):
        self.assertEqual(silence_score([]), 100)
        self.assertEqual(silence_score([{'priority': 'low', 'severity': 1.0}]), 100)
        self.assertAlmostEqual(silence_score([{'priority': 'high', 'severity': 1.0}]), 80)
        self.assertEqual(silence_score([{'priority': 'high', 'severity': 1.0}] * 10), 60)

    def test_repetition_score(self):
        exact = {'isProblematicRepetition': True, 'severity': 10, 'repetitionType': 'exact_repetition'}

        self.assertEqual(repetition_score([]), 100)
        self.assertAlmostEqual(repetition_score([exact]), 70)
        self.assertEqual(repetition_score([exact] * 3), 70)
        self.assertEqual(repetition_score([dict(exact, severity=5)]), 100)

    def test_duration_score(self):
        too_short = dict(OPTIMAL_DURATION, withinIdealRange=False, status='too_short', deviationFromIdeal=0.5)

        self.assertEqual(duration_score(OPTIMAL_DURATION, {}), 100)
        self.assertAlmostEqual(duration_score(too_short, {}), 92.5)
        self.assertEqual(duration_score(too_short, {'objectiveAchieved': True}), 100)

    def test_latency_score_includes_interruptions(self):
        self.assertEqual(latency_score({'latencyScore': 90}, {'interruptionScore': 100}), 90)
        self.assertAlmostEqual(latency_score({'latencyScore': 90}, {'interruptionScore': 50}), 75)

    def test_intent_score(self):
        self.assertEqual(intent_score({}, None), 50)
        self.assertEqual(intent_score({'flowScore': 40, 'objectiveAchieved': True}, None), 95)
        self.assertEqual(intent_score({'flowScore': 40, 'objectiveAchieved': False}, None), 40)

        severe = {'criticalStepAnalysis': {'criticalStepViolations': [{'severity': 9}, {'severity': 10}]}}
        self.assertEqual(intent_score({'flowScore': 60}, severe), 50)


class TestWeightedScoreAggregator(BaseTestCase):

    def setUp(self):
        super().setUp()
        self.aggregator = WeightedScoreAggregator()

    def aggregate(self, intent_flow, profile=WeightingProfile.STANDARD):
        return self.aggregator.aggregate(
            silence_segments=[],
            repetitions=[],
            duration_analysis=OPTIMAL_DURATION,
            latency_analysis={'latencyScore': 100, 'totalViolations': 0, 'averageResponseTime': 1.2},
            hallucination_analysis={'hallucinationScore': 100},
            interruption_analysis={'interruptionScore': 100},
            audio_quality_analysis={'overallScore': 82},
            intent_flow=intent_flow,
            profile=profile
        )

    def test_perfect_call(self):
        result = self.aggregate({'flowScore': 100, 'objectiveAchieved': True})

        self.assertEqual(result['overallScore'], 100.0)
        self.assertEqual(result['scoringProfile'], 'standard')
        self.assertEqual(result['additionalScores']['audioQuality'], 82)
        breakdown = result['scoreBreakdown']
        self.assertEqual(breakdown['weights'], WEIGHTING_PROFILES[WeightingProfile.STANDARD])
        self.assertEqual(set(breakdown['explanations']), set(breakdown['componentScores']))

    def test_weighted_sum(self):
        # intent contributes 40 * 0.25 instead of 100 * 0.25
        result = self.aggregate({'flowScore': 40})
        self.assertEqual(result['overallScore'], 85.0)

        result = self.aggregate(flow_with_context('successful_property_inquiry', flowScore=40),
                                profile=WeightingProfile.AUTO)
        self.assertEqual(result['scoringProfile'], 'property_inquiry')
        self.assertEqual(result['overallScore'], 82.0)

    def test_overall_recommendations(self):
        result = self.aggregate({'flowScore': 100, 'objectiveAchieved': True})
        recommendations = WeightedScoreAggregator.overall_recommendations(
            result['componentScores'], result['additionalScores'], [], [],
            {'hallucinationScore': 100}, {'interruptionScore': 100}, {'overallScore': 82}, {'totalViolations': 0}
        )

        self.assertIsInstance(recommendations, list)
        self.assertTrue(recommendations)
        self.assertFalse(any(r.startswith('CRITICAL') for r in recommendations))


if __name__ == '__main__':
    unittest.main()
