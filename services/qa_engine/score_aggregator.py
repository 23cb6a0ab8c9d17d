"""
score_aggregator.py - Weighted overall score and recommendations

Five weighted components (silence, repetition, duration, latency, intent flow)
make up the overall score. Hallucination, interruption and audio quality are
reported alongside as supplementary metrics.
"""

import logging
from typing import Dict, List, Optional, Any

from models import WeightingProfile
from .audio_analyzer import conversation_efficiency

logger = logging.getLogger(__name__)

MAX_EXPECTED_SILENCE_VIOLATIONS = 3
MAX_EXPECTED_REPETITIONS = 2

WEIGHTING_PROFILES = {
    WeightingProfile.STANDARD: {
        'silenceCompliance': 0.25,
        'repetitionAvoidance': 0.25,
        'callDurationOptimization': 0.10,
        'responseLatencyOptimization': 0.15,
        'intentFlowAccuracy': 0.25
    },
    WeightingProfile.PROPERTY_INQUIRY: {
        'silenceCompliance': 0.20,
        'repetitionAvoidance': 0.20,
        'callDurationOptimization': 0.10,
        'responseLatencyOptimization': 0.20,
        'intentFlowAccuracy': 0.30
    },
    WeightingProfile.CALLBACK_SCHEDULING: {
        'silenceCompliance': 0.30,
        'repetitionAvoidance': 0.15,
        'callDurationOptimization': 0.10,
        'responseLatencyOptimization': 0.25,
        'intentFlowAccuracy': 0.20
    }
}

# Resolved conversation context -> weighting profile for the auto setting
CONTEXT_PROFILES = {
    'successful_property_inquiry': WeightingProfile.PROPERTY_INQUIRY,
    'alternative_successful_flow': WeightingProfile.PROPERTY_INQUIRY,
    'failed_inquiry': WeightingProfile.PROPERTY_INQUIRY,
    'callback_scenario': WeightingProfile.CALLBACK_SCHEDULING
}

REPETITION_TYPE_MULTIPLIERS = {
    'exact_repetition': 2.0,
    'semantic_repetition': 1.8,
    'structural_repetition': 1.4,
    'conceptual_repetition': 1.2,
    'partial_repetition': 1.0
}


def resolve_profile(profile: WeightingProfile, intent_flow: Dict[str, Any]) -> WeightingProfile:
    if profile is not WeightingProfile.AUTO:
        return profile
    context_key = (intent_flow.get('conversationContext') or {}).get('key')
    return CONTEXT_PROFILES.get(context_key, WeightingProfile.STANDARD)


def silence_score(silence_segments: List[Dict[str, Any]]) -> float:
    problematic = [s for s in silence_segments if s.get('priority') in ('high', 'medium')]
    if not problematic:
        return 100

    average_severity = sum(s.get('severity') or 1 for s in problematic) / len(problematic)
    multiplier = min(1.5, 1 + average_severity * 0.5)
    return max(60, 100 - len(problematic) / MAX_EXPECTED_SILENCE_VIOLATIONS * 40 * multiplier)


def repetition_score(repetitions: List[Dict[str, Any]]) -> float:
    problematic = [r for r in repetitions if r.get('isProblematicRepetition') and r.get('severity', 0) > 5]
    if not problematic:
        return 100

    weighted = sum(
        (r['severity'] / 10 if r.get('severity') else 1) *
        REPETITION_TYPE_MULTIPLIERS.get(r.get('repetitionType'), 1.0)
        for r in problematic
    )
    return max(70, 100 - weighted / MAX_EXPECTED_REPETITIONS * 30)


def duration_score(duration_analysis: Dict[str, Any], intent_flow: Dict[str, Any]) -> float:
    if duration_analysis['withinIdealRange']:
        return 100

    deviation = duration_analysis['deviationFromIdeal']
    if duration_analysis['status'] == 'too_short':
        objective_bonus = 20 if intent_flow.get('objectiveAchieved') else 0
        score = max(0, 100 - deviation * 15 + objective_bonus)
    else:
        efficiency = conversation_efficiency(intent_flow, duration_analysis['totalDurationMinutes'])
        score = max(15, 100 - deviation * 11 + min(10, efficiency * 10))
    return min(100, score)


def latency_score(latency_analysis: Dict[str, Any], interruption_analysis: Optional[Dict[str, Any]]) -> float:
    score = latency_analysis.get('latencyScore') or 0
    if interruption_analysis and interruption_analysis.get('interruptionScore'):
        penalty = max(0, (100 - interruption_analysis['interruptionScore']) * 0.3)
        score = max(0, score - penalty)
    return score


def intent_score(intent_flow: Dict[str, Any], hallucination_analysis: Optional[Dict[str, Any]]) -> float:
    """Flow score with objective and completion bonuses, hallucination penalties"""
    if not intent_flow or intent_flow.get('flowScore') is None:
        return 50

    score = intent_flow['flowScore']
    achieved = bool(intent_flow.get('objectiveAchieved'))
    if achieved:
        score = min(100, max(score, 75) + 20)

    completion_rate = (intent_flow.get('criticalStepsAnalysis') or {}).get('completionRate') or 0
    if completion_rate >= 1.0:
        score = min(100, score + 15)
    elif completion_rate >= 0.75:
        score = min(100, score + 10)
    elif completion_rate >= 0.5:
        score = min(100, score + 5)

    if hallucination_analysis:
        hallucination = hallucination_analysis.get('enhancedScore') or hallucination_analysis.get('hallucinationScore')
        if hallucination is not None and hallucination < 60:
            score = max(50, score - (60 - hallucination) * 0.2)

        violations = (hallucination_analysis.get('criticalStepAnalysis') or {}).get('criticalStepViolations') or []
        severe = [v for v in violations if v.get('severity', 0) >= 8]
        if severe:
            logger.debug(f"Critical step violation penalty: -{len(severe) * 5} points")
            score = max(40, score - len(severe) * 5)

    if achieved and score < 80:
        score = 80
    return score


class WeightedScoreAggregator:
    """Combines component scores into the overall score and its breakdown"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def aggregate(
        self,
        silence_segments: List[Dict[str, Any]],
        repetitions: List[Dict[str, Any]],
        duration_analysis: Dict[str, Any],
        latency_analysis: Dict[str, Any],
        hallucination_analysis: Dict[str, Any],
        interruption_analysis: Dict[str, Any],
        audio_quality_analysis: Dict[str, Any],
        intent_flow: Dict[str, Any],
        profile: WeightingProfile = WeightingProfile.STANDARD
    ) -> Dict[str, Any]:
        """
        Calculate the weighted overall score.

        Returns:
            dict: overallScore (one decimal), scoreBreakdown and the active profile
        """
        active_profile = resolve_profile(profile, intent_flow)
        weights = WEIGHTING_PROFILES[active_profile]

        scores = {
            'silenceCompliance': silence_score(silence_segments),
            'repetitionAvoidance': repetition_score(repetitions),
            'callDurationOptimization': duration_score(duration_analysis, intent_flow),
            'responseLatencyOptimization': latency_score(latency_analysis, interruption_analysis),
            'intentFlowAccuracy': intent_score(intent_flow, hallucination_analysis)
        }
        overall = round(max(0.0, min(100.0, sum(scores[name] * weights[name] for name in weights))), 1)

        critical_analysis = hallucination_analysis.get('criticalStepAnalysis') or {}
        additional = {
            'hallucinationPrevention': (hallucination_analysis.get('enhancedScore')
                                        or hallucination_analysis.get('hallucinationScore') or 0),
            'criticalStepAdherence': critical_analysis.get('criticalStepScore') or 0,
            'interruptionHandling': interruption_analysis.get('interruptionScore') or 0,
            'audioQuality': audio_quality_analysis.get('overallScore') or 0
        }

        breakdown = {
            'overallScore': overall,
            'componentScores': scores,
            'additionalScores': additional,
            'weights': weights,
            'weightingProfile': active_profile.value,
            'explanations': self.explanations(
                silence_segments, repetitions, duration_analysis, latency_analysis, intent_flow),
            'conversationAnalysis': self.conversation_analysis(intent_flow),
            'supplementaryMetrics': {
                'hallucinationScore': additional['hallucinationPrevention'],
                'interruptionScore': additional['interruptionHandling'],
                'audioQualityScore': additional['audioQuality'],
                'scriptAdherence': hallucination_analysis.get('scriptAdherenceAverage', 0),
                'objectionHandling': hallucination_analysis.get('objectionHandlingAverage', 0)
            }
        }

        self.logger.info(
            f"Weighted score calculated: {overall}/100 ({active_profile.value} profile) - "
            f"Silence({scores['silenceCompliance']:.1f}) Repetition({scores['repetitionAvoidance']:.1f}) "
            f"Duration({scores['callDurationOptimization']:.1f}) Latency({scores['responseLatencyOptimization']:.1f}) "
            f"Intent({scores['intentFlowAccuracy']:.1f})"
        )

        return {
            'overallScore': overall,
            'scoreBreakdown': breakdown,
            'scoringProfile': active_profile.value,
            'componentScores': scores,
            'additionalScores': additional
        }

    @staticmethod
    def explanations(
        silence_segments: List[Dict[str, Any]],
        repetitions: List[Dict[str, Any]],
        duration_analysis: Dict[str, Any],
        latency_analysis: Dict[str, Any],
        intent_flow: Dict[str, Any]
    ) -> Dict[str, str]:
        problematic_silences = sum(1 for s in silence_segments if s.get('priority') in ('high', 'medium'))
        problematic_repetitions = sum(1 for r in repetitions if r.get('isProblematicRepetition'))
        completion = (intent_flow.get('criticalStepsAnalysis') or {}).get('completionRate') or 0

        return {
            'silenceCompliance': (
                f"Found {len(silence_segments)} validated silences, {problematic_silences} problematic "
                f"(threshold: {MAX_EXPECTED_SILENCE_VIOLATIONS})"),
            'repetitionAvoidance': (
                f"Found {len(repetitions)} repetitions, {problematic_repetitions} problematic "
                f"(threshold: {MAX_EXPECTED_REPETITIONS})"),
            'callDurationOptimization': (
                f"Call duration: {duration_analysis['totalDurationMinutes']:.1f}min "
                f"(ideal: {duration_analysis['idealRangeMin']}-{duration_analysis['idealRangeMax']}min)"),
            'responseLatencyOptimization': (
                f"Response latency: {latency_analysis.get('totalViolations') or 0} violations, "
                f"Avg: {latency_analysis.get('averageResponseTime') or 0:.1f}s, interruption handling integrated"),
            'intentFlowAccuracy': (
                f"Base flow {intent_flow.get('flowScore') or 0:.1f}/100, Objective achieved: "
                f"{'YES (+20 bonus)' if intent_flow.get('objectiveAchieved') else 'NO'}, "
                f"Critical steps: {completion * 100:.0f}%")
        }

    @staticmethod
    def conversation_analysis(intent_flow: Dict[str, Any]) -> Dict[str, Any]:
        critical = intent_flow.get('criticalStepsAnalysis') or {}
        average_confidence = intent_flow.get('averageConfidence') or 0
        return {
            'totalTurns': len(intent_flow.get('intentMappings') or []),
            'averageConfidence': f"{average_confidence * 100:.1f}%",
            'completedSteps': intent_flow.get('completedSteps') or 0,
            'totalSteps': intent_flow.get('totalRequiredSteps') or 0,
            'missingCriticalSteps': intent_flow.get('missingCriticalSteps') or [],
            'conversationQuality': intent_flow.get('conversationQuality') or {'rating': 'Unknown', 'score': 0},
            'objectiveAchieved': bool(intent_flow.get('objectiveAchieved')),
            'criticalStepsCompletion': (
                f"{len(critical.get('completed') or [])}/{critical.get('totalCriticalSteps') or 4}")
        }

    @staticmethod
    def overall_recommendations(
        component_scores: Dict[str, float],
        additional_scores: Dict[str, float],
        silence_segments: List[Dict[str, Any]],
        repetitions: List[Dict[str, Any]],
        hallucination_analysis: Dict[str, Any],
        interruption_analysis: Dict[str, Any],
        audio_quality_analysis: Dict[str, Any],
        latency_analysis: Dict[str, Any]
    ) -> List[str]:
        """Prioritised CRITICAL, HIGH and MEDIUM issues followed by positive notes"""
        critical, high, medium = [], [], []

        if additional_scores['hallucinationPrevention'] < 70:
            rate = (hallucination_analysis.get('deviationRate') or 0) * 100
            critical.append(f"CRITICAL: High hallucination rate ({rate:.0f}%) - Review response relevance logic")

        if additional_scores['interruptionHandling'] < 60:
            bot_interruptions = sum(
                1 for i in interruption_analysis.get('interruptions') or []
                if i.get('interruptionType') == 'bot_interrupts_human')
            if bot_interruptions:
                critical.append(
                    f"CRITICAL: Bot interrupting humans {bot_interruptions} times - Fix turn-taking detection")

        if component_scores['responseLatencyOptimization'] < 70:
            high.append(
                f"HIGH: Response latency issues - {latency_analysis.get('totalViolations') or 0} violations detected")

        if component_scores['silenceCompliance'] < 75:
            high_impact = sum(1 for s in silence_segments if s.get('impactScore', 0) > 7)
            if high_impact:
                high.append(f"HIGH: {high_impact} high-impact silence violations - Optimize response generation")

        if component_scores['repetitionAvoidance'] < 80:
            severe = sum(1 for r in repetitions if r.get('severity', 0) > 7)
            if severe:
                medium.append(f"MEDIUM: {severe} severe repetitions - Add response variation")

        if additional_scores['audioQuality'] < 75:
            medium.append(
                f"MEDIUM: Audio quality below standard ({audio_quality_analysis.get('qualityGrade')}) "
                f"- Review recording setup")

        recommendations = critical + high + medium
        if additional_scores['hallucinationPrevention'] > 85:
            recommendations.append('Excellent response relevance - maintain current quality')
        if additional_scores['interruptionHandling'] > 85:
            recommendations.append('Good turn-taking behavior - continue monitoring')

        return recommendations or [
            'Overall performance is within acceptable parameters. Continue monitoring for consistency.']
