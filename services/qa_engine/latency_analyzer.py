"""
latency_analyzer.py - Bot response latency measurement and scoring

Response gaps come from measured turn timings when the audio source supplies
them, otherwise from a running clock of estimated turn durations. Two scoring
rules are available: the simple threshold/allowance rule (default) and a
context-aware rule with per-query-type thresholds.
"""

import logging
from typing import Dict, List, Optional, Any

import numpy as np
import regex as re

from models import Turn, AudioData, AnalysisConfig, LatencyScoringMode, Speaker
from utils import truncate_text, count_words, grade_for_score

logger = logging.getLogger(__name__)

AGENT_WORDS_PER_SECOND = 3.0
CUSTOMER_WORDS_PER_SECOND = 2.5
SEVERE_LATENCY_SECONDS = 10.0

CONVERSATION_PHASES = ['greeting', 'inquiry', 'information_gathering', 'resolution', 'closing']

CONTEXT_THRESHOLDS = {
    'greeting': {'optimal': 1.0, 'acceptable': 2.0, 'critical': 4.0},
    'simple_query': {'optimal': 1.5, 'acceptable': 3.0, 'critical': 5.0},
    'complex_query': {'optimal': 2.5, 'acceptable': 5.0, 'critical': 8.0},
    'information_processing': {'optimal': 3.0, 'acceptable': 6.0, 'critical': 10.0},
    'closing': {'optimal': 1.0, 'acceptable': 2.0, 'critical': 3.0}
}

CONTEXT_IMPACT_MULTIPLIERS = {
    'greeting': 1.3,
    'simple_query': 1.0,
    'complex_query': 0.8,
    'information_processing': 0.7,
    'closing': 1.2
}

COMPLEXITY_INDICATORS = ['why', 'how', 'explain', 'difference', 'compare', 'multiple']
PROCESSING_INDICATORS = ['calculate', 'find', 'search', 'check', 'verify', 'process']

LEVEL_RECOMMENDATIONS = {
    'critical': 'URGENT: Optimize response generation pipeline and consider caching common responses',
    'moderate': 'Improve response time through better query processing or interim acknowledgments',
    'minor': 'Consider minor optimizations to improve user experience',
    'none': 'Response time within acceptable range'
}

STATUS_BY_GRADE = {
    'A': 'excellent',
    'B': 'good',
    'C': 'acceptable',
    'D': 'needs_improvement',
    'F': 'critical'
}

SENTENCE_END = re.compile(r'[.!?]')


def conversation_phase(turn_index: int, total_turns: int) -> str:
    """Coarse phase of the call from relative position"""
    progress = turn_index / max(total_turns, 1)
    if progress < 0.2:
        return 'greeting'
    if progress < 0.4:
        return 'inquiry'
    if progress < 0.8:
        return 'information_gathering'
    if progress < 0.95:
        return 'resolution'
    return 'closing'


def estimate_turn_duration(text: str, speaker: Speaker, rng: np.random.Generator) -> float:
    """Speaking time from word count, punctuation pauses and a seeded jitter"""
    words_per_second = AGENT_WORDS_PER_SECOND if speaker is Speaker.AGENT else CUSTOMER_WORDS_PER_SECOND
    word_count = count_words(text)
    complexity_factor = 1.2 if len(text) > 100 else 1.0
    pauses = len(SENTENCE_END.findall(text)) * 0.5
    return (word_count / words_per_second) * complexity_factor + pauses + float(rng.random())


def classify_turn_context(human_text: str, phase: str, turn_index: int) -> str:
    text_lower = human_text.lower()

    if turn_index < 3:
        return 'greeting'
    if '?' in text_lower:
        is_complex = any(indicator in text_lower for indicator in COMPLEXITY_INDICATORS)
        return 'complex_query' if is_complex else 'simple_query'
    if any(indicator in text_lower for indicator in PROCESSING_INDICATORS):
        return 'information_processing'
    if phase == 'closing' or 'bye' in text_lower or 'thank' in text_lower:
        return 'closing'
    return 'simple_query'


def latency_impact(response_time: float, context_type: str) -> float:
    """User experience impact of one response delay, 0-10"""
    thresholds = CONTEXT_THRESHOLDS.get(context_type, CONTEXT_THRESHOLDS['simple_query'])
    multiplier = CONTEXT_IMPACT_MULTIPLIERS.get(context_type, 1.0)

    if response_time <= thresholds['optimal']:
        base_impact = 0.0
    elif response_time <= thresholds['acceptable']:
        base_impact = (response_time / thresholds['optimal'] - 1) * 3
    elif response_time <= thresholds['critical']:
        span = thresholds['critical'] - thresholds['acceptable']
        base_impact = 3 + (response_time - thresholds['acceptable']) / span * 4
    else:
        base_impact = 7 + min((response_time - thresholds['critical']) / thresholds['critical'] * 3, 3)

    return min(base_impact * multiplier, 10)


def violation_level(response_time: float, context_type: str) -> str:
    thresholds = CONTEXT_THRESHOLDS.get(context_type, CONTEXT_THRESHOLDS['simple_query'])
    if response_time > thresholds['critical']:
        return 'critical'
    if response_time > thresholds['acceptable']:
        return 'moderate'
    if response_time > thresholds['optimal']:
        return 'minor'
    return 'none'


def user_experience_impact(response_time: float, context_type: str) -> str:
    thresholds = CONTEXT_THRESHOLDS.get(context_type, CONTEXT_THRESHOLDS['simple_query'])
    if response_time <= thresholds['optimal']:
        return 'excellent'
    if response_time <= thresholds['acceptable']:
        return 'good'
    if response_time <= thresholds['critical']:
        return 'poor'
    return 'very_poor'


def latency_recommendation(level: str, context_type: str) -> str:
    recommendation = LEVEL_RECOMMENDATIONS[level]
    if level == 'none':
        return recommendation
    if context_type == 'information_processing':
        recommendation += '. Consider adding "processing..." acknowledgments for complex queries.'
    elif context_type == 'greeting':
        recommendation += '. First response delays create poor first impressions.'
    return recommendation


class LatencyAnalyzer:
    """Measures bot response gaps and scores them"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def analyze(
        self,
        turns: List[Turn],
        audio_data: Optional[AudioData],
        config: AnalysisConfig,
        rng: np.random.Generator
    ) -> Dict[str, Any]:
        """
        Analyze response latency for one call.

        Args:
            turns: Parsed turns of the call
            audio_data: Optional audio measurements; turn timings take precedence over estimates
            config: Analysis configuration (threshold, allowance and scoring mode)
            rng: Session random generator for the duration jitter

        Returns:
            dict: Response times, violations, score, grade and recommendations
        """
        if audio_data is not None and audio_data.turn_timings:
            response_times = self.measure_from_audio(turns, audio_data)
            source = 'audio_primary'
        else:
            if not turns:
                self.logger.warning("No valid turns found in transcript, returning default latency analysis")
                return self.default_result()
            response_times = self.estimate_from_transcript(turns, rng)
            source = 'transcript_fallback'

        if config.latency_scoring_mode is LatencyScoringMode.CONTEXTUAL:
            violations = [
                self.violation_entry(entry, entry['violationLevel'])
                for entry in response_times if entry['violationLevel'] != 'none'
            ]
            scoring = self.contextual_score(response_times, violations)
        else:
            violations = [
                self.violation_entry(
                    entry,
                    'severe' if entry['responseTimeSeconds'] > SEVERE_LATENCY_SECONDS else 'moderate'
                )
                for entry in response_times
                if entry['responseTimeSeconds'] > config.response_time_threshold
            ]
            scoring = self.simple_score(violations, config)

        average = (sum(entry['responseTimeSeconds'] for entry in response_times) / len(response_times)
                   if response_times else 0)

        self.logger.info(
            f"Response latency analysis: {len(violations)} violations "
            f"(threshold: {config.response_time_threshold}s), score {scoring['score']}/100 ({scoring['grade']})"
        )

        return {
            'responseTimes': response_times,
            'latencyViolations': violations,
            'averageResponseTime': average,
            'totalViolations': len(violations),
            'maxAllowedViolations': config.max_allowed_latency_violations,
            'threshold': config.response_time_threshold,
            'contextualAnalysis': self.contextual_insights(response_times),
            'latencyScore': scoring['score'],
            'performanceGrade': scoring['grade'],
            'status': scoring['status'],
            'recommendations': scoring['recommendations'],
            'scoringMode': config.latency_scoring_mode.value,
            'analysisSource': source
        }

    def response_entry(
        self,
        turn_index: int,
        response_time: float,
        human_text: str,
        bot_text: str,
        total_turns: int
    ) -> Dict[str, Any]:
        phase = conversation_phase(turn_index, total_turns)
        context_type = classify_turn_context(human_text, phase, turn_index)
        level = violation_level(response_time, context_type)
        thresholds = CONTEXT_THRESHOLDS[context_type]

        return {
            'turnIndex': turn_index,
            'responseTimeSeconds': response_time,
            'humanTurnText': truncate_text(human_text, 50),
            'botResponseText': truncate_text(bot_text, 50),
            'contextType': context_type,
            'conversationPhase': phase,
            'expectedRange': f"{thresholds['optimal']}-{thresholds['acceptable']}s",
            'violationLevel': level,
            'impactScore': latency_impact(response_time, context_type),
            'recommendation': latency_recommendation(level, context_type),
            'userExperienceImpact': user_experience_impact(response_time, context_type)
        }

    def estimate_from_transcript(self, turns: List[Turn], rng: np.random.Generator) -> List[Dict[str, Any]]:
        """Running clock over estimated turn durations"""
        response_times = []
        clock = 0.0
        last_human_time = 0.0

        for position, turn in enumerate(turns):
            duration = estimate_turn_duration(turn.text, turn.speaker, rng)

            if turn.is_customer:
                last_human_time = clock
            elif position > 0 and turns[position - 1].is_customer:
                response_times.append(self.response_entry(
                    position, clock - last_human_time, turns[position - 1].text, turn.text, len(turns)))

            clock += duration

        return response_times

    def measure_from_audio(self, turns: List[Turn], audio_data: AudioData) -> List[Dict[str, Any]]:
        """Agent turn start minus preceding customer turn end"""
        timings = audio_data.turn_timings
        response_times = []

        for position in range(1, len(timings)):
            current, previous = timings[position], timings[position - 1]
            if current.speaker is not Speaker.AGENT or previous.speaker is not Speaker.CUSTOMER:
                continue

            human_text = turns[position - 1].text if position - 1 < len(turns) else ''
            bot_text = turns[position].text if position < len(turns) else ''
            entry = self.response_entry(
                position, current.start_time - previous.end_time, human_text, bot_text, len(timings))
            entry['audioTimestamp'] = current.start_time
            response_times.append(entry)

        return response_times

    @staticmethod
    def violation_entry(entry: Dict[str, Any], severity: str) -> Dict[str, Any]:
        violation = {
            'turnIndex': entry['turnIndex'],
            'responseTimeSeconds': entry['responseTimeSeconds'],
            'violationSeverity': severity,
            'humanTurnText': entry['humanTurnText'],
            'botResponseText': entry['botResponseText'],
            'contextType': entry['contextType'],
            'expectedRange': entry['expectedRange'],
            'impactScore': entry['impactScore'],
            'recommendation': entry['recommendation']
        }
        if 'audioTimestamp' in entry:
            violation['audioTimestamp'] = entry['audioTimestamp']
        return violation

    @staticmethod
    def simple_score(violations: List[Dict[str, Any]], config: AnalysisConfig) -> Dict[str, Any]:
        """100, minus 25 per violation over the allowance and 15 per severe violation"""
        max_allowed = config.max_allowed_latency_violations
        score = 100

        if len(violations) > max_allowed:
            score = max(0, 100 - (len(violations) - max_allowed) * 25)

        severe = sum(1 for v in violations if v['violationSeverity'] == 'severe')
        if severe:
            score = max(0, score - severe * 15)

        recommendations = []
        if not violations:
            recommendations.append(
                f'All response times within {config.response_time_threshold:g}-second threshold. '
                f'Excellent performance.')
        elif len(violations) <= max_allowed:
            recommendations.append(
                f'{len(violations)} response time violations detected but within acceptable limit ({max_allowed})')
        else:
            recommendations.append(
                f'{len(violations)} response time violations exceed limit ({max_allowed}). '
                f'Optimize bot response speed.')
        if severe:
            recommendations.append(
                f'{severe} severe violations (>{SEVERE_LATENCY_SECONDS:g}s) detected. Critical optimization needed.')

        grade = grade_for_score(score)
        return {'score': round(score), 'grade': grade, 'status': STATUS_BY_GRADE[grade],
                'recommendations': recommendations}

    @staticmethod
    def contextual_score(response_times: List[Dict[str, Any]], violations: List[Dict[str, Any]]) -> Dict[str, Any]:
        if not response_times:
            return {'score': 100, 'grade': 'A', 'status': 'optimal', 'recommendations': []}

        total_impact = sum(entry['impactScore'] for entry in response_times)
        base_score = max(0.0, 100 - total_impact / (len(response_times) * 10) * 100)
        critical = sum(1 for v in violations if v['violationSeverity'] == 'critical')
        score = max(0.0, base_score - critical * 15)

        recommendations = []
        if not violations:
            recommendations.append('Response times are within acceptable ranges. Continue monitoring.')
        else:
            context_types = {v['contextType'] for v in violations}
            if critical:
                recommendations.append(f'PRIORITY: Address {critical} critical response delays immediately')
            if 'greeting' in context_types:
                recommendations.append('Optimize initial response time - first impressions are crucial')
            if 'information_processing' in context_types:
                recommendations.append('Consider adding interim responses for complex processing tasks')
            average = sum(entry['responseTimeSeconds'] for entry in response_times) / len(response_times)
            if average > 3.0:
                recommendations.append(
                    'Overall response time is high - review system performance and caching strategies')

        grade = grade_for_score(score)
        return {'score': round(score), 'grade': grade, 'status': STATUS_BY_GRADE[grade],
                'recommendations': recommendations}

    @staticmethod
    def contextual_insights(response_times: List[Dict[str, Any]]) -> Dict[str, Dict[str, float]]:
        groups: Dict[str, List[float]] = {}
        for entry in response_times:
            groups.setdefault(entry.get('contextType', 'unknown'), []).append(entry['responseTimeSeconds'])

        return {
            context: {
                'averageTime': sum(times) / len(times),
                'count': len(times),
                'maxTime': max(times),
                'minTime': min(times)
            }
            for context, times in groups.items()
        }

    @staticmethod
    def default_result() -> Dict[str, Any]:
        return {
            'responseTimes': [],
            'latencyViolations': [],
            'averageResponseTime': 2.5,
            'totalViolations': 0,
            'maxAllowedViolations': 3,
            'threshold': 5.0,
            'latencyScore': 80,
            'performanceGrade': 'B',
            'status': 'acceptable',
            'recommendations': ['Unable to analyze response latency - transcript may be missing or invalid'],
            'analysisSource': 'default_fallback'
        }
