"""
interruption_analyzer.py - Turn-taking and interruption handling analysis
"""

import logging
from typing import Dict, List, Optional, Any

import numpy as np
import regex as re

from models import Turn, AudioData
from utils import extract_topics, calculate_similarity_score, split_words
from .hallucination_detector import RelevanceAnalyzer, INTENT_RESPONSE_ALIGNMENT

logger = logging.getLogger(__name__)

ABRUPT_ENDING_PUNCTUATION = re.compile(r'[.!?]$')
INCOMPLETE_MARKERS = re.compile(r'\b(and|but|so|because|if|when|while|since)\s*$', re.IGNORECASE)

RECOVERY_INDICATORS = [
    re.compile(r'sorry|apologize|excuse me', re.IGNORECASE),
    re.compile(r'let me continue|as I was saying|going back to', re.IGNORECASE),
    re.compile(r'understand|I see|got it', re.IGNORECASE)
]


def ends_abruptly(text: str) -> bool:
    """No closing punctuation, or a trailing conjunction"""
    stripped = text.strip()
    return not ABRUPT_ENDING_PUNCTUATION.search(stripped) or bool(INCOMPLETE_MARKERS.search(stripped))


def is_quick_response(human_text: str, bot_text: str) -> bool:
    return len(split_words(human_text)) > 10 and len(split_words(bot_text)) < 5


def recovery_quality(bot_text: str) -> int:
    """How well a bot turn picks the conversation back up, 2-8"""
    has_recovery_language = any(pattern.search(bot_text) for pattern in RECOVERY_INDICATORS)
    length = len(split_words(bot_text))

    if has_recovery_language and length > 5:
        return 8
    if has_recovery_language:
        return 6
    if length > 10:
        return 4
    return 2


def recovery_time(interruption_text: str, recovery_text: str) -> float:
    return max(1.0, len(split_words(interruption_text)) * 0.3 + len(split_words(recovery_text)) * 0.2)


def interruption_context_appropriate(bot_text: str, human_text: str) -> bool:
    bot_lower = bot_text.lower()
    human_lower = human_text.lower()

    if any(marker in human_lower for marker in ('wait', 'stop', 'question', 'clarify', 'wrong', 'mistake')):
        return True
    if 'important' in bot_lower or 'need to know' in bot_lower:
        return False
    return True


def interruption_recommendation(interruption_type: str, severity: float, handling_quality: float) -> str:
    if interruption_type == 'bot_interrupts_human':
        base = 'CRITICAL: Bot interrupting human. Implement better turn-taking detection.'
    elif interruption_type == 'human_interrupts_bot':
        base = ('Good interruption handling. Continue monitoring.' if handling_quality > 6
                else 'Improve bot recovery from human interruptions.')
    elif interruption_type == 'none':
        base = 'No interruption issues detected.'
    else:
        base = 'Monitor turn-taking patterns.'

    if severity > 6:
        return base + ' [HIGH PRIORITY]'
    if severity > 3:
        return base + ' [MEDIUM]'
    return base + ' [LOW]'


def topic_continuity(previous_text: str, current_text: str) -> float:
    previous_topics = extract_topics(previous_text)
    current_topics = extract_topics(current_text)
    if not previous_topics or not current_topics:
        return 0.7

    common = [
        topic for topic in previous_topics
        if any(calculate_similarity_score(topic, other) > 0.6 for other in current_topics)
    ]
    return min(1.0, len(common) / min(len(previous_topics), len(current_topics)) + 0.3)


def response_appropriateness(previous_text: str, current_text: str) -> float:
    human_intent = RelevanceAnalyzer.classify_human_intent(previous_text)
    response_type = RelevanceAnalyzer.classify_response_type(current_text)
    return 1.0 if response_type in INTENT_RESPONSE_ALIGNMENT.get(human_intent, ['information']) else 0.3


class InterruptionAnalyzer:
    """Detects interruptions from audio overlap data or transcript heuristics"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def analyze(
        self,
        turns: List[Turn],
        audio_data: Optional[AudioData],
        rng: np.random.Generator
    ) -> Dict[str, Any]:
        """
        Analyze interruption handling for one call.

        Args:
            turns: Parsed turns of the call
            audio_data: Optional audio measurements; ``interruption_data`` takes precedence
            rng: Session random generator for estimated turn gaps

        Returns:
            dict: Interruptions, score, turn-taking quality, flow and recommendations
        """
        if audio_data is not None and audio_data.interruption_data:
            interruptions, patterns = self.from_audio(turns, audio_data)
            source = 'audio_primary'
        else:
            if not turns:
                self.logger.warning("No valid turns found in transcript, returning default interruption analysis")
                return self.default_result()
            interruptions, patterns = self.from_transcript(turns, rng)
            source = 'transcript_fallback'

        self.logger.info(f"Interruption analysis: {len(interruptions)} interruptions detected")

        return {
            'interruptions': interruptions,
            'interruptionScore': self.interruption_score(interruptions, patterns),
            'turnTakingQuality': self.turn_taking_quality(patterns),
            'conversationFlow': self.conversation_flow(patterns),
            'recommendations': self.recommendations(interruptions),
            'analysisSource': source
        }

    def detect_pattern(self, previous: Turn, current: Turn, following: Optional[Turn]) -> Dict[str, Any]:
        interruption_type = 'none'
        severity = 0
        handling = 0
        recovery = 0.0
        appropriate = True

        if previous.is_customer and current.is_agent:
            if ends_abruptly(previous.text) and is_quick_response(previous.text, current.text):
                interruption_type, severity, handling, appropriate = 'bot_interrupts_human', 7, 2, False

        if previous.is_agent and current.is_customer:
            if len(split_words(previous.text)) > 20 and len(current.text) < 20:
                interruption_type, severity = 'human_interrupts_bot', 4
                if following is not None and following.is_agent:
                    handling = recovery_quality(following.text)
                    recovery = recovery_time(current.text, following.text)
                appropriate = interruption_context_appropriate(previous.text, current.text)

        return {
            'isInterruption': interruption_type != 'none',
            'type': interruption_type,
            'severity': severity,
            'handlingQuality': handling,
            'recoveryTime': recovery,
            'contextAppropriate': appropriate,
            'recommendation': interruption_recommendation(interruption_type, severity, handling)
        }

    @staticmethod
    def turn_pattern(previous: Turn, current: Turn, rng: np.random.Generator) -> Dict[str, Any]:
        """Gap, speaker transition and local flow for one turn triple"""
        estimated_gap = float(rng.random()) * 2 + 0.5
        gap_quality = 8
        if estimated_gap > 3:
            gap_quality = 4
        if estimated_gap < 0.2:
            gap_quality = 6

        speaker_changed = previous.speaker is not current.speaker
        # Text alone cannot show overlap; only audio marks a transition as rough
        smooth = True
        transition_quality = 9 if speaker_changed and smooth else (6 if speaker_changed else 8)

        flow = (topic_continuity(previous.text, current.text) +
                response_appropriateness(previous.text, current.text)) / 2

        return {
            'turnGaps': {
                'estimatedGap': estimated_gap,
                'quality': gap_quality,
                'appropriate': 0.5 <= estimated_gap <= 2.0
            },
            'speakerTransition': {
                'speakerChanged': speaker_changed,
                'smooth': smooth,
                'quality': transition_quality
            },
            'conversationalFlow': flow,
            'overallQuality': (gap_quality + transition_quality + flow) / 3
        }

    def from_transcript(self, turns: List[Turn], rng: np.random.Generator):
        interruptions = []
        patterns = []

        for position in range(1, len(turns) - 1):
            previous, current, following = turns[position - 1], turns[position], turns[position + 1]

            analysis = self.detect_pattern(previous, current, following)
            if analysis['isInterruption']:
                interruptions.append({
                    'turnIndex': position,
                    'interruptionType': analysis['type'],
                    'severity': analysis['severity'],
                    'handlingQuality': analysis['handlingQuality'],
                    'recoveryTime': analysis['recoveryTime'],
                    'contextAppropriate': analysis['contextAppropriate'],
                    'recommendation': analysis['recommendation'],
                    'analysisSource': 'transcript_fallback'
                })

            patterns.append(self.turn_pattern(previous, current, rng))

        return interruptions, patterns

    @staticmethod
    def turn_context(turns: List[Turn], turn_index: int) -> Dict[str, Optional[Turn]]:
        def at(position):
            return turns[position] if 0 <= position < len(turns) else None

        return {
            'previousTurn': at(turn_index - 1),
            'currentTurn': at(turn_index),
            'nextTurn': at(turn_index + 1)
        }

    @staticmethod
    def audio_interruption(entry: Dict[str, Any], context: Dict[str, Optional[Turn]]) -> Dict[str, Any]:
        overlap = entry.get('overlapDuration') or 0
        interruption_type = entry.get('type') or 'unknown'
        transition = entry.get('speakerTransition') or {}

        severity = 0
        handling = 5
        significant = False
        if interruption_type == 'bot_interrupts_human':
            severity = min(10, 5 + overlap * 2)
            handling = 2
            significant = overlap > 0.5
        elif interruption_type == 'human_interrupts_bot':
            severity = min(8, 3 + overlap)
            if context['nextTurn'] is not None:
                handling = recovery_quality(context['nextTurn'].text)
            significant = overlap > 0.3

        current, following, previous = context['currentTurn'], context['nextTurn'], context['previousTurn']
        recovery = transition.get('recoveryTime') or recovery_time(
            current.text if current else '', following.text if following else '')

        energy = entry.get('energyLevel') or 0.5
        urgency = entry.get('urgencyIndicators') or 0
        if energy > 0.8 and urgency > 2:
            appropriate = True
        elif previous is not None and current is not None:
            appropriate = interruption_context_appropriate(previous.text, current.text)
        else:
            appropriate = True

        return {
            'isSignificant': significant,
            'type': interruption_type,
            'severity': severity,
            'handlingQuality': handling,
            'recoveryTime': recovery,
            'contextAppropriate': appropriate,
            'recommendation': interruption_recommendation(interruption_type, severity, handling)
        }

    @staticmethod
    def audio_turn_pattern(entry: Dict[str, Any]) -> Dict[str, Any]:
        silence = entry.get('silenceDuration') or 1.0
        overlap = entry.get('overlapDuration') or 0
        transition = entry.get('speakerTransition') or {}

        gap_quality = 8
        if silence < 0.2:
            gap_quality = 4
        elif silence > 3.0:
            gap_quality = 5
        if overlap > 0.5:
            gap_quality -= 2
        gap_quality = max(1, gap_quality)

        smooth = overlap < 0.3
        transition_quality = 9 if smooth else 6
        flow = entry.get('flowScore') or transition.get('flowScore') or 0.8

        return {
            'turnGaps': {
                'silenceDuration': silence,
                'quality': gap_quality,
                'appropriate': 0.5 <= silence <= 2.0
            },
            'speakerTransition': {
                'speakerChanged': True,
                'smooth': smooth,
                'quality': transition_quality
            },
            'conversationalFlow': flow,
            'overallQuality': (gap_quality + transition_quality + flow) / 3
        }

    def from_audio(self, turns: List[Turn], audio_data: AudioData):
        interruptions = []
        patterns = []

        for entry in audio_data.interruption_data:
            turn_index = entry.get('turnIndex') or 0
            context = self.turn_context(turns, turn_index)

            analysis = self.audio_interruption(entry, context)
            if analysis['isSignificant']:
                interruptions.append({
                    'turnIndex': turn_index,
                    'interruptionType': analysis['type'],
                    'severity': analysis['severity'],
                    'handlingQuality': analysis['handlingQuality'],
                    'recoveryTime': analysis['recoveryTime'],
                    'contextAppropriate': analysis['contextAppropriate'],
                    'recommendation': analysis['recommendation'],
                    'overlapDuration': entry.get('overlapDuration') or 0,
                    'analysisSource': 'audio_primary'
                })

            patterns.append(self.audio_turn_pattern(entry))

        return interruptions, patterns

    @staticmethod
    def interruption_score(interruptions: List[Dict[str, Any]], patterns: List[Dict[str, Any]]) -> int:
        if not interruptions and patterns:
            average_quality = sum(p['overallQuality'] for p in patterns) / len(patterns)
            return round(average_quality * 10)

        total_severity = sum(i['severity'] for i in interruptions)
        average_handling = (sum(i['handlingQuality'] for i in interruptions) / len(interruptions)
                            if interruptions else 8)
        return max(0, min(100, round(100 - total_severity * 2 + average_handling * 2)))

    @staticmethod
    def turn_taking_quality(patterns: List[Dict[str, Any]]) -> Dict[str, Any]:
        if not patterns:
            return {'quality': 8, 'assessment': 'good'}

        average = sum(p['overallQuality'] for p in patterns) / len(patterns)
        if average >= 8:
            assessment = 'excellent'
        elif average >= 6:
            assessment = 'good'
        elif average >= 4:
            assessment = 'fair'
        else:
            assessment = 'poor'
        return {'quality': average, 'assessment': assessment}

    @staticmethod
    def conversation_flow(patterns: List[Dict[str, Any]]) -> Dict[str, Any]:
        smooth = sum(1 for p in patterns if p['speakerTransition']['smooth'])
        total = len(patterns)
        score = smooth / total * 10 if total else 8

        if score >= 8:
            flow_quality = 'excellent'
        elif score >= 6:
            flow_quality = 'good'
        elif score >= 4:
            flow_quality = 'fair'
        else:
            flow_quality = 'poor'

        return {
            'score': score,
            'smoothTransitions': smooth,
            'totalTransitions': total,
            'flowQuality': flow_quality
        }

    @staticmethod
    def recommendations(interruptions: List[Dict[str, Any]]) -> List[str]:
        if not interruptions:
            return ['Turn-taking patterns are healthy. Continue monitoring.']

        recommendations = []
        bot_interruptions = [i for i in interruptions if i['interruptionType'] == 'bot_interrupts_human']
        human_interruptions = [i for i in interruptions if i['interruptionType'] == 'human_interrupts_bot']

        if bot_interruptions:
            recommendations.append(
                f'CRITICAL: {len(bot_interruptions)} bot interruptions detected. Implement turn-taking detection.')
        if len(human_interruptions) > 2:
            recommendations.append(
                f'High human interruption rate ({len(human_interruptions)}). '
                f'Review bot response length and clarity.')

        poor_handling = sum(1 for i in interruptions if i['handlingQuality'] < 5)
        if poor_handling:
            recommendations.append(
                f'Improve interruption recovery - {poor_handling} instances of poor handling detected.')

        return recommendations

    @staticmethod
    def default_result() -> Dict[str, Any]:
        return {
            'interruptions': [],
            'interruptionScore': 85,
            'turnTakingQuality': {'quality': 8, 'assessment': 'good'},
            'conversationFlow': {'score': 8, 'flowQuality': 'good'},
            'recommendations': ['Unable to analyze interruption patterns - transcript may be missing or invalid'],
            'analysisSource': 'default_fallback'
        }
