"""
Repetition detection for bot utterances.

Only true back-to-back repetition counts: two bot lines, or two equal-size
blocks of bot lines, with no customer turn between them. Thematic recurrence
later in the call is legitimate script flow and is not reported.
"""

import logging
from typing import Dict, List, Any, Tuple

from models import Turn, AnalysisConfig, RepetitionMode
from utils import strip_punctuation, split_words
from .qa_models import Repetition
from . import similarity

logger = logging.getLogger(__name__)

MIN_BOT_TEXT_LENGTH = 5
MAX_BLOCK_SIZE = 4
FUZZY_WINDOW = 5

REPETITION_RECOMMENDATIONS = {
    'exact_repetition': 'Critical: Identical responses detected. Review bot logic for dynamic responses.',
    'semantic_repetition': 'High: Same meaning repeated. Add response variations or context awareness.',
    'structural_repetition': 'Medium: Similar sentence patterns. Diversify response templates.',
    'conceptual_repetition': 'Medium: Similar concepts repeated. Improve conversation flow logic.',
    'partial_repetition': 'Low: Minor repetition detected. Monitor for patterns.'
}


def comparable_text(text: str) -> str:
    """Lower-case, punctuation to spaces, whitespace collapsed"""
    return ' '.join(split_words(strip_punctuation(text.lower(), ' ')))


def are_identical(text1: str, text2: str) -> bool:
    if not text1 or not text2:
        return False
    normalized = comparable_text(text1)
    return bool(normalized) and normalized == comparable_text(text2)


def classify_repetition_type(lexical: float, semantic: float, structural: float) -> str:
    if lexical > 0.9 and structural > 0.8:
        return 'exact_repetition'
    if semantic > 0.8 and lexical > 0.6:
        return 'semantic_repetition'
    if structural > 0.8 and lexical < 0.6:
        return 'structural_repetition'
    if semantic > 0.7:
        return 'conceptual_repetition'
    return 'partial_repetition'


def repetition_severity(overall_similarity: float, turn_distance: int) -> float:
    """Squared similarity scaled down with distance, 0-10"""
    distance_weight = max(0.1, 1 - turn_distance / 20)
    return min(overall_similarity ** 2 * distance_weight * 10, 10)


def repetition_recommendation(repetition_type: str, severity: float) -> str:
    base = REPETITION_RECOMMENDATIONS.get(repetition_type, 'Monitor repetition patterns')
    if severity > 7:
        return base + ' [HIGH PRIORITY]'
    if severity > 4:
        return base + ' [MEDIUM PRIORITY]'
    return base + ' [LOW PRIORITY]'


def business_impact(severity: float) -> str:
    if severity > 8:
        return 'High - May confuse customers and appear robotic'
    if severity > 6:
        return 'Medium - Could affect conversation flow'
    return 'Low - Minor impact on user experience'


class RepetitionDetector:
    """Exact consecutive detector with an opt-in fuzzy pass"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def bot_turns(turns: List[Turn]) -> List[Turn]:
        return [turn for turn in turns if turn.is_agent and len(turn.text) >= MIN_BOT_TEXT_LENGTH]

    @staticmethod
    def customer_between(turns: List[Turn], start: int, end: int) -> bool:
        """Whether a customer turn sits strictly between two turn indices"""
        return any(turn.is_customer for turn in turns[start + 1:end])

    def detect(self, turns: List[Turn], config: AnalysisConfig) -> List[Dict[str, Any]]:
        """
        Find repeated bot output.

        Args:
            turns: Parsed turns of the call
            config: Analysis configuration; ``repetition_mode`` enables the fuzzy pass

        Returns:
            list: Repetition dicts, exact hits first
        """
        bot_turns = self.bot_turns(turns)
        if not bot_turns:
            self.logger.debug("No bot turns found in transcript")
            return []

        repetitions = self.detect_single_line(turns, bot_turns)
        repetitions.extend(self.detect_blocks(turns, bot_turns))

        if config.repetition_mode is RepetitionMode.FUZZY:
            repetitions.extend(self.detect_fuzzy(turns, bot_turns, repetitions, config))

        self.logger.info(f"Found {len(repetitions)} repetitions")
        return [repetition.to_dict() for repetition in repetitions]

    def detect_single_line(self, turns: List[Turn], bot_turns: List[Turn]) -> List[Repetition]:
        repetitions = []
        for current, following in zip(bot_turns, bot_turns[1:]):
            if not are_identical(current.text, following.text):
                continue
            if self.customer_between(turns, current.index, following.index):
                continue
            repetitions.append(Repetition(
                type='single_line_repetition',
                text1=current.text,
                text2=following.text,
                similarity_score=1.0,
                severity=10,
                is_problematic_repetition=True,
                recommendation='Remove consecutive identical bot responses',
                turn_indices=[current.index, following.index]
            ))
        return repetitions

    def detect_blocks(self, turns: List[Turn], bot_turns: List[Turn]) -> List[Repetition]:
        """Two adjacent equal-size runs of bot turns; one hit per block size"""
        repetitions = []
        for block_size in range(2, MAX_BLOCK_SIZE + 1):
            for start in range(0, len(bot_turns) - block_size * 2 + 1):
                first = bot_turns[start:start + block_size]
                second = bot_turns[start + block_size:start + block_size * 2]

                if not all(are_identical(a.text, b.text) for a, b in zip(first, second)):
                    continue
                if self.customer_between(turns, first[-1].index, second[0].index):
                    continue

                repetitions.append(Repetition(
                    type='block_pattern_repetition',
                    text1=' | '.join(turn.text for turn in first),
                    text2=' | '.join(turn.text for turn in second),
                    similarity_score=1.0,
                    severity=10,
                    is_problematic_repetition=True,
                    recommendation=(f'Remove {block_size}-line block repetition - '
                                    f'bot is repeating entire conversation blocks'),
                    turn_indices=[turn.index for turn in first + second],
                    block_size=block_size,
                    details={
                        'firstBlock': [turn.text for turn in first],
                        'secondBlock': [turn.text for turn in second]
                    }
                ))
                break
        return repetitions

    @staticmethod
    def justification(text1: str, text2: str, is_consecutive: bool) -> Dict[str, Any]:
        """Business reasons that make a near repeat acceptable"""
        reasons = []
        score = 0.0

        if any(marker in text for text in (text1, text2) for marker in ('क्या', 'confirm')):
            reasons.append('Clarification request')
            score += 0.3
        if not is_consecutive:
            reasons.append('Different conversation context')
            score += 0.4
        if any(marker in text for text in (text1, text2) for marker in ('नमस्ते', 'धन्यवाद')):
            reasons.append('Standard greeting/closing')
            score += 0.5
        if any(marker in text for text in (text1, text2) for marker in ('सही है', 'correct')):
            reasons.append('Information confirmation')
            score += 0.3

        return {'score': min(score, 1.0), 'reasons': reasons, 'isJustified': score > 0.4}

    def compare(self, first: Turn, second: Turn, is_consecutive: bool, threshold: float) -> Dict[str, Any]:
        lexical = similarity.lexical_similarity(first.text, second.text)
        semantic = similarity.semantic_similarity(first.text, second.text)
        structural = similarity.structural_similarity(first.text, second.text)
        overall = lexical * 0.4 + semantic * 0.4 + structural * 0.2

        justification = self.justification(first.text, second.text, is_consecutive)
        if justification['isJustified']:
            problematic = False
        elif not is_consecutive:
            problematic = overall > 0.9
        else:
            problematic = overall > threshold

        repetition_type = classify_repetition_type(lexical, semantic, structural)
        severity = repetition_severity(overall, abs(second.index - first.index)) if problematic else 0.0

        return {
            'overallSimilarity': overall,
            'lexicalSimilarity': lexical,
            'semanticSimilarity': semantic,
            'structuralSimilarity': structural,
            'contextualRelevance': 1 - justification['score'],
            'contextualJustification': justification,
            'repetitionType': repetition_type,
            'severity': severity,
            'isProblematicRepetition': problematic,
            'recommendation': repetition_recommendation(repetition_type, severity)
        }

    def detect_fuzzy(
        self,
        turns: List[Turn],
        bot_turns: List[Turn],
        existing: List[Repetition],
        config: AnalysisConfig
    ) -> List[Repetition]:
        """Near-duplicate bot turns within a short window, exact hits excluded"""
        seen = set()
        for repetition in existing:
            seen.add((repetition.text1, repetition.text2))
            seen.add((repetition.text2, repetition.text1))

        candidates: List[Tuple[float, Repetition]] = []
        for position, first in enumerate(bot_turns):
            for second in bot_turns[position + 1:position + 1 + FUZZY_WINDOW]:
                if (first.text, second.text) in seen or are_identical(first.text, second.text):
                    continue

                is_consecutive = not self.customer_between(turns, first.index, second.index)
                analysis = self.compare(first, second, is_consecutive, config.repetition_similarity_threshold)
                if not analysis['isProblematicRepetition'] or analysis['severity'] <= 5.0:
                    continue

                severity = analysis['severity']
                candidates.append((severity, Repetition(
                    type='fuzzy_repetition',
                    text1=first.text,
                    text2=second.text,
                    similarity_score=round(analysis['overallSimilarity'], 3),
                    severity=round(severity, 2),
                    is_problematic_repetition=True,
                    recommendation=analysis['recommendation'],
                    repetition_type=analysis['repetitionType'],
                    turn_indices=[first.index, second.index],
                    details={
                        'lexicalSimilarity': analysis['lexicalSimilarity'],
                        'semanticSimilarity': analysis['semanticSimilarity'],
                        'structuralSimilarity': analysis['structuralSimilarity'],
                        'contextualRelevance': analysis['contextualRelevance'],
                        'contextualJustification': analysis['contextualJustification'],
                        'semanticAnalysis': similarity.semantic_breakdown(first.text, second.text),
                        'isConsecutive': is_consecutive,
                        'priority': 'high' if severity > 8 else ('medium' if severity > 6 else 'low'),
                        'actionRequired': severity > 7,
                        'businessImpact': business_impact(severity)
                    }
                )))

        candidates.sort(key=lambda item: item[0], reverse=True)
        self.logger.debug(f"Fuzzy pass flagged {len(candidates)} near-duplicate pairs")
        return [repetition for _, repetition in candidates]
