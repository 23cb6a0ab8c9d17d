"""
intent_classifier.py - Intent classification and conversation flow scoring

Classifies every turn against the script catalog, resolves the call-outcome
context, scores the flow for that context and decides whether the business
objective (an agent hand-off) was achieved.
"""

import logging
from typing import Dict, List, Optional, Any

from models import Turn
from utils import truncate_text, clamp, first_match
from .qa_models import IntentMapping, StepProgress
from .script_catalog import (
    INTENT_CATALOG, COMPILED_INTENTS, CONVERSATION_STEPS,
    CRITICAL_STEPS, ALTERNATIVE_CRITICAL_STEPS, CRITICAL_INTENTS,
    COMPILED_AFFIRMATIVES, COMPILED_SATISFACTION, COMPILED_VAGUE,
    get_context, intent_for_step
)

logger = logging.getLogger(__name__)

MAX_CONFIDENCE = 0.95
DETECTED_STEP_FLOOR = 0.5
OBJECTIVE_CONFIDENCE_THRESHOLD = 0.4

# Phrases from the scripted lines that confirm an intent beyond its patterns
SCRIPT_CONFIRMATIONS = {
    'initial_greeting': (['Magicbricks'], 0.2),
    'interest_check': (['search कर रहे हैं', 'क्या यह सही है'], 0.25),
    'agent_connection_offer': (['agents shortlist'], 0.25),
    'call_transfer': (['connect करती हूँ', 'लाइन पर बने रहिए'], 0.3)
}

AGENT_STRUCTURED_INTENTS = ['interest_check', 'agent_connection_offer', 'call_transfer']


def sequence_bonus(intent_type: str, turn_index: int) -> float:
    """Bonus for a critical intent appearing where the script places it"""
    if intent_type == 'initial_greeting':
        return 0.1 if turn_index < 3 else 0.0
    if intent_type == 'interest_check':
        return 0.15 if 2 < turn_index < 8 else 0.0
    if intent_type == 'agent_connection_offer':
        return 0.15 if 5 < turn_index < 12 else 0.0
    if intent_type == 'call_transfer':
        return 0.2 if turn_index > 8 else 0.0
    return 0.0


class IntentClassifier:
    """Pattern based step classifier for single turns"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def pattern_confidence(self, intent_type: str, text: str) -> float:
        """Confidence from the share of an intent's patterns that match"""
        patterns = COMPILED_INTENTS[intent_type]
        matches = sum(1 for pattern in patterns if pattern.search(text))
        confidence = matches / len(patterns)

        if matches > 0:
            if intent_type in CRITICAL_INTENTS:
                confidence = min(MAX_CONFIDENCE, confidence + 0.3)
            elif matches == len(patterns):
                confidence = min(MAX_CONFIDENCE, confidence + 0.2)
            else:
                confidence = min(0.85, confidence + 0.15)

        return confidence

    def adjust_confidence(self, confidence: float, intent_type: str, turn: Turn) -> float:
        """Apply script, speaker and position adjustments; applied even without a pattern hit"""
        confirmation = SCRIPT_CONFIRMATIONS.get(intent_type)
        if confirmation:
            phrases, boost = confirmation
            if any(phrase in turn.text for phrase in phrases):
                confidence = min(MAX_CONFIDENCE, confidence + boost)

        if turn.is_agent and intent_type in CRITICAL_INTENTS:
            confidence = min(MAX_CONFIDENCE, confidence + 0.1)

        if turn.index > 0:
            confidence = min(MAX_CONFIDENCE, confidence + sequence_bonus(intent_type, turn.index))

        return confidence

    def classify(self, turn: Turn) -> Dict[str, Any]:
        """
        Pick the best matching catalog entry for a turn.

        Returns:
            dict: intent description, step key, confidence and step number
        """
        best = {
            'intent': 'General conversation',
            'step': 'unknown',
            'confidence': 0.2,
            'stepNumber': 0
        }

        for intent_type, entry in INTENT_CATALOG.items():
            confidence = self.pattern_confidence(intent_type, turn.text)
            confidence = self.adjust_confidence(confidence, intent_type, turn)

            # Strictly greater keeps the earliest entry on ties
            if confidence > best['confidence']:
                best = {
                    'intent': entry['description'],
                    'step': intent_type,
                    'confidence': confidence,
                    'stepNumber': entry['step']
                }

        if turn.is_agent and best['step'] in AGENT_STRUCTURED_INTENTS:
            best['confidence'] = min(MAX_CONFIDENCE, best['confidence'] + 0.15)

        if best['step'] != 'unknown':
            best['confidence'] = max(DETECTED_STEP_FLOOR, best['confidence'])

        return best

    def map_turn(self, turn: Turn) -> IntentMapping:
        result = self.classify(turn)
        return IntentMapping(
            turn_number=turn.index + 1,
            speaker=turn.speaker.value,
            text=truncate_text(turn.text, 100, always_suffix=False),
            detected_intent=result['intent'],
            confidence=round(result['confidence'], 2),
            conversation_step=result['step'],
            step_number=result['stepNumber']
        )


class ConversationContextResolver:
    """Selects exactly one conversation context from the observed steps"""

    def resolve_key(self, mappings: List[IntentMapping]) -> str:
        observed = {mapping.conversation_step for mapping in mappings}

        has_interest = 'interest_check' in observed
        has_offer = 'agent_connection_offer' in observed

        if 'wrong_number_handling' in observed:
            return 'wrong_number'
        if 'voicemail_response' in observed:
            return 'voicemail_scenario'
        if ('busy_response' in observed or 'callback_scheduling' in observed) and not has_interest:
            return 'callback_scenario'
        if has_interest and has_offer and 'call_transfer' in observed:
            if 'third_party_interaction' in observed:
                return 'alternative_successful_flow'
            return 'successful_property_inquiry'
        if has_interest and 'agent_decline_handling' in observed:
            return 'failed_inquiry'
        if has_interest and has_offer:
            return 'successful_property_inquiry'
        return 'failed_inquiry'

    def resolve(self, mappings: List[IntentMapping]) -> Dict[str, Any]:
        return get_context(self.resolve_key(mappings))


class FlowScorer:
    """Contextual 0-100 flow score"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def is_condition_met(condition: str, content: str, mappings: List[IntentMapping]) -> bool:
        """Whether a conditional branch of the context was triggered in the call"""
        steps = {mapping.conversation_step for mapping in mappings}

        if condition == 'third_party_answers':
            return 'third_party_interaction' in steps
        if condition == 'customer_busy':
            return 'busy' in content or 'व्यस्त' in content or 'busy_response' in steps
        if condition == 'connection_issues':
            return 'connection' in content or 'network' in content or 'connection_failure' in steps
        if condition == 'needs_callback':
            return (any(term in content for term in ('callback', 'call back', 'बाद में'))
                    or 'callback_scheduling' in steps)
        if condition == 'agent_accepted':
            return (any(term in content for term in ('yes', 'हाँ', 'okay', 'ठीक है'))
                    or 'call_transfer' in steps)
        if condition == 'agent_declined':
            return (any(term in content for term in ('no', 'नहीं', 'not interested'))
                    or 'agent_decline_handling' in steps)
        if condition == 'call_completion':
            return 'call_ending' in steps or 'goodbye' in steps
        if condition == 'voicemail_detected':
            return (any(term in content for term in ('voicemail', 'message', 'after the tone'))
                    or 'voicemail_response' in steps)
        if condition == 'wrong_number':
            return ('wrong number' in content or 'गलत number' in content
                    or 'wrong_number_handling' in steps)
        return False

    def score(
        self,
        context: Dict[str, Any],
        step_progression: List[StepProgress],
        mappings: List[IntentMapping]
    ) -> Dict[str, Any]:
        required_steps = context['required_steps']
        completed_steps = [progress.step for progress in step_progression]
        completed_required = [step for step in required_steps if step in completed_steps]

        flow_score = 20.0

        required_score = len(completed_required) / len(required_steps) * 40
        flow_score += required_score

        content = ' '.join(mapping.text.lower() for mapping in mappings)
        applicable = 0
        completed_conditional = 0
        for condition, steps in context.get('conditional_steps', {}).items():
            if self.is_condition_met(condition, content, mappings):
                applicable += len(steps)
                completed_conditional += sum(1 for step in steps if step in completed_steps)
        conditional_score = (completed_conditional / applicable) * 20 if applicable > 0 else 20.0
        flow_score += conditional_score

        high_confidence = sum(1 for progress in step_progression if progress.confidence > 0.7)
        confidence_bonus = high_confidence / len(step_progression) * 10 if step_progression else 0.0
        flow_score += confidence_bonus

        ordered_pairs = sum(
            1 for previous, current in zip(step_progression, step_progression[1:])
            if current.step >= previous.step
        )
        sequential_bonus = ordered_pairs / (len(step_progression) - 1) * 10 if len(step_progression) > 1 else 0.0
        flow_score += sequential_bonus

        missing_critical = [
            intent_for_step(step) for step in required_steps
            if CONVERSATION_STEPS.get(step, {}).get('critical') and step not in completed_steps
        ]

        return {
            'flowScore': clamp(flow_score),
            'completedRequiredSteps': len(completed_required),
            'totalRequiredSteps': len(required_steps),
            'missingCriticalSteps': missing_critical,
            'contextName': context['name'],
            'requiredStepsScore': required_score,
            'conditionalScore': conditional_score,
            'confidenceBonus': confidence_bonus,
            'sequentialBonus': sequential_bonus
        }


class ObjectiveAnalyzer:
    """
    Decides whether the call reached and confirmed an agent hand-off.

    A step counts as completed above 0.4 confidence, which is lower than the
    0.5 floor the classifier gives detected steps.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def has_affirmative_after_transfer(self, mappings: List[IntentMapping]) -> bool:
        """Look for a customer 'yes' after the last agent offer or transfer"""
        last_offer = -1
        for index in range(len(mappings) - 1, -1, -1):
            if mappings[index].conversation_step in ('call_transfer', 'agent_connection_offer'):
                last_offer = index
                break

        if last_offer == -1:
            return False

        for mapping in mappings[last_offer + 1:]:
            if mapping.speaker == 'customer' and first_match(COMPILED_AFFIRMATIVES, mapping.text):
                self.logger.debug(f"Affirmative response to transfer: {mapping.text[:50]}")
                return True

        return False

    def analyze(self, mappings: List[IntentMapping]) -> Dict[str, Any]:
        completed_steps = {
            mapping.step_number for mapping in mappings
            if mapping.confidence > OBJECTIVE_CONFIDENCE_THRESHOLD and mapping.step_number > 0
        }

        primary_steps = [step for step in CRITICAL_STEPS if step in completed_steps]
        primary_complete = len(primary_steps) == len(CRITICAL_STEPS)
        alternative_steps = [step for step in ALTERNATIVE_CRITICAL_STEPS if step in completed_steps]
        alternative_complete = len(alternative_steps) == len(ALTERNATIVE_CRITICAL_STEPS)

        has_transfer = 9 in completed_steps
        has_affirmative = has_transfer and self.has_affirmative_after_transfer(mappings)

        achieved = primary_complete or alternative_complete or (has_affirmative and len(primary_steps) >= 3)

        combined = sorted(set(primary_steps) | set(alternative_steps))
        if achieved and primary_complete:
            completed_critical = primary_steps
        elif achieved and alternative_complete:
            completed_critical = alternative_steps
        else:
            completed_critical = combined

        if not achieved:
            reason = 'Critical steps incomplete or no affirmative response to transfer'
        elif primary_complete:
            reason = 'All 4 critical steps completed'
        elif alternative_complete:
            reason = 'All 5 alternative critical steps completed'
        else:
            reason = 'Call transfer with affirmative response'

        return {
            'objectiveAchieved': achieved,
            'primaryObjectiveComplete': primary_complete,
            'alternativeObjectiveComplete': alternative_complete,
            'hasCallTransferWithAffirmation': has_affirmative,
            'completedCriticalSteps': completed_critical,
            'totalCriticalSteps': len(CRITICAL_STEPS),
            'missingCriticalSteps': [] if achieved else [s for s in CRITICAL_STEPS if s not in completed_steps],
            'completionRate': 1.0 if achieved else max(
                len(primary_steps) / len(CRITICAL_STEPS),
                len(alternative_steps) / len(ALTERNATIVE_CRITICAL_STEPS)
            ),
            'objectiveAchievementReason': reason
        }


class IntentFlowAnalyzer:
    """Runs classification, context, flow and objective analysis over a call"""

    def __init__(
        self,
        classifier: Optional[IntentClassifier] = None,
        resolver: Optional[ConversationContextResolver] = None,
        flow_scorer: Optional[FlowScorer] = None,
        objective_analyzer: Optional[ObjectiveAnalyzer] = None
    ):
        self.classifier = classifier or IntentClassifier()
        self.resolver = resolver or ConversationContextResolver()
        self.flow_scorer = flow_scorer or FlowScorer()
        self.objective_analyzer = objective_analyzer or ObjectiveAnalyzer()
        self.logger = logging.getLogger(__name__)

    def analyze(self, turns: List[Turn]) -> Dict[str, Any]:
        if not turns:
            self.logger.warning("No valid turns found in transcript, returning default intent analysis")
            return self.default_result()

        mappings = [self.classifier.map_turn(turn) for turn in turns]

        detected_intents = []
        step_progression = []
        for mapping in mappings:
            if mapping.is_unknown:
                continue
            if mapping.conversation_step not in detected_intents:
                detected_intents.append(mapping.conversation_step)
            step_progression.append(StepProgress(
                step=mapping.step_number,
                intent=mapping.conversation_step,
                confidence=mapping.confidence,
                turn_number=mapping.turn_number
            ))

        context = self.resolver.resolve(mappings)
        contextual = self.flow_scorer.score(context, step_progression, mappings)
        average_confidence = self.priority_based_confidence(mappings, context)
        objective = self.objective_analyzer.analyze(mappings)

        self.logger.info(f"Conversation context: {context['name']}")
        self.logger.info(f"Contextual flow score: {contextual['flowScore']:.1f}/100")
        self.logger.info(
            f"Call objective achieved: {'YES' if objective['objectiveAchieved'] else 'NO'} "
            f"({len(objective['completedCriticalSteps'])}/{objective['totalCriticalSteps']} critical steps)"
        )
        self.logger.debug(f"Priority-based confidence: {average_confidence * 100:.1f}%")

        return {
            'intentMappings': [mapping.to_dict() for mapping in mappings],
            'flowScore': clamp(contextual['flowScore']),
            'averageConfidence': average_confidence,
            'completedSteps': len(objective['completedCriticalSteps']),
            'totalRequiredSteps': objective['totalCriticalSteps'],
            'detectedIntents': detected_intents,
            'stepProgression': [progress.to_dict() for progress in step_progression],
            'missingCriticalSteps': objective['missingCriticalSteps'],
            'conversationContext': context,
            'contextualAnalysis': contextual,
            'conversationQuality': self.assess_quality(contextual, average_confidence),
            'callObjective': objective,
            'objectiveAchieved': objective['objectiveAchieved'],
            'criticalStepsAnalysis': {
                'completed': objective['completedCriticalSteps'],
                'missing': objective['missingCriticalSteps'],
                'completionRate': objective['completionRate'],
                'totalCriticalSteps': len(CRITICAL_STEPS)
            },
            'customerSatisfaction': self.analyze_satisfaction(turns)
        }

    @staticmethod
    def is_vague(mapping: IntentMapping) -> bool:
        text = mapping.text.lower()
        if len(text) < 10:
            return True

        patterns = COMPILED_VAGUE['bot' if mapping.speaker == 'agent' else 'human']
        hits = sum(1 for pattern in patterns if pattern.search(text))
        return hits >= 2 or (hits >= 1 and len(text) < 20)

    def priority_based_confidence(self, mappings: List[IntentMapping], context: Dict[str, Any]) -> float:
        """
        Weighted mean confidence favouring the context's critical steps.

        A mapping can contribute to more than one weight class.
        """
        if not mappings:
            return 0.0

        critical_intents = [
            intent_for_step(step) for step in context.get('required_steps', [])
            if CONVERSATION_STEPS.get(step, {}).get('critical')
        ]
        vague = [mapping for mapping in mappings if self.is_vague(mapping)]
        vague_ids = {id(mapping) for mapping in vague}

        weighted = []
        for mapping in mappings:
            confidence = mapping.confidence
            is_critical = mapping.conversation_step in critical_intents
            vague_flag = id(mapping) in vague_ids

            if is_critical and confidence > 0.7:
                weighted.append((confidence, 3.0))
            elif is_critical and confidence >= 0.4:
                weighted.append((confidence, 2.5))

            if not vague_flag and not is_critical:
                if confidence > 0.7:
                    weighted.append((confidence, 2.0))
                elif confidence >= 0.4:
                    weighted.append((confidence, 1.5))

            if vague_flag:
                weighted.append((confidence, 0.5))

            if confidence < 0.4 and not is_critical and not vague_flag:
                weighted.append((confidence, 1.0))

        total_weight = sum(weight for _, weight in weighted)
        if total_weight == 0:
            return 0.0
        return sum(confidence * weight for confidence, weight in weighted) / total_weight

    @staticmethod
    def assess_quality(contextual: Dict[str, Any], average_confidence: float) -> Dict[str, Any]:
        completion_rate = contextual['completedRequiredSteps'] / contextual['totalRequiredSteps']
        critical_penalty = len(contextual['missingCriticalSteps']) * 5
        critical_score = max(0, 20 - critical_penalty)
        flow_component = contextual['sequentialBonus']

        score = completion_rate * 40 + average_confidence * 30 + critical_score + flow_component

        if score >= 85:
            rating = 'Excellent'
        elif score >= 70:
            rating = 'Good'
        elif score >= 50:
            rating = 'Fair'
        else:
            rating = 'Poor'

        return {
            'rating': rating,
            'score': round(score),
            'factors': {
                'contextAppropriate': completion_rate > 0.8,
                'goodConfidence': average_confidence > 0.6,
                'excellentConfidence': average_confidence > 0.8,
                'noCriticalMissing': not contextual['missingCriticalSteps'],
                'goodFlow': contextual['sequentialBonus'] > 5
            },
            'breakdown': {
                'completionScore': round(completion_rate * 40),
                'confidenceScore': round(average_confidence * 30),
                'criticalStepsScore': round(critical_score),
                'flowScore': round(flow_component)
            }
        }

    @staticmethod
    def satisfaction_label(text: str) -> str:
        for label in ('positive', 'negative', 'neutral'):
            if first_match(COMPILED_SATISFACTION[label], text):
                return label
        return 'neutral'

    def analyze_satisfaction(self, turns: List[Turn]) -> Dict[str, Any]:
        """Count satisfaction signals across customer turns"""
        counts = {'positive': 0, 'negative': 0, 'neutral': 0}
        for turn in turns:
            if turn.is_customer:
                counts[self.satisfaction_label(turn.text.lower())] += 1

        if counts['positive'] > counts['negative']:
            overall = 'positive'
        elif counts['negative'] > counts['positive']:
            overall = 'negative'
        else:
            overall = 'neutral'

        return dict(counts, overall=overall)

    @staticmethod
    def default_result() -> Dict[str, Any]:
        return {
            'intentMappings': [],
            'flowScore': 50,
            'averageConfidence': 0.5,
            'completedSteps': 0,
            'totalRequiredSteps': 4,
            'detectedIntents': [],
            'stepProgression': [],
            'missingCriticalSteps': list(CRITICAL_STEPS),
            'conversationContext': {'name': 'Unknown Context'},
            'contextualAnalysis': {'flowScore': 50, 'totalRequiredSteps': 4},
            'conversationQuality': {'rating': 'Unknown', 'score': 50},
            'callObjective': {
                'objectiveAchieved': False,
                'completionRate': 0,
                'totalCriticalSteps': 4
            },
            'objectiveAchieved': False,
            'criticalStepsAnalysis': {
                'completed': [],
                'missing': list(CRITICAL_STEPS),
                'completionRate': 0
            },
            'customerSatisfaction': {'positive': 0, 'negative': 0, 'neutral': 0, 'overall': 'neutral'},
            'analysisSource': 'default_fallback'
        }
