"""
hallucination_detector.py - Off-script and irrelevant bot response detection

Two cooperating analyses:
- RelevanceAnalyzer scores each bot reply against the customer turn before it
  (topic, context, semantics, factual consistency, script adherence and
  objection handling).
- CriticalStepAnalyzer walks the call with a small state machine and flags
  replies that skip a critical script step or ignore the customer's query.
"""

import logging
from typing import Dict, List, Optional, Any

import regex as re

from models import Turn, AudioData
from utils import (
    truncate_text, extract_topics, calculate_similarity_score, split_words, clamp, first_match
)
from .qa_models import HallucinationEvent, ConversationState
from .script_catalog import (
    INTENT_CATALOG, COMPILED_INTENTS, COMPILED_SCRIPT_PATTERNS, COMPILED_ACKNOWLEDGEMENTS,
    COMPILED_OBJECTIONS, CRITICAL_STEPS
)

logger = logging.getLogger(__name__)

RELEVANCE_THRESHOLD = 0.65
SCRIPT_ADHERENCE_THRESHOLD = 0.5
AUDIO_RELEVANCE_THRESHOLD = 0.6

POSITIVE_WORDS = ['good', 'great', 'excellent', 'happy', 'pleased', 'thank', 'wonderful', 'perfect']
NEGATIVE_WORDS = ['bad', 'terrible', 'awful', 'angry', 'frustrated', 'disappointed', 'wrong', 'problem']

INTENT_RESPONSE_ALIGNMENT = {
    'question': ['information', 'question', 'acknowledgment'],
    'request': ['acknowledgment', 'information', 'offer_help'],
    'gratitude': ['acknowledgment', 'offer_help'],
    'confirmation': ['acknowledgment', 'information'],
    'greeting': ['acknowledgment', 'offer_help'],
    'statement': ['acknowledgment', 'question', 'information']
}

CONTRADICTION_PAIRS = [
    (re.compile(r'\byes\b', re.IGNORECASE), re.compile(r'\bno\b', re.IGNORECASE)),
    (re.compile(r'\bcan\b', re.IGNORECASE), re.compile(r"\bcannot\b|\bcan't\b", re.IGNORECASE)),
    (re.compile(r'\bwill\b', re.IGNORECASE), re.compile(r"\bwon't\b|\bwill not\b", re.IGNORECASE))
]

BHK_PATTERN = re.compile(r'\bBHK\b', re.IGNORECASE)
BHK_SPOKEN_PATTERN = re.compile(r'\bBee-etch-kay\b', re.IGNORECASE)
NUMERIC_MONEY_PATTERN = re.compile(r'\b\d+\s+(lakh|crore|rupees)\b', re.IGNORECASE)
NUMERIC_PROPERTY_PATTERN = re.compile(r'\b\d+\s+(BHK|Sector)\b', re.IGNORECASE)
SENTENCE_SPLIT = re.compile(r'[.!?]+')

HALLUCINATION_RECOMMENDATIONS = {
    'script_deviation': 'CRITICAL: Bot deviated from MagicBricks script. Review script adherence and training.',
    'improper_objection_handling': 'HIGH: Bot failed to handle customer objection properly. Review FAQ responses.',
    'topic_deviation': 'CRITICAL: Bot completely off-topic from property search. Review intent recognition.',
    'context_loss': 'HIGH: Bot lost conversational context. Improve context retention mechanisms.',
    'semantic_confusion': 'MEDIUM: Bot response semantically unclear. Review response generation logic.',
    'factual_error': 'CRITICAL: Factual inconsistencies detected. Verify knowledge base and fact-checking.',
    'general_irrelevance': 'MEDIUM: Response not relevant to user input. Improve relevance scoring.',
    'none': 'Response relevance within acceptable range.'
}

# Customer query categories (lower-cased text)
QUERY_SIGNALS = {
    'isQuestion': re.compile(r'\?|क्या|कैसे|कब|कहाँ|कौन|why|how|when|where|who'),
    'isObjection': re.compile(r'नहीं|no|not interested|busy|later|परेशान|problem'),
    'isConfirmation': re.compile(r'हाँ|yes|ok|ठीक|sure|alright'),
    'isPropertyRelated': re.compile(r'property|flat|house|bhk|बी.*एच.*के|मकान|घर'),
    'isAgentRelated': re.compile(r'agent|broker|dealer|एजेंट'),
    'isPriceRelated': re.compile(r'price|cost|budget|लाख|crore|रुपए|पैसे')
}

EXPECTED_CONTEXTS = {
    0: 'greeting_response',
    1: 'name_confirmation',
    6: 'property_interest_response',
    7: 'agent_connection_response',
    9: 'transfer_confirmation'
}

POST_STEP_CONTEXTS = {
    1: 'post_greeting',
    6: 'post_interest_check',
    7: 'post_agent_offer',
    9: 'post_transfer'
}

# (query type, signal in the customer turn, expected cue in the bot reply)
QUERY_TYPES = [
    ('pricing', re.compile(r'price|cost|budget|लाख|crore'), re.compile(r'budget|price|cost|लाख|crore|affordable')),
    ('location', re.compile(r'location|area|where|कहाँ'), re.compile(r'area|location|where|कहाँ|locality')),
    ('property_size', re.compile(r'size|bhk|बी.*एच.*के|room'), re.compile(r'bhk|बी.*एच.*के|room|size|flat')),
    ('agent_related', re.compile(r'agent|broker|एजेंट'), re.compile(r'agent|broker|एजेंट|connect|help')),
    ('timing', re.compile(r'time|when|कब'), re.compile(r'time|when|कब|schedule|call')),
    ('question', re.compile(r'\?'), re.compile(r'yes|no|हाँ|नहीं|answer|reply'))
]

QUERY_RECOMMENDATIONS = {
    'pricing': 'Bot should acknowledge pricing queries and either provide budget ranges or ask for customer budget preferences.',
    'location': 'Bot should acknowledge location queries and confirm the area of interest or ask for preferred locations.',
    'property_size': 'Bot should acknowledge property size queries and confirm BHK requirements (using "Bee-etch-kay" pronunciation).',
    'agent_related': 'Bot should address agent-related queries by explaining the agent connection process and benefits.',
    'timing': 'Bot should address timing queries by providing available time slots or asking for customer preferences.',
    'question': 'Bot should directly answer customer questions before proceeding with the script.'
}

CRITICAL_VIOLATIONS = {
    6: ('missed_interest_check', 9,
        'Bot failed to verify property interest when customer mentioned property-related query. '
        'Should execute interest verification step.'),
    7: ('missed_agent_offer', 9,
        'Bot failed to offer agent connection when appropriate. Should present agent connection offer.'),
    9: ('missed_call_transfer', 10,
        'Bot failed to execute call transfer after customer agreement. Critical business objective failure.'),
    1: ('improper_greeting', 7,
        'Bot failed to provide proper initial greeting and introduction.')
}

# step -> (required cue, violation message, penalty)
CRITICAL_STEP_SCRIPT_RULES = {
    1: (re.compile(r'magicbricks|मैजिकब्रिक्स', re.IGNORECASE), 'Missing MagicBricks introduction', 0.3),
    6: (re.compile(r'platform|recently|interest', re.IGNORECASE),
        'Missing platform reference or recent activity mention', 0.4),
    7: (re.compile(r'shortlist|agent|top.*agent', re.IGNORECASE), 'Missing agent shortlist mention', 0.4),
    9: (re.compile(r'transfer|connect|agent.*connect', re.IGNORECASE), 'Missing transfer action indication', 0.5)
}


def hallucination_recommendation(hallucination_type: str, severity: int) -> str:
    base = HALLUCINATION_RECOMMENDATIONS.get(hallucination_type, 'Monitor response relevance.')
    if severity > 7:
        return base + ' [URGENT]'
    if severity > 5:
        return base + ' [HIGH PRIORITY]'
    return base + ' [MONITOR]'


def hallucination_score(events: List[HallucinationEvent], total_turns: int) -> int:
    """100 minus a severity share penalty and a frequency penalty"""
    if not events:
        return 100

    severity_ratio = sum(event.severity for event in events) / (len(events) * 10)
    frequency_penalty = len(events) / max(total_turns, 1) * 100
    return round(max(0, 100 - severity_ratio * 60 - frequency_penalty))


def is_objection_present(human_input: str) -> bool:
    return first_match(COMPILED_OBJECTIONS, human_input) is not None


class RelevanceAnalyzer:
    """Scores a bot reply against the customer turn it answers"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def topic_relevance(self, human_input: str, bot_response: str) -> float:
        human_topics = extract_topics(human_input)
        bot_topics = extract_topics(bot_response)

        if not human_topics and not bot_topics:
            return 1.0
        if not human_topics or not bot_topics:
            return 0.3

        common = [
            topic for topic in human_topics
            if any(calculate_similarity_score(topic, bot_topic) > 0.7 for bot_topic in bot_topics)
        ]
        return len(common) / max(len(human_topics), len(bot_topics))

    @staticmethod
    def classify_human_intent(text: str) -> str:
        text_lower = text.lower()
        if any(marker in text_lower for marker in ('?', 'what', 'how', 'why')):
            return 'question'
        if any(marker in text_lower for marker in ('please', 'can you', 'could you')):
            return 'request'
        if 'thank' in text_lower:
            return 'gratitude'
        if any(marker in text_lower for marker in ('yes', 'no', 'okay')):
            return 'confirmation'
        if any(marker in text_lower for marker in ('hello', 'hi', 'नमस्ते')):
            return 'greeting'
        return 'statement'

    @staticmethod
    def classify_response_type(text: str) -> str:
        text_lower = text.lower()
        if '?' in text_lower:
            return 'question'
        if 'please' in text_lower or 'can you' in text_lower:
            return 'request'
        if 'thank' in text_lower or 'welcome' in text_lower:
            return 'acknowledgment'
        if 'sorry' in text_lower or 'apologize' in text_lower:
            return 'apology'
        if 'help' in text_lower or 'assist' in text_lower:
            return 'offer_help'
        return 'information'

    def contextual_relevance(self, human_input: str, bot_response: str) -> float:
        human_intent = self.classify_human_intent(human_input)
        response_type = self.classify_response_type(bot_response)
        appropriate = INTENT_RESPONSE_ALIGNMENT.get(human_intent, ['information'])
        alignment = 1.0 if response_type in appropriate else 0.3

        human_length = len(split_words(human_input))
        bot_length = len(split_words(bot_response))
        if human_length > 10 and bot_length < 3:
            flow = 0.4
        elif human_length < 5 and bot_length > 50:
            flow = 0.6
        else:
            flow = 0.8

        return alignment * 0.6 + flow * 0.4

    @staticmethod
    def sentiment(text: str) -> str:
        text_lower = text.lower()
        positive = sum(1 for word in POSITIVE_WORDS if word in text_lower)
        negative = sum(1 for word in NEGATIVE_WORDS if word in text_lower)
        if positive > negative:
            return 'positive'
        if negative > positive:
            return 'negative'
        return 'neutral'

    def semantic_coherence(self, human_input: str, bot_response: str) -> float:
        human_sentiment = self.sentiment(human_input)
        bot_sentiment = self.sentiment(bot_response)

        alignment = 0.8
        if human_sentiment == 'negative' and bot_sentiment == 'positive':
            alignment = 0.9
        elif human_sentiment == 'positive' and bot_sentiment == 'negative':
            alignment = 0.3

        logical_flow = 0.8
        if '?' in human_input:
            if '?' not in bot_response and len(bot_response) > 10:
                logical_flow = 0.9
            elif '?' in bot_response:
                logical_flow = 0.6

        return alignment * 0.4 + logical_flow * 0.6

    @staticmethod
    def factual_consistency(bot_response: str) -> float:
        """0.3 when a reply asserts and denies the same thing across sentences"""
        sentences = [s for s in SENTENCE_SPLIT.split(bot_response) if s.strip()]
        if len(sentences) < 2:
            return 0.9

        for positive, negative in CONTRADICTION_PAIRS:
            if any(positive.search(s) for s in sentences) and any(negative.search(s) for s in sentences):
                return 0.3
        return 0.9

    @staticmethod
    def script_adherence(bot_response: str, turn_index: int) -> float:
        score = 1.0

        for pattern in COMPILED_SCRIPT_PATTERNS['prohibited_phrases']:
            if pattern.search(bot_response):
                score -= 0.3

        if BHK_PATTERN.search(bot_response) and not BHK_SPOKEN_PATTERN.search(bot_response):
            score -= 0.2
        if NUMERIC_MONEY_PATTERN.search(bot_response):
            score -= 0.25
        if NUMERIC_PROPERTY_PATTERN.search(bot_response):
            score -= 0.2

        # Mandatory phrases are only expected from the interest check onwards
        if turn_index >= 6:
            for pattern in COMPILED_SCRIPT_PATTERNS['mandatory_phrases']:
                if pattern.search(bot_response):
                    score += 0.1

        return clamp(score, 0.0, 1.0)

    @staticmethod
    def objection_handling(human_input: str, bot_response: str) -> float:
        if not is_objection_present(human_input):
            return 1.0

        score = 0.5
        for pattern in COMPILED_SCRIPT_PATTERNS['objection_responses']:
            if pattern.search(bot_response):
                score += 0.3
        if first_match(COMPILED_ACKNOWLEDGEMENTS, bot_response):
            score += 0.2
        return min(1.0, score)

    def analyze(self, human_input: str, bot_response: str, turn_index: int) -> Dict[str, Any]:
        topic = self.topic_relevance(human_input, bot_response)
        contextual = self.contextual_relevance(human_input, bot_response)
        semantic = self.semantic_coherence(human_input, bot_response)
        factual = self.factual_consistency(bot_response)
        script = self.script_adherence(bot_response, turn_index)
        objection = self.objection_handling(human_input, bot_response)

        relevance = (topic * 0.25 + contextual * 0.25 + semantic * 0.2 +
                     factual * 0.15 + script * 0.1 + objection * 0.05)
        is_hallucination = relevance < RELEVANCE_THRESHOLD or script < SCRIPT_ADHERENCE_THRESHOLD

        hallucination_type, severity = 'none', 0
        if is_hallucination:
            if script < 0.3:
                hallucination_type, severity = 'script_deviation', 9
            elif objection < 0.4 and is_objection_present(human_input):
                hallucination_type, severity = 'improper_objection_handling', 8
            elif topic < 0.3:
                hallucination_type, severity = 'topic_deviation', 8
            elif contextual < 0.4:
                hallucination_type, severity = 'context_loss', 7
            elif semantic < 0.5:
                hallucination_type, severity = 'semantic_confusion', 6
            elif factual < 0.5:
                hallucination_type, severity = 'factual_error', 9
            else:
                hallucination_type, severity = 'general_irrelevance', 5

        return {
            'isHallucination': is_hallucination,
            'type': hallucination_type,
            'severity': severity,
            'relevanceScore': relevance,
            'topicRelevance': topic,
            'contextDeviation': 1 - contextual,
            'scriptAdherence': script,
            'objectionHandling': objection,
            'recommendation': hallucination_recommendation(hallucination_type, severity)
        }

    def analyze_with_audio(
        self,
        human_input: str,
        bot_response: str,
        segment: Optional[Dict[str, Any]],
        turn_index: int
    ) -> Dict[str, Any]:
        """Transcript relevance discounted by speech recognition and delivery cues"""
        analysis = self.analyze(human_input, bot_response, turn_index)
        if not segment:
            return analysis

        confidence = segment.get('confidence') or 0.8
        hesitation = segment.get('hesitationCount') or 0
        pace = segment.get('wordsPerMinute') or 150
        tone = segment.get('toneConsistency') or 0.8

        adjusted = analysis['relevanceScore']
        if confidence < 0.6:
            adjusted *= 0.8
        if hesitation > 3:
            adjusted *= 0.7
        if pace > 200:
            adjusted *= 0.9
        if tone < 0.6:
            adjusted *= 0.8

        analysis.update({
            'relevanceScore': adjusted,
            'isHallucination': adjusted < AUDIO_RELEVANCE_THRESHOLD,
            'audioIndicators': {
                'confidence': confidence,
                'hesitation': hesitation,
                'speechPace': pace,
                'toneConsistency': tone
            }
        })
        return analysis


class CriticalStepAnalyzer:
    """Walks the call and checks each bot reply against the expected critical step"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def analyze_human_input(text: str, state: ConversationState, turn_index: int) -> Dict[str, Any]:
        text_lower = text.lower()
        signals = {key: bool(pattern.search(text_lower)) for key, pattern in QUERY_SIGNALS.items()}

        is_off_topic, severity, detected = False, 0, 'general'
        if state.current_step == 6 and not signals['isPropertyRelated'] and not signals['isConfirmation']:
            is_off_topic, severity, detected = True, 7, 'non_property_query'
        elif (state.current_step == 7 and not signals['isAgentRelated']
              and not signals['isConfirmation'] and not signals['isObjection']):
            is_off_topic, severity, detected = True, 8, 'non_agent_query'

        return {
            'text': text,
            'queryAnalysis': signals,
            'expectedContext': EXPECTED_CONTEXTS.get(state.current_step, 'general_response'),
            'detectedContext': detected,
            'isOffTopic': is_off_topic,
            'deviationSeverity': severity,
            'turnIndex': turn_index
        }

    @staticmethod
    def expected_step(human_input: str, state: ConversationState) -> int:
        """The step the bot should execute next, from the customer turn and walk state"""
        text = human_input.lower()

        if state.current_step == 0 or re.search(r'hello|hi|नमस्ते', text):
            return 1
        if re.search(r'property|flat|search|interest|बी.*एच.*के', text):
            return 6
        if re.search(r'agent|connect|help|एजेंट', text) and state.current_step >= 6:
            return 7
        if re.search(r'yes|ok|हाँ|ठीक', text) and state.current_step == 7:
            return 9
        if re.search(r'busy|later|बाद में', text):
            return 5
        if re.search(r'no|नहीं|not interested', text):
            return 8
        return state.current_step

    @staticmethod
    def detect_bot_step(bot_response: str) -> int:
        """Step of the first catalog entry with any matching pattern"""
        for intent_type, entry in INTENT_CATALOG.items():
            if first_match(COMPILED_INTENTS[intent_type], bot_response):
                return entry['step']
        return 0

    @staticmethod
    def check_violation(expected: int, detected: int) -> Dict[str, Any]:
        if expected not in CRITICAL_STEPS or expected == detected:
            return {'isViolation': False, 'type': 'none', 'severity': 0, 'recommendation': ''}

        violation_type, severity, recommendation = CRITICAL_VIOLATIONS[expected]
        return {
            'isViolation': True,
            'type': violation_type,
            'severity': severity,
            'recommendation': recommendation
        }

    @staticmethod
    def query_addressing(human_input: str, bot_response: str) -> Dict[str, Any]:
        human_lower = human_input.lower()
        bot_lower = bot_response.lower()

        query_type, cue = 'general', None
        for name, signal, expected_cue in QUERY_TYPES:
            if signal.search(human_lower):
                query_type, cue = name, expected_cue
                break

        addressed = bool(cue.search(bot_lower)) if cue is not None else True
        failed = not addressed and query_type != 'general'

        return {
            'failed': failed,
            'queryType': query_type,
            'expected': f'Should address {query_type} query',
            'actual': 'Query addressed' if addressed else 'Query not addressed',
            'severity': (8 if query_type == 'agent_related' else 6) if failed else 0
        }

    @staticmethod
    def step_script_adherence(bot_response: str, step: int) -> Dict[str, Any]:
        """Step specific script requirements for the critical steps"""
        violations = []
        score = 1.0

        rule = CRITICAL_STEP_SCRIPT_RULES.get(step)
        if rule:
            cue, message, penalty = rule
            if not cue.search(bot_response):
                violations.append(message)
                score -= penalty
        if step == 6 and BHK_PATTERN.search(bot_response):
            violations.append('Used "BHK" instead of "Bee-etch-kay"')
            score -= 0.2

        return {'score': max(0.0, score), 'violations': violations}

    def analyze_response(
        self,
        human_input: str,
        bot_response: str,
        state: ConversationState,
        turn_index: int
    ) -> Dict[str, Any]:
        expected = self.expected_step(human_input, state)
        detected = self.detect_bot_step(bot_response)
        violation = self.check_violation(expected, detected)
        addressing = self.query_addressing(human_input, bot_response)
        adherence = self.step_script_adherence(bot_response, expected)

        return {
            'expectedStep': expected,
            'detectedStep': detected,
            'isCriticalStepViolation': violation['isViolation'],
            'violationType': violation['type'],
            'severity': violation['severity'],
            'recommendation': violation['recommendation'],
            'failedToAddress': addressing['failed'],
            'queryType': addressing['queryType'],
            'expectedResponse': addressing['expected'],
            'actualResponse': addressing['actual'],
            'addressingSeverity': addressing['severity'],
            'scriptAdherence': adherence['score'],
            'scriptViolations': adherence['violations'],
            'turnIndex': turn_index
        }

    @staticmethod
    def update_state(state: ConversationState, response: Dict[str, Any]):
        detected = response['detectedStep']
        if detected > 0:
            state.current_step = detected
        state.expected_context = POST_STEP_CONTEXTS.get(detected, 'general')
        if detected in CRITICAL_STEPS:
            state.critical_step_attempts[detected] = state.critical_step_attempts.get(detected, 0) + 1

    @staticmethod
    def recommendations(
        violations: List[Dict[str, Any]],
        deviations: List[Dict[str, Any]],
        unaddressed: List[Dict[str, Any]],
        state: ConversationState
    ) -> List[str]:
        recommendations = []

        if violations:
            recommendations.append(
                f"CRITICAL: {len(violations)} critical step violations detected. Review conversation flow logic.")
            for violation_type in dict.fromkeys(v['violationType'] for v in violations):
                count = sum(1 for v in violations if v['violationType'] == violation_type)
                recommendations.append(f"- {violation_type.replace('_', ' ')}: {count} occurrence(s)")

        if deviations:
            recommendations.append(
                f"ATTENTION: {len(deviations)} context deviations detected. Bot may be going off-script.")

        if unaddressed:
            recommendations.append(f"IMPROVEMENT: {len(unaddressed)} customer queries not properly addressed.")
            for query_type in dict.fromkeys(q['queryType'] for q in unaddressed):
                count = sum(1 for q in unaddressed if q['queryType'] == query_type)
                recommendations.append(f"- Improve {query_type} query handling: {count} missed")

        missed = [step for step in CRITICAL_STEPS if step not in state.critical_step_attempts]
        if missed:
            recommendations.append(f"MISSING: Critical steps not attempted: {', '.join(str(s) for s in missed)}")

        return recommendations

    @staticmethod
    def critical_step_score(
        violations: List[Dict[str, Any]],
        deviations: List[Dict[str, Any]],
        unaddressed: List[Dict[str, Any]]
    ) -> float:
        score = 100 - len(violations) * 15 - len(deviations) * 8 - len(unaddressed) * 5
        score -= sum(v['severity'] for v in violations)
        return clamp(score)

    def analyze(self, turns: List[Turn]) -> Dict[str, Any]:
        state = ConversationState()
        violations = []
        deviations = []
        unaddressed = []
        adherence_checks = []

        for position, turn in enumerate(turns):
            if turn.is_customer:
                human = self.analyze_human_input(turn.text, state, position)
                state.human_queries.append(human)
                if human['isOffTopic'] and state.current_step <= 7:
                    deviations.append({
                        'turnIndex': position,
                        'humanQuery': truncate_text(turn.text),
                        'expectedContext': state.expected_context,
                        'actualContext': human['detectedContext'],
                        'severity': human['deviationSeverity'],
                        'type': 'human_context_deviation'
                    })
                continue

            previous = turns[position - 1] if position > 0 else None
            if previous is None or not previous.is_customer:
                continue

            response = self.analyze_response(previous.text, turn.text, state, position)
            state.bot_responses.append(response)

            if response['expectedStep'] in CRITICAL_STEPS:
                adherence_checks.append({
                    'turnIndex': position,
                    'step': response['expectedStep'],
                    'score': response['scriptAdherence'],
                    'violations': response['scriptViolations']
                })

            if response['isCriticalStepViolation']:
                violations.append({
                    'turnIndex': position,
                    'humanInput': truncate_text(previous.text),
                    'botResponse': truncate_text(turn.text),
                    'expectedStep': response['expectedStep'],
                    'actualStep': response['detectedStep'],
                    'violationType': response['violationType'],
                    'severity': response['severity'],
                    'recommendation': response['recommendation']
                })

            if response['failedToAddress']:
                unaddressed.append({
                    'turnIndex': position,
                    'humanQuery': truncate_text(previous.text),
                    'botResponse': truncate_text(turn.text),
                    'queryType': response['queryType'],
                    'expectedResponse': response['expectedResponse'],
                    'actualResponse': response['actualResponse'],
                    'severity': response['addressingSeverity'],
                    'recommendation': QUERY_RECOMMENDATIONS.get(
                        response['queryType'],
                        'Bot should acknowledge and address customer query before continuing with conversation flow.'
                    )
                })

            self.update_state(state, response)

        self.logger.info(
            f"Critical step analysis: {len(violations)} violations, {len(deviations)} context deviations, "
            f"{len(unaddressed)} unaddressed queries"
        )

        return {
            'criticalStepViolations': violations,
            'contextDeviations': deviations,
            'unaddressedQueries': unaddressed,
            'scriptAdherenceChecks': adherence_checks,
            'conversationState': state.to_dict(),
            'recommendations': self.recommendations(violations, deviations, unaddressed, state),
            'criticalStepScore': self.critical_step_score(violations, deviations, unaddressed),
            'analysisSource': 'critical_step_enhanced'
        }


class HallucinationDetector:
    """Merges relevance and critical step analyses into one result"""

    def __init__(
        self,
        relevance_analyzer: Optional[RelevanceAnalyzer] = None,
        critical_step_analyzer: Optional[CriticalStepAnalyzer] = None
    ):
        self.relevance_analyzer = relevance_analyzer or RelevanceAnalyzer()
        self.critical_step_analyzer = critical_step_analyzer or CriticalStepAnalyzer()
        self.logger = logging.getLogger(__name__)

    def overall_relevance(self, turns: List[Turn]) -> float:
        scores = [
            self.relevance_analyzer.topic_relevance(previous.text, turn.text)
            for previous, turn in zip(turns, turns[1:])
            if turn.is_agent and previous.is_customer
        ]
        return sum(scores) / len(scores) if scores else 1.0

    def relevance_pass(self, turns: List[Turn], audio_data: Optional[AudioData]) -> Dict[str, Any]:
        use_audio = audio_data is not None and bool(audio_data.speech_analysis)
        source = 'audio_primary' if use_audio else 'transcript'

        events = []
        script_scores = []
        objection_scores = []
        for position in range(1, len(turns)):
            previous, turn = turns[position - 1], turns[position]
            if not (turn.is_agent and previous.is_customer):
                continue

            if use_audio:
                segment = next(
                    (s for s in audio_data.speech_analysis if s.get('turnIndex') == position), None)
                analysis = self.relevance_analyzer.analyze_with_audio(previous.text, turn.text, segment, position)
            else:
                segment = None
                analysis = self.relevance_analyzer.analyze(previous.text, turn.text, position)

            script_scores.append(analysis['scriptAdherence'])
            objection_scores.append(analysis['objectionHandling'])

            if not analysis['isHallucination']:
                continue

            extra = {}
            if use_audio:
                extra = {
                    'audioConfidence': segment.get('confidence') if segment else None,
                    'speechPatterns': segment.get('patterns') if segment else None,
                    'analysisSource': 'audio_primary'
                }
            events.append(HallucinationEvent(
                turn_index=position,
                human_input=truncate_text(previous.text),
                bot_response=truncate_text(turn.text),
                type=analysis['type'],
                severity=analysis['severity'],
                relevance_score=analysis['relevanceScore'],
                context_deviation=analysis['contextDeviation'],
                recommendation=analysis['recommendation'],
                extra=extra
            ))

        bot_count = sum(1 for turn in turns if turn.is_agent)
        return {
            'hallucinations': [event.to_dict() for event in events],
            'hallucinationScore': hallucination_score(events, len(turns)),
            'totalBotTurns': bot_count,
            'deviationRate': len(events) / max(bot_count, 1),
            'overallRelevance': self.overall_relevance(turns),
            'scriptAdherenceAverage': sum(script_scores) / len(script_scores) if script_scores else 1.0,
            'objectionHandlingAverage': sum(objection_scores) / len(objection_scores) if objection_scores else 1.0,
            'primarySource': source
        }

    def detect(self, turns: List[Turn], audio_data: Optional[AudioData] = None) -> Dict[str, Any]:
        """
        Detect hallucinated bot replies.

        Args:
            turns: Parsed turns of the call
            audio_data: Optional audio measurements; speech analysis entries refine relevance

        Returns:
            dict: Relevance results merged with the critical step analysis
        """
        if not turns:
            self.logger.warning("No valid turns found in transcript, returning default hallucination analysis")
            return self.default_result()

        primary = self.relevance_pass(turns, audio_data)
        critical = self.critical_step_analyzer.analyze(turns)

        self.logger.info(f"Hallucination analysis: {len(primary['hallucinations'])} deviations detected")

        merged = dict(primary)
        merged.update({
            'criticalStepAnalysis': critical,
            'enhancedScore': round(primary['hallucinationScore'] * 0.6 + critical['criticalStepScore'] * 0.4),
            'combinedRecommendations': list(critical['recommendations']),
            'analysisSource': 'enhanced_with_critical_steps'
        })
        return merged

    @staticmethod
    def default_result() -> Dict[str, Any]:
        return {
            'hallucinations': [],
            'hallucinationScore': 80,
            'totalBotTurns': 0,
            'deviationRate': 0,
            'overallRelevance': 0.8,
            'criticalStepAnalysis': {
                'criticalStepViolations': [],
                'contextDeviations': [],
                'unaddressedQueries': [],
                'recommendations': [],
                'criticalStepScore': 80
            },
            'analysisSource': 'default_fallback'
        }
