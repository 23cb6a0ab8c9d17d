import unittest

from . import BaseTestCase
from models import Turn, Speaker
from services.qa_engine.intent_classifier import (
    IntentClassifier,
    ConversationContextResolver,
    IntentFlowAnalyzer
)
from services.qa_engine.qa_models import IntentMapping
from services.qa_engine.script_catalog import (
    INTENT_CATALOG,
    CONVERSATION_STEPS,
    validate_catalog,
    get_context
)
from services.qa_engine.samples import MAGICBRICKS_SAMPLE_TRANSCRIPT, WRONG_NUMBER_SAMPLE_TRANSCRIPT


def mapping_for(step, speaker='agent', confidence=0.9):
    return IntentMapping(
        turn_number=1,
        speaker=speaker,
        text='text',
        detected_intent=INTENT_CATALOG[step]['description'],
        confidence=confidence,
        conversation_step=step,
        step_number=INTENT_CATALOG[step]['step']
    )


class TestScriptCatalog(BaseTestCase):

    def test_catalog_is_consistent(self):
        self.assertTrue(validate_catalog())
        for step_number, step in CONVERSATION_STEPS.items():
            self.assertIn(step['intent'], INTENT_CATALOG)
            self.assertEqual(INTENT_CATALOG[step['intent']]['step'], step_number)

    def test_get_context_returns_copy(self):
        context = get_context('wrong_number')
        context['required_steps'].append(99)

        self.assertEqual(context['key'], 'wrong_number')
        self.assertNotIn(99, get_context('wrong_number')['required_steps'])

    def test_objective_critical_steps(self):
        objective = [number for number, step in CONVERSATION_STEPS.items() if step['objective_critical']]
        self.assertEqual(objective, [1, 6, 7, 9, 10])


class TestIntentClassifier(BaseTestCase):

    def setUp(self):
        super().setUp()
        self.classifier = IntentClassifier()

    def test_default_for_unmatched_text(self):
        result = self.classifier.classify(Turn(index=4, speaker=Speaker.CUSTOMER, text='xyz'))

        self.assertEqual(result, {
            'intent': 'General conversation',
            'step': 'unknown',
            'confidence': 0.2,
            'stepNumber': 0
        })

    def test_transfer_line(self):
        turn = Turn(index=11, speaker=Speaker.AGENT,
                    text='Please लाइन पर बने रहिए. मैं अभी आपको agent से connect करता हूँ.')
        result = self.classifier.classify(turn)

        self.assertEqual(result['step'], 'call_transfer')
        self.assertEqual(result['stepNumber'], 9)
        self.assertAlmostEqual(result['confidence'], 0.95)

    def test_detected_step_floor(self):
        turn = Turn(index=5, speaker=Speaker.CUSTOMER, text='mujhe 8 AM to 10 PM hi call karna')
        result = self.classifier.classify(turn)

        self.assertEqual(result['step'], 'callback_scheduling')
        self.assertGreaterEqual(result['confidence'], 0.5)

    def test_map_turn_is_one_based(self):
        mapping = self.classifier.map_turn(Turn(index=0, speaker=Speaker.AGENT, text='Magicbricks से call'))

        self.assertEqual(mapping.turn_number, 1)
        self.assertEqual(mapping.conversation_step, 'initial_greeting')
        self.assertIn(mapping.step_number, CONVERSATION_STEPS)


class TestConversationContextResolver(BaseTestCase):

    def setUp(self):
        super().setUp()
        self.resolver = ConversationContextResolver()

    def resolve(self, *steps):
        return self.resolver.resolve_key([mapping_for(step) for step in steps])

    def test_wrong_number_wins(self):
        self.assertEqual(self.resolve('initial_greeting', 'wrong_number_handling', 'goodbye'), 'wrong_number')
        self.assertEqual(self.resolve('interest_check', 'agent_connection_offer', 'call_transfer',
                                      'wrong_number_handling'), 'wrong_number')

    def test_voicemail(self):
        self.assertEqual(self.resolve('initial_greeting', 'voicemail_response'), 'voicemail_scenario')

    def test_callback_without_interest(self):
        self.assertEqual(self.resolve('initial_greeting', 'busy_response'), 'callback_scenario')
        self.assertEqual(self.resolve('interest_check', 'busy_response'), 'failed_inquiry')

    def test_successful_flows(self):
        self.assertEqual(self.resolve('interest_check', 'agent_connection_offer', 'call_transfer'),
                         'successful_property_inquiry')
        self.assertEqual(self.resolve('third_party_interaction', 'interest_check',
                                      'agent_connection_offer', 'call_transfer'),
                         'alternative_successful_flow')
        self.assertEqual(self.resolve('interest_check', 'agent_connection_offer'),
                         'successful_property_inquiry')

    def test_failed_inquiry(self):
        self.assertEqual(self.resolve('interest_check', 'agent_decline_handling'), 'failed_inquiry')
        self.assertEqual(self.resolve('interest_check'), 'failed_inquiry')
        self.assertEqual(self.resolve(), 'failed_inquiry')


class TestIntentFlowAnalyzer(BaseTestCase):

    def setUp(self):
        super().setUp()
        self.analyzer = IntentFlowAnalyzer()

    def test_sample_call_achieves_objective(self):
        result = self.analyzer.analyze(self.create_turns(MAGICBRICKS_SAMPLE_TRANSCRIPT))

        steps = {entry['step'] for entry in result['stepProgression']}
        for step in (1, 6, 7, 9):
            self.assertIn(step, steps)
        self.assertTrue(result['objectiveAchieved'])
        self.assertEqual(result['missingCriticalSteps'], [])
        self.assertEqual(result['conversationContext']['key'], 'successful_property_inquiry')
        self.assertEqual(result['criticalStepsAnalysis']['completed'], [1, 6, 7, 9])
        self.assert_score_range(result['flowScore'])

    def test_wrong_number_call(self):
        result = self.analyzer.analyze(self.create_turns(WRONG_NUMBER_SAMPLE_TRANSCRIPT))

        self.assertIn('wrong_number_handling', result['detectedIntents'])
        self.assertEqual(result['conversationContext']['key'], 'wrong_number')
        self.assertFalse(result['objectiveAchieved'])

    def test_step_numbers_are_known(self):
        result = self.analyzer.analyze(self.create_turns(MAGICBRICKS_SAMPLE_TRANSCRIPT))

        for mapping in result['intentMappings']:
            self.assertTrue(mapping['stepNumber'] == 0 or mapping['stepNumber'] in CONVERSATION_STEPS)
            self.assertTrue(mapping['conversationStep'] == 'unknown' or mapping['conversationStep'] in INTENT_CATALOG)

    def test_empty_turns_default(self):
        result = self.analyzer.analyze([])

        self.assertEqual(result, IntentFlowAnalyzer.default_result())
        self.assertEqual(result['flowScore'], 50)
        self.assertEqual(result['missingCriticalSteps'], [1, 6, 7, 9])

    def test_customer_satisfaction(self):
        turns = self.create_turns('Human: thank you so much', 'Human: this is a problem', 'Human: great')
        satisfaction = self.analyzer.analyze_satisfaction(turns)

        self.assertEqual(satisfaction['positive'], 2)
        self.assertEqual(satisfaction['negative'], 1)
        self.assertEqual(satisfaction['overall'], 'positive')


if __name__ == '__main__':
    unittest.main()
