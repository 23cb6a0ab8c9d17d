"""
Static conversation-flow catalog for the MagicBricks property search script.

Every rule the classifiers apply lives here as data: intent patterns, the
numbered conversation steps, the call-outcome contexts and the phrase lists
used for script adherence. Patterns are compiled once at import with the
Unicode-aware ``regex`` engine so Devanagari vowel signs count as word
characters for ``\\b`` and ``\\w``.
"""

import copy
import logging
from typing import Dict, List, Any

import regex as re

from utils import AnalysisError

logger = logging.getLogger(__name__)

PATTERN_FLAGS = re.IGNORECASE

CRITICAL_STEPS = [1, 6, 7, 9]
ALTERNATIVE_CRITICAL_STEPS = [1, 2, 6, 7, 9]
CRITICAL_INTENTS = ['initial_greeting', 'interest_check', 'agent_connection_offer', 'call_transfer']
USE_CASE = 'MagicBricks Property Search'

# Ordered: iteration order decides ties during classification
INTENT_CATALOG: Dict[str, Dict[str, Any]] = {
    'initial_greeting': {
        'patterns': [
            r'\b(नमस्ते|hello|hi|good\s+(morning|afternoon|evening))\b',
            r'\bमैं.*?(बोल\s+रही\s+हूँ|speaking|calling)\b',
            r'\bMagicbricks\s+से\b',
            r'\bproperty\s+search\b',
            r'\bproperties\s+में\s+interest\b',
            r'\bplatform\s+पर.*?interest\b',
        ],
        'score': 15,
        'required': True,
        'step': 1,
        'description': 'Initial greeting and MagicBricks introduction'
    },
    'third_party_interaction': {
        'patterns': [
            r'\bक्या\s+आप.*?हैं\b',
            r'\bमैं.*?(हूँ|am)\b',
            r'\bनाम\s+बता\s+सकते\s+हैं\b',
            r'\bवो\s+यहाँ\s+नहीं\s+हैं\b',
            r'\bगलत\s+number\b',
            r'\bwrong\s+number\b',
        ],
        'score': 12,
        'required': False,
        'step': 2,
        'description': 'Third-party interaction and name collection'
    },
    'busy_response': {
        'patterns': [
            r'\bमैं\s+अभी\s+व्यस्त\s+हूँ\b',
            r'\bbusy\s+right\s+now\b',
            r'\bcall\s+me\s+later\b',
            r'\bबाद\s+में\s+call\s+करो\b',
            r'\bbrief\s+रहूँगी\b',
            r'\bएक\s+मिनट\s+है\b',
        ],
        'score': 10,
        'required': False,
        'step': 3,
        'description': 'Customer busy response handling'
    },
    'connection_failure': {
        'patterns': [
            r'\bक्या\s+आप\s+मेरी\s+बात\s+सुन\s+पा\s+रहे\s+हैं\b',
            r'\bconnection\s+में\s+समस्या\b',
            r'\bदस\s+मिनट\s+में\s+दोबारा\s+कॉल\b',
            r'\bnetwork\s+issue\b',
        ],
        'score': 8,
        'required': False,
        'step': 4,
        'description': 'Connection failure handling'
    },
    'callback_scheduling': {
        'patterns': [
            r'\bकल\s+सुबह\s+दस\s+बजे\b',
            r'\bकौन\s+सा\s+time\s+convenient\b',
            r'\bcall\s+back\s+के\s+लिए\b',
            r'\bथोड़ी\s+देर\s+बाद\b',
            r'\bदोबारा\s+try\s+करूँगी\b',
            r'\bspecified\s+time\b',
            r'\b8\s+AM\s+to\s+10\s+PM\b',
        ],
        'score': 8,
        'required': False,
        'step': 5,
        'description': 'Callback time scheduling'
    },
    'interest_check': {
        'patterns': [
            r'\bआपने\s+recently.*?platform\s+पर\b',
            r'\bproperties\s+में\s+interest\s+दिखाया\b',
            r'\bsearch\s+कर\s+रहे\s+हैं\b',
            r'\bक्या\s+यह\s+सही\s+है\b',
            r'\bBee-etch-kay\b',
            r'\bTwo\s+बी\s+एच\s+के\b',
            r'\bFlat|Villa\b',
            r'\bbudget.*?है\b',
            r'\bबजट.*?है\b',
            r'\bआप.*?में.*?search\s+कर\s+रहे\s+हैं\b',
        ],
        'score': 15,
        'required': True,
        'step': 6,
        'description': 'Property interest verification and requirement confirmation'
    },
    'agent_connection_offer': {
        'patterns': [
            r'\bThree\s+top\s+agents\s+shortlist\b',
            r'\b3\s+top\s+agents\s+shortlist\b',
            r'\bproperties\s+दिखाएंगे\b',
            r'\bsite\s+visits.*?negotiations\b',
            r'\bएक\s+agent\s+से\s+connect\b',
            r'\bक्या\s+हम\s+आगे\s+बढ़ें\b',
            r'\bfollow\s+up\s+करेंगे\b',
            r'\bहमने\s+आपके\s+preferred\s+area\s+में.*?agents\s+shortlist\b',
            r'\bagents\s+आपसे\s+जल्दी\s+follow\s+up\b',
        ],
        'score': 12,
        'required': True,
        'step': 7,
        'description': 'Agent connection offer and consent'
    },
    'agent_decline_handling': {
        'patterns': [
            r'\bबिल्कुल\s+ठीक\s+है\b',
            r'\bMagicbricks\s+dot\s+com\b',
            r'\bverified\s+listings\s+देख\s+सकते\s+हैं\b',
            r'\bआपका\s+समय\s+देने\s+के\s+लिए\s+धन्यवाद\b',
            r'\bHave\s+a\s+great\s+day\b',
        ],
        'score': 8,
        'required': False,
        'step': 8,
        'description': 'Handling agent connection decline'
    },
    'call_transfer': {
        'patterns': [
            r'\btransfer_call\b',
            r'\bproperty_type.*?normalized\b',
            r'\bagent\s+से\s+connect\s+कर\s+रही\s+हूँ\b',
            r'\bconnecting\s+to\s+agent\b',
            r'\bमैं\s+अभी\s+आपको\s+agent\s+से\s+connect\s+करती\s+हूँ\b',
            r'\bPlease\s+लाइन\s+पर\s+बने\s+रहिए\b',
            r'\bआपको\s+agent\s+से\s+connect\b',
        ],
        'score': 15,
        'required': True,
        'step': 9,
        'description': 'Call transfer to agent execution'
    },
    'call_ending': {
        'patterns': [
            r'\bआपका\s+समय\s+के\s+लिए\s+धन्यवाद\b',
            r'\bआपका\s+दिन\s+अच्छा\s+रहे\b',
            r'\bHave\s+a\s+great\s+day\b',
            r'\bthank\s+you\s+for\s+your\s+time\b',
        ],
        'score': 8,
        'required': False,
        'step': 10,
        'description': 'Polite call ending'
    },
    'voicemail_response': {
        'patterns': [
            r'\bमैं.*?बोल\s+रही\s+हूँ\s+Magicbricks\s+से\b',
            r'\bproperty\s+search\s+के\s+बारे\s+में\b',
            r'\bजल्द\s+ही\s+दोबारा\s+call\b',
            r'\bvoicemail.*?message\b',
            r'\bafter\s+the\s+tone\b',
        ],
        'score': 8,
        'required': False,
        'step': 11,
        'description': 'Voicemail message handling'
    },
    'wrong_number_handling': {
        'patterns': [
            r'\bSorry.*?गलत\s+number\b',
            r'\bwrong\s+number\s+पर\s+call\b',
            r'\bगलत\s+number\s+लग\s+गया\b',
        ],
        'score': 8,
        'required': False,
        'step': 12,
        'description': 'Wrong number acknowledgment'
    },
    'goodbye': {
        'patterns': [
            r'\bGoodbye\b',
            r'\bधन्यवाद\b',
            r'\bbye\b',
            r'\btake\s+care\b',
            r'\bHave\s+a\s+great\s+day\b',
        ],
        'score': 5,
        'required': True,
        'step': 13,
        'description': 'Final goodbye'
    },
    'objection_handling': {
        'patterns': [
            r'\bAgents\s+से\s+बार-बार\s+calls\s+नहीं\s+चाहिए\b',
            r'\bबहुत\s+सारे\s+agents\s+call\s+कर\s+रहे\s+हैं\b',
            r'\bबस\s+agent\s+का\s+number\s+दे\s+दो\b',
            r'\bमैं\s+अभी\s+बस\s+browse\s+कर\s+रहा\s+हूँ\b',
            r'\bresearch\s+phase\s+में\s+हूँ\b',
            r'\bक्या\s+यह\s+service\s+free\s+है\b',
            r'\bमैंने\s+search\s+ही\s+नहीं\s+किया\b',
            r'\bproperty\s+search\s+नहीं\s+कर\s+रही\b',
        ],
        'score': 10,
        'required': False,
        'step': 0,
        'description': 'Customer objection handling responses'
    },
    'fetch_data_trigger': {
        'patterns': [
            r'\bFETCH_DATA\b',
            r'\bFETCH_NUMBERS\b',
            r'\bcity.*?area.*?updated\b',
            r'\blocality.*?changed\b',
        ],
        'score': 5,
        'required': False,
        'step': 0,
        'description': 'Data fetching action triggers'
    },
}

EXPECTED_FLOW = [
    'initial_greeting',
    'third_party_interaction',
    'busy_response',
    'connection_failure',
    'callback_scheduling',
    'interest_check',
    'agent_connection_offer',
    'agent_decline_handling',
    'call_transfer',
    'call_ending',
    'voicemail_response',
    'wrong_number_handling',
    'goodbye'
]

# step number -> descriptor; ``objective_critical`` marks the business objective steps
CONVERSATION_STEPS: Dict[int, Dict[str, Any]] = {
    1: {'name': 'Initial Greeting', 'intent': 'initial_greeting', 'critical': True,
        'priority': 'mandatory', 'objective_critical': True},
    2: {'name': 'Third Party Interaction', 'intent': 'third_party_interaction', 'critical': False,
        'conditional': 'third_party_answers', 'priority': 'low', 'objective_critical': False},
    3: {'name': 'Busy Response', 'intent': 'busy_response', 'critical': False,
        'conditional': 'customer_busy', 'priority': 'low', 'objective_critical': False},
    4: {'name': 'Connection Failure', 'intent': 'connection_failure', 'critical': False,
        'conditional': 'connection_issues', 'priority': 'low', 'objective_critical': False},
    5: {'name': 'Callback Scheduling', 'intent': 'callback_scheduling', 'critical': False,
        'conditional': 'needs_callback', 'priority': 'low', 'objective_critical': False},
    6: {'name': 'Interest Check & Property Confirmation', 'intent': 'interest_check', 'critical': True,
        'priority': 'mandatory', 'objective_critical': True},
    7: {'name': 'Agent Connection Offer', 'intent': 'agent_connection_offer', 'critical': True,
        'priority': 'mandatory', 'objective_critical': True},
    8: {'name': 'Agent Decline Handling', 'intent': 'agent_decline_handling', 'critical': False,
        'conditional': 'agent_declined', 'priority': 'low', 'objective_critical': False},
    9: {'name': 'Call Transfer to Agent', 'intent': 'call_transfer', 'critical': True,
        'conditional': 'agent_accepted', 'priority': 'mandatory', 'objective_critical': True},
    10: {'name': 'Call Ending', 'intent': 'call_ending', 'critical': True,
         'conditional': 'call_completion', 'priority': 'mandatory', 'objective_critical': True},
    11: {'name': 'Voicemail Response', 'intent': 'voicemail_response', 'critical': False,
         'conditional': 'voicemail_detected', 'priority': 'low', 'objective_critical': False},
    12: {'name': 'Wrong Number Handling', 'intent': 'wrong_number_handling', 'critical': False,
         'conditional': 'wrong_number', 'priority': 'low', 'objective_critical': False},
    13: {'name': 'Goodbye', 'intent': 'goodbye', 'critical': True,
         'priority': 'high', 'objective_critical': False}
}

CONVERSATION_CONTEXTS: Dict[str, Dict[str, Any]] = {
    'successful_property_inquiry': {
        'name': 'Successful Property Inquiry (Call Objective Achieved)',
        'type': 'property_inquiry',
        'required_steps': [1, 6, 7, 9],
        'critical_steps': [1, 6, 7, 9],
        'conditional_steps': {'agent_accepted': [9]}
    },
    'alternative_successful_flow': {
        'name': 'Alternative Successful Flow (via Third Party)',
        'type': 'property_inquiry',
        'required_steps': [1, 2, 6, 7, 9],
        'critical_steps': [1, 2, 6, 7, 9],
        'conditional_steps': {'third_party_answers': [2], 'agent_accepted': [9]}
    },
    'callback_scenario': {
        'name': 'Callback Scheduled (Future Objective Completion)',
        'type': 'callback_scheduling',
        'required_steps': [1, 3, 5, 13],
        'critical_steps': [1, 5],
        'conditional_steps': {'customer_busy': [3], 'needs_callback': [5]}
    },
    'voicemail_scenario': {
        'name': 'Voicemail Left (Future Objective Completion)',
        'type': 'voicemail',
        'required_steps': [1, 11, 13],
        'critical_steps': [1, 11],
        'conditional_steps': {'voicemail_detected': [11]}
    },
    'wrong_number': {
        'name': 'Wrong Number (No Objective Possible)',
        'type': 'wrong_number',
        'required_steps': [1, 12, 13],
        'critical_steps': [1, 12],
        'conditional_steps': {'wrong_number': [12]}
    },
    'failed_inquiry': {
        'name': 'Failed Property Inquiry (Objective Not Achieved)',
        'type': 'property_inquiry',
        'required_steps': [1, 6, 8, 13],
        'critical_steps': [1, 6],
        'conditional_steps': {'agent_declined': [8]}
    }
}

SCRIPT_ADHERENCE_PATTERNS = {
    'mandatory_phrases': [
        r'\bआपने\s+recently\s+हमारे\s+platform\s+पर\s+कुछ\s+properties\s+में\s+interest\s+दिखाया\s+था\b',
        r'\bहमने\s+आपके\s+preferred\s+area\s+में\s+3\s+top\s+agents\s+shortlist\s+किए\s+हैं\b',
        r'\bक्या\s+मैं\s+आपको\s+कल\s+सुबह\s+दस\s+बजे\s+कॉल\s+कर\s+सकती\s+हूँ\b',
        r'\bBee-etch-kay\b',
    ],
    'prohibited_phrases': [
        r'\bक्या\s+मैं\s+आपकी\s+क्या\s+सहायता\s+कर\s+सकती\s+हूँ\b',
        r'\bHow\s+can\s+I\s+help\s+you\b',
        r'\bWhat\s+can\s+I\s+do\s+for\s+you\b',
        r'\bHow\s+may\s+I\s+assist\s+you\b',
        r'\bBHK\b',
        r'\b\d+\s+BHK\b',
        r'\b\d+\s+(lakh|crore|rupees)\b',
    ],
    'objection_responses': [
        r'\bमैं\s+पूरी\s+तरह\s+समझ\s+सकती\s+हूँ.*?unnecessary\s+calls\s+नहीं\s+आएंगे\b',
        r'\bQuality\s+की\s+बात\s+है.*?quantity\s+की\s+नहीं\b',
        r'\bमैं\s+personally\s+Agent\s+को\s+आपकी\s+requirements\s+brief\s+कर\s+दूँगी\b',
    ]
}

ACKNOWLEDGEMENT_PATTERNS = [
    r'\bमैं\s+पूरी\s+तरह\s+समझ\s+सकती\s+हूँ\b',
    r'\bI\s+understand\b',
    r'\bमैं\s+समझ\s+गई\b',
]

CUSTOMER_OBJECTION_PATTERNS = [
    r'\bAgents\s+से\s+बार-बार\s+calls\s+नहीं\s+चाहिए\b',
    r'\bबहुत\s+सारे\s+agents\s+call\s+कर\s+रहे\s+हैं\b',
    r'\bबस\s+agent\s+का\s+number\s+दे\s+दो\b',
    r'\bमैं\s+अभी\s+बस\s+browse\s+कर\s+रहा\s+हूँ\b',
    r'\bresearch\s+phase\s+में\s+हूँ\b',
    r'\bक्या\s+यह\s+service\s+free\s+है\b',
    r'\bमैंने\s+search\s+ही\s+नहीं\s+किया\b',
    r'\bproperty\s+search\s+नहीं\s+कर\s+रही\b',
    r'\bnot\s+interested\b',
    r'\bनहीं\s+चाहिए\b',
]

SATISFACTION_PATTERNS = {
    'positive': [
        r'\b(धन्यवाद|thank\s+you|thanks|great|perfect|excellent|wonderful)\b',
        r"\b(बहुत\s+अच्छा|very\s+good|that\s+works|that's\s+perfect)\b",
        r'\b(helpful|really\s+appreciate|समझ\s+गई)\b',
        r'\b(ठीक\s+है|okay|alright|fine|हाँ|yes)\b',
    ],
    'negative': [
        r'\b(परेशान|frustrated|annoyed|disappointed|unhappy|terrible)\b',
        r'\b(समस्या|problem|issue|waste\s+of\s+time|not\s+helpful)\b',
        r'\b(गलत|wrong|incorrect|manager|escalate)\b',
        r'\b(व्यस्त|busy|not\s+interested|नहीं\s+चाहिए)\b',
    ],
    'neutral': [
        r"\b(शायद|maybe|perhaps|पता\s+नहीं|don't\s+know)\b",
        r"\b(देखते\s+हैं|let's\s+see|we'll\s+see)\b",
    ]
}

AFFIRMATIVE_PATTERNS = [
    r'\b(हाँ|yes|ठीक\s+है|okay|ok|sure|alright)\b',
    r'\b(बिल्कुल|जरूर|चलिए|ठीक)\b',
    r'\b(go\s+ahead|proceed|continue)\b',
]

VAGUE_PATTERNS = {
    'bot': [
        r'\b(okay|ok|ठीक है|समझ गई)\b',
        r'\b(हाँ|yes|हम्म|hmm)\b',
        r'\b(और कुछ|anything else|कोई और)\b',
        r"\b(देखते हैं|let's see|पता नहीं)\b",
    ],
    'human': [
        r'\b(हाँ|yes|ठीक है|okay|ok)\b',
        r'\b(नहीं|no|ना)\b',
        r"\b(पता नहीं|don't know|मालूम नहीं)\b",
        r'\b(शायद|maybe|हो सकता है)\b',
        r'\b(हम्म|hmm|उम्म|umm)\b',
    ]
}


def compile_patterns(patterns: List[str]) -> List[Any]:
    """Compile a list of pattern strings with the catalog flags"""
    return [re.compile(pattern, PATTERN_FLAGS) for pattern in patterns]


def validate_catalog():
    """
    Check that the static tables reference each other consistently.

    Raises:
        AnalysisError: When a step, intent or context entry is dangling
    """
    for step_number, descriptor in CONVERSATION_STEPS.items():
        if descriptor['intent'] not in INTENT_CATALOG:
            raise AnalysisError(f"Step {step_number} references unknown intent '{descriptor['intent']}'")
        if INTENT_CATALOG[descriptor['intent']]['step'] != step_number:
            raise AnalysisError(f"Intent '{descriptor['intent']}' is not mapped to step {step_number}")

    for intent_key, entry in INTENT_CATALOG.items():
        if not entry['patterns']:
            raise AnalysisError(f"Intent '{intent_key}' has no patterns")
        if entry['step'] != 0 and entry['step'] not in CONVERSATION_STEPS:
            raise AnalysisError(f"Intent '{intent_key}' uses undefined step {entry['step']}")

    for context_key, context in CONVERSATION_CONTEXTS.items():
        steps = set(context['required_steps']) | set(context['critical_steps'])
        for condition_steps in context['conditional_steps'].values():
            steps.update(condition_steps)
        unknown = steps - set(CONVERSATION_STEPS)
        if unknown:
            raise AnalysisError(f"Context '{context_key}' references undefined steps {sorted(unknown)}")

    logger.debug(f"Catalog validated: {len(INTENT_CATALOG)} intents, {len(CONVERSATION_CONTEXTS)} contexts")
    return True


# Compiled once; match objects are never cached between calls
COMPILED_INTENTS = {key: compile_patterns(entry['patterns']) for key, entry in INTENT_CATALOG.items()}
COMPILED_SCRIPT_PATTERNS = {key: compile_patterns(patterns) for key, patterns in SCRIPT_ADHERENCE_PATTERNS.items()}
COMPILED_ACKNOWLEDGEMENTS = compile_patterns(ACKNOWLEDGEMENT_PATTERNS)
COMPILED_OBJECTIONS = compile_patterns(CUSTOMER_OBJECTION_PATTERNS)
COMPILED_SATISFACTION = {key: compile_patterns(patterns) for key, patterns in SATISFACTION_PATTERNS.items()}
COMPILED_AFFIRMATIVES = compile_patterns(AFFIRMATIVE_PATTERNS)
COMPILED_VAGUE = {key: compile_patterns(patterns) for key, patterns in VAGUE_PATTERNS.items()}


def get_context(context_key: str) -> Dict[str, Any]:
    """Return a copy of a conversation context tagged with its key"""
    context = copy.deepcopy(CONVERSATION_CONTEXTS[context_key])
    context['key'] = context_key
    return context


def intent_for_step(step_number: int) -> str:
    return CONVERSATION_STEPS[step_number]['intent']
