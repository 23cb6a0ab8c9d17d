"""
Text similarity measures for near-duplicate bot utterances.

Lexical, keyword, intent, structural, n-gram and business-context scores,
all in [0, 1]. Used by the opt-in fuzzy repetition mode.
"""

from typing import Dict, Any

import regex as re

from utils import (
    extract_keywords, calculate_word_similarity,
    jaccard_similarity, ngrams, split_words
)

QUESTION_MARKERS = re.compile(r'\?|क्या|कैसे|कब|कहाँ|कौन')
SENTENCE_BREAKS = re.compile(r'[।.!?]+')
PATTERN_MARKS = re.compile(r'[^.,!?।]')

CONVERSATION_INTENTS = [
    ('greeting', re.compile(r'नमस्ते|hello|magicbricks|बोल रहा हूँ')),
    ('property_inquiry', re.compile(r'property|properties|flat|bhk|बी.*एच.*के|search')),
    ('agent_connection', re.compile(r'agent|connect|shortlist|top.*agent')),
    ('pricing', re.compile(r'budget|बजट|लाख|crore|price')),
    ('location', re.compile(r'area|location|में|कहाँ')),
    ('call_transfer', re.compile(r'transfer|connect.*agent|line.*पर')),
    ('clarification_request', re.compile(r'find.*नहीं.*पा.*रहा|reconfirm|confirm'))
]

RELATED_INTENT_GROUPS = [
    {'property_inquiry', 'pricing', 'location'},
    {'agent_connection', 'call_transfer'},
    {'greeting', 'unknown'}
]

BUSINESS_CONTEXTS = {
    'isPropertyRelated': re.compile(r'property|flat|house|bhk|बी.*एच.*के|villa|apartment'),
    'isAgentRelated': re.compile(r'agent|broker|dealer|एजेंट|connect|shortlist'),
    'isPricingRelated': re.compile(r'budget|price|cost|लाख|crore|रुपए|affordable'),
    'isLocationRelated': re.compile(r'area|location|city|में|कहाँ|where|locality'),
    'isConfirmationRelated': re.compile(r'confirm|reconfirm|सही|correct|right')
}


def simple_intent(text: str) -> str:
    lower_text = text.lower()
    if '?' in lower_text:
        return 'question'
    if 'please' in lower_text or 'can you' in lower_text:
        return 'request'
    if 'thank' in lower_text:
        return 'gratitude'
    if 'sorry' in lower_text or 'apologize' in lower_text:
        return 'apology'
    return 'statement'


def conversation_intent(text: str) -> str:
    """Coarse script intent of an utterance; first matching group wins"""
    text_lower = text.lower()
    for intent, pattern in CONVERSATION_INTENTS:
        if pattern.search(text_lower):
            return intent
    return 'unknown'


def language_mix(text: str) -> str:
    hindi_chars = len(re.findall(r'[\u0900-\u097F]', text))
    english_chars = len(re.findall(r'[a-zA-Z]', text))
    total = hindi_chars + english_chars
    if total == 0:
        return 'mixed'

    hindi_ratio = hindi_chars / total
    if hindi_ratio > 0.7:
        return 'hindi_dominant'
    if hindi_ratio < 0.3:
        return 'english_dominant'
    return 'mixed'


def text_structure(text: str) -> Dict[str, Any]:
    return {
        'wordCount': len(text.split()) or 1,
        'sentenceCount': len([s for s in SENTENCE_BREAKS.split(text) if s.strip()]),
        'isQuestion': bool(QUESTION_MARKERS.search(text)),
        'punctuationPattern': PATTERN_MARKS.sub('', text) or 'none',
        'languageMix': language_mix(text)
    }


def business_context(text: str) -> Dict[str, bool]:
    text_lower = text.lower()
    return {key: bool(pattern.search(text_lower)) for key, pattern in BUSINESS_CONTEXTS.items()}


def lexical_similarity(text1: str, text2: str) -> float:
    return calculate_word_similarity(text1, text2)


def semantic_similarity(text1: str, text2: str) -> float:
    """Keyword Jaccard blended with a coarse utterance-type match"""
    keyword_score = jaccard_similarity(extract_keywords(text1), extract_keywords(text2))
    intent_score = 1.0 if simple_intent(text1) == simple_intent(text2) else 0.0
    return keyword_score * 0.7 + intent_score * 0.3


def structural_similarity(text1: str, text2: str) -> float:
    structure1 = text_structure(text1)
    structure2 = text_structure(text2)

    longest = max(structure1['wordCount'], structure2['wordCount'])
    similarity = (1 - abs(structure1['wordCount'] - structure2['wordCount']) / longest) * 0.3

    if structure1['isQuestion'] == structure2['isQuestion']:
        similarity += 0.3
    if structure1['punctuationPattern'] == structure2['punctuationPattern']:
        similarity += 0.2
    if structure1['languageMix'] == structure2['languageMix']:
        similarity += 0.2

    return min(1.0, similarity)


def keyword_similarity(text1: str, text2: str) -> float:
    keywords1 = set(extract_keywords(text1))
    keywords2 = set(extract_keywords(text2))
    if not keywords1 and not keywords2:
        return 1.0
    if not keywords1 or not keywords2:
        return 0.0
    return jaccard_similarity(keywords1, keywords2)


def intent_similarity(text1: str, text2: str) -> float:
    intent1 = conversation_intent(text1)
    intent2 = conversation_intent(text2)
    if intent1 == intent2 and intent1 != 'unknown':
        return 1.0
    if any(intent1 in group and intent2 in group for group in RELATED_INTENT_GROUPS):
        return 0.7
    return 0.0


def set_similarity(items1, items2) -> float:
    if not items1 and not items2:
        return 1.0
    if not items1 or not items2:
        return 0.0
    return jaccard_similarity(items1, items2)


def ngram_similarity(text1: str, text2: str) -> float:
    words1 = split_words(text1.lower())
    words2 = split_words(text2.lower())
    bigram_score = set_similarity(ngrams(words1, 2), ngrams(words2, 2))
    trigram_score = set_similarity(ngrams(words1, 3), ngrams(words2, 3))
    return bigram_score * 0.6 + trigram_score * 0.4


def contextual_similarity(text1: str, text2: str) -> float:
    """Overlap of the business topics both utterances touch"""
    context1 = business_context(text1)
    context2 = business_context(text2)

    similarity = 0.0
    for key, weight in (('isPropertyRelated', 0.3), ('isAgentRelated', 0.3),
                        ('isPricingRelated', 0.2), ('isLocationRelated', 0.2)):
        if context1[key] and context2[key]:
            similarity += weight
    return min(1.0, similarity)


def similarity_confidence(overall_score: float, text1: str, text2: str) -> float:
    confidence = 0.5

    average_length = (len(text1) + len(text2)) / 2
    if average_length > 50:
        confidence += 0.2
    elif average_length > 20:
        confidence += 0.1

    if overall_score > 0.8 or overall_score < 0.2:
        confidence += 0.2
    if 0.4 <= overall_score <= 0.6:
        confidence -= 0.1

    return min(1.0, max(0.1, confidence))


def semantic_breakdown(text1: str, text2: str) -> Dict[str, float]:
    """
    Multi-dimensional similarity report for a pair of utterances.

    Args:
        text1: First utterance
        text2: Second utterance

    Returns:
        dict: Component scores, their weighted overall score and a confidence
    """
    scores = {
        'keywordSimilarity': keyword_similarity(text1, text2),
        'intentSimilarity': intent_similarity(text1, text2),
        'structuralSimilarity': structural_similarity(text1, text2),
        'ngramSimilarity': ngram_similarity(text1, text2),
        'contextualSimilarity': contextual_similarity(text1, text2)
    }
    overall = (
        scores['keywordSimilarity'] * 0.25 +
        scores['intentSimilarity'] * 0.25 +
        scores['structuralSimilarity'] * 0.2 +
        scores['ngramSimilarity'] * 0.15 +
        scores['contextualSimilarity'] * 0.15
    )
    scores['overallScore'] = overall
    scores['confidence'] = similarity_confidence(overall, text1, text2)
    return scores
