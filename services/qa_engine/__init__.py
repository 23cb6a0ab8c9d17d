"""
Call QA engine

Transcript and audio analysis for voice-bot calls following the MagicBricks
property search script: turn parsing, intent flow, repetition, hallucination,
latency, interruption, silence and audio quality analysis plus weighted scoring.
"""

from .call_analyzer import CallQAAnalyzer, analyze_call
from .turn_parser import TurnParser, parse_turns
from .intent_classifier import (
    IntentClassifier,
    ConversationContextResolver,
    FlowScorer,
    ObjectiveAnalyzer,
    IntentFlowAnalyzer
)
from .repetition_detector import RepetitionDetector
from .hallucination_detector import HallucinationDetector, RelevanceAnalyzer, CriticalStepAnalyzer
from .latency_analyzer import LatencyAnalyzer
from .interruption_analyzer import InterruptionAnalyzer
from .audio_analyzer import (
    SilenceAnalyzer,
    DurationAnalyzer,
    AudioQualityAnalyzer,
    SeededSilenceValidator,
    FixedSilenceValidator,
    SyntheticAudioQualityEstimator
)
from .qa_interfaces import SilenceValidator, AudioQualityEstimator
from .score_aggregator import WeightedScoreAggregator, WEIGHTING_PROFILES
from .samples import MAGICBRICKS_SAMPLE_TRANSCRIPT

__all__ = [
    'CallQAAnalyzer',
    'analyze_call',
    'TurnParser',
    'parse_turns',
    'IntentClassifier',
    'ConversationContextResolver',
    'FlowScorer',
    'ObjectiveAnalyzer',
    'IntentFlowAnalyzer',
    'RepetitionDetector',
    'HallucinationDetector',
    'RelevanceAnalyzer',
    'CriticalStepAnalyzer',
    'LatencyAnalyzer',
    'InterruptionAnalyzer',
    'SilenceAnalyzer',
    'DurationAnalyzer',
    'AudioQualityAnalyzer',
    'SeededSilenceValidator',
    'FixedSilenceValidator',
    'SyntheticAudioQualityEstimator',
    'SilenceValidator',
    'AudioQualityEstimator',
    'WeightedScoreAggregator',
    'WEIGHTING_PROFILES',
    'MAGICBRICKS_SAMPLE_TRANSCRIPT'
]
