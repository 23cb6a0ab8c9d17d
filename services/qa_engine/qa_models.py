"""
Data models and type definitions for the call QA analysis engine.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any

import numpy as np

from models import Turn, AnalysisConfig, AudioData


@dataclass
class IntentMapping:
    """Classification result for a single turn"""
    turn_number: int
    speaker: str
    text: str
    detected_intent: str
    confidence: float
    conversation_step: str
    step_number: int

    @property
    def is_unknown(self) -> bool:
        return self.conversation_step == 'unknown'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'turnNumber': self.turn_number,
            'speaker': self.speaker,
            'text': self.text,
            'detectedIntent': self.detected_intent,
            'confidence': self.confidence,
            'conversationStep': self.conversation_step,
            'stepNumber': self.step_number
        }


@dataclass
class StepProgress:
    """One non-unknown entry of the step progression"""
    step: int
    intent: str
    confidence: float
    turn_number: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'step': self.step,
            'intent': self.intent,
            'confidence': self.confidence,
            'turnNumber': self.turn_number
        }


@dataclass
class SilenceSegment:
    """A silence that survived every validation gate"""
    start_time: float
    end_time: float
    duration: float
    speaker: str
    severity: float
    impact_score: float
    conversation_phase: str
    contextual_weight: float
    quality_score: float
    priority: str = 'low'
    recommendation: str = ''
    validation_passed: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            'startTime': self.start_time,
            'endTime': self.end_time,
            'duration': self.duration,
            'speaker': self.speaker,
            'severity': self.severity,
            'conversationPhase': self.conversation_phase,
            'impactScore': self.impact_score,
            'contextualWeight': self.contextual_weight,
            'validationPassed': self.validation_passed,
            'qualityScore': self.quality_score,
            'priority': self.priority,
            'recommendation': self.recommendation
        }


@dataclass
class Repetition:
    """Back-to-back repeated bot output"""
    type: str
    text1: str
    text2: str
    similarity_score: float
    severity: float
    is_problematic_repetition: bool
    recommendation: str
    repetition_type: str = 'exact_repetition'
    turn_indices: List[int] = field(default_factory=list)
    block_size: int = 1
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'type': self.type,
            'text1': self.text1,
            'text2': self.text2,
            'similarityScore': self.similarity_score,
            'severity': self.severity,
            'isProblematicRepetition': self.is_problematic_repetition,
            'recommendation': self.recommendation,
            'repetitionType': self.repetition_type,
            'turnIndices': self.turn_indices,
            'blockSize': self.block_size
        }
        data.update(self.details)
        return data


@dataclass
class HallucinationEvent:
    """A bot turn judged irrelevant or off-script"""
    turn_index: int
    human_input: str
    bot_response: str
    type: str
    severity: int
    relevance_score: float
    context_deviation: float
    recommendation: str
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'turnIndex': self.turn_index,
            'humanInput': self.human_input,
            'botResponse': self.bot_response,
            'type': self.type,
            'hallucinationType': self.type,
            'severity': self.severity,
            'relevanceScore': self.relevance_score,
            'contextDeviation': self.context_deviation,
            'recommendation': self.recommendation
        }
        data.update(self.extra)
        return data


@dataclass
class ConversationState:
    """Walk state of the critical step checker"""
    current_step: int = 0
    expected_context: str = 'greeting'
    human_queries: List[Dict[str, Any]] = field(default_factory=list)
    bot_responses: List[Dict[str, Any]] = field(default_factory=list)
    critical_step_attempts: Dict[int, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'currentStep': self.current_step,
            'expectedContext': self.expected_context,
            'humanQueries': len(self.human_queries),
            'botResponses': len(self.bot_responses),
            'criticalStepAttempts': {str(k): v for k, v in self.critical_step_attempts.items()}
        }


@dataclass
class AnalysisSession:
    """
    Request-scoped analysis state.

    Holds the parse cache and the seeded random generator for one call to
    ``analyze``; nothing here is shared between requests.
    """
    transcript: str
    config: AnalysisConfig
    audio_data: Optional[AudioData] = None
    turns: Optional[List[Turn]] = None
    rng: np.random.Generator = None

    def __post_init__(self):
        if self.rng is None:
            self.rng = np.random.default_rng(self.config.seed)

    @property
    def has_audio(self) -> bool:
        return self.audio_data is not None

    def uniform(self) -> float:
        """Draw one value in [0, 1) from the session generator"""
        return float(self.rng.random())
