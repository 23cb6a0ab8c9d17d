"""
Data models for call analysis requests.

Turns, audio-derived measurements and the per-request analysis configuration.
"""

import logging
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Dict, List, Optional, Any

logger = logging.getLogger(__name__)


class Speaker(Enum):
    """Conversation roles recognized in a transcript"""
    AGENT = "agent"
    CUSTOMER = "customer"


class RepetitionMode(Enum):
    """Repetition detection strategies"""
    EXACT = "exact"
    FUZZY = "fuzzy"


class LatencyScoringMode(Enum):
    """Response latency scoring rules"""
    SIMPLE = "simple"
    CONTEXTUAL = "contextual"


class SilenceValidationMode(Enum):
    """Silence gate implementations"""
    SEEDED = "seeded"
    FIXED = "fixed"


class WeightingProfile(Enum):
    """Score aggregation weight sets"""
    STANDARD = "standard"
    PROPERTY_INQUIRY = "property_inquiry"
    CALLBACK_SCHEDULING = "callback_scheduling"
    AUTO = "auto"


@dataclass(frozen=True)
class Turn:
    """One speaker's utterance, immutable once parsed"""
    index: int
    speaker: Speaker
    text: str

    @property
    def is_agent(self) -> bool:
        return self.speaker is Speaker.AGENT

    @property
    def is_customer(self) -> bool:
        return self.speaker is Speaker.CUSTOMER

    def to_dict(self) -> Dict[str, Any]:
        return {'index': self.index, 'speaker': self.speaker.value, 'text': self.text}


@dataclass
class SilenceCandidate:
    """Raw silence reported by an audio source"""
    start: float
    end: float
    duration: float

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SilenceCandidate':
        start = float(data.get('start', 0.0))
        duration = data.get('duration')
        end = data.get('end')
        if duration is None and end is not None:
            duration = float(end) - start
        if end is None:
            end = start + float(duration or 0.0)
        return cls(start=start, end=float(end), duration=float(duration or 0.0))


@dataclass
class TurnTiming:
    """Measured start/end of a speaker turn"""
    speaker: Speaker
    start_time: float
    end_time: float

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TurnTiming':
        speaker = str(data.get('speaker', 'customer')).lower()
        return cls(
            speaker=Speaker.AGENT if speaker in ('agent', 'bot') else Speaker.CUSTOMER,
            start_time=float(data.get('startTime', data.get('start_time', 0.0))),
            end_time=float(data.get('endTime', data.get('end_time', 0.0)))
        )


@dataclass
class AudioData:
    """Audio-derived inputs; every list may be empty"""
    duration: float
    silences: List[SilenceCandidate] = field(default_factory=list)
    turn_timings: List[TurnTiming] = field(default_factory=list)
    speech_analysis: List[Dict[str, Any]] = field(default_factory=list)
    interruption_data: List[Dict[str, Any]] = field(default_factory=list)
    sample_rate: Optional[int] = None
    channels: Optional[int] = None
    format: Optional[str] = None
    rms_level: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AudioData':
        """Build from the camelCase payload shape used on the wire"""
        return cls(
            duration=float(data.get('duration', 0.0) or 0.0),
            silences=[SilenceCandidate.from_dict(s) for s in data.get('silences') or []],
            turn_timings=[TurnTiming.from_dict(t) for t in data.get('turnTimings') or []],
            speech_analysis=list(data.get('speechAnalysis') or []),
            interruption_data=list(data.get('interruptionData') or []),
            sample_rate=data.get('sampleRate'),
            channels=data.get('channels'),
            format=data.get('format'),
            rms_level=data.get('rmsLevel')
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'duration': self.duration,
            'silences': [asdict(s) for s in self.silences],
            'turnTimings': [
                {'speaker': t.speaker.value, 'startTime': t.start_time, 'endTime': t.end_time}
                for t in self.turn_timings
            ],
            'speechAnalysis': self.speech_analysis,
            'interruptionData': self.interruption_data,
            'sampleRate': self.sample_rate,
            'channels': self.channels,
            'format': self.format,
            'rmsLevel': self.rms_level
        }


def _positive_float(value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def _enum_value(enum_cls, value: Any, default):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        if value not in (None, ''):
            logger.warning(f"Unknown {enum_cls.__name__} '{value}', using {default.value}")
        return default


@dataclass
class AnalysisConfig:
    """Per-request analysis configuration"""
    silence_threshold: float = 5.0
    ideal_call_duration_min: float = 1.0
    ideal_call_duration_max: float = 3.5
    repetition_similarity_threshold: float = 0.8
    response_time_threshold: float = 5.0
    max_allowed_latency_violations: int = 3
    silence_impact_floor: float = 3.0  # reference floor is 4.0, see Config.SILENCE_IMPACT_FLOOR
    repetition_mode: RepetitionMode = RepetitionMode.EXACT
    latency_scoring_mode: LatencyScoringMode = LatencyScoringMode.SIMPLE
    silence_validation_mode: SilenceValidationMode = SilenceValidationMode.SEEDED
    weighting_profile: WeightingProfile = WeightingProfile.STANDARD
    seed: int = 42

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]] = None, base: Optional['AnalysisConfig'] = None) -> 'AnalysisConfig':
        """
        Build a config from request values.

        Args:
            data: camelCase keys as sent by clients; missing, zero or invalid values fall back
            base: Defaults to fall back to, usually derived from the application Config

        Returns:
            AnalysisConfig: Validated configuration
        """
        data = data or {}
        base = base or cls()

        try:
            seed = int(data.get('seed', data.get('analysisSeed', base.seed)))
        except (TypeError, ValueError):
            seed = base.seed

        try:
            max_violations = int(data.get('maxAllowedLatencyViolations', base.max_allowed_latency_violations))
        except (TypeError, ValueError):
            max_violations = base.max_allowed_latency_violations

        return cls(
            silence_threshold=_positive_float(data.get('silenceThreshold'), base.silence_threshold),
            ideal_call_duration_min=_positive_float(data.get('idealCallDurationMin'), base.ideal_call_duration_min),
            ideal_call_duration_max=_positive_float(data.get('idealCallDurationMax'), base.ideal_call_duration_max),
            repetition_similarity_threshold=_positive_float(
                data.get('repetitionSimilarityThreshold'), base.repetition_similarity_threshold),
            response_time_threshold=_positive_float(data.get('responseTimeThreshold'), base.response_time_threshold),
            max_allowed_latency_violations=max_violations if max_violations >= 0 else base.max_allowed_latency_violations,
            silence_impact_floor=_positive_float(data.get('silenceImpactFloor'), base.silence_impact_floor),
            repetition_mode=_enum_value(RepetitionMode, data.get('repetitionMode'), base.repetition_mode),
            latency_scoring_mode=_enum_value(LatencyScoringMode, data.get('latencyScoringMode'), base.latency_scoring_mode),
            silence_validation_mode=_enum_value(
                SilenceValidationMode, data.get('silenceValidationMode'), base.silence_validation_mode),
            weighting_profile=_enum_value(WeightingProfile, data.get('weightingProfile'), base.weighting_profile),
            seed=seed
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'silenceThreshold': self.silence_threshold,
            'idealCallDurationMin': self.ideal_call_duration_min,
            'idealCallDurationMax': self.ideal_call_duration_max,
            'repetitionSimilarityThreshold': self.repetition_similarity_threshold,
            'responseTimeThreshold': self.response_time_threshold,
            'maxAllowedLatencyViolations': self.max_allowed_latency_violations,
            'silenceImpactFloor': self.silence_impact_floor,
            'repetitionMode': self.repetition_mode.value,
            'latencyScoringMode': self.latency_scoring_mode.value,
            'silenceValidationMode': self.silence_validation_mode.value,
            'weightingProfile': self.weighting_profile.value,
            'seed': self.seed
        }
