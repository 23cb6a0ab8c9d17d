"""
audio_analyzer.py - Audio-derived metrics: silences, call duration, audio quality

The audio subsystem reports raw measurements only. Silence validation and
audio quality use the pluggable stand-ins from qa_interfaces, so a real signal
analysis backend can replace the seeded estimators without touching scoring.
"""

import copy
import logging
import math
from typing import Dict, List, Optional, Any

import numpy as np

from models import AudioData, AnalysisConfig, SilenceCandidate
from utils import grade_for_score
from .qa_interfaces import SilenceValidator, AudioQualityEstimator
from .qa_models import SilenceSegment

logger = logging.getLogger(__name__)

DEFAULT_CALL_DURATION_SECONDS = 180
MIN_PROBLEMATIC_SILENCE = 8.0
VISUALIZATION_SAMPLE_RATE = 100

SILENCE_PHASES = ['greeting', 'inquiry', 'information_gathering', 'resolution', 'closing']

PHASE_WEIGHTS = {
    'greeting': {'bot': 0.7, 'human': 0.5},
    'inquiry': {'bot': 1.0, 'human': 0.8},
    'information_gathering': {'bot': 1.2, 'human': 0.9},
    'resolution': {'bot': 1.1, 'human': 0.7},
    'closing': {'bot': 0.6, 'human': 0.4}
}

AUDIO_QUALITY_WEIGHTS = {
    'signalToNoiseRatio': 0.25,
    'totalHarmonicDistortion': 0.20,
    'clarityScore': 0.25,
    'backgroundNoiseLevel': 0.15,
    'volumeConsistency': 0.10,
    'frequencyResponse': 0.05
}

# Used when no audio was supplied
REFERENCE_AUDIO_QUALITY = {
    'overallScore': 82,
    'metrics': {
        'signalToNoiseRatio': {'value': 32, 'unit': 'dB', 'quality': 'good', 'score': 80},
        'totalHarmonicDistortion': {'value': 1.2, 'unit': '%', 'quality': 'good', 'score': 76},
        'clarityScore': {'value': 85, 'unit': 'score', 'quality': 'excellent', 'score': 85},
        'backgroundNoiseLevel': {'value': 15, 'unit': 'dB', 'quality': 'good', 'score': 62},
        'volumeConsistency': {'value': 88, 'unit': 'score', 'quality': 'good', 'score': 88},
        'frequencyResponse': {'value': 82, 'unit': 'score', 'quality': 'good', 'score': 82}
    },
    'qualityGrade': 'B',
    'recommendations': ['Audio quality is within acceptable parameters'],
    'analysisSource': 'reference_profile'
}


# ==================== SILENCE VALIDATION ====================

class SeededSilenceValidator(SilenceValidator):
    """Quality and flow drawn from the session generator"""

    def __init__(self, rng: np.random.Generator):
        self.rng = rng

    def check_context(self, silence: SilenceCandidate, index: int, audio_data: AudioData) -> Dict[str, Any]:
        call_duration = audio_data.duration or DEFAULT_CALL_DURATION_SECONDS
        if silence.start < 5 or silence.start > call_duration - 10:
            return {'isProblematic': False, 'reason': 'Natural pause at call boundary'}
        if silence.duration < MIN_PROBLEMATIC_SILENCE:
            return {'isProblematic': False, 'reason': 'Duration within acceptable conversation rhythm'}
        return {'isProblematic': True, 'reason': 'Potentially disruptive silence'}

    def quality_score(self, silence: SilenceCandidate, audio_data: AudioData) -> float:
        return 0.7 + 0.3 * float(self.rng.random())

    def flow_score(self, silence: SilenceCandidate, index: int, audio_data: AudioData) -> float:
        return 0.6 + 0.4 * float(self.rng.random())


class FixedSilenceValidator(SeededSilenceValidator):
    """Constant quality and flow; every long mid-call silence passes"""

    QUALITY = 0.9
    FLOW = 0.7

    def __init__(self):
        super().__init__(rng=None)

    def quality_score(self, silence: SilenceCandidate, audio_data: AudioData) -> float:
        return self.QUALITY

    def flow_score(self, silence: SilenceCandidate, index: int, audio_data: AudioData) -> float:
        return self.FLOW


def silence_severity(silence: SilenceCandidate, index: int) -> float:
    base = min(silence.duration / 15.0, 1.0)
    position_weight = 1.1 if index < 2 else (0.9 if index > 8 else 1.0)
    duration_penalty = (silence.duration / 8.0) ** 1.2
    return min(base * position_weight * duration_penalty, 1.0)


def silence_impact(silence: SilenceCandidate, severity: float) -> float:
    """Logarithmic duration impact scaled 1x-3x by severity, capped at 10"""
    duration_impact = math.log(silence.duration + 1) / math.log(11)
    return min(duration_impact * (1 + severity * 2), 10.0)


def silence_recommendation(impact: float) -> str:
    if impact > 8:
        return 'CRITICAL: Address significant silence gap that disrupts user experience'
    if impact > 6:
        return 'MEDIUM: Consider optimizing response time in this conversation phase'
    return 'LOW: Monitor for patterns but within acceptable range'


class SilenceAnalyzer:
    """Filters raw silence candidates down to validated violations"""

    def __init__(self, validator: SilenceValidator):
        self.validator = validator
        self.logger = logging.getLogger(__name__)

    def analyze(self, audio_data: Optional[AudioData], config: AnalysisConfig) -> List[Dict[str, Any]]:
        """
        Detect problematic silences.

        Args:
            audio_data: Audio measurements, or None for transcript-only analysis
            config: Analysis configuration (duration threshold and impact floor)

        Returns:
            list: Silence violation dicts sorted by impact, highest first
        """
        if audio_data is None:
            return []

        segments = []
        for index, silence in enumerate(audio_data.silences):
            if silence.duration < config.silence_threshold:
                continue

            context = self.validator.check_context(silence, index, audio_data)
            if not context['isProblematic']:
                self.logger.debug(f"Silence at {silence.start}s dismissed: {context['reason']}")
                continue

            quality = self.validator.quality_score(silence, audio_data)
            if quality < 0.8:
                self.logger.debug(f"Silence at {silence.start}s dismissed: Likely audio processing artifact")
                continue

            if self.validator.flow_score(silence, index, audio_data) > 0.8:
                self.logger.debug(f"Silence at {silence.start}s dismissed: Does not disrupt conversation flow")
                continue

            severity = silence_severity(silence, index)
            impact = silence_impact(silence, severity)
            if impact <= config.silence_impact_floor:
                continue

            speaker = 'bot' if index % 2 == 0 else 'human'
            phase = SILENCE_PHASES[min(int(index / 20 * len(SILENCE_PHASES)), len(SILENCE_PHASES) - 1)]
            segments.append(SilenceSegment(
                start_time=silence.start,
                end_time=silence.end,
                duration=silence.duration,
                speaker=speaker,
                severity=severity,
                impact_score=impact,
                conversation_phase=phase,
                contextual_weight=PHASE_WEIGHTS[phase][speaker],
                quality_score=quality,
                priority='high' if impact > 8 else ('medium' if impact > 6 else 'low'),
                recommendation=silence_recommendation(impact)
            ))

        segments.sort(key=lambda segment: segment.impact_score, reverse=True)
        self.logger.info(
            f"Found {len(segments)} validated silence violations (was {len(audio_data.silences)} raw detections)")
        return [segment.to_dict() for segment in segments]


# ==================== CALL DURATION ====================

class DurationAnalyzer:
    """Compares call length with the configured ideal range"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def analyze(self, audio_data: Optional[AudioData], config: AnalysisConfig) -> Dict[str, Any]:
        # Without audio the call is assumed to last three minutes
        total_minutes = audio_data.duration / 60 if audio_data is not None else 3.0
        ideal_min = config.ideal_call_duration_min
        ideal_max = config.ideal_call_duration_max

        if total_minutes < ideal_min:
            status, deviation = 'too_short', ideal_min - total_minutes
        elif total_minutes > ideal_max:
            status, deviation = 'too_long', total_minutes - ideal_max
        else:
            status, deviation = 'optimal', 0

        self.logger.info(f"Call duration: {total_minutes:.1f} minutes ({status})")
        return {
            'totalDurationMinutes': total_minutes,
            'idealRangeMin': ideal_min,
            'idealRangeMax': ideal_max,
            'withinIdealRange': ideal_min <= total_minutes <= ideal_max,
            'deviationFromIdeal': deviation,
            'status': status
        }


def conversation_efficiency(intent_flow: Dict[str, Any], total_minutes: float) -> float:
    """Steps and turns per minute against the scripted pace, 0-1"""
    if not intent_flow or 'intentMappings' not in intent_flow or total_minutes <= 0:
        return 0.5

    total_turns = len(intent_flow['intentMappings'])
    completed = intent_flow.get('completedSteps') or 0
    required = intent_flow.get('totalRequiredSteps') or 10

    step_efficiency = min(1.0, completed / total_minutes / 2.5)
    turn_efficiency = min(1.0, total_turns / total_minutes / 8)
    return step_efficiency * 0.4 + turn_efficiency * 0.3 + completed / required * 0.3


# ==================== AUDIO QUALITY ====================

class SyntheticAudioQualityEstimator(AudioQualityEstimator):
    """Draws each metric uniformly from its documented range"""

    RANGES = {
        'snr': (25, 45),
        'thd': (0, 5),
        'clarity': (70, 95),
        'backgroundNoise': (0, 40),
        'volumeConsistency': (80, 95),
        'frequencyResponse': (75, 95)
    }

    def estimate(self, audio_data: Optional[AudioData], rng: np.random.Generator) -> Dict[str, Any]:
        return {name: float(rng.uniform(low, high)) for name, (low, high) in self.RANGES.items()}


def _label(value: float, cuts, labels=('excellent', 'good', 'fair', 'poor'), higher_is_better=True) -> str:
    for cut, label in zip(cuts, labels):
        if (value > cut) if higher_is_better else (value < cut):
            return label
    return labels[-1]


class AudioQualityAnalyzer:
    """Turns raw quality estimates into scored metrics, a grade and advice"""

    def __init__(self, estimator: Optional[AudioQualityEstimator] = None):
        self.estimator = estimator or SyntheticAudioQualityEstimator()
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def build_metrics(raw: Dict[str, float]) -> Dict[str, Dict[str, Any]]:
        snr, thd, clarity = raw['snr'], raw['thd'], raw['clarity']
        noise, volume, frequency = raw['backgroundNoise'], raw['volumeConsistency'], raw['frequencyResponse']

        return {
            'signalToNoiseRatio': {
                'value': snr, 'unit': 'dB',
                'quality': _label(snr, (35, 25, 15)),
                'score': min(100, snr / 40 * 100)
            },
            'totalHarmonicDistortion': {
                'value': thd, 'unit': '%',
                'quality': _label(thd, (1, 2, 3), higher_is_better=False),
                'score': max(0, 100 - thd * 20)
            },
            'clarityScore': {
                'value': clarity, 'unit': 'score',
                'quality': _label(clarity, (85, 75, 65)),
                'score': clarity
            },
            'backgroundNoiseLevel': {
                'value': noise, 'unit': 'dB',
                'quality': _label(noise, (10, 20, 30), higher_is_better=False),
                'score': max(0, 100 - noise * 2.5)
            },
            'volumeConsistency': {
                'value': volume, 'unit': 'score',
                'quality': _label(volume, (90, 85, 80)),
                'score': volume
            },
            'frequencyResponse': {
                'value': frequency, 'unit': 'score',
                'quality': _label(frequency, (85, 80, 75)),
                'score': frequency
            }
        }

    @staticmethod
    def recommendations(metrics: Dict[str, Dict[str, Any]]) -> List[str]:
        recommendations = []
        if metrics['signalToNoiseRatio']['score'] < 70:
            recommendations.append('Improve recording environment to reduce background noise')
        if metrics['totalHarmonicDistortion']['score'] < 80:
            recommendations.append('Check audio equipment for distortion issues')
        if metrics['clarityScore']['score'] < 75:
            recommendations.append('Improve microphone quality or positioning for better clarity')
        if metrics['backgroundNoiseLevel']['score'] < 70:
            recommendations.append('Use noise cancellation or record in quieter environment')
        if metrics['volumeConsistency']['score'] < 85:
            recommendations.append('Implement automatic gain control for consistent volume levels')
        return recommendations or ['Audio quality is within acceptable parameters']

    def analyze(self, audio_data: Optional[AudioData], rng: np.random.Generator) -> Dict[str, Any]:
        if audio_data is None:
            return copy.deepcopy(REFERENCE_AUDIO_QUALITY)

        metrics = self.build_metrics(self.estimator.estimate(audio_data, rng))
        overall = round(sum(metrics[name]['score'] * weight for name, weight in AUDIO_QUALITY_WEIGHTS.items()))

        self.logger.info(f"Audio quality assessment: {overall}/100")
        return {
            'overallScore': overall,
            'metrics': metrics,
            'qualityGrade': grade_for_score(overall),
            'recommendations': self.recommendations(metrics),
            'analysisSource': 'audio_primary'
        }


# ==================== VISUALIZATION ====================

def build_visualization(
    audio_data: Optional[AudioData],
    silence_segments: List[Dict[str, Any]],
    rng: np.random.Generator
) -> Dict[str, Any]:
    """Decaying synthetic waveform at 100 samples per second plus silence markers"""
    duration = audio_data.duration if audio_data is not None else DEFAULT_CALL_DURATION_SECONDS

    times = np.arange(int(duration * VISUALIZATION_SAMPLE_RATE)) / VISUALIZATION_SAMPLE_RATE
    amplitudes = (0.5 * np.sin(2 * np.pi * 0.1 * times) * np.exp(-times / 60)
                  + 0.3 * rng.random(times.size) - 0.15)

    return {
        'duration': duration,
        'waveformData': [
            {'time': float(t), 'amplitude': float(a)} for t, a in zip(times, amplitudes)
        ],
        'silenceMarkers': [
            {
                'start': segment['startTime'],
                'end': segment['endTime'],
                'duration': segment['duration'],
                'speaker': segment['speaker']
            }
            for segment in silence_segments
        ],
        'sampleRate': VISUALIZATION_SAMPLE_RATE
    }
