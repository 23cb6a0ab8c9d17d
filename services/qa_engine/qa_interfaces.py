"""
Interfaces for the pluggable stand-ins of the audio analysis layer
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, Optional

import numpy as np

from models import AudioData, SilenceCandidate


class SilenceValidator(ABC):
    """Decides whether a raw silence candidate is a real, disruptive pause"""

    @abstractmethod
    def check_context(self, silence: SilenceCandidate, index: int, audio_data: AudioData) -> Dict[str, Any]:
        """Position/duration gate; returns {'isProblematic': bool, 'reason': str}"""
        pass

    @abstractmethod
    def quality_score(self, silence: SilenceCandidate, audio_data: AudioData) -> float:
        """Confidence in [0, 1] that the silence is not a processing artifact"""
        pass

    @abstractmethod
    def flow_score(self, silence: SilenceCandidate, index: int, audio_data: AudioData) -> float:
        """How well the conversation absorbs the pause; high means no disruption"""
        pass


class AudioQualityEstimator(ABC):
    """Produces the six audio quality metrics for a call"""

    @abstractmethod
    def estimate(self, audio_data: Optional[AudioData], rng: np.random.Generator) -> Dict[str, Any]:
        """Return a metric dict keyed by snr, thd, clarity, backgroundNoise, volumeConsistency, frequencyResponse"""
        pass
