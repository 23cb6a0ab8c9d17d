"""
Models package for the Call QA Analyzer

This package contains the data classes exchanged between the HTTP layer,
the audio processor and the analysis engine.
"""

from .call_data import (
    Speaker,
    Turn,
    SilenceCandidate,
    TurnTiming,
    AudioData,
    AnalysisConfig,
    RepetitionMode,
    LatencyScoringMode,
    SilenceValidationMode,
    WeightingProfile
)

__all__ = [
    'Speaker',
    'Turn',
    'SilenceCandidate',
    'TurnTiming',
    'AudioData',
    'AnalysisConfig',
    'RepetitionMode',
    'LatencyScoringMode',
    'SilenceValidationMode',
    'WeightingProfile'
]

# Package metadata
__version__ = '1.0.0'
__author__ = 'Call QA Team'
__description__ = 'Data models for call transcript and audio analysis'


def build_analysis_config(app_config=None, overrides=None) -> AnalysisConfig:
    """
    Factory function to create an AnalysisConfig seeded from application settings.

    Args:
        app_config: Application configuration class (see config.py) or None
        overrides: Request supplied values in camelCase

    Returns:
        AnalysisConfig: Configured analysis settings
    """
    base = AnalysisConfig()
    if app_config is not None:
        base = AnalysisConfig.from_dict({
            'seed': getattr(app_config, 'ANALYSIS_SEED', base.seed),
            'repetitionMode': getattr(app_config, 'REPETITION_MODE', None),
            'latencyScoringMode': getattr(app_config, 'LATENCY_SCORING_MODE', None),
            'silenceValidationMode': getattr(app_config, 'SILENCE_VALIDATION_MODE', None),
            'weightingProfile': getattr(app_config, 'WEIGHTING_PROFILE', None),
            'silenceImpactFloor': getattr(app_config, 'SILENCE_IMPACT_FLOOR', None)
        })
    return AnalysisConfig.from_dict(overrides, base=base)

__all__.append('build_analysis_config')
