"""
call_analyzer.py - Entry point of the call QA engine

Runs every sub-analysis over one transcript (and optional audio measurements)
and assembles the result returned by the API. Each stage sits behind its own
error boundary so a failing analyzer degrades to its default result instead of
failing the whole request.
"""

import copy
import logging
from typing import Dict, Optional, Any, Callable

from models import AudioData, AnalysisConfig, SilenceValidationMode
from utils import timing_decorator, DEFAULT_TRANSCRIPT
from .qa_models import AnalysisSession
from .turn_parser import TurnParser
from .script_catalog import validate_catalog, USE_CASE, CRITICAL_STEPS, ALTERNATIVE_CRITICAL_STEPS
from .intent_classifier import IntentFlowAnalyzer
from .repetition_detector import RepetitionDetector
from .hallucination_detector import HallucinationDetector
from .latency_analyzer import LatencyAnalyzer
from .interruption_analyzer import InterruptionAnalyzer
from .audio_analyzer import (
    SilenceAnalyzer, DurationAnalyzer, AudioQualityAnalyzer,
    SeededSilenceValidator, FixedSilenceValidator,
    build_visualization, REFERENCE_AUDIO_QUALITY,
    DEFAULT_CALL_DURATION_SECONDS, VISUALIZATION_SAMPLE_RATE
)
from .score_aggregator import WeightedScoreAggregator

logger = logging.getLogger(__name__)

ANALYSIS_APPROACH = {
    'audioPrimary': ['silence', 'latency', 'hallucination', 'interruption', 'audioQuality', 'callDuration'],
    'transcriptPrimary': ['repetition', 'intentFlow'],
    'enhanced': ['criticalStepAnalysis', 'contextAdherence', 'queryAddressing'],
    'note': ('Audio measurements drive the timing sensitive metrics when available; '
             'the transcript drives content analysis and is the fallback for every metric')
}


def default_duration_analysis(config: AnalysisConfig) -> Dict[str, Any]:
    return {
        'totalDurationMinutes': 3.0,
        'idealRangeMin': config.ideal_call_duration_min,
        'idealRangeMax': config.ideal_call_duration_max,
        'withinIdealRange': True,
        'deviationFromIdeal': 0,
        'status': 'optimal',
        'analysisSource': 'default_fallback'
    }


def default_score() -> Dict[str, Any]:
    return {
        'overallScore': 0.0,
        'scoreBreakdown': {},
        'scoringProfile': 'standard',
        'componentScores': {},
        'additionalScores': {}
    }


def default_visualization(audio_data: Optional[AudioData]) -> Dict[str, Any]:
    return {
        'duration': audio_data.duration if audio_data is not None else DEFAULT_CALL_DURATION_SECONDS,
        'waveformData': [],
        'silenceMarkers': [],
        'sampleRate': VISUALIZATION_SAMPLE_RATE
    }


class CallQAAnalyzer:
    """
    Scores a voice-bot call against the MagicBricks property search script.

    The analyzer itself is stateless between calls: parsed turns and the seeded
    random generator live in an AnalysisSession created per ``analyze`` call.
    """

    def __init__(
        self,
        intent_analyzer: Optional[IntentFlowAnalyzer] = None,
        repetition_detector: Optional[RepetitionDetector] = None,
        hallucination_detector: Optional[HallucinationDetector] = None,
        latency_analyzer: Optional[LatencyAnalyzer] = None,
        interruption_analyzer: Optional[InterruptionAnalyzer] = None,
        audio_quality_analyzer: Optional[AudioQualityAnalyzer] = None,
        aggregator: Optional[WeightedScoreAggregator] = None
    ):
        # Catalog corruption is fatal and surfaces to the caller
        validate_catalog()

        self.intent_analyzer = intent_analyzer or IntentFlowAnalyzer()
        self.repetition_detector = repetition_detector or RepetitionDetector()
        self.hallucination_detector = hallucination_detector or HallucinationDetector()
        self.latency_analyzer = latency_analyzer or LatencyAnalyzer()
        self.interruption_analyzer = interruption_analyzer or InterruptionAnalyzer()
        self.audio_quality_analyzer = audio_quality_analyzer or AudioQualityAnalyzer()
        self.duration_analyzer = DurationAnalyzer()
        self.aggregator = aggregator or WeightedScoreAggregator()
        self.logger = logging.getLogger(__name__)

    def run_stage(self, name: str, func: Callable[[], Any], default: Callable[[], Any]) -> Any:
        """Run one analysis stage, substituting its default result on any error"""
        try:
            return func()
        except Exception as e:
            self.logger.error(f"{name} analysis failed, using default result: {str(e)}", exc_info=True)
            return default()

    @staticmethod
    def silence_validator(session: AnalysisSession):
        if session.config.silence_validation_mode is SilenceValidationMode.FIXED:
            return FixedSilenceValidator()
        return SeededSilenceValidator(session.rng)

    @staticmethod
    def normalize_transcript(transcript) -> str:
        if not isinstance(transcript, str) or not transcript.strip():
            logger.warning("Invalid or missing transcript, using default transcript")
            return DEFAULT_TRANSCRIPT
        return transcript

    @timing_decorator
    def analyze(
        self,
        transcript,
        audio_data: Optional[AudioData] = None,
        config: Optional[AnalysisConfig] = None
    ) -> Dict[str, Any]:
        """
        Analyze one call.

        Args:
            transcript: Speaker-prefixed transcript text
            audio_data: Measurements from the audio processor, or None
            config: Per-request analysis settings

        Returns:
            dict: Analysis result with overall score, every sub-analysis and the score breakdown
        """
        config = config or AnalysisConfig()
        transcript = self.normalize_transcript(transcript)

        session = AnalysisSession(transcript=transcript, config=config, audio_data=audio_data)
        parser = TurnParser()
        session.turns = parser.parse(transcript)

        self.logger.info(
            f"Starting call analysis: {len(session.turns)} turns, "
            f"audio {'available' if session.has_audio else 'not available'}"
        )

        try:
            return self.build_result(session)
        finally:
            parser.clear()

    def build_result(self, session: AnalysisSession) -> Dict[str, Any]:
        turns = session.turns
        audio_data = session.audio_data
        config = session.config
        rng = session.rng

        # Audio-first analyses
        silence_segments = self.run_stage(
            'Silence',
            lambda: SilenceAnalyzer(self.silence_validator(session)).analyze(audio_data, config),
            list
        )
        duration_analysis = self.run_stage(
            'Call duration',
            lambda: self.duration_analyzer.analyze(audio_data, config),
            lambda: default_duration_analysis(config)
        )
        latency_analysis = self.run_stage(
            'Response latency',
            lambda: self.latency_analyzer.analyze(turns, audio_data, config, rng),
            LatencyAnalyzer.default_result
        )
        hallucination_analysis = self.run_stage(
            'Hallucination',
            lambda: self.hallucination_detector.detect(turns, audio_data),
            HallucinationDetector.default_result
        )
        interruption_analysis = self.run_stage(
            'Interruption',
            lambda: self.interruption_analyzer.analyze(turns, audio_data, rng),
            InterruptionAnalyzer.default_result
        )
        audio_quality_analysis = self.run_stage(
            'Audio quality',
            lambda: self.audio_quality_analyzer.analyze(audio_data, rng),
            lambda: copy.deepcopy(REFERENCE_AUDIO_QUALITY)
        )

        # Transcript-first analyses
        repetitions = self.run_stage(
            'Repetition',
            lambda: self.repetition_detector.detect(turns, config),
            list
        )
        intent_flow = self.run_stage(
            'Intent flow',
            lambda: self.intent_analyzer.analyze(turns),
            IntentFlowAnalyzer.default_result
        )

        score = self.run_stage(
            'Score aggregation',
            lambda: self.aggregator.aggregate(
                silence_segments, repetitions, duration_analysis, latency_analysis,
                hallucination_analysis, interruption_analysis, audio_quality_analysis,
                intent_flow, config.weighting_profile
            ),
            default_score
        )
        visualization = self.run_stage(
            'Visualization',
            lambda: build_visualization(audio_data, silence_segments, rng),
            lambda: default_visualization(audio_data)
        )
        recommendations = self.run_stage(
            'Recommendation',
            lambda: WeightedScoreAggregator.overall_recommendations(
                score['componentScores'], score['additionalScores'], silence_segments, repetitions,
                hallucination_analysis, interruption_analysis, audio_quality_analysis, latency_analysis
            ),
            list
        )

        critical = hallucination_analysis.get('criticalStepAnalysis') or {}
        self.logger.info(
            f"Call analysis completed: score {score['overallScore']}, "
            f"{len(critical.get('criticalStepViolations', []))} critical step violations, "
            f"{len(critical.get('contextDeviations', []))} context deviations, "
            f"{len(critical.get('unaddressedQueries', []))} unaddressed queries"
        )

        return {
            'overallScore': score['overallScore'],
            'callDuration': audio_data.duration if audio_data is not None else 0,
            'silenceViolations': silence_segments,
            'repetitions': repetitions,
            'intentFlow': intent_flow,
            'callDurationAnalysis': duration_analysis,
            'responseLatencyAnalysis': latency_analysis,
            'hallucinationAnalysis': hallucination_analysis,
            'interruptionAnalysis': interruption_analysis,
            'audioQualityAnalysis': audio_quality_analysis,
            'scoreBreakdown': score['scoreBreakdown'],
            'scoringProfile': score['scoringProfile'],
            'visualizationData': visualization,
            'overallRecommendations': recommendations,
            'analysisApproach': dict(ANALYSIS_APPROACH, audioAvailable=session.has_audio),
            'magicBricksAnalysis': self.magicbricks_summary(intent_flow)
        }

    @staticmethod
    def magicbricks_summary(intent_flow: Dict[str, Any]) -> Dict[str, Any]:
        return {
            'useCase': USE_CASE,
            'criticalSteps': list(CRITICAL_STEPS),
            'alternativeCriticalSteps': list(ALTERNATIVE_CRITICAL_STEPS),
            'objectiveAchieved': bool(intent_flow.get('objectiveAchieved')),
            'objectiveLogic': 'Step 9 (Call Transfer) + Affirmative Response = Objective Achieved',
            'scriptAdherence': 'MagicBricks script compliance checked at every critical step',
            'objectionHandling': 'Objection replies checked against the MagicBricks FAQ responses',
            'contextAdherence': 'Context deviations and unaddressed customer queries reported per turn'
        }


def analyze_call(transcript, audio_data: Optional[AudioData] = None,
                 config: Optional[AnalysisConfig] = None) -> Dict[str, Any]:
    """Convenience wrapper running a fresh CallQAAnalyzer"""
    return CallQAAnalyzer().analyze(transcript, audio_data, config)
