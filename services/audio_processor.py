"""
Audio processor - turns an uploaded call recording into AudioData

WAV files are probed directly; other supported containers get a duration
estimate from their size. Silence candidates are generated from a seeded
generator until real voice activity detection is wired in.
"""

import os
import math
import wave
import logging
from typing import Dict, List, Optional, Any

import numpy as np

from models import AudioData, SilenceCandidate
from utils import AudioProcessingError, ALLOWED_AUDIO_EXTENSIONS

logger = logging.getLogger(__name__)

# Typical bitrates (bits per second) used for the size based duration estimate
ESTIMATED_BITRATES = {
    'mp3': 128000,
    'm4a': 128000,
    'ogg': 96000,
    'flac': 800000
}

SAMPLE_DTYPES = {
    1: np.uint8,
    2: np.int16,
    4: np.int32
}

SILENCE_INTERVAL_SECONDS = 30


class AudioProcessor:
    """Probe call recordings and produce the measurements the QA engine consumes"""

    def __init__(self, seed: int = 42, allowed_extensions=None):
        self.seed = seed
        self.allowed_extensions = set(allowed_extensions or ALLOWED_AUDIO_EXTENSIONS)
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def extension(file_path: str) -> str:
        return os.path.splitext(file_path)[1].lower().lstrip('.')

    def is_supported(self, file_path: str) -> bool:
        return self.extension(file_path) in self.allowed_extensions

    def process(self, file_path: str) -> AudioData:
        """
        Process an audio file.

        Args:
            file_path: Path of the uploaded recording

        Returns:
            AudioData: Duration, format details and silence candidates

        Raises:
            AudioProcessingError: Unsupported format or unreadable file
        """
        self.logger.info(f"Processing audio file: {file_path}")

        if not os.path.isfile(file_path):
            raise AudioProcessingError(f"Audio file not found: {file_path}")
        if not self.is_supported(file_path):
            raise AudioProcessingError(f"Unsupported audio format: {self.extension(file_path) or 'unknown'}")

        if self.extension(file_path) == 'wav':
            metadata = self.probe_wav(file_path)
        else:
            metadata = self.estimate_metadata(file_path)

        rng = np.random.default_rng(self.seed)
        silences = self.generate_mock_silences(metadata['duration'], rng)

        self.logger.info(
            f"Audio analysis complete: {metadata['duration']:.1f}s {metadata['format']}, "
            f"{len(silences)} potential silence segments"
        )

        return AudioData(
            duration=metadata['duration'],
            silences=silences,
            sample_rate=metadata.get('sampleRate'),
            channels=metadata.get('channels'),
            format=metadata['format'],
            rms_level=metadata.get('rmsLevel')
        )

    def probe_wav(self, file_path: str) -> Dict[str, Any]:
        try:
            with wave.open(file_path, 'rb') as wav_file:
                frame_count = wav_file.getnframes()
                sample_rate = wav_file.getframerate()
                channels = wav_file.getnchannels()
                sample_width = wav_file.getsampwidth()
                frames = wav_file.readframes(frame_count)
        except (wave.Error, EOFError) as e:
            raise AudioProcessingError(f"Invalid WAV file: {str(e)}")

        if sample_rate <= 0:
            raise AudioProcessingError("Invalid WAV file: sample rate is zero")

        return {
            'duration': frame_count / float(sample_rate),
            'sampleRate': sample_rate,
            'channels': channels,
            'format': 'wav',
            'rmsLevel': self.rms_level(frames, sample_width)
        }

    @staticmethod
    def rms_level(frames: bytes, sample_width: int) -> Optional[float]:
        """Normalized 0-1 RMS level of PCM frames"""
        dtype = SAMPLE_DTYPES.get(sample_width)
        if dtype is None or not frames:
            return None

        usable = len(frames) - len(frames) % sample_width
        samples = np.frombuffer(frames[:usable], dtype=dtype).astype(np.float64)
        if samples.size == 0:
            return None

        if dtype is np.uint8:
            # 8-bit PCM is unsigned and centered on 128
            samples = samples - 128.0
        full_scale = float(2 ** (8 * sample_width - 1))

        return float(np.sqrt(np.mean(samples ** 2)) / full_scale)

    def estimate_metadata(self, file_path: str) -> Dict[str, Any]:
        extension = self.extension(file_path)
        size_bytes = os.path.getsize(file_path)
        bitrate = ESTIMATED_BITRATES.get(extension, 128000)
        duration = size_bytes * 8 / float(bitrate)

        self.logger.debug(f"Estimated {extension} duration from {size_bytes} bytes: {duration:.1f}s")
        return {
            'duration': duration,
            'format': extension
        }

    @staticmethod
    def generate_mock_silences(duration: float, rng: np.random.Generator) -> List[SilenceCandidate]:
        """Roughly one 3-11 second silence candidate per 30 seconds of audio"""
        count = int(math.floor(duration / SILENCE_INTERVAL_SECONDS))
        silences = []

        for _ in range(count):
            start = float(rng.random()) * (duration - 10)
            length = 3 + float(rng.random()) * 8
            silences.append(SilenceCandidate(start=start, end=start + length, duration=length))

        return sorted(silences, key=lambda silence: silence.start)
