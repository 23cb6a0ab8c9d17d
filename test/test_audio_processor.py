import os
import shutil
import tempfile
import unittest
import wave

import numpy as np

from . import BaseTestCase
from services import AudioProcessor, create_audio_processor
from utils import AudioProcessingError
from config import TestingConfig


class TestAudioProcessor(BaseTestCase):

    def setUp(self):
        super().setUp()
        self.processor = AudioProcessor(seed=42)
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)
        super().tearDown()

    def write_file(self, name, content):
        path = os.path.join(self.temp_dir, name)
        with open(path, 'wb') as f:
            f.write(content)
        return path

    def write_wav(self, name='call.wav', seconds=65, sample_rate=8000, amplitude=16384):
        path = os.path.join(self.temp_dir, name)
        samples = np.full(seconds * sample_rate, amplitude, dtype=np.int16)
        with wave.open(path, 'wb') as wav_file:
            wav_file.setnchannels(1)
            wav_file.setsampwidth(2)
            wav_file.setframerate(sample_rate)
            wav_file.writeframes(samples.tobytes())
        return path

    def test_wav_is_probed(self):
        audio = self.processor.process(self.write_wav())

        self.assertAlmostEqual(audio.duration, 65.0)
        self.assertEqual(audio.sample_rate, 8000)
        self.assertEqual(audio.channels, 1)
        self.assertEqual(audio.format, 'wav')
        self.assertAlmostEqual(audio.rms_level, 0.5)
        self.assertEqual(len(audio.silences), 2)

    def test_compressed_duration_is_estimated(self):
        audio = self.processor.process(self.write_file('call.mp3', b'\0' * 16000))

        self.assertAlmostEqual(audio.duration, 1.0)
        self.assertEqual(audio.format, 'mp3')
        self.assertIsNone(audio.sample_rate)
        self.assertEqual(audio.silences, [])

    def test_extension_is_case_insensitive(self):
        self.assertTrue(self.processor.is_supported('Call.FLAC'))
        self.assertFalse(self.processor.is_supported('call.txt'))
        self.assertFalse(self.processor.is_supported('call'))

    def test_unsupported_format(self):
        path = self.write_file('call.txt', b'hello')

        with self.assertRaises(AudioProcessingError) as context:
            self.processor.process(path)
        self.assertIn('Unsupported audio format', str(context.exception))

    def test_missing_file(self):
        with self.assertRaises(AudioProcessingError):
            self.processor.process(os.path.join(self.temp_dir, 'missing.wav'))

    def test_corrupt_wav(self):
        with self.assertRaises(AudioProcessingError) as context:
            self.processor.process(self.write_file('broken.wav', b'not really a wav file'))
        self.assertIn('Invalid WAV file', str(context.exception))

    def test_same_seed_same_silences(self):
        path = self.write_wav(seconds=120)

        self.assertEqual(self.processor.process(path).silences, AudioProcessor(seed=42).process(path).silences)


class TestAudioProcessorHelpers(BaseTestCase):

    def test_mock_silences(self):
        silences = AudioProcessor.generate_mock_silences(300.0, np.random.default_rng(1))

        self.assertEqual(len(silences), 10)
        self.assertEqual(silences, sorted(silences, key=lambda s: s.start))
        for silence in silences:
            self.assertGreaterEqual(silence.start, 0)
            self.assertLessEqual(silence.start, 290)
            self.assertGreaterEqual(silence.duration, 3)
            self.assertLessEqual(silence.duration, 11)
            self.assertAlmostEqual(silence.end, silence.start + silence.duration)

    def test_short_audio_has_no_silences(self):
        self.assertEqual(AudioProcessor.generate_mock_silences(29.0, np.random.default_rng(1)), [])

    def test_rms_level(self):
        self.assertEqual(AudioProcessor.rms_level(bytes([128, 128]), 1), 0.0)
        self.assertIsNone(AudioProcessor.rms_level(b'', 2))
        self.assertIsNone(AudioProcessor.rms_level(b'\0\0\0', 3))

    def test_factory_uses_app_config(self):
        processor = create_audio_processor(TestingConfig)

        self.assertEqual(processor.seed, TestingConfig.ANALYSIS_SEED)
        self.assertEqual(processor.allowed_extensions, set(TestingConfig.ALLOWED_AUDIO_EXTENSIONS))


if __name__ == '__main__':
    unittest.main()
