"""Tests for synthetic voice detection."""

import numpy as np
import pytest

from tahqiq.sources import AudioClip
from tahqiq.voice import VoiceAnalyzer


def _sine(seconds=2.0, sr=16000, hz=440.0):
    t = np.arange(int(sr * seconds)) / sr
    return AudioClip(0.5 * np.sin(2 * np.pi * hz * t), sr)


class TestVoiceFeatures:
    def test_feature_keys(self):
        features = VoiceAnalyzer().extract_features(_sine().samples)
        for key in (
            "spectral_consistency",
            "high_freq_ratio",
            "spectral_entropy",
            "pitch_variability",
            "envelope_consistency",
            "artifact_bins",
            "windows",
            "samples",
        ):
            assert key in features
        assert features["windows"] == 15
        assert features["samples"] == 32000

    def test_short_audio_has_no_windows(self):
        features = VoiceAnalyzer().extract_features(np.zeros(1000))
        assert features["windows"] == 0
        assert features["spectral_consistency"] == 0.0
        assert features["high_freq_ratio"] is None
        assert features["spectral_entropy"] is None
        assert features["pitch_variability"] is None
        assert features["envelope_consistency"] is None

    def test_exact_window_multiple_keeps_last_window(self):
        rng = np.random.RandomState(0)
        analyzer = VoiceAnalyzer()
        assert analyzer.extract_features(rng.randn(2048))["windows"] == 1
        assert analyzer.extract_features(rng.randn(4096))["windows"] == 2
        assert analyzer.extract_features(rng.randn(4095))["windows"] == 1

    def test_two_windows_measure_consistency(self):
        t = np.arange(4096) / 16000
        features = VoiceAnalyzer().extract_features(np.sin(2 * np.pi * 440 * t))
        assert features["spectral_consistency"] > 0.8

    def test_constant_envelope(self):
        features = VoiceAnalyzer().extract_features(_sine().samples)
        assert features["envelope_consistency"] > 0.9
        assert features["pitch_variability"] < 0.1


class TestVoiceAnalyzer:
    def test_pure_tone_is_suspicious(self):
        result = VoiceAnalyzer().analyze(_sine())
        assert "missing_high_frequencies" in result.anomalies
        assert "low_pitch_variability" in result.anomalies
        assert "overly_consistent_amplitude" in result.anomalies
        assert result.score == 1.0
        assert result.confidence == pytest.approx(0.6)

    def test_natural_wav_bounds(self, natural_wav_bytes):
        result = VoiceAnalyzer().analyze_wav(natural_wav_bytes)
        assert 0.0 <= result.score <= 1.0
        assert result.details["windows"] > 0
        assert "analysis_failed" not in result.anomalies

    def test_wav_bytes(self, sample_wav_bytes):
        result = VoiceAnalyzer().analyze_wav(sample_wav_bytes)
        assert result.details["windows"] == 3
        assert result.details["samples"] == 8000

    def test_raw_array(self):
        result = VoiceAnalyzer().analyze(_sine().samples.tolist())
        assert result.details["windows"] == 15

    def test_invalid_bytes(self):
        result = VoiceAnalyzer().analyze_wav(b"definitely not a wav file")
        assert result.anomalies == ("analysis_failed",)
        assert result.score == 0.0
        assert "decode" in result.details["error"]

    def test_increment_override(self):
        analyzer = VoiceAnalyzer(increments={"low_pitch_variability": 0.0})
        assert analyzer.increments["low_pitch_variability"] == 0.0
        assert analyzer.increments["frequency_band_artifacts"] == 0.5

    def test_unknown_override(self):
        with pytest.raises(ValueError):
            VoiceAnalyzer(thresholds={"bogus": 1})

    def test_single_window_noise_has_spectrum(self):
        result = VoiceAnalyzer().analyze(np.random.RandomState(1).randn(2048))
        assert result.details["high_freq_ratio"] > 0.1
        assert "missing_high_frequencies" not in result.anomalies
        assert "unnatural_energy_distribution" not in result.anomalies

    def test_too_short_for_frames_skips_checks(self):
        result = VoiceAnalyzer().analyze(np.random.RandomState(2).randn(1000))
        assert result.anomalies == ()
        assert result.score == 0.0
