"""Tests for audio-visual synchrony analysis."""

import math

import numpy as np
import pytest

from tahqiq.lipsync import LipSyncAnalyzer, extract_lip_movement
from tahqiq.sources import AudioClip


class TestExtractLipMovement:
    def test_openness_and_width(self, landmark_factory):
        sample = extract_lip_movement(landmark_factory(openness=0.1), 5.0)
        assert sample.openness == pytest.approx(0.1)
        assert sample.width == pytest.approx(0.16)
        assert sample.timestamp == 5.0

    def test_missing_points(self):
        from tahqiq.sources import FaceLandmarks

        assert extract_lip_movement(FaceLandmarks(np.zeros((10, 3))), 0.0) is None


class TestLipSyncWithAudio:
    def test_insufficient_data(self, landmark_factory):
        analyzer = LipSyncAnalyzer()
        result = analyzer.analyze(landmark_factory(), AudioClip(np.zeros(160)), 0.0)
        assert result.anomalies == ("insufficient_data",)
        assert result.details["audio_present"] is True

    def test_talking_mouth_over_silence(self, landmark_factory):
        analyzer = LipSyncAnalyzer()
        result = None
        for i in range(20):
            result = analyzer.analyze(landmark_factory(openness=0.4), AudioClip(np.zeros(1600)), i * 33.3)

        assert "poor_audio_visual_sync" in result.anomalies
        assert "lip_movement_without_audio" in result.anomalies
        assert result.score == 1.0
        assert result.confidence == pytest.approx(0.7)

    def test_pushed_histories(self):
        analyzer = LipSyncAnalyzer()
        for i in range(20):
            analyzer.push_lip(0.4, 0.2, i)
            analyzer.push_audio_energy(0.0, i)
        result = analyzer.evaluate(audio_present=True)
        assert result.anomalies == ("poor_audio_visual_sync", "lip_movement_without_audio")

    def test_audio_without_lips(self):
        analyzer = LipSyncAnalyzer()
        for i in range(20):
            analyzer.push_lip(0.05, 0.2, i)
            analyzer.push_audio_energy(0.5, i)
        result = analyzer.evaluate()
        assert "audio_without_lip_movement" in result.anomalies
        assert result.score == 1.0

    def test_synchronized_stream_is_clean(self):
        analyzer = LipSyncAnalyzer()
        for i in range(30):
            level = 0.2 + 0.1 * math.sin(i * 0.8)
            analyzer.push_lip(level, 0.2, i)
            analyzer.push_audio_energy(level, i)
        result = analyzer.evaluate()
        assert result.anomalies == ()
        assert result.score == 0.0
        assert result.details["correlation_score"] == pytest.approx(1.0)

    def test_weak_sync(self):
        analyzer = LipSyncAnalyzer(thresholds={"poor_sync": 0.0, "weak_sync": 1.1})
        for i in range(20):
            analyzer.push_lip(0.2 + 0.1 * math.sin(i), 0.2, i)
            analyzer.push_audio_energy(0.2 + 0.1 * math.sin(i), i)
        assert "weak_audio_visual_sync" in analyzer.evaluate().anomalies

    def test_precomputed_energy(self, landmark_factory):
        analyzer = LipSyncAnalyzer()
        analyzer.analyze(landmark_factory(), timestamp=0.0, audio_energy=0.25)
        assert analyzer.audio_history[0].energy == 0.25

    def test_raw_array_audio(self, landmark_factory):
        analyzer = LipSyncAnalyzer()
        analyzer.analyze(landmark_factory(), np.full(100, 0.5), 0.0)
        assert analyzer.audio_history[0].energy == pytest.approx(0.5)


class TestLipSyncWithoutAudio:
    def test_smooth_motion(self, landmark_factory):
        analyzer = LipSyncAnalyzer()
        result = None
        for i in range(20):
            openness = 0.2 + 0.1 * math.sin(i * 0.8)
            result = analyzer.analyze(landmark_factory(openness=openness), None, i * 33.3)

        assert result.details["audio_present"] is False
        assert result.details["lip_movement_detected"] is True
        assert "unnaturally_smooth_lip_movement" in result.anomalies
        assert result.score == pytest.approx(0.3)
        assert result.confidence == pytest.approx(0.5)

    def test_erratic_motion(self):
        analyzer = LipSyncAnalyzer()
        for i in range(20):
            analyzer.push_lip(0.0 if i % 2 else 2.0, 0.2, i)
        result = analyzer.evaluate(audio_present=False)
        assert result.anomalies == ("erratic_lip_movement",)

    def test_still_mouth(self):
        analyzer = LipSyncAnalyzer()
        for i in range(20):
            analyzer.push_lip(0.05, 0.2, i)
        result = analyzer.evaluate(audio_present=False)
        assert result.details["lip_movement_detected"] is False
        assert result.score == 0.0

    def test_audio_flag_without_enough_audio_uses_lip_path(self):
        analyzer = LipSyncAnalyzer()
        for i in range(20):
            analyzer.push_lip(0.05, 0.2, i)
        result = analyzer.evaluate(audio_present=True)
        assert result.details["audio_present"] is False


class TestLipSyncState:
    def test_bounded_history(self):
        analyzer = LipSyncAnalyzer(capacity=25)
        for i in range(100):
            analyzer.push_lip(0.1, 0.2, i)
            analyzer.push_audio_energy(0.1, i)
        assert len(analyzer.lip_history) == 25
        assert len(analyzer.audio_history) == 25

    def test_reset(self):
        analyzer = LipSyncAnalyzer()
        analyzer.push_lip(0.1, 0.2, 0)
        analyzer.push_audio_energy(0.1, 0)
        analyzer.reset()
        assert len(analyzer.lip_history) == 0
        assert len(analyzer.audio_history) == 0
