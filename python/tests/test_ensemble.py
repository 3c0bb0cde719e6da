"""Tests for multi-modal fusion."""

import pytest

from tahqiq.ensemble import EnsembleCombiner
from tahqiq.types import AnalyzerResult, EnsembleResult, Modality


def _r(score, anomalies=()):
    return AnalyzerResult(score=score, confidence=0.5, anomalies=anomalies)


class TestCombine:
    def test_all_modalities_weights_normalised(self):
        results = {m: _r(0.5) for m in Modality}
        verdict = EnsembleCombiner().combine(results)
        assert sum(verdict.weights.values()) == pytest.approx(1.0)
        assert verdict.score == pytest.approx(0.5)
        assert verdict.is_deepfake is False

    def test_visual_only_reproduces_visual(self):
        verdict = EnsembleCombiner().combine({Modality.VISUAL: _r(0.8)})
        assert verdict.score == pytest.approx(0.8)
        assert verdict.confidence == pytest.approx(0.6)
        assert verdict.is_deepfake is True
        assert verdict.weights == {Modality.VISUAL: pytest.approx(1.0)}

    def test_audio_only_boosts_voice(self):
        verdict = EnsembleCombiner().combine({
            Modality.VOICE: _r(1.0),
            Modality.METADATA: _r(0.0),
        })
        assert verdict.weights[Modality.VOICE] == pytest.approx(0.8)
        assert verdict.score == pytest.approx(0.8)

    def test_voice_weight_with_visual(self):
        verdict = EnsembleCombiner().combine({
            Modality.VISUAL: _r(0.0),
            Modality.VOICE: _r(1.0),
        })
        assert verdict.weights[Modality.VOICE] == pytest.approx(0.15 / 0.55)

    def test_string_keys(self):
        verdict = EnsembleCombiner().combine({"visual": _r(0.2), "lipSync": _r(0.9)})
        assert set(verdict.scores) == {Modality.VISUAL, Modality.LIP_SYNC}
        assert verdict.score == pytest.approx((0.2 * 0.4 + 0.9 * 0.25) / 0.65)

    def test_unknown_modality(self):
        with pytest.raises(ValueError):
            EnsembleCombiner().combine({"smell": _r(0.5)})

    def test_anomalies_in_modality_order_deduplicated(self):
        verdict = EnsembleCombiner().combine({
            Modality.VOICE: _r(0.5, ("b", "shared")),
            Modality.VISUAL: _r(0.5, ("a", "shared")),
        })
        assert verdict.anomalies == ("a", "shared", "b")

    def test_empty(self):
        verdict = EnsembleCombiner().combine({})
        assert verdict.score == 0.0
        assert verdict.confidence == 1.0
        assert verdict.is_deepfake is False
        assert verdict.weights == {}

    def test_threshold_is_strict(self):
        verdict = EnsembleCombiner().combine({Modality.VISUAL: _r(0.5)})
        assert verdict.is_deepfake is False

    def test_custom_weights(self):
        combiner = EnsembleCombiner(weights={"metadata": 0.4}, threshold=0.3)
        verdict = combiner.combine({Modality.METADATA: _r(0.35)})
        assert combiner.weights[Modality.METADATA] == 0.4
        assert verdict.is_deepfake is True

    def test_negative_weight(self):
        with pytest.raises(ValueError):
            EnsembleCombiner(weights={Modality.VISUAL: -1})


class TestCombineFrames:
    def test_majority_vote(self):
        frames = [
            EnsembleResult(True, 0.6, 0.8, {Modality.VISUAL: 0.8}, ("x",)),
            EnsembleResult(True, 0.4, 0.7, {Modality.VISUAL: 0.7}, ("y",)),
            EnsembleResult(False, 0.2, 0.4, {Modality.VISUAL: 0.4, Modality.METADATA: 0.0}),
        ]
        verdict = EnsembleCombiner().combine_frames(frames)
        assert verdict.is_deepfake is True
        assert verdict.confidence == pytest.approx(0.4)
        assert verdict.score == pytest.approx(19 / 30)
        assert verdict.scores[Modality.VISUAL] == pytest.approx(19 / 30)
        assert verdict.scores[Modality.METADATA] == 0.0
        assert verdict.anomalies == ("x", "y")

    def test_tie_is_not_deepfake(self):
        frames = [
            EnsembleResult(True, 0.5, 0.9),
            EnsembleResult(False, 0.5, 0.1),
        ]
        assert EnsembleCombiner().combine_frames(frames).is_deepfake is False

    def test_empty(self):
        verdict = EnsembleCombiner().combine_frames([])
        assert verdict.is_deepfake is False
        assert verdict.confidence == 0.0
        assert verdict.score == 0.0
