"""
Weighted fusion of per-modality analyzer results into one verdict.

Any subset of modalities may be present; the weights of the ones that are
missing are simply left out of the normalisation, so two modalities can
still produce a calibrated score.
"""
import logging
from typing import Dict, Mapping, Optional, Sequence, Union

from .types import AnalyzerResult, EnsembleResult, Modality

logger = logging.getLogger(__name__)

ModalityKey = Union[Modality, str]


def _as_modality(key: ModalityKey) -> Modality:
    if isinstance(key, Modality):
        return key
    try:
        return Modality(key)
    except ValueError:
        raise ValueError(f"Unknown modality: {key!r}") from None


class EnsembleCombiner:
    """Pure combiner; holds only its configuration."""

    # Visual carries the most evidence; metadata is cheap but weak.
    WEIGHTS = {
        Modality.VISUAL: 0.40,
        Modality.METADATA: 0.10,
        Modality.PHYSIOLOGICAL: 0.25,
        Modality.LIP_SYNC: 0.25,
        Modality.VOICE: 0.15,
    }

    # Voice weight when there is no visual evidence to lean on
    AUDIO_ONLY_VOICE_WEIGHT = 0.40

    def __init__(self, weights: Optional[Mapping[ModalityKey, float]] = None,
                 audio_only_voice_weight: Optional[float] = None,
                 threshold: float = 0.5):
        self.weights: Dict[Modality, float] = dict(self.WEIGHTS)
        for key, value in (weights or {}).items():
            value = float(value)
            if value < 0:
                raise ValueError(f"Weight for {key!r} must be non-negative")
            self.weights[_as_modality(key)] = value
        self.audio_only_voice_weight = float(
            self.AUDIO_ONLY_VOICE_WEIGHT if audio_only_voice_weight is None else audio_only_voice_weight
        )
        self.threshold = float(threshold)

    def weight_for(self, modality: Modality, present) -> float:
        if modality is Modality.VOICE and Modality.VISUAL not in present:
            return self.audio_only_voice_weight
        return self.weights[modality]

    def combine(self, results: Mapping[ModalityKey, AnalyzerResult]) -> EnsembleResult:
        """Fuse whichever per-modality results are available.

        Args:
            results: Mapping of modality to that analyzer's result.  Keys
                may be :class:`Modality` members or their string values.

        Returns:
            EnsembleResult whose ``weights`` are the effective weights,
            renormalised over the modalities present.
        """
        present: Dict[Modality, AnalyzerResult] = {
            _as_modality(k): r for k, r in results.items() if r is not None
        }

        total_score = 0.0
        total_weight = 0.0
        raw_weights: Dict[Modality, float] = {}
        anomalies = []
        scores: Dict[Modality, float] = {}

        # Iterate in a fixed order so anomaly ordering is stable
        for modality in Modality:
            result = present.get(modality)
            if result is None:
                continue
            w = self.weight_for(modality, present)
            raw_weights[modality] = w
            total_score += result.score * w
            total_weight += w
            scores[modality] = result.score
            anomalies.extend(result.anomalies)

        final = total_score / total_weight if total_weight > 0 else 0.0
        weights = {m: w / total_weight for m, w in raw_weights.items()} if total_weight > 0 else {}

        return EnsembleResult(
            is_deepfake=final > self.threshold,
            confidence=abs(final - 0.5) * 2,
            score=final,
            scores=scores,
            anomalies=tuple(dict.fromkeys(anomalies)),
            weights=weights,
        )

    def combine_frames(self, frames: Sequence[EnsembleResult]) -> EnsembleResult:
        """Aggregate per-frame verdicts by majority vote.

        Per-modality scores and the overall score are averaged over the
        frames that reported them; confidence is the mean frame confidence.
        """
        if not frames:
            return EnsembleResult(is_deepfake=False, confidence=0.0, score=0.0)

        votes = sum(1 for f in frames if f.is_deepfake)

        collected: Dict[Modality, list] = {}
        anomalies = []
        for f in frames:
            for modality, s in f.scores.items():
                collected.setdefault(modality, []).append(s)
            anomalies.extend(f.anomalies)

        scores = {m: sum(v) / len(v) for m, v in collected.items()}
        n = len(frames)
        logger.debug(f"Combined {n} frames, {votes} voted deepfake")

        return EnsembleResult(
            is_deepfake=votes > n / 2,
            confidence=sum(f.confidence for f in frames) / n,
            score=sum(f.score for f in frames) / n,
            scores={m: scores[m] for m in Modality if m in scores},
            anomalies=tuple(dict.fromkeys(anomalies)),
            weights={},
        )
