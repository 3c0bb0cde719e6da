"""
Audio-visual synchrony analysis.

Speech moves the mouth: over a few seconds mouth openness and audio
loudness rise and fall together.  Dubbed or lip-synced fakes break that
coupling.  The analyzer keeps parallel histories of mouth geometry and
audio RMS and scores how weakly they correlate.  Without audio it falls
back to judging whether the mouth motion itself looks plausible.
"""
import logging
from typing import Mapping, Optional, Union

import numpy as np

from . import spectral
from .buffers import RollingBuffer
from .config import merge_overrides
from .landmarks import LIP_LOWER, LIP_OUTER, LIP_UPPER
from .sources import AudioClip, FaceLandmarks
from .types import AnalyzerResult, EnergySample, LipSample

logger = logging.getLogger(__name__)

AudioInput = Union[AudioClip, np.ndarray]


def extract_lip_movement(landmarks: FaceLandmarks, timestamp: float) -> Optional[LipSample]:
    """Mouth openness (vertical lip gap) and width from face geometry."""
    upper = landmarks.points(LIP_UPPER)
    lower = landmarks.points(LIP_LOWER)
    if not upper or not lower:
        return None

    upper_y = sum(p[1] for p in upper) / len(upper)
    lower_y = sum(p[1] for p in lower) / len(lower)
    openness = abs(lower_y - upper_y)

    xs = [p[0] for p in landmarks.points(LIP_OUTER)]
    width = max(xs) - min(xs) if xs else 0.0

    return LipSample(openness=openness, width=width, timestamp=float(timestamp))


class LipSyncAnalyzer:
    """Streaming lip/audio correlation analyzer, one instance per stream."""

    THRESHOLDS = {
        'poor_sync': 0.3,
        'weak_sync': 0.5,
        'lip_active': 0.3,
        'audio_quiet': 0.1,
        'audio_active': 0.3,
        'lip_still': 0.1,
        'movement_variance': 0.001,
        'smooth_variance': 0.01,
        'erratic_variance': 0.5,
        'confidence_with_audio': 0.7,
        'confidence_without_audio': 0.5,
    }

    INCREMENTS = {
        'poor_sync': 0.6,
        'weak_sync': 0.3,
        'lip_without_audio': 0.4,
        'audio_without_lip': 0.5,
        'smooth_lips': 0.3,
        'erratic_lips': 0.2,
    }

    def __init__(self, capacity: int = 150, min_samples: int = 10,
                 thresholds: Optional[Mapping[str, float]] = None,
                 increments: Optional[Mapping[str, float]] = None):
        self._min_samples = max(2, int(min_samples))
        self.thresholds = merge_overrides(self.THRESHOLDS, thresholds, 'lip-sync threshold')
        self.increments = merge_overrides(self.INCREMENTS, increments, 'lip-sync increment')
        self._lips: RollingBuffer[LipSample] = RollingBuffer(capacity)
        self._audio: RollingBuffer[EnergySample] = RollingBuffer(capacity)

    @property
    def lip_history(self) -> RollingBuffer:
        return self._lips

    @property
    def audio_history(self) -> RollingBuffer:
        return self._audio

    def analyze(self, landmarks: Optional[FaceLandmarks], audio: Optional[AudioInput] = None,
                timestamp: float = 0.0, audio_energy: Optional[float] = None) -> AnalyzerResult:
        """Add one tick of mouth geometry and (optionally) audio, then score.

        ``audio_energy`` lets hosts that already computed loudness skip
        passing the raw buffer.
        """
        if landmarks is not None:
            lip = extract_lip_movement(landmarks, timestamp)
            if lip is not None:
                self._lips.push(lip)

        audio_present = audio is not None or audio_energy is not None
        if audio_present:
            try:
                if audio_energy is None:
                    audio_energy = audio.rms() if isinstance(audio, AudioClip) else spectral.rms(audio)
                self.push_audio_energy(audio_energy, timestamp)
            except Exception as e:
                logger.warning(f"Audio feature extraction failed: {e}")

        return self.evaluate(audio_present)

    def push_lip(self, openness: float, width: float, timestamp: float) -> None:
        self._lips.push(LipSample(float(openness), float(width), float(timestamp)))

    def push_audio_energy(self, energy: float, timestamp: float) -> None:
        self._audio.push(EnergySample(float(energy), float(timestamp)))

    def evaluate(self, audio_present: bool = True) -> AnalyzerResult:
        """Score the current histories without adding a sample."""
        if len(self._lips) < self._min_samples:
            return AnalyzerResult.insufficient_data(
                sync_score=0.0,
                audio_present=audio_present,
                lip_movement_detected=False,
                correlation_score=0.0,
            )

        t = self.thresholds
        inc = self.increments
        anomalies = []
        score = 0.0
        movement = self._lip_movement_detected()

        if audio_present and len(self._audio) >= self._min_samples:
            correlation = self.correlation()

            if correlation < t['poor_sync']:
                anomalies.append('poor_audio_visual_sync')
                score += inc['poor_sync']
            elif correlation < t['weak_sync']:
                anomalies.append('weak_audio_visual_sync')
                score += inc['weak_sync']

            avg_openness = spectral.mean(self._lips.values(lambda s: s.openness))
            avg_energy = spectral.mean(self._audio.values(lambda s: s.energy))

            if avg_openness > t['lip_active'] and avg_energy < t['audio_quiet']:
                anomalies.append('lip_movement_without_audio')
                score += inc['lip_without_audio']

            if avg_energy > t['audio_active'] and avg_openness < t['lip_still']:
                anomalies.append('audio_without_lip_movement')
                score += inc['audio_without_lip']

            return AnalyzerResult(
                score=min(score, 1.0),
                confidence=t['confidence_with_audio'],
                anomalies=tuple(anomalies),
                details={
                    'sync_score': correlation,
                    'audio_present': True,
                    'lip_movement_detected': movement,
                    'correlation_score': correlation,
                    'mean_openness': avg_openness,
                    'mean_audio_energy': avg_energy,
                },
            )

        lip_variance = self.lip_variance()
        if movement:
            if lip_variance < t['smooth_variance']:
                anomalies.append('unnaturally_smooth_lip_movement')
                score += inc['smooth_lips']
            if lip_variance > t['erratic_variance']:
                anomalies.append('erratic_lip_movement')
                score += inc['erratic_lips']

        return AnalyzerResult(
            score=min(score, 1.0),
            confidence=t['confidence_without_audio'],
            anomalies=tuple(anomalies),
            details={
                'sync_score': 0.0,
                'audio_present': False,
                'lip_movement_detected': movement,
                'correlation_score': 0.0,
                'lip_variance': lip_variance,
            },
        )

    def correlation(self) -> float:
        """|Pearson r| between the most recent equal-length slices."""
        n = min(len(self._lips), len(self._audio))
        if n == 0:
            return 0.0
        lips = [s.openness for s in self._lips.latest(n)]
        energy = [s.energy for s in self._audio.latest(n)]
        return abs(spectral.pearson(lips, energy))

    def lip_variance(self) -> float:
        if len(self._lips) < 5:
            return 0.0
        return spectral.variance(self._lips.values(lambda s: s.openness))

    def _lip_movement_detected(self) -> bool:
        if len(self._lips) < 5:
            return False
        recent = [s.openness for s in self._lips.latest(10)]
        return spectral.variance(recent) > self.thresholds['movement_variance']

    def reset(self) -> None:
        self._lips.clear()
        self._audio.clear()
