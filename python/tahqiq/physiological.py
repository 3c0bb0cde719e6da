"""
Remote photoplethysmography (rPPG) analysis.

Real skin shows a faint periodic colour change as blood volume pulses
through it, strongest in the green channel.  Face swaps and fully
synthetic faces usually lose that signal or leave it inconsistent between
skin patches.  The analyzer keeps a short colour history per skin region,
looks for a dominant frequency in the 0.8-2.0 Hz band (48-120 bpm) and
scores the absence or weakness of that pulse.
"""
import logging
import math
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple

import numpy as np

from . import spectral
from .buffers import RollingBuffer
from .config import merge_overrides
from .landmarks import SKIN_REGIONS, SkinRegion
from .sources import FaceLandmarks, Frame
from .types import AnalyzerResult, RGBSample

logger = logging.getLogger(__name__)


def estimate_pulse(green: Sequence[float], fps: float = 30.0,
                   band: Tuple[float, float] = (0.8, 2.0),
                   power_floor: float = 0.1,
                   quality_scale: float = 10.0,
                   consistency_scale: float = 5.0) -> Dict[str, Any]:
    """Estimate pulse presence and signal quality from a green-channel series.

    Returns a dict with ``pulse_detected``, ``quality``, ``consistency``,
    ``dominant_freq`` (Hz), ``peak_power`` and ``heart_rate_bpm``.
    """
    g = np.asarray(green, dtype=np.float64).ravel()
    n = g.size
    empty = {
        'pulse_detected': False, 'quality': 0.0, 'consistency': 0.0,
        'dominant_freq': 0.0, 'peak_power': 0.0, 'heart_rate_bpm': 0.0,
    }
    if n < 2 or fps <= 0:
        return empty

    detrended = g - g.mean()
    quality = min(spectral.std(detrended) / quality_scale, 1.0)

    power = spectral.power_spectrum(detrended)
    resolution = fps / n
    lo = int(math.floor(band[0] / resolution))
    hi = min(math.floor(band[1] / resolution), n / 2)
    candidates = power[lo:int(math.ceil(hi))] if hi > lo else np.zeros(0)

    peak_power = 0.0
    dominant_index = 0
    if candidates.size and float(np.max(candidates)) > 0:
        offset = int(np.argmax(candidates))
        dominant_index = lo + offset
        peak_power = float(candidates[offset])

    dominant_freq = dominant_index * resolution
    pulse_detected = bool(band[0] <= dominant_freq <= band[1] and peak_power > power_floor)

    total_power = float(np.sum(power))
    consistency = peak_power / total_power if total_power > 0 else 0.0

    return {
        'pulse_detected': pulse_detected,
        'quality': float(quality),
        'consistency': float(min(consistency * consistency_scale, 1.0)),
        'dominant_freq': float(dominant_freq),
        'peak_power': peak_power,
        'heart_rate_bpm': float(dominant_freq * 60.0) if pulse_detected else 0.0,
    }


class PulseAnalyzer:
    """Streaming pulse analyzer over facial skin regions.

    One instance per video stream.  Each call to :meth:`analyze` samples
    the current frame, appends to the per-region histories and re-scores
    the whole window.
    """

    THRESHOLDS = {
        'fps': 30.0,
        'band_low_hz': 0.8,
        'band_high_hz': 2.0,
        'power_floor': 0.1,
        'quality_scale': 10.0,
        'consistency_scale': 5.0,
        'low_quality': 0.3,
        'low_consistency': 0.4,
        'cross_region_consistency': 0.5,
    }

    INCREMENTS = {
        'low_quality': 0.2,
        'no_pulse': 0.3,
        'inconsistent_signal': 0.15,
        'cross_region': 0.2,
    }

    def __init__(self, regions: Iterable[SkinRegion] = SKIN_REGIONS,
                 capacity: int = 150, min_samples: int = 30,
                 thresholds: Optional[Mapping[str, float]] = None,
                 increments: Optional[Mapping[str, float]] = None):
        self._regions = tuple(regions)
        if not self._regions:
            raise ValueError("PulseAnalyzer needs at least one skin region")
        self._min_samples = max(1, int(min_samples))
        self.thresholds = merge_overrides(self.THRESHOLDS, thresholds, 'pulse threshold')
        self.increments = merge_overrides(self.INCREMENTS, increments, 'pulse increment')
        self._history: Dict[str, RollingBuffer[RGBSample]] = {
            r.name: RollingBuffer(capacity) for r in self._regions
        }

    @property
    def regions(self) -> Tuple[SkinRegion, ...]:
        return self._regions

    def history(self, region: str) -> RollingBuffer:
        return self._history[region]

    def analyze(self, landmarks: FaceLandmarks, frame: Optional[Frame],
                timestamp: float) -> AnalyzerResult:
        """Sample skin colour from ``frame`` and score the updated window."""
        if frame is None or landmarks is None:
            return AnalyzerResult.failed('No frame or landmarks to sample')

        try:
            for region in self._regions:
                rgb = self._region_rgb(landmarks, frame, region)
                if rgb is not None:
                    self.push_rgb(region.name, rgb, timestamp)
        except Exception as e:
            logger.warning(f"Skin colour sampling failed: {e}")
            return AnalyzerResult.failed(str(e))

        return self.evaluate()

    def push_rgb(self, region: str, rgb: Sequence[float], timestamp: float) -> None:
        """Append a pre-averaged colour for ``region``."""
        r, g, b = rgb[:3]
        self._history[region].push(RGBSample(float(r), float(g), float(b), float(timestamp)))

    def evaluate(self) -> AnalyzerResult:
        """Score the current histories without adding a sample."""
        avg_len = sum(len(h) for h in self._history.values()) / len(self._regions)
        if avg_len < self._min_samples:
            return AnalyzerResult.insufficient_data(
                pulse_detected=False,
                signal_quality=0.0,
                signal_consistency=0.0,
                skin_region_quality=0.0,
            )

        t = self.thresholds
        inc = self.increments
        anomalies = []
        score = 0.0
        per_region: Dict[str, Dict[str, Any]] = {}

        for name, samples in self._history.items():
            if len(samples) < self._min_samples:
                continue

            analysis = estimate_pulse(
                samples.values(lambda s: s.g),
                fps=t['fps'],
                band=(t['band_low_hz'], t['band_high_hz']),
                power_floor=t['power_floor'],
                quality_scale=t['quality_scale'],
                consistency_scale=t['consistency_scale'],
            )
            per_region[name] = analysis

            if analysis['quality'] < t['low_quality']:
                anomalies.append(f'low_ppg_quality_{name}')
                score += inc['low_quality']

            if not analysis['pulse_detected']:
                anomalies.append(f'no_pulse_detected_{name}')
                score += inc['no_pulse']

            if analysis['consistency'] < t['low_consistency']:
                anomalies.append(f'inconsistent_signal_{name}')
                score += inc['inconsistent_signal']

        analyses = list(per_region.values())
        n = max(len(analyses), 1)
        avg_quality = sum(a['quality'] for a in analyses) / n
        avg_consistency = sum(a['consistency'] for a in analyses) / n

        if len(analyses) >= 2 and avg_consistency < t['cross_region_consistency']:
            anomalies.append('cross_region_inconsistency')
            score += inc['cross_region']

        rates = [a['heart_rate_bpm'] for a in analyses if a['pulse_detected']]

        return AnalyzerResult(
            score=min(score, 1.0),
            confidence=avg_quality * 0.5 + avg_consistency * 0.5,
            anomalies=tuple(anomalies),
            details={
                'pulse_detected': any(a['pulse_detected'] for a in analyses),
                'signal_quality': avg_quality,
                'signal_consistency': avg_consistency,
                'skin_region_quality': len(analyses) / len(self._regions),
                'heart_rate_bpm': float(np.mean(rates)) if rates else 0.0,
                'regions': per_region,
            },
        )

    def reset(self) -> None:
        for buf in self._history.values():
            buf.clear()

    @staticmethod
    def _region_rgb(landmarks: FaceLandmarks, frame: Frame,
                    region: SkinRegion) -> Optional[Tuple[float, float, float]]:
        """Mean colour of the 3x3 neighbourhoods around a region's points."""
        patches = []
        for x, y, _ in landmarks.points(region.landmarks):
            px = int(math.floor(x * frame.width))
            py = int(math.floor(y * frame.height))
            patch = frame.neighborhood(px, py, radius=1)
            if patch.size:
                patches.append(patch)

        if not patches:
            return None

        pixels = np.vstack(patches)
        r, g, b = pixels.mean(axis=0)
        return float(r), float(g), float(b)
