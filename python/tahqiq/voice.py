"""
Voice spectral analysis for synthetic speech detection.

Text-to-speech and voice-conversion models tend to produce audio that is
too regular: near-identical spectra from window to window, band-limited
output, flat pitch and a steady loudness envelope.  Each check below
looks for one of those regularities and adds a fixed increment to the
suspicion score.

Checks:
  1. Spectral consistency   : correlation of consecutive window spectra
  2. High-frequency content : share of energy in the top 30% of bins
  3. Spectral entropy       : how evenly energy spreads over frequency
  4. Pitch variability      : spread of the zero-crossing rate
  5. Amplitude envelope     : spread of short-time RMS
  6. Band artifacts         : isolated spectral spikes (> mean + 3 sigma)
"""
import logging
from typing import Any, Dict, List, Mapping, Optional, Union

import numpy as np

from . import spectral
from .config import merge_overrides
from .sources import AudioClip
from .types import AnalyzerResult

logger = logging.getLogger(__name__)


def _below(value: Optional[float], limit: float) -> bool:
    return value is not None and value < limit


def _above(value: Optional[float], limit: float) -> bool:
    return value is not None and value > limit


class VoiceAnalyzer:
    """Stateless synthetic-voice analyzer; safe to share between threads."""

    SPECTRUM_WINDOW = 2048
    FRAME_WINDOW = 1024
    FRAME_HOP = 512

    THRESHOLDS = {
        'spectral_consistency_high': 0.8,   # consecutive spectra nearly identical
        'high_freq_ratio_low': 0.1,         # band-limited output
        'entropy_low': 0.2,
        'pitch_variability_low': 0.1,       # std of ZCR across frames
        'envelope_consistency_high': 0.9,
        'artifact_sigma': 3.0,
        'high_freq_start': 0.7,             # top 30% of bins
        'confidence': 0.6,
    }

    INCREMENTS = {
        'overly_consistent_spectrum': 0.4,
        'missing_high_frequencies': 0.3,
        'unnatural_energy_distribution': 0.3,
        'low_pitch_variability': 0.4,
        'overly_consistent_amplitude': 0.2,
        'frequency_band_artifacts': 0.5,
    }

    def __init__(self, thresholds: Optional[Mapping[str, float]] = None,
                 increments: Optional[Mapping[str, float]] = None):
        self.thresholds = merge_overrides(self.THRESHOLDS, thresholds, 'voice threshold')
        self.increments = merge_overrides(self.INCREMENTS, increments, 'voice increment')

    def analyze_wav(self, audio_bytes: bytes) -> AnalyzerResult:
        """Decode WAV bytes and analyze the first channel."""
        try:
            clip = AudioClip.from_wav_bytes(audio_bytes)
        except Exception as e:
            logger.warning(f"Failed to decode audio: {e}")
            return AnalyzerResult.failed(f'Audio decode failed: {e}')
        return self.analyze(clip)

    def analyze(self, audio: Union[AudioClip, np.ndarray]) -> AnalyzerResult:
        """Score a mono audio buffer.

        Args:
            audio: An :class:`AudioClip` or a 1-D float array of samples.

        Returns:
            AnalyzerResult with score in [0, 1] (higher = more likely
            synthetic) and the per-check measurements in ``details``.
        """
        try:
            samples = audio.samples if isinstance(audio, AudioClip) else np.asarray(audio, dtype=np.float64).ravel()
            features = self.extract_features(samples)
        except Exception as e:
            logger.warning(f"Voice analysis failed: {e}")
            return AnalyzerResult.failed(str(e))

        t = self.thresholds
        inc = self.increments
        anomalies: List[str] = []
        score = 0.0

        if features['spectral_consistency'] > t['spectral_consistency_high']:
            anomalies.append('overly_consistent_spectrum')
            score += inc['overly_consistent_spectrum']

        if _below(features['high_freq_ratio'], t['high_freq_ratio_low']):
            anomalies.append('missing_high_frequencies')
            score += inc['missing_high_frequencies']

        if _below(features['spectral_entropy'], t['entropy_low']):
            anomalies.append('unnatural_energy_distribution')
            score += inc['unnatural_energy_distribution']

        if _below(features['pitch_variability'], t['pitch_variability_low']):
            anomalies.append('low_pitch_variability')
            score += inc['low_pitch_variability']

        if _above(features['envelope_consistency'], t['envelope_consistency_high']):
            anomalies.append('overly_consistent_amplitude')
            score += inc['overly_consistent_amplitude']

        if features['artifact_bins'] > 0:
            anomalies.append('frequency_band_artifacts')
            score += inc['frequency_band_artifacts']

        return AnalyzerResult(
            score=min(score, 1.0),
            confidence=t['confidence'],
            anomalies=tuple(anomalies),
            details=features,
        )

    def extract_features(self, samples: np.ndarray) -> Dict[str, Any]:
        """Measure every check's statistic without scoring it.

        A statistic with nothing to measure (no full spectrum window, no
        ZCR/RMS frame) is None and its check is skipped.
        """
        spectra = self._window_spectra(samples)
        avg_spectrum = np.mean(spectra, axis=0) if spectra else np.zeros(0)

        zcr = spectral.short_time_zcr(samples, self.FRAME_WINDOW, self.FRAME_HOP)
        envelope = spectral.short_time_rms(samples, self.FRAME_WINDOW, self.FRAME_HOP)

        return {
            'spectral_consistency': self._spectral_consistency(spectra),
            'high_freq_ratio': self._high_freq_ratio(avg_spectrum) if spectra else None,
            'spectral_entropy': spectral.shannon_entropy(avg_spectrum) if spectra else None,
            'pitch_variability': spectral.std(zcr) if zcr.size else None,
            'envelope_consistency': self._envelope_consistency(envelope) if envelope.size else None,
            'artifact_bins': self._artifact_bins(avg_spectrum),
            'windows': len(spectra),
            'samples': int(np.asarray(samples).size),
        }

    # ------------------------------------------------------------------
    # Individual measurements
    # ------------------------------------------------------------------
    def _window_spectra(self, samples: np.ndarray) -> List[np.ndarray]:
        # floor(len / w) windows, the last one may end exactly at len
        w = self.SPECTRUM_WINDOW
        return [spectral.magnitude_spectrum(samples[i:i + w], half=True)
                for i in range(0, len(samples) - w + 1, w)]

    @staticmethod
    def _spectral_consistency(spectra: List[np.ndarray]) -> float:
        if len(spectra) < 2:
            return 0.0
        correlations = [abs(spectral.pearson(a, b)) for a, b in zip(spectra, spectra[1:])]
        return spectral.mean(correlations)

    def _high_freq_ratio(self, spectrum: np.ndarray) -> float:
        total = float(np.sum(spectrum))
        if spectrum.size == 0 or total <= 0:
            return 0.0
        start = int(np.floor(spectrum.size * self.thresholds['high_freq_start']))
        return float(np.sum(spectrum[start:])) / total

    @staticmethod
    def _envelope_consistency(envelope: np.ndarray) -> float:
        m = spectral.mean(envelope)
        if m <= 0:
            return 0.0
        return 1.0 - min(spectral.std(envelope) / m, 1.0)

    def _artifact_bins(self, spectrum: np.ndarray) -> int:
        if spectrum.size == 0:
            return 0
        limit = spectral.mean(spectrum) + self.thresholds['artifact_sigma'] * spectral.std(spectrum)
        return int(np.count_nonzero(spectrum > limit))
