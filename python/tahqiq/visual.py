"""
Visual evidence: whole-frame texture statistics fused with facial geometry.

Generated and face-swapped imagery is frequently smoother and less varied
in colour than camera output.  :class:`TextureAnalyzer` measures that
directly.  Hosts with a trained model can plug it in as a ``classifier``
callable returning a manipulation probability; it then replaces the
texture score and carries more weight in the fusion with the geometry
features.
"""
import logging
from typing import Callable, List, Mapping, Optional

import numpy as np

from .config import merge_overrides
from .geometry import FacialFeatures, score_features
from .sources import Frame
from .types import AnalyzerResult

logger = logging.getLogger(__name__)

# Takes an H x W x 3 float array in [0, 1], returns P(manipulated).
Classifier = Callable[[np.ndarray], float]

GRAY_WEIGHTS = np.array([0.2989, 0.5870, 0.1140])
EPS = 1e-7


class TextureAnalyzer:
    """Global smoothness and colour-balance statistics for one frame."""

    THRESHOLDS = {
        'smoothness_low': 0.08,         # gray variance / gray mean
        'color_balance_high': 2.0,      # max / min channel mean
        'channel_variance_low': 0.005,
    }

    INCREMENTS = {
        'overly_smooth_texture': 0.4,
        'unusual_color_distribution': 0.3,
        'low_color_variance': 0.3,
    }

    def __init__(self, thresholds: Optional[Mapping[str, float]] = None,
                 increments: Optional[Mapping[str, float]] = None):
        self.thresholds = merge_overrides(self.THRESHOLDS, thresholds, 'texture threshold')
        self.increments = merge_overrides(self.INCREMENTS, increments, 'texture increment')

    def analyze(self, frame: Frame) -> AnalyzerResult:
        try:
            pixels = frame.rgb.astype(np.float64) / 255.0
            if pixels.size == 0:
                return AnalyzerResult.failed('Empty frame')

            gray = pixels @ GRAY_WEIGHTS
            smoothness = float(gray.var()) / (float(gray.mean()) + EPS)

            channel_means = pixels.reshape(-1, 3).mean(axis=0)
            channel_vars = pixels.reshape(-1, 3).var(axis=0)
            color_balance = float(channel_means.max()) / (float(channel_means.min()) + EPS)
            avg_channel_var = float(channel_vars.mean())
        except Exception as e:
            logger.warning(f"Texture analysis failed: {e}")
            return AnalyzerResult.failed(str(e))

        t = self.thresholds
        inc = self.increments
        anomalies: List[str] = []
        score = 0.0

        if smoothness < t['smoothness_low']:
            anomalies.append('overly_smooth_texture')
            score += inc['overly_smooth_texture']

        if color_balance > t['color_balance_high']:
            anomalies.append('unusual_color_distribution')
            score += inc['unusual_color_distribution']

        if avg_channel_var < t['channel_variance_low']:
            anomalies.append('low_color_variance')
            score += inc['low_color_variance']

        score = min(score, 1.0)
        return AnalyzerResult(
            score=score,
            confidence=abs(score - 0.5) * 2,
            anomalies=tuple(anomalies),
            details={
                'texture': score,
                'smoothness': smoothness,
                'color_balance': color_balance,
                'channel_variance': avg_channel_var,
            },
        )


class VisualAnalyzer:
    """Per-frame visual score from texture (or a classifier) plus geometry."""

    CLASSIFIER_WEIGHT = 0.7
    TEXTURE_WEIGHT = 0.5

    def __init__(self, classifier: Optional[Classifier] = None,
                 texture: Optional[TextureAnalyzer] = None):
        self.classifier = classifier
        self.texture = texture or TextureAnalyzer()

    def analyze(self, frame: Frame, features: Optional[FacialFeatures] = None) -> AnalyzerResult:
        """Score one frame, fused with geometry ``features`` when given."""
        image_result, used_classifier = self._image_result(frame)
        if features is None:
            return image_result

        feature_result = score_features(features)
        weight = self.CLASSIFIER_WEIGHT if used_classifier else self.TEXTURE_WEIGHT
        score = image_result.score * weight + feature_result.score * (1 - weight)

        return AnalyzerResult(
            score=score,
            confidence=abs(score - 0.5) * 2,
            anomalies=image_result.anomalies + feature_result.anomalies,
            details={
                'image': image_result.details,
                'image_score': image_result.score,
                'feature_score': feature_result.score,
                'image_weight': weight,
                **feature_result.details,
            },
        )

    def _image_result(self, frame: Frame):
        if self.classifier is not None:
            try:
                probability = float(self.classifier(frame.rgb.astype(np.float32) / 255.0))
                return self._classifier_result(probability), True
            except Exception as e:
                logger.warning(f"Classifier failed, falling back to texture: {e}")
        return self.texture.analyze(frame), False

    @staticmethod
    def _classifier_result(probability: float) -> AnalyzerResult:
        if probability > 0.7:
            anomalies = ('high_cnn_score', 'texture_anomalies')
        elif probability > 0.5:
            anomalies = ('texture_anomalies',)
        else:
            anomalies = ()
        return AnalyzerResult(
            score=probability,
            confidence=abs(probability - 0.5) * 2,
            anomalies=anomalies,
            details={'classifier_probability': probability},
        )
