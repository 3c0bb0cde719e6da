"""
Error Level Analysis (ELA) and related pixel-level forensics.

A JPEG that has been saved once settles into its quantisation grid;
re-saving it at a known quality changes it only a little.  Regions pasted
in from another source (or re-rendered by a generator) were compressed
differently and stand out in the difference image.  Two cheaper checks
ride along:

  * noise consistency: local Laplacian residue per 64x64 block, whose
    spread across blocks rises when patches come from different cameras
  * gradient-histogram entropy: a proxy for frequency content, unusually
    low for smooth generated imagery
"""
import io
import logging
import math
from typing import Dict, List, Optional, Union

import numpy as np
from PIL import Image

from . import spectral
from .config import merge_overrides
from .sources import Frame
from .types import AnalyzerResult

logger = logging.getLogger(__name__)

ImageInput = Union[bytes, Image.Image, np.ndarray, Frame]

LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114])


def jpeg_recompress(image: Image.Image, quality: int = 75) -> Image.Image:
    """Round-trip ``image`` through an in-memory JPEG at ``quality``."""
    with io.BytesIO() as buffer:
        image.convert('RGB').save(buffer, 'JPEG', quality=int(quality))
        buffer.seek(0)
        with Image.open(buffer) as recompressed:
            return recompressed.convert('RGB')


def to_pil(source: ImageInput) -> Image.Image:
    """Coerce any supported image input to an RGB PIL image."""
    if isinstance(source, Image.Image):
        return source.convert('RGB')
    if isinstance(source, (bytes, bytearray)):
        with Image.open(io.BytesIO(source)) as img:
            return img.convert('RGB')
    if isinstance(source, Frame):
        return Image.fromarray(source.rgb, 'RGB')
    if isinstance(source, np.ndarray):
        return Image.fromarray(Frame(source).rgb, 'RGB')
    raise TypeError(f"Unsupported image input: {type(source).__name__}")


class ELAAnalyzer:
    """Stateless recompression-forensics analyzer."""

    THRESHOLDS = {
        'region_sigma': 2.0,                # cell mean above mean + 2 std
        'suspicious_region_ratio': 0.1,
        'mean_error_scale': 128.0,
        'std_error_scale': 64.0,
        'noise_cv_scale': 0.5,
        'noise_flag': 0.5,
        'frequency_flag': 0.5,
        'entropy_low': 0.5,
        'entropy_high': 0.95,
        'confident_score': 0.3,
    }

    WEIGHTS = {
        'mean_error': 0.3,
        'std_error': 0.2,
        'high_error_regions': 0.15,
        'noise': 0.2,
        'frequency': 0.15,
    }

    def __init__(self, quality: int = 75, amplification: float = 10.0,
                 grid_size: int = 32, noise_block: int = 64, histogram_bins: int = 10,
                 thresholds: Optional[Dict[str, float]] = None,
                 weights: Optional[Dict[str, float]] = None):
        if grid_size <= 0 or noise_block <= 1:
            raise ValueError("grid_size and noise_block must be positive")
        self.quality = int(quality)
        self.amplification = float(amplification)
        self.grid_size = int(grid_size)
        self.noise_block = int(noise_block)
        self.histogram_bins = int(histogram_bins)
        self.thresholds = merge_overrides(self.THRESHOLDS, thresholds, 'ELA threshold')
        self.weights = merge_overrides(self.WEIGHTS, weights, 'ELA weight')

    def error_map(self, image: ImageInput) -> np.ndarray:
        """Per-pixel amplified recompression error, clamped to [0, 255]."""
        return self._error_map(to_pil(image))

    def _error_map(self, original: Image.Image) -> np.ndarray:
        recompressed = jpeg_recompress(original, self.quality)
        a = np.asarray(original, dtype=np.float32)
        b = np.asarray(recompressed, dtype=np.float32)
        error = np.abs(a - b).mean(axis=2) * self.amplification
        return np.minimum(error, 255.0)

    def analyze(self, image: ImageInput) -> AnalyzerResult:
        """Run ELA plus the noise and frequency passes on one image.

        Args:
            image: Encoded image bytes, a PIL image, an RGB array or a
                :class:`Frame`.

        Returns:
            AnalyzerResult with score in [0, 1].  When the image cannot
            be decoded or recompressed an empty result (score and
            confidence 0, no anomalies) is returned with ``error`` set.
        """
        try:
            original = to_pil(image)
            pixels = np.asarray(original, dtype=np.float64)
            errors = self._error_map(original)
        except Exception as e:
            logger.warning(f"Error level analysis failed: {e}")
            return self._empty_result(str(e))

        if errors.size == 0:
            return self._empty_result('Empty image')

        t = self.thresholds
        w = self.weights

        mean_error = float(errors.mean())
        max_error = float(errors.max())
        std_error = float(errors.std())

        regions, cell_count = self._suspicious_regions(errors, mean_error + t['region_sigma'] * std_error)
        noise_score = self._noise_consistency(pixels)
        frequency_score = self._frequency_score(pixels)

        anomalies: List[str] = []
        score = min(mean_error / t['mean_error_scale'], 1.0) * w['mean_error']
        score += min(std_error / t['std_error_scale'], 1.0) * w['std_error']

        if len(regions) > cell_count * t['suspicious_region_ratio']:
            anomalies.append('ela_high_error_regions')
            score += w['high_error_regions']

        if noise_score > t['noise_flag']:
            anomalies.append('noise_inconsistency')
            score += noise_score * w['noise']

        if frequency_score > t['frequency_flag']:
            anomalies.append('frequency_anomaly')
            score += frequency_score * w['frequency']

        score = min(score, 1.0)
        return AnalyzerResult(
            score=score,
            confidence=0.7 if score > t['confident_score'] else 0.4,
            anomalies=tuple(anomalies),
            details={
                'mean_error': mean_error,
                'max_error': max_error,
                'std_error': std_error,
                'suspicious_region_count': len(regions),
                'suspicious_regions': regions,
                'noise_score': noise_score,
                'frequency_score': frequency_score,
            },
        )

    def _suspicious_regions(self, errors: np.ndarray, threshold: float):
        g = self.grid_size
        height, width = errors.shape
        rows = math.ceil(height / g)
        cols = math.ceil(width / g)

        regions = []
        for gy in range(rows):
            for gx in range(cols):
                cell = errors[gy * g:(gy + 1) * g, gx * g:(gx + 1) * g]
                avg = float(cell.mean())
                if avg > threshold:
                    regions.append({
                        'x': gx * g + g / 2,
                        'y': gy * g + g / 2,
                        'intensity': min(avg / 255.0, 1.0),
                    })
        return regions, rows * cols

    def _noise_consistency(self, pixels: np.ndarray) -> float:
        """Coefficient of variation of per-block Laplacian residue."""
        try:
            b = self.noise_block
            height, width = pixels.shape[:2]
            blocks_x, blocks_y = width // b, height // b
            if blocks_x < 2 or blocks_y < 2:
                return 0.0

            rgb = pixels[:, :, :3]
            residue = np.abs(2 * rgb[:-1, :-1] - rgb[:-1, 1:] - rgb[1:, :-1])

            block_noise = []
            for by in range(blocks_y):
                for bx in range(blocks_x):
                    block = residue[by * b:(by + 1) * b - 1, bx * b:(bx + 1) * b - 1]
                    block_noise.append(float(block.mean()))

            m = spectral.mean(block_noise)
            if m == 0:
                return 0.0
            cv = spectral.std(block_noise) / m
            return min(cv / self.thresholds['noise_cv_scale'], 1.0)
        except Exception as e:
            logger.warning(f"Noise consistency analysis failed: {e}")
            return 0.0

    def _frequency_score(self, pixels: np.ndarray) -> float:
        """Score the normalized entropy of the luminance gradient histogram."""
        try:
            lum = pixels[:, :, :3] @ LUMA_WEIGHTS
            if lum.shape[0] < 3 or lum.shape[1] < 3:
                return 0.0

            gx = lum[1:-1, 2:] - lum[1:-1, :-2]
            gy = lum[2:, 1:-1] - lum[:-2, 1:-1]
            gradients = np.sqrt(gx * gx + gy * gy).ravel()
            max_grad = float(gradients.max())
            if max_grad == 0:
                return 0.0

            bins = self.histogram_bins
            idx = np.minimum(np.floor(gradients / max_grad * bins).astype(int), bins - 1)
            histogram = np.bincount(idx, minlength=bins)
            entropy = spectral.shannon_entropy(histogram)

            t = self.thresholds
            if entropy < t['entropy_low']:
                return 1.0 - entropy
            if entropy > t['entropy_high']:
                return (entropy - t['entropy_high']) * 10
            return 0.0
        except Exception as e:
            logger.warning(f"Frequency analysis failed: {e}")
            return 0.0

    @staticmethod
    def _empty_result(error: str) -> AnalyzerResult:
        return AnalyzerResult(
            score=0.0,
            confidence=0.0,
            anomalies=(),
            details={
                'mean_error': 0.0,
                'max_error': 0.0,
                'std_error': 0.0,
                'suspicious_region_count': 0,
                'suspicious_regions': [],
                'noise_score': 0.0,
                'frequency_score': 0.0,
                'error': error,
            },
        )
