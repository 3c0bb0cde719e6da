"""
File and container metadata forensics.

Cheap checks on facts about the file itself rather than its pixels or
samples: impossible timestamps, modern codecs on supposedly old files,
undersized videos and the square power-of-two resolutions image
generators favour.
"""
import logging
import mimetypes
import os
import time
from dataclasses import asdict, dataclass
from typing import Iterable, List, Mapping, Optional, Sequence

import cv2
from PIL import Image

from .config import merge_overrides
from .types import AnalyzerResult

logger = logging.getLogger(__name__)

MS_PER_YEAR = 1000 * 60 * 60 * 24 * 365


@dataclass(frozen=True)
class FileFacts:
    """Everything the metadata analyzer looks at; times in epoch ms."""
    name: str
    mime_type: str
    size: int
    last_modified: float
    width: Optional[int] = None
    height: Optional[int] = None
    duration: Optional[float] = None
    codec: Optional[str] = None

    @property
    def aspect_ratio(self) -> float:
        if not self.width or not self.height:
            return 0.0
        return self.width / self.height

    @property
    def has_dimensions(self) -> bool:
        return bool(self.width) and bool(self.height)

    def to_dict(self):
        d = asdict(self)
        d['aspect_ratio'] = self.aspect_ratio
        return d

    @classmethod
    def from_path(cls, path: str) -> 'FileFacts':
        """Collect facts from a file on disk.

        Size and modification time come from ``os.stat``, the MIME type
        from the extension.  Dimensions are probed with Pillow for images
        and OpenCV for videos; a probe failure leaves them ``None``.
        """
        st = os.stat(path)
        mime_type = mimetypes.guess_type(path)[0] or 'application/octet-stream'
        width = height = None
        duration = None
        codec = None

        if mime_type.startswith('image/'):
            try:
                with Image.open(path) as img:
                    width, height = img.size
                    codec = (img.format or '').lower() or None
            except OSError as e:
                logger.warning(f"Image probe failed for {path}: {e}")
        elif mime_type.startswith('video/'):
            width, height, duration, codec = _probe_video(path)

        return cls(
            name=os.path.basename(path),
            mime_type=mime_type,
            size=st.st_size,
            last_modified=st.st_mtime * 1000.0,
            width=width,
            height=height,
            duration=duration,
            codec=codec,
        )


def _fourcc_to_str(fourcc: int) -> Optional[str]:
    chars = ''.join(chr((fourcc >> (8 * i)) & 0xFF) for i in range(4))
    chars = chars.strip('\x00 ').lower()
    return chars or None


def _probe_video(path: str):
    cap = cv2.VideoCapture(path)
    try:
        if not cap.isOpened():
            logger.warning(f"Video probe could not open {path}")
            return None, None, None, None
        width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)) or None
        height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT)) or None
        fps = cap.get(cv2.CAP_PROP_FPS) or 0.0
        frames = cap.get(cv2.CAP_PROP_FRAME_COUNT) or 0.0
        duration = frames / fps if fps > 0 else None
        codec = _fourcc_to_str(int(cap.get(cv2.CAP_PROP_FOURCC)))
        return width, height, duration, codec
    finally:
        cap.release()


class MetadataAnalyzer:
    """Rule-based metadata analyzer.  Stateless."""

    COMMON_RESOLUTIONS = (
        (1920, 1080), (1280, 720), (640, 480), (3840, 2160),
        (854, 480), (1280, 960), (1024, 768),
    )
    STANDARD_ASPECTS = (16 / 9, 4 / 3, 1.0, 9 / 16)
    AI_SIDES = (256, 512, 1024)

    THRESHOLDS = {
        'clock_skew_ms': 60_000,
        'codec_age_years': 5.0,
        'small_video_bytes': 100_000,
        'aspect_tolerance': 0.01,
        'resolution_multiple': 16,
    }

    INCREMENTS = {
        'future_timestamp': 0.8,
        'codec_timestamp_mismatch': 0.3,
        'unusually_small_video': 0.2,
        'suspicious_resolution': 0.4,
        'unusual_aspect_ratio': 0.2,
        'ai_common_resolution': 0.5,
        'ai_image_512': 0.6,
        'ai_image_1024': 0.5,
    }

    def __init__(self, modern_codecs: Sequence[str] = ('av1', 'vp9'),
                 thresholds: Optional[Mapping[str, float]] = None,
                 increments: Optional[Mapping[str, float]] = None):
        self.modern_codecs = tuple(c.lower() for c in modern_codecs)
        self.thresholds = merge_overrides(self.THRESHOLDS, thresholds, 'metadata threshold')
        self.increments = merge_overrides(self.INCREMENTS, increments, 'metadata increment')

    def analyze(self, facts: FileFacts, now: Optional[float] = None) -> AnalyzerResult:
        """Score one file.

        Args:
            facts: The file's metadata.
            now: Current time in epoch ms; defaults to the wall clock.
        """
        if now is None:
            now = time.time() * 1000.0

        t = self.thresholds
        inc = self.increments
        anomalies: List[str] = []
        patterns: List[str] = []
        score = 0.0
        mime = (facts.mime_type or '').lower()

        if facts.last_modified > now + t['clock_skew_ms']:
            anomalies.append('future_timestamp')
            patterns.append('File modified in the future - impossible timestamp')
            score += inc['future_timestamp']

        age_years = (now - facts.last_modified) / MS_PER_YEAR
        codec_text = f"{mime} {(facts.codec or '').lower()}"
        if age_years > t['codec_age_years'] and any(c in codec_text for c in self.modern_codecs):
            anomalies.append('codec_timestamp_mismatch')
            patterns.append('Old file timestamp but modern codec')
            score += inc['codec_timestamp_mismatch']

        details = {'file_info': facts.to_dict(), 'suspicious_patterns': patterns}

        if mime.startswith('video/'):
            if facts.size < t['small_video_bytes']:
                anomalies.append('unusually_small_video')
                patterns.append('Video file size too small for claimed duration')
                score += inc['unusually_small_video']

            if facts.has_dimensions:
                score += self._video_resolution_checks(facts, anomalies, patterns)
                return AnalyzerResult(
                    score=min(score, 1.0),
                    confidence=0.7 if anomalies else 0.3,
                    anomalies=tuple(anomalies),
                    details=details,
                )

        elif mime.startswith('image/') and facts.has_dimensions:
            if (facts.width, facts.height) == (512, 512):
                anomalies.append('ai_common_resolution')
                patterns.append('512x512 is common AI image generation size')
                score += inc['ai_image_512']
            elif (facts.width, facts.height) == (1024, 1024):
                anomalies.append('ai_common_resolution')
                patterns.append('1024x1024 is common AI image generation size')
                score += inc['ai_image_1024']

        confidence = min(0.6 + 0.1 * len(anomalies), 1.0) if anomalies else 0.3
        return AnalyzerResult(
            score=min(score, 1.0),
            confidence=confidence,
            anomalies=tuple(anomalies),
            details=details,
        )

    def analyze_path(self, path: str, now: Optional[float] = None) -> AnalyzerResult:
        try:
            facts = FileFacts.from_path(path)
        except OSError as e:
            logger.warning(f"Metadata probe failed: {e}")
            return AnalyzerResult.failed(str(e))
        return self.analyze(facts, now=now)

    def analyze_batch(self, batch: Iterable[FileFacts],
                      now: Optional[float] = None) -> List[AnalyzerResult]:
        """Score several files against the same clock reading."""
        if now is None:
            now = time.time() * 1000.0
        return [self.analyze(facts, now=now) for facts in batch]

    def _video_resolution_checks(self, facts: FileFacts, anomalies: List[str],
                                 patterns: List[str]) -> float:
        t = self.thresholds
        inc = self.increments
        added = 0.0
        w, h = facts.width, facts.height
        multiple = int(t['resolution_multiple'])

        if (w, h) not in self.COMMON_RESOLUTIONS and w % multiple == 0 and h % multiple == 0:
            anomalies.append('suspicious_resolution')
            patterns.append(f'Non-standard but AI-friendly resolution (divisible by {multiple})')
            added += inc['suspicious_resolution']

        aspect = facts.aspect_ratio
        if aspect > 0 and not any(abs(aspect - r) < t['aspect_tolerance'] for r in self.STANDARD_ASPECTS):
            anomalies.append('unusual_aspect_ratio')
            patterns.append(f'Unusual aspect ratio: {aspect:.2f}')
            added += inc['unusual_aspect_ratio']

        if w in self.AI_SIDES or h in self.AI_SIDES:
            anomalies.append('ai_common_resolution')
            patterns.append('Resolution matches common AI generation sizes (256, 512, 1024)')
            added += inc['ai_common_resolution']

        return added
