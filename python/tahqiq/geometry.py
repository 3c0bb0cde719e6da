"""
Temporal facial-geometry features.

Generated faces tend to blink too rarely (or not at all), hold unnaturally
still between frames or jitter from frame to frame, and drift in symmetry.
The trackers here each keep a short history of one geometric quantity;
:class:`FeatureAggregator` feeds them all from the same landmark stream and
:func:`score_features` turns the resulting :class:`FacialFeatures` into an
:class:`AnalyzerResult`.
"""
import math
from collections import deque
from dataclasses import asdict, dataclass
from typing import Deque, List, Mapping, Optional, Sequence

import numpy as np

from . import spectral
from .buffers import RollingBuffer
from .config import merge_overrides
from .landmarks import (
    INNER_LIP_LOWER,
    INNER_LIP_UPPER,
    LEFT_EYE,
    LEFT_EYE_OUTER,
    NOSE_TIP,
    RIGHT_EYE,
    RIGHT_EYE_OUTER,
)
from .sources import FaceLandmarks
from .types import AnalyzerResult

ASSUMED_FPS = 30.0


def eye_aspect_ratio(points: Sequence[Sequence[float]]) -> float:
    """Six-point eye aspect ratio (EAR).

    Points are ordered outer corner, two upper lid points, inner corner,
    two lower lid points.  EAR = (|p1-p5| + |p2-p4|) / (2 |p0-p3|); it
    drops towards 0 as the eye closes.
    """
    if len(points) < 6:
        return 0.0
    p = points
    horizontal = spectral.euclidean_distance(p[0], p[3])
    if horizontal == 0:
        return 0.0
    vertical = spectral.euclidean_distance(p[1], p[5]) + spectral.euclidean_distance(p[2], p[4])
    return vertical / (2.0 * horizontal)


def landmarks_ear(landmarks: FaceLandmarks, eye: Sequence[int]) -> float:
    points = landmarks.points(eye)
    if len(points) < len(eye):
        return 0.0
    return eye_aspect_ratio(points)


class BlinkDetector:
    """Counts blinks from a stream of per-frame EAR values.

    Only blinks that completed inside the buffered EAR window are counted,
    so the rate stays per-minute on long streams.
    """

    def __init__(self, capacity: int = 300, ear_threshold: float = 0.21,
                 consecutive_frames: int = 2, fps: float = ASSUMED_FPS):
        self._ears: RollingBuffer[float] = RollingBuffer(capacity)
        self.ear_threshold = ear_threshold
        self.consecutive_frames = consecutive_frames
        self.fps = fps
        self._frame = 0
        self._blink_frames: Deque[int] = deque(maxlen=capacity)
        self._below = 0

    @property
    def blink_count(self) -> int:
        """Blinks inside the current window."""
        return len(self._blink_frames)

    def add_frame(self, left_ear: float, right_ear: float) -> None:
        ear = (left_ear + right_ear) / 2.0
        self._ears.push(ear)
        self._frame += 1

        if ear < self.ear_threshold:
            self._below += 1
        else:
            if self._below >= self.consecutive_frames:
                self._blink_frames.append(self._frame)
            self._below = 0

        oldest = self._frame - len(self._ears)
        while self._blink_frames and self._blink_frames[0] <= oldest:
            self._blink_frames.popleft()

    def blink_rate(self) -> float:
        """Blinks per minute over the buffered window."""
        minutes = len(self._ears) / (self.fps * 60.0)
        return len(self._blink_frames) / minutes if minutes > 0 else 0.0

    def average_ear(self) -> float:
        return spectral.mean(self._ears.values())

    def reset(self) -> None:
        self._ears.clear()
        self._blink_frames.clear()
        self._frame = 0
        self._below = 0


class JitterDetector:
    """Frame-to-frame landmark instability."""

    def __init__(self, capacity: int = 30):
        self._frames: RollingBuffer[np.ndarray] = RollingBuffer(capacity)

    def add_frame(self, landmarks: FaceLandmarks) -> None:
        self._frames.push(landmarks.array[:, :2])

    def jitter(self) -> float:
        """Std of the mean per-point displacement between consecutive frames."""
        if len(self._frames) < 2:
            return 0.0

        frames = list(self._frames)
        movements = []
        for prev, curr in zip(frames, frames[1:]):
            n = min(len(prev), len(curr))
            if n == 0:
                continue
            step = np.hypot(*(curr[:n] - prev[:n]).T)
            movements.append(float(step.mean()))
        return spectral.std(movements)

    def reset(self) -> None:
        self._frames.clear()


class MouthMovementAnalyzer:
    """Variability of the inner-lip gap."""

    def __init__(self, capacity: int = 90):
        self._gaps: RollingBuffer[float] = RollingBuffer(capacity)

    def add_frame(self, landmarks: FaceLandmarks) -> None:
        upper = landmarks.point(INNER_LIP_UPPER)
        lower = landmarks.point(INNER_LIP_LOWER)
        if upper is None or lower is None:
            return
        self._gaps.push(spectral.euclidean_distance(upper, lower))

    def movement(self) -> float:
        if len(self._gaps) < 2:
            return 0.0
        return spectral.std(self._gaps.values())

    def reset(self) -> None:
        self._gaps.clear()


class HeadPoseAnalyzer:
    """Rough roll/pitch/yaw from eye corners and nose tip, and their stability."""

    def __init__(self, capacity: int = 60):
        self._poses: RollingBuffer[tuple] = RollingBuffer(capacity)

    @staticmethod
    def estimate_pose(landmarks: FaceLandmarks) -> Optional[tuple]:
        nose = landmarks.point(NOSE_TIP)
        left = landmarks.point(LEFT_EYE_OUTER)
        right = landmarks.point(RIGHT_EYE_OUTER)
        if nose is None or left is None or right is None:
            return None

        eye_cx = (left[0] + right[0]) / 2.0
        eye_cy = (left[1] + right[1]) / 2.0
        roll = math.atan2(right[1] - left[1], right[0] - left[0])
        yaw = nose[0] - eye_cx
        pitch = nose[1] - eye_cy
        return roll, pitch, yaw

    def add_frame(self, landmarks: FaceLandmarks) -> None:
        pose = self.estimate_pose(landmarks)
        if pose is not None:
            self._poses.push(pose)

    def stability(self) -> float:
        """1 for a perfectly still head, falling to 0 as pose varies."""
        if len(self._poses) < 2:
            return 1.0
        poses = np.array(list(self._poses))
        avg_std = float(np.mean([spectral.std(poses[:, i]) for i in range(3)]))
        return max(0.0, 1.0 - avg_std * 10.0)

    def reset(self) -> None:
        self._poses.clear()


def face_symmetry(landmarks: FaceLandmarks) -> float:
    """1 minus the mean left/right eye-to-nose distance mismatch."""
    center = landmarks.point(NOSE_TIP)
    if center is None:
        return 1.0

    diffs = []
    for li, ri in zip(LEFT_EYE, RIGHT_EYE):
        lp = landmarks.point(li)
        rp = landmarks.point(ri)
        if lp is None or rp is None:
            continue
        diffs.append(abs(spectral.euclidean_distance(lp, center)
                         - spectral.euclidean_distance(rp, center)))
    if not diffs:
        return 1.0
    return 1.0 - min(sum(diffs) / len(diffs), 1.0)


@dataclass(frozen=True)
class FacialFeatures:
    blink_rate: float
    eye_aspect_ratio: float
    landmark_jitter: float
    face_symmetry: float
    mouth_movement: float
    head_pose_stability: float

    def to_dict(self):
        return asdict(self)


class FeatureAggregator:
    """Feeds one landmark stream to every geometry tracker."""

    def __init__(self, fps: float = ASSUMED_FPS):
        self.blinks = BlinkDetector(fps=fps)
        self.jitter = JitterDetector()
        self.mouth = MouthMovementAnalyzer()
        self.head_pose = HeadPoseAnalyzer()

    def process_frame(self, landmarks: FaceLandmarks, left_ear: Optional[float] = None,
                      right_ear: Optional[float] = None) -> None:
        if left_ear is None:
            left_ear = landmarks_ear(landmarks, LEFT_EYE)
        if right_ear is None:
            right_ear = landmarks_ear(landmarks, RIGHT_EYE)

        self.blinks.add_frame(left_ear, right_ear)
        self.jitter.add_frame(landmarks)
        self.mouth.add_frame(landmarks)
        self.head_pose.add_frame(landmarks)

    def features(self, landmarks: FaceLandmarks) -> FacialFeatures:
        return FacialFeatures(
            blink_rate=self.blinks.blink_rate(),
            eye_aspect_ratio=self.blinks.average_ear(),
            landmark_jitter=self.jitter.jitter(),
            face_symmetry=face_symmetry(landmarks),
            mouth_movement=self.mouth.movement(),
            head_pose_stability=self.head_pose.stability(),
        )

    def reset(self) -> None:
        self.blinks.reset()
        self.jitter.reset()
        self.mouth.reset()
        self.head_pose.reset()


FEATURE_THRESHOLDS = {
    'blink_rate_low': 5.0,          # blinks / minute
    'blink_rate_high': 30.0,
    'ear_low': 0.15,
    'ear_high': 0.35,
    'jitter_high': 0.05,
    'symmetry_low': 0.7,
    'pose_stability_low': 0.5,
}

FEATURE_INCREMENTS = {
    'abnormal_blink_rate': 0.3,
    'unusual_eye_opening': 0.2,
    'high_landmark_instability': 0.3,
    'face_asymmetry': 0.2,
    'unstable_head_pose': 0.15,
}


def score_features(features: FacialFeatures,
                   thresholds: Optional[Mapping[str, float]] = None,
                   increments: Optional[Mapping[str, float]] = None) -> AnalyzerResult:
    """Rule-based suspicion score for a set of geometry features."""
    t = merge_overrides(FEATURE_THRESHOLDS, thresholds, 'feature threshold')
    inc = merge_overrides(FEATURE_INCREMENTS, increments, 'feature increment')
    anomalies: List[str] = []
    score = 0.0

    if features.blink_rate < t['blink_rate_low'] or features.blink_rate > t['blink_rate_high']:
        anomalies.append('abnormal_blink_rate')
        score += inc['abnormal_blink_rate']

    if features.eye_aspect_ratio < t['ear_low'] or features.eye_aspect_ratio > t['ear_high']:
        anomalies.append('unusual_eye_opening')
        score += inc['unusual_eye_opening']

    if features.landmark_jitter > t['jitter_high']:
        anomalies.append('high_landmark_instability')
        score += inc['high_landmark_instability']

    if features.face_symmetry < t['symmetry_low']:
        anomalies.append('face_asymmetry')
        score += inc['face_asymmetry']

    if features.head_pose_stability < t['pose_stability_low']:
        anomalies.append('unstable_head_pose')
        score += inc['unstable_head_pose']

    score = min(score, 1.0)
    return AnalyzerResult(
        score=score,
        confidence=abs(score - 0.5) * 2,
        anomalies=tuple(anomalies),
        details={'features': features.to_dict()},
    )
