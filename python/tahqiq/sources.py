"""
Narrow wrappers around the signals handed to us by external collaborators.

Landmark detectors, frame grabbers and audio stacks each have their own
object shapes.  The analyzers only ever need point lookup by index, RGB
sampling and a mono PCM buffer, so hosts adapt their library objects into
these three classes and the rest of the package never sees anything else.
"""
import io
import wave
from typing import Iterable, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from . import spectral


Point = Tuple[float, float, float]


class FaceLandmarks:
    """Ordered facial geometry points ``(x, y, z)`` with x, y in [0, 1]."""

    def __init__(self, points: np.ndarray):
        arr = np.array(points, dtype=np.float64)
        if arr.ndim != 2 or arr.shape[1] not in (2, 3):
            raise ValueError(f"Expected an (N, 2) or (N, 3) point array, got shape {arr.shape}")
        if arr.shape[1] == 2:
            arr = np.hstack([arr, np.zeros((arr.shape[0], 1))])
        self._points = arr
        self._points.setflags(write=False)

    @classmethod
    def from_points(cls, points: Iterable[Sequence[float]]) -> 'FaceLandmarks':
        """Build from any iterable of point-like objects.

        Accepts plain tuples as well as objects exposing ``x``/``y``/``z``
        attributes (the shape most landmark libraries return).
        """
        rows = []
        for p in points:
            if hasattr(p, 'x'):
                rows.append((p.x, p.y, getattr(p, 'z', 0.0)))
            else:
                rows.append(tuple(p) + (0.0,) * (3 - len(p)))
        if not rows:
            return cls(np.zeros((0, 3)))
        return cls(np.array(rows, dtype=np.float64))

    @property
    def array(self) -> np.ndarray:
        return self._points

    def point(self, index: int) -> Optional[Point]:
        if 0 <= index < len(self._points):
            x, y, z = self._points[index]
            return float(x), float(y), float(z)
        return None

    def points(self, indices: Iterable[int]) -> List[Point]:
        """Look up several indices, silently dropping the missing ones."""
        found = []
        for i in indices:
            p = self.point(i)
            if p is not None:
                found.append(p)
        return found

    def __len__(self) -> int:
        return len(self._points)


class Frame:
    """Read-only RGB pixel access for one captured image."""

    def __init__(self, rgb: np.ndarray):
        arr = np.asarray(rgb)
        if arr.ndim == 2:
            arr = np.stack([arr] * 3, axis=-1)
        if arr.ndim != 3 or arr.shape[2] < 3:
            raise ValueError(f"Expected an H x W x 3 image, got shape {arr.shape}")
        self._rgb = np.ascontiguousarray(arr[:, :, :3]).astype(np.uint8, copy=False)

    @classmethod
    def from_bgr(cls, bgr: np.ndarray) -> 'Frame':
        """Wrap an OpenCV (BGR) frame."""
        return cls(cv2.cvtColor(bgr, cv2.COLOR_BGR2RGB))

    @classmethod
    def from_bytes(cls, image_bytes: bytes) -> Optional['Frame']:
        """Decode an encoded image; ``None`` if the bytes are not an image."""
        nparr = np.frombuffer(image_bytes, np.uint8)
        img = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
        if img is None:
            return None
        return cls.from_bgr(img)

    @property
    def rgb(self) -> np.ndarray:
        return self._rgb

    @property
    def width(self) -> int:
        return self._rgb.shape[1]

    @property
    def height(self) -> int:
        return self._rgb.shape[0]

    def rgb_at(self, x: int, y: int) -> Optional[Tuple[int, int, int]]:
        if 0 <= x < self.width and 0 <= y < self.height:
            r, g, b = self._rgb[y, x]
            return int(r), int(g), int(b)
        return None

    def neighborhood(self, x: int, y: int, radius: int = 1) -> np.ndarray:
        """In-frame pixels of the (2r+1) square around (x, y), as (K, 3)."""
        x0, x1 = max(0, x - radius), min(self.width, x + radius + 1)
        y0, y1 = max(0, y - radius), min(self.height, y + radius + 1)
        if x0 >= x1 or y0 >= y1:
            return np.zeros((0, 3))
        return self._rgb[y0:y1, x0:x1].reshape(-1, 3).astype(np.float64)


# ---------------------------------------------------------------------------
# Audio
# ---------------------------------------------------------------------------

def decode_wav(audio_bytes: bytes) -> Tuple[np.ndarray, int]:
    """Decode WAV bytes to first-channel float32 samples + sample rate.

    Supports 8-bit, 16-bit, 24-bit, and 32-bit PCM WAV files.
    """
    with wave.open(io.BytesIO(audio_bytes), 'rb') as wf:
        sr = wf.getframerate()
        n_channels = wf.getnchannels()
        sampwidth = wf.getsampwidth()
        raw = wf.readframes(wf.getnframes())

    if sampwidth == 1:
        samples = np.frombuffer(raw, dtype=np.uint8).astype(np.float32) / 128.0 - 1.0
    elif sampwidth == 2:
        samples = np.frombuffer(raw, dtype=np.int16).astype(np.float32) / 32768.0
    elif sampwidth == 3:
        raw_arr = np.frombuffer(raw, dtype=np.uint8).reshape(-1, 3)
        samples = (raw_arr[:, 0].astype(np.int32)
                   | (raw_arr[:, 1].astype(np.int32) << 8)
                   | (raw_arr[:, 2].astype(np.int32) << 16))
        samples = np.where(samples >= 0x800000, samples - 0x1000000, samples)
        samples = samples.astype(np.float32) / 8388608.0
    elif sampwidth == 4:
        samples = np.frombuffer(raw, dtype=np.int32).astype(np.float32) / 2147483648.0
    else:
        raise ValueError(f"Unsupported sample width: {sampwidth}")

    if n_channels > 1:
        samples = samples.reshape(-1, n_channels)[:, 0]

    return samples, sr


class AudioClip:
    """Mono PCM float buffer covering one time window."""

    def __init__(self, samples: np.ndarray, sample_rate: int = 16000):
        arr = np.asarray(samples, dtype=np.float32)
        if arr.ndim == 2:
            # (frames, channels) -> first channel
            arr = arr[:, 0]
        self._samples = arr.ravel()
        self.sample_rate = int(sample_rate)

    @classmethod
    def from_wav_bytes(cls, audio_bytes: bytes) -> 'AudioClip':
        samples, sr = decode_wav(audio_bytes)
        return cls(samples, sr)

    @property
    def samples(self) -> np.ndarray:
        return self._samples

    @property
    def duration(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return len(self._samples) / self.sample_rate

    def rms(self) -> float:
        return spectral.rms(self._samples)

    def __len__(self) -> int:
        return len(self._samples)


# ---------------------------------------------------------------------------
# Video
# ---------------------------------------------------------------------------

def read_video_frames(path: str, max_frames: int = 30) -> Tuple[List[Frame], float]:
    """Decode up to ``max_frames`` evenly spaced frames from a video file.

    Returns (frames, fps).  The capture is released on every path.
    """
    cap = cv2.VideoCapture(path)
    try:
        if not cap.isOpened():
            raise ValueError(f"Failed to open video: {path}")

        fps = cap.get(cv2.CAP_PROP_FPS) or 30.0
        total_frames = int(cap.get(cv2.CAP_PROP_FRAME_COUNT))

        # Sample evenly when the clip is longer than the budget
        if max_frames > 0 and total_frames > max_frames:
            sample_indices = set(np.linspace(0, total_frames - 1, max_frames, dtype=int))
        else:
            sample_indices = None

        frames = []
        idx = 0
        while True:
            ret, bgr = cap.read()
            if not ret:
                break
            if sample_indices is None or idx in sample_indices:
                frames.append(Frame.from_bgr(bgr))
            idx += 1
            if max_frames > 0 and len(frames) >= max_frames:
                break

        return frames, fps
    finally:
        cap.release()
