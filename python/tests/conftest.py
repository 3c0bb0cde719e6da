"""Shared pytest fixtures for Tahqiq tests."""

import io
import wave

import numpy as np
import pytest

from tahqiq.landmarks import (
    LEFT_EYE,
    LIP_LOWER,
    LIP_OUTER,
    LIP_UPPER,
    INNER_LIP_LOWER,
    INNER_LIP_UPPER,
    MESH_SIZE,
    NOSE_TIP,
    RIGHT_EYE,
)
from tahqiq.sources import FaceLandmarks, Frame


# ---------------------------------------------------------------------------
# Face geometry
# ---------------------------------------------------------------------------

# Left eye in EAR order.  The right eye mirrors it about x = 0.5; its mesh
# indices run inner corner first, so the left points are re-ordered to match.
_LEFT_EYE_POINTS = [
    (0.35, 0.400), (0.38, 0.385), (0.42, 0.385),
    (0.45, 0.400), (0.42, 0.415), (0.38, 0.415),
]


def _build_face(openness: float = 0.05, offset=(0.0, 0.0), seed: int = 0) -> FaceLandmarks:
    rng = np.random.RandomState(seed)
    pts = np.zeros((MESH_SIZE, 3))
    pts[:, 0] = rng.uniform(0.3, 0.7, MESH_SIZE)
    pts[:, 1] = rng.uniform(0.2, 0.8, MESH_SIZE)

    for idx, (x, y) in zip(LEFT_EYE, _LEFT_EYE_POINTS):
        pts[idx, :2] = (x, y)
    mirrored = [_LEFT_EYE_POINTS[i] for i in (3, 2, 1, 0, 5, 4)]
    for idx, (x, y) in zip(RIGHT_EYE, mirrored):
        pts[idx, :2] = (1.0 - x, y)

    pts[NOSE_TIP, :2] = (0.5, 0.55)

    pts[list(LIP_OUTER), 0] = np.linspace(0.42, 0.58, len(LIP_OUTER))
    pts[list(LIP_UPPER), 1] = 0.70
    pts[list(LIP_LOWER), 1] = 0.70 + openness
    pts[INNER_LIP_UPPER, :2] = (0.5, 0.70)
    pts[INNER_LIP_LOWER, :2] = (0.5, 0.70 + openness)

    pts[:, 0] += offset[0]
    pts[:, 1] += offset[1]
    return FaceLandmarks(pts)


@pytest.fixture()
def face_landmarks():
    """A symmetric, open-eyed 468-point face."""
    return _build_face()


@pytest.fixture()
def landmark_factory():
    """Build faces with a chosen mouth openness / global offset."""
    return _build_face


# ---------------------------------------------------------------------------
# Frames and images
# ---------------------------------------------------------------------------


@pytest.fixture()
def flat_frame():
    """Uniform mid-gray frame."""
    return Frame(np.full((120, 160, 3), 128, dtype=np.uint8))


@pytest.fixture()
def textured_frame():
    """High-contrast gray speckle: busy texture, balanced colour."""
    rng = np.random.RandomState(1)
    gray = (rng.randint(0, 2, (120, 160)) * 255).astype(np.uint8)
    return Frame(np.stack([gray] * 3, axis=-1))


def _png_bytes(arr: np.ndarray) -> bytes:
    from PIL import Image

    buf = io.BytesIO()
    Image.fromarray(arr, "RGB").save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture()
def uniform_png_bytes():
    """256x256 uniform gray image, losslessly encoded."""
    return _png_bytes(np.full((256, 256, 3), 128, dtype=np.uint8))


@pytest.fixture()
def spliced_png_bytes():
    """Uniform gray image with a pasted 64x64 patch of raw noise."""
    rng = np.random.RandomState(2)
    arr = np.full((256, 256, 3), 128, dtype=np.uint8)
    arr[96:160, 96:160] = rng.randint(0, 256, (64, 64, 3)).astype(np.uint8)
    return _png_bytes(arr)


@pytest.fixture()
def sample_jpeg_bytes():
    """Minimal synthetic JPEG buffer (gradient image)."""
    from PIL import Image

    img = Image.new("RGB", (64, 64))
    pixels = img.load()
    for y in range(64):
        for x in range(64):
            pixels[x, y] = (x * 4, y * 4, 128)
    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=90)
    return buf.getvalue()


# ---------------------------------------------------------------------------
# Audio
# ---------------------------------------------------------------------------


def make_wav(samples: np.ndarray, sr: int = 16000, channels: int = 1) -> bytes:
    """Encode float samples in [-1, 1] to 16-bit PCM WAV."""
    pcm = (np.clip(samples, -1, 1) * 32767).astype(np.int16)
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)
        wf.setframerate(sr)
        wf.writeframes(pcm.tobytes())
    return buf.getvalue()


@pytest.fixture()
def wav_factory():
    return make_wav


@pytest.fixture()
def sample_wav_bytes():
    """Generate a 0.5 s mono 16-bit PCM WAV at 16 kHz (440 Hz sine)."""
    sr = 16000
    t = np.arange(int(sr * 0.5)) / sr
    return make_wav(0.5 * np.sin(2 * np.pi * 440 * t), sr)


@pytest.fixture()
def natural_wav_bytes():
    """Generate a longer WAV with harmonic content, jitter, and noise."""
    rng = np.random.RandomState(3)
    sr = 16000
    n_samples = int(sr * 2.0)

    # F0 with jitter
    f0 = 120.0
    f0_jitter = f0 * (1 + 0.01 * np.cumsum(rng.randn(n_samples) * 0.005))
    phase = 2 * np.pi * np.cumsum(f0_jitter / sr)

    signal = np.zeros(n_samples)
    for h in range(1, 6):
        amp = (1.0 / h) * (1 + 0.03 * rng.randn(n_samples))
        signal += amp * np.sin(h * phase)

    signal += rng.randn(n_samples) * 0.02
    signal = signal / (np.max(np.abs(signal)) + 1e-10) * 0.7
    return make_wav(signal, sr)
