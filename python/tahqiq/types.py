"""Type definitions for Tahqiq."""
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterable, Any, Mapping, Optional, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from .sources import AudioClip, FaceLandmarks, Frame


def _clamp01(value: float) -> float:
    value = float(value)
    if value != value:  # NaN
        return 0.0
    return min(1.0, max(0.0, value))


def _dedupe(tags: Iterable[str]) -> Tuple[str, ...]:
    seen = []
    for tag in tags:
        if tag not in seen:
            seen.append(tag)
    return tuple(seen)


def _plain(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _plain(v) for k, v in value.items()}
    return value


class Modality(Enum):
    """Evidence channels understood by the ensemble."""
    VISUAL = "visual"
    METADATA = "metadata"
    PHYSIOLOGICAL = "physiological"
    LIP_SYNC = "lipSync"
    VOICE = "voice"


@dataclass(frozen=True)
class AnalyzerResult:
    """Output of a single analyzer call.

    ``score`` is a suspicion value (higher = more likely manipulated) and
    ``confidence`` how much the analyzer trusts it.  Both are clamped to
    [0, 1] on construction.  ``details`` is a read-only copy of the
    mapping passed in.
    """
    score: float
    confidence: float
    anomalies: Tuple[str, ...] = ()
    details: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, 'score', _clamp01(self.score))
        object.__setattr__(self, 'confidence', _clamp01(self.confidence))
        object.__setattr__(self, 'anomalies', _dedupe(self.anomalies))
        object.__setattr__(self, 'details', MappingProxyType(dict(self.details)))

    @classmethod
    def insufficient_data(cls, **details: Any) -> 'AnalyzerResult':
        """Zero-score result for analyzers that have not seen enough samples."""
        return cls(score=0.0, confidence=0.0, anomalies=('insufficient_data',), details=details)

    @classmethod
    def failed(cls, error: Optional[str] = None, **details: Any) -> 'AnalyzerResult':
        """Zero-score result for analyses that could not run."""
        if error is not None:
            details['error'] = error
        return cls(score=0.0, confidence=0.0, anomalies=('analysis_failed',), details=details)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'score': self.score,
            'confidence': self.confidence,
            'anomalies': list(self.anomalies),
            'details': _plain(self.details),
        }


@dataclass(frozen=True)
class EnsembleResult:
    """Verdict produced by the ensemble for one evaluation."""
    is_deepfake: bool
    confidence: float
    score: float
    scores: Dict[Modality, float] = field(default_factory=dict)
    anomalies: Tuple[str, ...] = ()
    weights: Dict[Modality, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'isDeepfake': self.is_deepfake,
            'confidence': self.confidence,
            'score': self.score,
            'scores': {m.value: s for m, s in self.scores.items()},
            'anomalies': list(self.anomalies),
            'weights': {m.value: w for m, w in self.weights.items()},
        }


@dataclass(frozen=True)
class RGBSample:
    """Mean skin colour of one region at one instant."""
    r: float
    g: float
    b: float
    timestamp: float


@dataclass(frozen=True)
class LipSample:
    """Mouth geometry at one instant."""
    openness: float
    width: float
    timestamp: float


@dataclass(frozen=True)
class EnergySample:
    """Audio loudness (RMS) at one instant."""
    energy: float
    timestamp: float


@dataclass(frozen=True)
class Sample:
    """One capture tick: whatever signals the host had available.

    All signal fields are optional; analyzers only consume the ones they
    need.  ``timestamp`` is in milliseconds.
    """
    timestamp: float
    frame: Optional['Frame'] = None
    landmarks: Optional['FaceLandmarks'] = None
    audio: Optional['AudioClip'] = None
    audio_energy: Optional[float] = None


@dataclass
class SessionReport:
    """Verdict plus the per-modality results that produced it."""
    verdict: EnsembleResult
    results: Dict[Modality, AnalyzerResult] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)
    ela: Optional[AnalyzerResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'verdict': self.verdict.to_dict(),
            'results': {m.value: r.to_dict() for m, r in self.results.items()},
            'errors': dict(self.errors),
            'ela': self.ela.to_dict() if self.ela is not None else None,
        }
