"""
Tahqiq - Python Implementation

Tahqiq (تحقيق) means "Investigation" in Arabic.
Multi-modal deepfake evidence engine
"""

from .types import (
    AnalyzerResult,
    EnsembleResult,
    Modality,
    Sample,
    SessionReport,
)
from .buffers import RollingBuffer
from .sources import AudioClip, FaceLandmarks, Frame
from .physiological import PulseAnalyzer
from .lipsync import LipSyncAnalyzer
from .voice import VoiceAnalyzer
from .ela import ELAAnalyzer, jpeg_recompress
from .metadata import FileFacts, MetadataAnalyzer
from .geometry import FacialFeatures, FeatureAggregator, score_features
from .visual import TextureAnalyzer, VisualAnalyzer
from .ensemble import EnsembleCombiner
from .session import DetectionSession

__version__ = "0.1.0"
__all__ = [
    "AnalyzerResult",
    "EnsembleResult",
    "Modality",
    "Sample",
    "SessionReport",
    "RollingBuffer",
    "AudioClip",
    "FaceLandmarks",
    "Frame",
    "PulseAnalyzer",
    "LipSyncAnalyzer",
    "VoiceAnalyzer",
    "ELAAnalyzer",
    "jpeg_recompress",
    "FileFacts",
    "MetadataAnalyzer",
    "FacialFeatures",
    "FeatureAggregator",
    "score_features",
    "TextureAnalyzer",
    "VisualAnalyzer",
    "EnsembleCombiner",
    "DetectionSession",
]
