"""
Per-stream owner of every analyzer.

A :class:`DetectionSession` holds the stateful analyzers (pulse, lip sync,
facial geometry) for one media stream, routes each incoming
:class:`~tahqiq.types.Sample` to whichever analyzers its signals allow,
and hands the resulting subset to the ensemble.

Usage::

    with DetectionSession(max_workers=2) as session:
        for sample in samples:
            report = session.process(sample)
            print(report.verdict.to_dict())
"""
import concurrent.futures
import dataclasses
import logging
from typing import Any, Callable, Dict, Optional

import numpy as np

from .ela import ELAAnalyzer, ImageInput, to_pil
from .ensemble import EnsembleCombiner
from .geometry import FeatureAggregator
from .lipsync import LipSyncAnalyzer
from .metadata import FileFacts, MetadataAnalyzer
from .physiological import PulseAnalyzer
from .sources import AudioClip, Frame
from .types import AnalyzerResult, Modality, Sample, SessionReport
from .visual import Classifier, VisualAnalyzer
from .voice import VoiceAnalyzer

logger = logging.getLogger(__name__)


class DetectionSession:
    """Feeds one stream of samples through all applicable analyzers."""

    def __init__(self, max_workers: int = 1, classifier: Optional[Classifier] = None,
                 fps: float = 30.0, run_ela: bool = True,
                 combiner: Optional[EnsembleCombiner] = None,
                 pulse: Optional[PulseAnalyzer] = None,
                 lipsync: Optional[LipSyncAnalyzer] = None,
                 voice: Optional[VoiceAnalyzer] = None,
                 ela: Optional[ELAAnalyzer] = None,
                 metadata: Optional[MetadataAnalyzer] = None):
        """Initialize DetectionSession.

        Args:
            max_workers: Number of threads for the stateless analyzers.
                1 (default) runs everything on the calling thread.  Values
                > 1 offload ELA and voice analysis to a ThreadPoolExecutor;
                stateful analyzers always run on the calling thread.
            classifier: Optional frame classifier for the visual path.
            fps: Frame rate assumed by the geometry and pulse trackers.
            run_ela: Whether frames also get error level analysis.
            combiner, pulse, lipsync, voice, ela, metadata: Pre-configured
                analyzers to use instead of the defaults.
        """
        self._max_workers = max(1, max_workers)
        self._executor: Optional[concurrent.futures.ThreadPoolExecutor] = None
        self._closed = False
        self.run_ela = run_ela

        self.combiner = combiner or EnsembleCombiner()
        self.pulse = pulse or PulseAnalyzer(thresholds={'fps': fps})
        self.lipsync = lipsync or LipSyncAnalyzer()
        self.voice = voice or VoiceAnalyzer()
        self.ela = ela or ELAAnalyzer()
        self.metadata = metadata or MetadataAnalyzer()
        self.visual = VisualAnalyzer(classifier=classifier)
        self.features = FeatureAggregator(fps=fps)

    def __enter__(self) -> 'DetectionSession':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Shut the worker pool down and drop all buffered history."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        self.reset()
        self._closed = True

    def reset(self) -> None:
        self.pulse.reset()
        self.lipsync.reset()
        self.features.reset()

    def process(self, sample: Sample, facts: Optional[FileFacts] = None,
                now: Optional[float] = None,
                metadata_result: Optional[AnalyzerResult] = None) -> SessionReport:
        """Analyze one sample and return the combined verdict.

        Args:
            sample: Signals captured at one instant.
            facts: File metadata, when the sample comes from a file.
            now: Clock for the metadata checks, epoch ms.
            metadata_result: Metadata result already computed for the file;
                used as is instead of analyzing ``facts`` again.

        Returns:
            SessionReport with the verdict, every per-modality result that
            could be produced, and the errors of the ones that failed.
        """
        if self._closed:
            raise RuntimeError("DetectionSession is closed")

        results: Dict[Modality, AnalyzerResult] = {}
        errors: Dict[str, str] = {}

        # Stateless analyzers go first so they overlap with the rest
        pending: Dict[str, concurrent.futures.Future] = {}
        inline: Dict[str, Callable[[], AnalyzerResult]] = {}
        if sample.frame is not None and self.run_ela:
            inline['ela'] = lambda: self.ela.analyze(sample.frame)
        if sample.audio is not None:
            inline[Modality.VOICE.value] = lambda: self.voice.analyze(sample.audio)

        if self._max_workers > 1 and inline:
            executor = self._get_executor()
            pending = {name: executor.submit(fn) for name, fn in inline.items()}
            inline = {}

        landmarks = sample.landmarks
        frame = sample.frame
        audio_present = sample.audio is not None or sample.audio_energy is not None

        if frame is not None:
            self._store(results, errors, Modality.VISUAL, self._visual, frame, landmarks)

        if frame is not None and landmarks is not None:
            self._store(results, errors, Modality.PHYSIOLOGICAL,
                        self.pulse.analyze, landmarks, frame, sample.timestamp)

        if landmarks is not None and audio_present:
            self._store(results, errors, Modality.LIP_SYNC,
                        self.lipsync.analyze, landmarks, sample.audio,
                        sample.timestamp, sample.audio_energy)

        if metadata_result is not None:
            results[Modality.METADATA] = metadata_result
        elif facts is not None:
            self._store(results, errors, Modality.METADATA,
                        self.metadata.analyze, facts, now)

        ela_result = None
        for name, fn in inline.items():
            outcome = self._guard(name, errors, fn)
            if name == 'ela':
                ela_result = outcome
            elif outcome is not None:
                results[Modality.VOICE] = outcome

        for name, future in pending.items():
            try:
                outcome = future.result()
            except Exception as e:
                logger.warning(f"{name} analysis failed: {e}")
                errors[name] = str(e)
                continue
            if name == 'ela':
                ela_result = outcome
            else:
                results[Modality.VOICE] = outcome

        return self._report(results, errors, ela_result)

    def analyze_image(self, image: ImageInput, facts: Optional[FileFacts] = None,
                      now: Optional[float] = None) -> SessionReport:
        """One-shot analysis of a still image (no streaming state involved)."""
        if self._closed:
            raise RuntimeError("DetectionSession is closed")

        results: Dict[Modality, AnalyzerResult] = {}
        errors: Dict[str, str] = {}

        ela_result = self._guard('ela', errors, self.ela.analyze, image) if self.run_ela else None

        frame = self._guard('decode', errors, lambda: Frame(np.asarray(to_pil(image))))
        if frame is not None:
            self._store(results, errors, Modality.VISUAL, self.visual.analyze, frame)

        if facts is not None:
            self._store(results, errors, Modality.METADATA,
                        self.metadata.analyze, facts, now)

        return self._report(results, errors, ela_result)

    def analyze_audio(self, audio: AudioClip, facts: Optional[FileFacts] = None,
                      now: Optional[float] = None) -> SessionReport:
        """One-shot analysis of an audio clip."""
        if self._closed:
            raise RuntimeError("DetectionSession is closed")

        results: Dict[Modality, AnalyzerResult] = {}
        errors: Dict[str, str] = {}
        self._store(results, errors, Modality.VOICE, self.voice.analyze, audio)
        if facts is not None:
            self._store(results, errors, Modality.METADATA,
                        self.metadata.analyze, facts, now)
        return self._report(results, errors, None)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _visual(self, frame: Frame, landmarks) -> AnalyzerResult:
        features = None
        if landmarks is not None:
            self.features.process_frame(landmarks)
            features = self.features.features(landmarks)
        return self.visual.analyze(frame, features)

    def _report(self, results: Dict[Modality, AnalyzerResult], errors: Dict[str, str],
                ela_result: Optional[AnalyzerResult]) -> SessionReport:
        verdict = self.combiner.combine(results)
        if ela_result is not None and ela_result.anomalies:
            merged = tuple(dict.fromkeys(verdict.anomalies + ela_result.anomalies))
            verdict = dataclasses.replace(verdict, anomalies=merged)
        return SessionReport(verdict=verdict, results=results, errors=errors, ela=ela_result)

    def _store(self, results: Dict[Modality, AnalyzerResult], errors: Dict[str, str],
               modality: Modality, fn: Callable[..., AnalyzerResult], *args: Any) -> None:
        outcome = self._guard(modality.value, errors, fn, *args)
        if outcome is not None:
            results[modality] = outcome

    @staticmethod
    def _guard(name: str, errors: Dict[str, str], fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except Exception as e:
            logger.warning(f"{name} analysis failed: {e}")
            errors[name] = str(e)
            return None

    def _get_executor(self) -> concurrent.futures.ThreadPoolExecutor:
        if self._executor is None:
            self._executor = concurrent.futures.ThreadPoolExecutor(max_workers=self._max_workers)
        return self._executor
