"""Command-line interface for Tahqiq."""
import argparse
import dataclasses
import json
import logging
import sys
from pathlib import Path

from .metadata import FileFacts, MetadataAnalyzer
from .session import DetectionSession
from .sources import AudioClip, read_video_frames
from .types import Sample, SessionReport

logger = logging.getLogger(__name__)


def _analyze_file(path: Path, facts: FileFacts, session: DetectionSession, max_frames: int):
    """Route a file to the analyzers its media type supports.

    Returns (report, frames_analyzed).
    """
    mime = facts.mime_type

    if mime.startswith('image/'):
        return session.analyze_image(path.read_bytes(), facts), 1

    if mime.startswith('audio/'):
        clip = AudioClip.from_wav_bytes(path.read_bytes())
        return session.analyze_audio(clip, facts), 0

    if mime.startswith('video/'):
        frames, fps = read_video_frames(str(path), max_frames=max_frames)
        metadata = session.metadata.analyze(facts)
        reports = [
            session.process(Sample(timestamp=i * 1000.0 / fps, frame=frame),
                            metadata_result=metadata)
            for i, frame in enumerate(frames)
        ]
        if not reports:
            return session.process(Sample(timestamp=0.0), metadata_result=metadata), 0
        verdict = session.combiner.combine_frames([r.verdict for r in reports])
        last = reports[-1]
        errors = {}
        for r in reports:
            errors.update(r.errors)
        return dataclasses.replace(last, verdict=verdict, errors=errors), len(reports)

    return session.process(Sample(timestamp=0.0), facts), 0


def _print_report(path: Path, report: SessionReport, frames: int) -> None:
    verdict = report.verdict
    print(f"\n{'='*60}")
    print("  Deepfake Analysis Report")
    print(f"{'='*60}\n")

    print(f"File: {path.resolve()}")
    print(f"Verdict: {'LIKELY MANIPULATED' if verdict.is_deepfake else 'NO MANIPULATION DETECTED'}")
    print(f"Score: {verdict.score:.2f}")
    print(f"Confidence: {verdict.confidence:.0%}")
    if frames > 1:
        print(f"Frames analyzed: {frames}")

    if report.results:
        print("\nModalities:")
        for modality, result in report.results.items():
            weight = verdict.weights.get(modality)
            suffix = f" (weight {weight:.2f})" if weight is not None else ""
            print(f"  • {modality.value}: {result.score:.2f}{suffix}")

    if report.ela is not None:
        print(f"\nError level analysis: {report.ela.score:.2f}")

    if verdict.anomalies:
        print("\nAnomalies:")
        for anomaly in verdict.anomalies:
            print(f"  • {anomaly}")

    if report.errors:
        print("\nErrors:")
        for name, error in report.errors.items():
            print(f"  • {name}: {error}")

    print(f"\n{'='*60}\n")


def analyze_command(args):
    """Analyze a media file command."""
    path = Path(args.file)
    if not path.exists():
        print(f"Error: File not found: {args.file}", file=sys.stderr)
        sys.exit(2)

    facts = FileFacts.from_path(str(path))

    with DetectionSession(max_workers=getattr(args, "workers", 1)) as session:
        try:
            report, frames = _analyze_file(path, facts, session, getattr(args, "frames", 30))
        except Exception as e:
            logger.exception("Analysis failed")
            print(f"Error: Could not analyze {args.file}: {e}", file=sys.stderr)
            sys.exit(2)

    if args.json:
        output = report.to_dict()
        output["file"] = str(path)
        output["frames"] = frames
        print(json.dumps(output, indent=2, default=str))
    else:
        _print_report(path, report, frames)

    sys.exit(1 if report.verdict.is_deepfake else 0)


def metadata_command(args):
    """Metadata-only check of one or more files."""
    missing = [f for f in args.files if not Path(f).exists()]
    if missing:
        for f in missing:
            print(f"Error: File not found: {f}", file=sys.stderr)
        sys.exit(2)

    facts = [FileFacts.from_path(f) for f in args.files]
    results = MetadataAnalyzer().analyze_batch(facts)

    if args.json:
        print(json.dumps([
            {"file": f.name, **r.to_dict()} for f, r in zip(facts, results)
        ], indent=2, default=str))
    else:
        for f, r in zip(facts, results):
            tags = ", ".join(r.anomalies) if r.anomalies else "none"
            print(f"{f.name}: score {r.score:.2f}, confidence {r.confidence:.2f}, anomalies: {tags}")

    sys.exit(1 if any(r.score > 0.5 for r in results) else 0)


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="tahqiq",
        description="Multi-modal deepfake evidence engine"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Analyze command
    analyze_parser = subparsers.add_parser("analyze", help="Analyze an image, audio or video file")
    analyze_parser.add_argument("file", help="File to analyze")
    analyze_parser.add_argument("-j", "--json", action="store_true", help="Output as JSON")
    analyze_parser.add_argument("-w", "--workers", type=int, default=1, help="Number of parallel threads for analysis (default: 1)")
    analyze_parser.add_argument("-f", "--frames", type=int, default=30, help="Maximum video frames to sample (default: 30)")
    analyze_parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    analyze_parser.set_defaults(func=analyze_command)

    # Metadata command
    metadata_parser = subparsers.add_parser("metadata", help="Check file metadata only")
    metadata_parser.add_argument("files", nargs="+", help="Files to check")
    metadata_parser.add_argument("-j", "--json", action="store_true", help="Output as JSON")
    metadata_parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    metadata_parser.set_defaults(func=metadata_command)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    args.func(args)


if __name__ == "__main__":
    main()
