"""
Configuration module for the swara pipeline.

Provides:
- PipelineConfig: Dataclass with all pipeline parameters
- build_cli_parser / parse_config_from_argv / load_config_from_cli: CLI parsing
- create_config: Programmatic construction
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence
import argparse
import os


MODES: List[str] = ["detect", "library"]


@dataclass
class PipelineConfig:
    """config for swara pipeline"""

    # paths
    audio_path: Optional[str] = None
    output_dir: str = "results"

    # execution mode
    mode: str = "detect"  # "detect" (rank ragas for a recording) or "library" (search corpus)

    # tonic - None means automatic detection from the pitch trace
    tonic: Optional[str] = None

    # db path
    raga_db_path: Optional[str] = None    # Auto-locates if None

    # Pitch tracking
    frame_length: int = 2048              # samples per autocorrelation frame
    hop_length: Optional[int] = None      # defaults to frame_length // 2
    max_duration: float = 45.0            # seconds of audio analysed
    n_jobs: int = 1                       # parallel frame workers

    # Reporting
    top_k: int = 3                        # ragas shown in the console summary
    query: Optional[str] = None           # library mode search text

    # processing options
    force_recompute: bool = False         # Ignore cached pitch CSV
    save_intermediates: bool = True       # Save CSVs and plots

    def __post_init__(self):
        """Validate and normalize paths."""
        if self.mode not in MODES:
            raise ValueError(f"Unsupported mode '{self.mode}'. Choose from: {', '.join(MODES)}")

        if self.hop_length is None:
            self.hop_length = self.frame_length // 2
        if self.frame_length < 3:
            raise ValueError(f"frame_length must be at least 3 samples, got {self.frame_length}")
        if self.hop_length <= 0 or self.hop_length > self.frame_length:
            raise ValueError(f"hop_length must be in (0, frame_length], got {self.hop_length}")
        if self.max_duration <= 0:
            raise ValueError(f"max_duration must be positive, got {self.max_duration}")
        if self.n_jobs == 0:
            raise ValueError("n_jobs must be non-zero (use -1 for all cores)")
        if self.top_k < 1:
            raise ValueError(f"top_k must be at least 1, got {self.top_k}")

        self.output_dir = os.path.abspath(self.output_dir)

        if self.mode == "detect":
            if not self.audio_path:
                raise ValueError("Detect mode requires --audio/-a")
            self.audio_path = os.path.abspath(self.audio_path)
            if not os.path.isfile(self.audio_path):
                raise FileNotFoundError(f"Audio file not found: {self.audio_path}")
            os.makedirs(self.output_dir, exist_ok=True)

        if self.raga_db_path is None:
            self.raga_db_path = self._find_raga_db_path()
        elif not os.path.isfile(self.raga_db_path):
            raise FileNotFoundError(f"Raga database not found: {self.raga_db_path}")

    def _find_raga_db_path(self) -> Optional[str]:
        """Find raga database in standard locations."""
        package_dir = Path(__file__).parent
        candidates = [
            package_dir / "data" / "raga_corpus.json",
            package_dir.parent / "data" / "raga_corpus.json",
            package_dir.parent / "data" / "raga_corpus.csv",
        ]
        for path in candidates:
            if path.exists():
                return str(path)
        return None

    @property
    def filename(self) -> str:
        """Extract filename without extension from audio path."""
        if self.audio_path:
            return os.path.splitext(os.path.basename(self.audio_path))[0]
        return "unknown_audio"

    @property
    def file_output_dir(self) -> str:
        """Directory where this recording's outputs are saved."""
        return os.path.join(self.output_dir, self.filename)


def build_cli_parser() -> argparse.ArgumentParser:
    """Build the argparse parser with detect / library subcommands."""
    parser = argparse.ArgumentParser(
        description="Swara Pipeline: raga identification from monophonic audio",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Pipeline mode")

    def add_db_arg(p):
        p.add_argument("--raga-db", help="Override path to raga database (JSON or CSV)")

    # --- Detect Mode ---
    detect_parser = subparsers.add_parser(
        "detect",
        help="Track pitch, find the tonic and rank candidate ragas",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    detect_parser.add_argument("--audio", "-a", required=True, help="Input audio file (relative or absolute path)")
    detect_parser.add_argument("--output", "-o", default="results", help="Parent directory for output results")
    detect_parser.add_argument("--tonic", help="Tonic as note name (e.g. C#) or Hz (e.g. 146.8); omit to auto-detect")
    detect_parser.add_argument("--frame-length", type=int, default=2048, help="Samples per pitch frame")
    detect_parser.add_argument("--hop-length", type=int, default=None, help="Samples between frames (default: half a frame)")
    detect_parser.add_argument("--max-duration", type=float, default=45.0, help="Seconds of audio to analyse")
    detect_parser.add_argument("--jobs", "-j", type=int, default=1, help="Parallel pitch workers (-1 = all cores)")
    detect_parser.add_argument("--top-k", type=int, default=3, help="Number of ragas shown in the summary")
    detect_parser.add_argument("--force", "-f", action="store_true", help="Force recompute pitch extraction")
    detect_parser.add_argument("--no-intermediates", action="store_true", help="Do not write CSVs or plots")
    add_db_arg(detect_parser)

    # --- Library Mode ---
    library_parser = subparsers.add_parser(
        "library",
        help="Search the raga database by name, thaat or id",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    library_parser.add_argument("query", nargs="?", default=None, help="Search text (omit to list all)")
    add_db_arg(library_parser)

    return parser


def parse_config_from_argv(argv: Optional[Sequence[str]] = None) -> PipelineConfig:
    """Parse argv (sys.argv[1:] when None) into a PipelineConfig."""
    parser = build_cli_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.error("a mode is required: " + " | ".join(MODES))

    if args.command == "library":
        return PipelineConfig(
            mode="library",
            query=args.query,
            raga_db_path=args.raga_db,
        )

    return PipelineConfig(
        audio_path=args.audio,
        output_dir=args.output,
        mode="detect",
        tonic=args.tonic,
        raga_db_path=args.raga_db,
        frame_length=args.frame_length,
        hop_length=args.hop_length,
        max_duration=args.max_duration,
        n_jobs=args.jobs,
        top_k=args.top_k,
        force_recompute=args.force,
        save_intermediates=not args.no_intermediates,
    )


def load_config_from_cli() -> PipelineConfig:
    """Parse command-line arguments and return configuration."""
    return parse_config_from_argv(None)


def create_config(audio_path: str, output_dir: str, **kwargs) -> PipelineConfig:
    """
    Convenience function to create configuration programmatically.

    Args:
        audio_path: Path to input audio file
        output_dir: Output directory for results
        **kwargs: Override any default configuration values

    Returns:
        PipelineConfig instance
    """
    return PipelineConfig(audio_path=audio_path, output_dir=output_dir, **kwargs)
