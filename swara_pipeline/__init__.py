# Swara Pipeline Package
"""
Rule-based raga identification for monophonic Hindustani recordings.

Modules:
- config: Configuration and CLI argument handling
- pitch: Autocorrelation pitch estimation per frame and per signal
- tonic: Chroma-histogram tonic detection, manual tonic parsing
- sequence: Swara mapping, note condensation, note statistics
- raga: Raga database, rule-based scoring and ranking
- audio: Audio decoding and cached pitch extraction
- output: Console summary, CSV export and plots
- batch: Directory runner with checkpointing and ground-truth evaluation
"""

from .config import PipelineConfig, build_cli_parser, create_config, load_config_from_cli, parse_config_from_argv
from .pitch import PitchObservation, PitchTrack, estimate_pitch, track_pitch
from .sequence import (
    SWARAS,
    DetectedNote,
    NoteStat,
    SwaraFrame,
    condense_notes,
    frequency_to_swara,
    label_pitch_track,
)
from .tonic import BASE_NOTES, Tonic, detect_tonic, parse_tonic
from .raga import RagaDatabase, RagaDefinition, RagaScore, RagaScorer, ScoringParams, score_ragas

__version__ = "0.1.0"

__all__ = [
    # Config
    "PipelineConfig",
    "build_cli_parser",
    "create_config",
    "load_config_from_cli",
    "parse_config_from_argv",
    # Pitch
    "PitchObservation",
    "PitchTrack",
    "estimate_pitch",
    "track_pitch",
    # Sequence
    "SWARAS",
    "DetectedNote",
    "NoteStat",
    "SwaraFrame",
    "condense_notes",
    "frequency_to_swara",
    "label_pitch_track",
    # Tonic
    "BASE_NOTES",
    "Tonic",
    "detect_tonic",
    "parse_tonic",
    # Raga
    "RagaDatabase",
    "RagaDefinition",
    "RagaScore",
    "RagaScorer",
    "ScoringParams",
    "score_ragas",
]

# Optional heavy imports (decoding/plot stack). This keeps the scoring core
# usable even when librosa or matplotlib are not installed in the active interpreter.
try:
    from .audio import extract_pitch, load_audio

    __all__.extend(["extract_pitch", "load_audio"])
except ImportError:
    pass

try:
    from .output import AnalysisResults, print_summary

    __all__.extend(["AnalysisResults", "print_summary"])
except ImportError:
    pass
