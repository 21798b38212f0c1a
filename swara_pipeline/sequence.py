"""
Sequence module: swara mapping, note condensation, and note statistics.

The DetectedNote / NoteStat dataclasses are the contract between this module
and the raga scorer; keep their fields stable.

Provides:
- SWARAS: The 12 swara labels in chromatic order relative to Sa
- frequency_to_swara: Frequency + tonic -> swara label
- label_pitch_track: Apply frequency_to_swara across a pitch trace
- condense_notes: Dense swara trace -> note stream + per-swara statistics
- compute_note_stats, notes_to_frames, note_tokens: Helpers around note streams
"""

from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple, Union
import math
import numpy as np

from .pitch import PitchObservation, PitchTrack


# =============================================================================
# SWARA TABLE
# =============================================================================

# Semitone offset from Sa (0-11) -> swara. Lowercase marks komal, "Ma" is tivra.
SWARAS: Tuple[str, ...] = (
    "Sa",
    "re",     # komal Re
    "Re",     # shuddha Re
    "ga",     # komal Ga
    "Ga",     # shuddha Ga
    "ma",     # shuddha Ma
    "Ma",     # tivra Ma
    "Pa",
    "dha",    # komal Dha
    "Dha",    # shuddha Dha
    "ni",     # komal Ni
    "Ni",     # shuddha Ni
)

SWARA_INDEX = {name: i for i, name in enumerate(SWARAS)}

SILENCE_LABEL = "-"

# Lower / upper octave markers used in written sargam ("Ni'", ".Dha", "Sa·")
OCTAVE_MARKERS = "'.·"

# Notes at or below this duration are treated as pitch glitches
MIN_NOTE_DURATION_MS = 40.0
# Floor for the last note of a stream, which has no following frame to end it
TRAILING_NOTE_FLOOR_MS = 50.0


def round_half_up(value: float) -> int:
    """Round to nearest integer, halves toward +inf."""
    return int(math.floor(value + 0.5))


def chroma_index(frequency_hz: float, reference_hz: float) -> int:
    """Pitch class (0-11) of a frequency relative to a reference."""
    semitones = 12.0 * math.log2(frequency_hz / reference_hz)
    return ((round_half_up(semitones) % 12) + 12) % 12


def strip_octave_markers(label: str) -> str:
    return label.strip().strip(OCTAVE_MARKERS).strip()


def normalize_swara(label: str) -> str:
    """
    Validate a written swara token and drop any octave markers.

    Raises:
        ValueError: If the token is not one of the 12 swaras
    """
    base = strip_octave_markers(str(label))
    if base not in SWARA_INDEX:
        raise ValueError(f"Unknown swara: {label!r}")
    return base


# =============================================================================
# NOTE MAPPING
# =============================================================================

def frequency_to_swara(frequency_hz: float, tonic_hz: float) -> str:
    """
    Map a frequency to its swara relative to the tonic (octave-independent).

    Returns SILENCE_LABEL for the silence sentinel or any non-positive value.

    Raises:
        ValueError: If tonic_hz is not a positive finite frequency
    """
    if not (tonic_hz > 0) or not math.isfinite(tonic_hz):
        raise ValueError(f"Tonic frequency must be positive, got {tonic_hz}")
    if not (frequency_hz > 0) or not math.isfinite(frequency_hz):
        return SILENCE_LABEL
    return SWARAS[chroma_index(frequency_hz, tonic_hz)]


@dataclass(frozen=True)
class SwaraFrame:
    """One labeled frame of a pitch trace."""

    timestamp_ms: float
    frequency_hz: float
    swara: str

    def __post_init__(self):
        if self.swara != SILENCE_LABEL and self.swara not in SWARA_INDEX:
            raise ValueError(f"Unknown swara label: {self.swara!r}")


def label_pitch_track(
    pitch: Union[PitchTrack, Sequence[PitchObservation]],
    tonic_hz: float,
) -> List[SwaraFrame]:
    """Label every frame of a pitch trace with its swara."""
    if tonic_hz <= 0:
        raise ValueError(f"Tonic frequency must be positive, got {tonic_hz}")
    observations = pitch.observations if isinstance(pitch, PitchTrack) else pitch
    return [
        SwaraFrame(
            timestamp_ms=obs.timestamp_ms,
            frequency_hz=obs.frequency_hz,
            swara=frequency_to_swara(obs.frequency_hz, tonic_hz),
        )
        for obs in observations
    ]


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class DetectedNote:
    """One continuous sounding of a swara."""

    note: str
    timestamp_ms: float
    duration_ms: float

    def __post_init__(self):
        if self.note not in SWARA_INDEX:
            raise ValueError(f"Unknown swara: {self.note!r}")
        if self.duration_ms < 0:
            raise ValueError(f"duration_ms must be non-negative, got {self.duration_ms}")

    @property
    def end_ms(self) -> float:
        return self.timestamp_ms + self.duration_ms


@dataclass(frozen=True)
class NoteStat:
    """Accumulated duration of one swara across a note stream."""

    note: str
    total_duration_ms: float
    normalized_duration: float

    def __post_init__(self):
        if self.note not in SWARA_INDEX:
            raise ValueError(f"Unknown swara: {self.note!r}")
        if self.total_duration_ms < 0:
            raise ValueError(f"total_duration_ms must be non-negative, got {self.total_duration_ms}")
        if not 0.0 <= self.normalized_duration <= 1.0 + 1e-9:
            raise ValueError(f"normalized_duration must be in [0, 1], got {self.normalized_duration}")


# =============================================================================
# CONDENSATION
# =============================================================================

def compute_note_stats(notes: Iterable[DetectedNote]) -> List[NoteStat]:
    """Per-swara total and normalized durations, always 12 entries in SWARAS order."""
    totals = {name: 0.0 for name in SWARAS}
    grand_total = 0.0
    for n in notes:
        totals[n.note] += n.duration_ms
        grand_total += n.duration_ms

    return [
        NoteStat(
            note=name,
            total_duration_ms=totals[name],
            normalized_duration=totals[name] / grand_total if grand_total > 0 else 0.0,
        )
        for name in SWARAS
    ]


def condense_notes(
    frames: Sequence[SwaraFrame],
    min_duration_ms: float = MIN_NOTE_DURATION_MS,
    trailing_floor_ms: float = TRAILING_NOTE_FLOOR_MS,
) -> Tuple[List[DetectedNote], List[NoteStat]]:
    """
    Run-length encode a time-ordered swara trace into notes.

    Silent runs end the previous note but produce none themselves. Notes
    lasting min_duration_ms or less are dropped from both outputs.

    Args:
        frames: Labeled frames sorted by timestamp
        min_duration_ms: Notes must be strictly longer than this to survive
        trailing_floor_ms: Minimum duration given to the final run

    Returns:
        (note_stream, note_stats)
    """
    if len(frames) == 0:
        return [], compute_note_stats([])

    condensed: List[DetectedNote] = []
    current = frames[0].swara
    start = frames[0].timestamp_ms

    for frame in frames[1:]:
        if frame.swara == current:
            continue
        if current != SILENCE_LABEL:
            condensed.append(DetectedNote(current, start, frame.timestamp_ms - start))
        current = frame.swara
        start = frame.timestamp_ms

    if current != SILENCE_LABEL:
        last_time = frames[-1].timestamp_ms
        condensed.append(DetectedNote(current, start, max(trailing_floor_ms, last_time - start)))

    notes = [n for n in condensed if n.duration_ms > min_duration_ms]
    return notes, compute_note_stats(notes)


def notes_to_frames(notes: Sequence[DetectedNote]) -> List[SwaraFrame]:
    """
    Expand a note stream back into boundary frames.

    Emits a frame at each note start, and a silence frame wherever a note ends
    before the next begins (always after the last note), so condensing the
    result reproduces the stream.
    """
    frames: List[SwaraFrame] = []
    for i, n in enumerate(notes):
        frames.append(SwaraFrame(n.timestamp_ms, np.nan, n.note))
        next_start = notes[i + 1].timestamp_ms if i + 1 < len(notes) else None
        if next_start is None or next_start > n.end_ms:
            frames.append(SwaraFrame(n.end_ms, np.nan, SILENCE_LABEL))
    return frames


def note_tokens(notes: Iterable[DetectedNote]) -> List[str]:
    """Ordered swara labels of a note stream."""
    return [n.note for n in notes]
