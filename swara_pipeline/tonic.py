"""
Tonic module: chroma-histogram tonic detection and manual tonic parsing.

Provides:
- Tonic: (name, frequency) pair
- BASE_NOTES: The 12 reference tonics C4..B4
- chroma_histogram: 12-bin pitch-class counts for raw frequencies
- detect_tonic: Most frequent pitch class -> Tonic
- parse_tonic: Note name or Hz string -> Tonic
"""

from dataclasses import dataclass
from typing import Iterable, Sequence, Union
import numpy as np

from .pitch import PitchObservation, PitchTrack
from .sequence import chroma_index


@dataclass(frozen=True)
class Tonic:
    """Reference pitch for Sa."""

    name: str
    frequency_hz: float

    def __post_init__(self):
        if not self.frequency_hz > 0:
            raise ValueError(f"Tonic frequency must be positive, got {self.frequency_hz}")


# Octave 4 reference pitches, ordered by pitch class from C
BASE_NOTES = (
    Tonic("C", 261.63),
    Tonic("C#", 277.18),
    Tonic("D", 293.66),
    Tonic("D#", 311.13),
    Tonic("E", 329.63),
    Tonic("F", 349.23),
    Tonic("F#", 369.99),
    Tonic("G", 392.00),
    Tonic("G#", 415.30),
    Tonic("A", 440.00),
    Tonic("A#", 466.16),
    Tonic("B", 493.88),
)

REFERENCE_HZ = BASE_NOTES[0].frequency_hz   # middle C

# Plausible vocal / instrument range; anything outside is treated as noise
TONIC_FMIN = 50.0
TONIC_FMAX = 1000.0

_NOTE_NAME_TO_PC = {
    "C": 0, "B#": 0,
    "C#": 1, "DB": 1,
    "D": 2,
    "D#": 3, "EB": 3,
    "E": 4, "FB": 4,
    "F": 5, "E#": 5,
    "F#": 6, "GB": 6,
    "G": 7,
    "G#": 8, "AB": 8,
    "A": 9,
    "A#": 10, "BB": 10,
    "B": 11, "CB": 11,
}


def _as_frequencies(
    pitch: Union[PitchTrack, Sequence[PitchObservation], Iterable[float], np.ndarray],
) -> np.ndarray:
    if isinstance(pitch, PitchTrack):
        return pitch.pitch_hz
    values = list(pitch)
    if values and isinstance(values[0], PitchObservation):
        return np.array([o.frequency_hz for o in values], dtype=float)
    return np.asarray(values, dtype=float)


def chroma_histogram(
    pitch: Union[PitchTrack, Sequence[PitchObservation], Iterable[float], np.ndarray],
) -> np.ndarray:
    """Count observations per pitch class (0=C) within the plausible tonic range."""
    freqs = _as_frequencies(pitch)
    freqs = freqs[(freqs > TONIC_FMIN) & (freqs < TONIC_FMAX)]
    bins = np.zeros(12, dtype=int)
    for f in freqs:
        bins[chroma_index(float(f), REFERENCE_HZ)] += 1
    return bins


def detect_tonic(
    pitch: Union[PitchTrack, Sequence[PitchObservation], Iterable[float], np.ndarray],
) -> Tonic:
    """
    Estimate Sa as the most frequent pitch class of the trace.

    Ties go to the lowest pitch class. With no usable observations the
    result is C.
    """
    bins = chroma_histogram(pitch)
    if bins.sum() == 0:
        return BASE_NOTES[0]
    # argmax returns the first maximal bin
    return BASE_NOTES[int(np.argmax(bins))]


def parse_tonic(value: Union[str, float, int, Tonic]) -> Tonic:
    """
    Parse a manual tonic selection.

    Args:
        value: Note name ("C#", "Db", case-insensitive) or frequency in Hz
               ("146.8", 220.0)

    Returns:
        The matching BASE_NOTES entry for names; a Tonic at the given
        frequency, named after its nearest pitch class, for numbers.

    Raises:
        ValueError: If the value is empty or not a recognised name/frequency
    """
    if isinstance(value, Tonic):
        return value
    if value is None:
        raise ValueError("Empty tonic")

    if isinstance(value, (int, float, np.integer, np.floating)):
        freq = float(value)
    else:
        s = str(value).strip()
        if not s:
            raise ValueError("Empty tonic")
        key = s.upper()
        if key in _NOTE_NAME_TO_PC:
            return BASE_NOTES[_NOTE_NAME_TO_PC[key]]
        try:
            freq = float(s)
        except ValueError as exc:
            raise ValueError(f"Invalid tonic: {value}") from exc

    if not np.isfinite(freq) or freq <= 0:
        raise ValueError(f"Tonic frequency must be positive, got {value}")
    name = BASE_NOTES[chroma_index(freq, REFERENCE_HZ)].name
    return Tonic(name, freq)
