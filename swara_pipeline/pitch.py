"""
Pitch module: frame-wise fundamental frequency estimation.

Uses time-domain autocorrelation with parabolic interpolation around the
strongest peak for sub-sample period accuracy.

Provides:
- estimate_pitch: Single frame -> frequency (Hz) or SILENCE_HZ
- track_pitch: Hop a whole signal into overlapping frames -> PitchTrack
- PitchObservation, PitchTrack: Data containers
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence
import numpy as np
from scipy import signal
from joblib import Parallel, delayed


SILENCE_HZ = -1.0           # sentinel for silent / unvoiced frames
RMS_SILENCE_THRESHOLD = 0.01
TRIM_AMPLITUDE = 0.2        # edge trim threshold (absolute sample value)
MIN_TRIMMED_LENGTH = 3      # parabolic refinement needs three lags

DEFAULT_FRAME_LENGTH = 2048
DEFAULT_MAX_DURATION = 45.0  # seconds


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class PitchObservation:
    """One pitch estimate for one frame."""

    timestamp_ms: float
    frequency_hz: float     # SILENCE_HZ when no pitch was found

    def __post_init__(self):
        if self.timestamp_ms < 0:
            raise ValueError(f"timestamp_ms must be non-negative, got {self.timestamp_ms}")

    @property
    def is_voiced(self) -> bool:
        return self.frequency_hz > 0


@dataclass
class PitchTrack:
    """Column-oriented pitch trace for a whole clip."""

    timestamps_ms: np.ndarray   # frame start times (ms)
    pitch_hz: np.ndarray        # SILENCE_HZ for unvoiced frames

    # Metadata
    sample_rate: int = 0
    frame_length: int = DEFAULT_FRAME_LENGTH
    hop_length: int = DEFAULT_FRAME_LENGTH // 2
    max_duration_s: Optional[float] = DEFAULT_MAX_DURATION
    audio_path: str = ""

    def __post_init__(self):
        self.timestamps_ms = np.asarray(self.timestamps_ms, dtype=float)
        self.pitch_hz = np.asarray(self.pitch_hz, dtype=float)
        if self.timestamps_ms.shape != self.pitch_hz.shape:
            raise ValueError(
                f"timestamps ({self.timestamps_ms.shape}) and pitch ({self.pitch_hz.shape}) lengths differ"
            )

    def __len__(self) -> int:
        return len(self.pitch_hz)

    @property
    def voiced_mask(self) -> np.ndarray:
        """Boolean mask for frames with a pitch estimate."""
        return self.pitch_hz > 0

    @property
    def valid_freqs(self) -> np.ndarray:
        """Voiced frequencies only (Hz)."""
        return self.pitch_hz[self.voiced_mask]

    @property
    def duration_ms(self) -> float:
        if len(self.timestamps_ms) > 0:
            return float(self.timestamps_ms[-1])
        return 0.0

    @property
    def observations(self) -> List[PitchObservation]:
        return [
            PitchObservation(timestamp_ms=float(t), frequency_hz=float(f))
            for t, f in zip(self.timestamps_ms, self.pitch_hz)
        ]

    @classmethod
    def from_observations(cls, observations: Sequence[PitchObservation], **metadata) -> "PitchTrack":
        return cls(
            timestamps_ms=np.array([o.timestamp_ms for o in observations], dtype=float),
            pitch_hz=np.array([o.frequency_hz for o in observations], dtype=float),
            **metadata,
        )


# =============================================================================
# SINGLE-FRAME ESTIMATION
# =============================================================================

def _trim_bounds(frame: np.ndarray) -> tuple:
    """Index range [r1, r2) between the first and last loud samples."""
    n = len(frame)
    half = n // 2
    loud = np.abs(frame) > TRIM_AMPLITUDE

    head = np.flatnonzero(loud[:half])
    r1 = int(head[0]) if len(head) else 0

    # scan the last half backward from the tail
    tail = np.flatnonzero(loud[n - half:])
    r2 = int(n - half + tail[-1]) if len(tail) else n - 1
    return r1, r2


def estimate_pitch(frame: np.ndarray, sample_rate: float) -> float:
    """
    Estimate the fundamental frequency of a single frame.

    Args:
        frame: Audio samples in [-1, 1]
        sample_rate: Sampling rate (Hz)

    Returns:
        Frequency in Hz, or SILENCE_HZ if the frame is quiet or degenerate
    """
    buf = np.asarray(frame, dtype=np.float64)
    if len(buf) == 0:
        return SILENCE_HZ

    rms = float(np.sqrt(np.mean(buf * buf)))
    if rms < RMS_SILENCE_THRESHOLD:
        return SILENCE_HZ

    r1, r2 = _trim_bounds(buf)
    buf = buf[r1:r2]
    n = len(buf)
    if n < MIN_TRIMMED_LENGTH:
        return SILENCE_HZ

    # c[i] = sum_j buf[j] * buf[j + i] for i in [0, n)
    corr = signal.correlate(buf, buf, mode="full", method="direct")[n - 1:]

    # first local minimum: stop where the sequence stops decreasing
    rising = np.flatnonzero(np.diff(corr) >= 0)
    if len(rising) == 0:
        return SILENCE_HZ
    d = int(rising[0])

    maxpos = d + int(np.argmax(corr[d:]))
    if maxpos == 0:
        return SILENCE_HZ

    period = float(maxpos)
    if maxpos < n - 1:
        x1, x2, x3 = corr[maxpos - 1], corr[maxpos], corr[maxpos + 1]
        a = (x1 + x3 - 2 * x2) / 2
        b = (x3 - x1) / 2
        if a != 0:
            period = maxpos - b / (2 * a)

    if not np.isfinite(period) or period <= 0:
        return SILENCE_HZ
    return float(sample_rate / period)


# =============================================================================
# WHOLE-SIGNAL TRACKING
# =============================================================================

def frame_starts(
    num_samples: int,
    sample_rate: int,
    frame_length: int = DEFAULT_FRAME_LENGTH,
    hop_length: Optional[int] = None,
    max_duration_s: Optional[float] = DEFAULT_MAX_DURATION,
) -> np.ndarray:
    """Start indices of every full frame inside the analysed region."""
    if hop_length is None:
        hop_length = frame_length // 2
    limit = num_samples
    if max_duration_s is not None:
        limit = min(num_samples, int(sample_rate * max_duration_s))

    starts = np.arange(0, limit, hop_length, dtype=int)
    # only full frames; the frame may extend past the duration cap but not past the signal
    return starts[starts + frame_length <= num_samples]


def track_pitch(
    samples: np.ndarray,
    sample_rate: int,
    frame_length: int = DEFAULT_FRAME_LENGTH,
    hop_length: Optional[int] = None,
    max_duration_s: Optional[float] = DEFAULT_MAX_DURATION,
    n_jobs: int = 1,
    audio_path: str = "",
) -> PitchTrack:
    """
    Run estimate_pitch over overlapping frames of a signal.

    Args:
        samples: Mono audio samples
        sample_rate: Sampling rate (Hz)
        frame_length: Samples per frame
        hop_length: Samples between frame starts (default: half a frame)
        max_duration_s: Only frames starting within this many seconds are analysed
        n_jobs: Parallel workers (joblib threading backend); 1 runs inline

    Returns:
        PitchTrack ordered by timestamp
    """
    if hop_length is None:
        hop_length = frame_length // 2
    if frame_length <= 0 or hop_length <= 0:
        raise ValueError("frame_length and hop_length must be positive")

    samples = np.asarray(samples, dtype=np.float32)
    starts = frame_starts(len(samples), sample_rate, frame_length, hop_length, max_duration_s)

    if n_jobs == 1 or len(starts) < 2:
        pitches = [estimate_pitch(samples[s:s + frame_length], sample_rate) for s in starts]
    else:
        # threading: frames are views into one array, nothing to pickle
        pitches = Parallel(n_jobs=n_jobs, prefer="threads")(
            delayed(estimate_pitch)(samples[s:s + frame_length], sample_rate) for s in starts
        )

    return PitchTrack(
        timestamps_ms=starts / float(sample_rate) * 1000.0,
        pitch_hz=np.asarray(pitches, dtype=float),
        sample_rate=int(sample_rate),
        frame_length=frame_length,
        hop_length=hop_length,
        max_duration_s=max_duration_s,
        audio_path=audio_path,
    )
