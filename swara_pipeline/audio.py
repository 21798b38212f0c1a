"""
Audio module: decoding and cached pitch extraction.

Provides:
- load_audio: Decode an audio file to mono samples at its native rate
- extract_pitch: Autocorrelation pitch tracking with CSV caching
- save_pitch_to_csv / load_pitch_from_csv: Pitch cache I/O
"""

from typing import Optional, Tuple
import os
import numpy as np
import pandas as pd
import librosa

from .config import PipelineConfig
from .pitch import DEFAULT_FRAME_LENGTH, DEFAULT_MAX_DURATION, SILENCE_HZ, PitchTrack, track_pitch


CACHE_COLUMNS = [
    "time_ms", "pitch_hz", "voiced",
    "sample_rate", "frame_length", "hop_length", "max_duration_s",
]


def load_audio(audio_path: str, max_duration: Optional[float] = DEFAULT_MAX_DURATION) -> Tuple[np.ndarray, int]:
    """
    Decode an audio file to mono float samples.

    Args:
        audio_path: Path to any format librosa can read
        max_duration: Decode at most this many seconds (None for all)

    Returns:
        (samples, sample_rate)
    """
    if not os.path.isfile(audio_path):
        raise FileNotFoundError(f"Audio file not found: {audio_path}")
    y, sr = librosa.load(audio_path, sr=None, mono=True, duration=max_duration)
    return y, int(sr)


# =============================================================================
# PITCH EXTRACTION
# =============================================================================

def extract_pitch(
    audio_path: str,
    output_dir: str,
    prefix: str = "melody",
    frame_length: int = DEFAULT_FRAME_LENGTH,
    hop_length: Optional[int] = None,
    max_duration: Optional[float] = DEFAULT_MAX_DURATION,
    n_jobs: int = 1,
    force_recompute: bool = False,
) -> PitchTrack:
    """
    Extract a pitch track with caching.

    Args:
        audio_path: Path to audio file
        output_dir: Directory for cached results
        prefix: Prefix for the cache file (<prefix>_pitch_data.csv)
        frame_length: Samples per analysis frame
        hop_length: Samples between frames (default: half a frame)
        max_duration: Seconds of audio analysed
        n_jobs: Parallel frame workers
        force_recompute: Ignore cached results

    Returns:
        PitchTrack
    """
    csv_path = os.path.join(output_dir, f"{prefix}_pitch_data.csv")
    if hop_length is None:
        hop_length = frame_length // 2

    if os.path.isfile(csv_path) and not force_recompute:
        cached = load_pitch_from_csv(csv_path, audio_path)
        if _cache_matches(cached, frame_length, hop_length, max_duration):
            print(f"[CACHE] Loading pitch data from: {csv_path}")
            return cached
        print(f"[CACHE] Frame settings changed since {csv_path} was written; recomputing")

    print(f"[PITCH] Extracting pitch from: {os.path.basename(audio_path)}")
    y, sr = load_audio(audio_path, max_duration=max_duration)
    print(f"[AUDIO] sr={sr}, samples={len(y)}, duration={len(y) / sr:.2f}s")

    track = track_pitch(
        y,
        sr,
        frame_length=frame_length,
        hop_length=hop_length,
        max_duration_s=max_duration,
        n_jobs=n_jobs,
        audio_path=audio_path,
    )
    voiced = int(track.voiced_mask.sum())
    print(f"[PITCH] {len(track)} frames, {voiced} voiced")

    os.makedirs(output_dir, exist_ok=True)
    save_pitch_to_csv(track, csv_path)
    print(f"[WRITE] Exported pitch CSV: {csv_path}")
    return track


def _cache_matches(
    track: PitchTrack,
    frame_length: int,
    hop_length: int,
    max_duration: Optional[float],
) -> bool:
    """True if a cached track was computed with the requested frame settings."""
    if track.frame_length != frame_length or track.hop_length != hop_length:
        return False
    if max_duration is None or track.max_duration_s is None:
        return max_duration is None and track.max_duration_s is None
    return bool(np.isclose(track.max_duration_s, max_duration))


def save_pitch_to_csv(track: PitchTrack, csv_path: str) -> None:
    """
    Write a pitch track to CSV.

    Frame settings are repeated on every row so the cache can be checked
    against a later run's configuration.
    """
    max_duration = np.nan if track.max_duration_s is None else float(track.max_duration_s)
    df = pd.DataFrame(
        {
            "time_ms": track.timestamps_ms,
            "pitch_hz": track.pitch_hz,
            "voiced": track.voiced_mask,
            "sample_rate": track.sample_rate,
            "frame_length": track.frame_length,
            "hop_length": track.hop_length,
            "max_duration_s": max_duration,
        },
        columns=CACHE_COLUMNS,
    )
    df.to_csv(csv_path, index=False)


def load_pitch_from_csv(csv_path: str, audio_path: str = "") -> PitchTrack:
    """
    Load cached pitch data from CSV.

    Unparseable or non-positive pitch values are read back as silence. Files
    without frame settings (or without rows) load with frame_length 0, which
    never matches a real configuration.
    """
    df = pd.read_csv(csv_path)

    ts_col = "time_ms" if "time_ms" in df.columns else "timestamp"
    pitch_col = "pitch_hz" if "pitch_hz" in df.columns else "frequency"

    timestamps = pd.to_numeric(df[ts_col], errors="coerce").to_numpy()
    timestamps = np.nan_to_num(timestamps, nan=0.0)

    pitch_hz = pd.to_numeric(df[pitch_col], errors="coerce").to_numpy()
    pitch_hz = np.nan_to_num(pitch_hz, nan=SILENCE_HZ)
    pitch_hz[pitch_hz <= 0] = SILENCE_HZ

    if "voiced" in df.columns:
        voiced_raw = df["voiced"].astype(str).fillna("").str.strip().str.lower()
        voicing = voiced_raw.isin(["1", "1.0", "true", "t", "yes", "y"]).to_numpy()
        pitch_hz[~voicing] = SILENCE_HZ

    def first_value(col):
        if col not in df.columns or df.empty:
            return None
        value = pd.to_numeric(df[col], errors="coerce").iloc[0]
        return None if pd.isna(value) else float(value)

    frame_length = first_value("frame_length")
    hop_length = first_value("hop_length")
    sample_rate = first_value("sample_rate")

    return PitchTrack(
        timestamps_ms=timestamps,
        pitch_hz=pitch_hz,
        sample_rate=int(sample_rate) if sample_rate is not None else 0,
        frame_length=int(frame_length) if frame_length is not None else 0,
        hop_length=int(hop_length) if hop_length is not None else 0,
        max_duration_s=first_value("max_duration_s"),
        audio_path=audio_path,
    )


def extract_pitch_from_config(config: PipelineConfig) -> PitchTrack:
    """Convenience wrapper around extract_pitch using PipelineConfig."""
    return extract_pitch(
        audio_path=config.audio_path,
        output_dir=config.file_output_dir,
        prefix="melody",
        frame_length=config.frame_length,
        hop_length=config.hop_length,
        max_duration=config.max_duration,
        n_jobs=config.n_jobs,
        force_recompute=config.force_recompute,
    )
