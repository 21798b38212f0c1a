"""
Output module: results container, CSV export, plots and console summary.

Provides:
- AnalysisResults: Everything one pipeline run produced
- print_summary: Tonic, note distribution and top ragas on stdout
- save_notes_to_csv / save_note_stats_to_csv / save_scores_to_csv
- plot_note_distribution / plot_pitch_with_swara_lines: Static matplotlib plots
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple
import csv
import numpy as np
import pandas as pd
import matplotlib
matplotlib.use('Agg')  # Non-interactive backend for saving plots
import matplotlib.pyplot as plt

from .config import PipelineConfig
from .pitch import PitchTrack
from .raga import RagaDefinition, RagaScore, scores_to_dataframe
from .sequence import SWARAS, DetectedNote, NoteStat
from .tonic import Tonic


# =============================================================================
# RESULTS CONTAINER
# =============================================================================

def _new_notes() -> List[DetectedNote]:
    return []


def _new_stats() -> List[NoteStat]:
    return []


def _new_scores() -> List[RagaScore]:
    return []


def _new_plot_paths() -> Dict[str, str]:
    return {}


@dataclass
class AnalysisResults:
    """Container for all analysis results."""

    config: PipelineConfig

    # Pitch / tonic
    pitch_track: Optional[PitchTrack] = None
    tonic: Optional[Tonic] = None
    tonic_detected: bool = False      # False when the tonic was given explicitly

    # Note stream
    notes: List[DetectedNote] = field(default_factory=_new_notes)
    note_stats: List[NoteStat] = field(default_factory=_new_stats)

    # Raga matching
    scores: List[RagaScore] = field(default_factory=_new_scores)

    # Library mode
    library_matches: List[RagaDefinition] = field(default_factory=list)

    # Output paths
    plot_paths: Dict[str, str] = field(default_factory=_new_plot_paths)
    csv_paths: Dict[str, str] = field(default_factory=dict)

    @property
    def has_signal(self) -> bool:
        """True if at least one note survived condensation."""
        return len(self.notes) > 0

    @property
    def candidates(self) -> pd.DataFrame:
        return scores_to_dataframe(self.scores)

    @property
    def best(self) -> Optional[RagaScore]:
        return self.scores[0] if self.scores else None


# =============================================================================
# CONSOLE SUMMARY
# =============================================================================

def format_note_stream(notes: Sequence[DetectedNote], limit: int = 40) -> str:
    tokens = [n.note for n in notes[:limit]]
    text = " ".join(tokens)
    if len(notes) > limit:
        text += f" ... (+{len(notes) - limit})"
    return text


def print_summary(results: AnalysisResults, top_k: int = 3) -> None:
    """Print tonic, note distribution and the top-k ragas."""
    print("\n" + "=" * 60)
    print("RESULTS")
    print("=" * 60)

    if results.tonic is not None:
        source = "detected" if results.tonic_detected else "given"
        print(f"Tonic (Sa): {results.tonic.name} ({results.tonic.frequency_hz:.2f} Hz, {source})")

    if not results.has_signal:
        print("[WARN] Insufficient signal to analyze: no stable notes were found.")

    if results.note_stats:
        print("\nNote distribution:")
        for s in results.note_stats:
            if s.total_duration_ms <= 0:
                continue
            bar = "#" * int(round(s.normalized_duration * 40))
            print(f"  {s.note:>3}  {s.normalized_duration * 100:5.1f}%  {bar}")

    if results.notes:
        print(f"\nNote stream ({len(results.notes)} notes): {format_note_stream(results.notes)}")

    if results.scores:
        print(f"\nTop {min(top_k, len(results.scores))} ragas:")
        for rank, s in enumerate(results.scores[:top_k], start=1):
            d = s.match_details
            print(
                f"  {rank}. {s.raga_name:<20} score={s.score:6.1f} "
                f"(vaadi={'Y' if d.vaadi_match else 'N'}, "
                f"samvaadi={'Y' if d.samvaadi_match else 'N'}, "
                f"phrases={d.phrase_matches}, overlap={d.note_overlap_score:+.0f})"
            )


def print_library(ragas: Sequence[RagaDefinition]) -> None:
    """Print raga reference entries."""
    if not ragas:
        print("No ragas found.")
        return
    for r in ragas:
        print(f"\n{r.name} [{r.id}] - {r.thaat} thaat")
        print(f"  Aaroh:    {' '.join(r.aaroh)}")
        print(f"  Avaroh:   {' '.join(r.avaroh)}")
        print(f"  Vaadi/Samvaadi: {r.vaadi} / {r.samvaadi}")
        for p in r.pakad:
            print(f"  Pakad:    {' '.join(p)}")
        if r.identifying_feature:
            print(f"  Feature:  {r.identifying_feature}")


# =============================================================================
# CSV EXPORT
# =============================================================================

def save_notes_to_csv(notes: List[DetectedNote], output_path: str):
    """
    Save list of DetectedNote objects to CSV.
    """
    fieldnames = ['note', 'start_ms', 'duration_ms', 'end_ms']

    with open(output_path, 'w', newline='') as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        for note in notes:
            writer.writerow({
                'note': note.note,
                'start_ms': f"{note.timestamp_ms:.1f}",
                'duration_ms': f"{note.duration_ms:.1f}",
                'end_ms': f"{note.end_ms:.1f}",
            })


def save_note_stats_to_csv(stats: List[NoteStat], output_path: str):
    df = pd.DataFrame(
        [
            {
                "note": s.note,
                "total_duration_ms": s.total_duration_ms,
                "normalized_duration": s.normalized_duration,
            }
            for s in stats
        ],
        columns=["note", "total_duration_ms", "normalized_duration"],
    )
    df.to_csv(output_path, index=False)


def save_scores_to_csv(scores: List[RagaScore], output_path: str):
    scores_to_dataframe(scores).to_csv(output_path, index=False)


# =============================================================================
# STATIC PLOTS
# =============================================================================

def plot_note_distribution(
    stats: List[NoteStat],
    output_path: str,
    title: str = "Swara Distribution",
    figsize: Tuple[int, int] = (10, 4),
):
    """Bar chart of normalized duration per swara."""
    values = [s.normalized_duration for s in stats]
    labels = [s.note for s in stats]

    plt.figure(figsize=figsize)
    plt.bar(range(len(values)), values, color='steelblue', alpha=0.8)
    plt.xticks(range(len(labels)), labels)
    plt.ylabel("Fraction of sounded time")
    plt.ylim(0, max(values + [0.05]) * 1.1)
    plt.title(title)
    plt.tight_layout()
    plt.savefig(output_path, dpi=120)
    plt.close()


def plot_pitch_with_swara_lines(
    track: PitchTrack,
    tonic: Tonic,
    output_path: str,
    notes: Optional[List[DetectedNote]] = None,
    figsize: Tuple[int, int] = (15, 6),
):
    """
    Plot the pitch trace in semitones above Sa with a labeled line per swara.
    """
    voiced = track.voiced_mask
    time_s = track.timestamps_ms / 1000.0
    semitones = np.full(len(track), np.nan)
    semitones[voiced] = 12.0 * np.log2(track.pitch_hz[voiced] / tonic.frequency_hz)

    plt.figure(figsize=figsize)

    # Condensed notes as translucent blocks behind the trace
    if notes:
        for n in notes:
            plt.axvspan(n.timestamp_ms / 1000.0, n.end_ms / 1000.0, facecolor="#ffeb3b", alpha=0.15, zorder=0)

    plt.plot(time_s, semitones, '.', markersize=2, label='Pitch', color='blue', alpha=0.6, zorder=2)

    if np.any(voiced):
        start = int(np.floor(np.nanmin(semitones))) - 1
        end = int(np.ceil(np.nanmax(semitones))) + 1
    else:
        start, end = 0, 12
    x_label = time_s[-1] if len(time_s) else 0.0

    for semitone in range(start, end + 1):
        offset = semitone % 12
        octave = semitone // 12
        if octave == 0:
            color, linestyle, alpha = 'green', '-', 0.5     # Middle
        elif octave > 0:
            color, linestyle, alpha = 'orange', '--', 0.4   # High
        else:
            color, linestyle, alpha = 'purple', ':', 0.4    # Low

        label = SWARAS[offset]
        if octave > 0:
            label += "·" * octave
        elif octave < 0:
            label += "'" * abs(octave)

        plt.axhline(y=semitone, color=color, linestyle=linestyle, alpha=alpha, linewidth=0.8)
        plt.text(x_label, semitone, f" {label}", va='center', fontsize=8, color=color)

    plt.xlabel("Time (s)")
    plt.ylabel("Semitones above Sa")
    plt.title(f"Pitch Contour with Swara Lines (Tonic: {tonic.name}, {tonic.frequency_hz:.2f} Hz)")
    plt.tight_layout()
    plt.savefig(output_path, dpi=120)
    plt.close()
