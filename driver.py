#!/usr/bin/env python3
"""
driver file for the swara pipeline

modes:
    detect  - track pitch, find the tonic (or use --tonic), condense notes and rank ragas
    library - search the raga database by name, thaat or id
"""

import os
import sys
from pathlib import Path

# add package to path if running directly
if __name__ == "__main__":
    package_dir = Path(__file__).parent
    if str(package_dir) not in sys.path:
        sys.path.insert(0, str(package_dir))

from swara_pipeline.config import PipelineConfig, load_config_from_cli
from swara_pipeline.audio import extract_pitch_from_config
from swara_pipeline.tonic import detect_tonic, parse_tonic
from swara_pipeline.sequence import condense_notes, label_pitch_track
from swara_pipeline.raga import RagaDatabase, RagaScorer
from swara_pipeline.output import (
    AnalysisResults,
    plot_note_distribution,
    plot_pitch_with_swara_lines,
    print_library,
    print_summary,
    save_note_stats_to_csv,
    save_notes_to_csv,
    save_scores_to_csv,
)


def _load_raga_db(config: PipelineConfig):
    if not config.raga_db_path:
        print("[WARN] No raga database found; raga ranking will be skipped.")
        return None
    raga_db = RagaDatabase(config.raga_db_path)
    print(f"[DB] Loaded {len(raga_db)} ragas from {config.raga_db_path}")
    return raga_db


def run_library(config: PipelineConfig) -> AnalysisResults:
    results = AnalysisResults(config=config)
    raga_db = _load_raga_db(config)
    if raga_db is None:
        return results
    results.library_matches = raga_db.search(config.query) if config.query else list(raga_db)
    print_library(results.library_matches)
    return results


def run_pipeline(config: PipelineConfig) -> AnalysisResults:
    """
    run the swara pipeline in the configured mode

    - detect: pitch -> tonic -> swara trace -> note stream/stats -> raga ranking
    - library: print matching raga definitions

    args:
        config: pipeline configuration

    outputs:
        AnalysisResults with computed data
    """
    if config.mode == "library":
        return run_library(config)

    results = AnalysisResults(config=config)

    print("=" * 60)
    print("SWARA PIPELINE")
    print(f"MODE: {config.mode.upper()}")
    print("=" * 60)
    print(f"Audio: {config.filename}")
    print(f"Output: {config.output_dir}")
    print()

    # load the corpus first so a malformed database fails before any audio work
    raga_db = _load_raga_db(config)

    # STEP 1: Pitch
    print("[STEP 1/4] Extracting pitch...")
    track = extract_pitch_from_config(config)
    results.pitch_track = track
    if not track.voiced_mask.any():
        print("  [WARN] No voiced frames detected.")

    # STEP 2: Tonic
    print("\n[STEP 2/4] Determining tonic...")
    if config.tonic:
        results.tonic = parse_tonic(config.tonic)
        results.tonic_detected = False
        print(f"  Using Force Tonic: {config.tonic} -> {results.tonic.name} ({results.tonic.frequency_hz:.2f} Hz)")
    else:
        results.tonic = detect_tonic(track)
        results.tonic_detected = True
        print(f"  [TONIC] Detected: {results.tonic.name} ({results.tonic.frequency_hz:.2f} Hz)")

    # STEP 3: Notes
    print("\n[STEP 3/4] Condensing note stream...")
    frames = label_pitch_track(track, results.tonic.frequency_hz)
    results.notes, results.note_stats = condense_notes(frames)
    print(f"  {len(results.notes)} notes after transient filtering")

    # STEP 4: Raga ranking
    print("\n[STEP 4/4] Scoring ragas...")
    if raga_db is not None:
        scorer = RagaScorer(raga_db)
        results.scores = scorer.score(results.note_stats, results.notes)
        print(f"  Scored {len(results.scores)} ragas")
    else:
        print("  Skipped (no database)")

    if config.save_intermediates:
        _save_outputs(results)

    print_summary(results, top_k=config.top_k)
    return results


def _save_outputs(results: AnalysisResults) -> None:
    config = results.config
    out_dir = config.file_output_dir
    os.makedirs(out_dir, exist_ok=True)

    notes_csv = os.path.join(out_dir, "notes.csv")
    save_notes_to_csv(results.notes, notes_csv)
    results.csv_paths["notes"] = notes_csv

    stats_csv = os.path.join(out_dir, "note_stats.csv")
    save_note_stats_to_csv(results.note_stats, stats_csv)
    results.csv_paths["note_stats"] = stats_csv

    if results.scores:
        scores_csv = os.path.join(out_dir, "raga_scores.csv")
        save_scores_to_csv(results.scores, scores_csv)
        results.csv_paths["raga_scores"] = scores_csv

    for path in results.csv_paths.values():
        print(f"  [WRITE] {path}")

    dist_path = os.path.join(out_dir, "note_distribution.png")
    plot_note_distribution(results.note_stats, dist_path, title=f"Swara Distribution - {config.filename}")
    results.plot_paths["note_distribution"] = dist_path

    if results.pitch_track is not None and len(results.pitch_track) > 0:
        pitch_path = os.path.join(out_dir, "pitch_swara_lines.png")
        plot_pitch_with_swara_lines(results.pitch_track, results.tonic, pitch_path, notes=results.notes)
        results.plot_paths["pitch_swara_lines"] = pitch_path

    for path in results.plot_paths.values():
        print(f"  Saved: {path}")


def main() -> int:
    try:
        config = load_config_from_cli()
        run_pipeline(config)
    except (ValueError, FileNotFoundError) as e:
        print(f"[ERROR] {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
