import csv
import argparse
import json
import os
import sys
import subprocess
from datetime import datetime
from typing import Dict, Optional, Any

import pandas as pd


AUDIO_EXTS = {".mp3", ".wav", ".m4a", ".flac", ".ogg"}


def _is_valid_audio_file(filename: str, valid_exts: set[str]) -> bool:
    """Filter out hidden/AppleDouble files and non-audio extensions."""
    if not filename or filename.startswith("."):
        return False
    return os.path.splitext(filename)[1].lower() in valid_exts


def _now_iso() -> str:
    return datetime.now().isoformat(timespec="seconds")


def _project_root() -> str:
    return os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def _driver_path() -> str:
    return os.path.join(_project_root(), "driver.py")


def _default_progress_file(output_dir: str, input_dir: str) -> str:
    input_name = os.path.basename(os.path.normpath(input_dir)) or "batch"
    return os.path.join(output_dir, "logs", f"{input_name}_batch_progress.json")


def _load_progress(progress_file: str) -> Dict[str, Any]:
    empty = {"processed": [], "failed": [], "attempts": [], "results": {}}
    if not os.path.exists(progress_file):
        return empty

    try:
        with open(progress_file, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        print(f"[WARN] Failed reading progress file {progress_file}: {e}")
        return empty

    progress = {}
    for key, default in empty.items():
        value = data.get(key, default)
        progress[key] = value if isinstance(value, type(default)) else default
    return progress


def _save_progress(progress_file: str, progress: Dict[str, Any]) -> None:
    os.makedirs(os.path.dirname(progress_file) or ".", exist_ok=True)
    with open(progress_file, "w", encoding="utf-8") as f:
        json.dump(progress, f, indent=2)


def load_ground_truth(csv_path: str) -> Dict[str, dict]:
    """
    load ground truth data from an annotated recording list
    expected columns: filename
    optional columns: tonic, raga
    returns dict: {filename: {data}}
    """
    ground_truth: Dict[str, Dict[str, str]] = {}
    if not os.path.exists(csv_path):
        print(f"[WARN] Ground truth file not found at {csv_path}")
        return ground_truth

    with open(csv_path, 'r', encoding='utf-8') as f:
        reader = csv.DictReader(f)
        fieldnames = reader.fieldnames or []
        if not fieldnames:
            print("[ERROR] Ground truth CSV has no headers.")
            return ground_truth

        name_col = next((h for h in fieldnames if 'file' in h.lower()), None)
        if not name_col:
            name_col = next((h for h in fieldnames if 'name' in h.lower() and 'raga' not in h.lower()), None)
        if not name_col:
            print(f"[ERROR] CSV must contain a filename column. Found: {fieldnames}")
            return ground_truth

        def find_col(partial_name):
            return next((h for h in fieldnames if partial_name in h.lower()), None)

        raga_col = find_col('raga')
        tonic_col = find_col('tonic')

        for row in reader:
            fname = os.path.basename(row[name_col] or "").strip()
            if not fname:
                continue
            entry = {}
            if raga_col and row.get(raga_col):
                entry['raga'] = row[raga_col].strip()
            if tonic_col and row.get(tonic_col):
                entry['tonic'] = row[tonic_col].strip()
            ground_truth[fname] = entry

    return ground_truth


def _build_pipeline_cmd(audio_path: str, output_dir: str, gt_info: dict, extra_args: Optional[list] = None) -> list[str]:
    """Build a driver invocation; a ground-truth tonic skips tonic detection."""
    command = [
        sys.executable,
        _driver_path(),
        "detect",
        "--audio",
        audio_path,
        "--output",
        output_dir,
    ]
    tonic = gt_info.get("tonic")
    if tonic:
        print(f"  -> Using ground-truth tonic: {tonic}")
        command.extend(["--tonic", tonic])
    else:
        print("  -> Tonic will be auto-detected")
    if extra_args:
        command.extend(extra_args)
    return command


def _run_with_live_log(cmd: list[str], log_file: str, silent: bool) -> int:
    with open(log_file, "w", encoding="utf-8") as f_log:
        process = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            bufsize=1,
            env=os.environ,
        )
        if process.stdout is None:
            raise RuntimeError("Failed to capture subprocess stdout.")

        for line in process.stdout:
            f_log.write(line)
            if not silent:
                sys.stdout.write(line)
                sys.stdout.flush()

        process.wait()
        return int(process.returncode or 0)


def _read_top_raga(output_dir: str, audio_path: str) -> Optional[str]:
    """Best-ranked raga name written by the driver for one recording."""
    stem = os.path.splitext(os.path.basename(audio_path))[0]
    scores_csv = os.path.join(output_dir, stem, "raga_scores.csv")
    if not os.path.isfile(scores_csv):
        return None
    df = pd.read_csv(scores_csv)
    if df.empty:
        return None
    return str(df.sort_values("rank").iloc[0]["raga"])


def process_directory(
    input_dir: str,
    ground_truth_path: Optional[str] = None,
    output_dir: str = "results",
    max_files: int = 0,
    progress_file: Optional[str] = None,
    silent: bool = False,
    extra_args: Optional[list] = None,
) -> Dict[str, int]:
    """
    Walk an input directory and run the pipeline on each audio file.

    Returns a summary dictionary with counts for processed/failed/remaining,
    plus top-1 hits for recordings whose ground truth names a raga.
    """
    output_dir = os.path.abspath(output_dir)
    os.makedirs(os.path.join(output_dir, "logs"), exist_ok=True)

    if progress_file is None:
        progress_file = _default_progress_file(output_dir, input_dir)
    else:
        progress_file = os.path.abspath(progress_file)

    gt_data: Dict[str, dict] = {}
    if ground_truth_path:
        gt_data = load_ground_truth(ground_truth_path)
        print(f"Loaded {len(gt_data)} ground truth entries.")

    tasks: list[str] = []
    for root, _dirs, files in os.walk(input_dir):
        for file in files:
            if _is_valid_audio_file(file, AUDIO_EXTS):
                tasks.append(os.path.abspath(os.path.join(root, file)))
    tasks.sort()

    progress = _load_progress(progress_file)
    processed_set = set(str(path) for path in progress.get("processed", []))
    pending_tasks = [task for task in tasks if task not in processed_set]

    print(f"Found {len(tasks)} audio files total.")
    print(f"Already processed (from checkpoint): {len(processed_set & set(tasks))}")

    if max_files > 0:
        tasks_to_run = pending_tasks[:max_files]
        print(f"Processing up to {len(tasks_to_run)} files this run (--max-files={max_files}).")
    else:
        tasks_to_run = pending_tasks
        print(f"Processing all remaining files this run ({len(tasks_to_run)}).")

    run_successes = 0
    run_failures = 0
    evaluated = 0
    top1_hits = 0

    for i, audio_path in enumerate(tasks_to_run):
        fname = os.path.basename(audio_path)
        print(f"\n[{i+1}/{len(tasks_to_run)}] Processing: {fname}")

        gt_info = gt_data.get(fname, {})
        cmd = _build_pipeline_cmd(audio_path, output_dir, gt_info, extra_args)
        log_file = os.path.join(output_dir, "logs", f"{fname}.log")

        try:
            returncode = _run_with_live_log(cmd, log_file, silent=silent)
        except (OSError, RuntimeError) as e:
            print(f"  [ERROR] Execution failed: {e}")
            run_failures += 1
            progress["failed"].append(
                {"audio_path": audio_path, "exit_code": -1, "error": str(e), "timestamp": _now_iso()}
            )
            _save_progress(progress_file, progress)
            continue

        if returncode == 0:
            print(f"  [SUCCESS] Log: {log_file}")
            run_successes += 1
            if audio_path not in processed_set:
                processed_set.add(audio_path)
                progress["processed"].append(audio_path)

            top_raga = _read_top_raga(output_dir, audio_path)
            expected = gt_info.get("raga")
            record = {"top_raga": top_raga, "expected_raga": expected}
            if expected and top_raga is not None:
                hit = top_raga.strip().lower() == expected.strip().lower()
                record["top1_hit"] = hit
                evaluated += 1
                top1_hits += int(hit)
                print(f"  -> Top raga: {top_raga} (expected {expected}) {'HIT' if hit else 'MISS'}")
            progress["results"][audio_path] = record
        else:
            print(f"  [FAILURE] Exit Code: {returncode}. Check Log: {log_file}")
            run_failures += 1
            progress["failed"].append(
                {"audio_path": audio_path, "exit_code": returncode, "timestamp": _now_iso()}
            )

        progress["attempts"].append(
            {
                "audio_path": audio_path,
                "status": "success" if returncode == 0 else "failure",
                "exit_code": returncode,
                "command": cmd,
                "log_file": log_file,
                "timestamp": _now_iso(),
            }
        )
        _save_progress(progress_file, progress)

    remaining = len([task for task in tasks if task not in processed_set])
    print("\nBatch summary:")
    print(f"  Processed this run: {run_successes}")
    print(f"  Failed this run: {run_failures}")
    print(f"  Remaining: {remaining}")
    if evaluated:
        print(f"  Top-1 accuracy: {top1_hits}/{evaluated} ({100.0 * top1_hits / evaluated:.1f}%)")
    print(f"  Progress file: {progress_file}")

    return {
        "processed_in_run": run_successes,
        "failed_in_run": run_failures,
        "remaining": remaining,
        "total": len(tasks),
        "evaluated": evaluated,
        "top1_hits": top1_hits,
    }


def main() -> int:
    parser = argparse.ArgumentParser(description="Batch process audio files for raga identification.")
    parser.add_argument("input_dir", help="Directory containing audio files")

    default_output = os.path.join(_project_root(), "batch_results")

    parser.add_argument("--ground-truth", "-g", default=None,
                        help="Path to ground truth CSV (filename, tonic, raga columns)")
    parser.add_argument("--output", "-o", default=default_output,
                        help=f"Output directory (default: {default_output})")
    parser.add_argument("--max-files", type=int, default=0,
                        help="Maximum files to process in this run (0 = all remaining)")
    parser.add_argument("--progress-file", default=None,
                        help="Path to checkpoint JSON. Default: <output>/logs/<input_dir_name>_batch_progress.json")
    parser.add_argument("--silent", "-s", action="store_true", help="Suppress output to console (log files are still saved)")

    args, extra = parser.parse_known_args()

    if not os.path.isdir(args.input_dir):
        print(f"[ERROR] Input directory '{args.input_dir}' does not exist.")
        return 1

    summary = process_directory(
        input_dir=args.input_dir,
        ground_truth_path=args.ground_truth,
        output_dir=args.output,
        max_files=max(0, int(args.max_files)),
        progress_file=args.progress_file,
        silent=args.silent,
        extra_args=extra,
    )

    if summary["failed_in_run"] > 0:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
