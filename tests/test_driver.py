import contextlib
import io
import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

import numpy as np

try:
    from scipy.io import wavfile

    import driver
    from swara_pipeline.config import PipelineConfig

    IMPORT_OK = True
except Exception:
    IMPORT_OK = False


SR = 22050
TONIC_HZ = 220.0


def _write_melody(path: str) -> None:
    """Sa Ga Re Sa above A3, as plain sine segments."""
    segments = [(0, 1.2), (4, 0.8), (2, 0.4), (0, 0.6)]
    parts = []
    for semitone, seconds in segments:
        t = np.arange(int(SR * seconds)) / SR
        freq = TONIC_HZ * 2.0 ** (semitone / 12.0)
        parts.append(0.5 * np.sin(2.0 * np.pi * freq * t))
    wavfile.write(path, SR, np.concatenate(parts).astype(np.float32))


@unittest.skipUnless(IMPORT_OK, "driver or pipeline imports unavailable in current environment")
class DriverDetectTests(unittest.TestCase):
    def _build_detect_config(self, tmpdir: str, **overrides: object) -> "PipelineConfig":
        audio_path = os.path.join(tmpdir, "melody.wav")
        _write_melody(audio_path)
        kwargs = {
            "audio_path": audio_path,
            "output_dir": os.path.join(tmpdir, "results"),
            "mode": "detect",
        }
        kwargs.update(overrides)
        return PipelineConfig(**kwargs)

    def _run(self, config):
        with contextlib.redirect_stdout(io.StringIO()) as out:
            results = driver.run_pipeline(config)
        return results, out.getvalue()

    def test_detect_end_to_end(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            config = self._build_detect_config(tmpdir)
            results, log = self._run(config)

            self.assertTrue(results.tonic_detected)
            self.assertEqual(results.tonic.name, "A")
            tokens = [n.note for n in results.notes]
            self.assertEqual(tokens[0], "Sa")
            self.assertIn("Ga", tokens)
            self.assertIn("Re", tokens)
            self.assertEqual(len(results.note_stats), 12)
            self.assertAlmostEqual(sum(s.normalized_duration for s in results.note_stats), 1.0)

            # every bundled raga is ranked, best first
            self.assertGreaterEqual(len(results.scores), 10)
            scores = [s.score for s in results.scores]
            self.assertEqual(scores, sorted(scores, reverse=True))

            out_dir = config.file_output_dir
            for name in ("melody_pitch_data.csv", "notes.csv", "note_stats.csv", "raga_scores.csv",
                         "note_distribution.png", "pitch_swara_lines.png"):
                self.assertTrue(os.path.isfile(os.path.join(out_dir, name)), name)
            self.assertIn("[STEP 4/4]", log)
            self.assertIn("Top 3 ragas", log)

    def test_second_run_uses_pitch_cache(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            config = self._build_detect_config(tmpdir)
            first, _ = self._run(config)
            second, log = self._run(config)
            self.assertIn("[CACHE]", log)
            self.assertEqual([n.note for n in first.notes], [n.note for n in second.notes])

    def test_given_tonic_skips_detection(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            config = self._build_detect_config(tmpdir, tonic="C", save_intermediates=False)
            results, _ = self._run(config)
            self.assertFalse(results.tonic_detected)
            self.assertEqual(results.tonic.name, "C")
            # A above a C tonic is Dha
            self.assertEqual(results.notes[0].note, "Dha")
            self.assertFalse(os.path.exists(os.path.join(config.file_output_dir, "notes.csv")))

    def test_silent_recording_reports_insufficient_signal(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            audio_path = os.path.join(tmpdir, "silence.wav")
            wavfile.write(audio_path, SR, np.zeros(SR, dtype=np.float32))
            config = PipelineConfig(audio_path=audio_path, output_dir=tmpdir, save_intermediates=False)
            results, log = self._run(config)
            self.assertFalse(results.has_signal)
            self.assertEqual(results.tonic.name, "C")
            self.assertIn("Insufficient signal", log)
            self.assertTrue(all(s.score == 0.0 for s in results.scores))

    def test_no_database_skips_ranking(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            config = self._build_detect_config(tmpdir, save_intermediates=False)
            config.raga_db_path = None
            results, log = self._run(config)
            self.assertEqual(results.scores, [])
            self.assertIn("Skipped (no database)", log)


@unittest.skipUnless(IMPORT_OK, "driver or pipeline imports unavailable in current environment")
class DriverLibraryAndMainTests(unittest.TestCase):
    def test_library_search(self) -> None:
        config = PipelineConfig(mode="library", query="yaman")
        with contextlib.redirect_stdout(io.StringIO()) as out:
            results = driver.run_pipeline(config)
        self.assertEqual([r.id for r in results.library_matches], ["yaman"])
        self.assertIn("Vaadi/Samvaadi: Ga / Ni", out.getvalue())

    def test_library_lists_all_without_query(self) -> None:
        config = PipelineConfig(mode="library")
        with contextlib.redirect_stdout(io.StringIO()):
            results = driver.run_pipeline(config)
        self.assertGreaterEqual(len(results.library_matches), 10)

    def test_main_reports_missing_audio(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            argv = ["driver.py", "detect", "--audio", str(Path(tmpdir) / "missing.wav"), "--output", tmpdir]
            with patch("sys.argv", argv), contextlib.redirect_stdout(io.StringIO()) as out:
                code = driver.main()
        self.assertEqual(code, 1)
        self.assertIn("[ERROR]", out.getvalue())

    def test_main_reports_malformed_database(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            db_path = Path(tmpdir) / "bad.json"
            db_path.write_text('{"ragas": [{"id": "x"}]}', encoding="utf-8")
            argv = ["driver.py", "library", "--raga-db", str(db_path)]
            with patch("sys.argv", argv), contextlib.redirect_stdout(io.StringIO()) as out:
                code = driver.main()
        self.assertEqual(code, 1)
        self.assertIn("missing required field", out.getvalue())


if __name__ == "__main__":
    unittest.main()
