import math
import unittest

try:
    from swara_pipeline.pitch import SILENCE_HZ, PitchObservation
    from swara_pipeline.sequence import (
        SILENCE_LABEL,
        SWARAS,
        DetectedNote,
        NoteStat,
        SwaraFrame,
        condense_notes,
        frequency_to_swara,
        label_pitch_track,
        normalize_swara,
        notes_to_frames,
        round_half_up,
    )

    IMPORT_OK = True
except Exception:
    IMPORT_OK = False


def _frames(labels, step_ms: float = 10.0):
    return [SwaraFrame(i * step_ms, float("nan"), label) for i, label in enumerate(labels)]


@unittest.skipUnless(IMPORT_OK, "sequence module unavailable in current environment")
class FrequencyToSwaraTests(unittest.TestCase):
    def test_semitone_steps_map_to_table(self) -> None:
        tonic = 261.63
        for k in range(-24, 25):
            freq = tonic * 2.0 ** (k / 12.0)
            self.assertEqual(frequency_to_swara(freq, tonic), SWARAS[k % 12], f"k={k}")

    def test_octave_equivalence(self) -> None:
        self.assertEqual(frequency_to_swara(440.0, 220.0), "Sa")
        self.assertEqual(frequency_to_swara(110.0, 220.0), "Sa")
        self.assertEqual(frequency_to_swara(330.0, 220.0), "Pa")

    def test_just_below_tonic_is_ni(self) -> None:
        # one semitone below Sa must wrap to Ni rather than a negative index
        self.assertEqual(frequency_to_swara(261.63 / 2 ** (1 / 12), 261.63), "Ni")

    def test_quarter_tone_rounds_up(self) -> None:
        tonic = 200.0
        self.assertEqual(frequency_to_swara(tonic * 2 ** (0.49 / 12), tonic), "Sa")
        self.assertEqual(frequency_to_swara(tonic * 2 ** (0.51 / 12), tonic), "re")

    def test_silence_sentinel(self) -> None:
        self.assertEqual(frequency_to_swara(SILENCE_HZ, 261.63), SILENCE_LABEL)
        self.assertEqual(frequency_to_swara(0.0, 261.63), SILENCE_LABEL)
        self.assertEqual(frequency_to_swara(float("nan"), 261.63), SILENCE_LABEL)

    def test_non_positive_tonic_rejected(self) -> None:
        for tonic in (0.0, -261.63, float("nan")):
            with self.assertRaisesRegex(ValueError, "Tonic frequency"):
                frequency_to_swara(220.0, tonic)
        with self.assertRaisesRegex(ValueError, "Tonic frequency"):
            frequency_to_swara(SILENCE_HZ, 0.0)

    def test_round_half_up(self) -> None:
        self.assertEqual(round_half_up(0.5), 1)
        self.assertEqual(round_half_up(-0.5), 0)
        self.assertEqual(round_half_up(-1.5), -1)
        self.assertEqual(round_half_up(2.4999), 2)

    def test_label_pitch_track(self) -> None:
        obs = [PitchObservation(0.0, 220.0), PitchObservation(10.0, SILENCE_HZ), PitchObservation(20.0, 330.0)]
        frames = label_pitch_track(obs, 220.0)
        self.assertEqual([f.swara for f in frames], ["Sa", SILENCE_LABEL, "Pa"])
        self.assertEqual([f.timestamp_ms for f in frames], [0.0, 10.0, 20.0])

    def test_label_pitch_track_rejects_bad_tonic(self) -> None:
        with self.assertRaises(ValueError):
            label_pitch_track([PitchObservation(0.0, 220.0)], 0.0)

    def test_normalize_swara_strips_octave_markers(self) -> None:
        self.assertEqual(normalize_swara("Ni'"), "Ni")
        self.assertEqual(normalize_swara("Sa·"), "Sa")
        self.assertEqual(normalize_swara(".dha"), "dha")
        with self.assertRaises(ValueError):
            normalize_swara("Xa")


@unittest.skipUnless(IMPORT_OK, "sequence module unavailable in current environment")
class CondenseNotesTests(unittest.TestCase):
    def test_empty_input(self) -> None:
        notes, stats = condense_notes([])
        self.assertEqual(notes, [])
        self.assertEqual([s.note for s in stats], list(SWARAS))
        self.assertTrue(all(s.total_duration_ms == 0 and s.normalized_duration == 0 for s in stats))

    def test_run_length_encoding(self) -> None:
        frames = _frames(["Sa"] * 10 + ["Re"] * 10 + ["Ga"] * 10)
        notes, stats = condense_notes(frames)
        self.assertEqual([n.note for n in notes], ["Sa", "Re", "Ga"])
        self.assertEqual([n.timestamp_ms for n in notes], [0.0, 100.0, 200.0])
        self.assertEqual([n.duration_ms for n in notes], [100.0, 100.0, 90.0])

    def test_trailing_note_floor(self) -> None:
        notes, _ = condense_notes(_frames(["Sa"] * 10 + ["Pa"]))
        self.assertEqual(notes[-1].note, "Pa")
        self.assertEqual(notes[-1].duration_ms, 50.0)

    def test_short_notes_are_dropped(self) -> None:
        # Re lasts exactly 40 ms and must not survive
        frames = _frames(["Sa"] * 10 + ["Re"] * 4 + ["Sa"] * 10)
        notes, stats = condense_notes(frames)
        self.assertEqual([n.note for n in notes], ["Sa", "Sa"])
        by_note = {s.note: s for s in stats}
        self.assertEqual(by_note["Re"].total_duration_ms, 0.0)

    def test_silence_ends_notes_without_producing_one(self) -> None:
        frames = _frames(["Sa"] * 10 + [SILENCE_LABEL] * 10 + ["Pa"] * 10)
        notes, stats = condense_notes(frames)
        self.assertEqual([(n.note, n.timestamp_ms, n.duration_ms) for n in notes],
                         [("Sa", 0.0, 100.0), ("Pa", 200.0, 90.0)])
        self.assertAlmostEqual(sum(s.normalized_duration for s in stats), 1.0)

    def test_all_silence(self) -> None:
        notes, stats = condense_notes(_frames([SILENCE_LABEL] * 20))
        self.assertEqual(notes, [])
        self.assertEqual(sum(s.total_duration_ms for s in stats), 0.0)

    def test_stats_normalize_and_keep_table_order(self) -> None:
        frames = _frames(["Sa"] * 30 + ["Pa"] * 10 + ["Sa"] * 10)
        notes, stats = condense_notes(frames)
        self.assertEqual([s.note for s in stats], list(SWARAS))
        total = sum(n.duration_ms for n in notes)
        by_note = {s.note: s for s in stats}
        self.assertAlmostEqual(by_note["Sa"].normalized_duration, (300.0 + 90.0) / total)
        self.assertAlmostEqual(by_note["Pa"].normalized_duration, 100.0 / total)
        self.assertTrue(math.isclose(sum(s.normalized_duration for s in stats), 1.0))

    def test_condense_is_idempotent(self) -> None:
        frames = _frames(["Sa"] * 10 + ["Re"] * 7 + [SILENCE_LABEL] * 5 + ["Ga"] * 12 + ["Ga", "ma"] * 2)
        notes, stats = condense_notes(frames)
        again, again_stats = condense_notes(notes_to_frames(notes))
        self.assertEqual(again, notes)
        self.assertEqual(again_stats, stats)

    def test_note_validation(self) -> None:
        with self.assertRaises(ValueError):
            DetectedNote("Xa", 0.0, 10.0)
        with self.assertRaises(ValueError):
            DetectedNote("Sa", 0.0, -1.0)
        with self.assertRaises(ValueError):
            NoteStat("Sa", 10.0, 1.5)


if __name__ == "__main__":
    unittest.main()
