import unittest

import numpy as np

try:
    from swara_pipeline.pitch import SILENCE_HZ, PitchObservation, PitchTrack
    from swara_pipeline.tonic import BASE_NOTES, Tonic, chroma_histogram, detect_tonic, parse_tonic

    IMPORT_OK = True
except Exception:
    IMPORT_OK = False


@unittest.skipUnless(IMPORT_OK, "tonic module unavailable in current environment")
class DetectTonicTests(unittest.TestCase):
    def test_upper_octave_c_is_c(self) -> None:
        tonic = detect_tonic([523.25] * 20)
        self.assertEqual(tonic.name, "C")
        self.assertAlmostEqual(tonic.frequency_hz, 261.63)

    def test_most_frequent_pitch_class_wins(self) -> None:
        freqs = [293.66] * 10 + [392.0] * 4 + [146.83] * 3
        self.assertEqual(detect_tonic(freqs).name, "D")

    def test_ties_go_to_lowest_pitch_class(self) -> None:
        freqs = [440.0] * 5 + [293.66] * 5
        self.assertEqual(detect_tonic(freqs).name, "D")

    def test_no_usable_observations_defaults_to_c(self) -> None:
        self.assertEqual(detect_tonic([]), BASE_NOTES[0])
        self.assertEqual(detect_tonic([SILENCE_HZ] * 10), BASE_NOTES[0])

    def test_out_of_range_values_ignored(self) -> None:
        # 40 Hz and 1200 Hz are outside the tonic range; only 220 Hz counts
        freqs = [40.0] * 50 + [1200.0] * 50 + [220.0]
        self.assertEqual(detect_tonic(freqs).name, "A")
        hist = chroma_histogram(freqs)
        self.assertEqual(int(hist.sum()), 1)

    def test_accepts_pitch_track_and_observations(self) -> None:
        track = PitchTrack(timestamps_ms=np.arange(4) * 10.0, pitch_hz=np.array([196.0, 196.0, SILENCE_HZ, 392.0]))
        self.assertEqual(detect_tonic(track).name, "G")
        self.assertEqual(detect_tonic(track.observations).name, "G")
        self.assertEqual(detect_tonic([PitchObservation(0.0, 349.23)]).name, "F")

    def test_result_is_a_base_note(self) -> None:
        rng = np.random.default_rng(11)
        tonic = detect_tonic(rng.uniform(60.0, 900.0, 200))
        self.assertIn(tonic, BASE_NOTES)


@unittest.skipUnless(IMPORT_OK, "tonic module unavailable in current environment")
class ParseTonicTests(unittest.TestCase):
    def test_note_names(self) -> None:
        self.assertEqual(parse_tonic("C#"), BASE_NOTES[1])
        self.assertEqual(parse_tonic("db"), BASE_NOTES[1])
        self.assertEqual(parse_tonic(" a "), BASE_NOTES[9])

    def test_frequency_strings_and_numbers(self) -> None:
        tonic = parse_tonic("146.8")
        self.assertAlmostEqual(tonic.frequency_hz, 146.8)
        self.assertEqual(tonic.name, "D")
        self.assertEqual(parse_tonic(220).name, "A")

    def test_passthrough(self) -> None:
        t = Tonic("X", 123.0)
        self.assertIs(parse_tonic(t), t)

    def test_invalid_values(self) -> None:
        for bad in ("", "H", "-5", "0", None):
            with self.assertRaises(ValueError, msg=repr(bad)):
                parse_tonic(bad)

    def test_tonic_requires_positive_frequency(self) -> None:
        with self.assertRaises(ValueError):
            Tonic("C", 0.0)


if __name__ == "__main__":
    unittest.main()
