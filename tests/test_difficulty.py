import math
import random
import unittest

from retarget.core import difficulty


class CompactTargetTests(unittest.TestCase):
    def test_known_vectors_decode(self) -> None:
        self.assertEqual(difficulty.compact_to_target(0x1E0FFFF0), 0x0FFFF0 << (8 * 27))
        self.assertEqual(difficulty.compact_to_target(0x1D00FFFF), 0xFFFF << (8 * 26))
        self.assertEqual(difficulty.compact_to_target(0x01003456), 0)
        self.assertEqual(difficulty.compact_to_target(0x01123456), 0x12)
        self.assertEqual(difficulty.compact_to_target(0x02008000), 0x80)
        self.assertEqual(difficulty.compact_to_target(0x05009234), 0x92340000)
        self.assertEqual(difficulty.compact_to_target(0x04123456), 0x12345600)
        self.assertEqual(difficulty.compact_to_target(0x00000000), 0)

    def test_negative_compact_decodes_to_zero(self) -> None:
        self.assertEqual(difficulty.compact_to_target(0x04923456), 0)
        self.assertEqual(difficulty.compact_to_target(0x01FEDCBA), 0)

    def test_known_vectors_encode(self) -> None:
        self.assertEqual(difficulty.target_to_compact(0x0FFFF0 << (8 * 27)), 0x1E0FFFF0)
        self.assertEqual(difficulty.target_to_compact(0x80), 0x02008000)
        self.assertEqual(difficulty.target_to_compact(0x12), 0x01120000)
        self.assertEqual(difficulty.target_to_compact(0x92340000), 0x05009234)
        self.assertEqual(difficulty.target_to_compact(0x12345600), 0x04123456)
        self.assertEqual(difficulty.target_to_compact(0), 0x01000000)
        self.assertEqual(difficulty.target_to_compact(-5), 0)

    def test_encode_drops_precision_below_mantissa(self) -> None:
        target = (0x0FFFF0 << (8 * 27)) + 12345
        self.assertEqual(difficulty.target_to_compact(target), 0x1E0FFFF0)

    def test_reencoding_preserves_decoded_magnitude(self) -> None:
        rng = random.Random(1337)
        samples = [0, 0xFFFFFFFF, 0x00FFFFFF, 0xFF7FFFFF, 0x207FFFFF, 0x1E0FFFFF, 0x03800000]
        samples += [rng.getrandbits(32) for _ in range(2000)]
        for bits in samples:
            value = difficulty.compact_to_target(bits)
            reencoded = difficulty.target_to_compact(value)
            self.assertEqual(difficulty.compact_to_target(reencoded), value, hex(bits))
            self.assertEqual(difficulty.target_to_compact(difficulty.compact_to_target(reencoded)), reencoded)
            self.assertEqual(reencoded & 0x00800000, 0)


class BitsToDoubleTests(unittest.TestCase):
    def test_unit_difficulty(self) -> None:
        self.assertEqual(difficulty.bits_to_double(0x1D00FFFF), 1.0)

    def test_pow_limit(self) -> None:
        self.assertEqual(difficulty.bits_to_double(0x1E0FFFF0), 0.000244140625)

    def test_zero_mantissa_is_infinite(self) -> None:
        self.assertTrue(math.isinf(difficulty.bits_to_double(0x1D000000)))

    def test_harder_target_is_larger(self) -> None:
        self.assertGreater(difficulty.bits_to_double(0x1B0404CB), difficulty.bits_to_double(0x1D00FFFF))


class ArithmeticTests(unittest.TestCase):
    def test_truncating_division_rounds_toward_zero(self) -> None:
        self.assertEqual(difficulty.truncating_div(7, 2), 3)
        self.assertEqual(difficulty.truncating_div(-7, 2), -3)
        self.assertEqual(difficulty.truncating_div(7, -2), -3)
        self.assertEqual(difficulty.truncating_div(-7, -2), 3)

    def test_successive_average_differs_from_floor_mean(self) -> None:
        avg = difficulty.successive_average(0, 10, 1)
        self.assertEqual(avg, 10)
        avg = difficulty.successive_average(avg, 5, 2)
        # (5 - 10) / 2 truncates to -2, not -3.
        self.assertEqual(avg, 8)

    def test_clamp(self) -> None:
        self.assertEqual(difficulty.clamp(5, 10, 20), 10)
        self.assertEqual(difficulty.clamp(25, 10, 20), 20)
        self.assertEqual(difficulty.clamp(15, 10, 20), 15)


class RetargetResultTests(unittest.TestCase):
    def test_constructors(self) -> None:
        ok = difficulty.Retarget.ok(10, 0x1E0FFFF0)
        self.assertIs(ok.status, difficulty.RetargetStatus.OK)
        self.assertEqual(ok.bits, 0x1E0FFFF0)
        self.assertFalse(ok.is_gap)
        gap = difficulty.Retarget.gap(11)
        self.assertTrue(gap.is_gap)
        self.assertIsNone(gap.bits)
        violation = difficulty.Retarget.violation(12, "nope")
        self.assertIs(violation.status, difficulty.RetargetStatus.VIOLATION)
        self.assertEqual(violation.reason, "nope")


if __name__ == "__main__":
    unittest.main()
