"""
Unit tests for the dice service (tactics/dice.py).
"""

import random
import unittest

from tactics.dice import DiceRoller, ScriptedDice, parse_expression


class TestParseExpression(unittest.TestCase):
    """Dice expressions split into (count, sides, multiplier, modifier)."""

    def test_plain_dice(self):
        self.assertEqual(parse_expression("2d6"), (2, 6, 1, 0))

    def test_modifier(self):
        self.assertEqual(parse_expression("2d6+3"), (2, 6, 1, 3))
        self.assertEqual(parse_expression("1d8-1"), (1, 8, 1, -1))

    def test_implicit_count(self):
        self.assertEqual(parse_expression("d20"), (1, 20, 1, 0))

    def test_multiplier(self):
        self.assertEqual(parse_expression("1d6x10"), (1, 6, 10, 0))

    def test_constant(self):
        self.assertEqual(parse_expression("7"), (0, 0, 1, 7))

    def test_malformed(self):
        for bad in ("", "2d", "abc", "0d6", "2d0", "2d6++1"):
            with self.assertRaises(ValueError, msg=bad):
                parse_expression(bad)


class TestDiceRoller(unittest.TestCase):

    def test_seeded_rolls_repeat(self):
        a = DiceRoller(seed=42)
        b = DiceRoller(seed=42)
        self.assertEqual([a.roll("3d6").total for _ in range(20)],
                         [b.roll("3d6").total for _ in range(20)])

    def test_injected_rng(self):
        roller = DiceRoller(rng=random.Random(5))
        expected = random.Random(5).randint(1, 20)
        self.assertEqual(roller.d20(), expected)

    def test_totals_stay_in_bounds(self):
        roller = DiceRoller(seed=1)
        for _ in range(200):
            result = roller.roll("2d6+3")
            self.assertTrue(5 <= result.total <= 15)
            self.assertEqual(len(result.dice), 2)

    def test_constant_expression_rolls_nothing(self):
        result = DiceRoller(seed=1).roll("4")
        self.assertEqual(result.total, 4)
        self.assertEqual(result.dice, ())


class TestScriptedDice(unittest.TestCase):

    def test_faces_in_order(self):
        dice = ScriptedDice([18, 4, 5])
        self.assertEqual(dice.d20(), 18)
        result = dice.roll("2d6+3")
        self.assertEqual(result.total, 12)
        self.assertEqual(result.dice, (4, 5))
        self.assertEqual(dice.remaining(), 0)

    def test_multiplier_applies_to_sum(self):
        dice = ScriptedDice([3])
        self.assertEqual(dice.roll("1d6x10").total, 30)

    def test_exhausted(self):
        dice = ScriptedDice([])
        with self.assertRaises(ValueError):
            dice.d20()

    def test_face_out_of_range(self):
        dice = ScriptedDice([7])
        with self.assertRaises(ValueError):
            dice.roll("1d6")

    def test_push_extends_script(self):
        dice = ScriptedDice([1])
        dice.push(2, 3)
        self.assertEqual([dice.d20(), dice.d20(), dice.d20()], [1, 2, 3])
        self.assertEqual(dice.consumed, [1, 2, 3])


if __name__ == "__main__":
    unittest.main()
