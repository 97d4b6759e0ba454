"""
Tests for pain stagger, bleeding and stabilizing (tactics/pain.py) and
for prowling, detection and sneak attacks (tactics/stealth.py).
"""

import unittest

from tactics import (
    PALLADIUM_PSIONICS,
    Attributes,
    CombatEngine,
    Combatant,
    DefenseKind,
    GridKind,
    Position,
    RulesConfig,
    ScriptedDice,
    Side,
    StatusEffect,
    TacticalMap,
    ValidationReason,
    Weapon,
)
from tactics.pain import pain_threshold
from tactics.stealth import detection_chance, is_hidden

BLADE = Weapon(name="Test Blade", damage="2d6+3")
MAUL = Weapon(name="Test Maul", damage="2d6", blunt=True)
STOP_BLEEDING = PALLADIUM_PSIONICS["Stop Bleeding"]


def _duel(faces, attacker_kw=None, defender_kw=None):
    akw = dict(strike_bonus=5, weapons=[MAUL])
    akw.update(attacker_kw or {})
    dkw = dict(max_hp=20, armor_rating=8)
    dkw.update(defender_kw or {})
    attacker = Combatant(id="att", name="Attacker", side=Side.ALLY, **akw)
    defender = Combatant(id="def", name="Defender", side=Side.ENEMY, **dkw)
    engine = CombatEngine([attacker, defender], dice=ScriptedDice(faces))
    return engine, attacker, defender


class TestPainStagger(unittest.TestCase):

    def test_threshold_is_half_pe_with_a_floor(self):
        self.assertEqual(pain_threshold(Combatant(id="x", name="X", attributes=Attributes(pe=14))), 7)
        self.assertEqual(pain_threshold(Combatant(id="y", name="Y", attributes=Attributes(pe=6))), 4)

    def test_heavy_blunt_blow_costs_an_action(self):
        """2d6 on 3 and 3 meets the threshold of 5 for P.E. 10."""
        engine, att, dfn = _duel([15, 3, 3])
        outcome = engine.attack(att, dfn, MAUL, defense=DefenseKind.NONE)
        self.assertTrue(outcome.hit)
        self.assertTrue(outcome.pain)
        self.assertEqual(dfn.actions_remaining, 1)
        self.assertTrue(any("reels" in m for m in engine.event_log.messages()))

    def test_armor_absorbs_the_shock(self):
        engine, att, dfn = _duel([15, 3, 3], defender_kw={"armor_rating": 12})
        outcome = engine.attack(att, dfn, MAUL, defense=DefenseKind.NONE)
        self.assertTrue(outcome.hit)
        self.assertFalse(outcome.pain)
        self.assertEqual(dfn.actions_remaining, 2)

    def test_light_blow_is_shrugged_off(self):
        engine, att, dfn = _duel([15, 1, 2])
        outcome = engine.attack(att, dfn, MAUL, defense=DefenseKind.NONE)
        self.assertEqual(outcome.damage, 3)
        self.assertFalse(outcome.pain)
        self.assertEqual(dfn.actions_remaining, 2)

    def test_edged_weapons_do_not_stagger(self):
        engine, att, dfn = _duel([15, 3, 3], attacker_kw={"weapons": [BLADE]})
        outcome = engine.attack(att, dfn, BLADE, defense=DefenseKind.NONE)
        self.assertEqual(outcome.damage, 9)
        self.assertFalse(outcome.pain)
        self.assertEqual(dfn.actions_remaining, 2)


class TestStopBleeding(unittest.TestCase):

    def setUp(self):
        self.p = Combatant(id="p", name="Pell", side=Side.ALLY, fear_immune=True, max_isp=10,
                           psionics=[STOP_BLEEDING])
        self.q = Combatant(id="q", name="Quill", side=Side.ALLY, fear_immune=True, max_isp=10,
                           psionics=[STOP_BLEEDING])
        self.w = Combatant(id="w", name="Wren", side=Side.ALLY)
        self.b = Combatant(id="b", name="Brug", side=Side.ENEMY, max_hp=40)
        self.engine = CombatEngine([self.p, self.q, self.w, self.b], dice=ScriptedDice([]))

    def test_stabilizes_a_bleeding_ally(self):
        self.engine.apply_damage(self.w, 23)
        self.assertTrue(self.w.has_status(StatusEffect.BLEEDING))
        outcome = self.engine.cast_spell(self.p, self.w, "Stop Bleeding")
        self.assertTrue(outcome.ok)
        self.assertTrue(outcome.stabilized)
        self.assertEqual(self.p.isp, 8)
        self.assertFalse(self.w.has_status(StatusEffect.BLEEDING))
        self.assertTrue(self.w.has_status(StatusEffect.STABILIZED))

    def test_one_stabilizing_per_fighter_per_round(self):
        self.engine.apply_damage(self.w, 23)
        self.engine.cast_spell(self.p, self.w, "Stop Bleeding")
        self.engine.heal(self.w, 10)
        self.assertFalse(self.w.has_status(StatusEffect.STABILIZED))
        self.engine.apply_damage(self.w, 10)
        self.assertTrue(self.w.has_status(StatusEffect.BLEEDING))

        outcome = self.engine.cast_spell(self.q, self.w, "Stop Bleeding")
        self.assertEqual(outcome.error.reason, ValidationReason.ILLEGAL_ACTION)
        self.assertIn("already been tended", outcome.error.message)
        self.assertEqual(self.q.isp, 10)
        self.assertTrue(self.w.has_status(StatusEffect.BLEEDING))

    def test_already_stabilized(self):
        self.engine.apply_damage(self.w, 23)
        self.engine.cast_spell(self.p, self.w, "Stop Bleeding")
        outcome = self.engine.cast_spell(self.q, self.w, "Stop Bleeding")
        self.assertEqual(outcome.error.reason, ValidationReason.ILLEGAL_ACTION)
        self.assertIn("already stabilized", outcome.error.message)

    def test_target_must_be_bleeding(self):
        outcome = self.engine.cast_spell(self.q, self.p, "Stop Bleeding")
        self.assertEqual(outcome.error.reason, ValidationReason.INVALID_TARGET)
        self.assertEqual(self.q.isp, 10)


class TestProwl(unittest.TestCase):

    def _pair(self, faces, ally_kw=None):
        akw = dict(prowl=50)
        akw.update(ally_kw or {})
        a = Combatant(id="a", name="Aldric", side=Side.ALLY, **akw)
        b = Combatant(id="b", name="Brug", side=Side.ENEMY, max_hp=40)
        engine = CombatEngine([a, b], dice=ScriptedDice(faces))
        return engine, a, b

    def test_successful_prowl_hides(self):
        engine, a, b = self._pair([30])
        result = engine.prowl(a)
        self.assertTrue(result.success)
        self.assertTrue(is_hidden(a))
        self.assertEqual(a.actions_remaining, 1)
        self.assertFalse(engine.can_see(b, a))
        self.assertEqual(engine.world_view(Side.ENEMY).enemies, ())

    def test_failed_prowl(self):
        engine, a, b = self._pair([51])
        result = engine.prowl(a)
        self.assertFalse(result.success)
        self.assertFalse(is_hidden(a))
        self.assertEqual(a.actions_remaining, 1)

    def test_prowl_needs_the_skill(self):
        engine, a, b = self._pair([], {"prowl": 0})
        result = engine.prowl(a)
        self.assertFalse(result.success)
        self.assertIn("no Prowl skill", result.message)
        self.assertEqual(a.actions_remaining, 1)

    def test_cannot_hide_twice(self):
        engine, a, b = self._pair([30])
        engine.prowl(a)
        result = engine.prowl(a)
        self.assertIn("already hidden", result.message)

    def test_sneak_attack_from_hiding(self):
        """Strike 12 +5 +2 lands; 2d6+3 on 2 and 3 is 8, doubled."""
        engine, att, dfn = _duel([12, 2, 3], attacker_kw={"weapons": [BLADE]}, defender_kw={"armor_rating": 14})
        att.apply_status(StatusEffect.HIDDEN)
        outcome = engine.attack(att, dfn, BLADE, defense=DefenseKind.NONE)
        self.assertTrue(outcome.sneak)
        self.assertEqual(outcome.damage, 16)
        self.assertFalse(is_hidden(att))


class TestDetection(unittest.TestCase):

    def _hidden_round(self, detection_face, keen=False):
        a = Combatant(id="a", name="Aldric", side=Side.ALLY, prowl=50, position=Position(1, 1))
        b = Combatant(id="b", name="Brug", side=Side.ENEMY, max_hp=40, keen_senses=keen, position=Position(5, 1))
        tmap = TacticalMap(10, 10, grid=GridKind.SQUARE)
        engine = CombatEngine([a, b], tactical_map=tmap, dice=ScriptedDice([15, 5, 30, detection_face]))
        engine.start_combat()
        self.assertTrue(engine.prowl(a).success)
        a.set_actions(0)
        b.set_actions(0)
        engine.end_turn()
        self.assertEqual(engine.round, 2)
        self.assertEqual(engine.dice.remaining(), 0)
        return engine, a, b

    def test_foe_spots_the_prowler(self):
        engine, a, b = self._hidden_round(35)
        self.assertFalse(is_hidden(a))
        self.assertTrue(any("spots Aldric" in m for m in engine.event_log.messages()))

    def test_prowler_stays_hidden(self):
        engine, a, b = self._hidden_round(80)
        self.assertTrue(is_hidden(a))

    def test_keen_senses(self):
        engine, a, b = self._hidden_round(60, keen=True)
        self.assertFalse(is_hidden(a))

    def test_detection_chance(self):
        plain = Combatant(id="x", name="X")
        keen = Combatant(id="y", name="Y", keen_senses=True)
        self.assertEqual(detection_chance(plain), 40)
        self.assertEqual(detection_chance(plain, "half"), 25)
        self.assertEqual(detection_chance(keen, "three_quarter"), 35)
        self.assertEqual(detection_chance(keen, rules=RulesConfig.from_dict({"base_detection": 90})), 95)


if __name__ == "__main__":
    unittest.main()
