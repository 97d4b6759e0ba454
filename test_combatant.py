"""
Unit tests for the combatant model (tactics/combatant.py).

Tests cover:
- HP bands and clamping
- Action budget bounds
- PPE / ISP spending
- Timed status effects
- Encounter reset
"""

import unittest

from tactics import (
    Attributes,
    Combatant,
    FatigueStatus,
    HealthStatus,
    MoraleStatus,
    PALLADIUM_SPELLS,
    PALLADIUM_PSIONICS,
    Position,
    RulesConfig,
    SpellSource,
    StatusEffect,
    health_status_for,
)


def _make(**kwargs):
    defaults = dict(id="c", name="Tester", max_hp=20)
    defaults.update(kwargs)
    return Combatant(**defaults)


class TestHealthBands(unittest.TestCase):
    """HP thresholds map onto the five health states."""

    def test_bands(self):
        cases = [
            (5, HealthStatus.CONSCIOUS),
            (1, HealthStatus.CONSCIOUS),
            (0, HealthStatus.UNCONSCIOUS),
            (-5, HealthStatus.UNCONSCIOUS),
            (-6, HealthStatus.DYING),
            (-10, HealthStatus.DYING),
            (-11, HealthStatus.CRITICAL),
            (-20, HealthStatus.CRITICAL),
            (-21, HealthStatus.DEAD),
            (-100, HealthStatus.DEAD),
        ]
        for hp, expected in cases:
            self.assertEqual(health_status_for(hp), expected, f"hp={hp}")

    def test_hp_is_clamped(self):
        c = _make()
        c.set_hp(500)
        self.assertEqual(c.current_hp, 20)
        c.apply_hp_delta(-1000)
        self.assertEqual(c.current_hp, -100)
        self.assertFalse(c.is_alive)

    def test_apply_hp_delta_reports_actual_change(self):
        c = _make(current_hp=18)
        self.assertEqual(c.apply_hp_delta(10), 2)
        self.assertEqual(c.apply_hp_delta(-5), -5)

    def test_starting_hp_defaults_to_max(self):
        c = _make(max_hp=33)
        self.assertEqual(c.current_hp, 33)
        self.assertAlmostEqual(c.hp_ratio, 1.0)


class TestActions(unittest.TestCase):

    def test_actions_bounded(self):
        c = _make(actions_per_round=3)
        self.assertEqual(c.set_actions(7), 3)
        self.assertEqual(c.set_actions(-2), 0)

    def test_spend_actions(self):
        c = _make(actions_per_round=2)
        self.assertTrue(c.spend_actions(1))
        self.assertFalse(c.spend_actions(2))
        self.assertEqual(c.actions_remaining, 1)
        c.restore_actions()
        self.assertEqual(c.actions_remaining, 2)


class TestResources(unittest.TestCase):

    def test_ppe_and_isp(self):
        c = _make(max_ppe=20, max_isp=12)
        self.assertTrue(c.spend_resource(SpellSource.MAGIC, 7))
        self.assertEqual(c.resource_for(SpellSource.MAGIC), 13)
        self.assertFalse(c.spend_resource(SpellSource.PSIONIC, 13))
        self.assertEqual(c.isp, 12)

    def test_known_powers(self):
        c = _make(spells=[PALLADIUM_SPELLS["Fire Bolt"]], psionics=[PALLADIUM_PSIONICS["Mind Bolt"]])
        self.assertEqual([p.name for p in c.known_powers()], ["Fire Bolt", "Mind Bolt"])


class TestStatuses(unittest.TestCase):

    def test_timed_status_expires(self):
        c = _make()
        c.apply_status(StatusEffect.FRIGHTENED, 2)
        self.assertEqual(c.situational_penalty(), 2)
        self.assertEqual(c.tick_statuses(), [])
        self.assertEqual(c.tick_statuses(), [StatusEffect.FRIGHTENED])
        self.assertFalse(c.has_status(StatusEffect.FRIGHTENED))
        self.assertEqual(c.situational_penalty(), 0)

    def test_untimed_status_persists(self):
        c = _make()
        c.apply_status(StatusEffect.PRONE)
        c.tick_statuses()
        self.assertTrue(c.has_status(StatusEffect.PRONE))
        c.clear_status(StatusEffect.PRONE)
        self.assertFalse(c.has_status(StatusEffect.PRONE))

    def test_stunned_cannot_act(self):
        c = _make()
        c.apply_status(StatusEffect.STUNNED, 1)
        self.assertTrue(c.in_fight)
        self.assertFalse(c.can_act)

    def test_in_fight(self):
        c = _make()
        self.assertTrue(c.in_fight)
        c.morale.status = MoraleStatus.ROUTED
        self.assertTrue(c.in_fight)
        self.assertFalse(c.can_attack)
        c.morale.status = MoraleStatus.SURRENDERED
        self.assertFalse(c.in_fight)
        c.morale.status = MoraleStatus.STEADY
        c.fled = True
        self.assertFalse(c.in_fight)


class TestLifecycle(unittest.TestCase):

    def test_stamina_from_pe(self):
        c = _make(attributes=Attributes(pe=16))
        self.assertEqual(c.fatigue.max_stamina, 32.0)
        self.assertEqual(c.fatigue.status, FatigueStatus.READY)

    def test_custom_rules_clamp(self):
        c = _make(rules=RulesConfig(hp_floor=-30))
        c.set_hp(-50)
        self.assertEqual(c.current_hp, -30)

    def test_rules_from_dict(self):
        rules = RulesConfig.from_dict({"crit_multiplier": 3, "flee_step_budget": 4})
        self.assertEqual(rules.crit_multiplier, 3)
        self.assertEqual(rules.to_dict()["flee_step_budget"], 4)
        with self.assertRaises(ValueError):
            RulesConfig.from_dict({"crit_multiplyer": 3})

    def test_reset_for_encounter(self):
        c = _make(position=Position(1, 1, 30))
        c.apply_status(StatusEffect.HESITANT, 1)
        c.morale.status = MoraleStatus.SHAKEN
        c.fled = True
        c.cast_this_round = True
        c.set_actions(0)
        c.reset_for_encounter()
        self.assertEqual(c.status_effects, set())
        self.assertEqual(c.morale.status, MoraleStatus.STEADY)
        self.assertFalse(c.fled)
        self.assertFalse(c.cast_this_round)
        self.assertEqual(c.actions_remaining, c.actions_per_round)
        # Not a flyer, so it is put back on the ground.
        self.assertEqual(c.position.altitude, 0)


if __name__ == "__main__":
    unittest.main()
