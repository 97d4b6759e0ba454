"""
Unit tests for the CombatAI module (tactics/ai.py).

Tests cover:
- EV math (prob_d20_at_least, average_damage, expected_attack_value)
- Strategy configuration
- Target, spell and heal selection
- Fleeing, including a routed fighter boxed in by walls
- Terror: backing away or cowering without leaving the field
- Dive, rest, hold and prowl plans
- The decision watchdog
"""

import unittest

from tactics import (
    CombatAI,
    CombatEngine,
    Combatant,
    DamageType,
    FatigueStatus,
    GridKind,
    MoraleStatus,
    PALLADIUM_PSIONICS,
    PALLADIUM_SPELLS,
    PlanKind,
    PlannedAction,
    Position,
    STRATEGY_DEFAULTS,
    ScriptedDice,
    Severity,
    Side,
    StatusEffect,
    TacticalMap,
    TerrainType,
    Weapon,
)
from tactics.memory import IMMUNE
from tactics.stealth import is_hidden

BLADE = Weapon(name="Test Blade", damage="2d6+3")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _fighter(cid, side, **kw):
    kw.setdefault("max_hp", 20)
    kw.setdefault("weapons", [BLADE])
    return Combatant(id=cid, name=cid.title(), side=side, **kw)


class _StalledAI(CombatAI):
    """Keeps planning a strike that never happens."""

    def decide(self, engine, actor):
        return PlannedAction(PlanKind.ATTACK, "orc", weapon=BLADE, reason="stalled")

    def execute(self, engine, actor, plan):
        return None


class TestProbability(unittest.TestCase):

    def test_always_and_never(self):
        self.assertAlmostEqual(CombatAI.prob_d20_at_least(0), 0.95)
        self.assertAlmostEqual(CombatAI.prob_d20_at_least(30), 0.05)

    def test_midpoint(self):
        self.assertAlmostEqual(CombatAI.prob_d20_at_least(14), 0.35)

    def test_average_damage(self):
        self.assertAlmostEqual(CombatAI.average_damage("2d6+3"), 10.0)
        self.assertAlmostEqual(CombatAI.average_damage("1d6*10"), 35.0)
        self.assertEqual(CombatAI.average_damage(None), 0.0)


class TestExpectedAttackValue(unittest.TestCase):

    def test_armor_lowers_value(self):
        attacker = _fighter("a", Side.ALLY, strike_bonus=3)
        light = _fighter("b", Side.ENEMY, armor_rating=8)
        heavy = _fighter("c", Side.ENEMY, armor_rating=16)
        self.assertGreater(CombatAI.expected_attack_value(attacker, light, BLADE),
                           CombatAI.expected_attack_value(attacker, heavy, BLADE))

    def test_immunity_and_resistance(self):
        attacker = _fighter("a", Side.ALLY)
        plain = _fighter("b", Side.ENEMY)
        tough = _fighter("c", Side.ENEMY, resistances={DamageType.PHYSICAL})
        ghost = _fighter("d", Side.ENEMY, immunities={DamageType.PHYSICAL})
        base = CombatAI.expected_attack_value(attacker, plain, BLADE)
        self.assertAlmostEqual(CombatAI.expected_attack_value(attacker, tough, BLADE), base / 2)
        self.assertEqual(CombatAI.expected_attack_value(attacker, ghost, BLADE), 0.0)


class TestStrategyConfig(unittest.TestCase):

    def test_defensive_rests(self):
        ai = CombatAI(strategy="defensive")
        self.assertTrue(ai.config["rest_when_spent"])
        self.assertFalse(ai.config["grapple_weaker"])

    def test_invalid_strategy_falls_back(self):
        ai = CombatAI(strategy="berserk")
        self.assertEqual(ai.strategy, "balanced")
        self.assertEqual(ai.config, STRATEGY_DEFAULTS["balanced"])

    def test_decision_logging(self):
        log = []
        ai = CombatAI(decision_log=log)
        a, b = _fighter("a", Side.ALLY), _fighter("b", Side.ENEMY)
        engine = CombatEngine([a, b], dice=ScriptedDice([]))
        ai.decide(engine, a)
        self.assertTrue(any("Decision" in line for line in log))


class TestPickTarget(unittest.TestCase):

    def test_weakest_then_lowest_armor(self):
        a = _fighter("a", Side.ALLY)
        b = _fighter("b", Side.ENEMY)
        c = _fighter("c", Side.ENEMY, current_hp=5, armor_rating=14)
        d = _fighter("d", Side.ENEMY, current_hp=5, armor_rating=8)
        engine = CombatEngine([a, b, c, d], dice=ScriptedDice([]))
        ai = CombatAI()
        self.assertIs(ai.pick_target(engine, a, engine.world_view(Side.ALLY)), d)

    def test_skips_the_fallen(self):
        a = _fighter("a", Side.ALLY)
        b = _fighter("b", Side.ENEMY, current_hp=-3)
        c = _fighter("c", Side.ENEMY)
        engine = CombatEngine([a, b, c], dice=ScriptedDice([]))
        self.assertIs(CombatAI().pick_target(engine, a, engine.world_view(Side.ALLY)), c)

    def test_flyer_out_of_reach(self):
        a = _fighter("a", Side.ALLY)
        bat = _fighter("bat", Side.ENEMY, can_fly=True)
        bat.flight.is_flying = True
        engine = CombatEngine([a, bat], dice=ScriptedDice([]))
        ai = CombatAI()
        self.assertIsNone(ai.pick_target(engine, a, engine.world_view(Side.ALLY)))
        self.assertEqual(ai.decide(engine, a).kind, PlanKind.END_TURN)

    def test_random_strategy_stays_valid(self):
        a = _fighter("a", Side.ALLY)
        foes = [_fighter(f"e{i}", Side.ENEMY) for i in range(3)]
        engine = CombatEngine([a] + foes, dice=ScriptedDice([]))
        ai = CombatAI(strategy="random")
        for _ in range(10):
            self.assertIn(ai.pick_target(engine, a, engine.world_view(Side.ALLY)), foes)


class TestDecide(unittest.TestCase):

    def test_strikes_when_in_reach(self):
        a, b = _fighter("a", Side.ALLY), _fighter("b", Side.ENEMY)
        engine = CombatEngine([a, b], dice=ScriptedDice([]))
        plan = CombatAI().decide(engine, a)
        self.assertEqual(plan.kind, PlanKind.ATTACK)
        self.assertEqual(plan.target_id, "b")

    def test_wounded_fighter_checks_morale(self):
        a = _fighter("a", Side.ALLY, current_hp=3)
        b = _fighter("b", Side.ENEMY)
        engine = CombatEngine([a, b], dice=ScriptedDice([]))
        self.assertEqual(CombatAI().decide(engine, a).kind, PlanKind.MORALE)

    def test_heals_a_dying_friend(self):
        heal = PALLADIUM_SPELLS["Heal Wounds"]
        healer = _fighter("healer", Side.ALLY, max_ppe=20, spells=[heal])
        friend = _fighter("friend", Side.ALLY, current_hp=2)
        foe = _fighter("foe", Side.ENEMY)
        engine = CombatEngine([healer, friend, foe], dice=ScriptedDice([]))
        plan = CombatAI().decide(engine, healer)
        self.assertEqual(plan.kind, PlanKind.HEAL)
        self.assertEqual(plan.target_id, "friend")

    def test_prefers_the_bigger_spell(self):
        spells = [PALLADIUM_SPELLS["Energy Bolt"], PALLADIUM_SPELLS["Fire Bolt"]]
        mage = _fighter("mage", Side.ALLY, max_ppe=30, spells=spells)
        foe = _fighter("foe", Side.ENEMY)
        engine = CombatEngine([mage, foe], dice=ScriptedDice([]))
        ai = CombatAI()
        self.assertEqual(ai.choose_spell(engine, mage, foe).name, "Fire Bolt")

        mage.memory.note_spell("foe", "Fire Bolt", DamageType.FIRE, IMMUNE)
        self.assertEqual(ai.choose_spell(engine, mage, foe).name, "Energy Bolt")

    def test_surrendered_does_nothing(self):
        a, b = _fighter("a", Side.ALLY), _fighter("b", Side.ENEMY)
        engine = CombatEngine([a, b], dice=ScriptedDice([]))
        a.morale.status = MoraleStatus.SURRENDERED
        self.assertEqual(CombatAI().decide(engine, a).kind, PlanKind.END_TURN)


class TestFlee(unittest.TestCase):

    def test_boxed_in_slips_off_the_map(self):
        tmap = TacticalMap(7, 7, grid=GridKind.SQUARE)
        for x, y in tmap.get_neighbors(3, 3):
            tmap.set_terrain(x, y, TerrainType.WALL)
        runner = _fighter("runner", Side.ALLY, position=Position(3, 3))
        friend = _fighter("friend", Side.ALLY, position=Position(6, 6))
        orc = _fighter("orc", Side.ENEMY, position=Position(0, 6))
        engine = CombatEngine([runner, friend, orc], tactical_map=tmap, dice=ScriptedDice([]))
        runner.morale.status = MoraleStatus.ROUTED

        plans = CombatAI().take_turn(engine, runner)
        self.assertEqual(plans[0].kind, PlanKind.FLEE)
        self.assertIsNone(plans[0].destination)
        self.assertTrue(runner.fled)
        self.assertIsNone(runner.position)
        self.assertIn(runner, engine.combatants)
        self.assertEqual(runner.actions_remaining, 0)
        self.assertIsNone(tmap.occupant_at(3, 3))
        self.assertFalse(engine.is_combat_ended())

    def test_runs_for_the_edge(self):
        tmap = TacticalMap(10, 10, grid=GridKind.SQUARE)
        runner = _fighter("runner", Side.ALLY, position=Position(3, 3))
        friend = _fighter("friend", Side.ALLY, position=Position(9, 9))
        orc = _fighter("orc", Side.ENEMY, position=Position(5, 5))
        engine = CombatEngine([runner, friend, orc], tactical_map=tmap, dice=ScriptedDice([]))
        runner.morale.status = MoraleStatus.ROUTED

        plan = CombatAI().decide(engine, runner)
        self.assertEqual(plan.kind, PlanKind.FLEE)
        self.assertTrue(tmap.is_edge(*plan.destination))
        CombatAI().execute(engine, runner, plan)
        self.assertTrue(runner.fled)

    def test_no_map_leaves_the_fight(self):
        a, b, c = _fighter("a", Side.ALLY), _fighter("b", Side.ALLY), _fighter("c", Side.ENEMY)
        engine = CombatEngine([a, b, c], dice=ScriptedDice([]))
        a.morale.status = MoraleStatus.ROUTED
        CombatAI().take_turn(engine, a)
        self.assertTrue(a.fled)


class TestWatchdog(unittest.TestCase):

    def test_stalled_turn_forfeits_an_action(self):
        a, b = _fighter("a", Side.ALLY), _fighter("orc", Side.ENEMY)
        engine = CombatEngine([a, b], dice=ScriptedDice([]))
        ai = _StalledAI(max_decision_steps=3)
        plans = ai.take_turn(engine, a)
        self.assertEqual(len(plans), 3)
        self.assertEqual(ai.watchdog_trips, 1)
        self.assertEqual(a.actions_remaining, a.actions_per_round - 1)
        self.assertTrue(engine.event_log.with_severity(Severity.WARNING))

    def test_stalled_turn_still_ends(self):
        a, b = _fighter("a", Side.ALLY), _fighter("orc", Side.ENEMY)
        engine = CombatEngine([a, b], dice=ScriptedDice([15, 5]))
        engine.start_combat()
        self.assertIs(engine.current_actor(), a)
        _StalledAI(max_decision_steps=2).take_turn(engine, a)
        self.assertIs(engine.current_actor(), b)

    def test_real_turn_spends_one_action(self):
        a, b = _fighter("a", Side.ALLY), _fighter("orc", Side.ENEMY, max_hp=40)
        engine = CombatEngine([a, b], dice=ScriptedDice([18, 20]))
        ai = CombatAI()
        ai.take_turn(engine, a)
        self.assertEqual(ai.watchdog_trips, 0)
        self.assertEqual(a.actions_remaining, a.actions_per_round - 1)

class TestTerror(unittest.TestCase):

    def _field(self, walls=False):
        tmap = TacticalMap(10, 10, grid=GridKind.SQUARE)
        if walls:
            for x, y in tmap.get_neighbors(3, 3):
                tmap.set_terrain(x, y, TerrainType.WALL)
        runner = _fighter("runner", Side.ALLY, position=Position(3, 3))
        friend = _fighter("friend", Side.ALLY, position=Position(9, 9))
        orc = _fighter("orc", Side.ENEMY, position=Position(6, 6) if walls else Position(4, 3))
        engine = CombatEngine([runner, friend, orc], tactical_map=tmap, dice=ScriptedDice([15, 10, 5]))
        engine.start_combat()
        runner.apply_status(StatusEffect.FLEEING, 3)
        return engine, runner, orc

    def test_backs_away_but_stays_on_the_field(self):
        engine, runner, orc = self._field()
        plan = CombatAI().decide(engine, runner)
        self.assertEqual(plan.kind, PlanKind.MOVE)
        self.assertEqual(plan.mode, "run")
        self.assertTrue(CombatAI().execute(engine, runner, plan))
        self.assertGreater(engine.tactical_map.distance(runner.position.cell, orc.position.cell), 1)
        self.assertFalse(runner.fled)
        self.assertIsNotNone(runner.position)

    def test_boxed_in_cowers(self):
        engine, runner, orc = self._field(walls=True)
        plans = CombatAI().take_turn(engine, runner)
        self.assertEqual(plans[0].kind, PlanKind.REST)
        self.assertFalse(runner.fled)
        self.assertEqual(runner.position.cell, (3, 3))
        self.assertEqual(runner.actions_remaining, 1)

    def test_no_map_cowers(self):
        a, b, c = _fighter("a", Side.ALLY), _fighter("b", Side.ALLY), _fighter("c", Side.ENEMY)
        engine = CombatEngine([a, b, c], dice=ScriptedDice([]))
        a.apply_status(StatusEffect.FLEEING, 2)
        self.assertEqual(CombatAI().decide(engine, a).kind, PlanKind.REST)
        self.assertFalse(a.fled)


class TestPlanDetails(unittest.TestCase):

    def test_flyer_dives_on_a_ground_target(self):
        tmap = TacticalMap(8, 8, grid=GridKind.SQUARE)
        hawk = _fighter("hawk", Side.ALLY, can_fly=True, position=Position(2, 2))
        orc = _fighter("orc", Side.ENEMY, position=Position(3, 2))
        engine = CombatEngine([hawk, orc], tactical_map=tmap, dice=ScriptedDice([15, 5]))
        engine.start_combat()
        engine.take_off(hawk)
        plan = CombatAI().decide(engine, hawk)
        self.assertEqual(plan.kind, PlanKind.DIVE)
        self.assertEqual(plan.target_id, "orc")
        self.assertEqual(plan.attack.name, "Test Blade")

    def test_strike_plan_carries_the_attack(self):
        a, b = _fighter("a", Side.ALLY), _fighter("b", Side.ENEMY)
        engine = CombatEngine([a, b], dice=ScriptedDice([]))
        plan = CombatAI().decide(engine, a)
        self.assertEqual(plan.attack.damage, "2d6+3")

    def test_rests_once_per_round(self):
        a, b = _fighter("a", Side.ALLY), _fighter("b", Side.ENEMY)
        engine = CombatEngine([a, b], dice=ScriptedDice([]))
        a.fatigue.stamina = -17.0
        a.fatigue.status = FatigueStatus.COLLAPSE_RISK
        ai = CombatAI()
        self.assertEqual(ai.decide(engine, a).kind, PlanKind.REST)
        engine.rest(a)
        self.assertEqual(a.fatigue.status, FatigueStatus.COLLAPSE_RISK)
        self.assertEqual(ai.decide(engine, a).kind, PlanKind.ATTACK)

    def test_defensive_fighter_holds_its_ground(self):
        tmap = TacticalMap(10, 10, grid=GridKind.SQUARE)
        a = _fighter("a", Side.ALLY, position=Position(1, 1))
        b = _fighter("b", Side.ENEMY, position=Position(6, 1))
        engine = CombatEngine([a, b], tactical_map=tmap, dice=ScriptedDice([15, 5]))
        engine.start_combat()
        ai = CombatAI(strategy="defensive")
        plan = ai.decide(engine, a)
        self.assertEqual(plan.kind, PlanKind.HOLD)
        self.assertTrue(ai.execute(engine, a, plan))
        self.assertIn("a", engine.holds)
        self.assertEqual(ai.decide(engine, a).kind, PlanKind.MOVE)

    def test_balanced_fighter_closes_instead(self):
        tmap = TacticalMap(10, 10, grid=GridKind.SQUARE)
        a = _fighter("a", Side.ALLY, position=Position(1, 1))
        b = _fighter("b", Side.ENEMY, position=Position(6, 1))
        engine = CombatEngine([a, b], tactical_map=tmap, dice=ScriptedDice([15, 5]))
        engine.start_combat()
        self.assertNotEqual(CombatAI().decide(engine, a).kind, PlanKind.HOLD)

    def test_prowler_slips_away_once(self):
        tmap = TacticalMap(10, 10, grid=GridKind.SQUARE)
        a = _fighter("a", Side.ALLY, prowl=40, position=Position(0, 0))
        b = _fighter("b", Side.ENEMY, position=Position(0, 8))
        engine = CombatEngine([a, b], tactical_map=tmap, dice=ScriptedDice([15, 5, 20]))
        engine.start_combat()
        ai = CombatAI()
        plans = ai.take_turn(engine, a)
        self.assertEqual(plans[0].kind, PlanKind.PROWL)
        self.assertTrue(is_hidden(a))
        self.assertEqual(a.actions_remaining, 1)
        self.assertNotEqual(ai.decide(engine, a).kind, PlanKind.PROWL)

    def test_stanches_a_bleeding_friend(self):
        healer = _fighter("healer", Side.ALLY, fear_immune=True, max_isp=10,
                          psionics=[PALLADIUM_PSIONICS["Stop Bleeding"]])
        friend = _fighter("friend", Side.ALLY)
        foe = _fighter("foe", Side.ENEMY)
        engine = CombatEngine([healer, friend, foe], dice=ScriptedDice([]))
        engine.apply_damage(friend, 23)
        plan = CombatAI().decide(engine, healer)
        self.assertEqual(plan.kind, PlanKind.HEAL)
        self.assertEqual(plan.spell, "Stop Bleeding")
        self.assertEqual(plan.target_id, "friend")

    def test_no_stanching_without_bleeding(self):
        healer = _fighter("healer", Side.ALLY, max_isp=10, psionics=[PALLADIUM_PSIONICS["Stop Bleeding"]])
        friend = _fighter("friend", Side.ALLY, current_hp=2)
        foe = _fighter("foe", Side.ENEMY)
        engine = CombatEngine([healer, friend, foe], dice=ScriptedDice([]))
        self.assertEqual(CombatAI().decide(engine, healer).kind, PlanKind.ATTACK)



if __name__ == "__main__":
    unittest.main()
